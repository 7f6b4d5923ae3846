from __future__ import annotations

from typing import Any

from ...errors import ActionError
from ..models import InteractionAction

__all__ = ["NavigationActionsMixin"]


class NavigationActionsMixin:
    def _action_navigate(self, action: InteractionAction) -> Any:
        target = action.target
        template_id = target.get("templateId") or target.get("templateName")
        if not template_id:
            raise ActionError("navigate requires a templateId", action_type=action.type)
        raw_params = target.get("params")
        params = {key: self.resolve(value) for key, value in raw_params.items()} if raw_params else None
        self.ctx.navigate(template_id, params)
        return {"templateId": template_id, "params": params or {}}

    def _action_navigate_back(self, action: InteractionAction) -> Any:
        return {"moved": self.ctx.navigate_back()}

    def _action_open_url(self, action: InteractionAction) -> Any:
        url = self.resolve(action.target.get("url"))
        if not url:
            raise ActionError("openUrl requires a url", action_type=action.type)
        new_tab = action.target.get("newTab") is not False
        if self.ctx.open_url is not None:
            self.ctx.open_url(str(url), new_tab)
        else:
            self.ctx.log(f"Open URL {url}")
        return {"url": url, "newTab": new_tab}
