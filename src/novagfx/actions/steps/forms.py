from __future__ import annotations

import re
from typing import Any, Dict, Iterable, Mapping

from ...errors import ActionError
from ...runtime.expressions import evaluate_expression
from ..models import InteractionAction

__all__ = ["FormActionsMixin", "validate_form_values"]


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, (str, list, dict)) and len(value) == 0)


def validate_form_values(values: Mapping[str, Any], rules: Iterable[Mapping[str, Any]] | None) -> Dict[str, str]:
    """
    Apply ``{field, required, pattern, minLength, maxLength, min, max, message}`` rules.

    Returns a mapping of field to the first failing rule's message.
    """
    errors: Dict[str, str] = {}
    for rule in rules or ():
        field = rule.get("field")
        if not field or field in errors:
            continue
        value = values.get(field)
        message = rule.get("message")
        if rule.get("required") and _is_blank(value):
            errors[field] = message or f"{field} is required"
            continue
        if _is_blank(value):
            continue
        text = str(value)
        if rule.get("pattern") and re.fullmatch(str(rule["pattern"]), text) is None:
            errors[field] = message or f"{field} is invalid"
        elif rule.get("minLength") is not None and len(text) < int(rule["minLength"]):
            errors[field] = message or f"{field} must be at least {rule['minLength']} characters"
        elif rule.get("maxLength") is not None and len(text) > int(rule["maxLength"]):
            errors[field] = message or f"{field} must be at most {rule['maxLength']} characters"
        elif rule.get("min") is not None and _below(value, rule["min"]):
            errors[field] = message or f"{field} must be at least {rule['min']}"
        elif rule.get("max") is not None and _below(rule["max"], value):
            errors[field] = message or f"{field} must be at most {rule['max']}"
    return errors


def _below(left: Any, right: Any) -> bool:
    try:
        return float(left) < float(right)
    except (TypeError, ValueError):
        return False


class FormActionsMixin:
    def _form_id(self, action: InteractionAction) -> str:
        return str(action.target.get("formId") or "default")

    def _action_validate_form(self, action: InteractionAction) -> Any:
        form_id = self._form_id(action)
        store = self.ctx.store
        form = store.forms.get(form_id)
        rules = action.target.get("rules")
        if self.ctx.validate_form is not None:
            outcome = self.ctx.validate_form(form_id, rules)
            errors = dict(outcome.get("errors") or {})
            is_valid = bool(outcome.get("isValid", not errors))
        else:
            errors = validate_form_values(form.values if form is not None else {}, rules)
            is_valid = not errors
        form = store.ensure_form(form_id)
        form.errors = errors
        form.is_valid = is_valid
        return {"isValid": is_valid, "errors": errors}

    async def _action_submit_form(self, action: InteractionAction) -> Any:
        target = action.target
        form_id = self._form_id(action)
        form = self.ctx.store.get_form_state(form_id)
        if form is None:
            raise ActionError(f"Form not found: {form_id}", action_type=action.type)
        form.is_submitting = True
        endpoint = target.get("url") or target.get("endpointId") or ""
        try:
            payload: Any = dict(form.values)
            if target.get("transform"):
                scope = self.ctx.to_script_scope()
                scope.data = {**self.ctx.data, "formData": payload}
                scope.locals = {"formData": payload}
                payload = evaluate_expression(target["transform"], scope, config=self.ctx.config)
            if self.ctx.submit_form is not None:
                await self.ctx.submit_form(form_id, payload, endpoint)
            else:
                self.ctx.log(f"Submitted form {form_id}")
        except Exception as exc:
            form.is_submitting = False
            self.ctx.log(f"Form submit error: {exc}")
            if target.get("onError"):
                await self.run(target["onError"])
            raise ActionError(f"Submitting form {form_id} failed: {exc}", action_type=action.type) from exc
        form.is_submitting = False
        if target.get("onSuccess"):
            await self.run(target["onSuccess"])
        return {"formId": form_id, "endpoint": endpoint}

    def _action_reset_form(self, action: InteractionAction) -> Any:
        form_id = self._form_id(action)
        self.ctx.store.reset_form(form_id)
        return form_id
