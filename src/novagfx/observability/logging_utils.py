from __future__ import annotations

from typing import Any, Dict, Mapping

_SENSITIVE_KEYS = {"email", "phone", "authorization", "access_token", "password", "secret", "token", "api_key"}
CODE_PREVIEW_LENGTH = 100


def preview_code(code: Any, limit: int = CODE_PREVIEW_LENGTH) -> str:
    text = "" if code is None else str(code)
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def redact_details(details: Mapping[str, Any], enabled: bool = True) -> Dict[str, Any]:
    """
    Mask sensitive keys (recursively) in form values and event payloads before logging.

    ``enabled`` comes from ``InteractiveConfig.log_redact``; when off, a plain copy is returned.
    """
    if not enabled:
        return dict(details)
    redacted: Dict[str, Any] = {}
    for key, value in details.items():
        if str(key).lower() in _SENSITIVE_KEYS:
            redacted[key] = "[REDACTED]"
        elif isinstance(value, Mapping):
            redacted[key] = redact_details(value)
        else:
            redacted[key] = value
    return redacted


def redact_event(event: Dict[str, Any], enabled: bool = True) -> Dict[str, Any]:
    sanitized = dict(event)
    if isinstance(sanitized.get("data"), Mapping):
        sanitized["data"] = redact_details(sanitized["data"], enabled)
    for key in ("code", "body", "expression"):
        if isinstance(sanitized.get(key), str):
            sanitized[key] = preview_code(sanitized[key])
    return sanitized
