"""
Universal address system.

Addresses reference elements, templates, layers, data fields and state
variables from anywhere in an interactive app, using an ``@`` prefix:

    @Score_Text.content.text
    @template.Lower_Third.dataIndex
    @data.current.player_name
    @state.score

Name lookup is case-insensitive and treats ``_`` and whitespace alike. Every
component that looks an item up by name goes through :func:`find_named` so
that reads and writes agree on which item a name refers to.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Sequence

from .errors import AddressError
from .runtime.helpers import get_nested_value

logger = logging.getLogger("novagfx.address")

ADDRESS_TYPES = ("element", "template", "layer", "data", "state", "animation", "action")
_NAMESPACES = {"template", "layer", "data", "state"}

_WHITESPACE_RE = re.compile(r"\s+")
_UNSAFE_RE = re.compile(r"[^a-zA-Z0-9_]")


@dataclass(frozen=True)
class ParsedAddress:
    type: str
    name: str
    path: tuple[str, ...]
    raw: str


def sanitize_name(name: str) -> str:
    """Replace whitespace runs with ``_`` and drop anything outside ``[A-Za-z0-9_]``."""
    return _UNSAFE_RE.sub("", _WHITESPACE_RE.sub("_", name or ""))


def names_match(candidate: Any, address_name: str) -> bool:
    if not isinstance(candidate, str) or not isinstance(address_name, str):
        return False
    wanted = address_name.lower()
    return candidate.lower() == wanted.replace("_", " ") or sanitize_name(candidate).lower() == wanted


def find_named(items: Iterable[Mapping[str, Any]] | None, name: str) -> Optional[Mapping[str, Any]]:
    """Return the first item whose ``name`` matches ``name`` under address rules."""
    for item in items or ():
        if isinstance(item, Mapping) and names_match(item.get("name"), name):
            return item
    return None


def find_named_key(keys: Iterable[Any] | None, name: str) -> Optional[str]:
    """Return the key matching ``name`` exactly, else the first one matching under address rules."""
    candidates = list(keys or ())
    if name in candidates:
        return name
    return next((key for key in candidates if names_match(key, name)), None)


def build_element_address(element_name: str, prop: str | None = None) -> str:
    safe = sanitize_name(element_name)
    return f"@{safe}.{prop}" if prop else f"@{safe}"


def build_template_address(template_name: str, prop: str | None = None) -> str:
    safe = sanitize_name(template_name)
    return f"@template.{safe}.{prop}" if prop else f"@template.{safe}"


def build_layer_address(layer_name: str, prop: str | None = None) -> str:
    safe = sanitize_name(layer_name)
    return f"@layer.{safe}.{prop}" if prop else f"@layer.{safe}"


def build_data_address(field_name: str, source: str = "current") -> str:
    return f"@data.{source}.{field_name}"


def build_state_address(state_name: str) -> str:
    return f"@state.{state_name}"


def build_action_address(action_name: str, params: Sequence[str] | None = None) -> str:
    return f"actions.{action_name}({', '.join(params or ())})"


def build_animation_address(element_name: str, phase: str, prop: str | None = None) -> str:
    base = f"@{sanitize_name(element_name)}.animation.{phase}"
    return f"{base}.{prop}" if prop else base


def build_keyframe_address(element_name: str, phase: str, keyframe_name: str, prop: str | None = None) -> str:
    base = f"@{sanitize_name(element_name)}.animation.{phase}.{sanitize_name(keyframe_name)}"
    return f"{base}.{prop}" if prop else base


def parse_address(address: Any) -> Optional[ParsedAddress]:
    if not isinstance(address, str) or not address.startswith("@"):
        return None
    parts = address[1:].split(".")
    first = parts[0].lower()
    if first in _NAMESPACES:
        name = parts[1] if len(parts) > 1 else ""
        if first == "data" and not name:
            name = "current"
        return ParsedAddress(type=first, name=name, path=tuple(parts[2:]), raw=address)
    return ParsedAddress(type="element", name=parts[0], path=tuple(parts[1:]), raw=address)


def is_address(value: Any) -> bool:
    return isinstance(value, str) and value.startswith("@") and len(value) > 1


def nested_update(path: Sequence[str], value: Any) -> Any:
    """Build ``{a: {b: value}}`` from ``("a", "b")``."""
    result: Any = value
    for key in reversed(tuple(path)):
        result = {key: result}
    return result


def _record_at(payload: Any, index: Any) -> Any:
    if not isinstance(payload, list) or not isinstance(index, int):
        return None
    if 0 <= index < len(payload):
        return payload[index]
    return None


def _cached_template_data(designer: Any, name: str) -> Optional[Mapping[str, Any]]:
    cache = getattr(designer, "template_data_cache", None) or {}
    if name in cache:
        return cache[name]
    template = find_named(getattr(designer, "templates", None), name)
    if template is not None:
        return cache.get(template.get("id"))
    return None


def resolve_address(address: Any, designer: Any) -> Any:
    """
    Resolve an address against the designer state.

    Returns ``None`` (and logs a warning) for malformed or unknown addresses.
    State addresses resolve to a ``{{state.name}}`` placeholder which the
    expression layer substitutes with the live value.
    """
    parsed = parse_address(address)
    if parsed is None:
        logger.warning("Invalid address format: %r", address)
        return None
    try:
        return _resolve_parsed(parsed, designer)
    except Exception as exc:  # resolution never raises to callers
        logger.warning("Failed to resolve address %s: %s", parsed.raw, exc)
        return None


def _resolve_parsed(parsed: ParsedAddress, designer: Any) -> Any:
    if parsed.type in ("element", "template", "layer"):
        collection = {"element": "elements", "template": "templates", "layer": "layers"}[parsed.type]
        item = find_named(getattr(designer, collection, None), parsed.name)
        if item is None:
            logger.warning("%s not found: %s", parsed.type.capitalize(), parsed.name)
            return None
        return get_nested_value(item, parsed.path)
    if parsed.type == "data":
        if parsed.name in ("current", ""):
            record = _record_at(getattr(designer, "data_payload", None), getattr(designer, "current_record_index", 0))
            return get_nested_value(record, parsed.path)
        cached = _cached_template_data(designer, parsed.name)
        if cached is None:
            logger.warning("Data source not found: %s", parsed.name)
            return None
        record = _record_at(cached.get("data_payload"), cached.get("current_record_index", 0))
        return get_nested_value(record, parsed.path)
    if parsed.type == "state":
        dotted = ".".join((parsed.name, *parsed.path))
        return "{{state." + dotted + "}}"
    return None


def require_address(address: Any) -> ParsedAddress:
    """Like :func:`parse_address` but raises :class:`AddressError` for malformed input."""
    parsed = parse_address(address)
    if parsed is None:
        raise AddressError(f"Invalid address format: {address!r}")
    return parsed


def apply_address_value(address: Any, value: Any, designer: Any) -> None:
    """
    Write ``value`` at ``address`` or raise :class:`AddressError` saying why not.

    Supported writes: element properties, and a template's ``dataIndex`` or
    ``data`` (record selection by display-field value). State writes go
    through the runtime store, not through here.
    """
    parsed = require_address(address)
    if parsed.type == "element":
        _set_element_value(parsed, value, designer)
    elif parsed.type == "template":
        _set_template_value(parsed, value, designer)
    else:
        raise AddressError(f"Setting {parsed.type} values is not supported: {parsed.raw}")


def set_address_value(address: Any, value: Any, designer: Any) -> bool:
    """Non-raising :func:`apply_address_value`. Returns ``True`` when the write was applied."""
    try:
        apply_address_value(address, value, designer)
    except AddressError as exc:
        logger.warning("%s", exc.message)
        return False
    except Exception as exc:
        logger.warning("Failed to set %s: %s", address, exc)
        return False
    return True


def _set_element_value(parsed: ParsedAddress, value: Any, designer: Any) -> None:
    element = find_named(getattr(designer, "elements", None), parsed.name)
    if element is None:
        raise AddressError(f"Element not found: {parsed.name}")
    if not parsed.path and not isinstance(value, Mapping):
        raise AddressError(f"Cannot replace element {parsed.name} with a non-mapping value")
    designer.update_element(element["id"], nested_update(parsed.path, value))


def _as_index(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _set_template_value(parsed: ParsedAddress, value: Any, designer: Any) -> None:
    target = parsed.path[0] if parsed.path else ""
    if target not in ("dataIndex", "data"):
        raise AddressError(f"Setting template property {'.'.join(parsed.path)!r} is not supported")
    template = find_named(getattr(designer, "templates", None), parsed.name)
    if template is None:
        raise AddressError(f"Template not found: {parsed.name}")

    template_id = template.get("id")
    is_current = template_id == getattr(designer, "current_template_id", None)
    if is_current:
        payload = getattr(designer, "data_payload", None)
        display_field = getattr(designer, "data_display_field", None)
    else:
        cached = (getattr(designer, "template_data_cache", None) or {}).get(template_id)
        payload = cached.get("data_payload") if cached else None
        display_field = cached.get("data_display_field") if cached else None
    if not payload:
        raise AddressError(f"No data available for template {parsed.name}")

    if target == "dataIndex":
        index = _as_index(value)
        if index is None or not 0 <= index < len(payload):
            raise AddressError(f"Record index {value!r} out of range for template {parsed.name}")
    else:
        if not display_field:
            raise AddressError(f"Template {parsed.name} has no display field")
        wanted = str(value).lower()
        index = next(
            (i for i, record in enumerate(payload) if str(get_nested_value(record, display_field)).lower() == wanted),
            -1,
        )
        if index < 0:
            raise AddressError(f"Record not found with value: {value!r}")

    if is_current:
        designer.set_current_record_index(index)
    else:
        designer.set_template_record_index(template_id, index)


ELEMENT_PROPERTIES = [
    {"path": "position_x", "label": "X Position", "type": "number"},
    {"path": "position_y", "label": "Y Position", "type": "number"},
    {"path": "width", "label": "Width", "type": "number"},
    {"path": "height", "label": "Height", "type": "number"},
    {"path": "rotation", "label": "Rotation", "type": "number"},
    {"path": "scale_x", "label": "Scale X", "type": "number"},
    {"path": "scale_y", "label": "Scale Y", "type": "number"},
    {"path": "opacity", "label": "Opacity", "type": "number"},
    {"path": "visible", "label": "Visible", "type": "boolean"},
    {"path": "content.text", "label": "Text Content", "type": "string"},
    {"path": "content.src", "label": "Image Source", "type": "string"},
    {"path": "content.url", "label": "Video URL", "type": "string"},
    {"path": "styles.backgroundColor", "label": "Background Color", "type": "color"},
    {"path": "styles.color", "label": "Text Color", "type": "color"},
    {"path": "styles.borderColor", "label": "Border Color", "type": "color"},
    {"path": "styles.borderWidth", "label": "Border Width", "type": "string"},
    {"path": "styles.borderRadius", "label": "Border Radius", "type": "string"},
    {"path": "styles.fontSize", "label": "Font Size", "type": "string"},
    {"path": "styles.fontWeight", "label": "Font Weight", "type": "string"},
    {"path": "styles.fontFamily", "label": "Font Family", "type": "string"},
]

AVAILABLE_ACTIONS = [
    {"name": "playIn", "params": ["templateName", "layerName"], "description": "Play template IN animation"},
    {"name": "playOut", "params": ["layerName"], "description": "Play layer OUT animation"},
    {"name": "setState", "params": ["key", "value"], "description": "Set a state variable"},
    {"name": "navigate", "params": ["templateName"], "description": "Navigate to a template"},
    {"name": "showElement", "params": ["elementName"], "description": "Show an element"},
    {"name": "hideElement", "params": ["elementName"], "description": "Hide an element"},
    {"name": "toggleElement", "params": ["elementName"], "description": "Toggle element visibility"},
    {"name": "log", "params": ["message"], "description": "Log a message"},
    {"name": "delay", "params": ["ms"], "description": "Wait for the given milliseconds"},
]


__all__ = [
    "ADDRESS_TYPES",
    "ParsedAddress",
    "sanitize_name",
    "names_match",
    "find_named",
    "find_named_key",
    "build_element_address",
    "build_template_address",
    "build_layer_address",
    "build_data_address",
    "build_state_address",
    "build_action_address",
    "build_animation_address",
    "build_keyframe_address",
    "parse_address",
    "require_address",
    "is_address",
    "nested_update",
    "resolve_address",
    "apply_address_value",
    "set_address_value",
    "ELEMENT_PROPERTIES",
    "AVAILABLE_ACTIONS",
]
