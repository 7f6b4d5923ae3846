"""
Value resolution and condition evaluation shared by the action executor and the node graph.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from ..address import find_named, find_named_key, parse_address, resolve_address
from .expressions import ScriptScope, evaluate_expression
from .helpers import get_nested_value, stringify, to_number

logger = logging.getLogger("novagfx.runtime")

VALUE_SOURCE_TYPES = ("literal", "state", "data", "element", "event", "expression", "navigation", "address")
FIELD_ROOTS = ("state", "data", "event", "params", "element")

CONDITION_OPERATORS = (
    "equals",
    "notEquals",
    "greaterThan",
    "lessThan",
    "greaterOrEqual",
    "lessOrEqual",
    "contains",
    "notContains",
    "startsWith",
    "endsWith",
    "isEmpty",
    "isNotEmpty",
    "isNull",
    "isNotNull",
    "isTrue",
    "isFalse",
    "matches",
    "in",
    "notIn",
)

ELEMENT_PROPERTY_ALIASES = {
    "x": "position_x",
    "y": "position_y",
    "positionX": "position_x",
    "positionY": "position_y",
    "scaleX": "scale_x",
    "scaleY": "scale_y",
    "type": "element_type",
}

_PLACEHOLDER_RE = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")


@dataclass
class Condition:
    operand: Any = None
    operator: str = "equals"
    comparand: Any = None
    negate: bool = False
    all_of: list["Condition"] = field(default_factory=list)
    any_of: list["Condition"] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Condition":
        """
        Accepts ``{operand, operator, comparand}`` plus the aliases used by
        authored documents: ``source``/``condition`` for the operand, ``value``
        for the comparand, and ``not``/``and``/``or`` for compounds.
        """
        operand = raw.get("operand", raw.get("source", raw.get("condition")))
        comparand = raw.get("comparand", raw.get("value"))
        return cls(
            operand=operand,
            operator=str(raw.get("operator") or "equals"),
            comparand=comparand,
            negate=bool(raw.get("not", False)),
            all_of=[cls.coerce(item) for item in raw.get("and") or ()],
            any_of=[cls.coerce(item) for item in raw.get("or") or ()],
        )

    @classmethod
    def coerce(cls, value: Any) -> "Condition":
        if isinstance(value, Condition):
            return value
        if isinstance(value, Mapping):
            return cls.from_dict(value)
        raise TypeError(f"Cannot build a condition from {type(value).__name__}")


def _scope(context: Any) -> ScriptScope:
    return ScriptScope.coerce(context)


def _designer(context: Any) -> Any:
    return getattr(context, "designer", None)


def _field_path(text: str, scope: ScriptScope) -> Any:
    head, _, rest = text.partition(".")
    return get_nested_value(getattr(scope, head), rest)


def _state_key_for(state: Any, name: str) -> Optional[str]:
    if not isinstance(state, Mapping):
        return None
    return find_named_key(state, name)


def resolve_address_value(address: str, context: Any) -> Any:
    """
    Resolve an ``@`` address in the context of a running app.

    State addresses read the live state. Element-style addresses that do not
    name an element fall back to a state variable with a matching name, so
    ``@Score`` reads the ``Score`` variable when no element is called Score.
    """
    parsed = parse_address(address)
    if parsed is None:
        return None
    scope = _scope(context)
    if parsed.type == "state":
        return get_nested_value(scope.state, (parsed.name, *parsed.path))
    designer = _designer(context)
    if parsed.type == "element" and find_named(getattr(designer, "elements", None), parsed.name) is None:
        key = _state_key_for(scope.state, parsed.name)
        if key is not None:
            return get_nested_value(scope.state[key], parsed.path)
    return resolve_address(address, designer)


def _resolve_placeholder(expr: str, scope: ScriptScope) -> Any:
    head = expr.partition(".")[0]
    if head in FIELD_ROOTS:
        return _field_path(expr, scope)
    return None


def substitute_placeholders(text: str, context: Any) -> Any:
    """Replace ``{{state.x}}`` tokens; a string that is exactly one token keeps the value's type."""
    scope = _scope(context)
    whole = _PLACEHOLDER_RE.fullmatch(text.strip())
    if whole is not None:
        return _resolve_placeholder(whole.group(1), scope)
    return _PLACEHOLDER_RE.sub(lambda match: stringify(_resolve_placeholder(match.group(1), scope)), text)


def get_element_property(designer: Any, element_id: Any, prop: str | None) -> Any:
    elements = getattr(designer, "elements", None) or []
    element = next(
        (item for item in elements if isinstance(item, Mapping) and element_id in (item.get("id"), item.get("element_id"))),
        None,
    )
    if element is None and isinstance(element_id, str):
        element = find_named(elements, element_id)
    if element is None:
        return None
    if not prop:
        return element
    if "." in prop:
        return get_nested_value(element, prop)
    return element.get(ELEMENT_PROPERTY_ALIASES.get(prop, prop))


def _resolve_value_source(source: Mapping[str, Any], context: Any) -> Any:
    kind = source.get("type")
    scope = _scope(context)
    if kind == "literal":
        return source.get("value")
    if kind == "state":
        return get_nested_value(scope.state, source.get("name") or source.get("path"))
    if kind == "data":
        return get_nested_value(scope.data, source.get("path"))
    if kind == "element":
        element = scope.element
        prop = source.get("property")
        if isinstance(element, Mapping) and "properties" in element and source.get("elementId") == element.get("id"):
            return get_nested_value(element["properties"], prop)
        return get_element_property(_designer(context), source.get("elementId"), prop)
    if kind == "event":
        return get_nested_value(scope.event, source.get("property"))
    if kind == "expression":
        return evaluate_expression(source.get("code", ""), context)
    if kind == "navigation":
        return get_nested_value(scope.params, source.get("param"))
    if kind == "address":
        return resolve_address_value(source.get("address", ""), context)
    return None


def resolve_value(source: Any, context: Any) -> Any:
    """
    Single entry point for turning an authored operand into a runtime value.

    - ``None``, numbers, booleans and lists are returned as is
    - ``"@..."`` strings are addresses
    - ``"state.x"``, ``"data.x"``, ``"event.x"``, ``"params.x"``, ``"element.x"`` are field paths
    - ``"{{state.x}}"`` placeholders are substituted
    - mappings with a known ``type`` are value sources
    - anything else is a literal
    """
    if source is None or isinstance(source, (bool, int, float, list, tuple)):
        return source
    if isinstance(source, str):
        if source.startswith("@") and len(source) > 1:
            return resolve_address_value(source, context)
        if "{{" in source:
            return substitute_placeholders(source, context)
        head, dot, _ = source.partition(".")
        if dot and head in FIELD_ROOTS:
            return _field_path(source, _scope(context))
        return source
    if isinstance(source, Mapping) and source.get("type") in VALUE_SOURCE_TYPES:
        return _resolve_value_source(source, context)
    return source


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _coerce_comparand(operand: Any, comparand: Any) -> Any:
    if not isinstance(comparand, str):
        return comparand
    text = comparand.strip()
    if isinstance(operand, bool):
        if text.lower() in ("true", "false"):
            return text.lower() == "true"
        return comparand
    if _is_number(operand):
        number = to_number(text) if text else math.nan
        return comparand if math.isnan(number) else number
    return comparand


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, tuple, set, Mapping)):
        return len(value) == 0
    return False


def _contains(container: Any, item: Any) -> bool:
    if isinstance(container, str):
        return stringify(item) in container
    if isinstance(container, (list, tuple, set)):
        return item in container
    if isinstance(container, Mapping):
        return item in container
    return False


def _member_of(item: Any, collection: Any) -> bool:
    if isinstance(collection, (list, tuple, set)):
        return item in collection
    if isinstance(collection, str):
        return stringify(item) in [part.strip() for part in collection.split(",")]
    return False


def _matches(value: Any, pattern: Any) -> bool:
    if value is None:
        return False
    try:
        return re.search(str(pattern), stringify(value)) is not None
    except re.error:
        return False


def apply_operator(operator: str, operand: Any, comparand: Any) -> bool:
    if operator == "equals":
        return operand == comparand
    if operator == "notEquals":
        return operand != comparand
    if operator in ("greaterThan", "lessThan", "greaterOrEqual", "lessOrEqual"):
        left, right = to_number(operand), to_number(comparand)
        if operator == "greaterThan":
            return left > right
        if operator == "lessThan":
            return left < right
        if operator == "greaterOrEqual":
            return left >= right
        return left <= right
    if operator == "contains":
        return _contains(operand, comparand)
    if operator == "notContains":
        return not _contains(operand, comparand)
    if operator == "startsWith":
        return operand is not None and stringify(operand).startswith(stringify(comparand))
    if operator == "endsWith":
        return operand is not None and stringify(operand).endswith(stringify(comparand))
    if operator == "isEmpty":
        return _is_empty(operand)
    if operator == "isNotEmpty":
        return not _is_empty(operand)
    if operator == "isNull":
        return operand is None
    if operator == "isNotNull":
        return operand is not None
    if operator == "isTrue":
        return operand is True
    if operator == "isFalse":
        return operand is False
    if operator == "matches":
        return _matches(operand, comparand)
    if operator == "in":
        return _member_of(operand, comparand)
    if operator == "notIn":
        return not _member_of(operand, comparand)
    logger.warning("Unknown condition operator: %s", operator)
    return False


def _evaluate(condition: Condition, context: Any) -> bool:
    if condition.all_of:
        result = all(_evaluate(item, context) for item in condition.all_of)
    elif condition.any_of:
        result = any(_evaluate(item, context) for item in condition.any_of)
    else:
        operand = resolve_value(condition.operand, context)
        comparand = _coerce_comparand(operand, resolve_value(condition.comparand, context))
        result = apply_operator(condition.operator, operand, comparand)
    return not result if condition.negate else result


def evaluate_condition(condition: Any, context: Any) -> bool:
    """Evaluate a condition; failures are logged and count as ``False``."""
    try:
        return _evaluate(Condition.coerce(condition), context)
    except Exception as exc:
        logger.warning("Condition evaluation failed (%r): %s", condition, exc)
        return False


def evaluate_conditions(conditions: Any, context: Any) -> bool:
    """All conditions must hold; an empty list holds."""
    return all(evaluate_condition(item, context) for item in conditions or ())


__all__ = [
    "VALUE_SOURCE_TYPES",
    "CONDITION_OPERATORS",
    "ELEMENT_PROPERTY_ALIASES",
    "Condition",
    "resolve_value",
    "resolve_address_value",
    "substitute_placeholders",
    "get_element_property",
    "apply_operator",
    "evaluate_condition",
    "evaluate_conditions",
]
