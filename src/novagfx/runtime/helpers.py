"""
Data helpers exposed to user expressions and used by the action executor.
"""

from __future__ import annotations

import copy
import math
import re
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Sequence

_PATH_SPLIT_RE = re.compile(r"[.\[\]]+")
_CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£", "JPY": "¥", "CAD": "CA$", "AUD": "A$", "CHF": "CHF "}


def split_path(path: str | Sequence[Any] | None) -> list[str]:
    if path is None:
        return []
    if isinstance(path, str):
        return [part for part in _PATH_SPLIT_RE.split(path) if part]
    return [str(part) for part in path if str(part)]


def _step(current: Any, key: str) -> Any:
    if isinstance(current, Mapping):
        return current.get(key)
    if isinstance(current, (list, tuple)):
        if key.lstrip("-").isdigit():
            index = int(key)
            if -len(current) <= index < len(current):
                return current[index]
            return None
        if key == "length":
            return len(current)
        return None
    if isinstance(current, str) and key == "length":
        return len(current)
    return None


def get_nested_value(obj: Any, path: str | Sequence[Any] | None) -> Any:
    """Null-safe read of ``a.b[0].c`` (or a sequence of keys). An empty path returns ``obj``."""
    current = obj
    for part in split_path(path):
        if current is None:
            return None
        current = _step(current, part)
    return current


def _is_index(key: str) -> bool:
    return key.isdigit()


def _assign(container: Any, key: str, value: Any) -> Any:
    if isinstance(container, list) and _is_index(key):
        index = int(key)
        if index >= len(container):
            container.extend([None] * (index + 1 - len(container)))
        container[index] = value
        return container
    if not isinstance(container, dict):
        container = {}
    container[key] = value
    return container


def set_nested_value(obj: Any, path: str | Sequence[Any], value: Any) -> Any:
    """
    Copy-on-write nested assignment.

    Returns a new root with ``value`` at ``path``; ``obj`` is left untouched.
    Missing intermediates become lists when the following key is numeric.
    """
    parts = split_path(path)
    if not parts:
        return value

    def _write(node: Any, index: int) -> Any:
        key = parts[index]
        clone = copy.copy(node) if isinstance(node, (dict, list)) else {}
        if index == len(parts) - 1:
            return _assign(clone, key, value)
        child = _step(clone, key) if isinstance(clone, (dict, list)) else None
        if not isinstance(child, (dict, list)):
            child = [] if _is_index(parts[index + 1]) else {}
        return _assign(clone, key, _write(child, index + 1))

    return _write(obj if obj is not None else {}, 0)


def to_number(value: Any) -> float:
    """Loose numeric coercion; anything non-numeric becomes NaN."""
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            return math.nan
    return math.nan


def as_list(items: Any) -> list[Any] | None:
    """Materialize list-like input; strings, mappings and scalars are not lists."""
    if isinstance(items, list):
        return items
    if items is None or isinstance(items, (str, bytes, Mapping)) or not hasattr(items, "__iter__"):
        return None
    return list(items)


def _field_values(items: Any, field: str | None) -> list[Any]:
    return [get_nested_value(item, field) if field else item for item in as_list(items) or ()]


def _numbers(items: Any, field: str | None) -> list[float]:
    out: list[float] = []
    for value in _field_values(items, field):
        number = to_number(value)
        if not math.isnan(number):
            out.append(number)
    return out


def _tidy(number: float) -> int | float:
    return int(number) if isinstance(number, float) and number.is_integer() else number


def sum_values(items: Any, field: str | None = None) -> int | float:
    return _tidy(math.fsum(_numbers(items, field)))


def avg_values(items: Any, field: str | None = None) -> int | float:
    values = as_list(items)
    if not values:
        return 0
    return _tidy(math.fsum(_numbers(values, field)) / len(values))


def min_value(items: Any, field: str | None = None) -> int | float:
    numbers = _numbers(items, field)
    return _tidy(min(numbers)) if numbers else 0


def max_value(items: Any, field: str | None = None) -> int | float:
    numbers = _numbers(items, field)
    return _tidy(max(numbers)) if numbers else 0


def count_items(items: Any, predicate: Callable[[Any], Any] | None = None) -> int:
    values = as_list(items)
    if values is None:
        return 0
    if predicate is None:
        return len(values)
    return sum(1 for item in values if predicate(item))


def filter_items(items: Any, predicate: Callable[..., Any]) -> list[Any]:
    return [item for item in as_list(items) or () if predicate(item)]


def map_items(items: Any, mapper: Callable[..., Any]) -> list[Any]:
    return [mapper(item) for item in as_list(items) or ()]


def find_item(items: Any, predicate: Callable[..., Any]) -> Any:
    for item in as_list(items) or ():
        if predicate(item):
            return item
    return None


def sort_items(items: Any, key: str | None = None, direction: str = "asc") -> list[Any]:
    values = as_list(items)
    if values is None:
        return []

    def _sort_key(item: Any) -> tuple:
        value = get_nested_value(item, key) if key else item
        if value is None:
            return (2, 0, "")
        if isinstance(value, str):
            return (1, 0, value.lower())
        number = to_number(value)
        if math.isnan(number):
            return (2, 0, str(value))
        return (0, number, "")

    return sorted(values, key=_sort_key, reverse=str(direction).lower() == "desc")


def group_by(items: Any, key: str) -> dict[str, list[Any]]:
    groups: dict[str, list[Any]] = {}
    for item in as_list(items) or ():
        value = get_nested_value(item, key)
        groups.setdefault("undefined" if value is None else str(value), []).append(item)
    return groups


def _to_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


def _format_date(moment: datetime, style: str) -> str:
    if style == "short":
        return f"{moment.month}/{moment.day}/{moment.strftime('%y')}"
    if style == "long":
        return f"{moment.strftime('%B')} {moment.day}, {moment.year}"
    if style == "full":
        return f"{moment.strftime('%A, %B')} {moment.day}, {moment.year}"
    return f"{moment.strftime('%b')} {moment.day}, {moment.year}"


def _format_time(moment: datetime, style: str) -> str:
    hour = moment.hour % 12 or 12
    suffix = "AM" if moment.hour < 12 else "PM"
    if style == "short":
        return f"{hour}:{moment.minute:02d} {suffix}"
    return f"{hour}:{moment.minute:02d}:{moment.second:02d} {suffix}"


def format_value(value: Any, fmt: str, options: Mapping[str, Any] | None = None) -> str:
    """Render ``value`` as currency, number, percent, date/time or a case transform."""
    opts = dict(options or {})
    if fmt in ("currency", "number", "percent"):
        number = to_number(value)
        if math.isnan(number):
            return "NaN"
        if fmt == "currency":
            code = str(opts.get("currency") or "USD").upper()
            symbol = _CURRENCY_SYMBOLS.get(code, f"{code} ")
            decimals = int(opts.get("decimals", 0 if code == "JPY" else 2))
            sign = "-" if number < 0 else ""
            return f"{sign}{symbol}{abs(number):,.{decimals}f}"
        if fmt == "number":
            decimals = opts.get("decimals")
            if decimals is None:
                text = f"{number:,.2f}".rstrip("0").rstrip(".")
                return text
            return f"{number:,.{int(decimals)}f}"
        decimals = int(opts.get("decimals", 0))
        return f"{number * 100:,.{decimals}f}%"
    if fmt in ("date", "time", "datetime"):
        moment = _to_datetime(value)
        if moment is None:
            return "Invalid Date"
        if fmt == "date":
            return _format_date(moment, str(opts.get("dateStyle", "medium")))
        if fmt == "time":
            return _format_time(moment, str(opts.get("timeStyle", "short")))
        return (
            f"{_format_date(moment, str(opts.get('dateStyle', 'medium')))}, "
            f"{_format_time(moment, str(opts.get('timeStyle', 'short')))}"
        )
    text = stringify(value)
    if fmt == "uppercase":
        return text.upper()
    if fmt == "lowercase":
        return text.lower()
    if fmt == "capitalize":
        return re.sub(r"\b\w", lambda m: m.group(0).upper(), text)
    return text


def stringify(value: Any) -> str:
    """Render a runtime value for display (``true``/``false``/``null`` like the editor shows)."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


__all__ = [
    "split_path",
    "get_nested_value",
    "set_nested_value",
    "to_number",
    "as_list",
    "sum_values",
    "avg_values",
    "min_value",
    "max_value",
    "count_items",
    "filter_items",
    "map_items",
    "find_item",
    "sort_items",
    "group_by",
    "format_value",
    "stringify",
]
