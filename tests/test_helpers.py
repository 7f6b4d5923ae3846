import math

from novagfx.runtime.helpers import (
    avg_values,
    count_items,
    format_value,
    get_nested_value,
    group_by,
    max_value,
    min_value,
    set_nested_value,
    sort_items,
    split_path,
    stringify,
    sum_values,
    to_number,
)


ROWS = [
    {"name": "Cid", "score": 7, "team": {"id": "b"}},
    {"name": "ann", "score": 12, "team": {"id": "a"}},
    {"name": "Bob", "score": None, "team": {"id": "a"}},
]


def test_split_path_handles_brackets():
    assert split_path("a.b[0].c") == ["a", "b", "0", "c"]
    assert split_path(None) == []
    assert split_path(("a", 1)) == ["a", "1"]


def test_get_nested_value_is_null_safe():
    obj = {"a": {"b": [{"c": 1}]}}
    assert get_nested_value(obj, "a.b[0].c") == 1
    assert get_nested_value(obj, "a.b.length") == 1
    assert get_nested_value(obj, "a.x.y") is None
    assert get_nested_value(obj, "") is obj


def test_set_nested_value_is_copy_on_write():
    original = {"a": {"b": 1}, "keep": [1]}
    updated = set_nested_value(original, "a.c", 2)
    assert original == {"a": {"b": 1}, "keep": [1]}
    assert updated == {"a": {"b": 1, "c": 2}, "keep": [1]}
    assert updated["keep"] is original["keep"]
    assert set_nested_value({}, "list.1", "x") == {"list": [None, "x"]}


def test_to_number_is_loose():
    assert to_number("15") == 15.0
    assert to_number(True) == 1.0
    assert to_number("") == 0.0
    assert math.isnan(to_number("abc"))
    assert math.isnan(to_number(None))


def test_aggregates_skip_non_numbers():
    assert sum_values(ROWS, "score") == 19
    assert min_value(ROWS, "score") == 7
    assert max_value(ROWS, "score") == 12
    assert avg_values([2, 4]) == 3
    assert avg_values([]) == 0
    assert count_items(ROWS) == 3
    assert count_items(ROWS, lambda row: row["team"]["id"] == "a") == 2
    assert count_items("not a list") == 0


def test_sort_items_orders_numbers_strings_then_missing():
    assert [row["name"] for row in sort_items(ROWS, "name")] == ["ann", "Bob", "Cid"]
    assert [row["name"] for row in sort_items(ROWS, "score")] == ["Cid", "ann", "Bob"]
    assert [row["name"] for row in sort_items(ROWS, "score", "desc")][0] == "Bob"


def test_group_by_nested_key():
    groups = group_by(ROWS, "team.id")
    assert sorted(groups) == ["a", "b"]
    assert len(groups["a"]) == 2


def test_format_value_variants():
    assert format_value(1234.5, "currency") == "$1,234.50"
    assert format_value(1234.5, "currency", {"currency": "EUR"}) == "€1,234.50"
    assert format_value(1234.5, "number") == "1,234.5"
    assert format_value(2, "number", {"decimals": 2}) == "2.00"
    assert format_value(0.256, "percent") == "26%"
    assert format_value("abc", "currency") == "NaN"
    assert format_value("2024-03-05T14:07:09Z", "date") == "Mar 5, 2024"
    assert format_value("2024-03-05T14:07:09Z", "time") == "2:07 PM"
    assert format_value("not a date", "date") == "Invalid Date"
    assert format_value("hello world", "capitalize") == "Hello World"
    assert format_value("Hi", "uppercase") == "HI"


def test_stringify_uses_display_literals():
    assert stringify(None) == "null"
    assert stringify(True) == "true"
    assert stringify(3.0) == "3"
    assert stringify(2.5) == "2.5"
