import pytest

from novagfx.designer import InMemoryDesigner
from novagfx.runtime.conditions import apply_operator, evaluate_condition, evaluate_conditions, resolve_value
from novagfx.runtime.models import InteractionEvent
from novagfx.runtime.store import RuntimeStore


def score_condition(score):
    context = {"state": {"Score": score}}
    return evaluate_condition({"operand": "@Score", "operator": "greaterThan", "comparand": "10"}, context)


def test_address_operand_against_string_comparand():
    assert score_condition(15) is True
    assert score_condition(5) is False
    assert score_condition("abc") is False


def test_condition_aliases_for_authored_documents():
    context = {"state": {"x": 1}}
    assert evaluate_condition({"condition": "state.x", "operator": "equals", "value": 1}, context) is True
    assert evaluate_condition({"source": "state.x", "operator": "equals", "value": "1"}, context) is True
    assert evaluate_condition({"source": "state.x", "operator": "equals", "value": 2, "not": True}, context) is True


def test_compound_conditions():
    context = {"state": {"a": 1, "b": 2}}
    both = {"and": [{"operand": "state.a", "comparand": 1}, {"operand": "state.b", "comparand": 2}]}
    either = {"or": [{"operand": "state.a", "comparand": 9}, {"operand": "state.b", "comparand": 2}]}
    assert evaluate_condition(both, context) is True
    assert evaluate_condition(either, context) is True
    assert evaluate_conditions([both, {"operand": "state.a", "comparand": 3}], context) is False
    assert evaluate_conditions([], context) is True


@pytest.mark.parametrize(
    "operator,operand,comparand,expected",
    [
        ("equals", 1, 1, True),
        ("notEquals", "a", "b", True),
        ("greaterOrEqual", 3, 3, True),
        ("lessThan", "2", 10, True),
        ("lessOrEqual", float("nan"), 1, False),
        ("contains", "hello world", "world", True),
        ("contains", [1, 2], 2, True),
        ("notContains", [1, 2], 3, True),
        ("startsWith", "Nova", "No", True),
        ("endsWith", None, "x", False),
        ("isEmpty", "", None, True),
        ("isEmpty", [], None, True),
        ("isNotEmpty", {"a": 1}, None, True),
        ("isNull", None, None, True),
        ("isNotNull", 0, None, True),
        ("isTrue", True, None, True),
        ("isTrue", 1, None, False),
        ("isFalse", False, None, True),
        ("matches", "abc123", r"\d+$", True),
        ("matches", "abc", "(", False),
        ("in", "b", "a, b, c", True),
        ("in", 2, [1, 2], True),
        ("notIn", "z", ["a"], True),
        ("bogus", 1, 1, False),
    ],
)
def test_apply_operator(operator, operand, comparand, expected):
    assert apply_operator(operator, operand, comparand) is expected


def test_boolean_comparand_is_coerced_from_string():
    context = {"state": {"live": True}}
    assert evaluate_condition({"operand": "state.live", "operator": "equals", "comparand": "true"}, context) is True


def test_failing_condition_counts_as_false():
    bad = {"operand": {"type": "expression", "code": "1 +"}, "operator": "isNotNull"}
    assert evaluate_condition(bad, {}) is False
    assert evaluate_condition("not a condition", {}) is False


def test_resolve_value_sources():
    store = RuntimeStore()
    store.initialize_app({"state": [{"name": "score", "defaultValue": 4}]})
    store.navigate("t2", {"team": "reds"})
    designer = InMemoryDesigner(
        elements=[{"id": "e1", "name": "Title", "position_x": 40, "content": {"text": "Hi"}}],
        data_payload=[{"player": "Ann"}],
    )
    event = InteractionEvent(type="click", element_id="e1", data={"key": "Enter"})
    ctx = store.create_context(designer, event)

    assert resolve_value({"type": "literal", "value": 5}, ctx) == 5
    assert resolve_value({"type": "state", "name": "score"}, ctx) == 4
    assert resolve_value({"type": "data", "path": "current.player"}, ctx) == "Ann"
    assert resolve_value({"type": "element", "elementId": "e1", "property": "x"}, ctx) == 40
    assert resolve_value({"type": "event", "property": "data.key"}, ctx) == "Enter"
    assert resolve_value({"type": "expression", "code": "state.score + 1"}, ctx) == 5
    assert resolve_value({"type": "navigation", "param": "team"}, ctx) == "reds"
    assert resolve_value({"type": "address", "address": "@Title.content.text"}, ctx) == "Hi"
    assert resolve_value("@state.score", ctx) == 4
    assert resolve_value("state.score", ctx) == 4
    assert resolve_value("Score is {{state.score}}", ctx) == "Score is 4"
    assert resolve_value("{{state.score}}", ctx) == 4
    assert resolve_value("plain text", ctx) == "plain text"
    assert resolve_value([1, 2], ctx) == [1, 2]


def test_conditions_read_live_store_state():
    store = RuntimeStore()
    store.initialize_app({"state": [{"name": "count", "defaultValue": 0}]})
    ctx = store.create_context()
    condition = {"operand": "state.count", "operator": "greaterThan", "comparand": 0}
    assert evaluate_condition(condition, ctx) is False
    store.set_state("count", 2)
    assert evaluate_condition(condition, ctx) is True
