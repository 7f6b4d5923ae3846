import asyncio

import pytest

from novagfx.errors import EvaluationError, ScriptSyntaxError
from novagfx.runtime.expressions import (
    NOOP_ACTIONS,
    ScriptScope,
    evaluate_expression,
    execute_script,
    execute_script_async,
)


CONTEXT = {
    "state": {"score": 21, "name": "Ann", "flags": {"live": True}},
    "data": {"items": [{"price": 4}, {"price": 9}, {"price": 12}]},
    "params": {"team": "reds"},
}


def test_arithmetic_and_field_access():
    assert evaluate_expression("state.score * 2", CONTEXT) == 42
    assert evaluate_expression("state['flags']['live']", CONTEXT) is True
    assert evaluate_expression("params.team.toUpperCase()", CONTEXT) == "REDS"
    assert evaluate_expression("'big' if state.score > 10 else 'small'", CONTEXT) == "big"


def test_js_style_conveniences():
    assert evaluate_expression("[1, 2, 3].length", {}) == 3
    assert evaluate_expression("'a,b'.split(',').includes('b')", {}) is True
    assert evaluate_expression("true and not false", {}) is True
    assert evaluate_expression("null", {}) is None
    assert evaluate_expression("Math.round(2.5)", {}) == 3
    assert evaluate_expression("Math.max(1, 5, 3)", {}) == 5
    assert evaluate_expression("(3.14159).toFixed(2)", {}) == "3.14"
    assert evaluate_expression("'Score: ' + 5", {}) == "Score: 5"


def test_helpers_and_lambdas():
    assert evaluate_expression("sum(data.items, 'price')", CONTEXT) == 25
    assert evaluate_expression("max(data.items, 'price')", CONTEXT) == 12
    assert evaluate_expression("count(filter(data.items, lambda i: i.price > 5))", CONTEXT) == 2
    assert evaluate_expression("map(data.items, lambda i: i.price * 2)", CONTEXT) == [8, 18, 24]
    assert evaluate_expression("format(1234.5, 'currency')", {}) == "$1,234.50"
    assert evaluate_expression("[x * x for x in range(4) if x % 2 == 0]", {}) == [0, 4]


def test_f_strings_render_display_values():
    assert evaluate_expression("f'{state.name} has {state.score}'", CONTEXT) == "Ann has 21"
    assert evaluate_expression("f'{null}/{true}'", {}) == "null/true"


def test_missing_names_and_null_reads_raise_evaluation_error():
    with pytest.raises(EvaluationError):
        evaluate_expression("undefined_name + 1", {})
    with pytest.raises(EvaluationError):
        evaluate_expression("state.missing.deeper", CONTEXT)


def test_missing_keys_read_as_null():
    assert evaluate_expression("state.missing", CONTEXT) is None
    assert evaluate_expression("data.items[10]", CONTEXT) is None


def test_syntax_errors_carry_location():
    with pytest.raises(ScriptSyntaxError) as excinfo:
        evaluate_expression("1 +", {})
    assert excinfo.value.line == 1
    assert excinfo.value.diagnostics[0]["code"] == "NGX-1202"


def test_script_mutates_state_view_and_returns():
    scope = ScriptScope(state={"count": 1})
    code = "total = 0\nfor i in range(5):\n    total += i\nstate['count'] = state.count + total\nreturn total"
    assert execute_script(code, scope) == 10
    assert scope.state == {"count": 11}


def test_script_supports_break_continue_and_while():
    code = (
        "out = []\n"
        "n = 0\n"
        "while n < 10:\n"
        "    n += 1\n"
        "    if n % 2:\n"
        "        continue\n"
        "    if n > 6:\n"
        "        break\n"
        "    out.push(n)\n"
        "return out"
    )
    assert execute_script(code, {}) == [2, 4, 6]


def test_locals_from_mapping_context_are_visible():
    assert evaluate_expression("item.price + index", {"item": {"price": 3}, "index": 2}) == 5


def test_async_actions_are_awaited_in_call_order():
    calls = []

    async def remember(value):
        await asyncio.sleep(0)
        calls.append(value)

    actions = {"remember": remember}
    code = "actions.remember('a')\nactions.remember('b')\nreturn 'done'"
    result = asyncio.run(execute_script_async(code, {"actions": actions}))
    assert result == "done"
    assert calls == ["a", "b"]


def test_sync_run_drops_async_actions():
    calls = []

    async def remember(value):
        calls.append(value)

    execute_script("actions.remember('a')", {"actions": {"remember": remember}})
    assert calls == []


def test_default_scope_shares_the_read_only_noop_actions():
    first, second = ScriptScope(), ScriptScope()
    assert first.actions is NOOP_ACTIONS
    assert second.actions is NOOP_ACTIONS
    assert first.state is not second.state
    assert execute_script("actions.log('hi')\nreturn 1", first) == 1
    with pytest.raises(TypeError):
        NOOP_ACTIONS["log"] = print
