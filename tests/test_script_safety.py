import asyncio

import pytest

from novagfx.config import InteractiveConfig
from novagfx.errors import (
    EvaluationError,
    ExpressionTimeoutError,
    ForbiddenSyntaxError,
    LoopIterationError,
    ScriptTimeoutError,
)
from novagfx.runtime.expressions import (
    collect_diagnostics,
    evaluate_expression,
    execute_script,
    execute_script_async,
    validate_expression,
)


@pytest.mark.parametrize(
    "code",
    [
        "__import__('os')",
        "open('/etc/passwd')",
        "eval('1')",
        "state.__class__",
        "window.location",
        "getattr(state, 'x')",
        "'{0.__class__}'.format(state)",
    ],
)
def test_forbidden_expressions_are_rejected(code):
    with pytest.raises(ForbiddenSyntaxError):
        validate_expression(code)


@pytest.mark.parametrize(
    "code",
    [
        "import os",
        "from os import path",
        "def f():\n    return 1",
        "class A:\n    pass",
        "try:\n    x = 1\nexcept Exception:\n    pass",
        "with x:\n    pass",
    ],
)
def test_forbidden_statements_are_rejected(code):
    with pytest.raises(ForbiddenSyntaxError):
        validate_expression(code, "exec")


def test_collect_diagnostics_reports_forbidden_code():
    diagnostics = collect_diagnostics("import os", "exec")
    assert len(diagnostics) == 1
    assert diagnostics[0]["code"] == "NGX-1203"
    assert diagnostics[0]["severity"] == "error"
    assert collect_diagnostics("state.x + 1") == []


def test_reserved_names_cannot_be_rebound():
    with pytest.raises(EvaluationError):
        execute_script("state = {}", {})
    with pytest.raises(EvaluationError):
        execute_script("len = 3", {})


def test_infinite_while_hits_loop_ceiling():
    with pytest.raises(LoopIterationError) as excinfo:
        execute_script("while True:\n    pass", {}, max_iterations=50)
    assert excinfo.value.limit == 50


def test_loop_ceiling_comes_from_config():
    config = InteractiveConfig(max_loop_iterations=25)
    with pytest.raises(LoopIterationError):
        execute_script("n = 0\nwhile True:\n    n += 1", {}, config=config)


def test_comprehension_ticks_loop_guard():
    with pytest.raises(LoopIterationError):
        evaluate_expression("[x for x in range(1000)]", {}, max_iterations=10)


def test_non_terminating_expression_times_out():
    with pytest.raises(ExpressionTimeoutError):
        evaluate_expression("[x for x in range(100000000)]", {}, timeout_ms=20, max_iterations=10**9)


def test_script_timeout_is_script_specific():
    with pytest.raises(ScriptTimeoutError):
        execute_script("n = 0\nwhile True:\n    n += 1", {}, timeout_ms=20, max_iterations=10**9)


def test_async_script_shares_deadline_with_pending_actions():
    async def slow():
        await asyncio.sleep(1)

    with pytest.raises(ScriptTimeoutError):
        asyncio.run(execute_script_async("actions.slow()", {"actions": {"slow": slow}}, timeout_ms=50))


def test_unbounded_recursion_is_stopped():
    with pytest.raises(EvaluationError):
        evaluate_expression("(lambda f: f(f))(lambda f: f(f))", {})


def test_huge_sequences_are_rejected():
    with pytest.raises(EvaluationError):
        evaluate_expression("'x' * 10000000", {})
    with pytest.raises(EvaluationError):
        evaluate_expression("2 ** 100000", {})


def test_chained_power_is_rejected_by_result_size():
    with pytest.raises(EvaluationError):
        evaluate_expression("(7 ** 9000) ** 2000 > 0", {}, timeout_ms=50)
    with pytest.raises(EvaluationError):
        evaluate_expression("Math.pow(10, 100000)", {})
    assert evaluate_expression("2 ** 64", {}) == 18446744073709551616
    assert evaluate_expression("2 ** -1", {}) == 0.5


def test_float_power_overflow_is_an_evaluation_error():
    with pytest.raises(EvaluationError):
        evaluate_expression("10.0 ** 400", {})


def test_huge_int_product_is_rejected():
    with pytest.raises(EvaluationError):
        execute_script("n = 3 ** 40000\nreturn n * n", {})


def test_nested_repetition_counts_inner_items():
    with pytest.raises(EvaluationError):
        evaluate_expression("len(str([[0] * 1000000] * 60))", {}, timeout_ms=50)
    assert evaluate_expression("len([[0] * 3] * 4)", {}) == 4


def test_string_conversion_of_large_containers_is_rejected():
    code = "rows = [[0] * 500000 for _ in range(4)]\nreturn {}"
    for tail in ("str(rows)", "f'{rows}'", "f'{rows!r}'", "'-'.join(rows)", "'' + rows"):
        with pytest.raises(EvaluationError):
            execute_script(code.format(tail), {}, timeout_ms=2000)


def test_decimal_places_are_capped():
    assert evaluate_expression("(3.14159).toFixed(2)", {}) == "3.14"
    with pytest.raises(EvaluationError):
        evaluate_expression("(1.5).toFixed(1000000)", {})
    with pytest.raises(EvaluationError):
        evaluate_expression("format(1.5, 'number', {'decimals': 1000000})", {})
    assert evaluate_expression("format(1.5, 'number', {'decimals': 1})", {}) == "1.5"
