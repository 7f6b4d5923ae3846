import asyncio

from novagfx.actions import ACTION_HANDLERS, ACTION_KINDS, execute_actions
from novagfx.config import InteractiveConfig
from novagfx.designer import InMemoryDesigner
from novagfx.observability.metrics import MetricsRegistry
from novagfx.runtime.models import InteractionEvent
from novagfx.runtime.store import RuntimeStore


RECORDS = [
    {"player": "Ann", "team": "b", "score": 7},
    {"player": "Bob", "team": "a", "score": 3},
    {"player": "Cid", "team": "a", "score": 9},
]


def make_store(state=None, config=None, metrics=None, **app):
    store = RuntimeStore(config, metrics=metrics or MetricsRegistry())
    variables = [{"name": key, "defaultValue": value} for key, value in (state or {}).items()]
    store.initialize_app({"state": variables, "navigation": {"initialTemplateId": "t1"}, **app})
    store.enable_interactive_mode()
    return store


def make_designer():
    return InMemoryDesigner(
        elements=[
            {"id": "e1", "name": "Title", "visible": True, "content": {"text": "Old"}},
            {"id": "e2", "name": "Logo", "visible": False},
        ],
        templates=[{"id": "t1", "name": "Lower Third", "layer_id": "L1"}],
        layers=[{"id": "L1", "name": "Main"}],
        data_payload=[dict(record) for record in RECORDS],
        current_template_id="t1",
    )


def run(store, designer, actions, **collaborators):
    event = InteractionEvent(type="click", element_id="e1")
    ctx = store.create_context(designer, event, **collaborators)
    return asyncio.run(execute_actions(actions, event, ctx))


def test_handler_table_covers_every_action_kind():
    assert set(ACTION_HANDLERS) == set(ACTION_KINDS)


def test_failing_middle_action_does_not_stop_later_actions():
    store = make_store()
    designer = make_designer()
    result = run(
        store,
        designer,
        [
            {"type": "setState", "target": {"name": "a", "value": 1}},
            {"type": "setElementProperty", "target": {"elementId": "Missing", "property": "x", "value": 1}},
            {"type": "setState", "target": {"name": "b", "value": 2}},
        ],
    )
    assert [item.success for item in result.results] == [True, False, True]
    assert len(result.failures) == 1
    assert result.failures[0].error_code == "NGX-1301"
    assert store.get_state("a") == 1
    assert store.get_state("b") == 2
    assert any("setElementProperty failed" in message for message in store.logs.messages())


def test_middle_action_with_unknown_address_does_not_stop_later_actions():
    store = make_store()
    designer = make_designer()
    result = run(
        store,
        designer,
        [
            {"type": "setState", "name": "a", "value": 1},
            {"type": "setState", "name": "@Missing.content.text", "value": 1},
            {"type": "setState", "name": "b", "value": 2},
        ],
    )
    assert [item.success for item in result.results] == [True, False, True]
    assert result.failures[0].error_code == "NGX-1101"
    assert result.failures[0].error_message == "Element not found: Missing"
    assert store.get_state("a") == 1
    assert store.get_state("b") == 2
    assert "Missing" not in store.state
    assert designer.get_element("e1")["content"] == {"text": "Old"}


def test_unknown_action_type_is_reported_and_skipped_over():
    store = make_store()
    result = run(store, None, [{"type": "teleport"}, {"type": "setState", "name": "x", "value": 1}])
    assert result.results[0].success is False
    assert result.results[0].error_message == "Unknown action type"
    assert store.get_state("x") == 1


def test_disabled_and_gated_actions_are_skipped():
    store = make_store({"count": 0})
    result = run(
        store,
        None,
        [
            {"type": "setState", "name": "a", "value": 1, "enabled": False},
            {
                "type": "setState",
                "name": "b",
                "value": 1,
                "conditions": [{"operand": "state.count", "operator": "greaterThan", "comparand": 0}],
            },
            {"type": "setState", "name": "c", "value": 1},
        ],
    )
    assert [item.skipped for item in result.results] == [True, True, False]
    assert result.ok
    assert store.get_state("a") is None
    assert store.get_state("b") is None
    assert store.get_state("c") == 1


def test_action_delay_and_wait_go_through_context_delay():
    waits = []

    async def fake_delay(ms):
        waits.append(ms)

    store = make_store()
    run(
        store,
        None,
        [{"type": "setState", "name": "x", "value": 1, "delay": 100}, {"type": "wait", "duration": 250}],
        delay=fake_delay,
    )
    assert waits == [100.0, 250.0]


def test_set_state_resolves_values_and_addresses():
    store = make_store({"count": 4})
    designer = make_designer()
    run(
        store,
        designer,
        [
            {"type": "setState", "name": "copy", "value": "{{state.count}}"},
            {"type": "setState", "name": "label", "value": "Count: {{state.count}}"},
            {"type": "setState", "name": "@Title.content.text", "value": "Hi"},
            {"type": "setState", "name": "profile.name", "value": "Ann"},
        ],
    )
    assert store.get_state("copy") == 4
    assert store.get_state("label") == "Count: 4"
    assert designer.get_element("e1")["content"]["text"] == "Hi"
    assert store.get_state("profile") == {"name": "Ann"}


def test_numeric_state_actions():
    store = make_store({"count": 1, "live": False, "label": "abc"})
    result = run(
        store,
        None,
        [
            {"type": "incrementState", "name": "count", "amount": 2},
            {"type": "decrementState", "name": "count"},
            {"type": "toggleState", "name": "live"},
            {"type": "incrementState", "name": "label"},
        ],
    )
    assert store.get_state("count") == 2
    assert store.get_state("live") is True
    assert [item.success for item in result.results] == [True, True, True, False]


def test_reset_state_uses_app_defaults():
    store = make_store({"count": 5})
    store.set_state("count", 9)
    run(store, None, [{"type": "resetState", "name": "count"}])
    assert store.get_state("count") == 5


def test_filter_sort_and_aggregate_data():
    store = make_store()
    result = run(
        store,
        make_designer(),
        [
            {
                "type": "filterData",
                "dataSource": "records",
                "conditions": [{"field": "score", "operator": "greaterThan", "value": 5}],
                "outputTo": "high",
            },
            {
                "type": "sortData",
                "dataSource": "records",
                "sortBy": [{"field": "team"}, {"field": "score", "direction": "desc"}],
                "outputTo": "ordered",
            },
            {"type": "aggregateData", "dataSource": "records", "operation": "sum", "field": "score", "outputTo": "total"},
            {"type": "aggregateData", "dataSource": "state.high", "operation": "count", "outputTo": "highCount"},
            {"type": "aggregateData", "dataSource": "records", "operation": "avg", "field": "score"},
        ],
    )
    assert [row["player"] for row in store.get_state("high")] == ["Ann", "Cid"]
    assert [row["player"] for row in store.get_state("ordered")] == ["Cid", "Bob", "Ann"]
    assert store.get_state("total") == 19
    assert store.get_state("highCount") == 2
    assert result.results[-1].success is False


def test_transform_data_exposes_source():
    store = make_store()
    run(
        store,
        make_designer(),
        [
            {
                "type": "transformData",
                "dataSource": "records",
                "expression": "map(source, lambda r: r.player)",
                "outputTo": "names",
            }
        ],
    )
    assert store.get_state("names") == ["Ann", "Bob", "Cid"]


def test_fetch_data_runs_success_and_error_branches():
    requests = []

    async def fetch(url, options):
        requests.append((url, options["method"]))
        if "broken" in url:
            raise RuntimeError("boom")
        return [{"id": 1}]

    store = make_store()
    result = run(
        store,
        None,
        [
            {"type": "fetchData", "url": "https://api.test/items", "outputTo": "remote", "onSuccess": [{"type": "log", "message": "loaded"}]},
            {"type": "fetchData", "url": "https://api.test/broken", "onError": [{"type": "setState", "name": "failed", "value": True}]},
        ],
        fetch_data=fetch,
    )
    assert requests == [("https://api.test/items", "GET"), ("https://api.test/broken", "GET")]
    assert store.get_state("remote") == [{"id": 1}]
    assert store.get_state("failed") is True
    assert [item.success for item in result.results] == [True, False]
    assert "loaded" in store.logs.messages()


def test_fetch_without_fetcher_fails():
    store = make_store()
    result = run(store, None, [{"type": "fetchData", "url": "https://api.test"}])
    assert result.ok is False


def test_record_navigation_is_bounded_by_payload():
    store = make_store()
    designer = make_designer()
    result = run(
        store,
        designer,
        [
            {"type": "nextRecord"},
            {"type": "nextRecord"},
            {"type": "nextRecord"},
            {"type": "previousRecord"},
            {"type": "goToRecord", "index": 0},
            {"type": "goToRecord", "index": 5},
        ],
    )
    assert [item.output for item in result.results[:5]] == [1, 2, 2, 1, 0]
    assert result.results[5].success is False
    assert designer.current_record_index == 0


def test_record_navigation_without_payload_uses_state():
    store = make_store()
    run(store, None, [{"type": "nextRecord"}, {"type": "nextRecord"}, {"type": "previousRecord"}])
    assert store.get_state("_currentRecordIndex") == 1


def test_element_visibility_and_properties():
    store = make_store()
    designer = make_designer()
    result = run(
        store,
        designer,
        [
            {"type": "hideElement", "elementId": "e1"},
            {"type": "toggleElement", "elementName": "Logo"},
            {"type": "setElementProperty", "elementId": "@Title", "property": "styles.color", "value": "#fff"},
            {"type": "showElement", "elementName": "Missing"},
        ],
    )
    assert designer.get_element("e1")["visible"] is False
    assert designer.get_element("e2")["visible"] is True
    assert designer.get_element("e1")["styles"] == {"color": "#fff"}
    assert [item.success for item in result.results] == [True, True, True, False]


def test_animation_and_timeline_actions_reach_designer():
    store = make_store()
    designer = make_designer()
    result = run(
        store,
        designer,
        [
            {"type": "playAnimation", "elementId": "Title", "phase": "in"},
            {"type": "pauseAnimation", "elementId": "e1"},
            {"type": "stopAnimation", "elementId": "e1"},
            {"type": "playTimeline", "templateId": "t1"},
            {"type": "playTimeline", "templateId": "nope"},
        ],
    )
    assert [call["call"] for call in designer.calls] == ["play_animation", "pause_animation", "stop_animation", "play_in"]
    assert designer.calls[0]["element_id"] == "e1"
    assert designer.calls[-1] == {"call": "play_in", "template_id": "t1", "layer_id": "L1"}
    assert result.results[-1].success is False


def test_form_validation_submission_and_reset():
    submitted = []

    async def submit(form_id, payload, endpoint):
        submitted.append((form_id, payload, endpoint))

    store = make_store()
    store.set_form_value("signup", "email", "bad")
    rules = [
        {"field": "email", "pattern": "[^@]+@[^@]+", "message": "Invalid email"},
        {"field": "name", "required": True},
    ]
    result = run(store, None, [{"type": "validateForm", "formId": "signup", "rules": rules}])
    assert result.results[0].output == {
        "isValid": False,
        "errors": {"email": "Invalid email", "name": "name is required"},
    }
    assert store.get_form_state("signup").is_valid is False

    store.set_form_value("signup", "email", "a@b.co")
    result = run(
        store,
        None,
        [
            {
                "type": "submitForm",
                "formId": "signup",
                "url": "/api/signup",
                "transform": "{'email': formData.email.upper()}",
                "onSuccess": [{"type": "setState", "name": "submitted", "value": True}],
            },
            {"type": "submitForm", "formId": "missing"},
            {"type": "resetForm", "formId": "signup"},
        ],
        submit_form=submit,
    )
    assert submitted == [("signup", {"email": "A@B.CO"}, "/api/signup")]
    assert store.get_state("submitted") is True
    assert [item.success for item in result.results] == [True, False, True]
    assert store.get_form_state("signup").values == {}


def test_run_script_commits_changed_and_removed_keys():
    store = make_store({"count": 1, "temp": "x"})
    changes = []
    store.subscribe(lambda name, value, previous: changes.append(name))
    result = run(store, None, [{"type": "runScript", "code": "state.count = state.count + 1\ndel state.temp"}])
    assert result.ok
    assert store.get_state("count") == 2
    assert "temp" not in store.state
    assert sorted(changes) == ["count", "temp"]


def test_run_script_failures_are_recorded_with_codes():
    metrics = MetricsRegistry()
    store = make_store(config=InteractiveConfig(max_loop_iterations=100), metrics=metrics)
    result = run(
        store,
        None,
        [
            {"type": "runScript", "code": "while True:\n    pass"},
            {"type": "runScript", "code": "import os"},
            {"type": "setState", "name": "after", "value": 1},
        ],
    )
    assert [item.error_code for item in result.results] == ["NGX-1206", "NGX-1203", None]
    assert store.get_state("after") == 1
    assert metrics.get_timeout_counts() == {"loop": 1}


def test_call_function_binds_params_and_writes_output():
    store = make_store(
        {"count": 21},
        functions=[{"name": "double", "body": "return value * 2", "params": ["value"]}],
    )
    result = run(
        store,
        None,
        [
            {"type": "callFunction", "name": "double", "args": ["{{state.count}}"], "outputTo": "doubled"},
            {"type": "callFunction", "name": "missing"},
        ],
    )
    assert store.get_state("doubled") == 42
    assert result.results[1].success is False


def test_conditional_runs_matching_branch():
    store = make_store({"count": 0})
    action = {
        "type": "conditional",
        "target": {
            "conditions": [{"operand": "state.count", "operator": "greaterThan", "comparand": 0}],
            "then": [{"type": "setState", "name": "branch", "value": "then"}],
            "else": [{"type": "setState", "name": "branch", "value": "else"}],
        },
    }
    run(store, None, [action])
    assert store.get_state("branch") == "else"
    store.set_state("count", 3)
    run(store, None, [action])
    assert store.get_state("branch") == "then"


def test_loop_sets_and_clears_item_variables():
    store = make_store({"total": 0})
    result = run(
        store,
        make_designer(),
        [
            {
                "type": "loop",
                "dataSource": "records",
                "itemVariable": "row",
                "indexVariable": "i",
                "actions": [{"type": "incrementState", "name": "total", "amount": "{{state.row.score}}"}],
            },
            {"type": "loop", "count": 5, "maxIterations": 2, "actions": [{"type": "incrementState", "name": "ticks"}]},
        ],
    )
    assert store.get_state("total") == 19
    assert "row" not in store.state
    assert "i" not in store.state
    assert store.get_state("ticks") == 2
    assert [item.output for item in result.results] == [{"iterations": 3}, {"iterations": 2}]


def test_loop_count_is_capped_before_iteration():
    store = make_store()
    result = run(
        store,
        None,
        [
            {"type": "loop", "count": 10**10, "maxIterations": 1, "actions": [{"type": "incrementState", "name": "ticks"}]},
            {"type": "loop", "count": -3, "actions": [{"type": "incrementState", "name": "ticks"}]},
        ],
    )
    assert [item.output for item in result.results] == [{"iterations": 1}, {"iterations": 0}]
    assert store.get_state("ticks") == 1


def test_log_emit_and_open_url():
    emitted = []
    store = make_store({"count": 3})
    run(
        store,
        None,
        [
            {"type": "log", "message": "Score: {{state.count}}"},
            {"type": "emit", "event": "scored", "payload": "state.count"},
            {"type": "openUrl", "url": "https://example.com"},
        ],
        emit=lambda name, payload: emitted.append((name, payload)),
    )
    assert emitted == [("scored", 3)]
    messages = store.logs.messages()
    assert "Score: 3" in messages
    assert "Open URL https://example.com" in messages


def test_navigation_actions_update_history():
    store = make_store({"count": 2})
    run(store, None, [{"type": "navigate", "templateId": "t2", "params": {"from": "state.count"}}])
    assert store.current_template_id == "t2"
    assert store.navigation_params == {"from": 2}
    result = run(store, None, [{"type": "navigateBack"}, {"type": "navigateBack"}])
    assert store.current_template_id == "t1"
    assert [item.output for item in result.results] == [{"moved": True}, {"moved": False}]


def test_metrics_record_each_executed_action():
    metrics = MetricsRegistry()
    store = make_store(metrics=metrics)
    run(store, None, [{"type": "setState", "name": "a", "value": 1}, {"type": "hideElement", "elementId": "x"}])
    actions = metrics.get_action_metrics()
    assert actions["setState"].count == 1
    assert actions["hideElement"].failures == 1
