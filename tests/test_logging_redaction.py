from novagfx.config import InteractiveConfig, load_config
from novagfx.observability.logging_utils import preview_code, redact_details, redact_event
from novagfx.observability.logs import LogBuffer, log_event


def test_details_redaction_is_recursive():
    details = {"email": "user@example.com", "form": {"password": "hunter2", "name": "Ann"}, "other": "ok"}
    redacted = redact_details(details)
    assert redacted["email"] == "[REDACTED]"
    assert redacted["form"] == {"password": "[REDACTED]", "name": "Ann"}
    assert redacted["other"] == "ok"


def test_redaction_disabled():
    assert redact_details({"token": "abc"}, enabled=False) == {"token": "abc"}
    assert redact_event({"data": {"token": "abc"}}, enabled=False)["data"] == {"token": "abc"}


def test_redaction_switch_comes_from_config_not_process_env(monkeypatch):
    monkeypatch.setenv("NOVAGFX_LOG_REDACT", "false")
    assert redact_details({"token": "abc"}) == {"token": "[REDACTED]"}

    quiet = LogBuffer(mirror_logger=False, redact=load_config().log_redact)
    quiet.append("submitted", token="abc")
    assert quiet.history()[-1]["details"] == {"token": "abc"}

    strict = LogBuffer(mirror_logger=False, redact=InteractiveConfig().log_redact)
    strict.append("submitted", token="abc")
    assert strict.history()[-1]["details"] == {"token": "[REDACTED]"}


def test_redact_event_masks_data_and_previews_code():
    event = {"type": "submit", "data": {"api_key": "k", "x": "y"}, "code": "x" * 150}
    cleaned = redact_event(event)
    assert cleaned["data"] == {"api_key": "[REDACTED]", "x": "y"}
    assert cleaned["code"] == "x" * 100 + "..."
    assert event["data"]["api_key"] == "k"


def test_preview_code_keeps_short_text():
    assert preview_code("state.count") == "state.count"
    assert preview_code(None) == ""


def test_log_buffer_is_bounded_and_redacts():
    buffer = LogBuffer(max_events=2, mirror_logger=False)
    buffer("first")
    buffer.append("second", secret="s")
    log_event(buffer, "third", level="warning", token="t")
    history = buffer.history()
    assert [entry["event"] for entry in history] == ["second", "third"]
    assert history[0]["details"] == {"secret": "[REDACTED]"}
    assert history[1]["level"] == "warning"
    assert [entry["id"] for entry in history] == [2, 3]


def test_log_buffer_snapshot_after_and_clear():
    buffer = LogBuffer(mirror_logger=False)
    buffer("a")
    buffer("b")
    events, latest = buffer.snapshot_after(1)
    assert [entry["event"] for entry in events] == ["b"]
    assert latest == 2
    buffer.clear()
    assert buffer.messages() == []


def test_log_event_without_buffer():
    assert log_event(None, "orphan") is None
