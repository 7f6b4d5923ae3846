from novagfx.config import InteractiveConfig, load_config


def test_defaults_without_environment():
    assert load_config({}) == InteractiveConfig()


def test_values_read_from_environment(monkeypatch):
    monkeypatch.setenv("NOVAGFX_MAX_LOOP_ITERATIONS", "250")
    monkeypatch.setenv("NOVAGFX_SCRIPT_TIMEOUT_MS", "1500")
    monkeypatch.setenv("NOVAGFX_GRAPH_MATCH_MODE", "Concurrent")
    monkeypatch.setenv("NOVAGFX_LOG_REDACT", "no")
    config = load_config()
    assert config.max_loop_iterations == 250
    assert config.script_timeout_ms == 1500.0
    assert config.graph_match_mode == "concurrent"
    assert config.log_redact is False


def test_invalid_values_fall_back():
    config = load_config(
        {
            "NOVAGFX_MAX_LOOP_ITERATIONS": "lots",
            "NOVAGFX_GRAPH_MATCH_MODE": "parallel",
            "NOVAGFX_NAVIGATION_HISTORY_LIMIT": "0",
            "NOVAGFX_EXPRESSION_TIMEOUT_MS": "-5",
        }
    )
    assert config.max_loop_iterations == 10000
    assert config.graph_match_mode == "sequential"
    assert config.navigation_history_limit == 1
    assert config.expression_timeout_ms == 0.0
