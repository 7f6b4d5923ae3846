from novagfx.observability.metrics import MetricsRegistry


def test_action_and_node_metrics_accumulate():
    metrics = MetricsRegistry()
    metrics.record_action("setState", 0.5)
    metrics.record_action("setState", 0.25, ok=False)
    metrics.record_node("condition", 0.1)
    actions = metrics.get_action_metrics()
    assert actions["setState"].count == 2
    assert actions["setState"].failures == 1
    assert actions["setState"].total_duration_seconds == 0.75
    assert metrics.get_node_metrics()["condition"].count == 1


def test_graph_metrics_average_runs():
    metrics = MetricsRegistry()
    metrics.record_graph("click", 1.0, matched=1, visited=4)
    metrics.record_graph("click", 3.0, matched=0, visited=0)
    snap = metrics.get_graph_metrics()["click"]
    assert snap.total_runs == 2
    assert snap.matched_runs == 1
    assert snap.avg_duration_seconds == 2.0
    assert snap.avg_visited == 2.0


def test_snapshot_and_reset():
    metrics = MetricsRegistry()
    metrics.record_timeout("script")
    metrics.record_timeout("script")
    metrics.record_action("", 0.0)
    snapshot = metrics.snapshot()
    assert snapshot["timeouts"] == {"script": 2}
    assert snapshot["actions"]["unknown"]["count"] == 1
    metrics.reset()
    assert metrics.snapshot() == {"actions": {}, "nodes": {}, "graphs": {}, "timeouts": {}}
