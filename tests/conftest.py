import os

import pytest

from novagfx.observability.metrics import default_metrics


@pytest.fixture(autouse=True)
def _isolated_runtime(monkeypatch):
    """Tests never see NOVAGFX_* settings from the host and start with fresh shared metrics."""
    for key in list(os.environ):
        if key.startswith("NOVAGFX_"):
            monkeypatch.delenv(key, raising=False)
    default_metrics.reset()
    yield
    default_metrics.reset()
