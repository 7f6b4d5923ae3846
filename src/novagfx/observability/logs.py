"""
Bounded in-memory log buffer used as the ``log(message)`` sink of interactive runs.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Deque, List, Tuple

from .logging_utils import redact_details

logger = logging.getLogger("novagfx.runtime")


class LogBuffer:
    def __init__(self, max_events: int = 300, mirror_logger: bool = True, redact: bool = True) -> None:
        self.max_events = max_events
        self._events: Deque[dict] = deque(maxlen=max_events)
        self._lock = threading.Lock()
        self._seq = 0
        self._mirror_logger = mirror_logger
        self._redact = redact

    def append(self, event: str, level: str = "info", **details) -> dict:
        details = redact_details(details, self._redact)
        with self._lock:
            self._seq += 1
            payload = {
                "id": self._seq,
                "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
                "level": level,
                "event": event,
                "details": details or {},
            }
            self._events.append(payload)
        if self._mirror_logger:
            logger.log(logging.WARNING if level in ("warning", "error") else logging.INFO, "%s", event)
        return payload

    def __call__(self, message: str) -> dict:
        return self.append(str(message))

    def history(self, limit: int | None = None) -> List[dict]:
        with self._lock:
            events = list(self._events)
        if limit is None or limit <= 0:
            return events
        return events[-limit:]

    def messages(self) -> List[str]:
        return [entry["event"] for entry in self.history()]

    def snapshot_after(self, last_id: int) -> Tuple[List[dict], int]:
        with self._lock:
            events = [e for e in self._events if e.get("id", 0) > last_id]
            latest = self._seq
        return events, latest

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


def log_event(buffer: LogBuffer | None, event: str, level: str = "info", **details) -> dict | None:
    if buffer is None:
        logger.info("%s", event)
        return None
    return buffer.append(event, level=level, **details)
