"""Engine events and the bounded, append-only history that stores them."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Literal, Mapping

EventOutcome = Literal[
    "started",
    "completed",
    "failed",
    "timeout",
    "cancelled",
    "analyzer_failed",
    "analyzer_skipped",
]


def utc_now_iso8601() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class EngineEvent:
    run_id: str
    stage: str
    outcome: EventOutcome
    timestamp: str = field(default_factory=utc_now_iso8601)
    error: Mapping[str, Any] | None = None
    detail: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.error is not None:
            object.__setattr__(self, "error", MappingProxyType(dict(self.error)))
        object.__setattr__(self, "detail", MappingProxyType(dict(self.detail)))

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "run_id": self.run_id,
            "stage": self.stage,
            "outcome": self.outcome,
            "timestamp": self.timestamp,
        }
        if self.error is not None:
            payload["error"] = dict(self.error)
        if self.detail:
            payload["detail"] = dict(self.detail)
        return payload


class EventHistory:
    """Newest-last event window.

    Once the history grows past `limit` entries it is trimmed to the newest
    `trim_to` entries.
    """

    def __init__(self, *, limit: int = 1000, trim_to: int = 500):
        if limit < 1:
            raise ValueError(f"history limit must be >= 1 (got {limit})")
        if not 0 < trim_to <= limit:
            raise ValueError(f"history trim_to must be in 1..{limit} (got {trim_to})")
        self.limit = limit
        self.trim_to = trim_to
        self._events: list[EngineEvent] = []
        self._lock = threading.Lock()

    def append(self, event: EngineEvent) -> None:
        with self._lock:
            self._events.append(event)
            if len(self._events) > self.limit:
                del self._events[: len(self._events) - self.trim_to]

    def snapshot(self) -> tuple[EngineEvent, ...]:
        with self._lock:
            return tuple(self._events)

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
