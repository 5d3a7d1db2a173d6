from __future__ import annotations

import logging
from typing import Any, Protocol

REQUIRED_RECORDER_METHODS: tuple[str, ...] = ("on_stage_start", "on_stage_end", "on_stage_error")


class StageRecorder(Protocol):
    def on_stage_start(self, run_id: str, stage: str, **metrics: Any) -> None:
        ...

    def on_stage_end(self, run_id: str, stage: str, *, duration_seconds: float, **metrics: Any) -> None:
        ...

    def on_stage_error(self, run_id: str, stage: str, exc: Exception) -> None:
        ...


class DefaultStageRecorder:
    def __init__(self, log: logging.Logger | None = None):
        self._logger = log or logging.getLogger("pluginkit.engine")

    def on_stage_start(self, run_id: str, stage: str, **metrics: Any) -> None:
        tokens = [f"run_id={run_id}"]
        tokens.extend(f"{key}={value}" for key, value in sorted(metrics.items()))
        self._logger.info("Stage: %s (%s)", stage, ", ".join(tokens))

    def on_stage_end(self, run_id: str, stage: str, *, duration_seconds: float, **metrics: Any) -> None:
        tokens = [f"run_id={run_id}", f"duration={duration_seconds:.3f}s"]
        tokens.extend(f"{key}={value}" for key, value in sorted(metrics.items()))
        self._logger.info("Completed stage %s (%s)", stage, ", ".join(tokens))

    def on_stage_error(self, run_id: str, stage: str, exc: Exception) -> None:
        self._logger.error("Stage failed: %s (run_id=%s): %s", stage, run_id, exc)


class NullStageRecorder:
    def on_stage_start(self, run_id: str, stage: str, **metrics: Any) -> None:
        return

    def on_stage_end(self, run_id: str, stage: str, *, duration_seconds: float, **metrics: Any) -> None:
        return

    def on_stage_error(self, run_id: str, stage: str, exc: Exception) -> None:
        return


def validate_recorder(recorder: Any) -> None:
    for name in REQUIRED_RECORDER_METHODS:
        method = getattr(recorder, name, None)
        if method is None or not callable(method):
            raise TypeError(f"Stage recorder missing required method: {name}")
