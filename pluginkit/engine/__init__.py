"""Engine primitives for orchestrating parse -> detect -> generate runs."""

from pluginkit.engine.events import EngineEvent, EventHistory, utc_now_iso8601
from pluginkit.engine.orchestration import (
    STAGES,
    CancellationToken,
    DocumentParser,
    EngineOptions,
    OrchestrationEngine,
    QueueStatus,
    RunReport,
    RunState,
    StageTimeouts,
    WorkflowBuilder,
)
from pluginkit.engine.recorder import DefaultStageRecorder, NullStageRecorder, StageRecorder

__all__ = [
    "STAGES",
    "CancellationToken",
    "DefaultStageRecorder",
    "DocumentParser",
    "EngineEvent",
    "EngineOptions",
    "EventHistory",
    "NullStageRecorder",
    "OrchestrationEngine",
    "QueueStatus",
    "RunReport",
    "RunState",
    "StageRecorder",
    "StageTimeouts",
    "WorkflowBuilder",
    "utc_now_iso8601",
]
