"""Reusable analyzer-plugin kernel (registry, dependency graph, orchestration engine).

This package is intentionally independent of `readme_cicd.*`. Anything specific to
READMEs, workflows, or deployment environments lives in the consuming application.
"""

from pluginkit.analyzer import (
    REQUIRED_CAPABILITIES,
    Analyzer,
    AnalyzerCapabilities,
    AnalyzerConfig,
    AnalyzerResult,
    DetectionReport,
)
from pluginkit.circuit_breaker import BreakerState, CircuitBreaker, CircuitBreakerBoard
from pluginkit.config_namespace import ConfigNamespace
from pluginkit.dependency_graph import DependencyGraph, DependencyResolution
from pluginkit.engine import (
    CancellationToken,
    DefaultStageRecorder,
    EngineEvent,
    EngineOptions,
    NullStageRecorder,
    OrchestrationEngine,
    QueueStatus,
    RunReport,
    RunState,
    StageRecorder,
    StageTimeouts,
)
from pluginkit.errors import (
    AnalyzerRegistrationError,
    CancelledError,
    InterfaceValidationError,
    OrchestrationError,
    PluginKitError,
    RegistrationStateError,
    StageExecutionError,
    StageTimeoutError,
)
from pluginkit.registry import AnalyzerRegistry, RegistrationResult, RegistrationValidator
from pluginkit.result import Err, Ok, Result

__all__ = [
    "REQUIRED_CAPABILITIES",
    "Analyzer",
    "AnalyzerCapabilities",
    "AnalyzerConfig",
    "AnalyzerRegistrationError",
    "AnalyzerRegistry",
    "AnalyzerResult",
    "BreakerState",
    "CancellationToken",
    "CancelledError",
    "CircuitBreaker",
    "CircuitBreakerBoard",
    "ConfigNamespace",
    "DefaultStageRecorder",
    "DependencyGraph",
    "DependencyResolution",
    "DetectionReport",
    "EngineEvent",
    "EngineOptions",
    "Err",
    "InterfaceValidationError",
    "NullStageRecorder",
    "Ok",
    "OrchestrationEngine",
    "OrchestrationError",
    "PluginKitError",
    "QueueStatus",
    "RegistrationResult",
    "RegistrationStateError",
    "RegistrationValidator",
    "Result",
    "RunReport",
    "RunState",
    "StageExecutionError",
    "StageRecorder",
    "StageTimeoutError",
    "StageTimeouts",
]
