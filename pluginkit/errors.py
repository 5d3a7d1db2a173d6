"""Error taxonomy for analyzer registration and pipeline orchestration."""

from __future__ import annotations

from typing import Any, Sequence


class PluginKitError(Exception):
    """Base class for all pluginkit errors."""

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": type(self).__name__, "message": str(self)}
        cause = self.__cause__
        if cause is not None:
            payload["cause"] = f"{type(cause).__name__}: {cause}"
        return payload


class AnalyzerRegistrationError(PluginKitError):
    """Registration-phase failure for a single analyzer."""

    def __init__(self, message: str, *, analyzer_name: str, phase: str = "registration"):
        super().__init__(message)
        self.analyzer_name = analyzer_name
        self.phase = phase

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["analyzer_name"] = self.analyzer_name
        payload["phase"] = self.phase
        return payload


class InterfaceValidationError(AnalyzerRegistrationError):
    """Analyzer does not satisfy the required capability contract."""

    def __init__(
        self,
        message: str,
        *,
        analyzer_name: str,
        missing_methods: Sequence[str] = (),
        invalid_methods: Sequence[str] = (),
    ):
        super().__init__(message, analyzer_name=analyzer_name, phase="interface-validation")
        self.missing_methods = tuple(missing_methods)
        self.invalid_methods = tuple(invalid_methods)

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["missing_methods"] = list(self.missing_methods)
        payload["invalid_methods"] = list(self.invalid_methods)
        return payload


class RegistrationStateError(AnalyzerRegistrationError):
    """Cyclic, duplicate, or unmet analyzer dependencies."""

    def __init__(
        self,
        message: str,
        *,
        analyzer_name: str,
        cycle: Sequence[str] = (),
        missing_dependencies: Sequence[str] = (),
    ):
        super().__init__(message, analyzer_name=analyzer_name, phase="dependency-resolution")
        self.cycle = tuple(cycle)
        self.missing_dependencies = tuple(missing_dependencies)

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        if self.cycle:
            payload["cycle"] = list(self.cycle)
        if self.missing_dependencies:
            payload["missing_dependencies"] = list(self.missing_dependencies)
        return payload


class OrchestrationError(PluginKitError):
    """Failure of a single pipeline run, tagged with the stage it happened in."""

    def __init__(self, message: str, *, stage: str, run_id: str | None = None):
        super().__init__(message)
        self.stage = stage
        self.run_id = run_id

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["stage"] = self.stage
        if self.run_id is not None:
            payload["run_id"] = self.run_id
        return payload


class StageTimeoutError(OrchestrationError):
    def __init__(self, message: str, *, stage: str, timeout: float, run_id: str | None = None):
        super().__init__(message, stage=stage, run_id=run_id)
        self.timeout = float(timeout)

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["timeout_seconds"] = self.timeout
        return payload


class StageExecutionError(OrchestrationError):
    """Wraps a collaborator or plugin fault raised inside a stage (see `__cause__`)."""


class CancelledError(OrchestrationError):
    """The run was cancelled at a stage boundary."""
