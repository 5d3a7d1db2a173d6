from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, runtime_checkable

REQUIRED_CAPABILITIES: tuple[str, ...] = ("analyze", "get_capabilities", "validate_interface")

AnalyzerStatus = Literal["succeeded", "failed", "skipped"]


@dataclass(frozen=True)
class AnalyzerCapabilities:
    supported_content_types: tuple[str, ...] = ("text/markdown",)
    requires_context: bool = False
    can_process_large_files: bool = True
    estimated_processing_time: float = 0.0
    dependencies: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "supported_content_types", tuple(str(t) for t in self.supported_content_types)
        )
        object.__setattr__(self, "dependencies", tuple(str(d) for d in self.dependencies))
        if isinstance(self.estimated_processing_time, bool) or not isinstance(
            self.estimated_processing_time, (int, float)
        ):
            raise TypeError("estimated_processing_time must be a number")

    @classmethod
    def from_value(cls, value: Any) -> "AnalyzerCapabilities":
        if isinstance(value, AnalyzerCapabilities):
            return value
        if not isinstance(value, Mapping):
            raise TypeError(
                f"get_capabilities() must return AnalyzerCapabilities or a mapping "
                f"(type={type(value).__name__})"
            )
        known = {
            "supported_content_types",
            "requires_context",
            "can_process_large_files",
            "estimated_processing_time",
            "dependencies",
        }
        return cls(**{k: v for k, v in value.items() if k in known})


@runtime_checkable
class Analyzer(Protocol):
    """Capability contract every detection plugin must satisfy.

    There is no base class: any object exposing a string `name` and these three
    callables can be registered. `analyze` receives the parsed document produced
    by the pipeline's parser collaborator and returns a mapping (or an
    `AnalyzerResult`).
    """

    name: str

    def analyze(self, document: Any) -> Any: ...

    def get_capabilities(self) -> AnalyzerCapabilities | Mapping[str, Any]: ...

    def validate_interface(self) -> bool: ...


@dataclass(frozen=True)
class AnalyzerConfig:
    name: str
    analyzer: Any
    dependencies: tuple[str, ...] = ()
    priority: int = 0
    enabled: bool = True
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise TypeError("AnalyzerConfig.name must be a non-empty string")
        object.__setattr__(self, "name", self.name.strip())
        object.__setattr__(
            self, "dependencies", tuple(str(dep).strip() for dep in self.dependencies if str(dep).strip())
        )


@dataclass(frozen=True)
class AnalyzerResult:
    analyzer: str
    status: AnalyzerStatus
    data: Mapping[str, Any] = field(default_factory=dict)
    confidence: float | None = None
    error: str | None = None
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"


@dataclass(frozen=True)
class DetectionReport:
    """Aggregated outcome of the detection stage, in registration order."""

    results: tuple[AnalyzerResult, ...] = ()

    def succeeded(self) -> tuple[AnalyzerResult, ...]:
        return tuple(r for r in self.results if r.status == "succeeded")

    def failed(self) -> tuple[AnalyzerResult, ...]:
        return tuple(r for r in self.results if r.status == "failed")

    def skipped(self) -> tuple[AnalyzerResult, ...]:
        return tuple(r for r in self.results if r.status == "skipped")

    def get(self, analyzer: str) -> AnalyzerResult | None:
        for result in self.results:
            if result.analyzer == analyzer:
                return result
        return None


def coerce_analysis_output(name: str, output: Any, *, duration_seconds: float) -> AnalyzerResult:
    if isinstance(output, AnalyzerResult):
        return output
    if output is None:
        data: Mapping[str, Any] = {}
    elif isinstance(output, Mapping):
        data = dict(output)
    else:
        raise TypeError(
            f"Analyzer {name} returned unsupported result (type={type(output).__name__})"
        )
    confidence = data.get("confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        confidence = None
    return AnalyzerResult(
        analyzer=name,
        status="succeeded",
        data=data,
        confidence=float(confidence) if confidence is not None else None,
        duration_seconds=duration_seconds,
    )
