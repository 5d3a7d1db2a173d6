"""Analyzer registry with capability-contract validation at registration time.

Registration failures are isolated per analyzer: a rejected analyzer is never
added, never enters the registration order, and never affects its siblings.
Every attempt (success or failure) is appended to an immutable registration
history.
"""

from __future__ import annotations

import difflib
import logging
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable, Literal

from pluginkit.analyzer import REQUIRED_CAPABILITIES, AnalyzerCapabilities, AnalyzerConfig
from pluginkit.dependency_graph import DependencyGraph
from pluginkit.errors import AnalyzerRegistrationError, InterfaceValidationError

logger = logging.getLogger(__name__)

SLOW_ANALYZER_SECONDS = 5.0


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ValidationStatus(str, Enum):
    PENDING = "pending"
    VALID = "valid"
    INVALID = "invalid"
    PARTIAL = "partial"


@dataclass(frozen=True)
class InterfaceCompliance:
    is_valid: bool
    missing_methods: tuple[str, ...] = ()
    invalid_methods: tuple[str, ...] = ()
    compliance_score: float = 0.0
    details: tuple[str, ...] = ()


@dataclass(frozen=True)
class CapabilityValidation:
    is_valid: bool
    issues: tuple[str, ...] = ()
    recommendations: tuple[str, ...] = ()


@dataclass(frozen=True)
class ValidationDetails:
    interface: InterfaceCompliance
    capabilities: CapabilityValidation
    declared_dependencies: tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        return self.interface.is_valid


@dataclass(frozen=True)
class RegistrationResult:
    analyzer_name: str
    success: bool
    error: AnalyzerRegistrationError | None = None
    validation: ValidationDetails | None = None
    timestamp: datetime = field(default_factory=utc_now)
    warnings: tuple[str, ...] = ()

    @property
    def missing_methods(self) -> tuple[str, ...]:
        if isinstance(self.error, InterfaceValidationError):
            return self.error.missing_methods
        return ()


@dataclass(frozen=True)
class RegistrationRecord:
    analyzer_name: str
    success: bool
    error: str | None
    timestamp: datetime
    retry_count: int = 0


@dataclass(frozen=True)
class RegistrationFailure:
    analyzer_name: str
    error: str
    timestamp: datetime
    retry_count: int = 0


@dataclass(frozen=True)
class RegistrationState:
    analyzers: Mapping[str, Any]
    registration_order: tuple[str, ...]
    failures: tuple[RegistrationFailure, ...]
    history: tuple[RegistrationRecord, ...]
    validation_status: ValidationStatus


@dataclass(frozen=True)
class ValidationIssue:
    analyzer_name: str
    kind: Literal["interface", "capability", "dependency", "configuration"]
    severity: Literal["error", "warning", "info"]
    message: str


@dataclass(frozen=True)
class RegistryValidationReport:
    is_valid: bool
    total_analyzers: int
    valid_analyzers: int
    invalid_analyzers: int
    compliance_score: float
    entries: Mapping[str, ValidationDetails]
    issues: tuple[ValidationIssue, ...] = ()
    recommendations: tuple[str, ...] = ()


@dataclass(frozen=True)
class AnalyzerStatusInfo:
    name: str
    status: Literal["registered", "failed"]
    registration_index: int | None
    dependencies: tuple[str, ...]
    dependents: tuple[str, ...]
    last_error: str | None = None
    retry_count: int = 0


@dataclass(frozen=True)
class RegistrationStatistics:
    total_analyzers: int
    registered_analyzers: int
    failed_analyzers: int
    success_rate: float
    dependency_chain_length: int


class RegistrationValidator:
    """Checks an object against the analyzer capability contract."""

    def validate_analyzer(self, analyzer: Any) -> ValidationDetails:
        interface = self.validate_interface(analyzer)
        capabilities = self.validate_capabilities(analyzer)
        return ValidationDetails(
            interface=interface,
            capabilities=capabilities,
            declared_dependencies=self.declared_dependencies(analyzer),
        )

    def validate_interface(self, analyzer: Any) -> InterfaceCompliance:
        missing: list[str] = []
        invalid: list[str] = []
        details: list[str] = []

        name = getattr(analyzer, "name", None)
        name_ok = isinstance(name, str) and bool(name.strip())
        if not name_ok:
            details.append("Property 'name' must be a non-empty string")

        for method in REQUIRED_CAPABILITIES:
            if not hasattr(analyzer, method):
                missing.append(method)
                details.append(f"Missing required method: {method}")
            elif not callable(getattr(analyzer, method)):
                invalid.append(method)
                details.append(f"Property '{method}' must be callable")

        self_check_ok = True
        if "validate_interface" not in missing and "validate_interface" not in invalid:
            try:
                verdict = analyzer.validate_interface()
            except Exception as exc:
                self_check_ok = False
                details.append(f"validate_interface() raised {type(exc).__name__}: {exc}")
            else:
                if not isinstance(verdict, bool):
                    invalid.append("validate_interface")
                    details.append("validate_interface() must return a bool")
                elif not verdict:
                    self_check_ok = False
                    details.append("Analyzer self-validation failed")

        total_checks = len(REQUIRED_CAPABILITIES) + 1
        passed = total_checks - len(missing) - len(invalid) - (0 if name_ok else 1)
        score = max(0.0, passed / total_checks)
        is_valid = not missing and not invalid and name_ok and self_check_ok
        return InterfaceCompliance(
            is_valid=is_valid,
            missing_methods=tuple(missing),
            invalid_methods=tuple(invalid),
            compliance_score=score,
            details=tuple(details),
        )

    def validate_capabilities(self, analyzer: Any) -> CapabilityValidation:
        getter = getattr(analyzer, "get_capabilities", None)
        if getter is None or not callable(getter):
            return CapabilityValidation(is_valid=False, issues=("get_capabilities is not implemented",))

        issues: list[str] = []
        recommendations: list[str] = []
        try:
            capabilities = AnalyzerCapabilities.from_value(getter())
        except Exception as exc:
            return CapabilityValidation(
                is_valid=False, issues=(f"Error reading capabilities: {exc}",)
            )

        if capabilities.estimated_processing_time < 0:
            issues.append("estimated_processing_time must be non-negative")
        elif capabilities.estimated_processing_time > SLOW_ANALYZER_SECONDS:
            recommendations.append(
                f"Consider optimizing analyzer (estimated {capabilities.estimated_processing_time:.1f}s)"
            )
        if not capabilities.supported_content_types:
            recommendations.append("Declare supported content types")
        return CapabilityValidation(
            is_valid=not issues, issues=tuple(issues), recommendations=tuple(recommendations)
        )

    def declared_dependencies(self, analyzer: Any) -> tuple[str, ...]:
        getter = getattr(analyzer, "get_capabilities", None)
        if getter is None or not callable(getter):
            return ()
        try:
            return AnalyzerCapabilities.from_value(getter()).dependencies
        except Exception:
            # validate_capabilities() reports the malformed value during registration.
            return ()


class AnalyzerRegistry:
    def __init__(
        self,
        *,
        validator: RegistrationValidator | None = None,
        log: logging.Logger | None = None,
    ):
        self._validator = validator or RegistrationValidator()
        self._logger = log or logger
        self._lock = threading.RLock()
        self._analyzers: dict[str, Any] = {}
        self._validation: dict[str, ValidationDetails] = {}
        self._order: list[str] = []
        self._failures: dict[str, RegistrationFailure] = {}
        self._history: list[RegistrationRecord] = []
        self._status = ValidationStatus.PENDING

    @property
    def validator(self) -> RegistrationValidator:
        return self._validator

    @contextmanager
    def mutation(self) -> Iterator["AnalyzerRegistry"]:
        """Exclusive critical section for a batch of registry changes."""

        with self._lock:
            yield self

    def register(self, analyzer: Any, name: str | None = None) -> RegistrationResult:
        candidate = name if name is not None else getattr(analyzer, "name", None)
        analyzer_name = candidate.strip() if isinstance(candidate, str) else ""

        with self._lock:
            if not analyzer_name:
                error = AnalyzerRegistrationError(
                    "Analyzer name must be a non-empty string",
                    analyzer_name="<unnamed>",
                    phase="pre-validation",
                )
                return self._fail("<unnamed>", error)

            if analyzer is None:
                error = AnalyzerRegistrationError(
                    "Analyzer cannot be None", analyzer_name=analyzer_name, phase="pre-validation"
                )
                return self._fail(analyzer_name, error)

            if analyzer_name in self._analyzers:
                error = AnalyzerRegistrationError(
                    f"Analyzer '{analyzer_name}' is already registered",
                    analyzer_name=analyzer_name,
                    phase="duplicate-check",
                )
                return self._fail(analyzer_name, error)

            try:
                details = self._validator.validate_analyzer(analyzer)
            except Exception as exc:
                error = AnalyzerRegistrationError(
                    f"Validation process failed: {exc}",
                    analyzer_name=analyzer_name,
                    phase="validation",
                )
                error.__cause__ = exc
                return self._fail(analyzer_name, error)

            if not details.interface.is_valid:
                error = InterfaceValidationError(
                    "Interface validation failed: " + "; ".join(details.interface.details),
                    analyzer_name=analyzer_name,
                    missing_methods=details.interface.missing_methods,
                    invalid_methods=details.interface.invalid_methods,
                )
                return self._fail(analyzer_name, error, validation=details)

            self._analyzers[analyzer_name] = analyzer
            self._validation[analyzer_name] = details
            self._order.append(analyzer_name)
            self._failures.pop(analyzer_name, None)
            self._status = ValidationStatus.PENDING
            result = RegistrationResult(
                analyzer_name=analyzer_name,
                success=True,
                validation=details,
                warnings=details.capabilities.issues + details.capabilities.recommendations,
            )
            self._history.append(
                RegistrationRecord(
                    analyzer_name=analyzer_name,
                    success=True,
                    error=None,
                    timestamp=result.timestamp,
                )
            )
        self._logger.info("Registered analyzer %s (order=%d)", analyzer_name, len(self._order))
        return result

    def register_multiple(self, configs: Iterable[AnalyzerConfig]) -> list[RegistrationResult]:
        results: list[RegistrationResult] = []
        with self.mutation():
            for config in configs:
                if not config.enabled:
                    self._logger.debug("Skipping disabled analyzer: %s", config.name)
                    continue
                try:
                    results.append(self.register(config.analyzer, config.name))
                except Exception as exc:
                    error = AnalyzerRegistrationError(
                        f"Unexpected error during registration: {exc}",
                        analyzer_name=config.name,
                    )
                    error.__cause__ = exc
                    results.append(self._fail(config.name, error))

        succeeded = sum(1 for r in results if r.success)
        self._logger.info(
            "Batch registration completed: %d successful, %d failed",
            succeeded,
            len(results) - succeeded,
        )
        return results

    def record_failure(self, error: AnalyzerRegistrationError) -> RegistrationResult:
        """Record a failure decided outside the registry (e.g. dependency resolution)."""

        with self._lock:
            return self._fail(error.analyzer_name, error)

    def unregister(self, name: str) -> bool:
        with self._lock:
            if name not in self._analyzers:
                return False
            del self._analyzers[name]
            self._validation.pop(name, None)
            self._order.remove(name)
        self._logger.info("Unregistered analyzer %s", name)
        return True

    def clear(self) -> None:
        with self._lock:
            self._analyzers.clear()
            self._validation.clear()
            self._order.clear()
            self._failures.clear()
            self._history.clear()
            self._status = ValidationStatus.PENDING
        self._logger.info("Registry cleared")

    def get_registered_analyzers(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(self._order)

    def get_analyzer(self, name: str) -> Any | None:
        return self._analyzers.get(name)

    def is_registered(self, name: str) -> bool:
        return name in self._analyzers

    def snapshot(self) -> tuple[tuple[str, Any], ...]:
        with self._lock:
            return tuple((name, self._analyzers[name]) for name in self._order)

    def get_failed_analyzers(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(self._failures.keys())

    def suggest(self, name: str, *, limit: int = 3) -> tuple[str, ...]:
        key = (name or "").strip()
        if not key:
            return ()
        return tuple(difflib.get_close_matches(key, self.get_registered_analyzers(), n=limit))

    def validate_registration(self) -> RegistryValidationReport:
        issues: list[ValidationIssue] = []
        entries: dict[str, ValidationDetails] = {}
        with self._lock:
            snapshot = [(name, self._analyzers[name]) for name in self._order]
            failure_count = len(self._failures)

        for name, analyzer in snapshot:
            try:
                details = self._validator.validate_analyzer(analyzer)
            except Exception as exc:
                issues.append(
                    ValidationIssue(name, "configuration", "error", f"Validation error: {exc}")
                )
                continue
            entries[name] = details
            if not details.interface.is_valid:
                issues.append(
                    ValidationIssue(
                        name,
                        "interface",
                        "error",
                        "Interface validation failed: " + "; ".join(details.interface.details),
                    )
                )
            for issue in details.capabilities.issues:
                issues.append(ValidationIssue(name, "capability", "warning", issue))
            for dep in details.declared_dependencies:
                if dep not in self._analyzers:
                    issues.append(
                        ValidationIssue(name, "dependency", "warning", f"Dependency not registered: {dep}")
                    )

        total = len(snapshot)
        valid = sum(1 for d in entries.values() if d.interface.is_valid)
        score = (
            sum(d.interface.compliance_score for d in entries.values()) / total if total else 0.0
        )
        recommendations: list[str] = []
        if total == 0:
            recommendations.append("No analyzers registered")
        if failure_count:
            recommendations.append(
                f"{failure_count} failed registrations. Check logs for details."
            )

        is_valid = not any(issue.severity == "error" for issue in issues)
        if total == 0:
            status = ValidationStatus.PENDING
        elif is_valid:
            status = ValidationStatus.VALID
        elif valid > 0:
            status = ValidationStatus.PARTIAL
        else:
            status = ValidationStatus.INVALID
        with self._lock:
            self._status = status

        return RegistryValidationReport(
            is_valid=is_valid,
            total_analyzers=total,
            valid_analyzers=valid,
            invalid_analyzers=total - valid,
            compliance_score=score,
            entries=MappingProxyType(entries),
            issues=tuple(issues),
            recommendations=tuple(recommendations),
        )

    def get_registration_state(self) -> RegistrationState:
        with self._lock:
            return RegistrationState(
                analyzers=MappingProxyType(dict(self._analyzers)),
                registration_order=tuple(self._order),
                failures=tuple(self._failures.values()),
                history=tuple(self._history),
                validation_status=self._status,
            )

    def get_analyzer_status(self, name: str) -> AnalyzerStatusInfo | None:
        with self._lock:
            failure = self._failures.get(name)
            if name not in self._analyzers and failure is None:
                return None
            graph = self._dependency_graph()
            registered = name in self._analyzers
            return AnalyzerStatusInfo(
                name=name,
                status="registered" if registered else "failed",
                registration_index=self._order.index(name) if registered else None,
                dependencies=graph.dependencies_of(name),
                dependents=graph.dependents_of(name),
                last_error=failure.error if failure else None,
                retry_count=failure.retry_count if failure else 0,
            )

    def get_dependency_order(self) -> tuple[str, ...]:
        with self._lock:
            graph = self._dependency_graph()
        return graph.resolve().order

    def get_registration_statistics(self) -> RegistrationStatistics:
        with self._lock:
            registered = len(self._analyzers)
            failed = len(self._failures)
            graph = self._dependency_graph()
        total = registered + failed
        return RegistrationStatistics(
            total_analyzers=total,
            registered_analyzers=registered,
            failed_analyzers=failed,
            success_rate=registered / total if total else 0.0,
            dependency_chain_length=self._max_chain_length(graph),
        )

    def _dependency_graph(self) -> DependencyGraph:
        graph = DependencyGraph()
        for name in self._order:
            details = self._validation.get(name)
            graph.add_node(name, details.declared_dependencies if details else ())
        return graph

    def _max_chain_length(self, graph: DependencyGraph) -> int:
        def depth(node: str, visiting: frozenset[str]) -> int:
            if node in visiting:
                return 0
            deps = [d for d in graph.dependencies_of(node) if d in graph.nodes()]
            if not deps:
                return 1
            return 1 + max(depth(d, visiting | {node}) for d in deps)

        return max((depth(node, frozenset()) for node in graph.nodes()), default=0)

    def _fail(
        self,
        analyzer_name: str,
        error: AnalyzerRegistrationError,
        *,
        validation: ValidationDetails | None = None,
    ) -> RegistrationResult:
        now = utc_now()
        previous = self._failures.get(analyzer_name)
        retry_count = previous.retry_count + 1 if previous else 0
        # A rejected attempt against a live name (duplicate) only goes to history.
        if analyzer_name not in self._analyzers:
            self._failures[analyzer_name] = RegistrationFailure(
                analyzer_name=analyzer_name,
                error=str(error),
                timestamp=now,
                retry_count=retry_count,
            )
        self._history.append(
            RegistrationRecord(
                analyzer_name=analyzer_name,
                success=False,
                error=str(error),
                timestamp=now,
                retry_count=retry_count,
            )
        )
        self._logger.error(
            "Analyzer registration failed: %s (phase=%s): %s", analyzer_name, error.phase, error
        )
        return RegistrationResult(
            analyzer_name=analyzer_name,
            success=False,
            error=error,
            validation=validation,
            timestamp=now,
        )
