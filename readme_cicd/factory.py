"""Component wiring: registry, parser pipeline, engine, and workflow generator.

A `ComponentFactory` is owned by an explicitly built `PipelineContext`; there
is no process-wide instance. Tests construct their own.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Mapping
from typing import Any, Callable

from pluginkit.analyzer import AnalyzerConfig, AnalyzerResult, DetectionReport, coerce_analysis_output
from pluginkit.dependency_graph import DependencyGraph
from pluginkit.engine import OrchestrationEngine, StageRecorder
from pluginkit.errors import RegistrationStateError
from pluginkit.registry import AnalyzerRegistry, RegistrationResult
from readme_cicd.framework.config import PipelineConfig
from readme_cicd.generator.environment_manager import EnvironmentManager
from readme_cicd.generator.environment_steps import EnvironmentStepGenerator
from readme_cicd.generator.workflow_generator import WorkflowGenerator
from readme_cicd.parsing.markdown_parser import MarkdownReadmeParser, ParsedDocument

logger = logging.getLogger(__name__)


class ReadmeAnalysisPipeline:
    """Parser plus the analyzers that were registered when it was created."""

    def __init__(self, parser: Any, analyzers: Iterable[tuple[str, Any]], *, log: logging.Logger | None = None):
        self._parser = parser
        self._analyzers = tuple(analyzers)
        self._logger = log or logger

    @property
    def analyzer_names(self) -> tuple[str, ...]:
        return tuple(name for name, _ in self._analyzers)

    def parse(self, content: str) -> ParsedDocument:
        return self._parser.parse(content)

    def analyze(self, content: str) -> DetectionReport:
        document = self.parse(content)
        results: list[AnalyzerResult] = []
        for name, analyzer in self._analyzers:
            start = time.perf_counter()
            try:
                output = analyzer.analyze(document)
                results.append(
                    coerce_analysis_output(name, output, duration_seconds=time.perf_counter() - start)
                )
            except Exception as exc:
                self._logger.warning("Analyzer %s failed: %s: %s", name, type(exc).__name__, exc)
                results.append(
                    AnalyzerResult(
                        analyzer=name,
                        status="failed",
                        error=f"{type(exc).__name__}: {exc}",
                        duration_seconds=time.perf_counter() - start,
                    )
                )
        return DetectionReport(tuple(results))


class ComponentFactory:
    def __init__(
        self,
        config: PipelineConfig | None = None,
        *,
        registry: AnalyzerRegistry | None = None,
        environment_manager: EnvironmentManager | None = None,
        parser: Any = None,
        log: logging.Logger | None = None,
    ):
        self._config = config or PipelineConfig()
        self._logger = log or logger
        self._registry = registry or AnalyzerRegistry(log=self._logger)
        self._environment_manager = environment_manager or EnvironmentManager(log=self._logger)
        self._parser = parser or MarkdownReadmeParser()

    @property
    def config(self) -> PipelineConfig:
        return self._config

    @property
    def registry(self) -> AnalyzerRegistry:
        return self._registry

    @property
    def environment_manager(self) -> EnvironmentManager:
        return self._environment_manager

    def create_readme_parser(self, config: Mapping[str, Any] | None = None) -> ReadmeAnalysisPipeline:
        """Compose the parser with a snapshot of the registered analyzers.

        `config["analyzers"]` optionally restricts the pipeline to the named
        analyzers (kept in registration order).
        """

        entries = self._registry.snapshot()
        wanted = (config or {}).get("analyzers")
        if wanted is not None:
            selected = [str(name).strip() for name in wanted]
            known = {name for name, _ in entries}
            for name in selected:
                if name not in known:
                    hint = self._registry.suggest(name)
                    suffix = f" (did you mean: {', '.join(hint)}?)" if hint else ""
                    raise ValueError(f"Unknown analyzer: {name}{suffix}")
            entries = tuple((name, analyzer) for name, analyzer in entries if name in selected)
        return ReadmeAnalysisPipeline(self._parser, entries, log=self._logger)

    def register_custom_analyzers(self, configs: Iterable[AnalyzerConfig]) -> list[RegistrationResult]:
        """Register a batch in dependency order; results come back in input order.

        Dependencies may name analyzers in the batch or ones already registered.
        Configs on a dependency cycle, with an unknown dependency, or depending on
        a config that failed are reported as `RegistrationStateError` failures;
        every other config still registers.
        """

        enabled = [(idx, cfg) for idx, cfg in enumerate(configs) if cfg.enabled]
        by_index = dict(enabled)
        results: dict[int, RegistrationResult] = {}

        with self._registry.mutation():
            graph = DependencyGraph()
            index_by_name: dict[str, int] = {}
            for idx, cfg in enabled:
                if cfg.name in index_by_name:
                    results[idx] = self._registry.record_failure(
                        RegistrationStateError(
                            f"Duplicate analyzer name in batch: {cfg.name}", analyzer_name=cfg.name
                        )
                    )
                    continue
                declared = self._registry.validator.declared_dependencies(cfg.analyzer)
                graph.add_node(cfg.name, dict.fromkeys((*cfg.dependencies, *declared)))
                index_by_name[cfg.name] = idx

            resolution = graph.resolve(satisfied=self._registry.get_registered_analyzers())
            failed: set[str] = set()
            for name in resolution.order:
                idx = index_by_name[name]
                cfg = by_index[idx]
                failed_dep = next((d for d in graph.dependencies_of(name) if d in failed), None)
                if failed_dep is not None:
                    result = self._registry.record_failure(
                        RegistrationStateError(
                            f"Analyzer '{name}' depends on '{failed_dep}', which failed to register",
                            analyzer_name=name,
                            missing_dependencies=(failed_dep,),
                        )
                    )
                else:
                    result = self._registry.register(cfg.analyzer, cfg.name)
                if not result.success:
                    failed.add(name)
                results[idx] = result

            for cycle in resolution.cycles:
                for name in cycle[:-1]:
                    results[index_by_name[name]] = self._registry.record_failure(
                        RegistrationStateError(
                            f"Circular dependency detected: {' -> '.join(cycle)}",
                            analyzer_name=name,
                            cycle=cycle,
                        )
                    )
            for name, absent in resolution.missing.items():
                results[index_by_name[name]] = self._registry.record_failure(
                    RegistrationStateError(
                        f"Analyzer '{name}' depends on unknown analyzer(s): {', '.join(absent)}",
                        analyzer_name=name,
                        missing_dependencies=absent,
                    )
                )
            for name, blocker in resolution.blocked.items():
                results[index_by_name[name]] = self._registry.record_failure(
                    RegistrationStateError(
                        f"Analyzer '{name}' depends on '{blocker}', which could not be resolved",
                        analyzer_name=name,
                        missing_dependencies=(blocker,),
                    )
                )

        ordered = [results[idx] for idx, _ in enabled if idx in results]
        succeeded = sum(1 for r in ordered if r.success)
        self._logger.info(
            "Custom analyzer registration: %d registered, %d failed (order: %s)",
            succeeded,
            len(ordered) - succeeded,
            ", ".join(resolution.order) or "<none>",
        )
        return ordered

    def get_registered_analyzers(self) -> tuple[str, ...]:
        return self._registry.get_registered_analyzers()

    def get_analyzer(self, name: str) -> Any | None:
        return self._registry.get_analyzer(name)

    def create_step_generator(self) -> EnvironmentStepGenerator:
        return EnvironmentStepGenerator(self._environment_manager, log=self._logger)

    def create_workflow_generator(self) -> WorkflowGenerator:
        return WorkflowGenerator(self.create_step_generator(), self._config.workflow, log=self._logger)

    def create_engine(
        self,
        *,
        recorder: StageRecorder | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> OrchestrationEngine:
        return OrchestrationEngine(
            self._registry,
            self._parser,
            self.create_workflow_generator(),
            options=self._config.engine,
            recorder=recorder,
            clock=clock,
            log=self._logger,
        )

    def reset(self) -> None:
        self._registry.clear()
        self._environment_manager.clear()
        self._logger.info("Component factory reset")
