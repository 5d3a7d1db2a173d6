from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Mapping

from pluginkit.engine import CancellationToken, OrchestrationEngine
from pluginkit.errors import OrchestrationError
from pluginkit.registry import RegistrationResult
from pluginkit.result import Result
from readme_cicd.analyzers import default_analyzer_configs
from readme_cicd.factory import ComponentFactory
from readme_cicd.foundation.config_io import load_config
from readme_cicd.foundation.logging_utils import setup_operational_logger
from readme_cicd.framework.config import PipelineConfig


@dataclass
class PipelineContext:
    """Everything one process needs to generate workflows; replaces any global registry."""

    run_id: str
    config: PipelineConfig
    logger: logging.Logger
    factory: ComponentFactory
    log_file: str | None = None
    warnings: tuple[str, ...] = ()
    registrations: tuple[RegistrationResult, ...] = ()
    _engine: OrchestrationEngine | None = field(default=None, init=False, repr=False)

    @property
    def engine(self) -> OrchestrationEngine:
        if self._engine is None:
            self._engine = self.factory.create_engine()
        return self._engine

    def run(
        self,
        content: str,
        options: Mapping[str, Any] | None = None,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> Result[Any, OrchestrationError]:
        return self.engine.run(content, options, cancel_token=cancel_token)

    def close(self) -> None:
        if self._engine is not None:
            self._engine.shutdown()
            self._engine = None


def build_context(
    cfg: Mapping[str, Any] | None = None,
    *,
    run_id: str | None = None,
    operational_log: bool = True,
    register_defaults: bool = True,
    logger: logging.Logger | None = None,
) -> PipelineContext:
    """Parse config, set up logging, and wire a fresh factory.

    With `cfg=None` the config is read through `load_config()`.
    """

    raw = dict(cfg) if cfg is not None else load_config()[0]
    config, warnings = PipelineConfig.from_dict(raw)
    run_id = run_id or uuid.uuid4().hex[:12]

    log_file: str | None = None
    if logger is None:
        if operational_log:
            logger, log_file = setup_operational_logger(
                config.logging.log_dir, run_id, level=config.logging.level
            )
        else:
            logger = logging.getLogger(f"readme_cicd.{run_id}")
    for warning in warnings:
        logger.warning("Config: %s", warning)

    factory = ComponentFactory(config, log=logger)
    registrations: tuple[RegistrationResult, ...] = ()
    if register_defaults:
        registrations = tuple(factory.register_custom_analyzers(default_analyzer_configs()))

    return PipelineContext(
        run_id=run_id,
        config=config,
        logger=logger,
        factory=factory,
        log_file=log_file,
        warnings=tuple(warnings),
        registrations=registrations,
    )
