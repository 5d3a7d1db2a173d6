from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from pluginkit.config_namespace import ConfigNamespace
from pluginkit.engine import EngineOptions, StageTimeouts
from readme_cicd.generator.environment_manager import (
    DEPLOYMENT_STRATEGIES,
    ENVIRONMENT_PRECEDENCE,
    EnvironmentConfig,
)
from readme_cicd.generator.environment_steps import EnvironmentStepOptions
from readme_cicd.generator.workflow_generator import WorkflowSettings

LOG_LEVELS: tuple[str, ...] = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass(frozen=True)
class LoggingConfig:
    log_dir: str = "logs"
    level: str = "INFO"


@dataclass(frozen=True)
class PipelineConfig:
    engine: EngineOptions = field(default_factory=EngineOptions)
    workflow: WorkflowSettings = field(default_factory=WorkflowSettings)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    strict: bool = False

    @staticmethod
    def from_dict(cfg: Mapping[str, Any]) -> tuple["PipelineConfig", list[str]]:
        """
        Parse and validate configuration, returning (PipelineConfig, warnings).

        Unknown keys produce warnings; with `strict: true` they raise instead.

        Raises:
            ValueError: if keys are invalid (or unknown, in strict mode).
            TypeError: if a value has the wrong type.
        """

        if not isinstance(cfg, Mapping):
            raise ValueError("Config must be a mapping")

        root = ConfigNamespace(dict(cfg), path="")
        strict = root.get_bool("strict", default=False)

        engine = _parse_engine(root.namespace("engine", default=None))
        nested_unknown: list[str] = []
        workflow = _parse_workflow(root.namespace("workflow", default=None), nested_unknown)
        log_ns = root.namespace("logging", default=None)
        logging_cfg = LoggingConfig(
            log_dir=str(log_ns.get_str("log_dir", default="logs")),
            level=str(log_ns.get_str("level", default="INFO")).upper(),
        )
        if logging_cfg.level not in LOG_LEVELS:
            raise ValueError(f"logging.level must be one of: {', '.join(LOG_LEVELS)} (got {logging_cfg.level!r})")

        unknown = [*root.unconsumed_paths(), *nested_unknown]
        if unknown and strict:
            raise ValueError(f"Unknown config keys: {', '.join(unknown)}")
        warnings = [f"Unknown config key: {path}" for path in unknown]

        return PipelineConfig(engine=engine, workflow=workflow, logging=logging_cfg, strict=strict), warnings


def _parse_engine(ns: ConfigNamespace) -> EngineOptions:
    defaults = EngineOptions()
    timeouts_ns = ns.namespace("stage_timeouts", default=None)
    timeouts = StageTimeouts(
        **{
            stage: _optional_timeout(timeouts_ns, stage, getattr(defaults.stage_timeouts, stage))
            for stage in ("parsing", "detecting", "generating")
        }
    )
    history_limit = ns.get_int("history_limit", default=defaults.history_limit, min_value=1)
    history_trim_to = ns.get_int(
        "history_trim_to", default=min(defaults.history_trim_to, history_limit), min_value=1
    )
    if history_trim_to > history_limit:
        raise ValueError(
            f"engine.history_trim_to must be <= engine.history_limit ({history_trim_to} > {history_limit})"
        )
    return EngineOptions(
        failure_threshold=ns.get_int("failure_threshold", default=defaults.failure_threshold, min_value=1),
        cooldown_seconds=ns.get_float("cooldown_seconds", default=defaults.cooldown_seconds, min_value=0.0),
        max_workers=ns.get_int("max_workers", default=defaults.max_workers, min_value=1, max_value=64),
        history_limit=history_limit,
        history_trim_to=history_trim_to,
        stage_timeouts=timeouts,
    )


def _optional_timeout(ns: ConfigNamespace, key: str, default: float | None) -> float | None:
    if ns.get_raw(key, default=default) is None:
        return None
    value = ns.get_float(key, default=default if default is not None else 0.0)
    if value <= 0:
        raise ValueError(f"{ns.path}.{key} must be > 0 or null (got {value})")
    return value


def _parse_workflow(ns: ConfigNamespace, unknown: list[str]) -> WorkflowSettings:
    name = ns.get_str("name", default="CI/CD")
    strategy = ns.get_str("deployment_strategy", default=None, choices=DEPLOYMENT_STRATEGIES)

    environments: list[EnvironmentConfig] = []
    for idx, raw in enumerate(ns.get_list("environments", default=[])):
        if isinstance(raw, str):
            raw = {"name": raw}
        if not isinstance(raw, Mapping):
            raise TypeError(f"workflow.environments[{idx}] must be a mapping or a name")
        env_ns = ConfigNamespace(dict(raw), path=f"workflow.environments[{idx}]")
        environments.append(_parse_environment(env_ns))
        unknown.extend(env_ns.unconsumed_paths())

    steps_ns = ns.namespace("environment_steps", default=None)
    step_options = EnvironmentStepOptions(
        validate_secrets=steps_ns.get_bool("validate_secrets", default=True),
        include_oidc=steps_ns.get_bool("include_oidc", default=True),
        generate_env_files=steps_ns.get_bool("generate_env_files", default=True),
        include_config_generation=steps_ns.get_bool("include_config_generation", default=True),
        dispatch_input=str(steps_ns.get_str("dispatch_input", default="environment")),
    )
    return WorkflowSettings(
        name=str(name),
        deployment_strategy=strategy,
        environments=tuple(environments),
        environment_steps=step_options,
    )


def _parse_environment(ns: ConfigNamespace) -> EnvironmentConfig:
    variables = ns.namespace("variables", default=None)
    parsed_vars: dict[str, str] = {}
    for key in list(variables.data):
        value = variables.get_raw(str(key))
        if isinstance(value, (Mapping, list, tuple)):
            raise TypeError(f"{variables.path}.{key} must be a scalar (type={type(value).__name__})")
        parsed_vars[str(key)] = "" if value is None else str(value)
    return EnvironmentConfig(
        name=str(ns.get_str("name")),
        tier=ns.get_str("tier", default=None, choices=ENVIRONMENT_PRECEDENCE),  # type: ignore[arg-type]
        approval_required=ns.get_bool("approval_required", default=False),
        secrets=tuple(ns.get_list_str("secrets", default=[])),
        variables=parsed_vars,
        deployment_strategy=ns.get_str(  # type: ignore[arg-type]
            "deployment_strategy", default="static", choices=DEPLOYMENT_STRATEGIES
        ),
        rollback_enabled=ns.get_bool("rollback_enabled", default=False),
        branch=ns.get_str("branch", default=None),
    )
