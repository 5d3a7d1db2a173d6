from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from pluginkit.analyzer import DetectionReport
from readme_cicd.generator.environment_manager import DEPLOYMENT_STRATEGIES, EnvironmentConfig
from readme_cicd.generator.environment_steps import EnvironmentStepGenerator, EnvironmentStepOptions
from readme_cicd.generator.workflow_model import WorkflowJob, WorkflowModel, WorkflowStep

logger = logging.getLogger(__name__)

CHECKOUT_ACTION = "actions/checkout@v4"


@dataclass(frozen=True)
class WorkflowSettings:
    name: str = "CI/CD"
    deployment_strategy: str | None = None
    environments: tuple[EnvironmentConfig, ...] = ()
    environment_steps: EnvironmentStepOptions = field(default_factory=EnvironmentStepOptions)

    def __post_init__(self) -> None:
        if self.deployment_strategy is not None and self.deployment_strategy not in DEPLOYMENT_STRATEGIES:
            raise ValueError(f"Unknown deployment strategy: {self.deployment_strategy!r}")
        object.__setattr__(self, "environments", tuple(self.environments))


class WorkflowGenerator:
    """Turn a parsed document plus detection results into a `WorkflowModel`.

    The build job runs the commands analyzers contributed under
    `data["commands"]` (and actions under `data["setup"]`). When environments
    are configured, a deploy job follows with the environment setup steps and
    one deployment step per environment.
    """

    def __init__(
        self,
        step_generator: EnvironmentStepGenerator,
        settings: WorkflowSettings | None = None,
        *,
        log: logging.Logger | None = None,
    ):
        self._steps = step_generator
        self._settings = settings or WorkflowSettings()
        self._logger = log or logger

    @property
    def settings(self) -> WorkflowSettings:
        return self._settings

    def generate(
        self, document: Any, detections: DetectionReport, options: Mapping[str, Any] | None = None
    ) -> WorkflowModel:
        opts = dict(options or {})
        name = opts.get("name") or self._settings.name
        strategy = opts.get("deployment_strategy", self._settings.deployment_strategy)
        environments = self._settings.environments

        warnings: list[str] = [
            f"Analyzer {result.analyzer} failed: {result.error}" for result in detections.failed()
        ]
        warnings.extend(
            f"Analyzer {result.analyzer} skipped: {result.error}" for result in detections.skipped()
        )

        jobs = [self._build_job(detections)]
        if environments:
            setup = self._steps.generate_environment_setup_steps(
                environments, self._settings.environment_steps
            )
            warnings.extend(self._steps.warnings)
            deploy = self._steps.generate_deployment_steps(environments, strategy)
            jobs.append(
                WorkflowJob(
                    id="deploy",
                    name="Deploy",
                    needs=("build",),
                    if_="github.event_name != 'pull_request'",
                    steps=(WorkflowStep(name="Checkout", uses=CHECKOUT_ACTION), *setup, *deploy),
                )
            )

        model = WorkflowModel(
            name=str(name),
            triggers=self._triggers(environments),
            jobs=tuple(jobs),
            warnings=tuple(warnings),
        )
        title = getattr(document, "title", None)
        self._logger.info(
            "Generated workflow %r for %s (%d jobs, %d warnings)",
            model.name,
            title or "<untitled>",
            len(model.jobs),
            len(warnings),
        )
        return model

    def _build_job(self, detections: DetectionReport) -> WorkflowJob:
        steps: list[WorkflowStep] = [WorkflowStep(name="Checkout", uses=CHECKOUT_ACTION)]
        seen_actions: set[str] = set()
        seen_commands: set[str] = set()

        for result in detections.succeeded():
            for entry in result.data.get("setup", ()) or ():
                step = self._setup_step(result.analyzer, entry)
                if step.uses not in seen_actions:
                    seen_actions.add(step.uses or "")
                    steps.append(step)
        for result in detections.succeeded():
            for command in result.data.get("commands", ()) or ():
                run = command.get("run") if isinstance(command, Mapping) else command
                if not isinstance(run, str) or not run.strip() or run.strip() in seen_commands:
                    continue
                seen_commands.add(run.strip())
                label = command.get("name") if isinstance(command, Mapping) else None
                steps.append(WorkflowStep(name=label or f"Run {run.strip()}", run=run.strip()))

        if len(steps) == 1:
            steps.append(WorkflowStep(name="No build commands detected", run='echo "No build commands detected"'))
        return WorkflowJob(id="build", name="Build", steps=tuple(steps))

    def _setup_step(self, analyzer: str, entry: Any) -> WorkflowStep:
        if not isinstance(entry, Mapping) or not isinstance(entry.get("uses"), str):
            raise ValueError(f"Analyzer {analyzer} produced an invalid setup entry: {entry!r}")
        return WorkflowStep(
            name=str(entry.get("name") or f"Set up {entry['uses']}"),
            uses=entry["uses"],
            with_=dict(entry.get("with") or {}),
        )

    def _triggers(self, environments: tuple[EnvironmentConfig, ...]) -> dict[str, Any]:
        branches: list[str] = []
        for env in sorted(environments, key=lambda e: e.precedence):
            branch = self._steps.branch_for(env)
            if branch and branch not in branches:
                branches.append(branch)
        if not branches:
            branches = ["main"]

        triggers: dict[str, Any] = {
            "push": {"branches": branches},
            "pull_request": {"branches": [branches[0]]},
        }
        if environments:
            triggers["workflow_dispatch"] = {
                "inputs": {
                    self._settings.environment_steps.dispatch_input: {
                        "description": "Target environment",
                        "required": False,
                        "type": "choice",
                        "options": [env.name for env in environments],
                    }
                }
            }
        return triggers
