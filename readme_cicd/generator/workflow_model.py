"""Ordered, serializer-agnostic model of a GitHub Actions workflow."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping


@dataclass(frozen=True)
class WorkflowStep:
    name: str
    run: str | None = None
    uses: str | None = None
    with_: Mapping[str, Any] = field(default_factory=dict)
    if_: str | None = None
    env: Mapping[str, str] = field(default_factory=dict)
    id: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValueError("Workflow step name cannot be empty")
        if (self.run is None) == (self.uses is None):
            raise ValueError(f"Workflow step {self.name!r} must set exactly one of run/uses")
        if self.with_ and self.uses is None:
            raise ValueError(f"Workflow step {self.name!r} sets 'with' without 'uses'")
        object.__setattr__(self, "with_", MappingProxyType(dict(self.with_)))
        object.__setattr__(self, "env", MappingProxyType(dict(self.env)))

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.id:
            out["id"] = self.id
        out["name"] = self.name
        if self.if_:
            out["if"] = self.if_
        if self.uses is not None:
            out["uses"] = self.uses
            if self.with_:
                out["with"] = dict(self.with_)
        if self.run is not None:
            out["run"] = self.run
        if self.env:
            out["env"] = dict(self.env)
        return out


@dataclass(frozen=True)
class WorkflowJob:
    id: str
    name: str
    steps: tuple[WorkflowStep, ...]
    runs_on: str = "ubuntu-latest"
    needs: tuple[str, ...] = ()
    environment: str | None = None
    if_: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name, "runs-on": self.runs_on}
        if self.needs:
            out["needs"] = list(self.needs)
        if self.if_:
            out["if"] = self.if_
        if self.environment:
            out["environment"] = self.environment
        out["steps"] = [step.to_dict() for step in self.steps]
        return out


@dataclass(frozen=True)
class WorkflowModel:
    name: str
    triggers: Mapping[str, Any]
    jobs: tuple[WorkflowJob, ...]
    warnings: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for job in self.jobs:
            if job.id in seen:
                raise ValueError(f"Duplicate workflow job id: {job.id}")
            missing = [need for need in job.needs if need not in seen]
            if missing:
                raise ValueError(f"Job {job.id} needs undefined or later job(s): {', '.join(missing)}")
            seen.add(job.id)

    def job(self, job_id: str) -> WorkflowJob | None:
        for job in self.jobs:
            if job.id == job_id:
                return job
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "on": _plain(self.triggers),
            "jobs": {job.id: job.to_dict() for job in self.jobs},
        }


def _plain(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value
