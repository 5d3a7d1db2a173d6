"""YAML serialization of `WorkflowModel` (PyYAML)."""

from __future__ import annotations

import os

import yaml

from readme_cicd.generator.workflow_model import WorkflowModel


class _WorkflowDumper(yaml.SafeDumper):
    pass


def _str_representer(dumper: yaml.SafeDumper, value: str) -> yaml.ScalarNode:
    style = "|" if "\n" in value else None
    return dumper.represent_scalar("tag:yaml.org,2002:str", value, style=style)


_WorkflowDumper.add_representer(str, _str_representer)


def render_workflow_yaml(model: WorkflowModel) -> str:
    if not isinstance(model, WorkflowModel):
        raise TypeError(f"render_workflow_yaml expects WorkflowModel (type={type(model).__name__})")
    return yaml.dump(
        model.to_dict(),
        Dumper=_WorkflowDumper,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
        width=120,
    )


def write_workflow_file(model: WorkflowModel, path: str) -> str:
    text = render_workflow_yaml(model)
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    with open(path, "w", encoding="utf-8") as handle:
        handle.write(text)
    return os.path.abspath(path)
