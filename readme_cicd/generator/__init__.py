"""Workflow generation: environment management, environment steps, and the workflow model."""

from readme_cicd.generator.environment_manager import (
    ConfigFileTemplate,
    EnvironmentConfig,
    EnvironmentManager,
    OIDCConfig,
    SecretConfig,
    VariableConfig,
)
from readme_cicd.generator.environment_steps import EnvironmentStepGenerator, EnvironmentStepOptions
from readme_cicd.generator.workflow_generator import WorkflowGenerator, WorkflowSettings
from readme_cicd.generator.workflow_model import WorkflowJob, WorkflowModel, WorkflowStep
from readme_cicd.generator.yaml_render import render_workflow_yaml, write_workflow_file

__all__ = [
    "ConfigFileTemplate",
    "EnvironmentConfig",
    "EnvironmentManager",
    "EnvironmentStepGenerator",
    "EnvironmentStepOptions",
    "OIDCConfig",
    "SecretConfig",
    "VariableConfig",
    "WorkflowGenerator",
    "WorkflowJob",
    "WorkflowModel",
    "WorkflowSettings",
    "WorkflowStep",
    "render_workflow_yaml",
    "write_workflow_file",
]
