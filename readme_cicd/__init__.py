"""Generate GitHub Actions workflows from README files using pluggable analyzers."""

from readme_cicd.factory import ComponentFactory, ReadmeAnalysisPipeline
from readme_cicd.framework.config import PipelineConfig
from readme_cicd.framework.context import PipelineContext, build_context

__all__ = [
    "ComponentFactory",
    "PipelineConfig",
    "PipelineContext",
    "ReadmeAnalysisPipeline",
    "build_context",
]
