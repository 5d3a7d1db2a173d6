"""Built-in README analyzers. Each one is an ordinary plugin; none is privileged by the engine."""

from readme_cicd.analyzers.builtin import (
    ContainerAnalyzer,
    NodeAnalyzer,
    PythonAnalyzer,
    default_analyzer_configs,
)

__all__ = ["ContainerAnalyzer", "NodeAnalyzer", "PythonAnalyzer", "default_analyzer_configs"]
