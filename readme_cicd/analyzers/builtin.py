from __future__ import annotations

import re
from typing import Any

from pluginkit.analyzer import AnalyzerCapabilities, AnalyzerConfig
from readme_cicd.parsing.markdown_parser import ParsedDocument

_SHELL_LANGS = ("bash", "sh", "shell", "console", "zsh", "")


def _shell_lines(document: ParsedDocument) -> list[str]:
    out: list[str] = []
    for block in document.code_in(*_SHELL_LANGS):
        for raw in block.code.splitlines():
            line = raw.strip()
            if line.startswith("$ "):
                line = line[2:].strip()
            if line and not line.startswith("#"):
                out.append(line)
    return out


def _first_matching(lines: list[str], pattern: str) -> str | None:
    regex = re.compile(pattern)
    return next((line for line in lines if regex.search(line)), None)


class _ReadmeAnalyzer:
    name = ""
    dependencies: tuple[str, ...] = ()

    def get_capabilities(self) -> AnalyzerCapabilities:
        return AnalyzerCapabilities(
            supported_content_types=("text/markdown",),
            estimated_processing_time=0.05,
            dependencies=self.dependencies,
        )

    def validate_interface(self) -> bool:
        return bool(self.name)


class PythonAnalyzer(_ReadmeAnalyzer):
    name = "python"

    def analyze(self, document: ParsedDocument) -> dict[str, Any]:
        lines = _shell_lines(document)
        python_blocks = document.code_in("python", "py")
        hits = sum(
            1
            for line in lines
            if re.search(r"\b(pip|pip3|poetry|pipenv|pytest|python3?)\b", line)
        )
        if not hits and not python_blocks:
            return {"detected": False, "confidence": 0.0}

        commands: list[dict[str, str]] = []
        install = _first_matching(lines, r"^(pip3? install|poetry install|pipenv install)")
        if install:
            commands.append({"name": "Install Python dependencies", "run": install})
        test = _first_matching(lines, r"^(python3? -m pytest|pytest|poetry run pytest|tox)\b")
        if test:
            commands.append({"name": "Run Python tests", "run": test})

        confidence = min(1.0, 0.4 + 0.15 * hits + (0.2 if python_blocks else 0.0))
        return {
            "detected": True,
            "language": "python",
            "confidence": round(confidence, 2),
            "setup": [{"name": "Set up Python", "uses": "actions/setup-python@v5", "with": {"python-version": "3.x"}}],
            "commands": commands,
        }


class NodeAnalyzer(_ReadmeAnalyzer):
    name = "nodejs"

    def analyze(self, document: ParsedDocument) -> dict[str, Any]:
        lines = _shell_lines(document)
        hits = sum(1 for line in lines if re.search(r"\b(npm|yarn|pnpm|npx|node)\b", line))
        if not hits and not document.code_in("javascript", "js", "typescript", "ts"):
            return {"detected": False, "confidence": 0.0}

        commands: list[dict[str, str]] = []
        install = _first_matching(lines, r"^(npm (install|ci)|yarn( install)?$|pnpm install)")
        if install:
            commands.append({"name": "Install Node dependencies", "run": install})
        for script in ("build", "test"):
            found = _first_matching(lines, rf"^(npm run {script}|npm {script}|yarn {script}|pnpm {script})\b")
            if found:
                commands.append({"name": f"Run Node {script}", "run": found})

        return {
            "detected": True,
            "language": "javascript",
            "confidence": round(min(1.0, 0.4 + 0.15 * hits), 2),
            "setup": [{"name": "Set up Node.js", "uses": "actions/setup-node@v4", "with": {"node-version": "20"}}],
            "commands": commands,
        }


class ContainerAnalyzer(_ReadmeAnalyzer):
    """Detects Docker usage; runs after the language analyzers so its build step comes last."""

    name = "container"
    dependencies = ("python", "nodejs")

    def analyze(self, document: ParsedDocument) -> dict[str, Any]:
        lines = _shell_lines(document)
        build = _first_matching(lines, r"^docker build\b")
        compose = _first_matching(lines, r"^docker[- ]compose\b")
        mentioned = bool(re.search(r"\bdocker(file)?\b", document.content, re.IGNORECASE))
        if not (build or compose or mentioned):
            return {"detected": False, "confidence": 0.0}
        commands = [{"name": "Build container image", "run": build}] if build else []
        return {
            "detected": True,
            "platform": "docker",
            "confidence": 0.9 if build else 0.5,
            "commands": commands,
        }


def default_analyzer_configs() -> list[AnalyzerConfig]:
    analyzers = (PythonAnalyzer(), NodeAnalyzer(), ContainerAnalyzer())
    return [
        AnalyzerConfig(name=a.name, analyzer=a, dependencies=a.dependencies) for a in analyzers
    ]
