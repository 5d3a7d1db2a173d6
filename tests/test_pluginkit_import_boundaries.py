import ast
import subprocess
import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
PLUGINKIT_DIR = REPO_ROOT / "pluginkit"


def _imported_roots(path: Path) -> set[str]:
    tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))
    roots: set[str] = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            roots.update(alias.name.split(".")[0] for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and node.level == 0 and node.module:
            roots.add(node.module.split(".")[0])
    return roots


def _pluginkit_sources():
    return sorted(PLUGINKIT_DIR.rglob("*.py"))


@pytest.mark.parametrize("path", _pluginkit_sources(), ids=lambda p: str(p.relative_to(REPO_ROOT)))
def test_pluginkit_module_imports_only_stdlib_and_itself(path):
    allowed = set(sys.stdlib_module_names) | {"pluginkit", "__future__"}

    outside = sorted(_imported_roots(path) - allowed)

    assert outside == [], f"{path.name} imports {', '.join(outside)}"


@pytest.mark.parametrize("forbidden", ["readme_cicd", "yaml"])
def test_no_pluginkit_module_names_app_or_yaml_packages(forbidden):
    offenders = [str(path) for path in _pluginkit_sources() if forbidden in _imported_roots(path)]

    assert offenders == []


def test_loading_every_pluginkit_module_keeps_app_and_yaml_unloaded():
    code = (
        "import importlib, pkgutil, sys\n"
        "import pluginkit\n"
        "for info in pkgutil.walk_packages(pluginkit.__path__, 'pluginkit.'):\n"
        "    importlib.import_module(info.name)\n"
        "leaked = sorted(m for m in sys.modules if m.split('.')[0] in ('readme_cicd', 'yaml'))\n"
        "print(','.join(leaked))\n"
    )

    proc = subprocess.run(
        [sys.executable, "-c", code],
        capture_output=True,
        text=True,
        cwd=str(REPO_ROOT),
    )

    assert proc.returncode == 0, proc.stderr
    assert proc.stdout.strip() == ""
