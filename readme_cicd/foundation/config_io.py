from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

CONFIG_ENV_VAR = "README_CICD_CONFIG"
ROOT_MARKERS: tuple[str, ...] = ("pyproject.toml", ".git")


def find_repo_root(start: str | os.PathLike[str] | None = None) -> str:
    """Nearest directory at or above `start` holding one of `ROOT_MARKERS`."""

    origin = Path(start) if start else Path.cwd()
    origin = origin.resolve()
    here = origin.parent if origin.is_file() else origin
    while True:
        if any(here.joinpath(marker).exists() for marker in ROOT_MARKERS):
            return str(here)
        if here.parent == here:
            break
        here = here.parent
    raise FileNotFoundError(f"Cannot locate repo root: searched from {origin} for {', '.join(ROOT_MARKERS)}")


def load_yaml_mapping(path: str) -> dict[str, Any]:
    text = Path(path).read_text(encoding="utf-8")
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {path}: {exc}") from exc
    if loaded is None:
        return {}
    if isinstance(loaded, Mapping):
        return dict(loaded)
    raise ValueError(f"Config file must contain a YAML mapping: {path}")


def deep_merge(base: Any, overlay: Any, *, path: str = "") -> Any:
    """Merge `overlay` onto `base`; mappings merge recursively, lists and scalars replace."""

    if base is None or overlay is None:
        return overlay if overlay is not None else base

    if isinstance(base, Mapping):
        if not isinstance(overlay, Mapping):
            raise ValueError(
                f"Invalid config overlay at {path or '<root>'}: expected mapping, got {type(overlay).__name__}"
            )
        merged: dict[str, Any] = dict(base)
        for key, value in overlay.items():
            child_path = f"{path}.{key}" if path else str(key)
            merged[key] = deep_merge(base[key], value, path=child_path) if key in base else value
        return merged

    if isinstance(overlay, Mapping) or isinstance(base, (list, tuple)) != isinstance(overlay, (list, tuple)):
        raise ValueError(
            f"Invalid config overlay at {path or '<root>'}: "
            f"cannot merge {type(overlay).__name__} onto {type(base).__name__}"
        )
    return list(overlay) if isinstance(overlay, (list, tuple)) else overlay


def load_config(
    *,
    config_path: str | os.PathLike[str] | None = None,
    env_var: str | None = CONFIG_ENV_VAR,
    config_dir: str = "config",
    start_dir: str | os.PathLike[str] | None = None,
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Load `config/config.yaml` (plus `config.local.yaml` when present).

    An explicit `config_path`, or the file named by `env_var`, replaces the
    base+overlay lookup and is loaded on its own. Returns `(cfg, meta)` where
    `meta` records which files were read.
    """

    explicit: str | None = None
    mode = "explicit"
    if config_path is not None:
        explicit = str(config_path).strip() or None
    elif env_var:
        explicit = os.environ.get(env_var, "").strip() or None
        mode = "env"

    if explicit:
        resolved = os.path.abspath(os.path.expandvars(os.path.expanduser(explicit)))
        return load_yaml_mapping(resolved), {
            "mode": mode,
            "paths": [resolved],
            "env_var": env_var,
            "repo_root": None,
        }

    if os.path.isabs(config_dir):
        repo_root = None
        directory = config_dir
    else:
        repo_root = find_repo_root(start_dir)
        directory = os.path.join(repo_root, config_dir)

    base_path = os.path.abspath(os.path.join(directory, "config.yaml"))
    if not os.path.exists(base_path):
        raise FileNotFoundError(f"Missing base config file: {base_path}")

    cfg = load_yaml_mapping(base_path)
    paths = [base_path]
    overlay_path = os.path.abspath(os.path.join(directory, "config.local.yaml"))
    if os.path.exists(overlay_path):
        cfg = deep_merge(cfg, load_yaml_mapping(overlay_path))
        paths.append(overlay_path)

    return cfg, {
        "mode": "base+local" if len(paths) > 1 else "base",
        "paths": paths,
        "env_var": env_var,
        "repo_root": repo_root,
    }
