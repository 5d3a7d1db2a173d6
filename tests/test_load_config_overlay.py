import os
from pathlib import Path

import pytest

from readme_cicd.foundation.config_io import deep_merge, find_repo_root, load_config

ENV_VAR = "TEST_README_CICD_CONFIG"


def test_load_config_base_only(tmp_path, monkeypatch):
    monkeypatch.delenv(ENV_VAR, raising=False)
    (tmp_path / "config.yaml").write_text("a: 1\nb:\n  c: 2\n", encoding="utf-8")

    cfg, meta = load_config(config_dir=str(tmp_path), env_var=ENV_VAR)

    assert cfg == {"a": 1, "b": {"c": 2}}
    assert meta["mode"] == "base"
    assert os.path.basename(meta["paths"][0]) == "config.yaml"


def test_load_config_base_plus_local_overlay(tmp_path, monkeypatch):
    monkeypatch.delenv(ENV_VAR, raising=False)
    (tmp_path / "config.yaml").write_text("a: 1\nb:\n  c: 2\n  l: [1, 2]\n", encoding="utf-8")
    (tmp_path / "config.local.yaml").write_text("b:\n  c: 3\n  d: 4\n  l: [9]\n", encoding="utf-8")

    cfg, meta = load_config(config_dir=str(tmp_path), env_var=ENV_VAR)

    assert cfg == {"a": 1, "b": {"c": 3, "d": 4, "l": [9]}}
    assert meta["mode"] == "base+local"
    assert len(meta["paths"]) == 2


def test_load_config_overlay_type_mismatch_raises(tmp_path, monkeypatch):
    monkeypatch.delenv(ENV_VAR, raising=False)
    (tmp_path / "config.yaml").write_text("a:\n  b: 1\n", encoding="utf-8")
    (tmp_path / "config.local.yaml").write_text("a: [1, 2]\n", encoding="utf-8")

    with pytest.raises(ValueError, match=r"Invalid config overlay at a"):
        load_config(config_dir=str(tmp_path), env_var=ENV_VAR)


def test_load_config_invalid_overlay_yaml_raises(tmp_path, monkeypatch):
    monkeypatch.delenv(ENV_VAR, raising=False)
    (tmp_path / "config.yaml").write_text("a: 1\n", encoding="utf-8")
    (tmp_path / "config.local.yaml").write_text("a: [1, 2\n", encoding="utf-8")

    with pytest.raises(ValueError) as excinfo:
        load_config(config_dir=str(tmp_path), env_var=ENV_VAR)

    assert "config.local.yaml" in str(excinfo.value)


def test_load_config_env_override_loads_single_file(tmp_path, monkeypatch):
    base_dir = tmp_path / "base"
    base_dir.mkdir()
    env_dir = tmp_path / "env"
    env_dir.mkdir()

    (base_dir / "config.yaml").write_text("a: 1\n", encoding="utf-8")
    (base_dir / "config.local.yaml").write_text("a: 2\n", encoding="utf-8")
    env_path = env_dir / "my_config.yaml"
    env_path.write_text("a: 999\n", encoding="utf-8")

    monkeypatch.setenv(ENV_VAR, str(env_path))
    cfg, meta = load_config(config_dir=str(base_dir), env_var=ENV_VAR)

    assert cfg == {"a": 999}
    assert meta["mode"] == "env"
    assert meta["paths"] == [os.path.abspath(str(env_path))]


def test_load_config_rejects_non_mapping_file(tmp_path, monkeypatch):
    monkeypatch.delenv(ENV_VAR, raising=False)
    (tmp_path / "config.yaml").write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(ValueError, match="YAML mapping"):
        load_config(config_dir=str(tmp_path), env_var=ENV_VAR)


def test_load_config_finds_repo_root_from_subdir(tmp_path, monkeypatch):
    (tmp_path / "pyproject.toml").write_text("[project]\nname = 'demo'\n", encoding="utf-8")
    (tmp_path / "config").mkdir()
    (tmp_path / "config" / "config.yaml").write_text("strict: true\n", encoding="utf-8")
    nested = tmp_path / "docs" / "guide"
    nested.mkdir(parents=True)

    monkeypatch.delenv(ENV_VAR, raising=False)
    monkeypatch.chdir(nested)

    cfg, meta = load_config(env_var=ENV_VAR)

    assert cfg == {"strict": True}
    assert Path(meta["paths"][0]).resolve() == (tmp_path / "config" / "config.yaml").resolve()
    assert Path(str(meta["repo_root"])).resolve() == tmp_path.resolve()


def test_find_repo_root_walks_up_to_marker(tmp_path):
    repo = tmp_path / "repo"
    (repo / ".git").mkdir(parents=True)
    nested = repo / "src" / "pkg"
    nested.mkdir(parents=True)

    assert find_repo_root(nested) == str(repo.resolve())


def test_deep_merge_none_overlay_keeps_base():
    assert deep_merge({"a": 1}, None) == {"a": 1}
    assert deep_merge({"a": {"b": 1}}, {"a": {"c": 2}}) == {"a": {"b": 1, "c": 2}}
