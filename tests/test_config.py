from pathlib import Path

import pytest

from readme_cicd.foundation.config_io import load_yaml_mapping
from readme_cicd.framework.config import PipelineConfig


def test_repo_config_parses_without_warnings():
    repo_root = Path(__file__).resolve().parents[1]
    raw = load_yaml_mapping(str(repo_root / "config" / "config.yaml"))

    config, warnings = PipelineConfig.from_dict(raw)

    assert warnings == []
    assert config.strict is False
    assert config.engine.stage_timeouts.detecting == 120
    assert [env.name for env in config.workflow.environments] == ["staging", "production"]
    assert config.workflow.environments[1].approval_required is True
    assert config.workflow.environments[0].secrets == ("DATABASE_URL",)


def test_defaults_for_empty_config():
    config, warnings = PipelineConfig.from_dict({})

    assert warnings == []
    assert config == PipelineConfig()
    assert config.workflow.environments == ()
    assert config.logging.level == "INFO"


def test_unknown_keys_warn_including_nested_environment_keys():
    _config, warnings = PipelineConfig.from_dict(
        {
            "engin": {},
            "engine": {"max_worker": 3},
            "workflow": {"environments": [{"name": "staging", "secret": ["X"]}]},
        }
    )

    assert warnings == [
        "Unknown config key: engin",
        "Unknown config key: engine.max_worker",
        "Unknown config key: workflow.environments[0].secret",
    ]


def test_strict_mode_rejects_unknown_keys():
    with pytest.raises(ValueError, match=r"Unknown config keys: workflow.environments\[0\].secret"):
        PipelineConfig.from_dict(
            {"strict": True, "workflow": {"environments": [{"name": "staging", "secret": ["X"]}]}}
        )


def test_environment_entries_accept_names_and_mappings():
    config, _ = PipelineConfig.from_dict(
        {
            "workflow": {
                "deployment_strategy": "container",
                "environments": [
                    "staging",
                    {
                        "name": "prod-eu",
                        "tier": "production",
                        "branch": "release",
                        "variables": {"REPLICAS": 3, "REGION": "eu-west-1"},
                    },
                ],
            }
        }
    )

    staging, prod_eu = config.workflow.environments
    assert staging.tier == "staging"
    assert prod_eu.tier == "production"
    assert prod_eu.branch == "release"
    assert dict(prod_eu.variables) == {"REPLICAS": "3", "REGION": "eu-west-1"}
    assert config.workflow.deployment_strategy == "container"


def test_stage_timeouts_accept_null_and_reject_zero():
    config, _ = PipelineConfig.from_dict({"engine": {"stage_timeouts": {"generating": None}}})
    assert config.engine.stage_timeouts.generating is None
    assert config.engine.stage_timeouts.parsing == 30

    with pytest.raises(ValueError, match="must be > 0 or null"):
        PipelineConfig.from_dict({"engine": {"stage_timeouts": {"parsing": 0}}})


@pytest.mark.parametrize(
    ("cfg", "error", "match"),
    [
        ({"engine": {"history_limit": 10, "history_trim_to": 20}}, ValueError, "history_trim_to"),
        ({"engine": {"max_workers": 0}}, ValueError, "engine.max_workers"),
        ({"engine": {"failure_threshold": "3"}}, TypeError, "engine.failure_threshold"),
        ({"logging": {"level": "verbose"}}, ValueError, "logging.level"),
        ({"workflow": {"deployment_strategy": "ftp"}}, ValueError, "workflow.deployment_strategy"),
        ({"workflow": {"environments": [42]}}, TypeError, r"workflow.environments\[0\]"),
        ({"workflow": {"environments": [{"name": "qa", "variables": {"A": [1]}}]}}, TypeError, "must be a scalar"),
        ({"strict": "yes"}, TypeError, "strict"),
    ],
)
def test_invalid_values_raise(cfg, error, match):
    with pytest.raises(error, match=match):
        PipelineConfig.from_dict(cfg)


def test_non_mapping_config_is_rejected():
    with pytest.raises(ValueError, match="mapping"):
        PipelineConfig.from_dict(["strict"])
