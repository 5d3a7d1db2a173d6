import pytest

from readme_cicd.generator.environment_manager import EnvironmentConfig, EnvironmentManager
from readme_cicd.generator.environment_steps import EnvironmentStepGenerator, environment_guard


def _deploy(environments, strategy=None):
    return EnvironmentStepGenerator(EnvironmentManager()).generate_deployment_steps(environments, strategy)


@pytest.mark.parametrize(
    ("strategy", "name", "snippet"),
    [
        ("static", "Deploy to staging (Static)", "npm run build"),
        ("container", "Build and push container for staging", "docker push"),
        ("serverless", "Deploy serverless to staging", "serverless deploy --stage staging"),
        ("traditional", "Deploy to staging (Traditional)", "rsync"),
    ],
)
def test_one_step_per_environment_for_each_strategy(strategy, name, snippet):
    (step,) = _deploy(["staging"], strategy)

    assert step.id == "deploy-staging"
    assert step.name == name
    assert snippet in step.run
    assert step.if_ == environment_guard("staging")
    assert step.env["DEPLOY_ENV"] == "staging"


def test_environment_strategy_is_used_when_no_override():
    steps = _deploy(
        [
            EnvironmentConfig("staging", deployment_strategy="container"),
            EnvironmentConfig("production", deployment_strategy="serverless"),
        ]
    )

    assert [step.name for step in steps] == [
        "Build and push container for staging",
        "Deploy serverless to production",
    ]


def test_traditional_deploy_reads_host_credentials_from_secrets():
    (step,) = _deploy(["production"], "traditional")

    assert step.env["DEPLOY_HOST"] == "${{ secrets.DEPLOY_HOST }}"
    assert step.env["DEPLOY_USER"] == "${{ secrets.DEPLOY_USER }}"


def test_unknown_strategy_is_rejected():
    with pytest.raises(ValueError, match="Unknown deployment strategy"):
        _deploy(["staging"], "ftp")


def test_no_environments_means_no_steps():
    assert _deploy([]) == []
