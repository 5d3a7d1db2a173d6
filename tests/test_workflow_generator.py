import pytest
import yaml

from pluginkit.analyzer import AnalyzerResult, DetectionReport
from readme_cicd.generator.environment_manager import EnvironmentConfig, EnvironmentManager, SecretConfig
from readme_cicd.generator.environment_steps import DETECT_STEP_ID, EnvironmentStepGenerator
from readme_cicd.generator.workflow_generator import WorkflowGenerator, WorkflowSettings
from readme_cicd.generator.workflow_model import WorkflowJob, WorkflowModel, WorkflowStep
from readme_cicd.generator.yaml_render import render_workflow_yaml, write_workflow_file


def _report(*results):
    return DetectionReport(tuple(results))


def _ok(name, **data):
    return AnalyzerResult(analyzer=name, status="succeeded", data=data)


PYTHON = _ok(
    "python",
    setup=[{"name": "Set up Python", "uses": "actions/setup-python@v5", "with": {"python-version": "3.x"}}],
    commands=[{"name": "Install Python dependencies", "run": "pip install -r requirements.txt"}, "pytest"],
)


def _generator(settings=None, manager=None):
    return WorkflowGenerator(EnvironmentStepGenerator(manager or EnvironmentManager()), settings)


def test_build_job_collects_setup_and_deduplicated_commands():
    duplicate = _ok(
        "tox",
        setup=[{"uses": "actions/setup-python@v5"}],
        commands=["pytest", "  ", {"run": "tox -e lint"}],
    )

    model = _generator().generate(None, _report(PYTHON, duplicate))

    build = model.job("build")
    assert [(s.name, s.uses or s.run) for s in build.steps] == [
        ("Checkout", "actions/checkout@v4"),
        ("Set up Python", "actions/setup-python@v5"),
        ("Install Python dependencies", "pip install -r requirements.txt"),
        ("Run pytest", "pytest"),
        ("Run tox -e lint", "tox -e lint"),
    ]
    assert model.job("deploy") is None
    assert model.triggers == {"push": {"branches": ["main"]}, "pull_request": {"branches": ["main"]}}


def test_placeholder_step_when_nothing_detected():
    model = _generator().generate(None, _report(_ok("python", detected=False)))

    assert [s.name for s in model.job("build").steps] == ["Checkout", "No build commands detected"]


def test_failed_and_skipped_analyzers_become_warnings():
    report = _report(
        PYTHON,
        AnalyzerResult(analyzer="nodejs", status="failed", error="RuntimeError: boom"),
        AnalyzerResult(analyzer="container", status="skipped", error="circuit breaker open"),
    )

    model = _generator().generate(None, report)

    assert model.warnings == (
        "Analyzer nodejs failed: RuntimeError: boom",
        "Analyzer container skipped: circuit breaker open",
    )


def test_deploy_job_with_environments():
    manager = EnvironmentManager()
    manager.register_secret(SecretConfig("DATABASE_URL", ("production",)))
    settings = WorkflowSettings(
        name="Release",
        environments=(
            EnvironmentConfig("staging", deployment_strategy="container"),
            EnvironmentConfig("production"),
        ),
    )

    model = _generator(settings, manager).generate(None, _report(PYTHON), {"deployment_strategy": "serverless"})

    deploy = model.job("deploy")
    assert deploy.needs == ("build",)
    assert deploy.if_ == "github.event_name != 'pull_request'"
    ids = [step.id for step in deploy.steps]
    assert deploy.steps[0].name == "Checkout"
    assert ids[1] == DETECT_STEP_ID
    assert ids.count(DETECT_STEP_ID) == 1
    assert "validate-secrets-production" in ids
    assert ids[-2:] == ["deploy-staging", "deploy-production"]
    assert deploy.steps[-1].run == "serverless deploy --stage production"

    assert model.name == "Release"
    assert model.triggers["push"] == {"branches": ["main", "staging"]}
    assert model.triggers["pull_request"] == {"branches": ["main"]}
    inputs = model.triggers["workflow_dispatch"]["inputs"]["environment"]
    assert inputs["options"] == ["staging", "production"]


def test_invalid_setup_entry_is_rejected():
    bad = _ok("python", setup=[{"name": "no uses"}])

    with pytest.raises(ValueError, match="invalid setup entry"):
        _generator().generate(None, _report(bad))


def test_workflow_model_validation():
    step = WorkflowStep(name="Checkout", uses="actions/checkout@v4")

    with pytest.raises(ValueError, match="exactly one of run/uses"):
        WorkflowStep(name="Both", run="echo", uses="x")
    with pytest.raises(ValueError, match="'with' without 'uses'"):
        WorkflowStep(name="Run", run="echo", with_={"a": 1})
    with pytest.raises(ValueError, match="needs undefined"):
        WorkflowModel(
            name="CI",
            triggers={},
            jobs=(WorkflowJob(id="deploy", name="Deploy", steps=(step,), needs=("build",)),),
        )
    with pytest.raises(ValueError, match="Duplicate workflow job id"):
        WorkflowModel(
            name="CI",
            triggers={},
            jobs=(WorkflowJob(id="a", name="A", steps=(step,)), WorkflowJob(id="a", name="A", steps=(step,))),
        )


def test_yaml_rendering_preserves_order_and_uses_literal_blocks(tmp_path):
    settings = WorkflowSettings(environments=(EnvironmentConfig("production"),))
    model = _generator(settings).generate(None, _report(PYTHON))

    text = render_workflow_yaml(model)

    assert text.index("name:") < text.index("on") < text.index("jobs:")
    assert "run: |" in text
    loaded = yaml.safe_load(text)
    assert loaded == model.to_dict()
    detect = loaded["jobs"]["deploy"]["steps"][1]
    assert list(detect) == ["id", "name", "run"]

    path = write_workflow_file(model, str(tmp_path / ".github" / "workflows" / "ci.yml"))
    assert (tmp_path / ".github" / "workflows" / "ci.yml").read_text(encoding="utf-8") == text
    assert path.endswith("ci.yml")

    with pytest.raises(TypeError):
        render_workflow_yaml(model.to_dict())
