import pytest

from pluginkit.analyzer import AnalyzerConfig
from pluginkit.errors import InterfaceValidationError, RegistrationStateError
from readme_cicd.analyzers import default_analyzer_configs
from readme_cicd.factory import ComponentFactory
from readme_cicd.framework.config import PipelineConfig

README = """\
# Demo

## Install

```bash
pip install -r requirements.txt
npm ci
```

## Test

```bash
pytest
npm test
```
"""


class _Analyzer:
    def __init__(self, name, *, declared=()):
        self.name = name
        self.declared = tuple(declared)

    def analyze(self, document):
        return {"seen_title": document.title}

    def get_capabilities(self):
        return {"dependencies": list(self.declared)}

    def validate_interface(self):
        return True


class _NoAnalyze:
    def __init__(self, name):
        self.name = name

    def get_capabilities(self):
        return {}

    def validate_interface(self):
        return True


def _cfg(name, *deps, analyzer=None):
    return AnalyzerConfig(name=name, analyzer=analyzer or _Analyzer(name), dependencies=deps)


def test_batch_registers_in_dependency_order_and_reports_in_input_order():
    factory = ComponentFactory()

    results = factory.register_custom_analyzers(
        [_cfg("report", "python", "nodejs"), _cfg("python"), _cfg("nodejs")]
    )

    assert [r.analyzer_name for r in results] == ["report", "python", "nodejs"]
    assert all(r.success for r in results)
    assert factory.get_registered_analyzers() == ("python", "nodejs", "report")


def test_cycle_is_reported_with_exact_members():
    factory = ComponentFactory()

    results = factory.register_custom_analyzers([_cfg("a", "b"), _cfg("b", "a"), _cfg("c")])

    a, b, c = results
    assert c.success
    for result in (a, b):
        assert not result.success
        assert isinstance(result.error, RegistrationStateError)
        assert result.error.cycle == ("a", "b", "a")
        assert str(result.error) == "Circular dependency detected: a -> b -> a"
    assert factory.get_registered_analyzers() == ("c",)


def test_unknown_dependency_blocks_the_analyzer_and_its_dependents():
    factory = ComponentFactory()

    ghost_user, downstream = factory.register_custom_analyzers([_cfg("a", "ghost"), _cfg("b", "a")])

    assert ghost_user.error.missing_dependencies == ("ghost",)
    assert "depends on unknown analyzer(s): ghost" in str(ghost_user.error)
    assert "which could not be resolved" in str(downstream.error)
    assert factory.get_registered_analyzers() == ()


def test_dependents_of_a_failed_registration_fail_too():
    factory = ComponentFactory()

    broken, dependent, independent = factory.register_custom_analyzers(
        [_cfg("a", analyzer=_NoAnalyze("a")), _cfg("b", "a"), _cfg("c")]
    )

    assert isinstance(broken.error, InterfaceValidationError)
    assert str(dependent.error) == "Analyzer 'b' depends on 'a', which failed to register"
    assert independent.success
    assert set(factory.registry.get_failed_analyzers()) == {"a", "b"}


def test_already_registered_analyzers_satisfy_dependencies():
    factory = ComponentFactory()
    factory.register_custom_analyzers([_cfg("python")])

    (result,) = factory.register_custom_analyzers([_cfg("report", "python")])

    assert result.success


def test_capability_declared_dependencies_are_honoured():
    factory = ComponentFactory()

    results = factory.register_custom_analyzers(
        [_cfg("report", analyzer=_Analyzer("report", declared=("python",))), _cfg("python")]
    )

    assert all(r.success for r in results)
    assert factory.get_registered_analyzers() == ("python", "report")


def test_duplicate_names_within_a_batch_and_disabled_configs():
    factory = ComponentFactory()
    disabled = AnalyzerConfig(name="off", analyzer=_Analyzer("off"), enabled=False)

    results = factory.register_custom_analyzers([_cfg("python"), _cfg("python"), disabled])

    assert len(results) == 2
    assert results[0].success
    assert "Duplicate analyzer name in batch" in str(results[1].error)
    assert not factory.registry.is_registered("off")


def test_default_analyzers_and_readme_pipeline():
    factory = ComponentFactory()
    results = factory.register_custom_analyzers(default_analyzer_configs())
    assert all(r.success for r in results)
    assert factory.get_registered_analyzers() == ("python", "nodejs", "container")

    pipeline = factory.create_readme_parser()
    report = pipeline.analyze(README)

    python = report.get("python")
    assert python.data["detected"] is True
    assert [c["run"] for c in python.data["commands"]] == ["pip install -r requirements.txt", "pytest"]
    assert [c["run"] for c in report.get("nodejs").data["commands"]] == ["npm ci", "npm test"]
    assert report.get("container").data["detected"] is False

    only_python = factory.create_readme_parser({"analyzers": ["python"]})
    assert only_python.analyzer_names == ("python",)

    with pytest.raises(ValueError, match="did you mean: python"):
        factory.create_readme_parser({"analyzers": ["pyhton"]})


def test_readme_pipeline_continues_past_a_failing_analyzer():
    class _Exploding(_Analyzer):
        def analyze(self, document):
            raise RuntimeError("boom")

    factory = ComponentFactory()
    factory.register_custom_analyzers([_cfg("bad", analyzer=_Exploding("bad")), _cfg("good")])

    report = factory.create_readme_parser().analyze("# Title\n")

    assert report.get("bad").status == "failed"
    assert report.get("good").data == {"seen_title": "Title"}


def test_engine_from_factory_generates_workflow():
    config, _ = PipelineConfig.from_dict({"workflow": {"name": "Pipeline"}})
    factory = ComponentFactory(config)
    factory.register_custom_analyzers(default_analyzer_configs())

    with factory.create_engine() as engine:
        workflow = engine.run(README).unwrap()

    assert workflow.name == "Pipeline"
    runs = [step.run for step in workflow.job("build").steps if step.run]
    assert runs == ["pip install -r requirements.txt", "pytest", "npm ci", "npm test"]


def test_reset_clears_registry_and_environment_manager():
    factory = ComponentFactory()
    factory.register_custom_analyzers([_cfg("python")])
    factory.environment_manager.register_preset("docker")

    factory.reset()

    assert factory.get_registered_analyzers() == ()
    assert factory.environment_manager.get_secrets() == ()
