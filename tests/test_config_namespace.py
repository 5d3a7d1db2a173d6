import pytest

from pluginkit.config_namespace import ConfigNamespace


def test_unconsumed_paths_include_nested_namespaces():
    ns = ConfigNamespace({"a": 1, "typo": 2, "child": {"x": True, "oops": 3}}, path="engine")

    assert ns.get_int("a") == 1
    assert ns.namespace("child").get_bool("x") is True

    assert ns.unconsumed_paths() == ("engine.typo", "engine.child.oops")
    with pytest.raises(ValueError, match="engine.typo"):
        ns.assert_consumed()


def test_effective_values_track_defaults_and_children():
    ns = ConfigNamespace({"child": {"x": False}})

    ns.get_float("timeout", default=2)
    ns.namespace("child").get_bool("x")
    ns.namespace("missing", default=None)

    assert ns.effective_values() == {"timeout": 2.0, "child": {"x": False}}


def test_typed_accessors_validate():
    ns = ConfigNamespace(
        {"flag": "yes", "count": True, "ratio": "1", "name": "  ", "mode": "fast", "items": ["a", ""]},
        path="cfg",
    )

    with pytest.raises(TypeError, match="cfg.flag must be a boolean"):
        ns.get_bool("flag")
    with pytest.raises(TypeError, match="cfg.count must be an int"):
        ns.get_int("count")
    with pytest.raises(TypeError, match="cfg.ratio must be a float"):
        ns.get_float("ratio")
    with pytest.raises(ValueError, match="cfg.name cannot be empty"):
        ns.get_str("name")
    with pytest.raises(ValueError, match="must be one of"):
        ns.get_str("mode", choices=("slow", "safe"))
    with pytest.raises(ValueError, match=r"cfg.items\[1\]"):
        ns.get_list_str("items")


def test_bounds_and_missing_keys():
    ns = ConfigNamespace({"workers": 0, "delay": 120.0}, path="engine")

    with pytest.raises(ValueError, match=">= 1"):
        ns.get_int("workers", min_value=1)
    with pytest.raises(ValueError, match="<= 60.0"):
        ns.get_float("delay", max_value=60)
    with pytest.raises(ValueError, match="Missing required config key: engine.absent"):
        ns.get_raw("absent")
    with pytest.raises(ValueError, match="Missing required config namespace"):
        ns.namespace("section")


def test_namespace_type_errors_and_reuse():
    ns = ConfigNamespace({"section": [1, 2], "nested": {"k": 1}})

    with pytest.raises(TypeError, match="section must be a mapping"):
        ns.namespace("section")
    assert ns.namespace("nested") is ns.namespace("nested")
    with pytest.raises(ValueError, match="already accessed"):
        ns.get_raw("nested")


def test_get_str_none_value():
    ns = ConfigNamespace({"strategy": None})

    assert ns.get_str("strategy", choices=("static",)) is None
    assert ns.unconsumed_keys() == ()
