import os

import pytest

from brickkit.brick_registry import BrickRegistry
from brickkit.config import RuntimeConfig
from brickkit.config_namespace import ConfigNamespace
from brickkit.foundation.config_io import deep_merge, find_repo_root, load_config


def test_load_config_base_only(tmp_path, monkeypatch):
    monkeypatch.delenv("TEST_BRICKKIT_CONFIG", raising=False)
    (tmp_path / "config.yaml").write_text("a: 1\nb:\n  c: 2\n", encoding="utf-8")

    cfg, meta = load_config(config_rel_path=str(tmp_path), env_var="TEST_BRICKKIT_CONFIG")

    assert cfg == {"a": 1, "b": {"c": 2}}
    assert meta["mode"] == "base"
    assert os.path.basename(meta["paths"][0]) == "config.yaml"


def test_load_config_base_plus_local_overlay(tmp_path, monkeypatch):
    monkeypatch.delenv("TEST_BRICKKIT_CONFIG", raising=False)
    (tmp_path / "config.yaml").write_text("a: 1\nb:\n  c: 2\n", encoding="utf-8")
    (tmp_path / "config.local.yaml").write_text("b:\n  c: 3\n  d: 4\n", encoding="utf-8")

    cfg, meta = load_config(config_rel_path=str(tmp_path), env_var="TEST_BRICKKIT_CONFIG")

    assert cfg == {"a": 1, "b": {"c": 3, "d": 4}}
    assert meta["mode"] == "base+local"
    assert len(meta["paths"]) == 2


def test_load_config_env_var_selects_file(tmp_path, monkeypatch):
    path = tmp_path / "custom.yaml"
    path.write_text("runtime:\n  api_version: v2\n", encoding="utf-8")
    monkeypatch.setenv("TEST_BRICKKIT_CONFIG", str(path))

    cfg, meta = load_config(config_rel_path=str(tmp_path / "unused"), env_var="TEST_BRICKKIT_CONFIG")

    assert cfg == {"runtime": {"api_version": "v2"}}
    assert meta["mode"] == "env"


def test_load_config_discovers_repo_root(tmp_path, monkeypatch):
    monkeypatch.delenv("TEST_BRICKKIT_CONFIG", raising=False)
    (tmp_path / "pyproject.toml").write_text("[project]\nname = 'x'\n", encoding="utf-8")
    (tmp_path / "config").mkdir()
    (tmp_path / "config" / "config.yaml").write_text("a: 1\n", encoding="utf-8")
    nested = tmp_path / "pkg" / "sub"
    nested.mkdir(parents=True)

    assert find_repo_root(nested) == str(tmp_path.resolve())
    cfg, meta = load_config(env_var="TEST_BRICKKIT_CONFIG", start_dir=nested)
    assert cfg == {"a": 1}
    assert meta["repo_root"] == str(tmp_path.resolve())


def test_load_config_missing_base_raises(tmp_path, monkeypatch):
    monkeypatch.delenv("TEST_BRICKKIT_CONFIG", raising=False)
    with pytest.raises(FileNotFoundError, match=r"Missing base config file"):
        load_config(config_rel_path=str(tmp_path), env_var="TEST_BRICKKIT_CONFIG")


def test_load_config_invalid_yaml_raises(tmp_path, monkeypatch):
    monkeypatch.delenv("TEST_BRICKKIT_CONFIG", raising=False)
    (tmp_path / "config.yaml").write_text("a: [1, 2\n", encoding="utf-8")
    with pytest.raises(ValueError, match=r"Invalid YAML"):
        load_config(config_rel_path=str(tmp_path), env_var="TEST_BRICKKIT_CONFIG")


def test_deep_merge_type_mismatch_raises():
    assert deep_merge({"a": {"b": 1}}, {"a": {"c": 2}}) == {"a": {"b": 1, "c": 2}}
    assert deep_merge({"a": [1, 2]}, {"a": [3]}) == {"a": [3]}
    with pytest.raises(ValueError, match=r"Invalid config overlay merge at a"):
        deep_merge({"a": {"b": 1}}, {"a": [1, 2]})


def test_runtime_config_defaults():
    cfg, warnings = RuntimeConfig.from_dict({})

    assert cfg == RuntimeConfig()
    assert cfg.api_version == "v3"
    assert cfg.max_pipeline_depth == 64
    assert cfg.state_key_prefix == "#modVariables/"
    assert warnings == []


def test_runtime_config_parses_values_and_warns():
    cfg, warnings = RuntimeConfig.from_dict(
        {
            "runtime": {
                "api_version": "v2",
                "log_values": True,
                "max_pipeline_depth": 8,
                "autoescape": False,
                "implicit_template_engine": "nunjucks",
            },
            "state": {"key_prefix": "#vars/"},
        }
    )

    assert cfg.api_version == "v2"
    assert cfg.max_pipeline_depth == 8
    assert cfg.implicit_template_engine == "nunjucks"
    assert cfg.state_key_prefix == "#vars/"
    assert len(warnings) == 2
    assert any("log_values" in w for w in warnings)


def test_runtime_config_rejects_unknown_keys():
    with pytest.raises(ValueError, match=r"Unknown config keys under runtime: api_verison"):
        RuntimeConfig.from_dict({"runtime": {"api_verison": "v2"}})
    with pytest.raises(ValueError, match=r"Unknown config keys under <root>: extra"):
        RuntimeConfig.from_dict({"extra": 1})


def test_runtime_config_rejects_bad_values():
    with pytest.raises(ValueError, match=r"runtime.api_version must be one of: v1, v2, v3"):
        RuntimeConfig.from_dict({"runtime": {"api_version": "v4"}})
    with pytest.raises(ValueError, match=r"runtime.max_pipeline_depth must be >= 1"):
        RuntimeConfig.from_dict({"runtime": {"max_pipeline_depth": 0}})
    with pytest.raises(TypeError, match=r"runtime.log_values must be a boolean"):
        RuntimeConfig.from_dict({"runtime": {"log_values": "yes"}})


def test_runtime_config_load_and_build_runtime_objects(tmp_path, monkeypatch):
    monkeypatch.delenv("TEST_BRICKKIT_CONFIG", raising=False)
    (tmp_path / "config.yaml").write_text(
        "runtime:\n  api_version: v2\n  max_pipeline_depth: 4\nstate:\n  key_prefix: '#vars/'\n",
        encoding="utf-8",
    )

    cfg, _warnings = RuntimeConfig.load(config_rel_path=str(tmp_path), env_var="TEST_BRICKKIT_CONFIG")
    options = cfg.run_options(BrickRegistry())
    store = cfg.create_store()

    assert options.api_version == "v2"
    assert options.max_depth == 4
    assert cfg.run_options(BrickRegistry(), api_version="v1").api_version == "v1"
    assert store.storage_key("@acme/mod") == "#vars/@acme/mod"


def test_config_namespace_tracks_consumed_keys():
    ns = ConfigNamespace({"a": 1, "b": None, "nested": {"c": "x"}})

    assert ns.get_int("a") == 1
    assert ns.get_bool("b", default=True) is True
    assert ns.namespace("nested").get_str("c") == "x"
    ns.assert_consumed()
    assert ns.effective_values() == {"a": 1, "b": True, "nested": {"c": "x"}}

    with pytest.raises(ValueError, match=r"Missing required config key: missing"):
        ns.get_str("missing")
