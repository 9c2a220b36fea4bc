import asyncio
import logging

import pytest

from brickkit.bricks import default_registry
from brickkit.definitions import (
    load_mod_definition_yaml,
    load_mod_variables_yaml,
    load_pipeline_yaml,
)
from brickkit.engine import InitialValues, RunOptions, reduce_pipeline
from brickkit.errors import ConfigurationError
from brickkit.expressions import DeferExpression, PipelineExpression, TemplateExpression, VarExpression
from brickkit.state import ModComponentRef, ModVariableStore

MOD_YAML = """
id: "@acme/greeter"
apiVersion: v3
variables:
  schema:
    properties:
      greeting: {type: string, x-sync-policy: session}
pipeline:
  - id: "@brickkit/identity"
    outputKey: greeting
    config:
      message: !nunjucks "Hello {{ @input.name }}"
  - id: "@brickkit/state/set"
    config:
      data:
        greeting: !var "@greeting.message"
  - id: "@brickkit/for-each"
    config:
      elements: !var "@input.tags"
      body: !pipeline
        - id: "@brickkit/identity"
          config:
            tag: !mustache "#{{@element}}"
            greeting: !var "@mod.greeting"
"""


def _make_logger(name: str = "test.definitions") -> logging.Logger:
    logger = logging.getLogger(name)
    logger.handlers.clear()
    logger.addHandler(logging.NullHandler())
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    return logger


def test_pipeline_yaml_tags_build_expressions():
    steps = load_pipeline_yaml(
        """
- id: "@brickkit/identity"
  if: !var "@input.enabled"
  config:
    a: !mustache "{{@input.a}}"
    b: !handlebars "{{@input.b}}"
    c: !defer {d: !var "@input.d"}
    e: !pipeline
      - id: "@brickkit/identity"
    f: !pipeline
"""
    )

    (step,) = steps
    assert step.condition == VarExpression("@input.enabled")
    assert step.config["a"] == TemplateExpression(engine="mustache", template="{{@input.a}}")
    assert step.config["b"] == TemplateExpression(engine="handlebars", template="{{@input.b}}")
    assert step.config["c"] == DeferExpression({"d": VarExpression("@input.d")})
    assert isinstance(step.config["e"], PipelineExpression)
    assert step.config["e"].steps[0].brick_id == "@brickkit/identity"
    assert step.config["f"] == PipelineExpression(())


def test_pipeline_yaml_accepts_single_step_and_pipeline_key():
    assert len(load_pipeline_yaml('id: "@brickkit/identity"')) == 1
    assert len(load_pipeline_yaml('pipeline:\n  - id: "@brickkit/identity"\n  - id: "@brickkit/identity"')) == 2
    assert load_pipeline_yaml("") == ()


def test_invalid_yaml_is_configuration_error():
    with pytest.raises(ConfigurationError, match=r"Invalid mod definition YAML"):
        load_pipeline_yaml("- id: [unclosed")
    with pytest.raises(ConfigurationError, match=r"Unknown step keys"):
        load_pipeline_yaml('- id: "@brickkit/identity"\n  output_key: x')


def test_mod_variables_yaml_validates_sync_policy():
    variables = load_mod_variables_yaml("schema:\n  properties:\n    a: {x-sync-policy: session}\n")
    assert variables == {"schema": {"properties": {"a": {"x-sync-policy": "session"}}}}

    with pytest.raises(ConfigurationError, match=r"Unsupported sync policy"):
        load_mod_variables_yaml("schema:\n  properties:\n    a: {x-sync-policy: forever}\n")


def test_mod_definition_rejects_unknown_keys_and_versions():
    with pytest.raises(ConfigurationError, match=r"Unknown mod definition keys: extensionPoint"):
        load_mod_definition_yaml("id: x\nextensionPoint: y\n")
    with pytest.raises(ConfigurationError, match=r"Unknown api version"):
        load_mod_definition_yaml("apiVersion: v7\npipeline: []\n")


def test_mod_definition_runs_end_to_end():
    definition = load_mod_definition_yaml(MOD_YAML)
    assert definition.mod_id == "@acme/greeter"
    assert definition.api_version == "v3"

    store = ModVariableStore(logger=_make_logger("test.definitions.store"))
    assert store.register_mod_variables(definition.mod_id, definition.variables) == {"greeting": "session"}
    options = RunOptions(
        registry=default_registry(),
        api_version=definition.api_version,
        logger=_make_logger(),
        state=store,
        mod_component_ref=ModComponentRef(mod_id=definition.mod_id, mod_component_id="c1"),
    )

    result = asyncio.run(
        reduce_pipeline(definition.pipeline, InitialValues(input={"name": "Ada", "tags": ["a", "b"]}), options)
    )

    assert result == {"tag": "#b", "greeting": "Hello Ada"}
