"""YAML mod definitions.

Expressions are written with tags::

    apiVersion: v3
    id: "@acme/greeter"
    variables:
      schema:
        properties:
          greeting: {type: string, x-sync-policy: session}
    pipeline:
      - id: "@acme/echo"
        outputKey: greeting
        config:
          message: !nunjucks "Hello {{ @input.name }}"
          raw: !defer {value: !var "@input.name"}
          onClick: !pipeline
            - id: "@brickkit/identity"
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import yaml

from brickkit.api_versions import DEFAULT_API_VERSION, ApiVersion, api_version_options
from brickkit.errors import ConfigurationError
from brickkit.expressions import (
    DeferExpression,
    PipelineExpression,
    Step,
    TemplateExpression,
    VarExpression,
    normalize_pipeline,
)
from brickkit.state.sync_policy import map_mod_variables_to_sync_policy


class DefinitionLoader(yaml.SafeLoader):
    """SafeLoader that understands the expression tags."""


def _template(engine: str):
    def construct(loader: DefinitionLoader, node: yaml.Node) -> TemplateExpression:
        return TemplateExpression(engine=engine, template=str(loader.construct_scalar(node)))  # type: ignore[arg-type]

    return construct


def _var(loader: DefinitionLoader, node: yaml.Node) -> VarExpression:
    return VarExpression(str(loader.construct_scalar(node)))


def _plain(loader: DefinitionLoader, node: yaml.Node) -> Any:
    if isinstance(node, yaml.MappingNode):
        return loader.construct_mapping(node, deep=True)
    if isinstance(node, yaml.SequenceNode):
        return loader.construct_sequence(node, deep=True)
    return loader.construct_scalar(node)


def _pipeline(loader: DefinitionLoader, node: yaml.Node) -> PipelineExpression:
    value = _plain(loader, node)
    return PipelineExpression(normalize_pipeline(value if value not in (None, "") else []))


def _defer(loader: DefinitionLoader, node: yaml.Node) -> DeferExpression:
    return DeferExpression(_plain(loader, node))


for _engine in ("mustache", "nunjucks", "handlebars"):
    DefinitionLoader.add_constructor(f"!{_engine}", _template(_engine))
DefinitionLoader.add_constructor("!var", _var)
DefinitionLoader.add_constructor("!pipeline", _pipeline)
DefinitionLoader.add_constructor("!defer", _defer)


def load_yaml(text: str) -> Any:
    try:
        return yaml.load(text, Loader=DefinitionLoader)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid mod definition YAML: {exc}") from exc


def load_pipeline_yaml(text: str) -> tuple[Step, ...]:
    """Parse a pipeline: a list of steps, a single step, or `{pipeline: [...]}`."""

    data = load_yaml(text)
    if data is None:
        return ()
    if isinstance(data, Mapping) and "pipeline" in data:
        data = data["pipeline"]
    return normalize_pipeline(data if data is not None else [])


def load_mod_variables_yaml(text: str) -> dict[str, Any]:
    data = load_yaml(text)
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"Mod variable definition must be a mapping (type={type(data).__name__})")
    # Validates every x-sync-policy value up front.
    map_mod_variables_to_sync_policy(data)
    return dict(data)


@dataclass(frozen=True)
class ModDefinition:
    mod_id: str | None
    api_version: ApiVersion
    pipeline: tuple[Step, ...]
    variables: dict[str, Any] = field(default_factory=dict)


def load_mod_definition_yaml(text: str) -> ModDefinition:
    data = load_yaml(text)
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"Mod definition must be a mapping (type={type(data).__name__})")
    known = {"id", "apiVersion", "pipeline", "variables"}
    unknown = sorted(str(k) for k in data.keys() if k not in known)
    if unknown:
        raise ConfigurationError(f"Unknown mod definition keys: {', '.join(unknown)}")

    api_version = data.get("apiVersion") or DEFAULT_API_VERSION
    api_version_options(api_version)
    variables = data.get("variables") or {}
    if not isinstance(variables, Mapping):
        raise ConfigurationError("Mod definition variables must be a mapping")
    map_mod_variables_to_sync_policy(variables)

    return ModDefinition(
        mod_id=data.get("id"),
        api_version=api_version,
        pipeline=normalize_pipeline(data.get("pipeline") or []),
        variables=dict(variables),
    )
