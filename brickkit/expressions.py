"""Expression and step model for brick pipelines.

Mod definitions mix raw JSON literals with tagged expressions. The serialized
form of an expression is ``{"__type__": kind, "__value__": value}``; inside the
runtime each kind is its own frozen dataclass so resolution can dispatch on type
instead of comparing tag strings.
"""

from __future__ import annotations

import re
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal, TypeAlias

from brickkit.errors import ConfigurationError

TemplateEngine: TypeAlias = Literal["mustache", "nunjucks", "handlebars"]
ExpressionKind: TypeAlias = Literal[
    "literal", "mustache", "nunjucks", "handlebars", "var", "pipeline", "defer"
]
RootMode: TypeAlias = Literal["inherit", "document"]

TEMPLATE_ENGINES: tuple[str, ...] = ("mustache", "nunjucks", "handlebars")
EXPRESSION_KINDS: tuple[str, ...] = (
    "literal",
    *TEMPLATE_ENGINES,
    "var",
    "pipeline",
    "defer",
)
ALLOWED_ROOT_MODES: tuple[str, ...] = ("inherit", "document")

VARIABLE_REFERENCE_PREFIX = "@"

_OUTPUT_KEY_RE = re.compile(r"^[A-Za-z_]\w*$")
_TEMPLATE_MARKER_RE = re.compile(r"{{|{%|{#")


@dataclass(frozen=True)
class LiteralExpression:
    value: Any

    @property
    def kind(self) -> str:
        return "literal"


@dataclass(frozen=True)
class TemplateExpression:
    engine: TemplateEngine
    template: str

    def __post_init__(self) -> None:
        if self.engine not in TEMPLATE_ENGINES:
            raise ConfigurationError(f"Unknown template engine: {self.engine!r}")
        if not isinstance(self.template, str):
            raise ConfigurationError(
                f"{self.engine} expression value must be a string (type={type(self.template).__name__})"
            )

    @property
    def kind(self) -> str:
        return self.engine

    @property
    def value(self) -> str:
        return self.template


@dataclass(frozen=True)
class VarExpression:
    path: str

    def __post_init__(self) -> None:
        if not isinstance(self.path, str):
            raise ConfigurationError(
                f"var expression value must be a string (type={type(self.path).__name__})"
            )

    @property
    def kind(self) -> str:
        return "var"

    @property
    def value(self) -> str:
        return self.path


@dataclass(frozen=True)
class PipelineExpression:
    steps: tuple["Step", ...]

    @property
    def kind(self) -> str:
        return "pipeline"

    @property
    def value(self) -> tuple["Step", ...]:
        return self.steps


@dataclass(frozen=True)
class DeferExpression:
    value: Any

    @property
    def kind(self) -> str:
        return "defer"


Expression: TypeAlias = (
    LiteralExpression | TemplateExpression | VarExpression | PipelineExpression | DeferExpression
)
_EXPRESSION_TYPES = (
    LiteralExpression,
    TemplateExpression,
    VarExpression,
    PipelineExpression,
    DeferExpression,
)


def is_serialized_expression(value: Any) -> bool:
    return isinstance(value, Mapping) and "__type__" in value and "__value__" in value


def is_expression(value: Any) -> bool:
    return isinstance(value, _EXPRESSION_TYPES) or is_serialized_expression(value)


def is_template_expression(value: Any) -> bool:
    return isinstance(value, TemplateExpression)


def is_var_expression(value: Any) -> bool:
    return isinstance(value, VarExpression)


def is_pipeline_expression(value: Any) -> bool:
    return isinstance(value, PipelineExpression)


def is_defer_expression(value: Any) -> bool:
    return isinstance(value, DeferExpression)


def has_template_markers(template: str) -> bool:
    return bool(_TEMPLATE_MARKER_RE.search(template))


def is_blank_template(value: Any) -> bool:
    """True for a template expression whose text is empty or whitespace.

    ``None`` and non-template values are not blank: an absent field and an empty
    template are different things to the callers that ask.
    """

    if not isinstance(value, TemplateExpression):
        return False
    return not value.template.strip()


def to_expression(kind: str, value: Any) -> Expression:
    if kind == "literal":
        return LiteralExpression(value)
    if kind in TEMPLATE_ENGINES:
        return TemplateExpression(engine=kind, template=value)  # type: ignore[arg-type]
    if kind == "var":
        return VarExpression(value)
    if kind == "pipeline":
        return PipelineExpression(normalize_pipeline(value if value is not None else []))
    if kind == "defer":
        return DeferExpression(value)
    raise ConfigurationError(f"Unknown expression type: {kind!r}")


def parse_expression(raw: Any) -> Expression:
    """Convert a serialized expression (or an Expression) into its dataclass."""

    if isinstance(raw, _EXPRESSION_TYPES):
        return raw
    if not is_serialized_expression(raw):
        raise ConfigurationError(f"Not an expression: {raw!r}")
    kind = raw["__type__"]
    if not isinstance(kind, str):
        raise ConfigurationError(f"Expression __type__ must be a string (got {kind!r})")
    return to_expression(kind, raw["__value__"])


def serialize_expression(expr: Expression) -> dict[str, Any]:
    if isinstance(expr, PipelineExpression):
        return {"__type__": "pipeline", "__value__": [step.to_dict() for step in expr.steps]}
    return {"__type__": expr.kind, "__value__": expr.value}


def validate_output_key(key: Any) -> str:
    if not isinstance(key, str) or not _OUTPUT_KEY_RE.match(key):
        raise ConfigurationError(f"Invalid output key: {key!r}")
    return key


def _new_instance_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class Step:
    """One brick invocation in a pipeline."""

    brick_id: str
    config: Mapping[str, Any] = field(default_factory=dict)
    output_key: str | None = None
    condition: Any = None
    is_root_aware: bool | None = None
    root_mode: RootMode = "inherit"
    root: str | None = None
    label: str | None = None
    instance_id: str = field(default_factory=_new_instance_id)

    def __post_init__(self) -> None:
        if not isinstance(self.brick_id, str) or not self.brick_id.strip():
            raise ConfigurationError("Step brick id must be a non-empty string")
        object.__setattr__(self, "brick_id", self.brick_id.strip())
        if self.config is None:
            object.__setattr__(self, "config", {})
        if not isinstance(self.config, Mapping):
            raise ConfigurationError(
                f"Step {self.brick_id} config must be a mapping (type={type(self.config).__name__})"
            )
        # Parse once so nested pipelines keep stable instance ids across renders.
        object.__setattr__(self, "config", _parse_value(self.config))
        if self.condition is not None:
            object.__setattr__(self, "condition", _parse_value(self.condition))
        if self.output_key is not None:
            validate_output_key(self.output_key)
        if self.root_mode not in ALLOWED_ROOT_MODES:
            raise ConfigurationError(f"Invalid root mode for step {self.brick_id}: {self.root_mode!r}")
        if self.root is not None and (not isinstance(self.root, str) or not self.root.strip()):
            raise ConfigurationError(f"Step {self.brick_id} root selector must be a non-empty string")

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Step":
        if isinstance(raw, Step):
            return raw
        if not isinstance(raw, Mapping):
            raise ConfigurationError(f"Step must be a mapping (type={type(raw).__name__})")
        known = {
            "id",
            "config",
            "outputKey",
            "if",
            "isRootAware",
            "rootMode",
            "root",
            "label",
            "instanceId",
        }
        unknown = sorted(k for k in raw.keys() if k not in known)
        if unknown:
            raise ConfigurationError(
                f"Unknown step keys for {raw.get('id', '<missing id>')}: {', '.join(unknown)}"
            )
        kwargs: dict[str, Any] = {
            "brick_id": raw.get("id"),
            "config": raw.get("config") or {},
            "output_key": raw.get("outputKey"),
            "condition": raw.get("if"),
            "is_root_aware": raw.get("isRootAware"),
            "root_mode": raw.get("rootMode") or "inherit",
            "root": raw.get("root"),
            "label": raw.get("label"),
        }
        if raw.get("instanceId"):
            kwargs["instance_id"] = str(raw["instanceId"])
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"id": self.brick_id, "config": _serialize_value(self.config)}
        if self.output_key is not None:
            out["outputKey"] = self.output_key
        if self.condition is not None:
            out["if"] = _serialize_value(self.condition)
        if self.is_root_aware is not None:
            out["isRootAware"] = self.is_root_aware
        if self.root_mode != "inherit":
            out["rootMode"] = self.root_mode
        if self.root is not None:
            out["root"] = self.root
        if self.label is not None:
            out["label"] = self.label
        out["instanceId"] = self.instance_id
        return out


def _parse_value(value: Any) -> Any:
    if isinstance(value, _EXPRESSION_TYPES):
        return value
    if is_serialized_expression(value):
        return parse_expression(value)
    if isinstance(value, Mapping):
        return {k: _parse_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_parse_value(v) for v in value]
    return value


def _serialize_value(value: Any) -> Any:
    if isinstance(value, _EXPRESSION_TYPES):
        return serialize_expression(value)
    if isinstance(value, Mapping):
        return {k: _serialize_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serialize_value(v) for v in value]
    return value


def normalize_pipeline(pipeline: Any) -> tuple[Step, ...]:
    """Accept a single step or a sequence of steps (dicts or Step objects)."""

    if isinstance(pipeline, PipelineExpression):
        return pipeline.steps
    if isinstance(pipeline, (Step, Mapping)):
        return (Step.from_dict(pipeline),)
    if isinstance(pipeline, Sequence) and not isinstance(pipeline, (str, bytes)):
        return tuple(Step.from_dict(item) for item in pipeline)
    raise ConfigurationError(
        f"Pipeline must be a step or a list of steps (type={type(pipeline).__name__})"
    )
