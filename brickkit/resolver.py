"""Resolve expressions and brick configs against a data context.

Resolution is synchronous. `pipeline` expressions are never executed here: the
caller supplies `bind_pipeline`, which turns the expression into a closure that
the brick may await later.
"""

from __future__ import annotations

import copy
import re
from collections.abc import Mapping, Sequence
from typing import Any, Callable

from brickkit.errors import ConfigurationError
from brickkit.expressions import (
    DeferExpression,
    LiteralExpression,
    PipelineExpression,
    TemplateExpression,
    VarExpression,
    is_serialized_expression,
    parse_expression,
)
from brickkit.templates import render_template

PipelineBinder = Callable[[PipelineExpression], Any]

_INT_RE = re.compile(r"^-?\d+$")


def _closing_bracket(path: str, start: int) -> int:
    quote: str | None = None
    for idx in range(start + 1, len(path)):
        ch = path[idx]
        if quote is not None:
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            quote = ch
        elif ch == "]":
            return idx
    raise ConfigurationError(f"Unterminated bracket in variable path: {path!r}")


def parse_var_path(path: str) -> list[str | int]:
    """Split `@input.items[0]["a key"]?.name` into path segments.

    Bracketed integers become ints, quoted keys keep their inner text and `?`
    optional-chaining markers are dropped.
    """

    if not isinstance(path, str):
        raise ConfigurationError(f"Variable path must be a string (type={type(path).__name__})")

    segments: list[str | int] = []
    buffer = ""
    idx = 0
    text = path.strip()
    while idx < len(text):
        ch = text[idx]
        if ch == ".":
            if buffer:
                segments.append(buffer)
                buffer = ""
            idx += 1
        elif ch == "?":
            idx += 1
        elif ch == "[":
            if buffer:
                segments.append(buffer)
                buffer = ""
            end = _closing_bracket(text, idx)
            inner = text[idx + 1 : end].strip()
            if len(inner) >= 2 and inner[0] == inner[-1] and inner[0] in ("'", '"'):
                segments.append(inner[1:-1])
            elif _INT_RE.match(inner):
                segments.append(int(inner))
            elif inner:
                segments.append(inner)
            idx = end + 1
        else:
            buffer += ch
            idx += 1
    if buffer:
        segments.append(buffer)
    return segments


def _step_into(current: Any, segment: str | int) -> tuple[bool, Any]:
    if isinstance(current, Mapping):
        if segment in current:
            return True, current[segment]
        key = str(segment)
        if key in current:
            return True, current[key]
        return False, None

    if isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
        if isinstance(segment, int):
            index = segment
        elif _INT_RE.match(segment):
            index = int(segment)
        else:
            return False, None
        if -len(current) <= index < len(current):
            return True, current[index]
        return False, None

    return False, None


def get_path(context: Any, path: str) -> Any:
    """Walk `path` through nested mappings and sequences; missing parts give None."""

    segments = parse_var_path(path)
    if not segments:
        return None
    current = context
    for segment in segments:
        found, current = _step_into(current, segment)
        if not found:
            return None
    return current


def resolve(
    value: Any,
    context: Mapping[str, Any],
    *,
    implicit_render: str | None = None,
    autoescape: bool = True,
    bind_pipeline: PipelineBinder | None = None,
) -> Any:
    """Resolve a single value.

    Values that are not expressions come back as the identical object, except
    bare strings when `implicit_render` names a template engine. `literal` and
    `defer` values are copied so that a brick cannot mutate the definition.
    """

    if is_serialized_expression(value):
        value = parse_expression(value)

    if isinstance(value, LiteralExpression):
        return copy.deepcopy(value.value)
    if isinstance(value, TemplateExpression):
        return render_template(value.engine, value.template, context, autoescape=autoescape)
    if isinstance(value, VarExpression):
        return get_path(context, value.path)
    if isinstance(value, PipelineExpression):
        if bind_pipeline is None:
            return value
        return bind_pipeline(value)
    if isinstance(value, DeferExpression):
        return copy.deepcopy(value.value)

    if implicit_render is not None and isinstance(value, str):
        return render_template(implicit_render, value, context, autoescape=autoescape)
    return value


def map_args(
    config: Any,
    context: Mapping[str, Any],
    *,
    implicit_render: str | None = None,
    autoescape: bool = True,
    bind_pipeline: PipelineBinder | None = None,
) -> Any:
    """Resolve every leaf of a (possibly nested) brick config."""

    if is_serialized_expression(config) or isinstance(
        config,
        (LiteralExpression, TemplateExpression, VarExpression, PipelineExpression, DeferExpression),
    ):
        return resolve(
            config,
            context,
            implicit_render=implicit_render,
            autoescape=autoescape,
            bind_pipeline=bind_pipeline,
        )
    if isinstance(config, Mapping):
        return {
            key: map_args(
                item,
                context,
                implicit_render=implicit_render,
                autoescape=autoescape,
                bind_pipeline=bind_pipeline,
            )
            for key, item in config.items()
        }
    if isinstance(config, (list, tuple)):
        return [
            map_args(
                item,
                context,
                implicit_render=implicit_render,
                autoescape=autoescape,
                bind_pipeline=bind_pipeline,
            )
            for item in config
        ]
    return resolve(
        config,
        context,
        implicit_render=implicit_render,
        autoescape=autoescape,
        bind_pipeline=bind_pipeline,
    )


def render_deferred(
    value: Any,
    context: Mapping[str, Any],
    *,
    autoescape: bool = True,
    bind_pipeline: PipelineBinder | None = None,
) -> Any:
    """Resolve a deferred structure once the brick has decided to use it."""

    if is_serialized_expression(value):
        value = parse_expression(value)
    if isinstance(value, DeferExpression):
        value = value.value
    return map_args(value, context, autoescape=autoescape, bind_pipeline=bind_pipeline)
