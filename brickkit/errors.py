"""Error taxonomy for the brick runtime."""

from __future__ import annotations

from typing import Any, TypeVar

T = TypeVar("T")


class ConfigurationError(ValueError):
    """A malformed expression, step, or policy value in a mod definition.

    Always fatal and never retried.
    """


class BusinessError(Exception):
    """An expected, user-facing failure that is safe to show as a message."""


def assert_not_nullish(value: T | None, message: str) -> T:
    if value is None:
        raise TypeError(message)
    return value


_STEP_ATTRS = (
    "pipeline_step_index",
    "pipeline_brick_id",
    "pipeline_instance_id",
    "pipeline_mod_id",
    "pipeline_mod_component_id",
)


def attach_step_context(
    exc: BaseException,
    *,
    step_index: int,
    brick_id: str,
    instance_id: str,
    mod_id: str | None = None,
    mod_component_id: str | None = None,
) -> None:
    """Annotate `exc` with the innermost failing step.

    Existing annotations win so that an error raised inside a sub-pipeline keeps
    pointing at the step that actually failed.
    """

    values = (step_index, brick_id, instance_id, mod_id, mod_component_id)
    for name, value in zip(_STEP_ATTRS, values, strict=True):
        if hasattr(exc, name):
            continue
        try:
            setattr(exc, name, value)
        except (AttributeError, TypeError):
            pass


def describe_step_error(exc: BaseException) -> dict[str, Any]:
    """Return the step context attached to `exc` (empty when none)."""

    out: dict[str, Any] = {}
    for name in _STEP_ATTRS:
        if hasattr(exc, name):
            out[name[len("pipeline_") :]] = getattr(exc, name)
    return out
