"""Per-version runtime behavior for mod definitions.

Published mods keep executing with the semantics of the `apiVersion` they were
written against. Every behavior that differs between versions is read from
`ApiVersionOptions`; nothing else in the runtime branches on the version tag.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, TypeAlias

from brickkit.errors import ConfigurationError

ApiVersion: TypeAlias = Literal["v1", "v2", "v3"]
ShortCircuit: TypeAlias = Literal["previous_output", "empty_object", "unchanged"]

ALLOWED_API_VERSIONS: tuple[str, ...] = ("v1", "v2", "v3")
ALLOWED_SHORT_CIRCUITS: tuple[str, ...] = ("previous_output", "empty_object", "unchanged")

DEFAULT_API_VERSION: ApiVersion = "v3"
DEFAULT_IMPLICIT_TEMPLATE_ENGINE = "mustache"

_TRUTHY_STRINGS = frozenset({"true", "t", "yes", "y", "on", "1"})


@dataclass(frozen=True)
class ApiVersionOptions:
    explicit_data_flow: bool
    explicit_render: bool
    short_circuit: ShortCircuit

    def __post_init__(self) -> None:
        if self.short_circuit not in ALLOWED_SHORT_CIRCUITS:
            raise ValueError(f"Invalid short-circuit policy: {self.short_circuit}")


def api_version_options(version: ApiVersion) -> ApiVersionOptions:
    if version == "v1":
        return ApiVersionOptions(
            explicit_data_flow=False,
            explicit_render=False,
            short_circuit="previous_output",
        )
    if version == "v2":
        return ApiVersionOptions(
            explicit_data_flow=True,
            explicit_render=False,
            short_circuit="empty_object",
        )
    if version == "v3":
        return ApiVersionOptions(
            explicit_data_flow=True,
            explicit_render=True,
            short_circuit="unchanged",
        )
    raise ConfigurationError(
        f"Unknown api version: {version!r} (expected one of: {', '.join(ALLOWED_API_VERSIONS)})"
    )


def is_truthy(value: Any) -> bool:
    """Condition truthiness shared by every api version."""

    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY_STRINGS
    if isinstance(value, (int, float)):
        return value != 0
    return bool(value)
