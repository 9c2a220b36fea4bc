from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from brickkit.errors import ConfigurationError
from brickkit.state.types import SyncPolicy

SYNC_POLICY_SCHEMA_KEY = "x-sync-policy"


def _schema_properties(definition: Mapping[str, Any] | None) -> Mapping[str, Any]:
    if not definition:
        return {}
    if not isinstance(definition, Mapping):
        raise ConfigurationError(
            f"Mod variable definition must be a mapping (type={type(definition).__name__})"
        )
    schema = definition.get("schema", definition)
    if schema is None:
        return {}
    if not isinstance(schema, Mapping):
        raise ConfigurationError(f"Mod variable schema must be a mapping (type={type(schema).__name__})")
    properties = schema.get("properties") or {}
    if not isinstance(properties, Mapping):
        raise ConfigurationError("Mod variable schema properties must be a mapping")
    return properties


def map_mod_variables_to_sync_policy(
    definition: Mapping[str, Any] | None,
) -> dict[str, SyncPolicy]:
    """Return the variables that round-trip through session storage.

    Accepts either a variable definition (`{"schema": {...}}`) or the schema
    itself. Variables without a policy, or with `"none"`, are local only.
    """

    out: dict[str, SyncPolicy] = {}
    for name, prop in _schema_properties(definition).items():
        policy = prop.get(SYNC_POLICY_SCHEMA_KEY) if isinstance(prop, Mapping) else None
        if policy is None or policy == "none":
            continue
        if policy == "session":
            out[str(name)] = "session"
            continue
        raise ConfigurationError(f"Unsupported sync policy for mod variable {name}: {policy!r}")
    return out
