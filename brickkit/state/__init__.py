"""Mod variable state: namespaces, merge strategies and session sync."""

from brickkit.state.merge import merge_state
from brickkit.state.storage import InMemorySessionStorage, SessionStorage
from brickkit.state.store import DEFAULT_KEY_PREFIX, ModVariableStore
from brickkit.state.sync_policy import SYNC_POLICY_SCHEMA_KEY, map_mod_variables_to_sync_policy
from brickkit.state.types import (
    ALLOWED_MERGE_STRATEGIES,
    ALLOWED_NAMESPACES,
    MergeStrategy,
    ModComponentRef,
    StateChangeEvent,
    StateNamespace,
    SyncPolicy,
)

__all__ = [
    "ALLOWED_MERGE_STRATEGIES",
    "ALLOWED_NAMESPACES",
    "DEFAULT_KEY_PREFIX",
    "InMemorySessionStorage",
    "MergeStrategy",
    "ModComponentRef",
    "ModVariableStore",
    "SYNC_POLICY_SCHEMA_KEY",
    "SessionStorage",
    "StateChangeEvent",
    "StateNamespace",
    "SyncPolicy",
    "map_mod_variables_to_sync_policy",
    "merge_state",
]
