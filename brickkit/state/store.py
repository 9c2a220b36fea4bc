"""Mod variable store: page, mod and mod-component scoped state.

One store is created per execution context and passed to the runtime. The
synced subset of a mod's variables round-trips through session storage so that
other contexts sharing that storage observe the same values; every other key
lives only in this store.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Awaitable, Mapping
from typing import Any, Callable

from brickkit.errors import BusinessError, assert_not_nullish
from brickkit.state.merge import merge_state
from brickkit.state.storage import SESSION_AREA, InMemorySessionStorage, SessionStorage, StorageChanges
from brickkit.state.sync_policy import map_mod_variables_to_sync_policy
from brickkit.state.types import (
    ALLOWED_NAMESPACES,
    MergeStrategy,
    ModComponentRef,
    StateChangeEvent,
    StateNamespace,
    SyncPolicy,
)

DEFAULT_KEY_PREFIX = "#modVariables/"

StateListener = Callable[[StateChangeEvent], Any]


def _pick(state: Mapping[str, Any], keys: set[str]) -> dict[str, Any]:
    return {key: value for key, value in state.items() if key in keys}


def _omit(state: Mapping[str, Any], keys: set[str]) -> dict[str, Any]:
    return {key: value for key, value in state.items() if key not in keys}


class ModVariableStore:
    def __init__(
        self,
        storage: SessionStorage | None = None,
        *,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        logger: logging.Logger | None = None,
    ):
        if not isinstance(key_prefix, str) or not key_prefix:
            raise ValueError("key_prefix must be a non-empty string")
        self._storage: SessionStorage = storage if storage is not None else InMemorySessionStorage()
        self._key_prefix = key_prefix
        self._logger = logger or logging.getLogger(__name__)
        self._public: dict[str, Any] = {}
        self._mod: dict[str, dict[str, Any]] = {}
        self._private: dict[str, dict[str, Any]] = {}
        self._sync_policies: dict[str, dict[str, SyncPolicy]] = {}
        self._listeners: list[StateListener] = []
        self._subscribed = False

    @property
    def key_prefix(self) -> str:
        return self._key_prefix

    def storage_key(self, mod_id: str) -> str:
        return f"{self._key_prefix}{mod_id}"

    def register_mod_variables(
        self, mod_id: str, definition: Mapping[str, Any] | None
    ) -> dict[str, SyncPolicy]:
        """Cache the sync policy for `mod_id`; replaces any earlier registration."""

        if not isinstance(mod_id, str) or not mod_id.strip():
            raise ValueError("mod_id must be a non-empty string")
        policy = map_mod_variables_to_sync_policy(definition)
        self._sync_policies[mod_id] = policy
        if policy and not self._subscribed:
            self._storage.on_changed(self._on_storage_changed)
            self._subscribed = True
        self._logger.debug(
            "Registered mod variables for %s (synced: %s)", mod_id, ", ".join(sorted(policy)) or "<none>"
        )
        return dict(policy)

    def sync_policy(self, mod_id: str) -> dict[str, SyncPolicy]:
        return dict(self._sync_policies.get(mod_id, {}))

    def _synced_keys(self, mod_id: str) -> set[str]:
        return {key for key, policy in self._sync_policies.get(mod_id, {}).items() if policy != "none"}

    def add_listener(self, listener: StateListener) -> None:
        if not callable(listener):
            raise TypeError(f"State listener must be callable (type={type(listener).__name__})")
        self._listeners.append(listener)

    def remove_listener(self, listener: StateListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def clear(self) -> None:
        """Drop all local state and registrations (execution context teardown)."""

        self._public = {}
        self._mod.clear()
        self._private.clear()
        self._sync_policies.clear()

    def _dispatch(self, event: StateChangeEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                self._logger.exception("State change listener failed for %s", event.namespace)

    def _on_storage_changed(self, changes: StorageChanges, area: str) -> None:
        if area != SESSION_AREA:
            return
        for key in changes:
            if not key.startswith(self._key_prefix):
                continue
            mod_id = key[len(self._key_prefix) :]
            self._dispatch(StateChangeEvent(namespace="mod", mod_id=mod_id))

    def _validate(self, namespace: str, ref: ModComponentRef | None) -> ModComponentRef:
        if namespace not in ALLOWED_NAMESPACES:
            raise BusinessError(f"Invalid state namespace: {namespace}")
        ref = ref or ModComponentRef()
        if namespace == "mod":
            assert_not_nullish(ref.mod_id, "Invalid context: mod id not found")
        elif namespace == "private":
            assert_not_nullish(ref.mod_component_id, "Invalid context: mod component id not found")
        return ref

    def get_state(
        self, namespace: StateNamespace, mod_component_ref: ModComponentRef | None = None
    ) -> Awaitable[dict[str, Any]]:
        """Return an awaitable of the current state.

        An invalid namespace/reference combination raises here, before any
        storage access.
        """

        ref = self._validate(namespace, mod_component_ref)
        return self._read(namespace, ref)

    def set_state(
        self,
        namespace: StateNamespace,
        mod_component_ref: ModComponentRef | None,
        data: Mapping[str, Any],
        merge_strategy: MergeStrategy = "replace",
    ) -> Awaitable[dict[str, Any]]:
        """Merge `data` into the namespace and return an awaitable of the next state.

        A PRIVATE write without a mod component id raises here, before any
        storage access.
        """

        ref = self._validate(namespace, mod_component_ref)
        if not isinstance(data, Mapping):
            raise TypeError(f"State data must be a mapping (type={type(data).__name__})")
        return self._write(namespace, ref, data, merge_strategy)

    async def _read_mod(self, mod_id: str) -> dict[str, Any]:
        synced = self._synced_keys(mod_id)
        local = _omit(self._mod.get(mod_id, {}), synced)
        if not synced:
            return local
        session = await self._storage.get(self.storage_key(mod_id))
        if isinstance(session, Mapping):
            local.update(_pick(session, synced))
        return local

    async def _read(self, namespace: StateNamespace, ref: ModComponentRef) -> dict[str, Any]:
        if namespace == "public":
            state = self._public
        elif namespace == "mod":
            state = await self._read_mod(ref.mod_id)  # type: ignore[arg-type]
        else:
            state = self._private.get(ref.mod_component_id, {})  # type: ignore[arg-type]
        return copy.deepcopy(state)

    async def _write(
        self,
        namespace: StateNamespace,
        ref: ModComponentRef,
        data: Mapping[str, Any],
        merge_strategy: MergeStrategy,
    ) -> dict[str, Any]:
        previous = await self._read(namespace, ref)
        next_state = merge_state(previous, data, merge_strategy)

        synced: set[str] = set()
        if namespace == "public":
            self._public = next_state
        elif namespace == "private":
            self._private[ref.mod_component_id] = next_state  # type: ignore[index]
        else:
            mod_id: str = ref.mod_id  # type: ignore[assignment]
            synced = self._synced_keys(mod_id)
            self._mod[mod_id] = _omit(next_state, synced)
            if synced:
                await self._storage.set(self.storage_key(mod_id), _pick(next_state, synced))

        # Synced updates are announced by the storage change listener.
        synced_changed = _pick(previous, synced) != _pick(next_state, synced)
        if not synced_changed and previous != next_state:
            self._dispatch(
                StateChangeEvent(
                    namespace=namespace,
                    mod_id=ref.mod_id,
                    mod_component_id=ref.mod_component_id,
                )
            )
        return copy.deepcopy(next_state)
