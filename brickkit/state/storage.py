"""Session-scoped storage consumed by the mod variable store."""

from __future__ import annotations

import copy
import logging
from typing import Any, Callable, Protocol

StorageChanges = dict[str, dict[str, Any]]
StorageListener = Callable[[StorageChanges, str], Any]

SESSION_AREA = "session"


class SessionStorage(Protocol):
    async def get(self, key: str) -> Any:
        ...

    async def set(self, key: str, value: Any) -> None:
        ...

    def on_changed(self, listener: StorageListener) -> None:
        ...


class InMemorySessionStorage:
    """Session storage kept in process memory.

    Share one instance between several stores to model frames or tabs that see
    the same session. Values are copied on the way in and out.
    """

    def __init__(self, *, logger: logging.Logger | None = None):
        self._values: dict[str, Any] = {}
        self._listeners: list[StorageListener] = []
        self._logger = logger or logging.getLogger(__name__)

    async def get(self, key: str) -> Any:
        return copy.deepcopy(self._values.get(key))

    async def set(self, key: str, value: Any) -> None:
        old_value = self._values.get(key)
        new_value = copy.deepcopy(value)
        self._values[key] = new_value
        if old_value == new_value:
            return
        changes = {key: {"oldValue": copy.deepcopy(old_value), "newValue": copy.deepcopy(new_value)}}
        for listener in list(self._listeners):
            try:
                listener(changes, SESSION_AREA)
            except Exception:
                self._logger.exception("Session storage listener failed for %s", key)

    def on_changed(self, listener: StorageListener) -> None:
        self._listeners.append(listener)

    def keys(self) -> tuple[str, ...]:
        return tuple(sorted(self._values.keys()))
