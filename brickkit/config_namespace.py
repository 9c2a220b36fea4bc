"""Strict config namespace: every key must be read, unknown keys are rejected."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Iterable

_MISSING = object()


def _join_path(parent: str, key: str) -> str:
    if not parent:
        return key
    return f"{parent}.{key}"


@dataclass
class ConfigNamespace:
    data: Mapping[str, Any]
    path: str = ""
    _consumed: set[str] = field(default_factory=set, init=False, repr=False)
    _children: dict[str, "ConfigNamespace"] = field(default_factory=dict, init=False, repr=False)
    _effective: dict[str, Any] = field(default_factory=dict, init=False, repr=False)

    def consumed_keys(self) -> tuple[str, ...]:
        return tuple(sorted(self._consumed))

    def unconsumed_keys(self) -> tuple[str, ...]:
        return tuple(sorted(str(k) for k in self.data.keys() if k not in self._consumed))

    def assert_consumed(self) -> None:
        unknown = self.unconsumed_keys()
        if unknown:
            consumed = ", ".join(self.consumed_keys()) or "<none>"
            raise ValueError(
                f"Unknown config keys under {self.path or '<root>'}: {', '.join(unknown)} (consumed: {consumed})"
            )
        for child in self._children.values():
            child.assert_consumed()

    def effective_values(self) -> dict[str, Any]:
        out = dict(self._effective)
        for key, child in self._children.items():
            out[key] = child.effective_values()
        return out

    def _key(self, key: str) -> str:
        if not isinstance(key, str) or not key.strip():
            raise TypeError("ConfigNamespace key must be a non-empty string")
        normalized = key.strip()
        if normalized in self._children:
            raise ValueError(f"{_join_path(self.path, normalized)} already accessed as a nested namespace")
        return normalized

    def _get_raw(self, key: str, *, default: Any) -> Any:
        if key not in self.data or self.data.get(key) is None:
            if default is _MISSING:
                raise ValueError(f"Missing required config key: {_join_path(self.path, key)}")
            self._consumed.add(key)
            return default
        self._consumed.add(key)
        return self.data.get(key)

    def namespace(self, key: str, *, required: bool = False) -> "ConfigNamespace":
        normalized = (key or "").strip()
        if not normalized:
            raise TypeError("ConfigNamespace key must be a non-empty string")
        if normalized in self._children:
            return self._children[normalized]

        raw = self.data.get(normalized)
        if raw is None:
            if required:
                raise ValueError(f"Missing required config namespace: {_join_path(self.path, normalized)}")
            raw = {}
        if not isinstance(raw, Mapping):
            raise TypeError(
                f"{_join_path(self.path, normalized)} must be a mapping (type={type(raw).__name__})"
            )
        self._consumed.add(normalized)
        child = ConfigNamespace(dict(raw), path=_join_path(self.path, normalized))
        self._children[normalized] = child
        return child

    def get_bool(self, key: str, *, default: bool | object = _MISSING) -> bool:
        normalized = self._key(key)
        value = self._get_raw(normalized, default=default)
        if not isinstance(value, bool):
            raise TypeError(
                f"{_join_path(self.path, normalized)} must be a boolean (type={type(value).__name__})"
            )
        self._effective[normalized] = value
        return value

    def get_int(
        self,
        key: str,
        *,
        default: int | object = _MISSING,
        min_value: int | None = None,
        max_value: int | None = None,
    ) -> int:
        normalized = self._key(key)
        value = self._get_raw(normalized, default=default)
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(
                f"{_join_path(self.path, normalized)} must be an int (type={type(value).__name__})"
            )
        if min_value is not None and value < min_value:
            raise ValueError(f"{_join_path(self.path, normalized)} must be >= {min_value} (got {value})")
        if max_value is not None and value > max_value:
            raise ValueError(f"{_join_path(self.path, normalized)} must be <= {max_value} (got {value})")
        self._effective[normalized] = value
        return value

    def get_str(
        self,
        key: str,
        *,
        default: str | object = _MISSING,
        choices: Iterable[str] | None = None,
    ) -> str:
        normalized = self._key(key)
        raw = self._get_raw(normalized, default=default)
        if not isinstance(raw, str):
            raise TypeError(
                f"{_join_path(self.path, normalized)} must be a string (type={type(raw).__name__})"
            )
        value = raw.strip()
        if not value:
            raise ValueError(f"{_join_path(self.path, normalized)} cannot be empty")
        if choices is not None:
            allowed = tuple(choices)
            if value not in allowed:
                raise ValueError(
                    f"{_join_path(self.path, normalized)} must be one of: {', '.join(allowed)} (got {value!r})"
                )
        self._effective[normalized] = value
        return value
