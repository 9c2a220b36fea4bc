from __future__ import annotations

import difflib
from dataclasses import dataclass, field
from typing import Iterable

from brickkit.brick_types import ALLOWED_BRICK_KINDS, Brick
from brickkit.errors import ConfigurationError


def _brick_id(brick: Brick) -> str:
    brick_id = getattr(brick, "id", None)
    if not isinstance(brick_id, str) or not brick_id.strip():
        raise TypeError(f"Brick id must be a non-empty string (brick={brick!r})")
    return brick_id.strip()


@dataclass(frozen=True)
class BrickRegistry:
    _by_id: dict[str, Brick] = field(default_factory=dict)

    @classmethod
    def from_bricks(cls, bricks: Iterable[Brick]) -> "BrickRegistry":
        registry = cls()
        for brick in bricks:
            registry.register(brick)
        return registry

    def register(self, brick: Brick, *, replace: bool = False) -> Brick:
        brick_id = _brick_id(brick)
        kind = getattr(brick, "kind", None)
        if kind not in ALLOWED_BRICK_KINDS:
            raise ValueError(f"Brick {brick_id} has invalid kind: {kind!r}")
        run = getattr(brick, "run", None)
        if run is None or not callable(run):
            raise TypeError(f"Brick {brick_id} is missing a callable run method")
        if brick_id in self._by_id and not replace:
            raise ValueError(f"Duplicate brick id: {brick_id}")
        self._by_id[brick_id] = brick
        return brick

    def available(self) -> tuple[str, ...]:
        return tuple(sorted(self._by_id.keys()))

    def get(self, brick_id: str) -> Brick | None:
        return self._by_id.get((brick_id or "").strip())

    def lookup(self, brick_id: str) -> Brick:
        if not isinstance(brick_id, str) or not brick_id.strip():
            raise ConfigurationError("brick id must be a non-empty string")
        brick = self._by_id.get(brick_id.strip())
        if brick is not None:
            return brick

        suggestions = self.suggest(brick_id)
        if suggestions:
            raise ConfigurationError(
                f"Unknown brick id: {brick_id} (did you mean: {', '.join(suggestions)})"
            )
        available = ", ".join(self.available()) or "<none>"
        raise ConfigurationError(f"Unknown brick id: {brick_id} (available: {available})")

    def suggest(self, brick_id: str, *, limit: int = 3) -> tuple[str, ...]:
        key = (brick_id or "").strip()
        if not key:
            return ()
        return tuple(difflib.get_close_matches(key, list(self.available()), n=limit))

    def clear(self) -> None:
        self._by_id.clear()

    def __contains__(self, brick_id: object) -> bool:
        return isinstance(brick_id, str) and brick_id.strip() in self._by_id

    def __len__(self) -> int:
        return len(self._by_id)
