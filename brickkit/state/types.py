from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, TypeAlias

StateNamespace: TypeAlias = Literal["public", "mod", "private"]
MergeStrategy: TypeAlias = Literal["replace", "shallow", "deep"]
SyncPolicy: TypeAlias = Literal["none", "session"]

ALLOWED_NAMESPACES: tuple[str, ...] = ("public", "mod", "private")
ALLOWED_MERGE_STRATEGIES: tuple[str, ...] = ("replace", "shallow", "deep")
ALLOWED_SYNC_POLICIES: tuple[str, ...] = ("none", "session")


@dataclass(frozen=True)
class ModComponentRef:
    """Identifies the mod component a pipeline runs for."""

    mod_id: str | None = None
    mod_component_id: str | None = None
    starter_brick_id: str | None = None


@dataclass(frozen=True)
class StateChangeEvent:
    """Signal that state changed; listeners re-read the state they care about."""

    namespace: StateNamespace
    mod_id: str | None = None
    mod_component_id: str | None = None

    def __post_init__(self) -> None:
        if self.namespace not in ALLOWED_NAMESPACES:
            raise ValueError(f"Invalid state namespace: {self.namespace}")
