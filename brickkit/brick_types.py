"""The contract a brick satisfies to be invoked by the pipeline reducer."""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Literal, Mapping, Protocol, TypeAlias

from brickkit.foundation.logging_utils import RunLogger
from brickkit.state.types import ModComponentRef

if TYPE_CHECKING:
    from brickkit.engine.reducer import Branch
    from brickkit.state.store import ModVariableStore

BrickKind: TypeAlias = Literal["reader", "transform", "effect", "renderer"]
Placement: TypeAlias = Literal["sidebar", "popover"]

ALLOWED_BRICK_KINDS: tuple[str, ...] = ("reader", "transform", "effect", "renderer")
ALLOWED_PLACEMENTS: tuple[str, ...] = ("sidebar", "popover")


class Root(Protocol):
    """The element (or document) a brick operates on."""

    @property
    def is_document(self) -> bool:
        ...

    @property
    def owner_document(self) -> "Root":
        ...

    def query_selector_all(self, selector: str) -> list["Root"]:
        ...


def document_of(root: Root | None) -> Root | None:
    if root is None:
        return None
    if root.is_document:
        return root
    return root.owner_document


RunPipeline = Callable[..., Awaitable[Any]]


@dataclass(frozen=True)
class BrickOptions:
    """Everything a brick receives besides its rendered args."""

    root: Root | None
    logger: RunLogger
    context: Mapping[str, Any]
    run_pipeline: RunPipeline
    mod_component_ref: ModComponentRef | None = None
    state: "ModVariableStore | None" = None
    api_version: str = "v3"
    run_id: str | None = None
    branches: tuple["Branch", ...] = ()
    meta: dict[str, Any] = field(default_factory=dict)


class Brick(Protocol):
    id: str
    name: str
    kind: BrickKind
    is_root_aware: bool
    placement: Placement | None

    def run(self, args: dict[str, Any], options: BrickOptions) -> Any:
        ...


class BrickABC(abc.ABC):
    """Convenience base class; `run` may be a plain or an async method."""

    id: str = ""
    name: str = ""
    kind: BrickKind = "transform"
    is_root_aware: bool = False
    placement: Placement | None = None

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if cls.kind not in ALLOWED_BRICK_KINDS:
            raise ValueError(f"Invalid brick kind for {cls.__name__}: {cls.kind}")
        if cls.placement is not None and cls.placement not in ALLOWED_PLACEMENTS:
            raise ValueError(f"Invalid brick placement for {cls.__name__}: {cls.placement}")

    @abc.abstractmethod
    def run(self, args: dict[str, Any], options: BrickOptions) -> Any:
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, kind={self.kind!r})"
