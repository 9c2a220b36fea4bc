"""Built-in bricks shipped with the runtime."""

from brickkit.brick_registry import BrickRegistry
from brickkit.brick_types import Brick
from brickkit.bricks.async_mod_variable import AsyncModVariableBrick
from brickkit.bricks.control_flow import ForEachBrick, IdentityBrick, IfElseBrick, TryExceptBrick
from brickkit.bricks.state import GetStateBrick, SetStateBrick


def builtin_bricks() -> tuple[Brick, ...]:
    return (
        IdentityBrick(),
        IfElseBrick(),
        ForEachBrick(),
        TryExceptBrick(),
        SetStateBrick(),
        GetStateBrick(),
        AsyncModVariableBrick(),
    )


def default_registry() -> BrickRegistry:
    return BrickRegistry.from_bricks(builtin_bricks())


__all__ = [
    "AsyncModVariableBrick",
    "ForEachBrick",
    "GetStateBrick",
    "IdentityBrick",
    "IfElseBrick",
    "SetStateBrick",
    "TryExceptBrick",
    "builtin_bricks",
    "default_registry",
]
