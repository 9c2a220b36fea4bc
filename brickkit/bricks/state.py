from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from brickkit.brick_types import BrickABC, BrickOptions
from brickkit.errors import BusinessError, ConfigurationError
from brickkit.state.store import ModVariableStore
from brickkit.state.types import ALLOWED_MERGE_STRATEGIES, ALLOWED_NAMESPACES


def require_store(options: BrickOptions, brick_id: str) -> ModVariableStore:
    if options.state is None:
        raise BusinessError(f"{brick_id} requires a mod variable store")
    return options.state


def _namespace(args: Mapping[str, Any]) -> str:
    namespace = args.get("namespace") or "mod"
    if namespace not in ALLOWED_NAMESPACES:
        raise ConfigurationError(
            f"Invalid state namespace: {namespace!r} (expected one of: {', '.join(ALLOWED_NAMESPACES)})"
        )
    return namespace


class SetStateBrick(BrickABC):
    """Merge `data` into a state namespace and return the resulting state."""

    id = "@brickkit/state/set"
    name = "Set Shared Page State"

    async def run(self, args: dict[str, Any], options: BrickOptions) -> Any:
        store = require_store(options, self.id)
        merge_strategy = args.get("mergeStrategy") or "shallow"
        if merge_strategy not in ALLOWED_MERGE_STRATEGIES:
            raise ConfigurationError(f"Invalid merge strategy: {merge_strategy!r}")
        data = args.get("data")
        if data is None:
            data = {}
        if not isinstance(data, Mapping):
            raise BusinessError(f"State data must be an object (type={type(data).__name__})")
        return await store.set_state(_namespace(args), options.mod_component_ref, data, merge_strategy)


class GetStateBrick(BrickABC):
    id = "@brickkit/state/get"
    name = "Get Shared Page State"

    async def run(self, args: dict[str, Any], options: BrickOptions) -> Any:
        store = require_store(options, self.id)
        return await store.get_state(_namespace(args), options.mod_component_ref)
