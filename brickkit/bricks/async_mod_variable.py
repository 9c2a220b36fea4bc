"""Run a sub-pipeline in the background and track its status in a mod variable.

The variable always holds a complete status object::

    {isLoading, isFetching, isSuccess, isError, currentData, data, requestId, error}

Each run gets a fresh `requestId`. A run that finishes after a newer run has
started leaves the variable untouched.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Mapping
from typing import Any

from brickkit.brick_types import BrickABC, BrickOptions
from brickkit.bricks.control_flow import serialize_error
from brickkit.bricks.state import require_store
from brickkit.engine.reducer import Branch
from brickkit.errors import BusinessError


class AsyncModVariableBrick(BrickABC):
    id = "@brickkit/async-mod-variable"
    name = "Run with Async Mod Variable"

    def __init__(self) -> None:
        self._pending: set[asyncio.Task[Any]] = set()

    async def drain(self) -> None:
        """Wait for every background body started by this brick."""

        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def run(self, args: dict[str, Any], options: BrickOptions) -> Any:
        state_key = args.get("stateKey")
        if not isinstance(state_key, str) or not state_key.strip():
            raise BusinessError("Mod Variable Name is required")
        store = require_store(options, self.id)
        ref = options.mod_component_ref
        request_id = str(uuid.uuid4())

        async def set_variable(data: dict[str, Any]) -> None:
            await store.set_state("mod", ref, {state_key: data}, "shallow")

        async def is_current_request() -> bool:
            current = (await store.get_state("mod", ref)).get(state_key) or {}
            current_id = current.get("requestId") if isinstance(current, Mapping) else None
            return current_id is None or current_id == request_id

        current = (await store.get_state("mod", ref)).get(state_key)
        if not isinstance(current, Mapping) or not current:
            await set_variable(
                {
                    "isLoading": True,
                    "isFetching": True,
                    "isSuccess": False,
                    "isError": False,
                    "currentData": None,
                    "data": None,
                    "requestId": request_id,
                    "error": None,
                }
            )
        else:
            await set_variable({**current, "requestId": request_id, "isFetching": True, "currentData": None})

        async def run_body() -> None:
            try:
                data = await options.run_pipeline(args.get("body"), Branch("body"))
            except Exception as exc:
                if not await is_current_request():
                    options.logger.debug("Discarding error from stale request %s", request_id)
                    return
                await set_variable(
                    {
                        "isLoading": False,
                        "isFetching": False,
                        "isSuccess": False,
                        "isError": True,
                        "currentData": None,
                        "data": None,
                        "requestId": request_id,
                        "error": serialize_error(exc),
                    }
                )
                return

            if not await is_current_request():
                options.logger.debug("Discarding result from stale request %s", request_id)
                return
            await set_variable(
                {
                    "isLoading": False,
                    "isFetching": False,
                    "isSuccess": True,
                    "isError": False,
                    "currentData": data,
                    "data": data,
                    "requestId": request_id,
                    "error": None,
                }
            )

        task = asyncio.ensure_future(run_body())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return {"requestId": request_id}
