"""Control-flow bricks: branches, loops and error handling over sub-pipelines."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from brickkit.api_versions import is_truthy
from brickkit.brick_types import BrickABC, BrickOptions
from brickkit.engine.reducer import Branch
from brickkit.errors import BusinessError, ConfigurationError


def serialize_error(exc: BaseException) -> dict[str, Any]:
    return {"name": type(exc).__name__, "message": str(exc)}


def _context_key(raw: Any, *, default: str, brick_id: str, field_name: str) -> str:
    key = default if raw is None else raw
    if not isinstance(key, str) or not key.strip():
        raise ConfigurationError(f"{brick_id} {field_name} must be a non-empty string")
    key = key.strip()
    return key[1:] if key.startswith("@") else key


class IdentityBrick(BrickABC):
    """Returns its args unchanged."""

    id = "@brickkit/identity"
    name = "Identity"

    def run(self, args: dict[str, Any], options: BrickOptions) -> Any:
        return args


class IfElseBrick(BrickABC):
    id = "@brickkit/if-else"
    name = "If-Else"

    async def run(self, args: dict[str, Any], options: BrickOptions) -> Any:
        if is_truthy(args.get("condition")):
            return await options.run_pipeline(args.get("if"), Branch("if"))
        return await options.run_pipeline(args.get("else"), Branch("else"))


class ForEachBrick(BrickABC):
    """Run `body` once per element, sequentially; returns the last body output."""

    id = "@brickkit/for-each"
    name = "For-Each Loop"

    async def run(self, args: dict[str, Any], options: BrickOptions) -> Any:
        elements = args.get("elements")
        if elements is None:
            elements = []
        if isinstance(elements, (str, bytes)) or not isinstance(elements, Sequence):
            raise BusinessError(f"For-Each elements must be a list (type={type(elements).__name__})")
        element_key = _context_key(
            args.get("elementKey"), default="element", brick_id=self.id, field_name="elementKey"
        )

        last: Any = None
        for counter, element in enumerate(elements):
            last = await options.run_pipeline(
                args.get("body"), Branch("body", counter), {f"@{element_key}": element}
            )
        return last


class TryExceptBrick(BrickABC):
    """Run `try`; when it raises, run `except` with the error under `@error`."""

    id = "@brickkit/try-except"
    name = "Try-Except"

    async def run(self, args: dict[str, Any], options: BrickOptions) -> Any:
        error_key = _context_key(
            args.get("errorKey"), default="error", brick_id=self.id, field_name="errorKey"
        )
        try:
            return await options.run_pipeline(args.get("try"), Branch("try"))
        except Exception as exc:
            options.logger.info("Try branch failed, running except branch: %s", exc)
            if args.get("except") is None:
                return None
            return await options.run_pipeline(
                args.get("except"), Branch("except"), {f"@{error_key}": serialize_error(exc)}
            )
