"""Step recorders: diagnostic hooks called by the reducer around every step.

Recorders never influence control flow. A recorder that raises while handling
an error is logged and ignored so the original error reaches the caller.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Protocol

from brickkit.errors import describe_step_error


def utc_now_iso8601() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def json_safe(value: Any, *, max_depth: int = 6, max_items: int = 50) -> Any:
    if max_depth <= 0:
        return "<max_depth>"
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (list, tuple)):
        items = list(value)
        out = [json_safe(item, max_depth=max_depth - 1, max_items=max_items) for item in items[:max_items]]
        if len(items) > max_items:
            out.append(f"<{len(items) - max_items} more>")
        return out
    if isinstance(value, dict):
        result: dict[str, Any] = {}
        for idx, (key, item) in enumerate(value.items()):
            if idx >= max_items:
                result["<more>"] = f"<{len(value) - max_items} more>"
                break
            result[str(key)] = json_safe(item, max_depth=max_depth - 1, max_items=max_items)
        return result
    return repr(value)


class StepRecorder(Protocol):
    def on_step_start(self, record: dict[str, Any]) -> None:
        ...

    def on_step_skip(self, record: dict[str, Any]) -> None:
        ...

    def on_step_end(self, record: dict[str, Any]) -> None:
        ...

    def on_step_error(self, record: dict[str, Any], exc: BaseException) -> None:
        ...

    def clear(self, mod_component_id: str | None) -> None:
        ...


REQUIRED_RECORDER_METHODS: tuple[str, ...] = (
    "on_step_start",
    "on_step_skip",
    "on_step_end",
    "on_step_error",
    "clear",
)


def validate_recorder(recorder: Any) -> None:
    for name in REQUIRED_RECORDER_METHODS:
        method = getattr(recorder, name, None)
        if method is None or not callable(method):
            raise TypeError(f"Step recorder missing required method: {name}")


def _describe(record: dict[str, Any]) -> str:
    tokens = [f"step={record.get('step_index')}", f"brick_id={record.get('brick_id')}"]
    label = record.get("label")
    if isinstance(label, str) and label.strip():
        tokens.append(f"label={label.strip()}")
    branches = record.get("branches") or []
    if branches:
        tokens.append("branches=" + "/".join(f"{b['key']}:{b['counter']}" for b in branches))
    return ", ".join(tokens)


class DefaultStepRecorder:
    """Log step boundaries through the run logger."""

    def __init__(self, logger: logging.Logger | logging.LoggerAdapter | None = None):
        self._logger = logger or logging.getLogger(__name__)

    def on_step_start(self, record: dict[str, Any]) -> None:
        self._logger.info("Running brick (%s)", _describe(record))

    def on_step_skip(self, record: dict[str, Any]) -> None:
        self._logger.info("Skipped brick, condition not met (%s)", _describe(record))

    def on_step_end(self, record: dict[str, Any]) -> None:
        self._logger.info("Completed brick (%s)", _describe(record))

    def on_step_error(self, record: dict[str, Any], exc: BaseException) -> None:
        self._logger.error("Brick failed (%s): %s", _describe(record), exc)

    def clear(self, mod_component_id: str | None) -> None:
        return


class NullStepRecorder:
    def on_step_start(self, record: dict[str, Any]) -> None:
        return

    def on_step_skip(self, record: dict[str, Any]) -> None:
        return

    def on_step_end(self, record: dict[str, Any]) -> None:
        return

    def on_step_error(self, record: dict[str, Any], exc: BaseException) -> None:
        return

    def clear(self, mod_component_id: str | None) -> None:
        return


class TraceRecorder:
    """Collect JSON-safe entry/exit records for every step."""

    def __init__(self) -> None:
        self.entries: list[dict[str, Any]] = []

    def _append(self, record_type: str, record: dict[str, Any], **extra: Any) -> None:
        entry = {"type": record_type, "timestamp": utc_now_iso8601()}
        entry.update(json_safe(record))
        entry.update(json_safe(extra))
        self.entries.append(entry)

    def on_step_start(self, record: dict[str, Any]) -> None:
        self._append("entry", record)

    def on_step_skip(self, record: dict[str, Any]) -> None:
        self._append("exit", record, skipped_run=True)

    def on_step_end(self, record: dict[str, Any]) -> None:
        self._append("exit", record, skipped_run=False)

    def on_step_error(self, record: dict[str, Any], exc: BaseException) -> None:
        error = {"name": type(exc).__name__, "message": str(exc), **describe_step_error(exc)}
        self._append("exit", record, skipped_run=False, error=error)

    def clear(self, mod_component_id: str | None) -> None:
        if mod_component_id is None:
            self.entries.clear()
            return
        self.entries = [e for e in self.entries if e.get("mod_component_id") != mod_component_id]

    def for_instance(self, instance_id: str) -> list[dict[str, Any]]:
        return [e for e in self.entries if e.get("instance_id") == instance_id]

    def exits(self) -> list[dict[str, Any]]:
        return [e for e in self.entries if e["type"] == "exit"]
