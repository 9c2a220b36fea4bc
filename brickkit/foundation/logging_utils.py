"""Logging helpers for pipeline runs."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from typing import Any

SENSITIVE_KEYS: tuple[str, ...] = ("password", "token", "secret", "authorization", "api_key")
REDACTED = "<redacted>"

_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"


class RunLogger(logging.LoggerAdapter):
    """Logger adapter that tags every record with mod/brick identifiers.

    The identifiers are added to the record's `extra` and appended to the
    message, so plain formatters still show them.
    """

    def __init__(self, logger: logging.Logger, context: Mapping[str, Any] | None = None):
        super().__init__(logger, {k: v for k, v in (context or {}).items() if v is not None})

    @property
    def context(self) -> dict[str, Any]:
        return dict(self.extra)

    def child(self, **context: Any) -> "RunLogger":
        merged = dict(self.extra)
        merged.update({k: v for k, v in context.items() if v is not None})
        return RunLogger(self.logger, merged)

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        extra = dict(self.extra)
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs

    def log(self, level: int, msg: Any, *args: Any, **kwargs: Any) -> None:
        if not self.isEnabledFor(level):
            return
        msg, kwargs = self.process(msg, kwargs)
        if self.extra:
            suffix = " ".join(f"{key}={value}" for key, value in self.extra.items())
            # The suffix goes through %-formatting only when args are present.
            if args:
                suffix = suffix.replace("%", "%%")
            msg = f"{msg} [{suffix}]"
        self.logger.log(level, msg, *args, **kwargs)


def as_run_logger(logger: logging.Logger | RunLogger | None, *, name: str = "brickkit.run") -> RunLogger:
    if isinstance(logger, RunLogger):
        return logger
    if logger is None:
        logger = logging.getLogger(name)
    return RunLogger(logger)


def setup_run_logger(
    run_id: str,
    *,
    log_dir: str | None = None,
    level: int = logging.INFO,
) -> RunLogger:
    """Configure a stream (and optional UTF-8 file) logger for one run."""

    logger = logging.getLogger(f"brickkit.run.{run_id}")
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()

    formatter = logging.Formatter(_LOG_FORMAT)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(os.path.join(log_dir, f"{run_id}.log"), encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False
    return RunLogger(logger, {"run_id": run_id})


def _is_sensitive(key: Any) -> bool:
    lowered = str(key).lower()
    return any(marker in lowered for marker in SENSITIVE_KEYS)


def redact_values(value: Any) -> Any:
    """Copy `value` with sensitive keys masked, for logging rendered args."""

    if isinstance(value, Mapping):
        return {
            key: REDACTED if _is_sensitive(key) else redact_values(item) for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [redact_values(item) for item in value]
    return value
