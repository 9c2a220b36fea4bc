"""Runtime configuration parsed from YAML.

Example::

    runtime:
      api_version: v3
      log_values: false
      max_pipeline_depth: 64
      autoescape: true
      implicit_template_engine: mustache
    state:
      key_prefix: "#modVariables/"
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from brickkit.api_versions import (
    ALLOWED_API_VERSIONS,
    DEFAULT_API_VERSION,
    DEFAULT_IMPLICIT_TEMPLATE_ENGINE,
    ApiVersion,
)
from brickkit.brick_registry import BrickRegistry
from brickkit.config_namespace import ConfigNamespace
from brickkit.engine.reducer import DEFAULT_MAX_DEPTH, RunOptions
from brickkit.expressions import TEMPLATE_ENGINES, TemplateEngine
from brickkit.foundation.config_io import load_config
from brickkit.state.storage import SessionStorage
from brickkit.state.store import DEFAULT_KEY_PREFIX, ModVariableStore


@dataclass(frozen=True)
class RuntimeConfig:
    api_version: ApiVersion = DEFAULT_API_VERSION
    log_values: bool = False
    max_pipeline_depth: int = DEFAULT_MAX_DEPTH
    autoescape: bool = True
    implicit_template_engine: TemplateEngine = DEFAULT_IMPLICIT_TEMPLATE_ENGINE
    state_key_prefix: str = DEFAULT_KEY_PREFIX

    @staticmethod
    def from_dict(cfg: Mapping[str, Any]) -> tuple["RuntimeConfig", list[str]]:
        """Parse and validate configuration, returning (RuntimeConfig, warnings).

        Raises:
            ValueError: on unknown keys or out-of-range values.
            TypeError: on values of the wrong type.
        """

        if not isinstance(cfg, Mapping):
            raise ValueError("Config must be a mapping")

        warnings: list[str] = []
        root = ConfigNamespace(cfg)

        runtime = root.namespace("runtime")
        api_version = runtime.get_str(
            "api_version", default=DEFAULT_API_VERSION, choices=ALLOWED_API_VERSIONS
        )
        log_values = runtime.get_bool("log_values", default=False)
        max_depth = runtime.get_int("max_pipeline_depth", default=DEFAULT_MAX_DEPTH, min_value=1)
        autoescape = runtime.get_bool("autoescape", default=True)
        engine = runtime.get_str(
            "implicit_template_engine",
            default=DEFAULT_IMPLICIT_TEMPLATE_ENGINE,
            choices=TEMPLATE_ENGINES,
        )

        state = root.namespace("state")
        key_prefix = state.get_str("key_prefix", default=DEFAULT_KEY_PREFIX)

        root.assert_consumed()

        if log_values:
            warnings.append("runtime.log_values=true logs rendered brick args and outputs at DEBUG")
        if not autoescape:
            warnings.append("runtime.autoescape=false disables HTML escaping in nunjucks templates")

        return (
            RuntimeConfig(
                api_version=api_version,  # type: ignore[arg-type]
                log_values=log_values,
                max_pipeline_depth=max_depth,
                autoescape=autoescape,
                implicit_template_engine=engine,  # type: ignore[arg-type]
                state_key_prefix=key_prefix,
            ),
            warnings,
        )

    @classmethod
    def load(cls, **kwargs: Any) -> tuple["RuntimeConfig", list[str]]:
        """`load_config(**kwargs)` followed by `from_dict`."""

        data, _meta = load_config(**kwargs)
        return cls.from_dict(data)

    def create_store(
        self,
        storage: SessionStorage | None = None,
        *,
        logger: logging.Logger | None = None,
    ) -> ModVariableStore:
        return ModVariableStore(storage, key_prefix=self.state_key_prefix, logger=logger)

    def run_options(
        self,
        registry: BrickRegistry,
        *,
        api_version: ApiVersion | None = None,
        **overrides: Any,
    ) -> RunOptions:
        """Build `RunOptions` from these defaults; a mod's own api version wins."""

        values: dict[str, Any] = {
            "api_version": api_version or self.api_version,
            "log_values": self.log_values,
            "max_depth": self.max_pipeline_depth,
            "autoescape": self.autoescape,
            "implicit_template_engine": self.implicit_template_engine,
        }
        values.update(overrides)
        return RunOptions(registry=registry, **values)


