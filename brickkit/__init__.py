"""Brick pipeline runtime.

Mods are pipelines of bricks whose configs mix JSON literals with tagged
expressions. `reduce_pipeline` evaluates them step by step under the semantics
of the mod's api version; `ModVariableStore` holds the state they share.
"""

from brickkit.api_versions import (
    ALLOWED_API_VERSIONS,
    DEFAULT_IMPLICIT_TEMPLATE_ENGINE,
    ApiVersion,
    ApiVersionOptions,
    api_version_options,
    is_truthy,
)
from brickkit.brick_registry import BrickRegistry
from brickkit.brick_types import Brick, BrickABC, BrickKind, BrickOptions, Root
from brickkit.config import RuntimeConfig
from brickkit.engine import (
    Branch,
    DefaultStepRecorder,
    InitialValues,
    NullStepRecorder,
    PipelineClosure,
    RunContext,
    RunOptions,
    StepRecorder,
    TraceRecorder,
    reduce_mod_component_pipeline,
    reduce_pipeline,
    reduce_pipeline_expression,
)
from brickkit.errors import (
    BusinessError,
    ConfigurationError,
    assert_not_nullish,
    attach_step_context,
    describe_step_error,
)
from brickkit.expressions import (
    DeferExpression,
    Expression,
    LiteralExpression,
    PipelineExpression,
    Step,
    TemplateExpression,
    VarExpression,
    is_blank_template,
    is_expression,
    normalize_pipeline,
    parse_expression,
    serialize_expression,
    to_expression,
)
from brickkit.foundation.logging_utils import RunLogger
from brickkit.resolver import get_path, map_args, render_deferred, resolve
from brickkit.state import (
    InMemorySessionStorage,
    ModComponentRef,
    ModVariableStore,
    StateChangeEvent,
    map_mod_variables_to_sync_policy,
    merge_state,
)
from brickkit.templates import render_template

__all__ = [
    "ALLOWED_API_VERSIONS",
    "ApiVersion",
    "ApiVersionOptions",
    "Branch",
    "Brick",
    "BrickABC",
    "BrickKind",
    "BrickOptions",
    "BrickRegistry",
    "BusinessError",
    "ConfigurationError",
    "DEFAULT_IMPLICIT_TEMPLATE_ENGINE",
    "DefaultStepRecorder",
    "DeferExpression",
    "Expression",
    "InMemorySessionStorage",
    "InitialValues",
    "LiteralExpression",
    "ModComponentRef",
    "ModVariableStore",
    "NullStepRecorder",
    "PipelineClosure",
    "PipelineExpression",
    "Root",
    "RunContext",
    "RunLogger",
    "RunOptions",
    "RuntimeConfig",
    "StateChangeEvent",
    "Step",
    "StepRecorder",
    "TemplateExpression",
    "TraceRecorder",
    "VarExpression",
    "api_version_options",
    "assert_not_nullish",
    "attach_step_context",
    "describe_step_error",
    "get_path",
    "is_blank_template",
    "is_expression",
    "is_truthy",
    "map_args",
    "map_mod_variables_to_sync_policy",
    "merge_state",
    "normalize_pipeline",
    "parse_expression",
    "reduce_mod_component_pipeline",
    "reduce_pipeline",
    "reduce_pipeline_expression",
    "render_deferred",
    "render_template",
    "resolve",
    "serialize_expression",
    "to_expression",
]
