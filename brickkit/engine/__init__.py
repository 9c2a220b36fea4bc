"""Engine primitives for running brick pipelines."""

from brickkit.engine.recorder import (
    DefaultStepRecorder,
    NullStepRecorder,
    StepRecorder,
    TraceRecorder,
    utc_now_iso8601,
)
from brickkit.engine.reducer import (
    DEFAULT_MAX_DEPTH,
    Branch,
    InitialValues,
    PipelineClosure,
    RunContext,
    RunOptions,
    reduce_mod_component_pipeline,
    reduce_pipeline,
    reduce_pipeline_expression,
)

__all__ = [
    "Branch",
    "DEFAULT_MAX_DEPTH",
    "DefaultStepRecorder",
    "InitialValues",
    "NullStepRecorder",
    "PipelineClosure",
    "RunContext",
    "RunOptions",
    "StepRecorder",
    "TraceRecorder",
    "reduce_mod_component_pipeline",
    "reduce_pipeline",
    "reduce_pipeline_expression",
    "utc_now_iso8601",
]
