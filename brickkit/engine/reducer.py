"""Pipeline reducer: run bricks in order and fold their outputs into a context.

A run threads one `RunContext` through the steps. For every step the reducer
checks the condition, picks the root, renders the config, invokes the brick
(awaiting it when it is async) and folds the output. Awaiting the brick and
reading mod variables are the only suspension points.

Errors are never handled here. They are recorded, annotated with the failing
step and re-raised unmodified.
"""

from __future__ import annotations

import copy
import inspect
import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from brickkit.api_versions import (
    DEFAULT_API_VERSION,
    DEFAULT_IMPLICIT_TEMPLATE_ENGINE,
    ApiVersion,
    ApiVersionOptions,
    api_version_options,
    is_truthy,
)
from brickkit.brick_registry import BrickRegistry
from brickkit.brick_types import Brick, BrickOptions, Root, document_of
from brickkit.engine.recorder import DefaultStepRecorder, StepRecorder, validate_recorder
from brickkit.errors import BusinessError, ConfigurationError, attach_step_context
from brickkit.expressions import (
    TEMPLATE_ENGINES,
    PipelineExpression,
    Step,
    TemplateEngine,
    is_serialized_expression,
    normalize_pipeline,
    parse_expression,
)
from brickkit.foundation.logging_utils import RunLogger, as_run_logger, redact_values
from brickkit.resolver import map_args, resolve
from brickkit.state.store import ModVariableStore
from brickkit.state.types import ModComponentRef

DEFAULT_MAX_DEPTH = 64


@dataclass(frozen=True)
class Branch:
    """Position of a sub-pipeline run inside its caller, for trace correlation."""

    key: str
    counter: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.key, str) or not self.key.strip():
            raise TypeError("Branch key must be a non-empty string")
        if isinstance(self.counter, bool) or not isinstance(self.counter, int) or self.counter < 0:
            raise ValueError(f"Branch counter must be a non-negative int (got {self.counter!r})")

    def to_dict(self) -> dict[str, Any]:
        return {"key": self.key, "counter": self.counter}


@dataclass(frozen=True)
class InitialValues:
    """What a starter brick hands to the reducer."""

    input: Any = field(default_factory=dict)
    root: Root | None = None
    service_context: Mapping[str, Any] = field(default_factory=dict)
    options_args: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RunOptions:
    registry: BrickRegistry
    api_version: ApiVersion = DEFAULT_API_VERSION
    logger: RunLogger | logging.Logger | None = None
    recorder: StepRecorder | None = None
    mod_component_ref: ModComponentRef | None = None
    state: ModVariableStore | None = None
    log_values: bool = False
    in_frame: bool = False
    run_id: str | None = None
    branches: tuple[Branch, ...] = ()
    max_depth: int = DEFAULT_MAX_DEPTH
    autoescape: bool = True
    implicit_template_engine: TemplateEngine = DEFAULT_IMPLICIT_TEMPLATE_ENGINE
    depth: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.registry, BrickRegistry):
            raise TypeError(f"registry must be a BrickRegistry (type={type(self.registry).__name__})")
        api_version_options(self.api_version)
        if isinstance(self.max_depth, bool) or not isinstance(self.max_depth, int) or self.max_depth < 1:
            raise ValueError(f"max_depth must be a positive int (got {self.max_depth!r})")
        if self.implicit_template_engine not in TEMPLATE_ENGINES:
            raise ConfigurationError(
                f"Unknown implicit template engine: {self.implicit_template_engine!r}"
            )

        ref = self.mod_component_ref
        run_logger = as_run_logger(self.logger)
        if ref is not None:
            run_logger = run_logger.child(mod_id=ref.mod_id, mod_component_id=ref.mod_component_id)
        object.__setattr__(self, "logger", run_logger)

        if self.recorder is None:
            object.__setattr__(self, "recorder", DefaultStepRecorder(run_logger))
        validate_recorder(self.recorder)

        if self.run_id is None:
            object.__setattr__(self, "run_id", str(uuid.uuid4()))
        object.__setattr__(self, "branches", tuple(self.branches))

    @property
    def policy(self) -> ApiVersionOptions:
        return api_version_options(self.api_version)

    @property
    def run_logger(self) -> RunLogger:
        return self.logger  # type: ignore[return-value]

    def nested(self, branch: Branch | None = None) -> "RunOptions":
        """Options for a sub-pipeline run one level deeper."""

        depth = self.depth + 1
        if depth > self.max_depth:
            raise BusinessError(f"Maximum pipeline nesting depth exceeded ({self.max_depth})")
        branches = self.branches + (branch,) if branch is not None else self.branches
        return replace(self, depth=depth, branches=branches)


@dataclass
class RunContext:
    """Data threaded between the steps of one pipeline run."""

    input: Any
    options: Mapping[str, Any] = field(default_factory=dict)
    service_context: Mapping[str, Any] = field(default_factory=dict)
    mod: dict[str, Any] | None = None
    implicit: Any = field(default_factory=dict)
    named_outputs: dict[str, Any] = field(default_factory=dict)

    def template_context(self, policy: ApiVersionOptions) -> dict[str, Any]:
        """The mapping expressions are resolved against."""

        ctx: dict[str, Any] = dict(self.service_context)
        ctx["@input"] = self.input
        ctx["@options"] = self.options
        if self.mod is not None:
            ctx["@mod"] = self.mod
        for key, value in self.named_outputs.items():
            ctx[f"@{key}"] = value
        if not policy.explicit_data_flow and isinstance(self.implicit, Mapping):
            return {**ctx, **self.implicit}
        return ctx

    def child(self, extra: Mapping[str, Any] | None = None) -> "RunContext":
        """A sub-pipeline context; its named outputs are a copy of ours plus `extra`."""

        named = dict(self.named_outputs)
        for key, value in (extra or {}).items():
            if not isinstance(key, str) or not key.strip():
                raise ConfigurationError(f"Invalid extra context key: {key!r}")
            name = key[1:] if key.startswith("@") else key
            named[name] = value
        return RunContext(
            input=self.input,
            options=self.options,
            service_context=self.service_context,
            mod=self.mod,
            implicit={},
            named_outputs=named,
        )


@dataclass(frozen=True, eq=False)
class PipelineClosure:
    """A `pipeline` config value bound to the context it was rendered in."""

    steps: tuple[Step, ...]
    captured_context: RunContext
    options: RunOptions
    root: Root | None = None

    async def __call__(
        self,
        extra_context: Mapping[str, Any] | None = None,
        *,
        root: Root | None = None,
        branch: Branch | None = None,
    ) -> Any:
        return await reduce_pipeline_expression(
            self.steps,
            self.captured_context.child(extra_context),
            root if root is not None else self.root,
            self.options.nested(branch),
        )


def select_step_root(root: Root | None, step: Step) -> Root | None:
    base = document_of(root) if step.root_mode == "document" else root
    if step.root is None:
        return base
    matches = list(base.query_selector_all(step.root)) if base is not None else []
    if not matches:
        raise BusinessError(f"No roots found for selector: {step.root}")
    if len(matches) > 1:
        raise BusinessError(f"Multiple roots found for selector: {step.root}")
    return matches[0]


def assert_root_placement(brick: Brick, root: Root | None, *, in_frame: bool) -> None:
    """Root-aware visual bricks need an element target when running in a frame."""

    if not in_frame:
        return
    if root is not None and not root.is_document:
        return
    placement = getattr(brick, "placement", None)
    if placement == "sidebar":
        raise BusinessError("Cannot show sidebar in a frame")
    if placement == "popover":
        raise BusinessError("Target must be an element for popover")


def _short_circuit(value: Any, policy: ApiVersionOptions) -> Any:
    # v1 returns the previous output and v3 the current value; both are `value`.
    if policy.short_circuit == "empty_object":
        return {}
    return value


def _binder(ctx: RunContext, root: Root | None, options: RunOptions):
    def bind(expr: PipelineExpression) -> PipelineClosure:
        return PipelineClosure(steps=expr.steps, captured_context=ctx.child(), options=options, root=root)

    return bind


def _pipeline_runner(ctx: RunContext, root: Root | None, options: RunOptions):
    bind = _binder(ctx, root, options)

    async def run_pipeline(
        pipeline: Any,
        branch: Branch | None = None,
        extra_context: Mapping[str, Any] | None = None,
        *,
        root: Root | None = None,
    ) -> Any:
        if pipeline is None:
            return None
        if is_serialized_expression(pipeline):
            pipeline = parse_expression(pipeline)
        if not isinstance(pipeline, PipelineClosure):
            if not isinstance(pipeline, PipelineExpression):
                pipeline = PipelineExpression(normalize_pipeline(pipeline))
            pipeline = bind(pipeline)
        return await pipeline(extra_context, root=root, branch=branch)

    return run_pipeline


async def _refresh_mod_variables(ctx: RunContext, options: RunOptions) -> None:
    ref = options.mod_component_ref
    if options.state is None or ref is None or ref.mod_id is None:
        return
    ctx.mod = await options.state.get_state("mod", ref)


def _render_args(
    brick: Brick,
    step: Step,
    ctx: RunContext,
    template_context: Mapping[str, Any],
    root: Root | None,
    policy: ApiVersionOptions,
    options: RunOptions,
) -> dict[str, Any]:
    if getattr(brick, "kind", None) == "reader":
        return {"root": root}
    if not policy.explicit_data_flow and not isinstance(ctx.implicit, Mapping):
        # Legacy behavior: nothing to render against, pass the config through.
        return dict(step.config)
    return map_args(
        step.config,
        template_context,
        implicit_render=None if policy.explicit_render else options.implicit_template_engine,
        autoescape=options.autoescape,
        bind_pipeline=_binder(ctx, root, options),
    )


def _fold(brick: Brick, step: Step, ctx: RunContext, output: Any, step_logger: RunLogger) -> Any:
    """Apply `output` to the context; returns the value the step contributes."""

    if getattr(brick, "kind", None) == "effect":
        if step.output_key:
            step_logger.warning("Ignoring output key %s for effect brick", step.output_key)
        if output is not None:
            step_logger.warning("Effect brick produced an output; ignoring it")
        return ctx.implicit
    if step.output_key:
        ctx.named_outputs[step.output_key] = output
        return output
    ctx.implicit = output
    return output


async def _run_step(
    index: int,
    step: Step,
    ctx: RunContext,
    root: Root | None,
    options: RunOptions,
    policy: ApiVersionOptions,
) -> tuple[bool, Any]:
    ref = options.mod_component_ref
    recorder: StepRecorder = options.recorder  # type: ignore[assignment]
    step_logger = options.run_logger.child(
        brick_id=step.brick_id, label=step.label, instance_id=step.instance_id
    )
    record: dict[str, Any] = {
        "run_id": options.run_id,
        "branches": [branch.to_dict() for branch in options.branches],
        "step_index": index,
        "brick_id": step.brick_id,
        "instance_id": step.instance_id,
        "label": step.label,
        "mod_id": ref.mod_id if ref else None,
        "mod_component_id": ref.mod_component_id if ref else None,
    }

    try:
        brick = options.registry.lookup(step.brick_id)
        await _refresh_mod_variables(ctx, options)
        template_context = ctx.template_context(policy)

        if step.condition is not None:
            condition = resolve(
                step.condition,
                template_context,
                implicit_render=None if policy.explicit_render else options.implicit_template_engine,
                autoescape=options.autoescape,
            )
            if not is_truthy(condition):
                recorder.on_step_skip(record)
                return False, None

        step_root = select_step_root(root, step)
        root_aware = step.is_root_aware
        if root_aware is None:
            root_aware = bool(getattr(brick, "is_root_aware", False))
        if root_aware:
            assert_root_placement(brick, step_root, in_frame=options.in_frame)
        else:
            step_root = document_of(step_root)

        try:
            args = _render_args(brick, step, ctx, template_context, step_root, policy, options)
        except Exception as exc:
            recorder.on_step_start({**record, "render_error": str(exc)})
            raise
        recorder.on_step_start({**record, "rendered_args": args})
        if options.log_values:
            step_logger.debug("Rendered args: %s", redact_values(args))

        brick_options = BrickOptions(
            root=step_root,
            logger=step_logger,
            context=template_context,
            run_pipeline=_pipeline_runner(ctx, step_root, options),
            mod_component_ref=ref,
            state=options.state,
            api_version=options.api_version,
            run_id=options.run_id,
            branches=options.branches,
        )
        output = brick.run(args, brick_options)
        if inspect.isawaitable(output):
            output = await output

        recorder.on_step_end({**record, "output": output})
        if options.log_values:
            step_logger.debug("Output: %s", redact_values(output))
    except Exception as exc:
        attach_step_context(
            exc,
            step_index=index,
            brick_id=step.brick_id,
            instance_id=step.instance_id,
            mod_id=ref.mod_id if ref else None,
            mod_component_id=ref.mod_component_id if ref else None,
        )
        try:
            recorder.on_step_error(record, exc)
        except Exception:
            step_logger.exception("Step recorder failed during error handling")
        raise

    return True, _fold(brick, step, ctx, output, step_logger)


async def _reduce(
    steps: tuple[Step, ...],
    ctx: RunContext,
    root: Root | None,
    options: RunOptions,
) -> tuple[Any, Any]:
    """Return the final implicit value and the output of the last step."""

    policy = options.policy
    last_output = ctx.implicit
    for index, step in enumerate(steps):
        ran, output = await _run_step(index, step, ctx, root, options, policy)
        if not ran:
            return _short_circuit(ctx.implicit, policy), _short_circuit(last_output, policy)
        last_output = output
    return ctx.implicit, last_output


async def reduce_pipeline(
    pipeline: Any,
    initial_values: InitialValues,
    options: RunOptions,
) -> Any:
    """Run a top-level pipeline and return its final implicit value.

    The caller's input is deep-copied, so bricks cannot mutate it.
    """

    steps = normalize_pipeline(pipeline)
    policy = options.policy
    raw_input = initial_values.input if initial_values.input is not None else {}
    input_copy = copy.deepcopy(raw_input)
    ctx = RunContext(
        input=input_copy,
        options=copy.deepcopy(dict(initial_values.options_args or {})),
        service_context=dict(initial_values.service_context or {}),
        implicit={} if policy.explicit_data_flow else input_copy,
    )
    options.run_logger.debug(
        "Running pipeline (steps=%d, api_version=%s, run_id=%s)",
        len(steps),
        options.api_version,
        options.run_id,
    )
    implicit, _last = await _reduce(steps, ctx, initial_values.root, options)
    return implicit


async def reduce_pipeline_expression(
    pipeline: Any,
    context: RunContext,
    root: Root | None,
    options: RunOptions,
) -> Any:
    """Run a sub-pipeline and return the output of its last brick."""

    if not options.policy.explicit_data_flow:
        raise ConfigurationError(
            f"Pipeline expressions require explicit data flow (api_version={options.api_version})"
        )
    steps = normalize_pipeline(pipeline)
    _implicit, last_output = await _reduce(steps, context, root, options)
    return last_output


async def reduce_mod_component_pipeline(
    pipeline: Any,
    initial_values: InitialValues,
    options: RunOptions,
) -> Any:
    """Top-level run for a mod component; earlier traces for it are cleared first."""

    ref = options.mod_component_ref
    options.recorder.clear(ref.mod_component_id if ref else None)  # type: ignore[union-attr]
    return await reduce_pipeline(pipeline, initial_values, options)
