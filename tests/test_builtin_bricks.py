import asyncio
import logging

import pytest

from brickkit.brick_types import BrickABC
from brickkit.bricks import default_registry
from brickkit.engine import InitialValues, RunOptions, TraceRecorder, reduce_pipeline
from brickkit.errors import BusinessError
from brickkit.state import ModComponentRef, ModVariableStore

REF = ModComponentRef(mod_id="@acme/mod", mod_component_id="component-1")


def _make_logger(name: str = "test.builtin_bricks") -> logging.Logger:
    logger = logging.getLogger(name)
    logger.handlers.clear()
    logger.addHandler(logging.NullHandler())
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    return logger


class FailingBrick(BrickABC):
    id = "@test/fail"
    name = "Fail"

    def run(self, args, options):
        raise RuntimeError("boom")


class SlowBrick(BrickABC):
    id = "@test/slow"
    name = "Slow"

    async def run(self, args, options):
        await asyncio.sleep(args.get("delay", 0))
        return {"value": args.get("value")}


def _registry():
    registry = default_registry()
    registry.register(FailingBrick())
    registry.register(SlowBrick())
    return registry


def _options(registry, **kwargs):
    kwargs.setdefault("logger", _make_logger())
    return RunOptions(registry=registry, **kwargs)


def _var(path):
    return {"__type__": "var", "__value__": path}


def _pipeline(*steps):
    return {"__type__": "pipeline", "__value__": list(steps)}


def _run(pipeline, input=None, **kwargs):
    registry = kwargs.pop("registry", None) or _registry()
    return asyncio.run(reduce_pipeline(pipeline, InitialValues(input=input or {}), _options(registry, **kwargs)))


def test_if_else_runs_matching_branch():
    pipeline = [
        {
            "id": "@brickkit/if-else",
            "config": {
                "condition": _var("@input.flag"),
                "if": _pipeline({"id": "@brickkit/identity", "config": {"branch": "if"}}),
                "else": _pipeline({"id": "@brickkit/identity", "config": {"branch": "else"}}),
            },
        }
    ]

    assert _run(pipeline, {"flag": True}) == {"branch": "if"}
    assert _run(pipeline, {"flag": "no"}) == {"branch": "else"}


def test_if_else_without_else_branch_returns_none():
    pipeline = [
        {
            "id": "@brickkit/if-else",
            "config": {
                "condition": False,
                "if": _pipeline({"id": "@brickkit/identity", "config": {"branch": "if"}}),
            },
        }
    ]
    assert _run(pipeline) is None


def test_for_each_runs_body_per_element_and_records_branches():
    recorder = TraceRecorder()
    pipeline = [
        {
            "id": "@brickkit/for-each",
            "config": {
                "elements": _var("@input.items"),
                "body": _pipeline({"id": "@brickkit/identity", "config": {"v": _var("@element")}}),
            },
        }
    ]

    assert _run(pipeline, {"items": [1, 2, 3]}, recorder=recorder) == {"v": 3}

    body_exits = [e for e in recorder.exits() if e["brick_id"] == "@brickkit/identity"]
    assert [e["branches"] for e in body_exits] == [
        [{"key": "body", "counter": 0}],
        [{"key": "body", "counter": 1}],
        [{"key": "body", "counter": 2}],
    ]
    assert [e["output"] for e in body_exits] == [{"v": 1}, {"v": 2}, {"v": 3}]


def test_for_each_custom_element_key():
    pipeline = [
        {
            "id": "@brickkit/for-each",
            "config": {
                "elements": ["a", "b"],
                "elementKey": "letter",
                "body": _pipeline({"id": "@brickkit/identity", "config": {"v": _var("@letter")}}),
            },
        }
    ]
    assert _run(pipeline) == {"v": "b"}


def test_for_each_rejects_non_list_elements():
    pipeline = [{"id": "@brickkit/for-each", "config": {"elements": "abc", "body": _pipeline()}}]
    with pytest.raises(BusinessError, match=r"For-Each elements must be a list"):
        _run(pipeline)


def test_try_except_exposes_error_to_except_branch():
    pipeline = [
        {
            "id": "@brickkit/try-except",
            "config": {
                "try": _pipeline({"id": "@test/fail"}),
                "except": _pipeline(
                    {
                        "id": "@brickkit/identity",
                        "config": {"msg": _var("@error.message"), "name": _var("@error.name")},
                    }
                ),
            },
        }
    ]
    assert _run(pipeline) == {"msg": "boom", "name": "RuntimeError"}


def test_try_except_without_except_swallows_into_none():
    pipeline = [{"id": "@brickkit/try-except", "config": {"try": _pipeline({"id": "@test/fail"})}}]
    assert _run(pipeline) is None


def test_try_except_returns_try_output_on_success():
    pipeline = [
        {
            "id": "@brickkit/try-except",
            "config": {"try": _pipeline({"id": "@brickkit/identity", "config": {"ok": True}})},
        }
    ]
    assert _run(pipeline) == {"ok": True}


def test_set_and_get_state_bricks():
    store = ModVariableStore(logger=_make_logger("test.builtin_bricks.store"))
    pipeline = [
        {"id": "@brickkit/state/set", "config": {"data": {"a": 1}}},
        {"id": "@brickkit/state/set", "config": {"data": {"b": _var("@input.b")}}},
        {"id": "@brickkit/state/get", "config": {}},
    ]

    assert _run(pipeline, {"b": 2}, state=store, mod_component_ref=REF) == {"a": 1, "b": 2}
    assert asyncio.run(store.get_state("mod", REF)) == {"a": 1, "b": 2}


def test_set_state_private_namespace_with_deep_merge():
    store = ModVariableStore(logger=_make_logger("test.builtin_bricks.store"))
    pipeline = [
        {"id": "@brickkit/state/set", "config": {"namespace": "private", "data": {"a": {"x": 1}}}},
        {
            "id": "@brickkit/state/set",
            "config": {"namespace": "private", "data": {"a": {"y": 2}}, "mergeStrategy": "deep"},
        },
    ]

    assert _run(pipeline, state=store, mod_component_ref=REF) == {"a": {"x": 1, "y": 2}}


def test_state_bricks_require_a_store():
    with pytest.raises(BusinessError, match=r"requires a mod variable store"):
        _run([{"id": "@brickkit/state/get"}])


def _async_variable_pipeline(body_config):
    return [
        {
            "id": "@brickkit/async-mod-variable",
            "config": {"stateKey": "result", "body": _pipeline({"id": "@test/slow", "config": body_config})},
        }
    ]


def _run_async_variable(*runs, fail=False, initial_state=None):
    registry = _registry()
    brick = registry.get("@brickkit/async-mod-variable")
    store = ModVariableStore(logger=_make_logger("test.builtin_bricks.store"))

    async def scenario():
        if initial_state is not None:
            await store.set_state("mod", REF, initial_state)
        starts = []
        for body_config in runs:
            pipeline = _async_variable_pipeline(body_config)
            if fail:
                pipeline[0]["config"]["body"] = _pipeline({"id": "@test/fail"})
            options = _options(registry, state=store, mod_component_ref=REF)
            starts.append(await reduce_pipeline(pipeline, InitialValues(), options))
            loading = await store.get_state("mod", REF)
            assert loading["result"]["isFetching"] is True
        await brick.drain()
        return starts, await store.get_state("mod", REF)

    return asyncio.run(scenario())


def test_async_mod_variable_tracks_success():
    starts, state = _run_async_variable({"value": "done"})

    request_id = starts[0]["requestId"]
    assert state["result"] == {
        "isLoading": False,
        "isFetching": False,
        "isSuccess": True,
        "isError": False,
        "currentData": {"value": "done"},
        "data": {"value": "done"},
        "requestId": request_id,
        "error": None,
    }


def test_async_mod_variable_overwrites_non_status_value():
    starts, state = _run_async_variable({"value": "done"}, initial_state={"result": "stale"})

    assert state["result"]["isSuccess"] is True
    assert state["result"]["isLoading"] is False
    assert state["result"]["data"] == {"value": "done"}
    assert state["result"]["requestId"] == starts[0]["requestId"]


def test_async_mod_variable_tracks_errors():
    _starts, state = _run_async_variable({}, fail=True)

    assert state["result"]["isError"] is True
    assert state["result"]["isSuccess"] is False
    assert state["result"]["error"] == {"name": "RuntimeError", "message": "boom"}


def test_async_mod_variable_discards_stale_results():
    starts, state = _run_async_variable({"delay": 0.05, "value": "first"}, {"delay": 0, "value": "second"})

    assert starts[0]["requestId"] != starts[1]["requestId"]
    assert state["result"]["requestId"] == starts[1]["requestId"]
    assert state["result"]["data"] == {"value": "second"}


def test_async_mod_variable_requires_state_key():
    store = ModVariableStore(logger=_make_logger("test.builtin_bricks.store"))
    pipeline = [{"id": "@brickkit/async-mod-variable", "config": {"stateKey": " ", "body": _pipeline()}}]

    with pytest.raises(BusinessError, match=r"Mod Variable Name is required"):
        _run(pipeline, state=store, mod_component_ref=REF)
