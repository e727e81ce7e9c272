from __future__ import annotations

import asyncio

import pytest
from lambda_hooks.errors import ErrorCode, LambdaHookError
from lambda_hooks.models import HookEntry, Phase
from lambda_hooks.registry import HookRegistry


def _named(name: str, launched: list[str]):
    async def handler(_event) -> None:
        launched.append(name)

    handler.__qualname__ = name
    return handler


def test_mixed_array_sorted_by_priority_with_stable_ties() -> None:
    registry = HookRegistry()
    launched: list[str] = []
    a, b, c = (_named(n, launched) for n in "ABC")

    registry.register(Phase.INVOKE, [a, {"handler": b, "priority": 20}, c])

    assert [entry.handler for entry in registry.entries(Phase.INVOKE)] == [b, a, c]


def test_later_registrations_are_merged_into_priority_order() -> None:
    registry = HookRegistry()
    launched: list[str] = []
    low, high, mid, mid2 = (_named(n, launched) for n in ("low", "high", "mid", "mid2"))

    registry.register("INVOKE", low)
    registry.register("INVOKE", high, priority=50)
    registry.register("INVOKE", mid, priority=10)
    registry.register("INVOKE", {"handler": mid2, "priority": 10})

    priorities = [entry.priority for entry in registry.entries("INVOKE")]
    assert priorities == sorted(priorities, reverse=True)
    assert [entry.handler for entry in registry.entries("INVOKE")] == [high, mid, mid2, low]


def test_normalization_is_form_independent() -> None:
    launched: list[str] = []
    handler = _named("h", launched)
    forms = [
        handler,
        [handler],
        {"handler": handler, "priority": 5},
        [{"handler": handler}],
        HookEntry(handler=handler, priority=5),
        (handler,),
    ]
    results = []
    for form in forms:
        registry = HookRegistry()
        registry.register(Phase.INIT, form, priority=5)
        results.append(registry.entries(Phase.INIT))

    assert all(result == (HookEntry(handler=handler, priority=5),) for result in results)


def test_item_priority_wins_over_default_priority() -> None:
    registry = HookRegistry()
    launched: list[str] = []
    a, b = _named("a", launched), _named("b", launched)

    registry.register(Phase.SHUTDOWN, [{"handler": a, "priority": 0}, b], priority=7)

    entries = registry.entries(Phase.SHUTDOWN)
    assert [(entry.handler, entry.priority) for entry in entries] == [(b, 7), (a, 0)]


@pytest.mark.parametrize("handler", [42, "not-callable", None, {"priority": 3}, [print, 1]])
def test_unsupported_shapes_are_rejected(handler) -> None:
    registry = HookRegistry()
    with pytest.raises(LambdaHookError) as excinfo:
        registry.register(Phase.INVOKE, handler)
    assert excinfo.value.code is ErrorCode.INVALID_HANDLER
    assert registry.entries(Phase.INVOKE) == ()


def test_unknown_phase_is_rejected() -> None:
    registry = HookRegistry()
    with pytest.raises(LambdaHookError) as excinfo:
        registry.register("RESTORE", print)
    assert excinfo.value.code is ErrorCode.INVALID_EVENT_TYPE


def test_registration_after_freeze_is_rejected() -> None:
    registry = HookRegistry()
    registry.freeze()
    with pytest.raises(LambdaHookError) as excinfo:
        registry.register(Phase.INIT, print)
    assert excinfo.value.code is ErrorCode.INVALID_STATE


@pytest.mark.asyncio
async def test_execute_without_hooks_is_a_no_op() -> None:
    registry = HookRegistry()
    assert await registry.execute_hooks(Phase.INVOKE, {"requestId": "r"}) is None


@pytest.mark.asyncio
async def test_hooks_launch_in_priority_order_and_receive_the_event() -> None:
    registry = HookRegistry()
    launched: list[str] = []
    seen: list[object] = []
    a, b, c = (_named(n, launched) for n in "ABC")

    def sync_hook(event) -> None:
        seen.append(event)

    registry.register(Phase.INVOKE, [a, {"handler": b, "priority": 20}, c])
    registry.register(Phase.INVOKE, sync_hook, priority=-1)

    event = {"requestId": "req-1"}
    await registry.execute_hooks(Phase.INVOKE, event)

    assert launched == ["B", "A", "C"]
    assert seen == [event]


@pytest.mark.asyncio
async def test_hooks_run_concurrently() -> None:
    registry = HookRegistry()
    first_started = asyncio.Event()
    second_started = asyncio.Event()

    async def first(_event) -> None:
        first_started.set()
        await asyncio.wait_for(second_started.wait(), timeout=1)

    async def second(_event) -> None:
        second_started.set()
        await asyncio.wait_for(first_started.wait(), timeout=1)

    registry.register(Phase.INIT, [first, second])
    await registry.execute_hooks(Phase.INIT, None)

    assert first_started.is_set()
    assert second_started.is_set()


@pytest.mark.asyncio
async def test_failure_is_wrapped_and_siblings_are_not_cancelled() -> None:
    registry = HookRegistry()
    finished = asyncio.Event()

    async def failing(_event) -> None:
        raise RuntimeError("boom")

    async def slow(_event) -> None:
        await asyncio.sleep(0.01)
        finished.set()

    registry.register(Phase.INVOKE, [failing, slow])

    with pytest.raises(LambdaHookError) as excinfo:
        await registry.execute_hooks(Phase.INVOKE, None)

    error = excinfo.value
    assert error.code is ErrorCode.HOOK_EXECUTION_ERROR
    assert isinstance(error.cause, RuntimeError)
    assert "INVOKE" in error.message
    assert not finished.is_set()

    await asyncio.wait_for(finished.wait(), timeout=1)
    assert finished.is_set()


@pytest.mark.asyncio
async def test_drain_waits_for_background_hooks() -> None:
    registry = HookRegistry()
    done: list[str] = []

    async def failing(_event) -> None:
        raise ValueError("fail fast")

    async def slow_failing(_event) -> None:
        await asyncio.sleep(0.01)
        done.append("slow")
        raise ValueError("fail late")

    registry.register(Phase.SHUTDOWN, [failing, slow_failing])
    with pytest.raises(LambdaHookError):
        await registry.execute_hooks(Phase.SHUTDOWN, None)

    await registry.drain()
    assert done == ["slow"]
