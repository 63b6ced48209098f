from __future__ import annotations

import asyncio
from contextlib import aclosing

import pytest

from keyed_debounce import (
    DebounceCoalescer,
    DebounceSettings,
    Observer,
    VirtualScheduler,
)
from keyed_debounce.metrics import COALESCED, FLUSHED, PASSTHROUGH, SUBMITTED
from keyed_debounce.testing import (
    EventRecorder,
    InMemoryMetrics,
    ScriptedExecutor,
    ScriptEvent,
    assert_event_sequence,
)

DEBOUNCE_S = 0.5


def run_async(coro):
    return asyncio.run(coro)


def _build(executor=None, *, metrics=None):
    clock = VirtualScheduler()
    executor = executor or ScriptedExecutor()
    coalescer = DebounceCoalescer(
        executor,
        settings=DebounceSettings(default_delay_s=DEBOUNCE_S),
        scheduler=clock,
        metrics=metrics,
    )
    return coalescer, executor, clock


def test_burst_collapses_into_one_call_with_latest_payload():
    async def scenario():
        coalescer, executor, clock = _build()
        recorder = EventRecorder()

        coalescer.submit("k", "P1", recorder.observer())
        clock.advance(0.499)
        coalescer.submit("k", "P2", recorder.observer())
        clock.advance(0.101)
        coalescer.submit("k", "P3", recorder.observer())
        clock.advance(0.499)
        assert executor.calls == []

        clock.advance(0.002)
        assert executor.calls == ["P3"]
        await coalescer.join()
        return recorder.events, coalescer.active_keys

    events, active = run_async(scenario())
    assert events == [ScriptEvent.data("P3")] * 3 + [ScriptEvent.complete()] * 3
    assert active == []


def test_every_subscriber_sees_identical_sequence():
    async def scenario():
        coalescer, executor, clock = _build(
            ScriptedExecutor(
                lambda payload: [
                    ScriptEvent.data(f"{payload}-1"),
                    ScriptEvent.data(f"{payload}-2"),
                    ScriptEvent.complete(),
                ]
            )
        )
        recorders = [EventRecorder() for _ in range(3)]
        for index, recorder in enumerate(recorders):
            coalescer.submit("k", f"op{index}", recorder.observer())
        clock.advance(DEBOUNCE_S + 0.001)
        await coalescer.join()
        return recorders

    recorders = run_async(scenario())
    for recorder in recorders:
        assert_event_sequence(
            recorder.events,
            [
                ScriptEvent.data("op2-1"),
                ScriptEvent.data("op2-2"),
                ScriptEvent.complete(),
            ],
        )


@pytest.mark.parametrize("key", [None, ""])
def test_missing_key_bypasses_debounce(key):
    async def scenario():
        coalescer, executor, clock = _build()
        recorder = EventRecorder()
        coalescer.submit(key, "direct", recorder.observer())
        assert executor.calls == ["direct"]
        await coalescer.join()
        return recorder.events, clock.scheduled_keys(), coalescer.active_keys

    events, scheduled, active = run_async(scenario())
    assert events == [ScriptEvent.data("direct"), ScriptEvent.complete()]
    assert scheduled == []
    assert active == []


def test_cancelling_unkeyed_submission_cancels_the_direct_call():
    async def scenario():
        coalescer, executor, _ = _build(
            ScriptedExecutor(
                lambda payload: [
                    ScriptEvent.data(payload, delay_s=10.0),
                    ScriptEvent.complete(),
                ]
            )
        )
        recorder = EventRecorder()
        subscription = coalescer.submit(None, "direct", recorder.observer())
        await asyncio.sleep(0)
        subscription.cancel()
        subscription.cancel()
        await coalescer.join()
        return executor.calls, executor.cancelled, recorder.events, subscription.closed

    calls, cancelled, events, closed = run_async(scenario())
    assert calls == ["direct"]
    assert cancelled == 1
    assert events == []
    assert closed is True


def test_submissions_outside_the_window_are_not_merged():
    async def scenario():
        coalescer, executor, clock = _build()
        recorder = EventRecorder()

        coalescer.submit("k", "first", recorder.observer())
        clock.advance(DEBOUNCE_S + 0.001)
        await coalescer.join()
        assert executor.calls == ["first"]
        assert len(recorder.events) == 2

        coalescer.submit("k", "second", recorder.observer())
        clock.advance(DEBOUNCE_S + 0.001)
        await coalescer.join()
        return executor.calls, recorder.events

    calls, events = run_async(scenario())
    assert calls == ["first", "second"]
    assert events == [
        ScriptEvent.data("first"),
        ScriptEvent.complete(),
        ScriptEvent.data("second"),
        ScriptEvent.complete(),
    ]


def test_different_keys_never_merge():
    async def scenario():
        coalescer, executor, clock = _build()
        first = EventRecorder()
        second = EventRecorder()
        coalescer.submit("key1", "a", first.observer())
        coalescer.submit("key2", "b", second.observer())
        clock.advance(DEBOUNCE_S + 0.001)
        await coalescer.join()
        return executor.calls, first.events, second.events

    calls, first, second = run_async(scenario())
    assert calls == ["a", "b"]
    assert first == [ScriptEvent.data("a"), ScriptEvent.complete()]
    assert second == [ScriptEvent.data("b"), ScriptEvent.complete()]


def test_timeout_override_sets_the_window():
    async def scenario():
        coalescer, executor, clock = _build()
        recorder = EventRecorder()
        custom = DEBOUNCE_S / 4

        coalescer.submit("k", "op1", recorder.observer(), timeout_s=custom)
        clock.advance(custom - 0.001)
        coalescer.submit("k", "op2", recorder.observer(), timeout_s=custom)
        clock.advance(custom - 0.001)
        assert executor.calls == []

        clock.advance(0.002)
        assert executor.calls == ["op2"]
        await coalescer.join()
        return recorder.events

    events = run_async(scenario())
    assert events == [ScriptEvent.data("op2")] * 2 + [ScriptEvent.complete()] * 2


def test_zero_override_falls_back_to_default_delay():
    async def scenario():
        coalescer, executor, clock = _build()
        coalescer.submit("k", "op", timeout_s=0)
        assert clock.due_at("k") == pytest.approx(DEBOUNCE_S)
        coalescer.submit("k", "op", timeout_s=0.2)
        assert clock.due_at("k") == pytest.approx(0.2)
        coalescer.submit("k", "op")
        assert clock.due_at("k") == pytest.approx(DEBOUNCE_S)
        await coalescer.aclose()

    run_async(scenario())


def test_downstream_error_reaches_every_subscriber_once():
    failure = RuntimeError("Hello darkness my old friend")

    async def scenario():
        coalescer, executor, clock = _build(
            ScriptedExecutor(lambda payload: [ScriptEvent.error(failure)])
        )
        first = EventRecorder()
        second = EventRecorder()
        coalescer.submit("k", "op", first.observer())
        coalescer.submit("k", "op", second.observer())
        clock.advance(DEBOUNCE_S + 0.001)
        await coalescer.join()
        return first.events, second.events, coalescer.active_keys

    first, second, active = run_async(scenario())
    assert_event_sequence(first, [ScriptEvent.error(failure)])
    assert_event_sequence(second, [ScriptEvent.error(failure)])
    assert first[0].value is failure
    assert active == []


def test_executor_raising_synchronously_is_delivered_as_error():
    failure = ValueError("bad payload")

    def executor(payload):
        raise failure

    async def scenario():
        coalescer, _, clock = _build(executor)
        recorder = EventRecorder()
        coalescer.submit("k", "op", recorder.observer())
        clock.advance(DEBOUNCE_S + 0.001)
        await coalescer.join()
        return recorder.events, coalescer.active_keys

    events, active = run_async(scenario())
    assert events == [ScriptEvent.error(failure)]
    assert active == []


def test_failing_observer_does_not_starve_others():
    async def scenario():
        coalescer, _, clock = _build()
        recorder = EventRecorder()
        completions = []

        def explode(item):
            raise RuntimeError("observer bug")

        coalescer.submit(
            "k",
            "op",
            Observer(on_data=explode, on_complete=lambda: completions.append(True)),
        )
        coalescer.submit("k", "op", recorder.observer())
        clock.advance(DEBOUNCE_S + 0.001)
        await coalescer.join()
        return recorder.events, completions

    events, completions = run_async(scenario())
    assert events == [ScriptEvent.data("op"), ScriptEvent.complete()]
    assert completions == [True]


def test_observer_without_callbacks_is_allowed():
    async def scenario():
        coalescer, executor, clock = _build()
        coalescer.submit("k", "op")
        coalescer.submit("k", "op2", Observer())
        clock.advance(DEBOUNCE_S + 0.001)
        await coalescer.join()
        return executor.calls, coalescer.active_keys

    calls, active = run_async(scenario())
    assert calls == ["op2"]
    assert active == []


def test_metrics_count_submissions_and_flushes():
    async def scenario():
        metrics = InMemoryMetrics()
        coalescer, _, clock = _build(metrics=metrics)
        for payload in ("a", "b", "c"):
            coalescer.submit("k", payload)
        coalescer.submit(None, "direct")
        clock.advance(DEBOUNCE_S + 0.001)
        await coalescer.join()
        return metrics

    metrics = run_async(scenario())
    assert metrics.get(SUBMITTED) == 4
    assert metrics.get(PASSTHROUGH) == 1
    assert metrics.get(FLUSHED) == 1
    assert metrics.get(COALESCED) == 2


def test_stream_yields_shared_result_with_real_timers():
    async def scenario():
        executor = ScriptedExecutor()
        coalescer = DebounceCoalescer(
            executor, settings=DebounceSettings(default_delay_s=0.01)
        )

        async def consume(payload):
            return [item async for item in coalescer.stream("k", payload)]

        results = await asyncio.gather(consume("a"), consume("b"))
        await coalescer.join()
        return results, executor.calls, coalescer.active_keys

    results, calls, active = run_async(scenario())
    assert results == [["b"], ["b"]]
    assert calls == ["b"]
    assert active == []


def test_stream_raises_downstream_error():
    async def scenario():
        coalescer = DebounceCoalescer(
            ScriptedExecutor(lambda payload: [ScriptEvent.error(KeyError("gone"))]),
            settings=DebounceSettings(default_delay_s=0.01),
        )
        with pytest.raises(KeyError):
            async for _ in coalescer.stream("k", "op"):
                pass
        await coalescer.join()

    run_async(scenario())


def test_leaving_stream_early_cancels_the_call():
    async def scenario():
        executor = ScriptedExecutor(
            lambda payload: [
                ScriptEvent.data(1),
                ScriptEvent.data(2, delay_s=10.0),
                ScriptEvent.complete(),
            ]
        )
        coalescer = DebounceCoalescer(
            executor, settings=DebounceSettings(default_delay_s=0.01)
        )
        async with aclosing(coalescer.stream("k", "op")) as events:
            async for item in events:
                assert item == 1
                break
        await coalescer.join()
        return executor.cancelled, coalescer.active_keys

    cancelled, active = run_async(scenario())
    assert cancelled == 1
    assert active == []
