"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Test collaborators: a scripted downstream executor, an event recorder,
sequence assertions and an in-memory metrics sink.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

from .types import Observer

ScriptKind = Literal["data", "error", "complete"]


@dataclass(frozen=True, slots=True)
class ScriptEvent:
    """
    One step of a scripted downstream stream, or one observed event.

    ``delay_s`` is how long the scripted stream waits before emitting the
    step. Recorded events always carry ``delay_s=0.0`` so scripts can be
    compared to observations with ``without_delay``.
    """

    kind: ScriptKind
    value: Any = None
    delay_s: float = 0.0

    @classmethod
    def data(cls, value: Any, *, delay_s: float = 0.0) -> "ScriptEvent":
        return cls("data", value, delay_s)

    @classmethod
    def error(cls, error: BaseException, *, delay_s: float = 0.0) -> "ScriptEvent":
        return cls("error", error, delay_s)

    @classmethod
    def complete(cls, *, delay_s: float = 0.0) -> "ScriptEvent":
        return cls("complete", None, delay_s)

    @property
    def terminal(self) -> bool:
        return self.kind != "data"

    def without_delay(self) -> "ScriptEvent":
        return ScriptEvent(self.kind, self.value)


def echo_script(payload: Any) -> list[ScriptEvent]:
    """Default script: emit the payload once, then complete."""
    return [ScriptEvent.data(payload), ScriptEvent.complete()]


class ScriptedStream:
    """Async iterator playing one script; counts early closes as cancels."""

    def __init__(self, executor: "ScriptedExecutor", events: Sequence[ScriptEvent]) -> None:
        self._executor = executor
        self._events = list(events)
        self._index = 0
        self._finished = False

    def __aiter__(self) -> "ScriptedStream":
        return self

    async def __anext__(self) -> Any:
        if self._finished or self._index >= len(self._events):
            self._finished = True
            raise StopAsyncIteration
        event = self._events[self._index]
        self._index += 1
        await asyncio.sleep(event.delay_s)
        if event.kind == "data":
            return event.value
        self._finished = True
        if event.kind == "error":
            raise event.value
        raise StopAsyncIteration

    async def aclose(self) -> None:
        if not self._finished:
            self._finished = True
            self._executor.cancelled += 1


class ScriptedExecutor:
    """
    Simulated downstream executor.

    Every call records its payload in ``calls`` and plays the script
    returned by ``script_for(payload)``. A script may end without a
    terminal step, in which case the stream simply completes.
    """

    def __init__(
        self,
        script_for: Callable[[Any], Sequence[ScriptEvent]] | None = None,
    ) -> None:
        self._script_for = script_for or echo_script
        self.calls: list[Any] = []
        self.cancelled = 0

    def __call__(self, payload: Any) -> ScriptedStream:
        self.calls.append(payload)
        return ScriptedStream(self, self._script_for(payload))


class EventRecorder:
    """Collects events from any number of subscriptions into one list."""

    def __init__(self) -> None:
        self.events: list[ScriptEvent] = []

    def observer(self) -> Observer:
        """A fresh Observer appending to ``events``."""
        return Observer(
            on_data=lambda value: self.events.append(ScriptEvent.data(value)),
            on_error=lambda error: self.events.append(ScriptEvent.error(error)),
            on_complete=lambda: self.events.append(ScriptEvent.complete()),
        )

    @property
    def terminated(self) -> bool:
        return any(event.terminal for event in self.events)


def assert_event_sequence(
    observed: Sequence[ScriptEvent],
    expected: Sequence[ScriptEvent],
) -> None:
    """
    Assert that ``observed`` matches ``expected`` step for step.

    Delays in ``expected`` are ignored. Nothing may follow a terminal
    event in either sequence.

    Raises:
        ValueError: If ``expected`` is empty.
        AssertionError: On any mismatch.
    """
    if not expected:
        raise ValueError("Expected sequence must have at least one element")
    wanted = [event.without_delay() for event in expected]
    for label, sequence in (("observed", observed), ("expected", wanted)):
        for index, event in enumerate(sequence[:-1]):
            assert not event.terminal, (
                f"{label} sequence continues after terminal event at index {index}"
            )
    assert list(observed) == wanted, f"observed {list(observed)!r} != expected {wanted!r}"


@dataclass(slots=True)
class InMemoryMetrics:
    """Counter sink that keeps totals in process memory."""

    counters: dict[str, int] = field(default_factory=dict)

    def incr(
        self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None
    ) -> None:
        _ = tags
        self.counters[name] = self.counters.get(name, 0) + value

    def get(self, name: str) -> int:
        return self.counters.get(name, 0)
