"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Keyed debounce coalescer.

Requests sharing a key that arrive within the debounce window of each
other collapse into one downstream call carrying the most recent payload.
That call's events are replayed to every subscriber folded into it.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import AsyncIterator, Callable
from functools import partial
from typing import Any

from .downstream import DownstreamCall
from .errors import CoalescerClosedError
from .metrics import (
    BATCH_ABANDONED,
    COALESCED,
    DOWNSTREAM_CANCELLED,
    FLUSHED,
    PASSTHROUGH,
    SUBMITTED,
    CoalescerMetrics,
    NoOpCoalescerMetrics,
)
from .scheduler import KeyedScheduler, LoopScheduler
from .settings import DebounceSettings
from .store import GroupStore, RunningGeneration
from .types import NO_PAYLOAD, Executor, GroupSnapshot, Observer

logger = logging.getLogger("keyed_debounce.coalescer")

_DATA = "data"
_ERROR = "error"
_END = "end"


class Subscription:
    """
    Cancellation handle for one submission.

    ``cancel()`` detaches the subscriber. Only the first call has an
    effect; later calls, and calls after the key was already torn down,
    are no-ops.
    """

    __slots__ = ("key", "generation", "subscription_id", "_release", "_closed")

    def __init__(
        self,
        *,
        release: Callable[[], None],
        key: str | None = None,
        generation: int | None = None,
        subscription_id: int | None = None,
    ) -> None:
        self.key = key
        self.generation = generation
        self.subscription_id = subscription_id
        self._release = release
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def cancel(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._release()

    def __repr__(self) -> str:
        return (
            f"Subscription(key={self.key!r}, generation={self.generation!r}, "
            f"subscription_id={self.subscription_id!r}, closed={self._closed})"
        )


class DebounceCoalescer:
    """
    Collapse bursts of keyed requests into single downstream calls.

    All state is mutated from the event loop thread only: by ``submit``,
    by scheduler timers, by downstream events and by ``cancel``. Each of
    those runs to completion before the next, so no locking is used.

    Subscribers are matched by a per-submission id, so registering the
    same ``Observer`` instance twice yields two independent subscriptions.
    """

    def __init__(
        self,
        executor: Executor,
        *,
        settings: DebounceSettings | None = None,
        scheduler: KeyedScheduler | None = None,
        metrics: CoalescerMetrics | None = None,
    ) -> None:
        self._executor = executor
        self._settings = settings or DebounceSettings()
        self._scheduler = scheduler or LoopScheduler()
        self._metrics: CoalescerMetrics = metrics or NoOpCoalescerMetrics()
        self._store = GroupStore()
        self._calls: set[DownstreamCall] = set()
        self._ids = itertools.count(1)
        self._closed = False

    @property
    def settings(self) -> DebounceSettings:
        return self._settings

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def active_keys(self) -> list[str]:
        """Keys that currently hold accumulating or running work."""
        return self._store.keys()

    def submit(
        self,
        key: str | None,
        payload: Any,
        observer: Observer | None = None,
        *,
        timeout_s: float | None = None,
    ) -> Subscription:
        """
        Join the batch accumulating for ``key``.

        Args:
            key: Grouping key. ``None`` or ``""`` bypasses coalescing and
                calls the executor right away.
            payload: Request payload; replaces any earlier payload of the
                same batch.
            observer: Callbacks receiving the batch's downstream events.
            timeout_s: Debounce window override for this submission.
                ``None`` or ``0`` uses ``settings.default_delay_s``.

        Returns:
            Subscription handle used to detach.

        Raises:
            CoalescerClosedError: If ``aclose()`` has been called.
        """
        if self._closed:
            raise CoalescerClosedError("Coalescer is closed")
        observer = observer or Observer()
        self._metrics.incr(SUBMITTED)
        if not key:
            return self._passthrough(payload, observer)

        group = self._store.get_or_create(key)
        subscription_id = next(self._ids)
        group.pending[subscription_id] = observer
        group.last_payload = payload
        generation = group.generation

        self._scheduler.cancel(key)
        self._scheduler.schedule(
            key,
            self._settings.resolve_delay(timeout_s),
            partial(self._flush, key),
        )
        return Subscription(
            key=key,
            generation=generation,
            subscription_id=subscription_id,
            release=partial(self._cancel, key, generation, subscription_id),
        )

    async def stream(
        self,
        key: str | None,
        payload: Any,
        *,
        timeout_s: float | None = None,
    ) -> AsyncIterator[Any]:
        """
        Submit and iterate the resulting events.

        Yields data events, raises the downstream error, and stops on
        completion. Leaving the loop early cancels the subscription.
        """
        queue: asyncio.Queue[tuple[str, Any]] = asyncio.Queue()
        observer = Observer(
            on_data=lambda item: queue.put_nowait((_DATA, item)),
            on_error=lambda error: queue.put_nowait((_ERROR, error)),
            on_complete=lambda: queue.put_nowait((_END, None)),
        )
        subscription = self.submit(key, payload, observer, timeout_s=timeout_s)
        try:
            while True:
                kind, value = await queue.get()
                if kind == _DATA:
                    yield value
                elif kind == _ERROR:
                    raise value
                else:
                    return
        finally:
            subscription.cancel()

    def pending_payload(self, key: str) -> Any:
        """Payload of the batch accumulating for ``key``, or ``NO_PAYLOAD``."""
        group = self._store.get(key)
        if group is None or not group.pending:
            return NO_PAYLOAD
        return group.last_payload

    def snapshot(self, key: str) -> GroupSnapshot | None:
        group = self._store.get(key)
        if group is None:
            return None
        return GroupSnapshot(
            key=key,
            pending_count=len(group.pending),
            live_generation=group.generation,
            running_generations=tuple(sorted(group.running)),
            timer_armed=self._scheduler.is_scheduled(key),
        )

    async def join(self) -> None:
        """Wait for every in-flight downstream call to finish."""
        while True:
            pending = [
                call
                for call in self._calls
                if call.task is not None and not call.task.done()
            ]
            if not pending:
                return
            await asyncio.gather(*(call.wait() for call in pending))

    async def aclose(self) -> None:
        """
        Shut down: drop pending batches and abort in-flight calls.

        Every observer still waiting receives ``CoalescerClosedError``.
        """
        if self._closed:
            return
        self._closed = True
        error = CoalescerClosedError("Coalescer closed")
        for group in self._store.groups():
            self._scheduler.cancel(group.key)
            pending = group.pending
            group.pending = {}
            group.last_payload = NO_PAYLOAD
            self._deliver(group.key, pending, "on_error", error)
        for call in list(self._calls):
            call.abort(error)
        await self.join()
        self._store.clear()

    def _passthrough(self, payload: Any, observer: Observer) -> Subscription:
        self._metrics.incr(PASSTHROUGH)
        observers = {0: observer}
        call = DownstreamCall(
            partial(self._executor, payload),
            on_data=lambda item: self._deliver(None, observers, "on_data", item),
            on_error=lambda error: self._deliver(None, observers, "on_error", error),
            on_complete=lambda: self._deliver(None, observers, "on_complete"),
            name="keyed-debounce:passthrough",
        )
        self._start(call)
        return Subscription(release=call.cancel)

    def _flush(self, key: str) -> None:
        group = self._store.get(key)
        if group is None or not group.pending:
            return

        observers = group.pending
        payload = group.last_payload
        generation = group.generation

        call = DownstreamCall(
            partial(self._executor, payload),
            on_data=partial(self._on_data, key, generation),
            on_error=partial(self._on_error, key, generation),
            on_complete=partial(self._on_complete, key, generation),
            name=f"keyed-debounce:{key}:{generation}",
        )
        group.running[generation] = RunningGeneration(observers=observers, call=call)
        group.pending = {}
        group.last_payload = NO_PAYLOAD
        self._scheduler.cancel(key)
        group.advance_generation()

        self._metrics.incr(FLUSHED)
        if len(observers) > 1:
            self._metrics.incr(COALESCED, len(observers) - 1)
        logger.debug(
            "Flushing key=%r generation=%d observers=%d",
            key,
            generation,
            len(observers),
        )
        self._start(call)

    def _start(self, call: DownstreamCall) -> None:
        self._calls.add(call)
        task = call.start()
        task.add_done_callback(lambda _task: self._calls.discard(call))

    def _running(self, key: str, generation: int) -> RunningGeneration | None:
        group = self._store.get(key)
        if group is None:
            return None
        return group.running.get(generation)

    def _on_data(self, key: str, generation: int, item: Any) -> None:
        entry = self._running(key, generation)
        if entry is not None:
            self._deliver(key, entry.observers, "on_data", item)

    def _on_error(self, key: str, generation: int, error: BaseException) -> None:
        entry = self._running(key, generation)
        if entry is not None:
            self._deliver(key, entry.observers, "on_error", error)
        self._cleanup(key, generation)

    def _on_complete(self, key: str, generation: int) -> None:
        entry = self._running(key, generation)
        if entry is not None:
            self._deliver(key, entry.observers, "on_complete")
        self._cleanup(key, generation)

    def _cleanup(self, key: str, generation: int) -> None:
        group = self._store.get(key)
        if group is None:
            return
        group.running.pop(generation, None)
        if generation == group.generation:
            self._scheduler.cancel(key)
        if group.is_idle():
            self._store.discard(key)
            logger.debug("Released group for key=%r", key)

    def _cancel(self, key: str, generation: int, subscription_id: int) -> None:
        group = self._store.get(key)
        if group is None:
            return

        if generation == group.generation:
            if group.pending.pop(subscription_id, None) is None:
                return
            if not group.pending:
                self._metrics.incr(BATCH_ABANDONED)
                logger.debug(
                    "Abandoning batch key=%r generation=%d", key, generation
                )
                self._cleanup(key, generation)
            return

        entry = group.running.get(generation)
        if entry is None or entry.observers.pop(subscription_id, None) is None:
            return
        if not entry.observers:
            if not entry.call.terminated:
                self._metrics.incr(DOWNSTREAM_CANCELLED)
                logger.debug(
                    "Cancelling downstream call key=%r generation=%d",
                    key,
                    generation,
                )
            entry.call.cancel()
            self._cleanup(key, generation)

    def _deliver(
        self,
        key: str | None,
        observers: dict[int, Observer],
        callback_name: str,
        *args: Any,
    ) -> None:
        # Snapshot order; skip subscribers that detached mid fan-out.
        for subscription_id, observer in list(observers.items()):
            if subscription_id not in observers:
                continue
            callback = getattr(observer, callback_name)
            if callback is None:
                continue
            try:
                callback(*args)
            except Exception:  # noqa: BLE001
                logger.exception(
                    "Observer %s callback failed for key=%r", callback_name, key
                )
