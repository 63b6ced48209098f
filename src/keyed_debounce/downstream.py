"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: downstream.py.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from .errors import DownstreamCancelledError
from .types import CompleteCallback, DataCallback, ErrorCallback, Executor

logger = logging.getLogger("keyed_debounce.downstream")


class DownstreamCall:
    """
    One live call to the downstream executor.

    The executor stream is pumped in its own task. Zero or more data
    events are forwarded, followed by exactly one of error/completion,
    unless the call is cancelled first, in which case nothing further is
    forwarded at all.
    """

    def __init__(
        self,
        factory: Callable[[], AsyncIterator[Any]],
        *,
        on_data: DataCallback,
        on_error: ErrorCallback,
        on_complete: CompleteCallback,
        name: str | None = None,
    ) -> None:
        self._factory = factory
        self._on_data = on_data
        self._on_error = on_error
        self._on_complete = on_complete
        self._name = name
        self._source: AsyncIterator[Any] | None = None
        self._setup_error: Exception | None = None
        self._task: asyncio.Task[None] | None = None
        self._running = False
        self._stopped = False
        self._terminated = False

    @property
    def task(self) -> asyncio.Task[None] | None:
        return self._task

    @property
    def terminated(self) -> bool:
        """Whether a terminal event has been forwarded."""
        return self._terminated

    @property
    def cancelled(self) -> bool:
        return self._stopped and not self._terminated

    def start(self) -> asyncio.Task[None]:
        """Invoke the executor and begin pumping its stream; returns the pump task."""
        if self._task is not None:
            return self._task
        try:
            self._source = self._factory()
        except Exception as error:
            self._setup_error = error
        self._task = asyncio.create_task(self._pump(), name=self._name)
        return self._task

    def cancel(self) -> None:
        """Stop the call; no further events are forwarded. Idempotent."""
        if self._stopped or self._terminated:
            return
        self._stopped = True
        self._interrupt()

    def abort(self, error: BaseException) -> None:
        """Stop the call and forward ``error`` as its terminal event."""
        if self._stopped or self._terminated:
            return
        self._stopped = True
        self._interrupt()
        self._terminate_with_error(error)

    async def wait(self) -> None:
        """Wait until the pump task has exited."""
        if self._task is None:
            return
        await asyncio.gather(self._task, return_exceptions=True)

    def _interrupt(self) -> None:
        task = self._task
        if task is None or task.done() or not self._running:
            # An unstarted pump sees the stop flag on entry and closes the source.
            return
        if task is not asyncio.current_task():
            task.cancel()

    async def _pump(self) -> None:
        self._running = True
        error: BaseException | None = None
        try:
            await self._consume()
        except asyncio.CancelledError:
            if not self._stopped:
                error = DownstreamCancelledError("Downstream call cancelled")
        except Exception as exc:
            error = exc

        # Terminal event is forwarded before the source is closed.
        if not self._stopped:
            self._stopped = True
            if error is not None:
                self._terminate_with_error(error)
            else:
                self._terminated = True
                self._on_complete()

        try:
            await self._close_source()
        except asyncio.CancelledError:
            logger.debug("Closing downstream source was cancelled")

    async def _consume(self) -> None:
        if self._stopped:
            return
        if self._setup_error is not None:
            raise self._setup_error
        if self._source is None:
            return
        async for item in self._source:
            if self._stopped:
                return
            self._on_data(item)
            if self._stopped:
                return

    def _terminate_with_error(self, error: BaseException) -> None:
        self._terminated = True
        self._on_error(error)

    async def _close_source(self) -> None:
        aclose = getattr(self._source, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception:  # noqa: BLE001
            logger.debug("Closing downstream source failed", exc_info=True)


def unary_executor(fn: Callable[[Any], Awaitable[Any]]) -> Executor:
    """Adapt ``async def fn(payload) -> result`` into a one-event stream."""

    async def _execute(payload: Any) -> AsyncIterator[Any]:
        yield await fn(payload)

    return _execute
