"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Public data types shared by the coalescer, store and downstream call.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import Any

DataCallback = Callable[[Any], None]
ErrorCallback = Callable[[BaseException], None]
CompleteCallback = Callable[[], None]

# Calling the executor starts one downstream call for the given payload.
Executor = Callable[[Any], AsyncIterator[Any]]


class _NoPayload:
    """Sentinel type for "nothing is accumulating"."""

    _instance: "_NoPayload | None" = None

    def __new__(cls) -> "_NoPayload":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NO_PAYLOAD"

    def __bool__(self) -> bool:
        return False


NO_PAYLOAD: Any = _NoPayload()


@dataclass(frozen=True, slots=True)
class Observer:
    """
    Callback set for one subscription.

    Attributes:
        on_data: Called once per data event.
        on_error: Called with the downstream exception; terminal.
        on_complete: Called when the downstream call finishes; terminal.

    Every callback is optional. Callbacks run synchronously on the event
    loop thread and must not block.
    """

    on_data: DataCallback | None = None
    on_error: ErrorCallback | None = None
    on_complete: CompleteCallback | None = None


@dataclass(frozen=True, slots=True)
class GroupSnapshot:
    """Read-only view of one key's coalescing state."""

    key: str
    pending_count: int
    live_generation: int
    running_generations: tuple[int, ...]
    timer_armed: bool
