"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Keyed deferred-action schedulers.

Each key holds at most one pending action. Scheduling again for the same
key replaces the previous action and restarts its delay, which is what
turns a plain timer into a debounce window.
"""

from __future__ import annotations

import asyncio
import itertools
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass

Action = Callable[[], None]


class KeyedScheduler(ABC):
    """One replaceable deferred action per key."""

    @abstractmethod
    def schedule(self, key: str, delay_s: float, action: Action) -> None:
        """
        Run ``action`` after ``delay_s`` seconds.

        Any action already scheduled for ``key`` is cancelled first. The
        delay is relative to the time of this call.
        """
        ...

    @abstractmethod
    def cancel(self, key: str) -> None:
        """Drop the action scheduled for ``key``; no-op when none is."""
        ...

    @abstractmethod
    def is_scheduled(self, key: str) -> bool:
        """Whether an action is currently pending for ``key``."""
        ...

    @abstractmethod
    def scheduled_keys(self) -> list[str]:
        """Keys with a pending action."""
        ...


class LoopScheduler(KeyedScheduler):
    """Scheduler backed by the running asyncio loop's ``call_later``."""

    def __init__(self) -> None:
        self._handles: dict[str, asyncio.TimerHandle] = {}

    def schedule(self, key: str, delay_s: float, action: Action) -> None:
        self.cancel(key)
        loop = asyncio.get_running_loop()
        self._handles[key] = loop.call_later(
            max(0.0, delay_s), self._fire, key, action
        )

    def _fire(self, key: str, action: Action) -> None:
        # Rescheduling cancels the old handle, so the entry for a firing key
        # is always this handle.
        self._handles.pop(key, None)
        action()

    def cancel(self, key: str) -> None:
        handle = self._handles.pop(key, None)
        if handle is not None:
            handle.cancel()

    def is_scheduled(self, key: str) -> bool:
        return key in self._handles

    def scheduled_keys(self) -> list[str]:
        return list(self._handles)


@dataclass(slots=True)
class _VirtualEntry:
    """Data type for a pending virtual action."""

    due_s: float
    seq: int
    action: Action


class VirtualScheduler(KeyedScheduler):
    """
    Deterministic scheduler driven by an explicit virtual clock.

    Nothing fires until ``advance`` or ``run_all`` is called. Intended for
    tests and simulations where flush timing must not depend on wall time.
    """

    def __init__(self, *, start_s: float = 0.0) -> None:
        self._now = start_s
        self._entries: dict[str, _VirtualEntry] = {}
        self._seq = itertools.count()

    @property
    def now(self) -> float:
        """Current virtual time in seconds."""
        return self._now

    def schedule(self, key: str, delay_s: float, action: Action) -> None:
        self._entries[key] = _VirtualEntry(
            due_s=self._now + max(0.0, delay_s),
            seq=next(self._seq),
            action=action,
        )

    def cancel(self, key: str) -> None:
        self._entries.pop(key, None)

    def is_scheduled(self, key: str) -> bool:
        return key in self._entries

    def scheduled_keys(self) -> list[str]:
        return list(self._entries)

    def due_at(self, key: str) -> float | None:
        """Virtual due time of the action scheduled for ``key``."""
        entry = self._entries.get(key)
        return entry.due_s if entry is not None else None

    def advance(self, delay_s: float) -> int:
        """
        Move the clock forward and fire every action that falls due.

        Actions fire in due-time order, ties in scheduling order. The clock
        is set to each action's due time before it runs, so an action that
        schedules another one does so relative to that instant.

        Returns:
            Number of actions fired.
        """
        if delay_s < 0:
            raise ValueError("Virtual time cannot move backwards")
        target = self._now + delay_s
        fired = 0
        while True:
            key = self._next_due(target)
            if key is None:
                break
            entry = self._entries.pop(key)
            self._now = entry.due_s
            entry.action()
            fired += 1
        self._now = target
        return fired

    def run_all(self) -> int:
        """Fire actions until none remain, advancing the clock as needed."""
        fired = 0
        while True:
            key = self._next_due(None)
            if key is None:
                break
            entry = self._entries.pop(key)
            self._now = max(self._now, entry.due_s)
            entry.action()
            fired += 1
        return fired

    def _next_due(self, limit_s: float | None) -> str | None:
        best: tuple[float, int, str] | None = None
        for key, entry in self._entries.items():
            if limit_s is not None and entry.due_s > limit_s:
                continue
            candidate = (entry.due_s, entry.seq, key)
            if best is None or candidate < best:
                best = candidate
        return best[2] if best is not None else None
