"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Per-key coalescing group records.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .downstream import DownstreamCall
from .types import NO_PAYLOAD, Observer


@dataclass(slots=True)
class RunningGeneration:
    """A flushed batch whose downstream call has not terminated yet."""

    observers: dict[int, Observer]
    call: DownstreamCall


@dataclass(slots=True)
class Group:
    """
    Coalescing state for one key.

    Attributes:
        key: Grouping key.
        pending: Observers of the batch currently accumulating, keyed by
            subscription id, in the order they joined.
        last_payload: Most recent payload submitted to the live batch.
        generation: Id of the live (accumulating) generation.
        running: In-flight generations keyed by generation id.
    """

    key: str
    pending: dict[int, Observer] = field(default_factory=dict)
    last_payload: Any = NO_PAYLOAD
    generation: int = 0
    running: dict[int, RunningGeneration] = field(default_factory=dict)

    def is_idle(self) -> bool:
        return not self.pending and not self.running

    def advance_generation(self) -> int:
        """Close the live generation and open the next one; returns the closed id."""
        closed = self.generation
        self.generation += 1
        return closed


class GroupStore:
    """Owns one ``Group`` per active key."""

    def __init__(self) -> None:
        self._groups: dict[str, Group] = {}

    def get(self, key: str) -> Group | None:
        return self._groups.get(key)

    def get_or_create(self, key: str) -> Group:
        group = self._groups.get(key)
        if group is None:
            group = Group(key=key)
            self._groups[key] = group
        return group

    def discard(self, key: str) -> None:
        self._groups.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._groups)

    def groups(self) -> list[Group]:
        return list(self._groups.values())

    def clear(self) -> None:
        self._groups.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._groups

    def __len__(self) -> int:
        return len(self._groups)
