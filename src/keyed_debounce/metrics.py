"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Counters reported by the coalescer.

Names are stable and dotted so they can be forwarded unchanged to a
statsd- or Prometheus-style backend:

- ``debounce.submitted``: every ``submit`` call, keyed or not.
- ``debounce.passthrough``: un-keyed submissions sent straight downstream.
- ``debounce.flushed``: batches that produced a downstream call.
- ``debounce.coalesced``: subscribers folded into a flush beyond the first.
- ``debounce.batch_abandoned``: batches emptied by cancellation before flush.
- ``debounce.downstream_cancelled``: running calls stopped because every
  subscriber left.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol

SUBMITTED = "debounce.submitted"
PASSTHROUGH = "debounce.passthrough"
FLUSHED = "debounce.flushed"
COALESCED = "debounce.coalesced"
BATCH_ABANDONED = "debounce.batch_abandoned"
DOWNSTREAM_CANCELLED = "debounce.downstream_cancelled"


class CoalescerMetrics(Protocol):
    """Sink for the coalescer's batch and cancellation counters."""

    def incr(
        self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None
    ) -> None:
        """Add ``value`` to counter ``name``; called from the event loop thread."""


class NoOpCoalescerMetrics:
    """Discards every counter; used when the coalescer gets no sink."""

    def incr(
        self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None
    ) -> None:
        return None
