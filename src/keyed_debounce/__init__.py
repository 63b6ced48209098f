"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Keyed request debouncing for asyncio.

Quick start::

    from keyed_debounce import DebounceCoalescer, DebounceSettings, unary_executor

    async def fetch(payload):
        return await backend.query(payload)

    coalescer = DebounceCoalescer(
        unary_executor(fetch),
        settings=DebounceSettings(default_delay_s=0.25),
    )
    async for result in coalescer.stream("search", {"q": "hel"}):
        print(result)
"""

from .coalescer import DebounceCoalescer, Subscription
from .downstream import DownstreamCall, unary_executor
from .errors import (
    CoalescerClosedError,
    DebounceConfigError,
    DebounceError,
    DownstreamCancelledError,
)
from .merging import MergingSubmitter, deep_merge
from .metrics import CoalescerMetrics, NoOpCoalescerMetrics
from .scheduler import KeyedScheduler, LoopScheduler, VirtualScheduler
from .settings import DebounceSettings
from .store import Group, GroupStore, RunningGeneration
from .types import NO_PAYLOAD, Executor, GroupSnapshot, Observer

__all__ = [
    "DebounceCoalescer",
    "Subscription",
    "Observer",
    "Executor",
    "GroupSnapshot",
    "NO_PAYLOAD",
    "DownstreamCall",
    "unary_executor",
    "DebounceSettings",
    "KeyedScheduler",
    "LoopScheduler",
    "VirtualScheduler",
    "Group",
    "GroupStore",
    "RunningGeneration",
    "MergingSubmitter",
    "deep_merge",
    "CoalescerMetrics",
    "NoOpCoalescerMetrics",
    "DebounceError",
    "DebounceConfigError",
    "DownstreamCancelledError",
    "CoalescerClosedError",
]
