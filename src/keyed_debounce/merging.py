"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Optional payload merging in front of ``DebounceCoalescer.submit``.

The coalescer forwards only the latest payload of a batch. Callers that
want every submission in a window to contribute fields instead wrap the
coalescer in ``MergingSubmitter``, which folds each new payload into the
one already pending for the key before handing it on.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from pydantic import BaseModel

from .coalescer import DebounceCoalescer, Subscription
from .types import NO_PAYLOAD, Observer

MergeFn = Callable[[Any, Any], Any]


def deep_merge(base: Any, update: Any) -> Any:
    """
    Recursively merge ``update`` into ``base`` without mutating either.

    Mappings merge key by key; any other value in ``update`` replaces the
    one in ``base``. Pydantic models merge their explicitly set fields and
    are re-validated into the base model's class.
    """
    if isinstance(base, BaseModel) and isinstance(update, BaseModel):
        merged = deep_merge(
            base.model_dump(exclude_unset=True),
            update.model_dump(exclude_unset=True),
        )
        return type(base).model_validate(merged)
    if isinstance(base, Mapping) and isinstance(update, Mapping):
        result = dict(base)
        for key, value in update.items():
            if key in result:
                result[key] = deep_merge(result[key], value)
            else:
                result[key] = value
        return result
    return update


class MergingSubmitter:
    """Merge payloads submitted within one debounce window per key."""

    def __init__(
        self,
        coalescer: DebounceCoalescer,
        *,
        merge: MergeFn = deep_merge,
    ) -> None:
        self._coalescer = coalescer
        self._merge = merge

    @property
    def coalescer(self) -> DebounceCoalescer:
        return self._coalescer

    def submit(
        self,
        key: str | None,
        payload: Any,
        observer: Observer | None = None,
        *,
        timeout_s: float | None = None,
    ) -> Subscription:
        if key:
            pending = self._coalescer.pending_payload(key)
            if pending is not NO_PAYLOAD:
                payload = self._merge(pending, payload)
        return self._coalescer.submit(key, payload, observer, timeout_s=timeout_s)
