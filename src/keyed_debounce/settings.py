"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Debounce settings and explicit config loading.
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass

from .errors import DebounceConfigError


@dataclass(frozen=True, slots=True)
class DebounceSettings:
    """Process-wide defaults used by the coalescer."""

    default_delay_s: float = 0.5

    def __post_init__(self) -> None:
        if not math.isfinite(self.default_delay_s) or self.default_delay_s < 0:
            raise DebounceConfigError(
                f"default_delay_s must be a finite, non-negative number, got {self.default_delay_s!r}"
            )

    @staticmethod
    def from_env() -> "DebounceSettings":
        """Load settings from environment variables."""
        raw = os.getenv("KEYED_DEBOUNCE_DEFAULT_DELAY_S", "0.5")
        try:
            delay = float(raw)
        except ValueError as error:
            raise DebounceConfigError(
                f"KEYED_DEBOUNCE_DEFAULT_DELAY_S is not a number: {raw!r}"
            ) from error
        return DebounceSettings(default_delay_s=delay)

    def resolve_delay(self, timeout_s: float | None) -> float:
        """Pick the per-submission override when set and non-zero."""
        if not timeout_s:
            return self.default_delay_s
        return max(0.0, float(timeout_s))
