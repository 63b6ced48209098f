"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Error types raised or delivered by the debounce runtime.
"""

from __future__ import annotations


class DebounceError(Exception):
    """Base class for keyed debounce errors."""


class DebounceConfigError(DebounceError, ValueError):
    """Invalid debounce settings."""


class DownstreamCancelledError(DebounceError):
    """Downstream call task was cancelled outside of the coalescer."""


class CoalescerClosedError(DebounceError):
    """Coalescer has been shut down and no longer accepts or serves work."""
