"""
Error taxonomy.

Capture and inference failures are transient and retried on the next tick.
Quota exhaustion carries a cooldown. Presentation failures only matter when
the capability itself is missing.
"""

from __future__ import annotations


class TalkingObjectsError(Exception):
    """Base class for all pipeline errors."""


class CaptureError(TalkingObjectsError):
    """Camera not running or a frame could not be read."""


class InferenceError(TalkingObjectsError):
    """Remote analysis failed; safe to retry on the next cycle."""


class QuotaExceededError(InferenceError):
    """Remote analysis refused for quota reasons."""

    def __init__(self, retry_after: float = 60.0, message: str = "QUOTA_EXCEEDED"):
        super().__init__(message)
        self.retry_after = retry_after


class PresentationError(TalkingObjectsError):
    """Speech output failed."""

    def __init__(self, message: str, capability_missing: bool = False):
        super().__init__(message)
        self.capability_missing = capability_missing
