"""
Similarity Gate.

Skips frames that are near-duplicates of the last evaluated frame.
"""

from __future__ import annotations

from typing import Optional
from loguru import logger

from talking_objects.core.contracts import Frame
from talking_objects.hashing.signal_hasher import (
    DEFAULT_FINGERPRINT_LENGTH,
    perceptual_fingerprint,
    fingerprint_similarity,
)


class SimilarityGate:
    """
    Fingerprint comparator against the immediately preceding evaluated frame.

    The stored fingerprint is replaced on every call, so a run of slowly
    drifting frames is never compared against a stale baseline.
    """

    def __init__(
        self,
        threshold: float = 0.92,
        fingerprint_length: int = DEFAULT_FINGERPRINT_LENGTH,
    ):
        """
        Initialize similarity gate.

        Args:
            threshold: Similarity at or above which a frame is redundant
            fingerprint_length: Number of sampled bytes per fingerprint
        """
        self.threshold = threshold
        self.fingerprint_length = fingerprint_length

        self._previous: Optional[bytes] = None
        self._last_similarity: float = 0.0

    def is_redundant(self, frame: Frame) -> bool:
        """
        Check whether `frame` adds nothing over the previous one.

        Returns:
            True if the frame is a near-duplicate and should be skipped
        """
        current = perceptual_fingerprint(frame.encoded, self.fingerprint_length)
        previous = self._previous
        self._previous = current

        if previous is None:
            self._last_similarity = 0.0
            return False

        similarity = fingerprint_similarity(previous, current)
        self._last_similarity = similarity

        redundant = similarity >= self.threshold
        if redundant:
            logger.debug(f"Frame too similar ({similarity:.2f}), skipping analysis")
        return redundant

    def reset(self):
        """Forget the stored fingerprint."""
        self._previous = None
        self._last_similarity = 0.0

    @property
    def last_similarity(self) -> float:
        return self._last_similarity

    @property
    def fingerprint(self) -> Optional[bytes]:
        """The fingerprint the next frame will be compared against."""
        return self._previous
