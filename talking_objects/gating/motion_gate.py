"""
Motion Gate.

Stateful pixel-delta detector deciding whether a sampling cycle is worth
considering at all. Compares a single color channel of a downsampled frame
against the previous downsampled frame.
"""

from __future__ import annotations

from typing import Optional
import numpy as np
from numpy.typing import NDArray
from loguru import logger

from talking_objects.core.contracts import Frame
from talking_objects.hashing.signal_hasher import (
    MotionStats,
    downsample,
    extract_channel,
    motion_stats,
)


class MotionGate:
    """
    Pixel-delta motion detector.

    Motion is reported when either:
    1. Enough pixels changed (normal motion)
    2. The mean delta is large (a uniform color-field change, e.g. a new
       object filling the frame, that a sparse pixel count would miss)

    The first evaluation after construction or `reset()` always reports
    motion. The baseline is replaced on every call regardless of verdict.
    """

    def __init__(
        self,
        pixel_threshold: float = 30.0,
        min_changed_fraction: float = 0.05,
        mean_delta_threshold: float = 25.0,
        scale: float = 0.25,
        channel: int = 0,
    ):
        """
        Initialize motion gate.

        Args:
            pixel_threshold: Per-pixel channel delta counted as a change
            min_changed_fraction: Fraction of changed pixels that means motion
            mean_delta_threshold: Mean absolute delta that means motion
            scale: Downsample factor applied before comparison
            channel: Color channel compared (0 = red)
        """
        self.pixel_threshold = pixel_threshold
        self.min_changed_fraction = min_changed_fraction
        self.mean_delta_threshold = mean_delta_threshold
        self.scale = scale
        self.channel = channel

        self._previous: Optional[NDArray[np.int16]] = None
        self._last_stats: Optional[MotionStats] = None

    def evaluate(self, frame: Frame) -> bool:
        """
        Compare `frame` against the stored baseline.

        Returns:
            True if motion is present
        """
        current = extract_channel(downsample(frame.pixels, self.scale), self.channel)
        previous = self._previous
        self._previous = current

        if previous is None:
            self._last_stats = None
            logger.debug("Motion gate: no baseline, treating as motion")
            return True

        if previous.shape != current.shape:
            self._last_stats = None
            logger.debug("Motion gate: frame size changed, treating as motion")
            return True

        stats = motion_stats(previous, current, self.pixel_threshold)
        self._last_stats = stats

        moved = (
            stats.changed_fraction > self.min_changed_fraction
            or stats.mean_delta > self.mean_delta_threshold
        )
        logger.debug(
            f"Motion gate: changed={stats.changed_fraction:.3f} "
            f"mean={stats.mean_delta:.1f} -> {moved}"
        )
        return moved

    def set_sensitivity(self, sensitivity: int):
        """
        Adjust sensitivity on a 1-10 scale (10 = most sensitive).

        Higher sensitivity lowers the pixel threshold and raises the
        required changed fraction only slightly.
        """
        sensitivity = max(1, min(10, int(sensitivity)))
        self.pixel_threshold = 50 - sensitivity * 4
        self.min_changed_fraction = 0.02 + sensitivity * 0.003
        logger.info(
            f"Motion sensitivity {sensitivity}: threshold={self.pixel_threshold}, "
            f"fraction={self.min_changed_fraction:.3f}"
        )

    def reset(self):
        """Forget the baseline."""
        self._previous = None
        self._last_stats = None

    @property
    def last_stats(self) -> Optional[MotionStats]:
        """Statistics from the most recent comparison (None if there was none)."""
        return self._last_stats

    @property
    def has_baseline(self) -> bool:
        return self._previous is not None
