"""
Signal hashing primitives.

Turns a raw still into small comparable values:
- downsampled channel buffers for motion statistics
- a fixed-length byte fingerprint for near-duplicate detection
- a compact cache key for response reuse

None of these hold state; the gates own their history.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Tuple
import numpy as np
from numpy.typing import NDArray
import cv2


DEFAULT_FINGERPRINT_LENGTH = 100
DEFAULT_KEY_OFFSETS: Tuple[int, ...] = (100, 1000, 5000, 10000)
DEFAULT_KEY_WINDOW = 20

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


@dataclass(frozen=True)
class MotionStats:
    """Per-comparison motion statistics."""
    changed_fraction: float
    mean_delta: float


def downsample(pixels: NDArray[np.uint8], scale: float) -> NDArray[np.uint8]:
    """Resize an image by `scale` (area interpolation), never below 1x1."""
    height, width = pixels.shape[:2]
    new_w = max(1, int(width * scale))
    new_h = max(1, int(height * scale))
    if (new_w, new_h) == (width, height):
        return pixels
    return cv2.resize(pixels, (new_w, new_h), interpolation=cv2.INTER_AREA)


def luminance(pixels: NDArray[np.uint8]) -> NDArray[np.float32]:
    """Unweighted RGB mean, used as a cheap gray approximation."""
    if pixels.ndim == 2:
        return pixels.astype(np.float32)
    return pixels[:, :, :3].astype(np.float32).mean(axis=2)


def extract_channel(pixels: NDArray[np.uint8], channel: int) -> NDArray[np.int16]:
    """Single color channel as signed ints so deltas don't wrap."""
    if pixels.ndim == 2:
        return pixels.astype(np.int16)
    return pixels[:, :, channel].astype(np.int16)


def motion_stats(
    previous: NDArray[np.int16],
    current: NDArray[np.int16],
    pixel_threshold: float,
) -> MotionStats:
    """
    Compare two equally-shaped channel buffers.

    Args:
        previous: Baseline channel buffer
        current: Current channel buffer
        pixel_threshold: Per-pixel delta above which a pixel counts as changed

    Returns:
        MotionStats with changed-pixel fraction and mean absolute delta
    """
    delta = np.abs(current - previous)
    total = delta.size
    if total == 0:
        return MotionStats(changed_fraction=0.0, mean_delta=0.0)

    changed = int(np.count_nonzero(delta > pixel_threshold))
    return MotionStats(
        changed_fraction=changed / total,
        mean_delta=float(delta.mean()),
    )


def perceptual_fingerprint(
    encoded: bytes,
    length: int = DEFAULT_FINGERPRINT_LENGTH,
) -> bytes:
    """
    Sub-sample the encoded byte stream at a fixed stride.

    A coarse, fast substitute for a true perceptual hash. Always returns
    exactly `length` bytes (or the whole stream if it is shorter).
    """
    size = len(encoded)
    if size <= length:
        return bytes(encoded)
    return bytes(encoded[(i * size) // length] for i in range(length))


def fingerprint_similarity(first: bytes, second: bytes) -> float:
    """Fraction of positionally matching bytes; 0.0 for empty or unequal lengths."""
    if not first or not second or len(first) != len(second):
        return 0.0
    a = np.frombuffer(first, dtype=np.uint8)
    b = np.frombuffer(second, dtype=np.uint8)
    return float(np.count_nonzero(a == b)) / len(a)


def rolling_hash(data: bytes) -> int:
    """`h = h * 31 + c` folded to a signed 32-bit integer."""
    value = 0
    for byte in data:
        value = ((value << 5) - value + byte) & 0xFFFFFFFF
    if value & 0x80000000:
        value -= 1 << 32
    return value


def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    value = abs(value)
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return sign + "".join(reversed(digits))


def cache_key(
    encoded: bytes,
    offsets: Sequence[int] = DEFAULT_KEY_OFFSETS,
    window: int = DEFAULT_KEY_WINDOW,
) -> str:
    """
    Compact cache key from a few small byte windows at fixed offsets.

    Visually distinct frames can collide when their sampled windows match;
    this is an accepted approximation traded for speed.
    """
    sample = b"".join(encoded[offset:offset + window] for offset in offsets)
    return to_base36(rolling_hash(sample))
