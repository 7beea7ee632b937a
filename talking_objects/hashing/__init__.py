"""
Signal hashing: stateless fingerprints derived from raw stills.
"""

from .signal_hasher import (
    MotionStats,
    downsample,
    luminance,
    extract_channel,
    motion_stats,
    perceptual_fingerprint,
    fingerprint_similarity,
    rolling_hash,
    to_base36,
    cache_key,
)
