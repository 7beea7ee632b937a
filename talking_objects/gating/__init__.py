"""
Gating Module.

Cheap local checks that short-circuit the expensive remote call:
- MotionGate: pixel-delta motion
- SimilarityGate: near-duplicate fingerprint
- RateLimiter: sliding-window admission
- ResponseCache: reuse a prior result
"""

from .motion_gate import MotionGate
from .similarity_gate import SimilarityGate
from .rate_limiter import RateLimiter
from .response_cache import ResponseCache
