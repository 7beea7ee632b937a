"""
Core contracts and errors shared by every pipeline component.

Per-cycle evaluation order (NEVER REORDER):
1. MotionGate
2. SimilarityGate
3. RateLimiter
4. ResponseCache
5. Remote inference
6. SubjectTracker
7. Presentation
"""

from .contracts import (
    Frame,
    ObjectBounds,
    AnalysisResult,
    Subject,
    SubjectTransition,
    PresentationCue,
)
from .errors import (
    TalkingObjectsError,
    CaptureError,
    InferenceError,
    QuotaExceededError,
    PresentationError,
)
