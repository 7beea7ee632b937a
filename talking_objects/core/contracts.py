"""
Core data contracts for the Talking Objects pipeline.

Every gate, tracker and collaborator exchanges these types:
- Frame: one captured still, owned by the orchestrator for a single cycle
- ObjectBounds: overlay geometry in source-frame pixels
- AnalysisResult: (subject label, utterance) pair from inference or cache
- Subject / SubjectTransition: identity continuity
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional, List, Tuple
import numpy as np
from numpy.typing import NDArray


# ============================================================
# ENUMERATIONS
# ============================================================

class AnalysisState(Enum):
    """Orchestrator in-flight state."""
    IDLE = auto()
    ANALYZING = auto()
    COOLING_DOWN = auto()


class TransitionPolicy(Enum):
    """What to do when a new subject arrives while speech is playing."""
    INTERRUPT = "interrupt"
    WAIT = "wait"


class TrackerAction(Enum):
    """Outcome of offering a result to the SubjectTracker."""
    TRANSITION = auto()   # new subject made active
    UPDATE = auto()       # same subject, utterance appended
    SUPPRESS = auto()     # same subject while presenting
    DEFER = auto()        # new subject while presenting under WAIT policy


class CycleOutcome(Enum):
    """How a single sampling cycle ended."""
    NOT_RUNNING = "not_running"
    TOO_SOON = "too_soon"
    BUSY = "busy"
    CAPTURE_FAILED = "capture_failed"
    NO_MOTION = "no_motion"
    REDUNDANT = "redundant"
    COOLING_DOWN = "cooling_down"
    RATE_LIMITED = "rate_limited"
    CACHE_HIT = "cache_hit"
    ANALYZED = "analyzed"
    QUOTA_EXCEEDED = "quota_exceeded"
    INFERENCE_FAILED = "inference_failed"
    STALE = "stale"


class SpeechOutcome(Enum):
    """Result of awaiting a presentation."""
    COMPLETED = "completed"
    INTERRUPTED = "interrupted"
    FAILED = "failed"


class PresentationSignal(Enum):
    """Explicit control signals sent to the presenter."""
    INTERRUPT = "interrupt"
    RESUME = "resume"


class Personality(Enum):
    """Voice/persona the subject speaks with."""
    PLAYFUL = "playful"
    GRUMPY = "grumpy"
    WISE = "wise"
    EXCITED = "excited"
    CHILL = "chill"
    FEARFUL = "fearful"


class Expression(Enum):
    """Cosmetic expression drawn over the subject."""
    HAPPY = "happy"
    FEARFUL = "fearful"
    SURPRISED = "surprised"
    ANGRY = "angry"


class Reaction(Enum):
    """User-triggered reactions."""
    COMPLIMENT = "compliment"
    LAUGH = "laugh"
    SURPRISE = "surprise"
    GRUMPY = "grumpy"


# ============================================================
# CORE DATA STRUCTURES
# ============================================================

@dataclass(frozen=True)
class Frame:
    """
    A single captured still.

    `pixels` is the decoded RGB buffer (H x W x 3) used by the pixel-level
    gates; `encoded` is the JPEG byte stream used for fingerprints and sent
    to inference.
    """
    pixels: NDArray[np.uint8]
    encoded: bytes
    timestamp_ms: float = 0.0
    frame_id: int = 0

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])


@dataclass(frozen=True)
class ObjectBounds:
    """Axis-aligned box plus weighted centroid, in source-frame pixels."""
    x: float
    y: float
    width: float
    height: float
    center_x: float
    center_y: float

    def eye_anchor(self) -> Tuple[float, float]:
        """Where to draw eyes: horizontally centered, upper third of the box."""
        return (self.center_x, self.y + self.height * 0.3)

    def overlay_scale(self, frame_width: int, frame_height: int) -> float:
        """Scale factor for overlay decorations relative to frame size."""
        if frame_width <= 0 or frame_height <= 0:
            return 1.0
        ratio = min(self.width / frame_width, self.height / frame_height)
        return max(0.5, min(1.5, ratio * 2))


@dataclass(frozen=True)
class AnalysisResult:
    """Identity + utterance produced for one analyzed frame."""
    subject_label: str
    utterance: str


@dataclass
class Subject:
    """The currently embodied identity and its recent utterances."""
    label: str
    history: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class SubjectTransition:
    """Ephemeral event emitted when a new subject becomes active."""
    previous_subject: Optional[str]
    new_subject: str
    timestamp: float


@dataclass(frozen=True)
class TrackerDecision:
    """What the SubjectTracker decided for a candidate result."""
    action: TrackerAction
    transition: Optional[SubjectTransition] = None
    interrupt: bool = False

    @property
    def should_present(self) -> bool:
        return self.action in (TrackerAction.TRANSITION, TrackerAction.UPDATE)


@dataclass(frozen=True)
class PresentationCue:
    """Decided output for one analyzed cycle, handed to presentation."""
    subject_label: str
    utterance: str
    bounds: Optional[ObjectBounds]
    expression: Expression
    is_new_subject: bool = False
