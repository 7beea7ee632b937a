"""
Per-session state.

Everything that mutates while the pipeline runs (gate histories, rate
window, tracker, analysis state) lives on one Session. A fresh Session is
built on every start; results from a previous session can therefore never
touch the current one.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional

from talking_objects.core.contracts import AnalysisState
from talking_objects.gating import MotionGate, RateLimiter, ResponseCache, SimilarityGate
from talking_objects.tracking import ObjectLocator, SubjectTracker

if TYPE_CHECKING:
    from .orchestrator import PipelineConfig


@dataclass
class Session:
    """Gate, tracker and timing state owned by one running session."""
    generation: int
    motion_gate: MotionGate
    similarity_gate: SimilarityGate
    rate_limiter: RateLimiter
    cache: ResponseCache
    locator: ObjectLocator
    tracker: SubjectTracker

    state: AnalysisState = AnalysisState.IDLE
    resume_at: Optional[float] = None
    last_analysis_at: Optional[float] = None
    last_cue_at: Optional[float] = None

    @classmethod
    def create(
        cls,
        config: "PipelineConfig",
        generation: int,
        cache: Optional[ResponseCache] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> "Session":
        """
        Build a session from pipeline configuration.

        Args:
            config: Tunables
            generation: Token identifying this session
            cache: Cache carried over from a previous session, if retained
            clock: Monotonic time source shared by time-based gates
        """
        return cls(
            generation=generation,
            motion_gate=MotionGate(
                pixel_threshold=config.motion_pixel_threshold,
                min_changed_fraction=config.motion_min_changed_fraction,
                mean_delta_threshold=config.motion_mean_delta_threshold,
                scale=config.motion_scale,
                channel=config.motion_channel,
            ),
            similarity_gate=SimilarityGate(
                threshold=config.similarity_threshold,
                fingerprint_length=config.fingerprint_length,
            ),
            rate_limiter=RateLimiter(
                max_requests=config.rate_limit_requests,
                window_seconds=config.rate_limit_window,
                clock=clock,
            ),
            cache=cache if cache is not None else ResponseCache(
                max_size=config.cache_size,
                ttl_seconds=config.cache_ttl,
                clock=clock,
            ),
            locator=ObjectLocator(
                scale=config.locator_scale,
                edge_threshold=config.locator_edge_threshold,
                min_centrality=config.locator_min_centrality,
                min_edge_weight=config.locator_min_edge_weight,
                padding=config.locator_padding,
            ),
            tracker=SubjectTracker(
                policy=config.transition_policy,
                max_history=config.history_size,
            ),
        )

    def reset(self):
        """Discard gate histories and the active subject."""
        self.motion_gate.reset()
        self.similarity_gate.reset()
        self.rate_limiter.reset()
        self.locator.reset()
        self.tracker.reset()
        self.state = AnalysisState.IDLE
        self.resume_at = None
        self.last_cue_at = None

    def expression_visible(self, now: float, expression_seconds: float) -> bool:
        return self.last_cue_at is not None and now - self.last_cue_at < expression_seconds
