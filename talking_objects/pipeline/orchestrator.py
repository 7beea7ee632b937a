"""
Pipeline Orchestrator.

Runs one sampling cycle per tick, in strict order:

1. Skip if an analysis is already in flight or the minimum interval has not elapsed
2. Capture a still
3. MotionGate: anything changed?
4. SimilarityGate: is this a near-duplicate of the previous still?
5. Quota cooldown: still suspended?
6. RateLimiter: request budget left?
7. ResponseCache: seen this still recently?
8. Remote inference
9. SubjectTracker: new subject, update, or suppress
10. Hand the cue to presentation

A separate, faster loop keeps overlay geometry on the object while an
expression is visible.
"""

from __future__ import annotations

import asyncio
import math
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Set
from loguru import logger

from talking_objects.core.contracts import (
    AnalysisResult,
    AnalysisState,
    CycleOutcome,
    Frame,
    Personality,
    PresentationCue,
    PresentationSignal,
    Reaction,
    SpeechOutcome,
    TrackerAction,
    TransitionPolicy,
)
from talking_objects.core.errors import (
    CaptureError,
    InferenceError,
    PresentationError,
    QuotaExceededError,
)
from talking_objects.capture.base import FrameSource
from talking_objects.gating import ResponseCache
from talking_objects.inference.prompts import FALLBACK_REACTIONS
from talking_objects.presentation.base import BaseAmbient, BaseOverlay, BasePresenter
from talking_objects.presentation.expressions import choose_expression
from .session import Session


@dataclass
class PipelineConfig:
    """Configuration for the pipeline."""
    # Scheduling
    tick_interval: float = 1.0
    min_analysis_interval: float = 5.0
    overlay_fps: float = 30.0
    expression_seconds: float = 5.0
    quota_cooldown_seconds: float = 60.0

    # Behavior
    transition_policy: TransitionPolicy = TransitionPolicy.INTERRUPT
    personality: Personality = Personality.PLAYFUL
    retain_cache: bool = True
    context_size: int = 3
    history_size: int = 5

    # Motion gate
    motion_pixel_threshold: float = 30.0
    motion_min_changed_fraction: float = 0.05
    motion_mean_delta_threshold: float = 25.0
    motion_scale: float = 0.25
    motion_channel: int = 0

    # Similarity gate
    similarity_threshold: float = 0.92
    fingerprint_length: int = 100

    # Rate limit
    rate_limit_requests: int = 10
    rate_limit_window: float = 60.0

    # Response cache
    cache_size: int = 20
    cache_ttl: float = 300.0

    # Object locator
    locator_scale: float = 0.5
    locator_edge_threshold: float = 50.0
    locator_min_centrality: float = 0.3
    locator_min_edge_weight: float = 10.0
    locator_padding: int = 20
    outline_points: int = 20

    # Video settings
    video_device: int = 0
    video_width: int = 1280
    video_height: int = 720
    video_fps: int = 30
    capture_max_width: int = 800
    jpeg_quality: int = 80


class PipelineOrchestrator:
    """
    Main pipeline orchestrator.

    Owns the tick and overlay loops and drives one Session at a time.

    Guarantees:
    - Gates run in fixed order and short-circuit on the first negative
    - At most one inference is outstanding per session
    - Results that arrive after stop() are discarded
    - No exception escapes the timer loop
    """

    def __init__(
        self,
        source: FrameSource,
        inference,
        presenter: BasePresenter,
        ambient: BaseAmbient,
        overlay: BaseOverlay,
        config: Optional[PipelineConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize pipeline orchestrator.

        Args:
            source: Still-frame source
            inference: Object with async analyze(frame, personality, history,
                current_subject)
                and async react(subject_label, reaction, personality)
            presenter: Speech output
            ambient: Background behavior for the active subject
            overlay: Visual overlay
            config: Pipeline configuration
            clock: Monotonic time source in seconds
        """
        self.config = config or PipelineConfig()
        self._source = source
        self._inference = inference
        self._presenter = presenter
        self._ambient = ambient
        self._overlay = overlay
        self._clock = clock

        self._personality = self.config.personality
        self._min_interval = self.config.min_analysis_interval

        self._session: Optional[Session] = None
        self._generation = 0
        self._retained_cache: Optional[ResponseCache] = None

        self._loop_tasks: List[asyncio.Task] = []
        self._cycle_tasks: Set[asyncio.Task] = set()

        logger.info("Pipeline orchestrator initialized")

    # ============================================================
    # LIFECYCLE
    # ============================================================

    def start(self, schedule: bool = True) -> bool:
        """
        Start a new session. Must be called from a running event loop.

        Args:
            schedule: Run the tick and overlay loops. With False, cycles only
                run when `run_cycle()` is awaited directly.

        Returns:
            True if running
        """
        if self._session is not None:
            return True

        loop = asyncio.get_running_loop()

        if not self._source.start():
            logger.error("Failed to start frame source")
            self._overlay.show_message("Could not access camera")
            return False

        self._generation += 1
        cache = self._retained_cache if self.config.retain_cache else None
        self._session = Session.create(self.config, self._generation, cache=cache, clock=self._clock)
        self._retained_cache = self._session.cache

        if schedule:
            self._loop_tasks = [
                loop.create_task(self._tick_loop()),
                loop.create_task(self._overlay_loop()),
            ]

        self._overlay.set_status("Watching...")
        logger.info(f"Pipeline started (session {self._generation})")
        return True

    def stop(self):
        """
        Stop the current session immediately.

        In-flight inference or speech is not awaited; its results are
        discarded when they arrive.
        """
        session = self._session
        if session is None:
            return

        for task in self._loop_tasks:
            task.cancel()
        self._loop_tasks = []

        self._session = None
        self._generation += 1
        session.reset()

        self._presenter.stop()
        self._ambient.stop()
        self._overlay.clear()
        self._overlay.set_status("Stopped")
        self._source.stop()
        logger.info("Pipeline stopped")

    async def _tick_loop(self):
        while True:
            self._spawn_cycle()
            await asyncio.sleep(self.config.tick_interval)

    def _spawn_cycle(self):
        task = asyncio.get_running_loop().create_task(self._guarded_cycle())
        self._cycle_tasks.add(task)
        task.add_done_callback(self._cycle_tasks.discard)

    async def _guarded_cycle(self):
        try:
            await self.run_cycle()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected error in analysis cycle: {e}")

    async def _overlay_loop(self):
        period = 1.0 / max(1.0, self.config.overlay_fps)
        while True:
            self.refresh_overlay()
            await asyncio.sleep(period)

    # ============================================================
    # CYCLE
    # ============================================================

    async def run_cycle(self) -> CycleOutcome:
        """
        Run one sampling cycle.

        Returns:
            How the cycle ended
        """
        session = self._session
        if session is None:
            return CycleOutcome.NOT_RUNNING

        if session.state == AnalysisState.ANALYZING:
            logger.debug("Analysis in flight, skipping tick")
            return CycleOutcome.BUSY

        now = self._clock()
        if session.last_analysis_at is not None and now - session.last_analysis_at < self._min_interval:
            return CycleOutcome.TOO_SOON

        # 1. Capture
        try:
            frame = self._source.capture_frame()
        except CaptureError as e:
            logger.warning(f"Capture failed: {e}")
            self._overlay.show_message("Could not capture frame. Retrying...", 2.0)
            return CycleOutcome.CAPTURE_FAILED

        # 2. Motion
        if not session.motion_gate.evaluate(frame):
            logger.debug("No motion")
            return CycleOutcome.NO_MOTION
        session.last_analysis_at = now

        # 3. Similarity
        if session.similarity_gate.is_redundant(frame):
            logger.debug(f"Frame too similar ({session.similarity_gate.last_similarity:.2f}), skipping")
            return CycleOutcome.REDUNDANT

        # 4. Quota cooldown
        if session.state == AnalysisState.COOLING_DOWN:
            if session.resume_at is not None and now < session.resume_at:
                seconds_left = math.ceil(session.resume_at - now)
                self._overlay.set_status(f"Quota exceeded. Resuming in {seconds_left}s")
                return CycleOutcome.COOLING_DOWN
            session.state = AnalysisState.IDLE
            session.resume_at = None
            logger.info("Quota cooldown elapsed, resuming analysis")
            self._overlay.show_message("Quota resumed! Continuing analysis...", 2.0)

        # 5. Rate limit
        if not session.rate_limiter.try_acquire():
            wait = math.ceil(session.rate_limiter.time_until_next_slot())
            logger.warning(f"Rate limit reached, next slot in {wait}s")
            self._overlay.show_message(f"Rate limit reached. Wait {wait}s...", 2.0)
            self._overlay.set_status("Rate limited")
            return CycleOutcome.RATE_LIMITED

        # 6. Cache
        cached = session.cache.get(frame)
        if cached is not None:
            logger.info(f"Using cached response for {cached.subject_label}")
            await self._handle_result(session, frame, cached)
            return CycleOutcome.CACHE_HIT

        # 7. Inference
        result = await self._analyze(session, frame)
        if isinstance(result, CycleOutcome):
            return result

        session.cache.put(frame, result)
        await self._handle_result(session, frame, result)
        return CycleOutcome.ANALYZED

    async def _analyze(self, session: Session, frame: Frame):
        """Run inference; returns an AnalysisResult or the CycleOutcome that ended the cycle."""
        session.state = AnalysisState.ANALYZING
        self._overlay.set_status("Looking...")

        try:
            result = await self._inference.analyze(
                frame,
                self._personality,
                session.tracker.context(self.config.context_size),
                current_subject=session.tracker.active_label,
            )
        except QuotaExceededError as e:
            retry_after = e.retry_after or self.config.quota_cooldown_seconds
            session.state = AnalysisState.COOLING_DOWN
            session.resume_at = self._clock() + retry_after
            if not self._is_current(session):
                return CycleOutcome.STALE
            logger.warning(f"Quota exceeded, pausing analysis for {retry_after:.0f}s")
            self._overlay.show_message(f"Quota exceeded. Pausing for {retry_after:.0f}s...", 5.0)
            self._overlay.set_status(f"Quota exceeded. Resuming in {retry_after:.0f}s")
            return CycleOutcome.QUOTA_EXCEEDED
        except InferenceError as e:
            session.state = AnalysisState.IDLE
            if not self._is_current(session):
                return CycleOutcome.STALE
            logger.warning(f"Analysis failed: {e}")
            self._overlay.show_message("Could not analyze image. Retrying...", 2.0)
            self._overlay.set_status("Ready")
            return CycleOutcome.INFERENCE_FAILED
        except Exception as e:
            session.state = AnalysisState.IDLE
            logger.exception(f"Unexpected inference error: {e}")
            return CycleOutcome.INFERENCE_FAILED if self._is_current(session) else CycleOutcome.STALE

        session.state = AnalysisState.IDLE
        if not self._is_current(session):
            logger.debug(f"Discarding late result for session {session.generation}")
            return CycleOutcome.STALE
        return result

    def _is_current(self, session: Session) -> bool:
        return self._session is session and session.generation == self._generation

    # ============================================================
    # RESULT HANDLING
    # ============================================================

    async def _handle_result(self, session: Session, frame: Frame, result: AnalysisResult):
        decision = session.tracker.observe(
            result.subject_label,
            result.utterance,
            presenting=self._presenter.is_speaking,
        )

        if not decision.should_present:
            if decision.action == TrackerAction.DEFER:
                logger.debug("Still speaking about the previous subject, deferring")
            else:
                logger.debug("Already speaking, skipping update")
            return

        is_new = decision.action == TrackerAction.TRANSITION
        if is_new:
            if decision.interrupt:
                self._presenter.signal(PresentationSignal.INTERRUPT)

            transition = decision.transition
            session.similarity_gate.reset()
            self._ambient.start(transition.new_subject)
            self._overlay.flash_transition()
            self._overlay.show_message(f"New object detected: {transition.new_subject}", 1.5)

            if decision.interrupt:
                self._presenter.signal(PresentationSignal.RESUME)

        bounds = session.locator.locate(frame)
        cue = PresentationCue(
            subject_label=result.subject_label if is_new else session.tracker.active_label,
            utterance=result.utterance,
            bounds=bounds,
            expression=choose_expression(self._personality, result.utterance),
            is_new_subject=is_new,
        )
        await self._present(session, cue, status="Speaking...")

    async def _present(self, session: Session, cue: PresentationCue, status: str) -> Optional[SpeechOutcome]:
        session.last_cue_at = self._clock()
        self._overlay.show_cue(cue)
        if cue.bounds is not None:
            self._overlay.update_bounds(cue.bounds, session.locator.outline_points(self.config.outline_points))
        self._overlay.set_status(status)

        try:
            outcome = await self._presenter.speak(cue.utterance, cue.subject_label)
        except PresentationError as e:
            logger.warning(f"Speech error: {e}")
            if e.capability_missing:
                self._overlay.show_message("Text-to-speech not available", 3.0)
            outcome = SpeechOutcome.FAILED

        # An interrupted cue has been replaced; the replacement owns the status
        if (
            self._is_current(session)
            and outcome != SpeechOutcome.INTERRUPTED
            and not self._presenter.is_speaking
        ):
            self._overlay.set_status("Ready")
        return outcome

    def refresh_overlay(self):
        """Re-locate the object while an expression is showing."""
        session = self._session
        if session is None:
            return
        if not session.expression_visible(self._clock(), self.config.expression_seconds):
            return

        try:
            frame = self._source.capture_frame()
        except CaptureError:
            return

        bounds = session.locator.locate(frame)
        self._overlay.update_bounds(bounds, session.locator.outline_points(self.config.outline_points))

    # ============================================================
    # USER ACTIONS
    # ============================================================

    async def react(self, reaction: Reaction) -> Optional[SpeechOutcome]:
        """
        Have the active subject respond to a user gesture.

        Returns:
            The speech outcome, or None if nothing was presented
        """
        session = self._session
        label = session.tracker.active_label if session is not None else None
        if session is None or label is None or self._presenter.is_speaking:
            return None

        self._overlay.set_status("Generating reaction...")
        try:
            text = await self._inference.react(label, reaction, self._personality)
        except InferenceError as e:
            logger.warning(f"Reaction generation failed, using fallback: {e}")
            text = FALLBACK_REACTIONS[reaction]

        if not self._is_current(session):
            return None

        session.tracker.record_utterance(text)
        cue = PresentationCue(
            subject_label=label,
            utterance=text,
            bounds=session.locator.latest,
            expression=choose_expression(self._personality, text),
        )
        return await self._present(session, cue, status="Reacting...")

    def set_personality(self, personality: Personality):
        self._personality = personality
        logger.info(f"Personality set to {personality.value}")

    def set_min_interval(self, seconds: float):
        self._min_interval = max(0.0, float(seconds))
        logger.info(f"Minimum analysis interval set to {self._min_interval:.1f}s")

    def set_motion_sensitivity(self, sensitivity: int):
        if self._session is not None:
            self._session.motion_gate.set_sensitivity(sensitivity)

    # ============================================================
    # PROPERTIES
    # ============================================================

    @property
    def is_running(self) -> bool:
        return self._session is not None

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def state(self) -> Optional[AnalysisState]:
        return self._session.state if self._session is not None else None

    @property
    def personality(self) -> Personality:
        return self._personality

    @property
    def min_interval(self) -> float:
        return self._min_interval

    @property
    def cache(self) -> Optional[ResponseCache]:
        return self._retained_cache
