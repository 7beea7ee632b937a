"""Unit tests for PipelineOrchestrator: gate order, state machine, transitions, lifecycle.

Uses asyncio.run() wrappers instead of pytest-asyncio. Sessions are started
with schedule=False so each test drives cycles explicitly.
"""

from __future__ import annotations

import asyncio

import pytest

from talking_objects.core.contracts import (
    AnalysisResult,
    AnalysisState,
    CycleOutcome,
    Expression,
    Personality,
    PresentationSignal,
    Reaction,
    SpeechOutcome,
    TransitionPolicy,
)
from talking_objects.core.errors import InferenceError, PresentationError, QuotaExceededError
from talking_objects.inference import GeminiVision
from talking_objects.pipeline import PipelineConfig, PipelineOrchestrator
from talking_objects.presentation import PacedPresenter

from conftest import FakeInference, FakeSource, random_bytes, solid_frame


MUG = AnalysisResult("☕ Coffee Mug", "Hello there!")
MUG_AGAIN = AnalysisResult("coffee mug!!", "Still me.")
KEYBOARD = AnalysisResult("⌨️ Keyboard", "Click clack.")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _pipeline(source, inference, presenter, ambient, overlay, clock, **overrides) -> PipelineOrchestrator:
    settings = dict(min_analysis_interval=0.0)
    settings.update(overrides)
    return PipelineOrchestrator(
        source=source,
        inference=inference,
        presenter=presenter,
        ambient=ambient,
        overlay=overlay,
        config=PipelineConfig(**settings),
        clock=clock,
    )


async def _cycles(orch: PipelineOrchestrator, count: int = 1, clock=None, step: float = 0.0):
    if not orch.is_running:
        assert orch.start(schedule=False)
    outcomes = []
    for _ in range(count):
        outcomes.append(await orch.run_cycle())
        if clock is not None:
            clock.advance(step)
    return outcomes


def _run_cycles(orch, count=1, clock=None, step=0.0):
    return asyncio.run(_cycles(orch, count, clock, step))


class _Reply:
    def __init__(self, text):
        self.text = text


class _ScriptedModel:
    """Stands in for the Gemini model object, replying with queued texts."""

    def __init__(self, *texts):
        self.texts = list(texts)

    async def generate_content_async(self, contents):
        return _Reply(self.texts.pop(0))


def _gemini(*texts) -> GeminiVision:
    vision = GeminiVision(api_key="test-key")
    vision._model = _ScriptedModel(*texts)
    return vision


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------

@pytest.mark.unit
class TestAnalysis:

    def test_first_cycle_analyzes_and_presents(self, source, presenter, ambient, overlay, clock):
        inference = FakeInference(MUG)
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock)

        assert _run_cycles(orch) == [CycleOutcome.ANALYZED]
        assert inference.calls[0][1] == Personality.PLAYFUL
        assert inference.calls[0][2] == []
        assert presenter.spoken == ["Hello there!"]
        assert ambient.started == ["☕ Coffee Mug"]
        assert overlay.flashes == 1
        assert overlay.cues[0].is_new_subject
        assert overlay.cues[0].bounds is not None
        assert orch.state == AnalysisState.IDLE
        assert overlay.statuses[-1] == "Ready"

    def test_same_subject_updates_and_passes_context(self, source, presenter, ambient, overlay, clock):
        inference = FakeInference(MUG, MUG_AGAIN)
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock)

        assert _run_cycles(orch, 2) == [CycleOutcome.ANALYZED, CycleOutcome.ANALYZED]
        assert inference.calls[1][2] == ["Hello there!"]
        assert presenter.spoken == ["Hello there!", "Still me."]
        assert ambient.started == ["☕ Coffee Mug"]
        assert overlay.cues[1].subject_label == "☕ Coffee Mug"
        assert not overlay.cues[1].is_new_subject
        assert orch.session.tracker.history == ["Hello there!", "Still me."]

    def test_active_subject_passed_to_inference(self, source, presenter, ambient, overlay, clock):
        inference = FakeInference(MUG, MUG_AGAIN)
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock)

        _run_cycles(orch, 2)
        assert inference.calls[0][3] is None
        assert inference.calls[1][3] == "☕ Coffee Mug"

    def test_reply_without_object_line_keeps_subject(self, source, presenter, ambient, overlay, clock):
        inference = _gemini("OBJECT: ☕ Coffee Mug\nSPEECH: hi", "SPEECH: still me")
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock)

        async def scenario():
            outcomes = await _cycles(orch, 2)
            return outcomes, orch.session.tracker.active_label, orch.session.tracker.history

        outcomes, label, history = asyncio.run(scenario())
        assert outcomes == [CycleOutcome.ANALYZED, CycleOutcome.ANALYZED]
        assert label == "☕ Coffee Mug"
        assert history == ["hi", "still me"]
        assert ambient.started == ["☕ Coffee Mug"]
        assert overlay.flashes == 1
        assert presenter.signals == []

    def test_not_running(self, source, inference, presenter, ambient, overlay, clock):
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock)
        assert asyncio.run(orch.run_cycle()) == CycleOutcome.NOT_RUNNING

    def test_personality_drives_prompt_and_expression(self, source, presenter, ambient, overlay, clock):
        inference = FakeInference(MUG)
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock)
        orch.set_personality(Personality.GRUMPY)

        _run_cycles(orch)
        assert inference.calls[0][1] == Personality.GRUMPY
        assert overlay.cues[0].expression == Expression.ANGRY


# ---------------------------------------------------------------------------
# Gates
# ---------------------------------------------------------------------------

@pytest.mark.unit
class TestGates:

    def test_min_interval(self, source, inference, presenter, ambient, overlay, clock):
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock, min_analysis_interval=5.0)
        outcomes = _run_cycles(orch, 3, clock=clock, step=2.5)
        assert outcomes == [CycleOutcome.ANALYZED, CycleOutcome.TOO_SOON, CycleOutcome.ANALYZED]

    def test_no_motion_stops_before_similarity(self, inference, presenter, ambient, overlay, clock):
        source = FakeSource([solid_frame(128, encoded=random_bytes(1)), solid_frame(128, encoded=random_bytes(2))])
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock)

        async def scenario():
            outcomes = await _cycles(orch, 2)
            return outcomes, orch.session.similarity_gate.fingerprint

        outcomes, fingerprint = asyncio.run(scenario())
        assert outcomes == [CycleOutcome.ANALYZED, CycleOutcome.NO_MOTION]
        assert fingerprint is None  # reset by the transition, never re-evaluated
        assert len(inference.calls) == 1

    def test_redundant_frame(self, inference, presenter, ambient, overlay, clock):
        data = random_bytes(1)
        source = FakeSource([solid_frame(0, encoded=data), solid_frame(200, encoded=data),
                             solid_frame(0, encoded=data)])
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock)

        outcomes = _run_cycles(orch, 3)
        # The transition resets similarity, so the second frame is compared against nothing
        assert outcomes == [CycleOutcome.ANALYZED, CycleOutcome.CACHE_HIT, CycleOutcome.REDUNDANT]
        assert len(inference.calls) == 1

    def test_capture_failure(self, source, inference, presenter, ambient, overlay, clock):
        source.fail = True
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock)
        assert _run_cycles(orch) == [CycleOutcome.CAPTURE_FAILED]
        assert any("capture" in m for m in overlay.messages)
        assert inference.calls == []

    def test_rate_limited(self, source, inference, presenter, ambient, overlay, clock):
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock, rate_limit_requests=1)
        outcomes = _run_cycles(orch, 2)
        assert outcomes == [CycleOutcome.ANALYZED, CycleOutcome.RATE_LIMITED]
        assert len(inference.calls) == 1
        assert "Rate limit reached. Wait 60s..." in overlay.messages

    def test_cache_hit_skips_inference(self, inference, presenter, ambient, overlay, clock):
        a = solid_frame(0, encoded=random_bytes(1))
        b = solid_frame(200, encoded=random_bytes(2))
        source = FakeSource([a, b, a])
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock)

        outcomes = _run_cycles(orch, 3)
        assert outcomes == [CycleOutcome.ANALYZED, CycleOutcome.ANALYZED, CycleOutcome.CACHE_HIT]
        assert len(inference.calls) == 2
        assert len(presenter.spoken) == 3


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------

@pytest.mark.unit
class TestStateMachine:

    def test_quota_cooldown(self, source, presenter, ambient, overlay, clock):
        inference = FakeInference(QuotaExceededError(retry_after=30.0))
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock)

        async def scenario():
            outcomes = await _cycles(orch)
            states = [orch.state]
            clock.advance(10)
            outcomes += await _cycles(orch)
            states.append(orch.state)
            clock.advance(21)
            outcomes += await _cycles(orch)
            states.append(orch.state)
            return outcomes, states

        outcomes, states = asyncio.run(scenario())
        assert outcomes == [CycleOutcome.QUOTA_EXCEEDED, CycleOutcome.COOLING_DOWN, CycleOutcome.ANALYZED]
        assert states == [AnalysisState.COOLING_DOWN, AnalysisState.COOLING_DOWN, AnalysisState.IDLE]
        assert len(inference.calls) == 2
        assert "Quota exceeded. Resuming in 20s" in overlay.statuses
        assert "Quota resumed! Continuing analysis..." in overlay.messages

    def test_gates_keep_running_during_cooldown(self, presenter, ambient, overlay, clock):
        data = random_bytes(3)
        source = FakeSource([solid_frame(0, encoded=random_bytes(1)), solid_frame(200, encoded=data),
                             solid_frame(0, encoded=data)])
        inference = FakeInference(QuotaExceededError(retry_after=30.0))
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock)

        outcomes = _run_cycles(orch, 3)
        assert outcomes == [CycleOutcome.QUOTA_EXCEEDED, CycleOutcome.COOLING_DOWN, CycleOutcome.REDUNDANT]

    def test_inference_failure_returns_to_idle(self, source, presenter, ambient, overlay, clock):
        inference = FakeInference(InferenceError("boom"), MUG)
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock)

        outcomes = _run_cycles(orch, 2)
        assert outcomes == [CycleOutcome.INFERENCE_FAILED, CycleOutcome.ANALYZED]
        assert "Could not analyze image. Retrying..." in overlay.messages

    def test_unexpected_error_does_not_wedge_state(self, source, presenter, ambient, overlay, clock):
        inference = FakeInference(RuntimeError("bug"), MUG)
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock)

        outcomes = _run_cycles(orch, 2)
        assert outcomes == [CycleOutcome.INFERENCE_FAILED, CycleOutcome.ANALYZED]

    def test_busy_while_analysis_in_flight(self, source, presenter, ambient, overlay, clock):
        inference = FakeInference(MUG)
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock)

        async def scenario():
            orch.start(schedule=False)
            inference.gate = asyncio.Event()
            first = asyncio.create_task(orch.run_cycle())
            await asyncio.sleep(0)
            in_flight = orch.state
            second = await orch.run_cycle()
            inference.gate.set()
            return in_flight, second, await first

        in_flight, second, first = asyncio.run(scenario())
        assert in_flight == AnalysisState.ANALYZING
        assert second == CycleOutcome.BUSY
        assert first == CycleOutcome.ANALYZED
        assert len(inference.calls) == 1

    def test_late_result_after_stop_is_discarded(self, source, presenter, ambient, overlay, clock):
        inference = FakeInference(MUG)
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock)

        async def scenario():
            orch.start(schedule=False)
            inference.gate = asyncio.Event()
            pending = asyncio.create_task(orch.run_cycle())
            await asyncio.sleep(0)
            orch.stop()
            inference.gate.set()
            return await pending

        assert asyncio.run(scenario()) == CycleOutcome.STALE
        assert presenter.spoken == []
        assert ambient.started == []
        assert len(orch.cache) == 0
        assert orch.state is None

    def test_late_quota_error_does_not_leak_into_new_session(self, source, presenter, ambient, overlay, clock):
        inference = FakeInference(QuotaExceededError(retry_after=30.0))
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock)

        async def scenario():
            orch.start(schedule=False)
            inference.gate = asyncio.Event()
            pending = asyncio.create_task(orch.run_cycle())
            await asyncio.sleep(0)
            orch.stop()
            orch.start(schedule=False)
            inference.gate.set()
            return await pending, orch.state

        outcome, state = asyncio.run(scenario())
        assert outcome == CycleOutcome.STALE
        assert state == AnalysisState.IDLE


# ---------------------------------------------------------------------------
# Subject transitions
# ---------------------------------------------------------------------------

@pytest.mark.unit
class TestTransitions:

    def test_interrupt_policy_switches_mid_speech(self, source, presenter, ambient, overlay, clock):
        inference = FakeInference(MUG, KEYBOARD)
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock)

        async def scenario():
            await _cycles(orch)
            presenter.speaking = True
            return await _cycles(orch)

        assert asyncio.run(scenario()) == [CycleOutcome.ANALYZED]
        assert presenter.signals == [PresentationSignal.INTERRUPT, PresentationSignal.RESUME]
        assert presenter.spoken == ["Hello there!", "Click clack."]
        assert ambient.started == ["☕ Coffee Mug", "⌨️ Keyboard"]
        assert overlay.cues[-1].is_new_subject
        assert overlay.flashes == 2

    def test_interrupted_cue_leaves_status_to_replacement(self, source, ambient, overlay, clock):
        presenter = PacedPresenter(words_per_second=1.0, min_duration=0.01)
        inference = FakeInference(MUG, KEYBOARD)
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock)

        async def scenario():
            orch.start(schedule=False)
            first = asyncio.create_task(orch.run_cycle())
            await asyncio.sleep(0.01)
            assert presenter.is_speaking

            second = asyncio.create_task(orch.run_cycle())
            await asyncio.sleep(0.01)
            speaking, status = presenter.is_speaking, overlay.statuses[-1]

            orch.stop()
            return speaking, status, await asyncio.gather(first, second)

        speaking, status, outcomes = asyncio.run(scenario())
        assert speaking is True
        assert status == "Speaking..."
        assert outcomes == [CycleOutcome.ANALYZED, CycleOutcome.ANALYZED]
        assert ambient.started == ["☕ Coffee Mug", "⌨️ Keyboard"]

    def test_wait_policy_defers_new_subject(self, source, presenter, ambient, overlay, clock):
        inference = FakeInference(MUG, KEYBOARD)
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock,
                         transition_policy=TransitionPolicy.WAIT)

        async def scenario():
            await _cycles(orch)
            presenter.speaking = True
            await _cycles(orch)
            return orch.session.tracker.active_label

        assert asyncio.run(scenario()) == "☕ Coffee Mug"
        assert presenter.signals == []
        assert presenter.spoken == ["Hello there!"]
        assert ambient.started == ["☕ Coffee Mug"]

    def test_same_subject_while_speaking_is_suppressed(self, source, presenter, ambient, overlay, clock):
        inference = FakeInference(MUG, MUG_AGAIN)
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock)

        async def scenario():
            await _cycles(orch)
            presenter.speaking = True
            await _cycles(orch)
            return orch.session.tracker.history

        assert asyncio.run(scenario()) == ["Hello there!"]
        assert presenter.spoken == ["Hello there!"]
        assert presenter.signals == []

    def test_transition_without_speech_does_not_signal(self, source, presenter, ambient, overlay, clock):
        inference = FakeInference(MUG, KEYBOARD)
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock)
        _run_cycles(orch, 2)
        assert presenter.signals == []
        assert "New object detected: ⌨️ Keyboard" in overlay.messages


# ---------------------------------------------------------------------------
# Presentation failures
# ---------------------------------------------------------------------------

@pytest.mark.unit
class TestPresentationFailures:

    def test_missing_capability_is_surfaced(self, source, inference, presenter, ambient, overlay, clock):
        presenter.error = PresentationError("speech synthesis not supported", capability_missing=True)
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock)
        assert _run_cycles(orch) == [CycleOutcome.ANALYZED]
        assert "Text-to-speech not available" in overlay.messages

    def test_playback_hiccup_is_only_logged(self, source, inference, presenter, ambient, overlay, clock):
        presenter.error = PresentationError("audio glitch")
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock)
        assert _run_cycles(orch) == [CycleOutcome.ANALYZED]
        assert "Text-to-speech not available" not in overlay.messages


# ---------------------------------------------------------------------------
# Reactions
# ---------------------------------------------------------------------------

@pytest.mark.unit
class TestReactions:

    def test_no_subject_no_reaction(self, source, inference, presenter, ambient, overlay, clock):
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock)

        async def scenario():
            orch.start(schedule=False)
            return await orch.react(Reaction.LAUGH)

        assert asyncio.run(scenario()) is None
        assert inference.react_calls == []

    def test_reaction_spoken_by_active_subject(self, source, presenter, ambient, overlay, clock):
        inference = FakeInference(MUG)
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock)

        async def scenario():
            await _cycles(orch)
            return await orch.react(Reaction.COMPLIMENT), orch.session.tracker.history

        outcome, history = asyncio.run(scenario())
        assert outcome == SpeechOutcome.COMPLETED
        assert inference.react_calls == [("☕ Coffee Mug", Reaction.COMPLIMENT, Personality.PLAYFUL)]
        assert presenter.spoken[-1] == "Thank you kindly!"
        assert history == ["Hello there!", "Thank you kindly!"]

    def test_reaction_fallback_on_inference_error(self, source, presenter, ambient, overlay, clock):
        inference = FakeInference(MUG)
        inference.react_response = QuotaExceededError()
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock)

        async def scenario():
            await _cycles(orch)
            return await orch.react(Reaction.COMPLIMENT)

        assert asyncio.run(scenario()) == SpeechOutcome.COMPLETED
        assert presenter.spoken[-1] == "Oh stop it, you're making me blush!"

    def test_no_reaction_while_speaking(self, source, presenter, ambient, overlay, clock):
        inference = FakeInference(MUG)
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock)

        async def scenario():
            await _cycles(orch)
            presenter.speaking = True
            return await orch.react(Reaction.SURPRISE)

        assert asyncio.run(scenario()) is None
        assert inference.react_calls == []


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

@pytest.mark.unit
class TestLifecycle:

    def test_start_fails_without_camera(self, inference, presenter, ambient, overlay, clock):
        orch = _pipeline(FakeSource(start_ok=False), inference, presenter, ambient, overlay, clock)

        async def scenario():
            return orch.start(schedule=False)

        assert asyncio.run(scenario()) is False
        assert not orch.is_running
        assert overlay.messages == ["Could not access camera"]

    def test_start_requires_running_loop(self, source, inference, presenter, ambient, overlay, clock):
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock)
        with pytest.raises(RuntimeError):
            orch.start()

    def test_stop_resets_session_and_collaborators(self, source, inference, presenter, ambient, overlay, clock):
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock)

        async def scenario():
            await _cycles(orch)
            first = orch.session
            orch.stop()
            orch.start(schedule=False)
            return first, orch.session

        first, second = asyncio.run(scenario())
        assert second is not first
        assert second.generation > first.generation
        assert second.tracker.active_label is None
        assert first.tracker.active_label is None
        assert presenter.stops >= 1
        assert ambient.stops == 1
        assert overlay.clears == 1
        assert source.stopped == 1

    def test_stop_when_not_running_is_safe(self, source, inference, presenter, ambient, overlay, clock):
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock)
        orch.stop()
        assert source.stopped == 0

    def test_cache_retained_across_restart(self, presenter, ambient, overlay, clock):
        frame = solid_frame(0, encoded=random_bytes(1))
        inference = FakeInference(MUG)
        orch = _pipeline(FakeSource([frame, frame]), inference, presenter, ambient, overlay, clock)

        async def scenario():
            outcomes = await _cycles(orch)
            orch.stop()
            outcomes += await _cycles(orch)
            return outcomes

        assert asyncio.run(scenario()) == [CycleOutcome.ANALYZED, CycleOutcome.CACHE_HIT]
        assert len(inference.calls) == 1

    def test_cache_dropped_when_not_retained(self, presenter, ambient, overlay, clock):
        frame = solid_frame(0, encoded=random_bytes(1))
        inference = FakeInference(MUG, MUG)
        orch = _pipeline(FakeSource([frame, frame]), inference, presenter, ambient, overlay, clock,
                         retain_cache=False)

        async def scenario():
            outcomes = await _cycles(orch)
            orch.stop()
            outcomes += await _cycles(orch)
            return outcomes

        assert asyncio.run(scenario()) == [CycleOutcome.ANALYZED, CycleOutcome.ANALYZED]

    def test_scheduled_loop_runs_first_cycle_immediately(self, source, inference, presenter, ambient,
                                                          overlay, clock):
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock, tick_interval=60.0)

        async def scenario():
            assert orch.start()
            await asyncio.sleep(0.05)
            orch.stop()

        asyncio.run(scenario())
        assert len(inference.calls) == 1
        assert presenter.spoken == ["Hello there!"]

    def test_overlay_follows_object_while_expression_visible(self, source, inference, presenter, ambient,
                                                             overlay, clock):
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock, expression_seconds=5.0)

        async def scenario():
            await _cycles(orch)
            before = len(overlay.bounds)
            orch.refresh_overlay()
            during = len(overlay.bounds)
            clock.advance(6)
            orch.refresh_overlay()
            return before, during, len(overlay.bounds)

        before, during, after = asyncio.run(scenario())
        assert during == before + 1
        assert after == during

    def test_runtime_settings(self, source, inference, presenter, ambient, overlay, clock):
        orch = _pipeline(source, inference, presenter, ambient, overlay, clock)
        orch.set_min_interval(-3)
        assert orch.min_interval == 0.0
        orch.set_min_interval(8)
        assert orch.min_interval == 8.0

        async def scenario():
            orch.start(schedule=False)
            orch.set_motion_sensitivity(10)
            return orch.session.motion_gate.pixel_threshold

        assert asyncio.run(scenario()) == 10
