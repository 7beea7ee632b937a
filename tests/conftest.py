"""Shared fixtures: fake clock, frame builders, fake collaborators."""

from __future__ import annotations

import asyncio
from collections import deque
from typing import List, Optional

import numpy as np
import pytest

from talking_objects.capture.base import FrameSource
from talking_objects.core.contracts import (
    AnalysisResult,
    Frame,
    ObjectBounds,
    PresentationCue,
    PresentationSignal,
    SpeechOutcome,
)
from talking_objects.core.errors import CaptureError
from talking_objects.presentation.base import BaseAmbient, BaseOverlay, BasePresenter


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------

class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


# ---------------------------------------------------------------------------
# Frames
# ---------------------------------------------------------------------------

def random_bytes(seed: int, size: int = 12000) -> bytes:
    return np.random.default_rng(seed).integers(0, 256, size=size, dtype=np.uint8).tobytes()


def solid_frame(value: int = 128, width: int = 64, height: int = 48, encoded: Optional[bytes] = None,
                frame_id: int = 0) -> Frame:
    pixels = np.full((height, width, 3), value, dtype=np.uint8)
    return Frame(pixels=pixels, encoded=encoded if encoded is not None else random_bytes(frame_id),
                 frame_id=frame_id)


def box_frame(width: int = 160, height: int = 120, box=(60, 40, 100, 80)) -> Frame:
    """Black frame with one white rectangle (x0, y0, x1, y1)."""
    pixels = np.zeros((height, width, 3), dtype=np.uint8)
    x0, y0, x1, y1 = box
    pixels[y0:y1, x0:x1] = 255
    return Frame(pixels=pixels, encoded=random_bytes(7))


def frame_sequence(count: int, start_seed: int = 1) -> List[Frame]:
    """Frames that always pass motion and similarity: alternating brightness, random bytes."""
    return [
        solid_frame(0 if i % 2 == 0 else 200, encoded=random_bytes(start_seed + i), frame_id=i)
        for i in range(count)
    ]


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------

class FakeSource(FrameSource):
    def __init__(self, frames=None, start_ok: bool = True):
        self.frames = deque(frames or [])
        self.start_ok = start_ok
        self.fail = False
        self.started = 0
        self.stopped = 0
        self.last: Optional[Frame] = None

    def start(self) -> bool:
        self.started += 1
        return self.start_ok

    def stop(self) -> None:
        self.stopped += 1

    def push(self, *frames: Frame):
        self.frames.extend(frames)

    def capture_frame(self) -> Frame:
        if self.fail:
            raise CaptureError("Failed to read frame")
        if self.frames:
            self.last = self.frames.popleft()
        if self.last is None:
            raise CaptureError("Camera is not active")
        return self.last


class FakeInference:
    """Returns queued results or raises queued exceptions; optionally blocks on `gate`."""

    def __init__(self, *responses):
        self.responses = deque(responses)
        self.calls = []
        self.react_calls = []
        self.react_response = "Thank you kindly!"
        self.gate: Optional[asyncio.Event] = None

    async def analyze(self, frame, personality, history, current_subject=None):
        self.calls.append((frame, personality, list(history), current_subject))
        if self.gate is not None:
            await self.gate.wait()
        response = self.responses.popleft() if self.responses else AnalysisResult("☕ Coffee Mug", "Hello there!")
        if isinstance(response, Exception):
            raise response
        return response

    async def react(self, subject_label, reaction, personality):
        self.react_calls.append((subject_label, reaction, personality))
        if isinstance(self.react_response, Exception):
            raise self.react_response
        return self.react_response


class FakePresenter(BasePresenter):
    def __init__(self):
        self.spoken: List[str] = []
        self.signals: List[PresentationSignal] = []
        self.stops = 0
        self.speaking = False
        self.error: Optional[Exception] = None

    async def speak(self, text, subject_label=None) -> SpeechOutcome:
        if self.error is not None:
            raise self.error
        self.spoken.append(text)
        return SpeechOutcome.COMPLETED

    def stop(self):
        self.stops += 1
        self.speaking = False

    def signal(self, signal: PresentationSignal):
        self.signals.append(signal)
        super().signal(signal)

    @property
    def is_speaking(self) -> bool:
        return self.speaking


class FakeAmbient(BaseAmbient):
    def __init__(self):
        self.started: List[str] = []
        self.stops = 0

    def start(self, subject_label: str):
        self.started.append(subject_label)

    def stop(self):
        self.stops += 1


class FakeOverlay(BaseOverlay):
    def __init__(self):
        self.statuses: List[str] = []
        self.messages: List[str] = []
        self.cues: List[PresentationCue] = []
        self.bounds: List[ObjectBounds] = []
        self.flashes = 0
        self.clears = 0

    def set_status(self, text: str):
        self.statuses.append(text)

    def show_message(self, text: str, duration: float = 3.0):
        self.messages.append(text)

    def show_cue(self, cue: PresentationCue):
        self.cues.append(cue)

    def flash_transition(self):
        self.flashes += 1

    def update_bounds(self, bounds, outline=()):
        self.bounds.append(bounds)

    def clear(self):
        self.clears += 1


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def source():
    return FakeSource(frame_sequence(20))


@pytest.fixture
def inference():
    return FakeInference()


@pytest.fixture
def presenter():
    return FakePresenter()


@pytest.fixture
def ambient():
    return FakeAmbient()


@pytest.fixture
def overlay():
    return FakeOverlay()

