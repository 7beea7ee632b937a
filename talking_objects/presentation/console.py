"""
Console presentation.

Headless implementations that log instead of producing sound or graphics.
PacedPresenter holds each utterance for roughly the time it would take to
say it, so interruption and suppression behave as they would with a real
speech engine.
"""

from __future__ import annotations

import asyncio
from typing import Optional, Sequence, Tuple
from loguru import logger

from talking_objects.core.contracts import (
    ObjectBounds,
    PresentationCue,
    PresentationSignal,
    SpeechOutcome,
)
from .base import BaseAmbient, BaseOverlay, BasePresenter
from .text import strip_emojis


class PacedPresenter(BasePresenter):
    """Logs utterances and waits for their estimated spoken duration."""

    def __init__(
        self,
        words_per_second: float = 2.5,
        min_duration: float = 1.0,
    ):
        self.words_per_second = words_per_second
        self.min_duration = min_duration

        self._speaking = False
        self._interrupted: Optional[asyncio.Event] = None
        self._spoken_count = 0

    def duration_for(self, text: str) -> float:
        words = len(text.split())
        return max(self.min_duration, words / self.words_per_second)

    async def speak(self, text: str, subject_label: Optional[str] = None) -> SpeechOutcome:
        clean = strip_emojis(text)
        if not clean:
            return SpeechOutcome.COMPLETED

        # A new utterance cuts off whatever is still playing
        self.stop()
        interrupted = asyncio.Event()
        self._interrupted = interrupted
        self._speaking = True

        speaker = strip_emojis(subject_label) if subject_label else "object"
        logger.info(f"🔊 [{speaker}] {clean}")

        try:
            await asyncio.wait_for(interrupted.wait(), timeout=self.duration_for(clean))
        except asyncio.TimeoutError:
            self._spoken_count += 1
            return SpeechOutcome.COMPLETED
        finally:
            if self._interrupted is interrupted:
                self._speaking = False
                self._interrupted = None

        logger.debug(f"Speech interrupted: {clean}")
        return SpeechOutcome.INTERRUPTED

    def stop(self):
        if self._interrupted is not None:
            self._interrupted.set()
        self._speaking = False

    def signal(self, signal: PresentationSignal):
        logger.debug(f"Presenter signal: {signal.value}")
        super().signal(signal)

    @property
    def is_speaking(self) -> bool:
        return self._speaking

    @property
    def spoken_count(self) -> int:
        return self._spoken_count


class LoggingAmbient(BaseAmbient):
    """Records which subject ambient behavior is running for."""

    def __init__(self):
        self._subject: Optional[str] = None

    def start(self, subject_label: str):
        self._subject = subject_label
        logger.debug(f"Ambient started for {subject_label}")

    def stop(self):
        if self._subject is not None:
            logger.debug(f"Ambient stopped for {self._subject}")
        self._subject = None

    @property
    def subject(self) -> Optional[str]:
        return self._subject


class LoggingOverlay(BaseOverlay):
    """Overlay for headless runs; status and messages go to the log."""

    def __init__(self):
        self.status = ""
        self.bounds: Optional[ObjectBounds] = None

    def set_status(self, text: str):
        if text != self.status:
            logger.info(f"Status: {text}")
        self.status = text

    def show_message(self, text: str, duration: float = 3.0):
        logger.info(f"Message: {text}")

    def show_cue(self, cue: PresentationCue):
        logger.info(f"{cue.subject_label} ({cue.expression.value}): {cue.utterance}")

    def flash_transition(self):
        pass

    def update_bounds(self, bounds: ObjectBounds, outline: Sequence[Tuple[float, float]] = ()):
        self.bounds = bounds

    def clear(self):
        self.bounds = None
