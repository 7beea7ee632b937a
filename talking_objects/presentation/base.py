"""
Base classes for presentation collaborators.

The orchestrator only talks to these interfaces:
- BasePresenter: speaks utterances, can be interrupted
- BaseAmbient: background sound/idle behavior tied to the active subject
- BaseOverlay: visual decorations drawn over the live view

Example implementation:

    class MyPresenter(BasePresenter):
        async def speak(self, text, subject_label=None):
            await my_tts.say(text)
            return SpeechOutcome.COMPLETED

        def stop(self):
            my_tts.cancel()

        @property
        def is_speaking(self):
            return my_tts.busy
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional, Sequence, Tuple

from talking_objects.core.contracts import (
    ObjectBounds,
    PresentationCue,
    PresentationSignal,
    SpeechOutcome,
)


class BasePresenter(ABC):
    """Abstract speech output."""

    @abstractmethod
    async def speak(self, text: str, subject_label: Optional[str] = None) -> SpeechOutcome:
        """
        Speak one utterance and wait until it finishes.

        Returns:
            COMPLETED, INTERRUPTED (stop() was called) or FAILED (one-off
            playback problem)

        Raises:
            PresentationError: only when speech output is not available at all
        """
        pass

    @abstractmethod
    def stop(self):
        """Cut the current utterance short."""
        pass

    @property
    @abstractmethod
    def is_speaking(self) -> bool:
        pass

    def signal(self, signal: PresentationSignal):
        """Handle an explicit control signal. INTERRUPT stops speech; RESUME is a no-op by default."""
        if signal == PresentationSignal.INTERRUPT:
            self.stop()


class BaseAmbient(ABC):
    """Abstract ambient behavior bound to the active subject."""

    @abstractmethod
    def start(self, subject_label: str):
        """(Re)start ambient behavior for a new subject."""
        pass

    @abstractmethod
    def stop(self):
        pass


class BaseOverlay(ABC):
    """Abstract visual overlay."""

    @abstractmethod
    def set_status(self, text: str):
        """Persistent one-line status."""
        pass

    @abstractmethod
    def show_message(self, text: str, duration: float = 3.0):
        """Short-lived advisory."""
        pass

    @abstractmethod
    def show_cue(self, cue: PresentationCue):
        """Display the subject label, utterance and expression."""
        pass

    @abstractmethod
    def flash_transition(self):
        """Brief visual flash when a new subject takes over."""
        pass

    @abstractmethod
    def update_bounds(self, bounds: ObjectBounds, outline: Sequence[Tuple[float, float]] = ()):
        """Move decorations to follow the located object."""
        pass

    @abstractmethod
    def clear(self):
        pass
