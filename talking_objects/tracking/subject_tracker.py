"""
Subject Tracker.

Owns the single active subject identity and its conversation history, and
decides whether an incoming label is a new subject.

States:
    EMPTY  --(any label)------------------> ACTIVE(label)
    ACTIVE --(label differs, normalized)--> ACTIVE(new label)   [transition]
    ACTIVE --(same label)-----------------> ACTIVE              [history append]
"""

from __future__ import annotations

import re
import time
from collections import deque
from enum import Enum, auto
from typing import Callable, Deque, List, Optional
from loguru import logger

from talking_objects.core.contracts import (
    Subject,
    SubjectTransition,
    TrackerAction,
    TrackerDecision,
    TransitionPolicy,
)


_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


class SubjectState(Enum):
    EMPTY = auto()
    ACTIVE = auto()


class SubjectTracker:
    """
    Single-subject state machine.

    Guarantees:
    - At most one active subject at any instant
    - A transition is declared only when normalized labels differ
    - On transition the history is discarded, never merged
    - A same-subject update while presenting is suppressed, never interrupts
    """

    def __init__(
        self,
        policy: TransitionPolicy = TransitionPolicy.INTERRUPT,
        max_history: int = 5,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize subject tracker.

        Args:
            policy: Behavior for a new subject arriving mid-presentation
            max_history: Utterances retained for the active subject
            clock: Wall-clock source for transition timestamps
        """
        self.policy = policy
        self.max_history = max_history
        self._clock = clock

        self._label: Optional[str] = None
        self._history: Deque[str] = deque(maxlen=max_history)

    @staticmethod
    def normalize(label: str) -> str:
        """
        Case-fold and drop emoji/punctuation so cosmetic variants compare equal.

        Underscore counts as a word character and is kept, so "coffee_mug"
        and "coffee mug" are different labels.
        """
        stripped = _NON_WORD.sub("", label or "")
        return _WHITESPACE.sub(" ", stripped).strip().casefold()

    def is_new_subject(self, candidate: str) -> bool:
        if self._label is None:
            return True
        return self.normalize(candidate) != self.normalize(self._label)

    def observe(
        self,
        label: str,
        utterance: str,
        presenting: bool = False,
    ) -> TrackerDecision:
        """
        Offer an analysis result to the tracker.

        Args:
            label: Candidate subject label
            utterance: What the subject says
            presenting: Whether a presentation is currently in progress

        Returns:
            TrackerDecision describing the action taken
        """
        if self.is_new_subject(label):
            if presenting and self.policy == TransitionPolicy.WAIT:
                logger.info(f"New subject '{label}' deferred until speech finishes")
                return TrackerDecision(action=TrackerAction.DEFER)

            transition = self._transition_to(label)
            self._history.append(utterance)
            return TrackerDecision(
                action=TrackerAction.TRANSITION,
                transition=transition,
                interrupt=presenting,
            )

        if presenting:
            logger.debug("Already speaking, skipping same-subject update")
            return TrackerDecision(action=TrackerAction.SUPPRESS)

        self._history.append(utterance)
        return TrackerDecision(action=TrackerAction.UPDATE)

    def _transition_to(self, label: str) -> SubjectTransition:
        transition = SubjectTransition(
            previous_subject=self._label,
            new_subject=label,
            timestamp=self._clock(),
        )
        self._history.clear()
        self._label = label
        logger.info(f"New subject: {transition.previous_subject!r} -> {label!r}")
        return transition

    def record_utterance(self, utterance: str):
        """Append an utterance for the active subject (e.g. a reaction)."""
        if self._label is not None:
            self._history.append(utterance)

    def context(self, count: int = 3) -> List[str]:
        """The most recent `count` utterances, oldest first."""
        if count <= 0:
            return []
        return list(self._history)[-count:]

    def reset(self):
        """Return to EMPTY."""
        self._label = None
        self._history.clear()

    @property
    def state(self) -> SubjectState:
        return SubjectState.EMPTY if self._label is None else SubjectState.ACTIVE

    @property
    def active_label(self) -> Optional[str]:
        return self._label

    @property
    def active_subject(self) -> Optional[Subject]:
        """Snapshot of the active subject."""
        if self._label is None:
            return None
        return Subject(label=self._label, history=list(self._history))

    @property
    def history(self) -> List[str]:
        return list(self._history)
