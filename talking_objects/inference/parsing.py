"""
Response parsing.

Model output is free text; malformed or empty output never raises and is
replaced with safe placeholders.
"""

from __future__ import annotations

import re
from typing import Optional

from talking_objects.core.contracts import AnalysisResult


DEFAULT_SUBJECT = "📦 Mysterious Object"
PLACEHOLDER_UTTERANCE = "I'm here!"

_PREFIX = re.compile(r"^(OBJECT:|SPEECH:)", re.IGNORECASE)


def parse_response(text: Optional[str], current_subject: Optional[str] = None) -> AnalysisResult:
    """
    Extract `OBJECT:` and `SPEECH:` lines from model output.

    Args:
        text: Raw model output (may be None or empty)
        current_subject: Label to keep when no OBJECT line is present

    Returns:
        AnalysisResult with non-empty label and utterance
    """
    label: Optional[str] = None
    speech: Optional[str] = None
    other_lines = []

    for line in (text or "").strip().splitlines():
        stripped = line.strip()
        upper = stripped.upper()
        if upper.startswith("OBJECT:"):
            label = stripped[len("OBJECT:"):].strip() or None
        elif upper.startswith("SPEECH:"):
            speech = stripped[len("SPEECH:"):].strip()
        elif stripped:
            other_lines.append(stripped)

    if speech is None:
        speech = " ".join(other_lines)
    speech = _PREFIX.sub("", speech).strip()

    return AnalysisResult(
        subject_label=label or current_subject or DEFAULT_SUBJECT,
        utterance=speech or PLACEHOLDER_UTTERANCE,
    )
