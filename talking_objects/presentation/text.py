"""Text helpers for speech output."""

from __future__ import annotations

import re


_EMOJI = re.compile(
    "["
    "\U0001F600-\U0001F64F"  # emoticons
    "\U0001F300-\U0001F5FF"  # symbols & pictographs
    "\U0001F680-\U0001F6FF"  # transport & map
    "\U0001F1E0-\U0001F1FF"  # flags
    "\U0001F900-\U0001F9FF"  # supplemental symbols
    "\U0001FA70-\U0001FAFF"
    "\u2300-\u23FF"  # misc technical
    "\u2600-\u26FF"
    "\u2700-\u27BF"
    "\uFE0F"  # variation selector
    "\u200D"  # zero width joiner
    "]+"
)


def strip_emojis(text: str) -> str:
    """Remove emoji so a speech engine does not read them out."""
    return re.sub(r"\s{2,}", " ", _EMOJI.sub("", text)).strip()
