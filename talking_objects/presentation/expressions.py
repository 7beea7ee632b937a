"""Expression selection for presented utterances."""

from __future__ import annotations

from talking_objects.core.contracts import Expression, Personality


_BY_PERSONALITY = {
    Personality.FEARFUL: Expression.FEARFUL,
    Personality.GRUMPY: Expression.ANGRY,
    Personality.EXCITED: Expression.SURPRISED,
    Personality.WISE: Expression.HAPPY,
    Personality.CHILL: Expression.HAPPY,
}

_EXCITED_MARKERS = ("!", "wow", "amazing")


def choose_expression(personality: Personality, text: str) -> Expression:
    """
    Pick the face to draw for an utterance.

    Fixed per personality, except playful which reacts to the text itself.
    """
    if personality in _BY_PERSONALITY:
        return _BY_PERSONALITY[personality]

    lowered = (text or "").lower()
    if any(marker in lowered for marker in _EXCITED_MARKERS):
        return Expression.SURPRISED
    return Expression.HAPPY
