"""
Inference Module.

Responsibilities:
- Prompt construction per personality and conversation history
- Remote vision call (Gemini)
- Tolerant parsing of free-text output
"""

from .parsing import parse_response, DEFAULT_SUBJECT, PLACEHOLDER_UTTERANCE
from .prompts import build_prompt, build_reaction_prompt, FALLBACK_REACTIONS
from .gemini_vision import GeminiVision, is_quota_error, retry_after_seconds
