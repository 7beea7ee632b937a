"""
Gemini Vision client.

Sends one encoded still plus a persona prompt and returns the subject's
identity and utterance. Provider errors are mapped onto the pipeline's
error taxonomy: quota exhaustion becomes QuotaExceededError with a retry
delay, everything else becomes InferenceError.
"""

from __future__ import annotations

import math
import os
import re
from typing import Optional, Sequence
import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from loguru import logger

from talking_objects.core.contracts import (
    AnalysisResult,
    Frame,
    Personality,
    Reaction,
)
from talking_objects.core.errors import InferenceError, QuotaExceededError
from .parsing import parse_response
from .prompts import build_prompt, build_reaction_prompt


DEFAULT_RETRY_SECONDS = 60.0

_RETRY_IN = re.compile(r"retry in (\d+(?:\.\d+)?)", re.IGNORECASE)


def is_quota_error(error: Exception) -> bool:
    if isinstance(error, google_exceptions.ResourceExhausted):
        return True
    message = str(error).lower()
    return "quota" in message or "429" in message


def retry_after_seconds(error: Exception, default: float = DEFAULT_RETRY_SECONDS) -> float:
    """Parse "retry in N" out of a provider error message."""
    match = _RETRY_IN.search(str(error))
    if not match:
        return default
    return float(math.ceil(float(match.group(1))))


class GeminiVision:
    """
    Vision + persona generation through Google Gemini.

    Stateless with respect to the conversation: the caller passes the
    recent history on every call.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gemini-2.0-flash",
        temperature: float = 0.9,
        max_output_tokens: int = 80,
    ):
        """
        Initialize Gemini client.

        Args:
            api_key: Gemini API key (uses GEMINI_API_KEY / GOOGLE_API_KEY if not provided)
            model: Model name
            temperature: Sampling temperature
            max_output_tokens: Output cap; responses are one short sentence

        Raises:
            ValueError: if no API key is available
        """
        self.api_key = api_key or os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY")
        if not self.api_key or self.api_key == "your_api_key_here":
            raise ValueError("No GEMINI_API_KEY or GOOGLE_API_KEY found")

        self.model_name = model
        genai.configure(api_key=self.api_key)
        self._model = genai.GenerativeModel(
            model,
            generation_config={
                "temperature": temperature,
                "max_output_tokens": max_output_tokens,
            },
        )
        logger.info(f"Gemini vision initialized with {model}")

    async def analyze(
        self,
        frame: Frame,
        personality: Personality = Personality.PLAYFUL,
        history: Sequence[str] = (),
        current_subject: Optional[str] = None,
    ) -> AnalysisResult:
        """
        Identify the main object and speak as it.

        Args:
            frame: Still to analyze (its JPEG bytes are sent)
            personality: Persona for the utterance
            history: Recent utterances of the active subject, oldest first
            current_subject: Label kept if the model omits one

        Returns:
            AnalysisResult (placeholders substituted for unparseable output)

        Raises:
            QuotaExceededError: provider refused for quota reasons
            InferenceError: any other failure
        """
        prompt = build_prompt(personality, history)
        image_part = {"mime_type": "image/jpeg", "data": frame.encoded}

        text = await self._generate([prompt, image_part])
        result = parse_response(text, current_subject)
        logger.info(f"Gemini: {result.subject_label} -> \"{result.utterance}\"")
        return result

    async def react(
        self,
        subject_label: str,
        reaction: Reaction,
        personality: Personality = Personality.PLAYFUL,
    ) -> str:
        """One in-character sentence reacting to a user gesture."""
        text = await self._generate(build_reaction_prompt(subject_label, reaction, personality))
        text = (text or "").strip()
        if not text:
            raise InferenceError("Empty reaction from Gemini")
        return text

    async def _generate(self, contents) -> str:
        try:
            response = await self._model.generate_content_async(contents)
            return response.text
        except Exception as e:
            if is_quota_error(e):
                retry = retry_after_seconds(e)
                logger.warning(f"Gemini quota exceeded, retry in {retry:.0f}s")
                raise QuotaExceededError(retry_after=retry) from e
            logger.error(f"Gemini request failed: {e}")
            raise InferenceError("Failed to analyze image. Please try again.") from e
