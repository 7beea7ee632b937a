"""
Presentation Module.

Responsibilities:
- Speech output with interruption
- Ambient behavior tied to the active subject
- Visual overlay (eyes, mouth, particles, speech bubble, status)
"""

from .base import BasePresenter, BaseAmbient, BaseOverlay
from .console import PacedPresenter, LoggingAmbient, LoggingOverlay
from .cv_overlay import CvOverlay
from .expressions import choose_expression
from .text import strip_emojis
