"""
Tracking Module.

Responsibilities:
- Coarse object localization for overlay placement
- Subject identity continuity and transitions
"""

from .object_locator import ObjectLocator
from .subject_tracker import SubjectTracker, SubjectState
