"""
Pipeline Module.

Responsibilities:
- Per-session state bundle
- Cycle scheduling and gate ordering
- Subject transitions and hand-off to presentation
"""

from .orchestrator import PipelineOrchestrator, PipelineConfig
from .session import Session
