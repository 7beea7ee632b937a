"""
Talking Objects

Samples a live camera, decides cheaply and locally whether the scene changed
enough to justify a remote vision call, deduplicates and rate-limits those
calls, and turns their results into a continuous "identity + utterance"
stream with clean transitions between subjects.

Top priorities:
1. Never waste a remote call on a frame that adds nothing
2. At most one analysis in flight per session
3. Clean, ordered subject transitions
4. Bounded memory for every piece of session state
"""

__version__ = "0.1.0"
