"""
Gate Module
===========

Presence gating for the overlay.

This module provides:
    - PresenceGate: throttled OFF / ORACLE / HEURISTIC gate with
      hysteresis hold and fail-open detector handling
"""

from blobtrack.gate.presence import PresenceGate

__all__ = [
    "PresenceGate",
]
