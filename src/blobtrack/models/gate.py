"""
Gate Models
===========

State and reason codes for the presence gate.

Reason Codes:
    Every gate outcome carries exactly one machine-readable reason,
    so the service can report why the overlay is shown or hidden
    without free-text explanations.
"""

from dataclasses import dataclass
from enum import Enum


class GateMode(str, Enum):
    """
    Presence gate operating mode.

    Attributes:
        OFF: Gate disabled, overlay always permitted
        ORACLE: Delegate to an external detector capability
        HEURISTIC: Compare motion density against a fixed threshold
    """

    OFF = "off"
    ORACLE = "oracle"
    HEURISTIC = "heuristic"


class GateReason(str, Enum):
    """Machine-readable explanation for the current gate decision."""

    # Gate not active
    DISABLED = "DISABLED"
    THROTTLED = "THROTTLED"

    # Hysteresis
    HOLD = "HOLD"

    # Oracle outcomes
    DETECTED = "DETECTED"
    NOT_DETECTED = "NOT_DETECTED"

    # Heuristic outcomes
    MOTION_PRESENT = "MOTION_PRESENT"
    MOTION_ABSENT = "MOTION_ABSENT"

    # Fail-open outcomes
    CAPABILITY_UNAVAILABLE = "CAPABILITY_UNAVAILABLE"
    DETECTION_FAILED = "DETECTION_FAILED"


@dataclass
class GateState:
    """
    Mutable gate state, owned by PresenceGate.

    Attributes:
        permitted: Whether overlay rendering is allowed
        hold_frames_remaining: Evaluations left before a negative
            signal can switch the gate off
        reason: Why the gate holds its current value
    """

    permitted: bool = True
    hold_frames_remaining: int = 0
    reason: GateReason = GateReason.DISABLED
