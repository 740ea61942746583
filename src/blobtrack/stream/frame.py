"""
Encoded Frame Model
===================

A compressed camera frame as received from a websocket producer.

Accepted Messages:
    binary: the JPEG bytes themselves
    text:   {"image": "<base64 JPEG>"} for producers that can only send text

Either way the payload is held as raw JPEG bytes and stays compressed
until the pipeline reads it.
"""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class EncodedFrame:
    """
    One received frame.

    Attributes:
        sequence: Local receive counter (1-based, per consumer)
        received_at: Monotonic clock reading at arrival
        payload: JPEG bytes
    """

    sequence: int
    received_at: float
    payload: bytes

    def __repr__(self) -> str:
        return f"EncodedFrame(sequence={self.sequence}, bytes={len(self.payload)})"
