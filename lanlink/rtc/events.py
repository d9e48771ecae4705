"""
Typed notifications emitted by the transport substrate.

The substrate never touches signaling state directly; it puts one of these
into the machine's inbox and the machine applies them one at a time.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union


class Connectivity(str, Enum):
    """Connection states reported by the substrate."""

    NEW = "new"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    FAILED = "failed"
    CLOSED = "closed"


@dataclass(frozen=True, slots=True)
class CandidateDiscovered:
    """A new local network path is known; the local blob should be refreshed."""

    session_id: str


@dataclass(frozen=True, slots=True)
class RemoteTrackArrived:
    session_id: str
    track: Any
    stream_id: str = ""


@dataclass(frozen=True, slots=True)
class ConnectivityChanged:
    session_id: str
    state: Connectivity


TransportEvent = Union[CandidateDiscovered, RemoteTrackArrived, ConnectivityChanged]

__all__ = [
    "CandidateDiscovered",
    "Connectivity",
    "ConnectivityChanged",
    "RemoteTrackArrived",
    "TransportEvent",
]
