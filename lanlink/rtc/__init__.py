"""
WebRTC collaborators: blob format, capture, transport.
"""

from __future__ import annotations

from .description import SessionDescription
from .events import CandidateDiscovered, Connectivity, ConnectivityChanged, RemoteTrackArrived
from .media import MediaPlayerCapture, MediaStream
from .transport import AiortcTransport, SessionHandle

__all__ = [
    "AiortcTransport",
    "CandidateDiscovered",
    "Connectivity",
    "ConnectivityChanged",
    "MediaPlayerCapture",
    "MediaStream",
    "RemoteTrackArrived",
    "SessionDescription",
    "SessionHandle",
]
