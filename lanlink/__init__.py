"""
LANLink package.

Two-party audio/video link over the local network.  Signaling is manual: each
side copies an opaque session-description blob and the user pastes it into
the other instance.  The core lives in :mod:`lanlink.signaling`; everything
else is either a collaborator (capture, transport) or a display surface.
"""

from __future__ import annotations

from .config import CaptureSettings, IceServer, LinkConfig, load_config
from .roles import Role, RoleSelector
from .signaling import SignalingMachine, SignalingSnapshot, SignalingState

__all__ = [
    "CaptureSettings",
    "IceServer",
    "LinkConfig",
    "Role",
    "RoleSelector",
    "SignalingMachine",
    "SignalingSnapshot",
    "SignalingState",
    "load_config",
]
