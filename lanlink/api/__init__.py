"""HTTP/WebSocket control surface."""

from __future__ import annotations

from .server import create_app
from .state import LinkState

__all__ = ["LinkState", "create_app"]
