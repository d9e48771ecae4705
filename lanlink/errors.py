"""
Error kinds raised by the signaling core.
"""

from __future__ import annotations


class SignalingError(RuntimeError):
    """Base class for signaling related errors."""

    kind = "SignalingError"


class InvalidState(SignalingError):
    """Raised when an operation is not allowed in the current role or state."""

    kind = "InvalidState"


class MachineClosed(InvalidState):
    """Raised when an operation is requested after the machine was closed."""

    kind = "MachineClosed"


class DeviceUnavailable(SignalingError):
    """Raised when the capture device is missing or access was denied."""

    kind = "DeviceUnavailable"


class MalformedDescription(SignalingError):
    """Raised when a pasted blob is not a usable session description."""

    kind = "MalformedDescription"


class NegotiationRejected(SignalingError):
    """Raised when a description is refused or applied out of order."""

    kind = "NegotiationRejected"


class ConnectivityLost(SignalingError):
    """Reported when the transport fails or disconnects."""

    kind = "ConnectivityLost"


__all__ = [
    "ConnectivityLost",
    "DeviceUnavailable",
    "InvalidState",
    "MachineClosed",
    "MalformedDescription",
    "NegotiationRejected",
    "SignalingError",
]
