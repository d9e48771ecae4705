"""
Session role selection.

A session attempt is played either as the Offerer (the broadcaster, who
proposes first) or as the Answerer (the viewer).  The role is fixed together
with the local capture stream and only a reset clears it.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional, Union

from .errors import InvalidState
from .rtc.media import CaptureDevice, MediaStream

LOG = logging.getLogger(__name__)


class Role(str, Enum):
    OFFERER = "offerer"
    ANSWERER = "answerer"
    UNSET = "unset"

    @property
    def label(self) -> str:
        return _LABELS[self]

    @classmethod
    def parse(cls, value: Union["Role", str, None]) -> "Role":
        if isinstance(value, Role):
            return value
        candidate = str(value or "").strip().lower()
        role = _ALIASES.get(candidate)
        if role is None:
            raise InvalidState(f"Unknown role '{value}'")
        return role


_LABELS = {
    Role.OFFERER: "broadcaster",
    Role.ANSWERER: "viewer",
    Role.UNSET: "",
}

_ALIASES = {
    "offerer": Role.OFFERER,
    "broadcaster": Role.OFFERER,
    "answerer": Role.ANSWERER,
    "viewer": Role.ANSWERER,
    "unset": Role.UNSET,
}


class RoleSelector:
    """
    Holds the role of the current attempt and the local stream acquired for it.
    """

    def __init__(self, capture: CaptureDevice) -> None:
        self.capture = capture
        self.role = Role.UNSET
        self.local_stream: Optional[MediaStream] = None
        self._acquiring = False
        self._generation = 0

    @property
    def is_set(self) -> bool:
        return self.role is not Role.UNSET

    @property
    def is_acquiring(self) -> bool:
        return self._acquiring

    async def select(self, role: Union[Role, str]) -> Optional[MediaStream]:
        """
        Fix ``role`` for this attempt and acquire the local stream.

        Returns ``None`` when :meth:`clear` ran while the device was being
        opened; the late stream is handed straight back to the capture device.
        Raises :class:`DeviceUnavailable` from the capture device unchanged.
        """

        target = Role.parse(role)
        if target is Role.UNSET:
            raise InvalidState("Select either the offerer or the answerer role")
        if self.is_set:
            raise InvalidState(f"Role already selected ({self.role.value}); reset first")
        if self._acquiring:
            raise InvalidState("Role selection already in progress")

        generation = self._generation
        self._acquiring = True
        try:
            stream = await self.capture.acquire()
        finally:
            if generation == self._generation:
                self._acquiring = False

        if generation != self._generation:
            LOG.debug("Discarding stream %s acquired for a cleared selection", stream.id[:8])
            self.capture.release(stream)
            return None

        self.role = target
        self.local_stream = stream
        LOG.info("Role selected: %s", target.value)
        return stream

    def clear(self) -> None:
        self._generation += 1
        self._acquiring = False
        stream, self.local_stream = self.local_stream, None
        self.role = Role.UNSET
        if stream is not None:
            self.capture.release(stream)


__all__ = ["Role", "RoleSelector"]
