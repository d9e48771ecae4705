"""
Shared link state: one signaling machine plus its snapshot listeners.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from ..config import LinkConfig
from ..rtc.media import CaptureDevice, MediaPlayerCapture
from ..rtc.transport import AiortcTransport, TransportSubstrate
from ..signaling import SignalingMachine, SignalingSnapshot

LOG = logging.getLogger(__name__)

DEFAULT_LISTENER_QUEUE = 32


@dataclass
class SnapshotListener:
    """Per-websocket outbox; the oldest snapshot is dropped when it overflows."""

    queue: "asyncio.Queue[dict]" = field(
        default_factory=lambda: asyncio.Queue(maxsize=DEFAULT_LISTENER_QUEUE)
    )
    dropped: int = 0

    def offer(self, payload: dict) -> None:
        if self.queue.full():
            try:
                self.queue.get_nowait()
            except asyncio.QueueEmpty:  # pragma: no cover - race with the consumer
                pass
            self.dropped += 1
        self.queue.put_nowait(payload)


class LinkState:
    """
    Aggregated state shared between the API and the signaling machine.
    """

    def __init__(
        self,
        config: Optional[LinkConfig] = None,
        *,
        capture: Optional[CaptureDevice] = None,
        transport: Optional[TransportSubstrate] = None,
    ) -> None:
        self.config = config or LinkConfig()
        self.machine = SignalingMachine(
            capture or MediaPlayerCapture(self.config.capture),
            transport or AiortcTransport(),
            ice_servers=self.config.ice_servers,
        )
        self._listener_counter = 0
        self._listeners: Dict[int, SnapshotListener] = {}
        self._token: Optional[int] = None

    async def start(self) -> None:
        self.machine.start()
        if self._token is None:
            self._token = self.machine.subscribe(self._fan_out)
        LOG.info("Link state started (profile=%s)", self.config.profile)

    async def stop(self) -> None:
        if self._token is not None:
            self.machine.unsubscribe(self._token)
            self._token = None
        await self.machine.aclose()
        LOG.info("Link state stopped")

    def snapshot(self) -> dict:
        return self.machine.snapshot().to_dict()

    def _fan_out(self, snapshot: SignalingSnapshot) -> None:
        payload = snapshot.to_dict()
        for listener in list(self._listeners.values()):
            listener.offer(payload)

    def add_listener(self) -> tuple[int, SnapshotListener]:
        self._listener_counter += 1
        token = self._listener_counter
        listener = SnapshotListener()
        listener.offer(self.snapshot())
        self._listeners[token] = listener
        return token, listener

    def remove_listener(self, token: int) -> None:
        listener = self._listeners.pop(token, None)
        if listener is not None and listener.dropped:
            LOG.debug("Listener %s dropped %d snapshot(s)", token, listener.dropped)
