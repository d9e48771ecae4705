"""
Media streams and the capture collaborator.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, List, Optional, Protocol

from ..config import CaptureSettings
from ..errors import DeviceUnavailable

LOG = logging.getLogger(__name__)


@dataclass
class MediaStream:
    """
    A group of live tracks.

    Tracks are whatever the transport understands (``aiortc`` media tracks in
    production); the stream only needs ``kind`` and ``stop()`` from them.
    """

    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    tracks: List[Any] = field(default_factory=list)

    def add_track(self, track: Any) -> None:
        if track not in self.tracks:
            self.tracks.append(track)

    def kinds(self) -> List[str]:
        return [str(getattr(track, "kind", "unknown")) for track in self.tracks]

    def stop(self) -> None:
        for track in self.tracks:
            try:
                track.stop()
            except Exception:  # pragma: no cover - a dead track must not block release
                LOG.exception("Failed to stop %s track", getattr(track, "kind", "unknown"))

    def to_dict(self) -> dict:
        return {"id": self.id, "kinds": self.kinds()}


class CaptureDevice(Protocol):
    """Produces the local stream and takes it back."""

    async def acquire(self) -> MediaStream: ...
    def release(self, stream: MediaStream) -> None: ...


class MediaPlayerCapture:
    """
    Capture collaborator backed by :class:`aiortc.contrib.media.MediaPlayer`.

    Opening a device blocks inside ffmpeg, so it runs in a worker thread.
    """

    def __init__(self, settings: Optional[CaptureSettings] = None) -> None:
        self.settings = settings or CaptureSettings()
        self._players: dict[str, Any] = {}

    def _open_player(self) -> Any:
        import av
        from aiortc.contrib.media import MediaPlayer

        try:
            return MediaPlayer(
                self.settings.device,
                format=self.settings.format,
                options=dict(self.settings.options),
            )
        except (av.FFmpegError, OSError, ValueError) as exc:
            raise DeviceUnavailable(
                f"Could not open capture device '{self.settings.device}': {exc}"
            ) from exc

    async def acquire(self) -> MediaStream:
        player = await asyncio.to_thread(self._open_player)
        stream = MediaStream()
        if player.video is not None:
            stream.add_track(player.video)
        if self.settings.audio and player.audio is not None:
            stream.add_track(player.audio)
        if not stream.tracks:
            # Stopping every player track closes the ffmpeg container.
            for track in (player.video, player.audio):
                if track is not None:
                    track.stop()
            raise DeviceUnavailable(f"Capture device '{self.settings.device}' produced no tracks")
        self._players[stream.id] = player
        LOG.info("Acquired local stream %s (%s)", stream.id[:8], ", ".join(stream.kinds()))
        return stream

    def release(self, stream: MediaStream) -> None:
        stream.stop()
        self._players.pop(stream.id, None)
        LOG.info("Released local stream %s", stream.id[:8])


__all__ = ["CaptureDevice", "MediaPlayerCapture", "MediaStream"]
