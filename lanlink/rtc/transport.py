"""
Transport substrate: connection establishment, candidate gathering and media
transport.

The signaling machine talks to the substrate through :class:`TransportSubstrate`
and receives its notifications as :mod:`lanlink.rtc.events` objects.  The
production implementation wraps :class:`aiortc.RTCPeerConnection`.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Protocol, Sequence

from ..config import IceServer
from ..errors import NegotiationRejected
from .description import SessionDescription
from .events import (
    CandidateDiscovered,
    Connectivity,
    ConnectivityChanged,
    RemoteTrackArrived,
    TransportEvent,
)

LOG = logging.getLogger(__name__)

EventSink = Callable[[TransportEvent], None]


@dataclass
class SessionHandle:
    """Reference to one substrate session; ``native`` is the engine object."""

    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    native: Any = None


class TransportSubstrate(Protocol):
    def create_session(self, ice_servers: Sequence[IceServer], emit: EventSink) -> SessionHandle: ...
    def attach_track(self, handle: SessionHandle, track: Any) -> None: ...
    async def create_local_offer(self, handle: SessionHandle) -> SessionDescription: ...
    async def create_local_answer(self, handle: SessionHandle) -> SessionDescription: ...
    async def set_local_description(self, handle: SessionHandle, description: SessionDescription) -> None: ...
    async def set_remote_description(self, handle: SessionHandle, description: SessionDescription) -> None: ...
    def local_description(self, handle: SessionHandle) -> Optional[SessionDescription]: ...
    async def close(self, handle: SessionHandle) -> None: ...


@dataclass
class RemoteMedia:
    """
    Keeps every remote track of one session drained.

    aiortc buffers decoded frames until someone calls ``recv()``, so each
    incoming track is relayed into a :class:`~aiortc.contrib.media.MediaBlackhole`.
    Consumers get an unbuffered relay proxy that only holds the latest frame.
    """

    relay: Any
    sink: Any

    @classmethod
    def create(cls) -> "RemoteMedia":
        from aiortc.contrib.media import MediaBlackhole, MediaRelay

        return cls(relay=MediaRelay(), sink=MediaBlackhole())

    async def drain(self, track: Any) -> Any:
        self.sink.addTrack(self.relay.subscribe(track))
        await self.sink.start()
        return self.relay.subscribe(track, buffered=False)

    async def stop(self) -> None:
        await self.sink.stop()


def _parse_connectivity(value: str) -> Optional[Connectivity]:
    try:
        return Connectivity(str(value))
    except ValueError:
        LOG.debug("Ignoring unknown connection state '%s'", value)
        return None


class AiortcTransport:
    """
    :class:`TransportSubstrate` on top of ``aiortc``.

    aiortc does not trickle: ``setLocalDescription`` gathers every candidate
    and folds them into ``pc.localDescription``.  Gathering completion is
    therefore reported as a single :class:`CandidateDiscovered`.
    """

    def __init__(self) -> None:
        self._remote_media: Dict[str, RemoteMedia] = {}

    def create_session(self, ice_servers: Sequence[IceServer], emit: EventSink) -> SessionHandle:
        from aiortc import RTCConfiguration, RTCIceServer, RTCPeerConnection

        configuration = RTCConfiguration(
            iceServers=[
                RTCIceServer(urls=list(server.urls), username=server.username, credential=server.credential)
                for server in ice_servers
            ]
        )
        pc = RTCPeerConnection(configuration=configuration)
        handle = SessionHandle(native=pc)
        remote_media = self._remote_media[handle.id] = RemoteMedia.create()
        logger = LOG.getChild(handle.id[:8])

        @pc.on("icegatheringstatechange")
        def _on_gathering() -> None:
            logger.debug("ICE gathering state: %s", pc.iceGatheringState)
            if pc.iceGatheringState == "complete":
                emit(CandidateDiscovered(session_id=handle.id))

        @pc.on("track")
        async def _on_track(track: Any) -> None:
            logger.info("Remote %s track received", track.kind)
            exposed = await remote_media.drain(track)
            emit(RemoteTrackArrived(session_id=handle.id, track=exposed, stream_id=str(getattr(track, "id", ""))))

        @pc.on("connectionstatechange")
        def _on_connection_state() -> None:
            state = _parse_connectivity(pc.connectionState)
            logger.info("Connection state: %s", pc.connectionState)
            if state is not None:
                emit(ConnectivityChanged(session_id=handle.id, state=state))

        return handle

    def attach_track(self, handle: SessionHandle, track: Any) -> None:
        handle.native.addTrack(track)

    @staticmethod
    def _to_native(description: SessionDescription) -> Any:
        from aiortc import RTCSessionDescription

        return RTCSessionDescription(sdp=description.sdp, type=description.type)

    async def create_local_offer(self, handle: SessionHandle) -> SessionDescription:
        offer = await handle.native.createOffer()
        return SessionDescription(type=offer.type, sdp=offer.sdp)

    async def create_local_answer(self, handle: SessionHandle) -> SessionDescription:
        answer = await handle.native.createAnswer()
        return SessionDescription(type=answer.type, sdp=answer.sdp)

    async def set_local_description(self, handle: SessionHandle, description: SessionDescription) -> None:
        await self._apply(handle, description, remote=False)

    async def set_remote_description(self, handle: SessionHandle, description: SessionDescription) -> None:
        await self._apply(handle, description, remote=True)

    async def _apply(self, handle: SessionHandle, description: SessionDescription, *, remote: bool) -> None:
        from aiortc import sdp as aiortc_sdp
        from aiortc.exceptions import InvalidAccessError, InvalidStateError

        side = "remote" if remote else "local"
        # aiortc reports unreadable SDP with asserts and lookup errors.
        try:
            aiortc_sdp.SessionDescription.parse(description.sdp)
        except Exception as exc:
            raise NegotiationRejected(f"Transport cannot read {side} {description.type}: {exc!r}") from exc
        native = self._to_native(description)
        try:
            if remote:
                await handle.native.setRemoteDescription(native)
            else:
                await handle.native.setLocalDescription(native)
        except (ValueError, InvalidAccessError, InvalidStateError) as exc:
            raise NegotiationRejected(f"Transport refused {side} {description.type}: {exc}") from exc

    def local_description(self, handle: SessionHandle) -> Optional[SessionDescription]:
        current = handle.native.localDescription
        if current is None:
            return None
        return SessionDescription(type=current.type, sdp=current.sdp)

    def remote_media(self, handle: SessionHandle) -> Optional[RemoteMedia]:
        return self._remote_media.get(handle.id)

    async def close(self, handle: SessionHandle) -> None:
        remote_media = self._remote_media.pop(handle.id, None)
        if remote_media is not None:
            await remote_media.stop()
        await handle.native.close()


__all__ = ["AiortcTransport", "EventSink", "RemoteMedia", "SessionHandle", "TransportSubstrate"]
