"""Fake collaborators shared by the signaling tests.

- FakeTrack / FakeCapture: a capture device that hands out two tracks
- FakeTransport: an in-memory substrate that records every call and lets
  tests hold offer creation open to simulate a slow engine
"""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

import pytest

from lanlink.errors import DeviceUnavailable, NegotiationRejected
from lanlink.rtc.description import SessionDescription
from lanlink.rtc.events import CandidateDiscovered, Connectivity, ConnectivityChanged, RemoteTrackArrived
from lanlink.rtc.media import MediaStream
from lanlink.rtc.transport import SessionHandle
from lanlink.signaling import SignalingMachine

BASE_SDP = "v=0\r\no=- 4611731400430051336 2 IN IP4 127.0.0.1\r\ns=-\r\nt=0 0\r\n"
OFFER_SDP = BASE_SDP + "a=group:BUNDLE 0 1\r\n"
ANSWER_SDP = BASE_SDP + "a=group:BUNDLE 0 1\r\na=x-answer\r\n"
REJECTED_SDP = BASE_SDP + "a=x-reject\r\n"


def offer_blob(sdp: str = OFFER_SDP) -> str:
    return SessionDescription(type="offer", sdp=sdp).to_blob()


def answer_blob(sdp: str = ANSWER_SDP) -> str:
    return SessionDescription(type="answer", sdp=sdp).to_blob()


class FakeTrack:
    def __init__(self, kind: str) -> None:
        self.kind = kind
        self.stopped = 0

    def stop(self) -> None:
        self.stopped += 1


class FakeCapture:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.gate: Optional[asyncio.Event] = None
        self.acquired: List[MediaStream] = []
        self.released: List[MediaStream] = []

    async def acquire(self) -> MediaStream:
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise DeviceUnavailable("Permission denied")
        stream = MediaStream(tracks=[FakeTrack("audio"), FakeTrack("video")])
        self.acquired.append(stream)
        return stream

    def release(self, stream: MediaStream) -> None:
        stream.stop()
        self.released.append(stream)


class FakeNative:
    def __init__(self, emit, ice_servers) -> None:
        self.emit = emit
        self.ice_servers = list(ice_servers)
        self.tracks: List[FakeTrack] = []
        self.local: Optional[SessionDescription] = None
        self.remote: Optional[SessionDescription] = None
        self.candidates: List[str] = []
        self.closed = 0


class FakeTransport:
    def __init__(self) -> None:
        self.sessions: Dict[str, SessionHandle] = {}
        self.offer_gate: Optional[asyncio.Event] = None
        self.remote_gate: Optional[asyncio.Event] = None
        self.calls: List[str] = []

    def create_session(self, ice_servers, emit) -> SessionHandle:
        handle = SessionHandle(native=FakeNative(emit, ice_servers))
        self.sessions[handle.id] = handle
        self.calls.append("create_session")
        return handle

    def attach_track(self, handle: SessionHandle, track) -> None:
        handle.native.tracks.append(track)

    async def create_local_offer(self, handle: SessionHandle) -> SessionDescription:
        self.calls.append("create_local_offer")
        if self.offer_gate is not None:
            await self.offer_gate.wait()
        return SessionDescription(type="offer", sdp=OFFER_SDP)

    async def create_local_answer(self, handle: SessionHandle) -> SessionDescription:
        self.calls.append("create_local_answer")
        return SessionDescription(type="answer", sdp=ANSWER_SDP)

    async def set_local_description(self, handle: SessionHandle, description: SessionDescription) -> None:
        self.calls.append(f"set_local_description:{description.type}")
        handle.native.local = description

    async def set_remote_description(self, handle: SessionHandle, description: SessionDescription) -> None:
        self.calls.append(f"set_remote_description:{description.type}")
        if self.remote_gate is not None:
            await self.remote_gate.wait()
        if "x-reject" in description.sdp:
            raise NegotiationRejected("Transport refused the description")
        handle.native.remote = description

    def local_description(self, handle: SessionHandle) -> Optional[SessionDescription]:
        native = handle.native
        if native.local is None:
            return None
        lines = "".join(f"a=candidate:{candidate}\r\n" for candidate in native.candidates)
        return SessionDescription(type=native.local.type, sdp=native.local.sdp + lines)

    async def close(self, handle: SessionHandle) -> None:
        self.calls.append("close")
        handle.native.closed += 1

    # -- helpers driving substrate notifications

    def only_handle(self) -> SessionHandle:
        assert len(self.sessions) == 1
        return next(iter(self.sessions.values()))

    def discover_candidate(self, handle: SessionHandle, candidate: str) -> CandidateDiscovered:
        handle.native.candidates.append(candidate)
        event = CandidateDiscovered(session_id=handle.id)
        handle.native.emit(event)
        return event

    def connectivity(self, handle: SessionHandle, state: Connectivity) -> ConnectivityChanged:
        return ConnectivityChanged(session_id=handle.id, state=state)

    def remote_track(self, handle: SessionHandle, kind: str = "video") -> RemoteTrackArrived:
        return RemoteTrackArrived(session_id=handle.id, track=FakeTrack(kind), stream_id="remote-stream")


@pytest.fixture
def capture() -> FakeCapture:
    return FakeCapture()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def machine(capture: FakeCapture, transport: FakeTransport) -> SignalingMachine:
    return SignalingMachine(capture, transport)
