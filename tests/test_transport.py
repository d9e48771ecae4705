"""Tests driving two machines over the aiortc transport on the local host."""

from __future__ import annotations

import asyncio
import json

import pytest

pytest.importorskip("aiortc")

from aiortc.mediastreams import AudioStreamTrack, VideoStreamTrack

from lanlink.errors import MalformedDescription, NegotiationRejected
from lanlink.roles import Role
from lanlink.rtc.description import SessionDescription
from lanlink.rtc.media import MediaStream
from lanlink.rtc.transport import AiortcTransport
from lanlink.signaling import STATUS_BAD_OFFER, SignalingMachine, SignalingState

UNREADABLE_SDP = "v=0\r\nm=audio\r\n"


class SyntheticCapture:
    """Silence and a green test picture instead of a camera."""

    def __init__(self) -> None:
        self.released = []

    async def acquire(self) -> MediaStream:
        return MediaStream(tracks=[AudioStreamTrack(), VideoStreamTrack()])

    def release(self, stream: MediaStream) -> None:
        stream.stop()
        self.released.append(stream)


async def _wait_for(predicate, timeout: float = 15.0) -> None:
    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0.05)

    await asyncio.wait_for(poll(), timeout)


@pytest.mark.asyncio
async def test_loopback_link_connects_drains_and_resets() -> None:
    offerer_capture, answerer_capture = SyntheticCapture(), SyntheticCapture()
    offerer_transport, answerer_transport = AiortcTransport(), AiortcTransport()
    offerer = SignalingMachine(offerer_capture, offerer_transport, ice_servers=[])
    answerer = SignalingMachine(answerer_capture, answerer_transport, ice_servers=[])

    async with offerer, answerer:
        await offerer.select_role(Role.OFFERER)
        await answerer.select_role(Role.ANSWERER)

        offer = await offerer.generate_offer()
        assert "a=candidate:" in json.loads(offer)["sdp"]
        answer = await answerer.apply_remote_offer(offer)
        assert json.loads(answer)["type"] == "answer"
        await offerer.apply_remote_answer(answer)

        await _wait_for(
            lambda: offerer.state is SignalingState.CONNECTED and answerer.state is SignalingState.CONNECTED
        )
        await _wait_for(lambda: offerer.remote_stream is not None and len(offerer.remote_stream.tracks) == 2)
        assert sorted(offerer.remote_stream.kinds()) == ["audio", "video"]

        handle = offerer.session.handle
        offer_pc = handle.native
        answer_pc = answerer.session.handle.native
        assert offerer_transport.remote_media(handle) is not None

        # Frames keep arriving; the incoming queues must not pile up.
        await asyncio.sleep(1.0)
        backlog = [receiver.track._queue.qsize() for receiver in offer_pc.getReceivers()]
        assert max(backlog) < 10

        await offerer.reset()
        await answerer.reset()

        assert offer_pc.connectionState == "closed"
        assert answer_pc.connectionState == "closed"
        assert offerer_transport.remote_media(handle) is None
        for machine, capture in ((offerer, offerer_capture), (answerer, answerer_capture)):
            assert machine.state is SignalingState.IDLE
            assert machine.role is Role.UNSET
            assert machine.remote_stream is None
            assert len(capture.released) == 1


@pytest.mark.asyncio
async def test_unreadable_offer_is_malformed() -> None:
    transport = AiortcTransport()
    machine = SignalingMachine(SyntheticCapture(), transport, ice_servers=[])

    async with machine:
        await machine.select_role(Role.ANSWERER)

        with pytest.raises(MalformedDescription):
            await machine.apply_remote_offer(json.dumps({"type": "offer", "sdp": UNREADABLE_SDP}))

        assert machine.state is SignalingState.IDLE
        assert machine.session is None
        assert machine.status == STATUS_BAD_OFFER
        assert machine.error == "MalformedDescription"
        assert transport._remote_media == {}


@pytest.mark.asyncio
async def test_transport_rejects_unreadable_sdp() -> None:
    transport = AiortcTransport()
    handle = transport.create_session([], lambda event: None)
    try:
        with pytest.raises(NegotiationRejected):
            await transport.set_remote_description(handle, SessionDescription(type="offer", sdp=UNREADABLE_SDP))
    finally:
        await transport.close(handle)

    assert handle.native.connectionState == "closed"
