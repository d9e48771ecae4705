"""Tests covering media streams and the aiortc-backed collaborators."""

from __future__ import annotations

import pytest

from conftest import FakeTrack
from lanlink.config import CaptureSettings
from lanlink.errors import DeviceUnavailable
from lanlink.rtc.events import Connectivity
from lanlink.rtc.media import MediaPlayerCapture, MediaStream
from lanlink.rtc.transport import _parse_connectivity


def test_stream_stops_every_track() -> None:
    audio, video = FakeTrack("audio"), FakeTrack("video")
    stream = MediaStream(tracks=[audio])
    stream.add_track(video)
    stream.add_track(video)

    stream.stop()

    assert stream.kinds() == ["audio", "video"]
    assert (audio.stopped, video.stopped) == (1, 1)
    assert stream.to_dict()["kinds"] == ["audio", "video"]


@pytest.mark.parametrize("value", [state.value for state in Connectivity])
def test_parse_connectivity_known_states(value: str) -> None:
    assert _parse_connectivity(value) is Connectivity(value)


def test_parse_connectivity_unknown_state() -> None:
    assert _parse_connectivity("checking") is None


@pytest.mark.asyncio
async def test_missing_capture_device_is_unavailable(tmp_path) -> None:
    pytest.importorskip("aiortc")
    settings = CaptureSettings(device=str(tmp_path / "no-such-camera"), format=None, options={})
    capture = MediaPlayerCapture(settings)

    with pytest.raises(DeviceUnavailable):
        await capture.acquire()


class _TracklessPlayer:
    def __init__(self, audio: FakeTrack) -> None:
        self.video = None
        self.audio = audio


@pytest.mark.asyncio
async def test_capture_without_usable_tracks_stops_player(monkeypatch) -> None:
    audio = FakeTrack("audio")
    capture = MediaPlayerCapture(CaptureSettings(audio=False))
    monkeypatch.setattr(capture, "_open_player", lambda: _TracklessPlayer(audio))

    with pytest.raises(DeviceUnavailable):
        await capture.acquire()

    assert audio.stopped == 1
