"""Tests covering the signaling blob format."""

from __future__ import annotations

import json

import pytest

from conftest import OFFER_SDP
from lanlink.errors import MalformedDescription
from lanlink.rtc.description import SessionDescription


def test_blob_matches_browser_shape() -> None:
    description = SessionDescription(type="offer", sdp=OFFER_SDP)

    payload = json.loads(description.to_blob())

    assert payload == {"type": "offer", "sdp": OFFER_SDP}


def test_from_blob_tolerates_whitespace_and_extra_keys() -> None:
    text = "\n  " + json.dumps({"type": "Answer", "sdp": OFFER_SDP, "extra": 1}) + "  \n"

    description = SessionDescription.from_blob(text, expected="answer")

    assert description.type == "answer"
    assert description.sdp == OFFER_SDP


@pytest.mark.parametrize(
    "blob",
    [
        "",
        "   ",
        "not a real description",
        "[1, 2, 3]",
        json.dumps({"sdp": OFFER_SDP}),
        json.dumps({"type": "rollback", "sdp": OFFER_SDP}),
        json.dumps({"type": "offer", "sdp": "o=- 1 1 IN IP4 0.0.0.0"}),
        json.dumps({"type": "offer"}),
        json.dumps({"type": "offer", "sdp": "v=0\r\nm=audio\r\n"}),
        json.dumps({"type": "offer", "sdp": "v=0\r\na=setup:sideways\r\n"}),
    ],
)
def test_from_blob_rejects_malformed_input(blob: str) -> None:
    with pytest.raises(MalformedDescription):
        SessionDescription.from_blob(blob)


def test_from_blob_rejects_wrong_slot() -> None:
    blob = SessionDescription(type="offer", sdp=OFFER_SDP).to_blob()

    with pytest.raises(MalformedDescription, match="Expected an answer"):
        SessionDescription.from_blob(blob, expected="answer")
