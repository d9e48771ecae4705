"""
Signaling blob format.

A blob is the JSON form of a session description, ``{"type": ..., "sdp": ...}``,
exactly what a browser produces for ``JSON.stringify(pc.localDescription)``.
It is moved between the two instances by hand, so parsing is strict about
shape and lenient about surrounding whitespace.
"""

from __future__ import annotations

import json
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from ..errors import MalformedDescription

DescriptionType = Literal["offer", "answer"]


def _check_sdp(sdp: str) -> None:
    from aiortc import sdp as aiortc_sdp

    # The parser signals bad input with asserts as well as lookup errors.
    try:
        aiortc_sdp.SessionDescription.parse(sdp)
    except Exception as exc:
        raise MalformedDescription(f"Description carries unreadable SDP: {exc!r}") from exc


class SessionDescription(BaseModel):
    """Opaque negotiation payload plus its offer/answer tag."""

    type: DescriptionType
    sdp: str

    model_config = ConfigDict(frozen=True, extra="ignore")

    @field_validator("type", mode="before")
    @classmethod
    def _normalise_type(cls, value: object) -> str:
        return str(value or "").strip().lower()

    @field_validator("sdp")
    @classmethod
    def _validate_sdp(cls, value: str) -> str:
        # SDP always opens with the protocol version line.
        if not value.lstrip().startswith("v="):
            raise ValueError("sdp must start with a 'v=' line")
        return value

    def to_blob(self) -> str:
        return json.dumps({"type": self.type, "sdp": self.sdp})

    @classmethod
    def from_blob(cls, blob: str, *, expected: Optional[DescriptionType] = None) -> "SessionDescription":
        """
        Parse a pasted blob.

        Raises :class:`MalformedDescription` when the text is not JSON, does
        not describe an offer/answer, carries the wrong tag for the slot it
        was pasted into, or holds SDP the transport cannot read.
        """

        text = (blob or "").strip()
        if not text:
            raise MalformedDescription("Description is empty")
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise MalformedDescription(f"Description is not valid JSON: {exc.msg}") from exc
        if not isinstance(payload, dict):
            raise MalformedDescription("Description must be a JSON object")
        try:
            description = cls.model_validate(payload)
        except ValidationError as exc:
            raise MalformedDescription(f"Description is invalid: {exc.errors()[0]['msg']}") from exc
        if expected is not None and description.type != expected:
            raise MalformedDescription(f"Expected an {expected} but got an {description.type}")
        _check_sdp(description.sdp)
        return description


__all__ = ["DescriptionType", "SessionDescription"]
