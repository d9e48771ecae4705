"""
Pydantic schemas mirroring the REST/WS contract.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class RoleRequest(BaseModel):
    role: str

    @field_validator("role", mode="before")
    @classmethod
    def _normalise_role(cls, value: object) -> str:
        result = str(value or "").strip().lower()
        if not result:
            raise ValueError("role is required")
        return result


class PendingTextRequest(BaseModel):
    text: str = Field(default="", validation_alias=AliasChoices("text", "value", "blob"))


class BlobRequest(BaseModel):
    """A pasted description; omit ``blob`` to use the pending slot."""

    blob: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("blob", "description", "sdp"),
    )

    model_config = ConfigDict(populate_by_name=True)


class StreamModel(BaseModel):
    id: str
    kinds: List[str] = Field(default_factory=list)


class SessionSnapshotModel(BaseModel):
    attempt: int = 0
    role: str = "unset"
    roleLabel: str = ""
    state: str = "idle"
    status: str = ""
    error: Optional[str] = None
    offer: str = ""
    answer: str = ""
    pendingOffer: str = ""
    pendingAnswer: str = ""
    localStream: Optional[StreamModel] = None
    remoteStream: Optional[StreamModel] = None
    connected: bool = False
    closed: bool = False


class IceServerModel(BaseModel):
    urls: List[str]
    username: Optional[str] = None
    credential: Optional[str] = None


class ConfigModel(BaseModel):
    profile: str
    iceServers: List[IceServerModel] = Field(default_factory=list)
