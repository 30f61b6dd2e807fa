"""Inbound relay frames: ``{"event": <name>, "data": {...}}``."""

from __future__ import annotations

from typing import Annotated, Literal, Union
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field, TypeAdapter


class _Data(BaseModel):
    consultation_id: UUID = Field(
        validation_alias=AliasChoices("consultation_id", "consultationId")
    )


class AuthenticateData(BaseModel):
    token: str


class SendMessageData(_Data):
    message: str = ""
    file_url: str | None = Field(default=None, validation_alias=AliasChoices("file_url", "fileUrl"))
    file_name: str | None = Field(
        default=None, validation_alias=AliasChoices("file_name", "fileName")
    )


class MarkReadData(BaseModel):
    message_id: UUID = Field(validation_alias=AliasChoices("message_id", "messageId"))


class AuthenticateFrame(BaseModel):
    event: Literal["authenticate"]
    data: AuthenticateData


class JoinFrame(BaseModel):
    event: Literal["join-consultation"]
    data: _Data


class LeaveFrame(BaseModel):
    event: Literal["leave-consultation"]
    data: _Data


class SendMessageFrame(BaseModel):
    event: Literal["send-message"]
    data: SendMessageData


class MarkReadFrame(BaseModel):
    event: Literal["mark-read"]
    data: MarkReadData


InboundFrame = Annotated[
    Union[AuthenticateFrame, JoinFrame, LeaveFrame, SendMessageFrame, MarkReadFrame],
    Field(discriminator="event"),
]

_frame_adapter: TypeAdapter[InboundFrame] = TypeAdapter(InboundFrame)


def parse_frame(raw: str | bytes) -> InboundFrame:
    """Raises pydantic.ValidationError for malformed JSON or unknown events."""
    return _frame_adapter.validate_json(raw)
