from typing import Any, ClassVar, Dict, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, ValidationError, field_validator, model_validator

import event_names


class EventPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    # single-argument events may send the bare value instead of an object
    bare_field: ClassVar[Optional[str]] = None

    @model_validator(mode="before")
    @classmethod
    def wrap_bare_value(cls, value: Any):
        if isinstance(value, dict):
            return value
        if value is None or cls.bare_field is None:
            return {}
        return {cls.bare_field: value}


class EmptyPayload(EventPayload):
    """For request-stream and leave-room, which carry nothing."""


class IdentifyPayload(EventPayload):
    bare_field: ClassVar[Optional[str]] = "durableId"

    durableId: StrictStr = Field(min_length=1)
    name: Optional[StrictStr] = None


class RoomPayload(EventPayload):
    bare_field: ClassVar[Optional[str]] = "roomId"

    roomId: StrictStr = Field(min_length=1)


class ViewerPayload(EventPayload):
    bare_field: ClassVar[Optional[str]] = "viewerId"

    viewerId: StrictStr = Field(min_length=1)


class StreamResponsePayload(EventPayload):
    viewerId: StrictStr = Field(min_length=1)
    accepted: StrictBool


class SignalPayload(EventPayload):
    target: StrictStr = Field(min_length=1)


class SessionDescriptionPayload(SignalPayload):
    sdp: Any

    @field_validator("sdp")
    @classmethod
    def require_sdp(cls, value: Any):
        if value is None or value == "":
            raise ValueError("sdp is required")
        return value


class CandidatePayload(SignalPayload):
    candidate: Any

    @field_validator("candidate")
    @classmethod
    def require_candidate(cls, value: Any):
        if value is None or value == "":
            raise ValueError("candidate is required")
        return value


class ChatMessagePayload(EventPayload):
    roomId: StrictStr = Field(min_length=1)
    message: StrictStr = Field(min_length=1)


class ReactionPayload(EventPayload):
    roomId: StrictStr = Field(min_length=1)
    type: StrictStr = Field(min_length=1)


EVENT_SCHEMAS: Dict[str, Type[EventPayload]] = {
    event_names.IDENTIFY: IdentifyPayload,
    event_names.CREATE_ROOM: RoomPayload,
    event_names.JOIN_ROOM: RoomPayload,
    event_names.HOST_STREAMING: RoomPayload,
    event_names.STOP_STREAMING: RoomPayload,
    event_names.REQUEST_STREAM: EmptyPayload,
    event_names.RESPOND_STREAM_REQUEST: StreamResponsePayload,
    event_names.VIEWER_STREAMING: RoomPayload,
    event_names.STOP_VIEWER_STREAM: ViewerPayload,
    event_names.OFFER: SessionDescriptionPayload,
    event_names.ANSWER: SessionDescriptionPayload,
    event_names.ICE_CANDIDATE: CandidatePayload,
    event_names.CHAT_MESSAGE: ChatMessagePayload,
    event_names.REACTION: ReactionPayload,
    event_names.LEAVE_ROOM: EmptyPayload,
}

# Rejection sent back when a payload fails validation; events not listed are dropped.
VALIDATION_REJECTIONS: Dict[str, str] = {
    event_names.IDENTIFY: event_names.INVALID_IDENTIFY,
    event_names.CREATE_ROOM: event_names.INVALID_ROOM,
    event_names.JOIN_ROOM: event_names.INVALID_ROOM,
    event_names.HOST_STREAMING: event_names.INVALID_ROOM,
    event_names.STOP_STREAMING: event_names.INVALID_ROOM,
    event_names.VIEWER_STREAMING: event_names.INVALID_ROOM,
}


class UnknownEvent(ValueError):
    pass


def parse_event(event: str, data: Any) -> EventPayload:
    """Validate an inbound payload; raises UnknownEvent or ValidationError."""
    schema = EVENT_SCHEMAS.get(event)
    if schema is None:
        raise UnknownEvent(event)
    return schema.model_validate(data)


__all__ = ["EVENT_SCHEMAS", "VALIDATION_REJECTIONS", "UnknownEvent", "ValidationError", "parse_event"]
