"""WebSocket frame schemas.

Inbound frames form a closed union discriminated by ``type``; every frame is
validated against its schema before any field is read. Outbound frames are
built from models and serialized with camelCase keys.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Annotated, ClassVar, Literal, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from chat_relay.errors import ValidationError
from chat_relay.relay_models import MessageRecord, utc_now


class FrameType(str, Enum):
    """Wire values of the ``type`` discriminator."""
    DIRECT_MESSAGE = "direct-message"
    GROUP_MESSAGE = "group-message"
    JOIN_GROUP = "join-group"
    LEAVE_GROUP = "leave-group"
    GROUP_JOIN = "group-join"
    GROUP_LEAVE = "group-leave"
    ERROR = "error"


# ── Inbound ─────────────────────────────────────────────────────────


class _InboundFrame(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        frozen=True,
    )

    required_message: ClassVar[str] = "Invalid message"


def _not_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("must not be blank")
    return value


NonBlankStr = Annotated[str, AfterValidator(_not_blank)]


class DirectMessageFrame(_InboundFrame):
    type: Literal["direct-message"] = "direct-message"
    receiver_id: NonBlankStr
    content: NonBlankStr

    required_message: ClassVar[str] = "receiverId and content are required"


class GroupMessageFrame(_InboundFrame):
    type: Literal["group-message"] = "group-message"
    group_id: NonBlankStr
    content: NonBlankStr

    required_message: ClassVar[str] = "groupId and content are required"


class JoinGroupFrame(_InboundFrame):
    type: Literal["join-group"] = "join-group"
    group_id: NonBlankStr

    required_message: ClassVar[str] = "groupId is required"


class LeaveGroupFrame(_InboundFrame):
    type: Literal["leave-group"] = "leave-group"
    group_id: NonBlankStr

    required_message: ClassVar[str] = "groupId is required"


InboundFrame = Annotated[
    Union[DirectMessageFrame, GroupMessageFrame, JoinGroupFrame, LeaveGroupFrame],
    Field(discriminator="type"),
]

INBOUND_FRAME_TYPES: dict[str, type[_InboundFrame]] = {
    FrameType.DIRECT_MESSAGE.value: DirectMessageFrame,
    FrameType.GROUP_MESSAGE.value: GroupMessageFrame,
    FrameType.JOIN_GROUP.value: JoinGroupFrame,
    FrameType.LEAVE_GROUP.value: LeaveGroupFrame,
}


def parse_frame(raw: Union[str, bytes]) -> InboundFrame:
    """Parse and validate one inbound frame.

    :raises ValidationError: for invalid JSON, a missing or unknown ``type``,
        or missing/empty required fields.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Invalid JSON")
    if not isinstance(data, dict):
        raise ValidationError("Message must be a JSON object")

    msg_type = data.get("type")
    if not isinstance(msg_type, str) or not msg_type:
        raise ValidationError("Message type is required")
    model = INBOUND_FRAME_TYPES.get(msg_type)
    if model is None:
        raise ValidationError(f"Unknown message type: {msg_type}")

    try:
        return model.model_validate(data)
    except PydanticValidationError:
        raise ValidationError(model.required_message)


# ── Outbound ────────────────────────────────────────────────────────


class _OutboundFrame(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        """JSON-ready dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class DirectMessageEvent(_OutboundFrame):
    type: Literal["direct-message"] = "direct-message"
    message_id: str
    sender_id: str
    sender_name: str
    content: str
    timestamp: datetime

    @classmethod
    def from_record(cls, record: MessageRecord, sender_name: str) -> "DirectMessageEvent":
        return cls(
            message_id=record.id,
            sender_id=record.sender_id,
            sender_name=sender_name,
            content=record.content,
            timestamp=record.created_at,
        )


class GroupMessageEvent(_OutboundFrame):
    type: Literal["group-message"] = "group-message"
    message_id: str
    group_id: str
    sender_id: str
    sender_name: str
    content: str
    timestamp: datetime

    @classmethod
    def from_record(cls, record: MessageRecord, sender_name: str) -> "GroupMessageEvent":
        return cls(
            message_id=record.id,
            group_id=record.group_id,
            sender_id=record.sender_id,
            sender_name=sender_name,
            content=record.content,
            timestamp=record.created_at,
        )


class MembershipEvent(_OutboundFrame):
    """``group-join`` / ``group-leave`` notification."""
    type: Literal["group-join", "group-leave"]
    group_id: str
    user_id: str
    user_name: str
    timestamp: datetime = Field(default_factory=utc_now)


class ErrorFrame(_OutboundFrame):
    type: Literal["error"] = "error"
    message: str
