"""Models for identities, groups and persisted messages."""
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    """Server clock used for every timestamp the relay assigns."""
    return datetime.now(timezone.utc)


class Role(str, Enum):
    """Role of an identity."""
    USER = "user"
    ADMIN = "admin"


class Identity(BaseModel):
    """An authenticated user or admin account, read once per connection."""
    id: str
    display_name: str
    role: Role = Role.USER
    verified: bool = False
    email: Optional[str] = None


class Group(BaseModel):
    """A chat group with its authoritative member list."""
    id: str
    name: str
    description: Optional[str] = None
    member_ids: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)

    def to_api(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "members": list(self.member_ids),
            "createdAt": self.created_at.isoformat(),
        }


class DirectTarget(BaseModel):
    """Message addressed to a single user."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["direct"] = "direct"
    user_id: str


class GroupTarget(BaseModel):
    """Message addressed to every member of a group."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["group"] = "group"
    group_id: str


MessageTarget = Annotated[Union[DirectTarget, GroupTarget], Field(discriminator="kind")]


class MessageRecord(BaseModel):
    """A persisted chat message. Never mutated after creation."""
    model_config = ConfigDict(frozen=True)

    id: str
    sender_id: str
    target: MessageTarget
    content: str
    created_at: datetime

    @property
    def receiver_id(self) -> Optional[str]:
        return self.target.user_id if isinstance(self.target, DirectTarget) else None

    @property
    def group_id(self) -> Optional[str]:
        return self.target.group_id if isinstance(self.target, GroupTarget) else None

    def to_api(self) -> dict:
        """Flat representation used by the history endpoints."""
        return {
            "id": self.id,
            "senderId": self.sender_id,
            "receiverId": self.receiver_id,
            "groupId": self.group_id,
            "content": self.content,
            "createdAt": self.created_at.isoformat(),
        }
