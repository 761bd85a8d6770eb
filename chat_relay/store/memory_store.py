import asyncio
import logging
from typing import Dict, List, Optional
from uuid import uuid4

from chat_relay.relay_models import (
    DirectTarget, Group, GroupTarget, Identity, MessageRecord, MessageTarget, Role, utc_now,
)
from .relay_store import RelayStore

logger = logging.getLogger(__name__)


class MemoryStore(RelayStore):
    """Store with in-memory tracking. Used for tests and local development."""

    def __init__(self):
        self._users: Dict[str, Identity] = {}
        self._groups: Dict[str, Group] = {}
        self._messages: List[MessageRecord] = []
        self._lock = asyncio.Lock()

    # ── Seeding helpers (not part of the relay contract) ──────────

    def add_user(
        self,
        user_id: str,
        display_name: str,
        *,
        verified: bool = True,
        role: Role = Role.USER,
        email: Optional[str] = None,
    ) -> Identity:
        identity = Identity(id=user_id, display_name=display_name, role=role, verified=verified, email=email)
        self._users[user_id] = identity
        return identity

    def add_group(self, group_id: str, name: str, member_ids: Optional[List[str]] = None) -> Group:
        group = Group(id=group_id, name=name, member_ids=list(member_ids or []))
        self._groups[group_id] = group
        return group

    def remove_user(self, user_id: str) -> None:
        self._users.pop(user_id, None)

    @property
    def messages(self) -> List[MessageRecord]:
        return list(self._messages)

    # ── RelayStore ────────────────────────────────────────────────

    async def get_user(self, user_id: str) -> Optional[Identity]:
        return self._users.get(user_id)

    async def get_group(self, group_id: str) -> Optional[Group]:
        group = self._groups.get(group_id)
        return group.model_copy(deep=True) if group else None

    async def is_user_in_group(self, user_id: str, group_id: str) -> bool:
        group = self._groups.get(group_id)
        return group is not None and user_id in group.member_ids

    async def get_group_members(self, group_id: str) -> List[Identity]:
        group = self._groups.get(group_id)
        if group is None:
            return []
        return [self._users[uid] for uid in group.member_ids if uid in self._users]

    async def add_user_to_group(self, group_id: str, user_id: str) -> bool:
        async with self._lock:
            group = self._groups.get(group_id)
            if group is None or user_id in group.member_ids:
                return False
            group.member_ids.append(user_id)
            logger.debug(f"Added {user_id} to group {group_id}, members: {len(group.member_ids)}")
            return True

    async def remove_user_from_group(self, user_id: str, group_id: str) -> bool:
        async with self._lock:
            group = self._groups.get(group_id)
            if group is None or user_id not in group.member_ids:
                return False
            group.member_ids.remove(user_id)
            logger.debug(f"Removed {user_id} from group {group_id}, members: {len(group.member_ids)}")
            return True

    async def create_message(self, sender_id: str, target: MessageTarget, content: str) -> MessageRecord:
        record = MessageRecord(
            id=uuid4().hex,
            sender_id=sender_id,
            target=target,
            content=content,
            created_at=utc_now(),
        )
        async with self._lock:
            self._messages.append(record)
        return record

    async def create_group(self, name: str, description: Optional[str] = None) -> Group:
        group = Group(id=uuid4().hex, name=name, description=description)
        self._groups[group.id] = group
        return group.model_copy(deep=True)

    async def list_groups(self) -> List[Group]:
        return sorted(
            (g.model_copy(deep=True) for g in self._groups.values()),
            key=lambda g: g.created_at,
        )

    async def get_user_groups(self, user_id: str) -> List[Group]:
        return [g.model_copy(deep=True) for g in self._groups.values() if user_id in g.member_ids]

    async def get_messages_between_users(self, user_id: str, other_id: str) -> List[MessageRecord]:
        pair = {user_id, other_id}
        return [
            m for m in self._messages
            if isinstance(m.target, DirectTarget) and {m.sender_id, m.target.user_id} == pair
        ]

    async def get_group_messages(self, group_id: str) -> List[MessageRecord]:
        return [
            m for m in self._messages
            if isinstance(m.target, GroupTarget) and m.target.group_id == group_id
        ]
