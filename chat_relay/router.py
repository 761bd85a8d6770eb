"""Message router: validates and dispatches chat and membership actions.

Every routing decision about a group re-queries the store; the per-connection
``joined_group_ids`` cache is only kept up to date, never trusted. Messages are
persisted before any delivery is attempted, and delivery is best effort.
"""

import logging
from typing import Awaitable, Optional, TypeVar

from chat_relay.errors import AuthorizationError, NotFoundError, PersistenceError, TransportError, ValidationError
from chat_relay.frames import (
    DirectMessageEvent, DirectMessageFrame, GroupMessageEvent, GroupMessageFrame, InboundFrame,
    JoinGroupFrame, LeaveGroupFrame, MembershipEvent,
)
from chat_relay.registry import Connection, ConnectionRegistry
from chat_relay.relay_models import DirectTarget, Group, GroupTarget, Identity, MessageRecord
from chat_relay.store import RelayStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


class MessageRouter:
    """Routes direct and group messages and membership changes."""

    def __init__(self, store: RelayStore, registry: ConnectionRegistry):
        self.store = store
        self.registry = registry

    async def dispatch(self, connection: Connection, frame: InboundFrame) -> None:
        """Run the action for one validated inbound frame."""
        if isinstance(frame, DirectMessageFrame):
            await self.direct_message(connection, frame.receiver_id, frame.content)
        elif isinstance(frame, GroupMessageFrame):
            await self.group_message(connection, frame.group_id, frame.content)
        elif isinstance(frame, JoinGroupFrame):
            await self.join_group(connection.identity, frame.group_id, connection)
        elif isinstance(frame, LeaveGroupFrame):
            await self.leave_group(connection.identity, frame.group_id, connection)
        else:
            raise ValidationError(f"Unknown message type: {getattr(frame, 'type', None)}")

    # ── Store access ──────────────────────────────────────────────

    async def _store_call(self, call: Awaitable[T], failure_message: str) -> T:
        try:
            return await call
        except PersistenceError as e:
            logger.error(f"[ROUTER] {failure_message}: {e.message}", exc_info=True)
            raise PersistenceError(failure_message) from e

    async def _require_group(self, group_id: str, failure_message: str) -> Group:
        group = await self._store_call(self.store.get_group(group_id), failure_message)
        if group is None:
            raise NotFoundError("Group not found")
        return group

    async def _echo(self, connection: Connection, payload: dict) -> None:
        try:
            await connection.send(payload)
        except TransportError as e:
            logger.debug(f"[ROUTER] Echo to sender dropped: {e.message}")

    # ── Messages ──────────────────────────────────────────────────

    async def direct_message(self, connection: Connection, receiver_id: str, content: str) -> MessageRecord:
        """Persist a direct message, deliver it to the receiver and echo it to the sender."""
        if _is_blank(receiver_id) or _is_blank(content):
            raise ValidationError("receiverId and content are required")
        sender = connection.identity
        failure = "Error sending direct message"

        record = await self._store_call(
            self.store.create_message(sender.id, DirectTarget(user_id=receiver_id), content), failure
        )
        event = DirectMessageEvent.from_record(record, sender.display_name).to_wire()

        delivered = 0
        if receiver_id != sender.id:
            delivered = await self.registry.broadcast([receiver_id], event)
        await self._echo(connection, event)

        logger.debug(f"[ROUTER] Direct message {record.id} from {sender.id} to {receiver_id} "
                     f"(delivered: {delivered})")
        return record

    async def group_message(self, connection: Connection, group_id: str, content: str) -> MessageRecord:
        """Persist a group message and fan it out to every current member, sender included."""
        if _is_blank(group_id) or _is_blank(content):
            raise ValidationError("groupId and content are required")
        sender = connection.identity
        failure = "Error sending group message"

        await self._require_group(group_id, failure)
        is_member = await self._store_call(self.store.is_user_in_group(sender.id, group_id), failure)
        if not is_member:
            connection.joined_group_ids.discard(group_id)
            raise AuthorizationError("You are not a member of this group")
        connection.joined_group_ids.add(group_id)

        record = await self._store_call(
            self.store.create_message(sender.id, GroupTarget(group_id=group_id), content), failure
        )
        members = await self._store_call(self.store.get_group_members(group_id), failure)
        event = GroupMessageEvent.from_record(record, sender.display_name).to_wire()
        delivered = await self.registry.broadcast([m.id for m in members], event)

        logger.debug(f"[ROUTER] Group message {record.id} from {sender.id} to group {group_id} "
                     f"(members: {len(members)}, delivered: {delivered})")
        return record

    # ── Membership ────────────────────────────────────────────────

    async def join_group(
        self,
        actor: Identity,
        group_id: str,
        connection: Optional[Connection] = None,
    ) -> MembershipEvent:
        """Add ``actor`` to a group and notify all members, the new one included.

        ``connection`` is the actor's socket when the join arrives over it; for
        joins from the REST API the actor's live connection, if any, is looked up.
        """
        if _is_blank(group_id):
            raise ValidationError("groupId is required")
        failure = "Error joining group"

        await self._require_group(group_id, failure)
        if await self._store_call(self.store.is_user_in_group(actor.id, group_id), failure):
            raise ValidationError("You are already a member of this group")
        added = await self._store_call(self.store.add_user_to_group(group_id, actor.id), failure)
        if not added:
            raise ValidationError("You are already a member of this group")

        connection = connection or await self.registry.lookup(actor.id)
        if connection is not None:
            connection.joined_group_ids.add(group_id)

        members = await self._store_call(self.store.get_group_members(group_id), failure)
        event = MembershipEvent(type="group-join", group_id=group_id, user_id=actor.id, user_name=actor.display_name)
        delivered = await self.registry.broadcast([m.id for m in members], event.to_wire())

        logger.debug(f"[ROUTER] {actor.id} joined group {group_id} (notified: {delivered})")
        return event

    async def leave_group(
        self,
        actor: Identity,
        group_id: str,
        connection: Optional[Connection] = None,
    ) -> MembershipEvent:
        """Remove ``actor`` from a group and notify the departing and remaining members."""
        if _is_blank(group_id):
            raise ValidationError("groupId is required")
        failure = "Error leaving group"

        await self._require_group(group_id, failure)
        if not await self._store_call(self.store.is_user_in_group(actor.id, group_id), failure):
            raise AuthorizationError("You are not a member of this group")

        members_before = await self._store_call(self.store.get_group_members(group_id), failure)
        removed = await self._store_call(self.store.remove_user_from_group(actor.id, group_id), failure)
        if not removed:
            raise AuthorizationError("You are not a member of this group")

        connection = connection or await self.registry.lookup(actor.id)
        if connection is not None:
            connection.joined_group_ids.discard(group_id)

        recipients = [m.id for m in members_before] + [actor.id]
        event = MembershipEvent(type="group-leave", group_id=group_id, user_id=actor.id, user_name=actor.display_name)
        delivered = await self.registry.broadcast(recipients, event.to_wire())

        logger.debug(f"[ROUTER] {actor.id} left group {group_id} (notified: {delivered})")
        return event
