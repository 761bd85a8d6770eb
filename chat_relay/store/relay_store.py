from abc import ABC, abstractmethod
from typing import List, Optional

from chat_relay.relay_models import Group, Identity, MessageRecord, MessageTarget


class RelayStore(ABC):
    """Identity, membership and message persistence consumed by the relay.

    Implementations raise ``PersistenceError`` when the backing store fails.
    Lookups of unknown ids return ``None`` / ``False`` rather than raising.
    """

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[Identity]:
        """Return the identity for ``user_id`` or None."""
        raise NotImplementedError("Subclasses must implement get_user")

    @abstractmethod
    async def get_group(self, group_id: str) -> Optional[Group]:
        """Return the group for ``group_id`` or None."""
        raise NotImplementedError("Subclasses must implement get_group")

    @abstractmethod
    async def is_user_in_group(self, user_id: str, group_id: str) -> bool:
        """Authoritative membership check. False for unknown groups."""
        raise NotImplementedError("Subclasses must implement is_user_in_group")

    @abstractmethod
    async def get_group_members(self, group_id: str) -> List[Identity]:
        """Current members of a group. Empty for unknown groups."""
        raise NotImplementedError("Subclasses must implement get_group_members")

    @abstractmethod
    async def add_user_to_group(self, group_id: str, user_id: str) -> bool:
        """Add a member. Returns False if the user already was one."""
        raise NotImplementedError("Subclasses must implement add_user_to_group")

    @abstractmethod
    async def remove_user_from_group(self, user_id: str, group_id: str) -> bool:
        """Remove a member. Returns False if the user was not one."""
        raise NotImplementedError("Subclasses must implement remove_user_from_group")

    @abstractmethod
    async def create_message(self, sender_id: str, target: MessageTarget, content: str) -> MessageRecord:
        """Persist a message and return it with its id and server timestamp."""
        raise NotImplementedError("Subclasses must implement create_message")

    @abstractmethod
    async def create_group(self, name: str, description: Optional[str] = None) -> Group:
        """Create an empty group."""
        raise NotImplementedError("Subclasses must implement create_group")

    @abstractmethod
    async def list_groups(self) -> List[Group]:
        """All groups, oldest first."""
        raise NotImplementedError("Subclasses must implement list_groups")

    @abstractmethod
    async def get_user_groups(self, user_id: str) -> List[Group]:
        """Groups the user is a member of."""
        raise NotImplementedError("Subclasses must implement get_user_groups")

    @abstractmethod
    async def get_messages_between_users(self, user_id: str, other_id: str) -> List[MessageRecord]:
        """Direct messages exchanged between two users, oldest first."""
        raise NotImplementedError("Subclasses must implement get_messages_between_users")

    @abstractmethod
    async def get_group_messages(self, group_id: str) -> List[MessageRecord]:
        """Messages posted to a group, oldest first."""
        raise NotImplementedError("Subclasses must implement get_group_messages")

    async def close(self) -> None:
        """Release backend resources. The default implementation does nothing."""
        pass
