import logging
from typing import Any, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING
from pymongo.errors import PyMongoError

from chat_relay.errors import PersistenceError
from chat_relay.relay_models import (
    DirectTarget, Group, GroupTarget, Identity, MessageRecord, MessageTarget, Role, utc_now,
)
from .relay_store import RelayStore

logger = logging.getLogger(__name__)


def _object_id(value: str) -> Any:
    """Document ids are ObjectIds when they look like one, plain strings otherwise."""
    return ObjectId(value) if ObjectId.is_valid(value) else value


class MongoDBStore(RelayStore):
    """Store backed by MongoDB collections ``users``, ``groups`` and ``messages``.

    Group membership lives in the ``members`` array of the group document and is
    changed with atomic ``$addToSet`` / ``$pull`` updates, so concurrent joins from
    the socket and the REST API cannot produce duplicates. User and group
    references (``members``, ``senderId``, ``receiverId``, ``groupId``) are stored
    as ObjectIds whenever the id is a valid one.
    """

    def __init__(
        self,
        *,
        mongo_uri: str,
        mongo_db: str,
        users_collection: str = "users",
        groups_collection: str = "groups",
        messages_collection: str = "messages",
    ):
        if not mongo_uri or not mongo_db:
            raise ValueError("MongoDB URI and database are required")
        self.mongo_uri = mongo_uri
        self.mongo_db = mongo_db
        self._client = AsyncIOMotorClient(mongo_uri, tz_aware=True)
        db = self._client[mongo_db]
        self._users = db[users_collection]
        self._groups = db[groups_collection]
        self._messages = db[messages_collection]

    async def ensure_indexes(self) -> None:
        """Create the indexes used by membership and history queries."""
        try:
            await self._groups.create_index([("members", ASCENDING)])
            await self._messages.create_index([("groupId", ASCENDING), ("createdAt", ASCENDING)])
            await self._messages.create_index([("senderId", ASCENDING), ("receiverId", ASCENDING)])
        except PyMongoError as e:
            raise PersistenceError(f"Failed to create indexes: {e}")

    async def close(self) -> None:
        self._client.close()

    # ── Document mapping ──────────────────────────────────────────

    @staticmethod
    def _to_identity(doc: dict) -> Identity:
        role = doc.get("role", Role.USER.value)
        return Identity(
            id=str(doc["_id"]),
            display_name=doc.get("name") or "Unknown",
            role=Role(role) if role in Role._value2member_map_ else Role.USER,
            verified=bool(doc.get("isVerified", False)),
            email=doc.get("email"),
        )

    @staticmethod
    def _to_group(doc: dict) -> Group:
        return Group(
            id=str(doc["_id"]),
            name=doc.get("name", ""),
            description=doc.get("description"),
            member_ids=[str(m) for m in doc.get("members", [])],
            created_at=doc.get("createdAt") or utc_now(),
        )

    @staticmethod
    def _to_message(doc: dict) -> MessageRecord:
        if doc.get("groupId") is not None:
            target = GroupTarget(group_id=str(doc["groupId"]))
        else:
            target = DirectTarget(user_id=str(doc["receiverId"]))
        return MessageRecord(
            id=str(doc["_id"]),
            sender_id=str(doc["senderId"]),
            target=target,
            content=doc["content"],
            created_at=doc["createdAt"],
        )

    # ── RelayStore ────────────────────────────────────────────────

    async def get_user(self, user_id: str) -> Optional[Identity]:
        try:
            doc = await self._users.find_one({"_id": _object_id(user_id)}, {"password": 0})
        except PyMongoError as e:
            raise PersistenceError(f"Failed to get user from MongoDB: {e}")
        return self._to_identity(doc) if doc else None

    async def get_group(self, group_id: str) -> Optional[Group]:
        try:
            doc = await self._groups.find_one({"_id": _object_id(group_id)})
        except PyMongoError as e:
            raise PersistenceError(f"Failed to get group from MongoDB: {e}")
        return self._to_group(doc) if doc else None

    async def is_user_in_group(self, user_id: str, group_id: str) -> bool:
        try:
            count = await self._groups.count_documents(
                {"_id": _object_id(group_id), "members": _object_id(user_id)}, limit=1
            )
        except PyMongoError as e:
            raise PersistenceError(f"Failed to check group membership in MongoDB: {e}")
        return count > 0

    async def get_group_members(self, group_id: str) -> List[Identity]:
        group = await self.get_group(group_id)
        if group is None or not group.member_ids:
            return []
        try:
            cursor = self._users.find(
                {"_id": {"$in": [_object_id(uid) for uid in group.member_ids]}},
                {"password": 0},
            )
            docs = await cursor.to_list(length=None)
        except PyMongoError as e:
            raise PersistenceError(f"Failed to get group members from MongoDB: {e}")
        return [self._to_identity(doc) for doc in docs]

    async def add_user_to_group(self, group_id: str, user_id: str) -> bool:
        try:
            result = await self._groups.update_one(
                {"_id": _object_id(group_id)},
                {"$addToSet": {"members": _object_id(user_id)}},
            )
        except PyMongoError as e:
            raise PersistenceError(f"Failed to add user to group in MongoDB: {e}")
        logger.debug(f"addToSet {user_id} -> group {group_id}: modified={result.modified_count}")
        return result.modified_count > 0

    async def remove_user_from_group(self, user_id: str, group_id: str) -> bool:
        try:
            result = await self._groups.update_one(
                {"_id": _object_id(group_id)},
                {"$pull": {"members": _object_id(user_id)}},
            )
        except PyMongoError as e:
            raise PersistenceError(f"Failed to remove user from group in MongoDB: {e}")
        logger.debug(f"pull {user_id} <- group {group_id}: modified={result.modified_count}")
        return result.modified_count > 0

    async def create_message(self, sender_id: str, target: MessageTarget, content: str) -> MessageRecord:
        doc = {
            "senderId": _object_id(sender_id),
            "receiverId": _object_id(target.user_id) if isinstance(target, DirectTarget) else None,
            "groupId": _object_id(target.group_id) if isinstance(target, GroupTarget) else None,
            "content": content,
            "createdAt": utc_now(),
        }
        try:
            result = await self._messages.insert_one(doc)
        except PyMongoError as e:
            raise PersistenceError(f"Failed to create message in MongoDB: {e}")
        doc["_id"] = result.inserted_id
        return self._to_message(doc)

    async def create_group(self, name: str, description: Optional[str] = None) -> Group:
        doc = {"name": name, "description": description, "members": [], "createdAt": utc_now()}
        try:
            result = await self._groups.insert_one(doc)
        except PyMongoError as e:
            raise PersistenceError(f"Failed to create group in MongoDB: {e}")
        doc["_id"] = result.inserted_id
        return self._to_group(doc)

    async def list_groups(self) -> List[Group]:
        try:
            docs = await self._groups.find().sort("createdAt", ASCENDING).to_list(length=None)
        except PyMongoError as e:
            raise PersistenceError(f"Failed to list groups from MongoDB: {e}")
        return [self._to_group(doc) for doc in docs]

    async def get_user_groups(self, user_id: str) -> List[Group]:
        try:
            docs = await self._groups.find({"members": _object_id(user_id)}).to_list(length=None)
        except PyMongoError as e:
            raise PersistenceError(f"Failed to get user groups from MongoDB: {e}")
        return [self._to_group(doc) for doc in docs]

    async def get_messages_between_users(self, user_id: str, other_id: str) -> List[MessageRecord]:
        sender, receiver = _object_id(user_id), _object_id(other_id)
        query = {
            "groupId": None,
            "$or": [
                {"senderId": sender, "receiverId": receiver},
                {"senderId": receiver, "receiverId": sender},
            ],
        }
        try:
            docs = await self._messages.find(query).sort("createdAt", ASCENDING).to_list(length=None)
        except PyMongoError as e:
            raise PersistenceError(f"Failed to get direct messages from MongoDB: {e}")
        return [self._to_message(doc) for doc in docs]

    async def get_group_messages(self, group_id: str) -> List[MessageRecord]:
        try:
            docs = await (
                self._messages.find({"groupId": _object_id(group_id)})
                .sort("createdAt", ASCENDING)
                .to_list(length=None)
            )
        except PyMongoError as e:
            raise PersistenceError(f"Failed to get group messages from MongoDB: {e}")
        return [self._to_message(doc) for doc in docs]
