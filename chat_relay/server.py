"""Server integration helpers.

Host apps build a ``RelayContext`` once and include the routers built from it:

- ``build_ws_router``: the WebSocket relay endpoint
- ``build_http_router``: group, membership and history routes sharing the relay's
  store, registry and router, so REST joins/leaves notify live sockets too
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel
from starlette.websockets import WebSocket

from chat_relay.auth import TokenVerifier
from chat_relay.config import RelayConfig
from chat_relay.errors import (
    AuthError, AuthorizationError, NotFoundError, PersistenceError, RelayError, ValidationError,
)
from chat_relay.frames import NonBlankStr
from chat_relay.registry import ConnectionRegistry
from chat_relay.relay_models import Identity
from chat_relay.router import MessageRouter
from chat_relay.session import RelaySession
from chat_relay.store import MemoryStore, RelayStore

logger = logging.getLogger(__name__)


_HTTP_STATUS = {
    ValidationError: 400,
    AuthError: 401,
    AuthorizationError: 403,
    NotFoundError: 404,
    PersistenceError: 500,
}


def _http_error(error: RelayError) -> HTTPException:
    return HTTPException(_HTTP_STATUS.get(type(error), 500), error.message)


class CreateGroupRequest(BaseModel):
    name: NonBlankStr
    description: Optional[str] = None


@dataclass
class RelayContext:
    """Everything one relay instance owns. Multiple contexts can coexist."""
    config: RelayConfig
    store: RelayStore
    registry: ConnectionRegistry
    router: MessageRouter
    verifier: TokenVerifier

    @classmethod
    def create(cls, config: Optional[RelayConfig] = None, store: Optional[RelayStore] = None) -> "RelayContext":
        config = config or RelayConfig()
        if store is None:
            if config.mongo_uri:
                from chat_relay.store.mongodb_store import MongoDBStore
                store = MongoDBStore(mongo_uri=config.mongo_uri, mongo_db=config.mongo_db)
            else:
                logger.warning("[SERVER] No MongoDB connection configured, using in-memory store")
                store = MemoryStore()
        registry = ConnectionRegistry(takeover_close_code=config.takeover_close_code)
        return cls(
            config=config,
            store=store,
            registry=registry,
            router=MessageRouter(store, registry),
            verifier=TokenVerifier.from_config(config),
        )

    def new_session(self, websocket: WebSocket) -> RelaySession:
        return RelaySession(
            websocket,
            store=self.store,
            registry=self.registry,
            router=self.router,
            verifier=self.verifier,
            config=self.config,
        )


def build_ws_router(context: RelayContext) -> APIRouter:
    """Build the APIRouter with the WebSocket relay endpoint."""
    router = APIRouter()

    @router.websocket(context.config.ws_path)
    async def websocket_relay(ws: WebSocket):
        logger.debug(f"[WS] Connection attempt from {ws.client}")
        await context.new_session(ws).run()

    return router


def build_http_router(context: RelayContext) -> APIRouter:
    """Build the APIRouter with group, membership and message history endpoints."""
    router = APIRouter(prefix=context.config.api_prefix)

    async def current_identity(authorization: Optional[str] = Header(default=None)) -> Identity:
        token = None
        if authorization and authorization.lower().startswith("bearer "):
            token = authorization[7:].strip()
        try:
            return await context.verifier.authenticate(token, context.store)
        except AuthError as e:
            raise _http_error(e)

    # ---- Groups ----

    @router.post("/groups", status_code=201)
    async def create_group(body: CreateGroupRequest, identity: Identity = Depends(current_identity)):
        try:
            group = await context.store.create_group(body.name, body.description)
        except PersistenceError as e:
            logger.error(f"[API] Error creating group: {e.message}", exc_info=True)
            raise _http_error(PersistenceError("Error creating group"))
        try:
            await context.router.join_group(identity, group.id)
            group = await context.store.get_group(group.id) or group
        except RelayError as e:
            raise _http_error(e)
        logger.info(f"[API] Group {group.id} created by {identity.id}")
        return {"success": True, "message": "Group created successfully", "group": group.to_api()}

    @router.get("/groups")
    async def list_groups(mine: bool = False, identity: Identity = Depends(current_identity)):
        try:
            if mine:
                groups = await context.store.get_user_groups(identity.id)
            else:
                groups = await context.store.list_groups()
        except RelayError as e:
            raise _http_error(e)
        return {"success": True, "groups": [g.to_api() for g in groups]}

    # ---- Membership ----

    @router.post("/groups/{group_id}/join")
    async def join_group(group_id: str, identity: Identity = Depends(current_identity)):
        try:
            event = await context.router.join_group(identity, group_id)
        except RelayError as e:
            raise _http_error(e)
        return {"success": True, "message": "Joined group successfully", "event": event.to_wire()}

    @router.post("/groups/{group_id}/leave")
    async def leave_group(group_id: str, identity: Identity = Depends(current_identity)):
        try:
            event = await context.router.leave_group(identity, group_id)
        except RelayError as e:
            raise _http_error(e)
        return {"success": True, "message": "Left group successfully", "event": event.to_wire()}

    @router.get("/groups/{group_id}/members")
    async def group_members(group_id: str, identity: Identity = Depends(current_identity)):
        try:
            group = await context.store.get_group(group_id)
            if group is None:
                raise NotFoundError("Group not found")
            members = await context.store.get_group_members(group_id)
        except RelayError as e:
            raise _http_error(e)
        online = context.registry.online_ids()
        return {
            "success": True,
            "members": [
                {"id": m.id, "name": m.display_name, "role": m.role.value, "online": m.id in online}
                for m in members
            ],
        }

    # ---- History ----

    @router.get("/messages/groups/{group_id}")
    async def group_history(group_id: str, identity: Identity = Depends(current_identity)):
        try:
            group = await context.store.get_group(group_id)
            if group is None:
                raise NotFoundError("Group not found")
            if not await context.store.is_user_in_group(identity.id, group_id):
                raise AuthorizationError("You are not a member of this group")
            messages = await context.store.get_group_messages(group_id)
        except RelayError as e:
            raise _http_error(e)
        return {"success": True, "messages": [m.to_api() for m in messages]}

    @router.get("/messages/{user_id}")
    async def direct_history(user_id: str, identity: Identity = Depends(current_identity)):
        try:
            if await context.store.get_user(user_id) is None:
                raise NotFoundError("User not found")
            messages = await context.store.get_messages_between_users(identity.id, user_id)
        except RelayError as e:
            raise _http_error(e)
        return {"success": True, "messages": [m.to_api() for m in messages]}

    return router
