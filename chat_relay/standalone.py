"""Standalone relay server. Runs chat-relay without a host app.

Usage::

    poetry run chat-relay

    # Custom port / MongoDB:
    PORT=9000 MONGODB_CONNECTION=mongodb://localhost:27017 poetry run chat-relay

Environment variables:
    PORT: Server port (default: 8000)
    JWT_SECRET: Secret for bearer credentials (must match the REST login)
    JWT_ALGORITHM: Signature algorithm (default: HS256)
    WS_PATH: WebSocket path (default: /ws)
    WS_TOKEN_PARAM: Query parameter carrying the credential (default: token)
    API_PREFIX: Prefix of the membership/history routes (default: /api/v1)
    MONGODB_CONNECTION: MongoDB URI; without it an in-memory store is used
    MONGODB_DB: MongoDB database (default: chat_relay)

Loads .env from the current working directory or any parent directory.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from chat_relay.config import RelayConfig
from chat_relay.store import RelayStore

logger = logging.getLogger(__name__)


def create_app(config: Optional[RelayConfig] = None, store: Optional[RelayStore] = None):
    """Create the FastAPI application.

    Called without arguments by uvicorn (``factory=True``); the config is then
    read from the environment after .env has been loaded.
    """
    from dotenv import load_dotenv, find_dotenv
    load_dotenv(find_dotenv(usecwd=True))

    from fastapi import FastAPI

    from chat_relay.server import RelayContext, build_http_router, build_ws_router

    context = RelayContext.create(config or RelayConfig.from_env(), store)

    @asynccontextmanager
    async def lifespan(_a):
        ensure_indexes = getattr(context.store, "ensure_indexes", None)
        if ensure_indexes is not None:
            await ensure_indexes()
        yield
        await context.store.close()

    _app = FastAPI(title="chat-relay", docs_url=None, redoc_url=None, lifespan=lifespan)
    _app.state.relay = context
    _app.include_router(build_ws_router(context))
    _app.include_router(build_http_router(context))

    @_app.get("/health")
    async def health():
        return {"status": "ok", "online": context.registry.active_count}

    return _app


def main():
    """Load .env and start the server."""
    from dotenv import load_dotenv, find_dotenv
    load_dotenv(find_dotenv(usecwd=True))

    import uvicorn

    config = RelayConfig.from_env()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    print(f"\n  chat-relay → ws://localhost:{config.port}{config.ws_path}\n")
    uvicorn.run(
        "chat_relay.standalone:create_app",
        factory=True,
        host="0.0.0.0",
        port=config.port,
    )


if __name__ == "__main__":
    main()
