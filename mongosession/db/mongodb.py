# mongosession/db/mongodb.py
from __future__ import annotations

import logging
from typing import Any, Callable

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import ConfigurationError, PyMongoError

from ..errors import BackendConnectionError

log = logging.getLogger(__name__)

ClientFactory = Callable[..., Any]


def create_client(
    uri: str,
    *,
    server_selection_timeout_ms: int,
    client_factory: ClientFactory = AsyncIOMotorClient,
) -> AsyncIOMotorClient:
    # Motor/pymongo handles mongodb+srv Atlas URIs and TLS automatically.
    # Construction only parses the URI; nothing is dialed until the first command.
    try:
        return client_factory(uri, serverSelectionTimeoutMS=server_selection_timeout_ms)
    except (ConfigurationError, ValueError, TypeError) as exc:
        raise BackendConnectionError(f"invalid MongoDB target {uri!r}: {exc}") from exc


def default_database(client: AsyncIOMotorClient, fallback: str) -> AsyncIOMotorDatabase:
    """Database named in the URI path, else ``fallback``."""
    return client.get_default_database(default=fallback)


async def ping(client: AsyncIOMotorClient) -> None:
    try:
        await client.admin.command("ping")
    except PyMongoError as exc:
        raise BackendConnectionError(f"MongoDB unreachable: {exc}") from exc
    log.debug("mongo ping ok")
