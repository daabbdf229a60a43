from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Tuple, TypeVar

from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorClientSession,
    AsyncIOMotorCollection,
    AsyncIOMotorDatabase,
)
from pydantic import ValidationError
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from . import codec
from .db.mongodb import ClientFactory, create_client, default_database, ping
from .errors import BackendConnectionError, BackendError, DecodeError, SessionError
from .models import ErrorPolicy, SessionDoc
from .settings import settings
from .store import SessionStore

log = logging.getLogger(__name__)

T = TypeVar("T")
Op = Callable[[AsyncIOMotorCollection, AsyncIOMotorClientSession], Awaitable[T]]


class SessionProvider:
    """
    MongoDB session provider.

    One provider owns one Motor client (and its connection pool). Each
    operation leases a driver session for its own duration only, so concurrent
    requests never serialize on a shared handle.
    """

    def __init__(
        self,
        *,
        collection: Optional[str] = None,
        default_db: Optional[str] = None,
        error_policy: Optional[ErrorPolicy | str] = None,
        server_selection_timeout_ms: Optional[int] = None,
        client_factory: ClientFactory = AsyncIOMotorClient,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.collection_name = collection or settings.COLLECTION
        self.default_db = default_db or settings.MONGO_DB
        self.error_policy = ErrorPolicy(error_policy or settings.ERROR_POLICY)
        self.server_selection_timeout_ms = (
            server_selection_timeout_ms or settings.SERVER_SELECTION_TIMEOUT_MS
        )
        self.max_lifetime = 0
        self.target: Optional[str] = None

        self._client_factory = client_factory
        self._clock = clock
        self._client: Optional[AsyncIOMotorClient] = None
        self._db: Optional[AsyncIOMotorDatabase] = None

    @property
    def connected(self) -> bool:
        return self._client is not None

    # ----------------- lifecycle -----------------

    async def init(self, max_lifetime: int, target: str, *, timeout: Optional[float] = None) -> None:
        """
        Bind to ``target`` (a MongoDB URI) unless a client already exists.

        Re-initialising a live provider only updates max_lifetime and target.
        """
        self.max_lifetime = int(max_lifetime)
        self.target = target
        if self._client is not None:
            return

        client = create_client(
            target,
            server_selection_timeout_ms=self.server_selection_timeout_ms,
            client_factory=self._client_factory,
        )
        try:
            await asyncio.wait_for(ping(client), timeout)
            self._client = client
            self._db = default_database(client, self.default_db)
            await self.ensure_indexes(timeout=timeout)
        except asyncio.TimeoutError as exc:
            self._reset(client)
            raise BackendConnectionError(f"MongoDB not reachable within {timeout}s") from exc
        except BaseException:
            self._reset(client)
            raise

        log.info(
            "session provider ready db=%s collection=%s max_lifetime=%s policy=%s",
            self._db.name,
            self.collection_name,
            self.max_lifetime,
            self.error_policy.value,
        )

    async def ensure_indexes(self, *, timeout: Optional[float] = None) -> None:
        async def op(col, s):
            await col.create_index([("session_key", ASCENDING)], unique=True, session=s)

        await self._call("ensure_indexes", op, timeout)

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
        self._client = None
        self._db = None

    def _reset(self, client: AsyncIOMotorClient) -> None:
        client.close()
        self._client = None
        self._db = None

    # ----------------- session operations -----------------

    async def read(self, sid: str, *, timeout: Optional[float] = None) -> SessionStore:
        """
        Find the record for ``sid``, creating it if absent, in one atomic upsert.

        An existing record keeps its expiry; only creation sets it.
        """
        update = {
            "$setOnInsert": {
                "session_data": None,
                "session_expire": self._now() + self.max_lifetime,
            }
        }

        async def op(col, s):
            try:
                return await col.find_one_and_update(
                    {"session_key": sid},
                    update,
                    upsert=True,
                    return_document=ReturnDocument.AFTER,
                    session=s,
                )
            except DuplicateKeyError:
                # a concurrent read inserted the same key first; now it matches
                return await col.find_one_and_update(
                    {"session_key": sid},
                    update,
                    upsert=True,
                    return_document=ReturnDocument.AFTER,
                    session=s,
                )

        doc = await self._call("read", op, timeout)
        return self._to_store(sid, doc)

    async def exists(self, sid: str, *, timeout: Optional[float] = None) -> bool:
        async def op(col, s):
            return await col.find_one({"session_key": sid}, {"_id": 1}, session=s)

        try:
            doc = await self._call("exists", op, timeout)
        except SessionError as exc:
            return self._suppress("exists", exc, False)
        return doc is not None

    async def regenerate(self, old_sid: str, sid: str, *, timeout: Optional[float] = None) -> SessionStore:
        """
        Move the record keyed ``old_sid`` to ``sid`` and refresh its expiry.

        If ``old_sid`` is unknown a new empty record is created under ``sid``.
        Either way ``old_sid`` resolves to nothing afterwards.
        """
        update = {
            "$set": {
                "session_key": sid,
                "session_expire": self._now() + self.max_lifetime,
            },
            "$setOnInsert": {"session_data": None},
        }

        async def op(col, s):
            return await col.find_one_and_update(
                {"session_key": old_sid},
                update,
                upsert=True,
                return_document=ReturnDocument.AFTER,
                session=s,
            )

        doc = await self._call("regenerate", op, timeout)
        log.debug("session regenerated old=%s new=%s", old_sid, sid)
        return self._to_store(sid, doc)

    async def destroy(self, sid: str, *, timeout: Optional[float] = None) -> None:
        async def op(col, s):
            return await col.delete_one({"session_key": sid}, session=s)

        await self._call("destroy", op, timeout)

    async def gc(self, *, timeout: Optional[float] = None) -> None:
        """Delete every record whose session_expire is strictly before now."""
        # session_expire is whole seconds; compare against the unrounded clock
        now = self._clock()

        async def op(col, s):
            return await col.delete_many({"session_expire": {"$lt": now}}, session=s)

        try:
            res = await self._call("gc", op, timeout)
        except SessionError as exc:
            self._suppress("gc", exc, None)
            return
        log.info("session gc removed=%s before=%s", res.deleted_count, now)

    async def count(self, *, timeout: Optional[float] = None) -> int:
        """All records, including expired ones gc has not swept yet."""
        async def op(col, s):
            return await col.count_documents({}, session=s)

        try:
            return int(await self._call("count", op, timeout))
        except SessionError as exc:
            return self._suppress("count", exc, 0)

    async def write_data(self, sid: str, blob: bytes, *, timeout: Optional[float] = None) -> None:
        """Overwrite session_data of an existing record; used by SessionStore.release."""
        async def op(col, s):
            return await col.update_one(
                {"session_key": sid},
                {"$set": {"session_data": blob}},
                session=s,
            )

        res = await self._call("release", op, timeout)
        if res.matched_count == 0:
            log.debug("session release matched nothing sid=%s", sid)

    # ----------------- helpers -----------------

    def _now(self) -> int:
        return int(self._clock())

    @asynccontextmanager
    async def _lease(self) -> AsyncIterator[Tuple[AsyncIOMotorCollection, AsyncIOMotorClientSession]]:
        if self._client is None or self._db is None:
            raise BackendConnectionError("session provider is not initialised; call init() first")
        async with await self._client.start_session() as s:
            yield self._db[self.collection_name], s

    async def _call(self, name: str, op: Op[T], timeout: Optional[float]) -> T:
        try:
            async with self._lease() as (col, s):
                return await asyncio.wait_for(op(col, s), timeout)
        except asyncio.TimeoutError as exc:
            raise BackendError(f"{name} timed out after {timeout}s") from exc
        except PyMongoError as exc:
            raise BackendError(f"{name} failed: {exc}") from exc

    def _suppress(self, name: str, exc: SessionError, default: Any) -> Any:
        if self.error_policy is ErrorPolicy.strict:
            raise exc
        log.warning("session %s failed, returning %r: %s", name, default, exc)
        return default

    def _to_store(self, sid: str, raw: Optional[dict]) -> SessionStore:
        values: codec.SessionValues = {}
        if raw is not None:
            try:
                doc = SessionDoc.from_mongo(raw)
            except ValidationError as exc:
                raise DecodeError(f"malformed session record for {sid!r}: {exc}") from exc
            values = codec.decode(doc.session_data)
        return SessionStore(
            sid,
            values,
            provider=self,
            max_lifetime=self.max_lifetime,
            error_policy=self.error_policy,
        )
