from __future__ import annotations

import asyncio
import copy
import itertools
from typing import Any, Dict, List, Optional, Set

import pytest
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, InvalidURI, ServerSelectionTimeoutError

from mongosession import registry
from mongosession.provider import SessionProvider

TARGET = "mongodb://localhost:27017/test"


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeResult:
    def __init__(self, *, deleted_count: int = 0, matched_count: int = 0) -> None:
        self.deleted_count = deleted_count
        self.matched_count = matched_count
        self.modified_count = matched_count


def _matches(doc: Dict[str, Any], flt: Dict[str, Any]) -> bool:
    for field, cond in flt.items():
        if isinstance(cond, dict) and "$lt" in cond:
            if field not in doc or not doc[field] < cond["$lt"]:
                return False
        elif doc.get(field) != cond:
            return False
    return True


class FakeSession:
    def __init__(self, server: "FakeMongoServer") -> None:
        self.server = server

    async def __aenter__(self) -> "FakeSession":
        self.server.open_sessions += 1
        self.server.leases += 1
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.server.open_sessions -= 1


class FakeCollection:
    """The subset of AsyncIOMotorCollection the provider calls."""

    def __init__(self, server: "FakeMongoServer", name: str) -> None:
        self.server = server
        self.name = name
        self.docs: List[Dict[str, Any]] = []
        self.unique: Set[str] = set()
        self._ids = itertools.count(1)

    async def _enter(self, op: str) -> None:
        if self.server.delay:
            await asyncio.sleep(self.server.delay)
        failure = self.server.failures.get(op)
        if failure is not None:
            if self.server.fail_once:
                del self.server.failures[op]
            raise failure

    def _check_unique(self, candidate: Dict[str, Any], exclude: Optional[Dict[str, Any]] = None) -> None:
        for field in self.unique:
            for other in self.docs:
                if other is not exclude and field in candidate and other.get(field) == candidate[field]:
                    raise DuplicateKeyError(f"E11000 duplicate key error {field}: {candidate[field]!r}")

    async def create_index(self, keys, unique: bool = False, session=None) -> str:
        await self._enter("create_index")
        if unique:
            self.unique.add(keys[0][0])
        return f"{keys[0][0]}_1"

    async def find_one_and_update(
        self,
        flt,
        update,
        upsert: bool = False,
        return_document=ReturnDocument.BEFORE,
        session=None,
    ) -> Optional[Dict[str, Any]]:
        await self._enter("find_one_and_update")
        for doc in self.docs:
            if _matches(doc, flt):
                before = copy.deepcopy(doc)
                candidate = dict(doc)
                candidate.update(update.get("$set", {}))
                self._check_unique(candidate, exclude=doc)
                doc.update(update.get("$set", {}))
                return copy.deepcopy(doc) if return_document == ReturnDocument.AFTER else before
        if not upsert:
            return None
        new = {"_id": next(self._ids)}
        new.update({k: v for k, v in flt.items() if not isinstance(v, dict)})
        new.update(update.get("$setOnInsert", {}))
        new.update(update.get("$set", {}))
        self._check_unique(new)
        self.docs.append(new)
        return copy.deepcopy(new) if return_document == ReturnDocument.AFTER else None

    async def find_one(self, flt, projection=None, session=None) -> Optional[Dict[str, Any]]:
        await self._enter("find_one")
        for doc in self.docs:
            if _matches(doc, flt):
                return copy.deepcopy(doc)
        return None

    async def update_one(self, flt, update, session=None) -> FakeResult:
        await self._enter("update_one")
        for doc in self.docs:
            if _matches(doc, flt):
                doc.update(update.get("$set", {}))
                return FakeResult(matched_count=1)
        return FakeResult(matched_count=0)

    async def delete_one(self, flt, session=None) -> FakeResult:
        await self._enter("delete_one")
        for i, doc in enumerate(self.docs):
            if _matches(doc, flt):
                del self.docs[i]
                return FakeResult(deleted_count=1)
        return FakeResult(deleted_count=0)

    async def delete_many(self, flt, session=None) -> FakeResult:
        await self._enter("delete_many")
        keep = [d for d in self.docs if not _matches(d, flt)]
        removed = len(self.docs) - len(keep)
        self.docs[:] = keep
        return FakeResult(deleted_count=removed)

    async def count_documents(self, flt, session=None) -> int:
        await self._enter("count_documents")
        return sum(1 for d in self.docs if _matches(d, flt))


class FakeDatabase:
    def __init__(self, server: "FakeMongoServer", name: str) -> None:
        self.server = server
        self.name = name

    def __getitem__(self, collection: str) -> FakeCollection:
        key = (self.name, collection)
        if key not in self.server.collections:
            self.server.collections[key] = FakeCollection(self.server, collection)
        return self.server.collections[key]


class FakeAdmin:
    def __init__(self, server: "FakeMongoServer") -> None:
        self.server = server

    async def command(self, name: str) -> Dict[str, Any]:
        if not self.server.reachable:
            raise ServerSelectionTimeoutError("localhost:27017: connection refused")
        return {"ok": 1.0}


class FakeClient:
    def __init__(self, server: "FakeMongoServer", uri: str, **options) -> None:
        if not uri.startswith(("mongodb://", "mongodb+srv://")):
            raise InvalidURI(f"Invalid URI scheme: {uri}")
        self.server = server
        self.uri = uri
        self.options = options
        self.closed = False
        self.admin = FakeAdmin(server)

    def get_default_database(self, default: Optional[str] = None) -> FakeDatabase:
        path = self.uri.split("://", 1)[1].partition("/")[2].split("?", 1)[0]
        return FakeDatabase(self.server, path or default)

    async def start_session(self) -> FakeSession:
        failure = self.server.failures.get("start_session")
        if failure is not None:
            raise failure
        return FakeSession(self.server)

    def close(self) -> None:
        self.closed = True


class FakeMongoServer:
    """In-process stand-in for a mongod, shared by every client it hands out."""

    def __init__(self) -> None:
        self.collections: Dict[Any, FakeCollection] = {}
        self.clients: List[FakeClient] = []
        self.failures: Dict[str, Exception] = {}
        self.fail_once = False
        self.reachable = True
        self.delay = 0.0
        self.open_sessions = 0
        self.leases = 0

    def client_factory(self, uri: str, **options) -> FakeClient:
        client = FakeClient(self, uri, **options)
        self.clients.append(client)
        return client

    def collection(self, db: str = "test", name: str = "session") -> FakeCollection:
        return FakeDatabase(self, db)[name]

    def fail(self, op: str, exc: Exception, *, once: bool = False) -> None:
        self.failures[op] = exc
        self.fail_once = once


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def mongo() -> FakeMongoServer:
    return FakeMongoServer()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_provider(mongo, clock):
    def _make(**kwargs) -> SessionProvider:
        kwargs.setdefault("client_factory", mongo.client_factory)
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("error_policy", "lenient")
        return SessionProvider(**kwargs)

    return _make


@pytest.fixture
async def provider(make_provider):
    p = make_provider()
    await p.init(5, TARGET)
    yield p
    p.close()


@pytest.fixture
async def strict_provider(make_provider):
    p = make_provider(error_policy="strict")
    await p.init(5, TARGET)
    yield p
    p.close()


@pytest.fixture
def clean_registry():
    before = set(registry.registered())
    yield
    for name in set(registry.registered()) - before:
        registry.unregister(name)
