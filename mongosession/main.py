from __future__ import annotations

import asyncio
import logging
import time
import uuid

import uvicorn
from fastapi import FastAPI, Request
from starlette.responses import Response

from . import registry
from .gc import start_gc
from .logger import setup_logging
from .provider import SessionProvider
from .routers import health_router, session_router
from .settings import settings

setup_logging()
log = logging.getLogger("mongosession")

app = FastAPI(title="Session Service (MongoDB session provider)", version="0.1.0")


_QUIET_PATHS = {"/healthz", "/readyz"}


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    rid = request.headers.get("x-request-id") or uuid.uuid4().hex
    request.state.request_id = rid
    path = request.url.path
    # probes hit every few seconds; keep them out of INFO
    level = logging.DEBUG if path in _QUIET_PATHS else logging.INFO
    start = time.perf_counter()

    try:
        resp: Response = await call_next(request)
    except Exception:
        log.exception("%s %s failed rid=%s after %.1fms", request.method, path, rid, _elapsed_ms(start))
        raise

    resp.headers["x-request-id"] = rid
    log.log(level, "%s %s -> %s rid=%s %.1fms", request.method, path, resp.status_code, rid, _elapsed_ms(start))
    return resp


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


@app.on_event("startup")
async def startup():
    log.info(
        "startup begin provider=%s collection=%s max_lifetime=%s gc_interval=%s policy=%s",
        settings.PROVIDER_NAME,
        settings.COLLECTION,
        settings.MAX_LIFETIME_SECONDS,
        settings.GC_INTERVAL_SECONDS,
        settings.ERROR_POLICY,
    )

    provider = SessionProvider()
    await provider.init(settings.MAX_LIFETIME_SECONDS, settings.MONGO_URI)
    registry.register(settings.PROVIDER_NAME, provider)

    app.state.session_provider = provider
    app.state.gc_task = start_gc(provider, settings.GC_INTERVAL_SECONDS)

    log.info("startup complete")


@app.on_event("shutdown")
async def shutdown():
    task = getattr(app.state, "gc_task", None)
    if task:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
    registry.unregister(settings.PROVIDER_NAME)
    provider = getattr(app.state, "session_provider", None)
    if provider:
        provider.close()


app.include_router(health_router)
app.include_router(session_router)


if __name__ == "__main__":
    uvicorn.run(
        "mongosession.main:app",
        host="0.0.0.0",
        port=settings.PORT,
    )
