from __future__ import annotations

import asyncio
import logging

from .provider import SessionProvider

log = logging.getLogger(__name__)


async def run_gc_loop(provider: SessionProvider, interval: float) -> None:
    """
    Sweep expired sessions every ``interval`` seconds until cancelled.

    A failed sweep (strict policy) is logged and retried on the next tick.
    """
    log.info("session gc loop started interval=%ss", interval)
    try:
        while True:
            try:
                await provider.gc()
            except Exception:
                log.exception("session gc sweep failed")
            await asyncio.sleep(interval)
    finally:
        log.info("session gc loop stopped")


def start_gc(provider: SessionProvider, interval: float) -> "asyncio.Task[None]":
    return asyncio.create_task(run_gc_loop(provider, interval), name="session-gc")
