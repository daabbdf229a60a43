from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request

from ..errors import SessionError

router = APIRouter(prefix="/sessions", tags=["sessions"])


def _provider(request: Request):
    provider = getattr(request.app.state, "session_provider", None)
    if provider is None:
        raise HTTPException(503, "Session provider not initialised")
    return provider


@router.get("/count")
async def count_sessions(request: Request):
    """
    Number of stored sessions, expired-but-unswept ones included.
    """
    try:
        return {"count": await _provider(request).count()}
    except SessionError as e:
        raise HTTPException(503, str(e))


@router.post("/gc")
async def sweep_sessions(request: Request):
    try:
        await _provider(request).gc()
    except SessionError as e:
        raise HTTPException(503, str(e))
    return {"ok": True}


@router.get("/{sid}/exists")
async def session_exists(request: Request, sid: str):
    try:
        return {"sid": sid, "exists": await _provider(request).exists(sid)}
    except SessionError as e:
        raise HTTPException(503, str(e))


@router.delete("/{sid}", status_code=204)
async def destroy_session(request: Request, sid: str):
    try:
        await _provider(request).destroy(sid)
    except SessionError as e:
        raise HTTPException(503, str(e))
