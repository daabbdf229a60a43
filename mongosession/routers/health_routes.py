from fastapi import APIRouter, Request, Response

from ..settings import settings

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz():
    return {"status": "ok", "service": settings.SERVICE_NAME}


@router.get("/readyz")
def readyz(request: Request, response: Response):
    """Ready once startup has connected the session provider."""
    provider = getattr(request.app.state, "session_provider", None)
    ready = bool(provider and provider.connected)
    if not ready:
        response.status_code = 503
    return {"ready": ready, "provider": settings.PROVIDER_NAME}
