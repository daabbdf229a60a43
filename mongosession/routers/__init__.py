from .health_routes import router as health_router
from .session_routes import router as session_router

__all__ = ["health_router", "session_router"]
