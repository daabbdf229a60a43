"""MongoDB-backed server-side session provider."""

from .codec import SessionValues, Value
from .errors import (
    BackendConnectionError,
    BackendError,
    DecodeError,
    EncodeError,
    SessionError,
)
from .models import ErrorPolicy, SessionDoc
from .provider import SessionProvider
from .registry import get_provider, register
from .store import SessionStore

__all__ = [
    "SessionProvider",
    "SessionStore",
    "SessionDoc",
    "ErrorPolicy",
    "Value",
    "SessionValues",
    "register",
    "get_provider",
    "SessionError",
    "BackendConnectionError",
    "BackendError",
    "DecodeError",
    "EncodeError",
]
