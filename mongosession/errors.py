from __future__ import annotations


class SessionError(Exception):
    """Base class for everything raised by the session provider and stores."""


class BackendConnectionError(SessionError):
    """The MongoDB client could not be created or the server is unreachable."""


class BackendError(SessionError):
    """A query or write against an established client failed."""


class DecodeError(SessionError):
    """A stored session_data blob could not be parsed into a value mapping."""


class EncodeError(SessionError):
    """The in-memory mapping holds something the codec cannot serialize."""


__all__ = [
    "SessionError",
    "BackendConnectionError",
    "BackendError",
    "DecodeError",
    "EncodeError",
]
