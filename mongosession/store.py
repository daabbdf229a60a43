from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, Dict, Optional

from . import codec
from .codec import SessionValues, Value
from .errors import SessionError
from .models import ErrorPolicy

if TYPE_CHECKING:
    from .provider import SessionProvider

log = logging.getLogger(__name__)


class SessionStore:
    """
    In-memory view of one session, bound to a single sid.

    Mutations stay local until ``release`` writes the whole mapping back.
    Every read/regenerate builds a fresh store, so two stores for the same sid
    never share state and concurrent releases are last-write-wins.
    """

    def __init__(
        self,
        sid: str,
        values: Optional[SessionValues],
        *,
        provider: "SessionProvider",
        max_lifetime: int,
        error_policy: ErrorPolicy = ErrorPolicy.lenient,
    ) -> None:
        self._sid = sid
        self._values: Dict[str, Value] = dict(values or {})
        self._provider = provider
        self._lock = threading.Lock()
        self.max_lifetime = max_lifetime
        self.error_policy = error_policy

    def __repr__(self) -> str:
        return f"SessionStore(sid={self._sid!r}, keys={len(self)})"

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._values

    def session_id(self) -> str:
        return self._sid

    def get(self, key: str, default: Any = None) -> Any:
        """
        Value stored under ``key``, else ``default``.

        None is also a storable value, so pass a sentinel ``default`` (or use
        ``key in store``) to tell an absent key from a stored null.
        """
        with self._lock:
            return self._values.get(key, default)

    def set(self, key: str, value: Value) -> None:
        """Raises EncodeError for values release() could not persist."""
        codec.validate_key(key)
        codec.validate_value(value, f"$.{key}")
        with self._lock:
            self._values[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._values.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._values = {}

    def items(self) -> Dict[str, Value]:
        """Shallow snapshot of the current mapping."""
        with self._lock:
            return dict(self._values)

    async def release(self, response: Any = None, *, timeout: Optional[float] = None) -> None:
        """
        Persist the mapping onto the existing record (update, never upsert).

        ``response`` is the framework's outgoing response; it is only the point
        by which the write must have happened and is otherwise ignored.
        Under the lenient policy a failed encode or write is logged and dropped,
        leaving the previously stored data in place.
        """
        snapshot = self.items()
        try:
            blob = codec.encode(snapshot)
            await self._provider.write_data(self._sid, blob, timeout=timeout)
        except SessionError as exc:
            if self.error_policy is ErrorPolicy.strict:
                raise
            log.warning("session release dropped sid=%s err=%s", self._sid, exc)
