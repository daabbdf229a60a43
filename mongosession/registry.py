"""
Name -> provider registry consulted by the web framework.

Start-up code registers providers explicitly (see ``main.startup``); importing
this package never registers anything.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional

from .provider import SessionProvider

log = logging.getLogger(__name__)

_providers: Dict[str, SessionProvider] = {}


def register(name: str, provider: Optional[SessionProvider]) -> None:
    if provider is None:
        raise ValueError(f"session: cannot register a None provider under {name!r}")
    if name in _providers:
        raise ValueError(f"session: provider {name!r} is already registered")
    _providers[name] = provider
    log.info("session provider registered name=%s", name)


def unregister(name: str) -> Optional[SessionProvider]:
    return _providers.pop(name, None)


def get_provider(name: str) -> SessionProvider:
    try:
        return _providers[name]
    except KeyError:
        raise KeyError(
            f"session: unknown provider {name!r} (forgotten register()? known: {registered()})"
        ) from None


def registered() -> List[str]:
    return sorted(_providers)
