"""
identity/events.py -- Typed publish/subscribe channel for identity state.

Two payload types flow through the channel:

  ProviderReady   -- published once after provider initialization, carrying
                     either a usable provider or the initialization error.
  IdentityChanged -- published on every sign-in / sign-out, carrying the
                     current identity or None.

Subscribers are plain callables. A subscriber that raises is logged and
skipped; it never prevents delivery to the others.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from identity.provider import Identity, IdentityProvider

logger = logging.getLogger("gymcoach.identity.events")


@dataclass(frozen=True)
class ProviderReady:
    provider: IdentityProvider | None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.provider is not None and self.error is None


@dataclass(frozen=True)
class IdentityChanged:
    identity: Identity | None


AuthEvent = Union[ProviderReady, IdentityChanged]
Listener = Callable[[AuthEvent], None]


class AuthEventChannel:
    """Thread-safe fan-out of AuthEvent values to subscribers.

    The channel remembers the last ProviderReady and the last IdentityChanged
    so a late subscriber can catch up with subscribe(..., replay=True).
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: list[Listener] = []
        self._last_ready: ProviderReady | None = None
        self._last_changed: IdentityChanged | None = None

    def subscribe(self, listener: Listener, replay: bool = False) -> Callable[[], None]:
        """Register listener; return a function that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)
            backlog = [e for e in (self._last_ready, self._last_changed) if e is not None] if replay else []
        for event in backlog:
            self._deliver(listener, event)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: AuthEvent) -> None:
        with self._lock:
            if isinstance(event, ProviderReady):
                self._last_ready = event
            else:
                self._last_changed = event
            listeners = list(self._listeners)
        for listener in listeners:
            self._deliver(listener, event)

    def clear(self) -> None:
        """Forget remembered state (used on client teardown). Subscribers stay."""
        with self._lock:
            self._last_ready = None
            self._last_changed = None

    @staticmethod
    def _deliver(listener: Listener, event: AuthEvent) -> None:
        try:
            listener(event)
        except Exception:
            logger.exception("Identity event listener failed on %s", type(event).__name__)
