"""
identity/client.py -- Process-wide External Identity Client.

One ExternalIdentityClient per process, reached through get_identity_client().
It has an explicit lifecycle instead of a lazily mutated global handle:

    not_ready --init()--> ready
    not_ready --init()--> failed      (missing config, provider construction error)
    ready/failed --teardown()--> not_ready

init() runs at most once per lifecycle and always publishes exactly one
ProviderReady event, before it talks to the provider at all. Every sign-in
and sign-out publishes IdentityChanged. Calling an operation outside the
ready state raises IdentityNotReady.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum

from core.config import Settings, get_settings
from core.errors import ConfigurationError, GymCoachError, IdentityNotReady
from identity.events import AuthEventChannel, IdentityChanged, ProviderReady
from identity.provider import Identity, IdentityProvider

logger = logging.getLogger("gymcoach.identity")


class ClientState(str, Enum):
    not_ready = "not_ready"
    ready = "ready"
    failed = "failed"


class ExternalIdentityClient:
    """Lifecycle-managed handle on the hosted identity provider.

    Holds at most one provider and one signed-in Identity, and announces
    changes to both on its AuthEventChannel.

    Usage:
        client = get_identity_client()
        client.events.subscribe(on_event, replay=True)
        client.init()
        client.login("ada@example.com", "correct horse")
        client.logout()
    """

    def __init__(self, events: AuthEventChannel | None = None) -> None:
        self.events = events or AuthEventChannel()
        self._lock = threading.RLock()
        self._state = ClientState.not_ready
        self._provider: IdentityProvider | None = None
        self._identity: Identity | None = None
        self.init_error: Exception | None = None

    @property
    def state(self) -> ClientState:
        return self._state

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def init(
        self,
        settings: Settings | None = None,
        provider: IdentityProvider | None = None,
    ) -> ClientState:
        """Initialize once and publish ProviderReady.

        provider overrides construction from settings (tests inject a fake).
        A configured INITIAL_AUTH_TOKEN is exchanged for a session; if that
        exchange fails the client is still ready, just signed out.
        """
        with self._lock:
            if self._state is not ClientState.not_ready:
                return self._state

            cfg = settings or get_settings()
            try:
                if provider is None:
                    if not cfg.identity_api_key:
                        raise ConfigurationError("No identity provider config (IDENTITY_API_KEY is empty).")
                    provider = IdentityProvider(
                        cfg.identity_api_key,
                        base_url=cfg.identity_base_url,
                        timeout=cfg.identity_timeout_seconds,
                    )
            except (ConfigurationError, ValueError) as exc:
                logger.warning("Identity provider initialization failed: %s", exc)
                self._state = ClientState.failed
                self.init_error = exc
                ready = ProviderReady(provider=None, error=exc)
            else:
                self._provider = provider
                self._state = ClientState.ready
                ready = ProviderReady(provider=provider)

        # Published before any provider call so subscribers always get it.
        self.events.publish(ready)
        if ready.ok and cfg.initial_auth_token:
            try:
                initial = provider.sign_in_with_custom_token(cfg.initial_auth_token)
            except GymCoachError as exc:
                logger.warning("Initial auth token sign-in failed: %s", exc)
            else:
                self._set_identity(initial)
        return ClientState.ready if ready.ok else ClientState.failed

    def teardown(self) -> None:
        """Drop the provider and signed-in identity; back to not_ready."""
        with self._lock:
            if self._provider is not None:
                self._provider.close()
            self._provider = None
            self._identity = None
            self.init_error = None
            self._state = ClientState.not_ready
        self.events.clear()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def signup(self, email: str, password: str, display_name: str | None = None) -> Identity:
        provider = self._require_provider()
        identity = provider.sign_up(email, password)
        if display_name:
            identity = provider.update_profile(identity, display_name)
        self._set_identity(identity)
        return identity

    def login(self, email: str, password: str) -> Identity:
        identity = self._require_provider().sign_in_with_password(email, password)
        self._set_identity(identity)
        return identity

    def logout(self) -> None:
        """Sign out locally. The provider keeps no server session to end."""
        self._require_provider()
        self._set_identity(None)

    def current_identity(self) -> Identity | None:
        """Current provider identity; None when signed out or not initialized."""
        return self._identity

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_provider(self) -> IdentityProvider:
        with self._lock:
            if self._state is not ClientState.ready or self._provider is None:
                raise IdentityNotReady(f"Identity client is {self._state.value}; call init() first.")
            return self._provider

    def _set_identity(self, identity: Identity | None) -> None:
        with self._lock:
            self._identity = identity
        self.events.publish(IdentityChanged(identity))


# ---------------------------------------------------------------------------
# Process-wide singleton
# ---------------------------------------------------------------------------

_client: ExternalIdentityClient | None = None
_client_lock = threading.Lock()


def get_identity_client() -> ExternalIdentityClient:
    """Return the process-wide client, creating it (not_ready) on first use."""
    global _client
    with _client_lock:
        if _client is None:
            _client = ExternalIdentityClient()
        return _client


def reset_identity_client() -> None:
    """Tear down and forget the process-wide client."""
    global _client
    with _client_lock:
        if _client is not None:
            _client.teardown()
        _client = None
