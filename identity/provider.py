"""
identity/provider.py -- REST wrapper for the hosted identity provider.

Talks to the Identity Toolkit REST API (the backend of Firebase
Authentication). All calls are authenticated with the project's web API key
and bounded by a timeout.

Error mapping:
  HTTP 4xx with {"error": {"message": "EMAIL_EXISTS"}} -> IdentityProviderError("EMAIL_EXISTS")
  network failure / 5xx / non-JSON body                 -> UpstreamUnavailable
  2xx body without idToken / localId                    -> UpstreamUnavailable
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import requests

from core.errors import IdentityProviderError, UpstreamUnavailable

logger = logging.getLogger("gymcoach.identity.provider")

DEFAULT_BASE_URL = "https://identitytoolkit.googleapis.com/v1"


@dataclass(frozen=True)
class Identity:
    """A signed-in provider user. uid is the provider's id, not an account id."""

    uid: str
    email: str | None
    display_name: str | None
    id_token: str
    refresh_token: str | None = None
    expires_in: int | None = None


class IdentityProvider:
    """One project's Identity Toolkit endpoint, reached with its web API key.

    Stateless: every method is a single REST round trip (two for the custom
    token exchange) and returns a fresh Identity.

    Usage:
        provider = IdentityProvider(api_key="...")
        identity = provider.sign_in_with_password("ada@example.com", "correct horse")
        identity = provider.update_profile(identity, "Ada")
        provider.close()
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("api_key is required")
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.max_redirects = 3

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def sign_up(self, email: str, password: str) -> Identity:
        data = self._post("accounts:signUp", {"email": email, "password": password, "returnSecureToken": True})
        return _to_identity(data)

    def sign_in_with_password(self, email: str, password: str) -> Identity:
        data = self._post(
            "accounts:signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return _to_identity(data)

    def sign_in_with_custom_token(self, custom_token: str) -> Identity:
        """Exchange a server-minted custom token for a session.

        The exchange response has no user fields, so a lookup follows.
        """
        data = self._post("accounts:signInWithCustomToken", {"token": custom_token, "returnSecureToken": True})
        id_token = _require(data, "idToken")
        users = self._post("accounts:lookup", {"idToken": id_token}).get("users") or []
        if not users:
            raise IdentityProviderError("USER_NOT_FOUND")
        user = users[0]
        return _to_identity(
            {
                **data,
                "localId": _require(user, "localId"),
                "email": user.get("email"),
                "displayName": user.get("displayName"),
            }
        )

    def update_profile(self, identity: Identity, display_name: str) -> Identity:
        """Set the display name; returns identity with the new name (tokens unchanged)."""
        data = self._post(
            "accounts:update",
            {"idToken": identity.id_token, "displayName": display_name, "returnSecureToken": False},
        )
        return Identity(
            uid=identity.uid,
            email=data.get("email", identity.email),
            display_name=data.get("displayName", display_name),
            id_token=identity.id_token,
            refresh_token=identity.refresh_token,
            expires_in=identity.expires_in,
        )

    def close(self) -> None:
        self._session.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _post(self, method: str, body: dict[str, Any]) -> dict[str, Any]:
        url = f"{self._base_url}/{method}"
        try:
            resp = self._session.post(url, params={"key": self._api_key}, json=body, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("Identity provider call %s failed: %s", method, e)
            raise UpstreamUnavailable("Identity provider unavailable.") from e

        if resp.status_code >= 500:
            logger.warning("Identity provider call %s returned %d", method, resp.status_code)
            raise UpstreamUnavailable("Identity provider unavailable.")
        try:
            data = resp.json()
        except ValueError as e:
            raise UpstreamUnavailable("Identity provider returned an invalid response.") from e
        if not isinstance(data, dict):
            raise UpstreamUnavailable("Identity provider returned an invalid response.")

        if resp.status_code >= 400:
            message = (data.get("error") or {}).get("message") or f"HTTP_{resp.status_code}"
            # Messages look like "WEAK_PASSWORD : Password should be at least 6 characters"
            code = message.split(":", 1)[0].strip()
            raise IdentityProviderError(code, message)
        return data


def _require(data: dict[str, Any], key: str) -> Any:
    """Return data[key]; a 2xx body without it is a broken upstream, not a caller error."""
    value = data.get(key)
    if not value:
        logger.warning("Identity provider response missing %s", key)
        raise UpstreamUnavailable("Identity provider returned an invalid response.")
    return value


def _to_identity(data: dict[str, Any]) -> Identity:
    expires_in = data.get("expiresIn")
    try:
        expires_in = int(expires_in) if expires_in is not None else None
    except (TypeError, ValueError):
        expires_in = None
    return Identity(
        uid=_require(data, "localId"),
        email=data.get("email"),
        display_name=data.get("displayName") or None,
        id_token=_require(data, "idToken"),
        refresh_token=data.get("refreshToken"),
        expires_in=expires_in,
    )
