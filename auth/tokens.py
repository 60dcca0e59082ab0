"""
auth/tokens.py -- Session token issuance and validation (the Session Issuer/Validator).

Security design decisions:
  JWT: python-jose with HS256. Tokens carry the account id as the "sub" claim
       plus "iat" and "exp". Nothing else goes into the payload -- no email,
       no display name, never a hash.

  Statelessness: no session table. A token is valid exactly when its
       signature checks out and "exp" is in the future. Logout only clears the
       cookie; a captured token keeps working until it expires. That is the
       accepted cost of not keeping server-side session state.

  SECRET_KEY: SessionIssuer refuses to construct with a missing, placeholder,
       or short secret (ConfigurationError). The API builds its issuer once in
       lifespan startup, so a bad secret stops the process before the first
       request instead of failing per call.

  Validation never returns partially-trusted data: any decode failure,
       expired token, or payload without an integer subject is InvalidToken.

Layer rule: no imports from api/ or identity/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from functools import lru_cache

from jose import ExpiredSignatureError, JWTError, jwt
from jose.utils import base64url_decode, base64url_encode

from core.config import SEVEN_DAYS, check_signing_secret, get_settings
from core.errors import InvalidToken, Unauthenticated

logger = logging.getLogger("gymcoach.auth")

ALGORITHM = "HS256"
COOKIE_NAME = "token"


class SessionIssuer:
    """Mints and checks signed session tokens. Sole owner of the signing secret."""

    def __init__(self, secret_key: str, expire_seconds: int = SEVEN_DAYS) -> None:
        self._secret_key = check_signing_secret(secret_key)
        if expire_seconds <= 0:
            raise ValueError("expire_seconds must be positive")
        self.expire_seconds = expire_seconds

    def issue(self, account_id: int, now: datetime | None = None) -> tuple[str, datetime]:
        """Sign a token for account_id. Returns (token, expires_at).

        now defaults to the current UTC time. Passing an earlier instant mints
        a token as if the issuing clock were behind, which is how tests produce
        already-expired tokens.
        """
        issued_at = now or datetime.now(timezone.utc)
        expires_at = issued_at + timedelta(seconds=self.expire_seconds)
        payload = {
            "sub": str(account_id),
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        token = jwt.encode(payload, self._secret_key, algorithm=ALGORITHM)
        return token, expires_at

    def validate(self, token: str | None) -> int:
        """Verify signature and expiry; return the account id.

        Raises:
            Unauthenticated: token is None or empty.
            InvalidToken:    anything else that is not a valid, unexpired token.
        """
        if not token:
            raise Unauthenticated("Authentication required.")
        if not _is_canonical(token):
            logger.debug("Session token rejected: non-canonical encoding")
            raise InvalidToken("signature")
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[ALGORITHM])
        except ExpiredSignatureError as exc:
            logger.debug("Session token rejected: expired")
            raise InvalidToken("expired") from exc
        except JWTError as exc:
            logger.debug("Session token rejected: %s", exc)
            raise InvalidToken("signature") from exc

        subject = payload.get("sub")
        if "exp" not in payload or not isinstance(subject, str) or not subject.isdigit():
            raise InvalidToken("claims")
        return int(subject)


def _is_canonical(token: str) -> bool:
    """True if every segment is exactly what base64url-encoding its bytes produces.

    The decoder ignores the unused low bits of a segment's last character, so
    without this check two different strings can carry the same signature.
    """
    segments = token.split(".")
    if len(segments) != 3:
        return False
    for segment in segments:
        try:
            raw = segment.encode("ascii")
            if base64url_encode(base64url_decode(raw)) != raw:
                return False
        except (UnicodeEncodeError, ValueError):
            return False
    return True


@lru_cache
def get_session_issuer() -> SessionIssuer:
    """Return the process-wide SessionIssuer built from settings."""
    settings = get_settings()
    return SessionIssuer(settings.secret_key, settings.token_expire_seconds)


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, token: str, max_age: int, secure: bool) -> None:
    """Write the session token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": cookie sent on same-site navigations and GET cross-site
        links, but not on cross-site POST -- CSRF mitigation for most cases.
    secure: only sent over HTTPS; on unless DEBUG=true.
    max_age: matches the JWT expiry so both expire together.
    """
    response.set_cookie(
        COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="lax",
        secure=secure,
        max_age=max_age,
    )


def clear_session_cookie(response, secure: bool) -> None:
    """Client-side revocation: tell the browser to drop the session cookie.

    The token itself stays valid until it expires; there is no revocation list.
    """
    response.delete_cookie(COOKIE_NAME, httponly=True, samesite="lax", secure=secure)
