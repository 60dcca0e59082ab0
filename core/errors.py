"""
core/errors.py -- Exception taxonomy for GymCoach.

Every domain failure derives from GymCoachError so the API layer can register
one exception handler per class and map it to a status code:

  ValidationError      -> 400  client input malformed (field-level detail)
  DuplicateIdentity    -> 409  normalized email already registered
  Unauthenticated      -> 401  no session token presented
  InvalidToken         -> 401  bad signature, malformed, or expired token
  UpstreamUnavailable  -> 503  generation / identity provider unreachable
  ConfigurationError   -- fatal at startup, never raised per request

Layer rule: core/ is the kernel. This module imports only the stdlib.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass


class GymCoachError(Exception):
    """Base class for all GymCoach domain errors."""


@dataclass(frozen=True)
class FieldError:
    """One violated constraint on one input field."""

    field: str
    message: str

    def to_dict(self) -> dict:
        return asdict(self)


class ValidationError(GymCoachError):
    """Client input failed validation.

    Carries every violation, not just the first, so a form can highlight all
    bad fields in a single round trip.
    """

    def __init__(self, errors: list[FieldError]) -> None:
        self.errors = list(errors)
        fields = ", ".join(e.field for e in self.errors)
        super().__init__(f"Validation failed: {fields}")


class DuplicateIdentity(GymCoachError):
    """An account with the same normalized email already exists."""


class Unauthenticated(GymCoachError):
    """The request carried no session token."""


class InvalidToken(GymCoachError):
    """The session token failed signature, structure, or expiry checks.

    reason is for server-side logs only; clients always see the same message.
    """

    def __init__(self, reason: str = "invalid") -> None:
        self.reason = reason
        super().__init__(f"Invalid session token ({reason})")


class ConfigurationError(GymCoachError):
    """Required process configuration is missing or insecure."""


class UpstreamUnavailable(GymCoachError):
    """An external provider could not be reached or returned an error."""


class IdentityNotReady(GymCoachError):
    """The external identity client was used before init() completed."""


class IdentityProviderError(GymCoachError):
    """The hosted identity provider rejected a request.

    code is the provider's error code (e.g. EMAIL_EXISTS, INVALID_PASSWORD).
    """

    def __init__(self, code: str, message: str | None = None) -> None:
        self.code = code
        super().__init__(message or code)
