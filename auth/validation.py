"""
auth/validation.py -- Field rules for signup and login input.

Validators return a list of FieldError rather than raising on the first
problem, so callers can report every violated constraint at once. The store
and the login route wrap a non-empty list in core.errors.ValidationError.

Syntax checks go through email-validator without DNS lookups, so signup
never waits on the network.

Email normalization is deliberately simple: strip surrounding whitespace and
lowercase the whole address. Provider-specific rewriting (dropping dots in
Gmail local parts and the like) is not applied.
"""

from __future__ import annotations

from email_validator import EmailNotValidError, validate_email

from core.errors import FieldError

MIN_NAME_LENGTH = 2
MIN_PASSWORD_LENGTH = 8
MAX_EMAIL_LENGTH = 254
# bcrypt only looks at the first 72 bytes; bcrypt>=5 refuses longer input.
MAX_PASSWORD_BYTES = 72


def normalize_email(email: str) -> str:
    return email.strip().lower()


def is_valid_email(email: str) -> bool:
    normalized = normalize_email(email)
    if not normalized or len(normalized) > MAX_EMAIL_LENGTH:
        return False
    try:
        validate_email(normalized, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def validate_signup(display_name: str, email: str, password: str) -> list[FieldError]:
    """Check all account-creation constraints and return every violation."""
    errors: list[FieldError] = []
    if len((display_name or "").strip()) < MIN_NAME_LENGTH:
        errors.append(FieldError("name", f"Name must be at least {MIN_NAME_LENGTH} characters."))
    if not is_valid_email(email or ""):
        errors.append(FieldError("email", "A valid email address is required."))
    password = password or ""
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(FieldError("password", f"Password must be at least {MIN_PASSWORD_LENGTH} characters."))
    elif len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        errors.append(FieldError("password", f"Password must be at most {MAX_PASSWORD_BYTES} bytes."))
    return errors


def validate_login(email: str, password: str) -> list[FieldError]:
    """Login only checks shape: a well-formed email and a non-empty password."""
    errors: list[FieldError] = []
    if not is_valid_email(email or ""):
        errors.append(FieldError("email", "A valid email address is required."))
    if not password:
        errors.append(FieldError("password", "Password is required."))
    return errors
