"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two token sources are checked in priority order:
  1. Session cookie ("token") -- set by POST /api/login.
  2. Authorization: Bearer <token> header -- non-browser clients.

get_current_account_id() raises Unauthenticated / InvalidToken straight from
the SessionIssuer; api/main.py maps both to HTTP 401.
get_current_account() additionally loads the row and raises HTTP 404 when the
account was deleted after its token was issued.

Layer rule: no imports from api/ or identity/.
  auth/dependencies.py may import from fastapi (for Request/HTTPException)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import Account
from auth.store import AccountStore
from auth.tokens import COOKIE_NAME, SessionIssuer


def get_request_token(request: Request) -> str | None:
    """Return the raw session token from the cookie or Bearer header, if any."""
    token: str | None = request.cookies.get(COOKIE_NAME)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:].strip()
    return token or None


def get_current_account_id(request: Request) -> int:
    """Require a valid session token and return its account id.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(account_id: int = Depends(get_current_account_id)): ...
    """
    sessions: SessionIssuer = request.app.state.sessions
    return sessions.validate(get_request_token(request))


def get_current_account(request: Request) -> Account:
    """Require a valid session token whose account still exists."""
    account_id = get_current_account_id(request)
    accounts: AccountStore = request.app.state.accounts
    account = accounts.get_by_id(account_id)
    if account is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "Account not found."},
        )
    return account
