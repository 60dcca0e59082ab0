"""
api/routes/auth.py -- Signup, login, current identity, and logout endpoints.

Routes:
  POST /api/signup  -- create an account; 201
  POST /api/login   -- password login; sets the session cookie
  GET  /api/me      -- current account (requires a valid token)
  POST /api/logout  -- clears the session cookie; 200

Security:
  POST /signup and /login are rate-limited (LOGIN_RATE_LIMIT, default 10/minute per IP).
  AccountStore.authenticate() provides timing equalization -- use it, never inline
  find_by_email() + verify_secret().
  Cache-Control: no-store on login responses.
  Logout is advisory: the cookie is cleared, the token is not revoked.

Error mapping is centralized in api/main.py: ValidationError -> 400,
DuplicateIdentity -> 409, Unauthenticated/InvalidToken -> 401.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import LOGIN_LIMIT, limiter
from api.models import (
    AccountResponse,
    LoginRequest,
    LoginResponse,
    MeResponse,
    MessageResponse,
    SignupRequest,
    SignupResponse,
)
from auth.dependencies import get_current_account
from auth.models import Account
from auth.store import AccountStore
from auth.tokens import SessionIssuer, clear_session_cookie, set_session_cookie
from auth.validation import validate_login
from core.config import get_settings
from core.errors import ValidationError

logger = logging.getLogger("gymcoach.api.auth")

# Auth policy:
# - POST /api/signup:  public
# - POST /api/login:   public
# - POST /api/logout:  public -- clearing a cookie needs no prior auth
# - GET  /api/me:      requires a valid session token (get_current_account)
router = APIRouter()


@limiter.limit(LOGIN_LIMIT)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/signup", response_model=SignupResponse, status_code=201)
def signup(request: Request, body: SignupRequest) -> SignupResponse:
    """Create an account.

    Sync handler on purpose: bcrypt runs in the thread pool so one slow hash
    never holds up unrelated requests on the event loop.
    """
    accounts: AccountStore = request.app.state.accounts
    account_id = accounts.create_account(body.name, body.email, body.password)
    return SignupResponse(account_id=account_id)


@limiter.limit(LOGIN_LIMIT)
@router.post("/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set the session cookie.

    Returns the same body for an unknown email and a wrong password so the
    response never reveals whether the email is registered.
    """
    errors = validate_login(body.email, body.password)
    if errors:
        raise ValidationError(errors)

    accounts: AccountStore = request.app.state.accounts
    sessions: SessionIssuer = request.app.state.sessions
    settings = get_settings()

    account = accounts.authenticate(body.email, body.password)
    if account is None:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Invalid email or password."}},
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    token, expires_at = sessions.issue(account.id)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(account_id=account.id, expires_at=expires_at.isoformat()).model_dump(),
    )
    set_session_cookie(resp, token, max_age=sessions.expire_seconds, secure=settings.secure_cookies)
    resp.headers["Cache-Control"] = "no-store"
    logger.info("Account %d logged in", account.id)
    return resp


@router.get("/me", response_model=MeResponse)
def me(account: Account = Depends(get_current_account)) -> MeResponse:
    """Return the account behind the current session token."""
    return MeResponse(account=AccountResponse.from_account(account))


@router.post("/logout", response_model=MessageResponse)
async def logout() -> JSONResponse:
    """Clear the session cookie. A copy of the token stays valid until it expires."""
    resp = JSONResponse(content=MessageResponse(message="Logged out.").model_dump())
    clear_session_cookie(resp, secure=get_settings().secure_cookies)
    return resp
