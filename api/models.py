"""
API request and response models for GymCoach REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Signup and login bodies only check types here. Length and format rules live in
auth/validation.py so the Credential Store enforces them for every caller, not
just HTTP ones.
"""

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Account

# ---------------------------------------------------------------------------
# Auth -- request models
# ---------------------------------------------------------------------------


class SignupRequest(BaseModel):
    """Request body for POST /api/signup."""

    name: str = Field(max_length=255)
    email: str = Field(max_length=320)
    password: str = Field(max_length=255)


class LoginRequest(BaseModel):
    """Request body for POST /api/login."""

    email: str = Field(max_length=320)
    password: str = Field(max_length=255)


# ---------------------------------------------------------------------------
# Auth -- response models
# ---------------------------------------------------------------------------


class SignupResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str = "Account created."
    account_id: int


class LoginResponse(BaseModel):
    """Response for POST /api/login. The token itself travels only in the cookie."""

    model_config = ConfigDict(frozen=True)

    message: str = "Logged in."
    account_id: int
    expires_at: str


class AccountResponse(BaseModel):
    """Public view of an account -- never includes the password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    display_name: str
    email: str
    created_at: str

    @classmethod
    def from_account(cls, account: Account) -> "AccountResponse":
        return cls(
            id=account.id,
            display_name=account.display_name,
            email=account.email,
            created_at=account.created_at or "",
        )


class MeResponse(BaseModel):
    """Response for GET /api/me."""

    model_config = ConfigDict(frozen=True)

    account: AccountResponse


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


# ---------------------------------------------------------------------------
# Generation proxy
# ---------------------------------------------------------------------------


class ChatRequest(BaseModel):
    """Request body for POST /chat."""

    model_config = ConfigDict(str_strip_whitespace=True)

    message: str = Field(min_length=1, max_length=1000)


class DietRequest(BaseModel):
    """Request body for POST /diet."""

    model_config = ConfigDict(str_strip_whitespace=True)

    prompt: str = Field(min_length=1, max_length=4000)


class WorkoutRequest(BaseModel):
    """Request body for POST /workout. Values are interpolated into a fixed prompt."""

    model_config = ConfigDict(str_strip_whitespace=True)

    gender: str = Field(min_length=1, max_length=30)
    age: int = Field(ge=10, le=120)
    goal: str = Field(min_length=1, max_length=200)
    level: str = Field(min_length=1, max_length=30)


class GenerationResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    reply: str


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class FieldErrorModel(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[Union[list[FieldErrorModel], str]] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
