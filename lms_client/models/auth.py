"""Auth models for the LMS users API (login, refresh, current user)."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ============================================================
# USER
# ============================================================


class UserRecord(BaseModel):
    """Authenticated user as returned by login and /v1/users/info-user.

    Only the identity fields are declared; role-specific fields (xp, level,
    kelas, children...) are kept as extras.
    """

    id: str = Field(..., alias="_id", min_length=1)
    username: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = Field(
        None,
        description="Siswa, Guru, Admin, Super or Parents",
        examples=["Admin"],
    )

    model_config = ConfigDict(extra="allow", populate_by_name=True)


# ============================================================
# REQUEST MODELS
# ============================================================


class LoginRequest(BaseModel):
    """Credentials posted to /v1/users/login."""

    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        """Trim surrounding whitespace and reject blank emails."""
        if not v.strip():
            raise ValueError("Email cannot be empty")
        return v.strip()


class RefreshRequest(BaseModel):
    """Body of POST /v1/users/refresh."""

    refresh_token: str = Field(..., alias="refreshToken", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


# ============================================================
# RESPONSE MODELS
# ============================================================


class TokenPair(BaseModel):
    access_token: str = Field(..., alias="accessToken", min_length=1)
    refresh_token: str = Field(..., alias="refreshToken", min_length=1)

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class RefreshResponse(TokenPair):
    """Body returned by /v1/users/refresh.

    The backend may echo the user; the client ignores it because a refresh
    never re-checks the user.
    """

    user: Optional[dict] = None


class LoginResponse(TokenPair):
    """Body returned by /v1/users/login."""

    user: UserRecord
