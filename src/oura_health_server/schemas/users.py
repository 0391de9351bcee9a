"""Pydantic schemas for registration, login and profile APIs."""

from datetime import datetime

from pydantic import BaseModel, Field


class RegisterRequest(BaseModel):
    """Request body for user registration."""

    username: str = Field(description="Unique username")
    email: str = Field(description="Unique email address")
    password: str = Field(description="Password, at least 8 characters")


class LoginRequest(BaseModel):
    """Request body for login."""

    username: str
    password: str


class LoginResponse(BaseModel):
    """Issued JWT."""

    token: str = Field(description="Bearer token for /api/v1 routes")


class UserResponse(BaseModel):
    """Public view of a user (never includes the password hash)."""

    id: str
    username: str
    email: str
    is_active: bool
    created_at: datetime
    last_login: datetime | None = None


class ProfileUpdate(BaseModel):
    """Partial profile update; omitted fields are left unchanged."""

    email: str | None = Field(default=None, description="New email address")
    password: str | None = Field(default=None, description="New password")
