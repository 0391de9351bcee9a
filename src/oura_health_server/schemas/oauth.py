"""Pydantic schemas for the OAuth token exchange."""

from pydantic import BaseModel, Field


class ProviderTokenResponse(BaseModel):
    """Token endpoint response from the provider."""

    access_token: str
    refresh_token: str | None = None
    token_type: str = "Bearer"
    expires_in: int = Field(description="Access token lifetime in seconds")
    scope: str | None = None
