"""
Session data models.

Wire models (pydantic) for the backend's auth payloads, and the Session
dataclass that the TokenStore hands out.
"""

from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class UserProfile(BaseModel):
    """
    Cached identity of the logged-in user.

    Attributes:
        id: Backend user id
        full_name: Display name
        username: Login name
        email: Email address
        phone_number: Phone number
        role: Role name as issued by the backend (see permissions.Role)
        active: Whether the account is enabled
    """
    model_config = ConfigDict(populate_by_name=True)

    id: int
    full_name: Optional[str] = Field(default=None, alias="fullName")
    username: str
    email: Optional[str] = None
    phone_number: Optional[str] = Field(default=None, alias="phoneNumber")
    role: str
    active: bool = True


class TokenPair(BaseModel):
    """Access token plus the refresh token used to renew it."""
    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(alias="accessToken")
    refresh_token: str = Field(alias="refreshToken")


class LoginResponse(BaseModel):
    """Body of POST /api/auth/login."""
    model_config = ConfigDict(populate_by_name=True)

    token_pair: TokenPair = Field(alias="tokenPair")
    user: UserProfile


class RefreshResponse(BaseModel):
    """
    Body of POST /api/auth/refresh-token.

    The refresh token is optional: when the backend does not rotate it the
    stored one stays valid.
    """
    model_config = ConfigDict(populate_by_name=True)

    access_token: Optional[str] = Field(default=None, alias="accessToken")
    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")


@dataclass
class Session:
    """
    A fully present session.

    Attributes:
        access_token: Short-lived bearer credential
        refresh_token: Credential exchanged for a new access token
        user: Cached user profile
    """
    access_token: str
    refresh_token: str
    user: UserProfile
