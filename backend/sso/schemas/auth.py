# sso/schemas/auth.py
"""
Pydantic schemas for authentication endpoints.
Request bodies keep every field optional so that missing values produce
the service's own 400 messages instead of framework validation errors.
"""
import datetime as dt
from typing import Optional

from pydantic import BaseModel


class LoginRequest(BaseModel):
    email: Optional[str] = None     # Email or username
    username: Optional[str] = None  # Accepted as an alternative to email
    password: Optional[str] = None
    redirect: Optional[str] = None  # Post-login destination, checked against the allow-list


class RegisterIn(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None
    fullName: Optional[str] = None
    username: Optional[str] = None
    turnstileToken: Optional[str] = None
    redirect: Optional[str] = None


class ValidateTokenIn(BaseModel):
    token: Optional[str] = None


class UpdateProfileIn(BaseModel):
    name: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    currentPassword: Optional[str] = None


class DeleteAccountIn(BaseModel):
    password: Optional[str] = None


class UserOut(BaseModel):
    """
    User information returned in responses.
    Never contains the password hash or the stored session token.
    """
    id: str
    email: str
    name: str
    username: str
    avatarUrl: Optional[str] = None
    subscriptions: dict[str, str] = {}

    @classmethod
    def from_user(cls, user) -> "UserOut":
        return cls(
            id=str(user.id),
            email=user.email,
            name=user.name,
            username=user.username,
            avatarUrl=user.avatar_url or None,
            subscriptions=dict(user.subscriptions or {}),
        )


class ProfileOut(UserOut):
    createdAt: dt.datetime
    updatedAt: dt.datetime

    @classmethod
    def from_user(cls, user) -> "ProfileOut":
        base = UserOut.from_user(user).model_dump()
        return cls(**base, createdAt=user.created_at, updatedAt=user.updated_at)
