# sso/schemas/storage.py
"""Pydantic schemas for avatar storage endpoints."""
from typing import Optional

from pydantic import BaseModel


class UploadOut(BaseModel):
    success: bool = True
    path: str  # Storage path inside the bucket
    url: str   # Public URL


class AvatarOut(BaseModel):
    avatarUrl: Optional[str] = None
