# sso/models/user.py
"""
Database model for users.
Represents one identity shared by every MateGroup application: credentials,
profile information, avatar reference and per-application subscription tier.
"""
import re
import uuid
from enum import Enum

from tortoise import fields, models

USERNAME_RE = re.compile(r"^[a-z0-9_]+$")
USERNAME_MIN = 3
USERNAME_MAX = 30
NAME_MAX = 256
EMAIL_MAX = 256
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class SubscriptionPlan(str, Enum):
    FREE = "free"
    PREMIUM = "premium"
    PRO = "pro"
    ENTERPRISE = "enterprise"
    CUSTOM = "custom"


def is_valid_username(username: str) -> bool:
    return USERNAME_MIN <= len(username) <= USERNAME_MAX and bool(USERNAME_RE.match(username))


def is_valid_email(email: str) -> bool:
    return len(email) <= EMAIL_MAX and bool(EMAIL_RE.match(email))


class User(models.Model):
    """
    User database model.

    Security:
    - Password is stored as an argon2 hash (never plain text)
    - Username and email are unique and stored lowercase
    - avatar_url and avatar_path are always set or cleared together
    """
    id = fields.UUIDField(pk=True, default=uuid.uuid4)
    name = fields.CharField(max_length=NAME_MAX)  # Display name
    username = fields.CharField(max_length=USERNAME_MAX, unique=True, index=True)
    email = fields.CharField(max_length=EMAIL_MAX, unique=True, index=True)  # Alternate login key
    password_hash = fields.CharField(max_length=255)
    avatar_url = fields.TextField(null=True)   # Public URL for display
    avatar_path = fields.TextField(null=True)  # Storage path, needed for deletion
    subscriptions = fields.JSONField(default=dict)  # {app name: SubscriptionPlan value}
    session_token = fields.TextField(null=True)  # Most recently issued token
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        """Tortoise ORM metadata configuration."""
        table = "mategroup_users"

    def set_subscription(self, app_name: str, plan: SubscriptionPlan | str) -> None:
        """Set the plan for one application; raises ValueError on an unknown tier."""
        plan = SubscriptionPlan(plan)
        subs = dict(self.subscriptions or {})
        subs[app_name] = plan.value
        self.subscriptions = subs

    def set_avatar(self, url: str, path: str) -> None:
        self.avatar_url, self.avatar_path = url, path

    def clear_avatar(self) -> None:
        self.avatar_url, self.avatar_path = None, None
