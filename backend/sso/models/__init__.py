# sso/models/__init__.py
"""
Database models module initialization.
Exports all database models for convenient imports throughout the application.

Models exported:
- User: Identity record (credentials, profile, avatar, subscriptions)
"""
from .user import User, SubscriptionPlan
