# sso/core/security.py
"""
Security module for authentication.
Handles password hashing, JWT token creation/validation and the claims
value type carried through authenticated requests.
"""
import datetime as dt
import logging

import jwt  # PyJWT
from passlib.context import CryptContext
from pydantic import BaseModel

logger = logging.getLogger("uvicorn.error")

# Password hashing context
# Argon2 is a modern, salted, memory-hard password hashing algorithm
pwd_context = CryptContext(
    schemes=["argon2"],  # Use Argon2 for password hashing
    deprecated="auto",   # Automatically handle deprecated schemes
)

JWT_ALG = "HS256"  # JWT signing algorithm (HMAC SHA-256)
DEFAULT_TOKEN_TTL = dt.timedelta(hours=24)


def hash_password(plain: str) -> str:
    """
    Hash a plain text password using Argon2.

    Returns:
        Hashed password string (safe to store in database)
    """
    return pwd_context.hash(plain)


def verify_password(plain: str, hashed: str | None) -> bool:
    """
    Verify a plain text password against a hashed password.

    A malformed or unknown hash counts as a mismatch instead of raising.
    """
    if not plain or not hashed:
        return False
    try:
        return pwd_context.verify(plain, hashed)
    except (ValueError, TypeError) as exc:
        logger.warning("[security] password verification error: %s", exc)
        return False


class InvalidToken(Exception):
    """Any token failure: bad signature, malformed, expired or wrong claims."""


class Claims(BaseModel):
    """Identity claims embedded in a session token."""
    id: str
    email: str
    name: str
    username: str
    subscriptions: dict[str, str] = {}

    @classmethod
    def from_user(cls, user) -> "Claims":
        # JSONField may hand back None on legacy rows
        subs = {str(k): str(v) for k, v in (user.subscriptions or {}).items()}
        return cls(
            id=str(user.id),
            email=user.email,
            name=user.name,
            username=user.username,
            subscriptions=subs,
        )


class TokenService:
    """
    Issues and verifies HS256 session tokens.

    One instance is created per application with the configured secret and
    stored on ``app.state.tokens``.
    """

    def __init__(self, secret: str, ttl: dt.timedelta = DEFAULT_TOKEN_TTL):
        if not secret:
            raise ValueError("JWT secret must not be empty")
        self._secret = secret
        self.ttl = ttl

    def issue(self, user, now: dt.datetime | None = None) -> str:
        """
        Create a signed token for an identity record.

        Token payload: id, email, name, username, subscriptions (plain dict),
        plus iat and exp (iat + ttl).
        """
        now = now or dt.datetime.now(dt.timezone.utc)
        payload = Claims.from_user(user).model_dump()
        payload["iat"] = now
        payload["exp"] = now + self.ttl
        return jwt.encode(payload, self._secret, algorithm=JWT_ALG)

    def verify(self, token: str) -> Claims:
        """
        Decode and validate a token.

        Raises:
            InvalidToken: for every failure; the specific reason is only logged
        """
        if not token:
            raise InvalidToken("empty token")
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[JWT_ALG],
                options={"require": ["exp"]},
            )
        except jwt.ExpiredSignatureError as exc:
            logger.info("[security] rejected expired token")
            raise InvalidToken("expired") from exc
        except jwt.InvalidTokenError as exc:
            logger.info("[security] rejected invalid token: %s", exc)
            raise InvalidToken(str(exc)) from exc

        try:
            return Claims.model_validate(payload)
        except ValueError as exc:
            logger.info("[security] token claims malformed: %s", exc)
            raise InvalidToken("malformed claims") from exc
