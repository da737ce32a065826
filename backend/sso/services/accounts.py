"""
Account operations: login, registration, token validation, profile
read/update and account deletion.

Routers stay thin; everything that touches the identity record goes
through here so the rules (lowercase keys, uniqueness, hashing, token
persistence) live in one place.
"""
import logging
import re
import secrets
from functools import lru_cache
from typing import Optional

from starlette.concurrency import run_in_threadpool
from tortoise.exceptions import IntegrityError, ValidationError as FieldValidationError
from tortoise.expressions import Q

from sso.core.errors import AuthError, ConflictError, NotFoundError, ValidationError
from sso.core.security import Claims, InvalidToken, TokenService, hash_password, verify_password
from sso.models.user import NAME_MAX, USERNAME_MAX, User, is_valid_email, is_valid_username
from sso.services.blob_store import BlobStore, best_effort_cleanup
from sso.services.turnstile import TurnstileVerifier

logger = logging.getLogger("uvicorn.error")

MIN_PASSWORD_LENGTH = 6
USERNAME_ATTEMPTS = 5  # Candidates tried before giving up on a free username
INVALID_CREDENTIALS = "Invalid email or password"


def _random_suffix() -> str:
    return str(100 + secrets.randbelow(900))  # Always three digits


def _with_suffix(name: str) -> str:
    return name[: USERNAME_MAX - 3] + _random_suffix()


def derive_username_base(email: str) -> str:
    """Local part of the email, lowercased, reduced to [a-z0-9]."""
    local = email.split("@", 1)[0].lower()
    return re.sub(r"[^a-z0-9]", "", local)


async def allocate_username(email: str, requested: Optional[str] = None) -> str:
    """
    Pick a free username.

    Without ``requested`` the email local part plus a 3-digit suffix is
    used. A taken candidate gets another suffix appended, up to
    USERNAME_ATTEMPTS candidates in total.
    """
    candidate = requested or _with_suffix(derive_username_base(email))
    for _ in range(USERNAME_ATTEMPTS):
        if not await User.filter(username=candidate).exists():
            return candidate
        candidate = _with_suffix(candidate)
    logger.warning("[accounts] no free username after %d attempts for %s", USERNAME_ATTEMPTS, email)
    raise ConflictError("Could not allocate a unique username")


def _normalize_username(raw: str) -> str:
    username = raw.strip().lower()
    if not is_valid_username(username):
        raise ValidationError(
            "Username must be 3-30 characters and contain only lowercase letters, numbers, and underscores"
        )
    return username


def _check_name(name: str) -> str:
    name = name.strip()
    if len(name) > NAME_MAX:
        raise ValidationError(f"Name must be at most {NAME_MAX} characters")
    return name


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    # Verified against when the identifier is unknown, so both failures cost one argon2 verify
    return hash_password(secrets.token_urlsafe(16))


async def issue_session(user: User, tokens: TokenService) -> str:
    """Issue a token reflecting the user's current claims and store it on the record."""
    token = tokens.issue(user)
    user.session_token = token
    await user.save()
    return token


async def login(identifier: Optional[str], password: Optional[str], tokens: TokenService) -> tuple[User, str]:
    """
    Authenticate by email or username.

    Unknown identifier and wrong password produce the same AuthError.
    """
    if not identifier or not password:
        raise ValidationError("Email and password are required")

    key = identifier.strip().lower()
    user = await User.filter(Q(email=key) | Q(username=key)).first()
    stored_hash = user.password_hash if user else await run_in_threadpool(_dummy_hash)
    if not await run_in_threadpool(verify_password, password, stored_hash) or not user:
        logger.info("[accounts] failed login for %r", key)
        raise AuthError(INVALID_CREDENTIALS)

    token = await issue_session(user, tokens)
    logger.info("[accounts] login ok user=%s", user.id)
    return user, token


async def register(
    *,
    email: Optional[str],
    password: Optional[str],
    full_name: Optional[str],
    tokens: TokenService,
    username: Optional[str] = None,
    turnstile_token: Optional[str] = None,
    verifier: Optional[TurnstileVerifier] = None,
    remote_ip: Optional[str] = None,
) -> tuple[User, str]:
    """Create an identity with empty subscriptions and log it in."""
    if not email or not password:
        raise ValidationError("Email and password are required")
    if not full_name or not full_name.strip():
        raise ValidationError("Full name is required")
    full_name = _check_name(full_name)
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    email = email.strip().lower()
    if not is_valid_email(email):
        raise ValidationError("Please provide a valid email address")
    requested = _normalize_username(username) if username else None

    if turnstile_token:
        if verifier is None:
            raise ValidationError("Security verification failed. Please try again.")
        await verifier.verify(turnstile_token, remote_ip=remote_ip)

    if await User.filter(email=email).exists():
        raise ConflictError("Email is already registered. Please log in.")

    final_username = await allocate_username(email, requested)
    password_hash = await run_in_threadpool(hash_password, password)
    try:
        user = await User.create(
            name=full_name,
            username=final_username,
            email=email,
            password_hash=password_hash,
            subscriptions={},
        )
    except IntegrityError as e:
        # Lost a race against a concurrent registration
        logger.info("[accounts] registration conflict for %s: %s", email, e)
        raise ConflictError("Email or username is already in use") from e
    except FieldValidationError as e:
        raise ValidationError(str(e)) from e

    token = await issue_session(user, tokens)
    logger.info("[accounts] registered user=%s username=%s", user.id, user.username)
    return user, token


async def validate_token(token: Optional[str], tokens: TokenService) -> tuple[Claims, User]:
    """
    Stateless signature/expiry check plus a liveness check on the record.

    Used by other applications during the SSO handshake.
    """
    if not token:
        raise ValidationError("Token is required", valid=False)
    try:
        claims = tokens.verify(token)
    except InvalidToken:
        raise AuthError("Invalid or expired token", valid=False)

    user = await User.get_or_none(id=claims.id)
    if not user:
        raise AuthError("User not found", valid=False)
    return claims, user


async def get_user(claims: Claims) -> User:
    user = await User.get_or_none(id=claims.id)
    if not user:
        raise NotFoundError("User not found")
    return user


async def update_profile(
    claims: Claims,
    *,
    name: Optional[str],
    username: Optional[str],
    tokens: TokenService,
    password: Optional[str] = None,
    current_password: Optional[str] = None,
) -> tuple[User, str]:
    """
    Update display name, username and optionally the password.

    Changing the password requires the current one.
    """
    if not name or not name.strip() or not username:
        raise ValidationError("Name and username are required")

    new_name = _check_name(name)
    user = await get_user(claims)
    new_username = _normalize_username(username)

    if new_username != user.username:
        taken = await User.filter(username=new_username).exclude(id=user.id).exists()
        if taken:
            raise ConflictError("Username already taken")

    new_hash = None
    if password:
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        if not current_password:
            raise ValidationError("Current password is required to change password")
        if not await run_in_threadpool(verify_password, current_password, user.password_hash):
            raise AuthError("Current password is incorrect")
        new_hash = await run_in_threadpool(hash_password, password)

    user.name = new_name
    user.username = new_username
    if new_hash:
        user.password_hash = new_hash
    try:
        await user.save()
    except IntegrityError as e:
        raise ConflictError("Username already taken") from e
    except FieldValidationError as e:
        raise ValidationError(str(e)) from e

    token = await issue_session(user, tokens)
    logger.info("[accounts] profile updated user=%s password_changed=%s", user.id, bool(new_hash))
    return user, token


async def delete_account(claims: Claims, password: Optional[str], store: BlobStore) -> None:
    """Delete the identity after confirming the password, then drop its avatar blob."""
    if not password:
        raise ValidationError("Password is required for confirmation")

    user = await get_user(claims)
    if not await run_in_threadpool(verify_password, password, user.password_hash):
        raise AuthError("Invalid password")

    avatar_path = user.avatar_path
    await user.delete()
    logger.info("[accounts] deleted user=%s", claims.id)

    if avatar_path:
        await best_effort_cleanup(store, avatar_path)
