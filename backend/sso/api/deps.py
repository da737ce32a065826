# sso/api/deps.py
from fastapi import Depends, Request

from sso.config import Settings
from sso.core.errors import AuthError
from sso.core.security import Claims, InvalidToken, TokenService
from sso.core.session import extract_token
from sso.services.blob_store import BlobStore
from sso.services.turnstile import TurnstileVerifier


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_token_service(request: Request) -> TokenService:
    return request.app.state.tokens


def get_blob_store(request: Request) -> BlobStore:
    return request.app.state.blob_store


def get_turnstile(request: Request) -> TurnstileVerifier:
    return request.app.state.turnstile


async def get_current_claims(
    request: Request,
    tokens: TokenService = Depends(get_token_service),
) -> Claims:
    """
    FastAPI dependency guarding authenticated routes.

    The token is taken from:
    1. the ``token`` cookie
    2. the ``Authorization: Bearer`` header

    On success the decoded claims are returned and also stored on
    ``request.state.claims``. No downstream handler runs on failure.

    Raises:
        AuthError (401): no token ("Unauthorized - No token provided")
        AuthError (401): invalid or expired token
    """
    token = extract_token(request)
    if not token:
        raise AuthError("Unauthorized - No token provided")

    try:
        claims = tokens.verify(token)
    except InvalidToken:
        raise AuthError("Invalid or expired token")

    request.state.claims = claims
    return claims
