# sso/api/routers/auth.py
from fastapi import APIRouter, Depends, Request, Response, status

from sso.api.deps import get_blob_store, get_current_claims, get_settings, get_token_service, get_turnstile
from sso.config import Settings
from sso.core.security import Claims, TokenService
from sso.core.session import clear_session_cookies, set_session_cookies, validate_redirect
from sso.schemas.auth import (
    DeleteAccountIn,
    LoginRequest,
    ProfileOut,
    RegisterIn,
    UpdateProfileIn,
    UserOut,
    ValidateTokenIn,
)
from sso.services import accounts
from sso.services.blob_store import BlobStore
from sso.services.turnstile import TurnstileVerifier


router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login")
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    settings: Settings = Depends(get_settings),
    tokens: TokenService = Depends(get_token_service),
):
    """
    Authenticate with email or username and password.

    The token is returned in the body and set as cookies (``token`` for this
    service, ``sso_token``/``sso_user`` shared with sibling subdomains).

    Errors:
        400: missing identifier or password
        401: "Invalid email or password" (same message for unknown user and bad password)
    """
    identifier = body.email or body.username
    user, token = await accounts.login(identifier, body.password, tokens)
    set_session_cookies(response, request, token, user, secure=settings.is_production)
    return {
        "success": True,
        "message": "Login successful",
        "user": UserOut.from_user(user).model_dump(),
        "token": token,
        "redirectUrl": validate_redirect(body.redirect, settings.allowed_redirects),
    }


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterIn,
    request: Request,
    response: Response,
    settings: Settings = Depends(get_settings),
    tokens: TokenService = Depends(get_token_service),
    verifier: TurnstileVerifier = Depends(get_turnstile),
):
    """
    Register a new account and log it in.

    The username is derived from the email when omitted. A Turnstile token,
    when sent, is verified before anything is written.

    Errors:
        400: missing/invalid fields, failed challenge, duplicate email
        500: challenge endpoint unavailable
    """
    user, token = await accounts.register(
        email=body.email,
        password=body.password,
        full_name=body.fullName,
        username=body.username,
        turnstile_token=body.turnstileToken,
        verifier=verifier,
        remote_ip=request.client.host if request.client else None,
        tokens=tokens,
    )
    set_session_cookies(response, request, token, user, secure=settings.is_production)
    return {
        "success": True,
        "message": "Registration successful! You have been logged in.",
        "user": UserOut.from_user(user).model_dump(),
        "token": token,
        "redirectUrl": validate_redirect(body.redirect, settings.allowed_redirects),
    }


@router.post("/validate-token")
async def validate_token(body: ValidateTokenIn, tokens: TokenService = Depends(get_token_service)):
    """
    Verify a token for another application (SSO handshake).

    Avatar and subscriptions come from the stored record, not the token.
    Error bodies carry ``valid: false``.
    """
    claims, user = await accounts.validate_token(body.token, tokens)
    user_out = UserOut.from_user(user).model_dump()
    # Identity fields as asserted by the token
    user_out.update(id=claims.id, email=claims.email, name=claims.name, username=claims.username)
    return {"valid": True, "user": user_out}


@router.post("/logout")
async def logout(request: Request, response: Response):
    """Clear every session cookie. Always succeeds, with or without a session."""
    clear_session_cookies(response, request)
    return {"success": True, "message": "Logged out successfully"}


@router.get("/profile")
async def profile(claims: Claims = Depends(get_current_claims)):
    """Return the caller's own record without secrets."""
    user = await accounts.get_user(claims)
    return ProfileOut.from_user(user).model_dump(mode="json")


@router.put("/update-profile")
async def update_profile(
    body: UpdateProfileIn,
    request: Request,
    response: Response,
    claims: Claims = Depends(get_current_claims),
    settings: Settings = Depends(get_settings),
    tokens: TokenService = Depends(get_token_service),
):
    """
    Update name and username, and optionally the password.

    A new token reflecting the changed claims is returned and set as cookies.
    Changing the password requires ``currentPassword``.
    """
    user, token = await accounts.update_profile(
        claims,
        name=body.name,
        username=body.username,
        password=body.password,
        current_password=body.currentPassword,
        tokens=tokens,
    )
    set_session_cookies(response, request, token, user, secure=settings.is_production)
    return {
        "success": True,
        "message": "Profile updated successfully",
        "user": UserOut.from_user(user).model_dump(),
        "token": token,
    }


@router.delete("/delete-account")
async def delete_account(
    request: Request,
    response: Response,
    body: DeleteAccountIn | None = None,
    claims: Claims = Depends(get_current_claims),
    store: BlobStore = Depends(get_blob_store),
):
    """Delete the caller's account after password confirmation and clear cookies."""
    await accounts.delete_account(claims, body.password if body else None, store)
    clear_session_cookies(response, request)
    return {"success": True, "message": "Account deleted successfully"}
