# sso/core/session.py
"""
Session transport.

Decides where a token is read from (``token`` cookie, then
``Authorization: Bearer``) and which cookies carry it back to the browser,
including the pair shared across every subdomain of the parent domain.
"""
import json
from urllib.parse import quote

from fastapi import Request, Response

TOKEN_COOKIE = "token"          # Host-only cookie read by this service
SSO_TOKEN_COOKIE = "sso_token"  # Shared across subdomains, http-only
SSO_USER_COOKIE = "sso_user"    # Shared across subdomains, readable by JS

TOKEN_COOKIE_MAX_AGE = 24 * 60 * 60  # Matches token expiry
SSO_COOKIE_MAX_AGE = 60 * 60         # 1 hour


def extract_token(request: Request) -> str | None:
    """Return the first non-empty token from the cookie or the bearer header."""
    token = (request.cookies.get(TOKEN_COOKIE) or "").strip()
    if token:
        return token

    authorization = request.headers.get("authorization") or ""
    if authorization.startswith("Bearer "):
        token = authorization[len("Bearer "):].strip()
        if token:
            return token
    return None


def cookie_domain(host: str | None) -> str | None:
    """
    Compute the cookie domain shared by all subdomains of the request host.

    ``sso.example.org`` -> ``.example.org``. Hosts containing ``localhost``
    and single-label hosts get no domain (host-only cookie).

    Known limitation: only the last two labels are kept, so multi-label
    public suffixes collapse (``sso.example.co.uk`` -> ``.co.uk``).
    """
    if not host:
        return None
    host = host.split(":", 1)[0].lower()  # Drop the port
    if "localhost" in host:
        return None
    parts = [p for p in host.split(".") if p]
    if len(parts) < 2:
        return None
    return "." + ".".join(parts[-2:])


def _request_host(request: Request) -> str:
    return request.headers.get("host") or "localhost"


def set_session_cookies(response: Response, request: Request, token: str, user, *, secure: bool) -> None:
    """Attach the service token cookie and the cross-subdomain SSO pair."""
    response.set_cookie(
        TOKEN_COOKIE,
        token,
        max_age=TOKEN_COOKIE_MAX_AGE,
        httponly=True,
        secure=secure,
        samesite="lax",
    )

    domain = cookie_domain(_request_host(request))
    response.set_cookie(
        SSO_TOKEN_COOKIE,
        token,
        max_age=SSO_COOKIE_MAX_AGE,
        path="/",
        domain=domain,
        httponly=True,
        secure=secure,
        samesite="lax",
    )
    # Minimal presence blob for client-side checks; never includes the token
    user_info = json.dumps(
        {"email": user.email, "name": user.name or "", "username": user.username or ""},
        separators=(",", ":"),
    )
    response.set_cookie(
        SSO_USER_COOKIE,
        quote(user_info),
        max_age=SSO_COOKIE_MAX_AGE,
        path="/",
        domain=domain,
        httponly=False,
        secure=secure,
        samesite="lax",
    )


def clear_session_cookies(response: Response, request: Request) -> None:
    """Expire every session cookie. Safe to call when none are present."""
    response.delete_cookie(TOKEN_COOKIE, path="/")
    domain = cookie_domain(_request_host(request))
    for name in (TOKEN_COOKIE, SSO_TOKEN_COOKIE, SSO_USER_COOKIE):
        response.delete_cookie(name, path="/", domain=domain)


def validate_redirect(url: str | None, allowed: list[str]) -> str:
    """Return ``url`` when it is allow-listed, otherwise the first allowed entry."""
    if not allowed:
        return "/"
    if not url:
        return allowed[0]
    return url if url in allowed else allowed[0]
