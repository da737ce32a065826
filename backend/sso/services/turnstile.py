"""
Cloudflare Turnstile verification (anti-automation challenge).

Only consulted when the client sends a challenge token at registration.
A failed challenge is a validation error; an unreachable or misconfigured
endpoint is an upstream error. Neither is ever bypassed.
"""
import logging
from typing import Optional

import httpx

from sso.core.errors import UpstreamError, ValidationError

logger = logging.getLogger("uvicorn.error")


class TurnstileVerifier:
    def __init__(
        self,
        secret_key: Optional[str],
        verify_url: str = "https://challenges.cloudflare.com/turnstile/v0/siteverify",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._secret_key = secret_key
        self.verify_url = verify_url
        self._timeout = timeout
        self._transport = transport

    async def verify(self, token: str, remote_ip: Optional[str] = None) -> None:
        """
        Verify a challenge token.

        Raises:
            ValidationError: the challenge was rejected
            UpstreamError: the endpoint failed or no secret is configured
        """
        if not self._secret_key:
            logger.error("[turnstile] TURNSTILE_SECRET_KEY is not configured")
            raise UpstreamError("Security verification error")

        payload = {"secret": self._secret_key, "response": token}
        if remote_ip:
            payload["remoteip"] = remote_ip

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(self.verify_url, json=payload)
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("[turnstile] verification request failed: %s", e, exc_info=True)
            raise UpstreamError("Security verification error") from e

        if not data.get("success"):
            logger.info("[turnstile] challenge rejected: %s", data.get("error-codes"))
            raise ValidationError("Security verification failed. Please try again.")
