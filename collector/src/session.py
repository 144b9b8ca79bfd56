"""
Authenticated HTTPS session with the local energy gateway.

Logs in once with the customer password, keeps the returned session token
and attaches it as the ``AuthCookie`` cookie to every later request. Designed
for a flaky home network:

- ``login()`` raises :class:`LoginError` on any failure; the daemon treats it
  as fatal at startup.
- ``fetch_json()`` never raises for transport, status or decoding problems.
  It logs the cause once at ERROR and returns ``None`` ("no data"). There is
  no retry loop here; the next scheduled tick is the retry.

The gateway serves a self-signed certificate, so TLS verification is turned
off for this client only.

CHANGELOG:
- 2026-10-18: Log login responses at DEBUG with the token masked
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import hashlib
import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

LOGIN_PATH = "/api/login/Basic"
"""Gateway endpoint that exchanges the customer password for a token."""

LOGIN_USERNAME = "customer"
LOGIN_EMAIL = "nobody@example.com"

AUTH_COOKIE_NAME = "AuthCookie"

DEFAULT_TIMEOUT_S: float = 10.0
"""Per-request timeout in seconds."""


def masked_secret(value: str | None) -> str:
    """Return a short non-reversible fingerprint for diagnostics."""
    if not value:
        return "empty"
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()[:10]
    return f"len={len(value)} sha256={digest}"


def _redacted_login_body(response: httpx.Response) -> str:
    """Return the login response body with the token replaced by its fingerprint."""
    try:
        payload = response.json()
    except ValueError:
        return response.text
    if isinstance(payload, dict) and isinstance(payload.get("token"), str):
        payload = dict(payload, token=masked_secret(payload["token"]))
    return str(payload)


class LoginError(Exception):
    """Raised when the gateway login fails for any reason."""


class SessionClient:
    """HTTPS JSON client bound to one gateway and one login session.

    The token is set once by :meth:`login` and never refreshed. If the
    gateway expires it, later fetches fail and return ``None`` until the
    process is restarted.

    Args:
        host: Gateway IP address or hostname.
        password: Customer password for the login call.
        timeout_s: Per-request timeout in seconds.
        transport: Optional httpx transport, used by tests to inject
            ``httpx.MockTransport``.

    Usage::

        async with SessionClient("192.168.1.50", password) as client:
            await client.login()
            payload = await client.fetch_json("/api/system_status/soe")
    """

    def __init__(
        self,
        host: str,
        password: str,
        *,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._host = host
        self._password = password
        self._token: str | None = None
        # Self-signed device certificate: verification is deliberately off.
        self._client = httpx.AsyncClient(
            base_url=f"https://{host}",
            verify=False,
            timeout=timeout_s,
            transport=transport,
        )

    async def __aenter__(self) -> SessionClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def host(self) -> str:
        """Gateway host this client talks to."""
        return self._host

    @property
    def token(self) -> str | None:
        """Session token, or None before a successful login."""
        return self._token

    async def login(self) -> str:
        """Authenticate against the gateway and store the session token.

        Returns:
            The session token.

        Raises:
            LoginError: If the gateway is unreachable, answers with a
                non-2xx status, returns a body that is not a JSON object, or
                the body carries no token.
        """
        body = {
            "username": LOGIN_USERNAME,
            "password": self._password,
            "email": LOGIN_EMAIL,
            "force_sm_off": False,
        }
        logger.debug("POST %s (username=%s)", LOGIN_PATH, LOGIN_USERNAME)

        try:
            response = await self._client.post(LOGIN_PATH, json=body)
        except httpx.HTTPError as exc:
            raise LoginError(f"login request to {self._host} failed: {exc}") from exc

        logger.debug(
            "POST %s -> HTTP %d: %s",
            LOGIN_PATH,
            response.status_code,
            _redacted_login_body(response),
        )

        if not response.is_success:
            raise LoginError(
                f"login to {self._host} rejected with HTTP {response.status_code}"
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise LoginError(f"login response from {self._host} is not JSON") from exc

        token = payload.get("token") if isinstance(payload, dict) else None
        if not isinstance(token, str) or not token:
            raise LoginError(f"login response from {self._host} carries no token")

        self._token = token
        logger.info("Logged in to gateway %s", self._host)
        return token

    async def fetch_json(
        self,
        path: str,
        body: dict[str, Any] | None = None,
    ) -> Any | None:
        """Request *path* and return its decoded JSON body.

        Issues a GET when *body* is None, otherwise a POST carrying *body* as
        JSON. The session cookie is attached when a token is present.

        Args:
            path: Absolute API path, e.g. ``/api/meters/aggregates``.
            body: Optional JSON body for a POST.

        Returns:
            The decoded JSON value, or ``None`` when the request failed, the
            status was not 2xx, the body was empty or the body was not JSON.
        """
        method = "GET" if body is None else "POST"
        headers = {}
        if self._token is not None:
            headers["Cookie"] = f"{AUTH_COOKIE_NAME}={self._token}"

        logger.debug("%s %s body=%s", method, path, body)
        try:
            response = await self._client.request(
                method, path, json=body, headers=headers
            )
        except httpx.HTTPError as exc:
            logger.error("%s %s failed: %s", method, path, exc)
            return None

        logger.debug(
            "%s %s -> HTTP %d: %s", method, path, response.status_code, response.text
        )

        if not response.is_success:
            logger.error("%s %s returned HTTP %d", method, path, response.status_code)
            return None

        if not response.content.strip():
            logger.error("%s %s returned an empty body", method, path)
            return None

        try:
            return response.json()
        except ValueError as exc:
            logger.error("%s %s returned malformed JSON: %s", method, path, exc)
            return None

    async def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._client.aclose()
