from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Mapping

import structlog

from cpharness.core.errors import ApiError, ConfigurationError
from cpharness.models import AuthToken

if TYPE_CHECKING:
    from cpharness.clients.base import ControlPlaneTransport

logger = structlog.get_logger()


class AuthTokenCache:
    """Per-identity bearer tokens, fetched on first use and kept for the
    lifetime of the cache.

    Passed explicitly to every resource client. First use of an identity is
    serialised by a per-identity lock, so concurrent callers trigger exactly
    one login. A failed login leaves the slot empty and the next call logs in
    again. Tokens are never refreshed on expiry.
    """

    def __init__(
        self,
        transport: ControlPlaneTransport,
        *,
        operator_email: str,
        operator_password: str | None = None,
        default_password: str | None = None,
        passwords: Mapping[str, str] | None = None,
    ) -> None:
        self._transport = transport
        self._operator_email = operator_email
        self._default_password = default_password
        self._passwords: dict[str, str] = dict(passwords or {})
        if operator_password:
            self._passwords[operator_email] = operator_password
        self._tokens: dict[str, AuthToken] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def operator_email(self) -> str:
        return self._operator_email

    def is_cached(self, email: str) -> bool:
        return email in self._tokens

    def _password_for(self, email: str, password: str | None) -> str:
        resolved = password or self._passwords.get(email) or self._default_password
        if not resolved:
            raise ConfigurationError(f"No password configured for {email}")
        return resolved

    async def get_token(self, email: str, password: str | None = None) -> AuthToken:
        """Return the cached token for `email`, logging in on first use."""
        cached = self._tokens.get(email)
        if cached is not None:
            return cached

        lock = self._locks.setdefault(email, asyncio.Lock())
        async with lock:
            cached = self._tokens.get(email)
            if cached is not None:
                return cached
            token = await self._login(email, self._password_for(email, password))
            self._tokens[email] = token
            return token

    async def operator_token(self) -> AuthToken:
        """Token for the harness operator ("team user") identity."""
        return await self.get_token(self._operator_email)

    async def token_for(self, email: str | None = None, password: str | None = None) -> str:
        """Bearer value for `email`, or for the operator when no owner is given."""
        if email is None or email == self._operator_email:
            token = await self.operator_token()
        else:
            token = await self.get_token(email, password)
        return token.value

    async def _login(self, email: str, password: str) -> AuthToken:
        try:
            data = await self._transport.post(
                "/login",
                json={"email": email, "password": password, "extend": True},
            )
        except ApiError as exc:
            error = exc.with_context(f"WARNING: Failed to login user {email}")
            logger.error("login_failed", email=email, diagnostic=error.message)
            raise error from exc

        logger.info("login_succeeded", email=email)
        return AuthToken(token=data["token"], email=email)
