from __future__ import annotations

import asyncio
from typing import Any

import structlog

from cpharness.auth import AuthTokenCache
from cpharness.clients.base import ControlPlaneTransport
from cpharness.clients.resource import idempotent_delete
from cpharness.core.errors import ApiError, ConfigurationError, NotFoundError, ResourceMissingError
from cpharness.models import ResourceKind, User, UserSpec
from cpharness.results import DeleteResult
from cpharness.retry import Sleep

logger = structlog.get_logger()

RESET_CODE_KEY_PREFIX = "resetcode-redis:"


class UserClient:
    """User accounts: creation, plan and scope updates, deletion by id or email."""

    kind = ResourceKind.user

    def __init__(
        self,
        transport: ControlPlaneTransport,
        tokens: AuthTokenCache,
        *,
        default_password: str | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._transport = transport
        self._tokens = tokens
        self._default_password = default_password
        self._sleep = sleep

    async def create(self, spec: UserSpec) -> User:
        """Sign up a user. Unauthenticated, like a real sign-up.

        A failed create may still have left a partial account behind, so a
        best-effort delete by email runs before the error is raised.
        """
        password = spec.password or self._default_password
        if not password:
            raise ConfigurationError("No password configured for new users")

        body: dict[str, Any] = {
            "email": spec.email,
            "firstName": spec.first_name,
            "lastName": spec.last_name,
            "password": password,
        }
        if spec.confirmed:
            body["confirmed"] = ""

        try:
            data = await self._transport.post("/user/create", json=body)
        except ApiError as exc:
            cleanup = await self.delete(spec.email)
            logger.info("partial_user_cleanup", email=spec.email, outcome=str(cleanup.outcome))
            raise exc.with_context(f"Failed to create user {spec.email}") from exc

        logger.info("user_created", email=spec.email)
        return User.model_validate(data)

    async def fetch_by_email(self, email: str) -> User | None:
        token = await self._tokens.token_for()
        try:
            data = await self._transport.get("/admin/users", token=token, params={"email": email})
        except NotFoundError:
            return None
        except ApiError as exc:
            raise exc.with_context(f"Failed to fetch user {email}") from exc
        return User.model_validate(data) if data else None

    async def fetch_by_id(self, user_id: str) -> User:
        token = await self._tokens.token_for()
        try:
            data = await self._transport.get("/admin/users", token=token, params={"id": user_id})
        except ApiError as exc:
            raise exc.with_context(f"Failed to fetch user {user_id}") from exc
        return User.model_validate(data)

    async def fetch_all(self) -> list[User]:
        token = await self._tokens.token_for()
        try:
            data = await self._transport.get("/admin/users", token=token, params={"all": "true"})
        except ApiError as exc:
            raise exc.with_context("Unable to fetch all users") from exc
        return [User.model_validate(item) for item in data or []]

    async def exists(self, identifier: str) -> bool:
        """Look up by email when `identifier` contains `@`, by id otherwise."""
        if "@" in identifier:
            return await self.fetch_by_email(identifier) is not None
        try:
            await self.fetch_by_id(identifier)
        except NotFoundError:
            return False
        return True

    async def update(self, user_id: str, data: dict[str, Any]) -> None:
        token = await self._tokens.token_for()
        try:
            await self._transport.patch(f"/admin/users/{user_id}", token=token, json=data)
        except ApiError as exc:
            raise exc.with_context(f"Failed to update user {user_id}") from exc

    async def update_plan(self, user_id: str, plan_id: str) -> None:
        await self.update(user_id, {"planId": plan_id})
        logger.info("user_plan_updated", user_id=user_id, plan_id=plan_id)

    async def add_supported_scope(self, scope: str, email: str) -> list[str]:
        """Append `scope` to the user's supported scopes if missing.

        Reads the current scopes right before writing; a concurrent writer
        between the read and the patch is overwritten.
        """
        user = await self.fetch_by_email(email)
        if user is None:
            raise ResourceMissingError(f"User {email} does not exist", details={"email": email})
        scopes = list(user.supported_scopes)
        if scope in scopes:
            return scopes
        scopes.append(scope)
        await self.update(user.id, {"supportedScopes": scopes})
        return scopes

    async def delete(self, identifier: str) -> DeleteResult:
        """Delete by id, or by email when `identifier` contains `@`."""
        if "@" not in identifier:
            return await self.delete_by_id(identifier)

        try:
            user = await self.fetch_by_email(identifier)
        except ApiError as exc:
            logger.warning("delete_lookup_failed", email=identifier, diagnostic=exc.message)
            return DeleteResult.failed(self.kind, identifier, exc.message)
        if user is None:
            return DeleteResult.already_absent(self.kind, identifier)
        return await self.delete_by_id(user.id)

    async def delete_by_id(self, user_id: str) -> DeleteResult:
        async def _delete() -> None:
            token = await self._tokens.token_for()
            await self._transport.delete(f"/admin/user/{user_id}", token=token, params={"force": "true"})

        return await idempotent_delete(
            self.kind,
            user_id,
            _delete,
            context=f"WARNING: Failed to delete user {user_id}",
        )

    async def get_reset_code(self, user_id: str, *, settle_seconds: float = 3.0) -> str:
        """Password reset code for a user, read from the admin key dump."""
        await self._sleep(settle_seconds)
        token = await self._tokens.token_for()
        try:
            keys = await self._transport.get("/admin/redis", token=token)
        except ApiError as exc:
            raise exc.with_context("Failed to fetch redis.") from exc

        needle = f"{RESET_CODE_KEY_PREFIX}{user_id}:"
        for key in keys or []:
            if needle in key:
                return key.split(needle, 1)[1]
        raise ResourceMissingError(f"Unable to find the resetcode for {user_id}.")
