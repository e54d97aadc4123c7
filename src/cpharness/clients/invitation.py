from __future__ import annotations

import base64

import structlog

from cpharness.auth import AuthTokenCache
from cpharness.clients.base import ControlPlaneTransport
from cpharness.core.errors import ApiError

logger = structlog.get_logger()


def invitation_key(email: str) -> str:
    """Key under which a project stores the invitation token for `email`."""
    return base64.b64encode(email.encode("utf-8")).decode("ascii")


class InvitationClient:
    """Project invitations: send, then redeem with the token."""

    def __init__(self, transport: ControlPlaneTransport, tokens: AuthTokenCache) -> None:
        self._transport = transport
        self._tokens = tokens

    async def send(self, project_id: str, email: str, role: str) -> None:
        """Invite `email` to the project with role admin, contributor or guest."""
        token = await self._tokens.token_for()
        try:
            await self._transport.post(
                f"/projects/{project_id}/invite",
                token=token,
                json={"email": email, "role": role},
            )
        except ApiError as exc:
            raise exc.with_context(f"Failed to invite user {email} to {project_id}.") from exc
        logger.info("invitation_sent", project_id=project_id, email=email, role=role)

    async def accept(self, project_id: str, email: str, invitation_token: str) -> None:
        token = await self._tokens.token_for()
        try:
            await self._transport.get(
                f"/projects/{project_id}/invite",
                token=token,
                params={"email": email, "invitationToken": invitation_token},
            )
        except ApiError as exc:
            raise exc.with_context(f"Failed to accept invitation for {email} on {project_id}.") from exc
        logger.info("invitation_accepted", project_id=project_id, email=email)
