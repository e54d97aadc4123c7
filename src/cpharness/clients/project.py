from __future__ import annotations

from typing import Any

import structlog

from cpharness.auth import AuthTokenCache
from cpharness.clients.base import ControlPlaneTransport
from cpharness.clients.resource import idempotent_delete
from cpharness.core.errors import ApiError, NotFoundError
from cpharness.models import Project, ProjectSpec, ResourceKind
from cpharness.naming import random_environment_name
from cpharness.results import DeleteResult

logger = structlog.get_logger()


class ProjectClient:
    """Project CRUD against the control plane.

    Reads go through the admin endpoints with the operator token; creation is
    attributed to `owner_email` when one is given.
    """

    kind = ResourceKind.project

    def __init__(
        self,
        transport: ControlPlaneTransport,
        tokens: AuthTokenCache,
        *,
        default_cluster: str,
    ) -> None:
        self._transport = transport
        self._tokens = tokens
        self._default_cluster = default_cluster

    async def create(self, spec: ProjectSpec) -> Project:
        token = await self._tokens.token_for(spec.owner_email)
        try:
            data = await self._transport.post(
                "/projects",
                token=token,
                json=spec.payload(self._default_cluster),
            )
        except ApiError as exc:
            raise exc.with_context(f"Failed to create project {spec.project_id}") from exc

        logger.info("project_created", project_id=spec.project_id, environment=spec.environment)
        return Project.model_validate(data or {"projectId": spec.project_id})

    def environment_spec(
        self,
        root_project_id: str,
        env_name: str | None = None,
        *,
        owner_email: str | None = None,
        cluster: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ProjectSpec:
        """Spec for a child environment `{root}-{env}` of a root project."""
        env_name = env_name or random_environment_name()
        return ProjectSpec(
            project_id=f"{root_project_id}-{env_name}",
            environment=True,
            owner_email=owner_email or self._tokens.operator_email,
            cluster=cluster,
            metadata=metadata,
        )

    async def create_environment(
        self,
        root_project_id: str,
        env_name: str | None = None,
        **spec_fields: Any,
    ) -> Project:
        return await self.create(self.environment_spec(root_project_id, env_name, **spec_fields))

    async def fetch(self, project_id: str) -> Project:
        token = await self._tokens.token_for()
        try:
            data = await self._transport.get(f"/admin/projects/{project_id}", token=token)
        except ApiError as exc:
            raise exc.with_context(f"Failed to fetch project {project_id}") from exc
        return Project.model_validate(data)

    async def safe_fetch(self, project_id: str) -> Project | None:
        """Like fetch, but None when the project does not exist."""
        try:
            return await self.fetch(project_id)
        except NotFoundError:
            return None

    async def exists(self, project_id: str) -> bool:
        return await self.safe_fetch(project_id) is not None

    async def fetch_all(self) -> list[Project]:
        token = await self._tokens.token_for()
        try:
            data = await self._transport.get("/admin/projects", token=token)
        except ApiError as exc:
            raise exc.with_context("Unable to fetch all projects") from exc
        return [Project.model_validate(item) for item in data or []]

    async def fetch_uid(self, project_id: str) -> str | None:
        project = await self.fetch(project_id)
        return project.id

    async def fetch_master_token(self, project_id: str) -> str:
        token = await self._tokens.token_for()
        try:
            data = await self._transport.get(f"/projects/{project_id}/masterToken", token=token)
        except ApiError as exc:
            raise exc.with_context("Failed to fetch project master token.") from exc
        return data["masterToken"]

    async def get_owner_email(self, project_id: str) -> str:
        project = await self.fetch(project_id)
        token = await self._tokens.token_for()
        try:
            data = await self._transport.get(
                "/admin/users",
                token=token,
                params={"id": project.owner_id},
            )
        except ApiError as exc:
            raise exc.with_context(f"Failed to fetch owner of project {project_id}") from exc
        return data["email"]

    async def update(self, project_id: str, data: dict[str, Any]) -> None:
        token = await self._tokens.token_for()
        try:
            await self._transport.patch(f"/admin/projects/{project_id}", token=token, json=data)
        except ApiError as exc:
            raise exc.with_context(f"Unable to update project {project_id}") from exc

    async def update_metadata(self, project_id: str, metadata: dict[str, Any]) -> dict[str, Any]:
        """Merge `metadata` into the project's current metadata.

        Re-fetches right before writing; concurrent writers lose to whoever
        fetched last.
        """
        current = await self.fetch(project_id)
        merged = {**current.metadata, **metadata}
        token = await self._tokens.token_for()
        try:
            await self._transport.patch(f"/projects/{project_id}", token=token, json={"metadata": merged})
        except ApiError as exc:
            raise exc.with_context(f"Error updating project metadata for {project_id}") from exc
        return merged

    async def allow_support_access(self, project_id: str, owner_email: str, allow: bool = True) -> None:
        """Toggle support access; only the project owner may do this."""
        token = await self._tokens.token_for(owner_email)
        try:
            await self._transport.patch(
                f"/projects/{project_id}/support-access",
                token=token,
                json={"allow": allow},
            )
        except ApiError as exc:
            raise exc.with_context(f"Error setting support access on {project_id}") from exc

    async def delete(self, project_id: str) -> DeleteResult:
        """Delete a project; deleting a root project cascades to its environments."""

        async def _delete() -> None:
            token = await self._tokens.token_for()
            await self._transport.delete(f"/projects/{project_id}", token=token)

        return await idempotent_delete(
            self.kind,
            project_id,
            _delete,
            context=f"WARNING: Failed to delete project {project_id}",
        )
