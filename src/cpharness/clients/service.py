from __future__ import annotations

from typing import Any

import structlog

from cpharness.auth import AuthTokenCache
from cpharness.clients.base import ControlPlaneTransport
from cpharness.clients.resource import idempotent_delete
from cpharness.core.errors import ApiError, NotFoundError, ResourceMissingError
from cpharness.models import DeploySpec, ResourceKind, Service, ServiceInstance, ServiceKey
from cpharness.results import DeleteResult

logger = structlog.get_logger()

DEFAULT_AUTOSCALE_THRESHOLD = 20


class ServiceClient:
    """Service builds, reads and sub-resources (scale, env vars, domains).

    Services are addressed by `(project_id, service_id)`; the protocol
    methods `exists` and `delete` take a `ServiceKey`.
    """

    kind = ResourceKind.service

    def __init__(
        self,
        transport: ControlPlaneTransport,
        tokens: AuthTokenCache,
        *,
        examples_repository: str,
        hosting_repository: str,
    ) -> None:
        self._transport = transport
        self._tokens = tokens
        self._examples_repository = examples_repository.rstrip("/")
        self._hosting_repository = hosting_repository

    @staticmethod
    def _path(project_id: str, service_id: str, suffix: str = "") -> str:
        return f"/projects/{project_id}/services/{service_id}{suffix}"

    async def _build(self, project_id: str, body: dict[str, Any], *, token: str, context: str) -> Any:
        try:
            return await self._transport.post(f"/projects/{project_id}/build", token=token, json=body)
        except ApiError as exc:
            raise exc.with_context(context) from exc

    async def deploy_from_repo(
        self,
        project_id: str,
        repo: str,
        *,
        deploy: bool = True,
        owner_email: str | None = None,
        password: str | None = None,
    ) -> Any:
        """Build (and by default deploy) a subfolder of the examples repository."""
        if owner_email:
            token = (await self._tokens.get_token(owner_email, password)).value
        else:
            token = await self._tokens.token_for()
        body = {
            "provider": "github",
            "repository": f"{self._examples_repository}/{repo}",
            "deploy": deploy,
        }
        data = await self._build(project_id, body, token=token, context=f"Failed to build/deploy from repo {repo}")
        logger.info("service_build_requested", project_id=project_id, repo=repo, deploy=deploy)
        return data

    async def deploy(self, spec: DeploySpec) -> Any:
        """Deploy a hosting service described by `spec`."""
        token = await self._tokens.token_for()
        specs = {"id": spec.service_id, **(spec.service_specs or {})}
        body = {
            "provider": "github",
            "repository": spec.repository or self._hosting_repository,
            "deploy": spec.deploy,
            "lcpJsons": {"ui": specs},
        }
        data = await self._build(
            spec.project_id,
            body,
            token=token,
            context=f"Failed to deploy service {spec.service_id}",
        )
        logger.info("service_deploy_requested", project_id=spec.project_id, service_id=spec.service_id)
        return data

    async def deploy_hosting(self, project_id: str, service_id: str, *, deploy: bool = True) -> Any:
        return await self.deploy(DeploySpec(project_id=project_id, service_id=service_id, deploy=deploy))

    async def deploy_hosting_with_specs(
        self,
        project_id: str,
        specs: dict[str, Any],
        *,
        deploy: bool = True,
    ) -> Any:
        """Deploy the hosting repository with a full service descriptor; `specs["id"]` names the service."""
        if not specs.get("id"):
            raise ValueError("Service specs must include an id")
        spec = DeploySpec(project_id=project_id, service_id=specs["id"], deploy=deploy, service_specs=specs)
        return await self.deploy(spec)

    async def fetch(self, project_id: str, service_id: str) -> Service:
        token = await self._tokens.token_for()
        try:
            data = await self._transport.get(self._path(project_id, service_id), token=token)
        except ApiError as exc:
            raise exc.with_context(f"Failed to fetch service {service_id} in {project_id}") from exc
        return Service.model_validate({"serviceId": service_id, "projectId": project_id, **(data or {})})

    async def safe_fetch(self, project_id: str, service_id: str) -> Service | None:
        try:
            return await self.fetch(project_id, service_id)
        except NotFoundError:
            return None

    async def exists(self, key: ServiceKey) -> bool:
        return await self.safe_fetch(*key) is not None

    async def fetch_instances(self, project_id: str, service_id: str) -> list[ServiceInstance]:
        token = await self._tokens.token_for()
        try:
            data = await self._transport.get(self._path(project_id, service_id, "/instances"), token=token)
        except ApiError as exc:
            raise exc.with_context("Fetching service instances failed.") from exc
        return [ServiceInstance.model_validate(item) for item in data or []]

    async def get_current_instance(self, project_id: str, service_id: str) -> str:
        """Container id of the first instance; meant for services with scale 1."""
        instances = await self.fetch_instances(project_id, service_id)
        if not instances:
            raise ResourceMissingError(
                f"Service {service_id} in {project_id} has no running instances",
                details={"project_id": project_id, "service_id": service_id},
            )
        return instances[0].container_id

    async def fetch_env_var(self, project_id: str, service_id: str, name: str) -> Any:
        token = await self._tokens.token_for()
        try:
            return await self._transport.get(
                self._path(project_id, service_id, f"/environment-variables/{name}"),
                token=token,
            )
        except ApiError as exc:
            raise exc.with_context(f"Error getting service env var {name}") from exc

    async def fetch_env_vars(self, project_id: str, service_id: str) -> Any:
        token = await self._tokens.token_for()
        try:
            return await self._transport.get(
                self._path(project_id, service_id, "/environment-variables"),
                token=token,
            )
        except ApiError as exc:
            raise exc.with_context("Error getting service env vars") from exc

    async def replace_env_vars(self, project_id: str, service_id: str, env: dict[str, str]) -> None:
        token = await self._tokens.token_for()
        try:
            await self._transport.put(
                self._path(project_id, service_id, "/environment-variables"),
                token=token,
                json={"env": dict(env)},
            )
        except ApiError as exc:
            raise exc.with_context("Error replacing service env vars") from exc

    async def update_env_var(self, project_id: str, service_id: str, name: str, value: str) -> None:
        token = await self._tokens.token_for()
        try:
            await self._transport.put(
                self._path(project_id, service_id, f"/environment-variables/{name}"),
                token=token,
                json={"value": value},
            )
        except ApiError as exc:
            raise exc.with_context(
                f"Error updating env var {name} for service {service_id} on project {project_id}"
            ) from exc

    async def replace_custom_domains(self, project_id: str, service_id: str, domains: list[str]) -> None:
        token = await self._tokens.token_for()
        try:
            await self._transport.put(
                self._path(project_id, service_id, "/custom-domains"),
                token=token,
                json={"value": list(domains)},
            )
        except ApiError as exc:
            raise exc.with_context("Error replacing service custom domain") from exc

    async def restart(self, project_id: str, service_id: str) -> None:
        token = await self._tokens.token_for()
        try:
            await self._transport.post(self._path(project_id, service_id, "/restart"), token=token)
        except ApiError as exc:
            raise exc.with_context(f"Error restarting service {service_id}") from exc
        logger.info("service_restart_requested", project_id=project_id, service_id=service_id)

    async def scale(self, project_id: str, service_id: str, value: int) -> None:
        token = await self._tokens.token_for()
        try:
            await self._transport.patch(
                self._path(project_id, service_id, "/scale"),
                token=token,
                json={"value": value},
            )
        except ApiError as exc:
            raise exc.with_context(f"Error updating scale for service {service_id}") from exc
        logger.info("service_scale_requested", project_id=project_id, service_id=service_id, scale=value)

    async def set_autoscale(
        self,
        project_id: str,
        service_id: str,
        threshold: int = DEFAULT_AUTOSCALE_THRESHOLD,
    ) -> None:
        """Set the cpu and memory autoscale thresholds to `threshold` percent."""
        await self.update(project_id, service_id, {"autoscale": {"memory": threshold, "cpu": threshold}})

    async def set_scale_data(self, project_id: str, service_id: str, **fields: Any) -> None:
        """Patch scale data (autoscaleEnabled, manualScaleEnabled, ...); no-op when empty."""
        if not fields:
            return
        token = await self._tokens.token_for()
        try:
            await self._transport.patch(
                self._path(project_id, service_id, "/scale-data"),
                token=token,
                json=fields,
            )
        except ApiError as exc:
            raise exc.with_context(f"Error updating scaleData for service {service_id}") from exc

    async def stop(self, project_id: str, service_id: str) -> None:
        token = await self._tokens.token_for()
        try:
            await self._transport.patch(self._path(project_id, service_id, "/stop"), token=token)
        except ApiError as exc:
            raise exc.with_context(f"Error stopping service {service_id}") from exc

    async def update(self, project_id: str, service_id: str, data: dict[str, Any]) -> None:
        """Patch a service through the admin endpoint.

        The admin endpoint is keyed by the service uid, so the service is
        fetched first.
        """
        service = await self.fetch(project_id, service_id)
        if service.id is None:
            raise ResourceMissingError(f"Service {service_id} in {project_id} has no uid")
        token = await self._tokens.token_for()
        try:
            await self._transport.patch(f"/admin/services/{service.id}", token=token, json=data)
        except ApiError as exc:
            raise exc.with_context(f"Error updating service {service_id}") from exc

    async def delete(self, key: ServiceKey) -> DeleteResult:
        project_id, service_id = key

        async def _delete() -> None:
            token = await self._tokens.token_for()
            await self._transport.delete(self._path(project_id, service_id), token=token)

        return await idempotent_delete(
            self.kind,
            key,
            _delete,
            context=f"Failed to delete service {service_id} from {project_id}",
        )
