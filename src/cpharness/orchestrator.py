"""Lifecycle orchestration: create-and-track, absence checks and service waits."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict

import structlog

from cpharness.clients.invitation import InvitationClient, invitation_key
from cpharness.clients.project import ProjectClient
from cpharness.clients.resource import ResourceClient
from cpharness.clients.service import ServiceClient
from cpharness.clients.user import UserClient
from cpharness.core.errors import InvitationTokenMissingError, ResourceMissingError, ResourceStillExistsError
from cpharness.models import DeploySpec, Project, ProjectSpec, ResourceKind, ServiceKey, User, UserSpec
from cpharness.naming import random_project_id, random_user_email
from cpharness.polling import (
    ABSENCE_INTERVAL_SECONDS,
    ABSENCE_TIMEOUT_SECONDS,
    NEW_INSTANCE_POLL,
    READY_INTERVAL_SECONDS,
    READY_TIMEOUT_SECONDS,
    STATUS_POLL,
    PollConfig,
    PollWaiter,
)
from cpharness.retry import RetryConfig, RetryExecutor
from cpharness.teardown import TeardownRegistry

logger = structlog.get_logger()

DEFAULT_PLAN_ID = "premium"


class LifecycleOrchestrator:
    """Composes the resource clients with retry and polling.

    Anything created through `create_and_track` is registered for teardown
    only after the remote create succeeded.
    """

    def __init__(
        self,
        *,
        projects: ProjectClient,
        services: ServiceClient,
        users: UserClient,
        invitations: InvitationClient,
        retry: RetryExecutor | None = None,
        waiter: PollWaiter | None = None,
        create_retry: RetryConfig | None = None,
        readback_retry: RetryConfig | None = None,
        root_project_id: str | None = None,
    ) -> None:
        self.projects = projects
        self.services = services
        self.users = users
        self.invitations = invitations
        self._retry = retry or RetryExecutor()
        self._waiter = waiter or PollWaiter()
        self._create_retry = create_retry or RetryConfig(max_attempts=3)
        self._readback_retry = readback_retry or RetryConfig(max_attempts=3, delay_seconds=30.0)
        self._root_project_id = root_project_id
        self._clients: Dict[ResourceKind, ResourceClient] = {
            ResourceKind.project: projects,
            ResourceKind.service: services,
            ResourceKind.user: users,
        }

    @property
    def clients(self) -> Dict[ResourceKind, ResourceClient]:
        return dict(self._clients)

    def client_for(self, kind: ResourceKind | str) -> ResourceClient:
        return self._clients[ResourceKind(kind)]

    # -- creation --------------------------------------------------------

    async def create_and_track(
        self,
        kind: ResourceKind | str,
        spec: ProjectSpec | DeploySpec | UserSpec,
        registry: TeardownRegistry,
    ) -> Any:
        """Create a resource (retried) and register it for teardown."""
        kind = ResourceKind(kind)
        create: Callable[[], Awaitable[Any]]
        if kind is ResourceKind.project and isinstance(spec, ProjectSpec):
            create = lambda: self.projects.create(spec)  # noqa: E731
        elif kind is ResourceKind.service and isinstance(spec, DeploySpec):
            create = lambda: self.services.deploy(spec)  # noqa: E731
        elif kind is ResourceKind.user and isinstance(spec, UserSpec):
            create = lambda: self.users.create(spec)  # noqa: E731
        else:
            raise TypeError(f"{type(spec).__name__} is not a creation spec for {kind}")

        created = await self._retry.retry(create, self._create_retry, description=f"create {kind}")

        key = self._key_for(kind, spec, created)
        registry.for_kind(kind).register(key)
        logger.info("resource_tracked", kind=str(kind), resource_id=str(key))
        return created

    @staticmethod
    def _key_for(kind: ResourceKind, spec: Any, created: Any) -> Any:
        if kind is ResourceKind.project:
            return created.project_id
        if kind is ResourceKind.service:
            return spec.key
        return created.id

    async def create_test_project(
        self,
        registry: TeardownRegistry,
        project_id: str | None = None,
        **spec_fields: Any,
    ) -> Project:
        spec = ProjectSpec(project_id=project_id or random_project_id(), **spec_fields)
        return await self.create_and_track(ResourceKind.project, spec, registry)

    async def create_test_environment(
        self,
        registry: TeardownRegistry,
        root_project_id: str | None = None,
        env_name: str | None = None,
        **spec_fields: Any,
    ) -> Project:
        """Create a child environment `{root}-{env}` of a root project."""
        root = root_project_id or self._root_project_id
        if not root:
            raise ValueError("root_project_id is required when no root project is configured")
        spec = self.projects.environment_spec(root, env_name, **spec_fields)
        return await self.create_and_track(ResourceKind.project, spec, registry)

    async def create_test_user(
        self,
        registry: TeardownRegistry,
        plan_id: str = DEFAULT_PLAN_ID,
        email: str | None = None,
    ) -> User:
        """Create a confirmed user and move it onto `plan_id`."""
        email = email or random_user_email()
        spec = UserSpec(email=email, first_name=email.split("@", 1)[0])
        user: User = await self.create_and_track(ResourceKind.user, spec, registry)

        await self._retry.retry(
            lambda: self.users.update_plan(user.id, plan_id),
            self._create_retry,
            description="update user plan",
        )
        user.plan_id = plan_id
        return user

    async def deploy_service(
        self,
        registry: TeardownRegistry,
        project_id: str,
        service_id: str,
        **spec_fields: Any,
    ) -> Any:
        spec = DeploySpec(project_id=project_id, service_id=service_id, **spec_fields)
        return await self.create_and_track(ResourceKind.service, spec, registry)

    # -- existence -------------------------------------------------------

    async def assert_absent(
        self,
        kind: ResourceKind | str,
        key: Any,
        timeout_seconds: float = ABSENCE_TIMEOUT_SECONDS,
        *,
        config: PollConfig | None = None,
    ) -> None:
        """Wait until the resource is gone; fail if it outlives the timeout."""
        kind = ResourceKind(kind)
        client = self.client_for(kind)
        config = config or PollConfig.from_timeout(timeout_seconds, ABSENCE_INTERVAL_SECONDS)

        async def _absent() -> bool:
            return not await client.exists(key)

        await self._waiter.poll_until(
            _absent,
            config,
            description=f"{kind} {key} to be absent",
            timeout_error=ResourceStillExistsError,
            details={"kind": str(kind), "resource_id": str(key)},
        )

    async def assert_exists(self, kind: ResourceKind | str, key: Any) -> None:
        kind = ResourceKind(kind)
        if not await self.client_for(kind).exists(key):
            raise ResourceMissingError(
                f"{kind.capitalize()} {key} does not exist",
                details={"kind": str(kind), "resource_id": str(key)},
            )
        logger.info("resource_confirmed", kind=str(kind), resource_id=str(key))

    # -- service state machines -----------------------------------------

    async def wait_until_ready(
        self,
        project_id: str,
        service_id: str,
        timeout_seconds: float = READY_TIMEOUT_SECONDS,
        *,
        config: PollConfig | None = None,
    ) -> None:
        """NotFound -> Found-NotReady -> Ready, or PollTimeoutError."""
        config = config or PollConfig.from_timeout(timeout_seconds, READY_INTERVAL_SECONDS)

        async def _ready() -> bool:
            service = await self.services.safe_fetch(project_id, service_id)
            if service is None:
                logger.debug("service_not_found_yet", project_id=project_id, service_id=service_id)
                return False
            return service.ready is True

        await self._waiter.poll_until(
            _ready,
            config,
            description=f"{service_id} service to be ready",
            details={"project_id": project_id, "service_id": service_id},
        )
        logger.info("service_ready", project_id=project_id, service_id=service_id)

    async def wait_for_status(
        self,
        project_id: str,
        service_id: str,
        status: str,
        *,
        config: PollConfig = STATUS_POLL,
    ) -> None:
        """Pending -> Matched; a 404 while polling counts as still pending."""

        async def _matched() -> bool:
            service = await self.services.safe_fetch(project_id, service_id)
            return service is not None and service.status == status

        await self._waiter.poll_until(
            _matched,
            config,
            description=f"{service_id} service to have status {status}",
            details={"project_id": project_id, "service_id": service_id, "status": status},
        )
        logger.info("service_status_reached", project_id=project_id, service_id=service_id, status=status)

    async def wait_for_new_instance(
        self,
        project_id: str,
        service_id: str,
        old_instance: str,
        *,
        config: PollConfig = NEW_INSTANCE_POLL,
    ) -> str:
        """Wait for the running container id to differ from `old_instance`."""

        async def _rotated() -> str | None:
            instances = await self.services.fetch_instances(project_id, service_id)
            if not instances:
                return None
            current = instances[0].container_id
            return current if current != old_instance else None

        new_instance = await self._waiter.poll_until(
            _rotated,
            config,
            description=f"new instance of {service_id} replacing {old_instance}",
            details={"project_id": project_id, "service_id": service_id},
        )
        logger.info(
            "service_instance_rotated",
            project_id=project_id,
            service_id=service_id,
            old_instance=old_instance,
            new_instance=new_instance,
        )
        return new_instance

    # -- invitations -----------------------------------------------------

    async def invite_and_accept(self, project_id: str, email: str, role: str) -> None:
        """Add `email` as a team member: invite, read the token back, redeem it."""
        await self.invitations.send(project_id, email, role)
        await self.accept_invitation(project_id, email)

    async def accept_invitation(self, project_id: str, email: str) -> None:
        token = await self.read_invitation_token(project_id, email)
        await self.invitations.accept(project_id, email, token)

    async def read_invitation_token(self, project_id: str, email: str) -> str:
        """Fetch the project until its invitation map holds a token for `email`."""
        key = invitation_key(email)

        async def _read() -> str:
            project = await self.projects.fetch(project_id)
            token = project.invitations.get(key)
            if not token:
                raise InvitationTokenMissingError(
                    f"No invitation token for {email} on project {project_id}",
                    details={"project_id": project_id, "email": email},
                )
            return token

        return await self._retry.retry(_read, self._readback_retry, description="read invitation token")
