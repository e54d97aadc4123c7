"""Per-run context: wires clients, orchestrator and teardown registry."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from types import TracebackType
from typing import Any

import httpx
import structlog

from cpharness.auth import AuthTokenCache
from cpharness.clients import ControlPlaneTransport, InvitationClient, ProjectClient, ServiceClient, UserClient
from cpharness.config.settings import Settings
from cpharness.logging import bind_context
from cpharness.orchestrator import LifecycleOrchestrator
from cpharness.polling import PollWaiter
from cpharness.results import TeardownReport
from cpharness.retry import RetryConfig, RetryExecutor, Sleep
from cpharness.teardown import TeardownRegistry

logger = structlog.get_logger()


def _secret(value: Any) -> str | None:
    return value.get_secret_value() if value is not None else None


@dataclass
class HarnessRun:
    """Everything one test run needs, owned by that run.

    Use as an async context manager: on exit the registry is drained and the
    transport closed. Draining happens after every registration of the run
    has completed.
    """

    settings: Settings
    transport: ControlPlaneTransport
    tokens: AuthTokenCache
    orchestrator: LifecycleOrchestrator
    registry: TeardownRegistry
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    report: TeardownReport | None = None

    @classmethod
    def open(
        cls,
        settings: Settings,
        *,
        http_client: httpx.AsyncClient | None = None,
        sleep: Sleep | None = None,
    ) -> "HarnessRun":
        transport = ControlPlaneTransport(
            settings.gateway_url,
            timeout=settings.http_timeout,
            http_client=http_client,
        )
        tester_password = _secret(settings.tester_password)
        tokens = AuthTokenCache(
            transport,
            operator_email=settings.operator_email,
            operator_password=_secret(settings.operator_password),
            default_password=tester_password,
        )
        sleep_kwargs: dict[str, Any] = {"sleep": sleep} if sleep is not None else {}

        orchestrator = LifecycleOrchestrator(
            projects=ProjectClient(transport, tokens, default_cluster=settings.project_region),
            services=ServiceClient(
                transport,
                tokens,
                examples_repository=settings.examples_repository,
                hosting_repository=settings.hosting_repository,
            ),
            users=UserClient(transport, tokens, default_password=tester_password, **sleep_kwargs),
            invitations=InvitationClient(transport, tokens),
            retry=RetryExecutor(**sleep_kwargs),
            waiter=PollWaiter(**sleep_kwargs),
            create_retry=RetryConfig(
                max_attempts=settings.create_retry_attempts,
                delay_seconds=settings.create_retry_delay_seconds,
            ),
            readback_retry=RetryConfig(
                max_attempts=settings.readback_retry_attempts,
                delay_seconds=settings.readback_retry_delay_seconds,
            ),
            root_project_id=settings.root_project,
        )
        return cls(
            settings=settings,
            transport=transport,
            tokens=tokens,
            orchestrator=orchestrator,
            registry=TeardownRegistry(orchestrator.clients),
        )

    async def __aenter__(self) -> "HarnessRun":
        bind_context(run_id=self.run_id)
        logger.info("run_started", remote=self.settings.remote)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        try:
            self.report = await self.finalize()
        finally:
            await self.transport.aclose()

    async def finalize(self) -> TeardownReport:
        """Drain the registry; best effort, never raises for cleanup trouble."""
        report = await self.registry.drain()
        logger.info(
            "run_finished",
            processed=report.processed,
            failed=len(report.failures),
            clean=report.clean,
        )
        return report
