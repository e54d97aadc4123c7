"""Teardown tracking for resources created during a test run."""

from __future__ import annotations

from typing import Any, Dict, Generic, Hashable, Iterator, List, TypeVar

import structlog

from cpharness.clients.resource import ResourceClient
from cpharness.models import ResourceKind
from cpharness.results import DeleteResult, TeardownReport

logger = structlog.get_logger()

K = TypeVar("K", bound=Hashable)

# Services go before the projects that contain them; users go last because
# they may own projects still being deleted.
DRAIN_ORDER = (ResourceKind.service, ResourceKind.project, ResourceKind.user)


class TeardownSet(Generic[K]):
    """Identifiers of one resource kind that may still exist remotely.

    An id leaves the set only when its delete succeeded or found it already
    gone, or when the caller releases it. Must not be drained while another
    task is still registering into it.
    """

    def __init__(self, client: ResourceClient) -> None:
        self._client = client
        self._ids: Dict[K, None] = {}

    @property
    def kind(self) -> ResourceKind:
        return self._client.kind

    @property
    def ids(self) -> List[K]:
        return list(self._ids)

    def __contains__(self, key: object) -> bool:
        return key in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[K]:
        return iter(self.ids)

    def register(self, key: K) -> None:
        """Track `key` for deletion; registering twice is a no-op."""
        if key not in self._ids:
            self._ids[key] = None
            logger.debug("teardown_registered", kind=str(self.kind), resource_id=str(key))

    def release(self, key: K) -> bool:
        """Stop tracking `key` without deleting it. Returns whether it was tracked."""
        if key in self._ids:
            del self._ids[key]
            logger.debug("teardown_released", kind=str(self.kind), resource_id=str(key))
            return True
        return False

    async def drain(self) -> TeardownReport:
        """Delete every tracked id, continuing past individual failures."""
        report = TeardownReport()
        if not self._ids:
            return report

        logger.info("teardown_started", kind=str(self.kind), count=len(self._ids))
        for key in self.ids:
            try:
                result = await self._client.delete(key)
            except Exception as exc:
                result = DeleteResult.failed(self.kind, key, f"{type(exc).__name__}: {exc}")
                logger.error(
                    "teardown_delete_raised",
                    kind=str(self.kind),
                    resource_id=str(key),
                    error=str(exc),
                    exc_info=True,
                )
            report.record(result)
            if result.ok:
                self._ids.pop(key, None)
            else:
                logger.warning(
                    "teardown_delete_failed",
                    kind=str(self.kind),
                    resource_id=str(key),
                    reason=result.reason,
                )

        logger.info(
            "teardown_finished",
            kind=str(self.kind),
            processed=report.processed,
            failed=len(report.failures),
        )
        return report


class TeardownRegistry:
    """Per-run collection of teardown sets, one per resource kind.

    Owned by exactly one run context and threaded through explicitly.
    """

    def __init__(self, clients: Dict[ResourceKind, ResourceClient]) -> None:
        self._sets: Dict[ResourceKind, TeardownSet[Any]] = {
            kind: TeardownSet(client) for kind, client in clients.items()
        }

    def for_kind(self, kind: ResourceKind | str) -> TeardownSet[Any]:
        try:
            return self._sets[ResourceKind(kind)]
        except (KeyError, ValueError):
            raise KeyError(f"No teardown set for resource kind {kind!r}") from None

    @property
    def projects(self) -> TeardownSet[Any]:
        return self.for_kind(ResourceKind.project)

    @property
    def services(self) -> TeardownSet[Any]:
        return self.for_kind(ResourceKind.service)

    @property
    def users(self) -> TeardownSet[Any]:
        return self.for_kind(ResourceKind.user)

    def __len__(self) -> int:
        return sum(len(s) for s in self._sets.values())

    async def drain(self) -> TeardownReport:
        """Drain services, then projects, then users. Never raises."""
        report = TeardownReport()
        ordered = [k for k in DRAIN_ORDER if k in self._sets]
        ordered += [k for k in self._sets if k not in ordered]
        for kind in ordered:
            report.merge(await self._sets[kind].drain())
        if report.failures:
            logger.warning(
                "teardown_incomplete",
                processed=report.processed,
                failed=[f"{r.kind}:{r.resource_id}" for r in report.failures],
            )
        return report
