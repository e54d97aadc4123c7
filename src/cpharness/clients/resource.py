"""Resource client protocol shared by the orchestrator and teardown."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Hashable, Protocol, runtime_checkable

import structlog

from cpharness.core.errors import ApiError, NotFoundError
from cpharness.models import ResourceKind
from cpharness.results import DeleteResult

logger = structlog.get_logger()


@runtime_checkable
class ResourceClient(Protocol):
    """What teardown and absence checks need from a client."""

    @property
    def kind(self) -> ResourceKind:
        """Resource kind handled by this client."""
        ...

    async def exists(self, key: Any) -> bool:
        """True if the resource is present; 404 is False, other errors raise."""
        ...

    async def delete(self, key: Any) -> DeleteResult:
        """Idempotent delete; never raises for remote failures."""
        ...


async def idempotent_delete(
    kind: ResourceKind,
    key: Hashable,
    call: Callable[[], Awaitable[Any]],
    *,
    context: str,
) -> DeleteResult:
    """Run a delete call and classify the outcome."""
    try:
        await call()
    except NotFoundError:
        logger.info("delete_already_absent", kind=str(kind), resource_id=str(key))
        return DeleteResult.already_absent(kind, key)
    except ApiError as exc:
        error = exc.with_context(context)
        logger.warning("delete_failed", kind=str(kind), resource_id=str(key), diagnostic=error.message)
        return DeleteResult.failed(kind, key, error.message)

    logger.info("delete_succeeded", kind=str(kind), resource_id=str(key))
    return DeleteResult.success(kind, key)
