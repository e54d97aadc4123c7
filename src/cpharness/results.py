"""Result types for deletes and teardown."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Dict, List

from cpharness.models import ResourceKind


class DeleteOutcome(StrEnum):
    """What happened when the harness asked for a resource to be deleted."""

    success = "success"
    already_absent = "already_absent"
    failed = "failed"


@dataclass(frozen=True)
class DeleteResult:
    """Outcome of a best-effort delete."""

    kind: ResourceKind
    resource_id: str
    outcome: DeleteOutcome
    reason: str | None = None

    @property
    def ok(self) -> bool:
        """Whether the resource is gone (deleted now or already)."""
        return self.outcome is not DeleteOutcome.failed

    @classmethod
    def success(cls, kind: ResourceKind, resource_id: Any) -> "DeleteResult":
        return cls(kind, str(resource_id), DeleteOutcome.success)

    @classmethod
    def already_absent(cls, kind: ResourceKind, resource_id: Any) -> "DeleteResult":
        return cls(kind, str(resource_id), DeleteOutcome.already_absent)

    @classmethod
    def failed(cls, kind: ResourceKind, resource_id: Any, reason: str) -> "DeleteResult":
        return cls(kind, str(resource_id), DeleteOutcome.failed, reason)


@dataclass
class TeardownReport:
    """Best-effort cleanup report for one drain pass."""

    results: List[DeleteResult] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.results)

    @property
    def failures(self) -> List[DeleteResult]:
        return [r for r in self.results if not r.ok]

    @property
    def clean(self) -> bool:
        """Whether every processed resource is confirmed gone."""
        return not self.failures

    def counts(self) -> Dict[DeleteOutcome, int]:
        totals = {outcome: 0 for outcome in DeleteOutcome}
        for result in self.results:
            totals[result.outcome] += 1
        return totals

    def record(self, result: DeleteResult) -> None:
        self.results.append(result)

    def merge(self, other: "TeardownReport") -> "TeardownReport":
        self.results.extend(other.results)
        return self
