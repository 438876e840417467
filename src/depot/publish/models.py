"""
Publication plan and result models.

Plans, outcomes and results live for a single publish invocation and are
never persisted.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Iterator

from depot.core.exceptions import format_exception
from depot.core.models import Artifact, ModuleDescriptor
from depot.resolvers.base import Resolver


class ItemKind(Enum):
    """What a plan item or outcome transfers."""

    ARTIFACT = "artifact"
    DESCRIPTOR = "descriptor"
    CHECKSUM = "checksum"


class OutcomeStatus(Enum):
    """Terminal state of one item."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class SkipReason(Enum):
    """Why an item was never attempted."""

    PRECEDING_ARTIFACT_FAILED = "preceding_artifact_failed"
    CANCELLED = "cancelled"


class AggregateStatus(Enum):
    """Overall status of a publish invocation."""

    SUCCEEDED = "succeeded"
    PARTIAL_FAILURE = "partial_failure"
    FAILED = "failed"


@dataclass(frozen=True)
class PublishItem:
    """A single transfer: one artifact (or descriptor) to one resolver."""

    artifact: Artifact
    location: str
    resolver: Resolver
    is_descriptor: bool = False
    configuration: str | None = None
    checksum_algorithm: str | None = None

    @property
    def kind(self) -> ItemKind:
        if self.checksum_algorithm:
            return ItemKind.CHECKSUM
        if self.is_descriptor:
            return ItemKind.DESCRIPTOR
        return ItemKind.ARTIFACT

    @property
    def resolver_name(self) -> str:
        return self.resolver.name

    def checksum(self, algorithm: str, location: str) -> "PublishItem":
        """Derive the item publishing this item's checksum."""
        return replace(self, location=location, checksum_algorithm=algorithm)

    def __str__(self) -> str:
        return f"{self.resolver_name}:{self.location}"


@dataclass
class PublishOutcome:
    """Result of one item."""

    item: PublishItem
    status: OutcomeStatus
    error: BaseException | None = None
    skip_reason: SkipReason | None = None
    attempts: int = 0
    duration_ms: float = 0.0

    @classmethod
    def succeeded(cls, item: PublishItem, attempts: int = 1, duration_ms: float = 0.0) -> "PublishOutcome":
        return cls(item=item, status=OutcomeStatus.SUCCEEDED, attempts=attempts, duration_ms=duration_ms)

    @classmethod
    def failed(
        cls,
        item: PublishItem,
        error: BaseException,
        attempts: int = 1,
        duration_ms: float = 0.0,
    ) -> "PublishOutcome":
        return cls(
            item=item,
            status=OutcomeStatus.FAILED,
            error=error,
            attempts=attempts,
            duration_ms=duration_ms,
        )

    @classmethod
    def skipped(cls, item: PublishItem, reason: SkipReason) -> "PublishOutcome":
        return cls(item=item, status=OutcomeStatus.SKIPPED, skip_reason=reason)

    @property
    def is_success(self) -> bool:
        return self.status == OutcomeStatus.SUCCEEDED

    @property
    def message(self) -> str:
        """Short description for reports."""
        if self.status == OutcomeStatus.FAILED and self.error is not None:
            return format_exception(self.error)
        if self.status == OutcomeStatus.SKIPPED and self.skip_reason is not None:
            return self.skip_reason.value
        return ""

    def to_dict(self) -> dict[str, Any]:
        """Convert outcome to dictionary for serialization."""
        return {
            "resolver": self.item.resolver_name,
            "kind": self.item.kind.value,
            "artifact": self.item.artifact.file_name,
            "location": self.item.location,
            "status": self.status.value,
            "message": self.message,
            "attempts": self.attempts,
            "duration_ms": round(self.duration_ms, 2),
        }


@dataclass
class PublicationPlan:
    """Ordered transfers derived from a descriptor, configurations and resolvers."""

    descriptor: ModuleDescriptor
    configurations: list[str]
    targets: list[Resolver]
    items: list[PublishItem] = field(default_factory=list)
    upload_descriptor: bool = False
    descriptor_file: Path | None = None

    def items_for(self, resolver: Resolver) -> list[PublishItem]:
        """Items of one target, in plan order."""
        return [item for item in self.items if item.resolver is resolver]

    def __iter__(self) -> Iterator[PublishItem]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


@dataclass
class PublishResult:
    """Itemized result of executing a plan."""

    outcomes: list[PublishOutcome] = field(default_factory=list)
    cancelled: bool = False

    @property
    def status(self) -> AggregateStatus:
        """
        Aggregate status.

        Succeeded when every outcome succeeded, Failed when none did,
        PartialFailure otherwise.
        """
        successes = sum(1 for o in self.outcomes if o.is_success)
        if successes == len(self.outcomes):
            return AggregateStatus.SUCCEEDED
        if successes == 0:
            return AggregateStatus.FAILED
        return AggregateStatus.PARTIAL_FAILURE

    @property
    def succeeded(self) -> list[PublishOutcome]:
        return [o for o in self.outcomes if o.status == OutcomeStatus.SUCCEEDED]

    @property
    def failed(self) -> list[PublishOutcome]:
        return [o for o in self.outcomes if o.status == OutcomeStatus.FAILED]

    @property
    def skipped(self) -> list[PublishOutcome]:
        return [o for o in self.outcomes if o.status == OutcomeStatus.SKIPPED]

    def outcomes_for(self, resolver_name: str) -> list[PublishOutcome]:
        """Outcomes of one target, in execution order."""
        return [o for o in self.outcomes if o.item.resolver_name == resolver_name]

    def failed_resolvers(self) -> list[str]:
        """Names of targets with at least one unsuccessful outcome."""
        names: list[str] = []
        for outcome in self.outcomes:
            if not outcome.is_success and outcome.item.resolver_name not in names:
                names.append(outcome.item.resolver_name)
        return names

    def summary(self) -> str:
        """One-line summary."""
        return (
            f"{self.status.value}: {len(self.succeeded)} succeeded, "
            f"{len(self.failed)} failed, {len(self.skipped)} skipped"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert result to dictionary for serialization."""
        return {
            "status": self.status.value,
            "cancelled": self.cancelled,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }
