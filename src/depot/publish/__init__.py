"""
Depot Publish Module.

Builds publication plans and executes them against resolver targets.

Example:
    >>> plan = build_plan(descriptor, ["runtime"], resolvers, upload_descriptor=True)
    >>> result = PublishEngine().execute(plan)
    >>> result.status
    <AggregateStatus.SUCCEEDED: 'succeeded'>
"""

from .checksums import ChecksumProvider
from .descriptor import descriptor_artifact, serialize_descriptor
from .engine import ContentCache, PublishEngine
from .models import (
    AggregateStatus,
    ItemKind,
    OutcomeStatus,
    PublicationPlan,
    PublishItem,
    PublishOutcome,
    PublishResult,
    SkipReason,
)
from .plan import build_plan

__all__ = [
    # Models
    "AggregateStatus",
    "ItemKind",
    "OutcomeStatus",
    "PublicationPlan",
    "PublishItem",
    "PublishOutcome",
    "PublishResult",
    "SkipReason",
    # Plan
    "build_plan",
    # Engine
    "PublishEngine",
    "ContentCache",
    # Checksums
    "ChecksumProvider",
    # Descriptor
    "descriptor_artifact",
    "serialize_descriptor",
]
