"""
Publish engine - executes a publication plan.

Targets are published in parallel; the items of one target run strictly
in plan order so a descriptor is never written before its artifacts.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from tenacity import (
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    stop_when_event_set,
    wait_exponential,
)

from depot.config import PublishSettings
from depot.core.exceptions import (
    ChecksumComputationError,
    TransferError,
    is_retriable_error,
)
from depot.publish.checksums import ChecksumProvider
from depot.publish.descriptor import serialize_descriptor
from depot.publish.models import (
    AggregateStatus,
    PublicationPlan,
    PublishItem,
    PublishOutcome,
    PublishResult,
    SkipReason,
)
from depot.resolvers.base import Resolver

logger = logging.getLogger(__name__)


@dataclass
class Content:
    """Bytes of one physical source plus the digests computed over them."""

    key: str
    data: bytes
    _digests: dict[str, str] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def digest(self, algorithm: str, provider: ChecksumProvider) -> str:
        """Compute a digest once per algorithm."""
        with self._lock:
            if algorithm not in self._digests:
                self._digests[algorithm] = provider.digest(self.data, algorithm)
            return self._digests[algorithm]


class ContentCache:
    """
    Artifact contents read during one invocation.

    A file referenced by several plan items is read once; it is read again
    only when its size or modification time changed in between.
    """

    def __init__(self):
        self._entries: dict[str, tuple[tuple[int, int], Content]] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._lock = threading.Lock()
        self.reads = 0

    def _lock_for(self, key: str) -> threading.Lock:
        with self._lock:
            return self._locks.setdefault(key, threading.Lock())

    def read(self, path: Path) -> Content:
        """
        Return the content of ``path``.

        Raises:
            OSError: If the file cannot be read
        """
        key = str(path.absolute())
        with self._lock_for(key):
            stat = path.stat()
            signature = (stat.st_mtime_ns, stat.st_size)
            cached = self._entries.get(key)
            if cached is not None and cached[0] == signature:
                return cached[1]
            content = Content(key=key, data=path.read_bytes())
            self._entries[key] = (signature, content)
            self.reads += 1
            return content


@dataclass
class _Invocation:
    """State scoped to a single execute() call."""

    plan: PublicationPlan
    cancel: threading.Event
    cache: ContentCache = field(default_factory=ContentCache)
    _descriptor: Content | None = None
    _descriptor_lock: threading.Lock = field(default_factory=threading.Lock)

    def generated_descriptor(self) -> Content:
        with self._descriptor_lock:
            if self._descriptor is None:
                self._descriptor = Content(
                    key="<descriptor>",
                    data=serialize_descriptor(self.plan.descriptor),
                )
            return self._descriptor


class PublishEngine:
    """
    Publication transaction driver.

    Guarantees:
    - every plan item appears in the result, with checksum outcomes
      directly after the item they belong to
    - a failure on one target never stops other targets
    - a target's descriptor is skipped once any of its artifacts failed
    - transient failures are retried against the same destination
    - cancellation skips everything not yet started, including pending
      retries, and is passed to in-flight transfers
    """

    def __init__(
        self,
        settings: PublishSettings | None = None,
        checksum_provider: ChecksumProvider | None = None,
    ):
        """
        Initialize the engine.

        Args:
            settings: Retry, parallelism and timeout settings
            checksum_provider: Digest calculator (default: hashlib algorithms)
        """
        self._settings = settings or PublishSettings()
        self._checksums = checksum_provider or ChecksumProvider()

    @property
    def settings(self) -> PublishSettings:
        return self._settings

    def execute(
        self,
        plan: PublicationPlan,
        cancel_event: threading.Event | None = None,
        timeout: float | None = None,
    ) -> PublishResult:
        """
        Execute a plan.

        Per-item failures are recorded in the result, never raised.

        Args:
            plan: Plan from build_plan()
            cancel_event: Set by the caller to cancel the invocation
            timeout: Seconds after which the invocation cancels itself

        Returns:
            PublishResult with one outcome per item and per checksum
        """
        cancel = cancel_event or threading.Event()
        timeout = timeout if timeout is not None else self._settings.timeout_seconds
        timer = None
        if timeout:
            timer = threading.Timer(timeout, cancel.set)
            timer.daemon = True
            timer.start()

        invocation = _Invocation(plan=plan, cancel=cancel)
        targets = plan.targets
        logger.info(
            "Publishing %s (%s) to %d resolver(s), %d item(s)",
            plan.descriptor.module_id,
            ", ".join(plan.configurations),
            len(targets),
            len(plan),
        )
        if not plan.items:
            logger.warning("Nothing to publish: no resolver matches %s", plan.configurations)

        outcomes_by_target: dict[str, list[PublishOutcome]] = {}
        try:
            workers = min(self._settings.max_workers, len(targets))
            if workers <= 1:
                for resolver in targets:
                    outcomes_by_target[resolver.name] = self._publish_target(resolver, invocation)
            else:
                with ThreadPoolExecutor(
                    max_workers=workers, thread_name_prefix="depot-publish"
                ) as pool:
                    futures = {
                        resolver.name: pool.submit(self._publish_target, resolver, invocation)
                        for resolver in targets
                    }
                    for name, future in futures.items():
                        outcomes_by_target[name] = future.result()
        finally:
            if timer is not None:
                timer.cancel()

        result = PublishResult(
            outcomes=[o for r in targets for o in outcomes_by_target[r.name]],
            cancelled=cancel.is_set(),
        )
        log = logger.info if result.status == AggregateStatus.SUCCEEDED else logger.warning
        log("Publication of %s finished: %s", plan.descriptor.module_id, result.summary())
        return result

    def _publish_target(self, resolver: Resolver, invocation: _Invocation) -> list[PublishOutcome]:
        """Publish the items of one target in order."""
        outcomes: list[PublishOutcome] = []
        artifact_failed = False

        for item in invocation.plan.items_for(resolver):
            if invocation.cancel.is_set():
                outcomes.append(PublishOutcome.skipped(item, SkipReason.CANCELLED))
                continue

            if item.is_descriptor and artifact_failed:
                logger.warning(
                    "%s: skipping descriptor %s, a preceding artifact failed",
                    resolver.name,
                    item.location,
                )
                outcomes.append(
                    PublishOutcome.skipped(item, SkipReason.PRECEDING_ARTIFACT_FAILED)
                )
                continue

            outcome, content = self._publish_item(item, invocation)
            outcomes.append(outcome)
            if content is None:
                if not item.is_descriptor:
                    artifact_failed = True
                continue

            outcomes.extend(self._publish_checksums(item, content, invocation))

        return outcomes

    def _load(self, item: PublishItem, invocation: _Invocation) -> Content:
        """Read the bytes to transfer for an item."""
        if item.is_descriptor and item.artifact.path is None:
            return invocation.generated_descriptor()

        path = item.artifact.path
        if path is None:
            raise TransferError(
                f"Artifact {item.artifact.file_name} has no source file",
                resolver=item.resolver_name,
                location=item.location,
            )
        try:
            return invocation.cache.read(path)
        except OSError as e:
            raise TransferError(
                f"Cannot read artifact source {path}: {e.strerror or e}",
                resolver=item.resolver_name,
                location=item.location,
            ) from e

    def _publish_item(
        self, item: PublishItem, invocation: _Invocation
    ) -> tuple[PublishOutcome, Content | None]:
        """Transfer one item; return its outcome and, on success, its content."""
        started = time.monotonic()
        try:
            content = self._load(item, invocation)
            attempts = self._transfer(item.resolver, content.data, item.location, invocation.cancel)
        except TransferError as e:
            if e.attempts == 0:
                return PublishOutcome.skipped(item, SkipReason.CANCELLED), None
            logger.warning("%s: failed to publish %s: %s", item.resolver_name, item.location, e)
            return (
                PublishOutcome.failed(item, e, e.attempts, self._elapsed_ms(started)),
                None,
            )

        logger.debug("%s: published %s", item.resolver_name, item.location)
        return PublishOutcome.succeeded(item, attempts, self._elapsed_ms(started)), content

    def _publish_checksums(
        self, item: PublishItem, content: Content, invocation: _Invocation
    ) -> list[PublishOutcome]:
        """Publish every checksum the target declares for a transferred item."""
        outcomes = []
        for algorithm in item.resolver.checksums:
            checksum_item = item.checksum(
                algorithm, ChecksumProvider.checksum_location(item.location, algorithm)
            )
            if invocation.cancel.is_set():
                outcomes.append(PublishOutcome.skipped(checksum_item, SkipReason.CANCELLED))
                continue

            started = time.monotonic()
            try:
                digest = content.digest(algorithm, self._checksums)
                attempts = self._transfer(
                    item.resolver,
                    digest.encode("ascii"),
                    checksum_item.location,
                    invocation.cancel,
                )
            except (ChecksumComputationError, TransferError) as e:
                if getattr(e, "attempts", 1) == 0:
                    outcomes.append(PublishOutcome.skipped(checksum_item, SkipReason.CANCELLED))
                    continue
                logger.warning(
                    "%s: failed to publish %s checksum for %s: %s",
                    item.resolver_name,
                    algorithm,
                    item.location,
                    e,
                )
                outcomes.append(
                    PublishOutcome.failed(
                        checksum_item,
                        e,
                        getattr(e, "attempts", 1),
                        self._elapsed_ms(started),
                    )
                )
                continue
            outcomes.append(
                PublishOutcome.succeeded(checksum_item, attempts, self._elapsed_ms(started))
            )
        return outcomes

    def _transfer(
        self,
        resolver: Resolver,
        data: bytes,
        location: str,
        cancel: threading.Event,
    ) -> int:
        """
        Transfer with retries for transient failures.

        Returns:
            Number of attempts made

        Raises:
            TransferError: The last failure, with an ``attempts`` attribute
        """
        max_retries = resolver.config.max_retries
        if max_retries is None:
            max_retries = self._settings.max_retries

        retrying = Retrying(
            stop=stop_after_attempt(max_retries + 1) | stop_when_event_set(cancel),
            wait=wait_exponential(
                multiplier=self._settings.retry_backoff_ms / 1000,
                max=self._settings.retry_backoff_max_ms / 1000,
            ),
            retry=retry_if_exception(is_retriable_error),
            before_sleep=lambda state: logger.info(
                "%s: retrying %s after attempt %d: %s",
                resolver.name,
                location,
                state.attempt_number,
                state.outcome.exception(),
            ),
            sleep=cancel.wait,
            reraise=True,
        )
        attempts = 0

        def attempt() -> None:
            nonlocal attempts
            if cancel.is_set():
                raise TransferError(
                    "Cancelled before transfer started",
                    resolver=resolver.name,
                    location=location,
                )
            attempts += 1
            self._call_resolver(resolver, data, location, cancel)

        try:
            retrying(attempt)
        except TransferError as e:
            e.attempts = attempts
            raise
        return attempts

    @staticmethod
    def _call_resolver(
        resolver: Resolver, data: bytes, location: str, cancel: threading.Event
    ) -> None:
        """Invoke a resolver, turning unexpected exceptions into permanent failures."""
        try:
            resolver.transfer(data, location, cancel)
        except TransferError:
            raise
        except Exception as e:
            raise TransferError(
                f"Unexpected error in resolver: {e.__class__.__name__}: {e}",
                resolver=resolver.name,
                location=location,
            ) from e

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return (time.monotonic() - started) * 1000
