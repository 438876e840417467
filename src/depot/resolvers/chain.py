"""
Chain resolver.

Delegates transfers to an ordered list of sub-resolvers. Locations are
computed once with the chain's own pattern and handed unchanged to every
sub-resolver.
"""

import logging
import threading

from depot.core.exceptions import TransferError
from depot.resolvers.base import ChainPolicy, Resolver, ResolverConfig, ResolverKind

logger = logging.getLogger(__name__)


class ChainResolver(Resolver):
    """
    Aggregate resolver.

    Policies:
    - first_success: try sub-resolvers in order, stop at the first success
    - all: transfer to every sub-resolver, fail if any of them fails
    """

    kind = ResolverKind.CHAIN

    def __init__(self, config: ResolverConfig, resolvers: list[Resolver] | None = None):
        """
        Initialize the chain.

        Args:
            config: Chain configuration
            resolvers: Sub-resolvers (built from ``config.resolvers`` when omitted)
        """
        super().__init__(config)
        if resolvers is None:
            from depot.resolvers import create_resolver

            resolvers = [create_resolver(sub) for sub in config.resolvers]
        self._resolvers = resolvers

    @property
    def resolvers(self) -> list[Resolver]:
        """Sub-resolvers in order."""
        return list(self._resolvers)

    @property
    def policy(self) -> ChainPolicy:
        return self.config.policy

    def describe(self) -> str:
        names = ", ".join(r.name for r in self._resolvers)
        return f"{self.policy.value}[{names}]"

    def transfer(
        self, data: bytes, location: str, cancel: threading.Event | None = None
    ) -> None:
        """Transfer according to the chain policy."""
        if self.policy == ChainPolicy.FIRST_SUCCESS:
            self._transfer_first_success(data, location, cancel)
        else:
            self._transfer_all(data, location, cancel)

    def _transfer_one(
        self, resolver: Resolver, data: bytes, location: str, cancel: threading.Event | None
    ) -> None:
        if cancel is not None and cancel.is_set():
            raise TransferError(
                "Cancelled before transfer started",
                resolver=resolver.name,
                location=location,
            )
        resolver.transfer(data, location, cancel)

    def _transfer_first_success(
        self, data: bytes, location: str, cancel: threading.Event | None
    ) -> None:
        errors: list[TransferError] = []
        for resolver in self._resolvers:
            try:
                self._transfer_one(resolver, data, location, cancel)
                return
            except TransferError as e:
                logger.info("%s: %s failed, trying next: %s", self.name, resolver.name, e)
                errors.append(e)
        raise self._combine(errors, location)

    def _transfer_all(self, data: bytes, location: str, cancel: threading.Event | None) -> None:
        errors: list[TransferError] = []
        for resolver in self._resolvers:
            try:
                self._transfer_one(resolver, data, location, cancel)
            except TransferError as e:
                errors.append(e)
        if errors:
            raise self._combine(errors, location)

    def _combine(self, errors: list[TransferError], location: str) -> TransferError:
        """Fold sub-resolver failures into one error, transient only if all were."""
        failed = ", ".join(f"{e.resolver or '?'}: {e.message}" for e in errors)
        combined = TransferError(
            f"Chain transfer failed ({failed})",
            transient=all(e.transient for e in errors),
            resolver=self.name,
            location=location,
            details={"failed_resolvers": [e.resolver for e in errors]},
        )
        combined.__cause__ = errors[-1]
        return combined

    def close(self) -> None:
        for resolver in self._resolvers:
            resolver.close()
