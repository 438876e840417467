"""
Checksum computation for published artifacts.

Digests are published next to each artifact as ``<location>.<algorithm>``
files containing the lowercase hex digest.
"""

import hashlib
from typing import Any, Callable

from depot.core.exceptions import ChecksumComputationError


HasherFactory = Callable[[], Any]

DEFAULT_ALGORITHMS: dict[str, HasherFactory] = {
    "md5": hashlib.md5,
    "sha1": hashlib.sha1,
    "sha256": hashlib.sha256,
    "sha512": hashlib.sha512,
}


class ChecksumProvider:
    """
    Pluggable digest calculator.

    Each instance owns its algorithm table, so registering a custom
    algorithm never leaks into other providers.
    """

    def __init__(self, algorithms: dict[str, HasherFactory] | None = None):
        self._algorithms: dict[str, HasherFactory] = dict(
            DEFAULT_ALGORITHMS if algorithms is None else algorithms
        )

    @property
    def algorithms(self) -> list[str]:
        """Names of supported algorithms."""
        return sorted(self._algorithms)

    def supports(self, algorithm: str) -> bool:
        """Return True if the algorithm is known."""
        return algorithm.lower() in self._algorithms

    def register(self, algorithm: str, factory: HasherFactory) -> None:
        """Register a custom algorithm."""
        self._algorithms[algorithm.lower()] = factory

    def digest(self, data: bytes, algorithm: str) -> str:
        """
        Compute the hex digest of ``data``.

        Args:
            data: Exact bytes that were transferred
            algorithm: Algorithm name, case-insensitive

        Returns:
            Lowercase hex digest

        Raises:
            ChecksumComputationError: For unknown algorithms or hasher failures
        """
        factory = self._algorithms.get(algorithm.lower())
        if factory is None:
            raise ChecksumComputationError(
                f"Unsupported checksum algorithm '{algorithm}'",
                algorithm=algorithm,
                details={"supported": self.algorithms},
            )
        try:
            hasher = factory()
            hasher.update(data)
            return hasher.hexdigest().lower()
        except (ValueError, TypeError) as e:
            raise ChecksumComputationError(
                f"Failed to compute {algorithm} checksum: {e}",
                algorithm=algorithm,
            ) from e

    @staticmethod
    def checksum_location(location: str, algorithm: str) -> str:
        """Return the sibling location a checksum is published at."""
        return f"{location}.{algorithm.lower()}"
