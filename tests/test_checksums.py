"""Tests for the checksum provider."""

import hashlib

import pytest

from depot.core.exceptions import ChecksumComputationError
from depot.publish.checksums import ChecksumProvider


class TestChecksumProvider:
    """Tests for ChecksumProvider."""

    def test_default_algorithms(self) -> None:
        """Common repository algorithms are available."""
        provider = ChecksumProvider()
        assert provider.algorithms == ["md5", "sha1", "sha256", "sha512"]

    def test_sha1_digest(self) -> None:
        """SHA-1 matches hashlib."""
        provider = ChecksumProvider()
        assert provider.digest(b"content", "sha1") == hashlib.sha1(b"content").hexdigest()

    def test_algorithm_case_insensitive(self) -> None:
        """Algorithm names are case-insensitive."""
        provider = ChecksumProvider()
        assert provider.digest(b"x", "SHA256") == hashlib.sha256(b"x").hexdigest()

    def test_unknown_algorithm(self) -> None:
        """Unknown algorithms raise ChecksumComputationError."""
        provider = ChecksumProvider()
        with pytest.raises(ChecksumComputationError) as exc_info:
            provider.digest(b"x", "crc32")
        assert exc_info.value.algorithm == "crc32"

    def test_register_custom_algorithm(self) -> None:
        """Custom algorithms can be registered per provider."""
        provider = ChecksumProvider()
        provider.register("blake2b", hashlib.blake2b)

        assert provider.supports("blake2b")
        assert provider.digest(b"x", "blake2b") == hashlib.blake2b(b"x").hexdigest()
        assert not ChecksumProvider().supports("blake2b")

    def test_restricted_algorithm_table(self) -> None:
        """A provider can be limited to specific algorithms."""
        provider = ChecksumProvider({"sha256": hashlib.sha256})
        assert provider.algorithms == ["sha256"]
        assert not provider.supports("md5")

    def test_checksum_location(self) -> None:
        """Checksums live next to the artifact."""
        assert ChecksumProvider.checksum_location("a/b.jar", "SHA1") == "a/b.jar.sha1"

    def test_digest_is_deterministic(self) -> None:
        """The same bytes always give the same digest."""
        provider = ChecksumProvider()
        assert provider.digest(b"abc", "md5") == provider.digest(b"abc", "md5")
