"""
Filesystem resolver.

Publishes into a directory tree (local disk or a mounted share). Each
file is written to a temporary sibling and renamed into place, so readers
never observe a half-written artifact.
"""

import errno
import logging
import os
import threading
import tempfile
from pathlib import Path

from depot.core.exceptions import TransferError
from depot.resolvers.base import Resolver, ResolverConfig, ResolverKind

logger = logging.getLogger(__name__)

TRANSIENT_ERRNOS = {errno.EAGAIN, errno.EINTR, errno.EBUSY, errno.ETIMEDOUT}


class FilesystemResolver(Resolver):
    """
    Resolver writing to ``root/<location>``.

    Layout follows the configured pattern, e.g.
    ``root/org.example/app/1.0/app-1.0.jar`` next to ``app-1.0.jar.sha1``.
    """

    kind = ResolverKind.FILESYSTEM

    def __init__(self, config: ResolverConfig):
        super().__init__(config)
        self._root = Path(config.root).expanduser()

    @property
    def root(self) -> Path:
        """Repository root directory."""
        return self._root

    def describe(self) -> str:
        return str(self._root)

    def _destination(self, location: str) -> Path:
        """Map a location to a path, refusing anything outside the root."""
        root = self._root.resolve()
        destination = (root / location).resolve()
        if destination == root or root not in destination.parents:
            raise TransferError(
                f"Location escapes repository root: {location}",
                resolver=self.name,
                location=location,
            )
        return destination

    def transfer(
        self, data: bytes, location: str, cancel: threading.Event | None = None
    ) -> None:
        """Atomically write ``data`` under the repository root."""
        destination = self._destination(location)

        try:
            if destination.exists():
                if destination.is_file() and destination.read_bytes() == data:
                    logger.debug("%s: %s already up to date", self.name, location)
                    return
                if not self.config.overwrite:
                    raise TransferError(
                        f"Destination already exists with different content: {location}",
                        resolver=self.name,
                        location=location,
                    )

            destination.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_name = tempfile.mkstemp(
                dir=destination.parent, prefix=f".{destination.name}.", suffix=".part"
            )
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(temp_name, destination)
            except BaseException:
                Path(temp_name).unlink(missing_ok=True)
                raise
        except TransferError:
            raise
        except OSError as e:
            raise TransferError(
                f"Failed to write {destination}: {e.strerror or e}",
                transient=e.errno in TRANSIENT_ERRNOS,
                resolver=self.name,
                location=location,
            ) from e

        logger.debug("%s: wrote %d bytes to %s", self.name, len(data), destination)
