"""
External command resolver.

Delegates each transfer to a remote-copy style tool (scp, rsync, aws s3 cp,
...). The configured argument template may use ``{source}`` for a local
file holding the bytes and ``{location}`` for the destination location.
"""

import logging
import os
import subprocess
import tempfile
import threading
import time
from pathlib import Path

from depot.core.exceptions import ExecError, TransferError
from depot.resolvers.base import Resolver, ResolverConfig, ResolverKind

logger = logging.getLogger(__name__)

# ssh and scp exit with 255 when the connection itself failed
TRANSIENT_EXIT_CODES = {255}

POLL_INTERVAL_SECONDS = 0.1


class CommandResolver(Resolver):
    """Resolver that runs an external process per transfer."""

    kind = ResolverKind.COMMAND

    def __init__(self, config: ResolverConfig):
        super().__init__(config)
        self._template = list(config.command or [])

    def describe(self) -> str:
        return " ".join(self._template)

    def build_command(self, source: Path, location: str) -> list[str]:
        """Expand the argument template for one transfer."""
        values = {"source": str(source), "location": location}
        return [arg.format(**values) for arg in self._template]

    def run(self, command: list[str], cancel: threading.Event | None = None) -> None:
        """
        Run an external command.

        The child is killed when ``cancel`` is set or the configured timeout
        elapses.

        Raises:
            ExecError: If the command cannot start, is cancelled, times out
                or exits non-zero
        """
        timeout = self.config.timeout_seconds
        deadline = time.monotonic() + timeout
        try:
            process = subprocess.Popen(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                shell=False,
            )
        except OSError as e:
            raise ExecError(f"Command could not be started: {e}", command=command) from e

        with process:
            while True:
                try:
                    _, stderr = process.communicate(timeout=POLL_INTERVAL_SECONDS)
                    break
                except subprocess.TimeoutExpired:
                    if cancel is not None and cancel.is_set():
                        process.kill()
                        process.communicate()
                        raise ExecError("Command cancelled", command=command, cancelled=True)
                    if time.monotonic() >= deadline:
                        process.kill()
                        process.communicate()
                        raise ExecError(
                            f"Command timed out after {timeout}s",
                            command=command,
                            timed_out=True,
                        )

        if process.returncode != 0:
            raise ExecError(
                f"Command exited with code {process.returncode}",
                command=command,
                returncode=process.returncode,
                stderr=stderr,
            )

    def transfer(
        self, data: bytes, location: str, cancel: threading.Event | None = None
    ) -> None:
        """Stage ``data`` in a temporary file and hand it to the command."""
        fd, temp_name = tempfile.mkstemp(prefix="depot-", suffix=Path(location).suffix)
        source = Path(temp_name)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            command = self.build_command(source, location)
            try:
                self.run(command, cancel)
            except ExecError as e:
                transient = e.timed_out or e.returncode in TRANSIENT_EXIT_CODES
                raise TransferError(
                    f"External transfer failed: {e.message}",
                    transient=transient,
                    resolver=self.name,
                    location=location,
                ) from e
        finally:
            source.unlink(missing_ok=True)

        logger.debug("%s: transferred %d bytes to %s", self.name, len(data), location)
