"""
HTTP resolver.

Publishes with PUT requests below a base URL, as accepted by Maven/Ivy
style repository managers. Server responses and connection failures are
reported distinctly: the former carry a status code, the latter do not.
"""

import logging
import os
import threading

import httpx

from depot.core.exceptions import ConfigurationError, TransferError
from depot.resolvers.base import Resolver, ResolverConfig, ResolverKind

logger = logging.getLogger(__name__)

# Status codes worth retrying against the same destination
TRANSIENT_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}


class HttpResolver(Resolver):
    """
    Resolver uploading via HTTP PUT.

    Supports:
    - Basic auth (username + password from an environment variable)
    - Bearer token from an environment variable
    - Extra static headers
    - A shared, thread-safe connection pool per resolver
    """

    kind = ResolverKind.HTTP

    def __init__(
        self,
        config: ResolverConfig,
        transport: httpx.BaseTransport | None = None,
    ):
        """
        Initialize the HTTP resolver.

        Args:
            config: Resolver configuration
            transport: Optional httpx transport (used for tests and proxies)
        """
        super().__init__(config)
        self._transport = transport
        self._client: httpx.Client | None = None
        self._client_lock = threading.Lock()

    def describe(self) -> str:
        return self.config.url or ""

    def url_for(self, location: str) -> str:
        """Return the absolute URL of a location."""
        return f"{self.config.url.rstrip('/')}/{location.lstrip('/')}"

    def _read_secret(self, env_var: str) -> str:
        value = os.getenv(env_var)
        if value is None:
            raise ConfigurationError(
                f"Credential for resolver '{self.name}' is not set",
                env_var=env_var,
            )
        return value

    def _prepare_auth(self) -> tuple[str, str] | None:
        """Prepare basic auth credentials."""
        if self.config.username and self.config.password_env:
            return (self.config.username, self._read_secret(self.config.password_env))
        return None

    def _prepare_headers(self) -> dict[str, str]:
        """Prepare headers sent with every upload."""
        headers = dict(self.config.headers)
        headers.setdefault("Content-Type", "application/octet-stream")
        if self.config.token_env:
            headers["Authorization"] = f"Bearer {self._read_secret(self.config.token_env)}"
        return headers

    def _get_client(self) -> httpx.Client:
        """Get or lazily create the shared client."""
        if self._client is None:
            with self._client_lock:
                if self._client is None:
                    kwargs = {}
                    if self._transport is not None:
                        kwargs["transport"] = self._transport
                    self._client = httpx.Client(
                        timeout=self.config.timeout_seconds,
                        verify=self.config.verify_ssl,
                        auth=self._prepare_auth(),
                        headers=self._prepare_headers(),
                        **kwargs,
                    )
        return self._client

    def transfer(
        self, data: bytes, location: str, cancel: threading.Event | None = None
    ) -> None:
        """PUT ``data`` at ``location``."""
        url = self.url_for(location)
        try:
            client = self._get_client()
        except ConfigurationError as e:
            raise TransferError(
                f"Cannot authenticate to {self.config.url}: {e}",
                resolver=self.name,
                location=location,
            ) from e

        try:
            response = client.put(url, content=data)
        except httpx.TimeoutException as e:
            raise TransferError(
                f"Request timeout after {self.config.timeout_seconds}s: {url}",
                transient=True,
                resolver=self.name,
                location=location,
            ) from e
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
            raise TransferError(
                f"Malformed destination URL {url}: {e}",
                resolver=self.name,
                location=location,
            ) from e
        except httpx.TransportError as e:
            raise TransferError(
                f"Connection error for {url}: {e}",
                transient=True,
                resolver=self.name,
                location=location,
            ) from e

        status_code = response.status_code
        if 200 <= status_code < 300:
            logger.debug("%s: PUT %s -> %d", self.name, url, status_code)
            return

        raise TransferError(
            f"HTTP {status_code} for PUT {url}: {response.text[:200]}",
            transient=status_code in TRANSIENT_STATUS_CODES,
            resolver=self.name,
            location=location,
            status_code=status_code,
        )

    def close(self) -> None:
        """Close the connection pool."""
        with self._client_lock:
            if self._client is not None:
                self._client.close()
                self._client = None
