"""
Base resolver class and resolver configuration.

All resolvers inherit from Resolver and implement transfer(). Location
resolution and configuration matching are shared; backends differ only in
how bytes reach a location.
"""

import threading
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator

from depot.resolvers.patterns import (
    DEFAULT_ARTIFACT_PATTERN,
    ArtifactCoordinates,
    matches_configuration,
    substitute,
    validate_pattern,
)


class ResolverKind(Enum):
    """Supported resolver backends."""

    FILESYSTEM = "filesystem"
    HTTP = "http"
    COMMAND = "command"
    CHAIN = "chain"


class ChainPolicy(Enum):
    """How a chain resolver treats its sub-resolvers."""

    FIRST_SUCCESS = "first_success"
    ALL = "all"


class ResolverConfig(BaseModel):
    """Configuration of one resolver target."""

    model_config = {"extra": "forbid"}

    name: str = Field(description="Resolver name, used for logging and reporting")
    kind: ResolverKind = Field(default=ResolverKind.FILESYSTEM, description="Backend type")

    # Transport parameters
    root: Path | None = Field(default=None, description="Repository root (filesystem)")
    url: str | None = Field(default=None, description="Repository base URL (http)")
    command: list[str] | None = Field(
        default=None,
        description="Argument template with {source} and {location} (command)",
    )
    username: str | None = Field(default=None, description="User for basic auth")
    password_env: str | None = Field(
        default=None, description="Environment variable holding the password"
    )
    token_env: str | None = Field(
        default=None, description="Environment variable holding a bearer token"
    )
    headers: dict[str, str] = Field(default_factory=dict, description="Extra HTTP headers")
    verify_ssl: bool = True
    timeout_seconds: float = Field(default=30.0, gt=0)

    # Layout
    artifact_pattern: str = Field(default=DEFAULT_ARTIFACT_PATTERN)
    descriptor_pattern: str | None = Field(
        default=None, description="Pattern for the module descriptor (default: artifact_pattern)"
    )

    # Publication behaviour
    configurations: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Configuration name filter (wildcards, '!' excludes)",
    )
    checksums: list[str] = Field(
        default_factory=lambda: ["sha1", "md5"],
        description="Checksum algorithms published next to each artifact",
    )
    overwrite: bool = Field(
        default=False, description="Replace existing destinations with different content"
    )
    max_retries: int | None = Field(
        default=None, ge=0, description="Retry bound for transient failures"
    )

    # Chains
    policy: ChainPolicy = ChainPolicy.FIRST_SUCCESS
    resolvers: list["ResolverConfig"] = Field(default_factory=list)

    @field_validator("kind", mode="before")
    @classmethod
    def validate_kind(cls, v):
        """Accept resolver kinds case-insensitively."""
        if isinstance(v, str):
            return ResolverKind(v.lower())
        return v

    @field_validator("policy", mode="before")
    @classmethod
    def validate_policy(cls, v):
        """Accept chain policies case-insensitively."""
        if isinstance(v, str):
            return ChainPolicy(v.lower())
        return v

    @field_validator("artifact_pattern", "descriptor_pattern")
    @classmethod
    def validate_patterns(cls, v):
        """Reject patterns with unknown tokens."""
        if v is None:
            return v
        return validate_pattern(v)

    @field_validator("checksums", mode="before")
    @classmethod
    def validate_checksums(cls, v):
        """Accept a comma separated string of algorithms."""
        if isinstance(v, str):
            return [part.strip().lower() for part in v.split(",") if part.strip()]
        return [str(a).lower() for a in (v or [])]

    @model_validator(mode="after")
    def validate_transport(self) -> "ResolverConfig":
        """Check that each kind has its transport parameters."""
        if self.kind == ResolverKind.FILESYSTEM and self.root is None:
            raise ValueError(f"Resolver '{self.name}': filesystem resolvers need 'root'")
        if self.kind == ResolverKind.HTTP:
            if not self.url or not self.url.startswith(("http://", "https://")):
                raise ValueError(f"Resolver '{self.name}': http resolvers need an http(s) 'url'")
        if self.kind == ResolverKind.COMMAND and not self.command:
            raise ValueError(f"Resolver '{self.name}': command resolvers need 'command'")
        if self.kind == ResolverKind.CHAIN and not self.resolvers:
            raise ValueError(f"Resolver '{self.name}': chain resolvers need 'resolvers'")
        return self


class Resolver(ABC):
    """
    Abstract base class for repository backends.

    Subclasses implement:
    - transfer(): write bytes to a location, raising TransferError on failure
    - describe(): human-readable destination for reporting

    Implementations must be safe for concurrent use and idempotent when the
    same bytes are transferred to the same location again.
    """

    kind: ResolverKind

    def __init__(self, config: ResolverConfig):
        """
        Initialize the resolver.

        Args:
            config: Resolver configuration
        """
        self.config = config

    @property
    def name(self) -> str:
        """Resolver name."""
        return self.config.name

    @property
    def checksums(self) -> list[str]:
        """Checksum algorithms this target publishes."""
        return list(self.config.checksums)

    def matches(self, configuration: str) -> bool:
        """Return True if artifacts of this configuration go to this resolver."""
        return matches_configuration(self.config.configurations, configuration)

    def resolve_location(self, coordinates: ArtifactCoordinates) -> str:
        """Compute the location of an artifact relative to this resolver."""
        return substitute(self.config.artifact_pattern, coordinates)

    def resolve_descriptor_location(self, coordinates: ArtifactCoordinates) -> str:
        """Compute the location of the module descriptor."""
        pattern = self.config.descriptor_pattern or self.config.artifact_pattern
        return substitute(pattern, coordinates)

    @abstractmethod
    def transfer(
        self, data: bytes, location: str, cancel: threading.Event | None = None
    ) -> None:
        """
        Write ``data`` to ``location``.

        Backends with long-running transfers watch ``cancel`` and abort
        once it is set; short transfers may ignore it.

        Raises:
            TransferError: With ``transient`` set when a retry may succeed
        """

    @abstractmethod
    def describe(self) -> str:
        """Return the physical destination root for display."""

    def close(self) -> None:
        """Release any pooled resources."""

    def __enter__(self) -> "Resolver":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"
