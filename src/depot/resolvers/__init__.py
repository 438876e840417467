"""
Resolver implementations for Depot.

Provides publication backends for local or mounted filesystems, HTTP
repositories, remote-copy tools and ordered chains of those.
"""

from depot.resolvers.base import ChainPolicy, Resolver, ResolverConfig, ResolverKind
from depot.resolvers.chain import ChainResolver
from depot.resolvers.command import CommandResolver
from depot.resolvers.filesystem import FilesystemResolver
from depot.resolvers.http import HttpResolver
from depot.resolvers.patterns import (
    DEFAULT_ARTIFACT_PATTERN,
    ArtifactCoordinates,
    matches_configuration,
    substitute,
)

__all__ = [
    "Resolver",
    "ResolverConfig",
    "ResolverKind",
    "ChainPolicy",
    "ChainResolver",
    "CommandResolver",
    "FilesystemResolver",
    "HttpResolver",
    "ArtifactCoordinates",
    "DEFAULT_ARTIFACT_PATTERN",
    "matches_configuration",
    "substitute",
    "create_resolver",
]

# Resolver kind registry
RESOLVER_REGISTRY: dict[ResolverKind, type[Resolver]] = {
    ResolverKind.FILESYSTEM: FilesystemResolver,
    ResolverKind.HTTP: HttpResolver,
    ResolverKind.COMMAND: CommandResolver,
    ResolverKind.CHAIN: ChainResolver,
}


def create_resolver(config: ResolverConfig) -> Resolver:
    """Instantiate the resolver class registered for ``config.kind``."""
    return RESOLVER_REGISTRY[config.kind](config)
