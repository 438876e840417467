"""
Publication plan builder.

Turns a descriptor, a selection of configurations and an ordered list of
resolvers into the ordered list of transfers to perform. Pure: no I/O.
"""

from pathlib import Path
from typing import Iterable

from depot.core.exceptions import ConfigurationError, ConfigurationNotFoundError
from depot.core.models import ModuleDescriptor
from depot.publish.descriptor import descriptor_artifact
from depot.publish.models import PublicationPlan, PublishItem
from depot.resolvers.base import Resolver
from depot.resolvers.patterns import ArtifactCoordinates


def build_plan(
    descriptor: ModuleDescriptor,
    configuration_names: Iterable[str],
    resolvers: Iterable[Resolver],
    upload_descriptor: bool = False,
    descriptor_file: Path | None = None,
) -> PublicationPlan:
    """
    Build the publication plan.

    Ordering is resolver-major, then requested configuration order, then
    artifact declaration order. When ``upload_descriptor`` is set, every
    resolver gets one descriptor item after all of its artifact items.

    Args:
        descriptor: Resolved module descriptor
        configuration_names: Configurations to publish
        resolvers: Target resolvers in order
        upload_descriptor: Whether to publish the descriptor as well
        descriptor_file: Pre-serialized descriptor to publish verbatim

    Returns:
        PublicationPlan ready for PublishEngine.execute()

    Raises:
        ConfigurationNotFoundError: If no configuration is requested or one is unknown
        ConfigurationError: If two resolvers share a name
    """
    names = list(dict.fromkeys(configuration_names))
    if not names:
        raise ConfigurationNotFoundError(
            f"No configuration requested for module {descriptor.module_id}",
            module=str(descriptor.module_id),
            available=descriptor.configuration_names(),
        )
    for name in names:
        descriptor.get_configuration(name)

    targets = list(resolvers)
    seen_names: set[str] = set()
    for resolver in targets:
        if resolver.name in seen_names:
            raise ConfigurationError(
                f"Duplicate resolver name '{resolver.name}'",
                config_key="resolvers",
            )
        seen_names.add(resolver.name)

    # Closure per configuration is computed once and reused for every target
    artifacts_by_conf = {name: descriptor.artifacts_for(name) for name in names}

    items: list[PublishItem] = []
    for resolver in targets:
        published: set[tuple] = set()
        for name in names:
            if not resolver.matches(name):
                continue
            for artifact in artifacts_by_conf[name]:
                if artifact.identity in published:
                    continue
                published.add(artifact.identity)
                coordinates = ArtifactCoordinates.of(descriptor, artifact, conf=name)
                items.append(
                    PublishItem(
                        artifact=artifact,
                        location=resolver.resolve_location(coordinates),
                        resolver=resolver,
                        configuration=name,
                    )
                )

        if upload_descriptor:
            artifact = descriptor_artifact(descriptor, descriptor_file)
            coordinates = ArtifactCoordinates.of(descriptor, artifact)
            items.append(
                PublishItem(
                    artifact=artifact,
                    location=resolver.resolve_descriptor_location(coordinates),
                    resolver=resolver,
                    is_descriptor=True,
                )
            )

    return PublicationPlan(
        descriptor=descriptor,
        configurations=names,
        targets=targets,
        items=items,
        upload_descriptor=upload_descriptor,
        descriptor_file=descriptor_file,
    )
