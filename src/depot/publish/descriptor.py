"""
Module descriptor publication.

The descriptor is either generated from the ModuleDescriptor as JSON or
taken verbatim from a pre-serialized file. Generated output contains no
timestamps or local paths, so publishing the same module twice yields
identical bytes.
"""

import json
from pathlib import Path

from depot.core.models import Artifact, ModuleDescriptor

DESCRIPTOR_TYPE = "descriptor"
DESCRIPTOR_EXT = "json"


def descriptor_artifact(
    descriptor: ModuleDescriptor, descriptor_file: Path | None = None
) -> Artifact:
    """
    Return the artifact record describing the descriptor itself.

    It is named after the module and belongs to every configuration.
    A verbatim file keeps its own extension.
    """
    ext = DESCRIPTOR_EXT
    if descriptor_file is not None and descriptor_file.suffix:
        ext = descriptor_file.suffix.lstrip(".")
    return Artifact(
        name=descriptor.name,
        type=DESCRIPTOR_TYPE,
        ext=ext,
        configurations=tuple(descriptor.configuration_names()),
        path=descriptor_file,
    )


def serialize_descriptor(descriptor: ModuleDescriptor) -> bytes:
    """Serialize a descriptor to deterministic JSON bytes."""
    payload = descriptor.model_dump(
        mode="json",
        exclude={"artifacts": {"__all__": {"path"}}},
    )
    return (json.dumps(payload, indent=2) + "\n").encode("utf-8")
