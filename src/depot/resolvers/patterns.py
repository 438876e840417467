"""
Artifact location patterns and configuration filters.

Patterns use bracketed tokens, e.g.::

    [organisation]/[module]/[revision]/[artifact]-[revision](-[classifier]).[ext]

A section in parentheses is kept only when every token inside it has a
non-empty value, so a missing classifier drops the ``-`` separator too.
"""

import re
from dataclasses import dataclass
from fnmatch import fnmatchcase

from depot.core.models import Artifact, ModuleDescriptor

DEFAULT_ARTIFACT_PATTERN = (
    "[organisation]/[module]/[revision]/[artifact]-[revision](-[classifier]).[ext]"
)

TOKENS = (
    "organisation",
    "organization",
    "module",
    "revision",
    "artifact",
    "type",
    "ext",
    "classifier",
    "conf",
)

_TOKEN_RE = re.compile(r"\[([a-z]+)\]")
_PART_RE = re.compile(r"\(([^()]*)\)|\[([a-z]+)\]")


@dataclass(frozen=True)
class ArtifactCoordinates:
    """Everything a pattern may refer to for one artifact."""

    organisation: str
    module: str
    revision: str
    artifact: str
    type: str
    ext: str
    classifier: str | None = None
    conf: str | None = None

    @classmethod
    def of(
        cls,
        descriptor: ModuleDescriptor,
        artifact: Artifact,
        conf: str | None = None,
    ) -> "ArtifactCoordinates":
        """Build coordinates for an artifact of a module."""
        return cls(
            organisation=descriptor.organisation,
            module=descriptor.name,
            revision=descriptor.revision,
            artifact=artifact.name,
            type=artifact.type,
            ext=artifact.ext,
            classifier=artifact.classifier,
            conf=conf,
        )

    def token_values(self) -> dict[str, str]:
        """Map each pattern token to its value (empty string when unset)."""
        return {
            "organisation": self.organisation,
            "organization": self.organisation,
            "module": self.module,
            "revision": self.revision,
            "artifact": self.artifact,
            "type": self.type,
            "ext": self.ext,
            "classifier": self.classifier or "",
            "conf": self.conf or "",
        }


def substitute(pattern: str, coordinates: ArtifactCoordinates) -> str:
    """
    Expand a pattern for the given coordinates.

    Args:
        pattern: Location template
        coordinates: Artifact coordinates

    Returns:
        Location string with every token replaced

    Raises:
        ValueError: If the pattern uses an unknown token
    """
    values = coordinates.token_values()

    def value_of(token: str) -> str:
        if token not in values:
            raise ValueError(f"Unknown pattern token [{token}] in '{pattern}'")
        return values[token]

    def replace_part(match: re.Match) -> str:
        section, token = match.groups()
        if token is not None:
            return value_of(token)
        section_values = [value_of(t) for t in _TOKEN_RE.findall(section)]
        if not all(section_values):
            return ""
        return _TOKEN_RE.sub(lambda m: value_of(m.group(1)), section)

    # Values are inserted verbatim; the result is never scanned again
    return _PART_RE.sub(replace_part, pattern)


def validate_pattern(pattern: str) -> str:
    """Return the pattern unchanged, or raise ValueError for unknown tokens."""
    unknown = [t for t in _TOKEN_RE.findall(pattern) if t not in TOKENS]
    if unknown:
        raise ValueError(f"Unknown pattern token(s) {unknown} in '{pattern}'")
    return pattern


def matches_configuration(patterns: list[str] | tuple[str, ...], name: str) -> bool:
    """
    Check a configuration name against a filter.

    Each entry is a shell-style wildcard; entries starting with ``!``
    exclude. An empty filter matches everything.
    """
    if not patterns:
        return True
    included = False
    for pattern in patterns:
        if pattern.startswith("!"):
            if fnmatchcase(name, pattern[1:]):
                return False
        elif fnmatchcase(name, pattern):
            included = True
    if all(p.startswith("!") for p in patterns):
        return True
    return included
