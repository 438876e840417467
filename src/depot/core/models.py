"""
Core data models for Depot.

A ModuleDescriptor is produced upstream by dependency resolution and is
read-only to the publication pipeline. All models here are immutable.
"""

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from depot.core.exceptions import ConfigurationNotFoundError, DescriptorError


class ModuleId(BaseModel):
    """Identity of a publishable module."""

    model_config = {"frozen": True}

    organisation: str = Field(description="Owning organisation or group")
    name: str = Field(description="Module name")
    revision: str = Field(description="Module revision")

    def __str__(self) -> str:
        return f"{self.organisation}#{self.name};{self.revision}"


class Configuration(BaseModel):
    """A named, inheritable grouping of artifacts within a module."""

    model_config = {"frozen": True}

    name: str = Field(description="Configuration name, unique within a module")
    extends: tuple[str, ...] = Field(
        default=(), description="Names of configurations this one inherits from"
    )
    description: str | None = Field(default=None, description="Optional description")

    @field_validator("extends", mode="before")
    @classmethod
    def validate_extends(cls, v):
        """Accept a single name or any sequence of names."""
        if isinstance(v, str):
            return (v,)
        return tuple(v or ())


class Artifact(BaseModel):
    """A file produced by the module and published under one or more configurations."""

    model_config = {"frozen": True}

    name: str = Field(description="Artifact name")
    type: str = Field(default="jar", description="Artifact type")
    ext: str = Field(default="", description="File extension (defaults to type)")
    classifier: str | None = Field(default=None, description="Optional classifier")
    configurations: tuple[str, ...] = Field(
        description="Configurations this artifact belongs to"
    )
    path: Path | None = Field(
        default=None, description="Location of the built file in the artifact store"
    )

    @model_validator(mode="before")
    @classmethod
    def default_extension(cls, data: Any) -> Any:
        """Use the artifact type as extension when none is given."""
        if isinstance(data, dict) and not data.get("ext"):
            data = dict(data)
            data["ext"] = data.get("type") or "jar"
        return data

    @field_validator("configurations", mode="before")
    @classmethod
    def validate_configurations(cls, v):
        """Accept a single name, a comma separated string or a sequence."""
        if isinstance(v, str):
            return tuple(part.strip() for part in v.split(",") if part.strip())
        return tuple(v or ())

    @property
    def identity(self) -> tuple[str, str, str, str | None]:
        """Key used to deduplicate artifacts reachable through several configurations."""
        return (self.name, self.type, self.ext, self.classifier)

    @property
    def file_name(self) -> str:
        """Conventional file name, used for display."""
        suffix = f"-{self.classifier}" if self.classifier else ""
        return f"{self.name}{suffix}.{self.ext}"


class ModuleDescriptor(BaseModel):
    """
    Resolved description of a publishable module.

    Invariants (checked on construction):
    - configuration names are unique
    - ``extends`` only names declared configurations and forms no cycle
    - every artifact belongs to at least one declared configuration
    """

    model_config = {"frozen": True}

    organisation: str = Field(description="Owning organisation or group")
    name: str = Field(description="Module name")
    revision: str = Field(description="Module revision")
    status: str = Field(default="integration", description="Publication status")
    configurations: tuple[Configuration, ...] = Field(
        default=(), description="Declared configurations in declaration order"
    )
    artifacts: tuple[Artifact, ...] = Field(
        default=(), description="Declared artifacts in declaration order"
    )

    @model_validator(mode="after")
    def validate_structure(self) -> "ModuleDescriptor":
        """Enforce descriptor invariants."""
        module = f"{self.organisation}#{self.name}"
        seen: set[str] = set()
        for conf in self.configurations:
            if conf.name in seen:
                raise DescriptorError(
                    f"Duplicate configuration '{conf.name}'",
                    module=module,
                    configuration=conf.name,
                )
            seen.add(conf.name)

        for conf in self.configurations:
            for parent in conf.extends:
                if parent not in seen:
                    raise DescriptorError(
                        f"Configuration '{conf.name}' extends unknown configuration '{parent}'",
                        module=module,
                        configuration=conf.name,
                    )

        self._check_acyclic(module)

        for artifact in self.artifacts:
            if not artifact.configurations:
                raise DescriptorError(
                    f"Artifact '{artifact.file_name}' belongs to no configuration",
                    module=module,
                )
            for conf_name in artifact.configurations:
                if conf_name not in seen:
                    raise DescriptorError(
                        f"Artifact '{artifact.file_name}' references unknown "
                        f"configuration '{conf_name}'",
                        module=module,
                        configuration=conf_name,
                    )
        return self

    def _check_acyclic(self, module: str) -> None:
        """Raise DescriptorError if configuration inheritance has a cycle."""
        parents = {conf.name: conf.extends for conf in self.configurations}
        visiting: set[str] = set()
        done: set[str] = set()

        def visit(name: str, trail: list[str]) -> None:
            if name in done:
                return
            if name in visiting:
                cycle = " -> ".join(trail + [name])
                raise DescriptorError(
                    f"Configuration inheritance cycle: {cycle}",
                    module=module,
                    configuration=name,
                )
            visiting.add(name)
            for parent in parents[name]:
                visit(parent, trail + [name])
            visiting.discard(name)
            done.add(name)

        for conf in self.configurations:
            visit(conf.name, [])

    @property
    def module_id(self) -> ModuleId:
        """Return the module identity."""
        return ModuleId(
            organisation=self.organisation, name=self.name, revision=self.revision
        )

    def configuration_names(self) -> list[str]:
        """Return configuration names in declaration order."""
        return [conf.name for conf in self.configurations]

    def get_configuration(self, name: str) -> Configuration:
        """
        Look up a configuration by name.

        Raises:
            ConfigurationNotFoundError: If the module does not declare it
        """
        for conf in self.configurations:
            if conf.name == name:
                return conf
        raise ConfigurationNotFoundError(
            f"Configuration '{name}' not found in module {self.module_id}",
            configuration=name,
            module=str(self.module_id),
            available=self.configuration_names(),
        )

    def configuration_closure(self, name: str) -> list[str]:
        """
        Return ``name`` followed by every configuration it inherits from.

        Each configuration appears once, in depth-first order.
        """
        closure: list[str] = []
        stack = [name]
        while stack:
            current = stack.pop()
            if current in closure:
                continue
            closure.append(current)
            stack.extend(reversed(self.get_configuration(current).extends))
        return closure

    def artifacts_for(self, name: str) -> list[Artifact]:
        """
        Return the artifacts reachable from a configuration.

        Inherited configurations are expanded and the result is deduplicated
        by artifact identity, in artifact declaration order.
        """
        closure = set(self.configuration_closure(name))
        seen: set[tuple[str, str, str, str | None]] = set()
        result = []
        for artifact in self.artifacts:
            if artifact.identity in seen:
                continue
            if closure.intersection(artifact.configurations):
                seen.add(artifact.identity)
                result.append(artifact)
        return result
