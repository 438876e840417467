"""
Configuration loading for Depot.

Resolver targets and engine settings come from a YAML file (``depot.yaml``
by default); module descriptors from YAML or JSON files.

Environment variables:
- DEPOT_CONFIG: Path of the configuration file
- DEPOT_MAX_RETRIES: Retry bound for transient transfer failures
- DEPOT_RETRY_BACKOFF_MS: Initial retry backoff in milliseconds
- DEPOT_MAX_WORKERS: Resolver targets published in parallel
- DEPOT_TIMEOUT_SECONDS: Cancel the whole publication after this long
"""

import json
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from depot.core.exceptions import ConfigurationError, DescriptorError
from depot.core.models import ModuleDescriptor
from depot.resolvers.base import ResolverConfig

DEFAULT_CONFIG_PATH = Path("depot.yaml")


class PublishSettings(BaseModel):
    """Engine settings."""

    model_config = {"extra": "forbid"}

    max_retries: int = Field(default=3, ge=0, description="Retries per transient failure")
    retry_backoff_ms: int = Field(default=500, ge=0, description="Initial backoff")
    retry_backoff_max_ms: int = Field(default=30_000, ge=0, description="Backoff ceiling")
    max_workers: int = Field(default=4, ge=1, description="Targets published in parallel")
    timeout_seconds: float | None = Field(
        default=None, gt=0, description="Cancel the invocation after this many seconds"
    )


class DepotConfig(BaseModel):
    """Contents of a configuration file."""

    model_config = {"extra": "forbid"}

    resolvers: list[ResolverConfig] = Field(default_factory=list)
    settings: PublishSettings = Field(default_factory=PublishSettings)

    def get_resolver(self, name: str) -> ResolverConfig:
        """Look up a resolver by name."""
        for resolver in self.resolvers:
            if resolver.name == name:
                return resolver
        raise ConfigurationError(f"Unknown resolver '{name}'", config_key="resolvers")


def _env_overrides() -> dict[str, Any]:
    """Read settings overrides from the environment."""
    mapping = {
        "DEPOT_MAX_RETRIES": "max_retries",
        "DEPOT_RETRY_BACKOFF_MS": "retry_backoff_ms",
        "DEPOT_MAX_WORKERS": "max_workers",
        "DEPOT_TIMEOUT_SECONDS": "timeout_seconds",
    }
    overrides: dict[str, Any] = {}
    for env_var, key in mapping.items():
        value = os.getenv(env_var)
        if value is not None and value != "":
            overrides[key] = value
    return overrides


def load_settings(base: dict[str, Any] | None = None) -> PublishSettings:
    """
    Build engine settings.

    Values from ``base`` (the file's ``settings`` block) are applied on top
    of the environment, which in turn overrides the defaults.
    """
    data = _env_overrides()
    data.update(base or {})
    try:
        return PublishSettings(**data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid publish settings: {e.error_count()} error(s)",
            config_key="settings",
            details={"errors": [err["msg"] for err in e.errors()]},
        ) from e


def _read_structured(path: Path) -> Any:
    """Parse a YAML or JSON file."""
    if not path.exists():
        raise ConfigurationError(f"File not found: {path}", config_file=str(path))
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            return json.loads(text)
        return yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot parse {path}: {e}", config_file=str(path)) from e


def config_path_from_env() -> Path:
    """Return the configuration path, honouring DEPOT_CONFIG."""
    return Path(os.getenv("DEPOT_CONFIG", str(DEFAULT_CONFIG_PATH)))


def load_config(path: Path | None = None) -> DepotConfig:
    """
    Load resolver targets and settings.

    Relative filesystem roots are resolved against the file's directory.

    Raises:
        ConfigurationError: If the file is missing or invalid
    """
    path = path or config_path_from_env()
    data = _read_structured(path) or {}
    if not isinstance(data, dict):
        raise ConfigurationError("Top level must be a mapping", config_file=str(path))

    settings = load_settings(data.get("settings"))
    resolvers = data.get("resolvers") or []
    try:
        config = DepotConfig(resolvers=resolvers, settings=settings)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid resolver configuration: {e.error_count()} error(s)",
            config_file=str(path),
            config_key="resolvers",
            details={"errors": [err["msg"] for err in e.errors()]},
        ) from e

    names = [r.name for r in config.resolvers]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ConfigurationError(
            f"Duplicate resolver names: {', '.join(duplicates)}",
            config_file=str(path),
            config_key="resolvers",
        )

    base_dir = path.parent
    return config.model_copy(
        update={"resolvers": [_anchor_root(r, base_dir) for r in config.resolvers]}
    )


def _anchor_root(resolver: ResolverConfig, base_dir: Path) -> ResolverConfig:
    """Resolve relative filesystem roots, recursing into chains."""
    update: dict[str, Any] = {}
    if resolver.root is not None and not resolver.root.expanduser().is_absolute():
        update["root"] = base_dir / resolver.root
    if resolver.resolvers:
        update["resolvers"] = [_anchor_root(r, base_dir) for r in resolver.resolvers]
    return resolver.model_copy(update=update) if update else resolver


def load_descriptor(path: Path) -> ModuleDescriptor:
    """
    Load a resolved module descriptor from YAML or JSON.

    Relative artifact paths are resolved against the file's directory.

    Raises:
        ConfigurationError: If the file is missing, unparsable or invalid
    """
    data = _read_structured(path)
    if not isinstance(data, dict):
        raise ConfigurationError("Descriptor must be a mapping", config_file=str(path))

    artifacts = []
    for artifact in data.get("artifacts") or []:
        if isinstance(artifact, dict) and artifact.get("path"):
            artifact = dict(artifact)
            artifact_path = Path(artifact["path"]).expanduser()
            if not artifact_path.is_absolute():
                artifact_path = path.parent / artifact_path
            artifact["path"] = artifact_path
        artifacts.append(artifact)
    data = {**data, "artifacts": artifacts}

    try:
        return ModuleDescriptor(**data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid module descriptor: {e.error_count()} error(s)",
            config_file=str(path),
            details={"errors": [err["msg"] for err in e.errors()]},
        ) from e
    except DescriptorError as e:
        raise ConfigurationError(
            f"Invalid module descriptor: {e.message}",
            config_file=str(path),
            details=dict(e.details),
        ) from e
