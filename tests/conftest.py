"""Pytest configuration and fixtures."""

import os
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from depot.core.models import ModuleDescriptor
from depot.resolvers import FilesystemResolver, ResolverConfig

# Keep retries fast and deterministic in tests
os.environ.setdefault("DEPOT_RETRY_BACKOFF_MS", "0")


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def build_dir(temp_dir: Path) -> Path:
    """Provide a build output directory with sample artifact files."""
    libs = temp_dir / "build" / "libs"
    libs.mkdir(parents=True)
    (libs / "app.jar").write_bytes(b"app jar bytes")
    (libs / "app-sources.jar").write_bytes(b"app sources bytes")
    (libs / "app-tests.jar").write_bytes(b"app test bytes")
    (libs / "api.jar").write_bytes(b"api jar bytes")
    return libs


@pytest.fixture
def descriptor(build_dir: Path) -> ModuleDescriptor:
    """
    A module with inheriting configurations.

    compile <- runtime <- test; ``api.jar`` belongs to compile and runtime.
    """
    return ModuleDescriptor(
        organisation="org.example",
        name="app",
        revision="1.0",
        configurations=[
            {"name": "compile"},
            {"name": "runtime", "extends": ["compile"]},
            {"name": "test", "extends": ["runtime"]},
            {"name": "sources"},
        ],
        artifacts=[
            {"name": "api", "type": "jar", "configurations": ["compile", "runtime"], "path": build_dir / "api.jar"},
            {"name": "app", "type": "jar", "configurations": ["runtime"], "path": build_dir / "app.jar"},
            {
                "name": "app",
                "type": "jar",
                "classifier": "tests",
                "configurations": ["test"],
                "path": build_dir / "app-tests.jar",
            },
            {
                "name": "app",
                "type": "source",
                "ext": "jar",
                "classifier": "sources",
                "configurations": ["sources"],
                "path": build_dir / "app-sources.jar",
            },
        ],
    )


@pytest.fixture
def repo_dir(temp_dir: Path) -> Path:
    """Provide an empty repository root."""
    repo = temp_dir / "repo"
    repo.mkdir()
    return repo


@pytest.fixture
def make_fs_resolver():
    """Provide a factory for filesystem resolvers."""

    def factory(root: Path, name: str = "local", **kwargs) -> FilesystemResolver:
        return FilesystemResolver(
            ResolverConfig(name=name, kind="filesystem", root=root, **kwargs)
        )

    return factory
