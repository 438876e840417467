"""Tests for resolver backends."""

import sys
import threading
import time
from pathlib import Path
from unittest.mock import MagicMock, Mock, patch

import httpx
import pytest
from pydantic import ValidationError

from depot.core.exceptions import ExecError, TransferError
from depot.resolvers import (
    ChainPolicy,
    ChainResolver,
    CommandResolver,
    FilesystemResolver,
    HttpResolver,
    Resolver,
    ResolverConfig,
    ResolverKind,
    create_resolver,
)


class RecordingResolver(Resolver):
    """In-memory resolver that can be told to fail."""

    kind = ResolverKind.FILESYSTEM

    def __init__(self, name: str, failures: list[TransferError] | None = None):
        super().__init__(ResolverConfig(name=name, root=Path("/unused")))
        self.failures = list(failures or [])
        self.stored: dict[str, bytes] = {}

    def describe(self) -> str:
        return "memory"

    def transfer(self, data: bytes, location: str, cancel=None) -> None:
        if self.failures:
            raise self.failures.pop(0)
        self.stored[location] = data


class TestResolverConfig:
    """Tests for resolver configuration validation."""

    def test_filesystem_requires_root(self) -> None:
        with pytest.raises(ValidationError):
            ResolverConfig(name="x", kind="filesystem")

    def test_http_requires_url(self) -> None:
        with pytest.raises(ValidationError):
            ResolverConfig(name="x", kind="http", url="ftp://example.com")

    def test_command_requires_command(self) -> None:
        with pytest.raises(ValidationError):
            ResolverConfig(name="x", kind="command")

    def test_chain_requires_resolvers(self) -> None:
        with pytest.raises(ValidationError):
            ResolverConfig(name="x", kind="chain")

    def test_unknown_pattern_token(self, temp_dir: Path) -> None:
        with pytest.raises(ValidationError):
            ResolverConfig(name="x", root=temp_dir, artifact_pattern="[bogus]")

    def test_checksums_from_string(self, temp_dir: Path) -> None:
        config = ResolverConfig(name="x", root=temp_dir, checksums="SHA1, md5")
        assert config.checksums == ["sha1", "md5"]

    def test_defaults(self, temp_dir: Path) -> None:
        config = ResolverConfig(name="x", root=temp_dir)
        assert config.kind == ResolverKind.FILESYSTEM
        assert config.configurations == ["*"]
        assert config.checksums == ["sha1", "md5"]
        assert config.overwrite is False

    def test_create_resolver(self, temp_dir: Path) -> None:
        resolver = create_resolver(ResolverConfig(name="x", kind="FILESYSTEM", root=temp_dir))
        assert isinstance(resolver, FilesystemResolver)


class TestFilesystemResolver:
    """Tests for the filesystem backend."""

    def test_writes_under_root(self, repo_dir: Path, make_fs_resolver) -> None:
        resolver = make_fs_resolver(repo_dir)
        resolver.transfer(b"data", "org/app/1.0/app-1.0.jar")
        assert (repo_dir / "org/app/1.0/app-1.0.jar").read_bytes() == b"data"

    def test_no_temporary_files_left(self, repo_dir: Path, make_fs_resolver) -> None:
        resolver = make_fs_resolver(repo_dir)
        resolver.transfer(b"data", "a/b.jar")
        assert [p.name for p in (repo_dir / "a").iterdir()] == ["b.jar"]

    def test_identical_rewrite_is_idempotent(self, repo_dir: Path, make_fs_resolver) -> None:
        resolver = make_fs_resolver(repo_dir)
        resolver.transfer(b"data", "a.jar")
        resolver.transfer(b"data", "a.jar")
        assert (repo_dir / "a.jar").read_bytes() == b"data"

    def test_refuses_different_content_without_overwrite(self, repo_dir: Path, make_fs_resolver) -> None:
        resolver = make_fs_resolver(repo_dir)
        resolver.transfer(b"one", "a.jar")
        with pytest.raises(TransferError) as exc_info:
            resolver.transfer(b"two", "a.jar")
        assert exc_info.value.permanent
        assert (repo_dir / "a.jar").read_bytes() == b"one"

    def test_overwrite_replaces(self, repo_dir: Path, make_fs_resolver) -> None:
        resolver = make_fs_resolver(repo_dir, overwrite=True)
        resolver.transfer(b"one", "a.jar")
        resolver.transfer(b"two", "a.jar")
        assert (repo_dir / "a.jar").read_bytes() == b"two"

    def test_location_escaping_root(self, repo_dir: Path, make_fs_resolver) -> None:
        resolver = make_fs_resolver(repo_dir)
        with pytest.raises(TransferError, match="escapes"):
            resolver.transfer(b"x", "../outside.jar")

    def test_unwritable_root_is_permanent(self, temp_dir: Path, make_fs_resolver) -> None:
        blocker = temp_dir / "not-a-dir"
        blocker.write_text("file")
        resolver = make_fs_resolver(blocker)
        with pytest.raises(TransferError) as exc_info:
            resolver.transfer(b"x", "org/a.jar")
        assert exc_info.value.permanent
        assert exc_info.value.resolver == "local"

    def test_matches_filter(self, repo_dir: Path, make_fs_resolver) -> None:
        resolver = make_fs_resolver(repo_dir, configurations=["runtime"])
        assert resolver.matches("runtime")
        assert not resolver.matches("test")


class TestHttpResolver:
    """Tests for the HTTP backend, using httpx.MockTransport."""

    def _resolver(self, handler, **kwargs) -> HttpResolver:
        config = ResolverConfig(
            name="remote", kind="http", url="https://repo.example.com/releases/", **kwargs
        )
        return HttpResolver(config, transport=httpx.MockTransport(handler))

    def test_put_success(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(201)

        resolver = self._resolver(handler)
        resolver.transfer(b"bytes", "org/app/1.0/app-1.0.jar")

        assert requests[0].method == "PUT"
        assert str(requests[0].url) == "https://repo.example.com/releases/org/app/1.0/app-1.0.jar"
        assert requests[0].content == b"bytes"

    def test_server_error_is_transient_with_status(self) -> None:
        resolver = self._resolver(lambda request: httpx.Response(503))
        with pytest.raises(TransferError) as exc_info:
            resolver.transfer(b"x", "a.jar")
        assert exc_info.value.transient
        assert exc_info.value.status_code == 503

    def test_forbidden_is_permanent(self) -> None:
        resolver = self._resolver(lambda request: httpx.Response(403, text="denied"))
        with pytest.raises(TransferError) as exc_info:
            resolver.transfer(b"x", "a.jar")
        assert exc_info.value.permanent
        assert exc_info.value.status_code == 403

    def test_connection_failure_has_no_status(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        resolver = self._resolver(handler)
        with pytest.raises(TransferError) as exc_info:
            resolver.transfer(b"x", "a.jar")
        assert exc_info.value.transient
        assert exc_info.value.status_code is None

    def test_timeout_is_transient(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        resolver = self._resolver(handler)
        with pytest.raises(TransferError) as exc_info:
            resolver.transfer(b"x", "a.jar")
        assert exc_info.value.transient

    def test_basic_auth_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REPO_PASSWORD", "secret")
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers.get("Authorization", ""))
            return httpx.Response(200)

        resolver = self._resolver(handler, username="deployer", password_env="REPO_PASSWORD")
        resolver.transfer(b"x", "a.jar")
        assert seen[0].startswith("Basic ")

    def test_missing_credential_is_permanent(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("REPO_TOKEN", raising=False)
        resolver = self._resolver(lambda request: httpx.Response(200), token_env="REPO_TOKEN")
        with pytest.raises(TransferError) as exc_info:
            resolver.transfer(b"x", "a.jar")
        assert exc_info.value.permanent

    @patch("depot.resolvers.http.httpx.Client")
    def test_client_settings(self, mock_client_class: MagicMock) -> None:
        """The shared client uses the resolver's timeout and TLS settings."""
        mock_client = MagicMock()
        mock_client.put.return_value = Mock(status_code=204)
        mock_client_class.return_value = mock_client

        config = ResolverConfig(
            name="remote",
            kind="http",
            url="https://repo.example.com",
            timeout_seconds=5,
            verify_ssl=False,
            headers={"X-Repo": "releases"},
        )
        resolver = HttpResolver(config)
        resolver.transfer(b"x", "a.jar")
        resolver.transfer(b"y", "b.jar")

        mock_client_class.assert_called_once()
        kwargs = mock_client_class.call_args.kwargs
        assert kwargs["timeout"] == 5
        assert kwargs["verify"] is False
        assert kwargs["headers"]["X-Repo"] == "releases"
        mock_client.put.assert_called_with("https://repo.example.com/b.jar", content=b"y")

    def test_close_is_safe_twice(self) -> None:
        resolver = self._resolver(lambda request: httpx.Response(200))
        resolver.transfer(b"x", "a.jar")
        resolver.close()
        resolver.close()


class TestCommandResolver:
    """Tests for the external command backend."""

    def _resolver(self, target_root: Path, script: str) -> CommandResolver:
        config = ResolverConfig(
            name="remote-copy",
            kind="command",
            command=[sys.executable, "-c", script, "{source}", str(target_root) + "/{location}"],
        )
        return CommandResolver(config)

    def test_copies_file(self, repo_dir: Path) -> None:
        script = (
            "import os, shutil, sys; "
            "os.makedirs(os.path.dirname(sys.argv[2]), exist_ok=True); "
            "shutil.copy(sys.argv[1], sys.argv[2])"
        )
        resolver = self._resolver(repo_dir, script)
        resolver.transfer(b"remote bytes", "org/app.jar")
        assert (repo_dir / "org/app.jar").read_bytes() == b"remote bytes"

    def test_failure_wraps_exec_error(self, repo_dir: Path) -> None:
        resolver = self._resolver(repo_dir, "import sys; sys.exit(3)")
        with pytest.raises(TransferError) as exc_info:
            resolver.transfer(b"x", "a.jar")
        cause = exc_info.value.__cause__
        assert isinstance(cause, ExecError)
        assert cause.returncode == 3
        assert exc_info.value.permanent

    def test_connection_exit_code_is_transient(self, repo_dir: Path) -> None:
        resolver = self._resolver(repo_dir, "import sys; sys.exit(255)")
        with pytest.raises(TransferError) as exc_info:
            resolver.transfer(b"x", "a.jar")
        assert exc_info.value.transient

    def test_missing_executable(self) -> None:
        config = ResolverConfig(
            name="broken", kind="command", command=["/nonexistent/depot-copy", "{source}"]
        )
        with pytest.raises(TransferError) as exc_info:
            CommandResolver(config).transfer(b"x", "a.jar")
        assert isinstance(exc_info.value.__cause__, ExecError)

    def test_cancel_kills_running_command(self, repo_dir: Path) -> None:
        """A set cancel event stops the child process."""
        resolver = self._resolver(repo_dir, "import time; time.sleep(5)")
        cancel = threading.Event()
        cancel.set()

        started = time.monotonic()
        with pytest.raises(TransferError) as exc_info:
            resolver.transfer(b"x", "a.jar", cancel)

        assert time.monotonic() - started < 3
        assert exc_info.value.permanent
        assert exc_info.value.__cause__.cancelled

    def test_build_command(self, temp_dir: Path) -> None:
        config = ResolverConfig(
            name="scp", kind="command", command=["scp", "{source}", "host:/repo/{location}"]
        )
        command = CommandResolver(config).build_command(temp_dir / "f", "a/b.jar")
        assert command == ["scp", str(temp_dir / "f"), "host:/repo/a/b.jar"]


class TestChainResolver:
    """Tests for the chain backend."""

    def _chain(self, resolvers: list[Resolver], policy: ChainPolicy) -> ChainResolver:
        config = ResolverConfig(
            name="chain",
            kind="chain",
            policy=policy,
            resolvers=[{"name": "placeholder", "root": "/unused"}],
        )
        return ChainResolver(config, resolvers=resolvers)

    def test_first_success_stops_early(self) -> None:
        first = RecordingResolver("first", [TransferError("down", transient=True, resolver="first")])
        second = RecordingResolver("second")
        third = RecordingResolver("third")
        chain = self._chain([first, second, third], ChainPolicy.FIRST_SUCCESS)

        chain.transfer(b"x", "a.jar")
        assert second.stored == {"a.jar": b"x"}
        assert third.stored == {}

    def test_first_success_all_fail(self) -> None:
        first = RecordingResolver("first", [TransferError("down", transient=True, resolver="first")])
        second = RecordingResolver("second", [TransferError("denied", resolver="second")])
        chain = self._chain([first, second], ChainPolicy.FIRST_SUCCESS)

        with pytest.raises(TransferError) as exc_info:
            chain.transfer(b"x", "a.jar")
        assert exc_info.value.permanent
        assert exc_info.value.details["failed_resolvers"] == ["first", "second"]

    def test_all_policy_writes_everywhere(self) -> None:
        first, second = RecordingResolver("first"), RecordingResolver("second")
        chain = self._chain([first, second], ChainPolicy.ALL)

        chain.transfer(b"x", "a.jar")
        assert first.stored == second.stored == {"a.jar": b"x"}

    def test_all_policy_fails_if_any_fails(self) -> None:
        first = RecordingResolver("first")
        second = RecordingResolver("second", [TransferError("slow", transient=True, resolver="second")])
        chain = self._chain([first, second], ChainPolicy.ALL)

        with pytest.raises(TransferError) as exc_info:
            chain.transfer(b"x", "a.jar")
        assert exc_info.value.transient
        assert first.stored == {"a.jar": b"x"}

    def test_cancelled_chain_starts_no_sub_transfer(self) -> None:
        first, second = RecordingResolver("first"), RecordingResolver("second")
        chain = self._chain([first, second], ChainPolicy.ALL)
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(TransferError) as exc_info:
            chain.transfer(b"x", "a.jar", cancel)
        assert exc_info.value.permanent
        assert first.stored == second.stored == {}

    def test_builds_sub_resolvers_from_config(self, temp_dir: Path) -> None:
        config = ResolverConfig(
            name="mirrors",
            kind="chain",
            policy="all",
            resolvers=[
                {"name": "a", "root": str(temp_dir / "a")},
                {"name": "b", "root": str(temp_dir / "b")},
            ],
        )
        chain = create_resolver(config)
        chain.transfer(b"x", "m/a.jar")
        assert (temp_dir / "a/m/a.jar").read_bytes() == b"x"
        assert (temp_dir / "b/m/a.jar").read_bytes() == b"x"
        assert chain.describe() == "all[a, b]"
