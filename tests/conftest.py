from contextlib import asynccontextmanager
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pytest

from gitgrope.config import Repository
from gitgrope.exceptions import APIError
from gitgrope.models import Asset, Release, TaskSpec
from gitgrope.selector import compile_patterns

_ASYNC_NETWORK_BLOCK_MSG = (
    "Async network access is blocked during tests. Mock aiohttp.ClientSession."
)


async def _async_block_network(*_args, **_kwargs):
    """
    Prevent async network calls during tests by raising a RuntimeError.

    Raises:
        RuntimeError: `_ASYNC_NETWORK_BLOCK_MSG` explaining that async network access is blocked and suggesting mocking `aiohttp.ClientSession`.
    """
    raise RuntimeError(_ASYNC_NETWORK_BLOCK_MSG)


def pytest_configure(config):
    """
    Register the markers used across the test suite.

    Parameters:
        config: pytest.Config
            The pytest configuration object.
    """
    config.addinivalue_line("markers", "unit: fast isolated unit tests")
    config.addinivalue_line(
        "markers", "integration: tests spanning several engine components"
    )
    config.addinivalue_line(
        "markers", "asyncio: mark test as an asyncio test (auto-detected)"
    )


def pytest_runtest_setup():
    """
    Prevent real network requests during tests by replacing aiohttp entry points with blocking callables.
    """
    import aiohttp

    aiohttp.request = _async_block_network
    aiohttp.ClientSession._request = _async_block_network  # type: ignore[assignment]


# =============================================================================
# Fake GitHub client
# =============================================================================


class FakeContent:
    """Stand-in for `aiohttp.StreamReader` yielding fixed chunks."""

    def __init__(self, data: bytes, error: Optional[BaseException] = None):
        self.data = data
        self.error = error

    async def iter_chunked(self, size: int):
        half = max(1, len(self.data) // 2)
        for start in range(0, len(self.data), half):
            yield self.data[start : start + half]
        if self.error is not None:
            raise self.error


class FakeResponse:
    def __init__(self, content: FakeContent):
        self.status = 200
        self.content = content


class FakeGitHubClient:
    """
    In-memory replacement for AsyncGitHubClient.

    Serves a fixed release and per-asset payloads, and records every
    release lookup and asset download it handles.
    """

    def __init__(
        self,
        release: Optional[Release] = None,
        payloads: Optional[Dict[int, bytes]] = None,
        failing_assets: Iterable[int] = (),
        interrupted_assets: Iterable[int] = (),
        query_error: Optional[Exception] = None,
    ):
        self.release = release
        self.payloads = payloads or {}
        self.failing_assets = set(failing_assets)
        self.interrupted_assets = set(interrupted_assets)
        self.query_error = query_error
        self.queries = 0
        self.opened: List[int] = []
        self.closed = False

    async def get_latest_release(self, owner: str, repo: str) -> Release:
        self.queries += 1
        if self.query_error is not None:
            raise self.query_error
        assert self.release is not None
        return self.release

    @asynccontextmanager
    async def open_asset(self, owner: str, repo: str, asset_id: int):
        self.opened.append(asset_id)
        if asset_id in self.failing_assets:
            raise APIError("HTTP error 502", status_code=502)
        error = None
        if asset_id in self.interrupted_assets:
            import aiohttp

            error = aiohttp.ClientPayloadError("connection reset")
        payload = self.payloads.get(asset_id, b"payload")
        yield FakeResponse(FakeContent(payload, error))

    async def close(self) -> None:
        self.closed = True


# =============================================================================
# Builders
# =============================================================================


def _make_release(
    tag: str = "v1.0.0",
    names: Iterable[str] = ("tool-linux.tar.gz", "tool.sha256"),
    draft: bool = False,
    prerelease: bool = False,
) -> Release:
    assets = [Asset(id=100 + i, name=name, size=7) for i, name in enumerate(names)]
    return Release(
        tag_name=tag,
        name=f"Release {tag}",
        draft=draft,
        prerelease=prerelease,
        target_commitish="main",
        url=f"https://api.github.com/repos/acme/tool/releases/{tag}",
        assets=assets,
    )


def _make_task(name: str, run: str, timeout: Optional[float] = None) -> TaskSpec:
    return TaskSpec(
        name=name, run=run, shell="/bin/sh", shell_switch="-c", timeout=timeout
    )


def _make_repository(
    release_dir: Path,
    client: Optional[FakeGitHubClient] = None,
    patterns: Iterable[str] = ("*.tar.gz",),
    grope_everything: bool = False,
    tasks: Iterable[TaskSpec] = (),
    dedupe_assets: bool = False,
) -> Repository:
    return Repository(
        name="acme/tool",
        owner="acme",
        repo="tool",
        patterns=compile_patterns(patterns),
        grope_everything=grope_everything,
        dedupe_assets=dedupe_assets,
        tasks=list(tasks),
        release_dir=release_dir,
        client=client or FakeGitHubClient(release=_make_release()),
    )


@pytest.fixture
def release_dir(tmp_path):
    path = tmp_path / "releases" / "acme" / "tool"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def make_release():
    """Factory fixture building Release snapshots (default: acme/tool v1.0.0)."""
    return _make_release


@pytest.fixture
def make_task():
    """Factory fixture building /bin/sh tasks."""
    return _make_task


@pytest.fixture
def make_repository():
    """Factory fixture building an applied Repository backed by a fake client."""
    return _make_repository


@pytest.fixture
def fake_client():
    """Factory fixture building FakeGitHubClient instances."""
    return FakeGitHubClient
