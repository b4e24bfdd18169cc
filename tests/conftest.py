from __future__ import annotations

from pathlib import Path

import pytest

from dlangdeps.config import WorkspaceOptions
from dlangdeps.stores.resolution_cache import ResolutionCache, reset_default_cache
from dlangdeps.workspace import WorkspaceResolver
from tests._fixtures.workspace_builder import FakeGit, WorkspaceBuilder


@pytest.fixture
def workspace_builder(tmp_path: Path) -> WorkspaceBuilder:
    """Provide a workspace builder rooted at the pytest tmp_path."""
    return WorkspaceBuilder(tmp_path)


@pytest.fixture
def fake_git() -> FakeGit:
    return FakeGit()


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    return tmp_path / "cache"


@pytest.fixture(autouse=True)
def _isolated_cache_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.setenv("DLANG_CACHE_DIR", str(tmp_path / "env-cache"))
    reset_default_cache()
    yield
    reset_default_cache()


@pytest.fixture
def make_workspace(fake_git: FakeGit, cache_dir: Path):
    """Return a factory for resolvers wired to the fake git and a private cache."""

    def factory(**overrides) -> WorkspaceResolver:  # type: ignore[no-untyped-def]
        options = WorkspaceOptions(cache_dir=cache_dir, **overrides)
        return WorkspaceResolver(options, runner=fake_git, cache=ResolutionCache())

    return factory
