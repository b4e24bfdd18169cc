"""Git source resolution against an offline git double."""

from __future__ import annotations

from pathlib import Path

import pytest

from dlangdeps.errors import (
    DependencyNotInstalledError,
    GitCommandError,
    ImportNotFoundError,
    SourceFetchError,
)
from dlangdeps.git import resolver as resolver_module
from dlangdeps.git.resolver import GitSourceResolver
from dlangdeps.git.sources import parse_source_spec, source_descriptor
from dlangdeps.models import LockedDependency, LockFile
from tests._fixtures.workspace_builder import FakeGit


@pytest.fixture
def resolver(fake_git: FakeGit, cache_dir: Path) -> GitSourceResolver:
    return GitSourceResolver(cache_dir, fake_git)


def test_materialize_stores_checkout_under_commit(
    resolver: GitSourceResolver, fake_git: FakeGit, cache_dir: Path
) -> None:
    commit = fake_git.add_package("acme/core", "v1.0.0", {"index.dlang": "Domain Core {}\n"})

    source = resolver.materialize("acme/core@v1.0.0")

    assert source.commit == commit
    assert source.path == cache_dir / "github" / "acme" / "core" / commit
    assert (source.path / "index.dlang").read_text(encoding="utf-8") == "Domain Core {}\n"
    assert not (source.path / ".git").exists()
    assert not [p for p in source.path.parent.iterdir() if p.name.startswith(".tmp-")]


def test_cache_hit_skips_download(resolver: GitSourceResolver, fake_git: FakeGit) -> None:
    fake_git.add_package("acme/core", "v1.0.0", {"index.dlang": ""})
    resolver.materialize("acme/core@v1.0.0")
    clones = len(fake_git.commands("clone"))

    resolver.materialize("acme/core@v1.0.0")

    assert len(fake_git.commands("clone")) == clones == 1
    assert len(fake_git.commands("ls-remote")) == 1


def test_refs_with_same_commit_share_entry(resolver: GitSourceResolver, fake_git: FakeGit) -> None:
    commit = fake_git.add_package("acme/core", "v1.0.0", {"index.dlang": ""})
    fake_git.add_package("acme/core", "main", {"index.dlang": ""}, commit=commit)

    first = resolver.resolve("acme/core@v1.0.0")
    second = resolver.resolve("acme/core@main")

    assert first == second
    assert len(fake_git.commands("clone")) == 1


def test_locked_commit_skips_ref_resolution(
    resolver: GitSourceResolver, fake_git: FakeGit
) -> None:
    pinned = fake_git.add_package("acme/core", "v1.0.0", {"index.dlang": "old"})
    fake_git.add_package("acme/core", "v1.0.0", {"index.dlang": "moved"}, commit="c" * 40)
    resolver.set_lock_file(
        LockFile(
            dependencies={
                "acme/core": LockedDependency("v1.0.0", "https://github.com/acme/core", pinned)
            }
        )
    )

    source = resolver.materialize("acme/core@v1.0.0")

    assert source.commit == pinned
    assert fake_git.commands("ls-remote") == []


def test_offline_without_lock_entry_raises(resolver: GitSourceResolver, fake_git: FakeGit) -> None:
    fake_git.add_package("acme/core", "v1.0.0", {"index.dlang": ""})

    with pytest.raises(DependencyNotInstalledError):
        resolver.materialize("acme/core@v1.0.0", allow_network=False)
    assert fake_git.calls == []


def test_offline_with_lock_but_empty_cache_raises(
    resolver: GitSourceResolver, fake_git: FakeGit
) -> None:
    commit = fake_git.add_package("acme/core", "v1.0.0", {"index.dlang": ""})
    resolver.set_lock_file(
        LockFile(
            dependencies={
                "acme/core": LockedDependency("v1.0.0", "https://github.com/acme/core", commit)
            }
        )
    )

    with pytest.raises(DependencyNotInstalledError) as excinfo:
        resolver.materialize("acme/core@v1.0.0", allow_network=False)

    assert commit in excinfo.value.context["expected"]


def test_failed_checkout_leaves_no_partial_entry(
    resolver: GitSourceResolver, fake_git: FakeGit, cache_dir: Path
) -> None:
    fake_git.add_package("acme/core", "v1.0.0", {"index.dlang": ""})
    fake_git.fail_checkout = True

    with pytest.raises(SourceFetchError) as excinfo:
        resolver.materialize("acme/core@v1.0.0")

    repo_dir = cache_dir / "github" / "acme" / "core"
    assert list(repo_dir.iterdir()) == []
    assert excinfo.value.context["specifier"] == "acme/core@v1.0.0"


def test_unknown_ref_raises_source_fetch_error(
    resolver: GitSourceResolver, fake_git: FakeGit
) -> None:
    fake_git.add_package("acme/core", "v1.0.0", {"index.dlang": ""})

    with pytest.raises(SourceFetchError):
        resolver.resolve_commit(parse_source_spec("acme/core@v9.9.9"))


def test_full_commit_ref_is_not_looked_up(resolver: GitSourceResolver, fake_git: FakeGit) -> None:
    commit = "d" * 40

    assert resolver.resolve_commit(parse_source_spec(f"acme/core@{commit}")) == commit
    assert fake_git.calls == []


def test_resolve_entry_uses_manifest_entry_and_subpath(
    resolver: GitSourceResolver, fake_git: FakeGit
) -> None:
    fake_git.add_package(
        "acme/core",
        "v1.0.0",
        {
            "model.yaml": "model:\n  entry: main.dlang\n",
            "main.dlang": "",
            "domains/sales/index.dlang": "",
            "domains/billing.dlang": "",
        },
    )

    assert resolver.resolve_entry("acme/core@v1.0.0").name == "main.dlang"
    assert resolver.resolve_entry("acme/core@v1.0.0/domains/sales").parts[-2:] == ("sales", "index.dlang")
    assert resolver.resolve_entry("acme/core@v1.0.0/domains/billing").name == "billing.dlang"


def test_resolve_entry_missing_entry_raises(resolver: GitSourceResolver, fake_git: FakeGit) -> None:
    fake_git.add_package("acme/core", "v1.0.0", {"README.md": "no models"})

    with pytest.raises(ImportNotFoundError):
        resolver.resolve_entry("acme/core@v1.0.0")


def test_cache_stats_and_clear(resolver: GitSourceResolver, fake_git: FakeGit, cache_dir: Path) -> None:
    fake_git.add_package("acme/core", "v1.0.0", {"index.dlang": "12345"})
    fake_git.add_package("acme/utils", "v2.0.0", {"index.dlang": "123"})
    resolver.materialize("acme/core@v1.0.0")
    resolver.materialize("acme/utils@v2.0.0")

    stats = resolver.get_cache_stats()
    assert stats.repo_count == 2
    assert stats.total_size == 8
    assert stats.cache_dir == cache_dir

    resolver.clear_cache()
    assert resolver.get_cache_stats().repo_count == 0
    assert not cache_dir.exists()


def test_missing_git_binary_is_wrapped(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, cache_dir: Path
) -> None:
    empty_bin = tmp_path / "bin"
    empty_bin.mkdir()
    monkeypatch.setenv("PATH", str(empty_bin))

    with pytest.raises(SourceFetchError) as excinfo:
        GitSourceResolver(cache_dir).resolve("acme/core@v1.0.0")

    assert excinfo.value.context["specifier"] == "acme/core@v1.0.0"
    cause = excinfo.value.__cause__
    assert isinstance(cause, GitCommandError)
    assert "PATH" in cause.hint


def test_failed_rename_into_cache_is_wrapped(
    resolver: GitSourceResolver, fake_git: FakeGit, cache_dir: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    fake_git.add_package("acme/core", "v1.0.0", {"index.dlang": ""})

    def deny(src, dst):  # type: ignore[no-untyped-def]
        raise PermissionError(13, "Permission denied", str(dst))

    monkeypatch.setattr(resolver_module.os, "replace", deny)

    with pytest.raises(SourceFetchError) as excinfo:
        resolver.materialize("acme/core@v1.0.0")

    assert excinfo.value.context["specifier"] == "acme/core@v1.0.0"
    assert "Permission denied" in excinfo.value.context["stderr"]
    assert list((cache_dir / "github" / "acme" / "core").iterdir()) == []


def test_descriptor_keeps_slashed_ref(resolver: GitSourceResolver, fake_git: FakeGit) -> None:
    login = fake_git.add_package("acme/core", "feature/login", {"index.dlang": "login"})
    fake_git.add_package("acme/core", "feature", {"index.dlang": "other"})

    source = resolver.materialize_descriptor(source_descriptor("acme/core", "feature/login"))

    assert source.commit == login
    assert source.descriptor.subpath == ""
    assert resolver.resolve_descriptor_entry(source.descriptor).read_text(encoding="utf-8") == "login"
