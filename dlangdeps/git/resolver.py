"""Git source resolution into a content-addressable package cache.

Packages are materialized under ``<cache>/<platform>/<owner>/<repo>/<commit>/``.
The directory name is always the resolved commit, so two refs pointing at
the same commit share an entry. Checkouts are built in a temporary sibling
directory and renamed into place once complete; a directory that exists and
is non-empty is therefore always a finished checkout.
"""

from __future__ import annotations

import os
import shutil
import subprocess
import tempfile
import threading
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional, Tuple

from ..config import DEFAULT_EXTENSION
from ..entry import read_module_entry, resolve_local_path
from ..errors import (
    DependencyNotInstalledError,
    GitCommandError,
    ImportNotFoundError,
    SourceFetchError,
)
from ..logging import get_logger
from ..models import CacheStats, GitSourceDescriptor, LockFile, MaterializedSource
from ..semver import detect_ref_type, is_full_commit
from .sources import parse_source_spec

GitRunner = Callable[..., str]

_TEMP_PREFIX = ".tmp-"


class GitSourceResolver:
    """Resolves dependency specifiers to cached package directories."""

    def __init__(
        self,
        cache_dir: Path,
        runner: GitRunner | None = None,
        *,
        manifest_file: str = "model.yaml",
        extension: str = DEFAULT_EXTENSION,
    ) -> None:
        self.cache_dir = Path(cache_dir)
        self._runner = runner or self._default_runner
        self._manifest_file = manifest_file
        self._extension = extension
        self._lock_file: Optional[LockFile] = None
        self._commit_memo: Dict[Tuple[str, str], str] = {}
        self._memo_lock = threading.Lock()
        self.logger = get_logger("git")

    def set_lock_file(self, lock_file: Optional[LockFile]) -> None:
        """Bind a lock file; locked packages skip ref resolution entirely."""
        self._lock_file = lock_file

    @property
    def lock_file(self) -> Optional[LockFile]:
        return self._lock_file

    def resolve(self, specifier: str, *, allow_network: bool = True) -> Path:
        """Return the cached package directory for ``specifier``."""
        return self.materialize(specifier, allow_network=allow_network).path

    def resolve_entry(self, specifier: str, *, allow_network: bool = True) -> Path:
        """Return the file an import of ``specifier`` refers to.

        Without a subpath this is the package's entry file; with one, the
        subpath is resolved directory-first inside the package.
        """
        return self.resolve_descriptor_entry(
            parse_source_spec(specifier), allow_network=allow_network
        )

    def resolve_descriptor_entry(
        self, descriptor: GitSourceDescriptor, *, allow_network: bool = True
    ) -> Path:
        source = self.materialize_descriptor(descriptor, allow_network=allow_network)
        if descriptor.subpath:
            return resolve_local_path(
                source.path / descriptor.subpath,
                descriptor.original,
                extension=self._extension,
                manifest_file=self._manifest_file,
            )
        entry = read_module_entry(
            source.path, manifest_file=self._manifest_file, extension=self._extension
        )
        entry_file = source.path / entry
        if not entry_file.is_file():
            raise ImportNotFoundError(
                f"Entry point '{entry}' not found in package '{descriptor.package_key}@{descriptor.ref}'.",
                hint=f"Ensure the package has an entry file (default: index{self._extension}).",
                context={"path": str(entry_file)},
            )
        return entry_file

    def materialize(self, specifier: str, *, allow_network: bool = True) -> MaterializedSource:
        return self.materialize_descriptor(
            parse_source_spec(specifier), allow_network=allow_network
        )

    def materialize_descriptor(
        self, descriptor: GitSourceDescriptor, *, allow_network: bool = True
    ) -> MaterializedSource:
        """Materialize an already-parsed source.

        Refs taken from a manifest or lock file may contain slashes
        (``feature/login``), so callers holding a ref build the descriptor
        directly instead of formatting a specifier string.
        """
        package_key = descriptor.package_key

        locked = self._lock_file.dependencies.get(package_key) if self._lock_file else None
        if locked is not None:
            commit = locked.commit
        elif not allow_network:
            raise DependencyNotInstalledError(
                f"Dependency '{package_key}' not installed.",
                hint="Run 'dlangdeps install' to fetch dependencies and generate model.lock.",
            )
        else:
            commit = self.resolve_commit(descriptor)

        target = self.cache_path(descriptor, commit)
        if _is_cache_hit(target):
            self.logger.debug("Cache hit for %s at %s", package_key, commit)
            return MaterializedSource(descriptor=descriptor, commit=commit, path=target)

        if not allow_network:
            raise DependencyNotInstalledError(
                f"Dependency '{package_key}' not installed.",
                hint="Run 'dlangdeps install' to fetch dependencies.",
                context={"expected": str(target)},
            )
        self._download(descriptor, commit, target)
        return MaterializedSource(descriptor=descriptor, commit=commit, path=target)

    def resolve_commit(self, descriptor: GitSourceDescriptor) -> str:
        """Resolve the descriptor's ref to a commit hash."""
        ref = descriptor.ref
        if is_full_commit(ref):
            return ref
        memo_key = (descriptor.repo_url, ref)
        with self._memo_lock:
            cached = self._commit_memo.get(memo_key)
        if cached is not None:
            return cached

        try:
            output = self._run(["git", "ls-remote", descriptor.repo_url, ref])
        except GitCommandError as exc:
            raise SourceFetchError(
                f"Failed to resolve ref '{ref}' for {descriptor.repo_url}.",
                hint="Verify the repository URL is correct and accessible.",
                context={"specifier": descriptor.original, "stderr": exc.context.get("stderr", "")},
            ) from exc

        commit = _pick_commit(output.splitlines(), ref)
        if commit is None:
            if detect_ref_type(ref) == "commit":
                commit = ref
            else:
                raise SourceFetchError(
                    f"Could not resolve ref '{ref}' for {descriptor.repo_url}.",
                    hint="Check that the tag, branch, or commit exists in the repository.",
                    context={"specifier": descriptor.original},
                )
        with self._memo_lock:
            self._commit_memo[memo_key] = commit
        self.logger.debug("Resolved %s@%s to %s", descriptor.package_key, ref, commit)
        return commit

    def cache_path(self, descriptor: GitSourceDescriptor, commit: str) -> Path:
        return cache_entry_path(self.cache_dir, descriptor, commit)

    def clear_cache(self) -> None:
        shutil.rmtree(self.cache_dir, ignore_errors=True)

    def get_cache_stats(self) -> CacheStats:
        total_size = 0
        repo_count = 0
        for entry in iter_cache_entries(self.cache_dir):
            repo_count += 1
            total_size += _directory_size(entry)
        return CacheStats(total_size=total_size, repo_count=repo_count, cache_dir=self.cache_dir)

    # ------------------------------------------------------------------
    # Internals

    def _download(self, descriptor: GitSourceDescriptor, commit: str, target: Path) -> None:
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            temp_root = Path(tempfile.mkdtemp(prefix=_TEMP_PREFIX, dir=str(target.parent)))
        except OSError as exc:
            raise _fetch_error(descriptor, str(exc)) from exc
        checkout = temp_root / "checkout"
        self.logger.info("Fetching %s@%s (%s)", descriptor.package_key, descriptor.ref, commit[:7])
        try:
            self._run(
                ["git", "clone", "--quiet", "--no-checkout", "--depth", "1", descriptor.repo_url, str(checkout)]
            )
            self._run(["git", "-C", str(checkout), "fetch", "--quiet", "--depth", "1", "origin", commit])
            self._run(["git", "-C", str(checkout), "checkout", "--quiet", "--force", "--detach", commit])
            shutil.rmtree(checkout / ".git", ignore_errors=True)
            try:
                os.replace(checkout, target)
            except OSError:
                # Another writer finished the same commit first.
                if not _is_cache_hit(target):
                    raise
        except GitCommandError as exc:
            raise _fetch_error(descriptor, exc.context.get("stderr", "")) from exc
        except OSError as exc:
            raise _fetch_error(descriptor, str(exc)) from exc
        finally:
            shutil.rmtree(temp_root, ignore_errors=True)

    def _run(self, args: Iterable[str], *, cwd: Path | None = None) -> str:
        return self._runner(list(args), cwd=cwd)

    @staticmethod
    def _default_runner(args: Iterable[str], *, cwd: Path | None = None) -> str:
        command = list(args)
        try:
            completed = subprocess.run(
                command,
                cwd=str(cwd) if cwd else None,
                check=False,
                text=True,
                capture_output=True,
            )
        except OSError as exc:
            raise GitCommandError(
                f"Could not run '{command[0]}'.",
                hint="Install git and make sure it is on PATH.",
                context={"argv": " ".join(command), "stderr": str(exc)},
            ) from exc
        if completed.returncode != 0:
            raise GitCommandError(
                "Git command failed.",
                hint="Inspect repository/ref inputs and git installation.",
                context={"argv": " ".join(command), "stderr": completed.stderr.strip()},
            )
        return completed.stdout


def _fetch_error(descriptor: GitSourceDescriptor, detail: str) -> SourceFetchError:
    return SourceFetchError(
        f"Failed to download package '{descriptor.package_key}@{descriptor.ref}'.",
        hint="Check your network connection and that the cache directory is writable.",
        context={"specifier": descriptor.original, "stderr": detail},
    )


def cache_entry_path(cache_dir: Path, descriptor: GitSourceDescriptor, commit: str) -> Path:
    return Path(cache_dir) / descriptor.platform / descriptor.owner / descriptor.repo / commit


def iter_cache_entries(cache_dir: Path) -> Iterable[Path]:
    """Yield every ``<platform>/<owner>/<repo>/<commit>`` directory."""
    root = Path(cache_dir)
    if not root.is_dir():
        return
    for platform in sorted(_subdirs(root)):
        for owner in sorted(_subdirs(platform)):
            for repo in sorted(_subdirs(owner)):
                for commit in sorted(_subdirs(repo)):
                    yield commit


def _subdirs(path: Path) -> Iterable[Path]:
    return (child for child in path.iterdir() if child.is_dir() and not child.name.startswith("."))


def _is_cache_hit(path: Path) -> bool:
    return path.is_dir() and any(path.iterdir())


def _directory_size(path: Path) -> int:
    size = 0
    for child in path.rglob("*"):
        if child.is_file() and not child.is_symlink():
            size += child.stat().st_size
    return size


def _pick_commit(lines: Iterable[str], ref: str) -> Optional[str]:
    """Choose the commit from ``git ls-remote`` output, preferring peeled tags."""
    entries = []
    for line in lines:
        parts = line.split()
        if len(parts) >= 2:
            entries.append((parts[0], parts[1]))
    if not entries:
        return None
    for sha, name in entries:
        if name.endswith("^{}"):
            return sha
    for sha, name in entries:
        if name in (f"refs/tags/{ref}", f"refs/heads/{ref}", ref):
            return sha
    return entries[0][0]


__all__ = ["GitRunner", "GitSourceResolver", "cache_entry_path", "iter_cache_entries"]
