"""In-memory memoization of parsed lock files and manifests."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Generic, List, Optional, TypeVar

from ..config import DEFAULT_LOCK_FILES
from ..lockfile import read_lock_file
from ..logging import get_logger
from ..manifest import load_manifest
from ..models import LockFile, Manifest

DEFAULT_TTL_SECONDS = 5 * 60

T = TypeVar("T")


@dataclass
class _Entry(Generic[T]):
    value: T
    stored_at: float
    mtime_ns: int
    source: Path


class ResolutionCache:
    """Caches parsed files keyed by absolute path.

    An entry is served while it is younger than the TTL and the file's mtime
    is unchanged; anything else re-reads from disk. Parse errors propagate
    and are never cached.
    """

    def __init__(
        self,
        *,
        ttl: float = DEFAULT_TTL_SECONDS,
        lock_file_name: str = DEFAULT_LOCK_FILES[0],
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl
        self._lock_file_name = lock_file_name
        self._clock = clock
        self._lock_files: Dict[Path, _Entry[LockFile]] = {}
        self._manifests: Dict[Path, _Entry[Manifest]] = {}
        self._lock = threading.Lock()
        self.logger = get_logger("cache")

    def get_lock_file(
        self, workspace_root: Path, *, lock_file_name: Optional[str] = None
    ) -> Optional[LockFile]:
        """Return the workspace's lock file, reading it when not cached or stale."""
        lock_path = self._lock_path(workspace_root, lock_file_name)
        with self._lock:
            cached = self._lock_files.get(lock_path)
            if cached is not None and self._is_fresh(cached):
                return cached.value
        try:
            mtime_ns = lock_path.stat().st_mtime_ns
            lock_file = read_lock_file(lock_path)
        except FileNotFoundError:
            lock_file = None
        with self._lock:
            if lock_file is None:
                self._lock_files.pop(lock_path, None)
                return None
            self._lock_files[lock_path] = _Entry(lock_file, self._clock(), mtime_ns, lock_path)
        self.logger.debug("Loaded %s", lock_path)
        return lock_file

    def put_lock_file(
        self, workspace_root: Path, lock_file: LockFile, *, lock_file_name: Optional[str] = None
    ) -> None:
        lock_path = self._lock_path(workspace_root, lock_file_name)
        try:
            mtime_ns = lock_path.stat().st_mtime_ns
        except FileNotFoundError:
            return
        with self._lock:
            self._lock_files[lock_path] = _Entry(lock_file, self._clock(), mtime_ns, lock_path)

    def get_manifest(
        self, manifest_path: Path, *, workspace_root: Optional[Path] = None
    ) -> Optional[Manifest]:
        """Return the parsed manifest, or None when the file does not exist."""
        key = Path(manifest_path).resolve()
        with self._lock:
            cached = self._manifests.get(key)
            if cached is not None and self._is_fresh(cached):
                return cached.value
        try:
            mtime_ns = key.stat().st_mtime_ns
        except FileNotFoundError:
            with self._lock:
                self._manifests.pop(key, None)
            return None
        manifest = load_manifest(key, workspace_root=workspace_root)
        with self._lock:
            self._manifests[key] = _Entry(manifest, self._clock(), mtime_ns, key)
        return manifest

    def invalidate(self, workspace_root: Path) -> None:
        """Drop every lock file and manifest cached for ``workspace_root``."""
        root = Path(workspace_root).resolve()
        with self._lock:
            for table in (self._lock_files, self._manifests):
                for path in [path for path in table if path.parent == root]:
                    table.pop(path, None)

    def invalidate_manifest(self, manifest_path: Path) -> None:
        with self._lock:
            self._manifests.pop(Path(manifest_path).resolve(), None)

    def clear(self) -> None:
        with self._lock:
            self._lock_files.clear()
            self._manifests.clear()

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {"lock_files": len(self._lock_files), "manifests": len(self._manifests)}

    def detect_stale(self) -> List[Path]:
        """Return workspace roots whose cached lock file no longer matches disk."""
        with self._lock:
            entries = list(self._lock_files.values())
        return [entry.source.parent for entry in entries if not self._matches_disk(entry)]

    # ------------------------------------------------------------------
    # Internal helpers

    def _lock_path(self, workspace_root: Path, lock_file_name: Optional[str]) -> Path:
        return Path(workspace_root).resolve() / (lock_file_name or self._lock_file_name)

    def _is_fresh(self, entry: _Entry) -> bool:
        if self._clock() - entry.stored_at >= self._ttl:
            return False
        return self._matches_disk(entry)

    @staticmethod
    def _matches_disk(entry: _Entry) -> bool:
        try:
            return entry.source.stat().st_mtime_ns == entry.mtime_ns
        except FileNotFoundError:
            return False


_default_cache: Optional[ResolutionCache] = None
_default_cache_lock = threading.Lock()


def get_default_cache() -> ResolutionCache:
    """Return the process-wide cache, creating it on first use."""
    global _default_cache
    with _default_cache_lock:
        if _default_cache is None:
            _default_cache = ResolutionCache()
        return _default_cache


def reset_default_cache() -> None:
    global _default_cache
    with _default_cache_lock:
        _default_cache = None


__all__ = [
    "DEFAULT_TTL_SECONDS",
    "ResolutionCache",
    "get_default_cache",
    "reset_default_cache",
]
