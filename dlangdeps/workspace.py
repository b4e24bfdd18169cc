"""Workspace discovery and lock file lifecycle."""

from __future__ import annotations

import threading
from concurrent.futures import Future
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .config import WorkspaceOptions
from .errors import DependencyNotInstalledError, WorkspaceNotFoundError
from .git.resolver import GitRunner, GitSourceResolver
from .git.sources import DEFAULT_REF, source_descriptor
from .graph import DependencyGraphBuilder
from .lockfile import write_lock_file
from .logging import get_logger
from .models import DependencySpec, GitSourceDescriptor, LockFile, Manifest
from .stores.resolution_cache import ResolutionCache, get_default_cache


class WorkspaceResolver:
    """Owns a workspace root, its manifest, lock file and git resolver.

    ``initialize`` is single-flight: concurrent callers wait on one shared
    future, so the directory walk and any lock generation run once.
    """

    def __init__(
        self,
        options: WorkspaceOptions | None = None,
        *,
        runner: GitRunner | None = None,
        cache: ResolutionCache | None = None,
    ) -> None:
        self.options = options or WorkspaceOptions()
        self._runner = runner
        self._cache = cache
        self._workspace_root: Optional[Path] = None
        self._lock_file: Optional[LockFile] = None
        self._git_resolver: Optional[GitSourceResolver] = None
        self._graph_builder: Optional[DependencyGraphBuilder] = None
        self._init_future: Optional[Future] = None
        self._init_lock = threading.Lock()
        self._lock_file_lock = threading.RLock()
        self.logger = get_logger("workspace")

    @property
    def cache(self) -> ResolutionCache:
        return self._cache if self._cache is not None else get_default_cache()

    def initialize(self, start_path: str | Path) -> Path:
        """Discover the workspace root for ``start_path`` and load its lock file."""
        with self._init_lock:
            future = self._init_future
            owner = future is None
            if future is None:
                future = Future()
                self._init_future = future
        if owner:
            try:
                future.set_result(self._perform_initialization(Path(start_path)))
            except BaseException as exc:
                future.set_exception(exc)
                with self._init_lock:
                    self._init_future = None
        return future.result()

    def get_workspace_root(self) -> Path:
        if self._workspace_root is None:
            raise RuntimeError("WorkspaceResolver not initialized. Call initialize() first.")
        return self._workspace_root

    def get_manifest_path(self) -> Optional[Path]:
        root = self._ensure_initialized()
        for name in self.options.manifest_files:
            candidate = root / name
            if candidate.is_file():
                return candidate
        return None

    def get_manifest(self) -> Optional[Manifest]:
        """Return the parsed manifest, re-reading it only when its mtime changed."""
        root = self._ensure_initialized()
        manifest_path = self.get_manifest_path()
        if manifest_path is None:
            return None
        return self.cache.get_manifest(manifest_path, workspace_root=root)

    def get_path_aliases(self) -> Dict[str, str]:
        manifest = self.get_manifest()
        return dict(manifest.paths) if manifest else {}

    def get_lock_file(self) -> Optional[LockFile]:
        """Return the lock file currently held in memory; never resolves."""
        self._ensure_initialized()
        return self._lock_file

    def ensure_lock_file(self) -> LockFile:
        """Return the lock file, loading it or generating and persisting it."""
        root = self._ensure_initialized()
        with self._lock_file_lock:
            if self._lock_file is not None:
                return self._lock_file
            loaded = self._load_lock_file(root)
            if loaded is not None:
                self._apply_lock_file(loaded)
                return loaded
            if not self.options.allow_network:
                raise DependencyNotInstalledError(
                    f"Lock file ({self.options.lock_files[0]}) not found and network access is disabled.",
                    hint="Run 'dlangdeps install' to generate the lock file.",
                )
            return self._generate_lock_file()

    def refresh_lock_file(self) -> Optional[LockFile]:
        """Reload the lock file from disk and rebind the git resolver."""
        root = self._ensure_initialized()
        with self._lock_file_lock:
            self.cache.invalidate(root)
            self._apply_lock_file(self._load_lock_file(root))
            return self._lock_file

    def regenerate_lock_file(self) -> LockFile:
        """Force a fresh resolution and overwrite the lock file on disk."""
        self._ensure_initialized()
        with self._lock_file_lock:
            return self._generate_lock_file(force=True)

    def get_resolution_messages(self) -> List[str]:
        """Overrides and tolerated conflicts reported by the last resolution."""
        if self._graph_builder is None:
            return []
        return self._graph_builder.resolution_messages

    def get_git_resolver(self) -> GitSourceResolver:
        self._ensure_initialized()
        if self._git_resolver is None:
            raise RuntimeError("Git resolver not available; workspace initialization failed.")
        return self._git_resolver

    def resolve_dependency_import(self, alias_path: str) -> Optional[str]:
        """Map ``alias[/subpath]`` to ``source@ref[/subpath]`` using the manifest.

        The longest matching dependency key wins; path dependencies are
        ignored.
        """
        match = self._match_dependency(alias_path)
        if match is None:
            return None
        spec, suffix = match
        ref = _normalize_ref(spec.ref)
        ref_segment = f"@{ref}" if ref else ""
        return f"{spec.source}{ref_segment}{suffix}"

    def resolve_dependency_descriptor(self, alias_path: str) -> Optional[GitSourceDescriptor]:
        """Like :meth:`resolve_dependency_import` but keeps the manifest ref intact.

        The ref is attached directly instead of going through the specifier
        grammar, so refs containing slashes stay whole.
        """
        match = self._match_dependency(alias_path)
        if match is None:
            return None
        spec, suffix = match
        descriptor = source_descriptor(spec.source or "", _normalize_ref(spec.ref) or DEFAULT_REF)
        subpath = suffix.strip("/")
        if not subpath:
            return descriptor
        return replace(descriptor, subpath=subpath, original=f"{descriptor.original}/{subpath}")

    def invalidate_cache(self) -> None:
        """Drop cached manifest and lock file so the next access reads disk."""
        self.invalidate_manifest_cache()
        self.invalidate_lock_cache()

    def invalidate_manifest_cache(self) -> None:
        manifest_path = self.get_manifest_path() if self._workspace_root is not None else None
        if manifest_path is not None:
            self.cache.invalidate_manifest(manifest_path)

    def invalidate_lock_cache(self) -> None:
        with self._lock_file_lock:
            self._apply_lock_file(None)
            if self._workspace_root is not None:
                self.cache.invalidate(self._workspace_root)

    # ------------------------------------------------------------------
    # Internals

    def _perform_initialization(self, start_path: Path) -> Path:
        root = self._find_workspace_root(start_path)
        self._workspace_root = root
        self.logger.debug("Workspace root: %s", root)
        self._git_resolver = GitSourceResolver(
            self.options.resolved_cache_dir(),
            self._runner,
            manifest_file=self.options.manifest_files[0],
            extension=self.options.extension,
        )
        with self._lock_file_lock:
            self._apply_lock_file(self._load_lock_file(root))
            if self._lock_file is None and self.options.auto_resolve and self.options.allow_network:
                self._generate_lock_file()
        return root

    def _find_workspace_root(self, start_path: Path) -> Path:
        current = start_path.expanduser().resolve()
        if current.is_file():
            current = current.parent
        while True:
            if self._contains_manifest(current):
                return current
            parent = current.parent
            if parent == current:
                raise WorkspaceNotFoundError(
                    f"No {' or '.join(self.options.manifest_files)} found in {start_path} or any parent directory.",
                    hint="Create a model.yaml at the workspace root.",
                    context={"start": str(start_path)},
                )
            current = parent

    def _contains_manifest(self, directory: Path) -> bool:
        return any((directory / name).is_file() for name in self.options.manifest_files)

    def _ensure_initialized(self) -> Path:
        future = self._init_future
        if future is not None:
            future.result()
        return self.get_workspace_root()

    def _apply_lock_file(self, lock_file: Optional[LockFile]) -> None:
        self._lock_file = lock_file
        if self._git_resolver is not None:
            self._git_resolver.set_lock_file(lock_file)

    def _load_lock_file(self, root: Path) -> Optional[LockFile]:
        for name in self.options.lock_files:
            lock_file = self.cache.get_lock_file(root, lock_file_name=name)
            if lock_file is not None:
                return lock_file
        return None

    def _match_dependency(self, alias_path: str) -> Optional[Tuple[DependencySpec, str]]:
        manifest = self.get_manifest()
        if manifest is None:
            return None
        candidates = sorted(manifest.dependencies.items(), key=lambda item: len(item[0]), reverse=True)
        for key, spec in candidates:
            if spec.path or not spec.source:
                continue
            if alias_path == key or alias_path.startswith(f"{key}/"):
                return spec, alias_path[len(key):]
        return None

    def _generate_lock_file(self, force: bool = False) -> LockFile:
        if not force and self._lock_file is not None:
            return self._lock_file
        root = self.get_workspace_root()
        git_resolver = self._git_resolver
        if git_resolver is None:
            raise RuntimeError("Git resolver not available; workspace initialization failed.")
        if force:
            git_resolver.set_lock_file(None)
        self.logger.info("Resolving dependencies for %s", root)
        lock_file = self._ensure_graph_builder(git_resolver).resolve_dependencies()
        lock_path = root / self.options.lock_files[0]
        write_lock_file(lock_file, lock_path)
        self.logger.info("Wrote %s with %d dependencies", lock_path.name, len(lock_file.dependencies))
        self._apply_lock_file(lock_file)
        self.cache.put_lock_file(root, lock_file, lock_file_name=lock_path.name)
        return lock_file

    def _ensure_graph_builder(self, git_resolver: GitSourceResolver) -> DependencyGraphBuilder:
        if self._graph_builder is None:
            self._graph_builder = DependencyGraphBuilder(
                self.get_workspace_root(),
                git_resolver,
                manifest_file=self.options.manifest_files[0],
                max_workers=self.options.max_workers,
            )
        return self._graph_builder


def _normalize_ref(ref: Optional[str]) -> str:
    return (ref or "").lstrip("@")


__all__ = ["WorkspaceResolver"]
