"""Runtime options for workspace resolution."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

CACHE_DIR_ENV = "DLANG_CACHE_DIR"

DEFAULT_MANIFEST_FILES: Tuple[str, ...] = ("model.yaml",)
DEFAULT_LOCK_FILES: Tuple[str, ...] = ("model.lock",)
DEFAULT_EXTENSION = ".dlang"
DEFAULT_ENTRY = f"index{DEFAULT_EXTENSION}"
LOCK_FILE_VERSION = "1"


@dataclass(frozen=True)
class WorkspaceOptions:
    """Settings shared by the workspace, import and git resolvers."""

    manifest_files: Tuple[str, ...] = DEFAULT_MANIFEST_FILES
    lock_files: Tuple[str, ...] = DEFAULT_LOCK_FILES
    extension: str = DEFAULT_EXTENSION
    cache_dir: Optional[Path] = None
    allow_network: bool = True
    auto_resolve: bool = True
    max_workers: int = 1

    def resolved_cache_dir(self) -> Path:
        if self.cache_dir is not None:
            return Path(self.cache_dir).expanduser()
        return default_cache_dir()


def default_cache_dir() -> Path:
    """Return the per-user package cache, honouring ``DLANG_CACHE_DIR``."""
    override = os.environ.get(CACHE_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".dlang" / "cache"


__all__ = [
    "CACHE_DIR_ENV",
    "DEFAULT_ENTRY",
    "DEFAULT_EXTENSION",
    "DEFAULT_LOCK_FILES",
    "DEFAULT_MANIFEST_FILES",
    "LOCK_FILE_VERSION",
    "WorkspaceOptions",
    "default_cache_dir",
]
