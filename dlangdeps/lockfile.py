"""Lock file parser and serializer (model.lock)."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from .config import LOCK_FILE_VERSION
from .errors import LockFileError
from .logging import get_logger
from .models import LockedDependency, LockFile

_LOGGER = get_logger("lockfile")


def serialize_lock_file(lock_file: LockFile) -> str:
    """Render the lock file as JSON, keeping dependency keys in insertion order."""
    dependencies: Dict[str, Dict[str, str]] = {}
    for key, locked in lock_file.dependencies.items():
        entry = {
            "version": locked.version,
            "resolved": locked.resolved,
            "commit": locked.commit,
        }
        if locked.integrity:
            entry["integrity"] = locked.integrity
        dependencies[key] = entry
    payload = {"version": lock_file.version, "dependencies": dependencies}
    return json.dumps(payload, indent=2) + "\n"


def parse_lock_file(raw: str) -> LockFile:
    """Parse lock file JSON.

    Entries missing ``version``, ``resolved`` or ``commit`` are dropped so a
    hand-edited file never crashes resolution.
    """
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise LockFileError("Invalid lock file JSON.", hint=str(exc)) from exc
    if not isinstance(payload, dict):
        raise LockFileError("Invalid lock file payload type.")

    version = payload.get("version")
    dependencies: Dict[str, LockedDependency] = {}
    raw_dependencies = payload.get("dependencies")
    if isinstance(raw_dependencies, dict):
        for key, value in raw_dependencies.items():
            locked = _parse_locked(value)
            if locked is None:
                _LOGGER.debug("Dropping incomplete lock entry %s", key)
                continue
            dependencies[str(key)] = locked
    return LockFile(
        version=version if isinstance(version, str) else LOCK_FILE_VERSION,
        dependencies=dependencies,
    )


def read_lock_file(path: Path) -> Optional[LockFile]:
    """Return the parsed lock file, or None when it does not exist."""
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    return parse_lock_file(raw)


def write_lock_file(lock_file: LockFile, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}-", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(serialize_lock_file(lock_file))
        os.replace(tmp_name, path)
    finally:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
    return path


def _parse_locked(value: Any) -> Optional[LockedDependency]:
    if not isinstance(value, dict):
        return None
    version = value.get("version")
    resolved = value.get("resolved")
    commit = value.get("commit")
    if not all(isinstance(item, str) and item for item in (version, resolved, commit)):
        return None
    integrity = value.get("integrity")
    return LockedDependency(
        version=version,
        resolved=resolved,
        commit=commit,
        integrity=integrity if isinstance(integrity, str) else None,
    )


__all__ = [
    "parse_lock_file",
    "read_lock_file",
    "serialize_lock_file",
    "write_lock_file",
]
