"""Directory-first file resolution shared by local and package imports."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from .config import DEFAULT_EXTENSION
from .errors import ImportNotFoundError, InvalidExtensionError, ManifestError
from .manifest import load_optional_manifest


def read_module_entry(
    directory: Path,
    *,
    manifest_file: str = "model.yaml",
    extension: str = DEFAULT_EXTENSION,
) -> str:
    """Return the module's declared entry file, defaulting to ``index<ext>``."""
    default = f"index{extension}"
    try:
        manifest = load_optional_manifest(directory, manifest_file)
    except ManifestError:
        return default
    if manifest is None or not manifest.model.entry:
        return default
    return manifest.model.entry


def resolve_local_path(
    target: Path,
    original: str,
    *,
    extension: str = DEFAULT_EXTENSION,
    manifest_file: str = "model.yaml",
) -> Path:
    """Resolve ``target`` to a file.

    ``./types`` tries ``./types/<entry>`` and then ``./types<ext>``; an
    explicit ``<ext>`` suffix must name an existing file.
    """
    suffix = target.suffix
    if suffix == extension:
        if target.is_file():
            return target
        raise ImportNotFoundError(
            f"Import file not found: '{original}'.",
            hint="Check that the file exists and the path is correct.",
            context={"resolved": str(target)},
        )
    if suffix and _looks_like_extension(suffix):
        raise InvalidExtensionError(
            f"Invalid file extension '{suffix}' in import '{original}'.",
            hint=f"Model files must use the {extension} extension.",
        )
    return _resolve_directory_first(target, original, extension, manifest_file)


def _resolve_directory_first(
    target: Path, original: str, extension: str, manifest_file: str
) -> Path:
    entry_candidate: Optional[Path] = None
    if target.is_dir():
        entry = read_module_entry(target, manifest_file=manifest_file, extension=extension)
        entry_candidate = target / entry
        if entry_candidate.is_file():
            return entry_candidate

    file_candidate = target.with_name(target.name + extension)
    if file_candidate.is_file():
        return file_candidate

    if entry_candidate is None:
        entry_candidate = target / f"index{extension}"
    raise ImportNotFoundError(
        f"Cannot resolve import '{original}'.",
        hint="Check that the path is correct and the file exists.",
        context={
            "tried (directory module)": str(entry_candidate),
            "tried (file)": str(file_candidate),
        },
    )


def _looks_like_extension(suffix: str) -> bool:
    # "./v1.2" style directory names keep working; only alphabetic suffixes count.
    return suffix[1:].isalpha()


__all__ = ["read_module_entry", "resolve_local_path"]
