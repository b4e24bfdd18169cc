"""Manifest loading and validation (model.yaml)."""

from __future__ import annotations

from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional, Sequence

import yaml

from .errors import ManifestError
from .models import (
    DependencySpec,
    GovernanceMetadata,
    GovernancePolicy,
    Manifest,
    PackageIdentity,
)


def load_manifest(manifest_path: Path, *, workspace_root: Optional[Path] = None) -> Manifest:
    """Read and validate a manifest from disk.

    ``workspace_root`` bounds local paths; it defaults to the manifest's own
    directory.
    """
    data = read_manifest_data(manifest_path)
    manifest = parse_manifest(data, path=manifest_path)
    validate_manifest(manifest, workspace_root=workspace_root)
    return manifest


def load_optional_manifest(directory: Path, filename: str = "model.yaml") -> Optional[Manifest]:
    """Return the manifest in ``directory`` or None when there is none.

    Packages pulled from the cache are not validated against a workspace
    boundary; only their structure is parsed.
    """
    manifest_path = directory / filename
    if not manifest_path.is_file():
        return None
    return parse_manifest(read_manifest_data(manifest_path), path=manifest_path)


def read_manifest_data(path: Path) -> Dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ManifestError(
            f"Unable to read {path.name}.",
            context={"path": str(path), "reason": str(exc)},
        ) from exc
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ManifestError(
            f"Failed to parse {path.name}: {exc}",
            hint="Check the YAML syntax of the manifest.",
            context={"path": str(path)},
        ) from exc
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ManifestError(
            f"{path.name} must contain a mapping at the root.",
            context={"path": str(path)},
        )
    return loaded


def parse_manifest(data: Dict[str, Any], *, path: Optional[Path] = None) -> Manifest:
    model_data = _as_dict(data.get("model"))
    model = PackageIdentity(
        name=_as_str(model_data.get("name")),
        version=_as_str(model_data.get("version")),
        entry=_as_str(model_data.get("entry")),
    )

    dependencies: Dict[str, DependencySpec] = {}
    for key, raw in _as_dict(data.get("dependencies")).items():
        dependencies[str(key)] = normalize_dependency(str(key), raw)

    paths = {
        str(alias): str(target)
        for alias, target in _as_dict(data.get("paths")).items()
        if isinstance(target, (str, int, float))
    }
    overrides = {
        str(pkg): str(ref)
        for pkg, ref in _as_dict(data.get("overrides")).items()
        if isinstance(ref, (str, int, float))
    }

    governance = None
    governance_data = data.get("governance")
    if isinstance(governance_data, dict):
        governance = parse_governance_policy(governance_data)

    metadata_data = _as_dict(data.get("metadata"))
    metadata = GovernanceMetadata(
        team=_as_str(metadata_data.get("team")),
        contact=_as_str(metadata_data.get("contact")),
        domain=_as_str(metadata_data.get("domain")),
        license=_as_str(metadata_data.get("license")) or _as_str(model_data.get("license")),
        compliance=_as_str_list(metadata_data.get("compliance")),
    )

    return Manifest(
        path=path,
        model=model,
        dependencies=dependencies,
        paths=paths,
        overrides=overrides,
        governance=governance,
        metadata=metadata,
    )


def parse_governance_policy(data: Dict[str, Any]) -> GovernancePolicy:
    return GovernancePolicy(
        allowed_sources=_as_optional_str_list(data.get("allowedSources")),
        blocked_packages=_as_optional_str_list(data.get("blockedPackages")),
        require_stable_versions=_as_bool(data.get("requireStableVersions")),
        require_team_ownership=_as_bool(data.get("requireTeamOwnership")),
        allowed_licenses=_as_optional_str_list(data.get("allowedLicenses")),
    )


def normalize_dependency(key: str, raw: Any) -> DependencySpec:
    """Expand the short form and derive ``source`` from the key when omitted."""
    if isinstance(raw, (str, int, float)) and not isinstance(raw, bool):
        return DependencySpec(source=key, ref=str(raw))
    entry = _as_dict(raw)
    source = _as_str(entry.get("source"))
    local_path = _as_str(entry.get("path"))
    ref = _as_str(entry.get("ref")) or _as_str(entry.get("version"))
    spec = DependencySpec(
        source=source,
        path=local_path,
        ref=ref,
        integrity=_as_str(entry.get("integrity")),
        description=_as_str(entry.get("description")),
    )
    if not source and not local_path and "/" in key:
        return DependencySpec(
            source=key,
            ref=ref,
            integrity=spec.integrity,
            description=spec.description,
        )
    return spec


def validate_manifest(manifest: Manifest, *, workspace_root: Optional[Path] = None) -> None:
    """Raise :class:`ManifestError` for structurally invalid manifests."""
    location = str(manifest.path) if manifest.path else "model.yaml"
    manifest_dir = manifest.path.parent if manifest.path else Path.cwd()
    boundary = (workspace_root or manifest_dir).resolve()

    for alias, target in manifest.paths.items():
        if not alias.startswith("@"):
            raise ManifestError(
                f"Invalid path alias '{alias}' in {location}: aliases must start with '@'.",
                hint=f"Rename it to '@{alias}' in the paths section.",
            )
        _validate_local_path(target, alias, location, manifest_dir, boundary)

    for key, spec in manifest.dependencies.items():
        if spec.source and spec.path:
            raise ManifestError(
                f"Invalid dependency '{key}' in {location}: cannot specify both 'source' and 'path'.",
                hint="Use 'source' for git dependencies or 'path' for local workspace dependencies.",
            )
        if not spec.source and not spec.path:
            raise ManifestError(
                f"Invalid dependency '{key}' in {location}: must specify either 'source' or 'path'.",
                hint="Add 'source: owner/repo' for git dependencies or 'path: ./local/dir' for local ones.",
            )
        if spec.path:
            _validate_local_path(spec.path, key, location, manifest_dir, boundary)
        if spec.source and not spec.ref:
            raise ManifestError(
                f"Invalid dependency '{key}' in {location}: git dependencies must specify a 'ref'.",
                hint="Add 'ref: v1.0.0' (tag), 'ref: main' (branch), or a commit SHA.",
            )


def _validate_local_path(
    local_path: str, name: str, location: str, manifest_dir: Path, boundary: Path
) -> None:
    if Path(local_path).is_absolute() or PurePosixPath(local_path).is_absolute():
        raise ManifestError(
            f"Invalid local path '{name}' in {location}: absolute path '{local_path}' is not allowed.",
            hint="Use relative paths such as './lib' or '../shared'.",
        )
    resolved = (manifest_dir / local_path).resolve()
    try:
        resolved.relative_to(boundary)
    except ValueError as exc:
        raise ManifestError(
            f"Invalid local path '{name}' in {location}: '{local_path}' resolves outside the workspace.",
            hint="Local dependencies must live inside the workspace; use a git source instead.",
            context={"resolved": str(resolved), "workspace": str(boundary)},
        ) from exc


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return None
    return str(value) if isinstance(value, (str, int, float)) else None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float, bool))]
    return []


def _as_optional_str_list(value: Any) -> Optional[List[str]]:
    if value is None:
        return None
    return _as_str_list(value)


__all__ = [
    "load_manifest",
    "load_optional_manifest",
    "normalize_dependency",
    "parse_governance_policy",
    "parse_manifest",
    "read_manifest_data",
    "validate_manifest",
]
