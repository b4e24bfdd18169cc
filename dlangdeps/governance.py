"""Organizational policy checks over a resolved lock file.

Policies live in the ``governance`` block of ``model.yaml``::

    governance:
      allowedSources:
        - github.com/acme
      requireStableVersions: true
      requireTeamOwnership: true

Findings are returned as :class:`GovernanceViolation` records; nothing here
raises for a policy breach.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from .config import DEFAULT_MANIFEST_FILES
from .errors import ManifestError, SourceSpecError
from .git.resolver import cache_entry_path
from .git.sources import parse_source_spec
from .logging import get_logger
from .manifest import load_optional_manifest
from .models import GovernanceMetadata, GovernancePolicy, GovernanceViolation, LockFile, Manifest
from .semver import is_pre_release

logger = get_logger("governance")


class GovernanceValidator:
    """Checks locked dependencies and workspace metadata against a governance policy.

    License checks read each package's manifest from ``cache_dir``; without a
    cache directory every license is reported as unknown.
    """

    def __init__(
        self,
        policy: GovernancePolicy,
        *,
        cache_dir: Optional[Path] = None,
        manifest_file: str = DEFAULT_MANIFEST_FILES[0],
    ) -> None:
        self.policy = policy
        self.cache_dir = Path(cache_dir) if cache_dir is not None else None
        self._manifest_file = manifest_file

    def validate(self, lock_file: LockFile, workspace_root: Path) -> List[GovernanceViolation]:
        """Check every locked dependency and the workspace metadata against the policy."""
        policy = self.policy
        violations: List[GovernanceViolation] = []

        for package_key, locked in lock_file.dependencies.items():
            if policy.allowed_sources:
                allowed = any(
                    pattern in locked.resolved or package_key.startswith(pattern)
                    for pattern in policy.allowed_sources
                )
                if not allowed:
                    violations.append(
                        GovernanceViolation(
                            type="blocked-source",
                            package_key=package_key,
                            message=f"Package from unauthorized source: {locked.resolved}",
                            severity="error",
                        )
                    )

            if policy.blocked_packages and any(
                pattern in package_key for pattern in policy.blocked_packages
            ):
                violations.append(
                    GovernanceViolation(
                        type="blocked-source",
                        package_key=package_key,
                        message="Package is blocked by governance policy",
                        severity="error",
                    )
                )

            if policy.require_stable_versions and is_pre_release(locked.version):
                violations.append(
                    GovernanceViolation(
                        type="unstable-version",
                        package_key=package_key,
                        message=f"Pre-release version not allowed: {locked.version}",
                        severity="error",
                    )
                )

            if policy.allowed_licenses:
                violation = self._check_license(package_key, locked.resolved, locked.commit)
                if violation is not None:
                    violations.append(violation)

        if policy.require_team_ownership:
            metadata = self.load_governance_metadata(workspace_root)
            if not metadata.team or not metadata.contact:
                violations.append(
                    GovernanceViolation(
                        type="missing-metadata",
                        package_key="workspace",
                        message="Missing required team ownership metadata in model.yaml",
                        severity="warning",
                    )
                )

        return violations

    def load_governance_metadata(self, workspace_root: Path) -> GovernanceMetadata:
        manifest = _read_manifest_quietly(Path(workspace_root), self._manifest_file)
        return manifest.metadata if manifest is not None else GovernanceMetadata()

    def generate_audit_report(self, lock_file: LockFile, workspace_root: Path) -> str:
        metadata = self.load_governance_metadata(workspace_root)
        violations = self.validate(lock_file, workspace_root)

        lines = [
            "=== Dependency Audit Report ===",
            "",
            f"Workspace: {workspace_root}",
            f"Team: {metadata.team or 'N/A'}",
            f"Contact: {metadata.contact or 'N/A'}",
            f"Domain: {metadata.domain or 'N/A'}",
            "",
            "Dependencies:",
        ]
        for package_key, locked in lock_file.dependencies.items():
            lines.append(f"  - {package_key}@{locked.version}")
            lines.append(f"    Source: {locked.resolved}")
            lines.append(f"    Commit: {locked.commit}")

        lines.append("")
        if violations:
            lines.append("Violations:")
            for violation in violations:
                lines.append(
                    f"  [{violation.severity.upper()}] {violation.package_key}: {violation.message}"
                )
        else:
            lines.append("✓ No policy violations detected")
        return "\n".join(lines)

    def _check_license(
        self, package_key: str, resolved: str, commit: str
    ) -> Optional[GovernanceViolation]:
        allowed = self.policy.allowed_licenses or []
        license_name = self._package_license(package_key, resolved, commit)
        if license_name is None:
            return GovernanceViolation(
                type="license-violation",
                package_key=package_key,
                message="License could not be determined",
                severity="warning",
            )
        if license_name not in allowed:
            return GovernanceViolation(
                type="license-violation",
                package_key=package_key,
                message=f"License not allowed: {license_name}",
                severity="error",
            )
        return None

    def _package_license(self, package_key: str, resolved: str, commit: str) -> Optional[str]:
        if self.cache_dir is None:
            return None
        try:
            descriptor = parse_source_spec(resolved)
        except SourceSpecError:
            descriptor = parse_source_spec(package_key)
        package_dir = cache_entry_path(self.cache_dir, descriptor, commit)
        manifest = _read_manifest_quietly(package_dir, self._manifest_file)
        if manifest is None:
            return None
        return manifest.metadata.license


def load_governance_policy(
    workspace_root: Path, manifest_file: str = DEFAULT_MANIFEST_FILES[0]
) -> GovernancePolicy:
    """Return the manifest's governance block; a missing or broken manifest is permissive."""
    manifest = _read_manifest_quietly(Path(workspace_root), manifest_file)
    if manifest is None or manifest.governance is None:
        return GovernancePolicy()
    return manifest.governance


def _read_manifest_quietly(directory: Path, manifest_file: str) -> Optional[Manifest]:
    try:
        return load_optional_manifest(directory, manifest_file)
    except ManifestError as exc:
        logger.debug("Ignoring unreadable manifest in %s: %s", directory, exc.message)
        return None


__all__ = [
    "GovernanceValidator",
    "load_governance_policy",
]
