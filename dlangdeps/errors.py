"""Error taxonomy for dependency resolution."""

from __future__ import annotations

from typing import Mapping, Optional


class DependencyError(RuntimeError):
    """Base error carrying an actionable hint and string context."""

    def __init__(
        self,
        message: str,
        *,
        hint: Optional[str] = None,
        context: Optional[Mapping[str, str]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.context = dict(context or {})

    def __str__(self) -> str:
        parts = [self.message]
        if self.hint:
            parts.append(f"Hint: {self.hint}")
        for key, value in self.context.items():
            if value:
                parts.append(f"  {key}: {value}")
        return "\n".join(parts)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "error": type(self).__name__,
            "message": self.message,
            "context": dict(self.context),
        }
        if self.hint is not None:
            payload["hint"] = self.hint
        return payload


class WorkspaceNotFoundError(DependencyError):
    """No manifest exists on any ancestor of the start path."""


class ManifestError(DependencyError):
    """The manifest is unreadable or structurally invalid."""


class ManifestRequiredError(DependencyError):
    """An external import was used in a workspace without a manifest."""


class DependencyNotInstalledError(DependencyError):
    """A dependency is missing from the lock file or the local cache."""


class DependencyNotDeclaredError(DependencyError):
    """An external import names a package the manifest does not declare."""


class UnknownAliasError(DependencyError):
    """A path alias import uses an alias the manifest does not define."""


class ImportNotFoundError(DependencyError):
    """No file exists for an import specifier."""


class InvalidExtensionError(DependencyError):
    """An import names a file with an unsupported extension."""


class UnresolvedVersionError(DependencyError):
    """A graph node finished resolution without a version or commit."""


class SourceSpecError(DependencyError):
    """A dependency specifier could not be parsed."""


class SourceFetchError(DependencyError):
    """Fetching or checking out a git source failed."""


class GitCommandError(DependencyError):
    """A git subprocess exited with a non-zero status."""


class VersionConflictError(DependencyError):
    """Dependents pin one package to refs that cannot be reconciled."""


class LockFileError(DependencyError):
    """The lock file is not valid JSON or has an invalid shape."""


__all__ = [
    "DependencyError",
    "DependencyNotDeclaredError",
    "DependencyNotInstalledError",
    "GitCommandError",
    "ImportNotFoundError",
    "InvalidExtensionError",
    "LockFileError",
    "ManifestError",
    "ManifestRequiredError",
    "SourceFetchError",
    "SourceSpecError",
    "UnknownAliasError",
    "UnresolvedVersionError",
    "VersionConflictError",
    "WorkspaceNotFoundError",
]
