"""Import specifier resolution.

Three kinds of specifier are recognised:

- relative (``./x``, ``../x``), resolved directory-first against the
  importing document's directory;
- path aliases (``@/x``, ``@alias/x``) declared in the manifest's ``paths``;
- external packages (``owner/package[/subpath]``) declared in the
  manifest's ``dependencies`` and pinned by the lock file.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from .entry import resolve_local_path
from .errors import (
    DependencyNotDeclaredError,
    DependencyNotInstalledError,
    ManifestRequiredError,
    UnknownAliasError,
)
from .models import ImportStatement, ResolvedImport
from .workspace import WorkspaceResolver


class ImportPathResolver:
    """Resolves import specifiers to files using a :class:`WorkspaceResolver`."""

    def __init__(self, workspace: WorkspaceResolver) -> None:
        self.workspace = workspace

    @property
    def _extension(self) -> str:
        return self.workspace.options.extension

    @property
    def _manifest_file(self) -> str:
        return self.workspace.options.manifest_files[0]

    def resolve_from(self, base_dir: str | Path, specifier: str) -> Path:
        base = Path(base_dir).resolve()
        self.workspace.initialize(base)

        if specifier.startswith(("./", "../")):
            return self._resolve_local(base / specifier, specifier)
        if specifier.startswith("@"):
            return self._resolve_path_alias(specifier)
        return self._resolve_external(specifier)

    def resolve_imports(
        self, document_path: str | Path, imports: Iterable[ImportStatement]
    ) -> List[ResolvedImport]:
        """Resolve every import of a parsed document, in order."""
        base_dir = Path(document_path).resolve().parent
        resolved: List[ResolvedImport] = []
        for statement in imports:
            path = self.resolve_from(base_dir, statement.uri)
            resolved.append(ResolvedImport(uri=statement.uri, path=path, alias=statement.alias))
        return resolved

    # ------------------------------------------------------------------
    # Strategies

    def _resolve_path_alias(self, specifier: str) -> Path:
        aliases = self.workspace.get_path_aliases()
        root = self.workspace.get_workspace_root()

        match = find_matching_alias(specifier, aliases)
        if match is not None:
            target_path, remainder = match
            manifest_path = self.workspace.get_manifest_path()
            manifest_dir = manifest_path.parent if manifest_path else root
            resolved = (manifest_dir / target_path).resolve()
            if remainder:
                resolved = resolved / remainder
            return self._resolve_local(resolved, specifier)

        if specifier.startswith("@/"):
            return self._resolve_local(root / specifier[2:], specifier)

        alias = specifier.split("/", 1)[0]
        raise UnknownAliasError(
            f"Unknown path alias '{alias}' in import '{specifier}'.",
            hint=f'Define it in the model.yaml paths section, e.g. paths: {{"{alias}": "./some/path"}}.',
        )

    def _resolve_external(self, specifier: str) -> Path:
        manifest = self.workspace.get_manifest()
        if manifest is None:
            raise ManifestRequiredError(
                f"External dependency '{specifier}' requires model.yaml.",
                hint=f"Create model.yaml and declare '{specifier}' under dependencies.",
            )
        if self.workspace.get_lock_file() is None:
            raise DependencyNotInstalledError(
                f"Dependency '{specifier}' not installed.",
                hint="Run 'dlangdeps install' to fetch dependencies and generate model.lock.",
            )
        mapped = self.workspace.resolve_dependency_descriptor(specifier)
        if mapped is None:
            raise DependencyNotDeclaredError(
                f"Dependency '{specifier}' not found in model.yaml.",
                hint=f"Add it to your dependencies: {specifier}: {{ref: v1.0.0}}.",
            )
        git = self.workspace.get_git_resolver()
        return git.resolve_descriptor_entry(mapped, allow_network=False)

    def _resolve_local(self, target: Path, original: str) -> Path:
        return resolve_local_path(
            target.resolve(),
            original,
            extension=self._extension,
            manifest_file=self._manifest_file,
        )


def find_matching_alias(
    specifier: str, aliases: Optional[Dict[str, str]]
) -> Optional[Tuple[str, str]]:
    """Return ``(target, remainder)`` for the longest alias prefix of ``specifier``."""
    if not aliases:
        return None
    normalized = [(alias.rstrip("/") or alias, target) for alias, target in aliases.items()]
    for alias, target in sorted(normalized, key=lambda item: len(item[0]), reverse=True):
        if specifier == alias:
            return target, ""
        if specifier.startswith(f"{alias}/"):
            return target, specifier[len(alias) + 1:]
    return None


__all__ = ["ImportPathResolver", "find_matching_alias"]
