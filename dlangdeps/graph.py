"""Transitive dependency discovery and lock file generation."""

from __future__ import annotations

import re
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Deque, Dict, List, Optional, Set

from .config import DEFAULT_MANIFEST_FILES, LOCK_FILE_VERSION
from .errors import UnresolvedVersionError, VersionConflictError
from .git.resolver import GitSourceResolver
from .git.sources import DEFAULT_REF, parse_source_spec, source_descriptor
from .logging import get_logger
from .manifest import load_manifest, load_optional_manifest
from .models import DependencyGraph, DependencyNode, LockedDependency, LockFile, Manifest
from .semver import detect_ref_type, parse_semver

_OPERATOR_PREFIX = re.compile(r"^[\^~>=<]+")


@dataclass(frozen=True)
class _QueueEntry:
    package_key: str
    source: str
    constraint: str
    parent: str


class DependencyGraphBuilder:
    """Walks manifests breadth-first and pins every package to a commit."""

    def __init__(
        self,
        workspace_root: Path,
        git_resolver: GitSourceResolver,
        *,
        manifest_file: str = DEFAULT_MANIFEST_FILES[0],
        max_workers: int = 1,
    ) -> None:
        self.workspace_root = Path(workspace_root)
        self.git_resolver = git_resolver
        self._manifest_file = manifest_file
        self._max_workers = max(1, max_workers)
        self.override_messages: List[str] = []
        self.conflict_warnings: List[str] = []
        self.logger = get_logger("graph")

    @property
    def resolution_messages(self) -> List[str]:
        """Overrides applied and conflicts tolerated during the last run."""
        return [*self.override_messages, *self.conflict_warnings]

    def resolve_dependencies(self) -> LockFile:
        """Build the dependency graph for the workspace and return its lock file."""
        self.override_messages = []
        self.conflict_warnings = []
        root_manifest = self._load_root_manifest()
        if root_manifest is None or not root_manifest.git_dependencies():
            return LockFile(version=LOCK_FILE_VERSION, dependencies={})

        graph = self.build_graph(root_manifest)
        self._apply_overrides(graph, root_manifest.overrides)
        self._check_conflicts(graph)
        self._resolve_versions(graph)
        return self._generate_lock_file(graph)

    def build_graph(self, root_manifest: Manifest) -> DependencyGraph:
        graph = DependencyGraph(root=root_manifest.model.name or "root")
        queue: Deque[_QueueEntry] = deque(
            self._queue_entries(root_manifest.git_dependencies(), graph.root)
        )
        visited: Set[str] = set()

        while queue:
            entry = queue.popleft()
            if entry.package_key in visited:
                node = graph.nodes[entry.package_key]
                if entry.parent not in node.dependents:
                    node.dependents.append(entry.parent)
                if entry.constraint not in node.constraints:
                    node.constraints.append(entry.constraint)
                continue
            visited.add(entry.package_key)

            descriptor = source_descriptor(entry.source, extract_version(entry.constraint))
            source = self.git_resolver.materialize_descriptor(descriptor)
            manifest = load_optional_manifest(source.path, self._manifest_file)
            declared = manifest.git_dependencies() if manifest else {}
            self.logger.debug(
                "Discovered %s (%d dependencies) via %s",
                entry.package_key,
                len(declared),
                entry.parent,
            )

            node = DependencyNode(
                package_key=entry.package_key,
                version_constraint=entry.constraint,
                repo_url=source.descriptor.repo_url,
                constraints=[entry.constraint],
                dependencies={
                    parse_source_spec(dep).package_key: ref for dep, ref in declared.items()
                },
                dependents=[entry.parent],
            )
            graph.nodes[entry.package_key] = node
            queue.extend(self._queue_entries(declared, entry.package_key))

        return graph

    # ------------------------------------------------------------------
    # Internals

    def _load_root_manifest(self) -> Optional[Manifest]:
        manifest_path = self.workspace_root / self._manifest_file
        if not manifest_path.is_file():
            return None
        return load_manifest(manifest_path, workspace_root=self.workspace_root)

    @staticmethod
    def _queue_entries(dependencies: Dict[str, str], parent: str) -> List[_QueueEntry]:
        entries = []
        for source, constraint in dependencies.items():
            descriptor = parse_source_spec(source)
            entries.append(
                _QueueEntry(
                    package_key=descriptor.package_key,
                    source=source,
                    constraint=constraint,
                    parent=parent,
                )
            )
        return entries

    def _apply_overrides(self, graph: DependencyGraph, overrides: Dict[str, str]) -> None:
        for package_key, ref in overrides.items():
            node = graph.nodes.get(package_key)
            if node is None:
                continue
            node.version_constraint = ref
            node.constraints = [ref]
            self.override_messages.append(f"Override applied: {package_key}@{ref}")
            self.logger.info("Override applied: %s@%s", package_key, ref)

    def _check_conflicts(self, graph: DependencyGraph) -> None:
        """Reject irreconcilable constraints; warn when tags of one major differ.

        The first constraint seen stays pinned. Tags within a major version are
        tolerated; anything else needs an entry under ``overrides``.
        """
        for package_key, node in graph.nodes.items():
            refs = list(dict.fromkeys(extract_version(c) for c in node.constraints))
            if len(refs) <= 1:
                continue
            reason = _conflict_reason(refs)
            if reason is not None:
                raise VersionConflictError(
                    f"Version conflict for '{package_key}': {', '.join(refs)}. {reason}",
                    hint=f"Add an override to model.yaml:\n\n  overrides:\n    {package_key}: <ref>",
                    context={"dependents": ", ".join(node.dependents)},
                )
            pinned = extract_version(node.version_constraint)
            others = ", ".join(ref for ref in refs if ref != pinned)
            message = f"Conflicting constraints for {package_key}: using {pinned} (also requested: {others})"
            self.conflict_warnings.append(message)
            self.logger.warning(message)

    def _resolve_versions(self, graph: DependencyGraph) -> None:
        nodes = list(graph.nodes.values())
        if self._max_workers > 1 and len(nodes) > 1:
            with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
                list(pool.map(self._resolve_node, nodes))
        else:
            for node in nodes:
                self._resolve_node(node)

    def _resolve_node(self, node: DependencyNode) -> None:
        version = extract_version(node.version_constraint)
        descriptor = source_descriptor(node.repo_url, version)
        node.resolved_version = version
        node.commit_hash = self.git_resolver.resolve_commit(descriptor)

    @staticmethod
    def _generate_lock_file(graph: DependencyGraph) -> LockFile:
        dependencies: Dict[str, LockedDependency] = {}
        for package_key, node in graph.nodes.items():
            if not node.resolved_version or not node.commit_hash:
                raise UnresolvedVersionError(
                    f"Failed to resolve version for '{package_key}'.",
                    hint="Check that the package exists and the ref is valid.",
                    context={"constraint": node.version_constraint},
                )
            dependencies[package_key] = LockedDependency(
                version=node.resolved_version,
                resolved=node.repo_url,
                commit=node.commit_hash,
            )
        return LockFile(version=LOCK_FILE_VERSION, dependencies=dependencies)


def extract_version(constraint: str) -> str:
    """Reduce a constraint to a concrete ref token.

    ``^1.0.0`` and ``~1.0.0`` become ``1.0.0`` and ``owner/repo@v2`` becomes
    ``v2``. This is not a range solver: the remainder is treated as pinned.
    """
    token = _OPERATOR_PREFIX.sub("", constraint.strip())
    if "@" in token:
        token = token.split("@", 1)[1]
    return token or DEFAULT_REF


def _conflict_reason(refs: List[str]) -> Optional[str]:
    types = {detect_ref_type(ref) for ref in refs}
    if len(types) > 1:
        return "Refs of different types cannot be mixed."
    if types == {"commit"}:
        return "Explicit commit pins cannot be reconciled."
    if types == {"branch"}:
        return "Different branches cannot be reconciled."
    versions = [parse_semver(ref) for ref in refs]
    if any(version is None for version in versions):
        return "Not every ref is a semantic version tag."
    majors = sorted({version.major for version in versions if version is not None})
    if len(majors) > 1:
        return f"Major versions differ ({' vs '.join(str(m) for m in majors)})."
    return None


__all__ = ["DependencyGraphBuilder", "extract_version"]
