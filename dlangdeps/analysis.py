"""Read-only analysis over a lock file: trees, impact and cycles."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

from .config import DEFAULT_MANIFEST_FILES, default_cache_dir
from .errors import ManifestError, SourceSpecError
from .git.resolver import cache_entry_path
from .git.sources import parse_source_spec
from .logging import get_logger
from .manifest import load_optional_manifest
from .models import DependencyTreeNode, LockFile, ReverseDependency, VersionPolicy
from .semver import is_pre_release, sort_versions_descending

ROOT_DEPENDENT = "root"


class DependencyAnalyzer:
    """Answers tree, impact and cycle queries from cached package manifests."""

    def __init__(
        self,
        cache_dir: Optional[Path] = None,
        *,
        manifest_file: str = DEFAULT_MANIFEST_FILES[0],
    ) -> None:
        self.cache_dir = Path(cache_dir) if cache_dir is not None else default_cache_dir()
        self._manifest_file = manifest_file
        self.logger = get_logger("analysis")

    def build_dependency_tree(
        self, lock_file: LockFile, workspace_root: Path
    ) -> List[DependencyTreeNode]:
        """Return one tree per direct dependency of the workspace."""
        roots: List[DependencyTreeNode] = []
        for package_key in self._dependencies_of(Path(workspace_root)):
            node = self._build_tree_node(package_key, lock_file, 0, set())
            if node is not None:
                roots.append(node)
        return roots

    def format_dependency_tree(
        self, nodes: List[DependencyTreeNode], *, show_commits: bool = False
    ) -> str:
        lines: List[str] = []

        def format_node(node: DependencyTreeNode, prefix: str, is_last: bool) -> None:
            branch = "└── " if is_last else "├── "
            label = f"{node.version} ({node.commit[:7]})" if show_commits else node.version
            lines.append(f"{prefix}{branch}{node.package_key}@{label}")
            child_prefix = prefix + ("    " if is_last else "│   ")
            for index, child in enumerate(node.dependencies):
                format_node(child, child_prefix, index == len(node.dependencies) - 1)

        for index, node in enumerate(nodes):
            format_node(node, "", index == len(nodes) - 1)
        return "\n".join(lines)

    def find_reverse_dependencies(
        self, target: str, lock_file: LockFile, workspace_root: Path
    ) -> List[ReverseDependency]:
        """Return every package (and the workspace root) that declares ``target``."""
        reverse: List[ReverseDependency] = []
        if target in self._dependencies_of(Path(workspace_root)):
            reverse.append(ReverseDependency(dependent_package=ROOT_DEPENDENT, version="workspace"))
        for package_key, locked in lock_file.dependencies.items():
            if package_key == target:
                continue
            if target in self._locked_dependencies(package_key, lock_file):
                reverse.append(ReverseDependency(dependent_package=package_key, version=locked.version))
        return reverse

    def detect_circular_dependencies(self, lock_file: LockFile) -> List[List[str]]:
        """Depth-first search over locked edges; each cycle ends where it started."""
        cycles: List[List[str]] = []
        on_stack: Set[str] = set()
        completed: Set[str] = set()

        def visit(package_key: str, stack: List[str]) -> None:
            if package_key in on_stack:
                start = stack.index(package_key)
                cycles.append(stack[start:] + [package_key])
                return
            if package_key in completed:
                return
            on_stack.add(package_key)
            stack.append(package_key)
            for dependency in self._locked_dependencies(package_key, lock_file):
                visit(dependency, stack)
            stack.pop()
            on_stack.discard(package_key)
            completed.add(package_key)

        for package_key in lock_file.dependencies:
            visit(package_key, [])
        return cycles

    def resolve_version_policy(
        self, package_key: str, policy: str, available_versions: Iterable[str]
    ) -> VersionPolicy:
        """Pick a ref for ``latest``, ``stable`` or a pinned literal."""
        available = list(available_versions)
        if policy == "latest":
            ordered = sort_versions_descending(available)
            return VersionPolicy(policy="latest", ref=ordered[0] if ordered else "main", available_refs=ordered)
        if policy == "stable":
            ordered = sort_versions_descending(v for v in available if not is_pre_release(v))
            return VersionPolicy(policy="stable", ref=ordered[0] if ordered else "main", available_refs=ordered)
        return VersionPolicy(policy="pinned", ref=policy)

    # ------------------------------------------------------------------
    # Internal helpers

    def _build_tree_node(
        self,
        package_key: str,
        lock_file: LockFile,
        depth: int,
        visited: Set[str],
    ) -> Optional[DependencyTreeNode]:
        locked = lock_file.dependencies.get(package_key)
        if locked is None:
            return None
        node = DependencyTreeNode(
            package_key=package_key,
            version=locked.version,
            commit=locked.commit,
            depth=depth,
        )
        if package_key in visited:
            return node
        branch_visited = visited | {package_key}
        for child_key in self._locked_dependencies(package_key, lock_file):
            child = self._build_tree_node(child_key, lock_file, depth + 1, branch_visited)
            if child is not None:
                node.dependencies.append(child)
        return node

    def _locked_dependencies(self, package_key: str, lock_file: LockFile) -> Dict[str, str]:
        locked = lock_file.dependencies.get(package_key)
        if locked is None:
            return {}
        try:
            descriptor = parse_source_spec(locked.resolved)
        except SourceSpecError:
            descriptor = parse_source_spec(package_key)
        return self._dependencies_of(cache_entry_path(self.cache_dir, descriptor, locked.commit))

    def _dependencies_of(self, directory: Path) -> Dict[str, str]:
        """Return ``packageKey -> constraint`` declared by the manifest in ``directory``."""
        try:
            manifest = load_optional_manifest(directory, self._manifest_file)
        except ManifestError as exc:
            self.logger.debug("Skipping unreadable manifest in %s: %s", directory, exc.message)
            return {}
        if manifest is None:
            return {}
        result: Dict[str, str] = {}
        for source, ref in manifest.git_dependencies().items():
            try:
                result[parse_source_spec(source).package_key] = ref
            except SourceSpecError:
                self.logger.debug("Skipping unparsable source %s in %s", source, directory)
        return result


__all__ = ["DependencyAnalyzer", "ROOT_DEPENDENT"]
