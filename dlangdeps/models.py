"""Core data models shared across dlangdeps components."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional


@dataclass(frozen=True)
class PackageIdentity:
    """The ``model:`` block of a manifest."""

    name: Optional[str] = None
    version: Optional[str] = None
    entry: Optional[str] = None


@dataclass(frozen=True)
class DependencySpec:
    """One entry of a manifest's ``dependencies`` mapping."""

    source: Optional[str] = None
    path: Optional[str] = None
    ref: Optional[str] = None
    integrity: Optional[str] = None
    description: Optional[str] = None

    @property
    def is_git(self) -> bool:
        return bool(self.source) and not self.path


@dataclass(frozen=True)
class GovernancePolicy:
    """Organizational constraints; ``None`` means unrestricted."""

    allowed_sources: Optional[List[str]] = None
    blocked_packages: Optional[List[str]] = None
    require_stable_versions: Optional[bool] = None
    require_team_ownership: Optional[bool] = None
    allowed_licenses: Optional[List[str]] = None


@dataclass(frozen=True)
class GovernanceMetadata:
    """Ownership metadata from a manifest's ``metadata`` block."""

    team: Optional[str] = None
    contact: Optional[str] = None
    domain: Optional[str] = None
    license: Optional[str] = None
    compliance: List[str] = field(default_factory=list)


@dataclass
class Manifest:
    """Parsed ``model.yaml``."""

    path: Optional[Path] = None
    model: PackageIdentity = field(default_factory=PackageIdentity)
    dependencies: Dict[str, DependencySpec] = field(default_factory=dict)
    paths: Dict[str, str] = field(default_factory=dict)
    overrides: Dict[str, str] = field(default_factory=dict)
    governance: Optional[GovernancePolicy] = None
    metadata: GovernanceMetadata = field(default_factory=GovernanceMetadata)

    def git_dependencies(self) -> Dict[str, str]:
        """Return ``source -> ref`` for every git dependency, in declaration order."""
        result: Dict[str, str] = {}
        for spec in self.dependencies.values():
            if spec.is_git and spec.source:
                result[spec.source] = spec.ref or "main"
        return result


@dataclass(frozen=True)
class LockedDependency:
    """A dependency pinned to an immutable commit."""

    version: str
    resolved: str
    commit: str
    integrity: Optional[str] = None


@dataclass
class LockFile:
    """Parsed ``model.lock``."""

    version: str = "1"
    dependencies: Dict[str, LockedDependency] = field(default_factory=dict)


@dataclass(frozen=True)
class GitSourceDescriptor:
    """Structured view of a dependency specifier."""

    original: str
    platform: str
    owner: str
    repo: str
    ref: str
    repo_url: str
    entry_point: str = "index.dlang"
    subpath: str = ""

    @property
    def package_key(self) -> str:
        return f"{self.owner}/{self.repo}"


@dataclass(frozen=True)
class MaterializedSource:
    """A source checked out into the content-addressable cache."""

    descriptor: GitSourceDescriptor
    commit: str
    path: Path


@dataclass
class DependencyNode:
    """Graph node built during a single resolution run."""

    package_key: str
    version_constraint: str
    repo_url: str
    constraints: List[str] = field(default_factory=list)
    dependencies: Dict[str, str] = field(default_factory=dict)
    dependents: List[str] = field(default_factory=list)
    resolved_version: Optional[str] = None
    commit_hash: Optional[str] = None


@dataclass
class DependencyGraph:
    """All packages discovered from a root manifest."""

    root: str
    nodes: Dict[str, DependencyNode] = field(default_factory=dict)


@dataclass
class DependencyTreeNode:
    """Node of a rendered dependency tree."""

    package_key: str
    version: str
    commit: str
    dependencies: List["DependencyTreeNode"] = field(default_factory=list)
    depth: int = 0


@dataclass(frozen=True)
class ReverseDependency:
    """A package that declares a dependency on the analyzed target."""

    dependent_package: str
    version: str
    type: str = "direct"


@dataclass(frozen=True)
class VersionPolicy:
    """Outcome of applying ``latest``/``stable``/pinned to candidate refs."""

    policy: str
    ref: str
    available_refs: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class GovernanceViolation:
    """A single policy finding; never raised, always returned."""

    type: str
    package_key: str
    message: str
    severity: str


@dataclass(frozen=True)
class CacheStats:
    """Size summary of the package cache."""

    total_size: int
    repo_count: int
    cache_dir: Path


@dataclass(frozen=True)
class ImportStatement:
    """An import as produced by the language parser."""

    uri: str
    alias: Optional[str] = None


@dataclass(frozen=True)
class ResolvedImport:
    """An import statement paired with the file it resolves to."""

    uri: str
    path: Path
    alias: Optional[str] = None
