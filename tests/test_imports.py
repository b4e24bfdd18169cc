"""Import specifier resolution."""

from __future__ import annotations

from pathlib import Path

import pytest

from dlangdeps.errors import (
    DependencyNotDeclaredError,
    DependencyNotInstalledError,
    ImportNotFoundError,
    InvalidExtensionError,
    ManifestRequiredError,
    UnknownAliasError,
)
from dlangdeps.imports import ImportPathResolver, find_matching_alias
from dlangdeps.models import ImportStatement
from tests._fixtures.workspace_builder import FakeGit, WorkspaceBuilder


@pytest.fixture
def local_workspace(workspace_builder: WorkspaceBuilder) -> WorkspaceBuilder:
    workspace_builder.write(
        {
            "model.yaml": """
            model:
              name: sales
            paths:
              "@lib": ./lib
              "@lib/special": ./vendor/special
            """,
            "index.dlang": "",
            "domains/sales.dlang": "",
            "domains/types/index.dlang": "",
            "domains/types.dlang": "",
            "domains/billing/model.yaml": "model:\n  entry: billing.dlang\n",
            "domains/billing/billing.dlang": "",
            "lib/shared.dlang": "",
            "vendor/special/index.dlang": "",
            "notes.txt": "",
        }
    )
    return workspace_builder


def _resolver(make_workspace) -> ImportPathResolver:  # type: ignore[no-untyped-def]
    return ImportPathResolver(make_workspace(auto_resolve=False))


def test_relative_import_prefers_directory_module(local_workspace: WorkspaceBuilder, make_workspace) -> None:
    resolver = _resolver(make_workspace)
    base = local_workspace.path("domains")

    assert resolver.resolve_from(base, "./types") == (base / "types" / "index.dlang").resolve()
    assert resolver.resolve_from(base, "./sales") == (base / "sales.dlang").resolve()
    assert resolver.resolve_from(base, "./sales.dlang") == (base / "sales.dlang").resolve()
    assert resolver.resolve_from(base, "./billing") == (base / "billing" / "billing.dlang").resolve()
    assert resolver.resolve_from(base, "../index.dlang") == local_workspace.path("index.dlang").resolve()


def test_missing_relative_import_lists_both_candidates(
    local_workspace: WorkspaceBuilder, make_workspace
) -> None:
    resolver = _resolver(make_workspace)

    with pytest.raises(ImportNotFoundError) as excinfo:
        resolver.resolve_from(local_workspace.path(), "./missing")

    tried = excinfo.value.context
    assert tried["tried (directory module)"].endswith("missing/index.dlang")
    assert tried["tried (file)"].endswith("missing.dlang")


def test_wrong_extension_is_rejected(local_workspace: WorkspaceBuilder, make_workspace) -> None:
    with pytest.raises(InvalidExtensionError):
        _resolver(make_workspace).resolve_from(local_workspace.path(), "./notes.txt")


def test_longest_alias_wins(local_workspace: WorkspaceBuilder, make_workspace) -> None:
    resolver = _resolver(make_workspace)
    root = local_workspace.path().resolve()

    assert resolver.resolve_from(root, "@lib/shared") == root / "lib" / "shared.dlang"
    assert resolver.resolve_from(root, "@lib/special") == root / "vendor" / "special" / "index.dlang"


def test_root_alias_resolves_from_workspace_root(local_workspace: WorkspaceBuilder, make_workspace) -> None:
    resolver = _resolver(make_workspace)
    root = local_workspace.path().resolve()

    assert resolver.resolve_from(root / "domains", "@/lib/shared") == root / "lib" / "shared.dlang"


def test_unknown_alias_raises(local_workspace: WorkspaceBuilder, make_workspace) -> None:
    with pytest.raises(UnknownAliasError) as excinfo:
        _resolver(make_workspace).resolve_from(local_workspace.path(), "@nope/thing")

    assert "@nope" in excinfo.value.message


def test_find_matching_alias_handles_trailing_slash() -> None:
    aliases = {"@lib/": "./lib", "@lib/deep": "./deep"}

    assert find_matching_alias("@lib/x", aliases) == ("./lib", "x")
    assert find_matching_alias("@lib/deep/y", aliases) == ("./deep", "y")
    assert find_matching_alias("@lib", aliases) == ("./lib", "")
    assert find_matching_alias("@other", aliases) is None
    assert find_matching_alias("@lib", None) is None


def test_external_import_requires_manifest_declaration(
    workspace_builder: WorkspaceBuilder, fake_git: FakeGit, make_workspace
) -> None:
    workspace_builder.write({"model.yaml": "dependencies:\n  acme/core: v1.0.0\n"})
    fake_git.add_package("acme/core", "v1.0.0", {"index.dlang": ""})
    resolver = ImportPathResolver(make_workspace())

    with pytest.raises(DependencyNotDeclaredError):
        resolver.resolve_from(workspace_builder.path(), "acme/other")


def test_external_import_without_lock_file_raises(
    workspace_builder: WorkspaceBuilder, make_workspace
) -> None:
    workspace_builder.write({"model.yaml": "dependencies:\n  acme/core: v1.0.0\n"})
    resolver = ImportPathResolver(make_workspace(allow_network=False))

    with pytest.raises(DependencyNotInstalledError):
        resolver.resolve_from(workspace_builder.path(), "acme/core")


def test_external_import_without_manifest_raises(make_workspace, tmp_path: Path) -> None:
    resolver = ImportPathResolver(make_workspace(auto_resolve=False))
    workspace = resolver.workspace
    # A workspace whose manifest disappears after discovery.
    root = tmp_path / "vanishing"
    root.mkdir()
    (root / "model.yaml").write_text("", encoding="utf-8")
    workspace.initialize(root)
    (root / "model.yaml").unlink()

    with pytest.raises(ManifestRequiredError):
        resolver.resolve_from(root, "acme/core")


def test_external_import_resolves_into_cache(
    workspace_builder: WorkspaceBuilder, fake_git: FakeGit, make_workspace, cache_dir: Path
) -> None:
    workspace_builder.write({"model.yaml": "dependencies:\n  acme/core: v1.0.0\n"})
    commit = fake_git.add_package(
        "acme/core", "v1.0.0", {"index.dlang": "", "domains/sales/index.dlang": ""}
    )
    resolver = ImportPathResolver(make_workspace())

    entry = resolver.resolve_from(workspace_builder.path(), "acme/core")
    sub = resolver.resolve_from(workspace_builder.path(), "acme/core/domains/sales")

    package_dir = cache_dir / "github" / "acme" / "core" / commit
    assert entry == package_dir / "index.dlang"
    assert sub == package_dir / "domains" / "sales" / "index.dlang"


def test_installed_workspace_resolves_offline(
    workspace_builder: WorkspaceBuilder, fake_git: FakeGit, make_workspace
) -> None:
    workspace_builder.write({"model.yaml": "dependencies:\n  acme/core: v1.0.0\n"})
    fake_git.add_package("acme/core", "v1.0.0", {"index.dlang": ""})
    online = ImportPathResolver(make_workspace())
    expected = online.resolve_from(workspace_builder.path(), "acme/core")
    calls = len(fake_git.calls)

    offline = ImportPathResolver(make_workspace(allow_network=False))

    assert offline.resolve_from(workspace_builder.path(), "acme/core") == expected
    assert len(fake_git.calls) == calls


def test_resolve_imports_keeps_aliases(local_workspace: WorkspaceBuilder, make_workspace) -> None:
    resolver = _resolver(make_workspace)
    document = local_workspace.path("domains/sales.dlang")

    resolved = resolver.resolve_imports(
        document,
        [ImportStatement(uri="./types", alias="Types"), ImportStatement(uri="@lib/shared")],
    )

    assert [item.alias for item in resolved] == ["Types", None]
    assert resolved[0].path.name == "index.dlang"
    assert resolved[1].path.name == "shared.dlang"


def test_external_import_on_slashed_branch(
    workspace_builder: WorkspaceBuilder, fake_git: FakeGit, make_workspace, cache_dir: Path
) -> None:
    workspace_builder.write({"model.yaml": "dependencies:\n  acme/core: feature/login\n"})
    login = fake_git.add_package(
        "acme/core", "feature/login", {"index.dlang": "", "domains/sales/index.dlang": ""}
    )
    fake_git.add_package("acme/core", "feature", {"index.dlang": ""})
    resolver = ImportPathResolver(make_workspace())

    sub = resolver.resolve_from(workspace_builder.path(), "acme/core/domains/sales")

    assert sub == cache_dir / "github" / "acme" / "core" / login / "domains" / "sales" / "index.dlang"
