"""CLI entrypoints for dlangdeps commands."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from .analysis import DependencyAnalyzer
from .config import WorkspaceOptions
from .errors import DependencyError
from .git.resolver import GitSourceResolver
from .git.sources import source_descriptor
from .governance import GovernanceValidator, load_governance_policy
from .logging import configure_logging, get_logger
from .models import LockFile
from .workspace import WorkspaceResolver

logger = get_logger("cli")


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=argparse.SUPPRESS if suppress_default else False,
        help="Increase log verbosity for troubleshooting.",
    )


def _add_path_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Any path inside the workspace (defaults to current directory).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dlangdeps",
        description="Resolve, lock and audit git dependencies of a .dlang workspace.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Only report warnings and errors.",
    )
    parser.add_argument(
        "--cache-dir",
        type=Path,
        default=None,
        help="Package cache directory (defaults to $DLANG_CACHE_DIR or ~/.dlang/cache).",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write detailed logs to this file.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    install_parser = subparsers.add_parser(
        "install",
        help="Resolve dependencies, write model.lock and populate the cache.",
    )
    _add_verbose_option(install_parser, suppress_default=True)
    _add_path_argument(install_parser)
    install_parser.add_argument(
        "--force",
        action="store_true",
        help="Re-resolve every ref even when model.lock exists.",
    )
    install_parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Resolve package commits with this many threads.",
    )

    tree_parser = subparsers.add_parser("tree", help="Print the locked dependency tree.")
    _add_verbose_option(tree_parser, suppress_default=True)
    _add_path_argument(tree_parser)
    tree_parser.add_argument(
        "--commits",
        action="store_true",
        help="Show abbreviated commit hashes next to each version.",
    )

    impact_parser = subparsers.add_parser(
        "impact",
        help="List packages that depend on PACKAGE.",
    )
    _add_verbose_option(impact_parser, suppress_default=True)
    impact_parser.add_argument("package", help="Package key, e.g. acme/core.")
    _add_path_argument(impact_parser)

    for name, help_text in (
        ("cycles", "Report circular dependencies among locked packages."),
        ("audit", "Print a governance audit report."),
        ("check", "Validate locked dependencies against the governance policy."),
    ):
        command_parser = subparsers.add_parser(name, help=help_text)
        _add_verbose_option(command_parser, suppress_default=True)
        _add_path_argument(command_parser)

    stats_parser = subparsers.add_parser("cache-stats", help="Show package cache usage.")
    _add_verbose_option(stats_parser, suppress_default=True)
    clear_parser = subparsers.add_parser("cache-clear", help="Delete the package cache.")
    _add_verbose_option(clear_parser, suppress_default=True)

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for dlangdeps commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(
        verbose=bool(args.verbose), quiet=bool(args.quiet), log_file=args.log_file
    )

    try:
        status = _dispatch(args)
    except DependencyError as exc:
        parser.exit(1, f"dlangdeps {args.command} failed: {exc}\n")
    except Exception as exc:  # pragma: no cover
        logger.debug("Unhandled error", exc_info=True)
        parser.exit(1, f"dlangdeps {args.command} failed: {exc}\nRun with --verbose for more details.\n")
    if status:
        parser.exit(status)


def _dispatch(args: argparse.Namespace) -> int:
    command = args.command
    if command == "install":
        return _run_install(args)
    if command in {"tree", "impact", "cycles"}:
        return _run_analysis(args)
    if command in {"audit", "check"}:
        return _run_governance(args)
    if command == "cache-stats":
        stats = _git_resolver(args).get_cache_stats()
        print(f"Cache directory: {stats.cache_dir}")
        print(f"Packages: {stats.repo_count}")
        print(f"Size: {_format_size(stats.total_size)}")
        return 0
    if command == "cache-clear":
        resolver = _git_resolver(args)
        resolver.clear_cache()
        print(f"Cleared {resolver.cache_dir}")
        return 0
    raise ValueError(f"Unknown command: {command}")  # pragma: no cover - argparse enforces choices


def _run_install(args: argparse.Namespace) -> int:
    options = WorkspaceOptions(
        cache_dir=args.cache_dir,
        auto_resolve=False,
        max_workers=max(1, args.workers),
    )
    workspace = WorkspaceResolver(options)
    workspace.initialize(args.path)
    lock_file = workspace.regenerate_lock_file() if args.force else workspace.ensure_lock_file()
    for message in workspace.get_resolution_messages():
        print(message)
    installed = _populate_cache(workspace, lock_file)
    print(f"Installed {installed} package(s); model.lock is up to date.")
    return 0


def _populate_cache(workspace: WorkspaceResolver, lock_file: LockFile) -> int:
    git = workspace.get_git_resolver()
    for package_key, locked in lock_file.dependencies.items():
        source = git.materialize_descriptor(source_descriptor(locked.resolved, locked.version))
        logger.info("%s@%s -> %s", package_key, locked.version, source.path)
    return len(lock_file.dependencies)


def _run_analysis(args: argparse.Namespace) -> int:
    workspace, lock_file = _open_locked_workspace(args)
    root = workspace.get_workspace_root()
    analyzer = DependencyAnalyzer(workspace.options.resolved_cache_dir())

    if args.command == "tree":
        nodes = analyzer.build_dependency_tree(lock_file, root)
        if not nodes:
            print("No dependencies.")
        else:
            print(analyzer.format_dependency_tree(nodes, show_commits=args.commits))
        return 0

    if args.command == "impact":
        dependents = analyzer.find_reverse_dependencies(args.package, lock_file, root)
        if not dependents:
            print(f"No packages depend on {args.package}.")
            return 0
        print(f"Packages depending on {args.package}:")
        for dependent in dependents:
            print(f"  - {dependent.dependent_package}@{dependent.version}")
        return 0

    cycles = analyzer.detect_circular_dependencies(lock_file)
    if not cycles:
        print("No circular dependencies detected.")
        return 0
    print(f"Found {len(cycles)} circular dependency chain(s):")
    for cycle in cycles:
        print(f"  {' -> '.join(cycle)}")
    return 0


def _run_governance(args: argparse.Namespace) -> int:
    workspace, lock_file = _open_locked_workspace(args)
    root = workspace.get_workspace_root()
    validator = GovernanceValidator(
        load_governance_policy(root),
        cache_dir=workspace.options.resolved_cache_dir(),
    )

    if args.command == "audit":
        print(validator.generate_audit_report(lock_file, root))
        violations = validator.validate(lock_file, root)
    else:
        violations = validator.validate(lock_file, root)
        if not violations:
            print("✓ No policy violations detected")
        for violation in violations:
            print(f"[{violation.severity.upper()}] {violation.package_key}: {violation.message}")
    return 1 if any(v.severity == "error" for v in violations) else 0


def _open_locked_workspace(args: argparse.Namespace) -> tuple[WorkspaceResolver, LockFile]:
    options = WorkspaceOptions(cache_dir=args.cache_dir, allow_network=False, auto_resolve=False)
    workspace = WorkspaceResolver(options)
    workspace.initialize(args.path)
    return workspace, workspace.ensure_lock_file()


def _git_resolver(args: argparse.Namespace) -> GitSourceResolver:
    options = WorkspaceOptions(cache_dir=args.cache_dir)
    return GitSourceResolver(options.resolved_cache_dir())


def _format_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    value = size / 1024
    for unit in ("KB", "MB"):
        if value < 1024:
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


if __name__ == "__main__":
    main(sys.argv[1:])
