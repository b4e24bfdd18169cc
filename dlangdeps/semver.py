"""Ref classification and semantic-version comparison.

Refs come in three shapes: commit hashes (7-40 hex characters), tags that
look like ``v1.2.3`` and everything else, which is treated as a branch name.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import cmp_to_key
from typing import Iterable, List, Literal, Optional

RefType = Literal["tag", "branch", "commit"]

_SEMVER_PATTERN = re.compile(r"^(\d+)\.(\d+)\.(\d+)(?:-([0-9A-Za-z.-]+))?(?:\+([0-9A-Za-z.-]+))?$")
_COMMIT_PATTERN = re.compile(r"^[0-9a-f]{7,40}$", re.IGNORECASE)
_TAG_PATTERN = re.compile(r"^v?\d+\.\d+\.\d+")
_PRE_RELEASE_PATTERN = re.compile(r"-(alpha|beta|rc|pre|dev|snapshot)", re.IGNORECASE)
FULL_COMMIT_PATTERN = re.compile(r"^[0-9a-f]{40}$")


@dataclass(frozen=True)
class SemVer:
    major: int
    minor: int
    patch: int
    original: str
    pre_release: Optional[str] = None
    build_metadata: Optional[str] = None


@dataclass(frozen=True)
class ParsedRef:
    original: str
    type: RefType
    semver: Optional[SemVer] = None


def parse_semver(version: str) -> Optional[SemVer]:
    """Parse ``[v]MAJOR.MINOR.PATCH[-pre][+build]``; return None otherwise."""
    normalized = version[1:] if version.startswith("v") else version
    match = _SEMVER_PATTERN.match(normalized)
    if not match:
        return None
    return SemVer(
        major=int(match.group(1)),
        minor=int(match.group(2)),
        patch=int(match.group(3)),
        original=version,
        pre_release=match.group(4),
        build_metadata=match.group(5),
    )


def detect_ref_type(ref: str) -> RefType:
    if _COMMIT_PATTERN.match(ref):
        return "commit"
    if _TAG_PATTERN.match(ref):
        return "tag"
    return "branch"


def is_full_commit(ref: str) -> bool:
    return bool(FULL_COMMIT_PATTERN.match(ref))


def parse_ref(ref: str) -> ParsedRef:
    ref_type = detect_ref_type(ref)
    semver = parse_semver(ref) if ref_type == "tag" else None
    return ParsedRef(original=ref, type=ref_type, semver=semver)


def compare_semver(a: SemVer, b: SemVer) -> int:
    """Negative when ``a < b``, positive when ``a > b``; pre-releases sort below releases."""
    if a.major != b.major:
        return a.major - b.major
    if a.minor != b.minor:
        return a.minor - b.minor
    if a.patch != b.patch:
        return a.patch - b.patch
    if a.pre_release and not b.pre_release:
        return -1
    if not a.pre_release and b.pre_release:
        return 1
    if a.pre_release and b.pre_release:
        return (a.pre_release > b.pre_release) - (a.pre_release < b.pre_release)
    return 0


def pick_latest_semver(refs: Iterable[str]) -> Optional[str]:
    parsed = [(ref, parse_semver(ref)) for ref in refs]
    candidates = [(ref, semver) for ref, semver in parsed if semver is not None]
    if not candidates:
        return None
    best_ref, best = candidates[0]
    for ref, semver in candidates[1:]:
        if compare_semver(semver, best) > 0:
            best_ref, best = ref, semver
    return best_ref


def _compare_versions_descending(a: str, b: str) -> int:
    semver_a = parse_semver(a)
    semver_b = parse_semver(b)
    if semver_a and semver_b:
        return compare_semver(semver_b, semver_a)
    if semver_a and not semver_b:
        return -1
    if not semver_a and semver_b:
        return 1
    return (b > a) - (b < a)


def sort_versions_descending(versions: Iterable[str]) -> List[str]:
    """Newest first; non-semver refs follow in reverse lexicographic order."""
    return sorted(versions, key=cmp_to_key(_compare_versions_descending))


def is_pre_release(ref: str) -> bool:
    semver = parse_semver(ref)
    if semver is not None and semver.pre_release:
        return True
    clean = ref[1:] if ref.startswith("v") else ref
    return bool(_PRE_RELEASE_PATTERN.search(clean))


def are_same_major(a: SemVer, b: SemVer) -> bool:
    return a.major == b.major


def get_major_version(ref: str) -> Optional[int]:
    semver = parse_semver(ref)
    return semver.major if semver else None


def filter_stable_versions(refs: Iterable[str]) -> List[str]:
    return [ref for ref in refs if not is_pre_release(ref)]


def filter_semver_tags(refs: Iterable[str]) -> List[str]:
    return [ref for ref in refs if detect_ref_type(ref) == "tag" and parse_semver(ref) is not None]


__all__ = [
    "FULL_COMMIT_PATTERN",
    "ParsedRef",
    "RefType",
    "SemVer",
    "are_same_major",
    "compare_semver",
    "detect_ref_type",
    "filter_semver_tags",
    "filter_stable_versions",
    "get_major_version",
    "is_full_commit",
    "is_pre_release",
    "parse_ref",
    "parse_semver",
    "pick_latest_semver",
    "sort_versions_descending",
]
