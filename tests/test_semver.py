"""Ref classification and version ordering."""

from __future__ import annotations

import pytest

from dlangdeps.semver import (
    are_same_major,
    compare_semver,
    detect_ref_type,
    filter_semver_tags,
    filter_stable_versions,
    get_major_version,
    is_pre_release,
    parse_ref,
    parse_semver,
    pick_latest_semver,
    sort_versions_descending,
)


@pytest.mark.parametrize(
    ("ref", "expected"),
    [
        ("v1.2.3", "tag"),
        ("1.0.0", "tag"),
        ("abc123d", "commit"),
        ("a" * 40, "commit"),
        ("main", "branch"),
        ("feature/login", "branch"),
        ("abc12", "branch"),
    ],
)
def test_detect_ref_type(ref: str, expected: str) -> None:
    assert detect_ref_type(ref) == expected


def test_parse_semver_reads_pre_release_and_build() -> None:
    version = parse_semver("v2.1.0-beta.1+build.7")

    assert version is not None
    assert (version.major, version.minor, version.patch) == (2, 1, 0)
    assert version.pre_release == "beta.1"
    assert version.build_metadata == "build.7"
    assert version.original == "v2.1.0-beta.1+build.7"


def test_parse_semver_rejects_non_versions() -> None:
    assert parse_semver("main") is None
    assert parse_semver("1.2") is None


def test_parse_ref_attaches_semver_only_for_tags() -> None:
    assert parse_ref("v1.0.0").semver is not None
    assert parse_ref("develop").semver is None


def test_pre_release_sorts_below_release() -> None:
    release = parse_semver("1.0.0")
    candidate = parse_semver("1.0.0-rc.1")
    assert release is not None and candidate is not None

    assert compare_semver(candidate, release) < 0
    assert compare_semver(release, candidate) > 0


def test_pick_latest_ignores_branches() -> None:
    assert pick_latest_semver(["v1.2.0", "main", "v1.10.0", "v1.9.9"]) == "v1.10.0"
    assert pick_latest_semver(["main", "develop"]) is None


def test_sort_versions_descending_puts_semver_first() -> None:
    ordered = sort_versions_descending(["v1.0.0", "main", "v2.0.0", "v2.0.0-rc.1", "develop"])

    assert ordered == ["v2.0.0", "v2.0.0-rc.1", "v1.0.0", "main", "develop"]


@pytest.mark.parametrize(
    ("ref", "expected"),
    [
        ("v1.0.0", False),
        ("v1.0.0-alpha", True),
        ("2.0.0-SNAPSHOT", True),
        ("1.0.0-rc.2", True),
        ("main", False),
    ],
)
def test_is_pre_release(ref: str, expected: bool) -> None:
    assert is_pre_release(ref) is expected


def test_filters_and_major_helpers() -> None:
    refs = ["v1.0.0", "v1.1.0-beta", "main", "v2.0.0"]

    assert filter_stable_versions(refs) == ["v1.0.0", "main", "v2.0.0"]
    assert filter_semver_tags(refs) == ["v1.0.0", "v1.1.0-beta", "v2.0.0"]
    assert get_major_version("v3.4.5") == 3
    assert get_major_version("main") is None

    one, other = parse_semver("1.0.0"), parse_semver("1.9.0")
    assert one is not None and other is not None
    assert are_same_major(one, other)
