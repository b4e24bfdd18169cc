"""Dependency specifier parsing.

Supported forms::

    owner/repo                          GitHub shorthand, ref defaults to main
    owner/repo@v1.0.0                   shorthand with ref
    owner/repo@v1.0.0/sub/dir           shorthand with ref and package subpath
    https://github.com/owner/repo@ref   also gitlab.com and bitbucket.org
    https://git.example.com/owner/repo  any other host (platform "generic")
"""

from __future__ import annotations

import re
from dataclasses import replace
from typing import Optional

from ..config import DEFAULT_ENTRY
from ..errors import SourceSpecError
from ..models import GitSourceDescriptor

DEFAULT_REF = "main"

_SHORTHAND_PATTERN = re.compile(
    r"^(?P<owner>[A-Za-z0-9-]+)/(?P<repo>[A-Za-z0-9_.-]+)(?:@(?P<ref>[^/]+))?(?:/(?P<subpath>.+))?$"
)
_URL_PATTERN = re.compile(
    r"^(?P<scheme>https|git)://(?P<host>[^/]+)/(?P<owner>[^/]+)/(?P<repo>[^/@]+?)(?:\.git)?"
    r"(?:@(?P<ref>[^/]+))?(?:/(?P<subpath>.+))?$"
)
_KNOWN_HOSTS = {
    "github.com": "github",
    "gitlab.com": "gitlab",
    "bitbucket.org": "bitbucket",
}


def is_git_specifier(text: str) -> bool:
    """Return True when ``text`` names a git-hosted package."""
    if _SHORTHAND_PATTERN.match(text):
        return True
    return text.startswith(("https://", "git://"))


def parse_source_spec(text: str) -> GitSourceDescriptor:
    """Parse a specifier into a :class:`GitSourceDescriptor`."""
    text = text.strip()
    if text.startswith(("https://", "git://")):
        return _parse_url(text)
    match = _SHORTHAND_PATTERN.match(text)
    if match is None:
        raise SourceSpecError(
            f"Invalid dependency source '{text}'.",
            hint="Use 'owner/repo' or 'owner/repo@ref' (e.g. 'acme/core@v1.0.0').",
        )
    owner, repo = match.group("owner"), match.group("repo")
    return _descriptor(
        original=text,
        platform="github",
        host="github.com",
        owner=owner,
        repo=repo,
        ref=match.group("ref"),
        subpath=match.group("subpath"),
    )


def source_descriptor(source: str, ref: str) -> GitSourceDescriptor:
    """Parse ``source`` and attach ``ref`` verbatim.

    Manifest and lock file refs may contain slashes (``feature/login``), which
    the specifier grammar would read as a subpath.
    """
    descriptor = parse_source_spec(source)
    return replace(descriptor, ref=ref, original=f"{descriptor.original}@{ref}")


def package_key_for(text: str) -> str:
    """Return the ``owner/repo`` key for any supported specifier."""
    return parse_source_spec(text).package_key


def _parse_url(text: str) -> GitSourceDescriptor:
    match = _URL_PATTERN.match(text)
    if match is None:
        raise SourceSpecError(
            f"Unsupported git URL '{text}'.",
            hint="Supported: owner/repo, owner/repo@ref, https://<host>/owner/repo[@ref].",
        )
    host = match.group("host")
    return _descriptor(
        original=text,
        platform=_KNOWN_HOSTS.get(host, "generic"),
        host=host,
        owner=match.group("owner"),
        repo=match.group("repo"),
        ref=match.group("ref"),
        subpath=match.group("subpath"),
    )


def _descriptor(
    *,
    original: str,
    platform: str,
    host: str,
    owner: str,
    repo: str,
    ref: Optional[str],
    subpath: Optional[str],
) -> GitSourceDescriptor:
    return GitSourceDescriptor(
        original=original,
        platform=platform,
        owner=owner,
        repo=repo,
        ref=ref or DEFAULT_REF,
        repo_url=f"https://{host}/{owner}/{repo}",
        entry_point=DEFAULT_ENTRY,
        subpath=(subpath or "").strip("/"),
    )


__all__ = [
    "DEFAULT_REF",
    "is_git_specifier",
    "package_key_for",
    "parse_source_spec",
    "source_descriptor",
]
