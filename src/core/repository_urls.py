"""Helpers for working with GitHub repository URLs."""

from __future__ import annotations

from typing import Optional, Tuple
from urllib.parse import quote

from core.errors import InvalidRepositoryUrl

GITHUB_PREFIX = "https://github.com/"
GIT_SUFFIX = ".git"


def owner_and_repo(url: str) -> Optional[Tuple[str, str]]:
    """Split a repository URL into (owner, repo), or None if it cannot be."""

    if not url.startswith(GITHUB_PREFIX):
        return None
    parts = url[len(GITHUB_PREFIX) :].split("/")
    if len(parts) < 2:
        return None
    owner = parts[0].strip()
    repo = parts[1].strip()
    while repo.endswith(GIT_SUFFIX):
        repo = repo[: -len(GIT_SUFFIX)]
    if not owner or not repo:
        return None
    return owner, repo


def validate_repository_url(raw_url: str) -> str:
    """Return ``https://github.com/<owner>/<repo>`` or raise InvalidRepositoryUrl.

    Trailing slashes, ``.git`` suffixes and deeper paths such as
    ``/tree/main`` all collapse onto the same stored locator.
    """

    url = raw_url.strip()
    parts = owner_and_repo(url)
    if parts is None:
        raise InvalidRepositoryUrl(url)
    owner, repo = parts
    return f"{GITHUB_PREFIX}{owner}/{repo}"


def release_page_url(owner: str, repo: str, tag: str) -> str:
    """Return the GitHub page for a single tag's release."""

    # Tags may contain '/' or '+', so every reserved character is encoded.
    return f"https://github.com/{owner}/{repo}/releases/tag/{quote(tag, safe='')}"
