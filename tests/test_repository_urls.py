from __future__ import annotations

import pytest

from core.errors import InvalidRepositoryUrl
from core.repository_urls import owner_and_repo, release_page_url, validate_repository_url


@pytest.mark.parametrize(
    "url, expected",
    [
        ("https://github.com/owner/repo", ("owner", "repo")),
        ("https://github.com/owner/repo.git", ("owner", "repo")),
        ("https://github.com/owner/repo/tree/main", ("owner", "repo")),
        ("https://github.com/owner/repo.git.git", ("owner", "repo")),
    ],
)
def test_owner_and_repo(url, expected) -> None:
    assert owner_and_repo(url) == expected


@pytest.mark.parametrize(
    "url",
    [
        "http://github.com/owner/repo",
        "https://gitlab.com/owner/repo",
        "https://github.com/owner",
        "https://github.com//repo",
        "https://github.com/owner/.git",
        "",
    ],
)
def test_owner_and_repo_rejects(url) -> None:
    assert owner_and_repo(url) is None


def test_validate_strips_whitespace() -> None:
    assert validate_repository_url("  https://github.com/owner/repo\n") == "https://github.com/owner/repo"


def test_validate_raises_with_url_in_message() -> None:
    with pytest.raises(InvalidRepositoryUrl, match="Invalid GitHub repository URL: nope"):
        validate_repository_url("nope")


def test_release_page_url_encodes_tag() -> None:
    assert release_page_url("o", "r", "v1.0.0") == "https://github.com/o/r/releases/tag/v1.0.0"
    assert release_page_url("o", "r", "release/1.0+build") == (
        "https://github.com/o/r/releases/tag/release%2F1.0%2Bbuild"
    )


@pytest.mark.parametrize(
    "url",
    [
        "https://github.com/owner/repo",
        "https://github.com/owner/repo/",
        "https://github.com/owner/repo.git",
        "https://github.com/owner/repo/tree/main",
    ],
)
def test_validate_returns_canonical_locator(url) -> None:
    assert validate_repository_url(url) == "https://github.com/owner/repo"
