"""Shared notification formatting helpers.

Keeping formatting here prevents drift between adapters and keeps messages
consistent regardless of delivery channel.
"""

from __future__ import annotations

import html
from typing import Iterable

from core.models import ReleaseNotice
from core.registration import TrackedListing

# Telegram parse_mode names per format. Bot API legacy Markdown has no
# "**" bold, so only HTML is offered there.
BOT_API_PARSE_MODES = {"html": "HTML"}
CLIENT_PARSE_MODES = {"html": "html", "markdown": "md"}


def _escape_md(value: str) -> str:
    for ch in r"*_[]`":
        value = value.replace(ch, f"\\{ch}")
    return value


def _link_target(url: str) -> str:
    # A bare ")" would close the Markdown link early.
    return url.replace(")", "%29")


def _format_html(notice: ReleaseNotice) -> str:
    """Create the HTML release notice."""

    url = html.escape(notice.repository_url)
    name = html.escape(notice.repository_name)
    release_url = html.escape(notice.release_url)
    tag = html.escape(notice.tag)
    return f'New release for <a href="{url}">{name}</a>: <a href="{release_url}"><b>{tag}</b></a>'


def _format_markdown(notice: ReleaseNotice) -> str:
    """Create the Markdown release notice."""

    name = _escape_md(notice.repository_name)
    tag = _escape_md(notice.tag)
    url = _link_target(notice.repository_url)
    release_url = _link_target(notice.release_url)
    return f"New release for [{name}]({url}): [**{tag}**]({release_url})"


def format_release_notification(notice: ReleaseNotice, mode: str) -> str:
    """Return the release notice formatted for the requested mode."""

    if mode == "html":
        return _format_html(notice)
    if mode == "markdown":
        return _format_markdown(notice)
    raise ValueError(f"Unsupported notification format: {mode}")


def format_tracked_list(listings: Iterable[TrackedListing]) -> str:
    """Return the HTML body for /list."""

    lines = []
    for listing in listings:
        repository = listing.repository
        latest = f"latest: {html.escape(listing.latest_tag)}" if listing.latest_tag else "latest: unknown"
        lines.append(
            f'- <a href="{html.escape(repository.url)}">{html.escape(repository.name)}</a> - {latest}'
        )
    if not lines:
        return "No repositories tracked yet."
    return "Tracked repositories:\n" + "\n".join(lines)
