"""GitHub version-lookup adapter.

Implements the core VersionLookupPort against the GitHub REST API. Every
failure mode (network, non-success status, malformed payload) is folded into
a LookupFailed value so the reconciler never has to catch transport errors.
"""

from __future__ import annotations

import asyncio
import http.client
import json
import logging
import urllib.error
import urllib.request
from typing import Dict, Optional, Tuple
from urllib.parse import quote

from core.config import DEFAULT_API_BASE
from core.models import LookupFailed, LookupOutcome, NoTag, TagFound

LOGGER = logging.getLogger(__name__)

USER_AGENT = "tagwatch/0.1"
API_VERSION = "2022-11-28"
_BODY_PREVIEW_CHARS = 200


def _outcome_for_tag(tag: str) -> LookupOutcome:
    if not tag.strip():
        return NoTag()
    return TagFound(tag)


def _parse_release(body: bytes) -> LookupOutcome:
    payload = json.loads(body)
    if not isinstance(payload, dict):
        raise ValueError("release payload is not a JSON object")
    tag = payload.get("tag_name")
    if not isinstance(tag, str):
        raise ValueError("release has no string tag_name")
    return _outcome_for_tag(tag)


def _parse_tags(body: bytes) -> LookupOutcome:
    payload = json.loads(body)
    if not isinstance(payload, list):
        raise ValueError("tags payload is not a JSON array")
    if not payload:
        return NoTag()
    first = payload[0]
    if not isinstance(first, dict) or not isinstance(first.get("name"), str):
        raise ValueError("tag entry has no string name")
    return _outcome_for_tag(first["name"])


class GitHubReleaseClient:
    """Looks up the latest release tag, falling back to the newest git tag."""

    def __init__(
        self,
        api_base: str = DEFAULT_API_BASE,
        token: Optional[str] = None,
        timeout_secs: float = 10.0,
        user_agent: str = USER_AGENT,
    ) -> None:
        self._api_base = api_base.rstrip("/")
        self._token = token
        self._timeout_secs = timeout_secs
        self._user_agent = user_agent

    def _headers(self) -> Dict[str, str]:
        headers = {
            "User-Agent": self._user_agent,
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": API_VERSION,
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _get(self, path: str) -> Tuple[int, bytes]:
        """GET ``path`` and return (status, body); HTTP errors are not raised."""

        request = urllib.request.Request(f"{self._api_base}{path}", headers=self._headers(), method="GET")
        try:
            with urllib.request.urlopen(request, timeout=self._timeout_secs) as response:
                return response.status, response.read()
        except urllib.error.HTTPError as e:
            return e.code, e.read()

    async def lookup(self, owner: str, repo: str) -> LookupOutcome:
        """Resolve the latest tag for owner/repo without blocking the event loop."""

        return await asyncio.to_thread(self.lookup_blocking, owner, repo)

    def lookup_blocking(self, owner: str, repo: str) -> LookupOutcome:
        repo_path = f"/repos/{quote(owner, safe='')}/{quote(repo, safe='')}"
        try:
            status, body = self._get(f"{repo_path}/releases/latest")
            if 200 <= status < 300:
                outcome = _parse_release(body)
                LOGGER.debug("Latest release for %s/%s is %s", owner, repo, outcome)
                return outcome
            if status == 404:
                # No published releases yet; the newest plain tag is the best we have.
                return self._lookup_latest_tag(repo_path, owner, repo)
        except (OSError, ValueError, http.client.HTTPException) as exc:
            # URLError and timeouts are OSErrors; JSON and shape errors are ValueErrors.
            LOGGER.debug("Lookup for %s/%s failed", owner, repo, exc_info=True)
            return LookupFailed(f"{type(exc).__name__}: {exc}")

        preview = body[:_BODY_PREVIEW_CHARS].decode("utf-8", errors="replace")
        LOGGER.warning(
            "GitHub releases request failed for %s/%s: status=%s body=%s",
            owner,
            repo,
            status,
            preview,
        )
        return LookupFailed(f"status={status} body={preview}")

    def _lookup_latest_tag(self, repo_path: str, owner: str, repo: str) -> LookupOutcome:
        status, body = self._get(f"{repo_path}/tags?per_page=1")
        if not 200 <= status < 300:
            LOGGER.debug("Tags request for %s/%s returned status=%s", owner, repo, status)
            return NoTag()
        outcome = _parse_tags(body)
        LOGGER.debug("Latest tag for %s/%s is %s", owner, repo, outcome)
        return outcome

