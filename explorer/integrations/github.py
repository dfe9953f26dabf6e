"""
GitHub Integration: the narrow slice of the REST API the explorer needs.

    - fetch one pull request and its changed files as a ChangeSet
    - post an issue comment on the pull request

Fetch failures are authoritative: without the change set there is no run.
Comment failures are reported as NotificationError for the caller to swallow.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional
from urllib.parse import urlparse

import httpx

from explorer.config import CodeHostConfig
from explorer.errors import AuthoritativeSourceError, NotificationError, ValidationError
from explorer.state import ChangeSet, FileChange

logger = logging.getLogger(__name__)

FILES_PER_PAGE = 100
MAX_FILE_PAGES = 30   # GitHub caps the files listing at 3000 entries


# ── Parameter helpers ──

def parse_pr_url(pr_url: str) -> tuple[str, int]:
    """'https://github.com/acme/web/pull/42' -> ('acme/web', 42)."""
    parts = urlparse(pr_url or "").path.split("/")
    # ['', owner, repo, 'pull', number, ...]
    if len(parts) >= 5 and parts[3] == "pull" and parts[1] and parts[2]:
        try:
            return f"{parts[1]}/{parts[2]}", int(parts[4])
        except ValueError:
            raise ValidationError(f"Failed to parse PR URL: invalid PR number in {pr_url!r}")
    raise ValidationError(f"Failed to parse PR URL: expected /owner/repo/pull/<number>, got {pr_url!r}")


def validate_pr_parameters(repository: Optional[str], number: Any) -> tuple[str, int]:
    """Check the repository id and PR number. Returns them normalized."""
    errors = []
    if not repository or "/" not in repository:
        errors.append('Repository must be in owner/repo format (e.g., "acme/web")')

    pr_number = None
    try:
        pr_number = int(number)
        if pr_number <= 0:
            raise ValueError(number)
    except (TypeError, ValueError):
        errors.append("PR number must be a valid positive integer")

    if errors:
        raise ValidationError("Validation failed:\n" + "\n".join(f"• {e}" for e in errors))
    return repository, pr_number


def has_required_labels(labels: Iterable[str], required: Iterable[str]) -> bool:
    """True when no labels are required or the PR carries any of them."""
    required = list(required or ())
    if not required:
        return True
    present = set(labels or ())
    return any(label in present for label in required)


# ── Client ──

class GitHubClient:
    """
    Async GitHub REST client.

    Usage:
        async with GitHubClient(config.code_host) as github:
            change_set = await github.fetch_change_set("acme/web", 42)
    """

    def __init__(self, config: CodeHostConfig, *, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "pr-risk-explorer",
        }
        if config.has_token:
            headers["Authorization"] = f"Bearer {config.token}"
        else:
            logger.warning("GITHUB_TOKEN is not set; using unauthenticated GitHub API access")
        self._client = httpx.AsyncClient(
            base_url=config.api_url.rstrip("/"),
            headers=headers,
            timeout=config.timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    # ── Reads ──

    async def fetch_change_set(self, repository: str, number: int) -> ChangeSet:
        repository, number = validate_pr_parameters(repository, number)
        pr = await self._get(f"/repos/{repository}/pulls/{number}", repository, number)
        files = await self._list_files(repository, number)

        change_set = ChangeSet(
            repository=repository,
            number=pr.get("number", number),
            title=pr.get("title") or "",
            author=(pr.get("user") or {}).get("login", ""),
            description=pr.get("body") or "",
            labels=frozenset(label.get("name", "") for label in pr.get("labels") or []),
            files=tuple(files),
            head_ref=(pr.get("head") or {}).get("ref", ""),
            url=pr.get("html_url", ""),
        )
        logger.info(f"Fetched {repository}#{number}: {len(files)} changed files")
        return change_set

    async def _list_files(self, repository: str, number: int) -> list[FileChange]:
        files: list[FileChange] = []
        for page in range(1, MAX_FILE_PAGES + 1):
            batch = await self._get(
                f"/repos/{repository}/pulls/{number}/files",
                repository,
                number,
                params={"per_page": FILES_PER_PAGE, "page": page},
            )
            files.extend(
                FileChange(
                    path=f.get("filename", ""),
                    status=f.get("status", "modified"),
                    added_lines=f.get("additions", 0),
                    removed_lines=f.get("deletions", 0),
                    patch=f.get("patch"),
                )
                for f in batch
            )
            if len(batch) < FILES_PER_PAGE:
                break
        return files

    async def _get(self, path: str, repository: str, number: int, params: Optional[dict] = None) -> Any:
        try:
            resp = await self._client.get(path, params=params)
        except httpx.TimeoutException as e:
            raise AuthoritativeSourceError(f"GitHub request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise AuthoritativeSourceError(f"GitHub request failed: {e}") from e

        if resp.status_code == 404:
            raise AuthoritativeSourceError(f"PR #{number} not found in {repository}", status_code=404)
        if resp.status_code == 401:
            raise AuthoritativeSourceError("GitHub authentication failed. Check your GITHUB_TOKEN", status_code=401)
        if resp.status_code >= 400:
            raise AuthoritativeSourceError(
                f"Failed to fetch PR details: GitHub returned {resp.status_code}",
                status_code=resp.status_code,
            )
        return resp.json()

    # ── Writes ──

    async def post_comment(self, repository: str, number: int, body: str) -> dict[str, Any]:
        try:
            resp = await self._client.post(
                f"/repos/{repository}/issues/{number}/comments", json={"body": body}
            )
        except httpx.HTTPError as e:
            raise NotificationError(f"Failed to post PR comment: {e}") from e
        if resp.status_code >= 400:
            raise NotificationError(f"Failed to post PR comment: GitHub returned {resp.status_code}")
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as e:
            raise NotificationError(f"GitHub returned an unreadable comment response: {e}") from e
