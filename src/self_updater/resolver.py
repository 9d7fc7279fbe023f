"""Commit resolution for the tracked branch.

Resolution order:

1. Detect the hosting provider from the repository URL (GitHub, GitLab).
2. Ask the provider's REST API for the branch tip with a conditional request
   (``If-None-Match``). A ``304`` answers from the in-memory cache.
3. Fall back to ``git ls-remote --heads`` when the provider is unknown, the
   API fails, or a ``304`` arrives before anything was cached.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from self_updater.config import RepositoryConfig
from self_updater.constants import COMMIT_API_TIMEOUT, USER_AGENT
from self_updater.errors import GitCommandError, ResolutionError
from self_updater.git import ls_remote_head
from self_updater.logging import get_logger

# https://host/owner/repo(.git), ssh://git@host/owner/repo.git, git@host:owner/repo.git
_URL_RE = re.compile(
    r"^(?:[a-z+]+://)?(?:[^@/]+@)?(?P<host>[^/:]+)(?::\d+)?[:/](?P<path>.+?)(?:\.git)?/?$",
    re.IGNORECASE,
)
_COMMIT_RE = re.compile(r"^[0-9a-f]{7,64}$", re.IGNORECASE)


def _commit_id(value: Any) -> str:
    if not isinstance(value, str) or not _COMMIT_RE.match(value):
        raise ValueError(f"Not a commit id: {value!r}")
    return value


def split_repository_url(url: str) -> tuple[str, str] | None:
    """Return ``(host, path)`` for a repository URL, or None if unparseable."""
    match = _URL_RE.match(url.strip())
    if match is None:
        return None
    return match.group("host").lower(), match.group("path").strip("/")


class CommitProvider(ABC):
    """REST strategy for one hosting provider."""

    name: str

    def __init__(self, project_path: str) -> None:
        self._project_path = project_path

    @abstractmethod
    def build_request(self, branch: str, token: str | None) -> tuple[str, dict[str, str]]:
        """Return the URL and headers of the branch-tip request."""

    @abstractmethod
    def parse_commit(self, payload: Any) -> str:
        """Extract the commit id from a successful response body."""


class GitHubProvider(CommitProvider):
    name = "github"

    def build_request(self, branch: str, token: str | None) -> tuple[str, dict[str, str]]:
        owner, _, repo = self._project_path.partition("/")
        url = (
            f"https://api.github.com/repos/{quote(owner)}/{quote(repo)}"
            f"/commits/{quote(branch, safe='')}"
        )
        headers = {"Accept": "application/vnd.github+json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return url, headers

    def parse_commit(self, payload: Any) -> str:
        return _commit_id(payload["sha"])


class GitLabProvider(CommitProvider):
    name = "gitlab"

    def build_request(self, branch: str, token: str | None) -> tuple[str, dict[str, str]]:
        project = quote(self._project_path, safe="")
        url = (
            f"https://gitlab.com/api/v4/projects/{project}"
            f"/repository/branches/{quote(branch, safe='')}"
        )
        headers = {"Accept": "application/json"}
        if token:
            headers["PRIVATE-TOKEN"] = token
        return url, headers

    def parse_commit(self, payload: Any) -> str:
        return _commit_id(payload["commit"]["id"])


_PROVIDERS: dict[str, type[CommitProvider]] = {
    "github.com": GitHubProvider,
    "gitlab.com": GitLabProvider,
}


def detect_provider(url: str) -> CommitProvider | None:
    """Classify *url* by host; None for hosts without a known API."""
    parsed = split_repository_url(url)
    if parsed is None:
        return None
    host, path = parsed
    provider_cls = _PROVIDERS.get(host)
    if provider_cls is None or "/" not in path:
        return None
    return provider_cls(path)


class CommitResolver:
    """Resolves the tip commit of the configured branch.

    Keeps the last entity tag and commit in memory so frequent polling
    costs a conditional request. Nothing here is persisted.
    """

    def __init__(
        self,
        repo: RepositoryConfig,
        *,
        timeout: float = COMMIT_API_TIMEOUT,
        logger: structlog.stdlib.BoundLogger | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._repo = repo
        self._timeout = timeout
        self._log = logger or get_logger("self_updater.resolver")
        self._transport = transport
        self._provider = detect_provider(repo.url)
        self._etag: str | None = None
        self._cached_commit: str | None = None

    @property
    def provider(self) -> CommitProvider | None:
        return self._provider

    @property
    def cached_commit(self) -> str | None:
        return self._cached_commit

    async def resolve_latest_commit(self) -> str:
        """Return the remote branch tip or raise :class:`ResolutionError`."""
        if self._provider is not None:
            commit = await self._resolve_via_api(self._provider)
            if commit:
                return commit
        return await self._resolve_via_ls_remote()

    async def _resolve_via_api(self, provider: CommitProvider) -> str | None:
        url, headers = provider.build_request(self._repo.branch, self._repo.token)
        headers["User-Agent"] = USER_AGENT
        if self._etag:
            headers["If-None-Match"] = self._etag

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                resp = await client.get(url, headers=headers)
        except httpx.HTTPError as exc:
            self._log.warning("resolver_api_request_failed", provider=provider.name, error=str(exc))
            return None

        if resp.status_code == 304:
            if self._cached_commit:
                self._log.debug("resolver_not_modified", commit=self._cached_commit)
                return self._cached_commit
            self._log.debug("resolver_not_modified_without_cache", provider=provider.name)
            return None

        if resp.status_code != 200:
            self._log.warning(
                "resolver_api_error",
                provider=provider.name,
                status=resp.status_code,
                body=resp.text[:200],
            )
            return None

        try:
            commit = provider.parse_commit(resp.json())
        except (ValueError, KeyError, TypeError) as exc:
            self._log.warning("resolver_api_malformed", provider=provider.name, error=str(exc))
            return None

        self._etag = resp.headers.get("ETag")
        self._cached_commit = commit
        self._log.debug("resolver_api_commit", provider=provider.name, commit=commit)
        return commit

    async def _resolve_via_ls_remote(self) -> str:
        try:
            commit = await ls_remote_head(self._repo.url, self._repo.branch, log=self._log)
        except GitCommandError as exc:
            raise ResolutionError(
                f"Unable to list remote references for {self._repo.url}: {exc}"
            ) from exc

        if not commit:
            raise ResolutionError(
                f"Unable to determine latest commit for branch {self._repo.branch!r}"
            )
        self._log.debug("resolver_ls_remote_commit", commit=commit)
        return commit
