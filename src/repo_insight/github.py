import asyncio
import base64
import logging
import re
from collections.abc import Callable
from typing import Any, TypeVar
from urllib.parse import urlparse

import httpx

from repo_insight import models
from repo_insight.remote import RemoteClient, RemoteError, RetryCallback

logger = logging.getLogger(__name__)

T = TypeVar("T")

GITHUB_API_URL = "https://api.github.com"
USER_AGENT = "repo-insight"

_WHITESPACE = re.compile(r"\s")


class GitHubError(RemoteError):
    pass


def parse_github_url(url: str) -> models.RepositoryIdentity:
    url = url.strip().rstrip("/")
    if url.endswith(".git"):
        url = url[:-4]

    parsed = urlparse(url)
    if parsed.hostname not in ("github.com", "www.github.com"):
        raise GitHubError("Not a GitHub URL", status_code=400)

    parts = [p for p in parsed.path.strip("/").split("/") if p]
    if len(parts) < 2:
        raise GitHubError("Invalid GitHub repository URL: expected github.com/owner/repo", status_code=400)

    owner, repo = parts[0], parts[1]
    if not re.match(r"^[\w.\-]+$", owner) or not re.match(r"^[\w.\-]+$", repo):
        raise GitHubError("Invalid owner or repo name", status_code=400)

    return models.RepositoryIdentity(owner=owner, name=repo)


def decode_content(encoded: str) -> str:
    return base64.b64decode(_WHITESPACE.sub("", encoded)).decode("utf-8", errors="replace")


def _objects(data: Any) -> list[dict[str, Any]]:
    """JSON objects in a list payload; other elements are dropped."""
    if not isinstance(data, list):
        raise TypeError(f"expected a JSON array, got {type(data).__name__}")
    return [item for item in data if isinstance(item, dict)]


def _repo_info_error(resp: httpx.Response, has_token: bool) -> GitHubError:
    if resp.status_code == 403:
        if resp.headers.get("X-RateLimit-Remaining") == "0" or not has_token:
            return GitHubError(
                "GitHub API rate limit exceeded. Add a GitHub personal access token for higher "
                "rate limits (5000/hour vs 60/hour).",
                status_code=429,
            )
        return GitHubError(
            "GitHub API error: 403 Forbidden. The repository may be private or access is restricted.",
            status_code=403,
        )
    if resp.status_code == 404:
        return GitHubError(
            "GitHub API error: 404 Not Found. The repository may not exist or is private.",
            status_code=404,
        )
    return GitHubError(f"GitHub API error: {resp.status_code}", status_code=resp.status_code)


class GitHubGateway:
    """Typed reads over the GitHub REST API.

    Only ``repo_info`` raises; the other reads log the failure and return an
    empty default, which callers must read as "unknown" rather than "empty".
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        token: str | None = None,
        remote: RemoteClient | None = None,
        base_url: str = GITHUB_API_URL,
    ):
        self._client = client
        self._token = token
        self._remote = remote or RemoteClient()
        self._base_url = base_url.rstrip("/")

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/vnd.github.v3+json", "User-Agent": USER_AGENT}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _url(self, repo: models.RepositoryIdentity, suffix: str = "") -> str:
        return f"{self._base_url}/repos/{repo.owner}/{repo.name}{suffix}"

    async def _get(self, url: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.get(url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as exc:
            raise GitHubError(f"Failed to connect to GitHub: {exc}") from exc

    async def _get_json(self, url: str, **kwargs) -> Any:
        resp = await self._get(url, **kwargs)
        if resp.status_code >= 400:
            raise GitHubError(f"GitHub API error: {resp.status_code}", status_code=resp.status_code)
        return resp.json()

    async def _read_or_default(
        self,
        what: str,
        url: str,
        parse: Callable[[Any], T],
        default: T,
        on_retry: RetryCallback | None = None,
        **kwargs,
    ) -> T:
        try:
            data = await self._remote.call(lambda: self._get_json(url, **kwargs), on_retry=on_retry)
            return parse(data)
        except (GitHubError, ValueError, TypeError, KeyError, AttributeError) as exc:
            logger.warning(f"Error fetching {what}: {exc}")
            return default

    async def repo_info(
        self, repo: models.RepositoryIdentity, on_retry: RetryCallback | None = None
    ) -> models.RepoMetadata:
        async def _fetch() -> models.RepoMetadata:
            resp = await self._get(self._url(repo))
            if resp.status_code >= 400:
                raise _repo_info_error(resp, bool(self._token))
            try:
                return models.RepoMetadata.from_api(resp.json())
            except (ValueError, TypeError, AttributeError) as exc:
                raise GitHubError(
                    f"GitHub returned an unreadable repository payload: {exc}", status_code=502
                ) from exc

        return await self._remote.call(_fetch, on_retry=on_retry)

    async def languages(
        self, repo: models.RepositoryIdentity, on_retry: RetryCallback | None = None
    ) -> dict[str, int]:
        return await self._read_or_default(
            "languages", self._url(repo, "/languages"), lambda data: dict(data), {}, on_retry
        )

    async def readme(self, repo: models.RepositoryIdentity, on_retry: RetryCallback | None = None) -> str | None:
        return await self._read_or_default(
            "README", self._url(repo, "/readme"), lambda data: decode_content(data["content"]), None, on_retry
        )

    async def commits(
        self,
        repo: models.RepositoryIdentity,
        per_page: int = 10,
        on_retry: RetryCallback | None = None,
    ) -> list[models.CommitSummary]:
        return await self._read_or_default(
            "commits",
            self._url(repo, "/commits"),
            lambda data: [models.CommitSummary.from_api(c) for c in _objects(data)],
            [],
            on_retry,
            params={"per_page": per_page},
        )

    async def issues(
        self,
        repo: models.RepositoryIdentity,
        state: str = "open",
        per_page: int = 10,
        on_retry: RetryCallback | None = None,
    ) -> list[models.IssueSummary]:
        return await self._read_or_default(
            "issues",
            self._url(repo, "/issues"),
            lambda data: [models.IssueSummary.from_api(i) for i in _objects(data)],
            [],
            on_retry,
            params={"state": state, "per_page": per_page},
        )

    async def contributors(
        self,
        repo: models.RepositoryIdentity,
        per_page: int = 10,
        on_retry: RetryCallback | None = None,
    ) -> list[models.Contributor]:
        return await self._read_or_default(
            "contributors",
            self._url(repo, "/contributors"),
            lambda data: [models.Contributor.from_api(c) for c in _objects(data)],
            [],
            on_retry,
            params={"per_page": per_page},
        )

    async def contents(
        self,
        repo: models.RepositoryIdentity,
        path: str = "",
        on_retry: RetryCallback | None = None,
    ) -> list[models.RepoFileEntry]:
        def _parse(data: Any) -> list[models.RepoFileEntry]:
            items = data if isinstance(data, list) else [data]
            return [
                models.RepoFileEntry(path=item.get("path") or item["name"], type=item["type"])
                for item in _objects(items)
                if item.get("type") in ("file", "dir")
            ]

        return await self._read_or_default(
            f"contents of '{path or '/'}'", self._url(repo, f"/contents/{path}"), _parse, [], on_retry
        )

    async def file_content(self, repo: models.RepositoryIdentity, path: str) -> str | None:
        try:
            resp = await self._get(self._url(repo, f"/contents/{path}"))
        except GitHubError as exc:
            logger.warning(f"Error fetching file content for '{path}': {exc}")
            return None
        if resp.status_code >= 400:
            logger.debug(f"File '{path}' unavailable ({resp.status_code})")
            return None
        try:
            data = resp.json()
            if not isinstance(data, dict) or not data.get("content"):
                return None
            return decode_content(data["content"])
        except ValueError as exc:
            logger.warning(f"Failed to decode '{path}': {exc}")
            return None

    async def fetch_files(
        self,
        repo: models.RepositoryIdentity,
        paths: list[str],
        max_chars: int | None = None,
    ) -> dict[str, str]:
        semaphore = asyncio.Semaphore(10)

        async def _fetch_one(path: str) -> tuple[str, str | None]:
            async with semaphore:
                content = await self.file_content(repo, path)
                if content and max_chars:
                    content = content[:max_chars]
                return path, content

        results = await asyncio.gather(*[_fetch_one(p) for p in paths])
        return {path: content for path, content in results if content}
