import asyncio
import logging
from collections.abc import Callable

from repo_insight import config, models
from repo_insight.github import GitHubError, GitHubGateway
from repo_insight.remote import RetryCallback

logger = logging.getLogger(__name__)

RetryCallbackFactory = Callable[[str], RetryCallback | None]


def _priority(name: str) -> int:
    name = name.lower()
    return next(
        (i for i, p in enumerate(config.DIRECTORY_PRIORITY) if p in name),
        len(config.DIRECTORY_PRIORITY),
    )


def is_important_directory(name: str) -> bool:
    name = name.lower()
    return any(d in name or name in d for d in config.IMPORTANT_TOP_LEVEL_DIRS)


class TreeCollector:
    """Walks the important top-level directories of a repository."""

    def __init__(self, gateway: GitHubGateway, max_directories: int = 8, max_depth: int = 5):
        self._gateway = gateway
        self.max_directories = max_directories
        self.max_depth = max_depth

    def select_important_directories(self, root: list[models.RepoFileEntry]) -> list[models.RepoFileEntry]:
        dirs = [e for e in root if e.type == "dir" and is_important_directory(e.filename)]
        # sorted() is stable, so non-priority directories keep listing order
        dirs = sorted(dirs, key=lambda e: _priority(e.filename))
        return dirs[: self.max_directories]

    async def collect(
        self,
        repo: models.RepositoryIdentity,
        root: list[models.RepoFileEntry],
        on_retry_for: RetryCallbackFactory | None = None,
    ) -> list[models.RepoFileEntry]:
        selected = self.select_important_directories(root)
        logger.info(f"Scanning {len(selected)} important directories: {[d.path for d in selected]}")

        subtrees = await asyncio.gather(
            *[self._walk(repo, d.path, d.filename, 0, on_retry_for) for d in selected]
        )
        files = list(root)
        for subtree in subtrees:
            files.extend(subtree)
        return files

    async def _walk(
        self,
        repo: models.RepositoryIdentity,
        path: str,
        name: str,
        depth: int,
        on_retry_for: RetryCallbackFactory | None,
    ) -> list[models.RepoFileEntry]:
        if depth >= self.max_depth:
            return []

        label = f"Fetching {name}" + (f" (level {depth + 1})" if depth else "")
        on_retry = on_retry_for(label) if on_retry_for else None
        try:
            entries = await self._gateway.contents(repo, path, on_retry=on_retry)
        except GitHubError as exc:
            logger.warning(f"Failed to fetch contents for {path}: {exc}")
            return []

        files = [e for e in entries if e.type == "file"]
        children = await asyncio.gather(
            *[
                self._walk(repo, e.path, e.filename, depth + 1, on_retry_for)
                for e in entries
                if e.type == "dir"
            ]
        )
        for child in children:
            files.extend(child)
        return files
