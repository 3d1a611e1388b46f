import logging
import time
from collections.abc import Callable
from datetime import datetime

from pydantic import ValidationError

from repo_insight.models import CacheEntry, RepositoryAnalysis, RepositoryIdentity
from repo_insight.storage import KeyValueStore

logger = logging.getLogger(__name__)


def _parse_timestamp(value: str) -> datetime | None:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def is_newer(live_pushed_at: str | None, cached_pushed_at: str | None) -> bool:
    if not live_pushed_at or not cached_pushed_at:
        return False
    live, cached = _parse_timestamp(live_pushed_at), _parse_timestamp(cached_pushed_at)
    if live is None or cached is None:
        return live_pushed_at != cached_pushed_at
    try:
        return live > cached
    except TypeError:  # naive vs aware
        return live_pushed_at > cached_pushed_at


class AnalysisCache:
    """Analyses keyed by repository, expiring after a TTL or a newer push."""

    def __init__(
        self,
        store: KeyValueStore,
        ttl_hours: float = 24.0,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self._ttl_ms = int(ttl_hours * 60 * 60 * 1000)
        self._clock = clock

    @staticmethod
    def key_for(repo: RepositoryIdentity) -> str:
        return f"analysis_{repo.owner}_{repo.name}"

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def get(self, repo: RepositoryIdentity, freshness_hint: str | None = None) -> RepositoryAnalysis | None:
        raw = self._store.get(self.key_for(repo))
        if not raw:
            return None
        try:
            entry = CacheEntry.model_validate(raw)
        except ValidationError as exc:
            logger.warning(f"Discarding malformed cache entry for {repo.full_name}: {exc}")
            return None

        if self._now_ms() - entry.timestamp > self._ttl_ms:
            logger.debug(f"Cache entry for {repo.full_name} expired")
            return None
        if is_newer(freshness_hint, entry.repo_pushed_at):
            logger.debug(f"Cache entry for {repo.full_name} predates push at {freshness_hint}")
            return None
        return entry.analysis

    def put(self, repo: RepositoryIdentity, analysis: RepositoryAnalysis, freshness_hint: str | None) -> None:
        entry = CacheEntry(
            analysis=analysis.model_copy(update={"from_cache": False}),
            timestamp=self._now_ms(),
            repo_pushed_at=freshness_hint,
        )
        self._store.set(self.key_for(repo), entry.model_dump(mode="json", by_alias=True))
