import asyncio
import logging
import time
from collections.abc import Callable, Iterable, Sequence
from functools import lru_cache
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from repo_insight import classifier, config, context, github, prompts
from repo_insight.cache import AnalysisCache
from repo_insight.collector import TreeCollector
from repo_insight.health import calculate_basic_health
from repo_insight.llm import LLMClient, ResponseShapeError
from repo_insight.models import (
    AnalysisMetadata,
    FileInsight,
    HealthAssessment,
    KeyFolder,
    ProjectSummary,
    RepoFileEntry,
    RepoMetadata,
    RepositoryAnalysis,
    RepositoryIdentity,
    RequirementsAudit,
    ScoredFile,
)
from repo_insight.ranking import HeuristicRanking, SemanticRanker, rank_heuristic
from repo_insight.remote import RemoteClient, RetryCallback, with_timeout
from repo_insight.storage import JsonFileStore, MemoryStore, StoreScopes

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

ProgressCallback = Callable[[str], None]

ANALYSIS_FIELDS = ("summary", "keyFiles", "keyFolders", "pipeline", "useCases", "requirements", "health")

_ROLE_BY_PRIORITY = {
    classifier.Priority.CONFIG: "Configuration",
    classifier.Priority.MODEL: "Model",
    classifier.Priority.ENTRYPOINT: "Entrypoint",
    classifier.Priority.AGENT: "Agent Logic",
    classifier.Priority.SUPPORTING: "Core Logic",
}


def validate_key_files(claimed: Any, entries: Iterable[RepoFileEntry]) -> list[FileInsight]:
    """Drop any claimed key file that is not in the collected tree."""
    paths = {e.path for e in entries if e.type == "file"}
    valid: list[FileInsight] = []
    for item in claimed if isinstance(claimed, list) else []:
        if isinstance(item, str):
            item = {"path": item}
        if not isinstance(item, dict) or item.get("path") not in paths:
            logger.debug(f"Dropping key file not in tree: {item!r}")
            continue
        try:
            valid.append(FileInsight.model_validate(item))
        except ValidationError:
            continue
    return valid[: classifier.MAX_KEY_FILES]


def validate_key_folders(claimed: Any, entries: Sequence[RepoFileEntry]) -> list[KeyFolder]:
    files = {e.path for e in entries if e.type == "file"}
    folders = {classifier.top_level_folder(p) for p in files} | {
        e.path for e in entries if e.type == "dir" and "/" not in e.path
    }
    valid: list[KeyFolder] = []
    for item in claimed if isinstance(claimed, list) else []:
        if not isinstance(item, dict):
            continue
        path = str(item.get("path") or item.get("name") or "").strip("/")
        if path not in folders:
            continue
        key_files = item.get("keyFiles") or item.get("key_files") or []
        key_files = [f for f in key_files if isinstance(f, str) and f in files]
        valid.append(
            KeyFolder(
                path=path,
                name=str(item.get("name") or path),
                key_files=key_files[: classifier.FILES_PER_FOLDER],
            )
        )
    return valid[: classifier.MAX_KEY_FOLDERS]


def prefer_semantic_files(folders: list[KeyFolder], semantic: Sequence[ScoredFile]) -> list[KeyFolder]:
    semantic_paths = {f.path for f in semantic}
    reordered = []
    for folder in folders:
        first = [f for f in folder.key_files if f in semantic_paths]
        rest = [f for f in folder.key_files if f not in semantic_paths]
        reordered.append(folder.model_copy(update={"key_files": (first + rest)[: classifier.FILES_PER_FOLDER]}))
    return reordered


def _facet(model: type[M], value: Any, what: str) -> M:
    if value is None:
        return model()
    try:
        return model.model_validate(value)
    except ValidationError as exc:
        logger.warning(f"Ignoring malformed '{what}' in AI response: {exc.error_count()} errors")
        return model()


def _retry_reporter(progress: ProgressCallback | None) -> Callable[[str], RetryCallback | None]:
    def _for(step: str) -> RetryCallback | None:
        if progress is None:
            return None

        def _on_retry(attempt: int, max_retries: int, delay_ms: int) -> None:
            progress(f"{step}... Retrying (attempt {attempt}/{max_retries})")

        return _on_retry

    return _for


class RepositoryAnalyzer:
    """Collects repository data, ranks key files and asks the LLM for an analysis."""

    def __init__(
        self,
        gateway: github.GitHubGateway,
        llm: LLMClient | None,
        cache: AnalysisCache,
        collector: TreeCollector | None = None,
        ranker: SemanticRanker | None = None,
        settings: config.Config | None = None,
    ):
        self._settings = settings or config.Config()
        self._gateway = gateway
        self._llm = llm
        self._cache = cache
        self._collector = collector or TreeCollector(
            gateway,
            max_directories=self._settings.collector.max_directories,
            max_depth=self._settings.collector.max_depth,
        )
        self._ranker = ranker

    async def analyze_repository(
        self,
        repo: RepositoryIdentity,
        force_refresh: bool = False,
        progress: ProgressCallback | None = None,
    ) -> RepositoryAnalysis:
        if self._llm is None:
            raise config.ConfigurationError(
                "OpenAI API key not configured. Set OPENAI_API_KEY or save 'openaiKey' in settings."
            )

        def report(message: str) -> None:
            logger.debug(f"[{repo.full_name}] {message}")
            if progress:
                progress(message)

        try:
            if not force_refresh:
                cached = await self._check_cache(repo, report)
                if cached is not None:
                    return cached
            return await self._analyze(repo, report)
        except Exception as exc:
            logger.error(f"Error analyzing repository {repo.full_name}: {exc}")
            raise

    async def _check_cache(self, repo: RepositoryIdentity, report: ProgressCallback) -> RepositoryAnalysis | None:
        report("Checking cache...")
        cached = self._cache.get(repo)
        if cached is None:
            return None

        try:
            info = await self._gateway.repo_info(repo)
        except Exception as exc:
            logger.warning(f"Failed to validate cache for {repo.full_name}, returning cached result anyway: {exc}")
            return cached.model_copy(update={"from_cache": True})

        validated = self._cache.get(repo, info.pushed_at)
        if validated is None:
            logger.info(f"Cached analysis of {repo.full_name} is stale (pushed at {info.pushed_at})")
            return None
        logger.info(f"Serving cached analysis of {repo.full_name}")
        return validated.model_copy(update={"from_cache": True})

    async def _analyze(self, repo: RepositoryIdentity, report: ProgressCallback) -> RepositoryAnalysis:
        s = self._settings
        retry_for = _retry_reporter(report)
        t0 = time.monotonic()

        report("Fetching repository data...")
        gw = self._gateway
        try:
            async with asyncio.TaskGroup() as tg:
                info_task = tg.create_task(gw.repo_info(repo, on_retry=retry_for("Fetching repo info")))
                languages_task = tg.create_task(gw.languages(repo, on_retry=retry_for("Fetching languages")))
                readme_task = tg.create_task(gw.readme(repo, on_retry=retry_for("Fetching README")))
                commits_task = tg.create_task(
                    gw.commits(repo, per_page=10, on_retry=retry_for("Fetching commits"))
                )
                issues_task = tg.create_task(
                    gw.issues(repo, state="open", per_page=10, on_retry=retry_for("Fetching issues"))
                )
                contributors_task = tg.create_task(
                    gw.contributors(repo, on_retry=retry_for("Fetching contributors"))
                )
                root_task = tg.create_task(gw.contents(repo, "", on_retry=retry_for("Fetching file structure")))
        except ExceptionGroup as group:
            # the remaining fetches are cancelled; surface the first failure
            raise group.exceptions[0] from None
        info = info_task.result()
        languages = languages_task.result()
        readme = readme_task.result()
        commits = commits_task.result()
        issues = issues_task.result()
        contributors = contributors_task.result()
        root = root_task.result()
        report("Scanning important directories...")
        entries = await self._collector.collect(repo, root, on_retry_for=retry_for)
        logger.info(f"Collected {len(entries)} entries from {repo.full_name}")

        report("Fetching file contents for semantic analysis...")
        contents = await self._gateway.fetch_files(
            repo, self._content_candidates(entries), max_chars=s.collector.max_content_chars
        )
        logger.info(f"Fetched contents of {len(contents)} files")

        report("Analyzing files with semantic embeddings...")
        heuristic = rank_heuristic(entries, contents)
        semantic = await self._rank_semantically(entries, contents)
        ranked = semantic or heuristic.key_files

        report("Analyzing with AI...")
        digest = self._digest(repo, info, languages, readme, entries, commits, issues, contributors, ranked, contents)
        raw = await self._llm.analyze(prompts.build_analysis_prompt(digest), on_retry=retry_for("AI analysis"))

        report("Processing results...")
        analysis = self._assemble(
            repo,
            info,
            languages,
            raw,
            entries,
            heuristic,
            semantic,
            ranked,
            calculate_basic_health(info, commits, issues, contributors),
        )
        self._cache.put(repo, analysis, info.pushed_at)
        logger.info(f"Analysis of {repo.full_name} completed in {time.monotonic() - t0:.1f}s")
        return analysis

    def _content_candidates(self, entries: list[RepoFileEntry]) -> list[str]:
        """Key-folder files first, then key files, then everything by priority bucket."""
        candidates: dict[str, None] = {}
        for folder in classifier.identify_key_folders(entries):
            candidates.update(dict.fromkeys(folder.key_files))
        candidates.update(dict.fromkeys(classifier.identify_key_files(entries)))
        by_priority = sorted(classifier.technical_files(entries), key=lambda e: classifier.priority_bucket(e.path))
        candidates.update(dict.fromkeys(e.path for e in by_priority))
        return list(candidates)[: self._settings.collector.max_content_files]

    async def _rank_semantically(self, entries: list[RepoFileEntry], contents: dict[str, str]) -> list[ScoredFile]:
        ranking = self._settings.ranking
        ranker = self._ranker
        if ranker is None:
            ranker = SemanticRanker(self._llm if ranking.embeddings_enabled else None, ranking)
        return await with_timeout(ranker.rank(entries, contents), ranking.ranking_timeout, fallback=[])

    def _digest(
        self,
        repo: RepositoryIdentity,
        info: RepoMetadata,
        languages: dict[str, int],
        readme: str | None,
        entries: list[RepoFileEntry],
        commits: list,
        issues: list,
        contributors: list,
        ranked: Sequence[ScoredFile],
        contents: dict[str, str],
    ) -> prompts.RepoDigest:
        p = self._settings.prompt
        ranked_paths = [f.path for f in ranked]
        return prompts.RepoDigest(
            name=repo.full_name,
            description=info.description or "",
            languages=languages,
            stars=info.stars,
            forks=info.forks,
            created_at=info.created_at or "",
            updated_at=info.updated_at or "",
            pushed_at=info.pushed_at or "",
            license=info.license or "None",
            topics=info.topics,
            readme=context.truncate(context.clean_content(readme), p.max_readme_chars) if readme else "",
            file_listing=context.format_file_listing(entries),
            commit_count=len(commits),
            issue_count=len(issues),
            contributor_count=len(contributors),
            ranked_files=ranked_paths,
            file_excerpts=context.build_context(contents, ranked_paths, p.excerpt_budget, p.max_excerpt_size),
        )

    def _assemble(
        self,
        repo: RepositoryIdentity,
        info: RepoMetadata,
        languages: dict[str, int],
        raw: dict[str, Any],
        entries: list[RepoFileEntry],
        heuristic: HeuristicRanking,
        semantic: list[ScoredFile],
        ranked: Sequence[ScoredFile],
        baseline_health: HealthAssessment,
    ) -> RepositoryAnalysis:
        if not any(field in raw for field in ANALYSIS_FIELDS):
            raise ResponseShapeError(f"none of the expected fields present (got {sorted(raw)[:10]})")

        key_files = validate_key_files(raw.get("keyFiles"), entries)
        if not key_files:
            key_files = [
                FileInsight(
                    path=f.path,
                    role=_ROLE_BY_PRIORITY[classifier.priority_bucket(f.path)],
                    importance="Ranked important by static analysis",
                )
                for f in ranked[: classifier.MAX_KEY_FILES]
            ]
        key_folders = validate_key_folders(raw.get("keyFolders"), entries)
        if not key_folders and heuristic.mode == "folders":
            key_folders = prefer_semantic_files(heuristic.key_folders, semantic)

        summary = raw.get("summary")
        if isinstance(summary, str):
            summary = {"overview": summary}
        pipeline = raw.get("pipeline")
        use_cases = raw.get("useCases")

        return RepositoryAnalysis(
            summary=_facet(ProjectSummary, summary, "summary"),
            key_files=key_files,
            key_folders=key_folders,
            pipeline=pipeline if isinstance(pipeline, str) and pipeline else "Unable to analyze architecture",
            use_cases=[u for u in use_cases if isinstance(u, str)] if isinstance(use_cases, list) else [],
            requirements=_facet(RequirementsAudit, raw.get("requirements"), "requirements"),
            health=_facet(HealthAssessment, raw.get("health"), "health"),
            metadata=AnalysisMetadata(
                owner=repo.owner,
                repo=repo.name,
                url=info.html_url,
                stars=info.stars,
                forks=info.forks,
                language=next(iter(languages), "Unknown"),
                languages=languages,
                license=info.license or "None",
                topics=info.topics,
                last_pushed=info.pushed_at,
                created_at=info.created_at,
                baseline_health=baseline_health,
            ),
        )


@lru_cache
def get_stores() -> StoreScopes:
    cache = config.get_config().cache
    local = JsonFileStore(cache.cache_path) if cache.cache_path else MemoryStore()
    sync = JsonFileStore(cache.settings_path) if cache.settings_path else MemoryStore()
    return StoreScopes(sync=sync, local=local)


def build_analyzer(
    cfg: config.Config,
    client: httpx.AsyncClient,
    stores: StoreScopes,
    remote: RemoteClient | None = None,
) -> RepositoryAnalyzer:
    credentials = config.resolve_credentials(cfg, stores.sync)
    remote = remote or RemoteClient()
    gateway = github.GitHubGateway(client, credentials.github_token, remote)
    llm = (
        LLMClient.from_config(cfg.llm, credentials.openai_key, remote, http_client=client)
        if credentials.openai_key
        else None
    )
    cache = AnalysisCache(stores.local, ttl_hours=cfg.cache.cache_ttl_hours)
    return RepositoryAnalyzer(gateway, llm, cache, settings=cfg)


async def analyze_repo(
    github_url: str,
    force_refresh: bool = False,
    stores: StoreScopes | None = None,
    progress: ProgressCallback | None = None,
) -> RepositoryAnalysis:
    cfg = config.get_config()
    repo = github.parse_github_url(github_url)
    logger.info(f"Analyzing {repo.full_name} (force_refresh={force_refresh})")

    async with httpx.AsyncClient(timeout=30.0) as client:
        analyzer = build_analyzer(cfg, client, stores or get_stores())
        return await analyzer.analyze_repository(repo, force_refresh=force_refresh, progress=progress)
