"""Key-file ranking: a heuristic pass and an embeddings-based refinement."""

import asyncio
import json
import logging
import math
import re
import tomllib
from collections.abc import Mapping, Sequence
from typing import Literal, NamedTuple, Protocol

from repo_insight import classifier
from repo_insight.config import RankingConfig
from repo_insight.models import KeyFolder, RepoFileEntry, ScoredFile

logger = logging.getLogger(__name__)

CORE_LOGIC_REFERENCE = (
    "Code representing primary logic, orchestrators, pipelines, training loops, API handlers, major algorithms."
)
ARCHITECTURE_REFERENCE = "Architecture entrypoints, main application flow, initialization logic."

MAX_EMBEDDING_CHARS = 8_000
SMALL_REPO_SCORE = 100.0

_CLASS_DEF = re.compile(r"\bclass\s+\w+")
_FUNCTION_DEF = re.compile(r"\b(?:def|function|fn|func)\s+\w+")
_FROM_IMPORT = re.compile(r"(?:import|from)\s+[\w.]+\s+(?:import|as)")
_IMPORT = re.compile(r"\b(?:import|from)\s+")


class Embedder(Protocol):
    async def embed(self, text: str) -> list[float] | None: ...


def cosine_similarity(a: Sequence[float] | None, b: Sequence[float] | None) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    if norm == 0:
        return 0.0
    return dot / norm


def _long_function_count(content: str, min_lines: int = 30) -> int:
    starts = [content.count("\n", 0, m.start()) for m in _FUNCTION_DEF.finditer(content)]
    if not starts:
        return 0
    ends = starts[1:] + [content.count("\n") + 1]
    return sum(1 for start, end in zip(starts, ends) if end - start > min_lines)


def code_density(content: str | None) -> int:
    """0-10 estimate of how much logic a file holds."""
    if not content:
        return 0
    score = 0
    if len(_CLASS_DEF.findall(content)) >= 3:
        score += 3
    if len(_FUNCTION_DEF.findall(content)) >= 5:
        score += 3
    score += 2 * _long_function_count(content)
    if len(_FROM_IMPORT.findall(content)) > 5:
        score += 1
    return min(score, 10)


def connectivity(content: str | None) -> int:
    """0-10 estimate of how much a file wires other parts together."""
    if not content:
        return 0
    score = 0
    imports = len(_IMPORT.findall(content))
    if imports > 10:
        score += 3
    elif imports > 5:
        score += 2
    elif imports > 2:
        score += 1

    lowered = content.lower()
    if "__init__" in lowered or "initialize" in lowered or "main()" in lowered:
        score += 2
    if "pipeline" in lowered or "build" in lowered or "create" in lowered:
        score += 2
    if "orchestrate" in lowered or "coordinate" in lowered or "manage" in lowered:
        score += 2
    if "class" in lowered and ("model" in lowered or "network" in lowered):
        score += 2
    return min(score, 10)


def _manifest_digest(name: str, scripts: object, dependencies: object, main: str = "") -> str:
    deps = list(dependencies)[:20] if isinstance(dependencies, (dict, list)) else []
    return json.dumps({"name": name, "scripts": scripts or {}, "dependencies": deps, "main": main})


def embedding_text(path: str, content: str | None) -> str:
    """Condense a file into the text that gets embedded."""
    content = content or ""
    filename = path.rsplit("/", 1)[-1].lower()

    if filename in ("package.json", "manifest.json"):
        try:
            data = json.loads(content)
            return _manifest_digest(
                data.get("name") or "", data.get("scripts"), data.get("dependencies") or {}, data.get("main") or ""
            )
        except (ValueError, AttributeError):
            return content[:2000]

    if filename == "pyproject.toml":
        try:
            data = tomllib.loads(content)
        except tomllib.TOMLDecodeError:
            return content[:2000]
        project = data.get("project") or data.get("tool", {}).get("poetry") or {}
        scripts = project.get("scripts") or {}
        return _manifest_digest(project.get("name") or "", scripts, project.get("dependencies") or [])

    return content[:MAX_EMBEDDING_CHARS]


class HeuristicRanking(NamedTuple):
    mode: Literal["files", "folders"]
    key_files: list[ScoredFile]
    key_folders: list[KeyFolder]


def rank_heuristic(
    entries: Sequence[RepoFileEntry], contents: Mapping[str, str] | None = None
) -> HeuristicRanking:
    scored = classifier.score_files(entries, contents)
    nested = any("/" in f.path for f in scored)
    if not nested:
        return HeuristicRanking("files", scored[: classifier.MAX_KEY_FILES], [])
    return HeuristicRanking(
        "folders",
        scored[: classifier.MAX_KEY_FILES],
        classifier.identify_key_folders(entries, contents),
    )


class SemanticRanker:
    """Ranks technical files by embedding similarity to reference concepts.

    Reference embeddings are fetched once and reused for the lifetime of the
    ranker, so a ranker should be created per analysis run.
    """

    def __init__(self, embedder: Embedder | None, settings: RankingConfig | None = None, concurrency: int = 5):
        self._embedder = embedder
        self._settings = settings or RankingConfig()
        self._concurrency = concurrency
        self._references: tuple[list[float], list[float]] | None = None

    async def reference_embeddings(self) -> tuple[list[float], list[float]] | None:
        if self._references is not None:
            return self._references
        if self._embedder is None:
            return None
        core, architecture = await asyncio.gather(
            self._embedder.embed(CORE_LOGIC_REFERENCE),
            self._embedder.embed(ARCHITECTURE_REFERENCE),
        )
        if core is None or architecture is None:
            logger.warning("Reference embeddings unavailable")
            return None
        self._references = (core, architecture)
        return self._references

    async def rank(self, entries: Sequence[RepoFileEntry], contents: Mapping[str, str]) -> list[ScoredFile]:
        candidates = classifier.technical_files(entries)
        if len(candidates) <= self._settings.small_repo_threshold:
            return [ScoredFile(path=c.path, score=SMALL_REPO_SCORE) for c in candidates]

        references = await self.reference_embeddings()
        if references is None:
            return self._fallback(candidates, contents)

        embeddings = await self._embed_candidates(candidates, contents)
        if not embeddings:
            logger.warning("No file embeddings available, falling back to heuristic ranking")
            return self._fallback(candidates, contents)

        return self._score(embeddings, references, contents)[: classifier.MAX_KEY_FILES]

    async def _embed_candidates(
        self, candidates: Sequence[RepoFileEntry], contents: Mapping[str, str]
    ) -> dict[str, list[float]]:
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _embed_one(entry: RepoFileEntry) -> tuple[str, list[float] | None]:
            text = embedding_text(entry.path, contents.get(entry.path))
            if not text.strip():
                return entry.path, None
            async with semaphore:
                return entry.path, await self._embedder.embed(text)

        results = await asyncio.gather(*[_embed_one(c) for c in candidates])
        return {path: vector for path, vector in results if vector}

    def _score(
        self,
        embeddings: dict[str, list[float]],
        references: tuple[list[float], list[float]],
        contents: Mapping[str, str],
    ) -> list[ScoredFile]:
        s = self._settings
        core_ref, arch_ref = references
        scored = []
        for path, vector in embeddings.items():
            content = contents.get(path)
            similar = sum(
                1
                for other, other_vector in embeddings.items()
                if other != path and cosine_similarity(vector, other_vector) > s.similarity_threshold
            )
            uniqueness = max(0.0, 1 - similar * 0.1)
            composite = (
                cosine_similarity(vector, core_ref) * s.core_weight
                + cosine_similarity(vector, arch_ref) * s.architecture_weight
                + code_density(content) / 10 * s.density_weight
                + uniqueness * s.uniqueness_weight
                + connectivity(content) / 10 * s.connectivity_weight
            )
            scored.append(
                ScoredFile(
                    path=path,
                    score=classifier.score_technical_file(path, content=content),
                    embedding_score=composite,
                )
            )
        scored.sort(key=lambda f: f.embedding_score, reverse=True)
        return scored

    def _fallback(self, candidates: Sequence[RepoFileEntry], contents: Mapping[str, str]) -> list[ScoredFile]:
        return classifier.score_files(candidates, contents)[: classifier.MAX_KEY_FILES]
