"""Network-free classification and scoring of repository files.

Every function here is deterministic for a given path (and optional
content), so results can be recomputed freely once contents arrive.
"""

import enum
from collections.abc import Iterable, Mapping

from repo_insight import config
from repo_insight.models import KeyFolder, RepoFileEntry, ScoredFile

MAX_KEY_FOLDERS = 5
FILES_PER_FOLDER = 2
MAX_KEY_FILES = 5


class Priority(enum.IntEnum):
    """Order in which file contents are worth reading."""

    CONFIG = 1
    MODEL = 2
    ENTRYPOINT = 3
    AGENT = 4
    SUPPORTING = 5


_PRIORITY_RULES: tuple[tuple[Priority, tuple[str, ...]], ...] = (
    (
        Priority.CONFIG,
        (
            "replicate.yaml", "replicate.yml", "cog.yaml", "cog.yml", "config.yaml", "config.yml",
            "config.json", "config.toml", "config.ini", ".env.example", "requirements.txt",
            "pyproject.toml", "docker-compose.yml", "docker-compose.yaml", "dockerfile",
            "setup.py", "setup.cfg", "environment.yml", "environment.yaml", "pipfile",
            "package.json", "tsconfig.json",
        ),
    ),
    (Priority.MODEL, ("model.py", "models.py", "inference.py", "predict.py")),
    (
        Priority.ENTRYPOINT,
        (
            "main.py", "app.py", "server.py", "api.py", "route.py", "routes.py", "run.py",
            "__main__.py", "index.js", "index.ts", "index.jsx", "index.tsx", "app.js", "app.ts",
            "app.jsx", "app.tsx", "server.js", "server.ts",
        ),
    ),
    (
        Priority.AGENT,
        (
            "agent.py", "agents.py", "chain.py", "chains.py", "tool.py", "tools.py", "memory.py",
            "planning.py", "reflection.py", "llm.py", "replicate.py",
        ),
    ),
)


def _split(path: str) -> tuple[list[str], str]:
    parts = path.strip("/").split("/")
    return parts[:-1], parts[-1]


def is_technical_file(path: str, filename: str | None = None) -> bool:
    if not path:
        return False

    dirs, name = _split(path)
    name = (filename or name).lower()

    if any(keyword in name for keyword in config.DOC_KEYWORDS):
        return False
    if name not in config.TECHNICAL_MANIFESTS and name.endswith(config.DOC_EXTENSIONS):
        return False
    if any(d.lower() in config.NON_TECHNICAL_DIRS for d in dirs):
        return False

    if name in config.TECHNICAL_MANIFESTS or name.endswith(config.TECHNICAL_EXTENSIONS):
        return True
    # Extensionless infra files such as "api.Dockerfile" or "GNUmakefile"
    if name.endswith(("dockerfile", "makefile")):
        return True
    technical_names = config.ENTRYPOINT_FILES | config.EXTENSION_CORE_FILES
    return name in technical_names or any(ml in name for ml in config.ML_CORE_FILES)


def score_technical_file(path: str, filename: str | None = None, content: str | None = None) -> int:
    dirs, name = _split(path)
    name = (filename or name).lower()
    content = content or ""
    score = 0

    if name in config.ENTRYPOINT_FILES:
        score += 10
    if any(ml in name for ml in config.ML_CORE_FILES):
        score += 8
    if name in config.EXTENSION_CORE_FILES:
        score += 8
    if any(infra in name for infra in config.INFRA_FILES):
        score += 6
    if name in config.CONFIG_FILES:
        score += 4

    lowered_dirs = {d.lower() for d in dirs}
    if any(d in lowered_dirs for d in config.HIGH_IMPORTANCE_DIRS):
        score += 5

    if content:
        lines = content.count("\n") + 1
        if lines > 500:
            score += 3
        elif lines > 200:
            score += 2
        elif lines > 50:
            score += 1

        lowered = content.lower()
        if "class " in lowered or "def " in lowered or "function " in lowered:
            score += 2

    return score + 1


def top_level_folder(path: str) -> str | None:
    dirs, _ = _split(path)
    return dirs[0] if dirs else None


def priority_bucket(path: str) -> Priority:
    _, name = _split(path)
    name = name.lower()
    for priority, names in _PRIORITY_RULES:
        if name in names:
            return priority
        if priority == Priority.AGENT and "prompt" in path.lower():
            return priority
    return Priority.SUPPORTING


def technical_files(entries: Iterable[RepoFileEntry]) -> list[RepoFileEntry]:
    return [e for e in entries if e.type == "file" and is_technical_file(e.path)]


def score_files(entries: Iterable[RepoFileEntry], contents: Mapping[str, str] | None = None) -> list[ScoredFile]:
    """Score technical files, highest first. Ties keep input order."""
    contents = contents or {}
    scored = [
        ScoredFile(path=e.path, score=score_technical_file(e.path, content=contents.get(e.path)))
        for e in technical_files(entries)
    ]
    scored.sort(key=lambda f: f.score, reverse=True)
    return scored


def identify_key_files(
    entries: Iterable[RepoFileEntry], contents: Mapping[str, str] | None = None
) -> list[str]:
    return [f.path for f in score_files(entries, contents)[:MAX_KEY_FILES]]


def is_high_importance_folder(name: str) -> bool:
    name = name.lower()
    return any(name == p or p in name or name in p for p in config.HIGH_IMPORTANCE_FOLDERS)


def identify_key_folders(
    entries: Iterable[RepoFileEntry], contents: Mapping[str, str] | None = None
) -> list[KeyFolder]:
    folders: dict[str, list[ScoredFile]] = {}
    for scored in score_files(entries, contents):
        folder = top_level_folder(scored.path)
        if folder is None:
            continue
        folders.setdefault(folder, []).append(scored)

    ranked: list[tuple[float, str, list[ScoredFile]]] = []
    for folder, files in folders.items():
        score = files[0].score
        if len(files) > 1:
            score += files[1].score * 0.5
        if is_high_importance_folder(folder):
            score += 5
        if len(files) > 5:
            score += 3
        elif len(files) > 2:
            score += 1
        ranked.append((score, folder, files))

    ranked.sort(key=lambda item: item[0], reverse=True)
    return [
        KeyFolder(path=folder, name=folder, key_files=[f.path for f in files[:FILES_PER_FOLDER]])
        for _, folder, files in ranked[:MAX_KEY_FOLDERS]
    ]
