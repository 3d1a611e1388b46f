from functools import lru_cache
from typing import NamedTuple

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from repo_insight.storage import KeyValueStore


class ConfigurationError(Exception):
    def __init__(self, message: str, status_code: int = 503):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class LLMConfig(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
    openai_api_key: str | None = None
    openai_base_url: str = "https://api.openai.com/v1"
    model_name: str = "gpt-4o-mini"
    embedding_model: str = "text-embedding-3-large"
    llm_timeout: float = 90.0
    temperature: float = 0.3
    max_tokens: int = 2000


class CollectorConfig(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
    max_directories: int = 8
    max_depth: int = 5
    max_content_files: int = 30
    max_content_chars: int = 8_000  # chars kept per fetched file


class RankingConfig(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
    embeddings_enabled: bool = True
    small_repo_threshold: int = 7
    core_weight: float = 0.35
    architecture_weight: float = 0.25
    density_weight: float = 0.20
    uniqueness_weight: float = 0.10
    connectivity_weight: float = 0.10
    similarity_threshold: float = 0.85
    ranking_timeout: float = 60.0


class CacheConfig(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
    cache_path: str | None = None  # in-memory when unset
    cache_ttl_hours: float = 24.0
    settings_path: str | None = None  # synced settings (openaiKey, githubToken) as JSON


class PromptConfig(BaseSettings):
    max_readme_chars: int = 3_000
    excerpt_budget: int = 12_000  # chars of file excerpts sent to the LLM
    max_excerpt_size: int = 2_000


class Config(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
    llm: LLMConfig = Field(default_factory=LLMConfig)
    collector: CollectorConfig = Field(default_factory=CollectorConfig)
    ranking: RankingConfig = Field(default_factory=RankingConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    prompt: PromptConfig = Field(default_factory=PromptConfig)
    github_token: str | None = None


@lru_cache
def get_config() -> Config:
    return Config()


class Credentials(NamedTuple):
    openai_key: str | None
    github_token: str | None


def resolve_credentials(cfg: Config, sync_store: KeyValueStore | None = None) -> Credentials:
    """Environment settings win; the synced settings store fills the gaps."""
    openai_key = cfg.llm.openai_api_key
    github_token = cfg.github_token
    if sync_store is not None:
        openai_key = openai_key or sync_store.get("openaiKey")
        github_token = github_token or sync_store.get("githubToken")
    return Credentials(openai_key or None, github_token or None)


# File classification tables. Matching is case-insensitive; see classifier.py.

DOC_KEYWORDS = (
    "readme",
    "license",
    "changelog",
    "contributing",
    "authors",
    "credits",
)

DOC_EXTENSIONS = (
    ".md",
    ".txt",
    ".rst",
    ".pdf",
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
    ".svg",
    ".ico",
    ".webp",
    ".mp4",
    ".mp3",
    ".avi",
    ".mov",
    ".zip",
    ".tar",
    ".gz",
    ".rar",
)

NON_TECHNICAL_DIRS = {
    "docs",
    "documentation",
    "doc",
    "test",
    "tests",
    "__tests__",
    "spec",
    "specs",
    "samples",
    "examples",
    "demo",
    "demos",
    "static",
    "public",
    "assets",
    "images",
    "img",
    "pictures",
    ".git",
    ".github",
    ".idea",
    ".vscode",
    ".vs",
    "node_modules",
    "vendor",
    "dist",
    "build",
    "out",
    "coverage",
    ".nyc_output",
    "tmp",
    "temp",
    "__pycache__",
    ".venv",
    ".tox",
    ".mypy_cache",
    ".pytest_cache",
}

TECHNICAL_EXTENSIONS = (
    ".py",
    ".js",
    ".ts",
    ".jsx",
    ".tsx",
    ".mjs",
    ".cjs",
    ".java",
    ".go",
    ".rs",
    ".rb",
    ".php",
    ".swift",
    ".kt",
    ".scala",
    ".cpp",
    ".c",
    ".cc",
    ".cxx",
    ".h",
    ".hpp",
    ".hxx",
    ".clj",
    ".cljs",
    ".r",
    ".m",
    ".mm",
    ".pl",
    ".pm",
    ".sh",
    ".bash",
    ".zsh",
    ".fish",
    ".ps1",
    ".sql",
    ".rql",
    ".graphql",
    ".vue",
    ".svelte",
)

# Exact names; also exempt from the DOC_EXTENSIONS rule.
TECHNICAL_MANIFESTS = {
    "dockerfile",
    "docker-compose.yml",
    "docker-compose.yaml",
    "makefile",
    "cmakelists.txt",
    "manifest.json",
    "package.json",
    "requirements.txt",
    "pyproject.toml",
    "pom.xml",
    "build.gradle",
    "cargo.toml",
    "go.mod",
    "composer.json",
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "tsconfig.json",
    "webpack.config.js",
    "vite.config.js",
    "config.yml",
    "config.yaml",
    ".env.example",
}

ENTRYPOINT_FILES = {
    "main.py",
    "app.py",
    "server.py",
    "index.js",
    "main.js",
    "app.js",
    "server.js",
    "index.ts",
    "main.ts",
    "app.ts",
}

ML_CORE_FILES = (
    "model.py",
    "trainer.py",
    "pipeline.py",
    "rag.py",
    "retriever.py",
    "vectorstore.py",
    "dataset.py",
)

EXTENSION_CORE_FILES = {
    "manifest.json",
    "background.js",
    "service_worker.js",
    "content.js",
    "content_script.js",
    "popup.js",
}

INFRA_FILES = (
    "dockerfile",
    "docker-compose.yml",
    "docker-compose.yaml",
    "makefile",
)

CONFIG_FILES = {
    "pyproject.toml",
    "requirements.txt",
    "package.json",
    "config.yml",
    "config.yaml",
    "tsconfig.json",
}

HIGH_IMPORTANCE_DIRS = (
    "src",
    "app",
    "backend",
    "frontend",
    "core",
    "models",
    "cloud_functions",
    "cloud-functions",
    "functions",
    "lambda",
    "airflow",
    "dags",
    "pipelines",
    "pipeline",
    "services",
    "api",
    "apis",
    "server",
    "components",
    "modules",
    "utils",
)

# Folder-level matching also credits these.
HIGH_IMPORTANCE_FOLDERS = HIGH_IMPORTANCE_DIRS + (
    "notebooks",
    "notebook",
    "jupyter",
    "streamlit_app",
    "streamlit",
    "lib",
    "library",
    "libraries",
    "utilities",
)

IMPORTANT_TOP_LEVEL_DIRS = (
    "cloud_functions",
    "cloud-functions",
    "functions",
    "lambda",
    "airflow",
    "dags",
    "pipelines",
    "pipeline",
    "notebooks",
    "notebook",
    "jupyter",
    "streamlit_app",
    "streamlit",
    "src",
    "app",
    "backend",
    "frontend",
    "core",
    "models",
    "services",
    "api",
    "apis",
    "server",
)

DIRECTORY_PRIORITY = (
    "cloud_functions",
    "cloud-functions",
    "functions",
    "airflow",
    "streamlit_app",
    "streamlit",
    "notebooks",
)
