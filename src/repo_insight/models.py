from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class AnalyzeRequest(BaseModel):
    github_url: str
    force_refresh: bool = False


class ErrorResponse(BaseModel):
    status: Literal["error"] = "error"
    message: str


class RepositoryIdentity(BaseModel):
    model_config = ConfigDict(frozen=True)

    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


# GitHub payloads


class RepoMetadata(BaseModel):
    full_name: str = ""
    description: str | None = None
    html_url: str = ""
    stars: int = 0
    forks: int = 0
    created_at: str | None = None
    updated_at: str | None = None
    pushed_at: str | None = None
    license: str | None = None
    topics: list[str] = Field(default_factory=list)
    default_branch: str = "main"

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "RepoMetadata":
        license_info = data.get("license") or {}
        return cls(
            full_name=data.get("full_name") or "",
            description=data.get("description"),
            html_url=data.get("html_url") or "",
            stars=data.get("stargazers_count") or 0,
            forks=data.get("forks_count") or 0,
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
            pushed_at=data.get("pushed_at"),
            license=license_info.get("name") if isinstance(license_info, dict) else None,
            topics=data.get("topics") or [],
            default_branch=data.get("default_branch") or "main",
        )


class RepoFileEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    type: Literal["file", "dir"]

    @property
    def filename(self) -> str:
        return self.path.rsplit("/", 1)[-1]


class CommitSummary(BaseModel):
    sha: str
    message: str = ""
    author: str | None = None
    date: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "CommitSummary":
        commit = data.get("commit") or {}
        author = commit.get("author") or {}
        return cls(
            sha=data.get("sha", ""),
            message=(commit.get("message") or "").split("\n", 1)[0],
            author=author.get("name"),
            date=author.get("date"),
        )


class IssueSummary(BaseModel):
    number: int
    title: str = ""
    state: str = "open"
    is_pull_request: bool = False

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "IssueSummary":
        return cls(
            number=data.get("number", 0),
            title=data.get("title") or "",
            state=data.get("state") or "open",
            is_pull_request="pull_request" in data,
        )


class Contributor(BaseModel):
    login: str
    contributions: int = 0

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Contributor":
        return cls(login=data.get("login") or "anonymous", contributions=data.get("contributions") or 0)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Ranking


class ScoredFile(BaseModel):
    path: str
    score: float
    embedding_score: float | None = None


class KeyFolder(_CamelModel):
    path: str
    name: str
    key_files: list[str] = Field(default_factory=list, max_length=2)


# Analysis result


class FileInsight(_CamelModel):
    path: str
    role: str = ""
    purpose: str = ""
    importance: str = ""


class ProjectType(_CamelModel):
    category: str = "Unknown"
    subcategory: str = ""
    confidence: float = 0.0


class ProjectSummary(_CamelModel):
    overview: str = "Unable to generate summary"
    project_type: ProjectType = Field(default_factory=ProjectType)
    tags: list[str] = Field(default_factory=list)

    @field_validator("tags")
    @classmethod
    def _limit_tags(cls, tags: list[str]) -> list[str]:
        return tags[:7]


class RequirementsAudit(_CamelModel):
    dependencies: list[str] = Field(default_factory=list)
    environment: str = "Unknown"
    installation: str = "Check README for installation instructions"
    warnings: list[str] = Field(default_factory=list)


class HealthAssessment(_CamelModel):
    status: str = "unknown"
    score: int = 0
    indicators: list[str] = Field(default_factory=list)
    concerns: list[str] = Field(default_factory=list)
    maintenance: str = "Unable to assess"


class AnalysisMetadata(_CamelModel):
    owner: str
    repo: str
    url: str = ""
    stars: int = 0
    forks: int = 0
    language: str = "Unknown"
    languages: dict[str, int] = Field(default_factory=dict)
    license: str = "None"
    topics: list[str] = Field(default_factory=list)
    last_pushed: str | None = None
    created_at: str | None = None
    baseline_health: HealthAssessment = Field(default_factory=HealthAssessment)


class RepositoryAnalysis(_CamelModel):
    summary: ProjectSummary = Field(default_factory=ProjectSummary)
    key_files: list[FileInsight] = Field(default_factory=list, max_length=5)
    key_folders: list[KeyFolder] = Field(default_factory=list, max_length=5)
    pipeline: str = "Unable to analyze architecture"
    use_cases: list[str] = Field(default_factory=list)
    requirements: RequirementsAudit = Field(default_factory=RequirementsAudit)
    health: HealthAssessment = Field(default_factory=HealthAssessment)
    metadata: AnalysisMetadata
    from_cache: bool = False

    @field_validator("summary", mode="before")
    @classmethod
    def _accept_plain_summary(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"overview": value}
        return value


class CacheEntry(_CamelModel):
    analysis: RepositoryAnalysis
    timestamp: int  # epoch ms
    repo_pushed_at: str | None = None
