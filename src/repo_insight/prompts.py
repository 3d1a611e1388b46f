import json
from typing import NamedTuple

PROJECT_CATEGORIES = [
    "ML Model Training Repo",
    "ML Inference Service",
    "Data Pipeline Project",
    "RAG System",
    "Agentic System",
    "Benchmark Suite",
    "Dataset Repository",
    "API Microservice",
    "Web Application",
    "Fullstack Application",
    "Mobile Application",
    "CLI Tool",
    "Library Package",
    "Plugin or Extension",
    "Framework or Starter Kit",
    "DevOps Automation Script",
    "Infrastructure-as-Code",
    "Containerization Repo",
    "Monorepo",
    "Notebook Research Repo",
    "Scientific Algorithm Repo",
    "Simulation Repo",
    "Configuration Repo",
    "Documentation Repo",
]

ANALYSIS_SYSTEM_PROMPT = """\
You are a senior software engineer and technical analyst. Provide accurate \
technical analysis of GitHub repositories. Always respond with valid JSON only. \
For tags, identify 5-7 key keywords (1-2 words each) from the repository's \
actual content, technologies, dependencies, and purpose.\
"""

ANALYSIS_SCHEMA = """\
{
  "summary": {
    "overview": "2-3 sentence high-level explanation of what the repository does.",
    "projectType": {
      "category": "one of the categories listed below",
      "subcategory": "more specific label, e.g. 'FastAPI Service', 'PyTorch Trainer'",
      "confidence": 0.0
    },
    "tags": ["5-7 tags of 1-2 words each"]
  },
  "keyFiles": [
    {
      "path": "path copied exactly from the file listing",
      "role": "1-2 word architectural role, e.g. Entrypoint, Pipeline, Model, Configuration",
      "purpose": "what this file does (1 sentence)",
      "importance": "why this file matters (1 sentence)"
    }
  ],
  "keyFolders": [
    {"path": "top-level folder", "name": "folder name", "keyFiles": ["1-2 file paths inside it"]}
  ],
  "pipeline": "how the system works end-to-end, including data flow and key components",
  "useCases": ["specific use case 1", "specific use case 2", "specific use case 3"],
  "requirements": {
    "dependencies": ["main dependencies"],
    "environment": "required environment (language/runtime versions)",
    "installation": "key installation steps or gotchas",
    "warnings": ["potential issues or compatibility concerns"]
  },
  "health": {
    "status": "active|moderate|inactive|risky",
    "score": 0,
    "indicators": ["health indicators"],
    "concerns": ["red flags or concerns"],
    "maintenance": "assessment of maintenance status"
  }
}\
"""

ANALYSIS_RULES = """\
Rules:
1. Respond only with JSON matching the schema. No markdown fences, no extra text.
2. If the repository has folders, return 3-5 keyFolders (most important first), \
each with 1-2 files. If it is flat, return 3-5 keyFiles and leave keyFolders empty.
3. keyFiles: at most 5, sorted most important first. Every path MUST appear \
exactly in the file listing above. Do NOT guess or invent file names.
4. The summary stays high-level; useCases describe applications, not repo contents.
5. projectType.category must be exactly one of: {categories}.
6. Tags must not repeat the project category or paraphrase the overview.
7. health.score is an integer between 0 and 100.\
"""


class RepoDigest(NamedTuple):
    name: str
    description: str
    languages: dict[str, int]
    stars: int
    forks: int
    created_at: str
    updated_at: str
    pushed_at: str
    license: str
    topics: list[str]
    readme: str
    file_listing: str
    commit_count: int
    issue_count: int
    contributor_count: int
    ranked_files: list[str]
    file_excerpts: str


def build_analysis_prompt(digest: RepoDigest) -> str:
    sections = [
        "Analyze this GitHub repository and return a structured JSON object.",
        "### Repository Metadata",
        f"Repository: {digest.name}\n"
        f"Description: {digest.description or 'No description'}\n"
        f"Languages: {json.dumps(digest.languages)}\n"
        f"Stars: {digest.stars}, Forks: {digest.forks}\n"
        f"License: {digest.license}\n"
        f"Topics: {', '.join(digest.topics) or 'None'}\n"
        f"Created: {digest.created_at}, Last Updated: {digest.updated_at}, Last Pushed: {digest.pushed_at}",
        "### README (truncated)",
        digest.readme or "No README available",
        "### File Structure (all files)",
        digest.file_listing,
        "### Recent Activity",
        f"Commits: {digest.commit_count}\n"
        f"Open Issues: {digest.issue_count}\n"
        f"Contributors: {digest.contributor_count}",
    ]
    if digest.ranked_files:
        sections += [
            "### Files ranked most important by static analysis",
            "\n".join(digest.ranked_files),
        ]
    if digest.file_excerpts:
        sections += ["### File Excerpts", digest.file_excerpts]
    sections += [
        "---",
        "You MUST respond with ONLY valid JSON in the following schema:",
        ANALYSIS_SCHEMA,
        ANALYSIS_RULES.format(categories=", ".join(PROJECT_CATEGORIES)),
    ]
    return "\n\n".join(sections)
