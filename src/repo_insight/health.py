from datetime import datetime, timezone

from repo_insight.models import CommitSummary, Contributor, HealthAssessment, IssueSummary, RepoMetadata


def _days_since(timestamp: str | None, now: datetime) -> float | None:
    if not timestamp:
        return None
    try:
        then = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    except ValueError:
        return None
    if then.tzinfo is None:
        then = then.replace(tzinfo=timezone.utc)
    return (now - then).total_seconds() / 86_400


def calculate_basic_health(
    metadata: RepoMetadata,
    commits: list[CommitSummary],
    issues: list[IssueSummary],
    contributors: list[Contributor],
    now: datetime | None = None,
) -> HealthAssessment:
    """Activity-based health estimate that needs no LLM call."""
    now = now or datetime.now(timezone.utc)
    score = 50
    indicators: list[str] = []
    concerns: list[str] = []

    days = _days_since(commits[0].date, now) if commits else None
    if days is None:
        score -= 15
        concerns.append("No recent commits found")
    elif days < 7:
        score += 20
        indicators.append("Very active (commits in last week)")
    elif days < 30:
        score += 10
        indicators.append("Active (commits in last month)")
    elif days < 90:
        score += 5
        indicators.append("Moderately active")
    else:
        score -= 10
        concerns.append("No commits in last 3 months")

    open_issues = [i for i in issues if not i.is_pull_request]
    if open_issues:
        if len(open_issues) < 10:
            score += 5
            indicators.append("Low number of open issues")
        elif len(open_issues) > 50:
            score -= 10
            concerns.append("High number of open issues")

    if len(contributors) > 1:
        score += 10
        indicators.append("Multiple contributors")
    elif len(contributors) == 1:
        score -= 5
        concerns.append("Single contributor (bus factor risk)")

    if metadata.stars > 1000:
        score += 10
        indicators.append("Highly popular")
    elif metadata.stars > 100:
        score += 5
        indicators.append("Moderately popular")

    score = max(0, min(100, score))
    if score >= 80:
        status = "active"
    elif score >= 60:
        status = "moderate"
    elif score >= 40:
        status = "inactive"
    else:
        status = "risky"

    if score >= 70:
        maintenance = "Well maintained"
    elif score >= 50:
        maintenance = "Moderately maintained"
    else:
        maintenance = "Needs attention"

    return HealthAssessment(
        status=status, score=score, indicators=indicators, concerns=concerns, maintenance=maintenance
    )
