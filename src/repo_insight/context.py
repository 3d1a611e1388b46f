import re
from collections.abc import Iterable, Mapping

from repo_insight.models import RepoFileEntry

_CONSECUTIVE_BLANK_LINES = re.compile(r"\n{3,}")
# HTML blocks with images (contributor grids, badge sections, avatar lists)
_HTML_IMG_BLOCKS = re.compile(r"<a[^>]*>\s*<img[^>]*>\s*</a>", re.IGNORECASE)
# Markdown badge images: [![alt](badge-url)](link-url) or ![alt](badge-url)
_MARKDOWN_BADGES = re.compile(r"!?\[!\[[^\]]*\]\([^)]*\)\]\([^)]*\)|!\[[^\]]*\]\(https?://img\.shields\.io[^)]*\)")


def clean_content(content: str) -> str:
    content = _HTML_IMG_BLOCKS.sub("", content)
    content = _MARKDOWN_BADGES.sub("", content)
    content = _CONSECUTIVE_BLANK_LINES.sub("\n\n", content)
    lines = [line.rstrip() for line in content.split("\n")]
    return "\n".join(lines).strip()


def truncate(content: str, limit: int) -> str:
    if len(content) <= limit:
        return content
    return content[:limit] + "\n... (truncated)"


def format_file_listing(entries: Iterable[RepoFileEntry], max_size: int = 100_000) -> str:
    """One line per entry, shallow paths first, marked [dir] or [file]."""
    ordered = sorted(entries, key=lambda e: (e.path.count("/"), e.path))
    lines: list[str] = []
    used = 0
    for included, entry in enumerate(ordered):
        line = f"[{entry.type}] {entry.path}"
        if used + len(line) + 1 > max_size:
            lines.append(f"... ({len(ordered) - included} more entries)")
            break
        lines.append(line)
        used += len(line) + 1
    return "\n".join(lines) if lines else "Unknown"


def build_context(
    file_contents: Mapping[str, str],
    order: Iterable[str],
    budget: int,
    max_file_size: int,
) -> str:
    """Concatenate file excerpts in ranking order until the budget runs out."""
    parts: list[str] = []
    used = 0

    for path in order:
        content = file_contents.get(path)
        if not content:
            continue
        file_block = f"--- {path} ---\n{truncate(clean_content(content), max_file_size)}"
        if parts:
            file_block = "\n\n" + file_block

        if used + len(file_block) > budget:
            continue

        parts.append(file_block)
        used += len(file_block)

    return "".join(parts)
