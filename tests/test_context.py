from repo_insight import context
from repo_insight.models import RepoFileEntry


class TestCleanContent:
    def test_removes_badges(self):
        content = "# Title\n[![Build](https://ci/badge.svg)](https://ci)\n![PyPI](https://img.shields.io/pypi/v/x)\nBody"
        cleaned = context.clean_content(content)
        assert "badge.svg" not in cleaned
        assert "shields.io" not in cleaned
        assert "Body" in cleaned

    def test_removes_image_links(self):
        content = 'Thanks to <a href="https://github.com/ana"><img src="avatar.png" /></a> everyone'
        assert "avatar.png" not in context.clean_content(content)

    def test_collapses_blank_lines(self):
        assert context.clean_content("a   \n\n\n\n\nb") == "a\n\nb"


class TestTruncate:
    def test_short_content_untouched(self):
        assert context.truncate("abc", 10) == "abc"

    def test_marks_truncation(self):
        assert context.truncate("abcdef", 3) == "abc\n... (truncated)"


class TestFormatFileListing:
    def test_shallow_entries_first(self, nested_entries):
        listing = context.format_file_listing(nested_entries).splitlines()
        assert listing[0] == "[file] Dockerfile"
        assert "[dir] src" in listing
        assert listing[-1] == "[file] src/pipeline/train.py"

    def test_empty(self):
        assert context.format_file_listing([]) == "Unknown"

    def test_truncates_large_listings(self):
        entries = [RepoFileEntry(path=f"src/file_{i}.py", type="file") for i in range(1000)]
        listing = context.format_file_listing(entries, max_size=500)
        assert "more entries" in listing
        assert len(listing) < 600


class TestBuildContext:
    def test_follows_ranking_order(self, sample_contents):
        ctx = context.build_context(sample_contents, ["src/app.py", "main.py"], budget=100_000, max_file_size=10_000)
        assert ctx.index("--- src/app.py ---") < ctx.index("--- main.py ---")
        assert "package.json" not in ctx

    def test_respects_budget(self, sample_contents):
        ctx = context.build_context(sample_contents, list(sample_contents), budget=100, max_file_size=10_000)
        assert len(ctx) <= 100

    def test_skips_missing_files(self, sample_contents):
        assert context.build_context(sample_contents, ["missing.py"], budget=1000, max_file_size=100) == ""

    def test_truncates_each_file(self):
        ctx = context.build_context({"big.py": "x" * 5000}, ["big.py"], budget=100_000, max_file_size=100)
        assert "... (truncated)" in ctx
        assert len(ctx) < 200
