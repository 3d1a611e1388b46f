import pytest

from repo_insight import config, core
from repo_insight.models import RepoFileEntry, RepositoryIdentity


def _entries(*specs: tuple[str, str]) -> list[RepoFileEntry]:
    return [RepoFileEntry(path=path, type=kind) for path, kind in specs]


FLAT_REPO = [
    ("README.md", "file"),
    ("main.py", "file"),
    ("package.json", "file"),
]

NESTED_REPO = [
    ("README.md", "file"),
    ("pyproject.toml", "file"),
    ("Dockerfile", "file"),
    ("src/app.py", "file"),
    ("src/models.py", "file"),
    ("src/utils.py", "file"),
    ("src/pipeline/train.py", "file"),
    ("lib/helpers.js", "file"),
    ("tests/test_app.py", "file"),
    ("docs/guide.md", "file"),
    ("docs", "dir"),
    ("src", "dir"),
    ("lib", "dir"),
    ("tests", "dir"),
]

SAMPLE_FILE_CONTENTS = {
    "main.py": "from fastapi import FastAPI\n\napp = FastAPI()\n\n\ndef main():\n    pass\n",
    "package.json": '{"name": "demo", "scripts": {"start": "node index.js"}, "dependencies": {"express": "^4"}}',
    "src/app.py": "import os\n\nclass App:\n    def run(self):\n        pass\n",
}


@pytest.fixture(autouse=True)
def _clean_settings(monkeypatch):
    for var in ("OPENAI_API_KEY", "GITHUB_TOKEN", "CACHE_PATH", "SETTINGS_PATH", "EMBEDDINGS_ENABLED"):
        monkeypatch.delenv(var, raising=False)
    config.get_config.cache_clear()
    core.get_stores.cache_clear()
    yield
    config.get_config.cache_clear()
    core.get_stores.cache_clear()


@pytest.fixture
def repo():
    return RepositoryIdentity(owner="octo", name="demo")


@pytest.fixture
def flat_entries():
    return _entries(*FLAT_REPO)


@pytest.fixture
def nested_entries():
    return _entries(*NESTED_REPO)


@pytest.fixture
def sample_contents():
    return dict(SAMPLE_FILE_CONTENTS)


@pytest.fixture
def no_sleep():
    delays: list[float] = []

    async def _sleep(seconds: float) -> None:
        delays.append(seconds)

    _sleep.delays = delays
    return _sleep
