from repo_insight import config
from repo_insight.models import RepositoryAnalysis
from repo_insight.storage import MemoryStore


class TestConfig:
    def test_defaults(self):
        cfg = config.Config()
        assert cfg.llm.model_name == "gpt-4o-mini"
        assert cfg.collector.max_directories == 8
        assert cfg.ranking.small_repo_threshold == 7
        assert cfg.cache.cache_ttl_hours == 24

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("MODEL_NAME", "gpt-4o")
        monkeypatch.setenv("EMBEDDINGS_ENABLED", "false")
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_env")

        cfg = config.get_config()

        assert cfg.llm.model_name == "gpt-4o"
        assert cfg.ranking.embeddings_enabled is False
        assert cfg.github_token == "ghp_env"

    def test_weights_sum_to_one(self):
        r = config.RankingConfig()
        total = r.core_weight + r.architecture_weight + r.density_weight + r.uniqueness_weight + r.connectivity_weight
        assert abs(total - 1.0) < 1e-9


class TestResolveCredentials:
    def test_environment_wins(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        creds = config.resolve_credentials(config.Config(), MemoryStore({"openaiKey": "sk-synced"}))
        assert creds.openai_key == "sk-env"

    def test_store_fills_gaps(self):
        store = MemoryStore({"openaiKey": "sk-synced", "githubToken": "ghp_synced"})
        creds = config.resolve_credentials(config.Config(), store)
        assert creds == config.Credentials("sk-synced", "ghp_synced")

    def test_nothing_configured(self):
        assert config.resolve_credentials(config.Config(), MemoryStore()) == config.Credentials(None, None)

    def test_empty_strings_are_missing(self):
        creds = config.resolve_credentials(config.Config(), MemoryStore({"openaiKey": ""}))
        assert creds.openai_key is None


class TestAnalysisSerialization:
    def test_camel_case_aliases(self):
        analysis = RepositoryAnalysis.model_validate(
            {
                "summary": {"overview": "x", "projectType": {"category": "CLI Tool"}},
                "keyFiles": [{"path": "main.py"}],
                "useCases": ["a"],
                "metadata": {"owner": "octo", "repo": "demo", "lastPushed": "2024-01-01T00:00:00Z"},
            }
        )
        dumped = analysis.model_dump(by_alias=True)
        assert dumped["keyFiles"][0]["path"] == "main.py"
        assert dumped["summary"]["projectType"]["category"] == "CLI Tool"
        assert dumped["metadata"]["baselineHealth"]["status"] == "unknown"
        assert dumped["fromCache"] is False
