"""Tests for configuration loading and per-repository review settings."""

import pytest

from burgai_core.config import DEFAULT_MODELS, RepoReviewConfig, load_config, load_guidelines, repo_review_config
from burgai_core.errors import ConfigurationError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in ("GITHUB_TOKEN", "GEMINI_API_KEY", "OPENAI_API_KEY", "OPENROUTER_API_KEY", "ANTHROPIC_API_KEY"):
        monkeypatch.delenv(var, raising=False)


# ---------------------------------------------------------------------------
# load_config
# ---------------------------------------------------------------------------


def test_defaults_applied_when_no_config_file(tmp_path):
    config = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    assert config["provider"] == "gemini"
    assert config["model"] is None
    assert config["max_comments_per_review"] == 20
    assert config["enabled_severities"] == ["critical", "major", "minor"]
    assert config["store"] == "noop"
    assert config["review_draft_prs"] is False


def test_config_file_overrides_defaults(tmp_path):
    cfg = tmp_path / ".burgai.yml"
    cfg.write_text("provider: openai\nmax_comments_per_review: 30\nignore_minor_threshold: 0.5\n")
    config = load_config(config_path=str(cfg))
    assert config["provider"] == "openai"
    assert config["max_comments_per_review"] == 30
    assert config["ignore_minor_threshold"] == 0.5


def test_default_lists_not_shared_between_loads(tmp_path):
    first = load_config(config_path=str(tmp_path / "none.yml"))
    first["exclude"].append("vendor/")
    second = load_config(config_path=str(tmp_path / "none.yml"))
    assert second["exclude"] == []


def test_cli_overrides_config_file(tmp_path):
    cfg = tmp_path / ".burgai.yml"
    cfg.write_text("provider: openai\n")
    config = load_config(config_path=str(cfg), cli_overrides={"provider": "anthropic"})
    assert config["provider"] == "anthropic"


def test_none_cli_overrides_ignored(tmp_path):
    cfg = tmp_path / ".burgai.yml"
    cfg.write_text("provider: openai\n")
    config = load_config(config_path=str(cfg), cli_overrides={"provider": None})
    assert config["provider"] == "openai"


def test_empty_config_file_uses_defaults(tmp_path):
    cfg = tmp_path / ".burgai.yml"
    cfg.write_text("")
    assert load_config(config_path=str(cfg))["provider"] == "gemini"


def test_non_mapping_config_file_rejected(tmp_path):
    cfg = tmp_path / ".burgai.yml"
    cfg.write_text("- just\n- a list\n")
    with pytest.raises(ConfigurationError, match="must contain a mapping"):
        load_config(config_path=str(cfg))


def test_env_vars_loaded(monkeypatch, tmp_path):
    monkeypatch.setenv("GITHUB_TOKEN", "gh-token")
    monkeypatch.setenv("GEMINI_API_KEY", "gem-key")
    config = load_config(config_path=str(tmp_path / "none.yml"))
    assert config["github_token"] == "gh-token"
    assert config["gemini_api_key"] == "gem-key"
    assert config["openai_api_key"] is None


def test_credentials_in_file_are_ignored(tmp_path):
    cfg = tmp_path / ".burgai.yml"
    cfg.write_text("openai_api_key: leaked\n")
    assert load_config(config_path=str(cfg))["openai_api_key"] is None


# ---------------------------------------------------------------------------
# load_guidelines
# ---------------------------------------------------------------------------


def test_custom_guidelines_path(tmp_path):
    guidelines_file = tmp_path / "guidelines.md"
    guidelines_file.write_text("# Team rules\n- No raw SQL")
    assert "No raw SQL" in load_guidelines({"guidelines": str(guidelines_file)})


def test_no_guidelines_configured():
    assert load_guidelines({"guidelines": None}) is None


def test_missing_guidelines_raises(tmp_path):
    with pytest.raises(ConfigurationError, match="Guidelines file not found"):
        load_guidelines({"guidelines": str(tmp_path / "missing.md")})


# ---------------------------------------------------------------------------
# repo_review_config
# ---------------------------------------------------------------------------


class TestRepoReviewConfig:
    def test_defaults(self, tmp_path):
        repo_config = repo_review_config(load_config(config_path=str(tmp_path / "none.yml")))
        assert repo_config == RepoReviewConfig()
        assert repo_config.model == DEFAULT_MODELS["gemini"]

    def test_provider_default_model(self):
        assert repo_review_config({"provider": "anthropic"}).model == DEFAULT_MODELS["anthropic"]

    def test_explicit_model_wins(self):
        assert repo_review_config({"provider": "openai", "model": "gpt-4.1"}).model == "gpt-4.1"

    def test_severities_kept_in_canonical_order(self):
        repo_config = repo_review_config({"enabled_severities": ["minor", "critical"]})
        assert repo_config.enabled_severities == ("critical", "minor")

    def test_unknown_severity_rejected(self):
        with pytest.raises(ConfigurationError, match="blocker"):
            repo_review_config({"enabled_severities": ["critical", "blocker"]})

    def test_unknown_provider_rejected(self):
        with pytest.raises(ConfigurationError, match="Unknown provider"):
            repo_review_config({"provider": "mistral"})

    @pytest.mark.parametrize(
        "key, value",
        [
            ("ignore_minor_threshold", 1.5),
            ("ignore_major_threshold", -0.1),
            ("max_comments_per_review", 0),
            ("max_comments_per_review", 51),
            ("temperature", 2.5),
            ("max_tokens", 500),
            ("max_tokens", 9000),
            ("request_timeout", 0),
            ("ignore_minor_threshold", "high"),
            ("temperature", True),
        ],
    )
    def test_out_of_range_values_rejected(self, key, value):
        with pytest.raises(ConfigurationError, match=f"{key} must be between"):
            repo_review_config({key: value})

    def test_fractional_comment_limit_rejected(self):
        with pytest.raises(ConfigurationError, match="must be an integer"):
            repo_review_config({"max_comments_per_review": 10.5})

    def test_bad_filter_seed_rejected(self):
        with pytest.raises(ConfigurationError, match="filter_seed"):
            repo_review_config({"filter_seed": "abc"})

    def test_guidelines_read_into_config(self, tmp_path):
        guidelines_file = tmp_path / "guidelines.md"
        guidelines_file.write_text("Prefer early returns.")
        repo_config = repo_review_config({"guidelines": str(guidelines_file)})
        assert repo_config.review_guidelines == "Prefer early returns."

    def test_with_thresholds_returns_copy(self):
        original = RepoReviewConfig()
        updated = original.with_thresholds(0.1, 0.05)
        assert (updated.ignore_minor_threshold, updated.ignore_major_threshold) == (0.1, 0.05)
        assert original.ignore_minor_threshold == 0.7
