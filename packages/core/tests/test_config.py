"""Tests for configuration loading."""

import pytest

from pkgdir_core.config import api_key_env, load_config, load_prompt


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in ("GITHUB_TOKEN", "ANTHROPIC_API_KEY", "OPENAI_API_KEY", "GEMINI_API_KEY"):
        monkeypatch.delenv(var, raising=False)


def test_defaults_applied_when_no_config_file(tmp_path):
    config = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    assert config["provider"] == "anthropic"
    assert config["model"] is None
    assert config["prompt"] is None
    assert config["store"] == "sqlite"
    assert config["http_timeout"] == 10
    assert config["ai_timeout"] == 120
    assert config["refresh_batch_limit"] == 100
    assert config["refresh_log_retention"] == 30


def test_config_file_overrides_defaults(tmp_path):
    cfg = tmp_path / ".pkgdir.yml"
    cfg.write_text("provider: gemini\nrefresh_batch_limit: 25\n")
    config = load_config(config_path=str(cfg))
    assert config["provider"] == "gemini"
    assert config["refresh_batch_limit"] == 25


def test_empty_config_file_uses_defaults(tmp_path):
    cfg = tmp_path / ".pkgdir.yml"
    cfg.write_text("")
    config = load_config(config_path=str(cfg))
    assert config["provider"] == "anthropic"


def test_cli_overrides_config_file(tmp_path):
    cfg = tmp_path / ".pkgdir.yml"
    cfg.write_text("provider: openai\n")
    config = load_config(config_path=str(cfg), cli_overrides={"provider": "anthropic"})
    assert config["provider"] == "anthropic"


def test_none_cli_overrides_ignored(tmp_path):
    cfg = tmp_path / ".pkgdir.yml"
    cfg.write_text("provider: openai\n")
    config = load_config(config_path=str(cfg), cli_overrides={"provider": None})
    assert config["provider"] == "openai"


def test_credentials_come_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "gem")
    monkeypatch.setenv("GITHUB_TOKEN", "gh")
    config = load_config(config_path=str(tmp_path / "none.yml"))
    assert config["gemini_api_key"] == "gem"
    assert config["github_token"] == "gh"
    assert config["anthropic_api_key"] is None


def test_api_key_env_names():
    assert api_key_env("anthropic") == "ANTHROPIC_API_KEY"
    assert api_key_env("gemini") == "GEMINI_API_KEY"


def test_custom_prompt_path(tmp_path):
    prompt_file = tmp_path / "review.md"
    prompt_file.write_text("# House rules\n- Rule 1")
    cfg = tmp_path / ".pkgdir.yml"
    cfg.write_text(f"prompt: {prompt_file}\n")
    config = load_config(config_path=str(cfg))
    assert "House rules" in load_prompt(config)


def test_prompt_none_by_default(tmp_path):
    config = load_config(config_path=str(tmp_path / "none.yml"))
    assert load_prompt(config) is None


def test_missing_prompt_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_prompt({"prompt": str(tmp_path / "missing.md")})


def test_empty_prompt_file_raises(tmp_path):
    prompt_file = tmp_path / "empty.md"
    prompt_file.write_text("  \n")
    with pytest.raises(ValueError, match="empty"):
        load_prompt({"prompt": str(prompt_file)})
