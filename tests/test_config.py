"""Tests for settings loading."""

import pytest
from pydantic import ValidationError

from focusflow.config import AnthropicConfig, LocalConfig, OpenAIConfig, Settings, load_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for key in ("FOCUSFLOW_CONFIG", "FOCUSFLOW_LOG_LEVEL", "FOCUSFLOW_AGENT__MAX_ITERATIONS"):
        monkeypatch.delenv(key, raising=False)
    # Keep the user's real config file out of the tests
    monkeypatch.setattr("focusflow.config.get_config_dir", lambda: tmp_path / "nowhere")


class TestLoadSettings:
    def test_defaults(self):
        settings = load_settings()
        assert isinstance(settings.provider, LocalConfig)
        assert settings.agent.max_iterations == 5
        assert settings.agent.max_rejections == 2
        assert settings.http.completion_timeout == 60.0

    def test_yaml_overlay(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "provider:\n"
            "  provider: anthropic\n"
            "  api_key: sk-ant-test\n"
            "agent:\n"
            "  max_iterations: 3\n"
            "log_level: DEBUG\n"
        )
        settings = load_settings(path)
        assert isinstance(settings.provider, AnthropicConfig)
        assert settings.provider.model == "claude-3-5-haiku-20241022"
        assert settings.agent.max_iterations == 3
        assert settings.agent.retry_backoff == 1.0
        assert settings.log_level == "DEBUG"

    def test_overrides_merge_into_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("agent:\n  max_iterations: 3\n  tool_timeout: 5\n")
        settings = load_settings(path, overrides={"agent": {"max_iterations": 7}})
        assert settings.agent.max_iterations == 7
        assert settings.agent.tool_timeout == 5

    def test_missing_file_uses_defaults(self, tmp_path):
        settings = load_settings(tmp_path / "absent.yaml")
        assert isinstance(settings.provider, LocalConfig)

    def test_env_var(self, monkeypatch):
        monkeypatch.setenv("FOCUSFLOW_AGENT__MAX_ITERATIONS", "9")
        assert load_settings().agent.max_iterations == 9

    def test_unknown_provider_kind(self):
        with pytest.raises(ValidationError):
            Settings(provider={"provider": "carrier-pigeon"})

    def test_iteration_bound_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(agent={"max_iterations": 0})

    def test_models_dir_override(self, tmp_path):
        assert Settings(models_dir=str(tmp_path)).get_models_dir() == tmp_path


class TestSanitize:
    def test_api_key_is_redacted(self):
        config = OpenAIConfig(api_key="sk-secret", organization="org-1")
        clean = config.sanitize()
        assert clean.api_key == "***"
        assert clean.organization == "org-1"
        assert config.api_key == "sk-secret"
