"""
Tests for Settings loading.
"""

import pytest
import yaml
from pydantic import ValidationError

from cmdengine.core.config import (
    Settings,
    get_settings,
    load_settings_from_yaml,
    mask_secret,
    reset_settings,
)


class TestSettings:
    """Tests for Settings defaults and validation."""

    def test_defaults(self):
        settings = Settings()
        assert settings.api_port == 8780
        assert settings.parse_timeout_seconds == 15.0
        assert settings.user_permissions == {"admin": ["*"]}
        assert not settings.llm_configured

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("CMDENGINE_API_PORT", "9000")
        monkeypatch.setenv("CMDENGINE_USER_PERMISSIONS", '{"bob": ["products.create"]}')
        reset_settings()

        settings = get_settings()
        assert settings.api_port == 9000
        assert settings.user_permissions == {"bob": ["products.create"]}

    def test_cached(self):
        assert get_settings() is get_settings()

    def test_rejects_non_positive_timeout(self):
        with pytest.raises(ValidationError):
            Settings(parse_timeout_seconds=0)

    def test_rejects_unknown_environment(self):
        with pytest.raises(ValidationError):
            Settings(environment="moon")

    def test_log_level_normalized(self):
        assert Settings(log_level="debug").log_level == "DEBUG"

    def test_llm_configured(self):
        assert Settings(llm_api_key="sk-test").llm_configured


class TestYamlConfig:
    """Tests for YAML loading with environment precedence."""

    def test_yaml_values_loaded(self, tmp_path):
        path = tmp_path / "cmdengine.yaml"
        path.write_text(yaml.safe_dump({"api_port": 9100, "site_name": "Yaml Site"}))

        settings = load_settings_from_yaml(path)
        assert settings.api_port == 9100
        assert settings.site_name == "Yaml Site"

    def test_env_beats_yaml(self, tmp_path, monkeypatch):
        path = tmp_path / "cmdengine.yaml"
        path.write_text(yaml.safe_dump({"site_name": "Yaml Site"}))
        monkeypatch.setenv("CMDENGINE_SITE_NAME", "Env Site")

        assert load_settings_from_yaml(path).site_name == "Env Site"

    def test_config_file_env_var(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.yaml"
        path.write_text(yaml.safe_dump({"max_command_length": 99}))
        monkeypatch.setenv("CMDENGINE_CONFIG_FILE", str(path))
        reset_settings()

        assert get_settings().max_command_length == 99

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings_from_yaml(tmp_path / "nope.yaml")

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError):
            load_settings_from_yaml(path)


class TestMaskSecret:
    def test_masks(self):
        assert mask_secret("sk-abcdef") == "sk-a*****"

    def test_short_or_missing(self):
        assert mask_secret(None) == "***"
        assert mask_secret("abc") == "***"
