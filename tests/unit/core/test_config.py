import json

import pytest
import yaml

from gherkin_engine.core import ConfigManager, ConfigurationError
from gherkin_engine.core.config import CONFIG_ENV_VAR


class TestConfigManager:
    """Test ConfigManager"""

    def test_defaults_without_file(self, tmp_path):
        """Test default sections are available when the file is missing"""
        config = ConfigManager(tmp_path / "missing.yaml")

        assert config.get('executor.browser') == "chromium"
        assert config.get('executor.headless') == True
        assert config.get('batch.timeout_seconds') == 300
        assert config.get('reporter.output_dir') == "test-results"

    def test_yaml_file_layered_over_defaults(self, tmp_path):
        """Test file values override defaults and keep the rest"""
        path = tmp_path / "gherkin-engine.yaml"
        path.write_text(yaml.safe_dump({'executor': {'browser': 'firefox'}}))

        config = ConfigManager(path)
        assert config.get('executor.browser') == "firefox"
        assert config.get('executor.timeout') == 30000

    def test_json_file(self, tmp_path):
        """Test JSON configuration"""
        path = tmp_path / "config.json"
        path.write_text(json.dumps({'batch': {'parallel': False}}))

        assert ConfigManager(path).get('batch.parallel') == False

    def test_env_var_location(self, tmp_path, monkeypatch):
        """Test the environment variable selects the file"""
        path = tmp_path / "env.yaml"
        path.write_text(yaml.safe_dump({'general': {'log_level': 'DEBUG'}}))
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))

        config = ConfigManager()
        assert config.config_path == path
        assert config.get('general.log_level') == "DEBUG"

    def test_get_default_for_missing_key(self, tmp_path):
        """Test dot-notation lookup falls back to the default"""
        config = ConfigManager(tmp_path / "missing.yaml")
        assert config.get('executor.unknown', 'fallback') == 'fallback'
        assert config.get_module_config('nothing') == {}

    def test_set_and_save(self, tmp_path):
        """Test values can be set and persisted"""
        path = tmp_path / "nested" / "config.yaml"
        config = ConfigManager(path)
        config.set('executor.base_url', 'https://example.com')
        config.set('custom.section.value', 3)
        config.save()

        reloaded = ConfigManager(path)
        assert reloaded.get('executor.base_url') == 'https://example.com'
        assert reloaded.get('custom.section.value') == 3

    def test_malformed_yaml(self, tmp_path):
        """Test malformed files raise ConfigurationError"""
        path = tmp_path / "bad.yaml"
        path.write_text("executor: [unclosed")
        with pytest.raises(ConfigurationError):
            ConfigManager(path)

    def test_non_mapping(self, tmp_path):
        """Test a list document is rejected"""
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError):
            ConfigManager(path)

    def test_unsupported_suffix(self, tmp_path):
        """Test unknown config formats are rejected"""
        path = tmp_path / "config.toml"
        path.write_text("x = 1")
        with pytest.raises(ConfigurationError):
            ConfigManager(path)
