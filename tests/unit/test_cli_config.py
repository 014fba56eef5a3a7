"""Unit tests for CLI configuration loading."""

import json

import pytest
import yaml

from pagecapt.cli.config import (
    ConfigurationLoader,
    PagecaptConfiguration,
    load_configuration,
    print_configuration,
)
from pagecapt.errors import ConfigurationError


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Remove PAGECAPT_* variables from the environment."""
    for suffix in ConfigurationLoader.ENV_MAPPING:
        monkeypatch.delenv(f"{ConfigurationLoader.ENV_PREFIX}{suffix}", raising=False)


class TestConfigurationLoader:
    """Tests for configuration precedence."""

    def test_defaults(self, tmp_path):
        config = load_configuration(search_paths=[tmp_path])

        assert config.browser.engine == "chromium"
        assert config.browser.headless is True
        assert config.capture.delay_ms == 0
        assert config.capture.max_wait_ms == 90000
        assert config.capture.min_width == 800
        assert config.capture.default_height == 600
        assert config.logging.verbose is False
        assert config.loaded_from == ["defaults"]

    def test_explicit_yaml_file(self, tmp_path):
        config_file = tmp_path / "capture.yaml"
        config_file.write_text(yaml.safe_dump({
            'browser': {'engine': 'firefox'},
            'capture': {'delay_ms': 500, 'min_width': 1024},
        }))

        config = load_configuration(config_file=config_file, search_paths=[tmp_path])

        assert config.browser.engine == "firefox"
        assert config.capture.delay_ms == 500
        assert config.capture.min_width == 1024
        assert config.capture.max_wait_ms == 90000
        assert config.config_file_path == config_file

    def test_auto_discovered_json(self, tmp_path):
        (tmp_path / "pagecapt.json").write_text(json.dumps({'capture': {'max_wait_ms': 1000}}))

        config = load_configuration(search_paths=[tmp_path])

        assert config.capture.max_wait_ms == 1000
        assert any(source.startswith("auto-discovered") for source in config.loaded_from)

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        (tmp_path / "pagecapt.yaml").write_text("capture:\n  delay_ms: 100\n")
        monkeypatch.setenv("PAGECAPT_DELAY", "250")
        monkeypatch.setenv("PAGECAPT_HEADLESS", "false")

        config = load_configuration(search_paths=[tmp_path])

        assert config.capture.delay_ms == 250
        assert config.browser.headless is False
        assert "environment variables" in config.loaded_from

    def test_cli_overrides_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PAGECAPT_DELAY", "250")

        config = load_configuration(
            cli_overrides={'capture': {'delay_ms': 5}},
            search_paths=[tmp_path],
        )

        assert config.capture.delay_ms == 5
        assert config.loaded_from[-1] == "CLI flags"

    def test_missing_config_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_configuration(config_file=tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        config_file = tmp_path / "bad.yaml"
        config_file.write_text("capture: [unclosed\n")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_configuration(config_file=config_file)

    def test_unsupported_extension(self, tmp_path):
        config_file = tmp_path / "config.toml"
        config_file.write_text("")

        with pytest.raises(ConfigurationError, match="Unsupported config file format"):
            load_configuration(config_file=config_file)

    def test_invalid_engine(self, tmp_path):
        with pytest.raises(ConfigurationError, match="engine must be one of"):
            load_configuration(cli_overrides={'browser': {'engine': 'netscape'}}, search_paths=[tmp_path])

    def test_invalid_integer_in_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PAGECAPT_MAX_WAIT", "soon")

        with pytest.raises(ConfigurationError, match="Expected an integer"):
            load_configuration(search_paths=[tmp_path])

    def test_negative_delay_rejected(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_configuration(cli_overrides={'capture': {'delay_ms': -5}}, search_paths=[tmp_path])


class TestPrintConfiguration:
    """Tests for rendering the effective configuration."""

    def test_yaml(self):
        output = print_configuration(PagecaptConfiguration())

        data = yaml.safe_load(output)
        assert data['browser']['engine'] == "chromium"
        assert 'loaded_from' not in data

    def test_json(self):
        data = json.loads(print_configuration(PagecaptConfiguration(), "json"))

        assert data['capture']['max_wait_ms'] == 90000
