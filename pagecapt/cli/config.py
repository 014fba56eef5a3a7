"""Configuration system for the pagecapt CLI with precedence handling.

Settings that are not per-capture (browser engine, capture timing defaults,
log verbosity) can come from several sources. Precedence, highest first:
CLI flags > environment variables > config file > defaults
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from ..capture.browser_factory import BrowserEngineType
from ..errors import ConfigurationError


class BrowserSection(BaseModel):
    """Browser launch options."""
    engine: str = Field(default=BrowserEngineType.CHROMIUM, description="Browser engine")
    headless: bool = Field(default=True, description="Run browser without a window")
    ignore_https_errors: bool = Field(default=False, description="Ignore TLS certificate errors")

    @field_validator('engine')
    @classmethod
    def validate_engine(cls, v):
        engine = v.lower()
        if engine not in BrowserEngineType.all():
            raise ValueError(f"engine must be one of: {', '.join(BrowserEngineType.all())}")
        return engine


class CaptureDefaults(BaseModel):
    """Defaults applied to every capture unless overridden on the command line."""
    delay_ms: int = Field(default=0, ge=0, description="Wait after the page is ready")
    max_wait_ms: int = Field(default=90000, ge=0, description="Absolute timeout, 0 disables")
    min_width: int = Field(default=800, ge=1, description="Minimum viewport width")
    default_height: int = Field(default=600, ge=1, description="Initial viewport height")
    user_agent: Optional[str] = Field(default=None, description="User-Agent override")
    user_styles: Optional[str] = Field(default=None, description="User stylesheet URL")


class LoggingSection(BaseModel):
    """Log verbosity."""
    verbose: bool = Field(default=False, description="Debug logging")
    silent: bool = Field(default=False, description="Only warnings and errors")


class PagecaptConfiguration(BaseModel):
    """Complete CLI configuration with all sections."""

    browser: BrowserSection = Field(default_factory=BrowserSection)
    capture: CaptureDefaults = Field(default_factory=CaptureDefaults)
    logging: LoggingSection = Field(default_factory=LoggingSection)

    # Metadata
    config_file_path: Optional[Path] = Field(default=None, description="Source config file")
    loaded_from: List[str] = Field(default_factory=list, description="Configuration sources")


class ConfigurationLoader:
    """Loads and merges configuration from multiple sources with proper precedence."""

    ENV_PREFIX = "PAGECAPT_"

    # Searched in order
    DEFAULT_CONFIG_FILES = [
        "pagecapt.yaml",
        "pagecapt.yml",
        ".pagecapt.yaml",
        ".pagecapt.yml",
        "pagecapt.json",
        ".pagecapt.json",
    ]

    ENV_MAPPING = {
        "ENGINE": "browser.engine",
        "HEADLESS": "browser.headless",
        "IGNORE_HTTPS_ERRORS": "browser.ignore_https_errors",
        "DELAY": "capture.delay_ms",
        "MAX_WAIT": "capture.max_wait_ms",
        "MIN_WIDTH": "capture.min_width",
        "DEFAULT_HEIGHT": "capture.default_height",
        "USER_AGENT": "capture.user_agent",
        "USER_STYLES": "capture.user_styles",
        "VERBOSE": "logging.verbose",
        "SILENT": "logging.silent",
    }

    BOOLEAN_KEYS = ('.headless', '.ignore_https_errors', '.verbose', '.silent')
    INTEGER_KEYS = ('.delay_ms', '.max_wait_ms', '.min_width', '.default_height')

    def __init__(self):
        self.loaded_sources: List[str] = []

    def load_configuration(
        self,
        config_file: Optional[Path] = None,
        cli_overrides: Optional[Dict[str, Any]] = None,
        search_paths: Optional[List[Path]] = None
    ) -> PagecaptConfiguration:
        """Load configuration with proper precedence.

        Args:
            config_file: Explicitly specified config file (disables discovery)
            cli_overrides: CLI flag overrides
            search_paths: Paths to search for config files

        Returns:
            Merged configuration

        Raises:
            ConfigurationError: If a source cannot be read or the result is invalid
        """
        self.loaded_sources = ["defaults"]
        config_data: Dict[str, Any] = {}

        if config_file:
            if not config_file.exists():
                raise ConfigurationError(f"Configuration file not found: {config_file}")
            config_data = self._merge_config(config_data, self._load_config_file(config_file))
            self.loaded_sources.append(f"config file: {config_file}")
        else:
            discovered = self._discover_config_file(search_paths or [Path.cwd()])
            if discovered is not None:
                path, file_config = discovered
                config_data = self._merge_config(config_data, file_config)
                self.loaded_sources.append(f"auto-discovered: {path}")

        env_config = self._load_environment_variables()
        if env_config:
            config_data = self._merge_config(config_data, env_config)
            self.loaded_sources.append("environment variables")

        if cli_overrides:
            config_data = self._merge_config(config_data, cli_overrides)
            self.loaded_sources.append("CLI flags")

        config_data["loaded_from"] = self.loaded_sources
        if config_file:
            config_data["config_file_path"] = config_file

        try:
            return PagecaptConfiguration(**config_data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def _discover_config_file(self, search_paths: List[Path]) -> Optional[tuple]:
        for search_path in search_paths:
            for config_filename in self.DEFAULT_CONFIG_FILES:
                config_path = search_path / config_filename
                if config_path.is_file():
                    return config_path, self._load_config_file(config_path)
        return None

    def _load_config_file(self, config_path: Path) -> Dict[str, Any]:
        """Load configuration from a YAML or JSON file."""
        suffix = config_path.suffix.lower()
        if suffix not in ('.yaml', '.yml', '.json'):
            raise ConfigurationError(f"Unsupported config file format: {config_path.suffix}")

        try:
            content = config_path.read_text(encoding='utf-8')
            if suffix == '.json':
                data = json.loads(content)
            else:
                data = yaml.safe_load(content) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file {config_path}: {e}") from e
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in config file {config_path}: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Error loading config file {config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {config_path} must contain a mapping")
        return data

    def _load_environment_variables(self) -> Dict[str, Any]:
        config: Dict[str, Any] = {}

        for suffix, config_path in self.ENV_MAPPING.items():
            env_value = os.getenv(f"{self.ENV_PREFIX}{suffix}")
            if env_value is not None:
                converted_value = self._convert_env_value(env_value, config_path)
                self._set_nested_value(config, config_path, converted_value)

        return config

    def _convert_env_value(self, value: str, config_path: str) -> Any:
        """Convert environment variable string to appropriate type."""
        if config_path.endswith(self.BOOLEAN_KEYS):
            return value.lower() in ('true', '1', 'yes', 'on')

        if config_path.endswith(self.INTEGER_KEYS):
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"Expected an integer for {config_path}, got {value!r}") from e

        return value

    def _set_nested_value(self, config: Dict[str, Any], path: str, value: Any) -> None:
        """Set a nested configuration value using dot notation."""
        keys = path.split('.')
        current = config

        for key in keys[:-1]:
            current = current.setdefault(key, {})

        current[keys[-1]] = value

    def _merge_config(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Merge configuration dictionaries, with override taking precedence."""
        if not override:
            return base

        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value

        return result


def load_configuration(
    config_file: Optional[Path] = None,
    cli_overrides: Optional[Dict[str, Any]] = None,
    search_paths: Optional[List[Path]] = None
) -> PagecaptConfiguration:
    """Convenience function to load configuration."""
    loader = ConfigurationLoader()
    return loader.load_configuration(config_file, cli_overrides, search_paths)


def print_configuration(config: PagecaptConfiguration, format: str = "yaml") -> str:
    """Render configuration for display.

    Args:
        config: Configuration to print
        format: Output format (yaml, json)

    Returns:
        Formatted configuration string
    """
    config_dict = config.model_dump(
        mode="json",
        exclude={'loaded_from', 'config_file_path'},
        exclude_none=False
    )

    if format.lower() == "json":
        return json.dumps(config_dict, indent=2, default=str)
    return yaml.safe_dump(config_dict, default_flow_style=False, sort_keys=True)
