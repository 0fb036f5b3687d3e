"""
Configuration management for the web crawler.
"""

import dataclasses
import logging
import typing
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml


class ConfigError(ValueError):
    """Raised when the crawl configuration is invalid."""


PATTERN_SYNTAXES = ('glob', 'regex')
RATE_LIMITER_KINDS = ('interval', 'token_bucket')


@dataclass(frozen=True)
class CrawlerConfig:
    """Configuration for crawler behavior."""
    rate_limit: int = 15
    allow_urls: Tuple[str, ...] = ()
    disallow_urls: Tuple[str, ...] = ()
    thread_count: int = 20
    user_agent: str = "frontier-crawler/1.0"
    request_timeout: int = 30
    max_content_size: int = 10 * 1024 * 1024
    pattern_syntax: str = 'glob'
    rate_limiter: str = 'interval'
    stats_interval: float = 30.0


@dataclass(frozen=True)
class LoggingConfig:
    """Configuration for logging."""
    level: str = 'INFO'
    file: Optional[str] = None
    format: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    json: bool = False


@dataclass(frozen=True)
class MonitoringConfig:
    """Configuration for monitoring."""
    metrics_enabled: bool = False
    prometheus_port: int = 8000


@dataclass(frozen=True)
class Config:
    """Main configuration class. Built once per run and never mutated."""
    crawler: CrawlerConfig = field(default_factory=CrawlerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)


_SECTIONS = {
    'crawler': CrawlerConfig,
    'logging': LoggingConfig,
    'monitoring': MonitoringConfig,
}

_TUPLE_FIELDS = {'allow_urls', 'disallow_urls'}

_TYPE_NAMES = {
    bool: 'a boolean',
    int: 'an integer',
    float: 'a number',
    str: 'a string',
}


def _matches(expected, value) -> bool:
    if expected is bool:
        return isinstance(value, bool)
    if expected is int:
        return isinstance(value, int) and not isinstance(value, bool)
    if expected is float:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    return isinstance(value, expected)


def _check_value(name: str, key: str, expected, value):
    """Return value converted to its field type, or raise ConfigError."""
    if key in _TUPLE_FIELDS:
        if value is None:
            return ()
        if isinstance(value, str):
            return (value,)
        if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
            raise ConfigError(f"{name}.{key} must be a list of strings")
        return tuple(value)

    optional = typing.get_origin(expected) is Union
    if optional:
        expected = next(arg for arg in typing.get_args(expected) if arg is not type(None))
        if value is None:
            return None

    if not _matches(expected, value):
        raise ConfigError(f"{name}.{key} must be {_TYPE_NAMES[expected]}, got {value!r}")
    return value


def _build_section(name: str, cls, values: Dict[str, Any]):
    fields = {f.name: f.type for f in dataclasses.fields(cls)}
    unknown = sorted(set(values) - set(fields))
    if unknown:
        raise ConfigError(f"Unknown {name} option(s): {', '.join(unknown)}")

    checked = {key: _check_value(name, key, fields[key], value) for key, value in values.items()}
    return cls(**checked)


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = Path(config_path) if config_path else None
        self._config: Optional[Config] = None

    def read_file(self) -> Dict[str, Dict[str, Any]]:
        """Read the raw YAML document, or an empty mapping if there is no file."""
        if self.config_path is None:
            return {}

        if not self.config_path.exists():
            raise ConfigError(f"Configuration file not found: {self.config_path}")

        try:
            with open(self.config_path, 'r') as file:
                config_data = yaml.safe_load(file) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {self.config_path}: {e}") from e

        if not isinstance(config_data, dict):
            raise ConfigError(f"Configuration file must contain a mapping: {self.config_path}")

        unknown = sorted(set(config_data) - set(_SECTIONS))
        if unknown:
            raise ConfigError(f"Unknown configuration section(s): {', '.join(unknown)}")
        return config_data

    def build(self, overrides: Optional[Dict[str, Dict[str, Any]]] = None) -> Config:
        """
        Build the configuration from the YAML file with overrides on top.

        Args:
            overrides: Per-section values (typically from the command line).
                Keys whose value is None are ignored.

        Returns:
            The validated, immutable Config
        """
        config_data = self.read_file()
        overrides = overrides or {}

        sections = {}
        for name, cls in _SECTIONS.items():
            section = config_data.get(name) or {}
            if not isinstance(section, dict):
                raise ConfigError(f"Configuration section '{name}' must be a mapping")
            values = dict(section)
            values.update({k: v for k, v in (overrides.get(name) or {}).items() if v is not None})
            sections[name] = _build_section(name, cls, values)

        self._config = Config(**sections)
        self._validate_config()
        return self._config

    def _validate_config(self):
        """Validate configuration values."""
        if not self._config:
            raise ConfigError("Configuration not loaded")

        crawler = self._config.crawler

        if not crawler.allow_urls:
            raise ConfigError("there must be at least 1 allow url")

        if crawler.rate_limit < 1:
            raise ConfigError("rate_limit must be a positive integer")

        if crawler.thread_count < 1:
            raise ConfigError("thread_count must be a positive integer")

        if crawler.request_timeout <= 0:
            raise ConfigError("request_timeout must be positive")

        if crawler.max_content_size < 1:
            raise ConfigError("max_content_size must be a positive integer")

        if crawler.stats_interval <= 0:
            raise ConfigError("stats_interval must be positive")

        if not 0 < self._config.monitoring.prometheus_port < 65536:
            raise ConfigError("prometheus_port must be between 1 and 65535")

        if crawler.pattern_syntax not in PATTERN_SYNTAXES:
            raise ConfigError(f"pattern_syntax must be one of: {', '.join(PATTERN_SYNTAXES)}")

        if crawler.rate_limiter not in RATE_LIMITER_KINDS:
            raise ConfigError(f"rate_limiter must be one of: {', '.join(RATE_LIMITER_KINDS)}")

        if not isinstance(logging.getLevelName(self._config.logging.level.upper()), int):
            raise ConfigError(f"Unknown log level: {self._config.logging.level}")

        logging.getLogger(__name__).debug("Configuration validation passed")

    @property
    def config(self) -> Config:
        """Get the loaded configuration."""
        if not self._config:
            raise ConfigError("Configuration not loaded. Call build() first.")
        return self._config


def load_config(config_path: Optional[str] = None,
                overrides: Optional[Dict[str, Dict[str, Any]]] = None) -> Config:
    """Load configuration from an optional YAML file plus overrides."""
    return ConfigManager(config_path).build(overrides)
