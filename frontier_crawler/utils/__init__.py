"""
Utility modules for the web crawler.
"""

from .config import Config, ConfigError, ConfigManager, load_config

__all__ = ['Config', 'ConfigError', 'ConfigManager', 'load_config']
