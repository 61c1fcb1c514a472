"""
Configuration loading.
"""

from .settings import ApiConfig, AuthConfig, ConfigError, Settings, load_run_config, parse_run_config

__all__ = ['ApiConfig', 'AuthConfig', 'ConfigError', 'Settings', 'load_run_config', 'parse_run_config']
