"""Environment-driven application configuration."""

from lumera.config.settings import AppConfig, get_config

__all__ = ["AppConfig", "get_config"]
