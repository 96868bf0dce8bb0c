"""Configuration management."""
from .settings import AppSettings, get_settings, DEFAULT_CONFIG_PATH

__all__ = ["AppSettings", "get_settings", "DEFAULT_CONFIG_PATH"]
