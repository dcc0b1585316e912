"""Configuration management module."""

from src.config.preferences import AppPreferences, PreferencesStore
from src.config.settings import Settings, load_settings

__all__ = ["AppPreferences", "PreferencesStore", "Settings", "load_settings"]
