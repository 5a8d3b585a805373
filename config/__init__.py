"""Configuration module for loading and managing application settings"""
import os
from typing import Dict, Any, Optional

from .lib.load_settings_conf import load_settings_conf, validate_settings, SettingsError, DEFAULTS

__all__ = ['get_settings', 'reset_settings', 'load_settings_conf', 'validate_settings', 'SettingsError', 'DEFAULTS']

# Directory holding settings.conf; defaults to the working directory
SETTINGS_DIR_ENV = 'GIGS_SETTINGS_DIR'

_settings: Optional[Dict[str, Any]] = None


def get_settings() -> Dict[str, Any]:
    """Load settings.conf once and return the cached settings.

    Raises:
        SettingsError: If the file is missing or invalid
    """
    global _settings

    if _settings is None:
        try:
            _settings = load_settings_conf(os.environ.get(SETTINGS_DIR_ENV, '.'))
        except SettingsError as e:
            # Re-raise the error but provide more context
            raise SettingsError(
                f"Configuration Error\n"
                "=================\n\n"
                f"{str(e)}\n\n"
                "Please ensure settings.conf is properly configured.\n"
                "See settings.conf.example for the available settings."
            )
    return _settings


def reset_settings() -> None:
    """Forget cached settings so the next call reloads the file."""
    global _settings
    _settings = None
