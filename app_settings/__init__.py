"""
Application settings package for the Sparx card storage layer.

This package provides centralized, type-safe configuration management
using Pydantic settings.
"""

from app_settings.settings import Settings, get_settings, settings

__all__ = ["settings", "Settings", "get_settings"]
