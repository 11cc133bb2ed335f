"""
Configuration for the estimate funnel
"""

from .settings import ApplicationSettings, get_settings, reload_settings, settings

__all__ = ["ApplicationSettings", "get_settings", "reload_settings", "settings"]
