"""
Utility functions for the estimate funnel services
"""

from .app_logger import configure_logging, get_logger

__all__ = ["configure_logging", "get_logger"]
