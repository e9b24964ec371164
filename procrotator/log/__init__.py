"""
Logging module for procrotator.
This module provides the console logging setup and the tool's log levels.
"""

from .levels import NOTICE_LEVEL, LogLevel, all_level_names
from .setup import setup_logging

__all__ = ["setup_logging", "LogLevel", "NOTICE_LEVEL", "all_level_names"]
