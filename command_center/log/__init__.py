"""
Logging module for the application.
This module provides the logging setup and tail-of-file access to service logs.
"""

from .setup import setup_logging, set_console_level
from .tail import tail_file, clamp_line_count

__all__ = ["setup_logging", "set_console_level", "tail_file", "clamp_line_count"]
