"""
This module initializes the console package, exposing command execution,
the context commands operate on, verbose logging toggling and the help text.
"""

from .process import execute_command
from .handler import ConsoleContext, toggle_verbose_logging, print_help

__all__ = ["execute_command", "ConsoleContext", "toggle_verbose_logging", "print_help"]
