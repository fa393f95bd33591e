"""
Logging handlers for the application.
This module provides the handler that ships log records to Grafana Loki.
"""

from .loki import LokiHandler

__all__ = ["LokiHandler"]
