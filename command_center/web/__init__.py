"""
Web package of the Command Center.

This package contains the Control API (a Starlette application) and its middleware
for shared-secret authentication and security headers.
"""

from .server import create_app

__all__ = ["create_app"]
