"""
Middleware package for the Control API.

This package contains the shared-secret authentication gate and the
security headers added to every response.
"""

from .auth import TokenAuthMiddleware
from .security import SecurityHeadersMiddleware

__all__ = ["TokenAuthMiddleware", "SecurityHeadersMiddleware"]
