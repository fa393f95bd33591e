"""
Local package of the Command Center.

It holds the control core (supervision, sandboxed file access) and the explicit
ControlSettings object that configures it.
"""

from .config import ControlSettings

__all__ = ["ControlSettings"]
