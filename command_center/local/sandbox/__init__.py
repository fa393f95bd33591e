"""
The sandbox package.
Confines file access requested through the Control API to a root directory and
owns the configuration and environment files of the managed process.
"""
from .path_guard import PathGuard, resolve
from .config_store import ConfigStore
from .env_store import EnvStore
from .fileio import atomic_write, backup_file

__all__ = ['PathGuard', 'resolve', 'ConfigStore', 'EnvStore', 'atomic_write', 'backup_file']
