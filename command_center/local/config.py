import os
import logging
import secrets
from pathlib import Path
from typing import Any, Dict

import command_center.settings as default_settings
from command_center.local.errors import NotFound
from command_center.local.supervisor import SpawnSpec

log = logging.getLogger(__name__)


class ControlSettings:
    """
    The explicit configuration object of the Command Center.

    It merges values with a clear precedence:
    1. Base values from `settings.py` (which already reflect the environment and `.env`).
    2. Keyword overrides passed by the caller (tests, the console, the server entry point).

    A single instance is built at startup and handed to every component that needs it,
    instead of components reading the environment on their own.
    """

    def __init__(self, **overrides: Any) -> None:
        """
        :param overrides: Uppercase setting names and their values.
        :raises KeyError: If an override does not name a known setting.
        """
        self._load_defaults()
        self._apply_overrides(overrides)
        self.AUTH_TOKEN = self._resolve_auth_token()

    def _load_defaults(self) -> None:
        """Loads all uppercase attributes from the settings.py module as defaults."""
        for key in dir(default_settings):
            if key.isupper():
                setattr(self, key, getattr(default_settings, key))

        # Derived paths follow an overridden root unless they are overridden themselves.
        self._derived_from_root = {
            "WORKSPACE_DIR": ("INSTALL_ROOT", "workspace"),
            "RUN_DIR": ("INSTALL_ROOT", "dashboard/run"),
            "LOGS_DIR": ("INSTALL_ROOT", "dashboard/logs"),
            "AUTH_TOKEN_PATH": ("INSTALL_ROOT", "dashboard/.auth-token"),
            "DASHBOARD_LOG_PATH": ("LOGS_DIR", "command-center.log"),
            "CONFIG_PATH": ("CONFIG_DIR", "openclaw.json"),
            "ENV_FILE_PATH": ("CONFIG_DIR", ".env"),
        }

    def _apply_overrides(self, overrides: Dict[str, Any]) -> None:
        for key, value in overrides.items():
            if not key.isupper() or not hasattr(default_settings, key):
                raise KeyError(f"Unknown setting '{key}'")
            # Coerce path strings back to Path objects if necessary
            if isinstance(getattr(default_settings, key), Path) and value is not None:
                value = Path(value)
            setattr(self, key, value)
            log.debug(f"Overridden setting: {key} = {value}")

        # Order matters: LOGS_DIR must be settled before DASHBOARD_LOG_PATH.
        for key, (base_key, relative) in self._derived_from_root.items():
            if key in overrides:
                continue
            if base_key in overrides or (key == "DASHBOARD_LOG_PATH" and "INSTALL_ROOT" in overrides):
                setattr(self, key, Path(getattr(self, base_key)) / relative)

    def _resolve_auth_token(self) -> str:
        """
        Returns the shared secret for the Control API.

        Precedence: DASHBOARD_TOKEN setting, then the token file, then a newly
        generated token that is written to the token file with mode 0600.
        """
        if self.DASHBOARD_TOKEN:
            return self.DASHBOARD_TOKEN

        token_path = Path(self.AUTH_TOKEN_PATH)
        try:
            token = token_path.read_text(encoding="utf-8").strip()
            if token:
                return token
        except FileNotFoundError:
            pass
        except OSError as e:
            log.warning(f"Could not read auth token file '{token_path}': {e}")

        token = secrets.token_hex(24)
        try:
            token_path.parent.mkdir(parents=True, exist_ok=True)
            token_path.write_text(token, encoding="utf-8")
            token_path.chmod(0o600)
            log.info(f"Generated a new dashboard auth token at '{token_path}'.")
        except OSError as e:
            log.error(f"Failed to persist the auth token to '{token_path}': {e}. It is valid for this run only.")
        return token

    def get(self, item: str, default: Any = None) -> Any:
        """Provides dictionary-like access to settings with a default value."""
        return getattr(self, item, default)

    def base_env(self) -> Dict[str, str]:
        """The environment handed to managed processes."""
        install_root = Path(self.INSTALL_ROOT)
        node_paths = [str(install_root / entry) for entry in self.NODE_BIN_DIRS]
        env = dict(os.environ)
        env.update({
            "PATH": ":".join(node_paths + [self.SYSTEM_PATH]),
            "FNM_DIR": str(install_root / "env" / ".fnm"),
            "NPM_CONFIG_PREFIX": str(install_root / "env" / ".npm-global"),
            "OPENCLAW_CONFIG_DIR": str(self.CONFIG_DIR),
        })
        return env

    def service_definition(self, name: str) -> Dict[str, Any]:
        """
        :raises NotFound: If name is not a configured managed service.
        """
        definition = self.MANAGED_SERVICES.get(name)
        if definition is None:
            raise NotFound(f"Unknown service '{name}'")
        return definition

    def service_log_path(self, name: str) -> Path:
        definition = self.service_definition(name)
        return Path(self.LOGS_DIR) / definition.get("log_file", f"{name}.log")

    def build_spawn_spec(self, name: str) -> SpawnSpec:
        """
        Returns the SpawnSpec of a configured managed service.

        :raises NotFound: If name is not a configured managed service.
        """
        definition = self.service_definition(name)
        cwd = Path(definition.get("cwd", "."))
        if not cwd.is_absolute():
            cwd = Path(self.INSTALL_ROOT) / cwd
        env = self.base_env()
        env.update(definition.get("env", {}))
        return SpawnSpec(
            command=list(definition["command"]),
            cwd=cwd,
            env=env,
            log_path=self.service_log_path(name),
        )
