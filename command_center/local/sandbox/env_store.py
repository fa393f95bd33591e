import io
import re
import logging
import threading
from pathlib import Path
from typing import Dict
from dotenv import dotenv_values
from command_center.local.sandbox.fileio import atomic_write

log = logging.getLogger(__name__)

SECRET_KEY_PATTERN = re.compile(r"key|secret|token|password|api", re.IGNORECASE)
ENV_KEY_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_.:-]*$")
MASK = "••••"


def mask_value(value: str) -> str:
    """Masks a secret, keeping the first six and last four characters of long values."""
    if not value or len(value) < 8:
        return MASK * 2
    return f"{value[:6]}{MASK}{value[-4:]}"


def parse_env(text: str) -> Dict[str, str]:
    """
    Parses .env text with python-dotenv.

    Quoting, escapes and an 'export' prefix follow dotenv rules. Variables are
    not interpolated, and a bare KEY without '=' reads as an empty string.
    """
    parsed = dotenv_values(stream=io.StringIO(text), interpolate=False)
    return {key: "" if value is None else value for key, value in parsed.items()}


def quote_value(value: str) -> str:
    """Double-quotes a value so that dotenv reads it back unchanged."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class EnvStore:
    """Reads and edits the managed process's .env file."""

    def __init__(self, env_path: Path) -> None:
        self.path = Path(env_path)
        self._write_lock = threading.Lock()

    def read(self) -> Dict[str, str]:
        try:
            return parse_env(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, UnicodeDecodeError) as e:
            log.warning(f"Could not read env file '{self.path}': {e}")
            return {}

    def masked(self) -> Dict[str, str]:
        """Returns all variables with secret-looking values masked."""
        return {
            key: mask_value(value) if SECRET_KEY_PATTERN.search(key) else value
            for key, value in self.read().items()
        }

    def set(self, key: str, value: str) -> None:
        """
        Creates or replaces a variable.

        :raises ValueError: If the key is not a valid variable name or the value spans lines.
        """
        if not isinstance(key, str) or not ENV_KEY_PATTERN.match(key):
            raise ValueError(f"Invalid variable name: {key!r}")
        value = "" if value is None else str(value)
        if "\n" in value or "\r" in value:
            raise ValueError("Variable values must be single-line")
        with self._write_lock:
            values = self.read()
            values[key] = value
            self._write_locked(values)
        log.info(f"Environment variable '{key}' updated.")

    def delete(self, key: str) -> bool:
        """Removes a variable. Returns False if it did not exist."""
        with self._write_lock:
            values = self.read()
            if key not in values:
                return False
            del values[key]
            self._write_locked(values)
        log.info(f"Environment variable '{key}' removed.")
        return True

    def _write_locked(self, values: Dict[str, str]) -> None:
        text = "".join(f"{key}={quote_value(value)}\n" for key, value in values.items())
        atomic_write(self.path, text.encode("utf-8"))
