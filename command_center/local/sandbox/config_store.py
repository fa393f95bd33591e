import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional
from command_center.local.sandbox.fileio import atomic_write, backup_file, backup_path_for

log = logging.getLogger(__name__)


class ConfigStore:
    """
    Owns the managed process's JSON configuration document.

    Every mutating write first snapshots the current bytes to '<file>.bak' and then
    replaces the document atomically. Readers never see a partial document.
    """

    def __init__(self, config_path: Path) -> None:
        """
        :param config_path: The path of the JSON document (e.g. ~/.openclaw/openclaw.json).
        """
        self.path = Path(config_path)
        self.backup_path = backup_path_for(self.path)
        self._write_lock = threading.Lock()

    def exists(self) -> bool:
        return self.path.is_file()

    def read(self) -> Optional[Dict[str, Any]]:
        """
        Reads and parses the configuration document.

        :return: The document, or None if it is missing, unreadable or not a JSON object.
        """
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            log.warning(f"Could not read config file '{self.path}': {e}")
            return None

        try:
            doc = json.loads(raw)
        except json.JSONDecodeError as e:
            log.warning(f"Config file '{self.path}' is not valid JSON: {e}")
            return None
        if not isinstance(doc, dict):
            log.warning(f"Config file '{self.path}' does not contain a JSON object.")
            return None
        return doc

    def write(self, doc: Dict[str, Any]) -> None:
        """
        Replaces the configuration document, keeping a backup of the previous bytes.

        :param doc: The new document.
        :raises ValueError: If the document is not a JSON-serializable object.
        """
        with self._write_lock:
            self._write_locked(doc)

    def merge(self, path_expression: str, value: Any) -> Dict[str, Any]:
        """
        Sets a single value addressed by a dotted key path (e.g. 'gateway.port').

        Missing intermediate objects are created. The write uses the same
        backup-then-replace sequence as write().

        :param path_expression: Dotted key path.
        :param value: The new leaf value.
        :return: The full document as written.
        :raises ValueError: On an empty segment or when an intermediate value is not an object.
        """
        keys = split_key_path(path_expression)
        with self._write_lock:
            doc = self.read() or {}
            node = doc
            for depth, key in enumerate(keys[:-1]):
                child = node.get(key)
                if child is None:
                    child = node[key] = {}
                elif not isinstance(child, dict):
                    prefix = ".".join(keys[:depth + 1])
                    raise ValueError(f"Cannot set '{path_expression}': '{prefix}' is not an object")
                node = child
            node[keys[-1]] = value
            self._write_locked(doc)
            log.info(f"Config key '{path_expression}' updated.")
            return doc

    def get_value(self, path_expression: str, default: Any = None) -> Any:
        """Reads a single value addressed by a dotted key path."""
        node: Any = self.read()
        for key in split_key_path(path_expression):
            if not isinstance(node, dict) or key not in node:
                return default
            node = node[key]
        return node

    def _write_locked(self, doc: Dict[str, Any]) -> None:
        if not isinstance(doc, dict):
            raise ValueError("Configuration document must be a JSON object")
        try:
            payload = json.dumps(doc, indent=2, ensure_ascii=False).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise ValueError(f"Configuration document is not JSON serializable: {e}") from e

        backup_file(self.path)
        atomic_write(self.path, payload)
        log.debug(f"Wrote config document '{self.path}' ({len(payload)} bytes).")


def split_key_path(path_expression: str) -> List[str]:
    """Splits 'a.b.c' into its segments, rejecting empty ones."""
    if not isinstance(path_expression, str) or not path_expression:
        raise ValueError("Key path must be a non-empty string")
    keys = path_expression.split(".")
    if any(not key for key in keys):
        raise ValueError(f"Key path '{path_expression}' contains an empty segment")
    return keys
