import socket
import psutil
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional

if TYPE_CHECKING:
    from command_center.local.config import ControlSettings
    from command_center.local.sandbox import ConfigStore
    from command_center.local.supervisor import Supervisor

log = logging.getLogger(__name__)


def is_port_open(host: str, port: int, timeout: float) -> bool:
    """
    Checks whether something accepts TCP connections on host:port.

    A timeout is a local failure and reports False; it is not retried.
    """
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except socket.timeout:
        log.debug(f"Port check on {host}:{port} timed out after {timeout}s.")
        return False
    except OSError:
        return False


def get_disk_usage_percent(path: Path) -> Optional[float]:
    try:
        return psutil.disk_usage(str(path)).percent
    except OSError as e:
        log.debug(f"Could not read disk usage for '{path}': {e}")
        return None


def get_service_port(settings: "ControlSettings", config_store: "ConfigStore", name: str) -> Optional[int]:
    """Reads the port a service listens on from the configuration document."""
    port_key = settings.service_definition(name).get("port_key")
    if not port_key:
        return None
    default = settings.DEFAULT_GATEWAY_PORT if name == settings.DEFAULT_SERVICE else None
    try:
        port = config_store.get_value(port_key, default)
        return int(port) if port is not None else None
    except (TypeError, ValueError):
        log.warning(f"Ignoring invalid port value for '{name}' at '{port_key}'.")
        return default


def collect_alerts(settings: "ControlSettings", supervisor: "Supervisor", config_store: "ConfigStore") -> List[Dict[str, str]]:
    """
    Builds the alert summary shown on the dashboard.

    :return: A list of {'type': 'error'|'warn', 'message': ...} entries.
    """
    alerts: List[Dict[str, str]] = []
    name = settings.DEFAULT_SERVICE

    status = supervisor.status(name)
    if not status.running:
        alerts.append({"type": "error", "message": f"{name.capitalize()} is not running"})
    else:
        port = get_service_port(settings, config_store, name)
        if port and not is_port_open("127.0.0.1", port, settings.PORT_CHECK_TIMEOUT):
            alerts.append({"type": "warn", "message": f"{name.capitalize()} is running but port {port} is not accepting connections"})

    install_root = Path(settings.INSTALL_ROOT)
    if not install_root.exists():
        alerts.append({"type": "error", "message": "Install directory missing!"})
    else:
        usage = get_disk_usage_percent(install_root)
        if usage is not None and usage > settings.DISK_USAGE_ALERT_PERCENT:
            alerts.append({"type": "warn", "message": f"Disk usage at {usage:.0f}%"})

    return alerts
