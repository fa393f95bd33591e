"""
This module contains the default configuration settings for the Command Center.
It defines paths, supervision timings, the managed service table and logging options.
Values are read once from the environment (and the .env file) and then copied into a
ControlSettings object, which is what the rest of the application receives.
"""

import os
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv(override=False)

#* --- Core Paths ---
PACKAGE_DIR = pathlib.Path(__file__).resolve().parent
# The dashboard lives at <INSTALL_ROOT>/dashboard, so the install root is one level above the project.
INSTALL_ROOT = pathlib.Path(os.getenv("OPENCLAW_ROOT", PACKAGE_DIR.parent.parent)).resolve()
CONFIG_DIR = pathlib.Path(os.getenv("OPENCLAW_CONFIG_DIR", pathlib.Path.home() / ".openclaw"))
WORKSPACE_DIR = INSTALL_ROOT / "workspace"
RUN_DIR = INSTALL_ROOT / "dashboard" / "run"
LOGS_DIR = INSTALL_ROOT / "dashboard" / "logs"

#* --- Managed Files ---
CONFIG_PATH = CONFIG_DIR / "openclaw.json"
ENV_FILE_PATH = CONFIG_DIR / ".env"
AUTH_TOKEN_PATH = INSTALL_ROOT / "dashboard" / ".auth-token"
DASHBOARD_LOG_PATH = LOGS_DIR / "command-center.log"

#* --- Dashboard (Control API) Settings ---
DASHBOARD_HOST = os.getenv("DASHBOARD_HOST", "127.0.0.1")
DASHBOARD_PORT = int(os.getenv("DASHBOARD_PORT", "18810"))
# Empty means: use the token file, or generate one on first start.
DASHBOARD_TOKEN = os.getenv("DASHBOARD_TOKEN", "")

#* --- Supervision Settings ---
PROBE_TIMEOUT = 3.0             # seconds for a single liveness probe
PORT_CHECK_TIMEOUT = 1.0        # seconds for the TCP port check
START_GRACE_SECONDS = 2.0       # wait before re-querying status after a start
STOP_GRACE_SECONDS = 1.0        # wait before re-querying status after a stop
RESTART_DELAY_SECONDS = 1.5     # pause between stop and start so ports and locks are released
DEFAULT_SERVICE = "gateway"
DEFAULT_GATEWAY_PORT = 18789

#* --- Logs & Alerts ---
DEFAULT_LOG_LINES = 100
MAX_LOG_LINES = 1000
DISK_USAGE_ALERT_PERCENT = 85
MAX_FILE_BYTES = 5 * 1024 * 1024  # largest file served or accepted by the file endpoints

#* --- Managed Services ---
# Each entry describes how a service is spawned. Paths are relative to INSTALL_ROOT
# unless absolute. The command is never taken from a request.
MANAGED_SERVICES = {
    "gateway": {
        "command": ["openclaw", "gateway"],
        "cwd": "workspace",
        "log_file": "gateway.log",
        "port_key": "gateway.port",
    },
}

# Extra PATH entries for the node toolchain bundled with the install.
NODE_BIN_DIRS = [
    "env/.npm-global/bin",
    "env/.fnm/aliases/default/bin",
]
SYSTEM_PATH = "/usr/local/bin:/usr/bin:/bin:/usr/sbin:/sbin"

#* --- Logging ---
VERBOSE_LOGGING = os.getenv("VERBOSE_LOGGING", "False").lower() in ('true', '1', 't')

# Grafana Loki (optional log shipping)
LOKI_ENABLED = os.getenv("LOKI_ENABLED", "False").lower() in ('true', '1', 't')
LOKI_URL = os.getenv("LOKI_URL", "http://localhost:3100")
LOKI_ORG_ID = os.getenv("LOKI_ORG_ID", "")
LOG_BUFFER_SIZE = 100
LOG_BUFFER_FLUSH_INTERVAL = 10

