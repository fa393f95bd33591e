import sys
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Optional
from command_center.log.handler import LokiHandler

if TYPE_CHECKING:
    from command_center.local.config import ControlSettings

LOG_FORMAT = '%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s'


class MainFormatter(logging.Formatter):
    """The formatter shared by the console and file handlers."""

    def __init__(self) -> None:
        super().__init__(LOG_FORMAT)


def setup_logging(console_level: int = logging.INFO, settings: Optional["ControlSettings"] = None) -> None:
    """
    Configures the root logger for the application.
    This sets up handlers for console, the dashboard log file and optionally Loki,
    clearing any previously configured handlers to prevent duplication.

    :param console_level: The logging level for the console output (e.g., logging.INFO).
    :param settings: The active settings. Without them only the console handler is installed.
    """
    root_logger = logging.getLogger()
    # Set root level to lowest to capture all messages for handler filtering
    root_logger.setLevel(logging.DEBUG)

    # Clear any existing handlers to prevent re-adding them on re-runs
    if root_logger.hasHandlers():
        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)
            handler.close()

    # --- Console Handler ---
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(MainFormatter())
    root_logger.addHandler(console_handler)

    if settings is None:
        return

    # --- File Handler ---
    try:
        log_path = Path(settings.DASHBOARD_LOG_PATH)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(MainFormatter())
        root_logger.addHandler(file_handler)
    except OSError as e:
        root_logger.error(f"Failed to open log file: {e}. Logging to file will be disabled.")

    # --- Loki Handler (conditional) ---
    if settings.LOKI_ENABLED:
        try:
            loki_handler = LokiHandler(
                url=settings.LOKI_URL,
                org_id=settings.LOKI_ORG_ID,
                flush_interval=settings.LOG_BUFFER_FLUSH_INTERVAL,
                batch_size=settings.LOG_BUFFER_SIZE,
            )
            loki_handler.setLevel(logging.INFO) # Avoid spamming Loki with DEBUG logs
            loki_handler.setFormatter(MainFormatter())
            root_logger.addHandler(loki_handler)
            root_logger.info(f"Grafana Loki logging handler initialized for {settings.LOKI_URL}.")
        except Exception as e:
            root_logger.error(f"Failed to initialize Grafana Loki logging handler: {e}")


def set_console_level(level: int) -> bool:
    """Changes the level of the console handler. Returns False if none is installed."""
    for handler in logging.getLogger().handlers:
        if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
            handler.setLevel(level)
            return True
    return False
