import json
import time
import asyncio
import logging
import setproctitle
from typing import List, NamedTuple
from command_center.local.config import ControlSettings
from command_center.local.errors import ControlError
from command_center.local.sandbox import ConfigStore
from command_center.local.supervisor import OperationResult, Supervisor
from command_center.local.supervisor.supervisor import STARTING
from command_center.log import clamp_line_count, set_console_level, tail_file

log = logging.getLogger(__name__)

PROCESS_TITLE = "OpenClaw - Command Center"


class ConsoleContext(NamedTuple):
    """The objects a console command operates on."""
    settings: ControlSettings
    supervisor: Supervisor
    config_store: ConfigStore


def _service_from_args(ctx: ConsoleContext, args: List[str]) -> str:
    return args[0] if args else ctx.settings.DEFAULT_SERVICE


def _format_uptime(seconds: float) -> str:
    return time.strftime('%H:%M:%S', time.gmtime(seconds)) if seconds < 86400 else f"{seconds / 86400:.1f} days"


def print_result(name: str, result: OperationResult) -> None:
    outcome = "OK" if result.ok else "FAILED"
    pid = f" (PID {result.pid})" if result.pid else ""
    print(f"[{outcome}] {name}: {result.message}{pid} -> {result.status}")


def handle_start_command(ctx: ConsoleContext, args: List[str]) -> None:
    name = _service_from_args(ctx, args)
    result = ctx.supervisor.start(name, ctx.settings.build_spawn_spec(name))
    if result.ok and result.status == STARTING:
        result = ctx.supervisor.wait_until_running(name, ctx.settings.START_GRACE_SECONDS)
    print_result(name, result)


def handle_stop_command(ctx: ConsoleContext, args: List[str]) -> None:
    name = _service_from_args(ctx, args)
    ctx.settings.service_definition(name)
    print_result(name, ctx.supervisor.stop(name))


def handle_restart_command(ctx: ConsoleContext, args: List[str]) -> None:
    name = _service_from_args(ctx, args)
    log.info(f"Restarting '{name}'...")
    result = ctx.supervisor.restart(name, ctx.settings.build_spawn_spec(name))
    if result.ok and result.status == STARTING:
        result = ctx.supervisor.wait_until_running(name, ctx.settings.START_GRACE_SECONDS)
    print_result(name, result)


def display_status(ctx: ConsoleContext, args: List[str]) -> None:
    """Checks and displays the current status of the managed services."""
    names = args or sorted(ctx.settings.MANAGED_SERVICES)
    print("\n--- Service Status ---")
    for name in names:
        ctx.settings.service_definition(name)
        status = ctx.supervisor.status(name)
        if status.running:
            uptime = _format_uptime(status.uptime) if status.uptime is not None else "unknown"
            print(f"  - {name:<20} : RUNNING | PID {status.pid:<8} | Uptime: {uptime}")
        else:
            print(f"  - {name:<20} : STOPPED")
    print("-" * 22 + "\n")


def handle_logs_command(ctx: ConsoleContext, args: List[str]) -> None:
    """Prints the tail of a service log: 'logs [name] [lines]'."""
    name = _service_from_args(ctx, args)
    lines = clamp_line_count(args[1] if len(args) > 1 else None, ctx.settings.DEFAULT_LOG_LINES, ctx.settings.MAX_LOG_LINES)
    log_path = ctx.settings.service_log_path(name)
    content = tail_file(log_path, lines)
    if not content:
        print(f"No log output for '{name}' at {log_path}.")
        return
    print(f"\n--- Last {len(content)} lines of {log_path} ---")
    for line in content:
        print(line)
    print()


def _parse_cli_value(value_str: str):
    """Interprets a console argument as JSON, falling back to the plain string."""
    try:
        return json.loads(value_str)
    except json.JSONDecodeError:
        return value_str


def handle_config_command(ctx: ConsoleContext, args: List[str]) -> None:
    """
    Handles all sub-commands for the 'config' command-line interface.

    :param args: A list of string arguments following the 'config' command.
    """
    sub_command = args[0].lower() if args else "show"
    store = ctx.config_store

    if sub_command == "show":
        doc = store.read()
        if doc is None:
            state = "unreadable" if store.exists() else "missing"
            print(f"Configuration file {store.path} is {state}.")
            return
        print(f"\n--- {store.path} ---")
        print(json.dumps(doc, indent=2))
        print()
    elif sub_command == "get" and len(args) == 2:
        print(json.dumps(store.get_value(args[1]), indent=2))
    elif sub_command == "set" and len(args) >= 3:
        key, value = args[1], _parse_cli_value(" ".join(args[2:]))
        try:
            store.merge(key, value)
        except ValueError as e:
            print(f"Error: {e}")
            return
        print(f"Set '{key}'. Previous file saved to {store.backup_path}.")
        print("A restart ('restart' command) is required for the managed service to pick it up.")
    else:
        print("\nConfig Command Help:")
        print("  config show                - Display the configuration document.")
        print("  config get KEY             - Display one value (dotted key, e.g. gateway.port).")
        print("  config set KEY VALUE       - Change one value. VALUE is parsed as JSON when possible.")


def toggle_verbose_logging(ctx: ConsoleContext) -> None:
    """Toggles verbose (DEBUG level) logging for the console handler."""
    ctx.settings.VERBOSE_LOGGING = not ctx.settings.VERBOSE_LOGGING
    new_level = logging.DEBUG if ctx.settings.VERBOSE_LOGGING else logging.INFO

    status = "ON" if ctx.settings.VERBOSE_LOGGING else "OFF"
    if set_console_level(new_level):
        print(f"Verbose console logging is now {status}.")
        log.debug("Debug logging test: This message should only appear when verbose is ON.")
    else:
        print("Could not find console handler to modify level.")


def serve(ctx: ConsoleContext) -> None:
    """Runs the Control API under Hypercorn until interrupted."""
    from hypercorn.asyncio import serve as hypercorn_serve
    from hypercorn.config import Config
    from command_center.web import create_app

    setproctitle.setproctitle(PROCESS_TITLE)
    settings = ctx.settings
    app = create_app(settings, supervisor=ctx.supervisor, config_store=ctx.config_store)

    config = Config()
    config.bind = [f"{settings.DASHBOARD_HOST}:{settings.DASHBOARD_PORT}"]
    config.accesslog = "-"
    config.errorlog = "-"

    print("")
    print("OpenClaw Command Center")
    print(f"   Install:   {settings.INSTALL_ROOT}")
    print(f"   Config:    {settings.CONFIG_DIR}")
    print(f"   Dashboard: http://{settings.DASHBOARD_HOST}:{settings.DASHBOARD_PORT}/?token={settings.AUTH_TOKEN}")
    print("")
    try:
        asyncio.run(hypercorn_serve(app, config))
    except KeyboardInterrupt:
        log.info("Control API stopped by user.")


def run_safely(func, *args) -> None:
    """Runs a console command, reporting control errors instead of raising them."""
    try:
        func(*args)
    except ControlError as e:
        print(f"Error: {e.message}")
    except ValueError as e:
        print(f"Error: {e}")


def print_help() -> None:
    """Prints the main help text for the console."""
    print("\nAvailable commands:")
    print("  serve                  - Run the control API (HTTP dashboard backend).")
    print("  start [name]           - Start a managed service (default: gateway).")
    print("  stop [name]            - Send a stop signal to a managed service.")
    print("  restart [name]         - Stop, wait, and start a managed service.")
    print("  status [name]          - Show whether services are running.")
    print("  logs [name] [lines]    - Show the tail of a service log.")
    print("  config <cmd>           - Inspect or edit the configuration. Use 'config help'.")
    print("  verbose                - Toggle detailed DEBUG log output in the console.")
    print("  exit                   - Exit the management console.")
    print()
