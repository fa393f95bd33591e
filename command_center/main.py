import sys
import logging
import threading

import command_center.local.console as console
from command_center.local.config import ControlSettings
from command_center.local.sandbox import ConfigStore
from command_center.local.supervisor import ProcessRegistry, Supervisor
from command_center.log import setup_logging

log = logging.getLogger("console")

CONSOLE_LOCK = threading.Lock()


def build_context(settings: ControlSettings) -> console.ConsoleContext:
    """Wires the registry, supervisor and config store for one settings object."""
    registry = ProcessRegistry(settings.RUN_DIR, probe_timeout=settings.PROBE_TIMEOUT)
    supervisor = Supervisor(registry, restart_delay=settings.RESTART_DELAY_SECONDS)
    return console.ConsoleContext(settings, supervisor, ConfigStore(settings.CONFIG_PATH))


def main() -> None:
    """The main entry point for the console application."""
    settings = ControlSettings()
    setup_logging(logging.INFO, settings=settings)
    ctx = build_context(settings)

    # Non-interactive mode for one-off commands
    if len(sys.argv) > 1:
        command, args = sys.argv[1].lower(), sys.argv[2:]
        if "--verbose" in args:
            args.remove("--verbose")
            console.toggle_verbose_logging(ctx)
        console.execute_command(ctx, command, args)
        return

    # Interactive mode
    print("--- OpenClaw Command Center ---")
    print("Type 'help' for a list of commands.")

    with CONSOLE_LOCK:
        status = ctx.supervisor.status(settings.DEFAULT_SERVICE)
        state = f"running (PID {status.pid})" if status.running else "stopped"
    print(f"Service '{settings.DEFAULT_SERVICE}' is currently {state}.")

    while True:
        try:
            command_line_str = input("> ")
            with CONSOLE_LOCK:
                command_line = command_line_str.strip().split()
                if not command_line:
                    continue
                command, args = command_line[0].lower(), command_line[1:]
                if console.execute_command(ctx, command, args):
                    break

        except (KeyboardInterrupt, EOFError):
            log.warning("\nExiting console.")
            break
        except Exception as e:
            log.error(f"An unexpected error occurred in the console: {e}", exc_info=True)


if __name__ == "__main__":
    main()
    print("Exiting console application. See you next time!")
