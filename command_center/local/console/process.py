import logging
from typing import List
from command_center.local.console.handler import (
    ConsoleContext, display_status, handle_config_command, handle_logs_command, handle_restart_command,
    handle_start_command, handle_stop_command, print_help, run_safely, serve, toggle_verbose_logging,
)

log = logging.getLogger(__name__)


def execute_command(ctx: ConsoleContext, command: str, args: List[str]) -> bool:
    """
    Executes a single command from the user.

    :param ctx: The settings, supervisor and config store the command acts on.
    :param command: The main command string (e.g., 'start', 'config').
    :param args: A list of arguments for the command.
    :return bool: True if the console should exit, False otherwise.
    """
    log.debug(f"Executing command: {command}, args: {args}")
    command_map = {
        "serve": lambda: serve(ctx),
        "start": lambda: run_safely(handle_start_command, ctx, args),
        "stop": lambda: run_safely(handle_stop_command, ctx, args),
        "restart": lambda: run_safely(handle_restart_command, ctx, args),
        "status": lambda: run_safely(display_status, ctx, args),
        "logs": lambda: run_safely(handle_logs_command, ctx, args),
        "config": lambda: handle_config_command(ctx, args),
        "verbose": lambda: toggle_verbose_logging(ctx),
        "help": print_help,
        "exit": lambda: True,
    }

    if command not in command_map:
        log.info(f"Unknown command: '{command}'. Type 'help' for a list of commands.")
        return False
    return command_map[command]() is True
