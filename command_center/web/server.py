import json
import time
import logging
from pathlib import Path
from typing import Any, Dict, Optional
from starlette.routing import Route
from starlette.requests import Request
from starlette.middleware import Middleware
from starlette.applications import Starlette
from starlette.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from command_center.local.config import ControlSettings
from command_center.local.errors import ControlError, OutOfBounds, ProbeTimeout
from command_center.local.health import collect_alerts
from command_center.local.sandbox import ConfigStore, EnvStore, PathGuard, atomic_write, backup_file
from command_center.local.supervisor import ProcessRegistry, Supervisor, process_utils
from command_center.local.supervisor.supervisor import RUNNING, STARTING, STOPPED, STOPPING
from command_center.log import clamp_line_count, tail_file
from command_center.web.middleware import SecurityHeadersMiddleware, TokenAuthMiddleware

log = logging.getLogger(__name__)

HEALTH_PATH = "/api/health"


class BadRequest(ControlError):
    status_code = 400


class Forbidden(ControlError):
    status_code = 403


class PayloadTooLarge(ControlError):
    status_code = 413


# --- Helpers ---
async def read_json_object(request: Request) -> Dict[str, Any]:
    """Parses the request body and requires a JSON object."""
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise BadRequest("Invalid JSON")
    if not isinstance(payload, dict):
        raise BadRequest("Request body must be a JSON object")
    return payload


def _state(request: Request) -> Any:
    return request.app.state


def _service_name(request: Request) -> str:
    name = request.path_params["name"]
    # Raises NotFound for names that are not configured services.
    _state(request).settings.service_definition(name)
    return name


# --- Health ---
async def health(request: Request) -> JSONResponse:
    settings: ControlSettings = _state(request).settings
    return JSONResponse({"ok": True, "port": settings.DASHBOARD_PORT, "timestamp": int(time.time() * 1000)})


# --- Service Control ---
async def service_status(request: Request) -> JSONResponse:
    name = _service_name(request)
    status = await run_in_threadpool(_state(request).supervisor.status, name)
    return JSONResponse({"running": status.running, "pid": status.pid, "uptime": status.uptime})


async def _start_response(request: Request, name: str, result) -> JSONResponse:
    """Waits the start grace period, then reports whether the new process is up."""
    settings: ControlSettings = _state(request).settings
    if result.ok and result.status == STARTING:
        follow_up = await run_in_threadpool(_state(request).supervisor.wait_until_running, name, settings.START_GRACE_SECONDS)
        return JSONResponse({
            "ok": True,
            "pid": follow_up.pid or result.pid,
            "message": "Started" if follow_up.status == RUNNING else follow_up.message,
            "status": follow_up.status,
        })
    return JSONResponse({"ok": result.ok, "pid": result.pid, "message": result.message, "status": result.status})


async def service_start(request: Request) -> JSONResponse:
    name = _service_name(request)
    state = _state(request)
    spec = state.settings.build_spawn_spec(name)
    result = await run_in_threadpool(state.supervisor.start, name, spec)
    return await _start_response(request, name, result)


async def service_stop(request: Request) -> JSONResponse:
    name = _service_name(request)
    state = _state(request)
    result = await run_in_threadpool(state.supervisor.stop, name)
    status = result.status
    if result.ok and status == STOPPING and state.settings.STOP_GRACE_SECONDS > 0:
        # The stop is not awaited; re-probe once so the answer reflects a quick exit.
        still_running = await run_in_threadpool(
            _alive_after, result.pid, state.settings.STOP_GRACE_SECONDS, state.settings.PROBE_TIMEOUT
        )
        status = STOPPING if still_running else STOPPED
    return JSONResponse({"ok": result.ok, "message": result.message, "status": status})


def _alive_after(pid: Optional[int], delay: float, probe_timeout: float) -> bool:
    """Re-probes pid after delay. A probe that times out counts as still alive."""
    time.sleep(delay)
    if pid is None:
        return False
    try:
        return process_utils.probe_process(pid, None, probe_timeout)
    except ProbeTimeout as e:
        log.warning(f"Post-stop probe of PID {pid} timed out: {e}")
        return True


async def service_restart(request: Request) -> JSONResponse:
    name = _service_name(request)
    state = _state(request)
    spec = state.settings.build_spawn_spec(name)
    result = await run_in_threadpool(state.supervisor.restart, name, spec)
    return await _start_response(request, name, result)


async def service_logs(request: Request) -> JSONResponse:
    name = _service_name(request)
    settings: ControlSettings = _state(request).settings
    lines = clamp_line_count(request.query_params.get("lines"), settings.DEFAULT_LOG_LINES, settings.MAX_LOG_LINES)
    content = await run_in_threadpool(tail_file, settings.service_log_path(name), lines)
    return JSONResponse({"ok": True, "logs": "\n".join(content)})


# --- Configuration Document ---
async def get_config(request: Request) -> JSONResponse:
    store: ConfigStore = _state(request).config_store
    content = await run_in_threadpool(store.read)
    return JSONResponse({"exists": store.exists(), "content": content})


async def put_config(request: Request) -> JSONResponse:
    payload = await read_json_object(request)
    document = payload.get("config")
    if not isinstance(document, dict):
        raise BadRequest("'config' must be a JSON object")
    try:
        await run_in_threadpool(_state(request).config_store.write, document)
    except ValueError as e:
        raise BadRequest(str(e))
    log.info("Configuration document replaced through the API.")
    return JSONResponse({"ok": True})


async def put_config_key(request: Request) -> JSONResponse:
    payload = await read_json_object(request)
    if "key" not in payload or "value" not in payload:
        raise BadRequest("'key' and 'value' are required")
    try:
        await run_in_threadpool(_state(request).config_store.merge, payload["key"], payload["value"])
    except ValueError as e:
        raise BadRequest(str(e))
    return JSONResponse({"ok": True})


# --- Sandboxed Files ---
async def get_file(request: Request) -> JSONResponse:
    state = _state(request)
    path = state.path_guard.resolve(request.query_params.get("path", ""))
    content = await run_in_threadpool(_read_text_file, path, state.settings.MAX_FILE_BYTES)
    return JSONResponse({"exists": content is not None, "content": content})


def _read_text_file(path: Path, max_bytes: int) -> Optional[str]:
    """Returns the file's text, or None if there is no regular file at path."""
    try:
        if not path.is_file():
            return None
        if path.stat().st_size > max_bytes:
            raise PayloadTooLarge("File is too large to display")
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        raise BadRequest("File is not a UTF-8 text file")
    except PermissionError:
        raise Forbidden("Permission denied reading the file")
    except OSError as e:
        log.warning(f"Could not read '{path}': {e}")
        raise BadRequest(f"Cannot read file: {e.strerror or e}")


async def put_file(request: Request) -> JSONResponse:
    state = _state(request)
    payload = await read_json_object(request)
    content = payload.get("content")
    if not isinstance(content, str):
        raise BadRequest("'content' must be a string")
    if not isinstance(payload.get("path"), str):
        raise BadRequest("'path' must be a string")
    path = state.path_guard.resolve(payload["path"])
    if path == state.path_guard.root or path.is_dir():
        raise BadRequest("Path refers to a directory")
    data = content.encode("utf-8")
    if len(data) > state.settings.MAX_FILE_BYTES:
        raise PayloadTooLarge("Content is too large")

    def write() -> None:
        backup_file(path)
        try:
            atomic_write(path, data)
        except PermissionError:
            raise Forbidden("Permission denied writing the file")
        except OSError as e:
            log.warning(f"Could not write '{path}': {e}")
            raise BadRequest(f"Cannot write file: {e.strerror or e}")

    await run_in_threadpool(write)
    log.info(f"File '{path}' updated through the API.")
    return JSONResponse({"ok": True})


# --- Alerts ---
async def alerts(request: Request) -> JSONResponse:
    state = _state(request)
    found = await run_in_threadpool(collect_alerts, state.settings, state.supervisor, state.config_store)
    return JSONResponse({"alerts": found})


# --- Environment File ---
async def get_env(request: Request) -> JSONResponse:
    store: EnvStore = _state(request).env_store
    if request.query_params.get("reveal", "false").lower() == "true":
        values = await run_in_threadpool(store.read)
    else:
        values = await run_in_threadpool(store.masked)
    return JSONResponse({"vars": values})


async def set_env(request: Request) -> JSONResponse:
    payload = await read_json_object(request)
    try:
        await run_in_threadpool(_state(request).env_store.set, payload.get("key"), payload.get("value"))
    except ValueError as e:
        raise BadRequest(str(e))
    return JSONResponse({"ok": True})


async def delete_env(request: Request) -> JSONResponse:
    removed = await run_in_threadpool(_state(request).env_store.delete, request.path_params["key"])
    return JSONResponse({"ok": True, "removed": removed})


# --- Error Handling ---
async def handle_control_error(request: Request, exc: ControlError) -> JSONResponse:
    if isinstance(exc, OutOfBounds):
        log.warning(f"Rejected out-of-bounds path on {request.url.path}: {exc.message}")
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    log.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse({"error": "Internal Server Error"}, status_code=500)


# --- Application Instance Creation ---
routes = [
    Route(HEALTH_PATH, endpoint=health, methods=["GET"]),
    Route("/api/services/{name}/status", endpoint=service_status, methods=["GET"]),
    Route("/api/services/{name}/start", endpoint=service_start, methods=["POST"]),
    Route("/api/services/{name}/stop", endpoint=service_stop, methods=["POST"]),
    Route("/api/services/{name}/restart", endpoint=service_restart, methods=["POST"]),
    Route("/api/services/{name}/logs", endpoint=service_logs, methods=["GET"]),
    Route("/api/config", endpoint=get_config, methods=["GET"]),
    Route("/api/config", endpoint=put_config, methods=["PUT"]),
    Route("/api/config/key", endpoint=put_config_key, methods=["PUT"]),
    Route("/api/files", endpoint=get_file, methods=["GET"]),
    Route("/api/files", endpoint=put_file, methods=["PUT"]),
    Route("/api/alerts", endpoint=alerts, methods=["GET"]),
    Route("/api/env", endpoint=get_env, methods=["GET"]),
    Route("/api/env", endpoint=set_env, methods=["POST"]),
    Route("/api/env/{key}", endpoint=delete_env, methods=["DELETE"]),
]


def create_app(
    settings: ControlSettings,
    supervisor: Optional[Supervisor] = None,
    config_store: Optional[ConfigStore] = None,
    env_store: Optional[EnvStore] = None,
) -> Starlette:
    """
    Builds the Control API application.

    :param settings: The explicit configuration, including the shared secret.
    :param supervisor: The supervisor to delegate to. Built from settings if omitted.
    :param config_store: Store for the managed process's configuration document.
    :param env_store: Store for the managed process's .env file.
    :return: The Starlette application.
    """
    if supervisor is None:
        registry = ProcessRegistry(settings.RUN_DIR, probe_timeout=settings.PROBE_TIMEOUT)
        supervisor = Supervisor(registry, restart_delay=settings.RESTART_DELAY_SECONDS)

    middleware = [
        Middleware(SecurityHeadersMiddleware),
        Middleware(TokenAuthMiddleware, token=settings.AUTH_TOKEN, public_paths=[HEALTH_PATH]),
    ]
    app = Starlette(
        debug=False,
        routes=routes,
        middleware=middleware,
        exception_handlers={ControlError: handle_control_error, Exception: handle_unexpected_error},
    )
    app.state.settings = settings
    app.state.supervisor = supervisor
    app.state.config_store = config_store or ConfigStore(settings.CONFIG_PATH)
    app.state.env_store = env_store or EnvStore(settings.ENV_FILE_PATH)
    app.state.path_guard = PathGuard(settings.WORKSPACE_DIR)

    log.info("Command Center control API configured and ready.")
    return app
