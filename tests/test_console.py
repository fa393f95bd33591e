import pytest
from command_center.local.console import ConsoleContext, execute_command
from command_center.local.sandbox import ConfigStore


@pytest.fixture
def ctx(settings, supervisor):
    return ConsoleContext(settings, supervisor, ConfigStore(settings.CONFIG_PATH))


def test_exit_ends_the_console(ctx):
    assert execute_command(ctx, "exit", []) is True
    assert execute_command(ctx, "help", []) is False


def test_unknown_command_is_ignored(ctx):
    assert execute_command(ctx, "launch-rockets", []) is False


def test_config_set_parses_json_values(ctx, capsys):
    execute_command(ctx, "config", ["set", "gateway.port", "19000"])
    execute_command(ctx, "config", ["set", "gateway.mode", "local"])
    assert ctx.config_store.read() == {"gateway": {"port": 19000, "mode": "local"}}

    capsys.readouterr()
    execute_command(ctx, "config", ["get", "gateway.port"])
    assert capsys.readouterr().out.strip() == "19000"


def test_status_of_unknown_service_prints_error(ctx, capsys):
    execute_command(ctx, "status", ["nope"])
    assert "Unknown service 'nope'" in capsys.readouterr().out


def test_start_and_stop_from_console(ctx, capsys):
    execute_command(ctx, "start", [])
    assert ctx.supervisor.is_running("gateway")
    execute_command(ctx, "stop", ["gateway"])
    assert not ctx.supervisor.is_running("gateway")
    out = capsys.readouterr().out
    assert "[OK] gateway: Started" in out or "[OK] gateway: Running" in out
    assert "Stop signal sent" in out


def test_second_start_reports_already_running(ctx, capsys):
    execute_command(ctx, "start", [])
    capsys.readouterr()
    execute_command(ctx, "start", [])
    assert "Already running" in capsys.readouterr().out
