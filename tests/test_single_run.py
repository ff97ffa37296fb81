"""Tests for the single run entry point and its exit codes."""

import pytest

from table_monitor.cdc import single_run
from table_monitor.cdc.poll_cycle import RunOutcome, RunStatus
from table_monitor.errors import ConfigInvalid


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setattr(single_run, "setup_logging", lambda *args, **kwargs: None)


def stub_cycle(monkeypatch, outcome, seen=None):
    class StubCycle:
        def __init__(self, config, provider):
            if seen is not None:
                seen.append((config, provider))

        def run(self):
            return outcome

    monkeypatch.setattr(single_run, "PollCycle", StubCycle)


def test_success_exits_zero_and_prints_status(monkeypatch, capsys, monitor_config):
    monkeypatch.setattr(single_run, "load_config", lambda env_file=None: monitor_config)
    seen = []
    stub_cycle(monkeypatch, RunOutcome(RunStatus.SUCCESS, rows_emitted=2, duration_seconds=0.5), seen)

    assert single_run.main([]) == single_run.EXIT_SUCCESS

    assert capsys.readouterr().out.strip() == "status=Success source=MonitorScript duration=0.50s rows_emitted=2"
    assert seen[0][0] is monitor_config


def test_failed_cycle_exits_nonzero(monkeypatch, capsys, monitor_config):
    monkeypatch.setattr(single_run, "load_config", lambda env_file=None: monitor_config)
    stub_cycle(monkeypatch, RunOutcome(RunStatus.FAILED, 0, 0.1, error_detail="[SRC001] down"))

    assert single_run.main([]) == single_run.EXIT_CYCLE_FAILED
    assert "status=Failed" in capsys.readouterr().out


def test_invalid_config_is_a_startup_failure(monkeypatch):
    def broken(env_file=None):
        raise ConfigInvalid("Missing required configuration: DB_HOST", ["DB_HOST"])

    monkeypatch.setattr(single_run, "load_config", broken)
    stub_cycle(monkeypatch, None)

    assert single_run.main([]) == single_run.EXIT_CONFIG_INVALID


def test_env_file_argument_is_forwarded(monkeypatch, monitor_config):
    received = {}

    def fake_load(env_file=None):
        received["env_file"] = env_file
        return monitor_config

    monkeypatch.setattr(single_run, "load_config", fake_load)
    stub_cycle(monkeypatch, RunOutcome(RunStatus.SUCCESS, 0, 0.0))

    single_run.main(["--env-file", "/etc/table-monitor/.env"])

    assert received["env_file"] == "/etc/table-monitor/.env"


def test_unexpected_error_exits_nonzero(monkeypatch, capsys, monitor_config):
    class ExplodingCycle:
        def __init__(self, config, provider):
            pass

        def run(self):
            raise RuntimeError("bug")

    monkeypatch.setattr(single_run, "load_config", lambda env_file=None: monitor_config)
    monkeypatch.setattr(single_run, "PollCycle", ExplodingCycle)

    assert single_run.main([]) == single_run.EXIT_CYCLE_FAILED

    out = capsys.readouterr().out.strip()
    assert out.startswith("status=Failed source=MonitorScript duration=")
    assert out.endswith("rows_emitted=0")
