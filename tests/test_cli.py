# tests/test_cli.py
from __future__ import annotations

import json

import pytest
from click.testing import CliRunner

from ccbworker import cli as cli_mod
from ccbworker.channels import RedisWorkChannel
from ccbworker.model import Result, StepStatus
from ccbworker.store import StepStatusStore


@pytest.fixture
def runner(fake_redis, monkeypatch):
    monkeypatch.setattr(cli_mod, "_redis_client", lambda url: fake_redis)
    return CliRunner()


@pytest.fixture
def calc_file(tmp_path):
    path = tmp_path / "calc.json"
    path.write_text(
        json.dumps(
            {
                "name": "t7000_400",
                "Teff": 7000.0,
                "LogG": 4.0,
                "steps": [
                    {"command": "atlas12_ada", "args": []},
                    {"command": "atlas12_ada", "args": []},
                    {"command": "synspec49", "args": []},
                ],
            }
        )
    )
    return path


def test_submit_applies_recorded_statuses(runner, fake_redis, calc_file):
    StepStatusStore(fake_redis).record(Result(calc_name="t7000_400", step=0, status=StepStatus.COMPLETED))

    res = runner.invoke(cli_mod.cli, ["submit", str(calc_file), "--work-queue", "q"])

    assert res.exit_code == 0, res.output
    assert "2/3 step(s) pending" in res.output
    queued = RedisWorkChannel(fake_redis, "q").get(timeout=0.1)
    assert [s.status for s in queued.steps] == [StepStatus.COMPLETED, StepStatus.UNSET, StepStatus.UNSET]


def test_submit_reset_starts_over(runner, fake_redis, calc_file):
    StepStatusStore(fake_redis).record(Result(calc_name="t7000_400", step=0, status=StepStatus.FAILED))

    res = runner.invoke(cli_mod.cli, ["submit", str(calc_file), "--work-queue", "q", "--reset"])

    assert res.exit_code == 0, res.output
    assert "3/3 step(s) pending" in res.output


def test_submit_rejects_invalid_file(runner, tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text("{}")
    res = runner.invoke(cli_mod.cli, ["submit", str(bad)])
    assert res.exit_code == 1


def test_collect_then_status(runner, fake_redis):
    fake_redis.rpush(
        "ccb:results",
        json.dumps({"jobName": "t7000_400", "stepIndex": 1, "status": "Failed", "combinedOutput": "", "error": "x"}),
    )

    res = runner.invoke(cli_mod.cli, ["collect", "--result-queue", "ccb:results"])
    assert res.exit_code == 0, res.output
    assert "Recorded 1 result(s)." in res.output

    res = runner.invoke(cli_mod.cli, ["status", "t7000_400", "--json"])
    assert res.exit_code == 0, res.output
    assert json.loads(res.output) == {"1": "Failed"}
