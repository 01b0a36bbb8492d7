# tests/test_channels.py
from __future__ import annotations

import json
import sys

import pytest

from ccbworker.channels import (
    QueueResultChannel,
    QueueWorkChannel,
    RedisResultChannel,
    RedisWorkChannel,
    decode_calculation,
    encode_result,
)
from ccbworker.errors import ChannelError
from ccbworker.model import Calculation, Result, Step, StepStatus

CALCULATION_JSON = json.dumps(
    {
        "name": "t10125_425",
        "Teff": 10125.4,
        "LogG": 4.25,
        "steps": [
            {"command": "atlas12_ada", "args": ["<", "t10000_400_72.mod.7011870916"], "status": "Completed"},
            {"command": "atlas12_ada", "args": []},
            {"command": "synspec49", "args": ["<", "input_tlusty_fortfive"], "status": ""},
        ],
    }
)


def test_decode_calculation_wire_format():
    calc = decode_calculation(CALCULATION_JSON)

    assert calc.name == "t10125_425"
    assert calc.teff == 10125.4
    assert calc.logg == 4.25
    assert [s.status for s in calc.steps] == [StepStatus.COMPLETED, StepStatus.UNSET, StepStatus.UNSET]
    assert calc.steps[2].args == ["<", "input_tlusty_fortfive"]


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        json.dumps({"name": "x", "Teff": 1.0}),
        json.dumps({"name": "x", "Teff": 1.0, "LogG": 2.0, "steps": [{"command": "a", "status": "Running"}]}),
        json.dumps({"name": "../escape", "Teff": 1.0, "LogG": 2.0}),
    ],
)
def test_malformed_calculation_is_channel_error(raw):
    with pytest.raises(ChannelError):
        decode_calculation(raw)


def test_result_wire_format():
    result = Result(calc_name="c", step=2, status=StepStatus.FAILED, output="out", error="exit=1")
    assert json.loads(encode_result(result)) == {
        "jobName": "c",
        "stepIndex": 2,
        "status": "Failed",
        "combinedOutput": "out",
        "error": "exit=1",
    }


def test_redis_channels_are_fifo(fake_redis):
    work = RedisWorkChannel(fake_redis, "ccb:calculations")
    first = Calculation(name="first", teff=7000, logg=4, steps=[Step(command="atlas12_ada")])
    second = Calculation(name="second", teff=8000, logg=3.5)
    work.put(first)
    work.put(second)

    assert work.get(timeout=0.1) == first
    assert work.get(timeout=0.1) == second
    assert work.get(timeout=0.1) is None

    results = RedisResultChannel(fake_redis, "ccb:results")
    result = Result(calc_name="first", step=0, status=StepStatus.COMPLETED, output="done")
    results.put(result)
    assert results.get(timeout=0.1) == result


def test_malformed_message_is_dropped_by_work_loop(pipeline, fake_redis):
    fake_redis.rpush("q", "garbage")
    pipeline.executor.work = RedisWorkChannel(fake_redis, "q")
    pipeline.executor.poll_interval = 0.01

    payload = json.loads(CALCULATION_JSON)
    for step in payload["steps"]:
        step["command"], step["args"] = sys.executable, ["-c", "pass"]
    fake_redis.rpush("q", json.dumps(payload))
    assert pipeline.executor.run(max_jobs=1) == 1
    assert [r.step for r in pipeline.results.drain()] == [1, 2]


def test_queue_channels_time_out_empty():
    assert QueueWorkChannel().get(timeout=0.01) is None
    assert QueueResultChannel().get(timeout=0.01) is None
