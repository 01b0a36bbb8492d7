# tests/conftest.py
"""
Shared fixtures for the worker tests.

`pipeline` builds a miniature shared-storage layout under tmp_path:
    control/   atlas control files plus both input templates
    data/      atlas data files (nested, to exercise the recursive walk)
    nfs/       storage root where job directories are created

Stage tools are stood in for by `python -c ...` steps, so the executor runs
real subprocesses without needing atlas12 or synspec.
"""
from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List

import pytest

from ccbworker.channels import QueueResultChannel, QueueWorkChannel
from ccbworker.executor import Executor
from ccbworker.model import Step
from ccbworker.settings import WorkerSettings
from ccbworker.ui.console import Console, set_console

MODEL_TEMPLATE = "TEFF   {{.Teff}}  GRAVITY {{.LogG}} LTE\nTITLE test model\n"
SYNSPEC_TEMPLATE = "{{.Teff}} {{.LogG}} ! TEFF, GRAV\nT F ! LTE, LTGRAY\n"


def py_step(code: str, status: str = "") -> Step:
    """A step that runs `code` with the current interpreter."""
    return Step(command=sys.executable, args=["-c", code], status=status)


def ok_step() -> Step:
    return py_step("print('ok')")


def failing_step(code: int = 3) -> Step:
    return py_step(f"import sys; print('boom'); sys.exit({code})")


@dataclass
class Pipeline:
    root: Path
    settings: WorkerSettings
    work: QueueWorkChannel
    results: QueueResultChannel
    executor: Executor

    def job_dir(self, name: str) -> Path:
        return self.settings.nfs_path / name


@pytest.fixture(autouse=True)
def _quiet_console():
    set_console(Console(debug=False))
    yield


@pytest.fixture
def pipeline(tmp_path: Path) -> Pipeline:
    control = tmp_path / "control"
    data = tmp_path / "data"
    (data / "lines").mkdir(parents=True)
    control.mkdir()

    (control / "kurucz_model.tmpl").write_text(MODEL_TEMPLATE)
    (control / "input_tlusty_fortfive.tmpl").write_text(SYNSPEC_TEMPLATE)
    (control / "atlas12.control").write_text("control\n")
    (data / "molecules.dat").write_text("molecules\n")
    (data / "lines" / "lowlines.bin").write_text("lines\n")

    settings = WorkerSettings(
        nfs_path=tmp_path / "nfs",
        source_trees=[control, data],
        model_template="kurucz_model.tmpl",
        synspec_template="input_tlusty_fortfive.tmpl",
        step_timeout=60,
        continue_on_failure=True,
        flatten_args=False,
        raise_stack_limit=False,
    )
    work = QueueWorkChannel(maxsize=4)
    results = QueueResultChannel()
    executor = Executor(work, results, settings, poll_interval=0.05)
    return Pipeline(root=tmp_path, settings=settings, work=work, results=results, executor=executor)


class FakeRedis:
    """In-memory stand-in for the handful of redis-py calls the worker makes."""

    def __init__(self) -> None:
        self.lists: Dict[str, List[str]] = {}
        self.hashes: Dict[str, Dict[str, str]] = {}

    def rpush(self, key: str, *values: str) -> int:
        self.lists.setdefault(key, []).extend(values)
        return len(self.lists[key])

    def blpop(self, keys, timeout=0):
        for key in keys:
            items = self.lists.get(key)
            if items:
                return key, items.pop(0)
        return None

    def hset(self, key: str, field: str, value: str) -> int:
        self.hashes.setdefault(key, {})[field] = value
        return 1

    def hgetall(self, key: str) -> Dict[str, str]:
        return dict(self.hashes.get(key, {}))

    def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            removed += int(self.lists.pop(key, None) is not None)
            removed += int(self.hashes.pop(key, None) is not None)
        return removed


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()
