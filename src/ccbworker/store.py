# store.py
from __future__ import annotations

from dataclasses import replace
from typing import Any, Dict, Optional

from .channels import RedisResultChannel
from .model import Calculation, Result, Step, StepStatus


class StepStatusStore:
    """
    Dispatcher-side record of which steps of a job have run.

    One Redis hash per job (`<prefix>:<job name>`), field = step index,
    value = status. A job re-enqueued through resume() skips every step
    recorded here.
    """

    def __init__(self, client: Any, prefix: str = "ccb:status"):
        self.client = client
        self.prefix = prefix

    def key(self, name: str) -> str:
        return f"{self.prefix}:{name}"

    def record(self, result: Result) -> None:
        self.client.hset(self.key(result.calc_name), str(result.step), result.status.value)

    def statuses(self, name: str) -> Dict[int, StepStatus]:
        raw = self.client.hgetall(self.key(name)) or {}
        out: Dict[int, StepStatus] = {}
        for field, value in raw.items():
            if isinstance(field, bytes):
                field = field.decode("utf-8")
            if isinstance(value, bytes):
                value = value.decode("utf-8")
            out[int(field)] = StepStatus.parse(value)
        return out

    def resume(self, calc: Calculation) -> Calculation:
        """Copy of `calc` with stored statuses applied to its steps."""
        stored = self.statuses(calc.name)
        steps = [
            Step(command=s.command, args=list(s.args), status=stored.get(i, s.status))
            for i, s in enumerate(calc.steps)
        ]
        return replace(calc, steps=steps)

    def reset(self, name: str) -> None:
        self.client.delete(self.key(name))


def collect_results(
    results: RedisResultChannel,
    store: StepStatusStore,
    timeout: Optional[float] = 1.0,
    max_results: Optional[int] = None,
) -> int:
    """
    Move Results from the result list into the store until the list stays
    empty for `timeout` seconds. Returns how many were recorded.
    """
    count = 0
    while max_results is None or count < max_results:
        result = results.get(timeout=timeout)
        if result is None:
            break
        store.record(result)
        count += 1
    return count
