# channels.py
from __future__ import annotations

import queue
from typing import Any, List, Optional, Protocol

from pydantic import BaseModel, Field, ValidationError

from .errors import ChannelError
from .model import Calculation, Result, Step, StepStatus


# ---------------------------------------------------------------------
# Wire payloads
# ---------------------------------------------------------------------

class StepPayload(BaseModel):
    command: str
    args: List[str] = Field(default_factory=list)
    status: StepStatus = StepStatus.UNSET


class CalculationPayload(BaseModel):
    name: str
    teff: float = Field(alias="Teff")
    logg: float = Field(alias="LogG")
    steps: List[StepPayload] = Field(default_factory=list)

    model_config = {"populate_by_name": True}

    def to_calculation(self) -> Calculation:
        return Calculation(
            name=self.name,
            teff=self.teff,
            logg=self.logg,
            steps=[Step(command=s.command, args=list(s.args), status=s.status) for s in self.steps],
        )

    @classmethod
    def from_calculation(cls, calc: Calculation) -> CalculationPayload:
        return cls(
            name=calc.name,
            teff=calc.teff,
            logg=calc.logg,
            steps=[StepPayload(command=s.command, args=list(s.args), status=s.status) for s in calc.steps],
        )


class ResultPayload(BaseModel):
    job_name: str = Field(alias="jobName")
    step_index: int = Field(alias="stepIndex", ge=0)
    status: StepStatus
    combined_output: str = Field(default="", alias="combinedOutput")
    error: Optional[str] = None

    model_config = {"populate_by_name": True}

    def to_result(self) -> Result:
        return Result(
            calc_name=self.job_name,
            step=self.step_index,
            status=self.status,
            output=self.combined_output,
            error=self.error,
        )

    @classmethod
    def from_result(cls, result: Result) -> ResultPayload:
        return cls(
            job_name=result.calc_name,
            step_index=result.step,
            status=result.status,
            combined_output=result.output,
            error=result.error,
        )


def decode_calculation(raw: str | bytes) -> Calculation:
    try:
        return CalculationPayload.model_validate_json(raw).to_calculation()
    except (ValidationError, ValueError) as e:
        raise ChannelError("malformed calculation payload", details={"error": e}) from e


def encode_calculation(calc: Calculation) -> str:
    return CalculationPayload.from_calculation(calc).model_dump_json(by_alias=True)


def decode_result(raw: str | bytes) -> Result:
    try:
        return ResultPayload.model_validate_json(raw).to_result()
    except (ValidationError, ValueError) as e:
        raise ChannelError("malformed result payload", details={"error": e}) from e


def encode_result(result: Result) -> str:
    return ResultPayload.from_result(result).model_dump_json(by_alias=True)


# ---------------------------------------------------------------------
# Channel protocols
# ---------------------------------------------------------------------

class WorkChannel(Protocol):
    def get(self, timeout: Optional[float] = None) -> Optional[Calculation]:
        """Block up to `timeout` seconds for the next job; None if there is none."""
        ...


class ResultChannel(Protocol):
    def put(self, result: Result) -> None:
        ...


# ---------------------------------------------------------------------
# In-process channels
# ---------------------------------------------------------------------

class QueueWorkChannel:
    """Bounded in-process work channel."""

    def __init__(self, maxsize: int = 1):
        self._queue: "queue.Queue[Calculation]" = queue.Queue(maxsize=maxsize)

    def put(self, calc: Calculation, timeout: Optional[float] = None) -> None:
        self._queue.put(calc, timeout=timeout)

    def get(self, timeout: Optional[float] = None) -> Optional[Calculation]:
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None


class QueueResultChannel:
    """Unbounded in-process result sink."""

    def __init__(self) -> None:
        self._queue: "queue.Queue[Result]" = queue.Queue()

    def put(self, result: Result) -> None:
        self._queue.put(result)

    def get(self, timeout: Optional[float] = None) -> Optional[Result]:
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> List[Result]:
        results: List[Result] = []
        while True:
            try:
                results.append(self._queue.get_nowait())
            except queue.Empty:
                return results


# ---------------------------------------------------------------------
# Redis channels (FIFO lists: RPUSH in, BLPOP out)
# ---------------------------------------------------------------------

def _blpop_timeout(timeout: Optional[float]) -> float:
    # BLPOP 0 blocks forever
    return 0 if timeout is None else max(timeout, 0.01)


class RedisWorkChannel:
    def __init__(self, client: Any, key: str):
        self.client = client
        self.key = key

    def put(self, calc: Calculation) -> None:
        self.client.rpush(self.key, encode_calculation(calc))

    def get(self, timeout: Optional[float] = None) -> Optional[Calculation]:
        item = self.client.blpop([self.key], timeout=_blpop_timeout(timeout))
        if not item:
            return None
        _key, raw = item
        return decode_calculation(raw)


class RedisResultChannel:
    def __init__(self, client: Any, key: str):
        self.client = client
        self.key = key

    def put(self, result: Result) -> None:
        self.client.rpush(self.key, encode_result(result))

    def get(self, timeout: Optional[float] = None) -> Optional[Result]:
        item = self.client.blpop([self.key], timeout=_blpop_timeout(timeout))
        if not item:
            return None
        _key, raw = item
        return decode_result(raw)
