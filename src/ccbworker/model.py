# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class StepStatus(str, Enum):
    """Outcome of a step. UNSET means the step has not run yet."""
    UNSET = ""
    COMPLETED = "Completed"
    FAILED = "Failed"

    @classmethod
    def parse(cls, value: "StepStatus | str | None") -> "StepStatus":
        if value is None:
            return cls.UNSET
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ValueError(
                f"invalid step status {value!r} (expected one of "
                f"{', '.join(repr(s.value) for s in cls)})"
            ) from None


@dataclass
class Step:
    """A single external command inside a Calculation's pipeline."""
    command: str
    args: List[str] = field(default_factory=list)
    status: StepStatus = StepStatus.UNSET

    def __post_init__(self) -> None:
        if not self.command:
            raise ValueError("step command must not be empty")
        self.args = [str(a) for a in self.args]
        self.status = StepStatus.parse(self.status)

    @property
    def done(self) -> bool:
        return self.status is not StepStatus.UNSET


@dataclass
class Calculation:
    """
    A job: one parameterized run of the two-stage pipeline.

    `name` doubles as the key of the job's working directory, so it must be a
    single path component.
    """
    name: str
    teff: float
    logg: float
    steps: List[Step] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.name or self.name in (".", "..") or "/" in self.name:
            raise ValueError(f"invalid calculation name: {self.name!r}")
        self.teff = float(self.teff)
        self.logg = float(self.logg)


@dataclass(frozen=True)
class Execution:
    """Executor-local snapshot of a job's steps for the duration of one run."""
    calculation_name: str
    steps: tuple

    @classmethod
    def from_calculation(cls, calc: Calculation) -> Execution:
        return cls(
            calculation_name=calc.name,
            steps=tuple(Step(command=s.command, args=list(s.args), status=s.status) for s in calc.steps),
        )


@dataclass(frozen=True)
class Result:
    """Outcome of one attempted step, reported back to the dispatcher."""
    calc_name: str
    step: int
    status: StepStatus
    output: str = ""
    error: Optional[str] = None

    def __post_init__(self) -> None:
        status = StepStatus.parse(self.status)
        if status is StepStatus.UNSET:
            raise ValueError("a result must be Completed or Failed")
        object.__setattr__(self, "status", status)
        if self.step < 0:
            raise ValueError(f"step index must be >= 0, got {self.step}")

    @property
    def ok(self) -> bool:
        return self.status is StepStatus.COMPLETED
