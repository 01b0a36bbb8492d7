# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar, List, Optional


@dataclass
class WorkerError(Exception):
    """
    Structured worker error with enough context for:
      - clean console output
      - attaching to a job after the fact (job is filled in by the executor)
      - debugging without full tracebacks
    """
    message: str
    job: Optional[str] = None
    details: dict = field(default_factory=dict)

    kind: ClassVar[str] = "WorkerError"

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}"]
        if self.job:
            lines.append(f"job={self.job}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


class SetupError(WorkerError):
    """Stack limit, job directory or directory walk failure. Fatal to the job, no results."""
    kind = "SetupError"


class GenerationError(WorkerError):
    """Input file generation failed. Fatal to the remaining steps of the job."""
    kind = "GenerationError"


class TemplateError(GenerationError):
    kind = "TemplateError"


class ReformatError(GenerationError):
    kind = "ReformatError"


class ChannelError(WorkerError):
    """A message on a work/result channel could not be decoded."""
    kind = "ChannelError"


@dataclass
class StepExecutionError(Exception):
    """A step's command did not exit cleanly. Converted into a Failed result."""
    job: str
    step: int
    argv: List[str]
    exit_code: Optional[int] = None
    timed_out: bool = False
    timeout: Optional[float] = None
    reason: Optional[str] = None
    output: str = ""

    def __str__(self) -> str:
        cmd = " ".join(self.argv)
        if self.timed_out:
            return (
                f"[{self.job}] step {self.step} timed out after {self.timeout:g}s, "
                f"process cancelled: {cmd}"
            )
        if self.exit_code is None:
            return f"[{self.job}] step {self.step} could not start ({self.reason}): {cmd}"
        return f"[{self.job}] step {self.step} failed (exit={self.exit_code}): {cmd}"
