from .executor import Executor
from .model import Calculation, Result, Step, StepStatus
from .settings import PipelineFiles, WorkerSettings

__all__ = ["Executor", "Calculation", "Result", "Step", "StepStatus", "PipelineFiles", "WorkerSettings"]
