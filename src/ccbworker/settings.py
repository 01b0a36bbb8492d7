# settings.py
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")
WORK_QUEUE = os.environ.get("WORK_QUEUE", "ccb:calculations")
RESULT_QUEUE = os.environ.get("RESULT_QUEUE", "ccb:results")
STATUS_PREFIX = os.environ.get("STATUS_PREFIX", "ccb:status")

NFS_PATH = os.environ.get("NFS_PATH", "/var/tmp/vega")
ATLAS_CONTROL_FILES = os.environ.get("ATLAS_CONTROL_FILES", "/var/tmp/vega/atlas-control")
ATLAS_DATA_FILES = os.environ.get("ATLAS_DATA_FILES", "/var/tmp/vega/atlas-data")
KURUCZ_MODEL_TEMPLATE = os.environ.get("KURUCZ_MODEL_TEMPLATE", "kurucz_model.tmpl")
SYNSPEC_INPUT_TEMPLATE = os.environ.get("SYNSPEC_INPUT_TEMPLATE", "input_tlusty_fortfive.tmpl")

STEP_TIMEOUT_SECONDS = float(os.environ.get("STEP_TIMEOUT_SECONDS", str(30 * 60)))
CONTINUE_ON_FAILURE = _env_bool("CONTINUE_ON_FAILURE", True)
FLATTEN_ARGS = _env_bool("FLATTEN_ARGS", False)


@dataclass(frozen=True)
class PipelineFiles:
    """Fixed filenames the atlas/synspec chain reads and writes inside a job directory."""
    model_input: str = "t10000_400_72.mod.7011870916"
    stage1_output_prefix: str = "t10000_400_72_strat.mod"
    synspec_model: str = "fort.8"
    synspec_runtime_input: str = "input_tlusty_fortfive"
    # synspec always reads fort.95, whatever the runtime input is called
    synspec_legacy_runtime_input: str = "fort.95"


@dataclass
class WorkerSettings:
    """Everything an Executor needs to know about its environment."""
    nfs_path: Path = field(default_factory=lambda: Path(NFS_PATH))
    source_trees: List[Path] = field(
        default_factory=lambda: [Path(ATLAS_CONTROL_FILES), Path(ATLAS_DATA_FILES)]
    )
    model_template: str = KURUCZ_MODEL_TEMPLATE
    synspec_template: str = SYNSPEC_INPUT_TEMPLATE
    files: PipelineFiles = field(default_factory=PipelineFiles)
    step_timeout: float = STEP_TIMEOUT_SECONDS
    # Observed behavior: later steps still run after a failed one.
    continue_on_failure: bool = CONTINUE_ON_FAILURE
    # Legacy behavior: pass "arg1 arg2" as a single argument.
    flatten_args: bool = FLATTEN_ARGS
    raise_stack_limit: bool = True
