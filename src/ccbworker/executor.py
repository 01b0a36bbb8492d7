# executor.py
from __future__ import annotations

import os
import resource
import signal
import subprocess
import time
from pathlib import Path
from typing import List, Optional

from .channels import ResultChannel, WorkChannel
from .errors import ChannelError, GenerationError, ReformatError, SetupError, StepExecutionError
from .model import Calculation, Execution, Result, Step, StepStatus
from .reformat import generate_synspec_input
from .settings import WorkerSettings
from .templates import model_input_vars, runtime_input_vars, write_rendered
from .ui.console import get_console
from .workdir import ensure_job_dir, link_tree

# Step indices that need generated input files before they run.
ATLAS_STEP = 0
SYNSPEC_STEP = 2


# ----------------------------------------------------------------------
# Process setup
# ----------------------------------------------------------------------

def set_unlimited_stack() -> None:
    """
    Raise RLIMIT_STACK to infinity for this process and its children.

    atlas12 and synspec need very large stack frames. The limit is process
    wide, not per job.
    """
    try:
        resource.setrlimit(resource.RLIMIT_STACK, (resource.RLIM_INFINITY, resource.RLIM_INFINITY))
    except (ValueError, OSError) as e:
        raise SetupError("couldn't set stack limit", details={"error": e}) from e


# ----------------------------------------------------------------------
# Execution primitives
# ----------------------------------------------------------------------

def build_argv(step: Step, flatten_args: bool = False) -> List[str]:
    if flatten_args:
        # legacy: the whole argument list travels as one argument
        joined = " ".join(step.args)
        return [step.command, joined] if joined else [step.command]
    return [step.command, *step.args]


def _as_text(out) -> str:
    if out is None:
        return ""
    if isinstance(out, bytes):
        return out.decode("utf-8", errors="replace")
    return out


def run_command(job: str, index: int, argv: List[str], cwd: Path, timeout: Optional[float]) -> str:
    """
    Run one step's command and return its combined stdout/stderr.

    The command runs in its own session. Once `timeout` seconds have passed
    the whole process group is killed, so wrapper scripts cannot leave a
    tool running in the job directory.

    Raises:
        StepExecutionError: on non-zero exit, timeout, or if the command
            cannot be started.
    """
    try:
        proc = subprocess.Popen(
            argv,
            cwd=str(cwd),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
            start_new_session=True,
        )
    except OSError as e:
        raise StepExecutionError(job=job, step=index, argv=argv, reason=e.strerror or str(e)) from e

    with proc:
        try:
            output, _ = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired as e:
            _kill_group(proc)
            output, _ = proc.communicate()
            raise StepExecutionError(
                job=job,
                step=index,
                argv=argv,
                timed_out=True,
                timeout=timeout,
                output=_as_text(output),
            ) from e
        except BaseException:
            _kill_group(proc)
            raise

    if proc.returncode != 0:
        raise StepExecutionError(job=job, step=index, argv=argv, exit_code=proc.returncode, output=output)
    return output


def _kill_group(proc: subprocess.Popen) -> None:
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        # group already gone
        pass


# ----------------------------------------------------------------------
# Executor
# ----------------------------------------------------------------------

class Executor:
    """
    Single-consumer worker: takes one Calculation at a time from `work`,
    drives its steps to the end and reports one Result per attempted step
    on `results`.
    """

    def __init__(
        self,
        work: WorkChannel,
        results: ResultChannel,
        settings: Optional[WorkerSettings] = None,
        poll_interval: float = 5.0,
    ):
        self.work = work
        self.results = results
        self.settings = settings or WorkerSettings()
        self.poll_interval = poll_interval
        self.running = True
        self._stack_limit_set = False

    def stop(self) -> None:
        self.running = False

    def prepare_process(self) -> None:
        """One-time process setup at worker startup. Raises SetupError."""
        self._ensure_stack_limit()

    def run(self, max_jobs: Optional[int] = None) -> int:
        """
        Work loop. Returns the number of jobs processed once stopped.

        Args:
            max_jobs: stop after this many jobs (None runs until stop())
        """
        console = get_console()
        processed = 0
        while self.running:
            try:
                calc = self.work.get(timeout=self.poll_interval)
            except ChannelError as e:
                console.print_error("Malformed job", str(e), suggestion="The message was dropped.")
                continue
            except Exception as e:
                console.print_exception(e)
                # Wait before retrying
                time.sleep(self.poll_interval)
                continue
            if calc is None:
                continue

            try:
                self.process(calc)
            except Exception as e:
                console.print_failure(calc.name, str(e), hint="Job abandoned; re-enqueue it to resume.")
                if console.debug:
                    console.print_exception(e)
                time.sleep(self.poll_interval)
            processed += 1
            if max_jobs is not None and processed >= max_jobs:
                break
        return processed

    # ---- per job ----

    def process(self, calc: Calculation) -> List[Result]:
        """Run a single job to completion and return the Results it emitted."""
        console = get_console()
        console.print_job_start(calc.name, calc.teff, calc.logg, len(calc.steps))
        start_time = time.time()

        try:
            job_dir = self._setup(calc)
        except SetupError as e:
            e.job = e.job or calc.name
            console.print_failure(calc.name, str(e), hint="No step was run; the job can be re-enqueued.")
            return []

        execution = Execution.from_calculation(calc)
        emitted: List[Result] = []

        for index, step in enumerate(execution.steps):
            if step.done:
                console.print_step_skipped(calc.name, index, step.status.value)
                continue

            try:
                self._generate_inputs(calc, index, job_dir)
            except GenerationError as e:
                e.job = e.job or calc.name
                console.print_failure(calc.name, str(e), hint=f"Stopped before step {index}.")
                break

            result = self._execute(calc.name, index, step, job_dir)
            self.results.put(result)
            emitted.append(result)

            if not result.ok and not self.settings.continue_on_failure:
                console.print_info(f"[{calc.name}] stopping after failed step {index}")
                break

        failed = sum(1 for r in emitted if not r.ok)
        console.print_job_done(calc.name, len(emitted), failed, time.time() - start_time)
        return emitted

    def _ensure_stack_limit(self) -> None:
        if self._stack_limit_set or not self.settings.raise_stack_limit:
            return
        set_unlimited_stack()
        self._stack_limit_set = True

    def _setup(self, calc: Calculation) -> Path:
        self._ensure_stack_limit()
        job_dir = ensure_job_dir(self.settings.nfs_path, calc.name)
        report = link_tree(self.settings.source_trees, job_dir)
        get_console().print_link_failures(calc.name, report.failed)
        return job_dir

    def _generate_inputs(self, calc: Calculation, index: int, job_dir: Path) -> None:
        console = get_console()
        files = self.settings.files

        if index == ATLAS_STEP:
            console.print_generating(calc.name, files.model_input)
            write_rendered(
                job_dir / self.settings.model_template,
                model_input_vars(calc.teff, calc.logg),
                job_dir / files.model_input,
            )

        elif index == SYNSPEC_STEP:
            console.print_generating(calc.name, files.synspec_model)
            contents = generate_synspec_input(job_dir, files.stage1_output_prefix)
            try:
                (job_dir / files.synspec_model).write_bytes(contents)
            except OSError as e:
                raise ReformatError("couldn't generate the new input file", details={"error": e}) from e

            console.print_generating(calc.name, files.synspec_runtime_input)
            write_rendered(
                job_dir / self.settings.synspec_template,
                runtime_input_vars(calc.teff, calc.logg),
                job_dir / files.synspec_runtime_input,
                job_dir / files.synspec_legacy_runtime_input,
            )

    def _execute(self, name: str, index: int, step: Step, job_dir: Path) -> Result:
        console = get_console()
        argv = build_argv(step, self.settings.flatten_args)
        console.print_step(name, index, argv)
        start_time = time.time()

        try:
            output = run_command(name, index, argv, job_dir, self.settings.step_timeout)
        except StepExecutionError as e:
            result = Result(calc_name=name, step=index, status=StepStatus.FAILED, output=e.output, error=str(e))
        else:
            result = Result(calc_name=name, step=index, status=StepStatus.COMPLETED, output=output)

        console.print_step_result(name, index, result.status.value, time.time() - start_time, result.output)
        if result.error:
            console.print_debug(result.error)
        return result
