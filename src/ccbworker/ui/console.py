"""Console output formatting utilities for the ccb worker."""

from __future__ import annotations

import sys
from typing import Optional, Sequence


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug

    def print_worker_started(
        self,
        worker_id: str,
        work_queue: str,
        result_queue: str,
        nfs_path: str,
    ) -> None:
        """Print worker start information."""
        print("\nWORKER STARTED")
        print(f"Worker ID: {worker_id}")
        print(f"Work queue: {work_queue}")
        print(f"Result queue: {result_queue}")
        print(f"Storage: {nfs_path}")
        print()

    def print_job_start(self, name: str, teff: float, logg: float, steps: int) -> None:
        """Print job start message."""
        print(f"\nJOB STARTED: {name} (Teff={teff}, LogG={logg}, steps={steps})")

    def print_job_done(self, name: str, attempted: int, failed: int, duration: Optional[float] = None) -> None:
        status = "failed" if failed else "success"
        line = f"[{name}] JOB DONE: {status} ({attempted} attempted, {failed} failed)"
        if duration is not None:
            line += f" in {duration:.1f}s"
        print(line)

    def print_step(self, name: str, index: int, argv: Sequence[str]) -> None:
        """Print step start message."""
        print(f"[{name}] STEP {index}: {' '.join(argv)}")

    def print_step_skipped(self, name: str, index: int, status: str) -> None:
        print(f"[{name}] STEP {index}: skipped ({status})")

    def print_step_result(
        self,
        name: str,
        index: int,
        status: str,
        duration: Optional[float] = None,
        output: str = "",
    ) -> None:
        """Print step completion, with the command output in debug mode."""
        line = f"[{name}] STEP {index} STATUS: {status}"
        if duration is not None:
            line += f" ({duration:.1f}s)"
        print(line)
        if self.debug and output:
            for out_line in output.rstrip("\n").splitlines():
                print(f"[{name}]   | {out_line}", file=sys.stderr)

    def print_generating(self, name: str, filename: str) -> None:
        print(f"[{name}] generating {filename}")

    def print_failure(self, name: str, reason: str, hint: Optional[str] = None) -> None:
        """
        Print a job-level failure.

        Args:
            name: Job name
            reason: Failure reason/error message
            hint: Optional hint for the operator
        """
        print(f"[{name}] JOB FAILED", file=sys.stderr)
        if hint:
            print(f"Hint: {hint}", file=sys.stderr)
        if self.debug:
            print(f"Error details: {reason}", file=sys.stderr)
        else:
            error_line = reason.split("\n")[0] if reason else "Unknown error"
            print(f"Error: {error_line}", file=sys.stderr)

    def print_link_failures(self, name: str, failures: Sequence[tuple]) -> None:
        """Links that could not be created are not fatal; only shown in debug mode."""
        if not failures:
            return
        print(f"[{name}] {len(failures)} symbolic link(s) not created")
        if self.debug:
            for target, reason in failures:
                print(f"[DEBUG] [{name}] link {target}: {reason}", file=sys.stderr)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exc()
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
