# cli.py
from __future__ import annotations

import json
import signal
import socket
import sys
from pathlib import Path

import click
import redis

from ccbworker import settings
from ccbworker.channels import RedisResultChannel, RedisWorkChannel, decode_calculation
from ccbworker.errors import ChannelError, SetupError
from ccbworker.executor import Executor
from ccbworker.settings import WorkerSettings
from ccbworker.store import StepStatusStore, collect_results
from ccbworker.ui.console import Console, get_console, set_console


def _redis_client(url: str):
    return redis.from_url(url, decode_responses=True)


def _fail(exc: Exception) -> None:
    console = get_console()
    console.print_exception(exc)
    sys.exit(1)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces, command output and link failures)",
)
@click.pass_context
def cli(ctx, debug):
    """ccb worker — runs atlas/synspec calculations from a Redis work queue."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.option("--redis-url", default=settings.REDIS_URL, show_default=True, help="Redis URL of the coordination store")
@click.option("--worker-id", default=None, help="Worker identifier (defaults to hostname)")
@click.option("--work-queue", default=settings.WORK_QUEUE, show_default=True, help="Redis list to take calculations from")
@click.option("--result-queue", default=settings.RESULT_QUEUE, show_default=True, help="Redis list to push step results to")
@click.option("--nfs-path", default=settings.NFS_PATH, show_default=True, help="Shared storage root for job directories")
@click.option("--control-files", default=settings.ATLAS_CONTROL_FILES, show_default=True, help="Atlas control file tree")
@click.option("--data-files", default=settings.ATLAS_DATA_FILES, show_default=True, help="Atlas data file tree")
@click.option("--model-template", default=settings.KURUCZ_MODEL_TEMPLATE, show_default=True, help="Atlas model input template (relative to the job directory)")
@click.option("--synspec-template", default=settings.SYNSPEC_INPUT_TEMPLATE, show_default=True, help="Synspec runtime input template (relative to the job directory)")
@click.option("--timeout", "step_timeout", default=settings.STEP_TIMEOUT_SECONDS, type=float, show_default=True, help="Per-step timeout in seconds")
@click.option("--continue-on-failure/--stop-on-failure", default=settings.CONTINUE_ON_FAILURE, show_default=True, help="Keep running later steps after a step fails")
@click.option("--flatten-args/--no-flatten-args", default=settings.FLATTEN_ARGS, show_default=True, help="Pass a step's arguments as one space-joined argument (legacy)")
@click.option("--poll-interval", default=5.0, type=float, help="Seconds to block on the work queue per poll")
@click.option("--max-jobs", default=None, type=int, help="Exit after this many jobs")
@click.pass_context
def worker(
    ctx,
    redis_url,
    worker_id,
    work_queue,
    result_queue,
    nfs_path,
    control_files,
    data_files,
    model_template,
    synspec_template,
    step_timeout,
    continue_on_failure,
    flatten_args,
    poll_interval,
    max_jobs,
):
    """Run the worker loop: one calculation at a time, one result per step."""
    console = get_console()
    worker_id = worker_id or socket.gethostname()

    worker_settings = WorkerSettings(
        nfs_path=Path(nfs_path),
        source_trees=[Path(control_files), Path(data_files)],
        model_template=model_template,
        synspec_template=synspec_template,
        step_timeout=step_timeout,
        continue_on_failure=continue_on_failure,
        flatten_args=flatten_args,
    )

    client = _redis_client(redis_url)
    executor = Executor(
        RedisWorkChannel(client, work_queue),
        RedisResultChannel(client, result_queue),
        worker_settings,
        poll_interval=poll_interval,
    )

    def _signal_handler(signum, frame):
        console.print_info(f"\nReceived signal {signum}, finishing current job and shutting down...")
        executor.stop()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    try:
        executor.prepare_process()
    except SetupError as e:
        # retried (and reported) per job
        console.print_error("Process setup failed", str(e))

    console.print_worker_started(
        worker_id=worker_id,
        work_queue=work_queue,
        result_queue=result_queue,
        nfs_path=nfs_path,
    )

    try:
        processed = executor.run(max_jobs=max_jobs)
    except redis.RedisError as e:
        console.print_error(
            "Redis error",
            str(e),
            suggestion=f"Check that Redis is reachable at {redis_url}.",
        )
        sys.exit(1)
    except Exception as e:
        _fail(e)
    console.print_info(f"Worker stopped after {processed} job(s).")


@cli.command()
@click.argument("calculation_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--redis-url", default=settings.REDIS_URL, show_default=True)
@click.option("--work-queue", default=settings.WORK_QUEUE, show_default=True)
@click.option("--status-prefix", default=settings.STATUS_PREFIX, show_default=True)
@click.option("--resume/--no-resume", default=True, show_default=True, help="Skip steps already recorded in the status store")
@click.option("--reset", is_flag=True, default=False, help="Forget recorded step statuses before submitting")
@click.pass_context
def submit(ctx, calculation_file, redis_url, work_queue, status_prefix, resume, reset):
    """Enqueue a calculation described by a JSON file."""
    console = get_console()

    try:
        calc = decode_calculation(calculation_file.read_bytes())
    except ChannelError as e:
        console.print_error(
            "Invalid calculation file",
            f"Could not load a calculation from {calculation_file}",
            details=[str(e)],
        )
        sys.exit(1)

    try:
        client = _redis_client(redis_url)
        store = StepStatusStore(client, status_prefix)
        if reset:
            store.reset(calc.name)
        if resume:
            calc = store.resume(calc)
        RedisWorkChannel(client, work_queue).put(calc)
    except redis.RedisError as e:
        console.print_error("Redis error", str(e), suggestion=f"Check that Redis is reachable at {redis_url}.")
        sys.exit(1)

    pending = sum(1 for s in calc.steps if not s.done)
    console.print_info(f"Submitted {calc.name} to {work_queue} ({pending}/{len(calc.steps)} step(s) pending)")


@cli.command()
@click.option("--redis-url", default=settings.REDIS_URL, show_default=True)
@click.option("--result-queue", default=settings.RESULT_QUEUE, show_default=True)
@click.option("--status-prefix", default=settings.STATUS_PREFIX, show_default=True)
@click.option("--follow", is_flag=True, default=False, help="Keep collecting until interrupted")
@click.pass_context
def collect(ctx, redis_url, result_queue, status_prefix, follow):
    """Record step results from the result queue into the status store."""
    console = get_console()
    client = _redis_client(redis_url)
    results = RedisResultChannel(client, result_queue)
    store = StepStatusStore(client, status_prefix)

    total = 0
    try:
        while True:
            total += collect_results(results, store, timeout=5.0 if follow else 1.0)
            if not follow:
                break
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
    except redis.RedisError as e:
        console.print_error("Redis error", str(e), suggestion=f"Check that Redis is reachable at {redis_url}.")
        sys.exit(1)
    except ChannelError as e:
        _fail(e)
    console.print_info(f"Recorded {total} result(s).")


@cli.command()
@click.argument("name")
@click.option("--redis-url", default=settings.REDIS_URL, show_default=True)
@click.option("--status-prefix", default=settings.STATUS_PREFIX, show_default=True)
@click.option("--json", "as_json", is_flag=True, default=False, help="Print as JSON")
def status(name, redis_url, status_prefix, as_json):
    """Show the recorded step statuses of a calculation."""
    console = get_console()
    try:
        statuses = StepStatusStore(_redis_client(redis_url), status_prefix).statuses(name)
    except redis.RedisError as e:
        console.print_error("Redis error", str(e), suggestion=f"Check that Redis is reachable at {redis_url}.")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps({str(k): v.value for k, v in sorted(statuses.items())}))
        return
    if not statuses:
        console.print_info(f"{name}: no recorded steps")
        return
    console.print_info(name)
    for index, st in sorted(statuses.items()):
        console.print_info(f"  step {index}: {st.value}")


if __name__ == "__main__":
    cli()
