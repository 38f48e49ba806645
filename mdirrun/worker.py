# mdirrun/worker.py
import logging
import time
import traceback
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, List, Sequence

from .errors import AccessError, CommandError
from .executor import run_command
from .logs import LogArchiver
from .models import CommandResult, Job, ProgressRecord, RunConfig, Status
from .progress import ProgressRegistry

logger = logging.getLogger(__name__)

Runner = Callable[..., CommandResult]


def resolve_job(job_id: str, config: RunConfig) -> Job:
    """
    root/job_id, descended into the first existing entry-point subdirectory.
    Raises AccessError when root/job_id is missing or not a directory.
    """
    path = Path(config.root_directory) / job_id
    if not path.is_dir():
        raise AccessError(f"Failed to access directory: {path}")
    for name in config.subdir_entry_points:
        candidate = path / name
        if candidate.is_dir():
            path = candidate
            break
    return Job(id=job_id, path=path, commands=config.commands, total=len(config.commands))


def _output_section(stream: str, text: str) -> str:
    if text.strip():
        return f"Output ({stream}):\n{text.rstrip()}\n"
    return f"No output ({stream})\n"


def success_section(command: str, result: CommandResult) -> str:
    return (
        f"Command: {command}\n"
        f"Attempts: {result.attempts_used}/{result.max_attempts}\n"
        + _output_section("stdout", result.stdout)
        + _output_section("stderr", result.stderr)
        + "\n"
    )


def failure_details(command: str, job: Job, result: CommandResult) -> str:
    lines = [
        f"Command: {command}\n",
        f"Working directory: {job.path}\n",
        f"Step: {job.step}/{job.total}\n",
        f"Error: {result.error}\n",
        f"Attempts: {result.attempts_used}/{result.max_attempts}\n",
    ]
    for attempt in result.history:
        lines.append(f"\nAttempt {attempt.number}/{result.max_attempts}: {attempt.error or 'ok'}\n")
        lines.append(_output_section("stdout", attempt.stdout))
        lines.append(_output_section("stderr", attempt.stderr))
    return "".join(lines)


def process_job(
    job_id: str,
    config: RunConfig,
    registry: ProgressRegistry,
    archiver: LogArchiver,
    runner: Runner = run_command,
) -> ProgressRecord:
    """
    Runs every configured command for one directory:
      - short-circuits to FAIL when the directory can't be accessed
      - publishes a Processing snapshot before each command
      - stops at the first command that exhausts its retries
      - always writes the main log line and the final snapshot
    """
    start = time.monotonic()
    record = registry.get(job_id)

    try:
        job = resolve_job(job_id, config)
    except AccessError as e:
        record.status = Status.FAIL
        record.command = str(e)
        archiver.write_error_artifact(
            job_id,
            f"{e}\nThe path is missing or is not a directory. No commands were run.\n",
        )
        return _finish(job_id, record, registry, archiver, start)

    record.total = job.total
    transcript = []
    result = None
    for i, argv in enumerate(job.commands, start=1):
        command = " ".join(argv)
        job.step = i
        record.step = i
        record.command = command
        record.status = Status.PROCESSING
        registry.update(job_id, record)

        result = runner(argv, job.path, config.retries, backoff_unit=config.backoff_unit)
        try:
            result.raise_for_status()
        except CommandError as e:
            record.status = Status.FAIL
            record.attempts = result.attempts_used
            record.max_attempts = config.max_attempts
            record.output = result.stderr
            record.command = f"Failed to execute {command}"
            archiver.write_error_artifact(job_id, failure_details(command, job, result))
            logger.debug("%s | %s", job_id, e)
            return _finish(job_id, record, registry, archiver, start)
        transcript.append(success_section(command, result))

    record.status = Status.SUCCESS
    record.attempts = result.attempts_used if result else 0
    record.max_attempts = config.max_attempts
    transcript.append(f"Total execution time: {time.monotonic() - start:.2f} sec\n")
    archiver.write_success_artifact(job_id, "".join(transcript))
    return _finish(job_id, record, registry, archiver, start)


def _finish(job_id, record, registry, archiver, start) -> ProgressRecord:
    archiver.write_job_line(record.label, time.monotonic() - start, job_id)
    registry.update(job_id, record)
    return record


def dispatch_run(
    job_ids: Sequence[str],
    config: RunConfig,
    registry: ProgressRegistry,
    archiver: LogArchiver,
    runner: Runner = run_command,
) -> List[ProgressRecord]:
    """
    Runs process_job for every id with at most config.concurrency jobs in
    flight and blocks until all of them are terminal. Returns the registry
    snapshot in registration order.
    """
    registry.register(job_ids)
    with ThreadPoolExecutor(max_workers=config.concurrency, thread_name_prefix="mdirrun-job") as pool:
        futures = {
            pool.submit(process_job, job_id, config, registry, archiver, runner): job_id
            for job_id in job_ids
        }
        for future in as_completed(futures):
            job_id = futures[future]
            try:
                future.result()
            except Exception as e:
                # a crashed job still has to end up terminal
                logger.exception("%s | job crashed", job_id)
                _force_fail(job_id, registry, archiver, e)
    return registry.snapshot_all()


def _force_fail(job_id: str, registry: ProgressRegistry, archiver: LogArchiver, error: BaseException) -> None:
    record = registry.get(job_id)
    if record.terminal:
        return
    running = record.command if record.status == Status.PROCESSING else "no command started"
    record.status = Status.FAIL
    record.command = "Internal error while processing directory"
    record.output = f"{type(error).__name__}: {error}"
    archiver.write_error_artifact(
        job_id,
        f"Internal error at step {record.step}/{record.total} ({running})\n"
        f"Error: {record.output}\n\n"
        + "".join(traceback.format_exception(type(error), error, error.__traceback__)),
    )
    archiver.write_job_line(record.label, 0, job_id)
    registry.update(job_id, record)
