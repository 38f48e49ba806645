import logging
from pathlib import Path
from typing import List, Optional

from .directories import list_subdirectories
from .display import ProgressPoller, Render
from .errors import ArchiveError
from .executor import run_command
from .logs import LogArchiver
from .models import RunConfig, RunResult
from .progress import ProgressRegistry
from .utils import now
from .worker import Runner, dispatch_run

logger = logging.getLogger(__name__)


def discover_jobs(config: RunConfig) -> List[str]:
    """Subdirectories of the root, minus the log folder when it sits directly inside the root."""
    names = list_subdirectories(config.root_directory)
    log_dir = Path(config.main_log_path).absolute().parent
    if log_dir.parent == Path(config.root_directory).absolute() and log_dir.name in names:
        names.remove(log_dir.name)
    return names


def execute_run(
    config: RunConfig,
    render: Optional[Render] = None,
    runner: Runner = run_command,
    registry: Optional[ProgressRegistry] = None,
    archiver: Optional[LogArchiver] = None,
) -> RunResult:
    """
    Full run over every subdirectory of config.root_directory:
    main log header, jobs, summary footer, archive.

    Raises OSError when the main log can't be created or the root can't be
    listed. Archive problems don't raise; they come back on archive_error.
    """
    started = now()
    archiver = archiver or LogArchiver(config.main_log_path)
    archiver.initialize()

    job_ids = discover_jobs(config)
    registry = registry or ProgressRegistry()
    registry.register(job_ids)
    logger.info("processing %d directories under %s (concurrency=%d, retries=%d)",
                len(job_ids), config.root_directory, config.concurrency, config.retries)

    poller = ProgressPoller(registry, render).start() if render else None
    try:
        dispatch_run(job_ids, config, registry, archiver, runner=runner)
    finally:
        if poller:
            poller.stop()

    succeeded, failed, total = registry.counts()
    logger.info("finished: %d succeeded, %d failed, %d total", succeeded, failed, total)
    archiver.write_summary(started)

    archive_path, archive_error = None, None
    try:
        archive_path = archiver.archive()
    except ArchiveError as e:
        archive_error = str(e)
        logger.warning("failed to archive log files: %s", e)
    else:
        registry.annotate_archive(str(archive_path))

    return RunResult(
        records=registry.snapshot_all(),
        archive_path=archive_path,
        archive_error=archive_error,
        started_at=started,
        finished_at=now(),
    )
