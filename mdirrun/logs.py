"""
Run log files: the shared main log, one success/error transcript per job,
the summary footer, and the end-of-run archive that bundles all of them.
"""
import logging
import sys
import tarfile
import threading
import zipfile
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

from .errors import ArchiveError
from .utils import archive_stamp, format_duration, log_stamp, now

logger = logging.getLogger(__name__)

SUCCESS_SUFFIX = "_success.txt"
ERROR_SUFFIX = "_error.txt"

EMPTY_OUTPUT_NOTE = (
    "\n\nNOTE: Command output was empty. This might indicate:\n"
    "- Command did not produce any output before failing\n"
    "- Command may have written output to a file instead of stdout/stderr\n"
    "- There might be an environment or permission issue\n"
    "- The process might have been terminated by the operating system"
)


# -----------------------------
# Archive formats
# -----------------------------
class ArchiveFormat:
    extension = ""

    def write(self, archive_path: Path, files: Sequence[Path]) -> None:
        raise NotImplementedError


class TarGzFormat(ArchiveFormat):
    extension = ".tar.gz"

    def write(self, archive_path: Path, files: Sequence[Path]) -> None:
        with tarfile.open(archive_path, "w:gz") as tar:
            for f in files:
                tar.add(f, arcname=f.name, recursive=False)


class ZipFormat(ArchiveFormat):
    extension = ".zip"

    def write(self, archive_path: Path, files: Sequence[Path]) -> None:
        with zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for f in files:
                zf.write(f, arcname=f.name)


def select_archive_format(platform: Optional[str] = None) -> ArchiveFormat:
    """zip on Windows, tar.gz everywhere else."""
    platform = platform or sys.platform
    if platform.startswith("win"):
        return ZipFormat()
    return TarGzFormat()


# -----------------------------
# Archiver
# -----------------------------
class LogArchiver:
    def __init__(self, main_log_path: Path, archive_format: Optional[ArchiveFormat] = None):
        self.main_log_path = Path(main_log_path)
        self.archive_format = archive_format or select_archive_format()
        # guards the main log and the archive step; job artifacts are never shared
        self._lock = threading.Lock()

    @property
    def log_dir(self) -> Path:
        return self.main_log_path.parent

    def initialize(self) -> None:
        """Create (or truncate) the main log and write its header. Raises OSError."""
        self.log_dir.mkdir(parents=True, exist_ok=True)
        with self._lock:
            self.main_log_path.write_text(f"Script execution log on {log_stamp()}\n", encoding="utf-8")

    def append_line(self, line: str) -> None:
        if not line.endswith("\n"):
            line += "\n"
        with self._lock:
            try:
                with self.main_log_path.open("a", encoding="utf-8") as f:
                    f.write(line)
            except OSError as e:
                logger.error("failed to write to log file %s: %s", self.main_log_path, e)

    def write_job_line(self, status: str, elapsed: float, job_id: str) -> None:
        self.append_line(format_job_line(status, elapsed, job_id))

    def artifact_path(self, job_id: str, suffix: str) -> Path:
        return self.log_dir / f"{Path(job_id).name}{suffix}"

    def write_error_artifact(self, job_id: str, details: str) -> Optional[Path]:
        if not details.strip() or "Output" not in details:
            details += EMPTY_OUTPUT_NOTE
        return self._write_artifact(job_id, ERROR_SUFFIX, "Error", details)

    def write_success_artifact(self, job_id: str, details: str) -> Optional[Path]:
        return self._write_artifact(job_id, SUCCESS_SUFFIX, "Success", details)

    def _write_artifact(self, job_id: str, suffix: str, kind: str, details: str) -> Optional[Path]:
        path = self.artifact_path(job_id, suffix)
        header = f"{kind} log for directory '{job_id}' created on {log_stamp()}\n\n"
        try:
            path.write_text(header + details, encoding="utf-8")
        except OSError as e:
            logger.error("%s | failed to write %s log file %s: %s", job_id, kind.lower(), path, e)
            return None
        return path

    def write_summary(self, start_time: datetime) -> None:
        finished = now()
        elapsed = (finished - start_time).total_seconds()
        self.append_line(
            f"\nExecution completed on {log_stamp(finished)} | Total execution time: {format_duration(elapsed)}"
        )

    def collect(self) -> List[Path]:
        """Main log plus every per-job transcript beside it."""
        files = []
        if self.main_log_path.is_file():
            files.append(self.main_log_path)
        try:
            entries = sorted(self.log_dir.iterdir())
        except OSError as e:
            raise ArchiveError(f"failed to read log directory: {e}") from e
        for entry in entries:
            if entry == self.main_log_path or not entry.is_file():
                continue
            if entry.name.endswith(SUCCESS_SUFFIX) or entry.name.endswith(ERROR_SUFFIX):
                files.append(entry)
        return files

    def archive(self) -> Path:
        """
        Bundle all log files into logs-<timestamp><ext> next to the main log and
        delete the originals. Raises ArchiveError when there is nothing to
        archive or the archive cannot be written.
        """
        with self._lock:
            files = self.collect()
            if not files:
                raise ArchiveError("no log files found to archive")

            archive_path = self._unique_archive_path()
            try:
                self.archive_format.write(archive_path, files)
            except (OSError, tarfile.TarError, zipfile.BadZipFile) as e:
                archive_path.unlink(missing_ok=True)
                raise ArchiveError(f"failed to create archive: {e}") from e

            for f in files:
                try:
                    f.unlink()
                except OSError as e:
                    logger.warning("failed to delete original log file %s: %s", f, e)

        logger.info("log files archived to %s", archive_path)
        return archive_path

    def _unique_archive_path(self) -> Path:
        base = f"logs-{archive_stamp()}"
        ext = self.archive_format.extension
        path = self.log_dir / f"{base}{ext}"
        n = 1
        while path.exists():
            path = self.log_dir / f"{base}-{n}{ext}"
            n += 1
        return path


def format_job_line(status: str, elapsed: float, job_id: str) -> str:
    return f"STATUS: {status:<10} | TIME: {elapsed:5.0f} sec | DIR: {job_id:<30}"
