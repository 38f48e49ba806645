"""
Terminal rendering of run progress.
"""
import logging
import threading
from typing import Callable, List, Optional

from rich.console import Group
from rich.text import Text

from .models import ProgressRecord, RunResult, Status
from .progress import ProgressRegistry

logger = logging.getLogger(__name__)

Render = Callable[[List[ProgressRecord]], None]

SUCCESS_STYLE = "green"
FAIL_STYLE = "red"
MIXED_STYLE = "dark_orange"


def render_record(record: ProgressRecord) -> Text:
    """One line per directory, plus the captured error output when it failed."""
    if record.status == Status.WAITING:
        return Text(f"{record.job_id} | {record.command}", style="dim")
    if record.status == Status.PROCESSING:
        if record.total > 0:
            return Text(f"{record.job_id} | step: {record.step}/{record.total} | command: {record.command}")
        return Text(f"{record.job_id} | {record.command}")
    if record.status == Status.FAIL:
        line = Text(f"{record.job_id} | {record.label}: {record.command}", style=FAIL_STYLE)
        if record.output.strip():
            line.append(f"\n{record.output.rstrip()}", style="dim")
        return line
    return Text(f"{record.job_id} | {record.label}", style=SUCCESS_STYLE)


def render_snapshot(records: List[ProgressRecord]) -> Group:
    return Group(*(render_record(r) for r in records))


def summary_style(succeeded: int, failed: int) -> str:
    if succeeded and not failed:
        return SUCCESS_STYLE
    if failed and not succeeded:
        return FAIL_STYLE
    if succeeded and failed:
        return MIXED_STYLE
    return "white"


def render_summary(result: RunResult) -> Text:
    total = len(result.records)
    ok, bad = len(result.succeeded), len(result.failed)
    style = summary_style(ok, bad)
    text = Text("--- Execution completed ---\n", style=f"bold {style}")
    if total:
        text.append(f"Success: {ok}/{total} | Failure: {bad}/{total}\n", style=style)
    if result.archive_path:
        text.append(f"Log files archived in: {result.archive_path}", style=style)
    elif result.archive_error:
        text.append(f"WARNING: Failed to archive log files: {result.archive_error}", style="yellow")
    return text


class ProgressPoller:
    """
    Background thread that hands registry snapshots to a render callable every
    interval seconds until stop() is called. Read-only: it only calls snapshot_all().
    """

    def __init__(self, registry: ProgressRegistry, render: Render, interval: float = 0.1):
        self.registry = registry
        self.render = render
        self.interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> "ProgressPoller":
        self._thread = threading.Thread(target=self._loop, name="mdirrun-display", daemon=True)
        self._thread.start()
        return self

    def stop(self) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=1.0)
        # last frame so the display ends on the terminal state
        self._draw()

    def _loop(self) -> None:
        while not self._stop.is_set():
            self._draw()
            self._stop.wait(self.interval)

    def _draw(self) -> None:
        try:
            self.render(self.registry.snapshot_all())
        except Exception:
            logger.exception("progress display failed")

    def __enter__(self):
        return self.start()

    def __exit__(self, *exc):
        self.stop()
