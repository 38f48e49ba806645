"""Thread-safe per-job progress store shared by job threads and display consumers."""
import logging
import threading
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .models import ProgressRecord, Status

logger = logging.getLogger(__name__)

Observer = Callable[[ProgressRecord], None]


class ProgressRegistry:
    """
    One ProgressRecord per job, kept in registration order.

    Every read hands back a copy so readers never race the job threads.
    Presentation layers can either poll snapshot_all() or subscribe() to
    receive each stored record right after it changes.
    """

    def __init__(self, job_ids: Iterable[str] = ()):
        self._lock = threading.Lock()
        self._records: Dict[str, ProgressRecord] = {}
        self._order: List[str] = []
        self._observers: List[Observer] = []
        self.register(job_ids)

    def register(self, job_ids: Iterable[str]) -> None:
        with self._lock:
            for job_id in job_ids:
                if job_id in self._records:
                    continue
                self._records[job_id] = ProgressRecord(job_id=job_id)
                self._order.append(job_id)

    def update(self, job_id: str, record: ProgressRecord) -> None:
        """Replace the stored record for job_id. Terminal records can't change status."""
        stored = record.model_copy(update={"job_id": job_id})
        with self._lock:
            current = self._records[job_id]
            if current.terminal and stored.status != current.status:
                raise ValueError(f"{job_id} is already {current.label}, refusing {stored.label}")
            self._records[job_id] = stored
            observers = list(self._observers)
        self._notify(observers, stored)

    def get(self, job_id: str) -> ProgressRecord:
        with self._lock:
            return self._records[job_id].model_copy()

    def snapshot_all(self) -> List[ProgressRecord]:
        with self._lock:
            return [self._records[job_id].model_copy() for job_id in self._order]

    def annotate_archive(self, archive_path: Optional[str]) -> None:
        """Attach the run's archive path to every record, terminal or not."""
        with self._lock:
            for job_id in self._order:
                self._records[job_id] = self._records[job_id].model_copy(update={"archive_path": archive_path})

    def counts(self) -> Tuple[int, int, int]:
        """(succeeded, failed, total)"""
        with self._lock:
            statuses = [r.status for r in self._records.values()]
        return statuses.count(Status.SUCCESS), statuses.count(Status.FAIL), len(statuses)

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        with self._lock:
            self._observers.append(observer)

        def unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return unsubscribe

    @staticmethod
    def _notify(observers: List[Observer], record: ProgressRecord) -> None:
        for observer in observers:
            try:
                observer(record.model_copy())
            except Exception:
                logger.exception("progress observer failed for %s", record.job_id)
