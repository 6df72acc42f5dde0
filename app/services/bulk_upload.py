"""
Bulk ingestion of parsed agency records.

Each record is inserted with a single backend call, in file order, one at a
time. A failed insert is logged and counted but never retried and never stops
the run, so a partially failed upload keeps its successful rows. When the run
ends the canonical listing is reloaded from the backend instead of merging the
inserted rows locally.

Usage:
    records = parse_csv(text)
    status = await ingest_records(records, backend, owner_id=user.id)
    print(status.summary())  # "41 succeeded, 1 failed"
"""

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from app.core.config import settings
from app.core.errors import capture_exception
from app.core.logging_config import bind_log_context, clear_log_context, get_logger
from app.core.retry import retryable_query
from app.services.backend import Backend
from app.services.csv_import import CsvRecord, parse_csv

logger = get_logger(__name__)

DEFAULT_COLLECTION = "agencies"
MAX_ERROR_MESSAGES = 100


class UploadState(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class UploadStatus:
    """Progress of one bulk upload. processed == success + failed <= total."""

    total: int = 0
    processed: int = 0
    success: int = 0
    failed: int = 0
    state: UploadState = UploadState.NOT_STARTED
    errors: List[str] = field(default_factory=list)

    def start(self, total: int) -> None:
        self.total = total
        self.processed = 0
        self.success = 0
        self.failed = 0
        self.errors = []
        self.state = UploadState.IN_PROGRESS

    def record_success(self) -> None:
        self.success += 1
        self.processed += 1

    def record_failure(self, message: str) -> None:
        self.failed += 1
        self.processed += 1
        if len(self.errors) < MAX_ERROR_MESSAGES:
            self.errors.append(message)

    def summary(self) -> str:
        return f"{self.success} succeeded, {self.failed} failed"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "processed": self.processed,
            "success": self.success,
            "failed": self.failed,
            "state": self.state.value,
            "errors": list(self.errors),
        }


ProgressCallback = Callable[[UploadStatus], Any]


async def ingest_records(
    records: Sequence[CsvRecord],
    backend: Backend,
    collection: str = DEFAULT_COLLECTION,
    owner_id: Optional[str] = None,
    status: Optional[UploadStatus] = None,
    cancel_event: Optional[threading.Event] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> UploadStatus:
    """
    Insert records one at a time, counting successes and failures.

    Args:
        records: Validated records, ingested in order
        backend: Target backend
        collection: Target collection name
        owner_id: Stamped on every created row
        status: Status object to update in place (a new one is created if omitted)
        cancel_event: Checked between rows; once set, the remaining rows are skipped
        on_progress: Called with the status after every row

    Returns:
        The final UploadStatus
    """
    if status is None:
        status = UploadStatus()
    status.start(len(records))

    # Row numbers match the CSV file (header is row 1)
    for row, record in enumerate(records, start=2):
        if cancel_event is not None and cancel_event.is_set():
            status.state = UploadState.CANCELLED
            logger.info("bulk_upload_cancelled", processed=status.processed, total=status.total)
            return status

        try:
            await backend.insert(collection, record.to_insert_payload(owner_id))
            status.record_success()
        except Exception as e:
            capture_exception(e, context={"operation": "bulk_upload_row", "row": row, "name": record.name}, level="warning")
            status.record_failure(f"Row {row} ({record.name}): {e}")

        if on_progress is not None:
            on_progress(status)

    status.state = UploadState.COMPLETED
    logger.info(
        "bulk_upload_completed",
        collection=collection,
        total=status.total,
        success=status.success,
        failed=status.failed,
    )
    return status


async def reload_listing(backend: Backend, collection: str = DEFAULT_COLLECTION) -> List[Dict[str, Any]]:
    """Fetch the canonical listing, newest first."""
    return await retryable_query(lambda: backend.query(collection, ordering=[("created_at", "desc")]))


async def bulk_upload(
    content: str,
    backend: Backend,
    owner_id: Optional[str] = None,
    collection: str = DEFAULT_COLLECTION,
    status: Optional[UploadStatus] = None,
    cancel_event: Optional[threading.Event] = None,
    on_progress: Optional[ProgressCallback] = None,
    reload: bool = True,
) -> Tuple[UploadStatus, Optional[List[Dict[str, Any]]]]:
    """
    Parse, ingest and reconcile one CSV document.

    Parsing happens before any backend call, so a CsvValidationError means
    nothing was written.

    Returns:
        (status, reloaded rows) -- rows is None when reload=False
    """
    records = parse_csv(content)
    status = await ingest_records(
        records,
        backend,
        collection=collection,
        owner_id=owner_id,
        status=status,
        cancel_event=cancel_event,
        on_progress=on_progress,
    )
    if not reload:
        return status, None
    return status, await reload_listing(backend, collection)


@dataclass
class UploadJob:
    job_id: str
    owner_id: Optional[str]
    status: UploadStatus = field(default_factory=UploadStatus)
    cancel_event: threading.Event = field(default_factory=threading.Event)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self.status.state in (UploadState.NOT_STARTED, UploadState.IN_PROGRESS)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "owner_id": self.owner_id,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "cancel_requested": self.cancel_event.is_set(),
            "error": self.error,
            **self.status.to_dict(),
        }


class UploadJobRegistry:
    """
    In-process table of bulk-upload jobs, keyed by job id.

    Running jobs are always kept. Finished jobs stay pollable until more than
    max_finished of them exist, then the oldest are dropped.
    """

    def __init__(self, max_finished: Optional[int] = None):
        self._jobs: Dict[str, UploadJob] = {}
        self._lock = threading.Lock()
        self.max_finished = settings.MAX_FINISHED_UPLOAD_JOBS if max_finished is None else max_finished

    def _evict_finished(self) -> None:
        finished = [job for job in self._jobs.values() if not job.is_running]
        excess = len(finished) - self.max_finished
        if excess <= 0:
            return
        finished.sort(key=lambda job: job.finished_at or job.started_at)
        for job in finished[:excess]:
            del self._jobs[job.job_id]
        logger.debug("upload_jobs_evicted", count=excess)

    def running_job_for(self, owner_id: Optional[str]) -> Optional[UploadJob]:
        with self._lock:
            for job in self._jobs.values():
                if job.owner_id == owner_id and job.is_running:
                    return job
        return None

    def create(self, owner_id: Optional[str], total: int = 0) -> UploadJob:
        job = UploadJob(job_id=f"upload_{uuid.uuid4().hex}", owner_id=owner_id)
        job.status.total = total
        with self._lock:
            self._evict_finished()
            self._jobs[job.job_id] = job
        return job

    def get(self, job_id: str) -> Optional[UploadJob]:
        with self._lock:
            return self._jobs.get(job_id)

    def cancel(self, job_id: str) -> Optional[UploadJob]:
        job = self.get(job_id)
        if job is not None and job.is_running:
            job.cancel_event.set()
        return job

    def all(self) -> List[UploadJob]:
        with self._lock:
            return list(self._jobs.values())

    def clear(self) -> None:
        with self._lock:
            self._jobs.clear()


upload_jobs = UploadJobRegistry()


async def run_upload_job(job: UploadJob, records: Sequence[CsvRecord], backend: Backend) -> None:
    """Background task body: ingest, then reload the listing to reconcile."""
    bind_log_context(job_id=job.job_id)
    try:
        await ingest_records(
            records,
            backend,
            owner_id=job.owner_id,
            status=job.status,
            cancel_event=job.cancel_event,
        )
        await reload_listing(backend)
    except Exception as e:
        job.status.state = UploadState.FAILED
        job.error = str(e)
        capture_exception(e, context={"operation": "bulk_upload_job", "job_id": job.job_id})
    finally:
        job.finished_at = datetime.now(timezone.utc)
        logger.info("bulk_upload_job_finished", **job.status.to_dict())
        clear_log_context()


__all__ = [
    "UploadState",
    "UploadStatus",
    "UploadJob",
    "UploadJobRegistry",
    "upload_jobs",
    "ingest_records",
    "reload_listing",
    "bulk_upload",
    "run_upload_job",
]
