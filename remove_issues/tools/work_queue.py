# ============================================================================
# remove-issues -- Work Queue + Dispatcher (remove_issues/tools/work_queue.py)
# ============================================================================
#
# WHAT THIS FILE DOES (plain English):
#   The WorkQueue owns the pool of copy workers and decides, for every
#   file the walker finds, whether it gets copied at all.
#
#   For each file, add() asks these questions IN ORDER:
#     1. Is it inside the directory of an issue being removed?
#          -> skip it. Not even its destination folder is created.
#     2. Is it the source batch.xml?
#          -> skip it. The filtered copy is already at the destination.
#     3. Can its destination folder be created?
#          -> if not, log it and skip the file (the run keeps going)
#     4. Is it a TIFF master image, or a *_1.xml validation file?
#          -> skip it. Neither belongs in the new batch.
#     5. Otherwise -> queue a copy job for the workers.
#
#   Every answer is written to the audit log, so the record shows why
#   each left-out file was left out.
#
# BACKPRESSURE:
#   The walker is much faster than the copy. At most queue_capacity
#   jobs may be waiting or in progress; past that, add() waits until a
#   worker finishes one. Retries go back onto the queue without taking
#   a new slot, so a full queue can never wedge a worker that is trying
#   to re-queue a failed copy.
#
# SHUTDOWN:
#   wait() says "no more jobs", waits until every queued job (retries
#   included) is finished, then tells the workers to stop and waits for
#   every worker thread to exit.
# ============================================================================

from __future__ import annotations

import os
import queue
import threading
from enum import Enum
from typing import Callable, FrozenSet, Iterable, List, Optional

import structlog

from remove_issues.core.batch_manifest import is_under
from remove_issues.monitoring.logger import get_audit_logger, get_error_logger
from remove_issues.tools.copyfile import copy_file
from remove_issues.tools.migration_stats import MigrationStats
from remove_issues.tools.worker import Job, JobType, Worker

log = structlog.get_logger(__name__)


class Disposition(Enum):
    """What the dispatcher decided for one file"""
    QUEUED = "queued"
    SKIP_DIRECTORY = "skip_directory"
    SKIP_MANIFEST = "skip_manifest"
    SKIP_TIFF = "skip_tiff"
    SKIP_VALIDATED_XML = "skip_validated_xml"
    MKDIR_FAILED = "mkdir_failed"


class WorkQueue:
    """
    Dispatcher plus a fixed pool of copy workers.

    The workers start as soon as the queue is created; call add() for
    every file and wait() once the walk is over.
    """

    def __init__(
        self,
        skip_dirs: Iterable[str],
        workers: int,
        capacity: int = 100_000,
        max_failures: int = 5,
        poll_interval: float = 0.05,
        skip_extensions: Iterable[str] = (".tif", ".tiff"),
        validated_suffix: str = "_1.xml",
        manifest_path: Optional[str] = None,
        copier: Callable[[str, str], int] = copy_file,
        stats: Optional[MigrationStats] = None,
    ) -> None:
        if workers < 1:
            raise ValueError("a work queue needs at least one worker")
        if capacity < 1:
            raise ValueError("queue capacity must be at least 1")

        # Read-only once built; shared by the walker without locking
        self.skip_dirs: FrozenSet[str] = frozenset(
            os.path.normpath(os.path.abspath(d)) for d in skip_dirs
        )
        self.skip_extensions = frozenset(e.lower() for e in skip_extensions)
        self.validated_suffix = validated_suffix.lower()
        self.manifest_path = (
            os.path.normpath(os.path.abspath(manifest_path)) if manifest_path else None
        )

        self.max_failures = max_failures
        self.poll_interval = poll_interval
        self.copier = copier
        self.stats = stats or MigrationStats()
        self.audit_log = get_audit_logger()
        self.error_log = get_error_logger()

        self.jobs: "queue.Queue[Job]" = queue.Queue()
        self.stopping = threading.Event()
        self._slots = threading.BoundedSemaphore(capacity)
        self._lock = threading.Lock()
        self._closed = False

        self.workers: List[Worker] = [Worker(i, self) for i in range(workers)]
        for w in self.workers:
            w.start()
        log.info("work_queue_started", workers=workers, capacity=capacity,
                 skip_dirs=sorted(self.skip_dirs))

    @classmethod
    def from_config(cls, config, skip_dirs: Iterable[str],
                    manifest_path: Optional[str] = None,
                    stats: Optional[MigrationStats] = None) -> "WorkQueue":
        """Build a queue from a loaded Config."""
        def copier(src: str, dest: str) -> int:
            return copy_file(src, dest, config.copy.buffer_size)

        return cls(
            skip_dirs,
            workers=config.resolved_workers(),
            capacity=config.copy.queue_capacity,
            max_failures=config.copy.max_failures,
            poll_interval=config.copy.poll_interval,
            skip_extensions=config.policy.skip_extensions,
            validated_suffix=config.policy.validated_suffix,
            manifest_path=manifest_path,
            copier=copier,
            stats=stats,
        )

    # ------------------------------------------------------------------
    # Dispatcher
    # ------------------------------------------------------------------

    def add(self, source_path: str, dest_dir: str, base_name: str) -> Disposition:
        """
        Classify one file and queue a copy job if it is to be kept.

        Blocks only when queue_capacity jobs are already in flight.
        """
        with self._lock:
            if self._closed:
                raise RuntimeError("work queue is closed; no more jobs may be added")

        self.stats.incr("files_seen")

        for skip_dir in self.skip_dirs:
            if is_under(source_path, skip_dir):
                self.audit_log.info("file_skipped", path=source_path,
                                    reason="issue_removed", skip_dir=skip_dir)
                self.stats.incr("skipped_directory")
                return Disposition.SKIP_DIRECTORY

        if self.manifest_path and os.path.normpath(os.path.abspath(source_path)) == self.manifest_path:
            self.audit_log.info("file_skipped", path=source_path, reason="batch_manifest")
            self.stats.incr("skipped_manifest")
            return Disposition.SKIP_MANIFEST

        try:
            os.makedirs(dest_dir, exist_ok=True)
        except OSError as e:
            self.error_log.error("mkdir_failed", path=dest_dir, source=source_path,
                                 error=str(e))
            self.stats.incr("mkdir_failed")
            return Disposition.MKDIR_FAILED

        disposition = self.classify(base_name)
        if disposition is Disposition.SKIP_TIFF:
            self.audit_log.info("file_skipped", path=source_path, reason="tiff")
            self.stats.incr("skipped_tiff")
            return disposition
        if disposition is Disposition.SKIP_VALIDATED_XML:
            self.audit_log.info("file_skipped", path=source_path, reason="validated_xml")
            self.stats.incr("skipped_validated")
            return disposition

        job = Job(
            source_path=source_path,
            dest_path=os.path.join(dest_dir, base_name),
            kind=JobType.FILE_COPY,
        )
        self._slots.acquire()
        self.stats.incr("queued")
        self.audit_log.info("job_queued", path=source_path, dest=job.dest_path,
                            kind=str(job.kind))
        self.jobs.put(job)
        return Disposition.QUEUED

    def classify(self, base_name: str) -> Disposition:
        """Type policy by file name alone (case-insensitive)."""
        lower = base_name.lower()
        ext = os.path.splitext(lower)[1]
        if ext in self.skip_extensions:
            return Disposition.SKIP_TIFF
        if ext == ".xml" and lower.endswith(self.validated_suffix):
            return Disposition.SKIP_VALIDATED_XML
        return Disposition.QUEUED

    # ------------------------------------------------------------------
    # Pool bookkeeping
    # ------------------------------------------------------------------

    def release(self, job: Job) -> None:
        """A job is finished for good (copied or given up); free its slot."""
        self._slots.release()

    def wait(self) -> None:
        """
        Block until every submitted job is done and all workers have quit.

        Safe to call more than once.
        """
        with self._lock:
            self._closed = True

        self.jobs.join()
        self.stopping.set()
        for w in self.workers:
            w.join()
        log.info("work_queue_drained", **self.stats.snapshot())
