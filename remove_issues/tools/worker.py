# ============================================================================
# remove-issues -- Copy Worker (remove_issues/tools/worker.py)
# ============================================================================
#
# WHAT THIS FILE DOES (plain English):
#   A Worker is one thread that pulls copy jobs off the shared queue and
#   copies the file. The WorkQueue starts a fixed number of them.
#
# LIFE OF A WORKER:
#   polling     -- waits (briefly) for a job to show up on the queue
#   processing  -- owns one job and copies its file
#   draining    -- the pool has said "no more jobs are coming"; the
#                  worker keeps pulling until the queue is empty, then
#                  exits
#
# RETRIES:
#   A failed copy goes back on the queue with its failure count bumped,
#   so ANY worker may pick it up next. After max_failures attempts the
#   file is logged as not copied and dropped. One stubborn file never
#   stops the rest of the batch.
# ============================================================================

from __future__ import annotations

import queue
import threading
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

import structlog

from remove_issues.core.exceptions import CopyError

if TYPE_CHECKING:
    from remove_issues.tools.work_queue import WorkQueue

log = structlog.get_logger(__name__)


class JobType(Enum):
    """The different kinds of jobs a worker may be handed"""
    UNKNOWN = "unknown"
    FILE_SKIP = "skip"
    FILE_COPY = "copy"

    def __str__(self) -> str:
        return self.value


@dataclass
class Job:
    """
    One file to process.

    Only the worker currently holding a job touches it, so the failure
    counter needs no lock.
    """
    source_path: str
    dest_path: str
    kind: JobType = JobType.FILE_COPY
    failures: int = 0


class Worker:
    """One copy thread in the pool."""

    def __init__(self, worker_id: int, pool: "WorkQueue") -> None:
        self.id = worker_id
        self._pool = pool
        self._thread = threading.Thread(
            target=self.run, name=f"copy-worker-{worker_id}", daemon=True,
        )

    def start(self) -> None:
        self._thread.start()

    def join(self, timeout: Optional[float] = None) -> None:
        self._thread.join(timeout)

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def run(self) -> None:
        """Poll for jobs until the pool is stopping and the queue is empty."""
        log.debug("worker_started", worker=self.id)
        jobs = self._pool.jobs
        while True:
            try:
                job = jobs.get(timeout=self._pool.poll_interval)
            except queue.Empty:
                if self._pool.stopping.is_set():
                    log.info("worker_exiting", worker=self.id)
                    return
                continue

            try:
                self.process(job)
            finally:
                jobs.task_done()

    def process(self, job: Job) -> None:
        if job.failures > 0:
            log.debug("processing_job", worker=self.id, kind=str(job.kind),
                      dest=job.dest_path, retry=job.failures)
        else:
            log.debug("processing_job", worker=self.id, kind=str(job.kind),
                      dest=job.dest_path)

        if job.kind is JobType.FILE_COPY:
            self.copy_file(job)
            return

        # Only copy jobs are ever queued; anything else is a bug upstream
        self._pool.error_log.error(
            "unknown_job_type", worker=self.id, kind=str(job.kind),
            source=job.source_path, dest=job.dest_path,
        )
        self._pool.stats.record_failure(job.source_path)
        self._pool.release(job)

    def copy_file(self, job: Job) -> None:
        """Copy the job's file; hand failures to retry()."""
        try:
            size = self._pool.copier(job.source_path, job.dest_path)
        except CopyError as e:
            self.retry(job, str(e), stage=e.stage)
            return
        except OSError as e:
            self.retry(job, f"{type(e).__name__}: {e}", stage="unknown")
            return
        except Exception:
            log.exception("copy_crashed", worker=self.id, source=job.source_path)
            self._pool.error_log.error(
                "copy_failed", source=job.source_path, dest=job.dest_path,
                failures=job.failures + 1, reason="unexpected error", exc_info=True,
            )
            self._pool.stats.record_failure(job.source_path)
            self._pool.release(job)
            return

        self._pool.stats.record_copy(size or 0)
        self._pool.release(job)

    def retry(self, job: Job, reason: str, stage: str = "unknown") -> None:
        """
        Put the job back on the queue unless it has already failed too
        many times.
        """
        job.failures += 1
        if job.failures >= self._pool.max_failures:
            self._pool.error_log.error(
                "copy_failed", source=job.source_path, dest=job.dest_path,
                failures=job.failures, stage=stage, reason=reason,
            )
            self._pool.stats.record_failure(job.source_path)
            self._pool.release(job)
            return

        log.warning("copy_retry", worker=self.id, source=job.source_path,
                    stage=stage, reason=reason, retry=job.failures)
        self._pool.stats.record_retry()
        self._pool.jobs.put(job)
