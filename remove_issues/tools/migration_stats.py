# ============================================================================
# remove-issues -- Migration Statistics (remove_issues/tools/migration_stats.py)
# ============================================================================
#
# WHAT THIS FILE DOES (plain English):
#   Keeps a running tally of every decision made during a run: how many
#   files were seen, how many were skipped (and why), queued, copied,
#   retried, or given up on. At the end it prints the "receipt."
#
#   The walker thread and every worker thread update these counters at
#   the same time, so each update goes through one lock.
# ============================================================================

from __future__ import annotations

import threading
import time
from typing import Dict, List


class MigrationStats:
    """
    Thread-safe running statistics for one batch migration.

    NON-PROGRAMMER NOTE:
      The walker counts what it finds and what it skips; workers count
      copies, retries and failures. Every file the walker sees ends up
      in exactly one "skipped_*", "mkdir_failed", "copied" or "failed"
      bucket once the run finishes.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.start_time: float = time.time()

        # Walk / dispatch counters
        self.dirs_walked: int = 0
        self.files_seen: int = 0
        self.skipped_directory: int = 0     # Under an excluded issue's directory
        self.skipped_tiff: int = 0          # Archival master images
        self.skipped_validated: int = 0     # *_1.xml validation artifacts
        self.skipped_manifest: int = 0      # Source batch.xml (rewritten instead)
        self.mkdir_failed: int = 0          # Destination directory not creatable
        self.queued: int = 0

        # Worker counters
        self.copied: int = 0
        self.bytes_copied: int = 0
        self.retries: int = 0
        self.failed: int = 0                # Gave up after max failures

        self.failed_paths: List[str] = []

    def incr(self, counter: str, amount: int = 1) -> None:
        """Add amount to a named counter (walker side)."""
        with self._lock:
            setattr(self, counter, getattr(self, counter) + amount)

    def record_copy(self, size: int) -> None:
        """Record a successful file copy (called from worker threads)."""
        with self._lock:
            self.copied += 1
            self.bytes_copied += size

    def record_retry(self) -> None:
        with self._lock:
            self.retries += 1

    def record_failure(self, source_path: str) -> None:
        """Record a file that will not be copied (retries exhausted)."""
        with self._lock:
            self.failed += 1
            self.failed_paths.append(source_path)

    @property
    def elapsed(self) -> float:
        """Seconds since the run started."""
        return time.time() - self.start_time

    @property
    def skipped(self) -> int:
        with self._lock:
            return (
                self.skipped_directory + self.skipped_tiff
                + self.skipped_validated + self.skipped_manifest
            )

    def snapshot(self) -> Dict[str, int]:
        """All counters as a plain dict (for structured logs and tests)."""
        with self._lock:
            return {
                "dirs_walked": self.dirs_walked,
                "files_seen": self.files_seen,
                "skipped_directory": self.skipped_directory,
                "skipped_tiff": self.skipped_tiff,
                "skipped_validated": self.skipped_validated,
                "skipped_manifest": self.skipped_manifest,
                "mkdir_failed": self.mkdir_failed,
                "queued": self.queued,
                "copied": self.copied,
                "bytes_copied": self.bytes_copied,
                "retries": self.retries,
                "failed": self.failed,
            }

    def full_report(self) -> str:
        """Multi-line final statistics report printed at end of run."""
        s = self.snapshot()
        e = self.elapsed
        lines = [
            "", "=" * 70,
            "  REMOVE ISSUES -- FINAL STATISTICS",
            "=" * 70, "",
            f"  Total time:              {_fmt_dur(e)}",
            f"  Data copied:             {_fmt_size(s['bytes_copied'])}",
            "",
            f"  Directories walked:      {s['dirs_walked']:,}",
            f"  Files seen:              {s['files_seen']:,}",
            f"  Queued for copy:         {s['queued']:,}",
            f"  Copied:                  {s['copied']:,}",
            f"  Retries:                 {s['retries']:,}",
            f"  Failed (gave up):        {s['failed']:,}",
            "",
            f"  Skipped (issue removed): {s['skipped_directory']:,}",
            f"  Skipped (TIFF):          {s['skipped_tiff']:,}",
            f"  Skipped (validated XML): {s['skipped_validated']:,}",
            f"  Skipped (manifest):      {s['skipped_manifest']:,}",
            f"  Directory not created:   {s['mkdir_failed']:,}",
        ]
        with self._lock:
            failed = list(self.failed_paths)
        if failed:
            lines.extend(["", "  Files NOT copied:"])
            for path in failed[:25]:
                lines.append(f"    {path}")
            if len(failed) > 25:
                lines.append(f"    ... and {len(failed) - 25:,} more (see error log)")
        lines.extend(["", "=" * 70])
        return "\n".join(lines)


def _fmt_size(b) -> str:
    """Format bytes as human-readable string (KB, MB, GB)."""
    b = float(b)
    if b < 1024:
        return f"{b:.0f} B"
    elif b < 1024**2:
        return f"{b / 1024:.1f} KB"
    elif b < 1024**3:
        return f"{b / 1024**2:.1f} MB"
    return f"{b / 1024**3:.2f} GB"


def _fmt_dur(s: float) -> str:
    """Format seconds as human-readable duration (e.g., '2m 30s')."""
    if s < 60:
        return f"{s:.1f}s"
    elif s < 3600:
        m, sec = divmod(s, 60)
        return f"{int(m)}m {int(sec)}s"
    h, rem = divmod(s, 3600)
    m, sec = divmod(rem, 60)
    return f"{int(h)}h {int(m)}m"
