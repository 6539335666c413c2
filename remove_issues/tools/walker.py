# ============================================================================
# remove-issues -- Tree Walker (remove_issues/tools/walker.py)
# ============================================================================
#
# WHAT THIS FILE DOES (plain English):
#   Visits every file in the source batch, in sorted order, and works out
#   which folder it belongs in at the destination. The folder structure
#   is mirrored exactly:
#
#     <source>/data/sn123/print/1900010101/0001.xml
#       -> visit(source_path, "<dest>/data/sn123/print/1900010101", "0001.xml")
#
#   The walker does NOT decide whether a file is copied. It hands every
#   file to a visit function (normally WorkQueue.add) and moves on.
#
# ERRORS:
#   If any directory cannot be read, the walk stops right there with a
#   TraversalError. A partly-walked batch would look complete at the
#   destination while missing content.
# ============================================================================

from __future__ import annotations

import os
from typing import Callable, Optional

import structlog

from remove_issues.core.exceptions import TraversalError
from remove_issues.tools.migration_stats import MigrationStats

log = structlog.get_logger(__name__)

# visit(source_path, dest_dir, base_name)
VisitFunc = Callable[[str, str, str], object]


class Walker:
    """Walks a source tree and maps every file to its destination folder."""

    def __init__(
        self,
        source_dir: str,
        dest_dir: str,
        visit: VisitFunc,
        stats: Optional[MigrationStats] = None,
    ) -> None:
        self.source_dir = os.path.normpath(os.path.abspath(source_dir))
        self.dest_dir = os.path.normpath(os.path.abspath(dest_dir))
        self.visit = visit
        self.stats = stats

    def walk(self) -> None:
        """
        Visit every regular file under source_dir.

        Raises TraversalError on the first directory that cannot be read.
        """
        def _on_walk_error(err: OSError) -> None:
            raise TraversalError(err.filename or self.source_dir, err) from err

        for dirpath, dirnames, filenames in os.walk(
            self.source_dir, onerror=_on_walk_error
        ):
            # Sorting in place also fixes the order os.walk descends in
            dirnames.sort()
            if self.stats is not None:
                self.stats.incr("dirs_walked")

            dest = self.dest_path_for(dirpath)
            for name in sorted(filenames):
                full = os.path.join(dirpath, name)
                if not os.path.isfile(full):
                    log.warning("not_a_regular_file", path=full)
                    continue
                self.visit(full, dest, name)

    def dest_path_for(self, dirpath: str) -> str:
        """Destination folder mirroring a source folder."""
        rel = os.path.relpath(dirpath, self.source_dir)
        if rel == os.curdir:
            return self.dest_dir
        return os.path.join(self.dest_dir, rel)


def walk(source_dir: str, dest_dir: str, visit: VisitFunc,
         stats: Optional[MigrationStats] = None) -> None:
    """Shortcut for Walker(source_dir, dest_dir, visit, stats).walk()."""
    Walker(source_dir, dest_dir, visit, stats).walk()
