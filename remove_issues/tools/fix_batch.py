# ============================================================================
# remove-issues -- Batch Fixer (remove_issues/tools/fix_batch.py)
# ============================================================================
#
# WHAT THIS FILE DOES (plain English):
#   Builds a NEW copy of an NDNP batch with some issues taken out.
#
#   You give it:
#     - the source batch (the pristine dark archive, or a copy of it)
#     - a destination path that does not exist yet
#     - one or more issue keys to remove
#
#   It produces a batch at the destination that can be loaded into ONI:
#   the removed issues' folders are gone, TIFF masters and *_1.xml
#   validation files are left behind, and data/batch.xml lists only
#   the issues that remain.
#
# HOW TO RUN IT (command line):
#   python -m remove_issues.tools.fix_batch \
#       /mnt/dark-archive/batch_foo_ver01 /mnt/staging/batch_foo_ver02 \
#       sn12345678/1900-01-01 sn12345678/1900-01-02
#
#   Optional flags:
#     --workers 8          (copy threads, default 2 x CPU count)
#     --config-dir PATH    (folder holding config/default_config.yaml)
#
# THE RUN HAPPENS IN PHASES:
#   Phase 0:  Check the arguments. Bad source, existing destination, or
#             no keys -> usage error, exit 1, nothing touched.
#   Phase 1:  Read batch.xml and resolve every issue key. One unknown
#             key, or a removed issue with no folder on disk -> error,
#             exit 1, nothing touched.
#   Phase 2:  Create the destination and write the filtered batch.xml.
#   Phase 3:  Walk the source; each file is skipped or queued for copy.
#   Phase 4:  Wait for the copy workers to finish every queued file.
#
#   Files that still fail after 5 attempts are listed in the final
#   report and the error log, but they do not fail the run.
# ============================================================================

from __future__ import annotations

import argparse
import os
import sys
from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional, Sequence

import structlog

from remove_issues.core.batch_manifest import resolve, write_batch_xml
from remove_issues.core.config import Config, load_config, validate_config
from remove_issues.core.exceptions import (
    DestinationExistsError,
    DestinationInsideSourceError,
    DestinationSetupError,
    MissingIssueKeysError,
    RemoveIssuesError,
    SourceNotDirectoryError,
    UsageError,
)
from remove_issues.monitoring.logger import initialize_logging
from remove_issues.tools.migration_stats import MigrationStats
from remove_issues.tools.walker import Walker
from remove_issues.tools.work_queue import WorkQueue

log = structlog.get_logger(__name__)

HELP_TEXT = """The source directory should either be the pristine dark archive, or a copy
thereof (though the TIFF files won't matter, as they aren't copied to the
destination).  Once complete, the destination will contain an ONI-ingestable
batch.

One or more issue keys must be present.  If any key is given but isn't in the
source batch, this tool will report it and exit without processing any other
keys, even if they're valid.
"""

USAGE_TEXT = (
    "\nUsage: %(prog)s <source directory> <destination directory> <issue key>...\n\n"
    + HELP_TEXT
)


@dataclass
class FixContext:
    """
    The run's directory and key context, so the phases don't need a
    pile of separate arguments.
    """
    source_dir: str
    dest_dir: str
    issue_keys: List[str]
    skip_dirs: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def from_args(cls, source: str, dest: str, keys: Sequence[str]) -> "FixContext":
        """
        Sanity-check the arguments and build a context.

        Raises a UsageError subclass on any problem; nothing on disk is
        touched here.
        """
        if not keys:
            raise MissingIssueKeysError()

        source_dir = os.path.abspath(source)
        dest_dir = os.path.abspath(dest)

        if not os.path.exists(source_dir):
            raise SourceNotDirectoryError(source_dir, "no such file or directory")
        if not os.path.isdir(source_dir):
            raise SourceNotDirectoryError(source_dir)
        if os.path.lexists(dest_dir):
            raise DestinationExistsError(dest_dir)
        if dest_dir.startswith(source_dir.rstrip(os.sep) + os.sep):
            raise DestinationInsideSourceError(dest_dir, source_dir)

        return cls(source_dir=source_dir, dest_dir=dest_dir, issue_keys=list(keys))


class BatchFixer:
    """
    Runs one source -> destination migration.

    NON-PROGRAMMER NOTE:
      Create it with a FixContext and a Config, call run(), and read the
      returned MigrationStats. Errors that make the run pointless (bad
      manifest, unknown key, destination not creatable, unreadable
      source folder) are raised; per-file copy problems are only counted.
    """

    def __init__(self, ctx: FixContext, config: Optional[Config] = None) -> None:
        self.ctx = ctx
        self.config = config or Config()
        self.stats = MigrationStats()

    @property
    def source_manifest(self) -> str:
        return os.path.join(self.ctx.source_dir, *self.config.manifest.relative_path.split("/"))

    @property
    def dest_manifest(self) -> str:
        return os.path.join(self.ctx.dest_dir, *self.config.manifest.relative_path.split("/"))

    def run(self) -> MigrationStats:
        ctx = self.ctx

        # Phase 1: resolve every key before anything is written
        manifest, ctx.skip_dirs = resolve(
            self.source_manifest, ctx.issue_keys,
            batch_root=ctx.source_dir, require_dirs=True,
        )
        log.info("issues_resolved", kept=len(manifest.issues),
                 removed=len(ctx.issue_keys), skip_dirs=sorted(ctx.skip_dirs))

        # Phase 2: destination root + filtered manifest
        try:
            os.makedirs(ctx.dest_dir)
        except OSError as e:
            raise DestinationSetupError(ctx.dest_dir, e) from e
        try:
            write_batch_xml(manifest, self.dest_manifest)
        except OSError as e:
            raise DestinationSetupError(self.dest_manifest, e) from e

        # Phase 3 + 4: walk and copy
        queue = WorkQueue.from_config(
            self.config, ctx.skip_dirs,
            manifest_path=self.source_manifest, stats=self.stats,
        )
        walker = Walker(ctx.source_dir, ctx.dest_dir, queue.add, stats=self.stats)
        try:
            walker.walk()
        finally:
            # Jobs already queued are finished even if the walk failed
            queue.wait()

        return self.stats


# ============================================================================
# CLI Entry Point
# ============================================================================

def usage_error(prog: str, msg: str) -> None:
    """Print a red ERROR line plus usage text, then exit 1."""
    print(f"\033[31;1mERROR: {msg}\033[0m")
    print(USAGE_TEXT % {"prog": prog})
    sys.exit(1)


def fatal_error(err: RemoveIssuesError) -> None:
    """Print a red ERROR line with the fix suggestion, then exit 1."""
    print(f"\033[31;1mERROR: {err}\033[0m", file=sys.stderr)
    if err.fix_suggestion:
        print(f"  Fix: {err.fix_suggestion}", file=sys.stderr)
    sys.exit(1)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="remove-issues",
        description="Copy an NDNP batch to a new location, removing the given issues",
        epilog=HELP_TEXT,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("source", help="Source batch directory")
    p.add_argument("dest", help="Destination directory (must not exist)")
    p.add_argument("issue_keys", nargs="*", metavar="issue_key",
                   help="Issue key to remove, e.g. sn12345678/1900-01-01")
    p.add_argument("--workers", type=int, default=None,
                   help="Number of copy threads (default: 2 x CPU count)")
    p.add_argument("--config-dir", default=".",
                   help="Folder containing config/default_config.yaml")
    return p


def main(argv: Optional[Sequence[str]] = None) -> None:
    """
    Command-line interface.

    Exit status: 0 when the run completes (even if some files could not
    be copied -- they are listed in the report), 1 on any fatal error.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config_dir)
    if args.workers is not None:
        config.copy.workers = args.workers
    problems = validate_config(config)
    if args.workers is not None and args.workers < 1:
        problems.append("--workers must be at least 1")
    if problems:
        usage_error(parser.prog, "; ".join(problems))

    try:
        ctx = FixContext.from_args(args.source, args.dest, args.issue_keys)
    except UsageError as e:
        usage_error(parser.prog, str(e))

    initialize_logging(config.logging.log_dir)

    print("=" * 70)
    print("  REMOVE ISSUES -- Starting")
    print("=" * 70)
    print(f"  Source:      {ctx.source_dir}")
    print(f"  Destination: {ctx.dest_dir}")
    print(f"  Remove:      {', '.join(ctx.issue_keys)}")
    print(f"  Workers:     {config.resolved_workers()}")
    print("=" * 70)

    fixer = BatchFixer(ctx, config)
    try:
        stats = fixer.run()
    except RemoveIssuesError as e:
        log.error("run_aborted", **e.to_dict())
        fatal_error(e)

    print(stats.full_report())
    sys.exit(0)


if __name__ == "__main__":
    main()
