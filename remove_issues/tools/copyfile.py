# ============================================================================
# remove-issues -- File Copier (remove_issues/tools/copyfile.py)
# ============================================================================
#
# WHAT THIS FILE DOES (plain English):
#   Copies ONE file's bytes from the source batch to the destination and
#   makes sure they are really on disk (fsync) before saying "done."
#
#   If anything goes wrong, the error says exactly WHICH step failed:
#     open_source  -- could not open the source for reading
#     create_dest  -- could not create the destination file
#     write        -- the byte stream broke part way through
#     sync         -- the OS could not flush the data to storage
#     close        -- closing the destination reported a late write error
#
#   The worker pool retries the whole copy from scratch when this fails.
#   There is no "resume from byte N" -- a retry rewrites the file.
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

import os
import shutil

from remove_issues.core.exceptions import CopyError

# 1 MB chunks; the same default the bulk transfer tooling settled on
DEFAULT_BUFFER_SIZE = 1_048_576


def copy_file(src: str, dest: str, buf_size: int = DEFAULT_BUFFER_SIZE) -> int:
    """
    Copy src to dest, fsync dest, and return the number of bytes copied.

    Copying a file onto itself is a no-op that returns 0; opening the
    same path for reading and truncating it for writing would destroy it.

    Raises CopyError (with .stage set) on any failure. Both file handles
    are closed on every path. When several steps fail, the first failure
    is the one reported.
    """
    if os.path.abspath(src) == os.path.abspath(dest):
        return 0

    try:
        fsrc = open(src, "rb")
    except OSError as e:
        raise CopyError("open_source", src, dest, e) from e

    try:
        try:
            fdst = open(dest, "wb")
        except OSError as e:
            raise CopyError("create_dest", src, dest, e) from e

        try:
            try:
                shutil.copyfileobj(fsrc, fdst, length=buf_size)
                copied = fdst.tell()
            except OSError as e:
                raise CopyError("write", src, dest, e) from e

            try:
                fdst.flush()
                os.fsync(fdst.fileno())
            except OSError as e:
                raise CopyError("sync", src, dest, e) from e
        except CopyError:
            _close_after_failure(fdst)
            raise

        try:
            fdst.close()
        except OSError as e:
            raise CopyError("close", src, dest, e) from e
    finally:
        fsrc.close()

    return copied


def _close_after_failure(handle) -> None:
    """Close a handle whose copy already failed; the earlier error wins."""
    try:
        handle.close()
    except OSError:
        pass
