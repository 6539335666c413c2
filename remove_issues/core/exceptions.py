# ===========================================================================
# remove-issues -- TYPED EXCEPTIONS
# ===========================================================================
# FILE: remove_issues/core/exceptions.py
#
# WHAT THIS IS:
#   Custom error types for the batch issue remover. Instead of a generic
#   "something went wrong," each error names exactly what failed and how
#   to fix it.
#
# TWO FAMILIES OF ERRORS:
#   1. Fatal setup errors (MAN-xxx, USE-xxx, FS-xxx). These stop the run
#      BEFORE any file is copied. A single bad issue key is enough to
#      stop everything -- partial runs are never allowed.
#   2. Per-file copy errors (CPY-xxx). These never reach the top of the
#      program. The worker pool catches them, retries the copy, and logs
#      the file as failed if the retries run out.
#
# HOW IT'S USED:
#     try:
#         manifest, skip_dirs = resolve(batch_xml, keys)
#     except UnknownKeyError as e:
#         print(f"Key {e.key} is not in the batch")
#     except RemoveIssuesError as e:
#         print(f"Error: {e} -- Fix: {e.fix_suggestion}")
#
#   All exceptions inherit from RemoveIssuesError, so one except clause
#   at the top of the CLI catches every expected failure.
# ===========================================================================

from __future__ import annotations


class RemoveIssuesError(Exception):
    """
    Base class for all remove-issues errors.

    Attributes:
        fix_suggestion (str | None): Human-readable fix instruction.
        error_code (str | None): Machine-readable code like "MAN-001"
            for logs and audit trails.
    """

    def __init__(self, message, fix_suggestion=None, error_code=None):
        self.fix_suggestion = fix_suggestion
        self.error_code = error_code
        super().__init__(message)

    def to_dict(self):
        """Convert to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": str(self),
            "fix_suggestion": self.fix_suggestion,
        }


# ---------------------------------------------------------------------------
# MANIFEST ERRORS (MAN-xxx)
# The batch.xml file could not be used to decide what to skip.
# ---------------------------------------------------------------------------

class ParseError(RemoveIssuesError):
    """
    The batch manifest could not be read or is not a batch document.

    WHEN YOU'LL SEE THIS:
      - data/batch.xml is missing from the source batch
      - The file is truncated or is not well-formed XML
      - The root element is not an NDNP <batch>
    """
    def __init__(self, message=None, path=None, error_code="MAN-001"):
        detail = f" ({path})" if path else ""
        super().__init__(
            message or f"Unable to read batch manifest{detail}.",
            fix_suggestion=(
                "Check that the source is an NDNP batch with a readable, "
                "well-formed data/batch.xml."
            ),
            error_code=error_code,
        )
        self.path = path


class DuplicateIssueKeyError(ParseError):
    """Two <issue> entries normalize to the same issue key."""
    def __init__(self, key, path=None):
        super().__init__(
            f"Issue key {key!r} appears more than once in the batch manifest",
            path=path,
            error_code="MAN-004",
        )
        self.key = key


class EmptyManifestError(RemoveIssuesError):
    """
    The manifest parsed, but lists no issues at all.

    WHEN YOU'LL SEE THIS:
      - The batch.xml is a stub or was overwritten by a failed export
      - The <issue> elements are in the wrong namespace
    """
    def __init__(self, path=None):
        detail = f" {path}" if path else ""
        super().__init__(
            f"Batch manifest{detail} contains no issues.",
            fix_suggestion=(
                "Issues must be <issue> elements in the "
                "http://www.loc.gov/ndnp namespace."
            ),
            error_code="MAN-002",
        )
        self.path = path


class UnknownKeyError(RemoveIssuesError):
    """
    A caller-supplied issue key matches no issue in the manifest.

    The whole run stops on the first unknown key, even if the other
    keys are valid.
    """
    def __init__(self, key):
        super().__init__(
            f"Issue key {key!r} was not found in the batch manifest",
            fix_suggestion=(
                "Issue keys look like LCCN/YYYYMMDDEE, e.g. "
                "sn83045462/1900010101. Hyphens and underscores are ignored."
            ),
            error_code="MAN-003",
        )
        self.key = key


class MissingIssueDirectoryError(RemoveIssuesError):
    """
    An issue being removed has no folder in the source batch.

    WHEN YOU'LL SEE THIS:
      - The batch.xml is stale and lists an issue whose folder was moved
      - The source is not the batch the manifest describes
    Copying anyway would drop the issue from batch.xml while still
    copying its files, so the run stops first.
    """
    def __init__(self, key, path):
        super().__init__(
            f"Issue {key!r} has no directory in the source batch (looked for {path!r})",
            fix_suggestion=(
                "Check that batch.xml matches the files on disk; issue paths "
                "are looked up under data/ and then under the batch root."
            ),
            error_code="MAN-005",
        )
        self.key = key
        self.path = path


# ---------------------------------------------------------------------------
# USAGE ERRORS (USE-xxx)
# The command line asked for something we refuse to do.
# ---------------------------------------------------------------------------

class UsageError(RemoveIssuesError):
    """Base for command-line problems. The CLI prints usage text for these."""


class SourceNotDirectoryError(UsageError):
    """Source path is missing or is not a directory."""
    def __init__(self, path, reason="not a directory"):
        super().__init__(
            f"Source ({path}) is invalid: {reason}",
            fix_suggestion="Point the source at the top of an existing batch directory.",
            error_code="USE-001",
        )
        self.path = path


class DestinationExistsError(UsageError):
    """Destination already exists. This tool never merges into a tree."""
    def __init__(self, path):
        super().__init__(
            f"Destination ({path}) already exists",
            fix_suggestion="Choose a destination path that does not exist yet.",
            error_code="USE-002",
        )
        self.path = path


class DestinationInsideSourceError(UsageError):
    """Destination is under the source; the walk would copy into itself."""
    def __init__(self, path, source):
        super().__init__(
            f"Destination ({path}) is inside the source ({source})",
            fix_suggestion="Write the new batch somewhere outside the source batch.",
            error_code="USE-004",
        )
        self.path = path


class MissingIssueKeysError(UsageError):
    """No issue keys were given."""
    def __init__(self):
        super().__init__(
            "Missing one or more issue keys",
            fix_suggestion="Pass at least one issue key after the destination.",
            error_code="USE-003",
        )


# ---------------------------------------------------------------------------
# FILESYSTEM ERRORS (FS-xxx)
# ---------------------------------------------------------------------------

class TraversalError(RemoveIssuesError):
    """
    A directory in the source tree could not be read.

    The walk stops at the first unreadable directory. Copying a batch
    with holes in it would produce an incomplete, ingestable-looking
    result, which is worse than stopping.
    """
    def __init__(self, path, cause=None):
        super().__init__(
            f"Unable to read {path!r}: {cause}",
            fix_suggestion="Check permissions on the source batch.",
            error_code="FS-001",
        )
        self.path = path
        self.cause = cause


class DestinationSetupError(RemoveIssuesError):
    """The destination root or rewritten manifest could not be created."""
    def __init__(self, path, cause=None):
        super().__init__(
            f"Unable to create {path!r}: {cause}",
            fix_suggestion="Check that the destination's parent is writable.",
            error_code="FS-002",
        )
        self.path = path
        self.cause = cause


# ---------------------------------------------------------------------------
# COPY ERRORS (CPY-xxx)
# Handled inside the worker pool; never fatal to the run.
# ---------------------------------------------------------------------------

# Stages of a single copy attempt, in the order they happen
COPY_STAGES = ("open_source", "create_dest", "write", "sync", "close")


class CopyError(RemoveIssuesError):
    """
    One attempt at copying one file failed.

    Attributes:
        stage: which step failed (one of COPY_STAGES)
        src, dest: the file pair being copied
        cause: the underlying OSError
    """

    _VERBS = {
        "open_source": "unable to read",
        "create_dest": "unable to create",
        "write": "unable to write to",
        "sync": "unable to sync",
        "close": "unable to close",
    }

    def __init__(self, stage, src, dest, cause=None):
        target = src if stage == "open_source" else dest
        super().__init__(
            f"{self._VERBS.get(stage, stage)} {target!r}: {cause}",
            fix_suggestion="The copy is retried automatically; check disk space and permissions.",
            error_code="CPY-001",
        )
        self.stage = stage
        self.src = src
        self.dest = dest
        self.cause = cause
