# ============================================================================
# remove-issues -- Structured Logger (remove_issues/monitoring/logger.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   Sets up structured (JSON) logging for the whole tool. Every decision
#   the copy pipeline makes -- file skipped, job queued, copy retried,
#   copy given up on -- becomes one machine-readable log line.
#
# LOG FILE TYPES:
#   - app_YYYY-MM-DD.log:   General run events from every module under
#                           the remove_issues package (manifest read,
#                           workers started/exiting, retries)
#   - audit_YYYY-MM-DD.log: One line per file decision (skipped and why,
#                           or queued for copy). This is the record of
#                           exactly what was left out of the new batch.
#   - error_YYYY-MM-DD.log: Files that could not be copied after all
#                           retries, and directories that could not be made
#
# HOW TO USE (from other code):
#   Module code just asks structlog for a logger named after the module:
#     log = structlog.get_logger(__name__)
#     log.info("directory_walked", path=dirpath, files=12)
#   and the entry point calls initialize_logging() once. Audit and error
#   streams are requested explicitly:
#     audit = get_audit_logger()
#     audit.info("file_skipped", path=p, reason="tiff")
#
# DEPENDENCIES:
#   - structlog: structured logging library that outputs JSON
#   - Python's built-in logging module (structlog builds on top of it)
# ============================================================================

import sys
import logging
import threading
from pathlib import Path
from typing import Optional, Set, Tuple
import structlog
from datetime import datetime

# Every module logger lives under this name (structlog.get_logger(__name__))
PACKAGE_LOGGER = "remove_issues"


# ============================================================================
# LOGGER CONFIGURATION
# ============================================================================

class LoggerSetup:
    """Initialize and configure structlog for remove-issues"""

    def __init__(self, log_dir: str = "logs"):
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self._configured = False
        # (logger name, log type) pairs that already have a file handler
        self._attached: Set[Tuple[str, str]] = set()
        self._lock = threading.Lock()
        # Shared console handler for file loggers: warnings and above only
        self._console = logging.StreamHandler(sys.stderr)
        self._console.setLevel(logging.WARNING)
        self._console.setFormatter(logging.Formatter("%(message)s"))

    def setup(self) -> None:
        """Configure structlog and route package loggers to the app log"""
        if self._configured:
            return

        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.stdlib.PositionalArgumentsFormatter(),
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.UnicodeDecoder(),
                structlog.processors.JSONRenderer(),
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )

        self._configured = True
        self._attach(PACKAGE_LOGGER, "app")

    def get_logger(self, name: str) -> structlog.BoundLogger:
        """Get a named logger"""
        self.setup()
        return structlog.get_logger(name)

    def get_file_logger(self, name: str, log_type: str = "app") -> structlog.BoundLogger:
        """
        Get a logger that writes to a specific log file.
        log_type: "app", "audit", "error"
        """
        self.setup()
        self._attach(name, log_type)
        return structlog.get_logger(name)

    def _attach(self, name: str, log_type: str) -> None:
        """
        Attach the dated file handler for log_type to the stdlib logger
        called name. Attached once per (name, log_type); asking for the
        same logger twice does not double every line.
        """
        with self._lock:
            if (name, log_type) in self._attached:
                return
            log_file = self.log_dir / f"{log_type}_{self._get_date_str()}.log"
            handler = logging.FileHandler(log_file, encoding="utf-8")
            handler.setFormatter(logging.Formatter("%(message)s"))

            py_logger = logging.getLogger(name)
            py_logger.addHandler(handler)
            if self._console not in py_logger.handlers:
                py_logger.addHandler(self._console)
            py_logger.setLevel(logging.DEBUG)
            # File loggers own their output; the root handler would
            # otherwise echo every INFO line to the console
            py_logger.propagate = False
            self._attached.add((name, log_type))

    @staticmethod
    def _get_date_str() -> str:
        """Get current date as YYYY-MM-DD string"""
        return datetime.now().strftime("%Y-%m-%d")


# ============================================================================
# SINGLETON INSTANCE
# ============================================================================

_logger_setup: Optional[LoggerSetup] = None


def initialize_logging(log_dir: str = "logs") -> LoggerSetup:
    """Initialize logging (call once at startup)"""
    global _logger_setup
    if _logger_setup is None:
        _logger_setup = LoggerSetup(log_dir)
        _logger_setup.setup()
    return _logger_setup


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a logger (auto-initializes if needed)"""
    if _logger_setup is None:
        initialize_logging()
    return _logger_setup.get_logger(name)


def get_audit_logger(name: str = "remove_issues_audit") -> structlog.BoundLogger:
    """Get audit logger (writes to audit_YYYY-MM-DD.log)"""
    if _logger_setup is None:
        initialize_logging()
    return _logger_setup.get_file_logger(name, "audit")


def get_error_logger(name: str = "remove_issues_error") -> structlog.BoundLogger:
    """Get error logger (writes to error_YYYY-MM-DD.log)"""
    if _logger_setup is None:
        initialize_logging()
    return _logger_setup.get_file_logger(name, "error")
