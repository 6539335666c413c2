# ============================================================================
# remove-issues -- Configuration (remove_issues/core/config.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   Every tunable setting of the batch issue remover lives here: worker
#   count, queue capacity, retry ceiling, which file types are dropped,
#   and where the batch manifest sits inside a batch.
#
# HOW IT WORKS:
#   1. Python "dataclasses" define every setting with a sensible default
#   2. A YAML file (config/default_config.yaml) can override those defaults
#   3. Environment variables can override YAML (for machine-specific values)
#
#   Priority: env vars > YAML file > hardcoded defaults
#
# USAGE:
#   from remove_issues.core.config import load_config
#   config = load_config(".")
#   print(config.copy.max_failures)        # 5
#   print(config.resolved_workers())       # 2 x CPU count unless overridden
# ============================================================================

from __future__ import annotations

import os
import sys
import yaml
import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import List


# -------------------------------------------------------------------
# Sub-configs: each one maps to a section in the YAML file
# -------------------------------------------------------------------

@dataclass
class CopyConfig:
    """
    Worker pool and copy settings.

    workers = 0 means "decide at startup": two workers per CPU. Copying
    is I/O bound, so a small multiple of the core count keeps the disks
    busy without drowning them.

    queue_capacity is the number of jobs the walker may have in flight
    before it has to wait for the workers to catch up. 100,000 jobs is a
    few tens of MB of memory and means the walk is almost never held up.
    """
    workers: int = 0
    queue_capacity: int = 100_000
    max_failures: int = 5             # A job is tried at most this many times
    poll_interval: float = 0.05       # Seconds an idle worker waits per poll
    buffer_size: int = 1_048_576      # 1 MB read/write chunks

    def __post_init__(self) -> None:
        env_workers = os.getenv("REMOVE_ISSUES_WORKERS")
        if env_workers:
            self.workers = int(env_workers)


@dataclass
class PolicyConfig:
    """
    File-type policy: which files are never copied to the destination.

    TIFFs are the archival master images; the destination (an ingest
    copy) does not need them. Files ending in "_1.xml" are validation
    artifacts produced by the batch validator, not content.
    """
    skip_extensions: List[str] = field(default_factory=lambda: [".tif", ".tiff"])
    validated_suffix: str = "_1.xml"

    def __post_init__(self) -> None:
        # Normalize to lower-case, dot-prefixed extensions
        self.skip_extensions = [
            e.lower() if e.startswith(".") else "." + e.lower()
            for e in self.skip_extensions
        ]
        self.validated_suffix = self.validated_suffix.lower()


@dataclass
class ManifestConfig:
    """Where the batch manifest lives, relative to the batch root."""
    relative_path: str = "data/batch.xml"


@dataclass
class LoggingConfig:
    """Structured log output location."""
    log_dir: str = "logs"

    def __post_init__(self) -> None:
        env_dir = os.getenv("REMOVE_ISSUES_LOG_DIR")
        if env_dir:
            self.log_dir = env_dir


# -------------------------------------------------------------------
# Master Config
# -------------------------------------------------------------------

@dataclass
class Config:
    """
    Master configuration object.

    Example:
        config = load_config(".")
        print(config.copy.queue_capacity)         # 100000
        print(config.policy.skip_extensions)      # [".tif", ".tiff"]
    """
    copy: CopyConfig = field(default_factory=CopyConfig)
    policy: PolicyConfig = field(default_factory=PolicyConfig)
    manifest: ManifestConfig = field(default_factory=ManifestConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def resolved_workers(self) -> int:
        """Worker pool size: configured value, or 2 x CPU count if unset."""
        if self.copy.workers > 0:
            return self.copy.workers
        return 2 * (os.cpu_count() or 1)


# -------------------------------------------------------------------
# Helper: YAML dict -> dataclass (with safety net)
# -------------------------------------------------------------------

def _dict_to_dataclass(cls, data: dict):
    """
    Build a dataclass from a dictionary, ignoring unknown keys.

    SAFETY NET:
      If a YAML key does NOT match any dataclass field name, print a
      loud warning to stderr and suggest the closest field name. This
      catches "retries" vs "max_failures" style mismatches that would
      otherwise silently fall back to the default.
    """
    known_fields = {f.name for f in dataclasses.fields(cls)}

    filtered = {}
    for k, v in (data or {}).items():
        if k in known_fields:
            filtered[k] = v
        else:
            suggestion = ""
            for field_name in sorted(known_fields):
                if k in field_name or field_name in k:
                    suggestion = " Did you mean '" + field_name + "'?"
                    break
            print(
                "  [WARN] config/" + cls.__name__ + ": YAML key '"
                + str(k) + "' is not a recognized setting"
                + " -- IGNORED (using default)." + suggestion,
                file=sys.stderr,
            )

    return cls(**filtered)


# -------------------------------------------------------------------
# Main entry point: load_config()
# -------------------------------------------------------------------

def load_config(
    project_dir: str = ".",
    config_filename: str = "default_config.yaml",
) -> Config:
    """
    Load configuration from YAML file, with defaults and env var overrides.

    Parameters
    ----------
    project_dir : str
        Folder containing the config/ subfolder.

    config_filename : str
        Name of the YAML config file inside config/.

    Returns
    -------
    Config
        Fully resolved configuration object. A missing YAML file is not
        an error -- every setting has a default.
    """
    config_path = Path(project_dir) / "config" / config_filename

    yaml_data: dict = {}
    if config_path.exists():
        with open(config_path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
            if isinstance(raw, dict):
                yaml_data = raw

    return Config(
        copy=_dict_to_dataclass(CopyConfig, yaml_data.get("copy", {})),
        policy=_dict_to_dataclass(PolicyConfig, yaml_data.get("policy", {})),
        manifest=_dict_to_dataclass(ManifestConfig, yaml_data.get("manifest", {})),
        logging=_dict_to_dataclass(LoggingConfig, yaml_data.get("logging", {})),
    )


def validate_config(config: Config) -> List[str]:
    """
    Check a Config object for problems. Returns a list of error messages.
    Empty list = everything is valid.
    """
    errors: List[str] = []

    if config.copy.workers < 0:
        errors.append("copy.workers must be 0 (auto) or a positive number")

    if config.copy.queue_capacity < 1:
        errors.append(
            "copy.queue_capacity too small: " + str(config.copy.queue_capacity)
            + ". Minimum 1."
        )

    if config.copy.max_failures < 1:
        errors.append("copy.max_failures must be at least 1")

    if config.copy.poll_interval <= 0:
        errors.append("copy.poll_interval must be greater than zero")

    if config.copy.buffer_size < 1:
        errors.append("copy.buffer_size must be at least 1 byte")

    if not config.manifest.relative_path:
        errors.append("manifest.relative_path is empty")
    elif os.path.isabs(config.manifest.relative_path):
        errors.append(
            "manifest.relative_path must be relative to the batch root: "
            + config.manifest.relative_path
        )

    return errors
