"""Core package for the difftrack project."""

from .baseline import BaselineStore
from .cli import app, run
from .config import Config, ConfigError, Settings, TrackingPolicy, load_config
from .diff import collapse, compute_diff, diff_lines
from .fetcher import ContentFetcher
from .git import GitClient, GitCommandError, GitTimeoutError
from .models import (
    BaselineEntry,
    BaselineSnapshot,
    BaselineState,
    ChangedFile,
    ChangeType,
    DiffLine,
    DiffLineType,
    StatusEntry,
    StatusFlag,
    TrackerState,
)
from .status import parse_status_entries
from .tracker import ChangeTracker, TrackerError

__all__ = [
    "Config",
    "ConfigError",
    "Settings",
    "TrackingPolicy",
    "load_config",
    "ChangeTracker",
    "TrackerError",
    "BaselineStore",
    "ContentFetcher",
    "GitClient",
    "GitCommandError",
    "GitTimeoutError",
    "BaselineEntry",
    "BaselineSnapshot",
    "BaselineState",
    "ChangedFile",
    "ChangeType",
    "DiffLine",
    "DiffLineType",
    "StatusEntry",
    "StatusFlag",
    "TrackerState",
    "parse_status_entries",
    "collapse",
    "compute_diff",
    "diff_lines",
    "app",
    "run",
]
