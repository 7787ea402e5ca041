"""Shared models and enums for difftrack."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum, Flag, auto
from pathlib import Path, PurePosixPath
from types import MappingProxyType
from typing import Mapping

ELISION_TEXT = "..."


class StatusFlag(Flag):
    """Classification bits decoded from a porcelain status code."""

    NONE = 0
    UNTRACKED = auto()
    ADDED = auto()
    DELETED = auto()
    MODIFIED = auto()
    TYPE_CHANGED = auto()
    UNMERGED = auto()
    RENAME_OR_COPY = auto()


class EntryCategory(str, Enum):
    """Primary bucket a status entry is sorted into when building a baseline."""

    RENAME_OR_COPY = "rename_or_copy"
    CREATED = "created"
    DELETED = "deleted"
    MODIFIED = "modified"
    IGNORED = "ignored"


@dataclass(frozen=True, slots=True)
class StatusEntry:
    """One record parsed from ``git status --porcelain=v1 -z``."""

    status: str
    path: str
    renamed_path: str | None = None
    flags: StatusFlag = StatusFlag.NONE

    @property
    def is_rename_or_copy(self) -> bool:
        return StatusFlag.RENAME_OR_COPY in self.flags

    @property
    def is_untracked(self) -> bool:
        return StatusFlag.UNTRACKED in self.flags

    @property
    def is_added(self) -> bool:
        return StatusFlag.ADDED in self.flags

    @property
    def is_deleted(self) -> bool:
        return StatusFlag.DELETED in self.flags

    @property
    def is_modified_like(self) -> bool:
        return bool(self.flags & (StatusFlag.MODIFIED | StatusFlag.TYPE_CHANGED | StatusFlag.UNMERGED))

    @property
    def category(self) -> EntryCategory:
        """Return the bucket for this entry.

        Several bits may be set at once (``AM``, ``MD``, ``RM``...). The checks run in a
        fixed order: rename/copy, untracked/added, deleted, then modified-like.
        """

        if self.is_rename_or_copy:
            return EntryCategory.RENAME_OR_COPY
        if self.is_untracked or self.is_added:
            return EntryCategory.CREATED
        if self.is_deleted:
            return EntryCategory.DELETED
        if self.is_modified_like:
            return EntryCategory.MODIFIED
        return EntryCategory.IGNORED


class BaselineState(str, Enum):
    """State a path holds within one baseline generation."""

    ORIGINAL = "original"
    CREATED = "created"
    DELETED = "deleted"


@dataclass(frozen=True, slots=True)
class BaselineEntry:
    """Baseline record for a single absolute path."""

    path: Path
    state: BaselineState
    original: str | None = None
    rename_source: Path | None = None
    rename_target: Path | None = None

    @property
    def has_original(self) -> bool:
        return self.original is not None


@dataclass(frozen=True, slots=True)
class BaselineSnapshot:
    """Immutable baseline generation.

    Snapshots are built once and swapped into a store as a whole, so a reader holding a
    reference always sees a consistent set of entries.
    """

    entries: Mapping[Path, BaselineEntry] = field(default_factory=lambda: MappingProxyType({}))
    repository_root: Path | None = None
    revision: str | None = None
    generation: int = 0
    captured_at: float = field(default_factory=time.time)

    @classmethod
    def build(
        cls,
        entries: Mapping[Path, BaselineEntry],
        *,
        repository_root: Path | None,
        revision: str | None,
        generation: int,
    ) -> "BaselineSnapshot":
        return cls(
            entries=MappingProxyType(dict(entries)),
            repository_root=repository_root,
            revision=revision,
            generation=generation,
        )

    @property
    def is_empty(self) -> bool:
        return not self.entries

    @property
    def original_contents(self) -> dict[Path, str | None]:
        """Modified-like paths mapped to their original text (``None`` when it could not be fetched)."""

        return {path: entry.original for path, entry in self.entries.items() if entry.state is BaselineState.ORIGINAL}

    @property
    def created(self) -> frozenset[Path]:
        return frozenset(path for path, entry in self.entries.items() if entry.state is BaselineState.CREATED)

    @property
    def deleted(self) -> frozenset[Path]:
        return frozenset(path for path, entry in self.entries.items() if entry.state is BaselineState.DELETED)

    def get(self, path: Path) -> BaselineEntry | None:
        return self.entries.get(path)


class ChangeType(str, Enum):
    """Kind of change reported for a file."""

    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"


class DiffLineType(str, Enum):
    """Type of a single diff line."""

    CONTEXT = "context"
    ADDED = "added"
    REMOVED = "removed"


@dataclass(frozen=True, slots=True)
class DiffLine:
    """A line of diff output with its position in either file."""

    line_type: DiffLineType
    text: str
    old_number: int | None = None
    new_number: int | None = None

    @classmethod
    def elision(cls) -> "DiffLine":
        return cls(DiffLineType.CONTEXT, ELISION_TEXT)

    @property
    def is_elision(self) -> bool:
        return (
            self.line_type is DiffLineType.CONTEXT
            and self.old_number is None
            and self.new_number is None
            and self.text == ELISION_TEXT
        )


@dataclass(frozen=True, slots=True)
class ChangedFile:
    """A changed file with its collapsed diff, ready for display."""

    path: Path
    relative_path: str
    change_type: ChangeType
    lines: tuple[DiffLine, ...] = ()
    last_modified: float = 0.0
    old_path: Path | None = None
    diff_available: bool = True
    lines_added: int = 0
    lines_removed: int = 0

    @property
    def file_name(self) -> str:
        return self.path.name

    @property
    def directory(self) -> str:
        """Relative directory of the file, with a trailing slash, or an empty string at the root."""

        parent = PurePosixPath(self.relative_path).parent.as_posix()
        return "" if parent == "." else f"{parent}/"

    @property
    def changes_summary(self) -> str:
        return f"+{self.lines_added} -{self.lines_removed}"

    @property
    def type_indicator(self) -> str:
        indicators = {
            ChangeType.CREATED: "[new]",
            ChangeType.DELETED: "[del]",
            ChangeType.RENAMED: "[ren]",
        }
        return indicators.get(self.change_type, "")


class TrackerState(str, Enum):
    """Lifecycle states of a change tracker."""

    INACTIVE = "inactive"
    ACTIVE = "active"
    PAUSED = "paused"
