"""Baseline store holding original content for the active tracking session."""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from pathlib import Path
from typing import Iterable

from .config import TrackingPolicy
from .fetcher import ContentFetcher
from .filesystem import is_under_directory, to_full_path
from .models import BaselineEntry, BaselineSnapshot, BaselineState, EntryCategory, StatusEntry

logger = logging.getLogger(__name__)


class BaselineStore:
    """Holds the current ``BaselineSnapshot``.

    The snapshot is immutable; ``apply`` and ``clear`` build a new one and swap the
    reference under a lock, so readers never observe a half-built baseline.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot = BaselineSnapshot()
        self._generation = 0

    def snapshot(self) -> BaselineSnapshot:
        with self._lock:
            return self._snapshot

    @property
    def is_empty(self) -> bool:
        return self.snapshot().is_empty

    @property
    def generation(self) -> int:
        return self.snapshot().generation

    def clear(self, *, repository_root: Path | None = None, revision: str | None = None) -> None:
        """Swap in an empty baseline (the "nothing changed" state)."""

        self.replace({}, repository_root=repository_root, revision=revision)

    def replace(
        self,
        entries: dict[Path, BaselineEntry],
        *,
        repository_root: Path | None,
        revision: str | None,
    ) -> BaselineSnapshot:
        with self._lock:
            self._generation += 1
            self._snapshot = BaselineSnapshot.build(
                entries,
                repository_root=repository_root,
                revision=revision,
                generation=self._generation,
            )
            return self._snapshot

    def apply(
        self,
        root: Path,
        entries: Iterable[StatusEntry],
        *,
        fetcher: ContentFetcher,
        policy: TrackingPolicy,
        workspace: Path | None = None,
        ref: str = "HEAD",
        revision: str | None = None,
    ) -> bool:
        """Rebuild the baseline from parsed status ``entries``.

        Returns ``False`` without touching the current snapshot when ``root`` no longer
        exists. If no entry survives the workspace and policy filters the store is
        cleared, which is a success.
        """

        if not root.is_dir():
            logger.warning("Cannot apply baseline: repository root '%s' does not exist", root)
            return False

        scope = workspace or root
        plan = _BaselinePlan(root=root, scope=scope, policy=policy)
        for entry in entries:
            plan.add(entry)

        originals = fetcher.fetch(root, plan.fetch_paths, ref=ref, revision=revision) if plan.fetch_paths else {}
        baseline = plan.build(originals)

        if not baseline:
            logger.debug("No trackable changes under %s; clearing baseline", scope)
            self.clear(repository_root=root, revision=revision)
            return True

        snapshot = self.replace(baseline, repository_root=root, revision=revision)
        logger.debug(
            "Baseline generation %d: %d original, %d created, %d deleted",
            snapshot.generation,
            len(snapshot.original_contents),
            len(snapshot.created),
            len(snapshot.deleted),
        )
        return True


class _BaselinePlan:
    """Partitions status entries and remembers which originals must be fetched."""

    def __init__(self, *, root: Path, scope: Path, policy: TrackingPolicy) -> None:
        self.root = root
        self.scope = scope
        self.policy = policy
        self._records: dict[Path, BaselineEntry] = {}
        self._sources: dict[Path, str] = {}

    @property
    def fetch_paths(self) -> list[str]:
        return list(dict.fromkeys(self._sources.values()))

    def add(self, entry: StatusEntry) -> None:
        category = entry.category

        if category is EntryCategory.RENAME_OR_COPY:
            self._add_rename(entry)
        elif category is EntryCategory.CREATED:
            self._record(entry.path, BaselineState.CREATED, fetch=False)
        elif category is EntryCategory.DELETED:
            self._record(entry.path, BaselineState.DELETED, fetch=True)
        elif category is EntryCategory.MODIFIED:
            self._record(entry.path, BaselineState.ORIGINAL, fetch=True)

    def build(self, originals: dict[str, str | None]) -> dict[Path, BaselineEntry]:
        baseline: dict[Path, BaselineEntry] = {}
        for path, entry in self._records.items():
            relative = self._sources.get(path)
            if relative is not None:
                original = originals.get(relative)
                if original is None:
                    logger.debug("Recording %s without original content", path)
                entry = replace(entry, original=original)
            baseline[path] = entry
        return baseline

    def _add_rename(self, entry: StatusEntry) -> None:
        source_path, target_path = entry.path, entry.renamed_path
        if target_path and self._exists(source_path) and not self._exists(target_path):
            # ``git status -z`` lists the destination before the source
            source_path, target_path = target_path, source_path

        source = self._accept(source_path)
        target = self._accept(target_path) if target_path else None

        if source is not None:
            self._records[source] = BaselineEntry(source, BaselineState.ORIGINAL, rename_target=target)
            self._sources[source] = source_path
        if target is not None:
            self._records[target] = BaselineEntry(target, BaselineState.CREATED, rename_source=source)
            self._sources.pop(target, None)

    def _record(self, relative_path: str, state: BaselineState, *, fetch: bool) -> None:
        path = self._accept(relative_path)
        if path is None:
            return
        self._records[path] = BaselineEntry(path, state)
        if fetch:
            self._sources[path] = relative_path
        else:
            self._sources.pop(path, None)

    def _exists(self, relative_path: str) -> bool:
        return to_full_path(self.root, relative_path).exists()

    def _accept(self, relative_path: str) -> Path | None:
        if not relative_path:
            return None
        full_path = to_full_path(self.root, relative_path)
        if not is_under_directory(full_path, self.scope):
            return None
        if not self.policy.is_trackable(full_path, root=self.root):
            return None
        return full_path
