"""Change tracking orchestration: baseline application, polling and auto-reset."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path

from .baseline import BaselineStore
from .config import Settings, TrackingPolicy
from .diff import compute_diff, count_changes
from .fetcher import ContentFetcher
from .filesystem import last_modified, read_text_file, to_relative_path
from .git import GitClient
from .models import BaselineEntry, BaselineSnapshot, BaselineState, ChangedFile, ChangeType, TrackerState
from .scheduler import PollScheduler
from .status import is_clean_status, parse_status_entries

logger = logging.getLogger(__name__)


class TrackerError(RuntimeError):
    """Raised when tracking is requested in an unusable state."""


@dataclass
class TrackingSession:
    """State owned by one tracking run against a single repository root."""

    repository_root: Path
    workspace: Path
    store: BaselineStore
    fetcher: ContentFetcher
    apply_lock: threading.Lock = field(default_factory=threading.Lock)
    is_paused: bool = False
    is_auto_resetting: bool = False
    last_poll: float | None = None
    last_status: str | None = None
    last_revision: str | None = None
    last_clean_check: float | None = None
    last_clean: bool = False


class ChangeTracker:
    """Tracks working-tree changes against git history.

    ``start_tracking`` captures a baseline synchronously and then polls ``git status``
    on a ``PollScheduler``. When the status comes back clean (for example after a
    commit) the baseline is re-applied against the new HEAD, so the next batch of edits
    starts from zero changes.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        policy: TrackingPolicy | None = None,
        *,
        git: GitClient | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.policy = policy or TrackingPolicy()
        self.git = git or GitClient(
            self.settings.git_executable,
            status_timeout=self.settings.status_timeout,
            show_timeout=self.settings.fetch_timeout,
            max_show_bytes=self.settings.max_fetch_bytes,
        )
        self._session: TrackingSession | None = None
        self._scheduler: PollScheduler | None = None
        self._state_lock = threading.RLock()

    def __enter__(self) -> "ChangeTracker":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Lifecycle

    @property
    def state(self) -> TrackerState:
        session = self._session
        if session is None:
            return TrackerState.INACTIVE
        return TrackerState.PAUSED if session.is_paused else TrackerState.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.state is TrackerState.ACTIVE

    @property
    def is_paused(self) -> bool:
        return self.state is TrackerState.PAUSED

    @property
    def repository_root(self) -> Path | None:
        session = self._session
        return session.repository_root if session else None

    @property
    def last_poll(self) -> float | None:
        session = self._session
        return session.last_poll if session else None

    @property
    def is_auto_resetting(self) -> bool:
        session = self._session
        return bool(session and session.is_auto_resetting)

    @property
    def uses_version_control_baseline(self) -> bool:
        """Whether the active baseline comes from git (a manual reset then does not apply)."""

        return self._session is not None

    @property
    def baseline(self) -> BaselineSnapshot:
        session = self._session
        return session.store.snapshot() if session else BaselineSnapshot()

    def start_tracking(self, repository_root: Path, workspace: Path | None = None) -> bool:
        """Begin tracking ``repository_root`` and capture the first baseline.

        Returns the result of the initial baseline application. Calling it again for the
        scope already tracked returns ``True`` and resumes the session if it was paused.
        """

        if repository_root is None:
            raise TrackerError("A resolved repository root is required to start tracking")
        root = Path(repository_root).resolve(strict=False)
        if not root.is_dir():
            raise TrackerError(f"Repository root '{root}' does not exist")
        scope = Path(workspace).resolve(strict=False) if workspace is not None else root

        with self._state_lock:
            current = self._session
            if current is not None and current.repository_root == root and current.workspace == scope:
                resume = current.is_paused
            else:
                resume = None
                if current is not None:
                    self.stop_tracking()
                self._session = TrackingSession(
                    repository_root=root,
                    workspace=scope,
                    store=BaselineStore(),
                    fetcher=ContentFetcher(self.git, max_workers=self.settings.max_workers or None),
                )
                logger.info("Tracking changes in %s", scope)

        if resume is not None:
            # Already tracking this scope; only a paused session needs waking.
            if resume:
                self.resume()
            return True

        applied = self.apply_baseline()
        self._start_scheduler()
        return applied

    def stop_tracking(self) -> None:
        """Stop polling and drop all session state."""

        with self._state_lock:
            self._stop_scheduler()
            session, self._session = self._session, None
        if session is not None:
            logger.info("Stopped tracking %s", session.workspace)

    close = stop_tracking

    def pause(self) -> None:
        """Stop polling but keep the baseline (the viewer was hidden)."""

        with self._state_lock:
            session = self._session
            if session is None or session.is_paused:
                return
            session.is_paused = True
            self._stop_scheduler()
        logger.debug("Tracking paused")

    def resume(self) -> None:
        """Restart polling and catch up on changes made while paused."""

        with self._state_lock:
            session = self._session
            if session is None or not session.is_paused:
                return
            session.is_paused = False
        logger.debug("Tracking resumed")
        self._start_scheduler()
        self.poll()

    # ------------------------------------------------------------------
    # Baseline

    def apply_baseline(self, status_output: str | None = None) -> bool:
        """Rebuild the baseline from the current ``git status``.

        Calls for the same session are serialized. Returns ``False`` when the status
        query fails or the repository root is gone; the previous baseline is kept.
        """

        session = self._require_session()
        with session.apply_lock:
            return self._apply_locked(session, status_output)

    def clear(self) -> None:
        session = self._session
        if session is not None:
            session.store.clear(repository_root=session.repository_root)

    def _apply_locked(
        self,
        session: TrackingSession,
        status_output: str | None,
        revision: str | None = None,
    ) -> bool:
        root = session.repository_root
        if not root.is_dir():
            logger.warning("Repository root '%s' no longer exists; keeping previous baseline", root)
            return False

        if status_output is None:
            status_output = self.git.status(root)
            if status_output is None:
                return False

        if revision is None:
            revision = self.git.resolve_revision(root, self.settings.ref)
        entries = parse_status_entries(status_output)
        if not entries:
            session.fetcher.clear_cache()

        applied = session.store.apply(
            root,
            entries,
            fetcher=session.fetcher,
            policy=self.policy,
            workspace=session.workspace,
            ref=self.settings.ref,
            revision=revision,
        )
        if applied:
            session.last_status = status_output
            session.last_revision = revision
        return applied

    # ------------------------------------------------------------------
    # Polling

    def poll(self) -> bool:
        """Run one poll tick. Returns ``True`` if the baseline was re-applied.

        A clean status triggers the auto-reset; a changed, non-clean status refreshes
        the baseline so new edits show up. Failures leave the previous state in place.
        """

        session = self._session
        if session is None or session.is_paused:
            return False
        if session.is_auto_resetting or not session.apply_lock.acquire(blocking=False):
            logger.debug("Baseline update in flight; skipping poll tick")
            return False

        try:
            status_output = self.git.status(session.repository_root)
            session.last_poll = time.time()
            if status_output is None:
                return False

            clean = is_clean_status(status_output)
            session.last_clean_check = time.monotonic()
            session.last_clean = clean

            if clean:
                if session.store.is_empty and session.last_status is not None and is_clean_status(session.last_status):
                    return False
                return self._auto_reset_locked(session, status_output)

            revision = self.git.resolve_revision(session.repository_root, self.settings.ref)
            if status_output == session.last_status and revision == session.last_revision:
                return False
            return self._apply_locked(session, status_output, revision)
        finally:
            session.apply_lock.release()

    def is_repository_clean(self) -> bool:
        """Return whether ``git status`` reports no changes.

        The answer is cached for ``settings.clean_check_throttle`` seconds.
        """

        session = self._session
        if session is None:
            return False

        now = time.monotonic()
        if session.last_clean_check is not None and now - session.last_clean_check < self.settings.clean_check_throttle:
            return session.last_clean

        status_output = self.git.status(session.repository_root)
        clean = is_clean_status(status_output)
        session.last_clean_check = now
        session.last_clean = clean
        return clean

    def refresh(self) -> list[ChangedFile]:
        """Return the changed files, auto-resetting first if the repository is clean."""

        changed = self.get_changed_files()
        session = self._session
        if not changed or session is None or session.is_paused or session.is_auto_resetting:
            return changed

        if self.is_repository_clean():
            if not session.apply_lock.acquire(blocking=False):
                return changed
            try:
                self._auto_reset_locked(session, None)
            finally:
                session.apply_lock.release()
            return self.get_changed_files()
        return changed

    def _auto_reset_locked(self, session: TrackingSession, status_output: str | None) -> bool:
        session.is_auto_resetting = True
        try:
            logger.info("Working tree is clean; resetting baseline for %s", session.workspace)
            return self._apply_locked(session, status_output)
        finally:
            session.is_auto_resetting = False

    def _start_scheduler(self) -> None:
        with self._state_lock:
            if self._session is None or self._session.is_paused or self.settings.poll_interval <= 0:
                return
            if self._scheduler is None:
                self._scheduler = PollScheduler(self.settings.poll_interval, self.poll)
            self._scheduler.start()

    def _stop_scheduler(self) -> None:
        scheduler, self._scheduler = self._scheduler, None
        if scheduler is not None:
            scheduler.stop(wait=False)

    def _require_session(self) -> TrackingSession:
        session = self._session
        if session is None:
            raise TrackerError("Tracking has not been started")
        return session

    # ------------------------------------------------------------------
    # Changed files

    def get_changed_files(self) -> list[ChangedFile]:
        """Compare the current baseline with the files on disk.

        Works on one immutable snapshot, so a concurrent baseline swap never produces a
        mixed result. Files are ordered by modification time, deleted files first.
        """

        session = self._session
        if session is None:
            return []

        snapshot = session.store.snapshot()
        root = snapshot.repository_root or session.repository_root
        changed: list[ChangedFile] = []
        consumed: set[Path] = set()

        for path, entry in snapshot.entries.items():
            if entry.state is BaselineState.CREATED and entry.rename_source is not None:
                source = snapshot.get(entry.rename_source)
                if source is not None and source.has_original and not source.path.exists():
                    renamed = self._renamed_file(root, entry, source)
                    if renamed is not None:
                        changed.append(renamed)
                    consumed.update((path, source.path))

        for path, entry in snapshot.entries.items():
            if path in consumed:
                continue
            result = self._changed_file(root, entry)
            if result is not None:
                changed.append(result)

        changed.sort(key=lambda item: (item.last_modified, item.relative_path))
        return changed

    def _changed_file(self, root: Path, entry: BaselineEntry) -> ChangedFile | None:
        path = entry.path
        if entry.state is BaselineState.CREATED:
            if not path.exists():
                return None
            current = read_text_file(path, max_bytes=self.policy.max_file_bytes)
            if current is None:
                return None
            return self._build(root, path, ChangeType.CREATED, None, current)

        if not path.exists():
            return self._build(root, path, ChangeType.DELETED, entry.original, None)

        current = read_text_file(path, max_bytes=self.policy.max_file_bytes)
        if current is None:
            return None
        if entry.original is not None and current == entry.original:
            return None
        return self._build(root, path, ChangeType.MODIFIED, entry.original, current)

    def _renamed_file(self, root: Path, target: BaselineEntry, source: BaselineEntry) -> ChangedFile | None:
        if not target.path.exists():
            return self._build(root, source.path, ChangeType.DELETED, source.original, None)
        current = read_text_file(target.path, max_bytes=self.policy.max_file_bytes)
        if current is None:
            return None
        return self._build(root, target.path, ChangeType.RENAMED, source.original, current, old_path=source.path)

    def _build(
        self,
        root: Path,
        path: Path,
        change_type: ChangeType,
        original: str | None,
        current: str | None,
        *,
        old_path: Path | None = None,
    ) -> ChangedFile:
        diff_available = change_type is ChangeType.CREATED or original is not None
        if change_type is ChangeType.DELETED and original is None:
            lines = []
        else:
            lines = compute_diff(original, current, self.settings.context_lines)
        added, removed = count_changes(lines)
        return ChangedFile(
            path=path,
            relative_path=to_relative_path(root, path),
            change_type=change_type,
            lines=tuple(lines),
            last_modified=last_modified(path) if current is not None else 0.0,
            old_path=old_path,
            diff_available=diff_available,
            lines_added=added,
            lines_removed=removed,
        )
