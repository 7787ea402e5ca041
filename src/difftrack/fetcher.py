"""Parallel retrieval of original file content from git history."""

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Iterable, Protocol

from .filesystem import decode_text

logger = logging.getLogger(__name__)


class ContentSource(Protocol):
    """What the fetcher needs from a history backend."""

    def show(self, root: Path, ref: str, relative_path: str) -> bytes | None: ...


def default_parallelism() -> int:
    return 2 * (os.cpu_count() or 1)


class ContentFetcher:
    """Fetches ``<ref>:<path>`` blobs with bounded parallelism.

    Every failure (timeout, non-zero exit, oversize or binary blob) is reported as
    ``None`` for that path only. Successful results are cached for the last resolved
    commit id, so polls against an unchanged HEAD do not spawn ``git show`` again.
    """

    def __init__(self, source: ContentSource, *, max_workers: int | None = None) -> None:
        self.source = source
        self.max_workers = max_workers or default_parallelism()
        self._cache: dict[str, str] = {}
        self._cache_revision: str | None = None
        self._cache_lock = threading.Lock()

    def fetch(
        self,
        root: Path,
        relative_paths: Iterable[str],
        *,
        ref: str = "HEAD",
        revision: str | None = None,
    ) -> dict[str, str | None]:
        """Return a mapping of each requested path to its original text, or ``None``.

        ``revision`` is the commit id ``ref`` resolved to. When given, blobs are read from
        that commit and cached under it; without it nothing is cached.
        """

        unique = list(dict.fromkeys(relative_paths))
        results: dict[str, str | None] = {}
        if not unique:
            return results

        pending = self._take_cached(unique, results, revision)
        if pending:
            target = revision or ref
            workers = min(len(pending), self.max_workers)
            logger.debug("Fetching %d original(s) from %s with %d worker(s)", len(pending), target, workers)
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="difftrack-fetch") as pool:
                fetched = pool.map(lambda path: (path, self._fetch_one(root, target, path)), pending)
                for path, text in fetched:
                    results[path] = text

            self._store_cached(results, pending, revision)

        return {path: results[path] for path in unique}

    def clear_cache(self) -> None:
        with self._cache_lock:
            self._cache.clear()
            self._cache_revision = None

    def _fetch_one(self, root: Path, ref: str, relative_path: str) -> str | None:
        try:
            data = self.source.show(root, ref, relative_path)
        except Exception:  # noqa: BLE001
            logger.exception("Unexpected error fetching %s:%s", ref, relative_path)
            return None
        if data is None:
            return None
        text = decode_text(data)
        if text is None:
            logger.debug("Skipping binary original %s:%s", ref, relative_path)
        return text

    def _take_cached(self, paths: list[str], results: dict[str, str | None], revision: str | None) -> list[str]:
        if revision is None:
            return paths

        with self._cache_lock:
            if revision != self._cache_revision:
                self._cache.clear()
                self._cache_revision = revision
            pending: list[str] = []
            for path in paths:
                if path in self._cache:
                    results[path] = self._cache[path]
                else:
                    pending.append(path)
        return pending

    def _store_cached(self, results: dict[str, str | None], fetched: list[str], revision: str | None) -> None:
        if revision is None:
            return

        with self._cache_lock:
            if revision != self._cache_revision:
                return
            for path in fetched:
                text = results.get(path)
                if text is not None:
                    self._cache[path] = text
