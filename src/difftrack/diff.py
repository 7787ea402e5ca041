"""Collapsed line-level diffs between original and current file content."""

from __future__ import annotations

import difflib
from typing import Iterable, Sequence

from .models import DiffLine, DiffLineType

DEFAULT_CONTEXT_LINES = 3


def split_lines(text: str | None) -> list[str]:
    """Split ``text`` on ``\\n`` only, dropping each line's terminator.

    A trailing ``\\r`` is stripped as part of the terminator. Other characters that
    ``str.splitlines`` treats as breaks (form feed, ``\\x85``, ``\\u2028``) stay in the line.
    """

    return [line.removesuffix("\n") for line in _terminated_lines(text)]


def _terminated_lines(text: str | None) -> list[str]:
    # Keys end in "\n" unless the text lacks a final newline, so that change still shows.
    if not text:
        return []
    lines = [line.removesuffix("\r") + "\n" for line in text.split("\n")]
    last = lines.pop()[:-1]
    if last:
        lines.append(last)
    return lines


def diff_lines(original: str | None, current: str | None) -> list[DiffLine]:
    """Return the full line diff of ``original`` against ``current``.

    Every line of both texts appears exactly once: unchanged lines as ``CONTEXT``,
    removed lines as ``REMOVED`` and inserted lines as ``ADDED``. A replaced block lists
    its removed lines before its added lines.
    """

    old_keys = _terminated_lines(original)
    new_keys = _terminated_lines(current)
    matcher = difflib.SequenceMatcher(None, old_keys, new_keys, autojunk=False)
    old_lines = [line.removesuffix("\n") for line in old_keys]
    new_lines = [line.removesuffix("\n") for line in new_keys]

    result: list[DiffLine] = []
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            for offset, text in enumerate(new_lines[j1:j2]):
                result.append(DiffLine(DiffLineType.CONTEXT, text, i1 + offset + 1, j1 + offset + 1))
            continue
        if tag in ("delete", "replace"):
            for offset, text in enumerate(old_lines[i1:i2]):
                result.append(DiffLine(DiffLineType.REMOVED, text, old_number=i1 + offset + 1))
        if tag in ("insert", "replace"):
            for offset, text in enumerate(new_lines[j1:j2]):
                result.append(DiffLine(DiffLineType.ADDED, text, new_number=j1 + offset + 1))
    return result


def collapse(lines: Sequence[DiffLine], context_lines: int = DEFAULT_CONTEXT_LINES) -> list[DiffLine]:
    """Keep ``context_lines`` unchanged lines around each change and elide the rest.

    A gap of unchanged lines between two kept windows becomes a single elision marker.
    Unchanged lines before the first change and after the last one are dropped.
    """

    windows = _change_windows(lines, max(context_lines, 0))
    result: list[DiffLine] = []
    for index, (start, end) in enumerate(windows):
        if index:
            result.append(DiffLine.elision())
        result.extend(lines[start:end])
    return result


def compute_diff(
    original: str | None,
    current: str | None,
    context_lines: int = DEFAULT_CONTEXT_LINES,
) -> list[DiffLine]:
    """Return the collapsed diff for one file.

    ``original=None`` (created file or unavailable original) yields every current line as
    ``ADDED``; ``current=None`` (deleted file) yields every original line as ``REMOVED``.
    """

    if original is None:
        return [
            DiffLine(DiffLineType.ADDED, text, new_number=number)
            for number, text in enumerate(split_lines(current), start=1)
        ]
    if current is None:
        return [
            DiffLine(DiffLineType.REMOVED, text, old_number=number)
            for number, text in enumerate(split_lines(original), start=1)
        ]
    return collapse(diff_lines(original, current), context_lines)


def count_changes(lines: Iterable[DiffLine]) -> tuple[int, int]:
    """Return ``(added, removed)`` line counts."""

    added = removed = 0
    for line in lines:
        if line.line_type is DiffLineType.ADDED:
            added += 1
        elif line.line_type is DiffLineType.REMOVED:
            removed += 1
    return added, removed


def _change_windows(lines: Sequence[DiffLine], context_lines: int) -> list[tuple[int, int]]:
    windows: list[tuple[int, int]] = []
    total = len(lines)
    index = 0
    while index < total:
        if lines[index].line_type is DiffLineType.CONTEXT:
            index += 1
            continue

        run_end = index
        while run_end < total and lines[run_end].line_type is not DiffLineType.CONTEXT:
            run_end += 1

        start = max(0, index - context_lines)
        end = min(total, run_end + context_lines)
        if windows and start <= windows[-1][1]:
            windows[-1] = (windows[-1][0], end)
        else:
            windows.append((start, end))
        index = run_end
    return windows
