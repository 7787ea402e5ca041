"""Parsing of null-delimited ``git status --porcelain=v1 -z`` output."""

from __future__ import annotations

from .models import StatusEntry, StatusFlag

_FLAG_CODES: dict[str, StatusFlag] = {
    "A": StatusFlag.ADDED,
    "D": StatusFlag.DELETED,
    "M": StatusFlag.MODIFIED,
    "T": StatusFlag.TYPE_CHANGED,
    "U": StatusFlag.UNMERGED,
    "R": StatusFlag.RENAME_OR_COPY,
    "C": StatusFlag.RENAME_OR_COPY,
}


def is_clean_status(output: str | None) -> bool:
    """Return ``True`` when ``output`` reports no changes at all."""

    return output is not None and not output.strip()


def status_flags(status: str) -> StatusFlag:
    """Decode a two-character status code into its flag set."""

    if status == "??":
        return StatusFlag.UNTRACKED

    flags = StatusFlag.NONE
    for code, flag in _FLAG_CODES.items():
        if code in status:
            flags |= flag
    return flags


def parse_status_entries(output: str | None) -> list[StatusEntry]:
    """Parse porcelain v1 ``-z`` output into ``StatusEntry`` records.

    Each token is ``XY<space>path``. When the code contains ``R`` or ``C`` the token
    after it is consumed as the destination path, so paths are always taken in pairs.
    Empty or whitespace-only output means "no changes" and yields an empty list.
    """

    if output is None or not output.strip():
        return []

    tokens = output.split("\0")
    entries: list[StatusEntry] = []
    index = 0
    while index < len(tokens):
        token = tokens[index]
        index += 1
        if len(token) < 3:
            continue

        status = token[:2]
        path = token[3:]
        flags = status_flags(status)

        renamed_path: str | None = None
        if StatusFlag.RENAME_OR_COPY in flags and index < len(tokens):
            renamed_path = tokens[index]
            index += 1

        entries.append(StatusEntry(status=status, path=path, renamed_path=renamed_path, flags=flags))

    return entries
