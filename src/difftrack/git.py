"""Thin wrapper around the ``git`` executable."""

from __future__ import annotations

import logging
import subprocess
import threading
from pathlib import Path
from typing import Sequence

from .config import DEFAULT_MAX_BYTES

logger = logging.getLogger(__name__)

STATUS_ARGS: tuple[str, ...] = (
    "--no-optional-locks",
    "status",
    "--porcelain=v1",
    "-z",
    "--untracked-files=all",
)

_READ_CHUNK = 64 * 1024


class GitCommandError(RuntimeError):
    """Raised when a git command cannot be run or exits with a failure."""

    def __init__(self, args: Sequence[str], message: str, *, returncode: int | None = None) -> None:
        super().__init__(f"git {' '.join(args)}: {message}")
        self.command = tuple(args)
        self.returncode = returncode


class GitTimeoutError(GitCommandError):
    """Raised when a git command does not finish within its timeout."""


class GitOutputTooLarge(GitCommandError):
    """Raised when a git command produces more output than allowed."""


class GitClient:
    """Runs git commands with per-call timeouts and output ceilings."""

    def __init__(
        self,
        executable: str = "git",
        *,
        status_timeout: float = 8.0,
        show_timeout: float = 4.0,
        max_show_bytes: int = DEFAULT_MAX_BYTES,
    ) -> None:
        self.executable = executable
        self.status_timeout = status_timeout
        self.show_timeout = show_timeout
        self.max_show_bytes = max_show_bytes

    def run(self, root: Path, args: Sequence[str], *, timeout: float, max_bytes: int | None = None) -> bytes:
        """Run ``git <args>`` in ``root`` and return its standard output.

        The child process is killed on timeout and on any other early exit, and is always
        reaped before this method returns.
        """

        command = [self.executable, *args]
        logger.debug("Running %s in %s", command, root)
        try:
            process = subprocess.Popen(
                command,
                cwd=root,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as exc:
            raise GitCommandError(args, f"cannot start: {exc}") from exc

        with process:
            try:
                if max_bytes is None:
                    stdout, stderr = process.communicate(timeout=timeout)
                    overflow = False
                else:
                    stdout, stderr, overflow = _communicate_bounded(process, timeout, max_bytes)
            except subprocess.TimeoutExpired as exc:
                process.kill()
                process.wait()
                raise GitTimeoutError(args, f"timed out after {timeout:g}s") from exc
            finally:
                if process.poll() is None:
                    process.kill()

        if overflow:
            raise GitOutputTooLarge(args, f"output exceeds {max_bytes} bytes")
        if process.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip() or f"exit code {process.returncode}"
            raise GitCommandError(args, message, returncode=process.returncode)
        return stdout

    def status(self, root: Path) -> str | None:
        """Return porcelain v1 ``-z`` status output, or ``None`` if git failed."""

        try:
            output = self.run(root, STATUS_ARGS, timeout=self.status_timeout)
        except GitCommandError as exc:
            logger.warning("Status query failed in %s: %s", root, exc)
            return None
        return output.decode("utf-8", errors="surrogateescape")

    def show(self, root: Path, ref: str, relative_path: str) -> bytes | None:
        """Return the raw content of ``relative_path`` at ``ref``, or ``None`` if unavailable."""

        object_name = f"{ref}:{relative_path}"
        try:
            return self.run(root, ("show", object_name), timeout=self.show_timeout, max_bytes=self.max_show_bytes)
        except GitCommandError as exc:
            logger.debug("Original content unavailable for %s: %s", object_name, exc)
            return None

    def resolve_revision(self, root: Path, ref: str = "HEAD") -> str | None:
        """Return the commit id ``ref`` points to, or ``None`` (e.g. before the first commit)."""

        try:
            output = self.run(
                root,
                ("rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}"),
                timeout=self.status_timeout,
            )
        except GitCommandError as exc:
            logger.debug("Cannot resolve %s in %s: %s", ref, root, exc)
            return None
        revision = output.decode("ascii", errors="replace").strip()
        return revision or None


def _communicate_bounded(
    process: subprocess.Popen[bytes],
    timeout: float,
    max_bytes: int,
) -> tuple[bytes, bytes, bool]:
    """Like ``Popen.communicate`` but never buffers more than ``max_bytes`` of stdout.

    Once stdout goes past the ceiling the child is killed. Returns ``(stdout, stderr,
    overflow)``; raises ``subprocess.TimeoutExpired`` after killing the child.
    """

    stdout = bytearray()
    stderr = bytearray()
    overflow = threading.Event()

    def read_stdout() -> None:
        assert process.stdout is not None
        while True:
            chunk = process.stdout.read1(_READ_CHUNK)
            if not chunk:
                return
            if len(stdout) + len(chunk) > max_bytes:
                overflow.set()
                process.kill()
                return
            stdout.extend(chunk)

    def read_stderr() -> None:
        assert process.stderr is not None
        while True:
            chunk = process.stderr.read1(_READ_CHUNK)
            if not chunk:
                return
            # stderr is only used for the error message
            if len(stderr) < _READ_CHUNK:
                stderr.extend(chunk)

    readers = [
        threading.Thread(target=read_stdout, name="difftrack-git-stdout", daemon=True),
        threading.Thread(target=read_stderr, name="difftrack-git-stderr", daemon=True),
    ]
    for reader in readers:
        reader.start()

    try:
        process.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        process.kill()
        raise
    finally:
        for reader in readers:
            reader.join(timeout)

    return bytes(stdout), bytes(stderr), overflow.is_set()
