"""Pseudo-terminal session management on the local machine."""

from __future__ import annotations

import contextlib
import errno
import fcntl
import logging
import os
import pty
import struct
import subprocess
import sys
import termios
from dataclasses import dataclass, field
from typing import Iterable, Optional

log = logging.getLogger(__name__)

_DEFAULT_TERM = ("TERM", "xterm-256color")


@dataclass(frozen=True)
class TerminalSize:
    """Terminal dimensions in character cells."""

    cols: int
    rows: int


@dataclass
class PtySession:
    """A shell running on the slave side of a pseudo-terminal."""

    session_id: int
    pid: Optional[int]
    master_fd: int = field(repr=False)
    process: subprocess.Popen = field(repr=False)


def _winsize(size: TerminalSize) -> bytes:
    return struct.pack("HHHH", size.rows, size.cols, 0, 0)


def _make_controlling_tty() -> None:
    with contextlib.suppress(OSError):
        fcntl.ioctl(0, termios.TIOCSCTTY, 0)


class PtyManager:
    """Creates, drives and closes PTY sessions keyed by session id."""

    def __init__(
        self,
        default_shell: Optional[str] = None,
        default_env: Iterable[tuple[str, str]] = (),
    ) -> None:
        self.default_shell = default_shell
        self.default_env: list[tuple[str, str]] = [_DEFAULT_TERM, *default_env]
        self._sessions: dict[int, PtySession] = {}

    def __enter__(self) -> "PtyManager":
        return self

    def __exit__(self, *exc_info) -> None:
        for session_id in self.list_sessions():
            self.close(session_id)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def _session(self, session_id: int) -> PtySession:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise KeyError(f"Session not found: {session_id}") from None

    def _shell_path(self, shell: Optional[str]) -> str:
        return (
            shell
            or self.default_shell
            or os.environ.get("SHELL")
            or ("cmd.exe" if sys.platform == "win32" else "/bin/sh")
        )

    def create_session(
        self,
        session_id: int,
        shell: Optional[str] = None,
        env: Iterable[tuple[str, str]] = (),
        size: TerminalSize = TerminalSize(cols=80, rows=24),
    ) -> int:
        """Spawn a shell in a new PTY and return its process id."""
        log.info(
            "Creating PTY session %s with size %dx%d", session_id, size.cols, size.rows
        )
        shell_path = self._shell_path(shell)
        log.debug("Using shell: %s", shell_path)

        environment = dict(os.environ)
        environment.update(self.default_env)
        environment.update(env)

        master_fd, slave_fd = pty.openpty()
        try:
            fcntl.ioctl(slave_fd, termios.TIOCSWINSZ, _winsize(size))
            process = subprocess.Popen(
                [shell_path],
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                env=environment,
                start_new_session=True,
                preexec_fn=_make_controlling_tty,
                close_fds=True,
            )
        except BaseException:
            os.close(master_fd)
            raise
        finally:
            os.close(slave_fd)

        os.set_blocking(master_fd, False)
        log.info("Spawned shell process with PID: %s", process.pid)

        previous = self._sessions.get(session_id)
        if previous is not None:
            self.close(session_id)
        self._sessions[session_id] = PtySession(
            session_id=session_id,
            pid=process.pid,
            master_fd=master_fd,
            process=process,
        )
        return process.pid or 0

    def write(self, session_id: int, data: bytes) -> None:
        """Write all of ``data`` to the session's terminal."""
        session = self._session(session_id)
        view = memoryview(data)
        while view:
            try:
                written = os.write(session.master_fd, view)
            except BlockingIOError:
                continue
            view = view[written:]

    def try_read(self, session_id: int, max_bytes: int = 4096) -> Optional[bytes]:
        """Read pending output without blocking.

        Returns the bytes read, ``b""`` when nothing is pending, or ``None``
        once the terminal has reached end of file.
        """
        session = self._session(session_id)
        try:
            data = os.read(session.master_fd, max_bytes)
        except BlockingIOError:
            return b""
        except OSError as exc:
            if exc.errno == errno.EIO:
                return None
            raise
        return data or None

    def resize(self, session_id: int, size: TerminalSize) -> None:
        """Change the terminal dimensions of a session."""
        session = self._session(session_id)
        log.debug("Resizing session %s to %dx%d", session_id, size.cols, size.rows)
        fcntl.ioctl(session.master_fd, termios.TIOCSWINSZ, _winsize(size))

    def try_wait(self, session_id: int) -> Optional[int]:
        """Return the shell's exit code if it has exited, else ``None``."""
        session = self._session(session_id)
        code = session.process.poll()
        if code is not None:
            log.info("Session %s exited with code %d", session_id, code)
        return code

    def close(self, session_id: int) -> Optional[int]:
        """Kill the session's shell and return its exit code, if any."""
        log.info("Closing PTY session %s", session_id)
        session = self._sessions.pop(session_id, None)
        if session is None:
            return None
        with contextlib.suppress(ProcessLookupError):
            session.process.kill()
        try:
            code: Optional[int] = session.process.wait()
        except OSError:
            code = None
        with contextlib.suppress(OSError):
            os.close(session.master_fd)
        return code

    def get(self, session_id: int) -> Optional[PtySession]:
        """Return the session with this id, or ``None``."""
        return self._sessions.get(session_id)

    def list_sessions(self) -> list[int]:
        """Return the ids of all active sessions."""
        return list(self._sessions)