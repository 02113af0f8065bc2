import fcntl
import struct
import termios
import time

import pytest

from kterminus.pty_manager import PtyManager, TerminalSize

SIZE = TerminalSize(cols=80, rows=24)


@pytest.fixture
def manager():
    with PtyManager() as mgr:
        yield mgr


def _read_until(mgr, session_id, needle, timeout=5.0):
    deadline = time.monotonic() + timeout
    output = b""
    while time.monotonic() < deadline:
        chunk = mgr.try_read(session_id)
        if chunk is None:
            break
        output += chunk
        if needle in output:
            break
        time.sleep(0.01)
    return output


def _wait_exit(mgr, session_id, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        code = mgr.try_wait(session_id)
        if code is not None:
            return code
        time.sleep(0.01)
    return None


def test_create_session_returns_pid(manager):
    pid = manager.create_session(1, "/bin/sh", [], SIZE)
    assert pid > 0
    assert manager.get(1).pid == pid
    assert manager.list_sessions() == [1]
    assert len(manager) == 1


def test_write_and_read_output(manager):
    manager.create_session(1, "/bin/sh", [], SIZE)
    manager.write(1, b"printf 'ab%scd\\n' X\n")
    output = _read_until(manager, 1, b"abXcd")
    assert b"abXcd" in output


def test_session_env_is_applied(manager):
    manager.create_session(2, "/bin/sh", [("KT_TEST_VAR", "value42")], SIZE)
    manager.write(2, b"printf '%s-end\\n' \"$KT_TEST_VAR\"\n")
    output = _read_until(manager, 2, b"value42-end")
    assert b"value42-end" in output


def test_default_term_is_set(manager):
    manager.create_session(3, "/bin/sh", [], SIZE)
    manager.write(3, b"printf '[%s]\\n' \"$TERM\"\n")
    output = _read_until(manager, 3, b"[xterm-256color]")
    assert b"[xterm-256color]" in output


def test_default_env_extends_term():
    mgr = PtyManager(None, [("FOO", "bar")])
    assert mgr.default_env == [("TERM", "xterm-256color"), ("FOO", "bar")]


def test_try_wait_reports_exit_code(manager):
    manager.create_session(4, "/bin/sh", [], SIZE)
    assert manager.try_wait(4) is None
    manager.write(4, b"exit 3\n")
    assert _wait_exit(manager, 4) == 3


def test_close_removes_session(manager):
    manager.create_session(5, "/bin/sh", [], SIZE)
    code = manager.close(5)
    assert code is not None
    assert manager.get(5) is None
    assert len(manager) == 0


def test_close_unknown_session_returns_none(manager):
    assert manager.close(99) is None


def test_resize_updates_window_size(manager):
    manager.create_session(6, "/bin/sh", [], SIZE)
    manager.resize(6, TerminalSize(cols=132, rows=50))
    packed = fcntl.ioctl(manager.get(6).master_fd, termios.TIOCGWINSZ, b"\0" * 8)
    rows, cols, _, _ = struct.unpack("HHHH", packed)
    assert (cols, rows) == (132, 50)


def test_initial_size_is_applied(manager):
    manager.create_session(7, "/bin/sh", [], TerminalSize(cols=100, rows=30))
    packed = fcntl.ioctl(manager.get(7).master_fd, termios.TIOCGWINSZ, b"\0" * 8)
    rows, cols, _, _ = struct.unpack("HHHH", packed)
    assert (cols, rows) == (100, 30)


def test_read_after_exit_reaches_eof(manager):
    manager.create_session(8, "/bin/sh", [], SIZE)
    manager.write(8, b"exit 0\n")
    assert _wait_exit(manager, 8) == 0
    deadline = time.monotonic() + 5.0
    result = b""
    while time.monotonic() < deadline:
        result = manager.try_read(8)
        if result is None:
            break
        time.sleep(0.01)
    assert result is None


@pytest.mark.parametrize(
    "call",
    [
        lambda m: m.write(42, b"x"),
        lambda m: m.try_read(42),
        lambda m: m.resize(42, SIZE),
        lambda m: m.try_wait(42),
    ],
)
def test_unknown_session_raises(manager, call):
    with pytest.raises(KeyError, match="Session not found: 42"):
        call(manager)


def test_missing_shell_raises(manager):
    with pytest.raises(OSError):
        manager.create_session(9, "/nonexistent/shell", [], SIZE)
    assert manager.list_sessions() == []


def test_context_manager_closes_all_sessions():
    with PtyManager() as mgr:
        mgr.create_session(1, "/bin/sh", [], SIZE)
        mgr.create_session(2, "/bin/sh", [], SIZE)
        processes = [mgr.get(1).process, mgr.get(2).process]
    assert len(mgr) == 0
    assert all(proc.returncode is not None for proc in processes)