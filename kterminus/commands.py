"""Implementations of the command-line subcommands."""

from __future__ import annotations

import codecs
import contextlib
import logging
import os
import shutil
import signal
import subprocess
import sys
import threading
from pathlib import Path
from typing import Iterator, Optional, Sequence, TextIO, Union

from kterminus.ipc_client import (
    MachineInfo,
    OrchestratorClient,
    OrchestratorStatus,
    SessionInfo,
)
from kterminus.output import (
    format_machines,
    format_sessions,
    format_status,
    print_error,
    print_info,
    print_success,
    print_warning,
)

log = logging.getLogger(__name__)

PathLike = Union[str, Path]

_DETACH_KEY = "\x1d"  # Ctrl+]
_ENTER_ALT_SCREEN = "\x1b[?1049h"
_LEAVE_ALT_SCREEN = "\x1b[?1049l"

_DEFAULT_CONFIG = """\
# k-Terminus Configuration

[orchestrator]
# Address to bind SSH server
bind_address = "0.0.0.0:2222"

# Paths to authorized public keys for agent authentication
auth_keys = ["~/.config/k-terminus/authorized_keys"]

# Host key file path (will be generated if missing)
host_key_path = "~/.config/k-terminus/host_key"

# Heartbeat interval in seconds
heartbeat_interval = 30

# Connection timeout in seconds
connect_timeout = 10

[orchestrator.backoff]
# Initial retry delay in seconds
initial_secs = 1
# Maximum retry delay in seconds
max_secs = 60
# Backoff multiplier
multiplier = 2.0

# Example machine profiles
# [[machines]]
# alias = "dev-server"
# host_key = "ssh-ed25519 AAAAC3..."
# tags = ["development"]
# default_shell = "/bin/bash"
# [machines.env]
# CUSTOM_VAR = "value"
"""


class CommandError(RuntimeError):
    """A subcommand could not complete its work."""


def default_config_dir() -> Path:
    """Return the directory that holds the configuration and keys."""
    base = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / "k-terminus"


def generate_default_config() -> str:
    """Return the text of a default configuration file."""
    return _DEFAULT_CONFIG


def _config_file(config_path: Optional[PathLike]) -> Path:
    if config_path is not None:
        return Path(config_path)
    return default_config_dir() / "config.toml"


def config_show(config_path: Optional[PathLike] = None) -> Optional[str]:
    """Print the configuration file and return its text, or ``None`` if absent."""
    path = _config_file(config_path)
    if not path.exists():
        print_warning(f"No configuration file found at {path}")
        print_info("Run 'k-terminus config init' to create one")
        return None

    print_info(f"Configuration file: {path}")
    print()
    try:
        content = path.read_text()
    except OSError as exc:
        raise CommandError(f"Failed to read config file: {path}") from exc
    print(content)
    return content


def config_init(config_path: Optional[PathLike] = None, force: bool = False) -> Optional[Path]:
    """Write a default configuration file and return its path.

    Returns ``None`` without writing when the file exists and ``force`` is false.
    """
    if config_path is not None:
        config_file = Path(config_path)
        config_dir = config_file.parent
    else:
        config_dir = default_config_dir()
        config_file = config_dir / "config.toml"

    if not config_dir.exists():
        try:
            config_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CommandError(f"Failed to create config directory: {config_dir}") from exc
        print_success(f"Created config directory: {config_dir}")

    if config_file.exists() and not force:
        print_error(f"Config file already exists: {config_file}")
        print_info("Use --force to overwrite")
        return None

    try:
        config_file.write_text(generate_default_config())
    except OSError as exc:
        raise CommandError(f"Failed to write config file: {config_file}") from exc
    print_success(f"Created configuration file: {config_file}")

    key_path = config_dir / "id_ed25519"
    if not key_path.exists():
        print_info("Consider generating SSH keys for agent authentication:")
        print_info(f"  ssh-keygen -t ed25519 -f {key_path} -N ''")

    return config_file


def config_edit(config_path: Optional[PathLike] = None) -> Optional[int]:
    """Open the configuration file in the user's editor and return its exit status."""
    path = _config_file(config_path)
    if not path.exists():
        print_error(f"Config file not found: {path}")
        print_info("Run 'k-terminus config init' to create one")
        return None

    editor = (
        os.environ.get("EDITOR")
        or os.environ.get("VISUAL")
        or ("notepad" if sys.platform == "win32" else "vi")
    )
    print_info(f"Opening config with: {editor}")

    try:
        completed = subprocess.run([editor, str(path)], check=False)
    except OSError as exc:
        raise CommandError(f"Failed to open editor: {editor}") from exc
    return completed.returncode


def _matches(machine: MachineInfo, needle: str) -> bool:
    return (
        needle in machine.id
        or (machine.alias is not None and needle in machine.alias)
        or needle in machine.hostname
    )


def list_command(
    client: OrchestratorClient,
    machine: Optional[str] = None,
    tags: Optional[Sequence[str]] = None,
    long: bool = False,
) -> list[MachineInfo]:
    """Print connected machines, and sessions when one machine is in view.

    Returns the machines that were shown. Tags are accepted but not yet
    used for filtering, since machines carry no tags.
    """
    try:
        machines = client.list_machines()
    except Exception as exc:
        print_error(f"Failed to list machines: {exc}")
        raise

    if machine is not None:
        machines = [m for m in machines if _matches(m, machine)]

    print("Connected Machines:")
    print(format_machines(machines, long))

    if machine is not None or len(machines) == 1:
        machine_id = machine if machine is not None else machines[0].id
        try:
            sessions = client.list_sessions(machine_id)
        except Exception as exc:
            print_error(f"Failed to list sessions: {exc}")
            raise
        print("\nActive Sessions:")
        print(format_sessions(sessions))

    return machines


def status_command(client: OrchestratorClient, detailed: bool = False) -> OrchestratorStatus:
    """Print the orchestrator's status and return it."""
    try:
        status = client.status()
    except Exception as exc:
        print_error(f"Failed to get orchestrator status: {exc}")
        print_error("Is the orchestrator running? Try: k-terminus start")
        raise
    print(format_status(status, detailed))
    return status


def _confirm(prompt: str) -> bool:
    sys.stdout.write(prompt)
    sys.stdout.flush()
    answer = sys.stdin.readline()
    return answer.strip().lower() == "y"


def kill_command(
    client: OrchestratorClient,
    sessions: Sequence[str],
    force: bool = False,
) -> list[str]:
    """Kill the named sessions and return the ids that were killed.

    Asks for confirmation before killing several sessions unless ``force``
    is set. Raises :class:`CommandError` if any session could not be killed.
    """
    if not sessions:
        print_error("No sessions specified")
        return []

    if not force and len(sessions) > 1:
        print_warning(
            f"About to kill {len(sessions)} sessions. Use --force to skip confirmation."
        )
        if not _confirm("Continue? [y/N] "):
            print_warning("Aborted")
            return []

    killed: list[str] = []
    failures: list[tuple[str, Exception]] = []
    for session_id in sessions:
        try:
            client.kill_session(session_id, force)
        except Exception as exc:
            print_error(f"Failed to kill session {session_id}: {exc}")
            failures.append((session_id, exc))
        else:
            print_success(f"Killed session: {session_id}")
            killed.append(session_id)

    if failures:
        raise CommandError(f"Failed to kill {len(failures)} session(s)")
    return killed


def connect_command(
    client: OrchestratorClient,
    machine: str,
    shell: Optional[str] = None,
) -> str:
    """Create a session on a machine, attach to it, and return what was typed."""
    print_info(f"Creating session on '{machine}'...")
    try:
        session: SessionInfo = client.create_session(machine, shell)
    except Exception as exc:
        print_error(f"Failed to create session: {exc}")
        raise

    pid = "-" if session.pid is None else str(session.pid)
    print_success(f"Session created: {session.id} (PID: {pid})")
    return attach_to_session(client, session.id)


def _is_tty(stream: TextIO) -> bool:
    try:
        return stream.isatty()
    except (AttributeError, ValueError):
        return False


def _read_keys(stream: TextIO) -> Iterator[str]:
    if _is_tty(stream):
        fd = stream.fileno()
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = os.read(fd, 1)
            if not chunk:
                return
            yield from decoder.decode(chunk)
    else:
        while True:
            char = stream.read(1)
            if not char:
                return
            yield char


@contextlib.contextmanager
def _raw_terminal(stdin: TextIO, stdout: TextIO) -> Iterator[None]:
    if not _is_tty(stdin):
        yield
        return

    import termios
    import tty

    fd = stdin.fileno()
    saved = termios.tcgetattr(fd)
    tty.setraw(fd)
    use_alt_screen = _is_tty(stdout)
    if use_alt_screen:
        stdout.write(_ENTER_ALT_SCREEN)
        stdout.flush()

    previous_handler = None
    watch_resize = (
        hasattr(signal, "SIGWINCH") and threading.current_thread() is threading.main_thread()
    )
    if watch_resize:
        def _on_resize(signum, frame) -> None:
            size = shutil.get_terminal_size()
            log.debug("Terminal resize: %dx%d", size.columns, size.lines)

        previous_handler = signal.signal(signal.SIGWINCH, _on_resize)

    try:
        yield
    finally:
        if watch_resize:
            signal.signal(signal.SIGWINCH, previous_handler)
        if use_alt_screen:
            stdout.write(_LEAVE_ALT_SCREEN)
            stdout.flush()
        termios.tcsetattr(fd, termios.TCSADRAIN, saved)


def attach_to_session(client: OrchestratorClient, session_id: str) -> str:
    """Pass keyboard input through until Ctrl+] or end of input.

    Printable keys are echoed and Enter starts a new line. Returns the text
    that was echoed.
    """
    print_info(f"Attaching to session {session_id}...")
    print_info("Press Ctrl+] to detach")

    stdin, stdout = sys.stdin, sys.stdout
    typed: list[str] = []
    with _raw_terminal(stdin, stdout):
        for key in _read_keys(stdin):
            if key == _DETACH_KEY:
                break
            if key in ("\r", "\n"):
                typed.append("\n")
                stdout.write("\n")
            elif key.isprintable():
                typed.append(key)
                stdout.write(key)
            else:
                continue
            stdout.flush()

    print_success("Detached from session")
    return "".join(typed)