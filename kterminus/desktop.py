"""State and commands behind the desktop front end."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Any, Optional

log = logging.getLogger(__name__)

_VERSION = "0.1.0"
_MOCK_PID = 12345


class NotFoundError(LookupError):
    """A machine or session that a command names does not exist."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


@dataclass
class Machine:
    """A machine as the desktop front end shows it."""

    id: str
    hostname: str
    os: str
    arch: str
    status: str
    alias: Optional[str] = None
    connected_at: Optional[str] = None
    last_heartbeat: Optional[str] = None
    session_count: int = 0
    tags: Optional[list[str]] = None

    def to_dict(self) -> dict[str, Any]:
        """Return the camel-case mapping the front end expects."""
        return {
            "id": self.id,
            "alias": self.alias,
            "hostname": self.hostname,
            "os": self.os,
            "arch": self.arch,
            "status": self.status,
            "connectedAt": self.connected_at,
            "lastHeartbeat": self.last_heartbeat,
            "sessionCount": self.session_count,
            "tags": None if self.tags is None else list(self.tags),
        }


@dataclass
class Session:
    """A terminal session as the desktop front end shows it."""

    id: str
    machine_id: str
    created_at: str
    shell: Optional[str] = None
    pid: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        """Return the camel-case mapping the front end expects."""
        return {
            "id": self.id,
            "machineId": self.machine_id,
            "shell": self.shell,
            "createdAt": self.created_at,
            "pid": self.pid,
        }


@dataclass
class DesktopStatus:
    """Orchestrator status as the desktop front end shows it."""

    running: bool = False
    uptime_secs: int = 0
    machine_count: int = 0
    session_count: int = 0
    version: str = _VERSION

    def to_dict(self) -> dict[str, Any]:
        """Return the camel-case mapping the front end expects."""
        return {
            "running": self.running,
            "uptimeSecs": self.uptime_secs,
            "machineCount": self.machine_count,
            "sessionCount": self.session_count,
            "version": self.version,
        }


def _demo_machines() -> list[Machine]:
    return [
        Machine(
            id="machine-001",
            alias="dev-server",
            hostname="dev-server.local",
            os="linux",
            arch="x86_64",
            status="connected",
            connected_at="2024-01-15T10:30:00Z",
            last_heartbeat="2024-01-15T10:35:00Z",
            session_count=0,
            tags=["development"],
        ),
        Machine(
            id="machine-002",
            alias="gpu-node",
            hostname="gpu-01.compute.local",
            os="linux",
            arch="x86_64",
            status="connected",
            connected_at="2024-01-15T10:31:00Z",
            last_heartbeat="2024-01-15T10:35:00Z",
            session_count=1,
            tags=["gpu", "compute"],
        ),
    ]


def _simple_id() -> str:
    secs, nanos = divmod(time.time_ns(), 1_000_000_000)
    return f"{secs:x}{nanos:x}"


def _timestamp() -> str:
    return f"{time.time_ns() // 1_000_000_000}Z"


@dataclass
class AppState:
    """Shared state for the desktop commands; safe to use from several threads."""

    status: DesktopStatus = field(default_factory=DesktopStatus)
    machines: dict[str, Machine] = field(default_factory=dict)
    sessions: dict[str, Session] = field(default_factory=dict)
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    def get_status(self) -> DesktopStatus:
        """Return a copy of the current status."""
        with self._lock:
            return replace(self.status)

    def start_orchestrator(self) -> None:
        """Mark the orchestrator running and register the demo machines."""
        with self._lock:
            self.status.running = True
            self.status.uptime_secs = 0
            for machine in _demo_machines():
                self.machines[machine.id] = machine
            self.status.machine_count = len(self.machines)

    def stop_orchestrator(self) -> None:
        """Mark the orchestrator stopped and forget all machines and sessions."""
        with self._lock:
            self.status.running = False
            self.status.uptime_secs = 0
            self.status.machine_count = 0
            self.status.session_count = 0
            self.machines.clear()
            self.sessions.clear()

    def list_machines(self) -> list[Machine]:
        """Return copies of all known machines."""
        with self._lock:
            return [replace(m, tags=None if m.tags is None else list(m.tags))
                    for m in self.machines.values()]

    def get_machine(self, id: str) -> Machine:
        """Return a copy of the machine with this id."""
        with self._lock:
            machine = self.machines.get(id)
            if machine is None:
                raise NotFoundError(f"Machine not found: {id}")
            return replace(machine, tags=None if machine.tags is None else list(machine.tags))

    def list_sessions(self, machine_id: Optional[str] = None) -> list[Session]:
        """Return copies of all sessions, or only those on one machine."""
        with self._lock:
            return [
                replace(s)
                for s in self.sessions.values()
                if machine_id is None or s.machine_id == machine_id
            ]

    def create_session(self, machine_id: str, shell: Optional[str] = None) -> Session:
        """Create a session on a known machine and return it."""
        with self._lock:
            machine = self.machines.get(machine_id)
            if machine is None:
                raise NotFoundError(f"Machine not found: {machine_id}")

            session_id = f"session-{_simple_id()}"
            while session_id in self.sessions:
                session_id = f"session-{_simple_id()}"

            session = Session(
                id=session_id,
                machine_id=machine_id,
                shell=shell,
                created_at=_timestamp(),
                pid=_MOCK_PID,
            )
            self.sessions[session_id] = session
            machine.session_count += 1
            self.status.session_count += 1
            return replace(session)

    def kill_session(self, session_id: str, force: bool = False) -> None:
        """Remove a session and lower the counts that include it."""
        with self._lock:
            session = self.sessions.pop(session_id, None)
            if session is None:
                raise NotFoundError(f"Session not found: {session_id}")
            machine = self.machines.get(session.machine_id)
            if machine is not None:
                machine.session_count = max(machine.session_count - 1, 0)
            self.status.session_count = max(self.status.session_count - 1, 0)

    def terminal_write(self, session_id: str, data: bytes) -> int:
        """Accept input for a session's terminal; return the number of bytes taken."""
        log.debug("Terminal write to %s: %d bytes", session_id, len(data))
        return len(data)

    def terminal_resize(self, session_id: str, cols: int, rows: int) -> tuple[int, int]:
        """Accept a new size for a session's terminal; return it as (cols, rows)."""
        log.debug("Terminal resize %s: %dx%d", session_id, cols, rows)
        return cols, rows

    def terminal_close(self, session_id: str) -> None:
        """Close a session's terminal by killing the session."""
        self.kill_session(session_id, False)