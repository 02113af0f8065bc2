"""JSON-RPC 2.0 client for the orchestrator daemon over a Unix socket."""

from __future__ import annotations

import itertools
import json
import logging
import socket
from dataclasses import MISSING, asdict, dataclass, fields
from pathlib import Path
from typing import Any, Optional, TypeVar, Union

log = logging.getLogger(__name__)

DEFAULT_SOCKET_PATH = "/tmp/k-terminus.sock"

_T = TypeVar("_T")


class IpcProtocolError(ValueError):
    """The orchestrator sent a reply that does not follow the protocol."""


class OrchestratorUnavailable(ConnectionError):
    """The orchestrator socket could not be reached."""


class JsonRpcError(Exception):
    """An error object returned by the orchestrator in a JSON-RPC reply."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(code, message, data)
        self.code = code
        self.message = message
        self.data = data

    def __str__(self) -> str:
        return f"{self.message} (code: {self.code})"

    @classmethod
    def from_dict(cls, data: Any) -> "JsonRpcError":
        if not isinstance(data, dict) or "code" not in data or "message" not in data:
            raise IpcProtocolError(f"Malformed error object: {data!r}")
        return cls(int(data["code"]), str(data["message"]), data.get("data"))


def _build(cls: type[_T], data: Any) -> _T:
    if not isinstance(data, dict):
        raise IpcProtocolError(f"Expected an object for {cls.__name__}, got {data!r}")
    kwargs = {}
    for f in fields(cls):  # type: ignore[arg-type]
        if f.name in data:
            kwargs[f.name] = data[f.name]
        elif f.default is MISSING:
            raise IpcProtocolError(f"Missing field {f.name!r} in {cls.__name__}")
    return cls(**kwargs)


@dataclass(frozen=True, kw_only=True)
class MachineInfo:
    """A machine known to the orchestrator."""

    id: str
    hostname: str
    os: str
    arch: str
    status: str
    session_count: int
    alias: Optional[str] = None
    connected_at: Optional[str] = None
    last_heartbeat: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "MachineInfo":
        return _build(cls, data)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, kw_only=True)
class SessionInfo:
    """A terminal session running on a machine."""

    id: str
    machine_id: str
    created_at: str
    shell: Optional[str] = None
    pid: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Any) -> "SessionInfo":
        return _build(cls, data)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, kw_only=True)
class OrchestratorStatus:
    """Health summary reported by the orchestrator."""

    running: bool
    uptime_secs: int
    machine_count: int
    session_count: int
    version: str

    @classmethod
    def from_dict(cls, data: Any) -> "OrchestratorStatus":
        return _build(cls, data)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class OrchestratorClient:
    """Talks line-delimited JSON-RPC 2.0 to the orchestrator daemon."""

    def __init__(self, socket_path: Union[str, Path] = DEFAULT_SOCKET_PATH) -> None:
        self.socket_path = Path(socket_path)
        self._ids = itertools.count(1)
        self._sock: Optional[socket.socket] = None
        self._reader = None

    def __enter__(self) -> "OrchestratorClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def connected(self) -> bool:
        return self._sock is not None

    def connect(self) -> None:
        """Open the socket connection if it is not open already."""
        if self._sock is not None:
            return
        log.debug("Connecting to orchestrator at %s", self.socket_path)
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.connect(str(self.socket_path))
        except OSError as exc:
            sock.close()
            raise OrchestratorUnavailable(
                f"Failed to connect to orchestrator at {self.socket_path}. Is it running?"
            ) from exc
        self._sock = sock
        self._reader = sock.makefile("rb")

    def close(self) -> None:
        """Close the connection; calling it again does nothing."""
        if self._reader is not None:
            self._reader.close()
            self._reader = None
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    def ping(self) -> bool:
        """Return whether the orchestrator answers a status request."""
        self.connect()
        try:
            self._call("status")
        except (JsonRpcError, IpcProtocolError, OSError):
            return False
        return True

    def status(self) -> OrchestratorStatus:
        self.connect()
        return OrchestratorStatus.from_dict(self._call("status"))

    def list_machines(self) -> list[MachineInfo]:
        self.connect()
        result = self._call("list_machines")
        if not isinstance(result, list):
            raise IpcProtocolError(f"Expected a list of machines, got {result!r}")
        return [MachineInfo.from_dict(item) for item in result]

    def list_sessions(self, machine_id: Optional[str] = None) -> list[SessionInfo]:
        self.connect()
        result = self._call("list_sessions", {"machine_id": machine_id})
        if not isinstance(result, list):
            raise IpcProtocolError(f"Expected a list of sessions, got {result!r}")
        return [SessionInfo.from_dict(item) for item in result]

    def create_session(self, machine_id: str, shell: Optional[str] = None) -> SessionInfo:
        self.connect()
        result = self._call("create_session", {"machine_id": machine_id, "shell": shell})
        return SessionInfo.from_dict(result)

    def kill_session(self, session_id: str, force: bool = False) -> None:
        self.connect()
        self._call(
            "kill_session",
            {"session_id": session_id, "force": force},
            allow_null=True,
        )

    def _call(
        self,
        method: str,
        params: Optional[dict[str, Any]] = None,
        *,
        allow_null: bool = False,
    ) -> Any:
        if self._sock is None or self._reader is None:
            raise OrchestratorUnavailable("Not connected")

        request: dict[str, Any] = {"jsonrpc": "2.0", "id": next(self._ids), "method": method}
        if params is not None:
            request["params"] = params
        self._sock.sendall(json.dumps(request).encode() + b"\n")

        line = self._reader.readline()
        if not line:
            raise ConnectionError("Connection closed by orchestrator")
        try:
            response = json.loads(line)
        except json.JSONDecodeError as exc:
            raise IpcProtocolError(f"Invalid JSON in response: {exc}") from exc
        if not isinstance(response, dict):
            raise IpcProtocolError(f"Response is not an object: {response!r}")

        error = response.get("error")
        if error is not None:
            raise JsonRpcError.from_dict(error)

        if "result" not in response or (response["result"] is None and not allow_null):
            raise IpcProtocolError("No result in response")
        return response["result"]