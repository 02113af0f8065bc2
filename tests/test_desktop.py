import pytest

from kterminus.desktop import (
    AppState,
    DesktopStatus,
    Machine,
    NotFoundError,
    Session,
)


@pytest.fixture
def started():
    state = AppState()
    state.start_orchestrator()
    return state


def test_default_status():
    status = AppState().get_status()
    assert status.running is False
    assert status.uptime_secs == 0
    assert status.machine_count == 0
    assert status.session_count == 0
    assert status.version == "0.1.0"


def test_start_registers_demo_machines(started):
    status = started.get_status()
    assert status.running is True
    assert status.machine_count == 2
    ids = sorted(m.id for m in started.list_machines())
    assert ids == ["machine-001", "machine-002"]


def test_get_machine(started):
    machine = started.get_machine("machine-001")
    assert machine.alias == "dev-server"
    assert machine.hostname == "dev-server.local"
    assert machine.tags == ["development"]
    assert started.get_machine("machine-002").session_count == 1


def test_get_machine_missing(started):
    with pytest.raises(NotFoundError, match="Machine not found: nope"):
        started.get_machine("nope")


def test_get_machine_returns_copy(started):
    machine = started.get_machine("machine-001")
    machine.session_count = 99
    assert started.get_machine("machine-001").session_count == 0


def test_create_session_on_missing_machine():
    state = AppState()
    with pytest.raises(NotFoundError):
        state.create_session("machine-001", None)
    assert state.list_sessions() == []


def test_create_session_updates_counts(started):
    session = started.create_session("machine-001", "/bin/bash")
    assert session.id.startswith("session-")
    assert session.machine_id == "machine-001"
    assert session.shell == "/bin/bash"
    assert session.pid == 12345
    assert session.created_at.endswith("Z")
    assert started.get_machine("machine-001").session_count == 1
    assert started.get_status().session_count == 1


def test_list_sessions_filter(started):
    a = started.create_session("machine-001", None)
    b = started.create_session("machine-002", None)
    assert [s.id for s in started.list_sessions("machine-001")] == [a.id]
    assert [s.id for s in started.list_sessions("machine-002")] == [b.id]
    assert {s.id for s in started.list_sessions()} == {a.id, b.id}
    assert started.list_sessions("machine-003") == []


def test_kill_session(started):
    session = started.create_session("machine-002", None)
    assert started.get_machine("machine-002").session_count == 2
    started.kill_session(session.id, False)
    assert started.list_sessions() == []
    assert started.get_machine("machine-002").session_count == 1
    assert started.get_status().session_count == 0


def test_kill_missing_session(started):
    with pytest.raises(NotFoundError, match="Session not found: session-x"):
        started.kill_session("session-x", True)


def test_terminal_close_removes_session(started):
    session = started.create_session("machine-001", None)
    started.terminal_close(session.id)
    assert started.list_sessions() == []
    with pytest.raises(NotFoundError):
        started.terminal_close(session.id)


def test_stop_clears_everything(started):
    started.create_session("machine-001", None)
    started.stop_orchestrator()
    status = started.get_status()
    assert status.running is False
    assert status.machine_count == 0
    assert status.session_count == 0
    assert started.list_machines() == []
    assert started.list_sessions() == []


def test_terminal_write_and_resize(started):
    session = started.create_session("machine-001", None)
    assert started.terminal_write(session.id, b"ls\n") == 3
    assert started.terminal_resize(session.id, 120, 40) == (120, 40)
    assert len(started.list_sessions()) == 1


def test_machine_to_dict_uses_camel_case():
    machine = Machine(
        id="m1",
        hostname="host",
        os="linux",
        arch="x86_64",
        status="connected",
        connected_at="t0",
        last_heartbeat="t1",
        session_count=2,
        tags=["a"],
    )
    data = machine.to_dict()
    assert data["connectedAt"] == "t0"
    assert data["lastHeartbeat"] == "t1"
    assert data["sessionCount"] == 2
    assert data["alias"] is None
    assert data["tags"] == ["a"]
    assert "connected_at" not in data


def test_session_to_dict_uses_camel_case():
    session = Session(id="s1", machine_id="m1", created_at="now", pid=7)
    assert session.to_dict() == {
        "id": "s1",
        "machineId": "m1",
        "shell": None,
        "createdAt": "now",
        "pid": 7,
    }


def test_status_to_dict_uses_camel_case():
    data = DesktopStatus(running=True, uptime_secs=5).to_dict()
    assert data["running"] is True
    assert data["uptimeSecs"] == 5
    assert data["machineCount"] == 0
    assert data["sessionCount"] == 0
    assert data["version"] == "0.1.0"