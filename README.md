# kterminus

Pieces of a distributed terminal session manager: a client and command line
for an orchestrator daemon, a manager for local pseudo-terminal sessions, and
a few supporting utilities.

Python 3.10 or later on a POSIX system is required. There are no third-party
dependencies.

```
pip install .
```

## Command line

```
k-terminus                 # quick status overview
k-terminus start           # start the orchestrator daemon in the background
k-terminus start -f        # run it in the foreground and wait for it
k-terminus list --long     # list connected machines (-m NAME to filter)
k-terminus connect NAME    # create a session on a machine and attach
k-terminus kill SESSION    # terminate one or more sessions (-f skips confirmation)
k-terminus status -d       # orchestrator status
k-terminus add-machine     # instructions for adding a remote machine
k-terminus config show     # print the configuration file
k-terminus config edit     # open it in $EDITOR, $VISUAL or vi
k-terminus config path     # print the configuration directory
```

Global options: `-c/--config PATH`, `-v/--verbose` (repeatable) and
`-q/--quiet`.

The command line talks to the orchestrator with line-delimited JSON-RPC 2.0
over the Unix socket `/tmp/k-terminus.sock`; set `KTERMINUS_SOCKET` to use
another path. The configuration directory is `$XDG_CONFIG_HOME/k-terminus`,
or `~/.config/k-terminus`.

## Library use

```python
from kterminus.ipc_client import OrchestratorClient
from kterminus.output import format_machines

with OrchestratorClient() as client:
    print(format_machines(client.list_machines(), detailed=True))
```

`OrchestratorClient` offers `ping`, `status`, `list_machines`,
`list_sessions`, `create_session` and `kill_session`. Errors returned by the
orchestrator are raised as `JsonRpcError`.

Local PTY sessions are managed by `kterminus.pty_manager.PtyManager`:

```python
from kterminus.pty_manager import PtyManager, TerminalSize

with PtyManager(default_shell="/bin/sh") as manager:
    pid = manager.create_session(1, None, [], TerminalSize(cols=80, rows=24))
    manager.write(1, b"echo hello\n")
    print(manager.try_read(1, 4096))
    manager.close(1)
```

Other modules:

- `kterminus.backoff.ExponentialBackoff` multiplies a reconnection delay on
  each attempt, caps it at a maximum and adds optional jitter.
- `kterminus.metrics.SystemMetrics.collect()` takes a snapshot of load
  average, an estimated CPU percentage, memory use and free disk space.
- `kterminus.output` formats machines, sessions and status as text tables and
  prints coloured messages.
- `kterminus.desktop.AppState` holds the in-memory machines, sessions and
  status behind a desktop front end.

## What this package does not do

- It contains no orchestrator daemon and no remote agent. `k-terminus start`
  runs a program named `kt-orchestrator`, which must be installed separately;
  every other orchestrator command needs that daemon to be listening on the
  socket.
- Nothing here opens a network tunnel to remote machines.
- `connect` and the attach step only echo your keystrokes locally until
  Ctrl+]; input is not sent to a remote shell.
- `stop`, `attach`, `exec`, `logs`, `config get` and `config set` print a
  warning that they are not supported yet.
- `AppState.start_orchestrator` fills in two demonstration machines rather
  than contacting a daemon, and `terminal_write` and `terminal_resize` only
  log what they are given.

## Tests

```
pip install .[test]
pytest
```