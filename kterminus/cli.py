"""The ``k-terminus`` command line."""

from __future__ import annotations

import argparse
import logging
import os
import socket
import subprocess
import sys
import time
from pathlib import Path
from typing import Callable, Optional, Sequence, Union

from kterminus.commands import (
    CommandError,
    config_edit,
    config_show,
    connect_command,
    default_config_dir,
    kill_command,
    list_command,
    status_command,
)
from kterminus.ipc_client import (
    DEFAULT_SOCKET_PATH,
    IpcProtocolError,
    JsonRpcError,
    OrchestratorClient,
)
from kterminus.output import print_error, print_info, print_success, print_warning

log = logging.getLogger(__name__)

SOCKET_ENV = "KTERMINUS_SOCKET"
"""Environment variable that overrides the orchestrator socket path."""

ORCHESTRATOR_PROGRAM = "kt-orchestrator"
AGENT_PORT = 2222

_STARTUP_POLLS = 10
_STARTUP_POLL_INTERVAL = 0.5

_CLIENT_ERRORS = (OSError, JsonRpcError, IpcProtocolError)

PathLike = Union[str, Path]
Handler = Callable[[argparse.Namespace, OrchestratorClient], object]


def _is_running(client: OrchestratorClient) -> bool:
    try:
        return client.ping()
    except _CLIENT_ERRORS:
        return False


def show_quick_status(client: OrchestratorClient) -> bool:
    """Print a short overview and return whether the orchestrator is running."""
    print()
    print("  \x1b[1;34mk-Terminus\x1b[0m - Distributed Terminal Session Manager")
    print()

    running = _is_running(client)
    if running:
        print("  Status: \x1b[32m●\x1b[0m Orchestrator running")
        try:
            status = client.status()
        except _CLIENT_ERRORS:
            status = None
        if status is not None:
            print(f"  Machines: {status.machine_count}")
            print(f"  Sessions: {status.session_count}")
    else:
        print("  Status: \x1b[31m●\x1b[0m Orchestrator not running")
        print()
        print("  Run \x1b[1mk-terminus start\x1b[0m to start the orchestrator")

    print()
    print("  Quick commands:")
    print("    k-terminus start        Start orchestrator")
    print("    k-terminus list         List machines")
    print("    k-terminus connect <m>  Connect to machine")
    print("    k-terminus add-machine  Show how to add machines")
    print()
    return running


def ensure_orchestrator_running(client: OrchestratorClient) -> bool:
    """Start the orchestrator if it does not answer; return whether it answers now."""
    if _is_running(client):
        return True

    print_info("Orchestrator not running, starting...")
    start_orchestrator(False, None)

    for _ in range(_STARTUP_POLLS):
        time.sleep(_STARTUP_POLL_INTERVAL)
        if _is_running(client):
            print_success("Orchestrator started")
            return True

    print_warning("Orchestrator may still be starting...")
    return False


def start_orchestrator(foreground: bool, config_path: Optional[PathLike] = None) -> int:
    """Run the orchestrator daemon.

    In the foreground, wait for it and return its exit status; exit with its
    status if it fails. Otherwise start it in the background and return its PID.
    """
    cmd = [ORCHESTRATOR_PROGRAM]
    if config_path is not None:
        cmd += ["--config", str(config_path)]

    if foreground:
        print_info("Starting orchestrator in foreground...")
        completed = subprocess.run([*cmd, "--foreground"], check=False)
        if completed.returncode != 0:
            print_error("Orchestrator exited with error")
            raise SystemExit(completed.returncode if completed.returncode > 0 else 1)
        return completed.returncode

    child = subprocess.Popen(
        cmd,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )
    print_success(f"Orchestrator started (PID: {child.pid})")
    return child.pid


def _first_output(cmd: Sequence[str]) -> Optional[str]:
    """Run a command; return ``None`` if it is missing, else its stdout or ``""`` on failure."""
    try:
        completed = subprocess.run(cmd, capture_output=True, check=False)
    except OSError:
        return None
    if completed.returncode != 0:
        return ""
    return completed.stdout.decode(errors="replace")


def detect_public_ip() -> Optional[str]:
    """Guess the address agents should connect to, as ``ip:port``."""
    output = _first_output(["hostname", "-I"])
    if output is None:
        return None
    words = output.split()
    if words:
        return f"{words[0]}:{AGENT_PORT}"

    output = _first_output(["ipconfig", "getifaddr", "en0"])
    if output is None:
        return None
    ip = output.strip()
    if ip:
        return f"{ip}:{AGENT_PORT}"
    return None


def show_add_machine_instructions(address: Optional[str] = None) -> str:
    """Print how to connect a new machine; return the orchestrator address shown."""
    agent_key_path = default_config_dir() / "agent_key"

    if address:
        orchestrator_addr = address
    else:
        print_info("Detecting your IP address...")
        orchestrator_addr = detect_public_ip() or ""
        if not orchestrator_addr:
            print_warning("Could not detect IP. Use --address to specify.")
            orchestrator_addr = f"YOUR_IP:{AGENT_PORT}"

    print()
    print("  \x1b[1;34mAdd a Machine to k-Terminus\x1b[0m")
    print()
    print("  On the remote machine, run these commands:")
    print()
    print("  \x1b[1;33m# 1. Install kt-agent (if not installed)\x1b[0m")
    print("  # Install the kt-agent binary from your k-Terminus release")
    print()
    print("  \x1b[1;33m# 2. Copy the authentication key\x1b[0m")
    print("  mkdir -p ~/.config/k-terminus")

    if agent_key_path.exists():
        print("  # Copy this key to ~/.config/k-terminus/agent_key on the remote machine:")
        print("  cat << 'EOF' > ~/.config/k-terminus/agent_key")
        try:
            key_text = agent_key_path.read_text()
        except OSError:
            key_text = ""
        for line in key_text.splitlines():
            print(f"  {line}")
        print("  EOF")
        print("  chmod 600 ~/.config/k-terminus/agent_key")
    else:
        try:
            host = socket.gethostname() or "localhost"
        except OSError:
            host = "localhost"
        print(f"  scp {host}:{agent_key_path} ~/.config/k-terminus/agent_key")

    print()
    print("  \x1b[1;33m# 3. Start the agent\x1b[0m")
    print(f"  kt-agent --orchestrator {orchestrator_addr} --alias my-server")
    print()
    print("  \x1b[2mTip: Add --foreground to see connection logs\x1b[0m")
    print()
    return orchestrator_addr


# Subcommand handlers

def _cmd_start(args: argparse.Namespace, client: OrchestratorClient) -> object:
    return start_orchestrator(args.foreground, args.config)


def _cmd_stop(args: argparse.Namespace, client: OrchestratorClient) -> object:
    print_info("Stopping orchestrator...")
    print_warning("Stopping the orchestrator from the command line is not supported yet")
    return None


def _cmd_list(args: argparse.Namespace, client: OrchestratorClient) -> object:
    ensure_orchestrator_running(client)
    return list_command(client, args.machine, args.tag, args.long)


def _cmd_connect(args: argparse.Namespace, client: OrchestratorClient) -> object:
    ensure_orchestrator_running(client)
    return connect_command(client, args.machine, args.shell)


def _cmd_attach(args: argparse.Namespace, client: OrchestratorClient) -> object:
    print_info(f"Attaching to session: {args.session}")
    print_warning("Attaching to existing sessions is not supported yet - "
                  "use 'connect' to create a new session")
    return None


def _cmd_exec(args: argparse.Namespace, client: OrchestratorClient) -> object:
    cmd = " ".join(args.exec_command)
    print_info(f"Executing on {args.machine}: {cmd}")
    print_warning("Remote command execution is not supported yet")
    return None


def _cmd_status(args: argparse.Namespace, client: OrchestratorClient) -> object:
    return status_command(client, args.detailed)


def _cmd_kill(args: argparse.Namespace, client: OrchestratorClient) -> object:
    return kill_command(client, args.sessions, args.force)


def _cmd_logs(args: argparse.Namespace, client: OrchestratorClient) -> object:
    follow = "true" if args.follow else "false"
    print_info(f"Showing logs (follow: {follow}, lines: {args.lines})...")
    print_warning("Showing orchestrator logs is not supported yet")
    return None


def _cmd_add_machine(args: argparse.Namespace, client: OrchestratorClient) -> object:
    return show_add_machine_instructions(args.address)


def _cmd_config_show(args: argparse.Namespace, client: OrchestratorClient) -> object:
    return config_show(args.config)


def _cmd_config_get(args: argparse.Namespace, client: OrchestratorClient) -> object:
    print_info(f"Getting config key: {args.key}")
    print_warning("Reading single config values is not supported yet")
    return None


def _cmd_config_set(args: argparse.Namespace, client: OrchestratorClient) -> object:
    print_info(f"Setting {args.key} = {args.value}")
    print_warning("Writing single config values is not supported yet")
    return None


def _cmd_config_edit(args: argparse.Namespace, client: OrchestratorClient) -> object:
    return config_edit(args.config)


def _cmd_config_path(args: argparse.Namespace, client: OrchestratorClient) -> object:
    path = default_config_dir()
    print(path)
    return path


def _global_options(suppress: bool) -> argparse.ArgumentParser:
    """Options accepted before or after a subcommand."""
    parent = argparse.ArgumentParser(add_help=False)
    kwargs = {"default": argparse.SUPPRESS} if suppress else {}
    parent.add_argument("-c", "--config", type=Path, help="Path to configuration file",
                        **({"default": None} if not suppress else kwargs))
    parent.add_argument("-v", "--verbose", action="count", help="Enable verbose output",
                        **({"default": 0} if not suppress else kwargs))
    parent.add_argument("-q", "--quiet", action="store_true",
                        help="Suppress all output except errors", **kwargs)
    return parent


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for ``k-terminus``."""
    parser = argparse.ArgumentParser(
        prog="k-terminus",
        description="Distributed terminal session manager",
        parents=[_global_options(suppress=False)],
    )
    parser.set_defaults(handler=None)
    common = [_global_options(suppress=True)]
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p = sub.add_parser("start", parents=common,
                       help="Start orchestrator daemon (runs automatically on first use)")
    p.add_argument("-f", "--foreground", action="store_true",
                   help="Run in foreground (don't daemonize)")
    p.set_defaults(handler=_cmd_start)

    p = sub.add_parser("stop", parents=common, help="Stop orchestrator daemon")
    p.set_defaults(handler=_cmd_stop)

    p = sub.add_parser("list", parents=common, help="List connected machines and sessions")
    p.add_argument("-m", "--machine", help="Filter by machine name/alias")
    p.add_argument("-t", "--tag", action="append", help="Filter by tag")
    p.add_argument("-l", "--long", action="store_true", help="Show detailed information")
    p.set_defaults(handler=_cmd_list)

    p = sub.add_parser("connect", parents=common,
                       help="Create new session on machine and attach")
    p.add_argument("machine", help="Machine identifier (name, alias, or ID)")
    p.add_argument("-s", "--shell", help="Shell to spawn (overrides machine default)")
    p.set_defaults(handler=_cmd_connect)

    p = sub.add_parser("attach", parents=common, help="Attach to existing session")
    p.add_argument("session", help="Session identifier (machine:session-id format)")
    p.set_defaults(handler=_cmd_attach)

    p = sub.add_parser("exec", parents=common, help="Execute one-off command on machine")
    p.add_argument("-t", "--timeout", type=int, default=60, help="Timeout in seconds")
    p.add_argument("machine", help="Machine identifier")
    p.add_argument("exec_command", nargs=argparse.REMAINDER, metavar="COMMAND",
                   help="Command to execute")
    p.set_defaults(handler=_cmd_exec)

    p = sub.add_parser("status", parents=common, help="Show orchestrator status and health")
    p.add_argument("-d", "--detailed", action="store_true",
                   help="Show detailed health metrics")
    p.set_defaults(handler=_cmd_status)

    p = sub.add_parser("kill", parents=common, help="Terminate a session")
    p.add_argument("sessions", nargs="+", help="Session identifier(s) to kill")
    p.add_argument("-f", "--force", action="store_true",
                   help="Force kill without confirmation")
    p.set_defaults(handler=_cmd_kill)

    p = sub.add_parser("logs", parents=common, help="Display orchestrator logs")
    p.add_argument("-f", "--follow", action="store_true", help="Follow log output")
    p.add_argument("-l", "--lines", type=int, default=100, help="Number of lines to show")
    p.set_defaults(handler=_cmd_logs)

    p = sub.add_parser("add-machine", parents=common,
                       help="Show command to add a new machine")
    p.add_argument("--address",
                   help="Your public IP or hostname (what remote machines will connect to)")
    p.set_defaults(handler=_cmd_add_machine)

    p = sub.add_parser("config", parents=common, help="Manage configuration")
    actions = p.add_subparsers(dest="action", metavar="ACTION", required=True)
    a = actions.add_parser("show", parents=common, help="Show current configuration")
    a.set_defaults(handler=_cmd_config_show)
    a = actions.add_parser("get", parents=common, help="Get specific config value")
    a.add_argument("key")
    a.set_defaults(handler=_cmd_config_get)
    a = actions.add_parser("set", parents=common, help="Set config value")
    a.add_argument("key")
    a.add_argument("value")
    a.set_defaults(handler=_cmd_config_set)
    a = actions.add_parser("edit", parents=common, help="Edit config in editor")
    a.set_defaults(handler=_cmd_config_edit)
    a = actions.add_parser("path", parents=common, help="Show config directory path")
    a.set_defaults(handler=_cmd_config_path)

    return parser


def _configure_logging(quiet: bool, verbose: int) -> None:
    if quiet:
        level = logging.ERROR
    else:
        level = {0: logging.WARNING, 1: logging.INFO}.get(verbose, logging.DEBUG)
    package_log = logging.getLogger("kterminus")
    package_log.setLevel(level)
    if not package_log.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
        package_log.addHandler(handler)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the command line and return the exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "exec" and not args.exec_command:
        parser.error("the following arguments are required: COMMAND")

    _configure_logging(args.quiet, args.verbose or 0)

    handler: Optional[Handler] = args.handler
    with OrchestratorClient(os.environ.get(SOCKET_ENV, DEFAULT_SOCKET_PATH)) as client:
        try:
            if handler is None:
                show_quick_status(client)
            else:
                handler(args, client)
        except (CommandError, *_CLIENT_ERRORS) as exc:
            sys.stderr.write(f"Error: {exc}\n")
            return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())