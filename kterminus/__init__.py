"""Distributed terminal session manager: PTY sessions, orchestrator client and command line."""

__version__ = "0.1.0"