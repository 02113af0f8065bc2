[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "kterminus"
version = "0.1.0"
description = "Distributed terminal session manager: local PTY sessions, an orchestrator JSON-RPC client and the k-terminus command line"
requires-python = ">=3.10"
dependencies = []
keywords = ["terminal", "pty", "sessions", "orchestrator", "json-rpc", "remote"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
    "Topic :: Terminals",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
k-terminus = "kterminus.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["kterminus"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
