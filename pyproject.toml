[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tcpkit"
version = "0.1.0"
description = "TCP/IP and UDP networking toolkit: framed records, line readers, heartbeats, timers, reliable delivery and small clients and servers"
requires-python = ">=3.10"
dependencies = [
    "filelock",
]
keywords = [
    "tcp",
    "udp",
    "sockets",
    "networking",
    "heartbeat",
    "icmp",
    "records",
    "shared-memory",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["tcpkit"]

[tool.hatch.build.targets.sdist]
include = [
    "tcpkit",
    "tests",
]

[tool.pytest.ini_options]
addopts = "-ra"
