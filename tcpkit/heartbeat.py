"""Heartbeat-supervised connections, in-band and on a separate channel."""

from __future__ import annotations

import enum
import select
import socket
import struct
import sys
from typing import Callable, NoReturn

from .records import readn
from .sockets import tcp_client, tcp_server

T1 = 60
"""Idle seconds before a heartbeat is sent."""
T2 = 10
"""Seconds to wait for a reply to a heartbeat."""
DATA_SIZE = 2000
MAX_HEARTBEATS = 3
SPLIT_BUFSIZE = 1024

_HEADER = struct.Struct("!I")
_PORT = struct.Struct("!H")
MSG_SIZE = _HEADER.size + DATA_SIZE

Log = Callable[[str], object]


class MessageType(enum.IntEnum):
    """Kinds of fixed-size messages."""

    TYPE1 = 1
    TYPE2 = 2
    HEARTBEAT = 3


class ConnectionDead(Exception):
    """The peer stopped answering heartbeats."""


def _log_stderr(message: str) -> None:
    print(message, file=sys.stderr)


def pack_message(msg_type: int, data: bytes = b"") -> bytes:
    """Build a fixed-size message: 32-bit type then zero-padded data."""
    if len(data) > DATA_SIZE:
        raise ValueError(f"message data longer than {DATA_SIZE} bytes")
    return _HEADER.pack(int(msg_type)) + data.ljust(DATA_SIZE, b"\0")


def unpack_message(data: bytes) -> tuple[MessageType, bytes]:
    """Split a whole message into its type and data.

    Raises ValueError on a wrong length or an unknown type.
    """
    if len(data) != MSG_SIZE:
        raise ValueError(f"message must be {MSG_SIZE} bytes, got {len(data)}")
    (code,) = _HEADER.unpack_from(data)
    try:
        kind = MessageType(code)
    except ValueError:
        raise ValueError(f"unknown message type ({code})") from None
    return kind, bytes(data[_HEADER.size :])


def run_client(
    sock: socket.socket, idle: float = T1, wait: float = T2, log: Log | None = None
) -> NoReturn:
    """Read messages, sending heartbeats when the line is idle.

    Raises ConnectionDead after too many unanswered heartbeats and
    ConnectionError when the server closes.
    """
    log = log or _log_stderr
    heartbeats = 0
    timeout = idle
    pending = bytearray()
    while True:
        readable, _, _ = select.select([sock], [], [], timeout)
        if not readable:
            heartbeats += 1
            if heartbeats > MAX_HEARTBEATS:
                raise ConnectionDead("no connection")
            log(f"sending heartbeat #{heartbeats}")
            sock.sendall(pack_message(MessageType.HEARTBEAT))
            timeout = wait
            continue
        chunk = sock.recv(MSG_SIZE - len(pending))
        if not chunk:
            raise ConnectionError("server terminated")
        heartbeats = 0
        timeout = idle
        pending += chunk
        if len(pending) == MSG_SIZE:
            pending.clear()


def run_server(
    sock: socket.socket, idle: float = T1, wait: float = T2, log: Log | None = None
) -> NoReturn:
    """Read messages, echoing heartbeats and watching for silence.

    Raises ConnectionDead after too many missed heartbeats, ConnectionError
    when the client closes, and ValueError on an unknown message type.
    """
    log = log or _log_stderr
    missed = 0
    timeout = idle + wait
    pending = bytearray()
    while True:
        readable, _, _ = select.select([sock], [], [], timeout)
        if not readable:
            missed += 1
            if missed > MAX_HEARTBEATS:
                raise ConnectionDead("connection died")
            log(f"missed heartbeat #{missed}")
            timeout = wait
            continue
        chunk = sock.recv(MSG_SIZE - len(pending))
        if not chunk:
            raise ConnectionError("client terminated")
        missed = 0
        timeout = idle + wait
        pending += chunk
        if len(pending) < MSG_SIZE:
            continue
        message = bytes(pending)
        pending.clear()
        kind, _ = unpack_message(message)
        if kind is MessageType.HEARTBEAT:
            sock.sendall(message)


def run_split_client(
    host: str, service: str, idle: float = T1, wait: float = T2, log: Log | None = None
) -> NoReturn:
    """Connect for data and accept a separate heartbeat connection from the server.

    The local heartbeat port is sent first over the data connection.
    """
    log = log or _log_stderr
    with tcp_server(None, "0") as listener:
        port = listener.getsockname()[1]
        with tcp_client(host, service) as sdata:
            sdata.sendall(_PORT.pack(port))
            shb, _ = listener.accept()
            with shb:
                heartbeats = 0
                timeout = idle
                while True:
                    readable, _, _ = select.select([sdata, shb], [], [], timeout)
                    if not readable:
                        heartbeats += 1
                        if heartbeats > MAX_HEARTBEATS:
                            raise ConnectionDead("no connection")
                        log(f"sending heartbeat #{heartbeats}")
                        shb.sendall(b"\0")
                        timeout = wait
                        continue
                    if shb in readable and not shb.recv(1):
                        raise ConnectionError("server terminated (heartbeat)")
                    if sdata in readable and not sdata.recv(SPLIT_BUFSIZE):
                        raise ConnectionError("server terminated (data)")
                    heartbeats = 0
                    timeout = idle


def run_split_server(
    listener: socket.socket, idle: float = T1, wait: float = T2, log: Log | None = None
) -> NoReturn:
    """Accept a data connection, then connect back for heartbeats and echo them."""
    log = log or _log_stderr
    sdata, peer = listener.accept()
    with sdata:
        port_bytes = readn(sdata, _PORT.size)
        if len(port_bytes) != _PORT.size:
            raise ConnectionError("could not read heartbeat port")
        (port,) = _PORT.unpack(port_bytes)
        with socket.create_connection((peer[0], port)) as shb:
            missed = 0
            timeout = idle + wait
            while True:
                readable, _, _ = select.select([sdata, shb], [], [], timeout)
                if not readable:
                    missed += 1
                    if missed > MAX_HEARTBEATS:
                        raise ConnectionDead("no connection")
                    log(f"missed heartbeat #{missed}")
                    timeout = wait
                    continue
                if shb in readable:
                    beat = shb.recv(1)
                    if not beat:
                        raise ConnectionError("client terminated")
                    shb.sendall(beat)
                if sdata in readable and not sdata.recv(SPLIT_BUFSIZE):
                    raise ConnectionError("client terminated")
                missed = 0
                timeout = idle + wait