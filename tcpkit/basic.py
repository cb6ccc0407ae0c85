"""Small clients and servers: one-byte exchange, records, sources, sinks and line services."""

from __future__ import annotations

import contextlib
import errno
import itertools
import socket
import struct
import sys
import time
from typing import BinaryIO, Iterable, Iterator, TextIO

from .lines import LineReader
from .records import readvrec, send_record
from .sockets import set_address, tcp_server, udp_client

SIMPLE_PORT = 7500
SINK_PORT = "9000"
RECORD_BUFSIZE = 10
RECORD_LINE_MAX = 127
LINE_BUFSIZE = 120
KEEPALIVE_BUFSIZE = 128
DATAGRAM_SIZE = 1440
UDP_RCVBUF = 5000 * 1440
TCP_BLOCKS = 5000
TCP_SNDSZ = 1440
TCP_BUFSZ = 32 * 1024

_INT = struct.Struct("!i")
_TELEMETRY_MAX = 3 * _INT.size
_TELEMETRY_SIZES = (2 * _INT.size, 3 * _INT.size)


def _chunks(data: bytes, size: int) -> Iterator[bytes]:
    """Split data the way fgets with a buffer of size + 1 bytes would."""
    for start in range(0, len(data), size):
        yield data[start : start + size]


def _warn(message: str) -> None:
    print(message, file=sys.stderr)


def simple_client(host: str = "127.0.0.1", port: int = SIMPLE_PORT) -> bytes:
    """Send the byte b"1" to host:port and return the single byte sent back."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.connect((host, int(port)))
        sock.sendall(b"1")
        reply = sock.recv(1)
    if not reply:
        raise ConnectionError("recv: connection closed by peer")
    return reply


def simple_server(port: int = SIMPLE_PORT) -> bytes:
    """Accept one connection, read one byte, answer b"2" and return the byte read."""
    with tcp_server(None, str(port)) as listener:
        conn, _ = listener.accept()
        with conn:
            data = conn.recv(1)
            if not data:
                raise ConnectionError("recv: connection closed by peer")
            conn.sendall(b"2")
    return data


def serve_records(sock: socket.socket, out: BinaryIO | None = None) -> int:
    """Copy length-prefixed records to out until the peer closes.

    Records longer than the receive buffer are discarded with a warning.
    Returns the number of records written.
    """
    out = out if out is not None else sys.stdout.buffer
    written = 0
    while True:
        try:
            record = readvrec(sock, RECORD_BUFSIZE)
        except OSError as exc:
            if exc.errno != errno.EMSGSIZE:
                raise
            _warn(f"readvrec: {exc.strerror}")
            continue
        if not record:
            return written
        out.write(record)
        out.flush()
        written += 1


def send_lines_as_records(sock: socket.socket, lines: Iterable[bytes]) -> int:
    """Send each line as a length-prefixed record; return how many were sent."""
    sent = 0
    for line in lines:
        for chunk in _chunks(line, RECORD_LINE_MAX):
            send_record(sock, chunk)
            sent += 1
    return sent


def udp_source(
    host: str,
    datagrams: int,
    size: int = DATAGRAM_SIZE,
    port: str = SINK_PORT,
) -> int:
    """Send datagrams of size bytes to host, then an empty end marker.

    Returns the number of datagrams sent successfully.
    """
    sock, peer = udp_client(host, str(port))
    payload = bytes(size)
    sent = 0
    with sock:
        for _ in range(datagrams):
            try:
                if sock.sendto(payload, peer) > 0:
                    sent += 1
                else:
                    _warn("sendto: nothing sent")
            except OSError as exc:
                _warn(f"sendto: {exc}")
        sock.sendto(b"", peer)
    return sent


def udp_sink(sock: socket.socket) -> int:
    """Count datagrams until an empty one arrives; return the count."""
    with contextlib.suppress(OSError):
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF, UDP_RCVBUF)
    received = 0
    while sock.recv(DATAGRAM_SIZE):
        received += 1
    return received


def tcp_source(
    host: str,
    blocks: int = TCP_BLOCKS,
    sndsz: int = TCP_SNDSZ,
    sndbufsz: int = TCP_BUFSZ,
    port: str = SINK_PORT,
) -> int:
    """Connect to host and send blocks writes of sndsz bytes; return bytes sent."""
    peer = set_address(host, str(port), "tcp")
    buf = bytes(sndsz)
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_SNDBUF, sndbufsz)
        sock.connect(peer)
        for _ in range(blocks):
            sock.sendall(buf)
    return blocks * sndsz


def tcp_sink(sock: socket.socket, rcvbufsz: int = TCP_BUFSZ) -> int:
    """Read until the peer closes; return the number of bytes received."""
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF, rcvbufsz)
    total = 0
    while chunk := sock.recv(rcvbufsz):
        total += len(chunk)
    return total


def line_round_trip(
    sock: socket.socket, lines: Iterable[bytes], out: BinaryIO | None = None
) -> int:
    """Send each line and copy the one-line reply to out.

    Raises ConnectionError if the server closes. Returns the number of replies.
    """
    out = out if out is not None else sys.stdout.buffer
    reader = LineReader(sock)
    replies = 0
    for line in lines:
        for chunk in _chunks(line, LINE_BUFSIZE - 1):
            sock.sendall(chunk)
            reply = reader.readline(LINE_BUFSIZE)
            if not reply:
                raise ConnectionError("server terminated")
            out.write(reply)
            out.flush()
            replies += 1
    return replies


def counting_server(sock: socket.socket, delay: float = 5) -> int:
    """Answer each received line, after delay seconds, with a numbered acknowledgement.

    Returns the number of lines answered when the peer closes.
    """
    reader = LineReader(sock)
    for counter in itertools.count(1):
        if not reader.readline(LINE_BUFSIZE):
            return counter - 1
        time.sleep(delay)
        sock.sendall(f"received message {counter}\n".encode())
    raise AssertionError("unreachable")


def keepalive_server(sock: socket.socket, out: BinaryIO | None = None) -> int:
    """Enable keep-alive and copy received lines to out until the peer closes."""
    out = out if out is not None else sys.stdout.buffer
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
    reader = LineReader(sock)
    lines = 0
    while line := reader.readline(KEEPALIVE_BUFSIZE):
        out.write(line)
        out.flush()
        lines += 1
    return lines


def telemetry_server(sock: socket.socket, out: TextIO | None = None) -> int:
    """Report each telemetry packet as received.

    Raises ValueError when a read is neither two nor three integers long.
    Returns the number of packets reported when the peer closes.
    """
    out = out if out is not None else sys.stdout
    for number in itertools.count(1):
        data = sock.recv(_TELEMETRY_MAX)
        if not data:
            return number - 1
        if len(data) not in _TELEMETRY_SIZES:
            raise ValueError(f"recv returned {len(data)}")
        (values,) = _INT.unpack_from(data)
        out.write(f"Packet {number} contains {values} values in {len(data)} bytes\n")
    raise AssertionError("unreachable")


def telemetry_client(
    sock: socket.socket, count: int | None = None, interval: float = 1.0
) -> int:
    """Send packets of alternately two and three integers, the first being the count.

    Sends count packets, or forever when count is None. Returns packets sent.
    """
    sent = 0
    values = 2
    while count is None or sent < count:
        sock.sendall(_INT.pack(values) + bytes(_INT.size * (values - 1)))
        sent += 1
        values = 5 - values
        time.sleep(interval)
    return sent