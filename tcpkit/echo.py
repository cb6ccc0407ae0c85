"""Echo services over TCP and UDP, and a line-numbering filter."""

from __future__ import annotations

import os
import socket
import sys
import time
from typing import BinaryIO, Iterable, Iterator, NoReturn

ECHO_BUFSIZE = 1024
UDP_BUFSIZE = 120
DONE = b"done"
CONNECTED_TIMEOUT = 30


def _default_prefix() -> bytes:
    return f"{os.getpid()}: ".encode()


def _receive_size(prefix: bytes) -> int:
    size = UDP_BUFSIZE - len(prefix)
    if size <= 0:
        raise ValueError(f"prefix must be shorter than {UDP_BUFSIZE} bytes")
    return size


def _chunks(data: bytes, size: int) -> Iterator[bytes]:
    for start in range(0, len(data), size):
        yield data[start : start + size]


def tcp_echo(sock: socket.socket, nap: float = 0) -> NoReturn:
    """Send back everything received, pausing nap seconds before each reply.

    Raises ConnectionError when the client disconnects.
    """
    while True:
        data = sock.recv(ECHO_BUFSIZE)
        if not data:
            raise ConnectionError("client disconnected")
        if nap:
            time.sleep(nap)
        sock.sendall(data)


def number_lines(lines: Iterable[str]) -> Iterator[str]:
    """Yield each line preceded by its line number in a field of three."""
    for number, line in enumerate(lines, 1):
        yield f"{number:3d}: {line}"


def udp_echo_reply(sock: socket.socket, prefix: bytes | None = None) -> bytes:
    """Answer one datagram with the prefix followed by the data; return the reply.

    The prefix defaults to the process id. Raises ConnectionError when
    an empty datagram arrives.
    """
    prefix = prefix if prefix is not None else _default_prefix()
    data, peer = sock.recvfrom(_receive_size(prefix))
    if not data:
        raise ConnectionError("no datagram received")
    reply = prefix + data
    sock.sendto(reply, peer)
    return reply


def udp_echo_connected(
    sock: socket.socket,
    prefix: bytes | None = None,
    timeout: float = CONNECTED_TIMEOUT,
) -> int:
    """Serve the sender of the first datagram on a new connected socket.

    Each datagram is echoed with the prefix until one starting with
    b"done" arrives, the peer is silent for timeout seconds, or an error
    occurs. Returns the number of replies sent.
    """
    prefix = prefix if prefix is not None else _default_prefix()
    size = _receive_size(prefix)
    data, peer = sock.recvfrom(size)
    replies = 0
    with socket.socket(sock.family, socket.SOCK_DGRAM) as conn:
        conn.connect(peer)
        conn.settimeout(timeout)
        while not data.startswith(DONE):
            try:
                conn.send(prefix + data)
            except OSError:
                break
            replies += 1
            try:
                data = conn.recv(size)
            except OSError:
                break
    return replies


def udp_line_client(
    sock: socket.socket,
    address: tuple[str, int],
    infile: BinaryIO | None = None,
    outfile: BinaryIO | None = None,
) -> int:
    """Send each input line as a datagram and copy each reply to outfile.

    Returns the number of replies written.
    """
    infile = infile if infile is not None else sys.stdin.buffer
    outfile = outfile if outfile is not None else sys.stdout.buffer
    replies = 0
    for line in infile:
        for chunk in _chunks(line, UDP_BUFSIZE - 1):
            sock.sendto(chunk, address)
            reply, _ = sock.recvfrom(UDP_BUFSIZE - 1)
            outfile.write(reply)
            outfile.flush()
            replies += 1
    return replies


def udp_connected_server(sock: socket.socket) -> int:
    """Connect to the first sender and echo its datagrams until b"done".

    Returns the number of datagrams echoed.
    """
    data, peer = sock.recvfrom(UDP_BUFSIZE)
    sock.connect(peer)
    echoed = 0
    while not data.startswith(DONE):
        sock.send(data)
        echoed += 1
        data = sock.recv(UDP_BUFSIZE)
    return echoed