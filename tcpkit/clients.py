"""Interactive TCP clients: half-close, unacknowledged and acknowledged output, timed connect."""

from __future__ import annotations

import errno
import os
import select
import socket
import struct
import sys
import time
from typing import BinaryIO, NoReturn

from .sockets import set_address

BUFSIZE = 1024
XOUT_BUFSIZE = 128
ACK = 0x06
ACK_TIMEOUT = 2.0
CONNECT_TIMEOUT = 5.0
CLOSE_LINGER = 5

_IN_PROGRESS = {errno.EINPROGRESS, errno.EWOULDBLOCK, errno.EAGAIN}
if hasattr(errno, "WSAEWOULDBLOCK"):
    _IN_PROGRESS.add(errno.WSAEWOULDBLOCK)


def _read(infile, size: int) -> bytes:
    return os.read(infile.fileno(), size)


def shutdown_client(
    sock: socket.socket,
    infile: BinaryIO | None = None,
    outfile: BinaryIO | None = None,
    close_it: bool = False,
) -> int:
    """Copy input to the socket and socket data to outfile.

    At end of input the socket is half-closed for writing, or, with
    close_it, closed outright after a pause and the byte count received
    is returned. Raises ConnectionError when the server disconnects.
    """
    infile = infile if infile is not None else sys.stdin.buffer
    outfile = outfile if outfile is not None else sys.stdout.buffer
    watched = [sock, infile]
    received = 0
    while True:
        readable, _, _ = select.select(watched, [], [])
        if sock in readable:
            data = sock.recv(BUFSIZE - 1)
            if not data:
                raise ConnectionError("server disconnected")
            outfile.write(data)
            outfile.flush()
            received += len(data)
        if infile in readable:
            data = _read(infile, BUFSIZE)
            if data:
                sock.sendall(data)
                continue
            watched.remove(infile)
            if close_it:
                sock.close()
                time.sleep(CLOSE_LINGER)
                return received
            sock.shutdown(socket.SHUT_WR)


def xout1(sock: socket.socket, infile: BinaryIO | None = None) -> NoReturn:
    """Send input to a peer that is expected never to answer.

    Raises ConnectionError when the peer disconnects and ValueError when
    it sends anything.
    """
    infile = infile if infile is not None else sys.stdin.buffer
    watched = [sock, infile]
    while True:
        readable, _, _ = select.select(watched, [], [])
        if infile in readable:
            data = _read(infile, XOUT_BUFSIZE - 1)
            if data:
                sock.sendall(data)
            else:
                watched.remove(infile)
        if sock in readable:
            data = sock.recv(XOUT_BUFSIZE - 1)
            if not data:
                raise ConnectionError("server disconnected")
            raise ValueError(f"unexpected input [{data.decode(errors='replace')}]")


def xout2(
    sock: socket.socket,
    infile: BinaryIO | None = None,
    ack_timeout: float = ACK_TIMEOUT,
) -> int:
    """Send input one read at a time, waiting for a one-byte ACK after each.

    Returns the number of messages sent at end of input. Raises
    TimeoutError when an ACK is late, ValueError on anything but an ACK,
    and ConnectionError when the server disconnects.
    """
    infile = infile if infile is not None else sys.stdin.buffer
    everything = [sock, infile]
    socket_only = [sock]
    watched = everything
    timeout: float | None = None
    sent = 0
    while True:
        readable, _, _ = select.select(watched, [], [], timeout)
        if not readable:
            raise TimeoutError("timed out waiting for message acknowledgement")
        if sock in readable:
            data = sock.recv(XOUT_BUFSIZE)
            if not data:
                raise ConnectionError("server disconnected")
            if data != bytes([ACK]):
                raise ValueError(f"unexpected input [{chr(data[0])}]")
            timeout = None
            watched = everything
        if infile in readable:
            data = _read(infile, XOUT_BUFSIZE)
            if not data:
                return sent
            sock.sendall(data)
            sent += 1
            timeout = ack_timeout
            watched = socket_only


def is_connected(sock: socket.socket) -> bool:
    """Report whether the socket has no pending error and has a peer."""
    if sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR):
        return False
    try:
        sock.getpeername()
    except OSError:
        return False
    return True


def connect_with_timeout(
    host: str, service: str, timeout: float = CONNECT_TIMEOUT
) -> socket.socket:
    """Connect to host and service, giving up after timeout seconds.

    Returns a connected, blocking socket. Raises TimeoutError on timeout
    and OSError carrying the connect error otherwise.
    """
    peer = set_address(host, str(service), "tcp")
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.setblocking(False)
        err = sock.connect_ex(peer)
        if err and err not in _IN_PROGRESS:
            raise OSError(err, os.strerror(err))
        if err:
            readable, writable, exceptional = select.select(
                [sock], [sock], [sock], timeout
            )
            if not (readable or writable or exceptional):
                raise TimeoutError("connect timed out")
            pending = sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
            if pending:
                raise OSError(pending, os.strerror(pending))
            if not (readable or writable):
                raise ConnectionError("connect failed")
        sock.setblocking(True)
    except BaseException:
        sock.close()
        raise
    return sock


def byte_order(value: int = 0x12345678) -> str:
    """Show the bytes of a 32-bit value as stored in native memory order."""
    return " ".join(f"{byte:x}" for byte in struct.pack("=I", value))