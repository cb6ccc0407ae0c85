"""Fixed-length reads and length-prefixed variable records over stream sockets."""

from __future__ import annotations

import errno
import socket
import struct

_HEADER = struct.Struct("!I")


def readn(sock: socket.socket, length: int) -> bytes:
    """Read exactly length bytes, or fewer if the peer closes first."""
    chunks = []
    remaining = length
    while remaining > 0:
        try:
            chunk = sock.recv(remaining)
        except InterruptedError:
            continue
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def readvrec(sock: socket.socket, maxlen: int) -> bytes:
    """Read one length-prefixed record of at most maxlen bytes.

    Returns b"" when the peer closes before a whole record arrives.
    A record longer than maxlen is read and discarded, then OSError
    with errno EMSGSIZE is raised.
    """
    header = readn(sock, _HEADER.size)
    if len(header) != _HEADER.size:
        return b""
    (reclen,) = _HEADER.unpack(header)

    if reclen > maxlen:
        remaining = reclen
        while remaining > 0:
            step = min(remaining, maxlen) if maxlen > 0 else remaining
            if len(readn(sock, step)) != step:
                return b""
            remaining -= step
        raise OSError(errno.EMSGSIZE, f"record of {reclen} bytes exceeds {maxlen}")

    record = readn(sock, reclen)
    if len(record) != reclen:
        return b""
    return record


def pack_record(data: bytes) -> bytes:
    """Prefix data with its length as a 32-bit big-endian integer."""
    return _HEADER.pack(len(data)) + data


def send_record(sock: socket.socket, data: bytes) -> None:
    """Send data as one length-prefixed record."""
    sock.sendall(pack_record(data))