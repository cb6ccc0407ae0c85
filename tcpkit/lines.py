"""Line-oriented reads from stream sockets."""

from __future__ import annotations

import errno
import socket


class LineReader:
    """Buffered reader that returns newline-terminated lines from a socket."""

    def __init__(self, sock: socket.socket, bufsize: int = 1500) -> None:
        self.sock = sock
        self.bufsize = bufsize
        self._buffer = b""

    def _fill(self) -> bool:
        while True:
            try:
                data = self.sock.recv(self.bufsize)
            except InterruptedError:
                continue
            if not data:
                return False
            self._buffer = data
            return True

    def readline(self, maxlen: int) -> bytes:
        """Return the next line, newline included, of at most maxlen bytes.

        Returns b"" when the peer closes before a newline arrives. If no
        newline is found within maxlen bytes, those bytes are consumed and
        OSError with errno EMSGSIZE is raised.
        """
        line = bytearray()
        while len(line) < maxlen:
            if not self._buffer and not self._fill():
                return b""
            take = maxlen - len(line)
            newline = self._buffer.find(b"\n", 0, take)
            if newline >= 0:
                line += self._buffer[: newline + 1]
                self._buffer = self._buffer[newline + 1 :]
                return bytes(line)
            line += self._buffer[:take]
            self._buffer = self._buffer[take:]
        raise OSError(errno.EMSGSIZE, f"line longer than {maxlen} bytes")


def readcrlf(sock: socket.socket, maxlen: int) -> bytes:
    """Read a line ended by LF or CR LF and return it without the terminator.

    Reads one byte at a time so nothing past the line is consumed.
    Raises EOFError if the peer closes before the line ends, and OSError
    with errno EMSGSIZE if more than maxlen bytes precede the newline.
    """
    line = bytearray()
    while len(line) < maxlen:
        try:
            byte = sock.recv(1)
        except InterruptedError:
            continue
        if not byte:
            raise EOFError("connection closed before end of line")
        if byte == b"\n":
            if line.endswith(b"\r"):
                del line[-1]
            return bytes(line)
        line += byte
    raise OSError(errno.EMSGSIZE, f"line longer than {maxlen} bytes")