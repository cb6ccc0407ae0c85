"""A pool of fixed-size buffers in shared memory, passed between processes by index."""

from __future__ import annotations

import contextlib
import os
import socket
import struct
import tempfile
from multiprocessing import shared_memory

from filelock import FileLock

from .records import readn

NSMB = 5
"""Number of buffers in the pool."""
SMBUFSZ = 256
"""Size of each buffer."""
DEFAULT_NAME = "smbarray"

_INDEX = struct.Struct("=i")


class SharedBufferPool:
    """Buffers in a named shared-memory segment with a locked free list."""

    def __init__(
        self,
        name: str = DEFAULT_NAME,
        count: int = NSMB,
        size: int = SMBUFSZ,
        create: bool = False,
    ) -> None:
        if count < 1 or size < _INDEX.size:
            raise ValueError("pool needs at least one buffer of at least 4 bytes")
        self.name = name
        self.count = count
        self.size = size
        self._head_offset = count * size
        total = self._head_offset + _INDEX.size
        self._lock = FileLock(os.path.join(tempfile.gettempdir(), f"{name}.lock"))
        self._owner = False
        if create:
            try:
                self._shm = shared_memory.SharedMemory(name=name, create=True, size=total)
                self._owner = True
            except FileExistsError:
                self._shm = shared_memory.SharedMemory(name=name)
        else:
            self._shm = shared_memory.SharedMemory(name=name)
        if self._shm.size < total:
            self._shm.close()
            raise ValueError(f"shared memory {name!r} is too small")
        if create:
            with self._lock:
                for index in range(count - 1):
                    self._set(index * size, index + 1)
                self._set((count - 1) * size, -1)
                self._set(self._head_offset, 0)

    def __enter__(self) -> SharedBufferPool:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _get(self, offset: int) -> int:
        return _INDEX.unpack_from(self._shm.buf, offset)[0]

    def _set(self, offset: int, value: int) -> None:
        _INDEX.pack_into(self._shm.buf, offset, value)

    def _check(self, index: int) -> None:
        if not 0 <= index < self.count:
            raise IndexError(f"buffer index out of range: {index}")

    def alloc(self) -> int:
        """Take a buffer off the free list and return its index.

        Raises RuntimeError when every buffer is in use.
        """
        with self._lock:
            head = self._get(self._head_offset)
            if head < 0:
                raise RuntimeError("no more buffers in shared memory")
            self._set(self._head_offset, self._get(head * self.size))
        return head

    def free(self, index: int) -> None:
        """Return a buffer to the free list."""
        self._check(index)
        with self._lock:
            self._set(index * self.size, self._get(self._head_offset))
            self._set(self._head_offset, index)

    def read(self, index: int) -> bytes:
        """Return the NUL-terminated contents of a buffer."""
        self._check(index)
        start = index * self.size
        raw = bytes(self._shm.buf[start : start + self.size])
        return raw.split(b"\0", 1)[0]

    def write(self, index: int, data: bytes) -> None:
        """Store data and a terminating NUL in a buffer."""
        self._check(index)
        if len(data) >= self.size:
            raise ValueError(f"data must be shorter than {self.size} bytes")
        start = index * self.size
        self._shm.buf[start : start + len(data)] = data
        self._shm.buf[start + len(data)] = 0

    def send(self, sock: socket.socket, index: int) -> None:
        """Pass a buffer to the peer by sending its index."""
        self._check(index)
        sock.sendall(_INDEX.pack(index))

    def recv(self, sock: socket.socket) -> int:
        """Receive the index of a buffer passed by the peer.

        Raises ConnectionError when the peer disconnects.
        """
        data = readn(sock, _INDEX.size)
        if not data:
            raise ConnectionError("other end disconnected")
        if len(data) != _INDEX.size:
            raise ConnectionError("short read of buffer index")
        (index,) = _INDEX.unpack(data)
        self._check(index)
        return index

    def close(self) -> None:
        """Detach from the shared memory, removing it if this pool created it."""
        self._shm.close()
        if self._owner:
            self._owner = False
            with contextlib.suppress(FileNotFoundError):
                self._shm.unlink()