"""Reliable delivery over TCP with application acknowledgements and retransmission."""

from __future__ import annotations

import os
import random
import select
import socket
import struct
import sys
from dataclasses import dataclass
from typing import Any, BinaryIO, NoReturn

from .records import readvrec
from .timers import TimerQueue

ACK = 0x06
MRSZ = 128
"""Largest number of unacknowledged messages."""
FIRST_WAIT = 3000
"""Milliseconds to wait for the first acknowledgement."""
SECOND_WAIT = 5000
"""Milliseconds to wait after retransmitting."""
BUFSIZE = 128
COOKIESZ = 4
ACKSZ = 1 + COOKIESZ
DROP_PERCENT = 33
SEED = 127

_LENGTH = struct.Struct("!I")
_COOKIE = struct.Struct("=I")
_DRAIN_POLL = 0.1


def _warn(message: str) -> None:
    print(message, file=sys.stderr)


def encode_packet(cookie: int, data: bytes) -> bytes:
    """Build a packet: length of cookie and data, the cookie, then the data."""
    if len(data) > BUFSIZE:
        raise ValueError(f"message longer than {BUFSIZE} bytes")
    return _LENGTH.pack(COOKIESZ + len(data)) + _COOKIE.pack(cookie) + data


def decode_ack(data: bytes) -> int:
    """Return the cookie carried by an acknowledgement.

    Raises ValueError if data is not an ACK byte followed by a cookie.
    """
    if len(data) != ACKSZ:
        raise ValueError(f"acknowledgement must be {ACKSZ} bytes, got {len(data)}")
    if data[0] != ACK:
        raise ValueError("invalid acknowledgement")
    (cookie,) = _COOKIE.unpack_from(data, 1)
    return cookie


@dataclass
class _MessageRecord:
    index: int
    cookie: int = 0
    data: bytes = b""
    timer_id: int = 0
    in_use: bool = False

    @property
    def packet(self) -> bytes:
        return encode_packet(self.cookie, self.data)


class MessagePool:
    """A fixed set of records holding messages that await acknowledgement."""

    def __init__(self, size: int = MRSZ) -> None:
        self.records = [_MessageRecord(index) for index in range(size)]

    def __len__(self) -> int:
        return sum(record.in_use for record in self.records)

    def get_free(self) -> _MessageRecord:
        """Claim a free record. Raises RuntimeError when none is left."""
        for record in self.records:
            if not record.in_use:
                record.in_use = True
                return record
        raise RuntimeError("get_free: message record pool exhausted")

    def find(self, cookie: int) -> _MessageRecord | None:
        """Return the record in use with this cookie, if any."""
        return next(
            (r for r in self.records if r.in_use and r.cookie == cookie), None
        )

    def free(self, record: _MessageRecord) -> None:
        """Release a record. Raises ValueError if it is already free."""
        if not record.in_use:
            raise ValueError("free: message record already freed")
        record.in_use = False
        record.data = b""


class ReliableSender:
    """Sends messages and retransmits once each one not acknowledged in time."""

    def __init__(
        self,
        sock: socket.socket,
        timers: TimerQueue | None = None,
        first_wait: int = FIRST_WAIT,
        second_wait: int = SECOND_WAIT,
    ) -> None:
        self.sock = sock
        self.timers = timers if timers is not None else TimerQueue()
        self.first_wait = first_wait
        self.second_wait = second_wait
        self.pool = MessagePool()
        self._next_cookie = 0

    def send(self, data: bytes) -> int:
        """Send data as a new message and start its timer; return its cookie."""
        record = self.pool.get_free()
        try:
            record.cookie = self._next_cookie
            record.data = bytes(data)
            self.sock.sendall(record.packet)
        except BaseException:
            self.pool.free(record)
            raise
        self._next_cookie = (self._next_cookie + 1) & 0xFFFFFFFF
        record.timer_id = self.timers.timeout(self._lost_ack, record, self.first_wait)
        return record.cookie

    def _lost_ack(self, record: _MessageRecord) -> None:
        _warn(f"retransmitting message: {record.data.decode(errors='replace')}")
        self.sock.sendall(record.packet)
        record.timer_id = self.timers.timeout(self._drop, record, self.second_wait)

    def _drop(self, record: _MessageRecord) -> None:
        _warn(f"dropping message: {record.data.decode(errors='replace')}")
        self.pool.free(record)

    def handle_ack(self, ack: bytes) -> bool:
        """Settle the message an acknowledgement names.

        Returns False if no pending message has its cookie. Raises
        ValueError for a malformed acknowledgement.
        """
        cookie = decode_ack(ack)
        record = self.pool.find(cookie)
        if record is None:
            _warn(f"no message matches ACK {cookie}")
            return False
        self.timers.untimeout(record.timer_id)
        self.pool.free(record)
        return True

    def run(self, infile: BinaryIO | None = None) -> int:
        """Send each read from infile as a message and process acknowledgements.

        Returns the number of messages sent once input has ended and every
        message is acknowledged or dropped. Raises ConnectionError when
        the server disconnects.
        """
        infile = infile if infile is not None else sys.stdin.buffer
        watched: list[Any] = [self.sock, infile]
        ack = bytearray()
        sent = 0
        while True:
            if infile in watched:
                readable, _, _ = self.timers.tselect(watched)
            else:
                self.timers.run_expired()
                if not self.pool:
                    return sent
                readable, _, _ = select.select(watched, [], [], _DRAIN_POLL)
            if self.sock in readable:
                chunk = self.sock.recv(ACKSZ - len(ack))
                if not chunk:
                    raise ConnectionError("server disconnected")
                ack += chunk
                if len(ack) == ACKSZ:
                    try:
                        self.handle_ack(bytes(ack))
                    except ValueError as exc:
                        _warn(f"warning: {exc}")
                    ack.clear()
            if infile in readable:
                data = os.read(infile.fileno(), BUFSIZE)
                if data:
                    self.send(data)
                    sent += 1
                else:
                    watched.remove(infile)


def ack_server(
    sock: socket.socket,
    out: BinaryIO | None = None,
    drop_percent: int = DROP_PERCENT,
    seed: int = SEED,
) -> NoReturn:
    """Write each message to out and acknowledge it, ignoring some at random.

    About drop_percent in a hundred messages are neither written nor
    acknowledged. Raises ConnectionError when the client disconnects.
    """
    out = out if out is not None else sys.stdout.buffer
    rng = random.Random(seed)
    while True:
        record = readvrec(sock, COOKIESZ + BUFSIZE)
        if not record:
            raise ConnectionError("client disconnected")
        if rng.randrange(100) < drop_percent:
            continue
        if len(record) < COOKIESZ:
            raise ValueError("message shorter than its cookie")
        out.write(record[COOKIESZ:])
        out.flush()
        sock.sendall(bytes([ACK]) + record[:COOKIESZ])