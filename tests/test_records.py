import errno
import socket

import pytest

from tcpkit.records import pack_record, readn, readvrec, send_record


@pytest.fixture
def pair():
    a, b = socket.socketpair()
    yield a, b
    a.close()
    b.close()


def test_pack_record_wire_format():
    assert pack_record(b"hi") == b"\x00\x00\x00\x02hi"


def test_pack_record_empty():
    assert pack_record(b"") == b"\x00\x00\x00\x00"


def test_readn_exact(pair):
    a, b = pair
    a.sendall(b"abcdef")
    assert readn(b, 4) == b"abcd"
    assert readn(b, 2) == b"ef"


def test_readn_short_on_close(pair):
    a, b = pair
    a.sendall(b"abc")
    a.close()
    assert readn(b, 10) == b"abc"


def test_record_round_trip(pair):
    a, b = pair
    send_record(a, b"hello\n")
    send_record(a, b"world\n")
    assert readvrec(b, 10) == b"hello\n"
    assert readvrec(b, 10) == b"world\n"


def test_readvrec_oversized_is_discarded(pair):
    a, b = pair
    big = b"x" * 25
    send_record(a, big)
    send_record(a, b"ok")
    with pytest.raises(OSError) as info:
        readvrec(b, 10)
    assert info.value.errno == errno.EMSGSIZE
    assert readvrec(b, 10) == b"ok"


def test_readvrec_eof(pair):
    a, b = pair
    a.close()
    assert readvrec(b, 10) == b""


def test_readvrec_truncated_record(pair):
    a, b = pair
    a.sendall(pack_record(b"abcdef")[:-2])
    a.close()
    assert readvrec(b, 10) == b""


def test_readvrec_exact_limit(pair):
    a, b = pair
    data = b"0123456789"
    send_record(a, data)
    assert readvrec(b, len(data)) == data