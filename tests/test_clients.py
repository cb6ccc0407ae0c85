import io
import os
import socket
import sys
import threading
from unittest import mock

import pytest

from tcpkit.clients import (
    byte_order,
    connect_with_timeout,
    is_connected,
    shutdown_client,
    xout1,
    xout2,
)


def make_input(data: bytes):
    read_fd, write_fd = os.pipe()
    os.write(write_fd, data)
    os.close(write_fd)
    return open(read_fd, "rb", buffering=0)


def test_shutdown_client_half_closes_and_reads_reply():
    sock, peer = socket.socketpair()
    sock.settimeout(5)
    peer.settimeout(5)
    seen = []

    def server():
        chunks = []
        while chunk := peer.recv(1024):
            chunks.append(chunk)
        data = b"".join(chunks)
        seen.append(data)
        peer.sendall(data.upper())
        peer.close()

    worker = threading.Thread(target=server)
    worker.start()
    out = io.BytesIO()
    with sock, make_input(b"hello\n") as infile:
        with pytest.raises(ConnectionError):
            shutdown_client(sock, infile, out)
    worker.join(10)
    assert seen == [b"hello\n"]
    assert out.getvalue() == b"HELLO\n"


def test_shutdown_client_close_it_closes_socket():
    sock, peer = socket.socketpair()
    peer.settimeout(5)
    with peer, make_input(b"") as infile, mock.patch("time.sleep") as sleep:
        assert shutdown_client(sock, infile, io.BytesIO(), close_it=True) == 0
        assert sock.fileno() == -1
        assert peer.recv(10) == b""
        sleep.assert_called_once()


def test_xout1_rejects_any_input_from_peer():
    sock, peer = socket.socketpair()
    with sock, peer, make_input(b"data") as infile:
        peer.sendall(b"x")
        with pytest.raises(ValueError, match=r"\[x\]"):
            xout1(sock, infile)
        assert peer.recv(100) == b"data"


def test_xout1_server_disconnect():
    sock, peer = socket.socketpair()
    peer.close()
    with sock, make_input(b"") as infile:
        with pytest.raises(ConnectionError):
            xout1(sock, infile)


def test_xout2_waits_for_ack():
    sock, peer = socket.socketpair()
    peer.settimeout(5)
    seen = []

    def server():
        seen.append(peer.recv(128))
        peer.sendall(b"\x06")

    worker = threading.Thread(target=server)
    worker.start()
    with sock, peer, make_input(b"msg") as infile:
        assert xout2(sock, infile, ack_timeout=5) == 1
        worker.join(10)
    assert seen == [b"msg"]


def test_xout2_times_out_without_ack():
    sock, peer = socket.socketpair()
    with sock, peer, make_input(b"msg") as infile:
        with pytest.raises(TimeoutError):
            xout2(sock, infile, ack_timeout=0.05)


def test_xout2_rejects_wrong_ack():
    sock, peer = socket.socketpair()
    with sock, peer, make_input(b"msg") as infile:
        peer.sendall(b"Z")
        with pytest.raises(ValueError, match=r"\[Z\]"):
            xout2(sock, infile, ack_timeout=1)


def test_connect_with_timeout_connects():
    with socket.socket() as listener:
        listener.bind(("127.0.0.1", 0))
        listener.listen(1)
        port = listener.getsockname()[1]
        with connect_with_timeout("127.0.0.1", str(port), 5) as sock:
            assert sock.getpeername() == listener.getsockname()
            assert sock.getblocking() is True
            assert is_connected(sock) is True


def test_connect_with_timeout_refused():
    with socket.socket() as probe:
        probe.bind(("127.0.0.1", 0))
        port = probe.getsockname()[1]
    with pytest.raises(ConnectionRefusedError):
        connect_with_timeout("127.0.0.1", str(port), 5)


def test_is_connected_false_for_unconnected_socket():
    with socket.socket() as sock:
        assert is_connected(sock) is False


def test_byte_order_default_value():
    expected = {"little": "78 56 34 12", "big": "12 34 56 78"}[sys.byteorder]
    assert byte_order() == expected


def test_byte_order_is_reversed_between_orders():
    parts = byte_order(0x01020304).split()
    assert sorted(parts) == ["1", "2", "3", "4"]
    assert parts in (["4", "3", "2", "1"], ["1", "2", "3", "4"])