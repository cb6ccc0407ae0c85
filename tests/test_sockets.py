import errno
import socket

import pytest

from tcpkit.sockets import (
    inet_aton,
    set_address,
    strerror,
    tcp_client,
    tcp_server,
    udp_client,
    udp_server,
)


def test_set_address_numeric():
    assert set_address("127.0.0.1", "7500", "tcp") == ("127.0.0.1", 7500)


def test_set_address_any_host():
    assert set_address(None, "9000", "udp") == ("0.0.0.0", 9000)


def test_set_address_unknown_service():
    with pytest.raises(OSError):
        set_address("127.0.0.1", "no-such-service-here", "tcp")


def test_set_address_port_out_of_range():
    with pytest.raises(ValueError):
        set_address("127.0.0.1", "70000", "tcp")


def test_inet_aton_broadcast():
    assert inet_aton("255.255.255.255") == b"\xff\xff\xff\xff"


def test_inet_aton_loopback_round_trip():
    assert socket.inet_ntoa(inet_aton("127.0.0.1")) == "127.0.0.1"


def test_inet_aton_invalid():
    with pytest.raises(ValueError):
        inet_aton("not.an.address.x")


def test_strerror_winsock_table():
    assert strerror(10035) == "Resource temporarily unavailable"
    assert strerror(10035 + 5) == "Message too long"
    assert strerror(10035 + 30) == "No route to host"


def test_strerror_special_codes():
    assert strerror(10091) == "Network subsystem is unusable"
    assert strerror(10092) == "This version of Winsock not supported"
    assert strerror(10093) == "Winsock not initialized"
    assert strerror(10035 + 31) == "Unknown error"


def test_strerror_system_code():
    import os

    assert strerror(errno.EINTR) == os.strerror(errno.EINTR)


def test_tcp_server_and_client_exchange():
    server = tcp_server("127.0.0.1", "0")
    try:
        assert server.getsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR) != 0
        port = server.getsockname()[1]
        client = tcp_client("127.0.0.1", str(port))
        conn, _ = server.accept()
        with client, conn:
            client.sendall(b"1")
            assert conn.recv(1) == b"1"
            conn.sendall(b"2")
            assert client.recv(1) == b"2"
    finally:
        server.close()


def test_tcp_client_refused():
    probe = tcp_server("127.0.0.1", "0")
    port = probe.getsockname()[1]
    probe.close()
    with pytest.raises(OSError):
        tcp_client("127.0.0.1", str(port))


def test_udp_server_and_client():
    server = udp_server("127.0.0.1", "0")
    port = server.getsockname()[1]
    client, peer = udp_client("127.0.0.1", str(port))
    with server, client:
        assert peer == ("127.0.0.1", port)
        client.sendto(b"ping", peer)
        data, _ = server.recvfrom(64)
        assert data == b"ping"