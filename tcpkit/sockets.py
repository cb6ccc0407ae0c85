"""Socket construction helpers: address resolution, TCP/UDP servers and clients."""

from __future__ import annotations

import errno
import os
import socket

NLISTEN = 5
"""Backlog passed to listen() for TCP servers."""

_MIN_BSD_SOCKERR = 10035  # WSAEWOULDBLOCK
_WSASYSNOTREADY = 10091
_WSAVERNOTSUPPORTED = 10092
_WSANOTINITIALISED = 10093

_BSD_SOCKET_ERRORS = (
    "Resource temporarily unavailable",
    "Operation now in progress",
    "Operation already in progress",
    "Socket operation on non-socket",
    "Destination address required",
    "Message too long",
    "Protocol wrong type for socket",
    "Bad protocol option",
    "Protocol not supported",
    "Socket type not supported",
    "Operation not supported",
    "Protocol family not supported",
    "Address family not supported by protocol family",
    "Address already in use",
    "Can't assign requested address",
    "Network is down",
    "Network is unreachable",
    "Network dropped connection on reset",
    "Software caused connection abort",
    "Connection reset by peer",
    "No buffer space available",
    "Socket is already connected",
    "Socket is not connected",
    "Cannot send after socket shutdown",
    "Too many references: can't splice",
    "Connection timed out",
    "Connection refused",
    "Too many levels of symbolic links",
    "File name too long",
    "Host is down",
    "No route to host",
)


def inet_aton(text: str) -> bytes:
    """Convert a dotted IPv4 address to its 4-byte network form.

    Raises ValueError if the text is not a valid address.
    """
    try:
        return socket.inet_aton(text)
    except OSError as exc:
        raise ValueError(f"invalid IPv4 address: {text!r}") from exc


def strerror(code: int) -> str:
    """Describe an error code, including the Winsock socket error range."""
    if code == 0 or code in errno.errorcode:
        return os.strerror(code)
    if _MIN_BSD_SOCKERR <= code < _MIN_BSD_SOCKERR + len(_BSD_SOCKET_ERRORS):
        return _BSD_SOCKET_ERRORS[code - _MIN_BSD_SOCKERR]
    if code == _WSASYSNOTREADY:
        return "Network subsystem is unusable"
    if code == _WSAVERNOTSUPPORTED:
        return "This version of Winsock not supported"
    if code == _WSANOTINITIALISED:
        return "Winsock not initialized"
    return "Unknown error"


def set_address(host: str | None, service: str, protocol: str = "tcp") -> tuple[str, int]:
    """Resolve a host and service to an (IPv4 address, port) pair.

    A host of None means any local interface. The service may be a port
    number or a service name looked up for the given protocol.
    """
    if host is None:
        address = "0.0.0.0"
    else:
        try:
            address = socket.inet_ntoa(inet_aton(host))
        except ValueError:
            try:
                address = socket.gethostbyname(host)
            except OSError as exc:
                raise OSError(exc.errno, f"unknown host: {host}") from exc

    service = str(service)
    if service.isdigit():
        port = int(service)
        if port > 0xFFFF:
            raise ValueError(f"port out of range: {service}")
    else:
        try:
            port = socket.getservbyname(service, protocol)
        except OSError as exc:
            raise OSError(errno.ENOENT, f"unknown service: {service}/{protocol}") from exc
    return address, port


def _new_socket(kind: int) -> socket.socket:
    return socket.socket(socket.AF_INET, kind)


def tcp_server(host: str | None, service: str) -> socket.socket:
    """Create a listening TCP socket bound to host and service."""
    local = set_address(host, service, "tcp")
    sock = _new_socket(socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind(local)
        sock.listen(NLISTEN)
    except BaseException:
        sock.close()
        raise
    return sock


def tcp_client(host: str, service: str) -> socket.socket:
    """Create a TCP socket connected to host and service."""
    peer = set_address(host, service, "tcp")
    sock = _new_socket(socket.SOCK_STREAM)
    try:
        sock.connect(peer)
    except BaseException:
        sock.close()
        raise
    return sock


def udp_server(host: str | None, service: str) -> socket.socket:
    """Create a UDP socket bound to host and service."""
    local = set_address(host, service, "udp")
    sock = _new_socket(socket.SOCK_DGRAM)
    try:
        sock.bind(local)
    except BaseException:
        sock.close()
        raise
    return sock


def udp_client(host: str, service: str) -> tuple[socket.socket, tuple[str, int]]:
    """Create an unbound UDP socket and return it with the peer address."""
    peer = set_address(host, service, "udp")
    return _new_socket(socket.SOCK_DGRAM), peer