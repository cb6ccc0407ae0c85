"""Decoding and reporting of received ICMP datagrams."""

from __future__ import annotations

import socket
import struct
import sys
from typing import TextIO

ICMP_MINLEN = 8
ICMP_UNREACH = 3
ICMP_REDIRECT = 5
ICMP_TIMXCEED = 11
ICMP_PARAMPROB = 12
RECV_SIZE = 1024

_IP_MINLEN = 20
_PORTS = struct.Struct("!HH")
_INVALID_CODE = "invalid code"

_TYPE_NAMES = (
    "Echo reply",
    "ICMP type 1",
    "ICMP type 2",
    "Destination unreachable",
    "Source quench",
    "Redirect",
    "ICMP type 6",
    "ICMP type 7",
    "Echo request",
    "Router advertisement",
    "Router solicitation",
    "Time exceeded",
    "Parameter problem",
    "Timestamp request",
    "Timestamp reply",
    "Information request",
    "Information reply",
    "Address mask request",
    "Address mask reply",
)
_UNKNOWN_TYPE = "UNKNOWN TYPE"

_REDIRECT_CODES = (
    "network",
    "host",
    "type of service and network",
    "type of service and host",
)
_TIMXCEED_CODES = ("transit", "reassembly")
_PARAM_CODES = ("Bad IP header", "Required option missing")

_UNREACH_CODES = (
    "Network unreachable",
    "Host unreachable",
    "Protocol unreachable",
    "Port unreachable",
    "Fragmentation needed and DF set",
    "Source route failed",
    "Destination network unknown",
    "Destination host unknown",
    "Source host isolated",
    "Destination network administratively prohibited",
    "Destination host administratively prohibited",
    "Network unreachable for type of service",
    "Host unreachable for type of service",
    "Communication administratively prohibited",
    "Host precedence violation",
    "Precedence cutoff in effect",
)


def _describe(table: tuple[str, ...], code: int, invalid: str = _INVALID_CODE) -> str:
    return table[code] if code < len(table) else invalid


def icmp_type_name(code: int) -> str:
    """Name an ICMP message type."""
    return _describe(_TYPE_NAMES, code, _UNKNOWN_TYPE)


def _hostname(address: str) -> str:
    try:
        return socket.gethostbyaddr(address)[0]
    except OSError:
        return ""


def format_unreachable(icmp: bytes) -> str:
    """Describe a destination-unreachable message and the datagram it quotes.

    Raises ValueError if the quoted IP and UDP headers are truncated.
    """
    if len(icmp) < ICMP_MINLEN + _IP_MINLEN:
        raise ValueError("truncated unreachable message")
    inner = icmp[ICMP_MINLEN:]
    header_len = (inner[0] & 0x0F) << 2
    if len(inner) < max(header_len, _IP_MINLEN) + _PORTS.size:
        raise ValueError("truncated unreachable message")
    source = socket.inet_ntoa(inner[12:16])
    dest = socket.inet_ntoa(inner[16:20])
    sport, dport = _PORTS.unpack_from(inner, header_len)
    reason = _describe(_UNREACH_CODES, icmp[1], "Invalid code")
    return f"\t{reason}\n\tSrc: {source}.{sport}, Dst: {dest}.{dport}"


def format_datagram(data: bytes, resolve: bool = True) -> str:
    """Describe an IPv4 datagram carrying an ICMP message.

    The sender's name is looked up when resolve is true. Raises
    ValueError for non-IPv4 or too short datagrams.
    """
    if not data or data[0] >> 4 != 4:
        raise ValueError("IP datagram is not version 4")
    header_len = (data[0] & 0x0F) << 2
    source = socket.inet_ntoa(data[12:16]) if len(data) >= 16 else "?"
    if len(data) < max(header_len, _IP_MINLEN) + ICMP_MINLEN:
        raise ValueError(f"short datagram ({len(data)} bytes) from {source}")
    hname = _hostname(source) if resolve else ""
    icmp = data[header_len:]
    kind, code = icmp[0], icmp[1]

    lines = [f"ICMP {icmp_type_name(kind)} ({kind}) from {hname} ({source})"]
    if kind == ICMP_UNREACH:
        lines.append(format_unreachable(icmp))
    elif kind == ICMP_REDIRECT:
        lines.append(f"\tredirect for {_describe(_REDIRECT_CODES, code)}")
    elif kind == ICMP_TIMXCEED:
        lines.append(f"\tTTL == 0 during {_describe(_TIMXCEED_CODES, code)}")
    elif kind == ICMP_PARAMPROB:
        lines.append(f"\t{_describe(_PARAM_CODES, code)}")
    return "\n".join(lines) + "\n"


def monitor(sock: socket.socket | None = None, out: TextIO | None = None) -> int:
    """Print every ICMP datagram received on sock.

    Without a socket a raw ICMP socket is opened, which needs privileges.
    Malformed datagrams are reported on stderr. Returns the number of
    datagrams printed when an empty read signals the end.
    """
    out = out if out is not None else sys.stdout
    if sock is None:
        sock = socket.socket(
            socket.AF_INET, socket.SOCK_RAW, socket.getprotobyname("icmp")
        )
    printed = 0
    while True:
        data = sock.recv(RECV_SIZE)
        if not data:
            return printed
        try:
            text = format_datagram(data)
        except ValueError as exc:
            print(exc, file=sys.stderr)
            continue
        out.write(text)
        out.flush()
        printed += 1