# tcpkit

A library for building and exercising TCP and UDP programs. It bundles the
small building blocks that network code keeps needing, together with
ready-made client and server functions for experimenting with how TCP/IP
behaves: partial reads, record boundaries, lost peers, half-closed
connections, retransmission and ICMP errors.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Creating sockets

`tcpkit.sockets` resolves a host and a service name or port number and
returns ready sockets:

```python
from tcpkit.sockets import tcp_server, tcp_client, udp_server, udp_client

listener = tcp_server(None, "9000")      # bound, listening, SO_REUSEADDR set
conn = tcp_client("127.0.0.1", "9000")   # connected stream socket
sock, peer = udp_client("127.0.0.1", "9000")
```

`set_address(host, service, protocol)` returns the `(address, port)` pair
these use; a host of `None` means any interface. Failures are raised as
exceptions. `inet_aton(text)` returns the four-byte form of a dotted address
(raising `ValueError` on bad input) and `strerror(code)` describes an error
code, including the Winsock socket error range.

## Reading exactly what you asked for

TCP is a byte stream, so a single receive may return less than was sent.
`tcpkit.records` provides:

- `readn(sock, length)` — read until `length` bytes have arrived or the peer
  closes.
- `pack_record(data)` / `send_record(sock, data)` — prefix data with a
  four-byte network-order length.
- `readvrec(sock, maxlen)` — read one length-prefixed record. Returns `b""`
  when the peer closes; a record longer than `maxlen` is read, discarded and
  reported as `OSError` with `errno.EMSGSIZE`.

## Lines

`tcpkit.lines.LineReader(sock, bufsize=1500)` buffers a socket and returns
one newline-terminated line at a time with `readline(maxlen)`, or `b""` when
the peer closes. `readcrlf(sock, maxlen)` reads a line ended by LF or CR LF,
returns it without the terminator, and raises `EOFError` if the peer closes
first.

## Timers

`tcpkit.timers.TimerQueue` keeps one-shot timers alongside socket waiting:
`timeout(func, arg, ms)` schedules `func(arg)` and returns its id,
`untimeout(id)` cancels it (raising `KeyError` for an unknown id),
`run_expired()` fires due timers, and `tselect(rlist, wlist, xlist)` waits for
readiness while firing timers as they come due.

## Protocols and programs

- `tcpkit.heartbeat` — fixed-size typed messages (`pack_message`,
  `unpack_message`, `MessageType`) and heartbeat-supervised loops, in band
  (`run_client`, `run_server`) or over a separate connection
  (`run_split_client`, `run_split_server`). A silent peer raises
  `ConnectionDead`.
- `tcpkit.xout` — reliable delivery on top of TCP: each message carries a
  cookie, `ReliableSender` retransmits it once when no acknowledgement comes
  and drops it after a second timeout; `MessagePool` holds pending messages
  and `ack_server` acknowledges messages while ignoring a share of them at
  random.
- `tcpkit.smb` — `SharedBufferPool`, fixed-size buffers in named shared
  memory with a file-locked free list, passed between processes by sending
  their index over a socket.
- `tcpkit.icmp` — decodes raw ICMP datagrams into readable reports
  (`format_datagram`, `format_unreachable`, `icmp_type_name`) and `monitor`
  prints every datagram received on a raw socket.
- `tcpkit.echo` — TCP and UDP echo services, a UDP line client and
  `number_lines` for numbering text.
- `tcpkit.clients` — a half-closing client, clients that expect no reply or a
  one-byte ACK, `connect_with_timeout`, `is_connected` and `byte_order`.
- `tcpkit.basic` — one-byte exchanges, record and line services, UDP and TCP
  bulk sources and sinks for throughput tests, and telemetry senders and
  receivers.

Raw ICMP sockets need the privileges your system requires for them.

## What is not included

tcpkit is a library only: it installs no command, so the clients and servers
above are started by calling their functions from your own code. It has no
service multiplexer that reads a service table and launches programs per
connection, and no helper for turning a process into a daemon.