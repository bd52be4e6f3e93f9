# etcore

Building blocks for a persistent remote terminal server, in plain Python with
no third-party dependencies. It runs on POSIX systems (`etcore.uuidgen` uses
`fcntl`).

## Modules

- `etcore.messages`: the messages exchanged by the port forwarding code.
  `TerminalPacketType` lists the packet headers, `Packet` pairs a one-byte
  header with a payload, and `SocketEndpoint` names a pipe path and/or a port
  (`str()` gives `name:port`). `PortForwardData`, `PortForwardSourceRequest`,
  `PortForwardSourceResponse`, `PortForwardDestinationRequest` and
  `PortForwardDestinationResponse` are dataclasses with `encode()` and
  `decode()`, using a compact JSON encoding; `decode()` raises `MessageError`
  for a payload it cannot read.
- `etcore.portforward`: `PortForwardHandler` owns every tunnel of a session.
  `create_source()` starts listening (on a given endpoint, or on a new private
  pipe whose path it returns), `create_destination()` connects to a local port
  (trying `::1`, then `127.0.0.1`) or pipe and assigns a random socket id,
  `update()` returns new destination requests and data to send, and
  `handle_packet()` acts on incoming port forwarding packets.
- `etcore.source`: `ForwardSourceHandler`, the listening end of a tunnel. It
  can be used as a context manager; leaving it stops listening.
- `etcore.destination`: `ForwardDestinationHandler`, the connecting end of one
  forwarded socket.
- `etcore.uuids`: `Uuid`, a 128-bit identifier held as two 64-bit halves, with
  `str()`, `base62()` and `pretty()`; `rebuild()` parses the dashed hex form and
  the single-dash base62 form and returns the all-zero `Uuid` for anything
  else; `printftime()` renders a timestamp in the locale's `%c` format.
- `etcore.uuidgen`: `uuid0()` (clock, PID and MAC), `uuid1()` (Gregorian clock
  and MAC) and `uuid4()` (random), plus `get_time()` and `get_any_mac48()`.
- `etcore.convertutf`: `convert_utf32_to_utf16()`, `convert_utf16_to_utf32()`
  and `is_legal_utf8_sequence()`, with `ConversionResult`, `ConversionFlags`
  (`STRICT`, `LENIENT`) and the `Conversion` result type.
- `etcore.utf8convert`: `convert_utf16_to_utf8()`, `convert_utf8_to_utf16()`,
  `convert_utf32_to_utf8()` and `convert_utf8_to_utf32()`.
- `etcore.util`: `split`, `replace_first`, `replace_all`,
  `gen_random_alphanum`, `temp_directory` and `wait_on_socket_data`.

Every conversion takes a sequence of code units, an optional `capacity` for
the output and a flag. It stops at the first problem and returns a
`Conversion` holding the status, the units written and how many source units
were consumed.

## Socket handlers

The forwarding classes do not open sockets themselves. They are given socket
handler objects that provide:

- `listen(endpoint)`, `stop_listening(endpoint)`, `get_endpoint_fds(endpoint)`
- `accept(fd)`, returning a new fd or `None`
- `connect(endpoint)`, returning an fd or raising `OSError`
- `has_data(fd)`, `read(fd, size)` (returning `b""` at end of stream, raising
  `BlockingIOError` when nothing is ready and `OSError` on failure),
  `write_all_or_return(fd, data)` and `close(fd)`

A connection passed to `PortForwardHandler.handle_packet()` needs
`write_packet(packet)`.

## What it does not do

There is no server, terminal session, router or command-line program here,
and no concrete TCP or pipe socket handler: those are for the caller to
supply. Messages are encoded as JSON, not in any other wire format.

## Installing

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Examples

```python
from etcore.uuidgen import uuid4
from etcore.uuids import rebuild

u = uuid4()
assert rebuild(str(u)) == u
assert rebuild(u.base62()) == u
print(u.pretty())
```

```python
from etcore.convertutf import ConversionFlags, ConversionResult
from etcore.utf8convert import convert_utf8_to_utf16

conv = convert_utf8_to_utf16(b"h\xc3\xa9", 16, ConversionFlags.STRICT)
assert conv.result is ConversionResult.OK
assert conv.output == (0x68, 0xE9)
```

```python
from etcore.util import split, replace_all

assert split("id/passkey", "/") == ["id", "passkey"]
assert replace_all("a-b-c", "-", "+") == ("a+b+c", 2)
```