"""Generators for time-based (v0, v1) and random (v4) identifiers."""

from __future__ import annotations

import fcntl
import os
import secrets
import socket
import struct
import sys
import threading
import time
import uuid as _stdlib_uuid

from etcore.uuids import Uuid

_MASK64 = (1 << 64) - 1
_GREGORIAN_OFFSET = 0x01B21DD213814000
_SIOCGIFHWADDR = 0x8927

_time_lock = threading.Lock()
_last_uuid_time = 0


def get_time(offset: int) -> int:
    """Return the current time in 100 ns units since the Unix epoch plus ``offset``.

    When the clock has not moved backwards since the previous call the value
    is bumped by one, so back-to-back calls on a coarse clock tend to differ.
    """
    global _last_uuid_time
    uuid_time = (time.time_ns() // 100 + offset) & _MASK64
    with _time_lock:
        if _last_uuid_time > uuid_time:
            _last_uuid_time = uuid_time
        else:
            uuid_time = (uuid_time + 1) & _MASK64
            _last_uuid_time = uuid_time
    return uuid_time


def _linux_mac() -> bytes | None:
    request = struct.pack("256s", b"eth0")
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            result = fcntl.ioctl(sock.fileno(), _SIOCGIFHWADDR, request)
    except OSError:
        return None
    # struct ifreq: 16-byte name, then sockaddr (2-byte family, 14-byte data).
    return result[18:32]


def _generic_mac() -> bytes | None:
    node = _stdlib_uuid.getnode()
    if node >> 40 & 1:
        # A random node id, not a hardware address.
        return None
    return node.to_bytes(6, "big")


def get_any_mac48() -> int:
    """Return the first network adapter's MAC address as a 48-bit integer, or 0."""
    node = _linux_mac() if sys.platform.startswith("linux") else _generic_mac()
    if not node:
        return 0
    node = node[:6].ljust(6, b"\0")
    return int.from_bytes(node, "big")


def _assemble_upper(ns100_intervals: int, version: int) -> int:
    time_low = ns100_intervals & 0xFFFFFFFF
    time_mid = (ns100_intervals >> 32) & 0xFFFF
    time_hi = (ns100_intervals >> 48) & 0xFFF
    upper = (time_low << 32) | (time_mid << 16) | time_hi
    return (upper & ~0xF000 & _MASK64) | (version << 12)


def uuid4() -> Uuid:
    """Return a random (version 4, RFC 4122 variant) identifier."""
    ab = secrets.randbits(64)
    cd = secrets.randbits(64)
    ab = (ab & 0xFFFFFFFFFFFF0FFF) | 0x0000000000004000
    cd = (cd & 0x3FFFFFFFFFFFFFFF) | 0x8000000000000000
    return Uuid(ab, cd)


def uuid1() -> Uuid:
    """Return a version 1 identifier from the Gregorian-epoch clock and MAC."""
    ns100_intervals = get_time(_GREGORIAN_OFFSET)
    clock_seq = ns100_intervals & 0x3FFF
    mac = get_any_mac48()

    clock_seq_low = clock_seq & 0xFF
    clock_seq_hi_variant = (clock_seq >> 8) & 0x3F

    upper = _assemble_upper(ns100_intervals, 1)
    lower = (((clock_seq_hi_variant << 8) | clock_seq_low) << 48) | mac
    lower &= ~(0xC000 << 48) & _MASK64
    lower |= 0x8000 << 48
    return Uuid(upper, lower & _MASK64)


def uuid0() -> Uuid:
    """Return a version 0 identifier from the Unix-epoch clock, PID and MAC."""
    ns100_intervals = get_time(0)
    pid16 = os.getpid() & 0xFFFF
    mac = get_any_mac48()

    upper = _assemble_upper(ns100_intervals, 0)
    lower = (pid16 << 48) | mac
    return Uuid(upper, lower & _MASK64)