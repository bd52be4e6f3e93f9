"""A 128-bit identifier with string, base62 and descriptive renderings."""

from __future__ import annotations

import time
from dataclasses import dataclass

_MASK64 = (1 << 64) - 1
_MASK32 = 0xFFFFFFFF
_GREGORIAN_OFFSET = 0x01B21DD213814000
_BASE62 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
_HEX = "0123456789abcdefABCDEF"
_WHITESPACE = " \t\n\v\f\r"


def printftime(timestamp_secs: int = 0) -> str:
    """Render a Unix timestamp as local time in the locale's ``%c`` format, quoted.

    Returns ``'""'`` when the timestamp cannot be represented.
    """
    try:
        return time.strftime('"%c"', time.localtime(timestamp_secs))
    except (OverflowError, OSError, ValueError):
        return '""'


@dataclass(frozen=True, order=True)
class Uuid:
    """A UUID held as two 64-bit halves, ordered by ``ab`` then ``cd``."""

    ab: int = 0
    cd: int = 0

    def __post_init__(self) -> None:
        for name in ("ab", "cd"):
            value = getattr(self, name)
            if not 0 <= value <= _MASK64:
                raise ValueError(f"{name} must fit in 64 bits")

    def __hash__(self) -> int:
        return self.ab ^ self.cd

    def __str__(self) -> str:
        a = self.ab >> 32
        b = self.ab & _MASK32
        c = self.cd >> 32
        d = self.cd & _MASK32
        return (
            f"{a:08x}-{b >> 16:04x}-{b & 0xFFFF:04x}-"
            f"{c >> 16:04x}-{c & 0xFFFF:04x}{d:08x}"
        )

    def pretty(self) -> str:
        """Describe the version and the fields that version carries."""
        a = self.ab >> 32
        b = self.ab & _MASK32
        c = self.cd >> 32
        d = self.cd & _MASK32

        version = (b & 0xF000) >> 12
        timestamp = ((b & 0x0FFF) << 48) | ((b >> 16) << 32) | a
        if version == 1:
            timestamp = (timestamp - _GREGORIAN_OFFSET) & _MASK64

        parts = [f"version={version},"]
        if version <= 1:
            parts.append(f"timestamp={printftime(timestamp // 10000000)},")
            parts.append(f"mac={c & 0xFFFF:04x}{d:08x},")
        if version == 4:
            parts.append(
                f"randbits={self.ab & 0xFFFFFFFFFFFF0FFF:08x}"
                f"{self.cd & 0x3FFFFFFFFFFFFFFF:08x},"
            )
        if version == 0:
            parts.append(f"pid={c >> 16:04d},")
        if version == 1:
            parts.append(f"clock_seq={(c >> 16) & 0x3FFF:04d},")
        return "".join(parts)

    def base62(self) -> str:
        """Render as ``<ab>-<cd>`` with each half in base 62."""
        return f"{_to_base62(self.ab)}-{_to_base62(self.cd)}"


def _to_base62(value: int) -> str:
    digits = []
    while True:
        value, rem = divmod(value, 62)
        digits.append(_BASE62[rem])
        if value == 0:
            break
    return "".join(reversed(digits))


def _base62_digit(ch: str) -> int:
    code = ord(ch)
    if ch >= "a":
        return code - ord("a") + 36
    if ch >= "A":
        return code - ord("A") + 10
    return code - ord("0")


def _from_base62(part: str, first_if_empty: str) -> int:
    chars = part or first_if_empty
    result = _base62_digit(chars[0]) & _MASK64
    for ch in chars[1:]:
        result = (62 * result + _base62_digit(ch)) & _MASK64
    return result


class _HexReader:
    """Reads whitespace-separated hex numbers and single characters."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def _skip_space(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos] in _WHITESPACE:
            self.pos += 1

    def number(self) -> int | None:
        self._skip_space()
        text = self.text
        pos = self.pos
        negative = False
        if pos < len(text) and text[pos] in "+-":
            negative = text[pos] == "-"
            pos += 1
        if (
            pos + 2 < len(text) + 1
            and text[pos : pos + 2] in ("0x", "0X")
            and pos + 2 < len(text)
            and text[pos + 2] in _HEX
        ):
            pos += 2
        start = pos
        while pos < len(text) and text[pos] in _HEX:
            pos += 1
        if pos == start:
            return None
        value = int(text[start:pos], 16)
        if value > _MASK64:
            return None
        self.pos = pos
        return (-value) & _MASK64 if negative else value

    def separator(self) -> bool:
        self._skip_space()
        if self.pos >= len(self.text):
            return False
        self.pos += 1
        return True

    @property
    def at_end(self) -> bool:
        return self.pos >= len(self.text)


def _rebuild_hex(text: str) -> Uuid:
    reader = _HexReader(text)
    values = []
    for index in range(5):
        if index and not reader.separator():
            return Uuid()
        value = reader.number()
        if value is None:
            return Uuid()
        values.append(value)
    if not reader.at_end:
        return Uuid()
    a, b, c, d, e = values
    return Uuid(
        ((a << 32) | (b << 16) | c) & _MASK64,
        ((d << 48) | e) & _MASK64,
    )


def rebuild(text: str) -> Uuid:
    """Parse either the dashed hex form or the single-dash base62 form.

    Text that matches neither yields the all-zero identifier.
    """
    idx = text.find("-")
    if idx == -1:
        return Uuid()
    if text.find("-", idx + 1) == -1:
        return Uuid(
            _from_base62(text[:idx], "-"),
            _from_base62(text[idx + 1 :], "\0"),
        )
    return _rebuild_hex(text)