"""Conversions between UTF-32 and UTF-16 code units, and UTF-8 validation.

Each conversion works over a sequence of integer code units and a target of
limited ``capacity``. It stops at the first problem, like a bounded buffer
would, and reports how far it got through the source.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum, IntEnum

UNI_REPLACEMENT_CHAR = 0x0000FFFD
UNI_MAX_BMP = 0x0000FFFF
UNI_MAX_UTF16 = 0x0010FFFF
UNI_MAX_UTF32 = 0x7FFFFFFF
UNI_MAX_LEGAL_UTF32 = 0x0010FFFF

_SUR_HIGH_START = 0xD800
_SUR_HIGH_END = 0xDBFF
_SUR_LOW_START = 0xDC00
_SUR_LOW_END = 0xDFFF
_HALF_SHIFT = 10
_HALF_BASE = 0x0010000
_HALF_MASK = 0x3FF

# Number of trailing bytes expected after a UTF-8 lead byte.
_TRAILING_BYTES_FOR_UTF8 = bytes(
    [0] * 192 + [1] * 32 + [2] * 16 + [3] * 8 + [4] * 4 + [5] * 4
)

# Values subtracted from an accumulated UTF-8 sequence, indexed by trailing bytes.
_OFFSETS_FROM_UTF8 = (
    0x00000000,
    0x00003080,
    0x000E2080,
    0x03C82080,
    0xFA082080,
    0x82082080,
)

# Marker OR-ed into the first byte of a UTF-8 sequence, indexed by its length.
_FIRST_BYTE_MARK = (0x00, 0x00, 0xC0, 0xE0, 0xF0, 0xF8, 0xFC)


class ConversionResult(IntEnum):
    """Why a conversion stopped."""

    OK = 0
    SOURCE_EXHAUSTED = 1
    TARGET_EXHAUSTED = 2
    SOURCE_ILLEGAL = 3


class ConversionFlags(Enum):
    """Strict conversion rejects isolated surrogates; lenient passes or replaces them."""

    STRICT = 0
    LENIENT = 1


@dataclass(frozen=True)
class Conversion:
    """Outcome of a conversion: the status, the units written, the units consumed."""

    result: ConversionResult
    output: tuple[int, ...]
    consumed: int

    @property
    def ok(self) -> bool:
        return self.result is ConversionResult.OK


def _limit(capacity: int | None) -> float:
    if capacity is None:
        return math.inf
    if capacity < 0:
        raise ValueError("capacity must not be negative")
    return capacity


def _check_units(source: Sequence[int], maximum: int, kind: str) -> None:
    for unit in source:
        if not 0 <= unit <= maximum:
            raise ValueError(f"{unit!r} is not a valid {kind} code unit")


def _is_surrogate(ch: int) -> bool:
    return _SUR_HIGH_START <= ch <= _SUR_LOW_END


def _is_legal_utf8(source: Sequence[int], length: int) -> bool:
    """Check one UTF-8 sequence whose ``length`` came from its lead byte."""
    if length not in (1, 2, 3, 4):
        return False
    first = source[0]
    if length >= 4 and not 0x80 <= source[3] <= 0xBF:
        return False
    if length >= 3 and not 0x80 <= source[2] <= 0xBF:
        return False
    if length >= 2:
        second = source[1]
        if second > 0xBF:
            return False
        if first == 0xE0:
            if second < 0xA0:
                return False
        elif first == 0xED:
            if second > 0x9F:
                return False
        elif first == 0xF0:
            if second < 0x90:
                return False
        elif first == 0xF4:
            if second > 0x8F:
                return False
        elif second < 0x80:
            return False
    if 0x80 <= first < 0xC2:
        return False
    return first <= 0xF4


def is_legal_utf8_sequence(source: bytes | Sequence[int]) -> bool:
    """Tell whether ``source`` starts with one complete, legal UTF-8 sequence."""
    if not source:
        return False
    _check_units(source, 0xFF, "UTF-8")
    length = _TRAILING_BYTES_FOR_UTF8[source[0]] + 1
    if length > len(source):
        return False
    return _is_legal_utf8(source, length)


def convert_utf32_to_utf16(
    source: Sequence[int],
    capacity: int | None = None,
    flags: ConversionFlags = ConversionFlags.STRICT,
) -> Conversion:
    """Convert UTF-32 code units to UTF-16, writing at most ``capacity`` units."""
    _check_units(source, 0xFFFFFFFF, "UTF-32")
    limit = _limit(capacity)
    strict = flags is ConversionFlags.STRICT
    out: list[int] = []
    result = ConversionResult.OK
    pos = 0
    while pos < len(source):
        if len(out) >= limit:
            result = ConversionResult.TARGET_EXHAUSTED
            break
        ch = source[pos]
        pos += 1
        if ch <= UNI_MAX_BMP:
            if _is_surrogate(ch):
                if strict:
                    pos -= 1
                    result = ConversionResult.SOURCE_ILLEGAL
                    break
                out.append(UNI_REPLACEMENT_CHAR)
            else:
                out.append(ch)
        elif ch > UNI_MAX_LEGAL_UTF32:
            if strict:
                result = ConversionResult.SOURCE_ILLEGAL
            else:
                out.append(UNI_REPLACEMENT_CHAR)
        else:
            if len(out) + 1 >= limit:
                pos -= 1
                result = ConversionResult.TARGET_EXHAUSTED
                break
            ch -= _HALF_BASE
            out.append((ch >> _HALF_SHIFT) + _SUR_HIGH_START)
            out.append((ch & _HALF_MASK) + _SUR_LOW_START)
    return Conversion(result, tuple(out), pos)


def _read_utf16(
    source: Sequence[int], pos: int, strict: bool
) -> tuple[int, int, ConversionResult]:
    """Read one character at ``pos``; return it, the next position and a status.

    On failure the returned position is where the source should be left.
    """
    ch = source[pos]
    pos += 1
    if _SUR_HIGH_START <= ch <= _SUR_HIGH_END:
        if pos < len(source):
            ch2 = source[pos]
            if _SUR_LOW_START <= ch2 <= _SUR_LOW_END:
                ch = ((ch - _SUR_HIGH_START) << _HALF_SHIFT) + (
                    ch2 - _SUR_LOW_START
                ) + _HALF_BASE
                pos += 1
            elif strict:
                return ch, pos - 1, ConversionResult.SOURCE_ILLEGAL
        else:
            return ch, pos - 1, ConversionResult.SOURCE_EXHAUSTED
    elif strict and _SUR_LOW_START <= ch <= _SUR_LOW_END:
        return ch, pos - 1, ConversionResult.SOURCE_ILLEGAL
    return ch, pos, ConversionResult.OK


def convert_utf16_to_utf32(
    source: Sequence[int],
    capacity: int | None = None,
    flags: ConversionFlags = ConversionFlags.STRICT,
) -> Conversion:
    """Convert UTF-16 code units to UTF-32, writing at most ``capacity`` units."""
    _check_units(source, 0xFFFF, "UTF-16")
    limit = _limit(capacity)
    strict = flags is ConversionFlags.STRICT
    out: list[int] = []
    result = ConversionResult.OK
    pos = 0
    while pos < len(source):
        old_pos = pos
        ch, pos, status = _read_utf16(source, pos, strict)
        if status is not ConversionResult.OK:
            result = status
            break
        if len(out) >= limit:
            pos = old_pos
            result = ConversionResult.TARGET_EXHAUSTED
            break
        out.append(ch)
    return Conversion(result, tuple(out), pos)