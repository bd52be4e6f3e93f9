"""Conversions between UTF-8 bytes and UTF-16 or UTF-32 code units.

Like the conversions in :mod:`etcore.convertutf`, each one writes into a
target of limited ``capacity``, stops at the first problem and reports how
far it got through the source.
"""

from __future__ import annotations

from collections.abc import Sequence

from etcore.convertutf import (
    _FIRST_BYTE_MARK,
    _HALF_BASE,
    _HALF_MASK,
    _HALF_SHIFT,
    _OFFSETS_FROM_UTF8,
    _SUR_HIGH_START,
    _SUR_LOW_START,
    _TRAILING_BYTES_FOR_UTF8,
    UNI_MAX_BMP,
    UNI_MAX_LEGAL_UTF32,
    UNI_MAX_UTF16,
    UNI_REPLACEMENT_CHAR,
    Conversion,
    ConversionFlags,
    ConversionResult,
    _check_units,
    _is_legal_utf8,
    _is_surrogate,
    _limit,
    _read_utf16,
)

_MASK32 = 0xFFFFFFFF


def _utf8_length(ch: int) -> tuple[int, int]:
    """Return the number of bytes ``ch`` needs and the character to encode."""
    if ch < 0x80:
        return 1, ch
    if ch < 0x800:
        return 2, ch
    if ch < 0x10000:
        return 3, ch
    if ch < 0x110000:
        return 4, ch
    return 3, UNI_REPLACEMENT_CHAR


def _encode_utf8(ch: int, length: int) -> list[int]:
    """Encode ``ch`` in exactly ``length`` bytes."""
    trailing = []
    for _ in range(length - 1):
        trailing.append((ch | 0x80) & 0xBF)
        ch >>= 6
    first = (ch | _FIRST_BYTE_MARK[length]) & 0xFF
    return [first, *reversed(trailing)]


def _decode_utf8(source: Sequence[int], pos: int, extra: int) -> int:
    """Accumulate the ``extra + 1`` bytes at ``pos`` into one character."""
    ch = 0
    for offset in range(extra + 1):
        if offset:
            ch = (ch << 6) & _MASK32
        ch = (ch + source[pos + offset]) & _MASK32
    return (ch - _OFFSETS_FROM_UTF8[extra]) & _MASK32


def convert_utf16_to_utf8(
    source: Sequence[int],
    capacity: int | None = None,
    flags: ConversionFlags = ConversionFlags.STRICT,
) -> Conversion:
    """Convert UTF-16 code units to UTF-8 bytes, writing at most ``capacity``."""
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
        length, ch = _utf8_length(ch)
        if len(out) + length > limit:
            pos = old_pos
            result = ConversionResult.TARGET_EXHAUSTED
            break
        out.extend(_encode_utf8(ch, length))
    return Conversion(result, tuple(out), pos)


def _convert_from_utf8(
    source: bytes | Sequence[int],
    capacity: int | None,
    flags: ConversionFlags,
    to_utf16: bool,
) -> Conversion:
    _check_units(source, 0xFF, "UTF-8")
    limit = _limit(capacity)
    strict = flags is ConversionFlags.STRICT
    out: list[int] = []
    result = ConversionResult.OK
    pos = 0
    while pos < len(source):
        extra = _TRAILING_BYTES_FOR_UTF8[source[pos]]
        if pos + extra >= len(source):
            result = ConversionResult.SOURCE_EXHAUSTED
            break
        if not _is_legal_utf8(source[pos : pos + extra + 1], extra + 1):
            result = ConversionResult.SOURCE_ILLEGAL
            break
        start = pos
        ch = _decode_utf8(source, pos, extra)
        pos += extra + 1

        if len(out) >= limit:
            pos = start
            result = ConversionResult.TARGET_EXHAUSTED
            break

        if to_utf16:
            if ch <= UNI_MAX_BMP:
                if _is_surrogate(ch):
                    if strict:
                        pos = start
                        result = ConversionResult.SOURCE_ILLEGAL
                        break
                    out.append(UNI_REPLACEMENT_CHAR)
                else:
                    out.append(ch)
            elif ch > UNI_MAX_UTF16:
                if strict:
                    pos = start
                    result = ConversionResult.SOURCE_ILLEGAL
                    break
                out.append(UNI_REPLACEMENT_CHAR)
            else:
                if len(out) + 1 >= limit:
                    pos = start
                    result = ConversionResult.TARGET_EXHAUSTED
                    break
                ch -= _HALF_BASE
                out.append((ch >> _HALF_SHIFT) + _SUR_HIGH_START)
                out.append((ch & _HALF_MASK) + _SUR_LOW_START)
        else:
            if ch <= UNI_MAX_LEGAL_UTF32:
                if _is_surrogate(ch):
                    if strict:
                        pos = start
                        result = ConversionResult.SOURCE_ILLEGAL
                        break
                    out.append(UNI_REPLACEMENT_CHAR)
                else:
                    out.append(ch)
            else:
                result = ConversionResult.SOURCE_ILLEGAL
                out.append(UNI_REPLACEMENT_CHAR)
    return Conversion(result, tuple(out), pos)


def convert_utf8_to_utf16(
    source: bytes | Sequence[int],
    capacity: int | None = None,
    flags: ConversionFlags = ConversionFlags.STRICT,
) -> Conversion:
    """Convert UTF-8 bytes to UTF-16 code units, writing at most ``capacity``."""
    return _convert_from_utf8(source, capacity, flags, to_utf16=True)


def convert_utf32_to_utf8(
    source: Sequence[int],
    capacity: int | None = None,
    flags: ConversionFlags = ConversionFlags.STRICT,
) -> Conversion:
    """Convert UTF-32 code units to UTF-8 bytes, writing at most ``capacity``.

    Values beyond U+10FFFF become the replacement character and mark the
    result as illegal, but conversion carries on past them.
    """
    _check_units(source, _MASK32, "UTF-32")
    limit = _limit(capacity)
    strict = flags is ConversionFlags.STRICT
    out: list[int] = []
    result = ConversionResult.OK
    pos = 0
    while pos < len(source):
        ch = source[pos]
        pos += 1
        if strict and _is_surrogate(ch):
            pos -= 1
            result = ConversionResult.SOURCE_ILLEGAL
            break
        if ch > UNI_MAX_LEGAL_UTF32:
            length, ch = 3, UNI_REPLACEMENT_CHAR
            result = ConversionResult.SOURCE_ILLEGAL
        else:
            length, ch = _utf8_length(ch)
        if len(out) + length > limit:
            pos -= 1
            result = ConversionResult.TARGET_EXHAUSTED
            break
        out.extend(_encode_utf8(ch, length))
    return Conversion(result, tuple(out), pos)


def convert_utf8_to_utf32(
    source: bytes | Sequence[int],
    capacity: int | None = None,
    flags: ConversionFlags = ConversionFlags.STRICT,
) -> Conversion:
    """Convert UTF-8 bytes to UTF-32 code units, writing at most ``capacity``."""
    return _convert_from_utf8(source, capacity, flags, to_utf16=False)