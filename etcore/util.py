"""Small string, randomness and socket helpers shared across the package."""

from __future__ import annotations

import os
import secrets
import select
import string
import tempfile

_ALPHANUM = string.digits + string.ascii_uppercase + string.ascii_lowercase


def split(text: str, delim: str) -> list[str]:
    """Split ``text`` on ``delim``; a trailing empty field is dropped.

    An empty string yields an empty list. Empty fields in the middle or at
    the start are kept.
    """
    if len(delim) != 1:
        raise ValueError("delimiter must be a single character")
    parts = text.split(delim)
    if parts[-1] == "":
        parts.pop()
    return parts


def replace_first(text: str, old: str, new: str) -> tuple[str, bool]:
    """Replace the first occurrence of ``old``; report whether one was found."""
    if text.find(old) == -1:
        return text, False
    return text.replace(old, new, 1), True


def replace_all(text: str, old: str, new: str) -> tuple[str, int]:
    """Replace every non-overlapping ``old`` left to right; return the count.

    An empty ``old`` replaces nothing.
    """
    if not old:
        return text, 0
    count = text.count(old)
    return text.replace(old, new), count


def gen_random_alphanum(length: int) -> str:
    """Return ``length`` cryptographically random characters from [0-9A-Za-z]."""
    if length < 0:
        raise ValueError("length must not be negative")
    return "".join(secrets.choice(_ALPHANUM) for _ in range(length))


def temp_directory() -> str:
    """Return the system temporary directory, always ending in a separator."""
    if os.name == "posix":
        return "/tmp/"
    directory = tempfile.gettempdir()
    if not directory.endswith(os.sep):
        directory += os.sep
    return directory


def wait_on_socket_data(fd: int) -> bool:
    """Wait up to one second for ``fd`` to become readable."""
    readable, _, _ = select.select([fd], [], [], 1.0)
    return bool(readable)