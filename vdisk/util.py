"""
Utility helpers for size parsing and range math used by the disk layer.
"""

import re

KiB = 1024
MiB = 1024 * KiB
GiB = 1024 * MiB

# Binary unit suffixes accepted in size strings ("8MiB", "4KiB", "512").
SIZE_UNITS = {
    "": 1,
    "KiB": KiB,
    "MiB": MiB,
    "GiB": GiB,
}

_SIZE_RE = re.compile(r"^\s*(0[xX][0-9a-fA-F]+|\d+)\s*([A-Za-z]*)\s*$")

# Chunk used when materialising runs of zero bytes on a file.
ZERO_CHUNK = 1 * MiB


def parse_size(text: str) -> int:
    """
    Parse a byte count with an optional binary unit suffix.

    Example:
        parse_size("8MiB")  = 8388608
        parse_size("4KiB")  = 4096
        parse_size("0xffe") = 4094

    Raises:
        ValueError: if the text is not a non-negative integer followed by
                    one of the SIZE_UNITS suffixes.
    """
    match = _SIZE_RE.match(text)
    if match is None:
        raise ValueError(f"invalid size: {text!r}")

    number, unit = match.groups()
    if unit not in SIZE_UNITS:
        raise ValueError(f"invalid size unit {unit!r} in {text!r}")

    base = 16 if number[:2] in ("0x", "0X") else 10
    return int(number, base) * SIZE_UNITS[unit]


def range_in_bounds(offset: int, length: int, capacity: int) -> bool:
    """
    Return True if [offset, offset + length) lies inside [0, capacity].

    A zero-length range at offset == capacity is in bounds.
    """
    if offset < 0 or length < 0:
        return False
    return offset + length <= capacity


def zero_chunks(length: int, chunk: int = ZERO_CHUNK):
    """
    Yield (relative_offset, size) pairs covering `length` bytes in pieces of
    at most `chunk` bytes.

    Example:
        length = 2.5 MiB, chunk = 1 MiB
        yields (0, 1 MiB), (1 MiB, 1 MiB), (2 MiB, 0.5 MiB)
    """
    done = 0
    while done < length:
        size = min(chunk, length - done)
        yield done, size
        done += size
