"""
Disk specifier parsing and backing store selection.

A specifier string picks the medium behind a Disk:

    ramdisk:<N>[KiB|MiB|GiB]   zero-filled in-memory disk of N bytes
    nothing                    disk with zero capacity
    <path>                     existing flat image file, size unchanged

open_storage() never raises. Anything that cannot be turned into a usable
backend (bad ramdisk size, missing file, permission denied) comes back as a
NullStorage, so callers detect a missing disk by its capacity of 0.
"""

import logging
from typing import NamedTuple, Optional

from vdisk.file_storage import FileStorage
from vdisk.memory_storage import MemoryStorage
from vdisk.null_storage import NullStorage
from vdisk.storage import Storage
from vdisk.util import parse_size

logger = logging.getLogger(__name__)

RAMDISK_PREFIX = "ramdisk:"
NOTHING = "nothing"

KIND_RAMDISK = "ramdisk"
KIND_NOTHING = "nothing"
KIND_FILE = "file"


class DiskSpec(NamedTuple):
    kind: str
    size: Optional[int] = None
    path: Optional[str] = None


def parse_specifier(specifier: str) -> DiskSpec:
    """
    Split a specifier into its kind and argument.

    Raises:
        ValueError: for a ramdisk specifier whose size does not parse.
    """
    if specifier.startswith(RAMDISK_PREFIX):
        size = parse_size(specifier[len(RAMDISK_PREFIX):])
        return DiskSpec(KIND_RAMDISK, size=size)

    if specifier == NOTHING:
        return DiskSpec(KIND_NOTHING)

    return DiskSpec(KIND_FILE, path=specifier)


def open_file(path: str, allow_readonly_fallback: bool = True) -> Storage:
    """
    Open an image file read-write, falling back to read-only if allowed.
    Returns NullStorage if neither works.
    """
    try:
        return FileStorage(path)
    except (OSError, ValueError) as e:
        if not allow_readonly_fallback:
            logger.warning("cannot open %s read-write (%s), disk unusable", path, e)
            return NullStorage()
        logger.info("cannot open %s read-write (%s), retrying read-only", path, e)

    try:
        storage = FileStorage(path, readonly=True)
    except (OSError, ValueError) as e:
        logger.warning("cannot open %s (%s), disk unusable", path, e)
        return NullStorage()

    logger.warning("%s opened read-only", path)
    return storage


def open_storage(specifier: str, allow_readonly_fallback: bool = True) -> Storage:
    """
    Build the backing store described by `specifier`.
    """
    try:
        spec = parse_specifier(specifier)
    except ValueError as e:
        logger.warning("invalid disk specifier %r (%s), disk unusable", specifier, e)
        return NullStorage()

    if spec.kind == KIND_RAMDISK:
        try:
            return MemoryStorage(spec.size)
        except (MemoryError, OverflowError):
            logger.warning("cannot allocate ramdisk of %d bytes, disk unusable", spec.size)
            return NullStorage()

    if spec.kind == KIND_NOTHING:
        return NullStorage()

    return open_file(spec.path, allow_readonly_fallback)
