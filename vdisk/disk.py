"""
Virtual disk controller.

This module is the core a simulated storage controller (SD card, virtio-blk,
...) talks to. It does NOT model any controller protocol itself; instead it
implements cursor-based seek/read/write/discard operations over a flat
virtual disk backed by a Storage implementation.

Key responsibilities:
- Pick the backing store from a specifier string (see vdisk.specifier).
- Keep the cursor inside [0, capacity] at all times.
- Perform strict, all-or-nothing bounds and permission checks.
- Count every request in the disk's DiskStats.

Operations return True/False and never raise for disk-level failures; the
reason for the latest failure is kept in Disk.last_error.
"""

import logging
from typing import Optional

from vdisk.errors import DiskStatus
from vdisk.null_storage import NullStorage
from vdisk.serial import SerialGenerator, default_serial_generator
from vdisk.specifier import open_storage
from vdisk.stats import DiskStats, Op
from vdisk.util import range_in_bounds

logger = logging.getLogger(__name__)


class Disk:
    """
    A virtual disk.

    The disk exposes:
        - capacity() / pos() / remaining()
        - seek(offset) -> bool
        - read(buffer, length) -> bool
        - write(buffer, length) -> bool
        - discard(length) -> bool
        - write_zero(length, may_unmap) -> bool

    It owns exactly one Storage backend for its whole life and releases it
    in close().
    """

    def __init__(
            self,
            name: str,
            specifier: str,
            allow_readonly_fallback: bool = True,
            serials: Optional[SerialGenerator] = None,
    ) -> None:
        """
        Args:
            name: Caller-chosen disk name, only used in log messages.
            specifier: "ramdisk:<size>", "nothing" or an image file path.
            allow_readonly_fallback: Open the image read-only if read-write
                                     access is refused.
            serials: Generator to draw the serial from. Defaults to the
                     process-wide generator.
        """
        self.name = name
        self.specifier = specifier
        self.last_error = DiskStatus.OK

        self._storage = open_storage(specifier, allow_readonly_fallback)
        self._pos = 0
        self._stats = DiskStats()
        self._serial = (serials or default_serial_generator).next()

        logger.info("%s: %r capacity=%d writable=%s serial=%s", name,
                    specifier, self.capacity(), self.writable, self._serial)

    # ---------------------------------------------------------------------
    # Queries
    # ---------------------------------------------------------------------

    @property
    def serial(self) -> str:
        return self._serial

    @property
    def stats(self) -> DiskStats:
        """
        A copy of the counters; mutating it does not affect the disk.
        """
        return self._stats.snapshot()

    @property
    def writable(self) -> bool:
        return self._storage.writable

    @property
    def usable(self) -> bool:
        return not isinstance(self._storage, NullStorage)

    def capacity(self) -> int:
        return self._storage.capacity

    def pos(self) -> int:
        return self._pos

    def remaining(self) -> int:
        return self.capacity() - self._pos

    # ---------------------------------------------------------------------
    # Operations
    # ---------------------------------------------------------------------

    def seek(self, offset: int) -> bool:
        if not range_in_bounds(offset, 0, self.capacity()):
            return self._fail(Op.SEEK, DiskStatus.OUT_OF_BOUNDS,
                              "seek to %d beyond capacity %d", offset, self.capacity())

        self._pos = offset
        return self._done(Op.SEEK)

    def read(self, buffer, length: Optional[int] = None) -> bool:
        """
        Read `length` bytes (default: len(buffer)) at the cursor into
        `buffer`, a writable bytes-like object, and advance the cursor.
        """
        view = memoryview(buffer).cast("B")
        if length is None:
            length = view.nbytes

        if not self._check_range(Op.READ, length):
            return False

        if view.readonly or view.nbytes < length:
            return self._fail(Op.READ, DiskStatus.INVALID_ARGUMENT,
                              "read buffer cannot take %d bytes", length)

        try:
            data = self._storage.read_at(self._pos, length)
        except OSError as e:
            return self._io_error(Op.READ, e)

        view[:length] = data
        self._pos += length
        return self._done(Op.READ, length)

    def read_bytes(self, length: int) -> Optional[bytes]:
        """
        Like read(), but returns the data (None on failure).
        """
        # Out-of-range lengths still go through read() to be counted, but
        # never size the buffer.
        if range_in_bounds(self._pos, length, self.capacity()):
            buffer = bytearray(length)
        else:
            buffer = bytearray()
        if not self.read(buffer, length):
            return None
        return bytes(buffer)

    def write(self, buffer, length: Optional[int] = None) -> bool:
        """
        Write `length` bytes (default: len(buffer)) from `buffer` at the
        cursor and advance the cursor.
        """
        view = memoryview(buffer).cast("B")
        if length is None:
            length = view.nbytes

        if not self._check_writable(Op.WRITE) or not self._check_range(Op.WRITE, length):
            return False

        if view.nbytes < length:
            return self._fail(Op.WRITE, DiskStatus.INVALID_ARGUMENT,
                              "write buffer holds %d of %d bytes", view.nbytes, length)

        try:
            self._storage.write_at(self._pos, view[:length])
        except OSError as e:
            return self._io_error(Op.WRITE, e)

        self._pos += length
        return self._done(Op.WRITE, length)

    def discard(self, length: int) -> bool:
        """
        De-allocate [pos, pos + length). The range reads back as zeros.
        The cursor does not move.
        """
        if not self._check_writable(Op.DISCARD) or not self._check_range(Op.DISCARD, length):
            return False

        try:
            self._storage.discard(self._pos, length)
        except OSError as e:
            return self._io_error(Op.DISCARD, e)

        return self._done(Op.DISCARD)

    def write_zero(self, length: int, may_unmap: bool = False) -> bool:
        """
        Write `length` zero bytes at the cursor and advance the cursor.

        With `may_unmap` the backend may punch a hole instead of writing
        zeros. Either way this counts as a write request.
        """
        if not self._check_writable(Op.WRITE) or not self._check_range(Op.WRITE, length):
            return False

        try:
            self._storage.write_zero(self._pos, length, may_unmap)
        except OSError as e:
            return self._io_error(Op.WRITE, e)

        self._pos += length
        return self._done(Op.WRITE, length)

    def flush(self) -> bool:
        """
        Push written data to stable storage. Not counted in the stats.
        """
        try:
            self._storage.flush()
        except OSError as e:
            logger.warning("%s: flush failed: %s", self.name, e)
            self.last_error = DiskStatus.IO_ERROR
            return False

        self.last_error = DiskStatus.OK
        return True

    def close(self) -> None:
        """
        Flush and release the backing store. The disk then behaves like a
        "nothing" disk. Calling close() again does nothing.
        """
        storage, self._storage = self._storage, NullStorage()
        self._pos = 0
        try:
            storage.close()
        except OSError as e:
            logger.warning("%s: error closing backing store: %s", self.name, e)

    def __enter__(self) -> "Disk":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return (f"Disk({self.name!r}, {self.specifier!r}, "
                f"capacity={self.capacity()}, pos={self._pos})")

    # ---------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------

    def _check_writable(self, op: Op) -> bool:
        if self._storage.writable:
            return True
        if not self.usable:
            return self._fail(op, DiskStatus.UNUSABLE, "%s on unusable disk", op.value)
        return self._fail(op, DiskStatus.READ_ONLY, "%s on read-only disk", op.value)

    def _check_range(self, op: Op, length: int) -> bool:
        if range_in_bounds(self._pos, length, self.capacity()):
            return True
        return self._fail(op, DiskStatus.OUT_OF_BOUNDS,
                          "%s of %d bytes at %d beyond capacity %d",
                          op.value, length, self._pos, self.capacity())

    def _done(self, op: Op, nbytes: int = 0) -> bool:
        self._stats.record(op, True, nbytes)
        self.last_error = DiskStatus.OK
        return True

    def _fail(self, op: Op, status: DiskStatus, msg: str, *args) -> bool:
        logger.debug("%s: " + msg, self.name, *args)
        self._stats.record(op, False)
        self.last_error = status
        return False

    def _io_error(self, op: Op, error: OSError) -> bool:
        logger.warning("%s: %s at %d failed: %s", self.name, op.value, self._pos, error)
        self._stats.record(op, False)
        self.last_error = DiskStatus.IO_ERROR
        return False
