"""
Offset-addressed block device view of a Disk.

Block device servers (nbdkit, a virtio-blk model, ...) issue requests as
(offset, count) pairs and report failures through errno. DiskExport turns
each such request into seek() plus the matching Disk operation and raises
DiskIOError when the disk refuses it.
"""

from vdisk.disk import Disk
from vdisk.errors import DiskIOError


class DiskExport:
    """
    Callback-style wrapper around one Disk.

    Every request repositions the cursor first, so callers never need to
    track it. Requests are counted in the disk's stats like any other
    operation (one seek plus one read/write/discard).
    """

    def __init__(self, disk: Disk) -> None:
        self.disk = disk

    def get_size(self) -> int:
        return self.disk.capacity()

    def can_write(self) -> bool:
        return self.disk.writable

    def can_trim(self) -> bool:
        return self.disk.writable

    def can_zero(self) -> bool:
        return self.disk.writable

    def pread(self, count: int, offset: int) -> bytes:
        self._seek(offset, write=False)
        data = self.disk.read_bytes(count)
        if data is None:
            self._raise("read", count, offset, write=False)
        return data

    def pread_into(self, buf, offset: int) -> None:
        """
        Fill all of `buf` with data starting at `offset`.
        """
        self._seek(offset, write=False)
        if not self.disk.read(buf):
            self._raise("read", len(buf), offset, write=False)

    def pwrite(self, buf, offset: int) -> None:
        self._seek(offset, write=True)
        if not self.disk.write(buf):
            self._raise("write", len(buf), offset, write=True)

    def trim(self, count: int, offset: int) -> None:
        self._seek(offset, write=True)
        if not self.disk.discard(count):
            self._raise("trim", count, offset, write=True)

    def zero(self, count: int, offset: int, may_trim: bool = False) -> None:
        self._seek(offset, write=True)
        if not self.disk.write_zero(count, may_trim):
            self._raise("zero", count, offset, write=True)

    def flush(self) -> None:
        if not self.disk.flush():
            raise DiskIOError(self.disk.last_error, f"{self.disk.name}: flush failed",
                              write=True)

    def _seek(self, offset: int, write: bool) -> None:
        if not self.disk.seek(offset):
            raise DiskIOError(
                self.disk.last_error,
                f"{self.disk.name}: offset {offset} beyond capacity {self.disk.capacity()}",
                write=write,
            )

    def _raise(self, what: str, count: int, offset: int, write: bool) -> None:
        status = self.disk.last_error
        raise DiskIOError(
            status,
            f"{self.disk.name}: {what} of {count} bytes at {offset} failed ({status.value})",
            write=write,
        )
