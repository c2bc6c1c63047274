import ctypes
import errno
import logging
import os
import stat
import sys

from vdisk.storage import Storage
from vdisk.util import zero_chunks

logger = logging.getLogger(__name__)

# linux/falloc.h
FALLOC_FL_KEEP_SIZE = 0x01
FALLOC_FL_PUNCH_HOLE = 0x02

# errno values meaning the filesystem cannot punch holes.
_NO_HOLES = (errno.EOPNOTSUPP, errno.ENOSYS)


def _load_fallocate():
    """
    Look up the libc fallocate() entry point, or None where there is none.
    The os module only exposes posix_fallocate(), which cannot punch holes.
    """
    if not sys.platform.startswith("linux"):
        return None

    try:
        libc = ctypes.CDLL(None, use_errno=True)
    except OSError:
        return None

    func = getattr(libc, "fallocate64", None) or getattr(libc, "fallocate", None)
    if func is None:
        return None

    func.argtypes = [ctypes.c_int, ctypes.c_int, ctypes.c_int64, ctypes.c_int64]
    func.restype = ctypes.c_int
    return func


_fallocate = _load_fallocate()


class FileStorage(Storage):
    """
    Flat image file backed block storage.

    The disk is the byte range [0, size) of an existing file:

        offset N of the disk == offset N of the file

    The file is opened once and accessed with pread()/pwrite(), so there is
    no shared file position and no user-space buffering. Its size is taken
    at open time and never changed: writes stay inside it and discard()
    punches holes with FALLOC_FL_KEEP_SIZE.

    Where hole punching is not available (non-Linux, or a filesystem that
    answers EOPNOTSUPP) discard() writes zeros instead.
    """

    def __init__(self, path: str, readonly: bool = False):
        """
        Args:
            path: Existing image file (or block device) to open.
            readonly: Open with O_RDONLY instead of O_RDWR.

        Raises:
            OSError: if the file cannot be opened with the requested access,
                     or names a directory.
        """
        self.path = path
        self.writable = not readonly

        flags = os.O_RDONLY if readonly else os.O_RDWR
        flags |= getattr(os, "O_BINARY", 0)
        self.fd = os.open(path, flags)

        try:
            if stat.S_ISDIR(os.fstat(self.fd).st_mode):
                raise IsADirectoryError(f"{path} is a directory")
            # lseek() rather than st_size so block devices report their size.
            self._capacity = os.lseek(self.fd, 0, os.SEEK_END)
        except OSError:
            os.close(self.fd)
            self.fd = None
            raise

        self.supports_holes = self.writable and _fallocate is not None

    @property
    def capacity(self) -> int:
        return self._capacity

    def read_at(self, offset: int, length: int) -> bytes:
        """
        Read exactly `length` bytes at `offset`.

        A short read means the file shrank underneath us; that is reported
        as an I/O error rather than padded, since the Disk promises
        all-or-nothing reads.
        """
        parts = []
        done = 0
        while done < length:
            chunk = os.pread(self.fd, length - done, offset + done)
            if not chunk:
                raise OSError(
                    f"short read from {self.path}: expected {length} bytes "
                    f"at offset {offset}, got {done}"
                )
            parts.append(chunk)
            done += len(chunk)

        return b"".join(parts)

    def write_at(self, offset: int, data) -> None:
        view = memoryview(data).cast("B")
        done = 0
        while done < view.nbytes:
            done += os.pwrite(self.fd, view[done:], offset + done)

    def discard(self, offset: int, length: int) -> None:
        if length == 0:
            return

        if self.supports_holes:
            mode = FALLOC_FL_PUNCH_HOLE | FALLOC_FL_KEEP_SIZE
            if _fallocate(self.fd, mode, offset, length) == 0:
                return

            err = ctypes.get_errno()
            if err not in _NO_HOLES:
                raise OSError(err, os.strerror(err), self.path)

            logger.info("%s: hole punching not supported, writing zeros", self.path)
            self.supports_holes = False

        for rel, size in zero_chunks(length):
            self.write_at(offset + rel, bytes(size))

    def flush(self) -> None:
        if self.fd is not None and self.writable:
            os.fsync(self.fd)

    def close(self) -> None:
        """
        Flush then close the descriptor. Safe to call more than once.
        """
        if self.fd is None:
            return

        try:
            self.flush()
        finally:
            os.close(self.fd)
            self.fd = None
            self._capacity = 0

