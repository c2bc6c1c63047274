import errno
from enum import Enum


class DiskStatus(Enum):
    """
    Outcome of the most recent Disk operation.

    Disk operations never raise for these; they return False, bump the
    matching error counter and leave the status in Disk.last_error.
    """

    OK = "ok"
    OUT_OF_BOUNDS = "out of bounds"
    READ_ONLY = "read-only"
    UNUSABLE = "unusable"
    INVALID_ARGUMENT = "invalid argument"
    IO_ERROR = "i/o error"


class DiskIOError(OSError):
    """
    Raised by the export layer when a Disk operation fails.

    Block-device servers report failures through errno, so this carries one
    derived from the DiskStatus that caused it.
    """

    def __init__(self, status: DiskStatus, message: str, write: bool = False):
        super().__init__(status_to_errno(status, write), message)
        self.status = status


def status_to_errno(status: DiskStatus, write: bool = False) -> int:
    """
    Map a failed DiskStatus onto the errno a block device would report.
    Out-of-range writes report ENOSPC, out-of-range reads EINVAL.
    """
    if status is DiskStatus.OUT_OF_BOUNDS:
        return errno.ENOSPC if write else errno.EINVAL
    if status is DiskStatus.READ_ONLY:
        return errno.EROFS
    if status is DiskStatus.INVALID_ARGUMENT:
        return errno.EINVAL
    return errno.EIO
