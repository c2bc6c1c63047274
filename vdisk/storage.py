from abc import ABC, abstractmethod

from vdisk.util import zero_chunks


class Storage(ABC):
    """
    Abstract backing store interface.

    A Storage backend holds the bytes of exactly one Disk. Implementations may
    keep them in memory (MemoryStorage), in a flat image file (FileStorage),
    or nowhere at all (NullStorage).

    Capacity is fixed once the backend is constructed; the disk layer never
    resizes it. All offsets passed in are absolute byte offsets and every
    range is already bounds-checked by the Disk before it reaches the
    backend, so implementations do not repeat those checks:

        0 <= offset and offset + length <= capacity

    Backends raise OSError when the operating system rejects an operation.
    The Disk turns that into a failed request.
    """

    # Set by subclasses. A backend that is not writable never sees
    # write_at(), discard() or write_zero() calls.
    writable: bool = False

    # True if discard() de-allocates instead of writing zeros.
    supports_holes: bool = False

    @property
    @abstractmethod
    def capacity(self) -> int:
        """
        Size of the backing store in bytes.
        """
        raise NotImplementedError

    @abstractmethod
    def read_at(self, offset: int, length: int) -> bytes:
        """
        Read exactly `length` bytes starting at `offset`.

        Returns:
            A bytes object of length `length`.
        """
        raise NotImplementedError

    @abstractmethod
    def write_at(self, offset: int, data) -> None:
        """
        Write all of `data` (any bytes-like object) starting at `offset`.
        """
        raise NotImplementedError

    @abstractmethod
    def discard(self, offset: int, length: int) -> None:
        """
        Mark [offset, offset + length) as unallocated. Afterwards the range
        reads back as zeros. Capacity does not change.
        """
        raise NotImplementedError

    def write_zero(self, offset: int, length: int, may_unmap: bool = False) -> None:
        """
        Fill [offset, offset + length) with zero bytes.

        When `may_unmap` is set and the backend can represent holes, the range
        is discarded instead of materialised; the content is the same either
        way.
        """
        if may_unmap and self.supports_holes:
            self.discard(offset, length)
            return

        for rel, size in zero_chunks(length):
            self.write_at(offset + rel, bytes(size))

    def flush(self) -> None:
        """
        Push written data to stable storage. No-op unless overridden.
        """

    def close(self) -> None:
        """
        Release the backend's resources. No-op unless overridden.
        """
