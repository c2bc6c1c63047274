from vdisk.storage import Storage


class MemoryStorage(Storage):
    """
    In-memory (ramdisk) block storage.

    The whole disk is one zero-initialised bytearray allocated up front.
    A plain buffer has no way to represent holes, so discard() falls back to
    zero-filling the range.
    """

    writable = True
    supports_holes = False

    def __init__(self, size: int):
        """
        Args:
            size: Capacity of the ramdisk in bytes.
        """
        if size < 0:
            raise ValueError(f"ramdisk size must not be negative; got {size}")

        self._buffer = bytearray(size)

    @property
    def capacity(self) -> int:
        return len(self._buffer)

    def read_at(self, offset: int, length: int) -> bytes:
        return bytes(self._buffer[offset:offset + length])

    def write_at(self, offset: int, data) -> None:
        view = memoryview(data).cast("B")
        self._buffer[offset:offset + view.nbytes] = view

    def discard(self, offset: int, length: int) -> None:
        self._buffer[offset:offset + length] = bytes(length)

    def write_zero(self, offset: int, length: int, may_unmap: bool = False) -> None:
        self._buffer[offset:offset + length] = bytes(length)

    def close(self) -> None:
        # Drop the buffer; capacity reads 0 afterwards.
        self._buffer = bytearray()
