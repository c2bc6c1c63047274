from vdisk.storage import Storage


class NullStorage(Storage):
    """
    Backing store with no medium at all.

    Used for the "nothing" specifier and as the fallback when an image file
    cannot be opened. Capacity is always 0, so the only requests that reach
    it are zero-length reads.
    """

    writable = False
    supports_holes = False

    @property
    def capacity(self) -> int:
        return 0

    def read_at(self, offset: int, length: int) -> bytes:
        return b""

    def write_at(self, offset: int, data) -> None:
        pass

    def discard(self, offset: int, length: int) -> None:
        pass
