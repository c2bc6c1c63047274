"""
Unique per-disk serial numbers.

Every Disk takes one serial from a SerialGenerator when it is constructed.
The serial models the identity of the disk instance, so it is drawn from a
counter and never from the specifier or the image contents: two disks backed
by identical files still get different serials.
"""

import itertools
import threading


class SerialGenerator:
    """
    Thread-safe source of process-unique serial strings.

    Values are "<prefix><counter>" with the counter rendered as fixed-width
    upper-case hex, e.g. "VDSK00000001". A generator never returns the same
    value twice; disks built from the same generator therefore never share
    a serial, even after earlier disks were closed.
    """

    def __init__(self, prefix: str = "VDSK", start: int = 1, width: int = 8):
        self.prefix = prefix
        self.width = width
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    def next(self) -> str:
        with self._lock:
            value = next(self._counter)
        return f"{self.prefix}{value:0{self.width}X}"


# Process-wide generator used by Disk unless another one is injected.
default_serial_generator = SerialGenerator()
