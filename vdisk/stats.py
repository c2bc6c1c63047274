import copy
from dataclasses import asdict, dataclass
from enum import Enum


class Op(Enum):
    """
    Request categories counted by DiskStats.
    write_zero() is counted as WRITE.
    """

    READ = "read"
    WRITE = "write"
    SEEK = "seek"
    DISCARD = "discard"


@dataclass
class DiskStats:
    """
    Per-disk request, byte and error counters.

    Counters only ever grow. num_req and num_err are derived from the
    per-category counters, so

        num_req == num_read_req + num_write_req + num_seek_req + num_discard_req
        num_err == num_read_err + num_write_err + num_seek_err + num_discard_err

    always hold.
    """

    num_read_req: int = 0
    num_write_req: int = 0
    num_seek_req: int = 0
    num_discard_req: int = 0

    num_read_err: int = 0
    num_write_err: int = 0
    num_seek_err: int = 0
    num_discard_err: int = 0

    num_bytes_read: int = 0
    num_bytes_written: int = 0

    @property
    def num_req(self) -> int:
        return (self.num_read_req + self.num_write_req
                + self.num_seek_req + self.num_discard_req)

    @property
    def num_err(self) -> int:
        return (self.num_read_err + self.num_write_err
                + self.num_seek_err + self.num_discard_err)

    def record(self, op: Op, ok: bool, nbytes: int = 0) -> None:
        """
        Count one request of category `op`.

        On success, `nbytes` is added to the read or written byte counter
        (ignored for seek and discard). On failure the category's error
        counter is bumped instead.
        """
        name = op.value
        setattr(self, f"num_{name}_req", getattr(self, f"num_{name}_req") + 1)

        if not ok:
            setattr(self, f"num_{name}_err", getattr(self, f"num_{name}_err") + 1)
        elif op is Op.READ:
            self.num_bytes_read += nbytes
        elif op is Op.WRITE:
            self.num_bytes_written += nbytes

    def snapshot(self) -> "DiskStats":
        return copy.copy(self)

    def as_dict(self) -> dict:
        data = asdict(self)
        data["num_req"] = self.num_req
        data["num_err"] = self.num_err
        return data
