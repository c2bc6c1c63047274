import os
import shutil

import pytest

from vdisk.disk import Disk
from vdisk.errors import DiskStatus
from vdisk.serial import SerialGenerator
from vdisk.util import KiB, MiB


TEST_BASE = "test_data"


def create_file(path, size):
    with open(path, "wb") as f:
        f.seek(size - 1)
        f.write(b"\0")


def setup_function():
    if os.path.exists(TEST_BASE):
        shutil.rmtree(TEST_BASE)
    os.makedirs(TEST_BASE)


def teardown_function():
    if os.path.exists(TEST_BASE):
        shutil.rmtree(TEST_BASE)


def image(name):
    return os.path.join(TEST_BASE, name)


def test_ramdisk():
    disk = Disk("disk", "ramdisk:8MiB")
    assert disk.capacity() == 8 * MiB
    assert disk.pos() == 0
    assert disk.remaining() == disk.capacity()

    a = bytes([0x12, 0x34, 0x56, 0x78])
    b = bytearray(4)

    assert disk.seek(0xffe)
    assert disk.write(a, len(a))
    assert disk.seek(0xffe)
    assert disk.read(b, len(b))
    assert bytes(b) == a

    stats = disk.stats
    assert stats.num_bytes_written == 4
    assert stats.num_bytes_read == 4
    assert stats.num_write_req == 1
    assert stats.num_read_req == 1
    assert stats.num_seek_req == 2
    assert stats.num_req == 4
    assert stats.num_err == 0

    assert not disk.seek(8 * MiB + 1)
    assert disk.seek(8 * MiB - 1)
    assert not disk.write(a, len(a))

    stats = disk.stats
    assert stats.num_bytes_written == 4
    assert stats.num_bytes_read == 4
    assert stats.num_write_req == 2
    assert stats.num_read_req == 1
    assert stats.num_seek_req == 4
    assert stats.num_req == 7
    assert stats.num_write_err == 1
    assert stats.num_read_err == 0
    assert stats.num_seek_err == 1
    assert stats.num_err == 2

    assert disk.seek(4 * MiB)
    assert disk.read(b, len(b))
    assert bytes(b) == bytes(4)

    stats = disk.stats
    assert stats.num_bytes_read == 8
    assert stats.num_read_req == 2
    assert stats.num_seek_req == 5
    assert stats.num_req == 9
    assert stats.num_err == 2


def test_file():
    path = image("my.disk")
    create_file(path, 8 * MiB)

    with Disk("disk", path) as disk:
        assert disk.capacity() == 8 * MiB
        assert disk.pos() == 0
        assert disk.remaining() == disk.capacity()
        assert disk.writable

        a = bytes([0x12, 0x34, 0x56, 0x78])
        b = bytearray(4)

        assert disk.seek(0xffe)
        assert disk.write(a)
        assert disk.seek(0xffe)
        assert disk.read(b)
        assert bytes(b) == a

        assert not disk.seek(8 * MiB + 1)
        assert disk.seek(8 * MiB - 1)
        assert not disk.write(a)

    assert os.path.getsize(path) == 8 * MiB
    with open(path, "rb") as f:
        f.seek(0xffe)
        assert f.read(4) == a


def test_nothing():
    disk = Disk("disk", "nothing")
    assert disk.capacity() == 0
    assert disk.pos() == 0
    assert disk.remaining() == disk.capacity()
    assert not disk.usable


def test_missing_file_is_unusable():
    disk = Disk("disk", image("does-not-exist"))
    assert disk.capacity() == 0
    assert not disk.write(b"x")
    assert disk.last_error is DiskStatus.UNUSABLE
    assert disk.stats.num_write_err == 1


def test_invalid_ramdisk_size_is_unusable():
    assert Disk("disk", "ramdisk:lots").capacity() == 0
    assert Disk("disk", "ramdisk:8TB").capacity() == 0


def deny_read_write(monkeypatch):
    """Make every O_RDWR open fail, as it would for a 0400 file."""
    real_open = os.open

    def fake_open(path, flags, *args, **kwargs):
        if flags & os.O_RDWR:
            raise PermissionError(13, "Permission denied", path)
        return real_open(path, flags, *args, **kwargs)

    monkeypatch.setattr(os, "open", fake_open)


def test_perm_okay(monkeypatch):
    path = image("readonly")
    create_file(path, 1 * MiB)
    deny_read_write(monkeypatch)

    with Disk("disk", path, allow_readonly_fallback=True) as disk:
        assert disk.capacity() == 1 * MiB
        assert not disk.writable

        assert not disk.write(b"abcd")
        assert disk.last_error is DiskStatus.READ_ONLY
        assert not disk.discard(16)
        assert not disk.write_zero(16)
        assert disk.pos() == 0

        assert disk.read_bytes(4) == bytes(4)

        stats = disk.stats
        assert stats.num_write_err == 2
        assert stats.num_discard_err == 1
        assert stats.num_read_err == 0


def test_perm_fail(monkeypatch):
    path = image("readonly")
    create_file(path, 1 * MiB)
    deny_read_write(monkeypatch)

    disk = Disk("disk", path, allow_readonly_fallback=False)
    assert disk.capacity() == 0


@pytest.mark.skipif(hasattr(os, "geteuid") and os.geteuid() == 0,
                    reason="root ignores file permissions")
def test_perm_chmod():
    path = image("readonly")
    create_file(path, 1 * MiB)
    os.chmod(path, 0o400)

    with Disk("disk", path, True) as disk:
        assert disk.capacity() == 1 * MiB
    assert Disk("disk", path, False).capacity() == 0


def test_serial():
    create_file(image("file1"), 1 * MiB)
    create_file(image("file2"), 1 * MiB)

    with Disk("disk1", image("file1")) as disk1, Disk("disk2", image("file2")) as disk2:
        assert disk1.serial != disk2.serial


def test_serial_from_injected_generator():
    serials = SerialGenerator(prefix="T", start=7, width=2)
    assert Disk("a", "nothing", serials=serials).serial == "T07"
    assert Disk("b", "nothing", serials=serials).serial == "T08"


def test_unmap_zero():
    disk = Disk("disk", "ramdisk:4KiB", False)
    assert disk.write_zero(4 * KiB, False)
    assert disk.seek(0)
    assert disk.discard(4 * KiB)

    stats = disk.stats
    assert stats.num_bytes_written == 4 * KiB
    assert stats.num_seek_req == 1
    assert stats.num_seek_err == 0
    assert stats.num_write_req == 1
    assert stats.num_write_err == 0
    assert stats.num_discard_req == 1
    assert stats.num_discard_err == 0
    assert stats.num_req == 3
    assert stats.num_err == 0


class TestDiskOperations:
    def setup_method(self, method):
        self.disk = Disk("dev1", "ramdisk:64KiB")

    def teardown_method(self, method):
        self.disk.close()

    def test_read_out_of_bounds_leaves_state(self):
        disk = self.disk
        assert disk.seek(64 * KiB - 100)
        buf = bytearray(b"\xaa" * 200)

        assert not disk.read(buf)
        assert disk.last_error is DiskStatus.OUT_OF_BOUNDS
        assert disk.pos() == 64 * KiB - 100
        assert buf == b"\xaa" * 200
        assert disk.stats.num_read_err == 1
        assert disk.stats.num_bytes_read == 0

    def test_write_out_of_bounds_leaves_content(self):
        disk = self.disk
        assert disk.seek(64 * KiB - 10)
        assert not disk.write(b"1234567890123456")
        assert disk.pos() == 64 * KiB - 10
        assert disk.capacity() == 64 * KiB

        assert disk.read_bytes(10) == bytes(10)
        assert disk.stats.num_write_err == 1
        assert disk.stats.num_bytes_written == 0

    def test_seek_bounds(self):
        disk = self.disk
        assert disk.seek(disk.capacity())
        assert disk.remaining() == 0
        assert not disk.seek(disk.capacity() + 1)
        assert not disk.seek(-1)
        assert disk.pos() == disk.capacity()

    def test_zero_length_at_end(self):
        disk = self.disk
        assert disk.seek(disk.capacity())
        assert disk.read(bytearray(), 0)
        assert disk.write(b"")
        assert disk.discard(0)
        assert disk.pos() == disk.capacity()

    def test_negative_length_fails(self):
        assert not self.disk.discard(-1)
        assert not self.disk.write_zero(-1)
        assert self.disk.read_bytes(-1) is None
        assert self.disk.last_error is DiskStatus.OUT_OF_BOUNDS

    def test_write_advances_discard_does_not(self):
        disk = self.disk
        assert disk.write(b"hello")
        assert disk.pos() == 5
        assert disk.seek(0)
        assert disk.discard(5)
        assert disk.pos() == 0
        assert disk.read_bytes(5) == bytes(5)

    def test_write_zero_advances(self):
        disk = self.disk
        assert disk.write(b"\xff" * 32)
        assert disk.seek(0)
        assert disk.write_zero(16, may_unmap=True)
        assert disk.pos() == 16
        assert disk.seek(0)
        assert disk.read_bytes(32) == bytes(16) + b"\xff" * 16

        stats = disk.stats
        assert stats.num_write_req == 2
        assert stats.num_bytes_written == 48
        assert stats.num_discard_req == 0

    def test_read_into_small_buffer_fails(self):
        disk = self.disk
        buf = bytearray(2)
        assert not disk.read(buf, 4)
        assert disk.last_error is DiskStatus.INVALID_ARGUMENT
        assert disk.pos() == 0
        assert disk.stats.num_read_err == 1

    def test_read_into_readonly_buffer_fails(self):
        assert not self.disk.read(b"\0\0\0\0")
        assert self.disk.last_error is DiskStatus.INVALID_ARGUMENT

    def test_write_with_explicit_length(self):
        disk = self.disk
        assert disk.write(b"abcdef", 3)
        assert disk.pos() == 3
        assert disk.seek(0)
        assert disk.read_bytes(4) == b"abc\0"
        assert not disk.write(b"ab", 3)
        assert disk.last_error is DiskStatus.INVALID_ARGUMENT

    def test_stats_snapshot_is_a_copy(self):
        stats = self.disk.stats
        stats.num_read_req = 100
        assert self.disk.stats.num_read_req == 0

    def test_counter_identities(self):
        disk = self.disk
        disk.seek(10)
        disk.seek(10**9)
        disk.write(b"x" * 10)
        disk.read_bytes(10**9)
        disk.discard(4)
        disk.write_zero(10**9)

        stats = disk.stats
        assert stats.num_req == (stats.num_read_req + stats.num_write_req
                                 + stats.num_seek_req + stats.num_discard_req) == 6
        assert stats.num_err == (stats.num_read_err + stats.num_write_err
                                 + stats.num_seek_err + stats.num_discard_err) == 3

    def test_close_releases_storage(self):
        disk = self.disk
        disk.seek(100)
        disk.close()
        assert disk.capacity() == 0
        assert disk.pos() == 0
        assert not disk.write(b"x")
        disk.close()

    def test_oversized_read_bytes_is_counted_not_allocated(self):
        disk = self.disk
        assert disk.read_bytes(2**63) is None
        assert disk.last_error is DiskStatus.OUT_OF_BOUNDS
        assert disk.pos() == 0

        stats = disk.stats
        assert stats.num_read_req == 1
        assert stats.num_read_err == 1


def test_file_discard_and_unmap_zero():
    path = image("sparse.img")
    with open(path, "wb") as f:
        f.write(b"\xff" * (64 * KiB))

    with Disk("disk", path) as disk:
        assert disk.seek(4 * KiB)
        assert disk.write_zero(8 * KiB, may_unmap=True)
        assert disk.pos() == 12 * KiB

        stats = disk.stats
        assert stats.num_write_req == 1
        assert stats.num_bytes_written == 8 * KiB
        assert stats.num_discard_req == 0

        assert disk.seek(32 * KiB)
        assert disk.discard(4 * KiB)
        assert disk.pos() == 32 * KiB

        assert disk.seek(0)
        data = disk.read_bytes(64 * KiB)
        assert disk.capacity() == 64 * KiB

        stats = disk.stats
        assert stats.num_discard_req == 1
        assert stats.num_err == 0

    assert data == (b"\xff" * (4 * KiB) + bytes(8 * KiB) + b"\xff" * (20 * KiB)
                    + bytes(4 * KiB) + b"\xff" * (28 * KiB))
    assert os.path.getsize(path) == 64 * KiB
