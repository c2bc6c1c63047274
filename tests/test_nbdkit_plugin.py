import pytest

# The nbdkit module only exists inside a running nbdkit process.
nbdkit = pytest.importorskip("nbdkit")

from vdisk import nbdkit_plugin  # noqa: E402


def test_unknown_parameter_is_rejected():
    with pytest.raises(nbdkit.Error):
        nbdkit_plugin.config("bogus", "1")


def test_bad_boolean_is_rejected():
    with pytest.raises(nbdkit.Error):
        nbdkit_plugin.config("readonly_fallback", "maybe")


def test_missing_disk_is_rejected(monkeypatch):
    monkeypatch.setattr(nbdkit_plugin, "_specifier", None)
    with pytest.raises(nbdkit.Error):
        nbdkit_plugin.config_complete()


def test_open_before_config_is_rejected(monkeypatch):
    monkeypatch.setattr(nbdkit_plugin, "_export", None)
    with pytest.raises(nbdkit.Error):
        nbdkit_plugin.open(False)


def test_serves_a_ramdisk(monkeypatch):
    monkeypatch.setattr(nbdkit_plugin, "_export", None)
    monkeypatch.setattr(nbdkit_plugin, "_specifier", None)
    nbdkit_plugin.config("disk", "ramdisk:8KiB")
    nbdkit_plugin.config_complete()

    h = nbdkit_plugin.open(False)
    assert nbdkit_plugin.get_size(h) == 8192
    assert nbdkit_plugin.can_write(h)

    nbdkit_plugin.pwrite(h, b"abcd", 100, 0)
    buf = bytearray(4)
    nbdkit_plugin.pread(h, buf, 100, 0)
    assert buf == b"abcd"
    nbdkit_plugin.unload()
