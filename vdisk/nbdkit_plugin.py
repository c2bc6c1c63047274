"""
nbdkit_plugin.py
----------------

Python plugin for nbdkit that exposes a vdisk Disk.

This module is loaded by nbdkit when invoked with:

    nbdkit python /path/to/vdisk/nbdkit_plugin.py \
        disk=ramdisk:64MiB \
        name=nbd0 \
        readonly_fallback=true

The plugin wires nbdkit's pread/pwrite/trim/zero/flush callbacks to a
DiskExport around a single Disk built from the `disk` specifier. All client
connections share that disk.
"""

import nbdkit  # Provided by nbdkit at runtime, may appear unresolved in IDE.

from vdisk.disk import Disk
from vdisk.errors import DiskIOError
from vdisk.export import DiskExport

API_VERSION = 2

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


# ---------------------------------------------------------------------------
# Global configuration (populated via config())
# ---------------------------------------------------------------------------

_specifier: str | None = None
_disk_name: str = "nbd0"
_readonly_fallback: bool = True

# Global export. Created once in config_complete().
_export: DiskExport | None = None


class Handle:
    """
    Per-connection handle used by nbdkit.

    nbdkit will call open() for each new client connection and pass the
    resulting handle to the other callbacks.
    """
    def __init__(self, export: DiskExport, readonly: bool) -> None:
        self.export = export
        self.readonly = readonly


def _parse_bool(key: str, value: str) -> bool:
    if value.lower() in _TRUE:
        return True
    if value.lower() in _FALSE:
        return False
    raise nbdkit.Error(f"{key} must be a boolean, got {value!r}")


def _call(func, *args):
    """
    Run an export call, handing the errno of a failure to nbdkit.
    """
    try:
        return func(*args)
    except DiskIOError as e:
        nbdkit.set_error(e.errno)
        raise


# ---------------------------------------------------------------------------
# nbdkit plugin entrypoints
# ---------------------------------------------------------------------------

def config(key: str, value: str) -> None:
    """
    Called by nbdkit for each configuration parameter.
    """
    global _specifier, _disk_name, _readonly_fallback

    if key == "disk":
        _specifier = value
    elif key == "name":
        _disk_name = value
    elif key == "readonly_fallback":
        _readonly_fallback = _parse_bool(key, value)
    else:
        # nbdkit.Error will cause nbdkit to fail fast with a useful message.
        raise nbdkit.Error(f"Unknown parameter: {key}={value}")


def config_complete() -> None:
    """
    Called by nbdkit after all config() calls are done.

    We validate configuration and create the global Disk here.
    """
    global _export

    if _specifier is None:
        raise nbdkit.Error("Missing required parameter: disk=<specifier>")

    disk = Disk(_disk_name, _specifier, allow_readonly_fallback=_readonly_fallback)
    if disk.capacity() == 0:
        nbdkit.debug(f"nbdkit_plugin: disk {_specifier!r} is empty or unusable")

    nbdkit.debug(f"nbdkit_plugin: name={_disk_name}, disk={_specifier}, "
                 f"size={disk.capacity()}, writable={disk.writable}, "
                 f"serial={disk.serial}")

    _export = DiskExport(disk)


def open(readonly: bool):
    """
    Called for each new client connection.
    """
    if _export is None:
        raise nbdkit.Error("nbdkit_plugin: disk not initialized in config_complete()")

    nbdkit.debug(f"nbdkit_plugin: open(readonly={readonly})")
    return Handle(_export, readonly)


def get_size(h: Handle) -> int:
    return h.export.get_size()


def can_write(h: Handle) -> bool:
    return not h.readonly and h.export.can_write()


def can_trim(h: Handle) -> bool:
    return not h.readonly and h.export.can_trim()


def can_zero(h: Handle) -> bool:
    return not h.readonly and h.export.can_zero()


def can_flush(h: Handle) -> bool:
    return True


def is_rotational(h: Handle) -> bool:
    return False


def pread(h: Handle, buf, offset: int, flags: int) -> None:
    """
    Fill 'buf' with data starting at 'offset'.
    """
    _call(h.export.pread_into, buf, offset)


def pwrite(h: Handle, buf, offset: int, flags: int) -> None:
    _call(h.export.pwrite, buf, offset)


def trim(h: Handle, count: int, offset: int, flags: int) -> None:
    _call(h.export.trim, count, offset)


def zero(h: Handle, count: int, offset: int, flags: int) -> None:
    may_trim = bool(flags & nbdkit.FLAG_MAY_TRIM)
    _call(h.export.zero, count, offset, may_trim)


def flush(h: Handle, flags: int) -> None:
    _call(h.export.flush)


def close(h: Handle) -> None:
    """
    Called when a client connection is closed.
    """
    nbdkit.debug("nbdkit_plugin: close()")
    # The disk is shared by all connections and lives until unload().


def unload() -> None:
    """
    Called once when nbdkit exits. Flushes and closes the disk.
    """
    if _export is not None:
        nbdkit.debug(f"nbdkit_plugin: closing {_export.disk.name}, "
                     f"stats={_export.disk.stats.as_dict()}")
        _export.disk.close()
