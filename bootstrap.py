"""
bootstrap.py
------------

Builds a Disk from command-line flags or environment variables and runs a
single operation against it. Handy for inspecting image files and checking
what a specifier resolves to before handing it to a simulation or to the
nbdkit plugin.

    python bootstrap.py ramdisk:8MiB info
    python bootstrap.py disk.img read 0x1000 16
    python bootstrap.py disk.img write 0xffe 12345678
    python bootstrap.py disk.img discard 0 1MiB
    python bootstrap.py disk.img zero 0 4KiB --may-unmap

Offsets and lengths accept the same suffixes as ramdisk sizes.
"""

import argparse
import logging
import os
import sys

from vdisk.disk import Disk
from vdisk.util import parse_size

EXIT_OK = 0
EXIT_FAILED = 1


def _size(text: str) -> int:
    try:
        return parse_size(text)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def _hex(text: str) -> bytes:
    try:
        return bytes.fromhex(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid hex data: {text!r}")


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _log_level(text: str) -> str:
    level = text.upper()
    if level not in LOG_LEVELS:
        raise argparse.ArgumentTypeError(
            f"invalid log level {text!r} (choose from {', '.join(LOG_LEVELS)})")
    return level


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes", "on")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Virtual disk inspection tool")

    parser.add_argument("specifier", nargs="?",
                        default=os.getenv("VDISK_SPECIFIER", "nothing"),
                        help="ramdisk:<size>, nothing, or an image file path")

    parser.add_argument("--name", type=str, default=os.getenv("VDISK_NAME", "disk"),
                        help="Disk name used in log messages")

    parser.add_argument("--no-readonly-fallback", dest="readonly_fallback",
                        action="store_false",
                        default=_env_flag("VDISK_READONLY_FALLBACK", True),
                        help="Leave the disk unusable instead of opening it read-only")

    parser.add_argument("--log-level", type=_log_level,
                        default=os.getenv("VDISK_LOG_LEVEL", "WARNING"),
                        help="Logging level (" + ", ".join(LOG_LEVELS) + ")")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("info", help="Show capacity, serial and writability")

    read = sub.add_parser("read", help="Hex dump LENGTH bytes at OFFSET")
    read.add_argument("offset", type=_size)
    read.add_argument("length", type=_size)

    write = sub.add_parser("write", help="Write hex DATA at OFFSET")
    write.add_argument("offset", type=_size)
    write.add_argument("data", type=_hex)

    discard = sub.add_parser("discard", help="Discard LENGTH bytes at OFFSET")
    discard.add_argument("offset", type=_size)
    discard.add_argument("length", type=_size)

    zero = sub.add_parser("zero", help="Write LENGTH zero bytes at OFFSET")
    zero.add_argument("offset", type=_size)
    zero.add_argument("length", type=_size)
    zero.add_argument("--may-unmap", action="store_true",
                      help="Allow punching a hole instead of writing zeros")

    return parser


def create_disk_from_args(args: argparse.Namespace) -> Disk:
    disk = Disk(args.name, args.specifier,
                allow_readonly_fallback=args.readonly_fallback)

    print(f"[bootstrap] Created Disk({disk.name}, {disk.specifier!r})")
    return disk


def print_info(disk: Disk) -> None:
    print(f"capacity: {disk.capacity()}")
    print(f"writable: {disk.writable}")
    print(f"usable:   {disk.usable}")
    print(f"serial:   {disk.serial}")


def print_stats(disk: Disk) -> None:
    for key, value in disk.stats.as_dict().items():
        print(f"{key}: {value}")


def run_command(disk: Disk, args: argparse.Namespace) -> bool:
    if args.command == "info":
        print_info(disk)
        return True

    if not disk.seek(args.offset):
        return False

    if args.command == "read":
        data = disk.read_bytes(args.length)
        if data is None:
            return False
        for line in range(0, len(data), 16):
            print(f"{args.offset + line:08x}: {data[line:line + 16].hex(' ')}")
        return True

    if args.command == "write":
        return disk.write(args.data)

    if args.command == "discard":
        return disk.discard(args.length)

    # args.command == "zero"
    return disk.write_zero(args.length, args.may_unmap)


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=args.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    with create_disk_from_args(args) as disk:
        ok = run_command(disk, args)
        if not ok:
            print(f"[bootstrap] {args.command} failed: {disk.last_error.value}",
                  file=sys.stderr)
        print_stats(disk)

    return EXIT_OK if ok else EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
