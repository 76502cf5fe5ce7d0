"""Mounted disks listed from ``/proc/mounts`` and typed through ``/sys/block``."""

from __future__ import annotations

import os
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import NamedTuple

from hostprobe.common import DiskType
from hostprobe.fileutil import get_all_data

MOUNTS_PATH = Path("/proc/mounts")
BY_ID_DIR = Path("/dev/disk/by-id")
SYS_BLOCK_DIR = Path("/sys/block")

_U64_MASK = 2**64 - 1
_DIGITS = "0123456789"

_IGNORED_FS = frozenset(
    {
        "rootfs",
        "sysfs",
        "proc",
        "tmpfs",
        "devtmpfs",
        "cgroup",
        "cgroup2",
        "pstore",
        "squashfs",
        "rpc_pipefs",
        "iso9660",
    }
)


@dataclass
class Disk:
    """A mounted file system backed by a device; sizes are in bytes."""

    type_: DiskType
    name: str
    file_system: bytes
    mount_point: Path
    total_space: int
    available_space: int
    is_removable: bool

    def refresh(self) -> bool:
        """Update the available space; False if the mount point cannot be queried."""
        try:
            stat = os.statvfs(self.mount_point)
        except OSError:
            return False
        self.available_space = (stat.f_bsize * stat.f_bavail) & _U64_MASK
        return True


class MountEntry(NamedTuple):
    """The first three fields of a ``/proc/mounts`` line."""

    fs_spec: str
    fs_file: str
    fs_vfstype: str


def _canonical(path: str) -> str | None:
    try:
        return str(Path(path).resolve(strict=True))
    except (OSError, RuntimeError):
        return None


def _trim_prefix(text: str, prefix: str) -> str:
    while prefix and text.startswith(prefix):
        text = text[len(prefix):]
    return text


def find_type_for_device_name(
    device_name: str, sys_block: str | os.PathLike[str] = SYS_BLOCK_DIR
) -> DiskType:
    """Tell HDD from SSD through the ``queue/rotational`` flag of the block device."""
    device = os.fspath(device_name)
    real_path = _canonical(device) or device
    if device.startswith("/dev/mapper/") or device.startswith("/dev/root"):
        # These are links to the real device; follow them.
        if real_path != device:
            return find_type_for_device_name(real_path, sys_block)
    elif device.startswith(("/dev/sd", "/dev/vd")):
        # "sda1" -> "sda"
        real_path = _trim_prefix(real_path, "/dev/").rstrip(_DIGITS)
    elif device.startswith(("/dev/nvme", "/dev/mmcblk")):
        # "nvme0n1p1" -> "nvme0n1", "mmcblk0p1" -> "mmcblk0"
        real_path = _trim_prefix(real_path, "/dev/").rstrip(_DIGITS).rstrip("p")
    else:
        real_path = _trim_prefix(real_path, "/dev/")

    rotational = Path(sys_block) / real_path / "queue" / "rotational"
    try:
        content = get_all_data(rotational).strip()
    except (OSError, UnicodeDecodeError):
        return DiskType.UNKNOWN
    try:
        flag = int(content)
    except ValueError:
        return DiskType.UNKNOWN
    if flag == 1:
        return DiskType.HDD
    if flag == 0:
        return DiskType.SSD
    return DiskType.UNKNOWN


def _unescape(path: str) -> str:
    return (
        path.replace("\\134", "\\")
        .replace("\\040", " ")
        .replace("\\011", "\t")
        .replace("\\012", "\n")
    )


def _is_ignored(entry: MountEntry) -> bool:
    fs_file = entry.fs_file
    return (
        entry.fs_vfstype in _IGNORED_FS
        or fs_file.startswith("/sys")
        or fs_file.startswith("/proc")
        or (fs_file.startswith("/run") and not fs_file.startswith("/run/media"))
        or entry.fs_spec.startswith("sunrpc")
    )


def parse_mounts(content: str) -> list[MountEntry]:
    """Entries of a mounts table, without pseudo file systems and system mount points."""
    entries = []
    for line in content.splitlines():
        fields = line.split()
        fields += [""] * (3 - len(fields))
        entry = MountEntry(fields[0], _unescape(fields[1]), fields[2])
        if not _is_ignored(entry):
            entries.append(entry)
    return entries


def removable_devices(by_id_dir: str | os.PathLike[str] = BY_ID_DIR) -> list[Path]:
    """Resolved devices whose ``by-id`` link name starts with ``usb-``."""
    try:
        with os.scandir(by_id_dir) as it:
            entries = list(it)
    except OSError:
        return []
    devices = []
    for entry in entries:
        if not entry.name.startswith("usb-"):
            continue
        target = _canonical(entry.path)
        if target is not None:
            devices.append(Path(target))
    return devices


def new_disk(
    device_name: str,
    mount_point: str | os.PathLike[str],
    file_system: bytes,
    removable_entries: Iterable[str | os.PathLike[str]],
) -> Disk | None:
    """Describe one mount, or None when its size is zero or unknown."""
    mount_point = Path(mount_point)
    type_ = find_type_for_device_name(device_name)
    total = 0
    available = 0
    try:
        stat = os.statvfs(mount_point)
    except OSError:
        pass
    else:
        total = (stat.f_bsize * stat.f_blocks) & _U64_MASK
        available = (stat.f_bsize * stat.f_bavail) & _U64_MASK
    if total == 0:
        return None
    is_removable = any(os.fspath(e) == device_name for e in removable_entries)
    return Disk(
        type_=type_,
        name=device_name,
        file_system=bytes(file_system),
        mount_point=mount_point,
        total_space=total,
        available_space=available,
        is_removable=is_removable,
    )


def get_all_disks(
    mounts_path: str | os.PathLike[str] = MOUNTS_PATH,
    by_id_dir: str | os.PathLike[str] = BY_ID_DIR,
) -> list[Disk]:
    """All real disks listed in the mounts table."""
    removable = removable_devices(by_id_dir)
    try:
        content = get_all_data(mounts_path)
    except (OSError, UnicodeDecodeError):
        content = ""
    disks = []
    for entry in parse_mounts(content):
        disk = new_disk(entry.fs_spec, entry.fs_file, entry.fs_vfstype.encode(), removable)
        if disk is not None:
            disks.append(disk)
    return disks