"""Operating system facts read from ``/proc`` and ``/etc``."""

from __future__ import annotations

import enum
import os
import re
import socket
import time
from dataclasses import dataclass
from pathlib import Path

from hostprobe.common import LoadAvg
from hostprobe.fileutil import get_all_data

OS_RELEASE = Path("/etc/os-release")
LSB_RELEASE = Path("/etc/lsb-release")
PROC_STAT = Path("/proc/stat")
PROC_UPTIME = Path("/proc/uptime")
PROC_LOADAVG = Path("/proc/loadavg")

_U64_MASK = 2**64 - 1
_U64_RE = re.compile(r"\+?[0-9]+")
_MEMINFO_KEYS = frozenset(
    {
        "MemTotal",
        "MemFree",
        "MemAvailable",
        "Buffers",
        "Cached",
        "SReclaimable",
        "SwapTotal",
        "SwapFree",
    }
)


class InfoType(enum.Enum):
    """Which release field to look up."""

    NAME = "name"
    OS_VERSION = "os_version"


_PRIMARY_KEYS = {InfoType.NAME: "NAME=", InfoType.OS_VERSION: "VERSION_ID="}
_FALLBACK_KEYS = {InfoType.NAME: "DISTRIB_ID=", InfoType.OS_VERSION: "DISTRIB_RELEASE="}


def to_u64(value: bytes | str) -> int:
    """Parse a string of ASCII digits; empty input gives 0."""
    text = value.decode("ascii") if isinstance(value, bytes) else value
    if any(c not in "0123456789" for c in text):
        raise ValueError(f"not a decimal number: {text!r}")
    return int(text) & _U64_MASK if text else 0


def boot_time(stat_path: str | os.PathLike[str] = PROC_STAT) -> int:
    """Boot time in seconds since the epoch, from the ``btime`` line."""
    try:
        with open(stat_path, "rb") as file:
            data = file.read()
    except OSError:
        data = None
    if data is not None:
        for line in data.split(b"\n"):
            if line.startswith(b"btime"):
                parts = [p for p in line.split(b" ") if p]
                if len(parts) < 2:
                    return 0
                try:
                    return to_u64(parts[1])
                except ValueError:
                    return 0
    clock = getattr(time, "CLOCK_BOOTTIME", None)
    if clock is None:
        return 0
    try:
        return int(time.clock_gettime(clock))
    except OSError:
        return 0


@dataclass(frozen=True)
class SystemInfo:
    """Constants needed to interpret process data."""

    page_size_kb: int
    clock_cycle: int
    boot_time: int

    @classmethod
    def detect(cls) -> SystemInfo:
        """Read the constants of the running system."""
        return cls(
            page_size_kb=os.sysconf("SC_PAGESIZE") // 1024,
            clock_cycle=os.sysconf("SC_CLK_TCK"),
            boot_time=boot_time(),
        )


def _text_lines(path: str | os.PathLike[str]) -> list[str] | None:
    try:
        with open(path, "rb") as file:
            data = file.read()
    except OSError:
        return None
    lines = []
    for raw in data.split(b"\n"):
        try:
            lines.append(raw.removesuffix(b"\r").decode("utf-8"))
        except UnicodeDecodeError:
            continue
    return lines


def _find_value(lines: list[str], key: str) -> str | None:
    for line in lines:
        if line.startswith(key):
            return line[len(key):].replace('"', "")
    return None


def get_system_info_linux(
    info: InfoType,
    path: str | os.PathLike[str] = OS_RELEASE,
    fallback_path: str | os.PathLike[str] = LSB_RELEASE,
) -> str | None:
    """Distribution name or version from os-release, falling back to lsb-release."""
    lines = _text_lines(path)
    if lines is not None:
        value = _find_value(lines, _PRIMARY_KEYS[info])
        if value is not None:
            return value
    lines = _text_lines(fallback_path)
    if lines is None:
        return None
    return _find_value(lines, _FALLBACK_KEYS[info])


def parse_meminfo(text: str) -> dict[str, int]:
    """Known ``/proc/meminfo`` fields, converted from KiB to kB."""
    values: dict[str, int] = {}
    for line in text.split("\n"):
        key, sep, rest = line.partition(":")
        if key not in _MEMINFO_KEYS or not sep:
            continue
        number = rest.lstrip().split(" ")[0]
        if _U64_RE.fullmatch(number) and int(number) <= _U64_MASK:
            values[key] = int(number) * 128 // 125
    return values


def read_uptime(path: str | os.PathLike[str] = PROC_UPTIME) -> int:
    """Whole seconds since boot, or 0 when unknown."""
    try:
        content = get_all_data(path)
    except (OSError, UnicodeDecodeError):
        return 0
    seconds = content.split(".")[0]
    if _U64_RE.fullmatch(seconds) and int(seconds) <= _U64_MASK:
        return int(seconds)
    return 0


def read_load_average(path: str | os.PathLike[str] = PROC_LOADAVG) -> LoadAvg:
    """Load averages; zeros if the file is unreadable, ValueError if malformed."""
    try:
        content = get_all_data(path)
    except (OSError, UnicodeDecodeError):
        return LoadAvg()
    loads = [float(v) for v in content.strip().split(" ")[:3]]
    if len(loads) < 3:
        raise ValueError(f"malformed load average: {content!r}")
    return LoadAvg(one=loads[0], five=loads[1], fifteen=loads[2])


def host_name() -> str | None:
    """Name of this host, or None if it cannot be read."""
    try:
        return socket.gethostname()
    except OSError:
        return None


def kernel_version() -> str | None:
    """Release of the running kernel, or None if unavailable."""
    try:
        return os.uname().release
    except (AttributeError, OSError):
        return None