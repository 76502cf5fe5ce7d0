"""Processor usage accounting and ``/proc/cpuinfo`` parsing."""

from __future__ import annotations

import math
import re
from collections.abc import Iterable
from dataclasses import dataclass, field, fields
from pathlib import Path

SYSFS_CPU_DIR = Path("/sys/devices/system/cpu")
CPUINFO_PATH = Path("/proc/cpuinfo")

_U64_MAX = 2**64 - 1
_U64_RE = re.compile(r"\+?[0-9]+")
_FREQ_PREFIXES = ("cpu MHz\t", "BogoMIPS", "clock\t", "bogomips per cpu")


@dataclass(frozen=True)
class CpuValues:
    """Time counters of one ``cpu`` line of ``/proc/stat``."""

    user: int = 0
    nice: int = 0
    system: int = 0
    idle: int = 0
    iowait: int = 0
    irq: int = 0
    softirq: int = 0
    steal: int = 0
    guest: int = 0
    guest_nice: int = 0

    @classmethod
    def from_values(cls, values: Iterable[int]) -> CpuValues:
        """Build from counters in file order; missing ones are zero, extra ones ignored."""
        taken = list(values)[: len(fields(cls))]
        return cls(*taken)

    def work_time(self) -> int:
        return self.user + self.nice + self.system + self.irq + self.softirq + self.steal

    def total_time(self) -> int:
        # guest and guest_nice are already counted in user and nice.
        return self.work_time() + self.idle + self.iowait


def _positive_diff(new: int, old: int) -> float:
    return float(new - old) if new > old else 1.0


@dataclass
class Processor:
    """One processor, or the sum of all of them."""

    name: str = ""
    new_values: CpuValues = field(default_factory=CpuValues)
    frequency: int = 0
    vendor_id: str = ""
    brand: str = ""
    old_values: CpuValues = field(default_factory=CpuValues)
    cpu_usage: float = 0.0
    total_time: int = 0
    old_total_time: int = 0

    def update(self, values: CpuValues) -> None:
        """Record new counters and recompute the usage percentage."""
        self.old_values = self.new_values
        self.new_values = values
        self.total_time = values.total_time()
        self.old_total_time = self.old_values.total_time()
        usage = (
            _positive_diff(values.work_time(), self.old_values.work_time())
            / _positive_diff(self.total_time, self.old_total_time)
            * 100.0
        )
        self.cpu_usage = min(usage, 100.0)

    def raw_times(self) -> tuple[int, int]:
        """Return ``(total_time, old_total_time)``."""
        return self.total_time, self.old_total_time


def _parse_u64(text: str) -> int | None:
    return int(text) if _U64_RE.fullmatch(text) else None


def _float_to_u64(value: float) -> int:
    if math.isnan(value) or value <= 0:
        return 0
    if value >= _U64_MAX:
        return _U64_MAX
    return int(value)


def _read_text(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None


def get_cpu_frequency(
    cpu_core_index: int,
    sysfs_cpu_dir: str | Path = SYSFS_CPU_DIR,
    cpuinfo_path: str | Path = CPUINFO_PATH,
) -> int:
    """Current frequency in MHz of one core, or 0 when unknown."""
    freq_file = Path(sysfs_cpu_dir) / f"cpu{cpu_core_index}" / "cpufreq" / "scaling_cur_freq"
    text = _read_text(freq_file)
    if text is not None:
        value = _parse_u64(text.strip().split("\n")[0])
        if value is not None:
            return value // 1000

    text = _read_text(Path(cpuinfo_path))
    if text is None:
        return 0
    line = next((ln for ln in text.split("\n") if ln.startswith(_FREQ_PREFIXES)), None)
    if line is None:
        return 0
    raw = line.split(":")[-1].replace("MHz", "").strip()
    try:
        return _float_to_u64(float(raw))
    except ValueError:
        return 0


def _value_after_colon(line: str) -> str:
    return line.split(":", 1)[-1].strip()


def get_physical_core_count(cpuinfo_path: str | Path = CPUINFO_PATH) -> int | None:
    """Number of distinct (core id, physical id) pairs, or None if unreadable."""
    text = _read_text(Path(cpuinfo_path))
    if text is None:
        return None
    pairs: set[tuple[str, str]] = set()
    core_id = ""
    physical_id = ""
    for line in text.splitlines():
        if line.startswith("core id"):
            core_id = _value_after_colon(line)
        elif line.startswith("physical id"):
            physical_id = _value_after_colon(line)
        if core_id and physical_id:
            pairs.add((core_id, physical_id))
            core_id = ""
            physical_id = ""
    return len(pairs)


def get_vendor_id_and_brand(cpuinfo_path: str | Path = CPUINFO_PATH) -> tuple[str, str]:
    """Vendor id and model name of the first CPU; empty strings when missing."""
    text = _read_text(Path(cpuinfo_path))
    if text is None:
        return "", ""
    vendor_id: str | None = None
    brand: str | None = None
    for line in text.split("\n"):
        if line.startswith("vendor_id\t"):
            vendor_id = line.split(":")[-1].strip()
        elif line.startswith("model name\t"):
            brand = line.split(":")[-1].strip()
        else:
            continue
        if vendor_id is not None and brand is not None:
            break
    return vendor_id or "", brand or ""