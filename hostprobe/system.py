"""The whole machine: memory, processors, processes, disks, networks and sensors."""

from __future__ import annotations

import os
import sys
from collections.abc import Iterator, Mapping
from pathlib import Path
from types import MappingProxyType

from hostprobe.common import (
    LoadAvg,
    ProcessRefreshKind,
    RefreshKind,
    Signal,
    supported_signals,
)
from hostprobe.component import Component, get_components
from hostprobe.disk import Disk, get_all_disks
from hostprobe.network import Networks
from hostprobe.osinfo import (
    InfoType,
    SystemInfo,
    boot_time,
    get_system_info_linux,
    host_name,
    kernel_version,
    parse_meminfo,
    read_load_average,
    read_uptime,
    to_u64,
)
from hostprobe.process import Process, get_process_data, refresh_procs
from hostprobe.processor import (
    CpuValues,
    Processor,
    get_cpu_frequency,
    get_physical_core_count,
    get_vendor_id_and_brand,
)

_MEMINFO_FIELDS = {
    "MemTotal": "total_memory",
    "MemFree": "free_memory",
    "MemAvailable": "available_memory",
    "Buffers": "_mem_buffers",
    "Cached": "_mem_page_cache",
    "SReclaimable": "_mem_slab_reclaimable",
    "SwapTotal": "total_swap",
    "SwapFree": "free_swap",
}


def _counter(part: bytes) -> int:
    try:
        return to_u64(part)
    except ValueError:
        return 0


def _cpu_values(parts: list[bytes]) -> CpuValues:
    return CpuValues.from_values(_counter(p) for p in parts[:10])


def _fields(line: bytes) -> list[bytes]:
    return [p for p in line.split(b" ") if p]


class System:
    """Snapshot of the machine, updated piece by piece with the ``refresh_*`` methods.

    Memory values are in kB. Nothing is read until a refresh is asked for, except
    through the ``refreshes`` selection given at construction.
    """

    IS_SUPPORTED: bool = sys.platform.startswith("linux")
    SUPPORTED_SIGNALS: tuple[Signal, ...] = supported_signals()

    def __init__(
        self,
        refreshes: RefreshKind | None = None,
        *,
        proc_dir: str | os.PathLike[str] = "/proc",
        sys_dir: str | os.PathLike[str] = "/sys",
        etc_dir: str | os.PathLike[str] = "/etc",
    ) -> None:
        self._proc = Path(proc_dir)
        self._sys = Path(sys_dir)
        self._etc = Path(etc_dir)
        self.info = SystemInfo(
            page_size_kb=os.sysconf("SC_PAGESIZE") // 1024,
            clock_cycle=os.sysconf("SC_CLK_TCK"),
            boot_time=boot_time(self._proc / "stat"),
        )
        self._process_list = Process.new(0, None, 0, self.info)
        self.total_memory = 0
        self.free_memory = 0
        self.available_memory = 0
        self._mem_buffers = 0
        self._mem_page_cache = 0
        self._mem_slab_reclaimable = 0
        self.total_swap = 0
        self.free_swap = 0
        self.global_processor = Processor()
        self.processors: list[Processor] = []
        self.components: list[Component] = []
        self.disks: list[Disk] = []
        self.networks = Networks(self._sys / "class" / "net")
        # Avoids reading the processor counters twice in one refresh round.
        self._need_processors_update = True
        if refreshes is not None:
            self.refresh_specifics(refreshes)

    def __enter__(self) -> System:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self._process_list.close()

    # Paths -----------------------------------------------------------------

    @property
    def _cpuinfo(self) -> Path:
        return self._proc / "cpuinfo"

    @property
    def _sysfs_cpu(self) -> Path:
        return self._sys / "devices" / "system" / "cpu"

    # Refreshing ------------------------------------------------------------

    def refresh_specifics(self, refreshes: RefreshKind) -> None:
        """Refresh the parts selected in ``refreshes``."""
        if refreshes.memory:
            self.refresh_memory()
        if refreshes.cpu:
            self.refresh_cpu()
        if refreshes.components_list:
            self.refresh_components_list()
        elif refreshes.components:
            self.refresh_components()
        if refreshes.processes is not None:
            self.refresh_processes_specifics(refreshes.processes)
        if refreshes.networks_list:
            self.refresh_networks_list()
        elif refreshes.networks:
            self.refresh_networks()
        if refreshes.disks_list:
            self.refresh_disks_list()
        elif refreshes.disks:
            self.refresh_disks()

    def refresh_all(self) -> None:
        """Refresh memory, processors, sensors, processes, disks and networks."""
        self.refresh_system()
        self.refresh_processes()
        self.refresh_disks()
        self.refresh_networks()

    def refresh_system(self) -> None:
        """Refresh memory, processors and sensors."""
        self.refresh_memory()
        self.refresh_cpu()
        self.refresh_components()

    def refresh_memory(self) -> None:
        """Read memory and swap figures from ``meminfo``."""
        try:
            with open(self._proc / "meminfo", "rb") as file:
                text = file.read().decode("utf-8")
        except (OSError, UnicodeDecodeError):
            return
        for key, value in parse_meminfo(text).items():
            setattr(self, _MEMINFO_FIELDS[key], value)

    def refresh_cpu(self) -> None:
        """Refresh the usage and frequency of every processor."""
        self._refresh_processors(only_global=False)

    def _refresh_processors(self, only_global: bool) -> None:
        try:
            with open(self._proc / "stat", "rb") as file:
                data = file.read()
        except OSError:
            return
        self._need_processors_update = False
        first = not self.processors
        vendor_id, brand = get_vendor_id_and_brand(self._cpuinfo) if first else ("", "")
        lines = iter(data.split(b"\n"))

        line = next(lines, None)
        if line is not None:
            if line[:4] != b"cpu ":
                return
            parts = _fields(line)
            if first:
                self.global_processor.name = parts[0].decode("utf-8", "replace") if parts else ""
            self.global_processor.update(_cpu_values(parts[1:]))
            if not first and only_global:
                return

        index = 0
        for line in lines:
            if line[:3] != b"cpu":
                break
            parts = _fields(line)
            values = _cpu_values(parts[1:])
            if first:
                self.processors.append(
                    Processor(
                        name=parts[0].decode("utf-8", "replace") if parts else "",
                        new_values=values,
                        frequency=get_cpu_frequency(index, self._sysfs_cpu, self._cpuinfo),
                        vendor_id=vendor_id,
                        brand=brand,
                    )
                )
            elif index < len(self.processors):
                processor = self.processors[index]
                processor.update(values)
                processor.frequency = get_cpu_frequency(index, self._sysfs_cpu, self._cpuinfo)
            index += 1

        self.global_processor.frequency = max((p.frequency for p in self.processors), default=0)
        if first:
            self.global_processor.vendor_id = vendor_id
            self.global_processor.brand = brand

    def refresh_components(self) -> None:
        """Refresh the temperature of the known sensors."""
        for component in self.components:
            component.refresh()

    def refresh_components_list(self) -> None:
        """Rescan the temperature sensors."""
        self.components = get_components(
            self._sys / "class" / "hwmon",
            self._sys / "class" / "thermal" / "thermal_zone0" / "temp",
        )

    def _max_process_cpu_usage(self) -> float:
        return len(self.processors) * 100.0

    def _clear_procs(self, refresh_kind: ProcessRefreshKind) -> None:
        total_time = 0.0
        compute_cpu = False
        max_value = 0.0
        if refresh_kind.cpu:
            if self._need_processors_update:
                self._refresh_processors(only_global=True)
            if self.processors:
                new, old = self.global_processor.raw_times()
                diff = 1 if old > new else new - old
                total_time = diff / len(self.processors)
                compute_cpu = True
                max_value = self._max_process_cpu_usage()

        tasks = self._process_list.tasks
        for pid in list(tasks):
            process = tasks[pid]
            if not process.updated:
                tasks.pop(pid).close()
                continue
            if compute_cpu:
                process.compute_cpu_usage(total_time, max_value)
            process.updated = False

    def refresh_processes(self) -> None:
        """Rescan all processes with every optional datum."""
        self.refresh_processes_specifics(ProcessRefreshKind.everything())

    def refresh_processes_specifics(self, refresh_kind: ProcessRefreshKind) -> None:
        """Rescan all processes, dropping those that are gone."""
        uptime = self.uptime()
        if refresh_procs(self._process_list, self._proc, 0, uptime, self.info, refresh_kind):
            self._clear_procs(refresh_kind)
        self._need_processors_update = True

    def refresh_process(self, pid: int) -> bool:
        """Refresh one process with every optional datum; False if it does not exist."""
        return self.refresh_process_specifics(pid, ProcessRefreshKind.everything())

    def refresh_process_specifics(self, pid: int, refresh_kind: ProcessRefreshKind) -> bool:
        """Refresh or add one process; False if it does not exist."""
        uptime = self.uptime()
        tasks = self._process_list.tasks
        try:
            process, found_pid = get_process_data(
                self._proc / str(pid), self._process_list, 0, uptime, self.info, refresh_kind
            )
        except (OSError, ValueError):
            return False
        if process is not None:
            tasks[found_pid] = process

        if refresh_kind.cpu:
            self._refresh_processors(only_global=True)
            if not self.processors:
                return True
            new, old = self.global_processor.raw_times()
            total_time = float(1 if old >= new else new - old)
            target = tasks.get(pid)
            if target is not None:
                target.compute_cpu_usage(
                    total_time / len(self.processors), self._max_process_cpu_usage()
                )
        else:
            target = tasks.get(pid)
            if target is not None:
                target.updated = False
        return True

    def refresh_disks(self) -> None:
        """Refresh the available space of the known disks."""
        for disk in self.disks:
            disk.refresh()

    def refresh_disks_list(self) -> None:
        """Rescan the mounted disks."""
        self.disks = get_all_disks(self._proc / "mounts")

    def refresh_networks(self) -> None:
        """Refresh the counters of the known interfaces."""
        self.networks.refresh()

    def refresh_networks_list(self) -> None:
        """Rescan the network interfaces."""
        self.networks.refresh_networks_list()

    # Queries ---------------------------------------------------------------

    @property
    def processes(self) -> Mapping[int, Process]:
        """Known processes by pid."""
        return MappingProxyType(self._process_list.tasks)

    def process(self, pid: int) -> Process | None:
        """The process with ``pid``, or None if unknown."""
        return self._process_list.tasks.get(pid)

    def processes_by_name(self, name: str) -> Iterator[Process]:
        """Processes whose name contains ``name``."""
        return (p for p in self._process_list.tasks.values() if name in p.name)

    def physical_core_count(self) -> int | None:
        """Number of physical cores, or None if it cannot be read."""
        return get_physical_core_count(self._cpuinfo)

    def used_memory(self) -> int:
        """Memory in use, excluding buffers, page cache and reclaimable slab."""
        used = (
            self.total_memory
            - self.free_memory
            - self._mem_buffers
            - self._mem_page_cache
            - self._mem_slab_reclaimable
        )
        return max(used, 0)

    def used_swap(self) -> int:
        """Swap in use."""
        return max(self.total_swap - self.free_swap, 0)

    def uptime(self) -> int:
        """Whole seconds since boot."""
        return read_uptime(self._proc / "uptime")

    def boot_time(self) -> int:
        """Boot time in seconds since the epoch."""
        return self.info.boot_time

    def load_average(self) -> LoadAvg:
        """Load averages over one, five and fifteen minutes."""
        return read_load_average(self._proc / "loadavg")

    def name(self) -> str | None:
        """Distribution name."""
        return get_system_info_linux(
            InfoType.NAME, self._etc / "os-release", self._etc / "lsb-release"
        )

    def long_os_version(self) -> str | None:
        """Kernel family, distribution version and name in one line."""
        return f"Linux {self.os_version() or ''} {self.name() or ''}"

    def host_name(self) -> str | None:
        """Name of this host."""
        return host_name()

    def kernel_version(self) -> str | None:
        """Release of the running kernel."""
        return kernel_version()

    def os_version(self) -> str | None:
        """Distribution version."""
        return get_system_info_linux(
            InfoType.OS_VERSION, self._etc / "os-release", self._etc / "lsb-release"
        )


def new_all() -> System:
    """A system with everything refreshed once."""
    return System(RefreshKind.everything())