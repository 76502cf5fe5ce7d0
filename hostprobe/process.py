"""Processes and their threads read from ``/proc``."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO

from hostprobe.common import (
    DiskUsage,
    ProcessRefreshKind,
    ProcessStatus,
    Signal,
    acquire_file_slot,
    convert_signal,
    release_file_slot,
    status_from_char,
)
from hostprobe.fileutil import get_all_data, get_all_data_from_file, realpath
from hostprobe.osinfo import SystemInfo

_U64_MAX = 2**64 - 1
_U32_MAX = 2**32 - 1
_I32_MIN = -(2**31)
_I32_MAX = 2**31 - 1
_UNSIGNED_RE = re.compile(r"\+?[0-9]+")
_SIGNED_RE = re.compile(r"[+-]?[0-9]+")
_CMDLINE_READ_SIZE = 16_384
_STAT_MIN_FIELDS = 24


def _parse_unsigned(text: str, maximum: int = _U64_MAX) -> int | None:
    if not _UNSIGNED_RE.fullmatch(text):
        return None
    value = int(text)
    return value if value <= maximum else None


def _parse_pid(text: str) -> int | None:
    if not _SIGNED_RE.fullmatch(text):
        return None
    value = int(text)
    return value if _I32_MIN <= value <= _I32_MAX else None


@dataclass(eq=False)
class Process:
    """A process or thread; memory is in kB, virtual memory in bytes."""

    pid: int
    parent: int | None = None
    start_time_without_boot_time: int = 0
    start_time: int = 0
    name: str = ""
    cmd: list[str] = field(default_factory=list)
    exe: Path | None = None
    environ: list[str] = field(default_factory=list)
    cwd: Path | None = None
    root: Path | None = None
    memory: int = 0
    virtual_memory: int = 0
    utime: int = 0
    stime: int = 0
    old_utime: int = 0
    old_stime: int = 0
    run_time: int = 0
    updated: bool = True
    cpu_usage: float = 0.0
    uid: int = 0
    gid: int = 0
    status: ProcessStatus = ProcessStatus.UNKNOWN
    tasks: dict[int, Process] = field(default_factory=dict, repr=False)
    stat_file: BinaryIO | None = field(default=None, repr=False)
    read_bytes: int = 0
    old_read_bytes: int = 0
    written_bytes: int = 0
    old_written_bytes: int = 0

    @classmethod
    def new(
        cls,
        pid: int,
        parent: int | None,
        start_time_without_boot_time: int,
        info: SystemInfo,
    ) -> Process:
        """Fresh process whose start time is shifted by the boot time."""
        return cls(
            pid=pid,
            parent=parent,
            start_time_without_boot_time=start_time_without_boot_time,
            start_time=start_time_without_boot_time + info.boot_time,
        )

    def kill_with(self, signal: Signal) -> bool | None:
        """Send ``signal``; None if unsupported, else whether it was delivered."""
        number = convert_signal(signal)
        if number is None:
            return None
        try:
            os.kill(self.pid, number)
        except OSError:
            return False
        return True

    def kill(self) -> bool:
        """Send SIGKILL; whether it was delivered."""
        return bool(self.kill_with(Signal.KILL))

    def disk_usage(self) -> DiskUsage:
        """Bytes read and written since the previous refresh and in total."""
        return DiskUsage(
            written_bytes=max(self.written_bytes - self.old_written_bytes, 0),
            total_written_bytes=self.written_bytes,
            read_bytes=max(self.read_bytes - self.old_read_bytes, 0),
            total_read_bytes=self.read_bytes,
        )

    def set_time(self, utime: int, stime: int) -> None:
        """Record new CPU times; the current ones become the previous ones."""
        self.old_utime = self.utime
        self.old_stime = self.stime
        self.utime = utime
        self.stime = stime
        self.updated = True

    def compute_cpu_usage(self, total_time: float, max_value: float) -> None:
        """Update the usage percentage, capped at ``max_value``."""
        # Without a previous measure there is nothing to compare with yet.
        if self.old_utime == 0 and self.old_stime == 0:
            return
        spent = max(self.utime - self.old_utime, 0) + max(self.stime - self.old_stime, 0)
        if total_time == 0:
            self.cpu_usage = max_value
            return
        self.cpu_usage = min(spent / total_time * 100.0, max_value)

    def update_disk_activity(self, path: str | os.PathLike[str]) -> None:
        """Read I/O counters from the ``io`` file of the process directory ``path``."""
        try:
            data = get_all_data(Path(path) / "io")
        except (OSError, UnicodeDecodeError):
            return
        done = 0
        for line in data.split("\n"):
            key, _, value = line.partition(": ")
            if key == "read_bytes":
                self.old_read_bytes = self.read_bytes
                parsed = _parse_unsigned(value)
                self.read_bytes = self.old_read_bytes if parsed is None else parsed
            elif key == "write_bytes":
                self.old_written_bytes = self.written_bytes
                parsed = _parse_unsigned(value)
                self.written_bytes = self.old_written_bytes if parsed is None else parsed
            else:
                continue
            done += 1
            if done > 1:
                break

    def close(self) -> None:
        """Close the kept ``stat`` files of this process and its tasks."""
        if self.stat_file is not None:
            self.stat_file.close()
            self.stat_file = None
            release_file_slot()
        for task in self.tasks.values():
            task.close()

    def __enter__(self) -> Process:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def parse_stat_file(data: str) -> list[str]:
    """Split a ``stat`` line; the command name may hold spaces and parentheses."""
    first, sep, rest = data.partition(" ")
    if not sep:
        raise ValueError("stat data has no field separator")
    head, sep, tail = rest.rpartition(")")
    if not sep:
        raise ValueError("stat data has no closing parenthesis")
    name = head[1:] if head.startswith("(") else head
    return [first, name, *tail.split()]


def _id_field(line: str, header: str) -> int | None:
    if not line.startswith(header):
        return None
    tokens = line.split()
    return _parse_unsigned(tokens[2] if len(tokens) > 2 else "0", _U32_MAX)


def get_uid_and_gid(status_data: str) -> tuple[int, int] | None:
    """Effective uid and gid from a ``status`` file, or None if either is missing."""
    uid: int | None = None
    gid: int | None = None
    for line in status_data.splitlines():
        value = _id_field(line, "Uid:")
        if value is not None:
            if uid is not None:
                raise ValueError("duplicate Uid line")
            uid = value
        else:
            value = _id_field(line, "Gid:")
            if value is None:
                continue
            if gid is not None:
                raise ValueError("duplicate Gid line")
            gid = value
        if uid is not None and gid is not None:
            break
    if uid is None or gid is None:
        return None
    return uid, gid


def copy_from_file(path: str | os.PathLike[str]) -> list[str]:
    """NUL-terminated strings of a file such as ``cmdline``, each stripped."""
    try:
        with open(path, "rb") as file:
            data = file.read(_CMDLINE_READ_SIZE)
    except OSError:
        return []
    out = []
    # The last piece has no terminating NUL and is left out.
    for chunk in data.split(b"\0")[:-1]:
        if not chunk:
            continue
        try:
            out.append(chunk.decode("utf-8").strip())
        except UnicodeDecodeError:
            continue
    return out


def _keep_open(file: BinaryIO) -> BinaryIO | None:
    if acquire_file_slot():
        return file
    file.close()
    return None


def _read_stat(path: Path) -> tuple[str, BinaryIO | None]:
    file = open(path / "stat", "rb")
    try:
        data = get_all_data_from_file(file)
    except BaseException:
        file.close()
        raise
    return data, file


def _stat_parts(data: str) -> list[str]:
    parts = parse_stat_file(data)
    if len(parts) < _STAT_MIN_FIELDS:
        raise ValueError(f"stat data has only {len(parts)} fields")
    return parts


def _update_time_and_memory(
    path: Path,
    entry: Process,
    parts: list[str],
    parent_memory: int,
    parent_virtual_memory: int,
    uptime: int,
    info: SystemInfo,
    refresh_kind: ProcessRefreshKind,
) -> None:
    entry.memory = (_parse_unsigned(parts[23]) or 0) * info.page_size_kb
    if entry.memory >= parent_memory:
        entry.memory -= parent_memory
    entry.virtual_memory = _parse_unsigned(parts[22]) or 0
    if entry.virtual_memory >= parent_virtual_memory:
        entry.virtual_memory -= parent_virtual_memory
    entry.set_time(_parse_unsigned(parts[13]) or 0, _parse_unsigned(parts[14]) or 0)
    entry.run_time = max(uptime - entry.start_time_without_boot_time, 0)
    refresh_procs(entry, path / "task", entry.pid, uptime, info, refresh_kind)


def _update_existing(
    path: Path,
    entry: Process,
    parent_memory: int,
    parent_virtual_memory: int,
    uptime: int,
    info: SystemInfo,
    refresh_kind: ProcessRefreshKind,
) -> None:
    if entry.stat_file is not None:
        data = get_all_data_from_file(entry.stat_file)
    else:
        data, file = _read_stat(path)
        entry.stat_file = _keep_open(file)
    parts = _stat_parts(data)
    entry.status = status_from_char(parts[2])
    _update_time_and_memory(
        path, entry, parts, parent_memory, parent_virtual_memory, uptime, info, refresh_kind
    )
    if refresh_kind.disk_usage:
        entry.update_disk_activity(path)


def get_process_data(
    path: str | os.PathLike[str],
    proc_list: Process,
    pid: int,
    uptime: int,
    info: SystemInfo,
    refresh_kind: ProcessRefreshKind,
) -> tuple[Process | None, int]:
    """Read the process directory ``path`` under ``proc_list``.

    Returns ``(new_process, pid)``; ``new_process`` is None when an already known
    entry was updated in place. Raises ValueError for an unusable entry and
    OSError when its files cannot be read.
    """
    path = Path(path)
    found_pid = _parse_pid(path.name)
    if found_pid is None or found_pid == pid:
        raise ValueError(f"not a process entry: {path.name!r}")

    existing = proc_list.tasks.get(found_pid)
    if existing is not None:
        _update_existing(
            path,
            existing,
            proc_list.memory,
            proc_list.virtual_memory,
            uptime,
            info,
            refresh_kind,
        )
        return None, found_pid

    data, file = _read_stat(path)
    try:
        parts = _stat_parts(data)
    except ValueError:
        file.close()
        raise
    stat_file = _keep_open(file)

    if proc_list.pid != 0:
        parent_pid: int | None = proc_list.pid
    else:
        parsed = _parse_pid(parts[3])
        parent_pid = parsed if parsed else None

    start_time = (_parse_unsigned(parts[21]) or 0) // info.clock_cycle
    process = Process.new(found_pid, parent_pid, start_time, info)
    process.stat_file = stat_file
    process.status = status_from_char(parts[2])

    try:
        ids = get_uid_and_gid(get_all_data(path / "status"))
    except (OSError, ValueError):
        ids = None
    if ids is not None:
        process.uid, process.gid = ids

    if proc_list.pid != 0:
        # A thread shares these with its process.
        process.cmd = list(proc_list.cmd)
        process.name = proc_list.name
        process.environ = list(proc_list.environ)
        process.exe = proc_list.exe
        process.cwd = proc_list.cwd
        process.root = proc_list.root
    else:
        process.name = parts[1]
        process.cmd = copy_from_file(path / "cmdline")
        try:
            process.exe = Path(os.readlink(path / "exe"))
        except OSError:
            process.exe = Path(process.cmd[0]) if process.cmd else None
        process.environ = copy_from_file(path / "environ")
        process.cwd = realpath(path / "cwd")
        process.root = realpath(path / "root")

    _update_time_and_memory(
        path,
        process,
        parts,
        proc_list.memory,
        proc_list.virtual_memory,
        uptime,
        info,
        refresh_kind,
    )
    if refresh_kind.disk_usage:
        process.update_disk_activity(path)
    return process, found_pid


def _subdirectories(path: Path) -> list[Path] | None:
    try:
        with os.scandir(path) as it:
            entries = [Path(entry.path) for entry in it]
    except OSError:
        return None
    return sorted(p for p in entries if p.is_dir())


def refresh_procs(
    proc_list: Process,
    path: str | os.PathLike[str],
    pid: int,
    uptime: int,
    info: SystemInfo,
    refresh_kind: ProcessRefreshKind,
) -> bool:
    """Scan ``path`` for the children of ``proc_list``; False if it cannot be read.

    For the root list (``pid`` 0) stale entries are left for the caller to drop;
    for a process, tasks that disappeared are removed here.
    """
    folders = _subdirectories(Path(path))
    if folders is None:
        return False

    new_tasks: list[Process] = []
    updated_pids: set[int] = set()
    for folder in folders:
        try:
            process, found_pid = get_process_data(
                folder, proc_list, pid, uptime, info, refresh_kind
            )
        except (OSError, ValueError):
            continue
        updated_pids.add(found_pid)
        if process is not None:
            new_tasks.append(process)

    if pid != 0:
        for gone in [p for p in proc_list.tasks if p not in updated_pids]:
            proc_list.tasks.pop(gone).close()

    for process in new_tasks:
        previous = proc_list.tasks.get(process.pid)
        if previous is not None and previous is not process:
            previous.close()
        proc_list.tasks[process.pid] = process
    return True