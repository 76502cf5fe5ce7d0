"""Shared types: process statuses, signals, refresh selections and the open-file budget."""

from __future__ import annotations

import enum
import os
import signal as _signal
import sys
import threading
from dataclasses import dataclass, field

_DEFAULT_FD_BUDGET = 1024 // 2


class ProcessStatus(enum.Enum):
    """State of a process; the value is its display text."""

    IDLE = "Idle"
    RUN = "Runnable"
    SLEEP = "Sleeping"
    STOP = "Stopped"
    ZOMBIE = "Zombie"
    TRACING = "Tracing"
    DEAD = "Dead"
    WAKEKILL = "Wakekill"
    WAKING = "Waking"
    PARKED = "Parked"
    UNKNOWN = "Unknown"

    def __str__(self) -> str:
        return self.value


_CHAR_STATUS = {
    "R": ProcessStatus.RUN,
    "S": ProcessStatus.SLEEP,
    "D": ProcessStatus.IDLE,
    "Z": ProcessStatus.ZOMBIE,
    "T": ProcessStatus.STOP,
    "t": ProcessStatus.TRACING,
    "X": ProcessStatus.DEAD,
    "x": ProcessStatus.DEAD,
    "K": ProcessStatus.WAKEKILL,
    "W": ProcessStatus.WAKING,
    "P": ProcessStatus.PARKED,
}

_CODE_STATUS = {
    1: ProcessStatus.IDLE,
    2: ProcessStatus.RUN,
    3: ProcessStatus.SLEEP,
    4: ProcessStatus.STOP,
    5: ProcessStatus.ZOMBIE,
}


def status_from_char(c: str) -> ProcessStatus:
    """Map the state letter of a ``stat`` file to a status."""
    return _CHAR_STATUS.get(c[:1], ProcessStatus.UNKNOWN)


def status_from_code(code: int) -> ProcessStatus:
    """Map a numeric state code to a status."""
    return _CODE_STATUS.get(code, ProcessStatus.UNKNOWN)


class Signal(enum.Enum):
    """Signals that can be sent to a process; the value is the POSIX name."""

    HANGUP = "SIGHUP"
    INTERRUPT = "SIGINT"
    QUIT = "SIGQUIT"
    ILLEGAL = "SIGILL"
    TRAP = "SIGTRAP"
    ABORT = "SIGABRT"
    IOT = "SIGIOT"
    BUS = "SIGBUS"
    FLOATING_POINT_EXCEPTION = "SIGFPE"
    KILL = "SIGKILL"
    USER1 = "SIGUSR1"
    SEGV = "SIGSEGV"
    USER2 = "SIGUSR2"
    PIPE = "SIGPIPE"
    ALARM = "SIGALRM"
    TERM = "SIGTERM"
    CHILD = "SIGCHLD"
    CONTINUE = "SIGCONT"
    STOP = "SIGSTOP"
    TSTP = "SIGTSTP"
    TTIN = "SIGTTIN"
    TTOU = "SIGTTOU"
    URGENT = "SIGURG"
    XCPU = "SIGXCPU"
    XFSZ = "SIGXFSZ"
    VIRTUAL_ALARM = "SIGVTALRM"
    PROFILING = "SIGPROF"
    WINCH = "SIGWINCH"
    IO = "SIGIO"
    POLL = "SIGPOLL"
    POWER = "SIGPWR"
    SYS = "SIGSYS"


def convert_signal(signal: Signal) -> int | None:
    """Return the platform's number for ``signal``, or None if unsupported."""
    number = getattr(_signal, signal.value, None)
    return None if number is None else int(number)


def supported_signals() -> tuple[Signal, ...]:
    """Signals this platform can deliver, in declaration order."""
    return tuple(s for s in Signal if convert_signal(s) is not None)


class DiskType(enum.Enum):
    """Kind of storage device."""

    HDD = "HDD"
    SSD = "SSD"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class DiskUsage:
    """Bytes read and written by a process, since last refresh and in total."""

    written_bytes: int = 0
    total_written_bytes: int = 0
    read_bytes: int = 0
    total_read_bytes: int = 0


@dataclass(frozen=True)
class LoadAvg:
    """System load average over one, five and fifteen minutes."""

    one: float = 0.0
    five: float = 0.0
    fifteen: float = 0.0


@dataclass(frozen=True)
class ProcessRefreshKind:
    """Which optional process data to refresh."""

    cpu: bool = False
    disk_usage: bool = False

    @classmethod
    def new(cls) -> ProcessRefreshKind:
        return cls()

    @classmethod
    def everything(cls) -> ProcessRefreshKind:
        return cls(cpu=True, disk_usage=True)

    def with_cpu(self) -> ProcessRefreshKind:
        return ProcessRefreshKind(cpu=True, disk_usage=self.disk_usage)

    def with_disk_usage(self) -> ProcessRefreshKind:
        return ProcessRefreshKind(cpu=self.cpu, disk_usage=True)


@dataclass(frozen=True)
class RefreshKind:
    """Which parts of the system to refresh; ``processes`` is None to skip them."""

    networks: bool = False
    networks_list: bool = False
    processes: ProcessRefreshKind | None = None
    disks_list: bool = False
    disks: bool = False
    memory: bool = False
    cpu: bool = False
    components: bool = False
    components_list: bool = False
    users_list: bool = False

    @classmethod
    def new(cls) -> RefreshKind:
        return cls()

    @classmethod
    def everything(cls) -> RefreshKind:
        return cls(
            networks=True,
            networks_list=True,
            processes=ProcessRefreshKind.everything(),
            disks_list=True,
            disks=True,
            memory=True,
            cpu=True,
            components=True,
            components_list=True,
            users_list=True,
        )


def get_current_pid() -> int:
    """Pid of the running interpreter."""
    return os.getpid()


def _finite_limit(value: int, infinity: int) -> int:
    return sys.maxsize if value == infinity or value < 0 else value


def get_max_nb_fds() -> int:
    """Half of the hard limit on open file descriptors."""
    try:
        import resource
    except ImportError:
        return _DEFAULT_FD_BUDGET
    try:
        _soft, hard = resource.getrlimit(resource.RLIMIT_NOFILE)
    except (OSError, ValueError):
        return _DEFAULT_FD_BUDGET
    return _finite_limit(hard, resource.RLIM_INFINITY) // 2


@dataclass
class _FileBudget:
    """Count of ``/proc`` files that may still be kept open."""

    _lock: threading.Lock = field(default_factory=threading.Lock)
    _remaining: int | None = None

    @staticmethod
    def _initial() -> int:
        try:
            import resource
        except ImportError:
            return _DEFAULT_FD_BUDGET
        try:
            soft, hard = resource.getrlimit(resource.RLIMIT_NOFILE)
        except (OSError, ValueError):
            return _DEFAULT_FD_BUDGET
        # Raise the soft limit to the hard one and keep half for the caller.
        try:
            resource.setrlimit(resource.RLIMIT_NOFILE, (hard, hard))
        except (OSError, ValueError):
            return _finite_limit(soft, resource.RLIM_INFINITY) // 2
        return _finite_limit(hard, resource.RLIM_INFINITY) // 2

    def _value(self) -> int:
        if self._remaining is None:
            self._remaining = self._initial()
        return self._remaining

    def remaining(self) -> int:
        with self._lock:
            return self._value()

    def acquire(self) -> bool:
        with self._lock:
            if self._value() > 0:
                self._remaining = self._value() - 1
                return True
            return False

    def release(self) -> None:
        with self._lock:
            self._remaining = self._value() + 1

    def set_limit(self, new_limit: int) -> bool:
        new_limit = max(new_limit, 0)
        maximum = get_max_nb_fds()
        new_limit = min(new_limit, maximum)
        with self._lock:
            # Account for files already open so the total never exceeds the new limit.
            diff = maximum - self._value()
            self._remaining = new_limit - diff
        return True


_BUDGET = _FileBudget()


def set_open_files_limit(new_limit: int) -> bool:
    """Change how many ``/proc`` files may be kept open; clamped to the system limit."""
    return _BUDGET.set_limit(new_limit)


def acquire_file_slot() -> bool:
    """Take one slot from the open-file budget; False if none is left."""
    return _BUDGET.acquire()


def release_file_slot() -> None:
    """Give back a slot taken with :func:`acquire_file_slot`."""
    _BUDGET.release()


def remaining_file_slots() -> int:
    """Number of slots left in the open-file budget."""
    return _BUDGET.remaining()