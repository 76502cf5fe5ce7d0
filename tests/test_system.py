import os
import shutil
import time
from pathlib import Path

import pytest

from hostprobe.common import (
    ProcessRefreshKind,
    ProcessStatus,
    RefreshKind,
    get_current_pid,
    supported_signals,
)
from hostprobe.system import System, new_all

CPUINFO = (
    "processor\t: 0\n"
    "vendor_id\t: FakeVendor\n"
    "model name\t: Fake CPU 3000\n"
    "cpu MHz\t\t: 2400.500\n"
    "physical id\t: 0\n"
    "core id\t\t: 0\n"
    "\n"
    "processor\t: 1\n"
    "vendor_id\t: FakeVendor\n"
    "model name\t: Fake CPU 3000\n"
    "cpu MHz\t\t: 2400.500\n"
    "physical id\t: 0\n"
    "core id\t\t: 1\n"
)

STAT_1 = (
    "cpu  10 0 10 80 0 0 0 0 0 0\n"
    "cpu0 5 0 5 40 0 0 0 0 0 0\n"
    "cpu1 5 0 5 40 0 0 0 0 0 0\n"
    "intr 1\n"
    "btime 1000\n"
)

STAT_2 = (
    "cpu  30 0 20 150 0 0 0 0 0 0\n"
    "cpu0 15 0 5 80 0 0 0 0 0 0\n"
    "cpu1 15 0 15 70 0 0 0 0 0 0\n"
    "intr 1\n"
    "btime 1000\n"
)

MEMINFO = (
    "MemTotal:        1000 kB\n"
    "MemFree:          250 kB\n"
    "MemAvailable:     500 kB\n"
    "Buffers:          125 kB\n"
    "Cached:           125 kB\n"
    "SReclaimable:     125 kB\n"
    "SwapTotal:        500 kB\n"
    "SwapFree:         125 kB\n"
)

OS_RELEASE = 'NAME="Ubuntu"\nVERSION="20.10 (Groovy Gorilla)"\nID=ubuntu\nVERSION_ID="20.10"\n'


def _stat_line(pid, name, state="S", ppid=1, utime=5, stime=3, vsize=123456, rss=10):
    fields = [
        str(pid), f"({name})", state, str(ppid), "42", "42", "0", "-1", "4194304",
        "100", "0", "0", "0", str(utime), str(stime), "0", "0", "20", "0", "1", "0",
        "0", str(vsize), str(rss), "18446744073709551615",
    ]
    return " ".join(fields) + "\n"


@pytest.fixture
def fake_root(tmp_path):
    proc = tmp_path / "proc"
    sysdir = tmp_path / "sys"
    etc = tmp_path / "etc"
    for d in (proc, sysdir, etc):
        d.mkdir()
    (proc / "stat").write_text(STAT_1)
    (proc / "cpuinfo").write_text(CPUINFO)
    (proc / "meminfo").write_text(MEMINFO)
    (proc / "uptime").write_text("12345.67 100.00\n")
    (proc / "loadavg").write_text("0.50 1.00 1.50 1/100 42\n")
    (etc / "os-release").write_text(OS_RELEASE)
    pid_dir = proc / "42"
    pid_dir.mkdir()
    (pid_dir / "stat").write_text(_stat_line(42, "my proc"))
    (pid_dir / "status").write_text("Name:\tmy\nUid:\t1000\t1000\t1000\t1000\nGid:\t100\t100\t100\t100\n")
    (pid_dir / "cmdline").write_bytes(b"prog\0arg\0")
    (proc / "sys").mkdir()
    return tmp_path


def _system(root, refreshes=None):
    return System(
        refreshes,
        proc_dir=root / "proc",
        sys_dir=root / "sys",
        etc_dir=root / "etc",
    )


# Cases against fake /proc, /sys and /etc trees.


def test_fake_memory(fake_root):
    s = _system(fake_root)
    assert s.total_memory == 0
    s.refresh_memory()
    assert s.total_memory == 1024
    assert s.free_memory == 256
    assert s.available_memory == 512
    assert s.used_memory() == 1024 - 256 - 128 * 3
    assert s.total_swap == 512
    assert s.free_swap == 128
    assert s.used_swap() == 384


def test_fake_refresh_kind_memory_only(fake_root):
    s = _system(fake_root, RefreshKind(memory=True))
    assert s.total_memory == 1024
    assert s.processors == []
    assert len(s.processes) == 0


def test_fake_cpu(fake_root):
    s = _system(fake_root)
    s.refresh_cpu()
    assert [p.name for p in s.processors] == ["cpu0", "cpu1"]
    assert s.global_processor.name == "cpu"
    assert s.global_processor.vendor_id == "FakeVendor"
    assert s.global_processor.brand == "Fake CPU 3000"
    assert s.processors[0].frequency == 2400
    assert s.global_processor.frequency == 2400
    assert s.global_processor.cpu_usage == pytest.approx(20.0)

    (fake_root / "proc" / "stat").write_text(STAT_2)
    s.refresh_cpu()
    assert s.global_processor.cpu_usage == pytest.approx(30.0)
    assert s.processors[0].cpu_usage == pytest.approx(20.0)
    assert s.processors[1].cpu_usage == pytest.approx(40.0)


def test_fake_physical_core_count(fake_root):
    assert _system(fake_root).physical_core_count() == 2


def test_fake_times_and_load(fake_root):
    s = _system(fake_root)
    assert s.boot_time() == 1000
    assert s.uptime() == 12345
    load = s.load_average()
    assert (load.one, load.five, load.fifteen) == (0.5, 1.0, 1.5)


def test_fake_os_release(fake_root):
    s = _system(fake_root)
    assert s.name() == "Ubuntu"
    assert s.os_version() == "20.10"
    assert s.long_os_version() == "Linux 20.10 Ubuntu"


def test_fake_processes(fake_root):
    with _system(fake_root) as s:
        s.refresh_processes()
        assert list(s.processes) == [42]
        p = s.process(42)
        assert p.name == "my proc"
        assert p.status is ProcessStatus.SLEEP
        assert p.parent == 1
        assert p.virtual_memory == 123456
        assert (p.uid, p.gid) == (1000, 100)
        assert p.cmd == ["prog", "arg"]
        assert [x.pid for x in s.processes_by_name("my")] == [42]
        assert list(s.processes_by_name("nothing")) == []


def test_fake_process_removed(fake_root):
    with _system(fake_root) as s:
        s.refresh_processes()
        assert s.process(42) is not None
        shutil.rmtree(fake_root / "proc" / "42")
        s.refresh_processes()
        assert s.process(42) is None
        assert len(s.processes) == 0


def test_fake_refresh_process(fake_root):
    with _system(fake_root) as s:
        assert s.refresh_process(42) is True
        assert s.process(42).name == "my proc"
        assert s.refresh_process(42) is True
        assert s.refresh_process(99) is False
        assert s.process(99) is None


def test_fake_refresh_process_without_cpu(fake_root):
    with _system(fake_root) as s:
        assert s.refresh_process_specifics(42, ProcessRefreshKind.new()) is True
        assert s.process(42).updated is False
        assert s.processors == []


# Cases run against the running system.


def test_memory_usage():
    s = System()
    assert s.total_memory == 0
    assert s.free_memory == 0
    assert s.available_memory == 0
    assert s.used_memory() == 0
    assert s.total_swap == 0
    assert s.free_swap == 0
    assert s.used_swap() == 0
    s.refresh_memory()
    assert s.total_memory > 0
    assert s.used_memory() > 0
    assert s.total_swap == 0 or s.free_swap > 0


def test_refresh_system():
    s = System()
    s.refresh_system()
    assert s.total_memory != 0
    assert s.free_memory != 0
    assert s.total_memory >= s.free_memory
    assert s.total_swap >= s.free_swap


def test_process_memory_usage():
    with System() as s:
        s.refresh_all()
        assert not all(p.memory == 0 for p in s.processes.values())


def test_refresh_process_return_value():
    pid = get_current_pid()
    with System() as s:
        assert len(s.processes) == 0
        assert s.refresh_process(pid)
        assert s.refresh_process(pid)
        assert s.process(pid) is not None


def test_get_process():
    with System() as s:
        s.refresh_processes()
        p = s.process(get_current_pid())
        assert p is not None
        assert p.memory > 0


def test_processes_cpu_usage():
    with System() as s:
        s.refresh_processes()
        assert all(p.cpu_usage == 0.0 for p in s.processes.values())
        end = time.monotonic() + 0.3
        while time.monotonic() < end:
            sum(range(1000))
        s.refresh_processes()
        limit = len(s.processors) * 100.0
        assert all(0.0 <= p.cpu_usage <= limit for p in s.processes.values())
        assert s.process(get_current_pid()).cpu_usage > 0.0


def test_processors_number():
    s = System()
    assert s.processors == []
    count = s.physical_core_count()
    assert count is not None
    s.refresh_cpu()
    assert len(s.processors) > 0
    count2 = s.physical_core_count()
    assert count2 <= len(s.processors)
    assert count == count2


def test_supported_signals():
    supported = supported_signals()
    assert len(supported) > 0
    assert set(System.SUPPORTED_SIGNALS) == set(supported)
    assert System.IS_SUPPORTED is True


def test_system_info():
    s = System()
    assert s.kernel_version() == os.uname().release
    assert s.long_os_version().startswith("Linux ")


def test_host_name_has_no_nuls():
    name = System().host_name()
    assert name is not None
    assert "\0" not in name


def test_uptime_increases():
    s = System()
    uptime = s.uptime()
    time.sleep(1.05)
    assert uptime < s.uptime()


def test_new_all():
    with new_all() as s:
        assert s.total_memory > 0
        assert len(s.processors) > 0
        assert s.process(get_current_pid()) is not None
        assert Path("/proc").is_dir()