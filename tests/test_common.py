import os
import signal

import pytest

from hostprobe.common import (
    DiskUsage,
    LoadAvg,
    ProcessRefreshKind,
    ProcessStatus,
    RefreshKind,
    Signal,
    acquire_file_slot,
    convert_signal,
    get_current_pid,
    get_max_nb_fds,
    release_file_slot,
    remaining_file_slots,
    set_open_files_limit,
    status_from_char,
    status_from_code,
    supported_signals,
)


@pytest.mark.parametrize(
    "char,expected",
    [
        ("R", ProcessStatus.RUN),
        ("S", ProcessStatus.SLEEP),
        ("D", ProcessStatus.IDLE),
        ("Z", ProcessStatus.ZOMBIE),
        ("T", ProcessStatus.STOP),
        ("t", ProcessStatus.TRACING),
        ("X", ProcessStatus.DEAD),
        ("x", ProcessStatus.DEAD),
        ("K", ProcessStatus.WAKEKILL),
        ("W", ProcessStatus.WAKING),
        ("P", ProcessStatus.PARKED),
        ("Q", ProcessStatus.UNKNOWN),
        ("", ProcessStatus.UNKNOWN),
    ],
)
def test_status_from_char(char, expected):
    assert status_from_char(char) is expected


def test_status_from_char_uses_first_letter():
    assert status_from_char("Sleeping") is ProcessStatus.SLEEP


@pytest.mark.parametrize(
    "code,expected",
    [
        (1, ProcessStatus.IDLE),
        (2, ProcessStatus.RUN),
        (3, ProcessStatus.SLEEP),
        (4, ProcessStatus.STOP),
        (5, ProcessStatus.ZOMBIE),
        (42, ProcessStatus.UNKNOWN),
    ],
)
def test_status_from_code(code, expected):
    assert status_from_code(code) is expected


def test_status_display_text():
    assert str(status_from_char("R")) == "Runnable"
    assert str(status_from_char("S")) == "Sleeping"
    assert str(status_from_code(42)) == "Unknown"


def test_kill_signal_converts():
    assert convert_signal(Signal.KILL) == signal.SIGKILL
    assert convert_signal(Signal.TERM) == signal.SIGTERM


def test_supported_signals_all_convert():
    supported = supported_signals()
    assert Signal.KILL in supported
    assert all(convert_signal(s) is not None for s in supported)


def test_supported_signals_keep_declaration_order():
    supported = supported_signals()
    order = list(Signal)
    assert [order.index(s) for s in supported] == sorted(order.index(s) for s in supported)


def test_refresh_kind_new_selects_nothing():
    kind = RefreshKind.new()
    assert kind.processes is None
    assert not any(
        [kind.memory, kind.cpu, kind.disks, kind.disks_list, kind.networks,
         kind.networks_list, kind.components, kind.components_list, kind.users_list]
    )


def test_refresh_kind_everything_selects_all():
    kind = RefreshKind.everything()
    assert kind.processes == ProcessRefreshKind.everything()
    assert all(
        [kind.memory, kind.cpu, kind.disks, kind.disks_list, kind.networks,
         kind.networks_list, kind.components, kind.components_list, kind.users_list]
    )


def test_process_refresh_kind_builders():
    assert ProcessRefreshKind.new() == ProcessRefreshKind(cpu=False, disk_usage=False)
    assert ProcessRefreshKind.new().with_cpu() == ProcessRefreshKind(cpu=True)
    both = ProcessRefreshKind.new().with_cpu().with_disk_usage()
    assert both == ProcessRefreshKind.everything()


def test_value_types_defaults():
    assert LoadAvg() == LoadAvg(0.0, 0.0, 0.0)
    usage = DiskUsage(written_bytes=1, total_written_bytes=2, read_bytes=3, total_read_bytes=4)
    assert (usage.written_bytes, usage.total_read_bytes) == (1, 4)


def test_current_pid():
    assert get_current_pid() == os.getpid()


def test_max_fds_positive():
    assert get_max_nb_fds() > 0


def test_acquire_release_round_trip():
    before = remaining_file_slots()
    if before > 0:
        assert acquire_file_slot() is True
        assert remaining_file_slots() == before - 1
        release_file_slot()
    else:
        assert acquire_file_slot() is False
    assert remaining_file_slots() == before


def test_setting_limit_above_max_keeps_budget():
    before = remaining_file_slots()
    assert set_open_files_limit(get_max_nb_fds() + 10) is True
    assert remaining_file_slots() == before
    assert set_open_files_limit(get_max_nb_fds()) is True
    assert remaining_file_slots() == before