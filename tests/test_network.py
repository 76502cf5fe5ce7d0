from pathlib import Path

import pytest

from hostprobe.network import (
    NetworkData,
    Networks,
    read_counter,
    refresh_networks_list_from_sysfs,
)


def _stats(root: Path, name: str, **counters) -> Path:
    stats = root / name / "statistics"
    stats.mkdir(parents=True, exist_ok=True)
    for key, value in counters.items():
        (stats / key).write_text(f"{value}\n")
    return stats


def test_refresh_networks_list_add_interface(tmp_path):
    (tmp_path / "itf1").mkdir()
    interfaces = {}
    refresh_networks_list_from_sysfs(interfaces, tmp_path)
    assert list(interfaces) == ["itf1"]

    (tmp_path / "itf2").mkdir()
    refresh_networks_list_from_sysfs(interfaces, tmp_path)
    assert sorted(interfaces) == ["itf1", "itf2"]


def test_refresh_networks_list_remove_interface(tmp_path):
    itf1 = tmp_path / "itf1"
    itf2 = tmp_path / "itf2"
    itf1.mkdir()
    itf2.mkdir()
    interfaces = {}
    refresh_networks_list_from_sysfs(interfaces, tmp_path)
    assert sorted(interfaces) == ["itf1", "itf2"]

    itf1.rmdir()
    refresh_networks_list_from_sysfs(interfaces, tmp_path)
    assert list(interfaces) == ["itf2"]


def test_missing_sysfs_dir_leaves_interfaces(tmp_path):
    interfaces = {"eth0": NetworkData()}
    refresh_networks_list_from_sysfs(interfaces, tmp_path / "absent")
    assert list(interfaces) == ["eth0"]


def test_read_counter_values(tmp_path):
    (tmp_path / "rx_bytes").write_text("123\n")
    (tmp_path / "junk").write_text("abc")
    (tmp_path / "mixed").write_text("42abc")
    assert read_counter(tmp_path, "rx_bytes") == 123
    assert read_counter(tmp_path, "junk") == 0
    assert read_counter(tmp_path, "mixed") == 42
    assert read_counter(tmp_path, "missing") == 0


def test_new_interface_has_no_delta(tmp_path):
    _stats(tmp_path, "eth0", rx_bytes=1000, tx_bytes=500, rx_packets=10)
    interfaces = {}
    refresh_networks_list_from_sysfs(interfaces, tmp_path)
    data = interfaces["eth0"]
    assert data.total_received() == 1000
    assert data.total_transmitted() == 500
    assert data.total_packets_received() == 10
    assert data.received() == 0
    assert data.transmitted() == 0
    assert data.packets_received() == 0


def test_relist_shifts_counters(tmp_path):
    _stats(tmp_path, "eth0", rx_bytes=1000, tx_errors=1)
    interfaces = {}
    refresh_networks_list_from_sysfs(interfaces, tmp_path)
    _stats(tmp_path, "eth0", rx_bytes=1500, tx_errors=4)
    refresh_networks_list_from_sysfs(interfaces, tmp_path)
    data = interfaces["eth0"]
    assert data.received() == 500
    assert data.errors_on_transmitted() == 3
    assert data.total_errors_on_transmitted() == 4
    assert data.updated is True


def test_update_and_saturating_deltas(tmp_path):
    stats = _stats(
        tmp_path,
        "eth0",
        rx_bytes=100,
        tx_bytes=200,
        rx_packets=3,
        tx_packets=4,
        rx_errors=5,
        tx_errors=6,
    )
    data = NetworkData(rx_bytes=150, tx_bytes=50)
    data.update(stats)
    assert data.old_rx_bytes == 150
    assert data.rx_bytes == 100
    assert data.received() == 0
    assert data.transmitted() == 150
    assert data.packets_transmitted() == 4
    assert data.errors_on_received() == 5
    assert data.total_packets_transmitted() == 4
    assert data.total_errors_on_received() == 5


def test_networks_mapping_and_refresh(tmp_path):
    _stats(tmp_path, "lo", rx_bytes=10, tx_bytes=10)
    _stats(tmp_path, "eth0", rx_bytes=100, tx_bytes=20)
    networks = Networks(tmp_path)
    assert len(networks) == 0
    networks.refresh_networks_list()
    assert sorted(networks) == ["eth0", "lo"]
    assert len(networks) == 2

    _stats(tmp_path, "eth0", rx_bytes=160, tx_bytes=25)
    _stats(tmp_path, "wlan0", rx_bytes=1)
    networks.refresh()
    assert "wlan0" not in networks
    assert networks["eth0"].received() == 60
    assert networks["eth0"].transmitted() == 5
    assert networks["lo"].received() == 0


def test_networks_unknown_name_raises(tmp_path):
    _stats(tmp_path, "eth0", rx_bytes=7)
    networks = Networks(tmp_path)
    networks.refresh_networks_list()
    assert networks["eth0"].total_received() == 7
    with pytest.raises(KeyError):
        networks["nope"]
    assert len(networks) == 1