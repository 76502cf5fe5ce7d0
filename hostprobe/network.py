"""Network interface counters read from ``/sys/class/net``."""

from __future__ import annotations

import os
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path

SYSFS_NET_DIR = Path("/sys/class/net")

_COUNTERS = ("rx_bytes", "tx_bytes", "rx_packets", "tx_packets", "rx_errors", "tx_errors")
_READ_SIZE = 30


def read_counter(parent: str | os.PathLike[str], name: str) -> int:
    """Leading decimal number of the file ``parent/name``, or 0."""
    try:
        with open(Path(parent) / name, "rb") as file:
            data = file.read(_READ_SIZE)
    except OSError:
        return 0
    digits = bytearray()
    for byte in data:
        if not 0x30 <= byte <= 0x39:
            break
        digits.append(byte)
    return int(digits) if digits else 0


def _read_counters(statistics_dir: Path) -> dict[str, int]:
    return {name: read_counter(statistics_dir, name) for name in _COUNTERS}


@dataclass
class NetworkData:
    """Counters of one interface, current and as of the previous refresh."""

    rx_bytes: int = 0
    old_rx_bytes: int = 0
    tx_bytes: int = 0
    old_tx_bytes: int = 0
    rx_packets: int = 0
    old_rx_packets: int = 0
    tx_packets: int = 0
    old_tx_packets: int = 0
    rx_errors: int = 0
    old_rx_errors: int = 0
    tx_errors: int = 0
    old_tx_errors: int = 0
    updated: bool = True

    @classmethod
    def from_counters(cls, counters: Mapping[str, int]) -> NetworkData:
        """New entry whose previous values equal the current ones."""
        values: dict[str, int] = {}
        for name in _COUNTERS:
            values[name] = counters[name]
            values[f"old_{name}"] = counters[name]
        return cls(**values)

    def _shift(self, counters: Mapping[str, int]) -> None:
        for name in _COUNTERS:
            setattr(self, f"old_{name}", getattr(self, name))
            setattr(self, name, counters[name])

    def update(self, statistics_dir: str | os.PathLike[str]) -> None:
        """Read new counters from ``statistics_dir``; current ones become previous."""
        self._shift(_read_counters(Path(statistics_dir)))

    def received(self) -> int:
        return max(self.rx_bytes - self.old_rx_bytes, 0)

    def total_received(self) -> int:
        return self.rx_bytes

    def transmitted(self) -> int:
        return max(self.tx_bytes - self.old_tx_bytes, 0)

    def total_transmitted(self) -> int:
        return self.tx_bytes

    def packets_received(self) -> int:
        return max(self.rx_packets - self.old_rx_packets, 0)

    def total_packets_received(self) -> int:
        return self.rx_packets

    def packets_transmitted(self) -> int:
        return max(self.tx_packets - self.old_tx_packets, 0)

    def total_packets_transmitted(self) -> int:
        return self.tx_packets

    def errors_on_received(self) -> int:
        return max(self.rx_errors - self.old_rx_errors, 0)

    def total_errors_on_received(self) -> int:
        return self.rx_errors

    def errors_on_transmitted(self) -> int:
        return max(self.tx_errors - self.old_tx_errors, 0)

    def total_errors_on_transmitted(self) -> int:
        return self.tx_errors


def refresh_networks_list_from_sysfs(
    interfaces: dict[str, NetworkData], sysfs_net: str | os.PathLike[str]
) -> None:
    """Sync ``interfaces`` with the entries of ``sysfs_net``: add, update and drop."""
    try:
        with os.scandir(sysfs_net) as it:
            entries = list(it)
    except OSError:
        return
    for data in interfaces.values():
        data.updated = False
    for entry in entries:
        name = entry.name
        try:
            name.encode("utf-8")
        except UnicodeEncodeError:
            continue
        counters = _read_counters(Path(entry.path) / "statistics")
        existing = interfaces.get(name)
        if existing is None:
            interfaces[name] = NetworkData.from_counters(counters)
        else:
            existing._shift(counters)
            existing.updated = True
    for name in [n for n, d in interfaces.items() if not d.updated]:
        del interfaces[name]


class Networks(Mapping[str, NetworkData]):
    """Network interfaces by name."""

    def __init__(self, sysfs_net: str | os.PathLike[str] = SYSFS_NET_DIR) -> None:
        self.sysfs_net = Path(sysfs_net)
        self._interfaces: dict[str, NetworkData] = {}

    def refresh(self) -> None:
        """Update counters of the known interfaces without adding new ones."""
        for name, data in self._interfaces.items():
            data.update(self.sysfs_net / name / "statistics")

    def refresh_networks_list(self) -> None:
        """Rescan interfaces, adding new ones and dropping those that are gone."""
        refresh_networks_list_from_sysfs(self._interfaces, self.sysfs_net)

    def __iter__(self) -> Iterator[str]:
        return iter(self._interfaces)

    def __len__(self) -> int:
        return len(self._interfaces)

    def __getitem__(self, name: str) -> NetworkData:
        return self._interfaces[name]