"""Inspect a Linux host: processes, processors, memory, disks, networks and sensors."""

__version__ = "0.1.0"
__all__ = [
    "common",
    "component",
    "disk",
    "fileutil",
    "network",
    "osinfo",
    "process",
    "processor",
    "system",
]