# hostprobe

`hostprobe` reads what a Linux host is doing from `/proc`, `/sys` and `/etc`.
It covers processes and their threads, processor usage and frequency, memory
and swap, mounted disks, network interfaces, temperature sensors, load
average, uptime and operating-system details. It uses only the standard
library.

## Installing

```
pip install .
```

To run the test suite:

```
pip install .[test]
pytest
```

## Taking a snapshot

A `System` (in `hostprobe.system`) holds the figures from its most recent
refreshes. `new_all()` builds one and refreshes everything once:

```python
from hostprobe.system import new_all

s = new_all()
print(s.name(), s.os_version(), s.kernel_version())
print(s.long_os_version())
print("host:", s.host_name())
print("memory total:", s.total_memory, "used:", s.used_memory())
print("swap total:", s.total_swap, "used:", s.used_swap())
print("uptime:", s.uptime(), "booted at:", s.boot_time())
print("load:", s.load_average())
print("physical cores:", s.physical_core_count())
```

Memory and swap figures (`total_memory`, `free_memory`, `available_memory`,
`total_swap`, `free_swap`, `used_memory()`, `used_swap()`) are in kilobytes.
A process's `memory` is in kilobytes and its `virtual_memory` in bytes.

`System()` with no argument reads nothing until a refresh method is called.
The keyword arguments `proc_dir`, `sys_dir` and `etc_dir` point it at other
directories than `/proc`, `/sys` and `/etc`. Used as a context manager, a
`System` closes the `stat` files its processes keep open when the block ends.

## Refreshing selectively

The usage of each processor in `processors` and of each process is computed
from the difference between two refreshes, so it reads 0 until the second
one.

```python
import time
from hostprobe.system import System

with System() as s:
    s.refresh_cpu()
    s.refresh_processes()
    time.sleep(0.2)
    s.refresh_cpu()
    s.refresh_processes()

    print(s.global_processor.cpu_usage, [p.cpu_usage for p in s.processors])
    for proc in s.processes_by_name("python"):
        print(proc.pid, proc.name, proc.status, proc.cpu_usage, proc.memory, proc.disk_usage())
```

`processes` maps pids to `Process` objects; each process's threads are in its
`tasks`. `refresh_process(pid)` updates a single process, adding it if it is
not yet known, and returns whether it was found. `process(pid)` looks one up.

`refresh_specifics` takes a `RefreshKind`, and `refresh_processes_specifics`
and `refresh_process_specifics` take a `ProcessRefreshKind`; both are in
`hostprobe.common` and choose exactly what gets read. `refresh_system`
refreshes memory, processors and known sensors; `refresh_all` does that and
refreshes processes, known disks and known network interfaces.

## Disks, networks and sensors

```python
s.refresh_disks_list()
s.refresh_networks_list()
s.refresh_components_list()

for disk in s.disks:
    print(disk.name, disk.mount_point, disk.type_, disk.total_space, disk.available_space)

s.refresh_networks()
for name in s.networks:
    data = s.networks[name]
    print(name, data.received(), data.transmitted())

for component in s.components:
    print(component.label, component.temperature, component.max, component.critical)
```

`refresh_disks_list`, `refresh_networks_list` and `refresh_components_list`
look for the devices again. `refresh_disks`, `refresh_networks` and
`refresh_components` only update the values of the devices already known, so
the lists stay empty until the `_list` methods have run. Disk sizes are in
bytes and temperatures in degrees Celsius.

## Signals

`Process.kill()` sends `SIGKILL`. `Process.kill_with(signal)` sends any
`Signal` and returns `None` when the platform has no such signal, otherwise
whether it was delivered. `supported_signals()` in `hostprobe.common` lists
the signals the platform has.

## Open-file budget

Processes keep their `stat` files open between refreshes, so reading them
again is cheap. At most half of the file-descriptor limit is used this way.
`set_open_files_limit(n)` from `hostprobe.common` changes that budget (clamped
to the system limit) and should be called before the first process refresh.

## What it does not do

- It reads Linux interfaces only; `System.IS_SUPPORTED` is False elsewhere.
- It does not list the system's users; the `users_list` flag of `RefreshKind`
  is accepted but has no effect.
- It is a library with no command-line program.