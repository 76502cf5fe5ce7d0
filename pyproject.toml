[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "hostprobe"
version = "0.1.0"
description = "Read processes, processors, memory, disks, networks and sensors of a Linux host"
requires-python = ">=3.10"
dependencies = []
keywords = ["system", "monitoring", "processes", "cpu", "memory", "disks", "network", "procfs", "sysfs"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["hostprobe"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
