"""Small helpers for reading files under ``/proc`` and ``/sys``."""

from __future__ import annotations

import os
import stat
from pathlib import Path
from typing import IO, AnyStr


def get_all_data_from_file(file: IO[AnyStr]) -> str:
    """Read ``file`` from its start and return the whole content as text."""
    file.seek(0)
    data = file.read()
    if isinstance(data, bytes):
        return data.decode("utf-8")
    return data


def get_all_data(path: str | os.PathLike[str]) -> str:
    """Return the whole text content of ``path``; raises OSError or UnicodeDecodeError."""
    with open(path, "rb") as file:
        return get_all_data_from_file(file)


def realpath(path: str | os.PathLike[str]) -> Path | None:
    """Target of the symbolic link at ``path``, or None if it is not a readable link."""
    try:
        info = os.lstat(path)
    except OSError:
        return None
    if not stat.S_ISLNK(info.st_mode):
        return None
    try:
        return Path(os.readlink(path))
    except OSError:
        return None