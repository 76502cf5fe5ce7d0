"""Hardware temperature sensors read from ``hwmon`` and thermal zones."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path

HWMON_DIR = Path("/sys/class/hwmon")
THERMAL_FILE = Path("/sys/class/thermal/thermal_zone0/temp")

_FALLBACK_MILLIDEGREES = 100_000.0
_U32_RE = re.compile(r"\+?[0-9]+")


def _read_file(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None


def _parse_float(text: str) -> float | None:
    if not text or text != text.strip() or "_" in text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _millidegrees(content: str) -> float:
    value = _parse_float(content.replace("\n", ""))
    if value is None:
        value = _FALLBACK_MILLIDEGREES
    return value / 1000.0


def _parse_u32(text: str) -> int | None:
    if not _U32_RE.fullmatch(text):
        return None
    value = int(text)
    return value if value < 2**32 else None


@dataclass
class Component:
    """A temperature sensor; values are in degrees Celsius."""

    label: str
    input_file: Path
    max: float = 0.0
    critical: float | None = None
    temperature: float = 0.0

    def __post_init__(self) -> None:
        self.input_file = Path(self.input_file)
        self.refresh()

    def refresh(self) -> None:
        """Read the current temperature and raise ``max`` if it was exceeded."""
        content = _read_file(self.input_file)
        if content is None:
            return
        self.temperature = _millidegrees(content)
        if self.temperature > self.max:
            self.max = self.temperature


def _is_file(path: Path) -> bool:
    try:
        return path.is_file()
    except OSError:
        return False


def _sensor_suffixes(folder: Path) -> dict[int, list[str]]:
    matchings: dict[int, list[str]] = {}
    try:
        entries = list(os.scandir(folder))
    except OSError:
        return matchings
    for entry in entries:
        name = entry.name
        try:
            is_dir = entry.is_dir()
        except OSError:
            is_dir = False
        if is_dir or not name.startswith("temp"):
            continue
        parts = name.split("_")
        sensor_id = _parse_u32(parts[0][4:])
        if sensor_id is None:
            continue
        suffix = f"_{parts[1]}" if len(parts) > 1 else ""
        matchings.setdefault(sensor_id, []).append(suffix)
    return matchings


def components_in(folder: str | os.PathLike[str]) -> list[Component]:
    """Sensors of one ``hwmon`` folder that have both an input and a label file."""
    folder = Path(folder)
    components: list[Component] = []
    for key, suffixes in sorted(_sensor_suffixes(folder).items()):
        found_input: str | None = None
        has_label = False
        for suffix in suffixes:
            # Some boards expose the temperature input without any suffix.
            if suffix in ("_input", ""):
                found_input = suffix
            elif suffix == "_label":
                has_label = True
        if not has_label or found_input is None:
            continue
        p_input = folder / f"temp{key}{found_input}"
        if not _is_file(p_input):
            continue
        label_text = _read_file(folder / f"temp{key}_label")
        label = (label_text if label_text is not None else f"Component {key}").replace("\n", "")
        max_text = _read_file(folder / f"temp{key}_max")
        crit_text = _read_file(folder / f"temp{key}_crit")
        components.append(
            Component(
                label=label,
                input_file=p_input,
                max=_millidegrees(max_text) if max_text is not None else 0.0,
                critical=_millidegrees(crit_text) if crit_text is not None else None,
            )
        )
    return components


def get_components(
    hwmon_dir: str | os.PathLike[str] = HWMON_DIR,
    thermal_file: str | os.PathLike[str] = THERMAL_FILE,
) -> list[Component]:
    """All sensors, sorted by case-insensitive label, then the thermal zone if present."""
    components: list[Component] = []
    try:
        entries = list(os.scandir(hwmon_dir))
    except OSError:
        entries = None
    if entries is not None:
        for entry in entries:
            path = Path(entry.path)
            if not path.is_dir() or not entry.name.startswith("hwmon"):
                continue
            components.extend(components_in(path))
        components.sort(key=lambda c: c.label.lower())
    thermal_file = Path(thermal_file)
    if _is_file(thermal_file):
        components.append(Component(label="CPU", input_file=thermal_file))
    return components