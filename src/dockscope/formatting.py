"""
Display formatting and parsing helpers shared by the models and the sorter.

All byte units are base 1024 and spelled B, KB, MB, GB, TB.
"""

import re
import time
from datetime import datetime, timezone
from typing import Optional, Tuple, Union

BYTE_UNITS = ["B", "KB", "MB", "GB", "TB"]

_BYTE_MULTIPLIERS = {
    "b": 1,
    "kb": 1024, "kib": 1024,
    "mb": 1024 ** 2, "mib": 1024 ** 2,
    "gb": 1024 ** 3, "gib": 1024 ** 3,
    "tb": 1024 ** 4, "tib": 1024 ** 4,
}

_DURATION_SECONDS = {
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
    "w": 7 * 86400,
    "mo": 30 * 86400,
    "y": 365 * 86400,
}

_BYTES_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([kmgt]?i?b)\s*$", re.IGNORECASE)
_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d+)?)(mo|y|w|d|h|m|s)")
_DURATION_RE = re.compile(r"^(?:\d+(?:\.\d+)?(?:mo|y|w|d|h|m|s))+$")


def short_id(resource_id: str, length: int = 12) -> str:
    """Strip a ``sha256:`` prefix and truncate to ``length`` characters."""
    if resource_id.startswith("sha256:"):
        resource_id = resource_id[len("sha256:"):]
    return resource_id[:length]


def format_bytes(value: Union[int, float]) -> str:
    if value < 1024:
        return f"{int(value)} B"
    size = float(value)
    for unit in BYTE_UNITS[1:]:
        size /= 1024.0
        if size < 1024 or unit == BYTE_UNITS[-1]:
            return f"{size:.1f} {unit}"
    return f"{size:.1f} {BYTE_UNITS[-1]}"


def parse_bytes(text: str) -> Optional[float]:
    match = _BYTES_RE.match(text)
    if not match:
        return None
    number, unit = match.groups()
    multiplier = _BYTE_MULTIPLIERS.get(unit.lower())
    if multiplier is None:
        return None
    return float(number) * multiplier


def parse_duration(text: str) -> Optional[float]:
    """Parse a short duration such as ``5m``, ``2h`` or ``1h30m`` into seconds."""
    text = text.strip().lower()
    if not text or not _DURATION_RE.match(text):
        return None
    return sum(float(n) * _DURATION_SECONDS[u] for n, u in _DURATION_PART_RE.findall(text))


def shorten_duration(text: str) -> str:
    """
    Shorten a human duration from the Docker API.

    "About an hour" -> "1h", "5 minutes ago" -> "5m", "Less than a second" -> "1s".
    """
    text = text.lower().strip()
    if "less than" in text:
        return "1s"
    text = text.replace("about ", "").replace("an ", "1 ").replace("a ", "1 ")
    if text.endswith(" ago"):
        text = text[:-len(" ago")]

    parts = text.split()
    if len(parts) >= 2:
        value, unit = parts[0], parts[1]
        if value == "0" and unit.startswith("second"):
            return "1s"
        for prefix, suffix in (("second", "s"), ("minute", "m"), ("hour", "h"), ("day", "d"),
                               ("week", "w"), ("month", "mo"), ("year", "y")):
            if unit.startswith(prefix):
                return value + suffix
    return text


def parse_status(status: str) -> Tuple[str, str]:
    """
    Split a container status line into a short status and age.

    "Up 2 hours" -> ("Up", "2h"), "Exited (0) 5 minutes ago" -> ("Exited (0)", "5m").
    """
    status = status.strip()
    if status.startswith("Up") and "(Paused)" in status:
        rest = status[len("Up "):].replace(" (Paused)", "")
        return "Paused", shorten_duration(rest)
    if status.startswith("Up"):
        rest = status[len("Up "):]
        # "Up 3 minutes (healthy)"
        rest = rest.split(" (", 1)[0]
        return "Up", shorten_duration(rest)
    if status.startswith("Exited"):
        head, sep, tail = status.partition(") ")
        if sep:
            return head + ")", shorten_duration(tail)
        return "Exited", "-"
    if status.startswith("Created"):
        return "Created", "-"
    if status.startswith("Exiting"):
        return "Exiting", "-"
    if "starting" in status.lower():
        return "Starting", "-"
    return status, "-"


def _to_epoch(value: Union[str, int, float, None]) -> Optional[float]:
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        # Docker timestamps carry nanoseconds, which strptime cannot parse.
        parsed = datetime.strptime(value[:19], "%Y-%m-%dT%H:%M:%S")
    except ValueError:
        return None
    return parsed.replace(tzinfo=timezone.utc).timestamp()


def humanize_age(value: Union[str, int, float, None], now: Optional[float] = None) -> str:
    """Render an ISO timestamp or epoch as a short age such as ``3d``."""
    epoch = _to_epoch(value)
    if epoch is None:
        return "-"
    if now is None:
        now = time.time()
    seconds = max(0, int(now - epoch))
    if seconds < 60:
        return f"{max(seconds, 1)}s"
    if seconds < 3600:
        return f"{seconds // 60}m"
    if seconds < 86400:
        return f"{seconds // 3600}h"
    if seconds < 7 * 86400:
        return f"{seconds // 86400}d"
    if seconds < 30 * 86400:
        return f"{seconds // (7 * 86400)}w"
    if seconds < 365 * 86400:
        return f"{seconds // (30 * 86400)}mo"
    return f"{seconds // (365 * 86400)}y"


def format_timestamp(value: Union[str, int, float, None]) -> str:
    epoch = _to_epoch(value)
    if epoch is None:
        return "-"
    return datetime.fromtimestamp(epoch, tz=timezone.utc).strftime("%Y-%m-%d %H:%M")
