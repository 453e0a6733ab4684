"""Shared helpers for the normalization service.

Contains:
- env_* readers: typed environment lookups with defaults
- compact_command_output: one-line, length-capped capture of tool output
- ceil_kib: byte count rounded up to whole KiB
- get_effective_cpu_count: CPU budget respecting affinity and cgroup quotas
"""

import logging
import os
from pathlib import Path
from typing import Optional, Sequence

logger = logging.getLogger(__name__)

COMMAND_OUTPUT_LIMIT: int = 280


def env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes")


def env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def parse_int_list(raw: Optional[str]) -> Optional[tuple]:
    """Parse a comma-separated list like ``"1700, 1500,1300"``.

    Returns None when the value is missing or any item is not an integer.
    """
    if raw is None:
        return None
    parts = [part.strip() for part in raw.split(",")]
    try:
        return tuple(int(part) for part in parts if part)
    except ValueError:
        return None


def is_strictly_decreasing(values: Sequence[int]) -> bool:
    return all(a > b for a, b in zip(values, values[1:]))


def compact_command_output(raw, limit: int = COMMAND_OUTPUT_LIMIT) -> str:
    """Collapse tool output onto one line and cap its length.

    Newlines become `` | `` separators, carriage returns are dropped and
    the result is cut to ``limit`` characters. Empty output reads
    "no output".
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    text = (raw or "").strip()
    text = text.replace("\n", " | ").replace("\r", "")
    if len(text) > limit:
        text = text[:limit]
    if not text:
        return "no output"
    return text


def ceil_kib(size_bytes: int) -> int:
    return (size_bytes + 1023) // 1024


def get_effective_cpu_count(default: int = 1) -> int:
    """Return effective CPU count, respecting cgroup quotas when present."""
    host_count = os.cpu_count() or default
    try:
        affinity = os.sched_getaffinity(0)
        if affinity:
            host_count = min(host_count, len(affinity))
    except (AttributeError, OSError):
        pass

    quota_count = None
    cpu_max = Path("/sys/fs/cgroup/cpu.max")
    if cpu_max.exists():
        try:
            quota_str, period_str = cpu_max.read_text().strip().split()[:2]
            if quota_str != "max":
                quota = int(quota_str)
                period = int(period_str)
                if quota > 0 and period > 0:
                    quota_count = max(1, int(quota / period))
        except (OSError, ValueError):
            quota_count = None

    effective = host_count
    if quota_count:
        effective = min(effective, quota_count)
    return max(default, effective)
