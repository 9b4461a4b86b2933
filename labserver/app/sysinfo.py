from __future__ import annotations

import os
import platform
import resource
import sys
from typing import Dict

_STATM_PATH = "/proc/self/statm"


def platform_name() -> str:
    return sys.platform


def architecture() -> str:
    return platform.machine() or "unknown"


def python_version() -> str:
    return platform.python_version()


def runtime_version() -> str:
    """Interpreter name and version, reported under the `node_version` wire key."""

    return f"{platform.python_implementation()} {platform.python_version()}"


def process_id() -> int:
    return os.getpid()


def memory_usage() -> Dict[str, int]:
    """Resident set sizes in bytes plus the interpreter's allocated block count."""

    max_rss = _max_rss_bytes()
    return {
        "rss": _current_rss_bytes(fallback=max_rss),
        "max_rss": max_rss,
        "allocated_blocks": sys.getallocatedblocks(),
    }


def _max_rss_bytes() -> int:
    usage = resource.getrusage(resource.RUSAGE_SELF)
    # ru_maxrss is reported in bytes on macOS and kilobytes elsewhere
    if sys.platform == "darwin":
        return int(usage.ru_maxrss)
    return int(usage.ru_maxrss) * 1024


def _current_rss_bytes(*, fallback: int) -> int:
    try:
        with open(_STATM_PATH, "r", encoding="ascii") as handle:
            fields = handle.read().split()
    except OSError:
        return fallback
    if len(fields) < 2:
        return fallback
    return int(fields[1]) * os.sysconf("SC_PAGE_SIZE")


__all__ = [
    "architecture",
    "memory_usage",
    "platform_name",
    "process_id",
    "python_version",
    "runtime_version",
]
