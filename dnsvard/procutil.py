"""Process liveness checks."""

from __future__ import annotations

import os
import sys

_SUPPORTED = sys.platform.startswith("linux") or sys.platform == "darwin"


def running(pid: int) -> bool:
    """Report whether a process with ``pid`` exists and can be signalled."""
    if pid <= 0 or not _SUPPORTED:
        return False
    try:
        os.kill(pid, 0)
    except OSError:
        return False
    return True