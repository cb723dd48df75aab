"""Merging of host routes from several sources by precedence."""

from __future__ import annotations

import dataclasses
import ipaddress
from dataclasses import dataclass, field
from enum import Enum
from typing import Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


class Source(str, Enum):
    """Where a route came from."""

    DOCKER = "docker"
    RUNTIME = "runtime"
    MANUAL = "manual"

    def __str__(self) -> str:
        return self.value


_PRIORITY = {Source.MANUAL: 300, Source.RUNTIME: 200, Source.DOCKER: 100}


@dataclass(frozen=True)
class Entry:
    """A hostname mapped to an address."""

    hostname: str
    ip: IPAddress
    source: Source


@dataclass
class MergeResult:
    """Merged entries sorted by hostname, plus conflict warnings."""

    entries: list[Entry] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def _priority(source: object) -> int:
    try:
        return _PRIORITY.get(Source(source), 0)
    except ValueError:
        return 0


def _canonical(hostname: str) -> str:
    host = hostname.strip().lower().strip(".")
    return host + "." if host else "."


def merge(*args: Entry) -> MergeResult:
    """Merge entries, keeping the highest-precedence source per hostname."""
    chosen: dict[str, tuple[Entry, int]] = {}
    warnings: list[str] = []

    for entry in args:
        host = _canonical(entry.hostname)
        entry = dataclasses.replace(entry, hostname=host)
        priority = _priority(entry.source)
        existing = chosen.get(host)
        if existing is None:
            chosen[host] = (entry, priority)
            continue
        current, current_priority = existing
        if current.ip == entry.ip:
            continue
        if priority > current_priority:
            warnings.append(f"route {host} from {entry.source} overrides {current.source}")
            chosen[host] = (entry, priority)
        else:
            warnings.append(
                f"route {host} from {entry.source} ignored; {current.source} has higher precedence"
            )

    entries = sorted((entry for entry, _ in chosen.values()), key=lambda e: e.hostname)
    return MergeResult(entries=entries, warnings=warnings)