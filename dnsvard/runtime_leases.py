"""Persistent store of runtime hostname leases."""

from __future__ import annotations

import dataclasses
import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .procutil import running


@dataclass
class Lease:
    """Hostnames claimed by a running process."""

    id: str
    pid: int
    hostnames: list[str] = field(default_factory=list)
    domain: str = ""
    http_port: int = 0
    created_at: str = ""

    def to_json(self) -> dict[str, Any]:
        out: dict[str, Any] = {"id": self.id, "pid": self.pid, "hostnames": list(self.hostnames)}
        if self.domain:
            out["domain"] = self.domain
        if self.http_port:
            out["http_port"] = self.http_port
        out["created_at"] = self.created_at
        return out

    @classmethod
    def from_json(cls, data: Any) -> "Lease":
        if not isinstance(data, dict):
            raise ValueError("lease entry must be an object")
        hostnames = data.get("hostnames") or []
        pid = data.get("pid", 0)
        http_port = data.get("http_port", 0)
        if not isinstance(hostnames, list) or not all(isinstance(h, str) for h in hostnames):
            raise ValueError("lease hostnames must be a list of strings")
        if not isinstance(pid, int) or not isinstance(http_port, int):
            raise ValueError("lease pid and http_port must be integers")
        return cls(
            id=str(data.get("id", "")),
            pid=pid,
            hostnames=hostnames,
            domain=str(data.get("domain", "")),
            http_port=http_port,
            created_at=str(data.get("created_at", "")),
        )


def _canonical_host(value: str) -> str:
    value = value.strip().lower()
    return value[:-1] if value.endswith(".") else value


class LeaseStore:
    """Lease records kept in ``runtime-leases.json`` inside a state directory."""

    def __init__(self, state_dir: str | os.PathLike[str]) -> None:
        self.path = Path(state_dir) / "runtime-leases.json"

    def upsert(self, lease: Lease) -> None:
        """Add or replace a lease, dropping other leases that share a hostname."""
        if not lease.id:
            raise ValueError("lease id is required")
        if lease.pid <= 0:
            raise ValueError("lease pid is required")
        if not lease.hostnames:
            raise ValueError("lease hostnames are required")
        if not lease.created_at.strip():
            stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
            lease = dataclasses.replace(lease, created_at=stamp)

        state = self._load()
        incoming = {h for h in map(_canonical_host, lease.hostnames) if h}
        for lease_id, existing in list(state.items()):
            if lease_id == lease.id:
                continue
            if any(_canonical_host(h) in incoming for h in existing.hostnames):
                del state[lease_id]
        state[lease.id] = lease
        self._save(state)

    def remove(self, lease_id: str) -> None:
        """Delete the lease with ``lease_id`` if present."""
        state = self._load()
        state.pop(lease_id, None)
        self._save(state)

    def active(self) -> list[Lease]:
        """Return leases whose process still runs, pruning the rest from disk."""
        state = self._load()
        alive = {k: v for k, v in state.items() if running(v.pid)}
        if len(alive) != len(state):
            self._save(alive)
        return sorted(alive.values(), key=lambda lease: lease.id)

    def all(self) -> list[Lease]:
        """Return every stored lease sorted by id."""
        return sorted(self._load().values(), key=lambda lease: lease.id)

    def _load(self) -> dict[str, Lease]:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return {}
        if not raw:
            return {}
        try:
            data = json.loads(raw)
            if data is None:
                return {}
            if not isinstance(data, dict):
                raise ValueError("lease file must hold an object")
            return {key: Lease.from_json(value) for key, value in data.items()}
        except ValueError as exc:
            raise ValueError(f"parse runtime leases: {exc}") from exc

    def _save(self, state: dict[str, Lease]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {key: state[key].to_json() for key in sorted(state)}
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        os.replace(tmp, self.path)