"""Network address helpers."""

from __future__ import annotations

import re

_INT_RE = re.compile(r"[+-]?[0-9]+")


def _atoi(text: str) -> int | None:
    if not _INT_RE.fullmatch(text):
        return None
    return int(text)


def _split_host_port(hostport: str) -> tuple[str, str]:
    """Split ``host:port`` or ``[host]:port``; raise ValueError when malformed."""
    i = hostport.rfind(":")
    if i < 0:
        raise ValueError("missing port in address")
    if hostport.startswith("["):
        end = hostport.find("]")
        if end < 0:
            raise ValueError("missing ']' in address")
        if end + 1 == len(hostport):
            raise ValueError("missing port in address")
        if end + 1 != i:
            if hostport[end + 1] == ":":
                raise ValueError("too many colons in address")
            raise ValueError("missing port in address")
        host = hostport[1:end]
        j, k = 1, end + 1
    else:
        host = hostport[:i]
        if ":" in host:
            raise ValueError("too many colons in address")
        j, k = 0, 0
    if "[" in hostport[j:]:
        raise ValueError("unexpected '[' in address")
    if "]" in hostport[k:]:
        raise ValueError("unexpected ']' in address")
    return host, hostport[i + 1:]


def parse_listen_port(listen: str) -> int | None:
    """Return the positive port of a listen address, or None if it has none."""
    trimmed = listen.strip()
    if not trimmed:
        return None
    if trimmed.startswith(":"):
        value = _atoi(trimmed[1:])
    else:
        try:
            _, port_text = _split_host_port(trimmed)
        except ValueError:
            return None
        value = _atoi(port_text.strip())
    if value is None or value <= 0:
        return None
    return value