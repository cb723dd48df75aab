"""dnsmasq configuration files that route a domain to dnsvard."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Callable

from .linux_systemd_resolved import (
    MANAGED_BY_COMMENT,
    ParsedResolverConfig,
    ResolverError,
    ResolverSpec,
    _ConfigStore,
    _parse_domain_comment,
    _run_combined,
    normalize_domain,
)

DEFAULT_DNSMASQ_DIR = "/etc/dnsmasq.d"


def render_dnsmasq_config(domain: str, nameserver: str, port: str) -> str:
    """Render the dnsmasq file content for ``domain``."""
    return (
        f"{MANAGED_BY_COMMENT}\n# domain: {domain}\n"
        f"server=/{domain}/{nameserver.strip()}#{port.strip()}\n"
    )


def parse_dnsmasq_config(text: str) -> ParsedResolverConfig:
    """Read the managed marker, domain and server target from a dnsmasq file."""
    out = ParsedResolverConfig()
    for raw in text.splitlines():
        line = raw.strip()
        if not line:
            continue
        if line.lower() == MANAGED_BY_COMMENT:
            out.managed = True
            continue
        domain = _parse_domain_comment(line)
        if domain is not None:
            out.domain = domain
            continue
        if line.lower().startswith("server=/"):
            rest = line[len("server=/"):] if line.startswith("server=/") else line
            parts = rest.split("/")
            if len(parts) < 2:
                continue
            out.domain = normalize_domain(parts[0])
            host, sep, port = parts[1].partition("#")
            if sep:
                out.nameserver = host.strip()
                out.port = port.strip()
    return out


def restart_dnsmasq() -> None:
    """Restart dnsmasq, falling back to NetworkManager's integrated instance."""
    error, output = _run_combined("systemctl", "restart", "dnsmasq")
    if error is None:
        return
    nm_error, nm_output = _run_combined("systemctl", "restart", "NetworkManager")
    if nm_error is None:
        return
    raise ResolverError(
        "restart dns resolver backend failed: "
        f"systemctl restart dnsmasq -> {error} ({output}); "
        f"systemctl restart NetworkManager -> {nm_error} ({nm_output})"
    )


class DnsmasqManager:
    """Manages dnsvard files in the dnsmasq configuration directory."""

    def __init__(
        self,
        config_dir: str | os.PathLike[str] = DEFAULT_DNSMASQ_DIR,
        restart: Callable[[], None] = restart_dnsmasq,
    ) -> None:
        self._store = _ConfigStore(
            Path(config_dir),
            render_dnsmasq_config,
            parse_dnsmasq_config,
            restart,
            create_dir_label="dnsmasq config dir",
            list_dir_label="dnsmasq dir",
        )

    @property
    def directory(self) -> Path:
        """The dnsmasq configuration directory."""
        return self._store.directory

    def config_path(self, domain: str) -> Path:
        """Path of the file that holds ``domain``."""
        return self._store.path(domain)

    def ensure(self, spec: ResolverSpec) -> None:
        """Write the configuration for ``spec`` and restart dnsmasq if it changed."""
        self._store.ensure(spec)

    def matches(self, spec: ResolverSpec) -> bool:
        """Report whether a managed file already routes ``spec`` as asked."""
        return self._store.matches(spec)

    def remove(self, spec: ResolverSpec) -> None:
        """Delete the managed file for ``spec``; a missing file is not an error."""
        self._store.remove(spec)

    def list_managed(self) -> list[str]:
        """Return the sorted domains of every managed file."""
        return self._store.list_managed()