"""Detection of Linux tooling and choice of the resolver backend."""

from __future__ import annotations

import os
import shutil
import subprocess
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

FORCE_BACKEND_ENV = "DNSVARD_LINUX_RESOLVER_BACKEND"
_FORCED_REASON = f"forced by {FORCE_BACKEND_ENV}"


@dataclass(frozen=True)
class Capabilities:
    """Which system tools are available on this host."""

    systemctl: bool = False
    systemd_resolved: bool = False
    ip_tool: bool = False
    dnsmasq: bool = False


class ResolverBackendKind(str, Enum):
    """Resolver integrations dnsvard can drive on Linux."""

    NONE = "none"
    SYSTEMD_RESOLVED = "systemd-resolved"
    DNSMASQ = "dnsmasq"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ResolverBackend:
    """The chosen backend and, where relevant, why it was chosen."""

    kind: ResolverBackendKind
    reason: str = ""


def detect_capabilities() -> Capabilities:
    """Look up the tools dnsvard relies on in PATH."""
    return Capabilities(
        systemctl=shutil.which("systemctl") is not None,
        systemd_resolved=shutil.which("resolvectl") is not None,
        ip_tool=shutil.which("ip") is not None,
        dnsmasq=shutil.which("dnsmasq") is not None,
    )


def _systemctl_service_is_active(name: str) -> bool:
    try:
        proc = subprocess.run(
            ["systemctl", "is-active", "--quiet", name],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=False,
        )
    except OSError:
        return False
    return proc.returncode == 0


def select_resolver_backend(
    caps: Capabilities,
    service_is_active: Optional[Callable[[str], bool]] = None,
) -> ResolverBackend:
    """Pick a resolver backend, honouring the override environment variable."""
    is_active = service_is_active or _systemctl_service_is_active

    forced = os.environ.get(FORCE_BACKEND_ENV, "").strip().lower()
    if forced:
        try:
            return ResolverBackend(ResolverBackendKind(forced), _FORCED_REASON)
        except ValueError:
            return ResolverBackend(
                ResolverBackendKind.NONE, f'invalid forced resolver backend "{forced}"'
            )

    if caps.dnsmasq and caps.systemctl and (is_active("dnsmasq") or is_active("NetworkManager")):
        return ResolverBackend(ResolverBackendKind.DNSMASQ)
    if caps.systemd_resolved and caps.systemctl:
        return ResolverBackend(ResolverBackendKind.SYSTEMD_RESOLVED)

    missing = [
        tool
        for tool, present in (
            ("systemctl", caps.systemctl),
            ("dnsmasq", caps.dnsmasq),
            ("resolvectl", caps.systemd_resolved),
        )
        if not present
    ]
    reason = "no supported resolver backend detected"
    if missing:
        reason = f"missing required tools: [{' '.join(missing)}]"
    return ResolverBackend(ResolverBackendKind.NONE, reason)


def resolver_backend_fix_hints(caps: Capabilities, backend: ResolverBackend) -> list[str]:
    """Return human-readable hints for getting the backend working."""
    if backend.kind is ResolverBackendKind.SYSTEMD_RESOLVED:
        return [
            "resolver backend systemd-resolved selected",
            "if bootstrap fails, ensure systemd-resolved service is active: "
            "sudo systemctl enable --now systemd-resolved",
            "if dnsmasq cannot bind port 53 on your host, this backend is often the better default",
        ]
    if backend.kind is ResolverBackendKind.DNSMASQ:
        return [
            "resolver backend dnsmasq selected",
            "dnsmasq backend supports non-53 dns_listen forwarding",
            "ensure dnsmasq (or NetworkManager dnsmasq integration) is active before bootstrap",
        ]
    hints = ["no Linux resolver backend is ready"]
    if not caps.systemctl:
        hints.append("install/enable systemd user services (`systemctl --user`) support")
    if not caps.systemd_resolved:
        hints.append("install systemd-resolved (`resolvectl`) or use a dnsmasq-based setup")
    if not caps.dnsmasq:
        hints.append("install dnsmasq and start it: sudo systemctl enable --now dnsmasq")
    return hints