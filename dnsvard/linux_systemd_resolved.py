"""systemd-resolved drop-in files that route a domain to dnsvard."""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

MANAGED_BY_COMMENT = "# managed-by: dnsvard"
DEFAULT_DROP_IN_DIR = "/etc/systemd/resolved.conf.d"


class ResolverError(Exception):
    """Raised when a resolver configuration cannot be read, written or applied."""


@dataclass(frozen=True)
class ResolverSpec:
    """Send queries for ``domain`` to ``nameserver`` on ``port``."""

    domain: str
    nameserver: str = ""
    port: str = ""


@dataclass
class ParsedResolverConfig:
    """What could be read back from a resolver configuration file."""

    managed: bool = False
    domain: str = ""
    nameserver: str = ""
    port: str = ""


def normalize_domain(value: str) -> str:
    """Lower-case a domain and strip surrounding whitespace and dots."""
    return value.strip().lower().strip(".")


def render_systemd_resolved_drop_in(domain: str, nameserver: str, port: str) -> str:
    """Render the drop-in file content for ``domain``."""
    dns = nameserver.strip()
    if port.strip():
        dns = f"{dns}:{port.strip()}"
    return f"{MANAGED_BY_COMMENT}\n# domain: {domain}\n[Resolve]\nDNS={dns}\nDomains=~{domain}\n"


def _parse_domain_comment(line: str) -> Optional[str]:
    lower = line.lower()
    if lower.startswith("# domain:"):
        return normalize_domain(lower[len("# domain:"):].strip())
    return None


def parse_systemd_resolved_drop_in(text: str) -> ParsedResolverConfig:
    """Read the managed marker, domain and DNS target from a drop-in file."""
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
        if line.lower().startswith("dns="):
            value = line[len("DNS="):] if line.startswith("DNS=") else line
            host, sep, port = value.strip().partition(":")
            out.nameserver = host.strip()
            if sep:
                out.port = port.strip()
    return out


def _run_combined(*args: str) -> tuple[Optional[str], str]:
    """Run a command; return (error text or None, trimmed combined output)."""
    try:
        proc = subprocess.run(args, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, check=False)
    except OSError as exc:
        return str(exc), ""
    output = proc.stdout.decode("utf-8", "replace").strip()
    if proc.returncode != 0:
        return f"exit status {proc.returncode}", output
    return None, output


def restart_systemd_resolved() -> None:
    """Restart the systemd-resolved service."""
    error, output = _run_combined("systemctl", "restart", "systemd-resolved")
    if error is not None:
        raise ResolverError(f"restart systemd-resolved: {error} ({output})")


def _read_text(path: Path) -> str:
    return path.read_bytes().decode("utf-8", "surrogateescape")


class _ConfigStore:
    """A directory of ``dnsvard-<domain>.conf`` files owned by dnsvard."""

    def __init__(
        self,
        directory: Path,
        render: Callable[[str, str, str], str],
        parse: Callable[[str], ParsedResolverConfig],
        restart: Callable[[], None],
        create_dir_label: str,
        list_dir_label: str,
    ) -> None:
        self.directory = directory
        self._render = render
        self._parse = parse
        self._restart = restart
        self._create_dir_label = create_dir_label
        self._list_dir_label = list_dir_label

    def path(self, domain: str) -> Path:
        return self.directory / f"dnsvard-{domain}.conf"

    @staticmethod
    def _required_domain(spec: ResolverSpec) -> str:
        domain = normalize_domain(spec.domain)
        if not domain:
            raise ResolverError("resolver domain is required")
        return domain

    def ensure(self, spec: ResolverSpec) -> None:
        domain = self._required_domain(spec)
        if not spec.nameserver.strip():
            raise ResolverError("resolver nameserver is required")
        if not spec.port.strip():
            raise ResolverError("resolver port is required")

        path = self.path(domain)
        want = self._render(domain, spec.nameserver, spec.port)
        try:
            current: Optional[str] = _read_text(path)
        except FileNotFoundError:
            current = None
        except OSError as exc:
            raise ResolverError(f"read resolver config {path}: {exc}") from exc
        if current is not None:
            if current == want:
                return
            if not self._parse(current).managed:
                raise ResolverError(
                    f"resolver config conflict at {path}; file is not managed by dnsvard"
                )

        try:
            self.directory.mkdir(mode=0o755, parents=True, exist_ok=True)
        except PermissionError as exc:
            raise ResolverError(
                f"creating {self.directory} requires elevated permissions; re-run with sudo"
            ) from exc
        except OSError as exc:
            raise ResolverError(f"create {self._create_dir_label}: {exc}") from exc

        try:
            path.write_bytes(want.encode("utf-8", "surrogateescape"))
        except PermissionError as exc:
            raise ResolverError(
                f"writing {path} requires elevated permissions; re-run with sudo"
            ) from exc
        except OSError as exc:
            raise ResolverError(f"write resolver config {path}: {exc}") from exc

        self._restart()

    def matches(self, spec: ResolverSpec) -> bool:
        domain = self._required_domain(spec)
        try:
            text = _read_text(self.path(domain))
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise ResolverError(f"read resolver config: {exc}") from exc
        parsed = self._parse(text)
        if not parsed.managed:
            return False
        return (
            parsed.domain == domain
            and parsed.nameserver == spec.nameserver.strip()
            and parsed.port == spec.port.strip()
        )

    def remove(self, spec: ResolverSpec) -> None:
        domain = self._required_domain(spec)
        path = self.path(domain)
        try:
            text = _read_text(path)
        except FileNotFoundError:
            return
        except OSError as exc:
            raise ResolverError(f"read resolver config {path}: {exc}") from exc
        if not self._parse(text).managed:
            raise ResolverError(f"resolver config {path} is not managed by dnsvard")
        try:
            path.unlink()
        except PermissionError as exc:
            raise ResolverError(
                f"removing {path} requires elevated permissions; re-run with sudo"
            ) from exc
        except OSError as exc:
            raise ResolverError(f"remove resolver config {path}: {exc}") from exc
        self._restart()

    def list_managed(self) -> list[str]:
        try:
            entries = list(os.scandir(self.directory))
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise ResolverError(f"read {self._list_dir_label} {self.directory}: {exc}") from exc

        domains = []
        for entry in entries:
            if entry.is_dir(follow_symlinks=False):
                continue
            if not (entry.name.startswith("dnsvard-") and entry.name.endswith(".conf")):
                continue
            try:
                text = _read_text(Path(entry.path))
            except OSError:
                continue
            parsed = self._parse(text)
            if parsed.managed and parsed.domain:
                domains.append(parsed.domain)
        return sorted(domains)


class SystemdResolvedManager:
    """Manages dnsvard drop-ins in the systemd-resolved configuration directory."""

    def __init__(
        self,
        drop_in_dir: str | os.PathLike[str] = DEFAULT_DROP_IN_DIR,
        restart: Callable[[], None] = restart_systemd_resolved,
    ) -> None:
        self._store = _ConfigStore(
            Path(drop_in_dir),
            render_systemd_resolved_drop_in,
            parse_systemd_resolved_drop_in,
            restart,
            create_dir_label="resolver config dir",
            list_dir_label="resolver config dir",
        )

    @property
    def directory(self) -> Path:
        """The drop-in directory."""
        return self._store.directory

    def config_path(self, domain: str) -> Path:
        """Path of the drop-in that holds ``domain``."""
        return self._store.path(domain)

    def ensure(self, spec: ResolverSpec) -> None:
        """Write the drop-in for ``spec`` and restart systemd-resolved if it changed."""
        self._store.ensure(spec)

    def matches(self, spec: ResolverSpec) -> bool:
        """Report whether a managed drop-in already routes ``spec`` as asked."""
        return self._store.matches(spec)

    def remove(self, spec: ResolverSpec) -> None:
        """Delete the managed drop-in for ``spec``; a missing file is not an error."""
        self._store.remove(spec)

    def list_managed(self) -> list[str]:
        """Return the sorted domains of every managed drop-in."""
        return self._store.list_managed()