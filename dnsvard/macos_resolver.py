"""Files in /etc/resolver that route a domain to dnsvard on macOS."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .linux_systemd_resolved import MANAGED_BY_COMMENT, ResolverError, ResolverSpec

DEFAULT_RESOLVER_DIR = "/etc/resolver"


@dataclass
class ParsedResolver:
    """What could be read back from a resolver file."""

    managed: bool = False
    nameserver: str = ""
    port: str = ""


def render_resolver(spec: ResolverSpec) -> str:
    """Render the resolver file content for ``spec``."""
    return (
        f"{MANAGED_BY_COMMENT}\n# domain: {spec.domain.strip()}\n"
        f"nameserver {spec.nameserver}\nport {spec.port}\n"
    )


def parse_resolver_file(text: str) -> ParsedResolver:
    """Read the managed marker, nameserver and port from a resolver file."""
    out = ParsedResolver()
    for raw in text.splitlines():
        line = raw.strip()
        if not line:
            continue
        if line.lower() == MANAGED_BY_COMMENT:
            out.managed = True
            continue
        if line.startswith("#"):
            continue
        parts = line.split()
        if len(parts) != 2:
            continue
        key = parts[0].lower()
        if key == "nameserver":
            out.nameserver = parts[1].strip()
        elif key == "port":
            out.port = parts[1].strip()
    return out


def _read_text(path: Path) -> str:
    return path.read_bytes().decode("utf-8", "surrogateescape")


def _write(path: Path, content: str) -> None:
    try:
        path.write_bytes(content.encode("utf-8", "surrogateescape"))
    except PermissionError as exc:
        raise ResolverError(
            f"writing {path} requires elevated permissions; re-run with sudo"
        ) from exc
    except OSError as exc:
        raise ResolverError(f"write resolver file: {exc}") from exc


class MacResolverManager:
    """Manages per-domain resolver files named after the domain."""

    def __init__(self, resolver_dir: str | os.PathLike[str] = DEFAULT_RESOLVER_DIR) -> None:
        self.directory = Path(resolver_dir)

    def ensure(self, spec: ResolverSpec) -> None:
        """Write the resolver file for ``spec``, adopting an identical unmanaged one."""
        if not spec.domain.strip():
            raise ResolverError("resolver domain is required")
        if not spec.nameserver.strip():
            raise ResolverError("resolver nameserver is required")
        if not spec.port.strip():
            raise ResolverError("resolver port is required")

        path = self.directory / spec.domain
        want = render_resolver(spec)
        try:
            current: Optional[str] = _read_text(path)
        except FileNotFoundError:
            current = None
        except OSError as exc:
            raise ResolverError(f"read resolver file {path}: {exc}") from exc

        if current is not None:
            cur = parse_resolver_file(current)
            wanted = parse_resolver_file(want)
            same_target = cur.nameserver == wanted.nameserver and cur.port == wanted.port
            if same_target and cur.managed:
                return
            if same_target or cur.managed:
                _write(path, want)
                return
            raise ResolverError(
                f"resolver file conflict at {path}; expected:\n{want.strip()}\n"
                f"found:\n{current.strip()}\n"
                "set another domain in config (domain: yourzone) "
                "or update/remove conflicting resolver"
            )

        try:
            self.directory.mkdir(mode=0o755, parents=True, exist_ok=True)
        except PermissionError as exc:
            raise ResolverError(
                f"creating {self.directory} requires elevated permissions; re-run with sudo"
            ) from exc
        except OSError as exc:
            raise ResolverError(f"create resolver dir: {exc}") from exc
        _write(path, want)

    def matches(self, spec: ResolverSpec) -> bool:
        """Report whether a managed resolver file already routes ``spec`` as asked."""
        path = self.directory / spec.domain
        try:
            text = _read_text(path)
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise ResolverError(f"read resolver file {path}: {exc}") from exc
        cur = parse_resolver_file(text)
        if not cur.managed:
            return False
        want = parse_resolver_file(render_resolver(spec))
        return cur.nameserver == want.nameserver and cur.port == want.port

    def remove(self, spec: ResolverSpec) -> None:
        """Delete the managed resolver file; a missing file is not an error."""
        if not spec.domain.strip():
            raise ResolverError("resolver domain is required")
        path = self.directory / spec.domain
        try:
            text = _read_text(path)
        except FileNotFoundError:
            return
        except OSError as exc:
            raise ResolverError(f"read resolver file {path}: {exc}") from exc
        if not parse_resolver_file(text).managed:
            raise ResolverError(f"resolver file {path} is not managed by dnsvard")
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except PermissionError as exc:
            raise ResolverError(
                f"removing {path} requires elevated permissions; re-run with sudo"
            ) from exc
        except OSError as exc:
            raise ResolverError(f"remove resolver file {path}: {exc}") from exc

    def list_managed(self) -> list[str]:
        """Return the sorted names of every managed resolver file."""
        try:
            entries = list(os.scandir(self.directory))
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise ResolverError(f"read resolver dir {self.directory}: {exc}") from exc
        names = []
        for entry in entries:
            if entry.is_dir(follow_symlinks=False):
                continue
            try:
                text = _read_text(Path(entry.path))
            except OSError:
                continue
            if parse_resolver_file(text).managed:
                names.append(entry.name)
        return sorted(names)