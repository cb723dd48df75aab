"""launchd agents that keep the dnsvard daemon and loopback helper running on macOS."""

from __future__ import annotations

import os
import re
import stat
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

AGENT_LABEL = "dev.dnsvard.daemon"
LOOPBACK_AGENT_LABEL = "dev.dnsvard.loopback"
LAUNCH_DAEMONS_DIR = "/Library/LaunchDaemons"

_PLIST_HEADER = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    '<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN" '
    '"http://www.apple.com/DTDs/PropertyList-1.0.dtd">\n'
    '<plist version="1.0">\n'
    "<dict>\n"
)
_PLIST_ENVIRONMENT = (
    "  <key>EnvironmentVariables</key>\n"
    "  <dict>\n"
    "    <key>PATH</key>\n"
    "    <string>/opt/homebrew/bin:/usr/local/bin:/usr/bin:/bin:/usr/sbin:/sbin</string>\n"
    "  </dict>\n"
    "</dict>\n"
    "</plist>\n"
)
_IGNORABLE_BOOTOUT = (
    "could not find service",
    "no such process",
    "service not loaded",
    "not loaded",
    "input/output error",
)
_INT_RE = re.compile(r"[+-]?[0-9]+")


class LaunchctlError(Exception):
    """Raised when a launchd agent cannot be installed, queried or removed."""


@dataclass(frozen=True)
class LaunchAgentSpec:
    """How the per-user daemon agent runs."""

    binary_path: str
    config_path: str = ""
    state_dir: str = ""
    working_dir: str = ""


@dataclass(frozen=True)
class LoopbackAgentSpec:
    """How the system loopback helper runs."""

    binary_path: str
    state_file: str = ""
    resolver_state_file: str = ""
    cidr: str = ""


@dataclass(frozen=True)
class _UserContext:
    uid: int
    gid: int
    home_dir: str


def _geteuid() -> int:
    geteuid = getattr(os, "geteuid", None)
    return geteuid() if geteuid is not None else -1


def _parse_int(text: str) -> Optional[int]:
    return int(text) if _INT_RE.fullmatch(text) else None


def _launchctl(*args: str) -> tuple[Optional[str], str]:
    """Run launchctl; return (error text or None, combined output)."""
    try:
        proc = subprocess.run(
            ["launchctl", *args], stdout=subprocess.PIPE, stderr=subprocess.STDOUT, check=False
        )
    except OSError as exc:
        return str(exc), ""
    output = (proc.stdout or b"").decode("utf-8", "replace")
    if proc.returncode != 0:
        return f"exit status {proc.returncode}", output
    return None, output


def xml_escape(value: str) -> str:
    """Escape the characters that may not appear raw in plist string values."""
    return (
        value.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def _render_arguments(args: list[str]) -> str:
    lines = ["  <key>ProgramArguments</key>\n", "  <array>\n"]
    lines += [f"    <string>{xml_escape(arg)}</string>\n" for arg in args]
    lines.append("  </array>\n")
    return "".join(lines)


def _render_keep_alive() -> str:
    return "  <key>RunAtLoad</key>\n  <true/>\n  <key>KeepAlive</key>\n  <true/>\n"


def render_plist(spec: LaunchAgentSpec) -> str:
    """Render the per-user launch agent plist for the daemon."""
    args = [spec.binary_path]
    if spec.config_path.strip():
        args += ["-c", spec.config_path]
    args += ["daemon", "start", "--foreground"]
    log_path = xml_escape(os.path.normpath(os.path.join(spec.state_dir, "daemon.log")))

    parts = [
        _PLIST_HEADER,
        "  <key>Label</key>\n",
        f"  <string>{AGENT_LABEL}</string>\n",
        _render_arguments(args),
        _render_keep_alive(),
        "  <key>StandardOutPath</key>\n",
        f"  <string>{log_path}</string>\n",
        "  <key>StandardErrorPath</key>\n",
        f"  <string>{log_path}</string>\n",
    ]
    if spec.working_dir.strip():
        parts.append("  <key>WorkingDirectory</key>\n")
        parts.append(f"  <string>{xml_escape(spec.working_dir)}</string>\n")
    parts.append(_PLIST_ENVIRONMENT)
    return "".join(parts)


def render_loopback_plist(spec: LoopbackAgentSpec) -> str:
    """Render the system launch daemon plist for the loopback helper."""
    args = [
        spec.binary_path,
        "daemon",
        "loopback-sync",
        "--state-file",
        spec.state_file,
        "--cidr",
        spec.cidr,
    ]
    if spec.resolver_state_file.strip():
        args += ["--resolver-state-file", spec.resolver_state_file]
    return "".join(
        [
            _PLIST_HEADER,
            "  <key>Label</key>\n",
            f"  <string>{LOOPBACK_AGENT_LABEL}</string>\n",
            _render_arguments(args),
            _render_keep_alive(),
            _PLIST_ENVIRONMENT,
        ]
    )


def ensure_executable_binary(path: str) -> str:
    """Check that ``path`` is an executable file; return the cleaned path."""
    trimmed = path.strip()
    if not trimmed:
        raise LaunchctlError("binary path is required")
    binary_path = os.path.normpath(trimmed)
    try:
        info = os.stat(binary_path)
    except FileNotFoundError as exc:
        raise LaunchctlError(f"binary path does not exist: {binary_path}") from exc
    except OSError as exc:
        raise LaunchctlError(f"read binary path {binary_path}: {exc}") from exc
    if stat.S_ISDIR(info.st_mode):
        raise LaunchctlError(
            f"binary path is a directory, expected executable file: {binary_path}"
        )
    if info.st_mode & 0o111 == 0:
        raise LaunchctlError(f"binary path is not executable: {binary_path}")
    return binary_path


def is_launchctl_bootout_ignorable(output: str, error_text: str) -> bool:
    """Report whether a failed bootout only means the service was not loaded."""
    combined = f"{output} {error_text}".strip().lower()
    return any(marker in combined for marker in _IGNORABLE_BOOTOUT)


def _home_dir() -> str:
    getuid = getattr(os, "getuid", None)
    if getuid is not None:
        try:
            import pwd

            home = pwd.getpwuid(getuid()).pw_dir
            if home:
                return home
        except (ImportError, KeyError):
            pass
    return os.environ.get("HOME") or "."


def _launch_user_context() -> _UserContext:
    if _geteuid() == 0:
        sudo_uid = os.environ.get("SUDO_UID", "").strip()
        sudo_gid = os.environ.get("SUDO_GID", "").strip()
        if sudo_uid:
            uid = _parse_int(sudo_uid)
            if uid is None:
                raise LaunchctlError(f'parse SUDO_UID: invalid integer "{sudo_uid}"')
            gid = _parse_int(sudo_gid) if sudo_gid else None
            gid = gid or 0
            import pwd

            try:
                entry = pwd.getpwuid(uid)
            except KeyError as exc:
                raise LaunchctlError(f"lookup sudo user {sudo_uid}: unknown userid") from exc
            if gid == 0:
                gid = entry.pw_gid
            return _UserContext(uid=uid, gid=gid, home_dir=entry.pw_dir)
    return _UserContext(uid=os.getuid(), gid=os.getgid(), home_dir=_home_dir())


def _launch_agent_path(ctx: _UserContext) -> Path:
    return Path(ctx.home_dir) / "Library" / "LaunchAgents" / f"{AGENT_LABEL}.plist"


def _agent_service(ctx: _UserContext) -> str:
    return f"gui/{ctx.uid}/{AGENT_LABEL}"


def _is_service_loaded(service: str) -> bool:
    error, _ = _launchctl("print", service)
    return error is None


def _bootstrap_and_kickstart(target: str, service: str, plist_path: Path) -> None:
    error, _ = _launchctl("bootstrap", target, str(plist_path))
    if error is not None:
        raise LaunchctlError(f"launchctl bootstrap failed: {error}")
    error, _ = _launchctl("kickstart", service)
    if error is not None:
        raise LaunchctlError(f"launchctl kickstart failed: {error}")


def install_or_update_launch_agent(spec: LaunchAgentSpec) -> str:
    """Write and (re)load the per-user daemon agent; return the plist path."""
    ensure_executable_binary(spec.binary_path)
    ctx = _launch_user_context()
    needs_chown = _geteuid() == 0 and ctx.uid != 0

    agents_dir = Path(ctx.home_dir) / "Library" / "LaunchAgents"
    try:
        agents_dir.mkdir(mode=0o755, parents=True, exist_ok=True)
    except OSError as exc:
        raise LaunchctlError(f"create launchagents dir: {exc}") from exc
    try:
        Path(spec.state_dir).mkdir(mode=0o755, parents=True, exist_ok=True)
    except OSError as exc:
        raise LaunchctlError(f"create state dir: {exc}") from exc
    if needs_chown:
        try:
            os.chown(spec.state_dir, ctx.uid, ctx.gid)
        except OSError as exc:
            raise LaunchctlError(f"set state dir ownership: {exc}") from exc

    plist_path = _launch_agent_path(ctx)
    try:
        plist_path.write_text(render_plist(spec), encoding="utf-8")
    except OSError as exc:
        raise LaunchctlError(f"write launch agent plist: {exc}") from exc
    if needs_chown:
        try:
            os.chown(plist_path, ctx.uid, ctx.gid)
        except OSError as exc:
            raise LaunchctlError(f"set launch agent ownership: {exc}") from exc

    target = f"gui/{ctx.uid}"
    service = _agent_service(ctx)
    if _is_service_loaded(service):
        error, output = _launchctl("bootout", service)
        if error is not None:
            raise LaunchctlError(f"launchctl bootout failed: {error} ({output.strip()})")
    _bootstrap_and_kickstart(target, service, plist_path)
    return str(plist_path)


def stop_launch_agent() -> None:
    """Unload the per-user daemon agent."""
    error, _ = _launchctl("bootout", _agent_service(_launch_user_context()))
    if error is not None:
        raise LaunchctlError(f"launchctl bootout failed: {error}")


def uninstall_launch_agent() -> None:
    """Unload the per-user agent and delete its plist; a missing plist is fine."""
    ctx = _launch_user_context()
    _launchctl("bootout", _agent_service(ctx))
    try:
        _launch_agent_path(ctx).unlink()
    except FileNotFoundError:
        return
    except OSError as exc:
        raise LaunchctlError(f"remove launch agent plist failed: {exc}") from exc


def _print_service(service: str) -> str:
    error, output = _launchctl("print", service)
    if error is not None:
        raise LaunchctlError(output.strip() or error)
    return output


def launch_agent_status() -> str:
    """Return launchctl's report on the per-user daemon agent."""
    return _print_service(_agent_service(_launch_user_context()))


def loopback_agent_status() -> str:
    """Return launchctl's report on the system loopback agent."""
    return _print_service(f"system/{LOOPBACK_AGENT_LABEL}")


def _bootout_best_effort(service: str, target: str, plist_path: str) -> None:
    error, output = _launchctl("bootout", service)
    if error is not None and not is_launchctl_bootout_ignorable(output, error):
        raise LaunchctlError(f"service {service}: {error} ({output.strip()})")
    if not target.strip() or not plist_path.strip():
        return
    error, output = _launchctl("bootout", target, plist_path)
    if error is not None and not is_launchctl_bootout_ignorable(output, error):
        raise LaunchctlError(
            f"domain {target} plist {plist_path}: {error} ({output.strip()})"
        )


def _bootstrap_with_retry(label: str, target: str, service: str, plist_path: str) -> None:
    error, output = _launchctl("bootstrap", target, plist_path)
    if error is None:
        return
    first = output.strip()
    try:
        _bootout_best_effort(service, target, plist_path)
    except LaunchctlError:
        pass
    retry_error, retry_output = _launchctl("bootstrap", target, plist_path)
    if retry_error is None:
        return
    retry_text = retry_output.strip()
    msg = f"launchctl bootstrap {label} failed: {retry_error} ({retry_text})"
    if first and first != retry_text:
        msg += f"; first failure: {first}"
    msg += f"\nfix: sudo launchctl bootout {service} || true"
    msg += f"\nfix: sudo launchctl bootout {target} {plist_path} || true"
    msg += f"\nfix: sudo launchctl bootstrap {target} {plist_path}"
    raise LaunchctlError(msg)


def _loopback_plist_path() -> Path:
    return Path(LAUNCH_DAEMONS_DIR) / f"{LOOPBACK_AGENT_LABEL}.plist"


def install_or_update_loopback_agent(spec: LoopbackAgentSpec) -> str:
    """Write and (re)load the system loopback daemon; return the plist path."""
    if _geteuid() != 0:
        raise LaunchctlError("installing system loopback agent requires sudo")
    ensure_executable_binary(spec.binary_path)

    plist_path = _loopback_plist_path()
    try:
        plist_path.parent.mkdir(mode=0o755, parents=True, exist_ok=True)
    except OSError as exc:
        raise LaunchctlError(f"create {plist_path.parent}: {exc}") from exc
    try:
        plist_path.write_text(render_loopback_plist(spec), encoding="utf-8")
    except OSError as exc:
        raise LaunchctlError(f"write loopback plist: {exc}") from exc

    service = f"system/{LOOPBACK_AGENT_LABEL}"
    target = "system"
    if _is_service_loaded(service):
        try:
            _bootout_best_effort(service, target, str(plist_path))
        except LaunchctlError as exc:
            raise LaunchctlError(f"launchctl bootout loopback agent failed: {exc}") from exc
    _launchctl("enable", service)

    _bootstrap_with_retry("loopback agent", target, service, str(plist_path))
    error, _ = _launchctl("kickstart", "-k", service)
    if error is not None:
        raise LaunchctlError(f"launchctl kickstart loopback agent failed: {error}")
    return str(plist_path)


def uninstall_loopback_agent() -> None:
    """Unload the system loopback daemon and delete its plist."""
    if _geteuid() != 0:
        raise LaunchctlError("uninstalling system loopback agent requires sudo")
    _launchctl("bootout", f"system/{LOOPBACK_AGENT_LABEL}")
    try:
        _loopback_plist_path().unlink()
    except FileNotFoundError:
        return
    except OSError as exc:
        raise LaunchctlError(f"remove loopback plist failed: {exc}") from exc