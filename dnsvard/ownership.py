"""Hand files created under sudo back to the invoking user."""

from __future__ import annotations

import os
import re
from pathlib import Path

_INT_RE = re.compile(r"[+-]?[0-9]+")


class OwnershipError(Exception):
    """Raised when sudo invoker ownership cannot be determined or applied."""


def _parse_id(name: str, text: str, kind: str) -> int:
    if not _INT_RE.fullmatch(text):
        raise OwnershipError(f'parse {name} "{text}": invalid integer')
    value = int(text)
    if value <= 0:
        raise OwnershipError(f'parse {name} "{text}": {kind} must be > 0')
    return value


def sudo_invoker_ownership() -> tuple[int, int] | None:
    """Return (uid, gid) of the user who ran sudo, or None when not under sudo."""
    geteuid = getattr(os, "geteuid", None)
    if geteuid is None or geteuid() != 0:
        return None
    uid_text = os.environ.get("SUDO_UID", "").strip()
    if not uid_text:
        return None
    uid = _parse_id("SUDO_UID", uid_text, "uid")
    gid_text = os.environ.get("SUDO_GID", "").strip()
    if gid_text:
        return uid, _parse_id("SUDO_GID", gid_text, "gid")

    import pwd

    try:
        entry = pwd.getpwuid(uid)
    except KeyError as exc:
        raise OwnershipError(f"unknown userid {uid_text}") from exc
    gid = entry.pw_gid
    if gid <= 0:
        raise OwnershipError(f'parse sudo user gid "{gid}": gid must be > 0')
    return uid, gid


def _chown(path: str, uid: int, gid: int) -> None:
    try:
        os.chown(path, uid, gid)
    except FileNotFoundError:
        return
    except OSError as exc:
        raise OwnershipError(f"set owner on {path}: {exc}") from exc


def chown_path_to_sudo_invoker(path: str | os.PathLike[str]) -> None:
    """Give ``path`` to the sudo invoker; a missing path is ignored."""
    owner = sudo_invoker_ownership()
    if owner is None:
        return
    _chown(os.fspath(path), *owner)


def chown_path_and_parent_to_sudo_invoker(path: str | os.PathLike[str]) -> None:
    """Give ``path`` and its parent directory to the sudo invoker."""
    owner = sudo_invoker_ownership()
    if owner is None:
        return
    target = os.fspath(path)
    _chown(str(Path(target).parent), *owner)
    _chown(target, *owner)