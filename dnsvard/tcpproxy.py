"""Plain TCP forwarding from listen addresses to target addresses."""

from __future__ import annotations

import socket
import threading
from dataclasses import dataclass

_DIAL_TIMEOUT = 2.0
_ACCEPT_POLL = 0.5
_CHUNK = 64 * 1024


@dataclass(frozen=True)
class Route:
    """Forward connections on listen_ip:listen_port to target_ip:target_port."""

    listen_ip: str
    listen_port: int
    target_ip: str
    target_port: int


def _join_host_port(host: str, port: int) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


@dataclass
class _Listener:
    sock: socket.socket
    stop: threading.Event
    route: Route

    def close(self) -> None:
        self.stop.set()
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self.sock.close()


def _pipe(src: socket.socket, dst: socket.socket) -> None:
    try:
        while True:
            data = src.recv(_CHUNK)
            if not data:
                break
            dst.sendall(data)
    except OSError:
        pass


def _close(sock: socket.socket) -> None:
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        pass
    sock.close()


def _handle_conn(src: socket.socket, route: Route) -> None:
    with src:
        try:
            dst = socket.create_connection((route.target_ip, route.target_port), timeout=_DIAL_TIMEOUT)
        except OSError:
            return
        dst.settimeout(None)
        src.settimeout(None)

        def upstream() -> None:
            _pipe(src, dst)
            _close(dst)

        worker = threading.Thread(target=upstream, daemon=True)
        worker.start()
        try:
            _pipe(dst, src)
        finally:
            _close(dst)


def _serve(listener: _Listener) -> None:
    while not listener.stop.is_set():
        try:
            conn, _ = listener.sock.accept()
        except socket.timeout:
            continue
        except OSError:
            if listener.stop.is_set():
                return
            continue
        threading.Thread(target=_handle_conn, args=(conn, listener.route), daemon=True).start()


class TCPProxy:
    """A set of TCP listeners kept in line with the routes last given."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: dict[str, _Listener] = {}

    def set_routes(self, routes: list[Route]) -> None:
        """Open, replace or close listeners so they match ``routes``."""
        desired: dict[str, Route] = {}
        for route in routes:
            if route.listen_port <= 0 or route.target_port <= 0:
                continue
            desired[_join_host_port(route.listen_ip, route.listen_port)] = route

        with self._lock:
            for key in [k for k in self._listeners if k not in desired]:
                self._listeners.pop(key).close()

            for key, route in desired.items():
                current = self._listeners.get(key)
                if current is not None:
                    if current.route == route:
                        continue
                    self._listeners.pop(key).close()
                family = socket.AF_INET6 if ":" in route.listen_ip else socket.AF_INET
                try:
                    sock = socket.create_server((route.listen_ip, route.listen_port), family=family)
                except OSError as exc:
                    raise OSError(
                        exc.errno,
                        f"listen tcp proxy {route.listen_ip}:{route.listen_port}: {exc.strerror or exc}",
                    ) from exc
                sock.settimeout(_ACCEPT_POLL)
                listener = _Listener(sock=sock, stop=threading.Event(), route=route)
                self._listeners[key] = listener
                threading.Thread(target=_serve, args=(listener,), daemon=True).start()

    def stop(self) -> None:
        """Close every listener."""
        with self._lock:
            for listener in self._listeners.values():
                listener.close()
            self._listeners.clear()

    def snapshot(self) -> list[str]:
        """Return the sorted host:port keys of open listeners."""
        with self._lock:
            return sorted(self._listeners)