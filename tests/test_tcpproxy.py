import socket
import threading

import pytest

from dnsvard.tcpproxy import Route, TCPProxy


def free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def echo_server():
    server = socket.create_server(("127.0.0.1", 0))
    server.settimeout(0.5)
    stop = threading.Event()

    def serve():
        while not stop.is_set():
            try:
                conn, _ = server.accept()
            except OSError:
                continue
            with conn:
                conn.settimeout(5)
                try:
                    while True:
                        data = conn.recv(4096)
                        if not data:
                            break
                        conn.sendall(data)
                except OSError:
                    pass

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()
    yield server.getsockname()[1]
    stop.set()
    server.close()


@pytest.fixture
def proxy():
    p = TCPProxy()
    yield p
    p.stop()


def roundtrip(port, payload):
    with socket.create_connection(("127.0.0.1", port), timeout=5) as conn:
        conn.sendall(payload)
        received = b""
        while len(received) < len(payload):
            chunk = conn.recv(4096)
            if not chunk:
                break
            received += chunk
        return received


def test_forwards_traffic(proxy, echo_server):
    listen = free_port()
    proxy.set_routes([Route("127.0.0.1", listen, "127.0.0.1", echo_server)])
    assert proxy.snapshot() == [f"127.0.0.1:{listen}"]
    assert roundtrip(listen, b"ping") == b"ping"


def test_invalid_ports_are_skipped(proxy):
    proxy.set_routes([Route("127.0.0.1", 0, "127.0.0.1", 80), Route("127.0.0.1", free_port(), "127.0.0.1", 0)])
    assert proxy.snapshot() == []


def test_removed_route_closes_listener(proxy, echo_server):
    first, second = free_port(), free_port()
    proxy.set_routes([
        Route("127.0.0.1", first, "127.0.0.1", echo_server),
        Route("127.0.0.1", second, "127.0.0.1", echo_server),
    ])
    assert proxy.snapshot() == sorted([f"127.0.0.1:{first}", f"127.0.0.1:{second}"])
    proxy.set_routes([Route("127.0.0.1", second, "127.0.0.1", echo_server)])
    assert proxy.snapshot() == [f"127.0.0.1:{second}"]
    with pytest.raises(ConnectionRefusedError):
        socket.create_connection(("127.0.0.1", first), timeout=5).close()
    assert roundtrip(second, b"still") == b"still"


def test_stop_closes_everything(proxy, echo_server):
    listen = free_port()
    proxy.set_routes([Route("127.0.0.1", listen, "127.0.0.1", echo_server)])
    proxy.stop()
    assert proxy.snapshot() == []
    with pytest.raises(ConnectionRefusedError):
        socket.create_connection(("127.0.0.1", listen), timeout=5).close()


def test_retarget_same_listener(proxy, echo_server):
    listen = free_port()
    proxy.set_routes([Route("127.0.0.1", listen, "127.0.0.1", free_port())])
    proxy.set_routes([Route("127.0.0.1", listen, "127.0.0.1", echo_server)])
    assert proxy.snapshot() == [f"127.0.0.1:{listen}"]
    assert roundtrip(listen, b"again") == b"again"


def test_listen_conflict_raises(proxy, echo_server):
    with pytest.raises(OSError, match="listen tcp proxy"):
        proxy.set_routes([Route("127.0.0.1", echo_server, "127.0.0.1", echo_server)])