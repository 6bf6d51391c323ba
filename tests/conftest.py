from __future__ import annotations

import socket
import threading
import time
from typing import Optional

import pytest
from werkzeug.serving import make_server

from pipeline.services.container import PortInUseError
from pipeline.utils.shell import CommandError


def _find_free_base(span: int) -> Optional[int]:
    # диапазон, где все порты свободны: на CI-хосте что-то может слушать
    for base in range(20000, 60000, 1000):
        socks = []
        try:
            for p in range(base, base + span):
                s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
                socks.append(s)
                s.bind(("0.0.0.0", p))
        except OSError:
            continue
        finally:
            for s in socks:
                s.close()
        return base
    return None


@pytest.fixture
def free_base() -> int:
    base = _find_free_base(10)
    if base is None:
        pytest.skip("no free port range on this host")
    return base


class FakeRuntime:
    """
    Подмена docker для тестов.

    "Контейнер" - это WSGI-приложение, которое поднимаем werkzeug-сервером
    на опубликованном host-порту. crash=True - контейнер падает сразу после старта.
    """

    def __init__(self) -> None:
        self.app = None
        self.crash = False
        self.start_delay_s = 0.0
        self.busy_ports: set[int] = set()
        self.fail_on: dict[str, int] = {}
        self.calls: list[tuple] = []
        self.running: set[str] = set()
        self._servers: dict[str, object] = {}

    def _maybe_fail(self, op: str) -> None:
        if op in self.fail_on:
            raise CommandError(f"docker {op}", self.fail_on[op], f"{op} failed")

    def build(self, image_ref: str, context: str) -> None:
        self.calls.append(("build", image_ref, context))
        self._maybe_fail("build")

    def login(self, username: str, password: str, registry: str = "") -> None:
        self.calls.append(("login", username, registry))
        self._maybe_fail("login")

    def push(self, image_ref: str) -> None:
        self.calls.append(("push", image_ref))
        self._maybe_fail("push")

    def logout(self, registry: str = "") -> None:
        self.calls.append(("logout", registry))
        self._maybe_fail("logout")

    def run_detached(self, image_ref: str, *, name: str, host_port: int, container_port: int) -> str:
        self.calls.append(("run", name, host_port, container_port))
        self._maybe_fail("run")
        if host_port in self.busy_ports:
            raise PortInUseError(
                "docker run", 125, f"Bind for 0.0.0.0:{host_port} failed: port is already allocated"
            )
        if self.crash:
            return f"cid-{name}"

        self.running.add(name)
        if self.app is not None:
            threading.Thread(target=self._serve, args=(name, host_port), daemon=True).start()
            if not self.start_delay_s:
                self._wait_bound(name)
        return f"cid-{name}"

    def _serve(self, name: str, port: int) -> None:
        if self.start_delay_s:
            time.sleep(self.start_delay_s)
        server = make_server("127.0.0.1", port, self.app)
        self._servers[name] = server
        server.serve_forever()

    def _wait_bound(self, name: str) -> None:
        for _ in range(200):
            if name in self._servers:
                return
            time.sleep(0.01)

    def is_running(self, name: str) -> bool:
        return name in self.running

    def stop(self, name: str) -> bool:
        self.calls.append(("stop", name))
        was_running = name in self.running
        self.running.discard(name)
        server = self._servers.pop(name, None)
        if server is not None:
            server.shutdown()
            server.server_close()
        return was_running

    def remove(self, name: str) -> bool:
        self.calls.append(("remove", name))
        self.running.discard(name)
        server = self._servers.pop(name, None)
        if server is not None:
            server.shutdown()
            server.server_close()
        return True

    def ops(self) -> list[str]:
        return [c[0] for c in self.calls]


@pytest.fixture
def runtime():
    rt = FakeRuntime()
    yield rt
    for name in list(rt.running):
        rt.stop(name)
