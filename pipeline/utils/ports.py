# pipeline/utils/ports.py
"""
Имена и порты для тестовых деплоев.

Старая схема (CI-скрипт): порт = база + BUILD_NUMBER % 100, имя = префикс + BUILD_NUMBER.
Она чистая и предсказуемая, но после 100 билдов порты повторяются, и два
параллельных прогона с одинаковым остатком дерутся за один порт.

Поэтому порт не вычисляем "вслепую", а резервируем:
- начинаем с порта из старой формулы (чтобы по номеру билда было легко найти контейнер)
- если он занят - идём дальше по диапазону
- резервация = bind() сокета, держим его до момента запуска контейнера
"""

from __future__ import annotations

import logging
import socket
from typing import Iterator, Optional

logger = logging.getLogger("pipeline.ports")


class PortAllocationError(RuntimeError):
    """В диапазоне нет ни одного свободного порта."""


def derive_host_port(run_id: int, base: int = 9000, span: int = 100) -> int:
    return base + (run_id % span)


def derive_container_name(run_id: int, prefix: str = "hello-world-test-") -> str:
    return f"{prefix}{run_id}"


class PortReservation:
    """
    Занятый нами порт. Пока объект жив и не release() - чужой процесс порт не получит.

    Используется как контекстный менеджер, чтобы сокет не утёк.
    """

    def __init__(self, port: int, sock: socket.socket) -> None:
        self.port = port
        self._sock: Optional[socket.socket] = sock

    @property
    def held(self) -> bool:
        return self._sock is not None

    def release(self) -> None:
        # отпускаем непосредственно перед `docker run`, окно гонки минимальное
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    def __enter__(self) -> "PortReservation":
        return self

    def __exit__(self, *exc) -> None:
        self.release()


class PortAllocator:
    def __init__(self, base: int = 9000, span: int = 100, bind_host: str = "0.0.0.0") -> None:
        self.base = base
        self.span = span
        self.bind_host = bind_host

    def candidates(self, run_id: int, exclude: frozenset[int] = frozenset()) -> Iterator[int]:
        """
        Порты в порядке перебора: сначала "родной" порт билда, потом по кругу.
        """
        start = run_id % self.span
        for i in range(self.span):
            port = self.base + (start + i) % self.span
            if port not in exclude:
                yield port

    def _try_bind(self, port: int) -> Optional[socket.socket]:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.bind((self.bind_host, port))
        except OSError:
            sock.close()
            return None
        return sock

    def reserve(self, run_id: int, exclude: frozenset[int] = frozenset()) -> PortReservation:
        for port in self.candidates(run_id, exclude):
            sock = self._try_bind(port)
            if sock is not None:
                if port != derive_host_port(run_id, self.base, self.span):
                    logger.info("Derived port busy for run_id=%s; reserved %s instead.", run_id, port)
                return PortReservation(port, sock)
        raise PortAllocationError(
            f"no free port in {self.base}..{self.base + self.span - 1} for run_id={run_id}"
        )
