"""
Стадия deploy: поднять собранный образ, проверить что он отвечает, убрать за собой.

Жизненный цикл попытки:
    created -> running -> probed -> stopped (успех)
                                 -> failed  (ошибка)

Важно:
- контейнер останавливаем на ЛЮБОМ выходе (успех, провал проверки, исключение);
  оставить упавший контейнер для разбора можно только явно (keep_on_failure)
- порт не вычисляем формулой, а резервируем через PortAllocator
- готовность ждём активным опросом с дедлайном, а не фиксированной паузой
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterator, Optional

from pipeline.config import SmokeSettings
from pipeline.services.container import ContainerRuntime, PortInUseError
from pipeline.utils.http_probe import HttpProbe, ProbeResult
from pipeline.utils.ports import PortAllocationError, PortAllocator, derive_container_name
from pipeline.utils.shell import CommandError

logger = logging.getLogger("pipeline.smoke")


class AttemptState(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    PROBED = "probed"
    STOPPED = "stopped"
    FAILED = "failed"


class Outcome(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass
class DeploymentAttempt:
    run_id: int
    image: str
    name: str
    container_port: int
    host_port: Optional[int] = None
    container_id: str = ""
    state: AttemptState = AttemptState.CREATED
    outcome: Outcome = Outcome.PENDING
    error: Optional[str] = None
    probe: Optional[ProbeResult] = None
    torn_down: bool = False

    @property
    def started(self) -> bool:
        return self.state in (AttemptState.RUNNING, AttemptState.PROBED)

    def fail(self, error: str) -> None:
        self.outcome = Outcome.FAILURE
        if self.error is None:
            self.error = error


@dataclass(frozen=True)
class SmokeResult:
    ok: bool
    attempt: DeploymentAttempt


class SmokeTester:
    def __init__(
        self,
        runtime: ContainerRuntime,
        settings: SmokeSettings,
        *,
        allocator: Optional[PortAllocator] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._runtime = runtime
        self._settings = settings
        self._allocator = allocator or PortAllocator(base=settings.port_base, span=settings.port_span)
        self._sleep = sleep

    def run(self, run_id: int, image_ref: str) -> SmokeResult:
        s = self._settings
        attempt = DeploymentAttempt(
            run_id=run_id,
            image=image_ref,
            name=derive_container_name(run_id, s.container_prefix),
            container_port=s.container_port,
        )
        logger.info("Smoke test start: run_id=%s image=%s name=%s", run_id, image_ref, attempt.name)

        try:
            with self._deployed(attempt):
                self._probe(attempt)
        except (CommandError, PortAllocationError) as e:
            attempt.fail(str(e))
            logger.error("Smoke test could not deploy %s: %s", attempt.name, e)

        if attempt.outcome == Outcome.SUCCESS:
            logger.info("Smoke test passed: %s (port %s)", attempt.name, attempt.host_port)
        else:
            logger.error("Smoke test failed: %s: %s", attempt.name, attempt.error)
        return SmokeResult(ok=attempt.outcome == Outcome.SUCCESS, attempt=attempt)

    @contextmanager
    def _deployed(self, attempt: DeploymentAttempt) -> Iterator[DeploymentAttempt]:
        try:
            self._launch(attempt)
            yield attempt
        except BaseException as e:
            attempt.fail(str(e) or type(e).__name__)
            raise
        finally:
            self._teardown(attempt)

    def _launch(self, attempt: DeploymentAttempt) -> None:
        s = self._settings
        busy: set[int] = set()

        for i in range(s.launch_attempts):
            with self._allocator.reserve(attempt.run_id, exclude=frozenset(busy)) as reservation:
                port = reservation.port
            # сокет отпущен - сразу отдаём порт docker'у
            try:
                attempt.container_id = self._runtime.run_detached(
                    attempt.image,
                    name=attempt.name,
                    host_port=port,
                    container_port=attempt.container_port,
                )
            except PortInUseError:
                logger.warning("Port %s was taken before launch (try %s/%s).", port, i + 1, s.launch_attempts)
                busy.add(port)
                continue
            attempt.host_port = port
            attempt.state = AttemptState.RUNNING
            return

        raise PortAllocationError(f"could not publish a port after {s.launch_attempts} attempt(s): {sorted(busy)}")

    def _probe(self, attempt: DeploymentAttempt) -> None:
        s = self._settings
        if s.initial_delay_s > 0:
            self._sleep(s.initial_delay_s)

        url = f"http://{s.host}:{attempt.host_port}{s.path}"
        probe = HttpProbe(url, timeout_s=s.request_timeout_s, expected_body=s.expected_body)
        try:
            res = probe.wait_ready(
                deadline_s=s.readiness_timeout_s,
                interval_s=s.poll_interval_s,
                alive=lambda: self._runtime.is_running(attempt.name),
                sleep=self._sleep,
            )
        finally:
            probe.close()

        attempt.probe = res
        attempt.state = AttemptState.PROBED
        logger.info("GET %s -> status=%s attempts=%s", url, res.status, res.attempts)

        if res.ok:
            attempt.outcome = Outcome.SUCCESS
        else:
            attempt.fail(res.error or f"unexpected status {res.status}")

    def _teardown(self, attempt: DeploymentAttempt) -> None:
        if not attempt.started:
            if attempt.outcome != Outcome.SUCCESS:
                attempt.state = AttemptState.FAILED
            return

        if attempt.outcome != Outcome.SUCCESS and self._settings.keep_on_failure:
            attempt.state = AttemptState.FAILED
            logger.warning(
                "Keeping failed container %s on port %s for inspection; remove it with `docker rm -f %s`.",
                attempt.name,
                attempt.host_port,
                attempt.name,
            )
            return

        # --rm удалит контейнер после stop; rm -f - если stop не сработал
        if not self._runtime.stop(attempt.name):
            self._runtime.remove(attempt.name)
        attempt.torn_down = True
        attempt.state = AttemptState.STOPPED if attempt.outcome == Outcome.SUCCESS else AttemptState.FAILED
