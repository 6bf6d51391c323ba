# pipeline/utils/http_probe.py
"""
HTTP-проверки тестового деплоя.

Идея:
- одна проверка = один GET с таймаутом, исключения не выбрасываем, а
  возвращаем ProbeResult (ok/status/error)
- ожидание готовности = повторяем проверку с коротким интервалом до дедлайна,
  а не "спим 5 секунд и надеемся"
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

import requests

logger = logging.getLogger("pipeline.probe")


@dataclass(frozen=True)
class ProbeResult:
    ok: bool
    status: Optional[int]
    error: Optional[str]
    duration_ms: int
    request_id: str
    attempts: int = 1
    body: str = ""


class HttpProbe:
    def __init__(
        self,
        url: str,
        timeout_s: float = 2.0,
        expected_body: str = "",
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url
        self.timeout_s = timeout_s
        self.expected_body = expected_body
        self._session = session or requests.Session()

    def check(self, request_id: Optional[str] = None) -> ProbeResult:
        request_id = request_id or str(uuid.uuid4())
        t0 = time.perf_counter()
        try:
            r = self._session.get(self.url, timeout=self.timeout_s, headers={"X-Request-ID": request_id})
            dt = int((time.perf_counter() - t0) * 1000)
            body = r.text
            ok = 200 <= r.status_code < 300
            error = None
            if ok and self.expected_body and self.expected_body not in body:
                ok = False
                error = f"unexpected body: {body[:200]!r}"
            return ProbeResult(ok=ok, status=r.status_code, error=error, duration_ms=dt, request_id=request_id, body=body)
        except requests.RequestException as e:
            dt = int((time.perf_counter() - t0) * 1000)
            return ProbeResult(ok=False, status=None, error=str(e), duration_ms=dt, request_id=request_id)

    def wait_ready(
        self,
        *,
        deadline_s: float,
        interval_s: float = 0.5,
        alive: Optional[Callable[[], bool]] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> ProbeResult:
        """
        Опрашиваем url, пока не получим 2xx или не выйдет deadline_s.

        deadline_s=0 -> ровно одна проверка.
        alive() - проверка "процесс ещё жив"; если он умер, ждать дальше
        бессмысленно, возвращаем последний результат сразу.
        """
        request_id = str(uuid.uuid4())
        end = clock() + deadline_s
        attempts = 0

        while True:
            attempts += 1
            res = self.check(request_id=request_id)
            logger.debug("probe %s attempt=%s status=%s error=%s", self.url, attempts, res.status, res.error)
            if res.ok:
                break
            if alive is not None and not alive():
                logger.warning("Probe target is not running anymore; giving up after %s attempt(s).", attempts)
                break
            remaining = end - clock()
            if remaining <= 0:
                break
            sleep(min(interval_s, remaining))

        return ProbeResult(
            ok=res.ok,
            status=res.status,
            error=res.error,
            duration_ms=res.duration_ms,
            request_id=request_id,
            attempts=attempts,
            body=res.body,
        )

    def close(self) -> None:
        self._session.close()
