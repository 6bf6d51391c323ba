"""
Последовательный раннер стадий.

Контракт тот же, что у CI-сервера:
- стадии выполняются по порядку, каждая ждёт завершения предыдущей
- первая упавшая стадия прерывает прогон, остальные помечаются skipped
- стадии с always=True (cleanup) выполняются ВСЕГДА, даже после провала
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from pipeline.config import PipelineConfig
from pipeline.utils.shell import CommandError

logger = logging.getLogger("pipeline.runner")

PASSED = "passed"
FAILED = "failed"
SKIPPED = "skipped"


class StageFailed(RuntimeError):
    def __init__(self, stage: str, reason: str) -> None:
        self.stage = stage
        self.reason = reason
        super().__init__(f"stage {stage!r} failed: {reason}")


@dataclass
class RunContext:
    """Общие данные прогона, доступные каждой стадии."""
    config: PipelineConfig
    runtime: Any
    # стадии могут складывать сюда результаты (например smoke -> SmokeResult)
    artifacts: dict[str, Any] = field(default_factory=dict)

    @property
    def run_id(self) -> int:
        return self.config.run_id


@dataclass(frozen=True)
class Stage:
    name: str
    action: Callable[[RunContext], None]
    always: bool = False


@dataclass(frozen=True)
class StageResult:
    name: str
    status: str
    duration_ms: int = 0
    error: Optional[str] = None


@dataclass
class RunReport:
    run_id: int
    results: list[StageResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(r.status == PASSED for r in self.results)

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    @property
    def failed_stage(self) -> Optional[str]:
        for r in self.results:
            if r.status == FAILED:
                return r.name
        return None

    def status_of(self, name: str) -> Optional[str]:
        for r in self.results:
            if r.name == name:
                return r.status
        return None

    def summary(self) -> str:
        lines = [f"Pipeline run #{self.run_id}: {'SUCCESS' if self.ok else 'FAILURE'}"]
        for r in self.results:
            line = f"- {r.name}: {r.status}"
            if r.status != SKIPPED:
                line += f" ({r.duration_ms} ms)"
            if r.error:
                line += f": {r.error}"
            lines.append(line)
        return "\n".join(lines)


class PipelineRunner:
    def __init__(self, stages: list[Stage]) -> None:
        names = [s.name for s in stages]
        if len(names) != len(set(names)):
            raise ValueError(f"duplicate stage names: {names}")
        self.stages = stages

    def run(self, ctx: RunContext) -> RunReport:
        report = RunReport(run_id=ctx.run_id)
        aborted = False

        logger.info("Pipeline run #%s started (%s stages).", ctx.run_id, len(self.stages))

        for stage in self.stages:
            if aborted and not stage.always:
                logger.info("[%s] skipped", stage.name)
                report.results.append(StageResult(name=stage.name, status=SKIPPED))
                continue

            result = self._run_stage(stage, ctx)
            report.results.append(result)
            if result.status == FAILED and not stage.always:
                aborted = True

        log = logger.info if report.ok else logger.error
        log("Pipeline run #%s finished: %s", ctx.run_id, "SUCCESS" if report.ok else f"FAILURE at {report.failed_stage}")
        return report

    def _run_stage(self, stage: Stage, ctx: RunContext) -> StageResult:
        logger.info("[%s] start", stage.name)
        t0 = time.perf_counter()
        try:
            stage.action(ctx)
        except (CommandError, StageFailed) as e:
            dt = int((time.perf_counter() - t0) * 1000)
            logger.error("[%s] failed: %s", stage.name, e)
            return StageResult(name=stage.name, status=FAILED, duration_ms=dt, error=str(e))
        except Exception as e:
            dt = int((time.perf_counter() - t0) * 1000)
            logger.exception("[%s] crashed: %s", stage.name, e)
            return StageResult(name=stage.name, status=FAILED, duration_ms=dt, error=f"{type(e).__name__}: {e}")

        dt = int((time.perf_counter() - t0) * 1000)
        logger.info("[%s] passed in %s ms", stage.name, dt)
        return StageResult(name=stage.name, status=PASSED, duration_ms=dt)
