"""
Пакет pipeline.

Локальная реализация CI/CD пайплайна для hello-world сервиса:
install -> test -> build -> push -> deploy (smoke-тест) + cleanup всегда.

В проде стадии запускает CI-сервер (см. Jenkinsfile), но он просто вызывает
run_pipeline.py, поэтому вся логика живёт здесь и покрыта тестами.
"""

from __future__ import annotations

from pipeline.config import ConfigValidationError, PipelineConfig
from pipeline.runner import PipelineRunner, RunContext, RunReport, Stage, StageFailed

__all__ = [
    "ConfigValidationError",
    "PipelineConfig",
    "PipelineRunner",
    "RunContext",
    "RunReport",
    "Stage",
    "StageFailed",
]
