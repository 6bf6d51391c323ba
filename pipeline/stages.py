"""
Стадии пайплайна hello-world сервиса.

install -> test -> build -> push -> deploy, затем cleanup (always).
"""

from __future__ import annotations

import os

from pipeline.config import PipelineConfig
from pipeline.runner import RunContext, Stage, StageFailed
from pipeline.services.smoke import SmokeTester
from pipeline.utils.shell import run_command


# креды registry нужны только docker login; pip-хуки и тесты их видеть не должны
REGISTRY_ENV_KEYS = ("DOCKERHUB_USERNAME", "DOCKERHUB_PASSWORD")


def scrubbed_env(cfg: PipelineConfig) -> dict[str, str]:
    return {
        k: v
        for k, v in os.environ.items()
        if k not in REGISTRY_ENV_KEYS and not (cfg.registry_password and v == cfg.registry_password)
    }


def install_deps(ctx: RunContext) -> None:
    run_command(ctx.config.install_argv, env=scrubbed_env(ctx.config), secrets=ctx.config.secrets)


def run_tests(ctx: RunContext) -> None:
    run_command(ctx.config.test_argv, env=scrubbed_env(ctx.config), secrets=ctx.config.secrets)


def build_image(ctx: RunContext) -> None:
    ctx.runtime.build(ctx.config.image_ref, ctx.config.build_context)


def push_image(ctx: RunContext) -> None:
    cfg = ctx.config
    ctx.runtime.login(cfg.registry_username, cfg.registry_password, cfg.registry)
    ctx.runtime.push(cfg.image_ref)


def deploy_smoke(ctx: RunContext) -> None:
    tester = SmokeTester(ctx.runtime, ctx.config.smoke)
    result = tester.run(ctx.run_id, ctx.config.image_ref)
    ctx.artifacts["smoke"] = result
    if not result.ok:
        raise StageFailed("deploy", result.attempt.error or "smoke test failed")


def registry_logout(ctx: RunContext) -> None:
    # logout выполняем всегда: даже если login не дошёл, docker просто ответит "not logged in"
    ctx.runtime.logout(ctx.config.registry)


def default_stages() -> list[Stage]:
    return [
        Stage("install", install_deps),
        Stage("test", run_tests),
        Stage("build", build_image),
        Stage("push", push_image),
        Stage("deploy", deploy_smoke),
        Stage("cleanup", registry_logout, always=True),
    ]
