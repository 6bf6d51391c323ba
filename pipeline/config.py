"""
Конфигурация пайплайна.

Все параметры берём из окружения (их подставляет CI-сервер, секреты - из его
secret store). Значения по умолчанию подобраны под локальный запуск.
"""

from __future__ import annotations

import os
import shlex
import sys
from dataclasses import dataclass, field
from typing import Mapping, Optional


class ConfigValidationError(ValueError):
    """Конфигурация пайплайна некорректна или неполна."""


_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _get(env: Mapping[str, str], key: str, default: str) -> str:
    return env.get(key, default).strip()


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = _get(env, key, str(default))
    try:
        return int(raw)
    except ValueError:
        raise ConfigValidationError(f"{key}: expected integer, got {raw!r}") from None


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = _get(env, key, str(default))
    try:
        return float(raw)
    except ValueError:
        raise ConfigValidationError(f"{key}: expected number, got {raw!r}") from None


def _env_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = _get(env, key, "true" if default else "false").lower()
    if raw in _TRUE:
        return True
    if raw in _FALSE:
        return False
    raise ConfigValidationError(f"{key}: expected boolean, got {raw!r}")


def _default_install_cmd() -> str:
    return f"{shlex.quote(sys.executable)} -m pip install -e .[test]"


def _default_test_cmd() -> str:
    return f"{shlex.quote(sys.executable)} -m pytest -q"


@dataclass(frozen=True)
class SmokeSettings:
    """
    Параметры стадии deploy/smoke-test.

    initial_delay_s=5 и readiness_timeout_s=0 дают старое поведение
    "подождать 5 секунд и один раз дёрнуть /".
    """
    container_port: int = 8080
    port_base: int = 9000
    port_span: int = 100
    container_prefix: str = "hello-world-test-"
    host: str = "localhost"
    path: str = "/"
    expected_body: str = ""
    initial_delay_s: float = 0.0
    readiness_timeout_s: float = 30.0
    poll_interval_s: float = 0.5
    request_timeout_s: float = 2.0
    keep_on_failure: bool = False
    launch_attempts: int = 3


@dataclass(frozen=True)
class PipelineConfig:
    run_id: int
    registry_username: str
    registry_password: str = field(default="", repr=False)
    registry: str = ""
    image_name: str = "hello-world"
    image_tag: str = "latest"
    build_context: str = "."
    docker_bin: str = "docker"
    install_cmd: str = field(default_factory=_default_install_cmd)
    test_cmd: str = field(default_factory=_default_test_cmd)
    smoke: SmokeSettings = field(default_factory=SmokeSettings)

    @property
    def image_ref(self) -> str:
        # {username}/{image}:{tag}; для приватного registry добавляем хост спереди
        ref = f"{self.registry_username}/{self.image_name}:{self.image_tag}"
        if self.registry:
            return f"{self.registry.rstrip('/')}/{ref}"
        return ref

    @property
    def install_argv(self) -> list[str]:
        return shlex.split(self.install_cmd)

    @property
    def test_argv(self) -> list[str]:
        return shlex.split(self.test_cmd)

    @property
    def secrets(self) -> tuple[str, ...]:
        """Значения, которые нельзя печатать в лог."""
        return (self.registry_password,) if self.registry_password else ()

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "PipelineConfig":
        """
        Собираем конфиг из окружения.

        Ошибки парсинга сразу превращаются в ConfigValidationError,
        проверку "всё ли заполнено" делает validate_config().
        """
        env = os.environ if env is None else env

        smoke = SmokeSettings(
            container_port=_env_int(env, "CONTAINER_PORT", 8080),
            port_base=_env_int(env, "SMOKE_PORT_BASE", 9000),
            port_span=_env_int(env, "SMOKE_PORT_SPAN", 100),
            container_prefix=_get(env, "SMOKE_CONTAINER_PREFIX", "hello-world-test-"),
            host=_get(env, "SMOKE_HOST", "localhost"),
            path=_get(env, "SMOKE_PATH", "/"),
            expected_body=_get(env, "SMOKE_EXPECTED_BODY", ""),
            initial_delay_s=_env_float(env, "SMOKE_INITIAL_DELAY_S", 0.0),
            readiness_timeout_s=_env_float(env, "SMOKE_READINESS_TIMEOUT_S", 30.0),
            poll_interval_s=_env_float(env, "SMOKE_POLL_INTERVAL_S", 0.5),
            request_timeout_s=_env_float(env, "SMOKE_REQUEST_TIMEOUT_S", 2.0),
            keep_on_failure=_env_bool(env, "SMOKE_KEEP_ON_FAILURE", False),
            launch_attempts=_env_int(env, "SMOKE_LAUNCH_ATTEMPTS", 3),
        )

        return cls(
            run_id=_env_int(env, "BUILD_NUMBER", 0),
            registry_username=_get(env, "DOCKERHUB_USERNAME", ""),
            registry_password=env.get("DOCKERHUB_PASSWORD", ""),
            registry=_get(env, "REGISTRY", ""),
            image_name=_get(env, "IMAGE_NAME", "hello-world"),
            image_tag=_get(env, "IMAGE_TAG", "latest"),
            build_context=_get(env, "BUILD_CONTEXT", "."),
            docker_bin=_get(env, "DOCKER_BIN", "docker"),
            install_cmd=_get(env, "INSTALL_CMD", _default_install_cmd()),
            test_cmd=_get(env, "TEST_CMD", _default_test_cmd()),
            smoke=smoke,
        )


def validate_config(cfg: PipelineConfig) -> None:
    """
    Проверяем конфиг целиком и сообщаем обо всех проблемах сразу.
    """
    errors: list[str] = []

    if cfg.run_id < 0:
        errors.append("BUILD_NUMBER must be >= 0")
    if not cfg.registry_username:
        errors.append("DOCKERHUB_USERNAME is required")
    if not cfg.registry_password:
        errors.append("DOCKERHUB_PASSWORD is required")
    if not cfg.image_name:
        errors.append("IMAGE_NAME is required")
    if not cfg.image_tag:
        errors.append("IMAGE_TAG is required")
    if not cfg.install_argv:
        errors.append("INSTALL_CMD is empty")
    if not cfg.test_argv:
        errors.append("TEST_CMD is empty")

    s = cfg.smoke
    if not 1 <= s.container_port <= 65535:
        errors.append("CONTAINER_PORT must be in 1..65535")
    if s.port_span < 1:
        errors.append("SMOKE_PORT_SPAN must be >= 1")
    if not 1024 <= s.port_base or s.port_base + s.port_span - 1 > 65535:
        errors.append("SMOKE_PORT_BASE..SMOKE_PORT_BASE+SMOKE_PORT_SPAN-1 must fit in 1024..65535")
    if not s.container_prefix:
        errors.append("SMOKE_CONTAINER_PREFIX is required")
    if not s.path.startswith("/"):
        errors.append("SMOKE_PATH must start with '/'")
    if s.initial_delay_s < 0 or s.readiness_timeout_s < 0:
        errors.append("SMOKE_INITIAL_DELAY_S and SMOKE_READINESS_TIMEOUT_S must be >= 0")
    if s.poll_interval_s <= 0 or s.request_timeout_s <= 0:
        errors.append("SMOKE_POLL_INTERVAL_S and SMOKE_REQUEST_TIMEOUT_S must be > 0")
    if s.launch_attempts < 1:
        errors.append("SMOKE_LAUNCH_ATTEMPTS must be >= 1")

    if errors:
        raise ConfigValidationError("; ".join(errors))
