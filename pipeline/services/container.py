"""
Обёртка над docker CLI.

Пайплайн знает только про ContainerRuntime - в тестах его подменяем фейком,
в проде это DockerRuntime, который просто зовёт `docker ...`.
"""

from __future__ import annotations

import logging
from typing import Protocol, Sequence

from pipeline.utils.shell import CommandError, run_command

logger = logging.getLogger("pipeline.container")

# docker пишет одно из этого, если host-порт уже кем-то занят
_PORT_BUSY_MARKERS = (
    "port is already allocated",
    "address already in use",
)


class PortInUseError(CommandError):
    """`docker run` не смог опубликовать порт: его успели занять."""


class ContainerRuntime(Protocol):
    def build(self, image_ref: str, context: str) -> None: ...

    def login(self, username: str, password: str, registry: str = "") -> None: ...

    def push(self, image_ref: str) -> None: ...

    def logout(self, registry: str = "") -> None: ...

    def run_detached(self, image_ref: str, *, name: str, host_port: int, container_port: int) -> str: ...

    def is_running(self, name: str) -> bool: ...

    def stop(self, name: str) -> bool: ...

    def remove(self, name: str) -> bool: ...


class DockerRuntime:
    def __init__(self, docker_bin: str = "docker", secrets: Sequence[str] = ()) -> None:
        self.docker_bin = docker_bin
        self._secrets = tuple(secrets)

    def _docker(self, *args: str, check: bool = True, input_text: str | None = None):
        return run_command(
            [self.docker_bin, *args],
            input_text=input_text,
            secrets=self._secrets,
            check=check,
        )

    def build(self, image_ref: str, context: str) -> None:
        self._docker("build", "-t", image_ref, context)

    def login(self, username: str, password: str, registry: str = "") -> None:
        # пароль только через stdin: в argv он был бы виден в `ps` и в логе CI
        if password not in self._secrets:
            self._secrets += (password,)
        args = ["login", "-u", username, "--password-stdin"]
        if registry:
            args.append(registry)
        self._docker(*args, input_text=password)

    def push(self, image_ref: str) -> None:
        self._docker("push", image_ref)

    def logout(self, registry: str = "") -> None:
        args = ["logout"]
        if registry:
            args.append(registry)
        self._docker(*args)

    def run_detached(self, image_ref: str, *, name: str, host_port: int, container_port: int) -> str:
        try:
            res = self._docker(
                "run", "-d", "--rm",
                "--name", name,
                "-p", f"{host_port}:{container_port}",
                image_ref,
            )
        except CommandError as e:
            if any(m in e.output.lower() for m in _PORT_BUSY_MARKERS):
                raise PortInUseError(e.cmd, e.returncode, e.output) from e
            raise
        container_id = res.output.strip().splitlines()[-1] if res.output.strip() else ""
        logger.info("Started container name=%s id=%s port=%s:%s", name, container_id[:12], host_port, container_port)
        return container_id

    def is_running(self, name: str) -> bool:
        res = self._docker("inspect", "-f", "{{.State.Running}}", name, check=False)
        return res.ok and res.output.strip().lower() == "true"

    def stop(self, name: str) -> bool:
        # контейнер запущен с --rm, после stop docker удалит его сам
        res = self._docker("stop", name, check=False)
        if not res.ok:
            logger.warning("docker stop %s failed (exit=%s): %s", name, res.returncode, res.output.strip())
        return res.ok

    def remove(self, name: str) -> bool:
        res = self._docker("rm", "-f", name, check=False)
        return res.ok
