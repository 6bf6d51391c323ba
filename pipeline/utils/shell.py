# pipeline/utils/shell.py
"""
Запуск внешних команд (pip, pytest, docker).

Идея:
- каждая стадия пайплайна - это одна или несколько shell-команд
- ненулевой код выхода = ошибка стадии (CommandError)
- секреты (пароль registry) никогда не попадают в лог: передаём их через stdin
  и вычищаем из командной строки/вывода перед логированием
"""

from __future__ import annotations

import logging
import shlex
import subprocess
import time
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Sequence

logger = logging.getLogger("pipeline.shell")

REDACTED = "***"


@dataclass(frozen=True)
class CommandResult:
    argv: tuple[str, ...]
    returncode: int
    output: str
    duration_ms: int

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandError(RuntimeError):
    """Внешняя команда завершилась с ненулевым кодом."""

    def __init__(self, cmd: str, returncode: int, output: str = "") -> None:
        self.cmd = cmd
        self.returncode = returncode
        self.output = output
        super().__init__(f"command failed (exit={returncode}): {cmd}")


def redact(text: str, secrets: Iterable[str]) -> str:
    for s in secrets:
        if s:
            text = text.replace(s, REDACTED)
    return text


def format_argv(argv: Sequence[str], secrets: Iterable[str] = ()) -> str:
    return redact(shlex.join(argv), secrets)


def run_command(
    argv: Sequence[str],
    *,
    input_text: Optional[str] = None,
    secrets: Iterable[str] = (),
    check: bool = True,
    cwd: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
) -> CommandResult:
    """
    Запускает команду, ждёт завершения, возвращает CommandResult.

    stdout и stderr склеиваем: в CI важен общий порядок сообщений.
    При check=True ненулевой код выхода превращается в CommandError.
    env=None - наследуем окружение процесса целиком.
    """
    secrets = tuple(secrets)
    cmd = format_argv(argv, secrets)
    logger.info("$ %s", cmd)

    t0 = time.perf_counter()
    try:
        proc = subprocess.run(
            list(argv),
            input=input_text,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            cwd=cwd,
            env=None if env is None else dict(env),
        )
    except FileNotFoundError as e:
        # бинарника нет (например docker не установлен) - это тоже провал стадии
        raise CommandError(cmd, 127, str(e)) from e

    dt = int((time.perf_counter() - t0) * 1000)
    output = redact(proc.stdout or "", secrets)
    result = CommandResult(argv=tuple(argv), returncode=proc.returncode, output=output, duration_ms=dt)

    for line in output.splitlines():
        logger.info("  %s", line)
    logger.info("exit=%s duration_ms=%s", proc.returncode, dt)

    if check and not result.ok:
        raise CommandError(cmd, proc.returncode, output)
    return result
