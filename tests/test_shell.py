"""
Unit-тесты запуска внешних команд.
"""

from __future__ import annotations

import logging
import sys

import pytest

from pipeline.utils.shell import CommandError, format_argv, redact, run_command


def test_run_command_ok() -> None:
    res = run_command([sys.executable, "-c", "print('hi')"])
    assert res.ok
    assert res.returncode == 0
    assert res.output.strip() == "hi"


def test_run_command_nonzero_raises() -> None:
    with pytest.raises(CommandError) as exc:
        run_command([sys.executable, "-c", "import sys; print('bad'); sys.exit(4)"])
    assert exc.value.returncode == 4
    assert "bad" in exc.value.output


def test_run_command_nonzero_without_check() -> None:
    res = run_command([sys.executable, "-c", "raise SystemExit(2)"], check=False)
    assert not res.ok
    assert res.returncode == 2


def test_run_command_missing_binary() -> None:
    with pytest.raises(CommandError) as exc:
        run_command(["definitely-not-a-real-binary-xyz"])
    assert exc.value.returncode == 127


def test_stdin_secret_is_redacted(caplog) -> None:
    caplog.set_level(logging.DEBUG, logger="pipeline.shell")
    code = "import sys; print('got', sys.stdin.read())"
    res = run_command([sys.executable, "-c", code], input_text="s3cret", secrets=["s3cret"])

    assert res.output.strip() == "got ***"
    assert "s3cret" not in caplog.text


def test_redact_helpers() -> None:
    assert redact("token=abc abc", ["abc"]) == "token=*** ***"
    assert redact("nothing", ["", "zzz"]) == "nothing"
    assert format_argv(["docker", "login", "-p", "pw"], ["pw"]) == "docker login -p ***"


def test_successful_output_reaches_info_log(caplog) -> None:
    caplog.set_level(logging.INFO, logger="pipeline.shell")
    run_command([sys.executable, "-c", "print('collected 3 items')"])
    infos = [r.getMessage() for r in caplog.records if r.levelno == logging.INFO]
    assert any("collected 3 items" in m for m in infos)


def test_env_replaces_inherited_environment(monkeypatch) -> None:
    monkeypatch.setenv("LEAKY_VALUE", "from-parent")
    code = "import os; print(os.environ.get('LEAKY_VALUE', 'absent'))"
    res = run_command([sys.executable, "-c", code], env={"ONLY": "this"})
    assert res.output.strip() == "absent"
