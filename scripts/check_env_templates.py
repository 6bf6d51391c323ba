from __future__ import annotations

import re
import sys
from pathlib import Path

# ключи, без которых run_pipeline.py не пройдёт validate_config()
REQUIRED_KEYS = {
    "BUILD_NUMBER",
    "DOCKERHUB_USERNAME",
    "DOCKERHUB_PASSWORD",
    "IMAGE_NAME",
    "IMAGE_TAG",
    "CONTAINER_PORT",
}

TEMPLATE_FILES = [
    Path(".envs/.env.ci.example"),
]


_ASSIGNMENT = re.compile(r"^\s*(?:export\s+)?([A-Za-z_][A-Za-z0-9_]*)\s*=")


def parse_keys(text: str) -> set[str]:
    # KEY=value и export KEY=value; комментарии и мусор не совпадут с шаблоном
    return {m.group(1) for m in map(_ASSIGNMENT.match, text.splitlines()) if m}


def check_templates(paths: list[Path]) -> list[str]:
    errors: list[str] = []

    for p in paths:
        if not p.exists():
            errors.append(f"Template file not found: {p}")
            continue
        keys = parse_keys(p.read_text(encoding="utf-8"))
        missing = REQUIRED_KEYS - keys
        if missing:
            errors.append(f"{p}: missing keys: {', '.join(sorted(missing))}")

    return errors


def main(argv: list[str] | None = None) -> None:
    args = sys.argv[1:] if argv is None else argv
    paths = [Path(a) for a in args] or TEMPLATE_FILES

    errors = check_templates(paths)
    if errors:
        raise SystemExit("ENV template check failed:\n" + "\n".join(errors))

    print("ENV template check passed.")


if __name__ == "__main__":
    main()
