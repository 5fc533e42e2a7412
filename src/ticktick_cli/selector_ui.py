"""InquirerPy prompts used by the interactive project picker and task forms.

Every helper returns None when the user cancels (Ctrl-C or EOF) and raises
SelectorUnavailableError when no terminal prompt can be shown, so callers can
fall back to numbered ``typer.prompt`` input.
"""

from __future__ import annotations

import sys
from typing import Any, Callable


class SelectorUnavailableError(RuntimeError):
    """Raised when an InquirerPy prompt cannot be shown."""


def _ensure_tty() -> None:
    if not (sys.stdin.isatty() and sys.stdout.isatty()):
        raise SelectorUnavailableError("interactive selector requires a TTY")


def _inquirer():
    try:
        from InquirerPy import inquirer
    except ImportError as exc:  # pragma: no cover - environment dependent
        raise SelectorUnavailableError("InquirerPy unavailable") from exc
    return inquirer


def _execute(build: Callable[[Any], Any]) -> Any:
    _ensure_tty()
    prompt = build(_inquirer())
    try:
        return prompt.execute()
    except (KeyboardInterrupt, EOFError):
        return None
    except Exception as exc:
        raise SelectorUnavailableError("selector runtime failed") from exc


def select_one(
    title: str,
    options: list[tuple[str, str]],
    *,
    default_value: str | None = None,
) -> str | None:
    """Pick one value from ``(value, label)`` pairs."""
    if not options:
        _ensure_tty()
        return None
    result = _execute(
        lambda inquirer: inquirer.select(
            message=title,
            choices=[{"name": label, "value": value} for value, label in options],
            default=default_value,
            pointer=">",
            mandatory=False,
            raise_keyboard_interrupt=True,
        )
    )
    return None if result is None else str(result)


def select_text(
    title: str,
    *,
    default_value: str = "",
    validate: Callable[[str], bool] | None = None,
    invalid_message: str = "Invalid input",
) -> str | None:
    result = _execute(
        lambda inquirer: inquirer.text(
            message=title,
            default=default_value,
            validate=validate,
            invalid_message=invalid_message,
            mandatory=False,
            raise_keyboard_interrupt=True,
        )
    )
    return None if result is None else str(result)


def confirm(title: str, *, default: bool = False) -> bool | None:
    result = _execute(
        lambda inquirer: inquirer.confirm(
            message=title,
            default=default,
            mandatory=False,
            raise_keyboard_interrupt=True,
        )
    )
    return None if result is None else bool(result)
