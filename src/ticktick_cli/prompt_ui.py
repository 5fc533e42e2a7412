"""Prompt-based interactive helpers."""

from __future__ import annotations

from typing import Any

import typer

from .models import DUE_DATE_RE, PRIORITY_LABELS, Project, Task
from .selector_ui import SelectorUnavailableError, confirm, select_one, select_text
from .service import TaskChanges, parse_tags

CLEAR_KEYWORD = "clear"
_KEEP = "__keep__"
_PRIORITY_OPTIONS = [(str(value), label) for value, label in PRIORITY_LABELS.items()]


def _warn_selector_fallback(exc: Exception) -> None:
    message = str(exc)
    if not message:
        return
    typer.echo(f"Warning: {message}; falling back to numeric prompts.", err=True)


def _safe_prompt(message: str, *, default: str = "") -> str | None:
    try:
        selected = select_text(message, default_value=default)
    except SelectorUnavailableError:
        pass
    else:
        return selected

    try:
        return typer.prompt(message, default=default, show_default=bool(default))
    except (typer.Abort, KeyboardInterrupt, EOFError):
        return None


def _prompt_single_choice(title: str, options: list[tuple[str, str]], default_value: str) -> str | None:
    try:
        selected = select_one(title, options, default_value=default_value)
    except SelectorUnavailableError as exc:
        _warn_selector_fallback(exc)
    else:
        return selected

    typer.echo(title)
    default_index = 1
    for idx, (value, label) in enumerate(options, start=1):
        typer.echo(f"{idx}. {label}")
        if value == default_value:
            default_index = idx

    while True:
        raw = _safe_prompt("Enter number", default=str(default_index))
        if raw is None:
            return None
        try:
            index = int(raw)
        except ValueError:
            typer.echo("Invalid selection. Enter a number.")
            continue
        if 1 <= index <= len(options):
            return options[index - 1][0]
        typer.echo("Selection out of range.")


def _prompt_yes_no(title: str, *, default: bool = False) -> bool | None:
    try:
        return confirm(title, default=default)
    except SelectorUnavailableError as exc:
        _warn_selector_fallback(exc)

    prompt_label = "y/N" if not default else "Y/n"
    default_text = "y" if default else "n"
    while True:
        raw = _safe_prompt(f"{title} ({prompt_label})", default=default_text)
        if raw is None:
            return None
        raw = raw.strip().lower()
        if raw in {"y", "yes"}:
            return True
        if raw in {"n", "no"}:
            return False
        typer.echo("Invalid selection. Enter y or n.")


def _prompt_due_date(message: str, *, allow_clear: bool = False) -> str | None:
    while True:
        raw = _safe_prompt(message, default="")
        if raw is None:
            return None
        raw = raw.strip()
        if not raw or DUE_DATE_RE.fullmatch(raw):
            return raw
        if allow_clear and raw.lower() == CLEAR_KEYWORD:
            return CLEAR_KEYWORD
        typer.echo("Date must be in YYYY-MM-DD format")


def choose_project(projects: list[Project], title: str = "Select a project") -> Project | None:
    if not projects:
        return None

    options = [(project.id, f"{project.name} ({project.short_id})") for project in projects]
    try:
        selected = select_one(title, options, default_value=projects[0].id)
    except SelectorUnavailableError as exc:
        _warn_selector_fallback(exc)
    else:
        return next((project for project in projects if project.id == selected), None)

    typer.echo(title)
    for idx, project in enumerate(projects, start=1):
        typer.echo(f"{idx}. {project.name} ({project.short_id})")
    typer.echo("0. cancel")

    raw = _safe_prompt("Enter number", default="1")
    if raw is None:
        return None
    try:
        index = int(raw)
    except ValueError:
        return None
    if 1 <= index <= len(projects):
        return projects[index - 1]
    return None


def add_form() -> dict[str, Any] | None:
    while True:
        title = _safe_prompt("Task title")
        if title is None:
            return None
        if title.strip():
            break
        typer.echo("Title is required")

    content = _safe_prompt("Description (optional)")
    if content is None:
        return None
    priority = _prompt_single_choice("Priority", _PRIORITY_OPTIONS, default_value="0")
    if priority is None:
        return None
    due_date = _prompt_due_date("Due date (YYYY-MM-DD, optional)")
    if due_date is None:
        return None
    tags = _safe_prompt("Tags (comma-separated, optional)")
    if tags is None:
        return None
    return {
        "title": title.strip(),
        "content": content.strip() or None,
        "priority": int(priority),
        "due_date": due_date or None,
        "tags": parse_tags(tags),
    }


def update_form(task: Task) -> TaskChanges | None:
    typer.echo("Current values:")
    typer.echo(f"  Title: {task.title}")
    typer.echo(f"  Description: {task.content or '(none)'}")
    typer.echo(f"  Priority: {task.priority}")
    typer.echo(f"  Due Date: {task.due_date or '(none)'}")
    typer.echo(f"  Tags: {', '.join(task.tags) if task.tags else '(none)'}")
    typer.echo("")

    title = _safe_prompt("New title (leave empty to keep current)")
    if title is None:
        return None
    content = _safe_prompt('New description (leave empty to keep current, "clear" to remove)')
    if content is None:
        return None
    priority = _prompt_single_choice(
        "New priority",
        [(_KEEP, f"Keep current ({task.priority})"), *_PRIORITY_OPTIONS],
        default_value=_KEEP,
    )
    if priority is None:
        return None
    due_date = _prompt_due_date(
        'New due date (YYYY-MM-DD, leave empty to keep current, "clear" to remove)',
        allow_clear=True,
    )
    if due_date is None:
        return None
    tags = _safe_prompt('New tags (comma-separated, leave empty to keep current, "clear" to remove)')
    if tags is None:
        return None

    changes = TaskChanges()
    if title.strip():
        changes.title = title.strip()
    if content.strip():
        changes.content = "" if content.strip().lower() == CLEAR_KEYWORD else content.strip()
    if priority != _KEEP:
        changes.priority = int(priority)
    if due_date:
        changes.due_date = "" if due_date == CLEAR_KEYWORD else due_date
    if tags.strip():
        changes.tags = [] if tags.strip().lower() == CLEAR_KEYWORD else parse_tags(tags)
    return changes


def confirm_delete(task: Task) -> bool:
    answer = _prompt_yes_no(f"Delete task '{task.title}'?", default=False)
    return bool(answer)
