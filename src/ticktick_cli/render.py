"""Renderers for task, project, and config command output."""

from __future__ import annotations

import json
from typing import Iterable

from .config import Config
from .models import PRIORITY_LABELS, STATUS_COMPLETED, STATUS_LABELS, Project, Task

TITLE_WIDTH = 50


def _priority_style(priority: int) -> str:
    return {
        5: "bold red",
        3: "bold yellow",
        1: "cyan",
    }.get(priority, "dim")


def _status_style(status: int) -> str:
    return "blue" if status == STATUS_COMPLETED else "green"


def _truncate(value: str, width: int) -> str:
    if width <= 0:
        return ""
    if len(value) <= width:
        return value
    if width <= 3:
        return value[:width]
    return f"{value[: width - 3]}..."


def _priority_cell(task: Task) -> str:
    return str(task.priority) if task.priority else "-"


def _tags_cell(task: Task) -> str:
    return ", ".join(task.tags) if task.tags else "-"


def _task_list_headers(with_project: bool) -> list[str]:
    if with_project:
        return ["ID", "Title", "Project", "Priority", "Due Date", "Tags"]
    return ["ID", "Title", "Priority", "Due Date", "Tags"]


def _task_list_row(task: Task, project_names: dict[str, str] | None) -> list[str]:
    row = [task.short_id, _truncate(task.title, TITLE_WIDTH)]
    if project_names is not None:
        row.append(project_names.get(task.project_id, "Unknown"))
    row.extend([_priority_cell(task), task.due_date or "-", _tags_cell(task)])
    return row


def _plain_table(headers: list[str], rows: list[list[str]]) -> list[str]:
    widths = [
        max(len(header), *(len(row[index]) for row in rows)) if rows else len(header)
        for index, header in enumerate(headers)
    ]
    lines = ["  ".join(header.ljust(width) for header, width in zip(headers, widths)).rstrip()]
    lines.append("  ".join("-" * width for width in widths))
    for row in rows:
        lines.append("  ".join(cell.ljust(width) for cell, width in zip(row, widths)).rstrip())
    return lines


def task_list_heading(title: str, count: int) -> str:
    return f"{title} - {count} task(s)"


def render_task_list_plain(
    tasks: Iterable[Task],
    title: str,
    *,
    project_names: dict[str, str] | None = None,
) -> str:
    task_list = list(tasks)
    if not task_list:
        return "No tasks found."
    headers = _task_list_headers(project_names is not None)
    rows = [_task_list_row(task, project_names) for task in task_list]
    return "\n".join([task_list_heading(title, len(task_list)), "", *_plain_table(headers, rows)])


def render_task_list_rich(
    tasks: Iterable[Task],
    title: str,
    *,
    project_names: dict[str, str] | None = None,
):
    from rich import box
    from rich.console import Group
    from rich.table import Table
    from rich.text import Text

    task_list = list(tasks)
    if not task_list:
        return Text("No tasks found.", style="yellow")

    table = Table(
        box=box.SIMPLE_HEAVY,
        show_header=True,
        header_style="bold cyan",
        pad_edge=False,
    )
    for header in _task_list_headers(project_names is not None):
        table.add_column(
            header,
            style="bold" if header == "Title" else ("dim" if header == "ID" else ""),
            no_wrap=header == "ID",
            overflow="ellipsis",
        )

    for task in task_list:
        cells: list[str | Text] = []
        for header, value in zip(
            _task_list_headers(project_names is not None),
            _task_list_row(task, project_names),
        ):
            if header == "Priority":
                cells.append(Text(value, style=_priority_style(task.priority)))
            else:
                cells.append(value)
        table.add_row(*cells)

    heading = Text(task_list_heading(title, len(task_list)), style="bold cyan")
    return Group(heading, table)


def render_task_list_compact(
    tasks: Iterable[Task],
    title: str,
    *,
    project_names: dict[str, str] | None = None,
) -> str:
    task_list = list(tasks)
    if not task_list:
        return "No tasks found."
    lines = [task_list_heading(title, len(task_list)), ""]
    for task in task_list:
        line = f"{task.short_id}: {task.title}"
        if task.priority:
            line += f" [P{task.priority}]"
        if task.due_date:
            line += f" (due: {task.due_date})"
        if task.tags:
            line += " #" + " #".join(task.tags)
        if project_names is not None:
            line += f" [{project_names.get(task.project_id, 'Unknown')}]"
        lines.append(line)
    return "\n".join(lines)


def render_task_list_json(tasks: Iterable[Task]) -> str:
    return json.dumps([task.to_dict() for task in tasks], indent=2)


def _task_detail_rows(task: Task) -> list[tuple[str, str]]:
    rows = [("Title", task.title), ("ID", task.id), ("Project ID", task.project_id)]
    if task.priority:
        rows.append(("Priority", f"{task.priority} ({PRIORITY_LABELS.get(task.priority, '?')})"))
    if task.due_date:
        rows.append(("Due Date", task.due_date))
    if task.start_date:
        rows.append(("Start Date", task.start_date))
    if task.tags:
        rows.append(("Tags", ", ".join(task.tags)))
    rows.append(("Status", STATUS_LABELS.get(task.status, "Unknown")))
    if task.created_time:
        rows.append(("Created", task.created_time))
    if task.modified_time:
        rows.append(("Modified", task.modified_time))
    if task.completed_time:
        rows.append(("Completed", task.completed_time))
    return rows


def render_task_detail_plain(task: Task) -> str:
    lines = ["=== Task Details ===", ""]
    lines.extend(f"{label + ':':<12}{value}" for label, value in _task_detail_rows(task))
    if task.content:
        lines.extend(["", "Content:", task.content])
    return "\n".join(lines)


def render_task_detail_rich(task: Task):
    from rich.console import Group
    from rich.text import Text

    renderables = [Text("=== Task Details ===", style="bold cyan"), Text("")]
    for label, value in _task_detail_rows(task):
        line = Text(f"{label + ':':<12}")
        if label == "Status":
            line.append(value, style=_status_style(task.status))
        elif label == "Priority":
            line.append(value, style=_priority_style(task.priority))
        elif label == "Title":
            line.append(value, style="bold")
        else:
            line.append(value)
        renderables.append(line)
    if task.content:
        renderables.extend([Text(""), Text("Content:", style="bold"), Text(task.content)])
    return Group(*renderables)


def render_task_summary(task: Task) -> str:
    """Short confirmation block printed after create/complete/delete."""
    lines = [f"Title: {task.title}", f"ID: {task.id}"]
    if task.content:
        lines.append(f"Content: {task.content}")
    if task.due_date:
        lines.append(f"Due: {task.due_date}")
    if task.priority:
        lines.append(f"Priority: {task.priority}")
    if task.tags:
        lines.append(f"Tags: {', '.join(task.tags)}")
    return "\n".join(lines)


def render_update_summary(task: Task, payload: dict) -> str:
    lines = [f"Task: {task.title}", f"ID: {task.id}", "", "Updated fields:"]
    if "title" in payload:
        lines.append(f"  Title: {payload['title']}")
    if "content" in payload:
        lines.append(f"  Description: {payload['content'] or '(cleared)'}")
    if "priority" in payload:
        lines.append(f"  Priority: {payload['priority']}")
    if "dueDate" in payload:
        lines.append(f"  Due Date: {payload['dueDate'] or '(cleared)'}")
    if "tags" in payload:
        lines.append(f"  Tags: {', '.join(payload['tags']) if payload['tags'] else '(cleared)'}")
    return "\n".join(lines)


def _project_rows(projects: list[Project]) -> list[list[str]]:
    return [
        [project.short_id, project.name, "Closed" if project.closed else "Active", str(project.sort_order)]
        for project in projects
    ]


PROJECT_HEADERS = ["ID", "Name", "Status", "Sort Order"]


def render_projects_plain(projects: Iterable[Project]) -> str:
    project_list = list(projects)
    if not project_list:
        return "No projects found."
    heading = f"Your Projects ({len(project_list)} total)"
    return "\n".join([heading, "", *_plain_table(PROJECT_HEADERS, _project_rows(project_list))])


def render_projects_rich(projects: Iterable[Project]):
    from rich import box
    from rich.console import Group
    from rich.table import Table
    from rich.text import Text

    project_list = list(projects)
    if not project_list:
        return Text("No projects found.", style="yellow")

    table = Table(box=box.SIMPLE_HEAVY, show_header=True, header_style="bold cyan", pad_edge=False)
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Name", style="bold")
    table.add_column("Status")
    table.add_column("Sort Order", justify="right")
    for project in project_list:
        status = Text("Closed", style="yellow") if project.closed else Text("Active", style="green")
        table.add_row(project.short_id, project.name, status, str(project.sort_order))
    heading = Text(f"Your Projects ({len(project_list)} total)", style="bold cyan")
    return Group(heading, table)


def render_projects_json(projects: Iterable[Project]) -> str:
    return json.dumps([project.to_dict() for project in projects], indent=2)


def render_auth_status(config: Config) -> str:
    if not config.is_authenticated:
        return "✗ Not authenticated\n\nRun 'ticktick auth login' to authenticate."
    lines = ["✓ Authenticated", "", f"Client ID: {config.auth.client_id}"]
    if config.auth.expiry:
        lines.append(f"Token expires: {config.auth.expiry}")
        if config.is_token_expired():
            lines.extend(
                [
                    "",
                    "⚠ Warning: Token is expired",
                    "The token will be automatically refreshed on next API call.",
                ]
            )
    return "\n".join(lines)


def render_config(config: Config, *, default_project_label: str | None = None) -> str:
    """Render every config section; ``default_project_label`` overrides the raw project id."""
    prefs = config.preferences
    lines = ["=== Configuration ===", "", "Authentication:"]
    if config.is_authenticated:
        lines.append(f"  {'Status:':<14}✓ Authenticated")
        lines.append(f"  {'Client ID:':<14}{config.auth.client_id}")
        if config.auth.expiry:
            lines.append(f"  {'Token Expiry:':<14}{config.auth.expiry}")
            if config.is_token_expired():
                lines.append("  ⚠ Token is expired - will refresh on next API call")
    else:
        lines.append(f"  {'Status:':<14}✗ Not authenticated")

    if prefs.default_project:
        project_label = default_project_label or prefs.default_project[:12]
    else:
        project_label = "(not set)"
    lines.extend(
        [
            "",
            "Preferences:",
            f"  {'Default Project:':<18}{project_label}",
            f"  {'Date Format:':<18}{prefs.date_format}",
            f"  {'Time Format:':<18}{prefs.time_format}",
            f"  {'Default Priority:':<18}{prefs.default_priority}",
            f"  {'Color Output:':<18}{'enabled' if prefs.color_output else 'disabled'}",
            "",
            "Cache:",
            f"  {'Enabled:':<18}{'yes' if config.cache.enabled else 'no'}",
            f"  {'TTL:':<18}{config.cache.ttl} seconds",
        ]
    )
    return "\n".join(lines)


def format_task_text(task: Task) -> str:
    """Markdown-ish task block returned by MCP tools."""
    lines = [f"**{task.title}**", f"ID: {task.short_id}"]
    if task.content:
        lines.append(f"Description: {task.content}")
    if task.priority:
        lines.append(f"Priority: {PRIORITY_LABELS.get(task.priority, task.priority)}")
    if task.due_date:
        lines.append(f"Due: {task.due_date}")
    if task.tags:
        lines.append(f"Tags: {', '.join(task.tags)}")
    return "\n".join(lines)


def format_task_list_text(tasks: Iterable[Task]) -> str:
    return "\n\n---\n\n".join(format_task_text(task) for task in tasks)


def format_projects_text(projects: Iterable[Project]) -> str:
    project_list = list(projects)
    if not project_list:
        return "No active projects found."
    body = "\n".join(f"- **{project.name}** (ID: {project.short_id})" for project in project_list)
    return f"Your TickTick Projects ({len(project_list)} total):\n\n{body}"
