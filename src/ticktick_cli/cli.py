"""CLI entrypoint for ticktick-cli."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
import sys
from typing import Annotated, Any, Awaitable, Callable, TypeVar

import click
from dotenv import find_dotenv, load_dotenv
import typer

from . import render
from .auth import login
from .config import PREFERENCE_KEYS, ConfigStore
from .context import (
    LINK_FILE_NAME,
    ProjectContext,
    current_context,
    has_link_file,
    new_link_file,
    resolve_project,
    save_link_file,
    touch_synced_at,
)
from .models import (
    AuthenticationError,
    ConfigError,
    Project,
    Task,
    TickTickError,
    ValidationError,
)
from .prompt_ui import add_form, choose_project, confirm_delete, update_form
from .service import (
    NOT_AUTHENTICATED,
    TaskChanges,
    TaskService,
    open_client,
    parse_tags,
    validate_new_task,
)

T = TypeVar("T")

logger = logging.getLogger(__name__)

CLIENT_ID_ENV = "TICKTICK_CLIENT_ID"
CLIENT_SECRET_ENV = "TICKTICK_CLIENT_SECRET"
LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"

TASK_FORMATS = ["table", "json", "compact"]
PROJECT_FORMATS = ["table", "json"]

ProjectOption = Annotated[
    str | None,
    typer.Option("--project", help="Project ID (overrides .ticktick file)"),
]
PriorityOption = Annotated[
    int | None,
    typer.Option("--priority", help="Priority (0=none, 1=low, 3=medium, 5=high)"),
]
TaskFormatOption = Annotated[
    str,
    typer.Option("--format", "-f", click_type=click.Choice(TASK_FORMATS), help="Output format"),
]
TaskIdArgument = Annotated[str, typer.Argument(help="Task ID (full or short ID)")]

app = typer.Typer(help="TickTick from the command line", no_args_is_help=True)
auth_app = typer.Typer(help="Manage authentication", no_args_is_help=True)
config_app = typer.Typer(help="Manage global configuration", no_args_is_help=True)
default_app = typer.Typer(help="Manage the default project", no_args_is_help=True)
projects_app = typer.Typer(help="Manage projects", no_args_is_help=True)
app.add_typer(auth_app, name="auth")
app.add_typer(config_app, name="config")
config_app.add_typer(default_app, name="default")
app.add_typer(projects_app, name="projects")

_log_handler: logging.Handler | None = None


def _configure_logging(verbose: bool) -> None:
    global _log_handler

    package_logger = logging.getLogger("ticktick_cli")
    if _log_handler is not None:
        package_logger.removeHandler(_log_handler)
    _log_handler = logging.StreamHandler(sys.stderr)
    _log_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    package_logger.addHandler(_log_handler)
    package_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


def _can_interact() -> bool:
    return sys.stdin.isatty() and sys.stdout.isatty()


def _can_render_rich_output() -> bool:
    return sys.stdout.isatty()


def _print_rich(renderable) -> None:
    from rich.console import Console

    Console().print(renderable)


def _run_and_handle(fn) -> None:
    try:
        fn()
    except TickTickError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def _exit_canceled(code: int) -> None:
    typer.echo("Canceled.")
    raise typer.Exit(code=code)


def _store() -> ConfigStore:
    return ConfigStore()


def _call(fn: Callable[[TaskService], Awaitable[T]]) -> T:
    """Run one async unit of work against a freshly authenticated client."""

    async def runner() -> T:
        client, _ = await open_client(_store())
        async with client:
            return await fn(TaskService(client))

    return asyncio.run(runner())


def _context(project: str | None) -> ProjectContext:
    config = _store().load()
    if not config.is_authenticated:
        raise AuthenticationError(NOT_AUTHENTICATED)
    return resolve_project(project, config)


def _check_priority_range(priority: int | None) -> None:
    if priority is not None and not 0 <= priority <= 5:
        raise ValidationError("Priority must be between 0 and 5")


def _emit_tasks(
    tasks: list[Task],
    title: str,
    fmt: str,
    *,
    project_names: dict[str, str] | None = None,
) -> None:
    if fmt == "json":
        typer.echo(render.render_task_list_json(tasks))
    elif fmt == "compact":
        typer.echo(render.render_task_list_compact(tasks, title, project_names=project_names))
    elif _can_render_rich_output():
        _print_rich(render.render_task_list_rich(tasks, title, project_names=project_names))
    else:
        typer.echo(render.render_task_list_plain(tasks, title, project_names=project_names))


def _pick_project(title: str, *, include_closed_fallback: bool = False) -> Project:
    typer.echo("Fetching your projects...", err=True)
    projects = _call(lambda svc: svc.client.get_projects())
    active = [project for project in projects if not project.closed]
    if not active and not (include_closed_fallback and projects):
        raise ValidationError("No active projects found. Create one with --create flag")
    if not _can_interact():
        raise ValidationError("A project ID is required in non-interactive mode")
    selected = choose_project(active or projects, title=title)
    if selected is None:
        _exit_canceled(1)
    return selected


@app.callback()
def root_callback(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")] = False,
) -> None:
    """Manage TickTick tasks and projects."""
    _configure_logging(verbose)


# auth


@auth_app.command("login")
def auth_login_cmd(
    client_id: Annotated[str | None, typer.Option("--client-id", help="OAuth Client ID")] = None,
    client_secret: Annotated[
        str | None,
        typer.Option("--client-secret", help="OAuth Client Secret"),
    ] = None,
) -> None:
    """Authenticate with TickTick."""

    def _inner() -> None:
        load_dotenv(find_dotenv(usecwd=True))
        local_id = client_id or os.environ.get(CLIENT_ID_ENV, "")
        local_secret = client_secret or os.environ.get(CLIENT_SECRET_ENV, "")

        if not local_id or not local_secret:
            typer.echo(
                f"Tip: Create a .env file with {CLIENT_ID_ENV} and {CLIENT_SECRET_ENV} "
                "to avoid entering these each time.\n"
            )
            if not local_id:
                local_id = typer.prompt("Enter Client ID", default="", show_default=False)
            if not local_secret:
                local_secret = typer.prompt(
                    "Enter Client Secret", default="", show_default=False, hide_input=True
                )
        if not local_id or not local_secret:
            raise ValidationError("Both Client ID and Client Secret are required")

        store = _store()
        _, config = asyncio.run(login(local_id, local_secret, store))
        typer.echo("\n✓ Authentication successful!")
        typer.echo(f"Credentials saved to {store.path}")
        typer.echo(f"Token expires: {config.auth.expiry}")

    _run_and_handle(_inner)


@auth_app.command("status")
def auth_status_cmd() -> None:
    """Check authentication status."""

    def _inner() -> None:
        typer.echo(render.render_auth_status(_store().load()))

    _run_and_handle(_inner)


@auth_app.command("logout")
def auth_logout_cmd() -> None:
    """Remove authentication credentials."""

    def _inner() -> None:
        store = _store()
        if not store.load().is_authenticated:
            typer.echo("Already logged out (no credentials found)")
            return
        store.clear_auth()
        typer.echo("✓ Successfully logged out")
        typer.echo(f"Credentials removed from {store.path}")

    _run_and_handle(_inner)


# project links


def _write_link(directory: Path, project: Project) -> None:
    link = new_link_file(project.id, project.name, directory)
    save_link_file(directory, link)


@app.command("init")
def init_cmd(
    project_id: Annotated[
        str | None,
        typer.Option("--project-id", help="Link to existing project by ID"),
    ] = None,
    create: Annotated[
        str | None,
        typer.Option("--create", help="Create new project with this name"),
    ] = None,
) -> None:
    """Link the current directory to a TickTick project."""

    def _inner() -> None:
        cwd = Path.cwd()
        if has_link_file(cwd):
            raise ConfigError(f"{LINK_FILE_NAME} file already exists in this directory")
        if not _store().load().is_authenticated:
            raise AuthenticationError(NOT_AUTHENTICATED)

        if create:
            typer.echo(f"Creating new project: {create}")
            project = _call(lambda svc: svc.client.create_project(create))
            typer.echo(f"✓ Created project: {project.name}")
        elif project_id:
            typer.echo(f"Fetching project: {project_id}")
            project = _call(lambda svc: svc.client.get_project(project_id))
        else:
            project = _pick_project("Select a project to link")

        _write_link(cwd, project)
        typer.echo("\n✓ Project initialized successfully!")
        typer.echo(f"\nProject: {project.name} (ID: {project.id})")
        typer.echo(f"Directory: {cwd.resolve()}")
        typer.echo("\nYou can now use project-aware commands like:")
        typer.echo('  ticktick add "My task"')
        typer.echo("  ticktick list")

    _run_and_handle(_inner)


@app.command("switch")
def switch_cmd(
    project_id: Annotated[
        str | None,
        typer.Option("--project-id", help="Switch to project by ID"),
    ] = None,
) -> None:
    """Relink the current directory to a different project."""

    def _inner() -> None:
        cwd = Path.cwd()
        if not has_link_file(cwd):
            raise ConfigError(
                f"No {LINK_FILE_NAME} file found in this directory. "
                "Run 'ticktick init' first to initialize a project."
            )
        found = current_context(cwd)
        if found is not None:
            link, _ = found
            typer.echo(f"Current project: {link.project_name} (ID: {link.project_id})\n")
        if not _store().load().is_authenticated:
            raise AuthenticationError(NOT_AUTHENTICATED)

        if project_id:
            typer.echo(f"Fetching project: {project_id}")
            project = _call(lambda svc: svc.client.get_project(project_id))
        else:
            project = _pick_project("Select a project to switch to")

        _write_link(cwd, project)
        typer.echo("\n✓ Successfully switched project!")
        typer.echo(f"\nNew project: {project.name} (ID: {project.id})")
        typer.echo(f"Directory: {cwd.resolve()}")

    _run_and_handle(_inner)


# config


def _default_project_label(project_id: str) -> str:
    try:
        project = _call(lambda svc: svc.client.get_project(project_id))
    except TickTickError as exc:
        logger.debug("Could not fetch default project: %s", exc)
        return f"{project_id[:12]} (not found)"
    return f"{project.name} ({project.short_id})"


@config_app.command("show")
def config_show_cmd() -> None:
    """Show all configuration settings."""

    def _inner() -> None:
        config = _store().load()
        label = None
        default_project = config.preferences.default_project
        if default_project and config.is_authenticated and not config.is_token_expired():
            label = _default_project_label(default_project)
        typer.echo(render.render_config(config, default_project_label=label))

    _run_and_handle(_inner)


@config_app.command("set")
def config_set_cmd(
    key: Annotated[str, typer.Argument(help=f"One of: {', '.join(PREFERENCE_KEYS)}")],
    value: Annotated[str, typer.Argument(help="New value")],
) -> None:
    """Set a preference value."""

    def _inner() -> None:
        _store().set_preference(key, value)
        typer.echo(f"✓ Set {key} = {value}")

    _run_and_handle(_inner)


@config_app.command("get")
def config_get_cmd(
    key: Annotated[str, typer.Argument(help=f"One of: {', '.join(PREFERENCE_KEYS)}")],
) -> None:
    """Print a preference value."""

    def _inner() -> None:
        typer.echo(_store().get_preference(key))

    _run_and_handle(_inner)


@default_app.command("set")
def default_set_cmd(
    project_id: Annotated[
        str | None,
        typer.Argument(help="Project ID (interactive if omitted)", show_default=False),
    ] = None,
) -> None:
    """Set the global default project."""

    def _inner() -> None:
        if not _store().load().is_authenticated:
            raise AuthenticationError(NOT_AUTHENTICATED)
        if project_id:
            project = _call(lambda svc: svc.client.get_project(project_id))
            if project.closed:
                typer.echo(f'Warning: Project "{project.name}" is closed.', err=True)
        else:
            project = _pick_project("Select a default project", include_closed_fallback=True)

        _store().set_preference("defaultProject", project.id)
        typer.echo("✓ Default project set successfully!")
        typer.echo(f"\nProject: {project.name} ({project.short_id})")
        typer.echo("\nAll commands will now use this project by default.")
        typer.echo("You can still override with .ticktick files or the --project flag.")

    _run_and_handle(_inner)


@default_app.command("clear")
def default_clear_cmd() -> None:
    """Clear the global default project."""

    def _inner() -> None:
        previous = _store().clear_default_project()
        if previous is None:
            typer.echo("No default project is currently set.")
            return
        typer.echo("✓ Default project cleared successfully!")
        typer.echo(f"\nRemoved: {previous}")

    _run_and_handle(_inner)


@default_app.command("show")
def default_show_cmd() -> None:
    """Show the current default project."""

    def _inner() -> None:
        config = _store().load()
        default_project = config.preferences.default_project
        if not default_project:
            typer.echo("No default project is set.")
            typer.echo("\nSet one with: ticktick config default set")
            return

        typer.echo("Default Project:\n")
        if not config.is_authenticated:
            typer.echo(f"  ID:     {default_project}")
            typer.echo("  Status: Not authenticated - cannot fetch details")
            return
        try:
            project = _call(lambda svc: svc.client.get_project(default_project))
        except TickTickError:
            typer.echo(f"  ID:     {default_project}")
            typer.echo("  Status: Unable to fetch details (project may not exist)")
            return
        typer.echo(f"  Name:   {project.name}")
        typer.echo(f"  ID:     {project.id}")
        typer.echo(f"  Status: {'Closed' if project.closed else 'Active'}")

    _run_and_handle(_inner)


# tasks


@app.command("add")
def add_cmd(
    title: Annotated[
        str | None,
        typer.Argument(help="Task title (interactive mode if omitted)", show_default=False),
    ] = None,
    content: Annotated[
        str | None,
        typer.Option("--content", "--desc", help="Task description"),
    ] = None,
    due: Annotated[str | None, typer.Option("--due", help="Due date (YYYY-MM-DD)")] = None,
    priority: PriorityOption = None,
    tags: Annotated[str | None, typer.Option("--tags", help="Comma-separated tags")] = None,
    project: ProjectOption = None,
) -> None:
    """Add a new task."""

    def _inner() -> None:
        ctx = _context(project)
        if ctx.source == "link":
            typer.echo(f"Using project from {LINK_FILE_NAME}: {ctx.project_name}", err=True)
        elif ctx.source == "default":
            typer.echo("Using default project from config", err=True)

        fields: dict[str, Any] = {
            "title": title,
            "content": content,
            "priority": priority,
            "due_date": due,
            "tags": parse_tags(tags),
        }
        if title is None:
            if not _can_interact():
                raise ValidationError("Task title is required in non-interactive mode")
            form = add_form()
            if form is None:
                _exit_canceled(1)
            fields = form

        _check_priority_range(fields["priority"])
        validate_new_task(fields["title"], fields["priority"], fields["due_date"])
        task = _call(
            lambda svc: svc.create_task(
                ctx.project_id,
                fields["title"],
                content=fields["content"],
                priority=fields["priority"],
                due_date=fields["due_date"],
                tags=fields["tags"],
            )
        )
        typer.echo("✓ Task created successfully!\n")
        typer.echo(render.render_task_summary(task))

    _run_and_handle(_inner)


@app.command("list")
def list_cmd(
    all_projects: Annotated[bool, typer.Option("--all", help="List tasks from all projects")] = False,
    project: ProjectOption = None,
    fmt: TaskFormatOption = "table",
    priority: PriorityOption = None,
) -> None:
    """List open tasks."""

    def _inner() -> None:
        if all_projects:
            tasks = _call(lambda svc: svc.list_all_open_tasks(priority=priority))
            _emit_tasks(tasks, "All Projects", fmt)
            return

        ctx = _context(project)

        async def work(svc: TaskService) -> tuple[list[Task], str]:
            tasks = await svc.list_open_tasks(ctx.project_id, priority=priority)
            name = ctx.project_name or (await svc.client.get_project(ctx.project_id)).name
            return tasks, name

        tasks, name = _call(work)
        _emit_tasks(tasks, name, fmt)
        if ctx.link_path is not None:
            try:
                touch_synced_at(ctx.link_path)
            except ConfigError as exc:
                logger.warning("Could not update %s: %s", LINK_FILE_NAME, exc)

    _run_and_handle(_inner)


@app.command("search")
def search_cmd(
    query: Annotated[
        str | None,
        typer.Argument(help="Text matched against title and description", show_default=False),
    ] = None,
    tag: Annotated[str | None, typer.Option("--tag", help="Comma-separated tags (matches any)")] = None,
    priority: PriorityOption = None,
    all_projects: Annotated[
        bool,
        typer.Option("--all-projects", help="Search across all projects"),
    ] = False,
    fmt: TaskFormatOption = "table",
) -> None:
    """Search open tasks by text, tags, or priority."""

    def _inner() -> None:
        project_id = None
        if not all_projects:
            project_id = _context(None).project_id
        else:
            typer.echo("Searching across all projects...", err=True)

        tasks, names = _call(
            lambda svc: svc.search(
                project_id,
                query=query,
                tags=parse_tags(tag),
                priority=priority,
                all_projects=all_projects,
            )
        )
        if not tasks:
            typer.echo("No tasks found matching your search criteria.")
            return
        _emit_tasks(
            tasks,
            "Search results",
            fmt,
            project_names=names if all_projects else None,
        )

    _run_and_handle(_inner)


@app.command("show")
def show_cmd(task_id: TaskIdArgument, project: ProjectOption = None) -> None:
    """Show task details."""

    def _inner() -> None:
        ctx = _context(project)
        task = _call(lambda svc: svc.resolve_task(ctx.project_id, task_id))
        if _can_render_rich_output():
            _print_rich(render.render_task_detail_rich(task))
        else:
            typer.echo(render.render_task_detail_plain(task))

    _run_and_handle(_inner)


@app.command("update")
def update_cmd(
    task_id: TaskIdArgument,
    title: Annotated[str | None, typer.Option("--title", help="New title")] = None,
    desc: Annotated[str | None, typer.Option("--desc", help="New description")] = None,
    priority: PriorityOption = None,
    due: Annotated[str | None, typer.Option("--due", help="New due date (YYYY-MM-DD)")] = None,
    tags: Annotated[str | None, typer.Option("--tags", help="New comma-separated tags")] = None,
    clear_desc: Annotated[bool, typer.Option("--clear-desc", help="Clear the description")] = False,
    clear_due: Annotated[bool, typer.Option("--clear-due", help="Clear the due date")] = False,
    clear_tags: Annotated[bool, typer.Option("--clear-tags", help="Clear all tags")] = False,
    project: ProjectOption = None,
) -> None:
    """Update an existing task."""

    def _inner() -> None:
        ctx = _context(project)
        changes = TaskChanges(
            title=title,
            content="" if clear_desc else desc,
            priority=priority,
            due_date="" if clear_due else due,
            tags=[] if clear_tags else (parse_tags(tags) if tags is not None else None),
        )

        if changes.is_empty() and _can_interact():
            task = _call(lambda svc: svc.resolve_task(ctx.project_id, task_id))
            form = update_form(task)
            if form is None:
                _exit_canceled(1)
            if form.is_empty():
                typer.echo("No changes made.")
                return
            changes = form

        _check_priority_range(changes.priority)
        changes.validate()
        updated = _call(lambda svc: svc.update_task(ctx.project_id, task_id, changes))
        typer.echo("✓ Task updated successfully!\n")
        typer.echo(render.render_update_summary(updated, changes.to_payload()))

    _run_and_handle(_inner)


@app.command("complete")
def complete_cmd(task_id: TaskIdArgument, project: ProjectOption = None) -> None:
    """Mark a task as complete."""

    def _inner() -> None:
        ctx = _context(project)
        task = _call(lambda svc: svc.complete_task(ctx.project_id, task_id))
        typer.echo("✓ Task completed!\n")
        typer.echo(f"Task: {task.title}")
        typer.echo(f"ID: {task.id}")

    _run_and_handle(_inner)


@app.command("delete")
def delete_cmd(
    task_id: TaskIdArgument,
    force: Annotated[bool, typer.Option("--force", "-f", help="Skip confirmation prompt")] = False,
    project: ProjectOption = None,
) -> None:
    """Delete a task."""

    def _inner() -> None:
        ctx = _context(project)
        target = task_id
        if not force:
            task = _call(lambda svc: svc.resolve_task(ctx.project_id, task_id))
            if not confirm_delete(task):
                typer.echo("Deletion cancelled.")
                return
            target = task.id
        deleted = _call(lambda svc: svc.delete_task(ctx.project_id, target))
        typer.echo("✓ Task deleted!\n")
        typer.echo(f"Task: {deleted.title}")
        typer.echo(f"ID: {deleted.id}")

    _run_and_handle(_inner)


# projects


@projects_app.command("list")
def projects_list_cmd(
    fmt: Annotated[
        str,
        typer.Option("--format", "-f", click_type=click.Choice(PROJECT_FORMATS), help="Output format"),
    ] = "table",
) -> None:
    """List all projects."""

    def _inner() -> None:
        if not _store().load().is_authenticated:
            raise AuthenticationError(NOT_AUTHENTICATED)
        projects = _call(lambda svc: svc.client.get_projects())
        if fmt == "json":
            typer.echo(render.render_projects_json(projects))
        elif _can_render_rich_output():
            _print_rich(render.render_projects_rich(projects))
        else:
            typer.echo(render.render_projects_plain(projects))

    _run_and_handle(_inner)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
