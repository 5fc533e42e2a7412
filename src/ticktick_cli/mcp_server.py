"""TickTick MCP server (stdio).

Exposes task and project operations as MCP tools. Every tool result is a single
text block; failures are reported as ``Error: <message>`` text rather than
protocol errors. A fresh client is built from the stored config on every call.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Any, Awaitable, Callable

import httpx
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from .config import Config, ConfigStore
from .context import LINK_FILE_NAME, current_context, resolve_project
from .models import AuthenticationError
from .render import format_projects_text, format_task_list_text, format_task_text
from .service import TaskChanges, TaskService, open_client, validate_new_task

logger = logging.getLogger(__name__)

SERVER_NAME = "ticktick-mcp-server"
NOT_AUTHENTICATED_TEXT = (
    "Error: Not authenticated with TickTick. Please run `ticktick auth login` first."
)

_PRIORITY_SCHEMA = {"type": "number", "enum": [0, 1, 3, 5]}
_TASK_ID_SCHEMA = {"type": "string", "description": "Task ID (full or short ID)"}
_PROJECT_ID_SCHEMA = {
    "type": "string",
    "description": "Project ID (optional, uses current project if not specified)",
}
_TAGS_SCHEMA = {"type": "array", "items": {"type": "string"}}

TOOLS = [
    Tool(
        name="create_task",
        description=(
            "Create a new task in TickTick. If no project is specified, uses the current "
            "project from the working directory (.ticktick file)."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "title": {"type": "string", "description": "Task title (required)"},
                "content": {"type": "string", "description": "Task description/content (optional)"},
                "priority": {
                    **_PRIORITY_SCHEMA,
                    "description": "Priority level: 0=none, 1=low, 3=medium, 5=high (optional)",
                },
                "dueDate": {"type": "string", "description": "Due date in YYYY-MM-DD format (optional)"},
                "tags": {**_TAGS_SCHEMA, "description": "List of tags (optional)"},
                "projectId": _PROJECT_ID_SCHEMA,
            },
            "required": ["title"],
        },
    ),
    Tool(
        name="list_tasks",
        description=(
            "List all incomplete tasks in a project. If no project is specified, uses the "
            "current project from the working directory."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "projectId": _PROJECT_ID_SCHEMA,
                "priority": {**_PRIORITY_SCHEMA, "description": "Filter by priority level (optional)"},
            },
        },
    ),
    Tool(
        name="search_tasks",
        description=(
            "Search for tasks by text, tags, or priority. Can search across all projects "
            "or just the current project."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Search text (title and description)"},
                "tags": {**_TAGS_SCHEMA, "description": "Filter by tags (matches any)"},
                "priority": {**_PRIORITY_SCHEMA, "description": "Filter by priority level"},
                "allProjects": {
                    "type": "boolean",
                    "description": "Search across all projects (default: current project only)",
                    "default": False,
                },
            },
        },
    ),
    Tool(
        name="get_task",
        description=(
            "Get detailed information about a specific task by ID. Supports full IDs and "
            "short IDs (first 8 characters)."
        ),
        inputSchema={
            "type": "object",
            "properties": {"taskId": _TASK_ID_SCHEMA, "projectId": _PROJECT_ID_SCHEMA},
            "required": ["taskId"],
        },
    ),
    Tool(
        name="update_task",
        description="Update an existing task. Only provided fields will be updated.",
        inputSchema={
            "type": "object",
            "properties": {
                "taskId": _TASK_ID_SCHEMA,
                "title": {"type": "string", "description": "New task title"},
                "content": {
                    "type": "string",
                    "description": "New task description (use empty string to clear)",
                },
                "priority": {**_PRIORITY_SCHEMA, "description": "New priority level"},
                "dueDate": {
                    "type": "string",
                    "description": "New due date in YYYY-MM-DD format (use empty string to clear)",
                },
                "tags": {**_TAGS_SCHEMA, "description": "New tags (use empty array to clear)"},
                "projectId": _PROJECT_ID_SCHEMA,
            },
            "required": ["taskId"],
        },
    ),
    Tool(
        name="complete_task",
        description="Mark a task as completed.",
        inputSchema={
            "type": "object",
            "properties": {"taskId": _TASK_ID_SCHEMA, "projectId": _PROJECT_ID_SCHEMA},
            "required": ["taskId"],
        },
    ),
    Tool(
        name="delete_task",
        description="Delete a task permanently.",
        inputSchema={
            "type": "object",
            "properties": {"taskId": _TASK_ID_SCHEMA, "projectId": _PROJECT_ID_SCHEMA},
            "required": ["taskId"],
        },
    ),
    Tool(
        name="get_projects",
        description="List all active TickTick projects.",
        inputSchema={"type": "object", "properties": {}},
    ),
    Tool(
        name="get_current_project",
        description="Get the current project linked to the working directory via .ticktick file.",
        inputSchema={"type": "object", "properties": {}},
    ),
]

ToolHandler = Callable[[TaskService, Config, dict[str, Any]], Awaitable[str]]


def _in_project(name: str | None, template: str = ' in project "{}"') -> str:
    return template.format(name) if name else ""


async def _create_task(svc: TaskService, config: Config, args: dict[str, Any]) -> str:
    ctx = resolve_project(args.get("projectId"), config)
    task = await svc.create_task(
        ctx.project_id,
        args.get("title") or "",
        content=args.get("content"),
        priority=args.get("priority"),
        due_date=args.get("dueDate"),
        tags=args.get("tags"),
    )
    return f"✓ Task created successfully{_in_project(ctx.project_name)}!\n\n{format_task_text(task)}"


async def _list_tasks(svc: TaskService, config: Config, args: dict[str, Any]) -> str:
    ctx = resolve_project(args.get("projectId"), config)
    tasks = await svc.list_open_tasks(ctx.project_id, priority=args.get("priority"))
    if not tasks:
        return f"No tasks found{_in_project(ctx.project_name)}."
    where = _in_project(ctx.project_name, ' in "{}"')
    return f"Found {len(tasks)} task(s){where}:\n\n{format_task_list_text(tasks)}"


async def _search_tasks(svc: TaskService, config: Config, args: dict[str, Any]) -> str:
    all_projects = bool(args.get("allProjects", False))
    project_id = None if all_projects else resolve_project(None, config).project_id
    tasks, _ = await svc.search(
        project_id,
        query=args.get("query"),
        tags=args.get("tags"),
        priority=args.get("priority"),
        all_projects=all_projects,
    )
    if not tasks:
        return "No tasks found matching your search criteria."
    return f"Found {len(tasks)} task(s):\n\n{format_task_list_text(tasks)}"


async def _get_task(svc: TaskService, config: Config, args: dict[str, Any]) -> str:
    ctx = resolve_project(args.get("projectId"), config)
    return format_task_text(await svc.resolve_task(ctx.project_id, args["taskId"]))


def _task_changes(args: dict[str, Any]) -> TaskChanges:
    return TaskChanges(
        title=args.get("title"),
        content=args.get("content"),
        priority=args.get("priority"),
        due_date=args.get("dueDate"),
        tags=args.get("tags"),
    )


async def _update_task(svc: TaskService, config: Config, args: dict[str, Any]) -> str:
    ctx = resolve_project(args.get("projectId"), config)
    task = await svc.update_task(ctx.project_id, args["taskId"], _task_changes(args))
    return f"✓ Task updated successfully!\n\n{format_task_text(task)}"


async def _complete_task(svc: TaskService, config: Config, args: dict[str, Any]) -> str:
    ctx = resolve_project(args.get("projectId"), config)
    task = await svc.complete_task(ctx.project_id, args["taskId"])
    return f"✓ Task completed: {task.title}"


async def _delete_task(svc: TaskService, config: Config, args: dict[str, Any]) -> str:
    ctx = resolve_project(args.get("projectId"), config)
    task = await svc.delete_task(ctx.project_id, args["taskId"])
    return f"✓ Task deleted: {task.title}"


async def _get_projects(svc: TaskService, config: Config, args: dict[str, Any]) -> str:
    return format_projects_text(await svc.active_projects())


async def _get_current_project(svc: TaskService, config: Config, args: dict[str, Any]) -> str:
    found = current_context()
    if found is None:
        return f"No {LINK_FILE_NAME} file found in current directory or parent directories."
    link, _ = found
    return f"Current project: **{link.project_name}**\nID: {link.project_id}\nDirectory: {link.folder_path}"


HANDLERS: dict[str, ToolHandler] = {
    "create_task": _create_task,
    "list_tasks": _list_tasks,
    "search_tasks": _search_tasks,
    "get_task": _get_task,
    "update_task": _update_task,
    "complete_task": _complete_task,
    "delete_task": _delete_task,
    "get_projects": _get_projects,
    "get_current_project": _get_current_project,
}


# Input checks that must fail before credentials are touched.
PRECHECKS: dict[str, Callable[[dict[str, Any]], None]] = {
    "create_task": lambda args: validate_new_task(
        args.get("title"), args.get("priority"), args.get("dueDate")
    ),
    "update_task": lambda args: _task_changes(args).validate(),
}


async def dispatch(
    name: str,
    arguments: dict[str, Any] | None,
    *,
    store: ConfigStore | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    """Run one tool call and return its text result; never raises."""
    handler = HANDLERS.get(name)
    if handler is None:
        return f"Unknown tool: {name}"
    arguments = arguments or {}
    try:
        check = PRECHECKS.get(name)
        if check is not None:
            check(arguments)
        try:
            client, config = await open_client(store, transport=transport)
        except AuthenticationError:
            return NOT_AUTHENTICATED_TEXT
        async with client:
            return await handler(TaskService(client), config, arguments)
    except Exception as exc:
        logger.debug("Tool %s failed", name, exc_info=True)
        return f"Error: {exc}"


server = Server(SERVER_NAME)


@server.list_tools()
async def list_tools() -> list[Tool]:
    return TOOLS


@server.call_tool()
async def call_tool(name: str, arguments: dict[str, Any] | None) -> list[TextContent]:
    return [TextContent(type="text", text=await dispatch(name, arguments))]


async def run() -> None:
    async with stdio_server() as (read_stream, write_stream):
        logger.info("TickTick MCP server running on stdio")
        await server.run(read_stream, write_stream, server.create_initialization_options())


def main() -> None:
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(run())


if __name__ == "__main__":
    main()
