"""Task operations shared by the CLI and the MCP server."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Iterable

import httpx

from .api import TickTickClient
from .auth import ensure_fresh_token
from .config import Config, ConfigStore
from .models import (
    DUE_DATE_RE,
    STATUS_COMPLETED,
    VALID_PRIORITIES,
    AuthenticationError,
    Project,
    Task,
    TaskNotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

NOT_AUTHENTICATED = "Not authenticated. Run 'ticktick auth login' first"


def parse_tags(text: str | None) -> list[str]:
    if not text:
        return []
    return [tag.strip() for tag in text.split(",") if tag.strip()]


def validate_priority(priority: int) -> None:
    if priority not in VALID_PRIORITIES:
        raise ValidationError("Priority must be one of 0 (none), 1 (low), 3 (medium), 5 (high)")


def validate_due_date(due_date: str) -> None:
    if not DUE_DATE_RE.fullmatch(due_date):
        raise ValidationError("Due date must be in YYYY-MM-DD format")


def validate_new_task(title: str | None, priority: int | None, due_date: str | None) -> None:
    if not title or not title.strip():
        raise ValidationError("Title is required")
    if priority is not None:
        validate_priority(priority)
    if due_date:
        validate_due_date(due_date)


def filter_tasks(
    tasks: Iterable[Task],
    *,
    query: str | None = None,
    tags: Iterable[str] | None = None,
    priority: int | None = None,
) -> list[Task]:
    """Open tasks matching a case-insensitive text query, any of ``tags``, and ``priority``."""
    result = [task for task in tasks if task.status != STATUS_COMPLETED]

    if query:
        needle = query.lower()
        result = [
            task
            for task in result
            if needle in task.title.lower() or needle in (task.content or "").lower()
        ]

    wanted = {tag.lower() for tag in tags or [] if tag}
    if wanted:
        result = [task for task in result if wanted & {tag.lower() for tag in task.tags}]

    if priority is not None:
        result = [task for task in result if task.priority == priority]
    return result


@dataclass(slots=True)
class TaskChanges:
    """Partial task update. None leaves a field as is; "" or [] clears it."""

    title: str | None = None
    content: str | None = None
    priority: int | None = None
    due_date: str | None = None
    tags: list[str] | None = None

    def is_empty(self) -> bool:
        return all(
            value is None
            for value in (self.title, self.content, self.priority, self.due_date, self.tags)
        )

    def validate(self) -> None:
        if self.is_empty():
            raise ValidationError("No changes specified")
        if self.title is not None and not self.title.strip():
            raise ValidationError("Title cannot be empty")
        if self.priority is not None:
            validate_priority(self.priority)
        if self.due_date:
            validate_due_date(self.due_date)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.title is not None:
            payload["title"] = self.title
        if self.content is not None:
            payload["content"] = self.content
        if self.priority is not None:
            payload["priority"] = self.priority
        if self.due_date is not None:
            payload["dueDate"] = self.due_date
        if self.tags is not None:
            payload["tags"] = list(self.tags)
        return payload


async def open_client(
    store: ConfigStore | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    auth_transport: httpx.AsyncBaseTransport | None = None,
) -> tuple[TickTickClient, Config]:
    """Build an API client from stored credentials, refreshing an expired token first."""
    store = store or ConfigStore()
    config = store.load()
    if not config.is_authenticated:
        raise AuthenticationError(NOT_AUTHENTICATED)
    config = await ensure_fresh_token(store, config, transport=auth_transport)
    return TickTickClient(config.auth.access_token, transport=transport), config


class TaskService:
    def __init__(self, client: TickTickClient) -> None:
        self.client = client

    async def active_projects(self) -> list[Project]:
        return [project for project in await self.client.get_projects() if not project.closed]

    async def create_task(
        self,
        project_id: str,
        title: str,
        *,
        content: str | None = None,
        priority: int | None = None,
        due_date: str | None = None,
        tags: list[str] | None = None,
    ) -> Task:
        validate_new_task(title, priority, due_date)

        payload: dict[str, Any] = {"title": title, "projectId": project_id}
        if content:
            payload["content"] = content
        if priority is not None:
            payload["priority"] = priority
        if due_date:
            payload["dueDate"] = due_date
        if tags:
            payload["tags"] = list(tags)
        return await self.client.create_task(payload)

    async def list_open_tasks(self, project_id: str, *, priority: int | None = None) -> list[Task]:
        return filter_tasks(await self.client.get_tasks(project_id), priority=priority)

    async def all_project_tasks(self) -> tuple[list[Task], dict[str, str]]:
        """Tasks from every active project, concatenated in project order.

        The first project whose task list fails aborts the whole aggregation.
        """
        tasks: list[Task] = []
        names: dict[str, str] = {}
        for project in await self.active_projects():
            logger.debug("Fetching tasks for project %s", project.id)
            tasks.extend(await self.client.get_tasks(project.id))
            names[project.id] = project.name
        return tasks, names

    async def list_all_open_tasks(self, *, priority: int | None = None) -> list[Task]:
        tasks, _ = await self.all_project_tasks()
        return filter_tasks(tasks, priority=priority)

    async def search(
        self,
        project_id: str | None,
        *,
        query: str | None = None,
        tags: Iterable[str] | None = None,
        priority: int | None = None,
        all_projects: bool = False,
    ) -> tuple[list[Task], dict[str, str]]:
        if all_projects:
            tasks, names = await self.all_project_tasks()
        elif project_id:
            tasks, names = await self.client.get_tasks(project_id), {}
        else:
            raise ValidationError("A project is required unless searching all projects")
        return filter_tasks(tasks, query=query, tags=tags, priority=priority), names

    async def resolve_task(self, project_id: str, task_id: str) -> Task:
        task = await self.client.find_task_by_id(project_id, task_id)
        if task is None:
            raise TaskNotFoundError(f"Task not found with ID: {task_id}")
        return task

    async def update_task(self, project_id: str, task_id: str, changes: TaskChanges) -> Task:
        changes.validate()
        task = await self.resolve_task(project_id, task_id)
        return await self.client.update_task(task.id, project_id, changes.to_payload())

    async def complete_task(self, project_id: str, task_id: str) -> Task:
        task = await self.resolve_task(project_id, task_id)
        await self.client.complete_task(project_id, task.id)
        return task

    async def delete_task(self, project_id: str, task_id: str) -> Task:
        task = await self.resolve_task(project_id, task_id)
        await self.client.delete_task(project_id, task.id)
        return task
