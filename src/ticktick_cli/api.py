"""Async HTTP client for the TickTick Open API."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .models import (
    SHORT_ID_MAX_LENGTH,
    ApiError,
    NetworkError,
    NotFoundError,
    PermissionDeniedError,
    Project,
    RateLimitError,
    ServiceUnavailableError,
    Task,
    TickTickError,
    UnauthorizedError,
)

logger = logging.getLogger(__name__)

BASE_URL = "https://api.ticktick.com/open/v1"
REQUEST_TIMEOUT = 30.0


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and payload.get("errorMsg"):
        return str(payload["errorMsg"])
    return response.reason_phrase or f"HTTP {response.status_code}"


def raise_for_api_error(response: httpx.Response) -> None:
    """Map an HTTP error response to the matching ApiError subclass."""
    status = response.status_code
    if status < 400:
        return
    message = _error_message(response)
    if status == 401:
        raise UnauthorizedError(status, message)
    if status == 403:
        raise PermissionDeniedError(status, message)
    if status == 404:
        raise NotFoundError(status, message)
    if status == 429:
        raise RateLimitError(status, message)
    if status >= 500:
        raise ServiceUnavailableError(status, message)
    raise ApiError(status, message)


class TickTickClient:
    def __init__(
        self,
        access_token: str,
        *,
        base_url: str = BASE_URL,
        timeout: float = REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._http = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Content-Type": "application/json",
            },
        )

    async def __aenter__(self) -> "TickTickClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(self, method: str, path: str, json: Any = None) -> Any:
        logger.debug("%s %s", method, path)
        try:
            response = await self._http.request(method, path, json=json)
        except httpx.HTTPError as exc:
            raise NetworkError(f"Request failed: {exc}") from exc
        raise_for_api_error(response)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ApiError(response.status_code, "Invalid JSON response from API") from exc

    # Projects

    async def get_projects(self) -> list[Project]:
        data = await self._request("GET", "/project")
        return [Project.from_api(item) for item in data or []]

    async def get_project(self, project_id: str) -> Project:
        data = await self._request("GET", f"/project/{project_id}")
        return Project.from_api(data or {})

    async def create_project(
        self,
        name: str,
        *,
        color: str | None = None,
        view_mode: str | None = None,
    ) -> Project:
        payload: dict[str, Any] = {"name": name}
        if color is not None:
            payload["color"] = color
        if view_mode is not None:
            payload["viewMode"] = view_mode
        data = await self._request("POST", "/project", json=payload)
        return Project.from_api(data or {})

    async def delete_project(self, project_id: str) -> None:
        await self._request("DELETE", f"/project/{project_id}")

    # Tasks

    async def get_tasks(self, project_id: str) -> list[Task]:
        data = await self._request("GET", f"/project/{project_id}/data")
        if isinstance(data, list):
            items = data
        elif isinstance(data, dict) and isinstance(data.get("tasks"), list):
            items = data["tasks"]
        else:
            logger.warning("Unexpected response format for project %s data: %r", project_id, data)
            return []
        return [Task.from_api(item) for item in items]

    async def get_task(self, project_id: str, task_id: str) -> Task:
        data = await self._request("GET", f"/project/{project_id}/task/{task_id}")
        if not data:
            raise NotFoundError(404, f"task {task_id}")
        return Task.from_api(data)

    async def create_task(self, payload: dict[str, Any]) -> Task:
        data = await self._request("POST", "/task", json=payload)
        return Task.from_api(data or {})

    async def update_task(self, task_id: str, project_id: str, payload: dict[str, Any]) -> Task:
        body = {"id": task_id, "projectId": project_id, **payload}
        data = await self._request("POST", f"/project/{project_id}/task/{task_id}", json=body)
        return Task.from_api(data or {})

    async def complete_task(self, project_id: str, task_id: str) -> None:
        await self._request("POST", f"/project/{project_id}/task/{task_id}/complete")

    async def delete_task(self, project_id: str, task_id: str) -> None:
        await self._request("DELETE", f"/project/{project_id}/task/{task_id}")

    async def find_task_by_id(self, project_id: str, task_id: str) -> Task | None:
        """Fetch by full id, falling back to a prefix match for short ids.

        The fallback returns the first task, in API list order, whose id starts
        with ``task_id``. Failures on the fallback path yield None.
        """
        try:
            return await self.get_task(project_id, task_id)
        except TickTickError as exc:
            logger.debug("Direct lookup of task %s failed: %s", task_id, exc)

        if len(task_id) > SHORT_ID_MAX_LENGTH:
            return None
        try:
            tasks = await self.get_tasks(project_id)
        except TickTickError as exc:
            logger.debug("Short-id lookup of task %s failed: %s", task_id, exc)
            return None
        return next((task for task in tasks if task.id.startswith(task_id)), None)
