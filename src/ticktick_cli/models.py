"""Core TickTick models, constants, and errors."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
import re

VALID_PRIORITIES = (0, 1, 3, 5)
PRIORITY_LABELS = {0: "None", 1: "Low", 3: "Medium", 5: "High"}

STATUS_OPEN = 0
STATUS_IN_PROGRESS = 1
STATUS_COMPLETED = 2
STATUS_LABELS = {
    STATUS_OPEN: "Open",
    STATUS_IN_PROGRESS: "In Progress",
    STATUS_COMPLETED: "Completed",
}

DUE_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
SHORT_ID_MAX_LENGTH = 8
SHORT_ID_DISPLAY = 8
PROJECT_ID_DISPLAY = 12


@dataclass(slots=True)
class Project:
    id: str
    name: str
    color: str | None = None
    view_mode: str | None = None
    sort_order: int = 0
    closed: bool = False
    modified_time: str = ""

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Project":
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            color=data.get("color"),
            view_mode=data.get("viewMode"),
            sort_order=int(data.get("sortOrder") or 0),
            closed=bool(data.get("closed", False)),
            modified_time=str(data.get("modifiedTime") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "sortOrder": self.sort_order,
            "closed": self.closed,
            "modifiedTime": self.modified_time,
        }
        if self.color is not None:
            payload["color"] = self.color
        if self.view_mode is not None:
            payload["viewMode"] = self.view_mode
        return payload

    @property
    def short_id(self) -> str:
        return self.id[:PROJECT_ID_DISPLAY]


@dataclass(slots=True)
class Task:
    id: str
    project_id: str
    title: str
    content: str | None = None
    priority: int = 0
    status: int = STATUS_OPEN
    is_all_day: bool = False
    start_date: str | None = None
    due_date: str | None = None
    completed_time: str | None = None
    created_time: str = ""
    modified_time: str = ""
    tags: list[str] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Task":
        return cls(
            id=str(data.get("id", "")),
            project_id=str(data.get("projectId", "")),
            title=str(data.get("title", "")),
            content=data.get("content") or None,
            priority=int(data.get("priority") or 0),
            status=int(data.get("status") or 0),
            is_all_day=bool(data.get("isAllDay", False)),
            start_date=data.get("startDate") or None,
            due_date=data.get("dueDate") or None,
            completed_time=data.get("completedTime") or None,
            created_time=str(data.get("createdTime") or ""),
            modified_time=str(data.get("modifiedTime") or ""),
            tags=list(data.get("tags") or []),
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "projectId": self.project_id,
            "title": self.title,
            "priority": self.priority,
            "status": self.status,
            "isAllDay": self.is_all_day,
            "createdTime": self.created_time,
            "modifiedTime": self.modified_time,
        }
        optional = {
            "content": self.content,
            "startDate": self.start_date,
            "dueDate": self.due_date,
            "completedTime": self.completed_time,
        }
        payload.update({key: value for key, value in optional.items() if value is not None})
        if self.tags:
            payload["tags"] = list(self.tags)
        return payload

    @property
    def short_id(self) -> str:
        return self.id[:SHORT_ID_DISPLAY]

    @property
    def is_completed(self) -> bool:
        return self.status == STATUS_COMPLETED


class TickTickError(Exception):
    """Base error for ticktick-cli operations."""


class ValidationError(TickTickError):
    """Raised when user input fails validation before any network call."""


class ConfigError(TickTickError):
    """Raised for invalid config keys/values or malformed link files."""


class ProjectContextError(TickTickError):
    """Raised when no project can be resolved for a command."""


class TaskNotFoundError(TickTickError):
    """Raised when a task id or short id matches nothing."""


class AuthenticationError(TickTickError):
    """Raised when credentials are missing, expired, or rejected."""


class OAuthError(TickTickError):
    """Raised when the OAuth provider reports an error."""

    def __init__(self, error: str, description: str = "") -> None:
        self.error = error
        self.description = description
        message = f"OAuth error: {error}"
        if description:
            message = f"{message} - {description}"
        super().__init__(message)


class OAuthStateError(OAuthError):
    """Raised when the callback state does not match (possible CSRF)."""

    def __init__(self) -> None:
        super().__init__("invalid_state", "Invalid state parameter (possible CSRF attack)")


class OAuthProtocolError(OAuthError):
    """Raised when the token endpoint response violates the protocol."""

    def __init__(self, description: str) -> None:
        super().__init__("protocol_error", description)


class OAuthTimeoutError(OAuthError):
    """Raised when no callback settles the flow in time."""

    def __init__(self, seconds: float) -> None:
        super().__init__("timeout", f"OAuth flow timed out after {seconds:g} seconds")


class OAuthServerError(OAuthError):
    """Raised when the local callback listener cannot start."""

    def __init__(self, reason: str) -> None:
        super().__init__("server_error", f"Failed to start callback server: {reason}")


class NetworkError(TickTickError):
    """Raised for transport failures without an HTTP status."""


class ApiError(TickTickError):
    """Raised for HTTP error responses from the TickTick API."""

    def __init__(self, status: int | None, message: str) -> None:
        self.status = status
        self.api_message = message
        super().__init__(self._format(status, message))

    @staticmethod
    def _format(status: int | None, message: str) -> str:
        return f"API error ({status}): {message}"


class UnauthorizedError(ApiError, AuthenticationError):
    @staticmethod
    def _format(status: int | None, message: str) -> str:
        return f"Authentication failed: {message}. Run 'ticktick auth login'"


class PermissionDeniedError(ApiError):
    @staticmethod
    def _format(status: int | None, message: str) -> str:
        return f"Permission denied: {message}"


class NotFoundError(ApiError):
    @staticmethod
    def _format(status: int | None, message: str) -> str:
        return f"Resource not found: {message}"


class RateLimitError(ApiError):
    @staticmethod
    def _format(status: int | None, message: str) -> str:
        return f"Rate limit exceeded: {message}"


class ServiceUnavailableError(ApiError):
    @staticmethod
    def _format(status: int | None, message: str) -> str:
        return f"TickTick service error: {message}. Please try again later."
