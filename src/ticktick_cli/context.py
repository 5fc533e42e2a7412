"""Project link files and project-context resolution."""

from __future__ import annotations

from dataclasses import dataclass
import datetime as dt
import json
import os
from pathlib import Path
from typing import Any, Callable, Literal

from .config import Config
from .models import ConfigError, ProjectContextError

LINK_FILE_NAME = ".ticktick"
LINK_FILE_VERSION = "1.0"

ContextSource = Literal["flag", "link", "default"]


def _now_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


@dataclass(slots=True)
class LinkFile:
    version: str
    project_id: str
    project_name: str
    folder_path: str
    created_at: str = ""
    synced_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "projectId": self.project_id,
            "projectName": self.project_name,
            "folderPath": self.folder_path,
            "createdAt": self.created_at,
            "syncedAt": self.synced_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LinkFile":
        return cls(
            version=str(data.get("version") or ""),
            project_id=str(data.get("projectId") or ""),
            project_name=str(data.get("projectName") or ""),
            folder_path=str(data.get("folderPath") or ""),
            created_at=str(data.get("createdAt") or ""),
            synced_at=str(data.get("syncedAt") or ""),
        )


@dataclass(frozen=True, slots=True)
class ProjectContext:
    project_id: str
    project_name: str | None
    source: ContextSource
    link_path: Path | None = None


def new_link_file(project_id: str, project_name: str, folder: Path) -> LinkFile:
    now = _now_iso()
    return LinkFile(
        version=LINK_FILE_VERSION,
        project_id=project_id,
        project_name=project_name,
        folder_path=str(folder.resolve()),
        created_at=now,
        synced_at=now,
    )


def validate_link_file(link: LinkFile) -> None:
    required = {
        "version": link.version,
        "projectId": link.project_id,
        "projectName": link.project_name,
        "folderPath": link.folder_path,
    }
    for name, value in required.items():
        if not value:
            raise ConfigError(f"{LINK_FILE_NAME} file: {name} is required")


def find_link_file(
    start: Path,
    exists: Callable[[Path], bool] = Path.is_file,
) -> Path | None:
    """Return the nearest ``.ticktick`` at or above ``start``, or None at the filesystem root."""
    current = start.resolve()
    while True:
        candidate = current / LINK_FILE_NAME
        if exists(candidate):
            return candidate
        parent = current.parent
        if parent == current:
            return None
        current = parent


def has_link_file(directory: Path) -> bool:
    return (directory / LINK_FILE_NAME).is_file()


def load_link_file(path: Path) -> LinkFile:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Failed to read {LINK_FILE_NAME} file: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError(f"Failed to read {LINK_FILE_NAME} file: invalid format at {path}")
    link = LinkFile.from_dict(payload)
    validate_link_file(link)
    return link


def save_link_file(directory: Path, link: LinkFile) -> Path:
    path = directory / LINK_FILE_NAME
    try:
        path.write_text(json.dumps(link.to_dict(), indent=2), encoding="utf-8")
        os.chmod(path, 0o644)
    except OSError as exc:
        raise ConfigError(f"Failed to save {LINK_FILE_NAME} file: {exc}") from exc
    return path


def touch_synced_at(path: Path) -> LinkFile:
    link = load_link_file(path)
    link.synced_at = _now_iso()
    save_link_file(path.parent, link)
    return link


def current_context(start: Path | None = None) -> tuple[LinkFile, Path] | None:
    path = find_link_file(start if start is not None else Path.cwd())
    if path is None:
        return None
    return load_link_file(path), path


def resolve_project(
    explicit_id: str | None,
    config: Config,
    start: Path | None = None,
) -> ProjectContext:
    if explicit_id:
        return ProjectContext(project_id=explicit_id, project_name=None, source="flag")

    found = current_context(start)
    if found is not None:
        link, path = found
        return ProjectContext(
            project_id=link.project_id,
            project_name=link.project_name,
            source="link",
            link_path=path,
        )

    default_project = config.preferences.default_project
    if default_project:
        return ProjectContext(project_id=default_project, project_name=None, source="default")

    raise ProjectContextError("No project specified. Run 'ticktick init' or use --project flag")
