from __future__ import annotations

import copy
import datetime as dt
import json
from pathlib import Path
import re

import httpx
import pytest

from ticktick_cli import service
from ticktick_cli.config import ConfigStore, expiry_from_now

WORK_ID = "proj0000work"
HOME_ID = "proj0000home"
ARCHIVE_ID = "proj0000arch"

REPORT_ID = "aaaa1111000000000000000a"
REVIEW_ID = "bbbb2222000000000000000b"
OLD_ID = "cccc3333000000000000000c"
GROCERIES_ID = "dddd4444000000000000000d"
ARCHIVED_ID = "eeee5555000000000000000e"

_TASK_PATH_RE = re.compile(r"^/project/([^/]+)/task/([^/]+)(/complete)?$")


def _seed_projects() -> list[dict]:
    return [
        {"id": WORK_ID, "name": "Work", "sortOrder": 0, "closed": False},
        {"id": HOME_ID, "name": "Home", "sortOrder": 1, "closed": False},
        {"id": ARCHIVE_ID, "name": "Archive", "sortOrder": 2, "closed": True},
    ]


def _seed_tasks() -> dict[str, list[dict]]:
    return {
        WORK_ID: [
            {
                "id": REPORT_ID,
                "projectId": WORK_ID,
                "title": "Write report",
                "content": "Quarterly numbers",
                "priority": 5,
                "status": 0,
                "dueDate": "2024-06-10",
                "tags": ["Work"],
            },
            {
                "id": REVIEW_ID,
                "projectId": WORK_ID,
                "title": "Review PR",
                "priority": 3,
                "status": 0,
                "tags": ["code"],
            },
            {
                "id": OLD_ID,
                "projectId": WORK_ID,
                "title": "Old item",
                "priority": 0,
                "status": 2,
            },
        ],
        HOME_ID: [
            {
                "id": GROCERIES_ID,
                "projectId": HOME_ID,
                "title": "Buy groceries",
                "priority": 1,
                "status": 0,
                "tags": ["errands", "work"],
            },
        ],
        ARCHIVE_ID: [
            {
                "id": ARCHIVED_ID,
                "projectId": ARCHIVE_ID,
                "title": "Archived work",
                "status": 0,
                "tags": ["work"],
            },
        ],
    }


class FakeTickTick:
    """In-memory stand-in for the TickTick Open API behind an httpx.MockTransport."""

    def __init__(self) -> None:
        self.projects = _seed_projects()
        self.tasks = _seed_tasks()
        self.requests: list[httpx.Request] = []
        self.failing_data: set[str] = set()
        self._next_id = 1

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def calls(self, method: str | None = None) -> list[tuple[str, str]]:
        rows = [(request.method, self._path(request)) for request in self.requests]
        if method is None:
            return rows
        return [row for row in rows if row[0] == method]

    def bodies(self, method: str, path: str) -> list[dict]:
        return [
            json.loads(request.content)
            for request in self.requests
            if request.method == method and self._path(request) == path
        ]

    @staticmethod
    def _path(request: httpx.Request) -> str:
        return request.url.path.removeprefix("/open/v1")

    def _new_id(self) -> str:
        value = f"ffff{self._next_id:020d}"
        self._next_id += 1
        return value

    def _project(self, project_id: str) -> dict | None:
        return next((item for item in self.projects if item["id"] == project_id), None)

    def _task(self, project_id: str, task_id: str) -> dict | None:
        return next(
            (item for item in self.tasks.get(project_id, []) if item["id"] == task_id),
            None,
        )

    @staticmethod
    def _not_found(what: str) -> httpx.Response:
        return httpx.Response(404, json={"errorMsg": f"{what} not found"})

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = self._path(request)
        method = request.method

        if path == "/project":
            if method == "GET":
                return httpx.Response(200, json=copy.deepcopy(self.projects))
            payload = json.loads(request.content)
            project = {
                "id": self._new_id(),
                "name": payload["name"],
                "sortOrder": len(self.projects),
                "closed": False,
            }
            self.projects.append(project)
            self.tasks[project["id"]] = []
            return httpx.Response(200, json=project)

        if path == "/task" and method == "POST":
            payload = json.loads(request.content)
            task = {"id": self._new_id(), "status": 0, "priority": 0, **payload}
            self.tasks.setdefault(payload["projectId"], []).append(task)
            return httpx.Response(200, json=task)

        match = _TASK_PATH_RE.match(path)
        if match:
            project_id, task_id, complete = match.groups()
            task = self._task(project_id, task_id)
            if task is None:
                return self._not_found("Task")
            if complete:
                task["status"] = 2
                return httpx.Response(200)
            if method == "GET":
                return httpx.Response(200, json=copy.deepcopy(task))
            if method == "DELETE":
                self.tasks[project_id].remove(task)
                return httpx.Response(200)
            task.update(json.loads(request.content))
            return httpx.Response(200, json=copy.deepcopy(task))

        if path.startswith("/project/") and path.endswith("/data"):
            project_id = path.split("/")[2]
            if project_id in self.failing_data:
                return httpx.Response(500, json={"errorMsg": "backend exploded"})
            if self._project(project_id) is None:
                return self._not_found("Project")
            return httpx.Response(
                200,
                json={"project": self._project(project_id), "tasks": copy.deepcopy(self.tasks[project_id])},
            )

        if path.startswith("/project/"):
            project_id = path.split("/")[2]
            project = self._project(project_id)
            if project is None:
                return self._not_found("Project")
            if method == "DELETE":
                self.projects.remove(project)
                return httpx.Response(200)
            return httpx.Response(200, json=copy.deepcopy(project))

        return httpx.Response(400, json={"errorMsg": f"unexpected {method} {path}"})


@pytest.fixture
def config_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    directory = tmp_path / "home" / ".ticktick"
    monkeypatch.setenv("TICKTICK_CONFIG_DIR", str(directory))
    workdir = tmp_path / "work"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    return directory


@pytest.fixture
def store(config_dir: Path) -> ConfigStore:
    return ConfigStore()


@pytest.fixture
def authed_store(store: ConfigStore) -> ConfigStore:
    store.update_auth(
        "client-id",
        "client-secret",
        "access-token",
        "refresh-token",
        expiry_from_now(3600),
    )
    return store


@pytest.fixture
def expired_store(store: ConfigStore) -> ConfigStore:
    past = dt.datetime.now(dt.timezone.utc) - dt.timedelta(hours=2)
    store.update_auth(
        "client-id",
        "client-secret",
        "stale-token",
        "refresh-token",
        expiry_from_now(3600, now=past),
    )
    return store


@pytest.fixture
def fake_api() -> FakeTickTick:
    return FakeTickTick()


@pytest.fixture
def use_fake_api(monkeypatch: pytest.MonkeyPatch, fake_api: FakeTickTick) -> FakeTickTick:
    real_open_client = service.open_client

    async def fake_open_client(store=None, **kwargs):
        return await real_open_client(store, transport=fake_api.transport())

    monkeypatch.setattr("ticktick_cli.cli.open_client", fake_open_client)
    monkeypatch.setattr("ticktick_cli.mcp_server.open_client", fake_open_client)
    return fake_api


@pytest.fixture
def token_requests(monkeypatch: pytest.MonkeyPatch, fake_api: FakeTickTick) -> list[str]:
    """Route clients to the fake API and record every token endpoint request."""
    seen: list[str] = []

    def token_handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, json={"access_token": "renewed", "expires_in": 3600})

    real_open_client = service.open_client

    async def fake_open_client(store=None, **kwargs):
        return await real_open_client(
            store,
            transport=fake_api.transport(),
            auth_transport=httpx.MockTransport(token_handler),
        )

    monkeypatch.setattr("ticktick_cli.cli.open_client", fake_open_client)
    monkeypatch.setattr("ticktick_cli.mcp_server.open_client", fake_open_client)
    return seen
