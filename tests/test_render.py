from __future__ import annotations

import json

from ticktick_cli.config import AuthConfig, Config, Preferences
from ticktick_cli.models import Project, Task
from ticktick_cli.render import (
    format_projects_text,
    format_task_list_text,
    format_task_text,
    render_auth_status,
    render_config,
    render_projects_json,
    render_projects_plain,
    render_task_detail_plain,
    render_task_list_compact,
    render_task_list_json,
    render_task_list_plain,
    render_task_summary,
    render_update_summary,
)


def _task(**overrides) -> Task:
    values = {
        "id": "64f0a1b2c3d4e5f601234567",
        "project_id": "proj0000work",
        "title": "Write report",
        "content": "Quarterly numbers",
        "priority": 5,
        "due_date": "2024-06-10",
        "tags": ["work", "q3"],
    }
    values.update(overrides)
    return Task(**values)


def test_plain_task_list_lines() -> None:
    text = render_task_list_plain(
        [_task(), _task(id="aaaa1111zzzz", title="Bare", priority=0, due_date=None, tags=[])],
        "Work",
    )
    lines = text.splitlines()

    assert lines[0] == "Work - 2 task(s)"
    assert lines[2].split() == ["ID", "Title", "Priority", "Due", "Date", "Tags"]
    assert lines[4].split() == ["64f0a1b2", "Write", "report", "5", "2024-06-10", "work,", "q3"]
    assert lines[5].split() == ["aaaa1111", "Bare", "-", "-", "-"]


def test_plain_task_list_with_project_column() -> None:
    text = render_task_list_plain([_task()], "All", project_names={"proj0000work": "Work"})

    assert "Project" in text.splitlines()[2]
    assert "Work" in text.splitlines()[4]


def test_plain_task_list_truncates_long_titles() -> None:
    text = render_task_list_plain([_task(title="x" * 80)], "Work")

    assert ("x" * 47 + "...") in text
    assert "x" * 48 not in text


def test_empty_task_lists() -> None:
    assert render_task_list_plain([], "Work") == "No tasks found."
    assert render_task_list_compact([], "Work") == "No tasks found."
    assert render_task_list_json([]) == "[]"


def test_compact_task_list() -> None:
    text = render_task_list_compact(
        [_task(), _task(id="bbbb2222", title="Quiet", priority=0, due_date=None, tags=[])],
        "Search results",
        project_names={"proj0000work": "Work"},
    )

    assert text.splitlines() == [
        "Search results - 2 task(s)",
        "",
        "64f0a1b2: Write report [P5] (due: 2024-06-10) #work #q3 [Work]",
        "bbbb2222: Quiet [Work]",
    ]


def test_json_task_list_uses_api_field_names() -> None:
    payload = json.loads(render_task_list_json([_task()]))

    assert payload[0]["id"] == "64f0a1b2c3d4e5f601234567"
    assert payload[0]["projectId"] == "proj0000work"
    assert payload[0]["dueDate"] == "2024-06-10"
    assert payload[0]["tags"] == ["work", "q3"]


def test_task_detail_plain() -> None:
    text = render_task_detail_plain(_task(status=2, completed_time="2024-06-11T09:00:00+0000"))

    assert text.splitlines()[0] == "=== Task Details ==="
    assert "Title:      Write report" in text
    assert "Priority:   5 (High)" in text
    assert "Status:     Completed" in text
    assert "Completed:  2024-06-11T09:00:00+0000" in text
    assert text.endswith("Content:\nQuarterly numbers")


def test_task_summary_and_update_summary() -> None:
    summary = render_task_summary(_task())
    assert summary.splitlines()[:2] == ["Title: Write report", "ID: 64f0a1b2c3d4e5f601234567"]
    assert "Tags: work, q3" in summary

    update = render_update_summary(_task(), {"content": "", "dueDate": "2024-07-01", "tags": []})
    assert "Updated fields:" in update
    assert "  Description: (cleared)" in update
    assert "  Due Date: 2024-07-01" in update
    assert "  Tags: (cleared)" in update
    assert "Title:" not in update.split("Updated fields:")[1]


def test_projects_plain_and_json() -> None:
    projects = [
        Project(id="proj0000work-extra", name="Work", sort_order=0),
        Project(id="proj0000arch", name="Archive", sort_order=2, closed=True),
    ]

    text = render_projects_plain(projects)
    lines = text.splitlines()
    assert lines[0] == "Your Projects (2 total)"
    assert lines[4].split() == ["proj0000work", "Work", "Active", "0"]
    assert lines[5].split() == ["proj0000arch", "Archive", "Closed", "2"]

    payload = json.loads(render_projects_json(projects))
    assert [item["name"] for item in payload] == ["Work", "Archive"]
    assert payload[1]["closed"] is True


def test_auth_status() -> None:
    assert render_auth_status(Config()).startswith("✗ Not authenticated")

    config = Config(
        auth=AuthConfig(
            client_id="cid",
            access_token="at",
            refresh_token="rt",
            expiry="2000-01-01T00:00:00+00:00",
        )
    )
    text = render_auth_status(config)
    assert text.startswith("✓ Authenticated")
    assert "Client ID: cid" in text
    assert "Token is expired" in text


def test_render_config_sections() -> None:
    config = Config(preferences=Preferences(default_project="proj0000work-long-id", color_output=False))

    text = render_config(config)
    assert "✗ Not authenticated" in text
    assert "Default Project:  proj0000work" in text
    assert "Color Output:     disabled" in text
    assert "TTL:              300 seconds" in text

    labelled = render_config(config, default_project_label="Work (proj0000work)")
    assert "Default Project:  Work (proj0000work)" in labelled
    assert "Default Project:  (not set)" in render_config(Config())


def test_mcp_task_text() -> None:
    assert format_task_text(_task()).splitlines() == [
        "**Write report**",
        "ID: 64f0a1b2",
        "Description: Quarterly numbers",
        "Priority: High",
        "Due: 2024-06-10",
        "Tags: work, q3",
    ]
    assert format_task_text(_task(content=None, priority=0, due_date=None, tags=[])) == (
        "**Write report**\nID: 64f0a1b2"
    )


def test_mcp_task_list_and_projects_text() -> None:
    text = format_task_list_text([_task(title="A"), _task(title="B")])
    assert text.count("\n\n---\n\n") == 1

    assert format_projects_text([]) == "No active projects found."
    assert format_projects_text([Project(id="proj0000work-extra", name="Work")]) == (
        "Your TickTick Projects (1 total):\n\n- **Work** (ID: proj0000work)"
    )
