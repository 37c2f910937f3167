import json

import httpx
import yaml
from typer.testing import CliRunner

import ticket_planner.cli as cli_mod
from ticket_planner.cli import app
from ticket_planner.core.io.ticket_document import dump_document
from ticket_planner.core.model import GroupNode, ProcessNode, ProcessType, TaskNode
from ticket_planner.core.submit.redmine_client import RedmineClient


runner = CliRunner()

API_KEY = "0123456789abcdef0123"
IDS = ["--tracker-id", "1", "--status-id", "1", "--priority-id", "2"]
REDMINE = ["--url", "https://redmine.example.com", "--api-key", API_KEY, "--project", "demo"]


def _document(tmp_path):
    tasks = [
        TaskNode(name, f"Implementation for {name}.", 16, ProcessType.IMPLEMENTATION, name)
        for name in ("Login", "Logout")
    ]
    tickets = [
        ProcessNode(
            "Implementation",
            "Implementation phase for the whole project.\nTotal estimate: 32h",
            0,
            ProcessType.IMPLEMENTATION,
            children=[GroupNode("Home", "Implementation tasks for Home.\nTotal estimate: 32h", 0, "Home", children=tasks)],
        )
    ]
    path = tmp_path / "tickets.yaml"
    dump_document(tickets, str(path))
    return path


def _fake_redmine(monkeypatch, handler, *, project_status=200):
    """Route create calls to ``handler(request, n)``; answer the project checks."""
    posts: list[httpx.Request] = []

    def routing(request):
        if request.method == "GET":
            if request.url.path == "/projects.json":
                return httpx.Response(200, json={"projects": []})
            return httpx.Response(project_status, json={"project": {"id": 9, "name": "Demo project"}})
        posts.append(request)
        return handler(request, len(posts))

    def factory(settings, **kwargs):
        return RedmineClient(settings, transport=httpx.MockTransport(routing), sleep=lambda _: None, **kwargs)

    monkeypatch.setattr(cli_mod, "RedmineClient", factory)
    return posts


def test_cli_create_dry_run_writes_report(tmp_path):
    doc = _document(tmp_path)
    report = tmp_path / "report.yaml"
    r = runner.invoke(app, ["create", str(doc), *IDS, "--dry-run", "--report", str(report)])

    assert r.exit_code == 0, r.output
    assert "DRY RUN: 4 ticket(s)" in r.output
    assert "  - #2 Home <- #1" in r.output
    assert "OK: created 4 ticket(s)" in r.output

    created = yaml.safe_load(report.read_text(encoding="utf-8"))["created_tickets"]
    assert [t["level"] for t in created] == [0, 1, 2, 2]
    assert [t["parent_id"] for t in created] == [None, 1, 2, 2]


def test_cli_create_rejects_invalid_ids(tmp_path):
    doc = _document(tmp_path)
    r = runner.invoke(
        app,
        ["create", str(doc), "--tracker-id", "0", "--status-id", "1", "--priority-id", "2", "--dry-run"],
    )
    assert r.exit_code == 1
    assert "E_INVALID_OPTION" in r.output
    assert "DRY RUN" not in r.output


def test_cli_create_requires_redmine_settings(tmp_path, monkeypatch):
    for name in ("REDMINE_URL", "REDMINE_API_KEY", "REDMINE_PROJECT"):
        monkeypatch.delenv(name, raising=False)
    doc = _document(tmp_path)
    r = runner.invoke(app, ["create", str(doc), *IDS, "--yes"])
    assert r.exit_code == 1
    assert "E_REQUIRED_FIELD" in r.output


def test_cli_create_posts_parents_first(tmp_path, monkeypatch):
    def handler(request, n):
        return httpx.Response(201, json={"issue": {"id": 500 + n}})

    posts = _fake_redmine(monkeypatch, handler)
    doc = _document(tmp_path)
    r = runner.invoke(app, ["create", str(doc), *IDS, *REDMINE, "--yes"])

    assert r.exit_code == 0, r.output
    assert "OK: created 4 ticket(s)" in r.output
    issues = [json.loads(req.content)["issue"] for req in posts]
    assert [i["subject"] for i in issues] == ["Implementation", "Home", "Login", "Logout"]
    assert "parent_issue_id" not in issues[0]
    assert [i.get("parent_issue_id") for i in issues[1:]] == [501, 502, 502]
    assert all(i["project_id"] == "demo" and i["priority_id"] == 2 for i in issues)
    assert API_KEY not in r.output


def test_cli_create_stops_on_failure_and_reports_partial(tmp_path, monkeypatch):
    def handler(request, n):
        if n == 3:
            return httpx.Response(422, json={"errors": ["Parent task is invalid"]})
        return httpx.Response(201, json={"issue": {"id": 500 + n}})

    posts = _fake_redmine(monkeypatch, handler)
    doc = _document(tmp_path)
    report = tmp_path / "partial.yaml"
    r = runner.invoke(app, ["create", str(doc), *IDS, *REDMINE, "--yes", "--report", str(report)])

    assert r.exit_code == 1
    assert "E_CREATE_FAILED" in r.output
    assert "Parent task is invalid" in r.output
    assert len(posts) == 3
    created = yaml.safe_load(report.read_text(encoding="utf-8"))["created_tickets"]
    assert [t["id"] for t in created] == [501, 502]


def test_cli_create_can_be_cancelled(tmp_path, monkeypatch):
    posts = _fake_redmine(monkeypatch, lambda request, n: httpx.Response(201, json={"issue": {"id": n}}))
    doc = _document(tmp_path)
    r = runner.invoke(app, ["create", str(doc), *IDS, *REDMINE], input="n\n")

    assert r.exit_code == 0
    assert "Cancelled." in r.output
    assert posts == []


def test_cli_create_prompt_names_the_project(tmp_path, monkeypatch):
    _fake_redmine(monkeypatch, lambda request, n: httpx.Response(201, json={"issue": {"id": n}}))
    doc = _document(tmp_path)
    r = runner.invoke(app, ["create", str(doc), *IDS, *REDMINE], input="y\n")

    assert r.exit_code == 0, r.output
    assert "project Demo project" in r.output
    assert "OK: created 4 ticket(s)" in r.output


def test_cli_create_stops_before_posting_when_project_is_unknown(tmp_path, monkeypatch):
    posts = _fake_redmine(
        monkeypatch, lambda request, n: httpx.Response(201, json={"issue": {"id": n}}), project_status=404
    )
    doc = _document(tmp_path)
    r = runner.invoke(app, ["create", str(doc), *IDS, *REDMINE, "--yes"])

    assert r.exit_code == 1
    assert "E_REDMINE_PROJECT" in r.output
    assert posts == []


def test_cli_create_stops_when_redmine_is_unreachable(tmp_path, monkeypatch):
    def factory(settings, **kwargs):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        return RedmineClient(settings, transport=httpx.MockTransport(refuse), sleep=lambda _: None, **kwargs)

    monkeypatch.setattr(cli_mod, "RedmineClient", factory)
    doc = _document(tmp_path)
    r = runner.invoke(app, ["create", str(doc), *IDS, *REDMINE, "--yes"])

    assert r.exit_code == 1
    assert "E_REDMINE_UNREACHABLE" in r.output
    assert "DRY RUN" not in r.output


def test_cli_create_rejects_non_finite_hours_before_contacting_redmine(tmp_path, monkeypatch):
    posts = _fake_redmine(monkeypatch, lambda request, n: httpx.Response(201, json={"issue": {"id": n}}))
    doc = tmp_path / "tickets.yaml"
    doc.write_text(
        "tickets:\n"
        "  - type: process\n    process_type: unit_test\n    subject: Unit Test\n    estimated_hours: 0\n"
        "  - type: process\n    process_type: implementation\n    subject: Implementation\n"
        "    estimated_hours: .nan\n",
        encoding="utf-8",
    )
    r = runner.invoke(app, ["create", str(doc), *IDS, *REDMINE, "--yes"])

    assert r.exit_code == 1
    assert "E_INVALID_HOURS" in r.output
    assert posts == []
