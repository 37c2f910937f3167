import json

import yaml

from ticket_planner.core.errors import FormatError
from ticket_planner.core.io.ticket_document import (
    deserialize,
    dump_document,
    dump_report,
    load_document,
    serialize,
)
from ticket_planner.core.model import (
    CreatedTicket,
    CreationReport,
    GroupNode,
    ProcessNode,
    ProcessType,
    TaskNode,
)


def _forest():
    task = TaskNode(
        subject="Login",
        description="Implementation for Login.",
        estimated_hours=16,
        process_type=ProcessType.IMPLEMENTATION,
        task_name="Login",
    )
    group = GroupNode(
        subject="Home",
        description="Implementation tasks for Home.\nTotal estimate: 16h",
        estimated_hours=0,
        group_name="Home",
        children=[task],
    )
    return [
        ProcessNode(
            subject="Implementation",
            description="Implementation phase for the whole project.\nTotal estimate: 16h",
            estimated_hours=0,
            process_type=ProcessType.IMPLEMENTATION,
            children=[group],
        )
    ]


def _expect_format_error(doc, code):
    try:
        deserialize(doc)
    except FormatError as e:
        assert e.code == code
        return e
    assert False, f"expected FormatError {code}"


def test_serialize_shape():
    doc = serialize(_forest())
    (proc,) = doc["tickets"]
    assert proc["type"] == "process"
    assert proc["process_type"] == "implementation"
    group = proc["children"][0]
    assert group["type"] == "group"
    assert group["group_name"] == "Home"
    task = group["children"][0]
    assert task["task_name"] == "Login"
    assert task["estimated_hours"] == 16
    assert "children" not in task


def test_deserialize_rebuilds_the_same_forest():
    forest = _forest()
    assert deserialize(serialize(forest)) == forest


def test_missing_children_means_leaf():
    tickets = deserialize(
        {"tickets": [{"type": "process", "process_type": "unit_test", "subject": "Unit Test"}]}
    )
    assert tickets[0].children == []
    assert tickets[0].estimated_hours == 0
    assert tickets[0].description == ""


def test_rejects_missing_tickets_key():
    _expect_format_error({"issues": []}, "E_MISSING_TICKETS")
    _expect_format_error([1, 2], "E_MISSING_TICKETS")


def test_rejects_unknown_type():
    e = _expect_format_error({"tickets": [{"type": "epic", "subject": "x"}]}, "E_INVALID_ENUM")
    assert e.path == "tickets[0].type"


def test_rejects_unknown_process_type():
    e = _expect_format_error(
        {"tickets": [{"type": "process", "process_type": "qa", "subject": "x"}]}, "E_INVALID_ENUM"
    )
    assert e.path == "tickets[0].process_type"


def test_rejects_missing_subject():
    e = _expect_format_error({"tickets": [{"type": "group", "group_name": "Home"}]}, "E_REQUIRED_FIELD")
    assert e.path == "tickets[0].subject"


def test_rejects_non_numeric_hours():
    doc = {
        "tickets": [
            {"type": "process", "process_type": "unit_test", "subject": "x", "estimated_hours": "8"}
        ]
    }
    _expect_format_error(doc, "E_INVALID_TYPE")


def test_rejects_task_with_children():
    leaf = {"type": "task", "process_type": "unit_test", "task_name": "a", "subject": "a"}
    doc = {"tickets": [dict(leaf, children=[dict(leaf)])]}
    e = _expect_format_error(doc, "E_TASK_HAS_CHILDREN")
    assert e.path == "tickets[0].children"


def test_nested_error_paths():
    doc = {
        "tickets": [
            {
                "type": "process",
                "process_type": "unit_test",
                "subject": "Unit Test",
                "children": [{"type": "group", "subject": "Home"}],
            }
        ]
    }
    e = _expect_format_error(doc, "E_REQUIRED_FIELD")
    assert e.path == "tickets[0].children[0].group_name"


def test_yaml_file_roundtrip(tmp_path):
    path = tmp_path / "out" / "tickets.yaml"
    dump_document(_forest(), str(path))

    text = path.read_text(encoding="utf-8")
    assert text.startswith("tickets:")
    assert load_document(str(path)) == _forest()


def test_json_file_roundtrip(tmp_path):
    path = tmp_path / "tickets.json"
    dump_document(_forest(), str(path))

    assert json.loads(path.read_text(encoding="utf-8"))["tickets"][0]["type"] == "process"
    assert load_document(str(path)) == _forest()


def test_load_document_errors(tmp_path):
    for name, content, code in [
        ("missing.yaml", None, "E_FILE_NOT_FOUND"),
        ("tickets.txt", "tickets: []", "E_UNSUPPORTED_FORMAT"),
        ("bad.yaml", "tickets: [unclosed", "E_YAML_PARSE"),
        ("bad.json", "{", "E_JSON_PARSE"),
    ]:
        path = tmp_path / name
        if content is not None:
            path.write_text(content, encoding="utf-8")
        try:
            load_document(str(path))
        except FormatError as e:
            assert e.code == code, name
        else:
            assert False, f"expected FormatError for {name}"


def test_dump_report(tmp_path):
    report = CreationReport(
        created_tickets=[
            CreatedTicket(id=10, subject="Implementation", level=0),
            CreatedTicket(id=11, subject="Home", level=1, parent_id=10),
        ]
    )
    path = tmp_path / "report.yaml"
    dump_report(report, str(path))

    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    assert data["created_tickets"][1] == {"id": 11, "subject": "Home", "level": 1, "parent_id": 10}
    assert data["created_tickets"][0]["parent_id"] is None


def test_rejects_non_finite_hours():
    for value in (float("nan"), float("inf"), float("-inf")):
        doc = {
            "tickets": [
                {"type": "process", "process_type": "unit_test", "subject": "x", "estimated_hours": value}
            ]
        }
        e = _expect_format_error(doc, "E_INVALID_HOURS")
        assert e.path == "tickets[0].estimated_hours"


def test_yaml_nan_hours_are_rejected_on_load(tmp_path):
    path = tmp_path / "tickets.yaml"
    path.write_text(
        "tickets:\n  - type: process\n    process_type: unit_test\n    subject: x\n    estimated_hours: .inf\n",
        encoding="utf-8",
    )
    try:
        load_document(str(path))
    except FormatError as e:
        assert e.code == "E_INVALID_HOURS"
    else:
        assert False, "expected FormatError"
