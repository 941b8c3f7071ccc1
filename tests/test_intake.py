import pytest

from intake_bot import intake
from intake_bot.errors import ClientInputError


def test_group_errors_collapses_same_type_and_message():
    errors = [
        {"type": "TypeError", "message": "x is undefined", "timestamp": "t1", "severity": "error"},
        {"type": "TypeError", "message": "x is undefined", "timestamp": "t2", "severity": "error"},
        {"type": "NetworkError", "message": "fetch failed", "timestamp": "t3"},
    ]
    groups = intake.group_errors(errors)
    assert len(groups) == 2
    assert groups[0]["count"] == 2
    assert groups[0]["timestamp"] == "t1"
    assert groups[1]["count"] == 1
    assert "count" not in errors[0]


@pytest.mark.parametrize(
    "severity,high",
    [("critical", True), ("error", True), ("warning", False), ("info", False), (None, False)],
)
def test_error_issue_priority_label(severity, high):
    _title, _body, labels = intake.error_issue(
        {"type": "TypeError", "message": "boom", "severity": severity, "count": 1}, {}
    )
    assert labels[:2] == ["bug", "auto-detected"]
    assert ("priority:high" in labels) is high


def test_error_issue_title_and_body():
    group = {
        "type": "TypeError",
        "message": "m" * 100,
        "severity": "warning",
        "count": 3,
        "stack": "at foo (app.js:1:2)",
        "source": "app.js",
        "line": 1,
    }
    title, body, _labels = intake.error_issue(group, {"url": "https://app/", "sessionId": "s1"})
    assert title == "🟡 [Auto-Detected] TypeError: " + "m" * 80 + "..."
    assert "**Occurrences:** 3" in body
    assert "### Stack Trace\n\n```\nat foo (app.js:1:2)\n```" in body
    assert "**Source:** `app.js`" in body
    assert "**Column:**" not in body
    assert "- **Session:** `s1`" in body
    assert "## Auto-Detected Error Report\n\n**Type:** `TypeError`" in body


def test_bug_feedback_issue():
    title, body, labels = intake.feedback_issue(
        {
            "type": "bug",
            "title": "Video won't pause",
            "severity": "high",
            "steps": "1. play\n2. pause",
            "screenshot": "data:image/png;base64,AAAA",
        }
    )
    assert title == "🐛 [User Report] Video won't pause"
    assert labels == ["bug", "user-reported", "priority:high"]
    assert "**Severity:** 🟠 High" in body
    assert "### Steps to Reproduce\n\n1. play\n2. pause" in body
    assert "Data URI length: 26 characters" in body
    assert "**Contact:**" not in body


def test_low_severity_bug_has_no_priority_label():
    _title, _body, labels = intake.feedback_issue({"type": "bug", "title": "t", "severity": "low"})
    assert labels == ["bug", "user-reported"]


def test_feature_feedback_issue():
    title, body, labels = intake.feedback_issue(
        {"type": "feature", "title": "Dark mode", "priority": "important", "email": "a@b.c"}
    )
    assert title == "✨ [Feature Request] Dark mode"
    assert labels == ["enhancement", "user-requested"]
    assert "**Priority:** ⭐ Important" in body
    assert "**Contact:** a@b.c" in body


@pytest.mark.parametrize("body", [None, {}, {"errors": []}, {"errors": "nope"}, {"errors": [1, 2]}])
def test_validate_error_report_rejects_empty(body):
    with pytest.raises(ClientInputError, match="No errors provided"):
        intake.validate_error_report(body)


def test_validate_feedback():
    with pytest.raises(ClientInputError, match="Missing required fields"):
        intake.validate_feedback({"type": "bug"})
    with pytest.raises(ClientInputError, match="Invalid feedback type"):
        intake.validate_feedback({"type": "praise", "title": "nice"})
    fb = {"type": "feature", "title": "Dark mode"}
    assert intake.validate_feedback(fb) is fb
