"""
Issue content for client-side error reports and widget feedback.

Builders return (title, body, labels); creating the issue is the caller's job.
"""

from __future__ import annotations

from typing import Any

from .errors import ClientInputError
from .notify import SEVERITY_EMOJI, truncate

HIGH_PRIORITY_ERROR_SEVERITIES = ("error", "critical")
HIGH_PRIORITY_BUG_SEVERITIES = ("high", "critical")
FEEDBACK_TYPES = ("bug", "feature")

BUG_SEVERITY_LABELS = {
    "low": "🟢 Low",
    "medium": "🟡 Medium",
    "high": "🟠 High",
    "critical": "🔴 Critical",
}
FEATURE_PRIORITY_LABELS = {
    "nice-to-have": "💭 Nice to have",
    "important": "⭐ Important",
    "critical": "🔥 Critical for workflow",
}


def validate_error_report(body: Any) -> list[dict[str, Any]]:
    errors = body.get("errors") if isinstance(body, dict) else None
    if not isinstance(errors, list):
        raise ClientInputError("No errors provided")
    errors = [e for e in errors if isinstance(e, dict)]
    if not errors:
        raise ClientInputError("No errors provided")
    return errors


def validate_feedback(body: Any) -> dict[str, Any]:
    if not isinstance(body, dict) or not body.get("title") or not body.get("type"):
        raise ClientInputError("Missing required fields: title, type")
    if body["type"] not in FEEDBACK_TYPES:
        raise ClientInputError(f"Invalid feedback type: {body['type']}")
    return body


def group_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Collapse reports sharing (type, message); the first report represents its group."""
    groups: dict[tuple[Any, Any], dict[str, Any]] = {}
    for err in errors:
        key = (err.get("type"), err.get("message"))
        if key in groups:
            groups[key]["count"] += 1
        else:
            groups[key] = {**err, "count": 1}
    return list(groups.values())


def _lines(*parts: Any) -> str:
    return "\n".join(str(p) for p in parts if p is not None)


def error_issue(group: dict[str, Any], environment: dict[str, Any] | None) -> tuple[str, str, list[str]]:
    env = environment or {}
    severity = group.get("severity")
    emoji = SEVERITY_EMOJI.get(severity, "🔴")
    title = f"{emoji} [Auto-Detected] {group.get('type')}: {truncate(group.get('message'), 80)}"
    stack = group.get("stack")
    body = _lines(
        "## Auto-Detected Error Report",
        "",
        f"**Type:** `{group.get('type')}`",
        f"**Severity:** {severity}",
        f"**Occurrences:** {group.get('count', 1)}",
        f"**First Seen:** {group.get('timestamp')}",
        "",
        "### Error Details",
        "",
        "```",
        group.get("message"),
        "```",
        "",
        f"**Source:** `{group['source']}`" if group.get("source") else None,
        f"**Line:** {group['line']}" if group.get("line") else None,
        f"**Column:** {group['column']}" if group.get("column") else None,
        "",
        "\n".join(["### Stack Trace", "", "```", str(stack), "```"]) if stack else None,
        "",
        "### Environment",
        "",
        f"- **URL:** {env.get('url')}",
        f"- **User Agent:** {env.get('userAgent')}",
        f"- **Screen:** {env.get('screenSize')}",
        f"- **Viewport:** {env.get('viewportSize')}",
        f"- **Session:** `{env.get('sessionId')}`",
        f"- **Timestamp:** {env.get('timestamp')}",
        "",
        "---",
        "*This issue was automatically created by the error detection system.*",
        "*Label this issue with `ai-analyze` to trigger automatic AI analysis and fix proposal.*",
    )
    labels = ["bug", "auto-detected"]
    if severity in HIGH_PRIORITY_ERROR_SEVERITIES:
        labels.append("priority:high")
    return title, body, labels


def _bug_issue(fb: dict[str, Any]) -> tuple[str, str, list[str]]:
    severity = fb.get("severity")
    screenshot = fb.get("screenshot")
    body = _lines(
        "## User-Reported Bug",
        "",
        f"**Severity:** {BUG_SEVERITY_LABELS.get(severity, severity)}",
        f"**Reported at:** {fb.get('timestamp')}",
        f"**Contact:** {fb['email']}" if fb.get("email") else None,
        "",
        "### Description",
        "",
        fb.get("title"),
        "",
        "\n".join(["### Steps to Reproduce", "", str(fb["steps"])]) if fb.get("steps") else None,
        "",
        "### Context",
        "",
        f"- **Page:** {fb.get('url')}",
        f"- **Browser:** {fb.get('userAgent')}",
        f"- **Session:** `{fb['sessionId']}`" if fb.get("sessionId") else None,
        "",
        "\n".join(
            [
                "### Screenshot",
                "",
                "> A screenshot was attached to this report.",
                f"> Data URI length: {len(str(screenshot))} characters",
            ]
        )
        if screenshot
        else None,
        "",
        "---",
        "*This issue was created from user feedback via the in-app widget.*",
    )
    labels = ["bug", "user-reported"]
    if severity in HIGH_PRIORITY_BUG_SEVERITIES:
        labels.append("priority:high")
    return f"🐛 [User Report] {fb.get('title')}", body, labels


def _feature_issue(fb: dict[str, Any]) -> tuple[str, str, list[str]]:
    priority = fb.get("priority")
    body = _lines(
        "## Feature Request",
        "",
        f"**Priority:** {FEATURE_PRIORITY_LABELS.get(priority, priority)}",
        f"**Requested at:** {fb.get('timestamp')}",
        f"**Contact:** {fb['email']}" if fb.get("email") else None,
        "",
        "### Feature Description",
        "",
        fb.get("title"),
        "",
        "\n".join(["### Use Case", "", str(fb["useCase"])]) if fb.get("useCase") else None,
        "",
        "### Context",
        "",
        f"- **Page:** {fb.get('url')}",
        "",
        "---",
        "*This feature request was submitted via the in-app feedback widget.*",
        "",
        "**Voting:** React with 👍 to upvote this feature request.",
    )
    return f"✨ [Feature Request] {fb.get('title')}", body, ["enhancement", "user-requested"]


def feedback_issue(feedback: dict[str, Any]) -> tuple[str, str, list[str]]:
    if feedback.get("type") == "bug":
        return _bug_issue(feedback)
    return _feature_issue(feedback)
