"""
Slack Block Kit message builders for notifications.

Pure functions: no network, no state. `format_notification` is total; an
unrecognised kind yields a plain-text fallback instead of an error.
"""

from __future__ import annotations

import datetime as dt
import json
from typing import Any

from . import actions
from .config import Settings

SEVERITY_EMOJI = {"error": "🔴", "warning": "🟡", "info": "🔵"}
DEPLOY_STATUS_EMOJI = {"success": "✅", "failed": "❌", "pending": "⏳", "rollback": "⏪"}


def truncate(s: Any, max_len: int) -> str:
    """Cut to `max_len` code points and append '...' when anything was cut."""
    if not s:
        return ""
    s = str(s)
    return s[:max_len] + "..." if len(s) > max_len else s


# ----- Block helpers -----
def _plain(text: str) -> dict[str, Any]:
    return {"type": "plain_text", "text": text}


def _md(text: str) -> dict[str, Any]:
    return {"type": "mrkdwn", "text": text}


def header(text: str) -> dict[str, Any]:
    return {"type": "header", "text": _plain(text)}


def section(text: str) -> dict[str, Any]:
    return {"type": "section", "text": _md(text)}


def fields(*pairs: tuple[str, Any] | None) -> dict[str, Any]:
    return {
        "type": "section",
        "fields": [_md(f"*{label}:*\n{value}") for label, value in (p for p in pairs if p)],
    }


def link_button(text: str, url: str, style: str | None = None) -> dict[str, Any]:
    btn: dict[str, Any] = {"type": "button", "text": _plain(text), "url": url}
    if style:
        btn["style"] = style
    return btn


def action_button(
    text: str, action_id: str, payload: actions.ActionValue | None = None, style: str | None = None
) -> dict[str, Any]:
    btn: dict[str, Any] = {"type": "button", "text": _plain(text), "action_id": action_id}
    if payload is not None:
        btn["value"] = actions.encode(payload)
    if style:
        btn["style"] = style
    return btn


def actions_block(*elements: dict[str, Any] | None) -> dict[str, Any] | None:
    # Slack rejects an actions block with no elements.
    kept = [e for e in elements if e]
    return {"type": "actions", "elements": kept} if kept else None


def message(*blocks: dict[str, Any] | None, **extra: Any) -> dict[str, Any]:
    return {**extra, "blocks": [b for b in blocks if b]}


def _issue_field(data: dict[str, Any]) -> tuple[str, str]:
    if data.get("issueUrl"):
        return ("Issue", f"<{data['issueUrl']}|#{data.get('issueNumber')}>")
    return ("Issue", "Pending")


def _issue_number(data: dict[str, Any]) -> int | None:
    raw = data.get("issueNumber")
    try:
        return int(raw) if raw is not None else None
    except (TypeError, ValueError):
        return None


def _issue_button(text: str, action_id: str, data: dict[str, Any]) -> dict[str, Any] | None:
    number = _issue_number(data)
    if number is None:
        return None
    return action_button(text, action_id, actions.IssueRef(number))


# ----- Notification kinds -----
def bug_message(data: dict[str, Any]) -> dict[str, Any]:
    return message(
        header(f"🐛 Bug: {truncate(data.get('title'), 60)}"),
        fields(
            ("Severity", data.get("severity") or "unknown"),
            ("Source", data.get("source") or "user report"),
            ("Status", data.get("status") or "new"),
            _issue_field(data),
        ),
        section(truncate(data["description"], 300)) if data.get("description") else None,
        actions_block(
            link_button("View Issue", data["issueUrl"], "primary") if data.get("issueUrl") else None,
            _issue_button("AI Analyze", actions.TRIGGER_AI_ANALYSIS, data),
        ),
    )


def feature_message(data: dict[str, Any]) -> dict[str, Any]:
    return message(
        header(f"✨ Feature: {truncate(data.get('title'), 60)}"),
        fields(
            ("Priority", data.get("priority") or "normal"),
            ("Votes", data.get("votes") or 0),
            _issue_field(data),
        ),
        section(f"*Use Case:*\n{truncate(data['useCase'], 300)}") if data.get("useCase") else None,
        actions_block(
            link_button("View Issue", data["issueUrl"], "primary") if data.get("issueUrl") else None,
            _issue_button("Add to Roadmap", actions.ADD_TO_ROADMAP, data),
        ),
    )


def deployment_message(data: dict[str, Any]) -> dict[str, Any]:
    status = data.get("status")
    return message(
        header(f"{DEPLOY_STATUS_EMOJI.get(status, '📦')} Deployment: {status}"),
        fields(
            ("Environment", data.get("environment") or "production"),
            ("Branch", f"`{data.get('branch') or 'main'}`"),
            ("Commit", f"`{truncate(data.get('commit'), 8)}`"),
            ("Author", data.get("author") or "unknown"),
        ),
        section(f"*Changes:*\n{truncate(data['changes'], 300)}") if data.get("changes") else None,
        actions_block(link_button("View Deployment", data["url"], "primary"))
        if data.get("url")
        else None,
    )


def digest_message(data: dict[str, Any], today: dt.date | None = None) -> dict[str, Any]:
    day = today or dt.date.today()
    top = [i for i in data.get("topIssues") or [] if isinstance(i, dict)]
    top_text = "\n".join(
        f"{idx}. <{i.get('url')}|{i.get('title')}>" for idx, i in enumerate(top, start=1)
    )
    return message(
        header(f"📊 Daily Digest - {day.isoformat()}"),
        fields(
            ("New Bugs", data.get("newBugs") or 0),
            ("Bugs Fixed", data.get("bugsFixed") or 0),
            ("Feature Requests", data.get("featureRequests") or 0),
            ("Deployments", data.get("deployments") or 0),
        ),
        fields(
            ("Open Issues", data.get("openIssues") or 0),
            ("PRs Merged", data.get("prsMerged") or 0),
            ("Avg Fix Time", data.get("avgFixTime") or "N/A"),
            ("User Satisfaction", data.get("satisfaction") or "N/A"),
        ),
        section(f"*Top Issues:*\n{top_text}") if top else None,
    )


def incident_message(data: dict[str, Any], now: dt.datetime | None = None) -> dict[str, Any]:
    started = data.get("startedAt") or (now or dt.datetime.now(dt.timezone.utc)).isoformat()
    return message(
        header(f"🚨 INCIDENT: {truncate(data.get('title'), 50)}"),
        section(
            f"*Severity:* {data.get('severity') or 'HIGH'}\n"
            f"*Impact:* {data.get('impact') or 'Unknown'}\n"
            f"*Started:* {started}"
        ),
        section(data["description"]) if data.get("description") else None,
        actions_block(
            action_button(
                "Acknowledge",
                actions.ACKNOWLEDGE_INCIDENT,
                actions.IncidentRef(data.get("id")),
                "danger",
            ),
            link_button("View Issue", data["issueUrl"]) if data.get("issueUrl") else None,
        ),
    )


def pr_message(data: dict[str, Any]) -> dict[str, Any]:
    pr = actions.PullRef(data.get("prNumber"))
    return message(
        header(f"🔀 PR: {truncate(data.get('title'), 60)}"),
        fields(
            ("Author", data.get("author") or "AI"),
            ("Status", data.get("status") or "open"),
            ("Files Changed", data.get("filesChanged") or "N/A"),
            ("Fixes", f"#{data['issueNumber']}") if data.get("issueNumber") else None,
        ),
        section(truncate(data["description"], 300)) if data.get("description") else None,
        actions_block(
            link_button("Review PR", data["prUrl"], "primary") if data.get("prUrl") else None,
            action_button("Approve & Merge", actions.APPROVE_MERGE_PR, pr, "primary"),
            action_button("Reject", actions.REJECT_PR, pr, "danger"),
        ),
    )


BUILDERS = {
    "bug": bug_message,
    "feature": feature_message,
    "deployment": deployment_message,
    "digest": digest_message,
    "incident": incident_message,
    "pr": pr_message,
}


def format_notification(kind: str, data: dict[str, Any] | None) -> dict[str, Any]:
    data = data or {}
    builder = BUILDERS.get(kind)
    if builder is None:
        return {"text": f"[{kind}] {json.dumps(data, ensure_ascii=False)}"}
    return builder(data)


def webhook_for(kind: str, settings: Settings) -> str | None:
    default = settings.slack_webhook_url
    per_kind = {
        "bug": settings.slack_bugs_webhook,
        "feature": settings.slack_features_webhook,
        "deployment": settings.slack_deployments_webhook,
    }
    return per_kind.get(kind) or default


# ----- Messages posted by the intake endpoints and the analyzer -----
def error_report_message(group: dict[str, Any], issue: dict[str, Any]) -> dict[str, Any]:
    return message(
        header(f"🚨 Auto-Detected Bug: {truncate(group.get('message'), 60)}"),
        fields(
            ("Type", f"`{group.get('type')}`"),
            ("Severity", group.get("severity")),
            ("Occurrences", group.get("count")),
            ("Issue", f"<{issue.get('html_url')}|#{issue.get('number')}>"),
        ),
        actions_block(
            link_button("View Issue", issue.get("html_url") or "", "primary"),
            action_button(
                "Trigger AI Analysis",
                actions.TRIGGER_AI_ANALYSIS,
                actions.IssueRef(issue.get("number")),
            ),
        ),
    )


def feedback_message(feedback: dict[str, Any], issue: dict[str, Any]) -> dict[str, Any]:
    is_bug = feedback.get("type") == "bug"
    title = truncate(feedback.get("title"), 60)
    detail = None
    if is_bug and feedback.get("steps"):
        detail = section(f"*Steps to Reproduce:*\n{truncate(feedback['steps'], 200)}")
    elif not is_bug and feedback.get("useCase"):
        detail = section(f"*Use Case:*\n{truncate(feedback['useCase'], 200)}")
    return message(
        header(f"🐛 New Bug Report: {title}" if is_bug else f"✨ Feature Request: {title}"),
        fields(
            ("Type", "Bug Report" if is_bug else "Feature Request"),
            (
                "Severity" if is_bug else "Priority",
                (feedback.get("severity") if is_bug else feedback.get("priority")) or "unspecified",
            ),
            ("Issue", f"<{issue.get('html_url')}|#{issue.get('number')}>"),
            ("Contact", feedback.get("email") or "Not provided"),
        ),
        detail,
        actions_block(link_button("View Issue", issue.get("html_url") or "", "primary")),
    )


def analysis_message(
    issue_number: int | str, issue_title: str, analysis: dict[str, Any], pr: dict[str, Any] | None
) -> dict[str, Any]:
    fix = "PR created" if pr else "Manual review needed"
    return message(
        header(f"🤖 AI Analysis Complete: #{issue_number}"),
        fields(
            ("Issue", truncate(issue_title, 100)),
            ("Severity", analysis.get("severity") or "unknown"),
            ("Root Cause", truncate(analysis.get("rootCause"), 200)),
            ("Fix", fix),
        ),
        actions_block(
            link_button("Review PR", pr["html_url"], "primary") if pr and pr.get("html_url") else None,
            action_button(
                "Approve & Merge",
                actions.APPROVE_MERGE_PR,
                actions.PullRef(pr.get("number")),
                "primary",
            )
            if pr
            else None,
        )
        if pr
        else None,
    )
