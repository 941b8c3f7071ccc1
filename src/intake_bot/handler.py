"""
AWS Lambda handlers for the intake endpoints.

    POST /report-error     error-logger batches -> one GitHub issue per (type, message)
    POST /submit-feedback  widget feedback      -> one GitHub issue
    POST /slack-notify     {type, data}         -> formatted Slack webhook message
    POST /slack-commands   slash commands       -> ack now, answer via response_url
    POST /slack-actions    button clicks        -> ack now, answer via response_url
    POST /slack-claude     Events API           -> ack now, reply in thread

Slack work that may outlive Slack's 3 second ack window is handed to a
worker: this same function invoked asynchronously with {"intake_bot_job": ...}.
"""

from __future__ import annotations

import base64
import functools
import importlib
import json
import logging
import time
from collections.abc import Callable
from typing import Any

from . import intake, notify
from .commands import CommandRouter, ephemeral
from .config import Settings, load_secrets, load_settings, require_github
from .conversation import ConversationCache, MemoryStore, S3Store
from .errors import ClientInputError, ConfigurationError, IntakeError
from .events import (
    InboundEvent,
    decode_action_payload,
    from_job,
    parse_button_action,
    parse_chat_event,
    parse_slash_command,
    to_job,
)
from .github import GitHubClient
from .log import configure_logging, log_event, rid
from .signature import verify
from .slack import SlackClient

logger = logging.getLogger(__name__)

JOB_KEY = "intake_bot_job"
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

# Lives as long as the warm container; see CONVERSATION_BUCKET for shared state.
_MEMORY_STORE = MemoryStore()


def _boto3():
    # Allow tests to monkeypatch module-level `boto3` symbol.
    return globals().get("boto3") or importlib.import_module("boto3")


# ----- Event helpers -----
def _response(
    status: int, body: dict[str, Any] | None = None, cors: bool = False
) -> dict[str, Any]:
    headers = {"Content-Type": "application/json"}
    if cors:
        headers.update(CORS_HEADERS)
    return {
        "statusCode": status,
        "headers": headers,
        "body": json.dumps(body, ensure_ascii=False) if body is not None else "",
    }


def _raw_body(event: dict[str, Any]) -> str:
    body = event.get("body") or ""
    if event.get("isBase64Encoded"):
        body = base64.b64decode(body)
    if isinstance(body, (bytes, bytearray)):
        body = body.decode("utf-8")
    return body


def _get_body(event: dict[str, Any]) -> dict[str, Any]:
    try:
        data = json.loads(_raw_body(event) or "{}")
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _get_header(event: dict[str, Any], name: str) -> str | None:
    headers = event.get("headers") or {}
    for k, v in headers.items():
        if k.lower() == name.lower():
            return v
    return None


def _method(event: dict[str, Any]) -> str:
    method = event.get("httpMethod") or ((event.get("requestContext") or {}).get("http") or {}).get(
        "method"
    )
    return (method or "POST").upper()


def _route_name(event: dict[str, Any]) -> str:
    path = event.get("rawPath") or event.get("path") or ""
    return path.rstrip("/").rsplit("/", 1)[-1]


# ----- Wiring -----
def _settings() -> Settings:
    return load_secrets(load_settings())


def _github(settings: Settings) -> GitHubClient | None:
    if not settings.github_configured:
        return None
    return GitHubClient(
        settings.github_token or "",
        settings.github_owner or "",
        settings.github_repo or "",
        settings.github_api_url,
        settings.http_timeout_seconds,
    )


def _slack(settings: Settings) -> SlackClient:
    return SlackClient(settings.slack_bot_token, settings.http_timeout_seconds)


def _cache(settings: Settings) -> ConversationCache:
    if settings.conversation_bucket:
        store: Any = S3Store(settings.conversation_bucket, settings.conversation_prefix)
    else:
        store = _MEMORY_STORE
    return ConversationCache(
        store,
        max_turns=settings.conversation_max_turns,
        max_keys=settings.conversation_max_keys,
        ttl_seconds=settings.conversation_ttl_seconds,
    )


def _router(settings: Settings) -> CommandRouter:
    return CommandRouter(settings, _github(settings), _slack(settings), _cache(settings))


def run_job(job: dict[str, Any], settings: Settings | None = None) -> dict[str, Any] | None:
    settings = settings or _settings()
    inbound = from_job(job)
    t0 = time.time()
    result = _router(settings).route(inbound)
    log_event("job_done", kind=job.get("kind"), ms=int((time.time() - t0) * 1000))
    return result


def _defer(inbound: InboundEvent, settings: Settings, context: Any) -> None:
    """Run `inbound` after the ack: async self-invoke in Lambda, inline otherwise."""
    job = to_job(inbound)
    target = settings.worker_function_name or getattr(context, "function_name", None)
    if target:
        try:
            _boto3().client("lambda").invoke(
                FunctionName=target,
                InvocationType="Event",
                Payload=json.dumps({JOB_KEY: job}).encode("utf-8"),
            )
            log_event("job_deferred", rid=rid(context), kind=job["kind"], target=target)
            return
        except Exception:
            logger.exception("async invoke failed; running job inline")
    run_job(job, settings)


def _verified(event: dict[str, Any], settings: Settings, raw: str, context: Any) -> bool:
    if settings.slack_skip_verification:
        return True
    ok = verify(event.get("headers") or {}, raw, settings.slack_signing_secret)
    if not ok:
        log_event("auth_failed", level=logging.WARNING, rid=rid(context), reason="bad_signature")
    return ok


def _notify_best_effort(slack: SlackClient, url: str | None, msg: dict[str, Any], context: Any) -> None:
    if not url:
        return
    try:
        slack.post_webhook(url, msg)
    except IntakeError as e:
        log_event("slack_notify_failed", level=logging.WARNING, rid=rid(context), error=str(e))


def endpoint(cors: bool = False, internal_error: str = "Internal server error"):
    """Method guard + error taxonomy -> HTTP status mapping for one endpoint."""

    def wrap(fn: Callable[[dict[str, Any], Any, Settings], dict[str, Any]]):
        @functools.wraps(fn)
        def handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
            configure_logging()
            method = _method(event)
            if cors and method == "OPTIONS":
                return _response(200, None, cors)
            if method != "POST":
                return _response(405, {"error": "Method not allowed"}, cors)
            try:
                return fn(event, context, _settings())
            except ClientInputError as e:
                return _response(400, {"error": str(e)}, cors)
            except ConfigurationError as e:
                log_event("config_error", level=logging.ERROR, rid=rid(context), error=str(e))
                return _response(500, {"error": "Server configuration error"}, cors)
            except Exception:
                logger.exception("%s failed", fn.__name__)
                return _response(500, {"error": internal_error}, cors)

        return handler

    return wrap


# ----- Endpoints -----
@endpoint(cors=True)
def report_error_handler(event: dict[str, Any], context: Any, settings: Settings) -> dict[str, Any]:
    body = _get_body(event)
    errors = intake.validate_error_report(body)
    require_github(settings)
    gh = _github(settings)
    slack = _slack(settings)
    issues: list[dict[str, Any]] = []
    for group in intake.group_errors(errors):
        title, text, labels = intake.error_issue(group, body.get("environment"))
        issue = gh.create_issue(title, text, labels)
        issues.append(issue)
        _notify_best_effort(
            slack, notify.webhook_for("bug", settings), notify.error_report_message(group, issue), context
        )
    log_event(
        "errors_reported",
        rid=rid(context),
        reported=len(errors),
        issues=[i.get("number") for i in issues],
    )
    return _response(
        200,
        {
            "success": True,
            "issuesCreated": len(issues),
            "issues": [{"id": i.get("number"), "url": i.get("html_url")} for i in issues],
        },
        cors=True,
    )


@endpoint(cors=True)
def submit_feedback_handler(event: dict[str, Any], context: Any, settings: Settings) -> dict[str, Any]:
    feedback = intake.validate_feedback(_get_body(event))
    require_github(settings)
    title, text, labels = intake.feedback_issue(feedback)
    issue = _github(settings).create_issue(title, text, labels)
    _notify_best_effort(
        _slack(settings),
        notify.webhook_for(feedback["type"], settings),
        notify.feedback_message(feedback, issue),
        context,
    )
    log_event("feedback_filed", rid=rid(context), type=feedback["type"], issue=issue.get("number"))
    return _response(
        200,
        {"success": True, "issueUrl": issue.get("html_url"), "issueNumber": issue.get("number")},
        cors=True,
    )


@endpoint(cors=True, internal_error="Failed to send notification")
def slack_notify_handler(event: dict[str, Any], context: Any, settings: Settings) -> dict[str, Any]:
    body = _get_body(event)
    kind = body.get("type")
    if not kind:
        raise ClientInputError("Missing notification type")
    data = body.get("data")
    if data is not None and not isinstance(data, dict):
        raise ClientInputError("data must be an object")
    webhook_url = notify.webhook_for(kind, settings)
    if not webhook_url:
        log_event("config_error", level=logging.ERROR, rid=rid(context), error="no webhook")
        return _response(500, {"error": "Slack webhook not configured"}, cors=True)
    _slack(settings).post_webhook(webhook_url, notify.format_notification(kind, data))
    log_event("notification_sent", rid=rid(context), type=kind)
    return _response(200, {"success": True}, cors=True)


@endpoint()
def slack_commands_handler(event: dict[str, Any], context: Any, settings: Settings) -> dict[str, Any]:
    raw = _raw_body(event)
    if not _verified(event, settings, raw, context):
        return _response(401, {"error": "Invalid signature"})
    cmd = parse_slash_command(raw)
    log_event("command_received", rid=rid(context), command=cmd.command, user=cmd.user_name)
    _defer(cmd, settings, context)
    return _response(200, ephemeral(f"Processing your `{cmd.command}` command..."))


@endpoint()
def slack_actions_handler(event: dict[str, Any], context: Any, settings: Settings) -> dict[str, Any]:
    raw = _raw_body(event)
    if not _verified(event, settings, raw, context):
        return _response(401, {"error": "Invalid signature"})
    act = parse_button_action(decode_action_payload(raw))
    if act is None:
        return _response(200)
    log_event("action_received", rid=rid(context), action=act.action_id, user=act.user_name)
    _defer(act, settings, context)
    return _response(200)


@endpoint()
def slack_events_handler(event: dict[str, Any], context: Any, settings: Settings) -> dict[str, Any]:
    raw = _raw_body(event)
    if not _verified(event, settings, raw, context):
        return _response(401, {"error": "Invalid signature"})
    body = _get_body(event)
    if body.get("type") == "url_verification":
        return _response(200, {"challenge": body.get("challenge")})
    if _get_header(event, "X-Slack-Retry-Num"):
        # The first delivery is already being handled.
        log_event("retry_ignored", rid=rid(context), retry=_get_header(event, "X-Slack-Retry-Num"))
        return _response(200)
    msg = parse_chat_event(body)
    if msg is None:
        return _response(200)
    log_event("chat_received", rid=rid(context), key=msg.context_key)
    _defer(msg, settings, context)
    return _response(200)


ROUTES: dict[str, Callable[[dict[str, Any], Any], dict[str, Any]]] = {
    "report-error": report_error_handler,
    "submit-feedback": submit_feedback_handler,
    "slack-notify": slack_notify_handler,
    "slack-commands": slack_commands_handler,
    "slack-actions": slack_actions_handler,
    "slack-claude": slack_events_handler,
}


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any] | None:
    """Single entry point: async worker jobs first, then path routing."""
    configure_logging()
    if JOB_KEY in event:
        # Lambda retries async invokes that raise; a retry would post the reply twice.
        try:
            run_job(event[JOB_KEY])
        except Exception:
            logger.exception("job failed rid=%s", rid(context))
        return None
    handler = ROUTES.get(_route_name(event))
    if handler is None:
        return _response(404, {"error": "Not found"})
    return handler(event, context)
