"""
Inbound Slack events as a small tagged union.

Each event is built from the raw request once, acknowledged, and then either
handled in-process or serialised as a job for the async worker.
"""

from __future__ import annotations

import json
import re
import urllib.parse
from dataclasses import asdict, dataclass
from typing import Any, Union

from .errors import ClientInputError

MENTION_RE = re.compile(r"<@[A-Z0-9]+>")


@dataclass(frozen=True)
class SlashCommand:
    command: str
    text: str = ""
    user_name: str = ""
    response_url: str | None = None


@dataclass(frozen=True)
class ButtonAction:
    action_id: str
    value: str | None = None
    user_name: str = ""
    response_url: str | None = None


@dataclass(frozen=True)
class ChatMessage:
    channel: str
    thread_ts: str
    text: str
    user: str | None = None

    @property
    def context_key(self) -> str:
        return f"{self.channel}:{self.thread_ts}"


InboundEvent = Union[SlashCommand, ButtonAction, ChatMessage]

_KINDS: dict[str, type] = {
    "command": SlashCommand,
    "action": ButtonAction,
    "chat": ChatMessage,
}


def parse_form(raw_body: str) -> dict[str, str]:
    return {k: v[0] for k, v in urllib.parse.parse_qs(raw_body, keep_blank_values=True).items()}


def parse_slash_command(raw_body: str) -> SlashCommand:
    form = parse_form(raw_body)
    command = (form.get("command") or "").strip()
    if not command:
        raise ClientInputError("Missing command")
    return SlashCommand(
        command=command,
        text=(form.get("text") or "").strip(),
        user_name=form.get("user_name") or "",
        response_url=form.get("response_url") or None,
    )


def decode_action_payload(raw_body: str) -> dict[str, Any]:
    """Interactive payloads arrive as raw JSON or as a form field `payload`."""
    try:
        text = raw_body.strip()
        if not text.startswith("{"):
            text = parse_form(raw_body).get("payload") or ""
        payload = json.loads(text)
    except ValueError as e:
        raise ClientInputError("Invalid payload") from e
    if not isinstance(payload, dict):
        raise ClientInputError("Invalid payload")
    return payload


def user_display_name(user: Any) -> str:
    if not isinstance(user, dict):
        return str(user or "")
    return str(user.get("name") or user.get("username") or user.get("id") or "")


def parse_button_action(payload: dict[str, Any]) -> ButtonAction | None:
    """Return the first action of an interactive payload, or None if it has none."""
    acts = payload.get("actions") or []
    if not acts or not isinstance(acts[0], dict):
        return None
    action = acts[0]
    return ButtonAction(
        action_id=str(action.get("action_id") or ""),
        value=action.get("value"),
        user_name=user_display_name(payload.get("user")),
        response_url=payload.get("response_url") or None,
    )


def parse_chat_event(body: dict[str, Any]) -> ChatMessage | None:
    """Return a ChatMessage for a mention or DM, None for anything we ignore."""
    event = body.get("event")
    if not isinstance(event, dict):
        return None
    is_mention = event.get("type") == "app_mention"
    is_dm = event.get("type") == "message" and event.get("channel_type") == "im"
    if not (is_mention or is_dm):
        return None
    if event.get("bot_id") or event.get("subtype"):
        return None
    text = MENTION_RE.sub("", event.get("text") or "").strip()
    if not text or not event.get("channel"):
        return None
    return ChatMessage(
        channel=str(event["channel"]),
        thread_ts=str(event.get("thread_ts") or event.get("ts") or ""),
        text=text,
        user=event.get("user"),
    )


def to_job(event: InboundEvent) -> dict[str, Any]:
    kind = next(k for k, cls in _KINDS.items() if isinstance(event, cls))
    return {"kind": kind, "event": asdict(event)}


def from_job(job: dict[str, Any]) -> InboundEvent:
    cls = _KINDS.get(job.get("kind") or "")
    if cls is None:
        raise ClientInputError(f"unknown job kind: {job.get('kind')}")
    return cls(**(job.get("event") or {}))
