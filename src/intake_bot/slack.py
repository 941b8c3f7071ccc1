"""
Outbound Slack calls: incoming webhooks, response_url callbacks, chat.postMessage.
"""

from __future__ import annotations

from typing import Any

from .errors import ConfigurationError, RemoteApiError
from .transport import request_json

POST_MESSAGE_URL = "https://slack.com/api/chat.postMessage"
MAX_MESSAGE_CHARS = 3900


def split_message(text: str, max_len: int = MAX_MESSAGE_CHARS) -> list[str]:
    """Split text into chunks of at most `max_len` characters.

    Prefers the last newline before the limit; when that newline falls in the
    first half of the window the chunk is cut at the limit instead.
    """
    chunks: list[str] = []
    remaining = text
    while remaining:
        if len(remaining) <= max_len:
            chunks.append(remaining)
            break
        split_at = remaining.rfind("\n", 0, max_len + 1)
        if split_at < max_len // 2:
            split_at = max_len
        chunks.append(remaining[:split_at])
        remaining = remaining[split_at:]
    return chunks


class SlackClient:
    def __init__(self, bot_token: str | None = None, timeout: int = 8) -> None:
        self.bot_token = bot_token
        self.timeout = timeout

    def post_webhook(self, url: str, message: dict[str, Any]) -> Any:
        return request_json("Slack", "POST", url, body=message, timeout=self.timeout)

    def post_response(self, response_url: str, message: dict[str, Any]) -> Any:
        return request_json("Slack", "POST", response_url, body=message, timeout=self.timeout)

    def post_message(self, channel: str, text: str, thread_ts: str | None = None) -> dict[str, Any]:
        if not self.bot_token:
            raise ConfigurationError("SLACK_BOT_TOKEN not configured")
        body: dict[str, Any] = {"channel": channel, "text": text, "unfurl_links": False}
        if thread_ts:
            body["thread_ts"] = thread_ts
        data = request_json(
            "Slack",
            "POST",
            POST_MESSAGE_URL,
            headers={"Authorization": f"Bearer {self.bot_token}"},
            body=body,
            timeout=self.timeout,
        )
        # Web API reports failures in-band with HTTP 200
        if isinstance(data, dict) and data.get("ok") is False:
            raise RemoteApiError("Slack", 200, str(data.get("error") or "unknown_error"))
        return data

    def post_long_message(self, channel: str, text: str, thread_ts: str | None = None) -> int:
        chunks = split_message(text)
        for chunk in chunks:
            self.post_message(channel, chunk, thread_ts)
        return len(chunks)
