"""
Claude wrapper over two transports.

- provider "anthropic": Messages API over HTTPS (x-api-key).
- provider "bedrock":   Anthropic Messages API on Bedrock (anthropic_version=bedrock-2023-05-31).
"""

from __future__ import annotations

import importlib
import json
from typing import Any

from .config import Settings
from .conversation import Turn, as_messages
from .errors import ConfigurationError, RemoteApiError
from .transport import request_json

ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"


def _boto3():
    # Allow tests to monkeypatch module-level `boto3` symbol.
    return globals().get("boto3") or importlib.import_module("boto3")


def _bedrock_client():
    return _boto3().client("bedrock-runtime")


def _first_text(data: dict[str, Any]) -> str:
    # Anthropic messages returns { content: [{text: "..."}]} on both transports
    content = data.get("content") or [{}]
    return content[0].get("text", "")


def _invoke_bedrock(
    model_id: str, system: str | None, messages: list[dict[str, Any]], max_tokens: int
) -> str:
    body: dict[str, Any] = {
        "anthropic_version": "bedrock-2023-05-31",
        "max_tokens": max_tokens,
        "messages": messages,
    }
    if system:
        body["system"] = system
    client = _bedrock_client()
    resp = client.invoke_model(
        modelId=model_id,
        body=json.dumps(body),
        accept="application/json",
        contentType="application/json",
    )
    return _first_text(json.loads(resp["body"].read()))


def _invoke_anthropic(
    settings: Settings, system: str | None, messages: list[dict[str, Any]], max_tokens: int
) -> str:
    if not settings.anthropic_api_key:
        raise ConfigurationError("ANTHROPIC_API_KEY not configured")
    body: dict[str, Any] = {
        "model": settings.llm_model,
        "max_tokens": max_tokens,
        "messages": messages,
    }
    if system:
        body["system"] = system
    data = request_json(
        "Claude",
        "POST",
        ANTHROPIC_URL,
        headers={"x-api-key": settings.anthropic_api_key, "anthropic-version": ANTHROPIC_VERSION},
        body=body,
        timeout=settings.llm_timeout_seconds,
    )
    return _first_text(data)


def is_configured(settings: Settings) -> bool:
    return settings.llm_provider == "bedrock" or bool(settings.anthropic_api_key)


def chat(
    settings: Settings, system: str | None, messages: list[dict[str, Any]], max_tokens: int = 1024
) -> str:
    if settings.llm_provider == "bedrock":
        try:
            return _invoke_bedrock(settings.llm_model, system, messages, max_tokens)
        except (KeyError, ValueError) as e:
            raise RemoteApiError("Bedrock", 0, f"unexpected response: {e}") from e
    return _invoke_anthropic(settings, system, messages, max_tokens)


def ask(settings: Settings, question: str) -> str:
    prompt = (
        "You are a helpful assistant for a software development team. "
        f"{settings.assistant_context}\n"
        f"Answer the following question concisely:\n\n{question}"
    )
    return chat(settings, None, [{"role": "user", "content": prompt}], max_tokens=1024)


def converse(settings: Settings, turns: list[Turn]) -> str:
    system = "\n".join(
        [
            "You are an AI assistant embedded in a Slack workspace for a software development team.",
            settings.assistant_context,
            "",
            "You can help with:",
            "- Debugging issues and suggesting fixes",
            "- Architectural decisions and best practices",
            "- Code review and optimization suggestions",
            "- Feature planning and implementation advice",
            "",
            "Keep responses concise and formatted for Slack (use *bold*, `code`, and bullet points).",
            "When suggesting code changes, use code blocks with the appropriate language.",
        ]
    )
    return chat(settings, system, as_messages(turns), max_tokens=1500)


def analyze_bug(settings: Settings, prompt: str) -> str:
    return chat(settings, None, [{"role": "user", "content": prompt}], max_tokens=4096)
