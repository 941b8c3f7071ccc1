"""
Configuration helpers and defaults.

Centralize tunables to avoid magic numbers in code/tests.
"""

from __future__ import annotations

import dataclasses
import importlib
import json
import os
from dataclasses import dataclass

from .errors import ConfigurationError

DEFAULT_ASSISTANT_CONTEXT = (
    "The team maintains a static single-page web application deployed via "
    "GitHub Pages, with serverless handlers for error reports and feedback."
)

# Credentials that may be supplied by a Secrets Manager secret instead of env.
SECRET_KEYS = ("GITHUB_TOKEN", "SLACK_BOT_TOKEN", "SLACK_SIGNING_SECRET", "ANTHROPIC_API_KEY")


def _boto3():
    # Allow tests to monkeypatch module-level `boto3` symbol.
    return globals().get("boto3") or importlib.import_module("boto3")


def _env(name: str, default: str | None = None) -> str | None:
    v = os.getenv(name)
    return v if v not in (None, "") else default


def _flag(name: str, default: str) -> bool:
    return (_env(name, default) or default).lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class Settings:
    github_token: str | None
    github_owner: str | None
    github_repo: str | None
    github_api_url: str
    slack_signing_secret: str | None
    slack_skip_verification: bool
    slack_bot_token: str | None
    slack_webhook_url: str | None
    slack_bugs_webhook: str | None
    slack_features_webhook: str | None
    slack_deployments_webhook: str | None
    anthropic_api_key: str | None
    llm_provider: str
    llm_model: str
    llm_timeout_seconds: int
    http_timeout_seconds: int
    assistant_context: str
    deploy_workflow: str
    ai_analyze_label: str
    worker_function_name: str | None
    conversation_bucket: str | None
    conversation_prefix: str
    conversation_max_turns: int
    conversation_max_keys: int
    conversation_ttl_seconds: int
    secrets_name: str | None

    @property
    def github_configured(self) -> bool:
        return bool(self.github_token and self.github_owner and self.github_repo)


def load_settings() -> Settings:
    """Load settings from environment with safe defaults for local tests."""

    provider = (_env("LLM_PROVIDER", "anthropic") or "anthropic").lower()
    default_model = (
        "anthropic.claude-3-5-sonnet-20240620-v1:0"
        if provider == "bedrock"
        else "claude-sonnet-4-5-20250929"
    )

    return Settings(
        github_token=_env("GITHUB_TOKEN"),
        github_owner=_env("GITHUB_OWNER"),
        github_repo=_env("GITHUB_REPO"),
        github_api_url=(_env("GITHUB_API_URL", "https://api.github.com") or "").rstrip("/"),
        slack_signing_secret=_env("SLACK_SIGNING_SECRET"),
        slack_skip_verification=_flag("SLACK_SKIP_VERIFICATION", "false"),
        slack_bot_token=_env("SLACK_BOT_TOKEN"),
        slack_webhook_url=_env("SLACK_WEBHOOK_URL"),
        slack_bugs_webhook=_env("SLACK_BUGS_WEBHOOK"),
        slack_features_webhook=_env("SLACK_FEATURES_WEBHOOK"),
        slack_deployments_webhook=_env("SLACK_DEPLOYMENTS_WEBHOOK"),
        anthropic_api_key=_env("ANTHROPIC_API_KEY"),
        llm_provider=provider,
        llm_model=_env("LLM_MODEL", default_model) or default_model,
        llm_timeout_seconds=int(_env("LLM_TIMEOUT_SECONDS", "60") or 60),
        http_timeout_seconds=int(_env("HTTP_TIMEOUT_SECONDS", "8") or 8),
        assistant_context=_env("ASSISTANT_CONTEXT", DEFAULT_ASSISTANT_CONTEXT)
        or DEFAULT_ASSISTANT_CONTEXT,
        deploy_workflow=_env("DEPLOY_WORKFLOW", "deploy.yml") or "deploy.yml",
        ai_analyze_label=_env("AI_ANALYZE_LABEL", "ai-analyze") or "ai-analyze",
        worker_function_name=_env("WORKER_FUNCTION_NAME"),
        conversation_bucket=_env("CONVERSATION_BUCKET"),
        conversation_prefix=_env("CONVERSATION_PREFIX", "conversations/") or "conversations/",
        conversation_max_turns=int(_env("CONVERSATION_MAX_TURNS", "20") or 20),
        conversation_max_keys=int(_env("CONVERSATION_MAX_KEYS", "100") or 100),
        conversation_ttl_seconds=int(_env("CONVERSATION_TTL_SECONDS", "3600") or 3600),
        secrets_name=_env("SECRETS_NAME"),
    )


def load_secrets(settings: Settings) -> Settings:
    """Overlay credentials from the Secrets Manager secret named by SECRETS_NAME.

    Keys present in the secret win over environment values; keys it does not
    carry keep whatever the environment provided.
    """
    if not settings.secrets_name:
        return settings
    client = _boto3().client("secretsmanager")
    try:
        raw = client.get_secret_value(SecretId=settings.secrets_name)["SecretString"]
        data = json.loads(raw)
    except (KeyError, ValueError) as e:
        raise ConfigurationError(f"secret {settings.secrets_name} is not a JSON object") from e
    overrides = {
        key.lower(): str(data[key]) for key in SECRET_KEYS if data.get(key) not in (None, "")
    }
    return dataclasses.replace(settings, **overrides)


def require_github(settings: Settings) -> None:
    if not settings.github_configured:
        raise ConfigurationError("Missing GitHub configuration environment variables")
