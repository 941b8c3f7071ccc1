import os

import pytest

ENV_PREFIXES = (
    "GITHUB_",
    "SLACK_",
    "ANTHROPIC_",
    "LLM_",
    "CONVERSATION_",
    "WORKER_",
    "SECRETS_",
    "DEPLOY_",
    "AI_ANALYZE_",
    "ASSISTANT_",
    "ISSUE_",
    "ANALYZER_",
    "LOG_",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith(ENV_PREFIXES):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def github_env(monkeypatch):
    monkeypatch.setenv("GITHUB_TOKEN", "ghp_test")
    monkeypatch.setenv("GITHUB_OWNER", "acme")
    monkeypatch.setenv("GITHUB_REPO", "stretch")
