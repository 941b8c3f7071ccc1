import dataclasses
import datetime as dt
import json

import pytest
from fakes import FakeGitHub, FakeSlack, button

from intake_bot import actions, commands, llm
from intake_bot.commands import KNOWN_COMMANDS, CommandRouter
from intake_bot.config import load_settings
from intake_bot.conversation import ConversationCache, MemoryStore, Turn
from intake_bot.errors import ConfigurationError, RemoteApiError
from intake_bot.events import ButtonAction, ChatMessage, SlashCommand

NOW = dt.datetime(2024, 5, 1, 12, 0, tzinfo=dt.timezone.utc)
RESPONSE_URL = "https://hooks.slack.com/commands/T1/123/abc"


def _router(**overrides):
    settings = dataclasses.replace(load_settings(), **overrides)
    gh, slack = FakeGitHub(), FakeSlack()
    cache = ConversationCache(MemoryStore(), clock=lambda: 1000.0)
    return CommandRouter(settings, gh, slack, cache, now=lambda: NOW), gh, slack, cache


def _cmd(command, text="", user="alice"):
    return SlashCommand(command, text, user, RESPONSE_URL)


def _act(action_id, value, user="bob"):
    return ButtonAction(action_id, value, user, RESPONSE_URL)


def test_deploy_defaults_to_main_and_encodes_requester():
    router, _gh, _slack, _cache = _router()
    result = router.handle_command(_cmd("/deploy"))
    assert result["response_type"] == "in_channel"
    assert "*Branch:* `main`" in result["blocks"][0]["text"]["text"]
    confirm = button(result, actions.CONFIRM_DEPLOY)
    assert json.loads(confirm["value"]) == {"branch": "main", "requestedBy": "alice"}
    cancel = button(result, actions.CANCEL_DEPLOY)
    assert cancel["style"] == "danger"


def test_deploy_uses_given_branch():
    router, *_ = _router()
    result = router.handle_command(_cmd("/deploy", "release/1.2"))
    confirm = button(result, actions.CONFIRM_DEPLOY)
    assert actions.parse(actions.CONFIRM_DEPLOY, confirm["value"]).branch == "release/1.2"


def test_unknown_command_lists_available_commands():
    router, *_ = _router()
    result = router.handle_command(_cmd("/frobnicate"))
    assert result["response_type"] == "ephemeral"
    assert result["text"].startswith("Unknown command: `/frobnicate`.")
    for name in KNOWN_COMMANDS:
        assert name in result["text"]


def test_bug_command_creates_issue_with_buttons():
    router, gh, *_ = _router()
    result = router.handle_command(_cmd("/bug", "Video won't pause"))
    name, title, body, labels = gh.calls[0]
    assert name == "create_issue"
    assert title == "🐛 [Slack] Video won't pause"
    assert labels == ["bug", "slack-reported"]
    assert "**Reported by:** @alice" in body
    assert "**Reported at:** 2024-05-01T12:00:00Z" in body
    assert "<https://github.com/acme/stretch/issues/101|#101>" in result["blocks"][0]["text"]["text"]
    analyze = button(result, actions.TRIGGER_AI_ANALYSIS)
    assert actions.parse(actions.TRIGGER_AI_ANALYSIS, analyze["value"]).issue_number == 101


def test_feature_command_labels():
    router, gh, *_ = _router()
    result = router.handle_command(_cmd("/feature", "Dark mode"))
    assert gh.calls[0][3] == ["enhancement", "slack-requested"]
    assert button(result, actions.ADD_TO_ROADMAP)


@pytest.mark.parametrize("command", ["/bug", "/feature", "/ask-claude", "/approve-pr"])
def test_commands_without_text_show_usage(command):
    router, gh, *_ = _router()
    result = router.handle_command(_cmd(command))
    assert result["response_type"] == "ephemeral"
    assert result["text"].startswith("Usage:")
    assert gh.calls == []


def test_bug_status_single_issue_and_not_found():
    router, *_ = _router()
    found = router.handle_command(_cmd("/bug-status", "#12"))
    text = found["blocks"][0]["text"]["text"]
    assert "*#12: Video won't pause*" in text
    assert "*Labels:* bug, priority:high" in text
    assert "*Assignee:* unassigned" in text

    missing = router.handle_command(_cmd("/bug-status", "404"))
    assert missing == {"response_type": "ephemeral", "text": "Issue #404 not found."}


def test_bug_status_lists_open_bugs():
    router, gh, *_ = _router()
    assert "No open bugs" in router.handle_command(_cmd("/bug-status"))["text"]

    gh.open_bugs = [
        {"number": 1, "title": "A", "html_url": "https://x/1", "labels": [{"name": "bug"}]},
        {"number": 2, "title": "B", "html_url": "https://x/2", "labels": []},
    ]
    result = router.handle_command(_cmd("/bug-status"))
    assert result["blocks"][1]["text"]["text"] == "• <https://x/1|#1> A (bug)\n• <https://x/2|#2> B ()"
    assert gh.calls[-1] == ("list_issues", {"labels": "bug", "state": "open", "per_page": 5})


def test_approve_pr_buttons_carry_approver():
    router, *_ = _router()
    result = router.handle_command(_cmd("/approve-pr", "7"))
    approve = button(result, actions.APPROVE_MERGE_PR)
    assert actions.parse(actions.APPROVE_MERGE_PR, approve["value"]) == actions.PullRef(7, "alice")
    assert "`ai-fix/issue-3` → `main`" in result["blocks"][0]["text"]["text"]
    assert router.handle_command(_cmd("/approve-pr", "404"))["text"] == "PR #404 not found."


def test_ask_claude(monkeypatch):
    router, *_ = _router()
    assert "not configured" in router.handle_command(_cmd("/ask-claude", "why?"))["text"]

    router, *_ = _router(anthropic_api_key="sk-test")
    monkeypatch.setattr(llm, "ask", lambda settings, q: f"because {q}")
    result = router.handle_command(_cmd("/ask-claude", "why?"))
    assert result["blocks"][2]["text"]["text"] == "🤖 *Claude:*\nbecause why?"


def test_trigger_ai_analysis_accepts_legacy_bare_number():
    router, gh, *_ = _router()
    router.handle_action(_act(actions.TRIGGER_AI_ANALYSIS, "5"))
    router.handle_action(_act(actions.TRIGGER_AI_ANALYSIS, '{"issueNumber": 6}'))
    assert gh.calls == [("add_labels", 5, ["ai-analyze"]), ("add_labels", 6, ["ai-analyze"])]


def test_add_to_roadmap():
    router, gh, *_ = _router()
    result = router.handle_action(_act(actions.ADD_TO_ROADMAP, '{"issueNumber": 8}'))
    assert gh.calls == [("add_labels", 8, ["roadmap"])]
    assert result["text"] == "📋 Issue #8 added to the roadmap!"


def test_approve_merge_reviews_then_squash_merges():
    router, gh, *_ = _router()
    result = router.handle_action(_act(actions.APPROVE_MERGE_PR, '{"prNumber": 3}'))
    assert gh.names() == ["create_review", "merge_pull"]
    assert gh.calls[1][3] == "squash"
    assert result["text"] == "✅ PR #3 approved and merged by bob!"


def test_approve_merge_continues_when_review_fails():
    router, gh, *_ = _router()
    gh.fail["create_review"] = RemoteApiError("GitHub", 422, "cannot approve your own PR")
    result = router.handle_action(_act(actions.APPROVE_MERGE_PR, '{"prNumber": 3}'))
    assert gh.names() == ["create_review", "merge_pull"]
    assert result["text"].startswith("✅")


def test_approve_merge_reports_merge_failure():
    router, gh, *_ = _router()
    gh.fail["merge_pull"] = RemoteApiError("GitHub", 405, "Pull Request is not mergeable")
    result = router.handle_action(_act(actions.APPROVE_MERGE_PR, '{"prNumber": 3}'))
    assert result["text"] == "❌ Failed to merge PR #3: Pull Request is not mergeable"


def test_reject_closes_pr():
    router, gh, *_ = _router()
    result = router.handle_action(_act(actions.REJECT_PR, '{"prNumber": 4}'))
    assert gh.calls == [("close_pull", 4)]
    assert result["text"] == "❌ PR #4 rejected by bob."


def test_confirm_deploy_dispatches_workflow():
    router, gh, *_ = _router(deploy_workflow="release.yml")
    result = router.handle_action(
        _act(actions.CONFIRM_DEPLOY, '{"branch": "main", "requestedBy": "alice"}')
    )
    assert gh.calls == [("dispatch_workflow", "release.yml", "main", {"deployer": "bob"})]
    assert result["replace_original"] is True
    assert "Deployment started" in result["text"]


def test_confirm_deploy_failure_replaces_message():
    router, gh, *_ = _router()
    gh.fail["dispatch_workflow"] = RemoteApiError("GitHub", 403, "Resource not accessible")
    result = router.handle_action(_act(actions.CONFIRM_DEPLOY, ""))
    assert result == {
        "replace_original": True,
        "text": "❌ Deployment failed to start. Check GitHub Actions permissions.",
    }


def test_cancel_and_acknowledge():
    router, gh, *_ = _router()
    assert router.handle_action(_act(actions.CANCEL_DEPLOY, "")) == {
        "replace_original": True,
        "text": "❌ Deployment cancelled.",
    }
    ack = router.handle_action(_act(actions.ACKNOWLEDGE_INCIDENT, '{"incidentId": "inc-1"}'))
    assert ack["text"] == "🔔 Incident acknowledged by bob at 2024-05-01T12:00:00Z"
    assert gh.calls == []


def test_unknown_action():
    router, *_ = _router()
    assert router.handle_action(_act("launch_rockets", "{}")) == {"text": "Unknown action: launch_rockets"}


def test_route_posts_exactly_once():
    router, _gh, slack, _cache = _router()
    result = router.route(_cmd("/deploy"))
    assert slack.responses == [(RESPONSE_URL, result)]


def test_route_turns_errors_into_messages():
    router, gh, slack, _cache = _router()
    gh.fail["create_issue"] = RemoteApiError("GitHub", 500, "boom")
    router.route(_cmd("/bug", "it broke"))
    router.route(_act(actions.REJECT_PR, "not json"))
    assert slack.responses[0][1] == {
        "response_type": "ephemeral",
        "text": "Error processing command: GitHub API error: 500 boom",
    }
    assert slack.responses[1][1]["text"].startswith("Error: button value is not JSON")


def test_route_without_github_reports_configuration():
    settings = load_settings()
    slack = FakeSlack()
    router = CommandRouter(settings, None, slack)
    router.route(_cmd("/bug", "x"))
    assert "GitHub is not configured" in slack.responses[0][1]["text"]


def test_route_survives_response_url_failure():
    router, _gh, slack, _cache = _router()
    slack.fail = RemoteApiError("Slack", 404, "expired_url")
    result = router.route(_cmd("/deploy"))
    assert result["response_type"] == "in_channel"


def test_chat_replies_in_thread_and_remembers(monkeypatch):
    router, _gh, slack, cache = _router(anthropic_api_key="sk-test")
    seen = []

    def fake_converse(settings, turns):
        seen.append(list(turns))
        return f"reply {len(turns)}"

    monkeypatch.setattr(llm, "converse", fake_converse)
    msg = ChatMessage("C1", "1700000000.1", "hello", "U1")
    router.route(msg)
    router.route(ChatMessage("C1", "1700000000.1", "again", "U1"))

    assert slack.messages == [
        ("C1", "reply 1", "1700000000.1"),
        ("C1", "reply 3", "1700000000.1"),
    ]
    assert seen[1] == [Turn("user", "hello"), Turn("assistant", "reply 1"), Turn("user", "again")]
    assert len(cache.get(msg.context_key)) == 4


def test_chat_llm_failure_posts_apology_and_keeps_only_user_turn(monkeypatch):
    router, _gh, slack, cache = _router()

    def boom(settings, turns):
        raise RemoteApiError("Claude", 529, "overloaded")

    monkeypatch.setattr(llm, "converse", boom)
    msg = ChatMessage("C1", "1.0", "hello")
    router.route(msg)
    assert slack.messages == [("C1", commands.CHAT_ERROR_TEXT, "1.0")]
    assert cache.get(msg.context_key) == [Turn("user", "hello")]


def test_chat_without_llm_configuration(monkeypatch):
    router, _gh, slack, _cache = _router()

    def missing(settings, turns):
        raise ConfigurationError("ANTHROPIC_API_KEY not configured")

    monkeypatch.setattr(llm, "converse", missing)
    router.route(ChatMessage("D1", "2.0", "hi"))
    assert slack.messages == [("D1", commands.CHAT_NOT_CONFIGURED_TEXT, "2.0")]
