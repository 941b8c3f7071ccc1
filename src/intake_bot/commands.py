"""
Slash-command, button-action and chat routing.

Every inbound event maps to exactly one handler. Handlers return a Slack
message dict; `CommandRouter.route` posts it to the event's response_url
(once) or, for chat, into the thread. Failures become text, never retries.
"""

from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Callable
from typing import Any

from . import actions, llm
from .config import Settings
from .conversation import ConversationCache
from .errors import ConfigurationError, RemoteApiError
from .events import ButtonAction, ChatMessage, InboundEvent, SlashCommand
from .github import GitHubClient
from .log import log_event
from .notify import action_button, actions_block, link_button, message, section
from .slack import SlackClient

logger = logging.getLogger(__name__)

KNOWN_COMMANDS = ("/bug", "/feature", "/ask-claude", "/bug-status", "/deploy", "/approve-pr")
CHAT_ERROR_TEXT = "Sorry, I encountered an error processing your request. Please try again."
CHAT_NOT_CONFIGURED_TEXT = (
    "Claude AI is not configured. Please set the ANTHROPIC_API_KEY environment variable."
)


def ephemeral(text: str) -> dict[str, Any]:
    return {"response_type": "ephemeral", "text": text}


def in_channel(text: str, **extra: Any) -> dict[str, Any]:
    return {"response_type": "in_channel", "text": text, **extra}


def _parse_number(text: str) -> int | None:
    t = (text or "").strip().lstrip("#")
    return int(t) if t.isdigit() else None


def _label_names(issue: dict[str, Any]) -> str:
    return ", ".join(
        (lbl.get("name") if isinstance(lbl, dict) else str(lbl)) for lbl in issue.get("labels") or []
    )


class CommandRouter:
    def __init__(
        self,
        settings: Settings,
        github: GitHubClient | None,
        slack: SlackClient,
        cache: ConversationCache | None = None,
        now: Callable[[], dt.datetime] | None = None,
    ) -> None:
        self.settings = settings
        self.github = github
        self.slack = slack
        self.cache = cache
        self.now = now or (lambda: dt.datetime.now(dt.timezone.utc))
        self.commands: dict[str, Callable[[SlashCommand], dict[str, Any]]] = {
            "/bug": self.bug,
            "/feature": self.feature,
            "/ask-claude": self.ask_claude,
            "/bug-status": self.bug_status,
            "/deploy": self.deploy,
            "/approve-pr": self.approve_pr,
        }
        self.actions: dict[str, Callable[[Any, ButtonAction], dict[str, Any]]] = {
            actions.TRIGGER_AI_ANALYSIS: self.trigger_ai_analysis,
            actions.APPROVE_MERGE_PR: self.approve_merge_pr,
            actions.REJECT_PR: self.reject_pr,
            actions.CONFIRM_DEPLOY: self.confirm_deploy,
            actions.CANCEL_DEPLOY: self.cancel_deploy,
            actions.ACKNOWLEDGE_INCIDENT: self.acknowledge_incident,
            actions.ADD_TO_ROADMAP: self.add_to_roadmap,
        }

    def _gh(self) -> GitHubClient:
        if self.github is None:
            raise ConfigurationError("GitHub is not configured")
        return self.github

    def _timestamp(self) -> str:
        return self.now().isoformat().replace("+00:00", "Z")

    # ----- Dispatch -----
    def handle_command(self, cmd: SlashCommand) -> dict[str, Any]:
        handler = self.commands.get(cmd.command)
        if handler is None:
            return ephemeral(
                f"Unknown command: `{cmd.command}`. Available commands: {', '.join(KNOWN_COMMANDS)}"
            )
        return handler(cmd)

    def handle_action(self, act: ButtonAction) -> dict[str, Any]:
        handler = self.actions.get(act.action_id)
        if handler is None:
            return {"text": f"Unknown action: {act.action_id}"}
        return handler(actions.parse(act.action_id, act.value), act)

    def route(self, event: InboundEvent) -> dict[str, Any] | None:
        """Handle one event and deliver its single response."""
        if isinstance(event, ChatMessage):
            return self.handle_chat(event)
        try:
            if isinstance(event, SlashCommand):
                result = self.handle_command(event)
            else:
                result = self.handle_action(event)
        except Exception as e:
            log_event(
                "route_failed",
                level=logging.ERROR,
                event=type(event).__name__,
                error=str(e),
            )
            if isinstance(event, SlashCommand):
                result = ephemeral(f"Error processing command: {e}")
            else:
                result = {"text": f"Error: {e}"}
        if event.response_url:
            try:
                self.slack.post_response(event.response_url, result)
            except Exception:
                logger.exception("response_url callback failed")
        return result

    # ----- Slash commands -----
    def bug(self, cmd: SlashCommand) -> dict[str, Any]:
        if not cmd.text:
            return ephemeral("Usage: `/bug <description of the bug>`")
        issue = self._gh().create_issue(
            f"🐛 [Slack] {cmd.text}",
            "\n".join(
                [
                    "## Bug Report (from Slack)",
                    "",
                    f"**Reported by:** @{cmd.user_name}",
                    f"**Description:** {cmd.text}",
                    f"**Reported at:** {self._timestamp()}",
                    "",
                    "---",
                    "*Reported via Slack /bug command*",
                ]
            ),
            ["bug", "slack-reported"],
        )
        url, number = issue.get("html_url"), issue.get("number")
        return message(
            section(
                f"🐛 *Bug reported by @{cmd.user_name}*\n>{cmd.text}\n\n"
                f"GitHub Issue: <{url}|#{number}>"
            ),
            actions_block(
                link_button("View Issue", url),
                action_button("AI Analyze", actions.TRIGGER_AI_ANALYSIS, actions.IssueRef(number)),
            ),
            response_type="in_channel",
        )

    def feature(self, cmd: SlashCommand) -> dict[str, Any]:
        if not cmd.text:
            return ephemeral("Usage: `/feature <description of the feature>`")
        issue = self._gh().create_issue(
            f"✨ [Slack] {cmd.text}",
            "\n".join(
                [
                    "## Feature Request (from Slack)",
                    "",
                    f"**Requested by:** @{cmd.user_name}",
                    f"**Description:** {cmd.text}",
                    f"**Requested at:** {self._timestamp()}",
                    "",
                    "👍 React to upvote this feature!",
                    "",
                    "---",
                    "*Requested via Slack /feature command*",
                ]
            ),
            ["enhancement", "slack-requested"],
        )
        url, number = issue.get("html_url"), issue.get("number")
        return message(
            section(
                f"✨ *Feature requested by @{cmd.user_name}*\n>{cmd.text}\n\n"
                f"GitHub Issue: <{url}|#{number}>\nReact with 👍 to upvote!"
            ),
            actions_block(
                link_button("View Issue", url),
                action_button("Add to Roadmap", actions.ADD_TO_ROADMAP, actions.IssueRef(number)),
            ),
            response_type="in_channel",
        )

    def ask_claude(self, cmd: SlashCommand) -> dict[str, Any]:
        if not cmd.text:
            return ephemeral("Usage: `/ask-claude <your question>`")
        if not llm.is_configured(self.settings):
            return ephemeral(
                "Claude AI is not configured. Set the ANTHROPIC_API_KEY environment variable."
            )
        answer = llm.ask(self.settings, cmd.text)
        return message(
            section(f"*@{cmd.user_name} asked:*\n>{cmd.text}"),
            {"type": "divider"},
            section(f"🤖 *Claude:*\n{answer}"),
            {
                "type": "context",
                "elements": [
                    {"type": "mrkdwn", "text": "_Mention the bot in a thread to continue the conversation_"}
                ],
            },
            response_type="in_channel",
        )

    def bug_status(self, cmd: SlashCommand) -> dict[str, Any]:
        gh = self._gh()
        if cmd.text:
            number = _parse_number(cmd.text)
            if number is None:
                return ephemeral("Usage: `/bug-status [issue number]`")
            try:
                issue = gh.get_issue(number)
            except RemoteApiError as e:
                if e.http_status == 404:
                    return ephemeral(f"Issue #{number} not found.")
                raise
            assignee = (issue.get("assignee") or {}).get("login") or "unassigned"
            return message(
                section(
                    f"*#{issue.get('number')}: {issue.get('title')}*\n"
                    f"*State:* {issue.get('state')}\n"
                    f"*Labels:* {_label_names(issue) or 'none'}\n"
                    f"*Assignee:* {assignee}\n"
                    f"<{issue.get('html_url')}|View on GitHub>"
                ),
                response_type="ephemeral",
            )

        issues = gh.list_issues(labels="bug", state="open", per_page=5)
        if not issues:
            return ephemeral("🎉 No open bugs! Great job!")
        listing = "\n".join(
            f"• <{i.get('html_url')}|#{i.get('number')}> {i.get('title')} ({_label_names(i)})"
            for i in issues
        )
        return message(
            {"type": "header", "text": {"type": "plain_text", "text": "🐛 Open Bugs"}},
            section(listing),
            response_type="ephemeral",
        )

    def deploy(self, cmd: SlashCommand) -> dict[str, Any]:
        branch = cmd.text.strip() or "main"
        return message(
            section(
                f"🚀 *Deployment requested by @{cmd.user_name}*\n"
                f"*Branch:* `{branch}`\n*Environment:* production"
            ),
            actions_block(
                action_button(
                    "Confirm Deploy",
                    actions.CONFIRM_DEPLOY,
                    actions.DeployRequest(branch, cmd.user_name),
                    "primary",
                ),
                action_button(
                    "Cancel",
                    actions.CANCEL_DEPLOY,
                    actions.DeployRequest(branch, cmd.user_name),
                    "danger",
                ),
            ),
            response_type="in_channel",
        )

    def approve_pr(self, cmd: SlashCommand) -> dict[str, Any]:
        number = _parse_number(cmd.text)
        if number is None:
            return ephemeral("Usage: `/approve-pr <PR number>`")
        try:
            pr = self._gh().get_pull(number)
        except RemoteApiError as e:
            if e.http_status == 404:
                return ephemeral(f"PR #{number} not found.")
            raise
        head = (pr.get("head") or {}).get("ref")
        base = (pr.get("base") or {}).get("ref")
        return message(
            section(
                f"🔀 *PR #{pr.get('number')}: {pr.get('title')}*\n"
                f"*Author:* {(pr.get('user') or {}).get('login')}\n"
                f"*Branch:* `{head}` → `{base}`\n"
                f"*Files Changed:* {pr.get('changed_files')}"
            ),
            actions_block(
                action_button(
                    "Approve & Merge",
                    actions.APPROVE_MERGE_PR,
                    actions.PullRef(pr.get("number"), cmd.user_name),
                    "primary",
                ),
                link_button("View PR", pr.get("html_url") or ""),
                action_button(
                    "Reject", actions.REJECT_PR, actions.PullRef(pr.get("number")), "danger"
                ),
            ),
            response_type="in_channel",
        )

    # ----- Button actions -----
    def trigger_ai_analysis(self, ref: actions.IssueRef, act: ButtonAction) -> dict[str, Any]:
        self._gh().add_labels(ref.issue_number, [self.settings.ai_analyze_label])
        return in_channel(
            f"🤖 AI analysis triggered for issue #{ref.issue_number}. "
            "Claude will analyze the bug and propose a fix."
        )

    def approve_merge_pr(self, ref: actions.PullRef, act: ButtonAction) -> dict[str, Any]:
        gh = self._gh()
        user = act.user_name
        try:
            gh.create_review(ref.pr_number, f"Approved via Slack by {user}", "APPROVE")
        except RemoteApiError as e:
            # e.g. the token owner authored the PR; merging may still be allowed
            log_event("review_rejected", level=logging.WARNING, pr=ref.pr_number, error=str(e))
        try:
            gh.merge_pull(
                ref.pr_number, f"Merge PR #{ref.pr_number} (approved via Slack by {user})", "squash"
            )
        except RemoteApiError as e:
            return in_channel(f"❌ Failed to merge PR #{ref.pr_number}: {e.body or e}")
        return in_channel(f"✅ PR #{ref.pr_number} approved and merged by {user}!")

    def reject_pr(self, ref: actions.PullRef, act: ButtonAction) -> dict[str, Any]:
        self._gh().close_pull(ref.pr_number)
        return in_channel(f"❌ PR #{ref.pr_number} rejected by {act.user_name}.")

    def confirm_deploy(self, req: actions.DeployRequest, act: ButtonAction) -> dict[str, Any]:
        try:
            self._gh().dispatch_workflow(
                self.settings.deploy_workflow, req.branch, {"deployer": act.user_name}
            )
        except RemoteApiError as e:
            log_event("deploy_dispatch_failed", level=logging.WARNING, error=str(e))
            return {
                "replace_original": True,
                "text": "❌ Deployment failed to start. Check GitHub Actions permissions.",
            }
        return {
            "replace_original": True,
            "text": (
                f"🚀 Deployment started!\n*Branch:* `{req.branch}`\n"
                f"*Started by:* {act.user_name}\n*Status:* Check GitHub Actions for progress."
            ),
        }

    def cancel_deploy(self, req: actions.DeployRequest, act: ButtonAction) -> dict[str, Any]:
        return {"replace_original": True, "text": "❌ Deployment cancelled."}

    def acknowledge_incident(self, ref: actions.IncidentRef, act: ButtonAction) -> dict[str, Any]:
        return {
            "replace_original": False,
            "response_type": "in_channel",
            "text": f"🔔 Incident acknowledged by {act.user_name} at {self._timestamp()}",
        }

    def add_to_roadmap(self, ref: actions.IssueRef, act: ButtonAction) -> dict[str, Any]:
        self._gh().add_labels(ref.issue_number, ["roadmap"])
        return in_channel(f"📋 Issue #{ref.issue_number} added to the roadmap!")

    # ----- Chat -----
    def handle_chat(self, msg: ChatMessage) -> dict[str, Any] | None:
        if self.cache is None:
            raise ConfigurationError("conversation cache is not configured")
        key = msg.context_key
        history = self.cache.append(key, "user", msg.text)
        try:
            reply = llm.converse(self.settings, history)
        except ConfigurationError:
            reply = CHAT_NOT_CONFIGURED_TEXT
        except Exception as e:
            log_event("llm_failed", level=logging.ERROR, key=key, error=str(e))
            reply = CHAT_ERROR_TEXT
        else:
            self.cache.append(key, "assistant", reply)
        try:
            chunks = self.slack.post_long_message(msg.channel, reply, msg.thread_ts)
        except Exception:
            logger.exception("chat reply failed")
            return None
        log_event("chat_replied", key=key, chunks=chunks, turns=len(history))
        return {"text": reply}
