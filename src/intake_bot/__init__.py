"""
Intake Bot (Lambda + GitHub + Slack + Claude)

Where: AWS Lambda via Function URL (browser widgets, Slack app, CI job).
What:  File client errors and user feedback as GitHub issues, relay them to
       Slack, answer slash commands / buttons / mentions, propose AI fixes.
Why:   Minimal ChatOps glue for a static web app without its own backend.
"""

__all__ = [
    "actions",
    "analyzer",
    "commands",
    "config",
    "conversation",
    "errors",
    "events",
    "github",
    "handler",
    "intake",
    "llm",
    "log",
    "notify",
    "signature",
    "slack",
    "transport",
]
