"""
AI bug analyzer, run by CI when an issue is labelled `ai-analyze`.

    python -m intake_bot.analyzer --issue 42 --title "..." --body "..."

Reads the repository's sources, asks Claude for a root cause and an
exact-match patch, comments the analysis on the issue and, when a patch is
proposed, pushes it to `ai-fix/issue-<n>` and opens a pull request.
"""

from __future__ import annotations

import argparse
import base64
import json
import logging
import os
import re
import sys
from pathlib import Path
from typing import Any

from . import llm, notify
from .config import Settings, load_secrets, load_settings, require_github
from .errors import IntakeError, RemoteApiError
from .github import GitHubClient
from .log import configure_logging
from .slack import SlackClient

logger = logging.getLogger("intake_bot.analyzer")

DEFAULT_INCLUDE = "**/*.py,**/*.js,**/*.html"
SKIP_DIRS = {".git", "node_modules", ".venv", "venv", "__pycache__", "dist", "build"}
PER_FILE_MAX_CHARS = 50_000
TOTAL_MAX_CHARS = 200_000
JSON_RE = re.compile(r"\{[\s\S]*\}")

FALLBACK_ANALYSIS = {
    "severity": "medium",
    "rootCause": "See analysis",
    "fix": {"description": "Manual review needed", "changes": []},
    "testingNotes": "Manual testing required",
}


def read_source_files(
    root: Path,
    patterns: list[str],
    per_file: int = PER_FILE_MAX_CHARS,
    total: int = TOTAL_MAX_CHARS,
) -> list[tuple[str, str]]:
    """Return (relative path, content) pairs, capped per file and overall."""
    seen: set[Path] = set()
    files: list[tuple[str, str]] = []
    used = 0
    for pattern in patterns:
        for path in sorted(root.glob(pattern)):
            rel = path.relative_to(root)
            if path in seen or not path.is_file() or SKIP_DIRS.intersection(rel.parts):
                continue
            seen.add(path)
            try:
                content = path.read_text(encoding="utf-8")[:per_file]
            except (OSError, UnicodeDecodeError):
                logger.warning("skipping unreadable file %s", rel)
                continue
            if used + len(content) > total:
                return files
            used += len(content)
            files.append((rel.as_posix(), content))
    return files


def build_prompt(
    settings: Settings, number: int, title: str, body: str, files: list[tuple[str, str]]
) -> str:
    code = "\n\n".join(f"### File: {path}\n```\n{content}\n```" for path, content in files)
    return f"""You are an expert software engineer analyzing a bug report.
{settings.assistant_context}

## Bug Report

**Issue #{number}: {title}**

{body}

## Source Code

{code}

## Instructions

Analyze this bug report and provide:

1. **Root Cause Analysis**: the file, function and line causing the bug.
2. **Impact Assessment**: how severe it is and what functionality is affected.
3. **Proposed Fix**: exact code changes, each as file path, the original code (exact match) and the replacement code.
4. **Testing Notes**: how the fix should be tested.

Respond in the following JSON format:
{{
  "analysis": "Markdown formatted analysis with root cause, impact, and explanation",
  "severity": "low|medium|high|critical",
  "rootCause": "Brief description of root cause",
  "fix": {{
    "description": "Brief description of the fix",
    "changes": [
      {{"file": "path/to/file", "original": "exact original code to replace", "replacement": "new code"}}
    ]
  }},
  "testingNotes": "How to test the fix"
}}

If you cannot determine a fix automatically, set changes to an empty array and explain why in the analysis."""


def parse_analysis(text: str) -> dict[str, Any]:
    """Pull the JSON object out of the model reply; fall back to the raw text."""
    m = JSON_RE.search(text or "")
    if m:
        try:
            data = json.loads(m.group(0))
        except ValueError:
            logger.warning("analysis is not valid JSON; using text as analysis")
        else:
            if isinstance(data, dict):
                fix = data.get("fix") if isinstance(data.get("fix"), dict) else {}
                changes = fix.get("changes") if isinstance(fix.get("changes"), list) else []
                return {
                    **FALLBACK_ANALYSIS,
                    **data,
                    "analysis": data.get("analysis") or text,
                    "fix": {**FALLBACK_ANALYSIS["fix"], **fix, "changes": changes},
                }
    return {**FALLBACK_ANALYSIS, "analysis": text}


def apply_change(content: str, change: dict[str, Any]) -> str | None:
    """Replace the first exact occurrence of `original`; None when nothing matches."""
    original = change.get("original") or ""
    if not original or original not in content:
        return None
    return content.replace(original, change.get("replacement") or "", 1)


def _add_label(gh: GitHubClient, number: int, label: str) -> None:
    try:
        gh.add_labels(number, [label])
    except RemoteApiError as e:
        logger.warning('could not add label "%s": %s', label, e)


def _remove_label(gh: GitHubClient, number: int, label: str) -> None:
    try:
        gh.remove_label(number, label)
    except RemoteApiError as e:
        logger.warning('could not remove label "%s": %s', label, e)


def create_fix_pr(
    gh: GitHubClient, number: int, title: str, analysis: dict[str, Any]
) -> dict[str, Any] | None:
    fix = analysis["fix"]
    branch = f"ai-fix/issue-{number}"
    base = gh.get_repo().get("default_branch") or "main"
    base_sha = gh.get_ref(base)["object"]["sha"]
    try:
        gh.create_ref(branch, base_sha)
    except RemoteApiError:
        # Branch already exists from an earlier run: reset it to the base.
        gh.update_ref(branch, base_sha, force=True)

    applied: list[str] = []
    for change in fix["changes"]:
        path = change.get("file") or ""
        try:
            current = gh.get_contents(path, branch)
            text = base64.b64decode(current.get("content") or "").decode("utf-8")
            updated = apply_change(text, change)
            if updated is None:
                logger.warning("no match found for change in %s, skipping", path)
                continue
            gh.put_contents(
                path,
                f"fix: {fix.get('description')} (issue #{number})",
                base64.b64encode(updated.encode("utf-8")).decode("ascii"),
                current["sha"],
                branch,
            )
            applied.append(path)
            logger.info("updated %s", path)
        except (RemoteApiError, KeyError, ValueError) as e:
            logger.error("failed to update %s: %s", path, e)

    if not applied:
        logger.info("no change applied; not opening a PR")
        return None

    pr_body = "\n".join(
        [
            f"## AI-Generated Fix for #{number}",
            "",
            f"**Root Cause:** {analysis.get('rootCause')}",
            "",
            "### Changes",
            "",
            str(fix.get("description") or ""),
            "",
            "\n".join(f"- `{p}`: Applied fix" for p in applied),
            "",
            "### Testing Notes",
            "",
            str(analysis.get("testingNotes") or ""),
            "",
            "---",
            f"Fixes #{number}",
            "",
            "⚠️ *This PR was generated by AI. Please review carefully before merging.*",
        ]
    )
    pr = gh.create_pull(f"🤖 Fix: {title}", pr_body, branch, base)
    logger.info("created PR #%s: %s", pr.get("number"), pr.get("html_url"))
    gh.create_comment(
        number,
        f"🔧 **AI Fix Proposed:** PR #{pr.get('number')}\n\n"
        f"Please review the proposed fix: {pr.get('html_url')}",
    )
    return pr


def run(
    settings: Settings,
    gh: GitHubClient,
    slack: SlackClient,
    number: int,
    title: str,
    body: str,
    root: Path,
    patterns: list[str],
) -> dict[str, Any]:
    logger.info("analyzing issue #%s: %s", number, title)
    files = read_source_files(root, patterns)
    logger.info("read %d source files", len(files))

    analysis = parse_analysis(llm.analyze_bug(settings, build_prompt(settings, number, title, body, files)))

    gh.create_comment(
        number,
        "\n".join(
            [
                "## 🤖 AI Bug Analysis",
                "",
                str(analysis["analysis"]),
                "",
                "---",
                "*This analysis was generated by Claude AI. Please review before applying any suggested fixes.*",
            ]
        ),
    )

    pr = None
    if analysis["fix"]["changes"]:
        pr = create_fix_pr(gh, number, title, analysis)
    if pr is None:
        _add_label(gh, number, "needs-manual-review")

    if settings.slack_webhook_url:
        try:
            slack.post_webhook(
                settings.slack_webhook_url, notify.analysis_message(number, title, analysis, pr)
            )
        except RemoteApiError as e:
            logger.warning("slack notification failed: %s", e)

    _remove_label(gh, number, settings.ai_analyze_label)
    _add_label(gh, number, "ai-analyzed")
    return {"analysis": analysis, "pr": pr}


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Analyze a GitHub issue with Claude and propose a fix PR.")
    parser.add_argument("--issue", type=int, default=int(os.getenv("ISSUE_NUMBER") or 0))
    parser.add_argument("--title", default=os.getenv("ISSUE_TITLE", ""))
    parser.add_argument("--body", default=os.getenv("ISSUE_BODY", ""))
    parser.add_argument("--root", type=Path, default=Path(os.getenv("GITHUB_WORKSPACE") or "."))
    parser.add_argument(
        "--include",
        default=os.getenv("ANALYZER_INCLUDE", DEFAULT_INCLUDE),
        help="comma-separated glob patterns, relative to --root",
    )
    args = parser.parse_args(argv)

    configure_logging()
    if not args.issue:
        parser.error("--issue (or ISSUE_NUMBER) is required")

    try:
        settings = load_secrets(load_settings())
        require_github(settings)
        gh = GitHubClient(
            settings.github_token or "",
            settings.github_owner or "",
            settings.github_repo or "",
            settings.github_api_url,
            settings.http_timeout_seconds,
        )
        run(
            settings,
            gh,
            SlackClient(settings.slack_bot_token, settings.http_timeout_seconds),
            args.issue,
            args.title,
            args.body,
            args.root.resolve(),
            [p.strip() for p in args.include.split(",") if p.strip()],
        )
    except IntakeError as e:
        logger.error("bug analysis failed: %s", e)
        return 1
    logger.info("bug analysis complete")
    return 0


if __name__ == "__main__":
    sys.exit(main())
