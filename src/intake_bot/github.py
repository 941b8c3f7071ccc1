"""
Minimal GitHub REST client (issues, pulls, actions, contents).

One method per endpoint; every method is a single HTTP call. Non-2xx replies
raise RemoteApiError and are never retried here.
"""

from __future__ import annotations

import urllib.parse
from typing import Any

from .transport import request_json


class GitHubClient:
    def __init__(
        self, token: str, owner: str, repo: str, api_url: str = "https://api.github.com", timeout: int = 8
    ) -> None:
        self.repo_path = f"/repos/{owner}/{repo}"
        self.api_url = api_url.rstrip("/")
        self.token = token
        self.timeout = timeout

    # ----- Helpers -----
    def call(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        url = path if path.startswith("https://") else self.api_url + path
        return request_json(
            "GitHub",
            method,
            url,
            headers={
                "Authorization": f"token {self.token}",
                "Accept": "application/vnd.github.v3+json",
            },
            body=body,
            params=params,
            timeout=self.timeout,
        )

    def _repo(self, path: str = "") -> str:
        return self.repo_path + path

    # ----- Issues -----
    def create_issue(self, title: str, body: str, labels: list[str]) -> dict[str, Any]:
        return self.call("POST", self._repo("/issues"), {"title": title, "body": body, "labels": labels})

    def get_issue(self, number: int | str) -> dict[str, Any]:
        return self.call("GET", self._repo(f"/issues/{number}"))

    def list_issues(
        self,
        labels: str = "bug",
        state: str = "open",
        per_page: int = 5,
        sort: str = "created",
        direction: str = "desc",
    ) -> list[dict[str, Any]]:
        data = self.call(
            "GET",
            self._repo("/issues"),
            params={
                "labels": labels,
                "state": state,
                "per_page": per_page,
                "sort": sort,
                "direction": direction,
            },
        )
        return list(data) if isinstance(data, list) else []

    def add_labels(self, number: int | str, labels: list[str]) -> Any:
        return self.call("POST", self._repo(f"/issues/{number}/labels"), {"labels": labels})

    def remove_label(self, number: int | str, label: str) -> Any:
        quoted = urllib.parse.quote(label, safe="")
        return self.call("DELETE", self._repo(f"/issues/{number}/labels/{quoted}"))

    def create_comment(self, number: int | str, body: str) -> dict[str, Any]:
        return self.call("POST", self._repo(f"/issues/{number}/comments"), {"body": body})

    # ----- Pull requests -----
    def get_pull(self, number: int | str) -> dict[str, Any]:
        return self.call("GET", self._repo(f"/pulls/{number}"))

    def create_pull(self, title: str, body: str, head: str, base: str) -> dict[str, Any]:
        return self.call(
            "POST", self._repo("/pulls"), {"title": title, "body": body, "head": head, "base": base}
        )

    def merge_pull(
        self, number: int | str, commit_title: str, merge_method: str = "squash"
    ) -> dict[str, Any]:
        return self.call(
            "PUT",
            self._repo(f"/pulls/{number}/merge"),
            {"commit_title": commit_title, "merge_method": merge_method},
        )

    def close_pull(self, number: int | str) -> dict[str, Any]:
        return self.call("PATCH", self._repo(f"/pulls/{number}"), {"state": "closed"})

    def create_review(self, number: int | str, body: str, event: str = "APPROVE") -> dict[str, Any]:
        return self.call(
            "POST", self._repo(f"/pulls/{number}/reviews"), {"body": body, "event": event}
        )

    # ----- Actions -----
    def dispatch_workflow(self, workflow: str, ref: str, inputs: dict[str, Any]) -> Any:
        return self.call(
            "POST",
            self._repo(f"/actions/workflows/{workflow}/dispatches"),
            {"ref": ref, "inputs": inputs},
        )

    # ----- Git data / contents -----
    def get_repo(self) -> dict[str, Any]:
        return self.call("GET", self._repo())

    def get_ref(self, branch: str) -> dict[str, Any]:
        return self.call("GET", self._repo(f"/git/ref/heads/{branch}"))

    def create_ref(self, branch: str, sha: str) -> dict[str, Any]:
        return self.call("POST", self._repo("/git/refs"), {"ref": f"refs/heads/{branch}", "sha": sha})

    def update_ref(self, branch: str, sha: str, force: bool = True) -> dict[str, Any]:
        return self.call("PATCH", self._repo(f"/git/refs/heads/{branch}"), {"sha": sha, "force": force})

    def get_contents(self, path: str, ref: str) -> dict[str, Any]:
        return self.call(
            "GET", self._repo(f"/contents/{urllib.parse.quote(path)}"), params={"ref": ref}
        )

    def put_contents(
        self, path: str, message: str, content_b64: str, sha: str, branch: str
    ) -> dict[str, Any]:
        return self.call(
            "PUT",
            self._repo(f"/contents/{urllib.parse.quote(path)}"),
            {"message": message, "content": content_b64, "sha": sha, "branch": branch},
        )
