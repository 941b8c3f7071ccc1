"""
Typed payloads carried in Slack button `value` strings.

Every button we emit encodes one of these variants as JSON; the action
handlers parse it back with `parse`, which raises ActionValueError rather
than letting a malformed value escape as a KeyError/JSONDecodeError.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Union

from .errors import ActionValueError

TRIGGER_AI_ANALYSIS = "trigger_ai_analysis"
ADD_TO_ROADMAP = "add_to_roadmap"
APPROVE_MERGE_PR = "approve_merge_pr"
REJECT_PR = "reject_pr"
CONFIRM_DEPLOY = "confirm_deploy"
CANCEL_DEPLOY = "cancel_deploy"
ACKNOWLEDGE_INCIDENT = "acknowledge_incident"


@dataclass(frozen=True)
class IssueRef:
    issue_number: int | None

    def to_json(self) -> dict[str, Any]:
        return {"issueNumber": self.issue_number}


@dataclass(frozen=True)
class PullRef:
    pr_number: int | None
    approver: str | None = None

    def to_json(self) -> dict[str, Any]:
        out: dict[str, Any] = {"prNumber": self.pr_number}
        if self.approver:
            out["approver"] = self.approver
        return out


@dataclass(frozen=True)
class DeployRequest:
    branch: str = "main"
    requested_by: str | None = None

    def to_json(self) -> dict[str, Any]:
        return {"branch": self.branch, "requestedBy": self.requested_by}


@dataclass(frozen=True)
class IncidentRef:
    incident_id: Any = None

    def to_json(self) -> dict[str, Any]:
        return {"incidentId": self.incident_id}


ActionValue = Union[IssueRef, PullRef, DeployRequest, IncidentRef]


def encode(payload: ActionValue) -> str:
    return json.dumps(payload.to_json(), ensure_ascii=False)


def _number(raw: Any, field: str) -> int:
    if isinstance(raw, bool):
        raise ActionValueError(f"{field} must be a number")
    try:
        return int(str(raw).strip().lstrip("#"))
    except (TypeError, ValueError) as e:
        raise ActionValueError(f"{field} must be a number, got {raw!r}") from e


def _object(value: str | None) -> dict[str, Any]:
    try:
        data = json.loads(value or "")
    except ValueError as e:
        raise ActionValueError(f"button value is not JSON: {value!r}") from e
    if not isinstance(data, dict):
        raise ActionValueError(f"button value must be a JSON object: {value!r}")
    return data


def _issue_ref(value: str | None) -> IssueRef:
    # Older buttons carry the bare issue number.
    text = (value or "").strip()
    if text.startswith("{"):
        return IssueRef(_number(_object(text).get("issueNumber"), "issueNumber"))
    return IssueRef(_number(text, "issueNumber"))


def _pull_ref(value: str | None) -> PullRef:
    data = _object(value)
    approver = data.get("approver")
    return PullRef(_number(data.get("prNumber"), "prNumber"), str(approver) if approver else None)


def _deploy_request(value: str | None) -> DeployRequest:
    if not value:
        return DeployRequest()
    data = _object(value)
    branch = data.get("branch") or "main"
    if not isinstance(branch, str):
        raise ActionValueError("branch must be a string")
    requested_by = data.get("requestedBy")
    return DeployRequest(branch, str(requested_by) if requested_by else None)


def _incident_ref(value: str | None) -> IncidentRef:
    if not value:
        return IncidentRef()
    return IncidentRef(_object(value).get("incidentId"))


PARSERS = {
    TRIGGER_AI_ANALYSIS: _issue_ref,
    ADD_TO_ROADMAP: _issue_ref,
    APPROVE_MERGE_PR: _pull_ref,
    REJECT_PR: _pull_ref,
    CONFIRM_DEPLOY: _deploy_request,
    CANCEL_DEPLOY: _deploy_request,
    ACKNOWLEDGE_INCIDENT: _incident_ref,
}


def parse(action_id: str, value: str | None) -> ActionValue:
    parser = PARSERS.get(action_id)
    if parser is None:
        raise ActionValueError(f"unknown action: {action_id}")
    return parser(value)
