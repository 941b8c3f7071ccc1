import json

import pytest

from intake_bot import actions
from intake_bot.actions import DeployRequest, IncidentRef, IssueRef, PullRef
from intake_bot.errors import ActionValueError, ClientInputError


def test_issue_ref_accepts_bare_number_and_object():
    assert actions.parse(actions.TRIGGER_AI_ANALYSIS, "42") == IssueRef(42)
    assert actions.parse(actions.TRIGGER_AI_ANALYSIS, "#42") == IssueRef(42)
    assert actions.parse(actions.ADD_TO_ROADMAP, '{"issueNumber": 7}') == IssueRef(7)
    assert actions.parse(actions.ADD_TO_ROADMAP, '{"issueNumber": "7"}') == IssueRef(7)


def test_pull_ref_with_and_without_approver():
    assert actions.parse(actions.REJECT_PR, '{"prNumber": 3}') == PullRef(3)
    assert actions.parse(
        actions.APPROVE_MERGE_PR, '{"prNumber": 3, "approver": "alice"}'
    ) == PullRef(3, "alice")


def test_deploy_request_defaults_to_main():
    assert actions.parse(actions.CONFIRM_DEPLOY, "") == DeployRequest("main", None)
    assert actions.parse(actions.CANCEL_DEPLOY, None) == DeployRequest()
    assert actions.parse(
        actions.CONFIRM_DEPLOY, '{"branch": "release/1.2", "requestedBy": "bob"}'
    ) == DeployRequest("release/1.2", "bob")


def test_incident_ref_tolerates_missing_value():
    assert actions.parse(actions.ACKNOWLEDGE_INCIDENT, "") == IncidentRef(None)
    assert actions.parse(actions.ACKNOWLEDGE_INCIDENT, '{"incidentId": "inc-9"}') == IncidentRef(
        "inc-9"
    )


def test_encode_uses_camel_case_keys():
    assert json.loads(actions.encode(DeployRequest("main", "alice"))) == {
        "branch": "main",
        "requestedBy": "alice",
    }
    assert json.loads(actions.encode(PullRef(5, "bob"))) == {"prNumber": 5, "approver": "bob"}
    assert json.loads(actions.encode(PullRef(5))) == {"prNumber": 5}
    assert json.loads(actions.encode(IssueRef(9))) == {"issueNumber": 9}


@pytest.mark.parametrize(
    "action_id,value",
    [
        (actions.APPROVE_MERGE_PR, "not json"),
        (actions.APPROVE_MERGE_PR, "[1, 2]"),
        (actions.APPROVE_MERGE_PR, '{"approver": "alice"}'),
        (actions.REJECT_PR, '{"prNumber": "abc"}'),
        (actions.TRIGGER_AI_ANALYSIS, ""),
        (actions.TRIGGER_AI_ANALYSIS, '{"issueNumber": true}'),
        (actions.CONFIRM_DEPLOY, '{"branch": 12}'),
        (actions.ACKNOWLEDGE_INCIDENT, "{broken"),
    ],
)
def test_malformed_values_raise_action_value_error(action_id, value):
    with pytest.raises(ActionValueError):
        actions.parse(action_id, value)


def test_unknown_action_id_is_rejected():
    with pytest.raises(ActionValueError, match="unknown action"):
        actions.parse("launch_rockets", "{}")


def test_action_value_error_is_client_input():
    assert issubclass(ActionValueError, ClientInputError)
