"""
Unit tests for the Azure DevOps (Visual Studio Team Services) provider.
"""

import json

import pytest

from hookgate.models.build_params import PullRequestReadyState
from hookgate.providers.errors import ContentTypeError, UnsupportedEventError, ValidationError
from hookgate.providers.request import HookRequest
from hookgate.providers.visualstudio import TEST_SUBSCRIPTION_ID, VisualStudioProvider

ZERO_SHA = "0" * 40


def vsts_request(payload, content_type="application/json; charset=utf-8"):
    return HookRequest.from_raw({"Content-Type": content_type}, json.dumps(payload))


@pytest.fixture
def provider():
    """Create a Visual Studio provider."""
    return VisualStudioProvider()


@pytest.fixture
def push_payload():
    return {
        "subscriptionId": "f0c23515-bcb5-4a87-a7fb-b9e7e3e4ba16",
        "eventType": "git.push",
        "publisherId": "tfs",
        "resourceVersion": "1.0",
        "detailedMessage": {"text": "Jamal Hartnett pushed a commit to master"},
        "resource": {
            "commits": [
                {"commitId": "33b55f7cb7e7e245323987634f960cf4a6e6bc74", "comment": "Fixed bug in web.config file"},
                {"commitId": "be67f8871a4d2c75f13a51c1d3c30ac0d74d4ef4", "comment": "Initial commit"},
            ],
            "refUpdates": [
                {
                    "name": "refs/heads/master",
                    "oldObjectId": "aad331d8d3b131fa9ae03cf5e53965b51942618a",
                    "newObjectId": "33b55f7cb7e7e245323987634f960cf4a6e6bc74",
                }
            ],
        },
    }


@pytest.fixture
def pull_request_payload():
    return {
        "subscriptionId": "f0c23515-bcb5-4a87-a7fb-b9e7e3e4ba16",
        "eventType": "git.pullrequest.created",
        "publisherId": "tfs",
        "resourceVersion": "1.0",
        "message": {"text": "Jamal Hartnett created a new pull request"},
        "resource": {
            "pullRequestId": 1,
            "status": "active",
            "mergeStatus": "succeeded",
            "sourceRefName": "refs/heads/feature/new-thing",
            "targetRefName": "refs/heads/master",
            "lastMergeSourceCommit": {"commitId": "53d54ac915144006c2c9e90d2c7d3880920db49c"},
            "createdBy": {"displayName": "Jamal Hartnett"},
        },
    }


def test_content_type_must_contain_json(provider, push_payload):
    """Test a non JSON content type."""
    result = provider.transform_request(vsts_request(push_payload, content_type="text/plain"))

    assert isinstance(result.error, ContentTypeError)


def test_non_tfs_publisher(provider, push_payload):
    """Test notifications from other publishers are rejected."""
    push_payload["publisherId"] = "rm"

    result = provider.transform_request(vsts_request(push_payload))

    assert isinstance(result.error, ValidationError)


def test_test_subscription_is_skipped(provider, push_payload):
    """Test the initial test notification is acknowledged."""
    push_payload["subscriptionId"] = TEST_SUBSCRIPTION_ID

    result = provider.transform_request(vsts_request(push_payload))

    assert result.should_skip
    assert str(result.error) == "Initial (test) event detected, skipping"


def test_unsupported_event_type(provider, push_payload):
    """Test an unknown event type."""
    push_payload["eventType"] = "workitem.created"

    result = provider.transform_request(vsts_request(push_payload))

    assert isinstance(result.error, UnsupportedEventError)
    assert str(result.error) == "Unsupported event type: workitem.created"


def test_unsupported_resource_version(provider, push_payload):
    """Test only resource version 1.0 is accepted."""
    push_payload["resourceVersion"] = "2.0"

    result = provider.transform_request(vsts_request(push_payload))

    assert str(result.error) == "Unsupported resource version"


# Push

def test_push_with_commits(provider, push_payload):
    """Test the first commit is the head and messages are oldest first."""
    result = provider.transform_request(vsts_request(push_payload))

    params = result.entries[0].build_params
    assert params.branch == "master"
    assert params.commit_hash == "33b55f7cb7e7e245323987634f960cf4a6e6bc74"
    assert params.commit_message == "Fixed bug in web.config file"
    assert params.commit_messages == ["Initial commit", "Fixed bug in web.config file"]


def test_push_requires_single_ref_update(provider, push_payload):
    """Test multiple ref updates are rejected."""
    push_payload["resource"]["refUpdates"].append(push_payload["resource"]["refUpdates"][0])

    result = provider.transform_request(vsts_request(push_payload))

    assert result.is_hard_error


def test_push_branch_created_without_commits(provider, push_payload):
    """Test a new branch pushed without new commits."""
    push_payload["resource"]["commits"] = []
    push_payload["resource"]["refUpdates"][0]["oldObjectId"] = ZERO_SHA

    result = provider.transform_request(vsts_request(push_payload))

    params = result.entries[0].build_params
    assert params.commit_message == "Branch created"
    assert params.commit_hash == "33b55f7cb7e7e245323987634f960cf4a6e6bc74"


def test_push_without_commits_uses_detailed_message(provider, push_payload):
    """Test a branch update that carries no commit list."""
    push_payload["resource"]["commits"] = []

    result = provider.transform_request(vsts_request(push_payload))

    assert result.entries[0].build_params.commit_message == "Jamal Hartnett pushed a commit to master"


def test_push_branch_deleted_is_skipped(provider, push_payload):
    """Test branch deletion."""
    push_payload["resource"]["commits"] = []
    push_payload["resource"]["refUpdates"][0]["newObjectId"] = ZERO_SHA

    result = provider.transform_request(vsts_request(push_payload))

    assert result.should_skip


def test_push_tag(provider, push_payload):
    """Test a tag push."""
    push_payload["resource"]["refUpdates"][0]["name"] = "refs/tags/v1.0.0"

    result = provider.transform_request(vsts_request(push_payload))

    params = result.entries[0].build_params
    assert params.tag == "v1.0.0"
    assert params.branch is None


def test_push_tag_deleted_is_skipped(provider, push_payload):
    """Test tag deletion."""
    push_payload["resource"]["refUpdates"][0]["name"] = "refs/tags/v1.0.0"
    push_payload["resource"]["refUpdates"][0]["newObjectId"] = ZERO_SHA

    result = provider.transform_request(vsts_request(push_payload))

    assert result.should_skip


def test_push_unsupported_ref(provider, push_payload):
    """Test refs outside heads and tags."""
    push_payload["resource"]["refUpdates"][0]["name"] = "refs/notes/commits"

    result = provider.transform_request(vsts_request(push_payload))

    assert str(result.error) == "Unsupported refs/, can't start a build: refs/notes/commits"


# Pull request

def test_pull_request_created(provider, pull_request_payload):
    """Test a mergeable pull request."""
    result = provider.transform_request(vsts_request(pull_request_payload))

    params = result.entries[0].build_params
    assert params.commit_hash == "53d54ac915144006c2c9e90d2c7d3880920db49c"
    assert params.commit_message == "Jamal Hartnett created a new pull request"
    assert params.branch == "feature/new-thing"
    assert params.branch_dest == "master"
    assert params.pull_request_id == 1
    assert params.pull_request_author == "Jamal Hartnett"


@pytest.mark.parametrize("is_draft,expected", [
    (True, PullRequestReadyState.DRAFT),
    (False, PullRequestReadyState.READY_FOR_REVIEW),
])
def test_pull_request_ready_state(provider, pull_request_payload, is_draft, expected):
    """Test isDraft drives the ready state."""
    pull_request_payload["resource"]["isDraft"] = is_draft

    result = provider.transform_request(vsts_request(pull_request_payload))

    assert result.entries[0].build_params.pull_request_ready_state == expected


@pytest.mark.parametrize("field,value", [
    ("status", "completed"),
    ("mergeStatus", "conflicts"),
])
def test_pull_request_not_buildable_is_skipped(provider, pull_request_payload, field, value):
    """Test completed and conflicting pull requests."""
    pull_request_payload["resource"][field] = value

    result = provider.transform_request(vsts_request(pull_request_payload))

    assert result.should_skip


def test_pull_request_invalid_source_ref(provider, pull_request_payload):
    """Test a source ref that is not a branch."""
    pull_request_payload["resource"]["sourceRefName"] = "refs/tags/v1"

    result = provider.transform_request(vsts_request(pull_request_payload))

    assert str(result.error) == "Invalid source reference name: refs/tags/v1"


def test_pull_request_missing_last_commit(provider, pull_request_payload):
    """Test the last merge source commit is required."""
    del pull_request_payload["resource"]["lastMergeSourceCommit"]

    result = provider.transform_request(vsts_request(pull_request_payload))

    assert result.is_hard_error
