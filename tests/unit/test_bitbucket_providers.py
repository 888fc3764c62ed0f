"""
Unit tests for the Bitbucket Cloud and Bitbucket Server providers.
"""

import json
from datetime import datetime, timezone

import pytest

from hookgate.models.build_params import PullRequestReadyState
from hookgate.providers.bitbucket_cloud import BitbucketCloudProvider
from hookgate.providers.bitbucket_server import BitbucketServerProvider
from hookgate.providers.errors import ContentTypeError, HeaderError, UnsupportedEventError, ValidationError
from hookgate.providers.request import HookRequest

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def bitbucket_request(event, payload, content_type="application/json", **headers):
    return HookRequest.from_raw(
        {"Content-Type": content_type, "X-Event-Key": event, **headers},
        json.dumps(payload),
    )


# Bitbucket Cloud

@pytest.fixture
def cloud_provider():
    """Create a Bitbucket Cloud provider."""
    return BitbucketCloudProvider()


@pytest.fixture
def cloud_push_payload():
    return {
        "actor": {"nickname": "birmacher"},
        "repository": {"full_name": "bitrise-io/hookgate", "is_private": True, "scm": "git"},
        "push": {
            "changes": [
                {
                    "new": {
                        "type": "branch",
                        "name": "master",
                        "target": {
                            "type": "commit",
                            "hash": "966d0bfe79b80f97268c2f6bb45e65e79ef09b31",
                            "message": "auto-test",
                            "date": "2024-01-01T10:00:00+00:00",
                        },
                    },
                    "old": {
                        "type": "branch",
                        "name": "master",
                        "target": {"type": "commit", "hash": "19934139a2cf799bbd0f5061ab02e4760902e93f"},
                    },
                    "commits": [{"hash": "966d0bfe79b80f97268c2f6bb45e65e79ef09b31", "message": "auto-test"}],
                },
                {
                    "new": {
                        "type": "tag",
                        "name": "v0.0.2",
                        "target": {
                            "type": "commit",
                            "hash": "19934139a2cf799bbd0f5061ab02e4760902e93f",
                            "message": "tagged",
                        },
                    },
                    "old": None,
                },
            ]
        },
    }


@pytest.fixture
def cloud_pr_payload():
    return {
        "actor": {"nickname": "birmacher"},
        "repository": {"full_name": "bitrise-io/hookgate", "is_private": False},
        "pullrequest": {
            "id": 1,
            "type": "pullrequest",
            "title": "Title of pull request",
            "description": "Description of pull request",
            "state": "OPEN",
            "author": {"nickname": "birmacher"},
            "source": {
                "branch": {"name": "branch2"},
                "commit": {"hash": "d3022fc0ca3d"},
                "repository": {"full_name": "foo/myrepo", "owner": {"nickname": "foo"}},
            },
            "destination": {
                "branch": {"name": "master"},
                "commit": {"hash": "ce5965ddd289"},
                "repository": {"full_name": "bitrise-io/hookgate", "owner": {"nickname": "bitrise-io"}},
            },
        },
    }


def test_cloud_requires_exact_json(cloud_provider, cloud_push_payload):
    """Test the content type check."""
    result = cloud_provider.transform_request(
        bitbucket_request("repo:push", cloud_push_payload, content_type="text/plain")
    )

    assert isinstance(result.error, ContentTypeError)


def test_cloud_unsupported_event(cloud_provider):
    """Test an unsupported event key."""
    result = cloud_provider.transform_request(bitbucket_request("repo:fork", {}))

    assert isinstance(result.error, UnsupportedEventError)
    assert str(result.error) == "X-Event-Key is not supported: repo:fork"


def test_cloud_retry_attempt_rejected(cloud_provider, cloud_push_payload):
    """Test redelivered webhooks are refused."""
    request = bitbucket_request("repo:push", cloud_push_payload, **{"X-Attempt-Number": "2"})

    result = cloud_provider.transform_request(request)

    assert isinstance(result.error, HeaderError)
    assert str(result.error) == "No retry is supported (X-Attempt-Number: 2)"


def test_cloud_push_branch_and_tag(cloud_provider, cloud_push_payload):
    """Test one entry per change, in payload order."""
    result = cloud_provider.transform_request(bitbucket_request("repo:push", cloud_push_payload))

    assert len(result.entries) == 2
    branch_params = result.entries[0].build_params
    assert branch_params.branch == "master"
    assert branch_params.commit_hash == "966d0bfe79b80f97268c2f6bb45e65e79ef09b31"
    assert branch_params.commit_message == "auto-test"
    assert branch_params.commit_messages == ["auto-test"]
    assert branch_params.base_repository_url == "git@bitbucket.org:bitrise-io/hookgate.git"
    tag_params = result.entries[1].build_params
    assert tag_params.tag == "v0.0.2"
    assert tag_params.branch is None
    assert result.entries[0].triggered_by == "webhook-bitbucket-v2/birmacher"


def test_cloud_push_mercurial_named_branch(cloud_provider, cloud_push_payload):
    """Test Mercurial repositories use named_branch changes."""
    cloud_push_payload["repository"]["scm"] = "hg"
    cloud_push_payload["push"]["changes"][0]["new"]["type"] = "named_branch"

    result = cloud_provider.transform_request(bitbucket_request("repo:push", cloud_push_payload))

    assert result.entries[0].build_params.branch == "master"


def test_cloud_push_without_buildable_change(cloud_provider, cloud_push_payload):
    """Test the collected errors when no change is buildable."""
    cloud_push_payload["push"]["changes"] = [cloud_push_payload["push"]["changes"][0]]
    cloud_push_payload["push"]["changes"][0]["new"]["target"]["type"] = "annotated_tag"

    result = cloud_provider.transform_request(bitbucket_request("repo:push", cloud_push_payload))

    assert isinstance(result.error, ValidationError)
    assert "none can be transformed into a build" in str(result.error)


def test_cloud_push_without_changes(cloud_provider, cloud_push_payload):
    """Test a push with an empty change list."""
    cloud_push_payload["push"]["changes"] = []

    result = cloud_provider.transform_request(bitbucket_request("repo:push", cloud_push_payload))

    assert result.is_hard_error


def test_cloud_pull_request_from_fork(cloud_provider, cloud_pr_payload):
    """Test a fork pull request without privacy information is treated as private."""
    result = cloud_provider.transform_request(bitbucket_request("pullrequest:created", cloud_pr_payload))

    params = result.entries[0].build_params
    assert params.commit_message == "Title of pull request\n\nDescription of pull request"
    assert params.commit_hash == "d3022fc0ca3d"
    assert params.branch == "branch2"
    assert params.branch_repo_owner == "foo"
    assert params.branch_dest == "master"
    assert params.pull_request_id == 1
    assert params.head_repository_url == "git@bitbucket.org:foo/myrepo.git"
    assert params.base_repository_url == "https://bitbucket.org/bitrise-io/hookgate.git"


def test_cloud_pull_request_public_fork(cloud_provider, cloud_pr_payload):
    """Test a fork that reports itself public."""
    cloud_pr_payload["pullrequest"]["source"]["repository"]["is_private"] = False

    result = cloud_provider.transform_request(bitbucket_request("pullrequest:created", cloud_pr_payload))

    assert result.entries[0].build_params.head_repository_url == "https://bitbucket.org/foo/myrepo.git"


@pytest.mark.parametrize("draft,expected", [
    (True, PullRequestReadyState.DRAFT),
    (False, PullRequestReadyState.READY_FOR_REVIEW),
])
def test_cloud_pull_request_ready_state(cloud_provider, cloud_pr_payload, draft, expected):
    """Test the draft flag drives the ready state."""
    cloud_pr_payload["pullrequest"]["draft"] = draft

    result = cloud_provider.transform_request(bitbucket_request("pullrequest:created", cloud_pr_payload))

    assert result.entries[0].build_params.pull_request_ready_state == expected


def test_cloud_pull_request_comment(cloud_provider, cloud_pr_payload):
    """Test comment fields on a comment event."""
    cloud_pr_payload["comment"] = {"id": 99, "content": {"raw": "please rebuild"}}

    result = cloud_provider.transform_request(bitbucket_request("pullrequest:comment_created", cloud_pr_payload))

    params = result.entries[0].build_params
    assert params.pull_request_comment == "please rebuild"
    assert params.pull_request_comment_id == "99"


def test_cloud_pull_request_not_open_is_skipped(cloud_provider, cloud_pr_payload):
    """Test merged or declined pull requests."""
    cloud_pr_payload["pullrequest"]["state"] = "MERGED"

    result = cloud_provider.transform_request(bitbucket_request("pullrequest:updated", cloud_pr_payload))

    assert result.should_skip


def test_cloud_push_metrics_skip_tags(cloud_provider, cloud_push_payload):
    """Test tag changes produce no push metric."""
    metrics = cloud_provider.gather_metrics(bitbucket_request("repo:push", cloud_push_payload), "app", NOW)

    assert len(metrics) == 1
    assert metrics[0].action == "pushed"
    assert metrics[0].general.git_ref == "master"


def test_cloud_pull_request_metrics(cloud_provider, cloud_pr_payload):
    """Test fulfilled pull requests are reported as closed."""
    request = bitbucket_request("pullrequest:fulfilled", cloud_pr_payload)

    metrics = cloud_provider.gather_metrics(request, "app", NOW)

    assert metrics[0].action == "closed"


# Bitbucket Server

@pytest.fixture
def server_provider():
    """Create a Bitbucket Server provider."""
    return BitbucketServerProvider()


@pytest.fixture
def server_push_payload():
    return {
        "eventKey": "repo:refs_changed",
        "date": "2024-01-01T10:00:00+0000",
        "actor": {"name": "admin", "displayName": "Administrator"},
        "repository": {"slug": "repository", "scmId": "git", "project": {"key": "PROJ"}},
        "changes": [
            {
                "ref": {"id": "refs/heads/master", "displayId": "master", "type": "BRANCH"},
                "refId": "refs/heads/master",
                "fromHash": "ecddabb624f6f5ba43816f5926e580a5f680a932",
                "toHash": "178864a7d521b6f5e720b386b2c2b0ef8563e0dc",
                "type": "UPDATE",
            }
        ],
        "commits": [
            {"id": "178864a7d521b6f5e720b386b2c2b0ef8563e0dc", "message": "second commit"},
        ],
    }


@pytest.fixture
def server_pr_payload():
    return {
        "eventKey": "pr:opened",
        "actor": {"name": "admin"},
        "pullRequest": {
            "id": 1,
            "title": "a new file added",
            "state": "OPEN",
            "createdDate": 1505779939000,
            "author": {"user": {"name": "admin"}},
            "fromRef": {
                "id": "refs/heads/a-branch",
                "displayId": "a-branch",
                "latestCommit": "ef8755f06ee4b28c96a847a95cb8ec8ed6ddd1ca",
                "repository": {"slug": "repository", "project": {"key": "PROJ"}},
            },
            "toRef": {
                "id": "refs/heads/master",
                "displayId": "master",
                "latestCommit": "178864a7d521b6f5e720b386b2c2b0ef8563e0dc",
                "repository": {"slug": "repository", "project": {"key": "PROJ"}},
            },
        },
    }


def test_server_accepts_json_with_charset(server_provider, server_push_payload):
    """Test content type prefix matching."""
    request = bitbucket_request("repo:refs_changed", server_push_payload, content_type="application/json; charset=utf-8")

    result = server_provider.transform_request(request)

    assert result.error is None


def test_server_ping_is_skipped(server_provider):
    """Test the diagnostics ping."""
    result = server_provider.transform_request(bitbucket_request("diagnostics:ping", {}))

    assert result.should_skip
    assert str(result.error) == "Bitbucket event type: diagnostics:ping is successful"


def test_server_push(server_provider, server_push_payload):
    """Test a branch update."""
    result = server_provider.transform_request(bitbucket_request("repo:refs_changed", server_push_payload))

    entry = result.entries[0]
    assert entry.build_params.branch == "master"
    assert entry.build_params.commit_hash == "178864a7d521b6f5e720b386b2c2b0ef8563e0dc"
    assert entry.build_params.commit_message == "second commit"
    assert entry.triggered_by == "webhook-bitbucket-server/admin"


def test_server_push_delete_only(server_provider, server_push_payload):
    """Test a branch deletion produces no build."""
    server_push_payload["changes"][0]["type"] = "DELETE"

    result = server_provider.transform_request(bitbucket_request("repo:refs_changed", server_push_payload))

    assert result.is_hard_error


def test_server_push_multiple_changes_drop_commit_messages(server_provider, server_push_payload):
    """Test commit messages are not attributed when several refs changed."""
    server_push_payload["changes"].append({
        "ref": {"id": "refs/tags/v1", "displayId": "v1", "type": "TAG"},
        "toHash": "178864a7d521b6f5e720b386b2c2b0ef8563e0dc",
        "type": "ADD",
    })

    result = server_provider.transform_request(bitbucket_request("repo:refs_changed", server_push_payload))

    assert len(result.entries) == 2
    assert result.entries[0].build_params.commit_message is None
    assert result.entries[1].build_params.tag == "v1"


def test_server_pull_request(server_provider, server_pr_payload):
    """Test an opened pull request."""
    result = server_provider.transform_request(bitbucket_request("pr:opened", server_pr_payload))

    params = result.entries[0].build_params
    assert params.commit_message == "a new file added"
    assert params.commit_hash == "ef8755f06ee4b28c96a847a95cb8ec8ed6ddd1ca"
    assert params.branch == "a-branch"
    assert params.branch_dest == "master"
    assert params.pull_request_id == 1
    assert params.pull_request_author == "admin"


@pytest.mark.parametrize("draft,expected", [
    (True, PullRequestReadyState.DRAFT),
    (False, PullRequestReadyState.READY_FOR_REVIEW),
])
def test_server_pull_request_ready_state(server_provider, server_pr_payload, draft, expected):
    """Test the draft flag drives the ready state."""
    server_pr_payload["pullRequest"]["draft"] = draft

    result = server_provider.transform_request(bitbucket_request("pr:opened", server_pr_payload))

    assert result.entries[0].build_params.pull_request_ready_state == expected


def test_server_pull_request_declined_is_skipped(server_provider, server_pr_payload):
    """Test pull requests that are not open."""
    server_pr_payload["pullRequest"]["state"] = "DECLINED"

    result = server_provider.transform_request(bitbucket_request("pr:modified", server_pr_payload))

    assert result.should_skip


def test_server_pull_request_metrics(server_provider, server_pr_payload):
    """Test the created date is used for opened pull requests."""
    metrics = server_provider.gather_metrics(bitbucket_request("pr:opened", server_pr_payload), "app", NOW)

    assert metrics[0].action == "opened"
    assert metrics[0].general.event_timestamp == datetime(2017, 9, 19, 0, 12, 19, tzinfo=timezone.utc)
    assert metrics[0].general.repository == "PROJ/repository"
