"""
Unit tests for the push-only providers: Gogs, Deveo and Assembla.
"""

import json
from urllib.parse import urlencode

import pytest

from hookgate.providers.assembla import AssemblaProvider
from hookgate.providers.deveo import DeveoProvider
from hookgate.providers.errors import ContentTypeError, HeaderError, UnsupportedEventError, ValidationError
from hookgate.providers.gogs import GogsProvider
from hookgate.providers.request import HookRequest


def json_request(payload, **headers):
    return HookRequest.from_raw({"Content-Type": "application/json", **headers}, json.dumps(payload))


# Gogs

@pytest.fixture
def gogs_payload():
    return {
        "ref": "refs/heads/master",
        "after": "22a8a6a2a5b7c8e1e0e5f6d1b3c4a5e6f7a8b9c0",
        "commits": [
            {"id": "22a8a6a2a5b7c8e1e0e5f6d1b3c4a5e6f7a8b9c0", "message": "Add README"},
            {"id": "11a8a6a2a5b7c8e1e0e5f6d1b3c4a5e6f7a8b9c0", "message": "Initial commit"},
        ],
    }


def test_gogs_push(gogs_payload):
    """Test the commit named by after is the head commit."""
    result = GogsProvider().transform_request(json_request(gogs_payload, **{"X-Gogs-Event": "push"}))

    params = result.entries[0].build_params
    assert params.branch == "master"
    assert params.commit_hash == "22a8a6a2a5b7c8e1e0e5f6d1b3c4a5e6f7a8b9c0"
    assert params.commit_message == "Add README"


def test_gogs_missing_event_header(gogs_payload):
    """Test the event header is required."""
    result = GogsProvider().transform_request(json_request(gogs_payload))

    assert isinstance(result.error, HeaderError)


def test_gogs_unsupported_event(gogs_payload):
    """Test events other than push."""
    result = GogsProvider().transform_request(json_request(gogs_payload, **{"X-Gogs-Event": "create"}))

    assert isinstance(result.error, UnsupportedEventError)
    assert str(result.error) == "Unsupported Webhook event: create"


def test_gogs_tag_ref_is_skipped(gogs_payload):
    """Test non branch refs."""
    gogs_payload["ref"] = "refs/tags/v1"

    result = GogsProvider().transform_request(json_request(gogs_payload, **{"X-Gogs-Event": "push"}))

    assert result.should_skip
    assert str(result.error) == "Ref (refs/tags/v1) is not a head ref"


def test_gogs_after_not_in_commits(gogs_payload):
    """Test a head commit missing from the commit list."""
    gogs_payload["after"] = "ffffffffffffffffffffffffffffffffffffffff"

    result = GogsProvider().transform_request(json_request(gogs_payload, **{"X-Gogs-Event": "push"}))

    assert isinstance(result.error, ValidationError)
    assert "no match found" in str(result.error)


# Deveo

@pytest.fixture
def deveo_payload():
    return {
        "ref": "refs/heads/master",
        "deleted": False,
        "commits": [
            {"id": "83b86e5f286f546dc5a4a58db66ceef44460c85e", "message": "re-structuring", "distinct": True},
            {"id": "d7a0d1b3a0c8b8b2c3f1f0c6f2d6f1b6a7c1d2e3", "message": "first", "distinct": True},
        ],
        "files": {
            "added": ["README.md"],
            "renamed": [{"from": {"path": "old.txt", "rev": "1"}, "to": {"path": "new.txt", "rev": "2"}}],
        },
    }


def test_deveo_push(deveo_payload):
    """Test a branch push with file changes."""
    request = json_request(deveo_payload, **{"X-Deveo-Event": "push"})

    result = DeveoProvider().transform_request(request)

    params = result.entries[0].build_params
    assert params.branch == "master"
    assert params.commit_hash == "83b86e5f286f546dc5a4a58db66ceef44460c85e"
    assert params.commit_message == "re-structuring"
    assert params.commit_messages == ["first", "re-structuring"]
    paths = params.push_commit_paths[0]
    assert paths.added == ["README.md", "new.txt"]
    assert paths.removed == ["old.txt"]


def test_deveo_form_payload(deveo_payload):
    """Test the JSON document posted as a form field."""
    request = HookRequest.from_raw(
        {"Content-Type": "application/x-www-form-urlencoded", "X-Deveo-Event": "push"},
        urlencode({"payload": json.dumps(deveo_payload)}),
    )

    result = DeveoProvider().transform_request(request)

    assert result.entries[0].build_params.branch == "master"


def test_deveo_tag_push_without_files(deveo_payload):
    """Test tags and omitted commit paths."""
    deveo_payload["ref"] = "refs/tags/v0.0.1"
    del deveo_payload["files"]

    result = DeveoProvider().transform_request(json_request(deveo_payload, **{"X-Deveo-Event": "push"}))

    params = result.entries[0].build_params
    assert params.tag == "v0.0.1"
    assert params.push_commit_paths == []


def test_deveo_deleted_is_skipped(deveo_payload):
    """Test ref deletion."""
    deveo_payload["deleted"] = True

    result = DeveoProvider().transform_request(json_request(deveo_payload, **{"X-Deveo-Event": "push"}))

    assert result.should_skip


def test_deveo_without_commits(deveo_payload):
    """Test an empty commit list is a client error."""
    deveo_payload["commits"] = []

    result = DeveoProvider().transform_request(json_request(deveo_payload, **{"X-Deveo-Event": "push"}))

    assert isinstance(result.error, ValidationError)


def test_deveo_unsupported_event(deveo_payload):
    """Test events other than push."""
    result = DeveoProvider().transform_request(json_request(deveo_payload, **{"X-Deveo-Event": "issue"}))

    assert str(result.error) == "Unsupported Deveo Webhook event: issue"


# Assembla

@pytest.fixture
def assembla_payload():
    return {
        "assembla": {"space": "space", "action": "committed", "object": "Changeset"},
        "message": {"title": "title", "body": "Fix the build", "author": "ada"},
        "git": {
            "repository_suffix": "origin",
            "repository_url": "git@git.assembla.com:space.git",
            "branch": "master",
            "commit_id": "b69ee26e8cb9dac4c4a5d3a2b3a1a3d1b1c6e3f4",
        },
    }


def test_assembla_commit(assembla_payload):
    """Test a committed notification."""
    result = AssemblaProvider().transform_request(json_request(assembla_payload))

    entry = result.entries[0]
    assert entry.build_params.commit_message == "Fix the build"
    assert entry.build_params.commit_hash == "b69ee26e8cb9dac4c4a5d3a2b3a1a3d1b1c6e3f4"
    assert entry.build_params.branch == "master"
    assert entry.triggered_by == "ada"


def test_assembla_requires_json(assembla_payload):
    """Test the content type check."""
    request = HookRequest.from_raw({"Content-Type": "text/plain"}, json.dumps(assembla_payload))

    result = AssemblaProvider().transform_request(request)

    assert isinstance(result.error, ContentTypeError)


def test_assembla_wrong_action(assembla_payload):
    """Test other Assembla actions."""
    assembla_payload["assembla"]["action"] = "created"

    result = AssemblaProvider().transform_request(json_request(assembla_payload))

    assert str(result.error) == "Action was not 'committed', was: created"


def test_assembla_placeholder_values(assembla_payload):
    """Test an unconfigured webhook template."""
    assembla_payload["git"]["branch"] = "---"

    result = AssemblaProvider().transform_request(json_request(assembla_payload))

    assert "not correctly setup" in str(result.error)


@pytest.mark.parametrize("section,field,message", [
    ("message", "body", "Message body can't be empty"),
    ("message", "author", "Message author can't be empty"),
    ("git", "branch", "Git branch can't be empty"),
])
def test_assembla_required_fields(assembla_payload, section, field, message):
    """Test each required field."""
    assembla_payload[section][field] = ""

    result = AssemblaProvider().transform_request(json_request(assembla_payload))

    assert result.is_hard_error
    assert str(result.error) == message
