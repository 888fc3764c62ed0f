"""Observability events extracted from webhook payloads."""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel

PUSH_EVENT = "git_push"
PULL_REQUEST_EVENT = "pull_request"

PUSH_ACTION_PUSHED = "pushed"
PUSH_ACTION_FORCED = "forced"
PUSH_ACTION_CREATED = "created"
PUSH_ACTION_DELETED = "deleted"

PR_ACTION_OPENED = "opened"
PR_ACTION_UPDATED = "updated"
PR_ACTION_CLOSED = "closed"
PR_ACTION_COMMENT = "comment"


class GeneralMetrics(BaseModel):
    """Fields shared by every metric event."""

    provider_type: str
    repository: str = ""
    timestamp: datetime
    event_timestamp: Optional[datetime] = None
    app_slug: str = ""
    original_trigger: str = ""
    user_name: str = ""
    git_ref: str = ""


class HookMetric(BaseModel):
    """Base for the concrete metric events."""

    event: str
    action: str
    general: GeneralMetrics

    def to_json_dict(self) -> Dict[str, Any]:
        """Flatten the general fields and drop empty values."""
        data = self.model_dump(mode="json", exclude={"general"}, exclude_none=True)
        data.update(self.general.model_dump(mode="json", exclude_none=True))
        return {key: value for key, value in data.items() if value not in ("", None)}


class PushMetrics(HookMetric):
    """A branch or tag push."""

    event: str = PUSH_EVENT
    commit_id_after: str = ""
    commit_id_before: str = ""
    oldest_commit_timestamp: Optional[datetime] = None
    latest_commit_timestamp: Optional[datetime] = None
    master_branch: str = ""


class PullRequestMetrics(HookMetric):
    """A pull request lifecycle change."""

    event: str = PULL_REQUEST_EVENT
    pull_request_title: str = ""
    pull_request_id: str = ""
    pull_request_url: str = ""
    target_branch: str = ""
    commit_id: str = ""
    changed_files_count: Optional[int] = None
    addition_count: Optional[int] = None
    deletion_count: Optional[int] = None
    commit_count: Optional[int] = None
    merge_commit_sha: str = ""
    status: str = ""


class PullRequestCommentMetrics(HookMetric):
    """A comment added to a pull request."""

    event: str = PULL_REQUEST_EVENT
    action: str = PR_ACTION_COMMENT
    pull_request_id: str = ""


def original_trigger(event: str, action: str = "") -> str:
    if action:
        return f"{event}:{action}"
    return event
