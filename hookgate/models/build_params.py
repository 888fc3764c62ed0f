"""Canonical build trigger data models."""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class PullRequestReadyState(str, Enum):
    """Draft / ready-for-review classification of a pull or merge request."""

    DRAFT = "draft"
    READY_FOR_REVIEW = "ready_for_review"
    CONVERTED_TO_READY_FOR_REVIEW = "converted_to_ready_for_review"


class CommitPaths(BaseModel):
    """Files touched by a single commit."""

    added: List[str] = Field(default_factory=list)
    removed: List[str] = Field(default_factory=list)
    modified: List[str] = Field(default_factory=list)


class EnvironmentItem(BaseModel):
    """Environment variable passed to the triggered build."""

    name: str
    value: str
    is_expand: bool = False


class BuildParams(BaseModel):
    """
    Platform agnostic build parameters.

    Only populated fields are sent downstream. A single instance describes
    either a branch push, a tag push or a pull request, never a mix of a tag
    and pull request fields.
    """

    branch: Optional[str] = None
    branch_repo_owner: Optional[str] = None
    branch_dest: Optional[str] = None
    branch_dest_repo_owner: Optional[str] = None
    tag: Optional[str] = None
    commit_hash: Optional[str] = None
    commit_message: Optional[str] = None
    commit_messages: List[str] = Field(default_factory=list)
    push_commit_paths: List[CommitPaths] = Field(default_factory=list)
    # None means "not a pull request"; 0 is a legal id on some platforms
    pull_request_id: Optional[int] = None
    pull_request_author: Optional[str] = None
    base_repository_url: Optional[str] = None
    head_repository_url: Optional[str] = None
    pull_request_repository_url: Optional[str] = None
    pull_request_merge_branch: Optional[str] = None
    pull_request_unverified_merge_branch: Optional[str] = None
    pull_request_head_branch: Optional[str] = None
    pull_request_ready_state: Optional[PullRequestReadyState] = None
    pull_request_labels: List[str] = Field(default_factory=list)
    pull_request_labels_added: List[str] = Field(default_factory=list)
    pull_request_comment: Optional[str] = None
    pull_request_comment_id: Optional[str] = None
    diff_url: Optional[str] = None
    workflow_id: Optional[str] = None
    environments: List[EnvironmentItem] = Field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        """Serialize without unset, empty or null fields."""
        data = self.model_dump(mode="json", exclude_none=True)
        return {key: value for key, value in data.items() if value not in ("", [], {})}

    @property
    def is_pull_request(self) -> bool:
        return self.pull_request_id is not None


class TriggerParams(BaseModel):
    """One build to start, as produced by a provider."""

    build_params: BuildParams
    triggered_by: str = ""
    dont_wait_for_response: bool = False


class TriggerResponse(BaseModel):
    """Response returned by the downstream build trigger endpoint."""

    model_config = {"extra": "ignore"}

    status: str = ""
    message: str = ""
    service: str = ""
    slug: str = ""
    build_slug: str = ""
    build_number: Optional[int] = None
    build_url: str = ""
    triggered_workflow: str = ""


class SkipResponse(BaseModel):
    """Local acknowledgement for a trigger entry that was not sent downstream."""

    message: str
    commit_hash: str = ""
    commit_message: str = ""
    branch: str = ""
