"""
GitHub webhook provider.

Handles ``push`` and ``pull_request`` events delivered either as a JSON body
or as an urlencoded form with the JSON document in the ``payload`` field.
"""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import Field

from hookgate.models.build_params import BuildParams, CommitPaths, EnvironmentItem, TriggerParams
from hookgate.models.hook_metrics import (
    PR_ACTION_CLOSED,
    PR_ACTION_OPENED,
    PR_ACTION_UPDATED,
    PUSH_ACTION_CREATED,
    PUSH_ACTION_DELETED,
    PUSH_ACTION_FORCED,
    PUSH_ACTION_PUSHED,
    GeneralMetrics,
    HookMetric,
    PullRequestCommentMetrics,
    PullRequestMetrics,
    PushMetrics,
    original_trigger,
)
from hookgate.models.transform import TransformResult
from hookgate.providers.base import HookProvider, ProviderKind
from hookgate.providers.common import (
    CONTENT_TYPE_FORM,
    CONTENT_TYPE_JSON,
    HEADER_CONTENT_TYPE,
    PayloadModel,
    decode_body,
    generate_triggered_by,
    parse_timestamp,
    require_content_type,
    require_header,
    strip_prefix,
)
from hookgate.providers.errors import SkipCondition, UnsupportedEventError, ValidationError
from hookgate.providers.ready_state import resolve_ready_state
from hookgate.providers.request import HookRequest
from hookgate.providers.skipci import is_skip_build_by_commit_message

EVENT_HEADER = "X-Github-Event"

PUSH_EVENT = "push"
PULL_REQUEST_EVENT = "pull_request"
PING_EVENT = "ping"

BUILDABLE_PR_ACTIONS = frozenset({
    "opened", "reopened", "synchronize", "edited", "ready_for_review", "labeled",
})

DRAFT_ENV_KEY = "GITHUB_PR_IS_DRAFT"


class GithubUser(PayloadModel):
    login: str = ""
    name: str = ""


class GithubRepository(PayloadModel):
    private: bool = False
    ssh_url: str = ""
    clone_url: str = ""
    full_name: str = ""
    default_branch: str = ""
    owner: GithubUser = Field(default_factory=GithubUser)

    @property
    def repository_url(self) -> str:
        if self.private:
            return self.ssh_url
        return self.clone_url


class GithubCommit(PayloadModel):
    id: str = ""
    message: str = ""
    timestamp: str = ""
    added: List[str] = Field(default_factory=list)
    removed: List[str] = Field(default_factory=list)
    modified: List[str] = Field(default_factory=list)

    def paths(self) -> CommitPaths:
        return CommitPaths(added=self.added, removed=self.removed, modified=self.modified)


class GithubPushEvent(PayloadModel):
    ref: str = ""
    before: str = ""
    after: str = ""
    created: bool = False
    deleted: bool = False
    forced: bool = False
    head_commit: GithubCommit = Field(default_factory=GithubCommit)
    commits: List[GithubCommit] = Field(default_factory=list)
    repository: GithubRepository = Field(default_factory=GithubRepository)
    pusher: GithubUser = Field(default_factory=GithubUser)


class GithubBranchInfo(PayloadModel):
    ref: str = ""
    sha: str = ""
    repo: GithubRepository = Field(default_factory=GithubRepository)


class GithubLabel(PayloadModel):
    id: int = 0
    name: str = ""


class GithubPullRequest(PayloadModel):
    number: int = 0
    state: str = ""
    title: str = ""
    body: str = ""
    merged: bool = False
    mergeable: Optional[bool] = None
    draft: bool = False
    diff_url: str = ""
    html_url: str = ""
    merge_commit_sha: str = ""
    created_at: str = ""
    updated_at: str = ""
    commits: Optional[int] = None
    additions: Optional[int] = None
    deletions: Optional[int] = None
    changed_files: Optional[int] = None
    head: GithubBranchInfo = Field(default_factory=GithubBranchInfo)
    base: GithubBranchInfo = Field(default_factory=GithubBranchInfo)
    user: GithubUser = Field(default_factory=GithubUser)
    labels: List[GithubLabel] = Field(default_factory=list)


class GithubChangeFrom(PayloadModel):
    previous: str = Field(default="", alias="from")


class GithubChanges(PayloadModel):
    title: GithubChangeFrom = Field(default_factory=GithubChangeFrom)
    body: GithubChangeFrom = Field(default_factory=GithubChangeFrom)
    base: Optional[Any] = None


class GithubPullRequestEvent(PayloadModel):
    action: str = ""
    number: int = 0
    pull_request: GithubPullRequest = Field(default_factory=GithubPullRequest)
    changes: GithubChanges = Field(default_factory=GithubChanges)
    label: Optional[GithubLabel] = None
    repository: GithubRepository = Field(default_factory=GithubRepository)
    sender: GithubUser = Field(default_factory=GithubUser)


class GithubIssue(PayloadModel):
    number: int = 0
    pull_request: Optional[Any] = None


class GithubComment(PayloadModel):
    updated_at: str = ""
    user: GithubUser = Field(default_factory=GithubUser)


class GithubCommentEvent(PayloadModel):
    """issue_comment and pull_request_review_comment deliveries."""

    action: str = ""
    issue: Optional[GithubIssue] = None
    pull_request: Optional[GithubPullRequest] = None
    comment: GithubComment = Field(default_factory=GithubComment)
    repository: GithubRepository = Field(default_factory=GithubRepository)


def transform_push_event(push: GithubPushEvent) -> TransformResult:
    if push.deleted:
        raise SkipCondition("this is a 'Deleted' event, no build can be started")

    build_params = BuildParams()
    branch = strip_prefix(push.ref, "refs/heads/")
    tag = strip_prefix(push.ref, "refs/tags/")
    if branch is not None:
        build_params.branch = branch
    elif tag is not None:
        build_params.tag = tag
    else:
        raise SkipCondition(f"ref ({push.ref}) is not a head nor a tag ref")

    head_commit = push.head_commit
    if not head_commit.id:
        raise ValidationError("missing commit hash", field="head_commit.id")

    commits = push.commits or [head_commit]
    build_params.commit_hash = head_commit.id
    build_params.commit_message = head_commit.message
    build_params.commit_messages = [commit.message for commit in commits]
    build_params.push_commit_paths = [commit.paths() for commit in commits]
    build_params.base_repository_url = push.repository.repository_url

    return TransformResult.success([
        TriggerParams(
            build_params=build_params,
            triggered_by=generate_triggered_by(ProviderKind.GITHUB.value, push.pusher.name),
        )
    ])


def is_edit_build_worthy(event: GithubPullRequestEvent) -> bool:
    """
    An edit only starts a build when the base branch changed, or when the
    previous title or body carried a skip ci marker that the edit may have removed.
    """
    if event.changes.base is not None:
        return True
    return (
        is_skip_build_by_commit_message(event.changes.title.previous)
        or is_skip_build_by_commit_message(event.changes.body.previous)
    )


def transform_pull_request_event(event: GithubPullRequestEvent) -> TransformResult:
    action = event.action
    if not action:
        raise SkipCondition("no Pull Request action specified")
    if action not in BUILDABLE_PR_ACTIONS:
        raise SkipCondition(f"pull Request action doesn't require a build: {action}")
    if action == "edited" and not is_edit_build_worthy(event):
        raise SkipCondition(
            "pull Request edit doesn't require a build: only title and/or description "
            "was changed, and previous one was not skipped"
        )

    pr = event.pull_request
    if pr.merged:
        raise SkipCondition("pull Request already merged")
    if action == "labeled" and pr.mergeable is None:
        raise SkipCondition("pull Request label added to PR that is not open yet")
    if pr.mergeable is False:
        raise SkipCondition("pull Request is not mergeable")

    number = event.number or pr.number
    merge_ref = f"pull/{number}/merge"
    commit_message = pr.title
    if pr.body:
        commit_message = f"{commit_message}\n\n{pr.body}"

    environments = []
    if pr.draft:
        environments.append(EnvironmentItem(name=DRAFT_ENV_KEY, value="true", is_expand=False))

    build_params = BuildParams(
        commit_message=commit_message,
        commit_hash=pr.head.sha,
        branch=pr.head.ref,
        branch_repo_owner=pr.head.repo.owner.login,
        branch_dest=pr.base.ref,
        branch_dest_repo_owner=pr.base.repo.owner.login,
        pull_request_id=number,
        base_repository_url=pr.base.repo.repository_url,
        head_repository_url=pr.head.repo.repository_url,
        pull_request_repository_url=pr.head.repo.repository_url,
        pull_request_author=pr.user.login,
        pull_request_head_branch=f"pull/{number}/head",
        # only a verified merge ref once GitHub has computed mergeability
        pull_request_merge_branch=merge_ref if pr.mergeable is not None else None,
        pull_request_unverified_merge_branch=merge_ref,
        diff_url=pr.diff_url,
        environments=environments,
        pull_request_ready_state=resolve_ready_state(pr.draft, action),
        pull_request_labels=[label.name for label in pr.labels],
    )
    if event.label is not None:
        build_params.pull_request_labels_added = [event.label.name]

    return TransformResult.success(
        [
            TriggerParams(
                build_params=build_params,
                triggered_by=generate_triggered_by(ProviderKind.GITHUB.value, event.sender.login),
            )
        ],
        skipped_by_pr_description=(
            not is_skip_build_by_commit_message(pr.title)
            and is_skip_build_by_commit_message(pr.body)
        ),
    )


class GithubProvider(HookProvider):
    """Transforms GitHub push and pull request webhooks."""

    @property
    def kind(self) -> ProviderKind:
        return ProviderKind.GITHUB

    def _transform(self, request: HookRequest) -> TransformResult:
        require_header(request, HEADER_CONTENT_TYPE)
        event = require_header(request, EVENT_HEADER)
        content_type = require_content_type(request, CONTENT_TYPE_JSON, CONTENT_TYPE_FORM)

        if event == PING_EVENT:
            raise SkipCondition("ping event received")
        if event == PUSH_EVENT:
            return transform_push_event(decode_body(GithubPushEvent, request, content_type))
        if event == PULL_REQUEST_EVENT:
            return transform_pull_request_event(decode_body(GithubPullRequestEvent, request, content_type))
        raise UnsupportedEventError(f"unsupported GitHub Webhook event: {event}", event=event)

    def gather_metrics(self, request: HookRequest, app_slug: str, now: datetime) -> List[HookMetric]:
        content_type = require_content_type(request, CONTENT_TYPE_JSON, CONTENT_TYPE_FORM)
        event = require_header(request, EVENT_HEADER)

        if event == PUSH_EVENT:
            return [push_metrics(decode_body(GithubPushEvent, request, content_type), event, app_slug, now)]
        if event == PULL_REQUEST_EVENT:
            return [pull_request_metrics(decode_body(GithubPullRequestEvent, request, content_type), event, app_slug, now)]
        if event in ("issue_comment", "pull_request_review_comment"):
            comment_event = decode_body(GithubCommentEvent, request, content_type)
            metric = pull_request_comment_metrics(comment_event, event, app_slug, now)
            return [metric] if metric is not None else []
        return []


def push_metrics(push: GithubPushEvent, event: str, app_slug: str, now: datetime) -> PushMetrics:
    if push.created:
        action = PUSH_ACTION_CREATED
    elif push.deleted:
        action = PUSH_ACTION_DELETED
    elif push.forced:
        action = PUSH_ACTION_FORCED
    else:
        action = PUSH_ACTION_PUSHED

    timestamps = [ts for ts in (parse_timestamp(c.timestamp) for c in push.commits) if ts is not None]
    return PushMetrics(
        action=action,
        general=GeneralMetrics(
            provider_type=ProviderKind.GITHUB.value,
            repository=push.repository.full_name,
            timestamp=now,
            event_timestamp=parse_timestamp(push.head_commit.timestamp),
            app_slug=app_slug,
            original_trigger=original_trigger(event),
            user_name=push.pusher.name,
            git_ref=push.ref,
        ),
        commit_id_after=push.after,
        commit_id_before=push.before,
        oldest_commit_timestamp=min(timestamps) if timestamps else None,
        latest_commit_timestamp=max(timestamps) if timestamps else None,
        master_branch=push.repository.default_branch,
    )


def pull_request_metrics(
    event_model: GithubPullRequestEvent, event: str, app_slug: str, now: datetime
) -> PullRequestMetrics:
    pr = event_model.pull_request
    merge_commit_sha = ""
    if event_model.action in ("opened", "reopened"):
        action = PR_ACTION_OPENED
        event_timestamp = parse_timestamp(pr.created_at)
    elif event_model.action == "closed":
        action = PR_ACTION_CLOSED
        event_timestamp = parse_timestamp(pr.updated_at)
        if pr.merged:
            merge_commit_sha = pr.merge_commit_sha
    else:
        action = PR_ACTION_UPDATED
        event_timestamp = parse_timestamp(pr.updated_at)

    return PullRequestMetrics(
        action=action,
        general=GeneralMetrics(
            provider_type=ProviderKind.GITHUB.value,
            repository=event_model.repository.full_name,
            timestamp=now,
            event_timestamp=event_timestamp,
            app_slug=app_slug,
            original_trigger=original_trigger(event, event_model.action),
            user_name=pr.user.login,
            git_ref=pr.head.ref,
        ),
        pull_request_title=pr.title,
        pull_request_id=str(event_model.number or pr.number),
        pull_request_url=pr.html_url,
        target_branch=pr.base.ref,
        commit_id=pr.head.sha,
        changed_files_count=pr.changed_files,
        addition_count=pr.additions,
        deletion_count=pr.deletions,
        commit_count=pr.commits,
        merge_commit_sha=merge_commit_sha,
        status=pr.state,
    )


def pull_request_comment_metrics(
    event_model: GithubCommentEvent, event: str, app_slug: str, now: datetime
) -> Optional[PullRequestCommentMetrics]:
    if event_model.pull_request is not None:
        pr_number = event_model.pull_request.number
        git_ref = event_model.pull_request.head.ref
    elif event_model.issue is not None and event_model.issue.pull_request is not None:
        pr_number = event_model.issue.number
        git_ref = ""
    else:
        # comment on a plain issue
        return None

    return PullRequestCommentMetrics(
        general=GeneralMetrics(
            provider_type=ProviderKind.GITHUB.value,
            repository=event_model.repository.full_name,
            timestamp=now,
            event_timestamp=parse_timestamp(event_model.comment.updated_at),
            app_slug=app_slug,
            original_trigger=original_trigger(event, event_model.action),
            user_name=event_model.comment.user.login,
            git_ref=git_ref,
        ),
        pull_request_id=str(pr_number),
    )
