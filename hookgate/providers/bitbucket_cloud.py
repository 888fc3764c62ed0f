"""Bitbucket Cloud (webhooks v2) provider."""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from hookgate.models.build_params import BuildParams, TriggerParams
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
    PullRequestMetrics,
    PushMetrics,
    original_trigger,
)
from hookgate.models.transform import TransformResult
from hookgate.providers.base import HookProvider, ProviderKind
from hookgate.providers.common import (
    CONTENT_TYPE_JSON,
    PayloadModel,
    decode_json,
    generate_triggered_by,
    parse_timestamp,
    require_header,
)
from hookgate.providers.errors import (
    ContentTypeError,
    HeaderError,
    SkipCondition,
    UnsupportedEventError,
    ValidationError,
)
from hookgate.providers.ready_state import resolve_ready_state
from hookgate.providers.request import HookRequest
from hookgate.providers.skipci import is_skip_build_by_commit_message

EVENT_HEADER = "X-Event-Key"
ATTEMPT_HEADER = "X-Attempt-Number"

PUSH_EVENT = "repo:push"
PULL_REQUEST_EVENTS = (
    "pullrequest:created",
    "pullrequest:updated",
    "pullrequest:comment_created",
    "pullrequest:comment_updated",
)
METRICS_PULL_REQUEST_ACTIONS = {
    "pullrequest:created": PR_ACTION_OPENED,
    "pullrequest:updated": PR_ACTION_UPDATED,
    "pullrequest:fulfilled": PR_ACTION_CLOSED,
    "pullrequest:rejected": PR_ACTION_CLOSED,
}

SCM_GIT = "git"
SCM_MERCURIAL = "hg"
BRANCH_CHANGE_TYPES = {SCM_GIT: "branch", SCM_MERCURIAL: "named_branch"}


class BitbucketUser(PayloadModel):
    username: str = ""
    nickname: str = ""


class BitbucketRepository(PayloadModel):
    full_name: str = ""
    is_private: Optional[bool] = None
    scm: str = ""
    owner: BitbucketUser = Field(default_factory=BitbucketUser)

    def repository_url(self, private: bool) -> str:
        if private:
            return f"git@bitbucket.org:{self.full_name}.git"
        return f"https://bitbucket.org/{self.full_name}.git"


class BitbucketTarget(PayloadModel):
    type: str = ""
    hash: str = ""
    message: str = ""
    date: str = ""


class BitbucketRef(PayloadModel):
    type: str = ""
    name: str = ""
    target: BitbucketTarget = Field(default_factory=BitbucketTarget)


class BitbucketCommit(PayloadModel):
    hash: str = ""
    message: str = ""


class BitbucketChange(PayloadModel):
    new: BitbucketRef = Field(default_factory=BitbucketRef)
    old: BitbucketRef = Field(default_factory=BitbucketRef)
    forced: bool = False
    commits: List[BitbucketCommit] = Field(default_factory=list)


class BitbucketPush(PayloadModel):
    changes: List[BitbucketChange] = Field(default_factory=list)


class BitbucketPushEvent(PayloadModel):
    actor: BitbucketUser = Field(default_factory=BitbucketUser)
    push: BitbucketPush = Field(default_factory=BitbucketPush)
    repository: BitbucketRepository = Field(default_factory=BitbucketRepository)


class BitbucketBranch(PayloadModel):
    name: str = ""


class BitbucketCommitRef(PayloadModel):
    hash: str = ""


class BitbucketPullRequestEndpoint(PayloadModel):
    branch: BitbucketBranch = Field(default_factory=BitbucketBranch)
    commit: BitbucketCommitRef = Field(default_factory=BitbucketCommitRef)
    repository: BitbucketRepository = Field(default_factory=BitbucketRepository)


class BitbucketPullRequest(PayloadModel):
    id: int = 0
    type: str = ""
    title: str = ""
    description: str = ""
    state: str = ""
    created_on: str = ""
    updated_on: str = ""
    comment_count: Optional[int] = None
    draft: bool = False
    author: BitbucketUser = Field(default_factory=BitbucketUser)
    source: BitbucketPullRequestEndpoint = Field(default_factory=BitbucketPullRequestEndpoint)
    destination: BitbucketPullRequestEndpoint = Field(default_factory=BitbucketPullRequestEndpoint)
    merge_commit: BitbucketCommitRef = Field(default_factory=BitbucketCommitRef)


class BitbucketCommentContent(PayloadModel):
    raw: str = ""


class BitbucketComment(PayloadModel):
    id: int = 0
    content: BitbucketCommentContent = Field(default_factory=BitbucketCommentContent)


class BitbucketPullRequestEvent(PayloadModel):
    actor: BitbucketUser = Field(default_factory=BitbucketUser)
    pullrequest: BitbucketPullRequest = Field(default_factory=BitbucketPullRequest)
    repository: BitbucketRepository = Field(default_factory=BitbucketRepository)
    comment: Optional[BitbucketComment] = None


def transform_push_event(push_event: BitbucketPushEvent) -> TransformResult:
    if not push_event.push.changes:
        raise ValidationError("No 'changes' included in the webhook, can't start a build", field="push.changes")

    repository = push_event.repository
    if repository.scm not in BRANCH_CHANGE_TYPES:
        raise ValidationError(
            f"Unsupported repository / source control type (SCM): {repository.scm}", field="repository.scm"
        )

    repository_url = repository.repository_url(bool(repository.is_private))
    triggered_by = generate_triggered_by(ProviderKind.BITBUCKET_CLOUD.value, push_event.actor.nickname)

    entries = []
    errors = []
    for change in push_event.push.changes:
        new_ref = change.new
        is_branch = new_ref.type == BRANCH_CHANGE_TYPES[repository.scm]
        if not is_branch and new_ref.type != "tag":
            errors.append(f"Not a type=branch nor type=tag change. Change.Type was: {new_ref.type}")
            continue
        if new_ref.target.type != "commit":
            errors.append(f"Target was not a type=commit change. Type was: {new_ref.target.type}")
            continue

        build_params = BuildParams(
            commit_hash=new_ref.target.hash,
            commit_message=new_ref.target.message,
            commit_messages=[commit.message for commit in change.commits],
            base_repository_url=repository_url,
        )
        if is_branch:
            build_params.branch = new_ref.name
        else:
            build_params.tag = new_ref.name
        entries.append(TriggerParams(build_params=build_params, triggered_by=triggered_by))

    if not entries:
        raise ValidationError(
            "'changes' specified in the webhook, but none can be transformed into a build. "
            f"Collected errors: {errors}"
        )
    return TransformResult.success(entries)


def source_is_private(event: BitbucketPullRequestEvent) -> bool:
    """
    Privacy of the pull request's source repository.

    Same-repository pull requests inherit the webhook repository's flag. Forks
    are private unless the payload explicitly says otherwise.
    """
    pull_request = event.pullrequest
    source_repo = pull_request.source.repository
    if source_repo.full_name == pull_request.destination.repository.full_name:
        return bool(event.repository.is_private)
    if source_repo.is_private is None:
        return True
    return source_repo.is_private


def transform_pull_request_event(event: BitbucketPullRequestEvent) -> TransformResult:
    pull_request = event.pullrequest
    if pull_request.type != "pullrequest":
        raise SkipCondition(f"Pull Request type is not supported: {pull_request.type}")
    if pull_request.state != "OPEN":
        raise SkipCondition(f"Pull Request state doesn't require a build: {pull_request.state}")

    commit_message = pull_request.title
    if pull_request.description:
        commit_message = f"{commit_message}\n\n{pull_request.description}"

    source = pull_request.source
    destination = pull_request.destination
    head_repository_url = source.repository.repository_url(source_is_private(event))
    destination_private = destination.repository.is_private
    if destination_private is None:
        destination_private = bool(event.repository.is_private)

    build_params = BuildParams(
        commit_message=commit_message,
        commit_hash=source.commit.hash,
        branch=source.branch.name,
        branch_repo_owner=source.repository.owner.nickname,
        branch_dest=destination.branch.name,
        branch_dest_repo_owner=destination.repository.owner.nickname,
        pull_request_id=pull_request.id,
        base_repository_url=destination.repository.repository_url(destination_private),
        head_repository_url=head_repository_url,
        pull_request_repository_url=head_repository_url,
        pull_request_author=pull_request.author.nickname,
        pull_request_ready_state=resolve_ready_state(pull_request.draft),
    )
    if event.comment is not None:
        build_params.pull_request_comment = event.comment.content.raw
        build_params.pull_request_comment_id = str(event.comment.id)

    return TransformResult.success(
        [TriggerParams(
            build_params=build_params,
            triggered_by=generate_triggered_by(ProviderKind.BITBUCKET_CLOUD.value, pull_request.author.nickname),
        )],
        skipped_by_pr_description=(
            not is_skip_build_by_commit_message(pull_request.title)
            and is_skip_build_by_commit_message(pull_request.description)
        ),
    )


class BitbucketCloudProvider(HookProvider):
    """Transforms Bitbucket Cloud push and pull request webhooks."""

    @property
    def kind(self) -> ProviderKind:
        return ProviderKind.BITBUCKET_CLOUD

    def _transform(self, request: HookRequest) -> TransformResult:
        content_type = require_header(request, "Content-Type")
        event = require_header(request, EVENT_HEADER)
        attempt = request.header(ATTEMPT_HEADER) or "1"

        if content_type != CONTENT_TYPE_JSON:
            raise ContentTypeError(f"Content-Type is not supported: {content_type}", content_type=content_type)
        if event != PUSH_EVENT and event not in PULL_REQUEST_EVENTS:
            raise UnsupportedEventError(f"X-Event-Key is not supported: {event}", event=event)
        if attempt != "1":
            raise HeaderError(f"No retry is supported ({ATTEMPT_HEADER}: {attempt})", header=ATTEMPT_HEADER)

        if event == PUSH_EVENT:
            return transform_push_event(decode_json(BitbucketPushEvent, request.body))
        return transform_pull_request_event(decode_json(BitbucketPullRequestEvent, request.body))

    def gather_metrics(self, request: HookRequest, app_slug: str, now: datetime) -> List[HookMetric]:
        event = request.header(EVENT_HEADER)
        if event == PUSH_EVENT:
            return push_metrics(decode_json(BitbucketPushEvent, request.body), event, app_slug, now)
        if event in METRICS_PULL_REQUEST_ACTIONS:
            return [pull_request_metrics(decode_json(BitbucketPullRequestEvent, request.body), event, app_slug, now)]
        return []


def push_metrics(push_event: BitbucketPushEvent, event: str, app_slug: str, now: datetime) -> List[HookMetric]:
    metrics: List[HookMetric] = []
    for change in push_event.push.changes:
        if change.new.type == "tag" or change.old.type == "tag":
            continue

        event_timestamp = parse_timestamp(change.new.target.date)
        git_ref = change.new.name
        if not change.old.target.hash:
            action = PUSH_ACTION_CREATED
        elif not change.new.target.hash:
            action = PUSH_ACTION_DELETED
            event_timestamp = None
            git_ref = change.old.name
        elif change.forced:
            action = PUSH_ACTION_FORCED
        else:
            action = PUSH_ACTION_PUSHED

        metrics.append(PushMetrics(
            action=action,
            general=GeneralMetrics(
                provider_type=ProviderKind.BITBUCKET_CLOUD.value,
                repository=push_event.repository.full_name,
                timestamp=now,
                event_timestamp=event_timestamp,
                app_slug=app_slug,
                original_trigger=original_trigger(event),
                user_name=push_event.actor.nickname,
                git_ref=git_ref,
            ),
            commit_id_after=change.new.target.hash,
            commit_id_before=change.old.target.hash,
        ))
    return metrics


def pull_request_metrics(
    event_model: BitbucketPullRequestEvent, event: str, app_slug: str, now: datetime
) -> PullRequestMetrics:
    pull_request = event_model.pullrequest
    action = METRICS_PULL_REQUEST_ACTIONS[event]
    timestamp = pull_request.created_on if action == PR_ACTION_OPENED else pull_request.updated_on

    return PullRequestMetrics(
        action=action,
        general=GeneralMetrics(
            provider_type=ProviderKind.BITBUCKET_CLOUD.value,
            repository=event_model.repository.full_name,
            timestamp=now,
            event_timestamp=parse_timestamp(timestamp),
            app_slug=app_slug,
            original_trigger=original_trigger(event),
            user_name=event_model.actor.nickname,
            git_ref=pull_request.source.branch.name,
        ),
        pull_request_title=pull_request.title,
        pull_request_id=str(pull_request.id),
        target_branch=pull_request.destination.branch.name,
        commit_id=pull_request.source.commit.hash,
        merge_commit_sha=pull_request.merge_commit.hash,
        status=pull_request.state,
    )
