"""Bitbucket Server (self-hosted) provider."""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from hookgate.models.build_params import BuildParams, TriggerParams
from hookgate.models.hook_metrics import (
    PR_ACTION_CLOSED,
    PR_ACTION_OPENED,
    PR_ACTION_UPDATED,
    PUSH_ACTION_CREATED,
    PUSH_ACTION_DELETED,
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
    is_zero_sha,
    parse_timestamp,
    require_header,
)
from hookgate.providers.errors import (
    ContentTypeError,
    SkipCondition,
    UnsupportedEventError,
    ValidationError,
)
from hookgate.providers.ready_state import resolve_ready_state
from hookgate.providers.request import HookRequest

EVENT_HEADER = "X-Event-Key"

REFS_CHANGED_EVENT = "repo:refs_changed"
PING_EVENT = "diagnostics:ping"
PULL_REQUEST_EVENTS = (
    "pr:opened",
    "pr:modified",
    "pr:merged",
    "pr:from_ref_updated",
    "pr:comment:added",
    "pr:comment:edited",
)
METRICS_PULL_REQUEST_ACTIONS = {
    "pr:opened": PR_ACTION_OPENED,
    "pr:modified": PR_ACTION_UPDATED,
    "pr:merged": PR_ACTION_CLOSED,
    "pr:declined": PR_ACTION_CLOSED,
}

SCM_GIT = "git"
ACTION_ADD = "ADD"
ACTION_UPDATE = "UPDATE"
ACTION_DELETE = "DELETE"
REF_TYPE_BRANCH = "BRANCH"
REF_TYPE_TAG = "TAG"


class ServerPayloadModel(PayloadModel):
    """Bitbucket Server payloads use camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ServerUser(ServerPayloadModel):
    name: str = ""
    display_name: str = ""


class ServerProject(ServerPayloadModel):
    key: str = ""
    name: str = ""


class ServerRepository(ServerPayloadModel):
    slug: str = ""
    name: str = ""
    public: bool = False
    scm_id: str = ""
    project: ServerProject = Field(default_factory=ServerProject)

    @property
    def full_name(self) -> str:
        if self.project.key:
            return f"{self.project.key}/{self.slug}"
        return self.slug


class ServerRef(ServerPayloadModel):
    id: str = ""
    display_id: str = ""
    type: str = ""


class ServerChange(ServerPayloadModel):
    ref_id: str = ""
    from_hash: str = ""
    to_hash: str = ""
    type: str = ""
    ref: ServerRef = Field(default_factory=ServerRef)

    @property
    def is_buildable(self) -> bool:
        if self.ref.type == REF_TYPE_BRANCH:
            return self.type in (ACTION_ADD, ACTION_UPDATE)
        if self.ref.type == REF_TYPE_TAG:
            return self.type == ACTION_ADD
        return False


class ServerCommit(ServerPayloadModel):
    id: str = ""
    message: str = ""


class ServerPushEvent(ServerPayloadModel):
    event_key: str = ""
    date: str = ""
    actor: ServerUser = Field(default_factory=ServerUser)
    repository: ServerRepository = Field(default_factory=ServerRepository)
    changes: List[ServerChange] = Field(default_factory=list)
    commits: List[ServerCommit] = Field(default_factory=list)


class ServerPullRequestRef(ServerPayloadModel):
    id: str = ""
    display_id: str = ""
    latest_commit: str = ""
    repository: ServerRepository = Field(default_factory=ServerRepository)


class ServerAuthor(ServerPayloadModel):
    user: ServerUser = Field(default_factory=ServerUser)


class ServerPullRequest(ServerPayloadModel):
    id: int = 0
    title: str = ""
    state: str = ""
    draft: bool = False
    created_date: Optional[int] = None
    updated_date: Optional[int] = None
    author: ServerAuthor = Field(default_factory=ServerAuthor)
    from_ref: ServerPullRequestRef = Field(default_factory=ServerPullRequestRef)
    to_ref: ServerPullRequestRef = Field(default_factory=ServerPullRequestRef)


class ServerComment(ServerPayloadModel):
    id: int = 0
    text: str = ""


class ServerPullRequestEvent(ServerPayloadModel):
    event_key: str = ""
    date: str = ""
    actor: ServerUser = Field(default_factory=ServerUser)
    pull_request: ServerPullRequest = Field(default_factory=ServerPullRequest)
    comment: Optional[ServerComment] = None


def transform_push_event(push_event: ServerPushEvent) -> TransformResult:
    if not push_event.changes:
        raise ValidationError("No 'changes' included in the webhook, can't start a build", field="changes")
    if push_event.repository.scm_id != SCM_GIT:
        raise ValidationError(
            f"Unsupported repository / source control type (SCM): {push_event.repository.scm_id}",
            field="repository.scmId",
        )

    # commits can only be attributed to a ref when a single ref changed
    single_change = sum(1 for change in push_event.changes if change.is_buildable) <= 1
    messages_by_hash = {}
    all_messages: List[str] = []
    if single_change:
        messages_by_hash = {commit.id: commit.message for commit in push_event.commits}
        all_messages = [commit.message for commit in push_event.commits]

    triggered_by = generate_triggered_by(ProviderKind.BITBUCKET_SERVER.value, push_event.actor.name)
    entries = []
    errors = []
    for change in push_event.changes:
        if change.ref.type not in (REF_TYPE_BRANCH, REF_TYPE_TAG):
            errors.append(f"Ref was not a type=BRANCH nor type=TAG change. Type was: {change.ref.type}")
            continue
        if not change.is_buildable:
            expected = "type=UPDATE nor type=ADD" if change.ref.type == REF_TYPE_BRANCH else "type=ADD"
            errors.append(f"Not a {expected} change. Change.Type was: {change.type}")
            continue

        build_params = BuildParams(
            commit_hash=change.to_hash,
            commit_message=messages_by_hash.get(change.to_hash),
            commit_messages=all_messages,
        )
        if change.ref.type == REF_TYPE_BRANCH:
            build_params.branch = change.ref.display_id
        else:
            build_params.tag = change.ref.display_id
        entries.append(TriggerParams(build_params=build_params, triggered_by=triggered_by))

    if not entries:
        raise ValidationError(
            "'changes' specified in the webhook, but none can be transformed into a build. "
            f"Collected errors: {errors}"
        )
    return TransformResult.success(entries)


def transform_pull_request_event(event: ServerPullRequestEvent) -> TransformResult:
    pull_request = event.pull_request
    if pull_request.state != "OPEN":
        raise SkipCondition(f"Pull Request state doesn't require a build: {pull_request.state}")

    build_params = BuildParams(
        commit_message=pull_request.title,
        commit_hash=pull_request.from_ref.latest_commit,
        branch=pull_request.from_ref.display_id,
        branch_repo_owner=pull_request.from_ref.repository.project.key,
        branch_dest=pull_request.to_ref.display_id,
        branch_dest_repo_owner=pull_request.to_ref.repository.project.key,
        pull_request_id=pull_request.id,
        pull_request_author=pull_request.author.user.name,
        pull_request_ready_state=resolve_ready_state(pull_request.draft),
    )
    if event.comment is not None:
        build_params.pull_request_comment = event.comment.text
        build_params.pull_request_comment_id = str(event.comment.id)

    return TransformResult.success([
        TriggerParams(
            build_params=build_params,
            triggered_by=generate_triggered_by(ProviderKind.BITBUCKET_SERVER.value, event.actor.name),
        )
    ])


class BitbucketServerProvider(HookProvider):
    """Transforms Bitbucket Server ref change and pull request webhooks."""

    @property
    def kind(self) -> ProviderKind:
        return ProviderKind.BITBUCKET_SERVER

    def _transform(self, request: HookRequest) -> TransformResult:
        content_type = require_header(request, "Content-Type")
        event = require_header(request, EVENT_HEADER)
        if not content_type.startswith(CONTENT_TYPE_JSON):
            raise ContentTypeError(f"Content-Type is not supported: {content_type}", content_type=content_type)

        if event == PING_EVENT:
            raise SkipCondition(f"Bitbucket event type: {event} is successful")
        if event == REFS_CHANGED_EVENT:
            return transform_push_event(decode_json(ServerPushEvent, request.body))
        if event in PULL_REQUEST_EVENTS:
            return transform_pull_request_event(decode_json(ServerPullRequestEvent, request.body))
        raise UnsupportedEventError(f"X-Event-Key is not supported: {event}", event=event)

    def gather_metrics(self, request: HookRequest, app_slug: str, now: datetime) -> List[HookMetric]:
        event = request.header(EVENT_HEADER)
        if event == REFS_CHANGED_EVENT:
            return push_metrics(decode_json(ServerPushEvent, request.body), event, app_slug, now)
        if event in METRICS_PULL_REQUEST_ACTIONS:
            return [pull_request_metrics(decode_json(ServerPullRequestEvent, request.body), event, app_slug, now)]
        return []


def _millis_to_datetime(value: Optional[int]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def push_metrics(push_event: ServerPushEvent, event: str, app_slug: str, now: datetime) -> List[HookMetric]:
    metrics: List[HookMetric] = []
    for change in push_event.changes:
        if change.ref.type == REF_TYPE_TAG:
            continue

        if change.type == ACTION_ADD or is_zero_sha(change.from_hash):
            action = PUSH_ACTION_CREATED
        elif change.type == ACTION_DELETE or is_zero_sha(change.to_hash):
            action = PUSH_ACTION_DELETED
        else:
            action = PUSH_ACTION_PUSHED

        metrics.append(PushMetrics(
            action=action,
            general=GeneralMetrics(
                provider_type=ProviderKind.BITBUCKET_SERVER.value,
                repository=push_event.repository.full_name,
                timestamp=now,
                event_timestamp=parse_timestamp(push_event.date),
                app_slug=app_slug,
                original_trigger=original_trigger(event),
                user_name=push_event.actor.name,
                git_ref=change.ref_id,
            ),
            commit_id_after=change.to_hash,
            commit_id_before=change.from_hash,
        ))
    return metrics


def pull_request_metrics(
    event_model: ServerPullRequestEvent, event: str, app_slug: str, now: datetime
) -> PullRequestMetrics:
    pull_request = event_model.pull_request
    action = METRICS_PULL_REQUEST_ACTIONS[event]
    event_millis = pull_request.created_date if action == PR_ACTION_OPENED else pull_request.updated_date

    return PullRequestMetrics(
        action=action,
        general=GeneralMetrics(
            provider_type=ProviderKind.BITBUCKET_SERVER.value,
            repository=pull_request.to_ref.repository.full_name,
            timestamp=now,
            event_timestamp=_millis_to_datetime(event_millis) or parse_timestamp(event_model.date),
            app_slug=app_slug,
            original_trigger=original_trigger(event),
            user_name=event_model.actor.name,
            git_ref=pull_request.from_ref.id,
        ),
        pull_request_title=pull_request.title,
        pull_request_id=str(pull_request.id),
        target_branch=pull_request.to_ref.display_id,
        commit_id=pull_request.from_ref.latest_commit,
        status=pull_request.state,
    )
