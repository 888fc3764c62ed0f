"""
GitLab webhook provider.

GitLab reports the authoritative commit of a push in ``checkout_sha``; the
matching commit has to be found in the ``commits`` array, there is no
fallback to the last element. Every GitLab result asks the caller not to
wait for the downstream trigger response.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import AliasChoices, Field

from hookgate.models.build_params import (
    BuildParams,
    CommitPaths,
    EnvironmentItem,
    PullRequestReadyState,
    TriggerParams,
)
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
    COMMIT_MESSAGES_ENV_KEY,
    CONTENT_TYPE_JSON,
    PayloadModel,
    build_commit_messages_env,
    decode_json,
    generate_triggered_by,
    is_zero_sha,
    parse_timestamp,
    require_header,
    strip_prefix,
)
from hookgate.providers.errors import (
    ContentTypeError,
    SkipCondition,
    UnsupportedEventError,
    ValidationError,
)
from hookgate.providers.ready_state import resolve_ready_state_from_draft_change
from hookgate.providers.request import HookRequest
from hookgate.providers.skipci import is_skip_build_by_commit_message
from hookgate.utils.logging import get_logger

logger = get_logger(__name__, provider="gitlab")

EVENT_HEADER = "X-Gitlab-Event"

PUSH_HOOK = "Push Hook"
TAG_PUSH_HOOK = "Tag Push Hook"
MERGE_REQUEST_HOOK = "Merge Request Hook"
NOTE_HOOK = "Note Hook"
SUPPORTED_EVENTS = (PUSH_HOOK, TAG_PUSH_HOOK, MERGE_REQUEST_HOOK, NOTE_HOOK)

PUBLIC_VISIBILITY_LEVEL = 20
BUILDABLE_MR_STATES = ("opened", "reopened")
UNCHECKED_MERGE_STATUSES = ("preparing", "unchecked")

DEFAULT_ENV_BYTES_LIMIT = 256 * 1024


class GitlabRepository(PayloadModel):
    visibility_level: int = 0
    git_ssh_url: str = ""
    git_http_url: str = ""
    namespace: str = ""
    name: str = ""
    path_with_namespace: str = ""
    default_branch: str = ""

    @property
    def repository_url(self) -> str:
        if self.visibility_level == PUBLIC_VISIBILITY_LEVEL:
            return self.git_http_url
        return self.git_ssh_url


class GitlabCommit(PayloadModel):
    id: str = ""
    message: str = ""
    timestamp: str = ""
    added: List[str] = Field(default_factory=list)
    modified: List[str] = Field(default_factory=list)
    removed: List[str] = Field(default_factory=list)


class GitlabPushEvent(PayloadModel):
    object_kind: str = ""
    event_name: str = ""
    ref: str = ""
    before: str = ""
    after: str = ""
    checkout_sha: str = ""
    user_username: str = ""
    commits: List[GitlabCommit] = Field(default_factory=list)
    repository: GitlabRepository = Field(
        default_factory=GitlabRepository,
        validation_alias=AliasChoices("repository", "respository"),
    )
    project: GitlabRepository = Field(default_factory=GitlabRepository)


class GitlabLabel(PayloadModel):
    id: int = 0
    title: str = ""


class GitlabLastCommit(PayloadModel):
    id: str = ""


class GitlabMergeRequest(PayloadModel):
    iid: int = 0
    title: str = ""
    description: str = ""
    state: str = ""
    action: str = ""
    url: str = ""
    merge_status: str = ""
    merge_commit_sha: str = ""
    merge_error: str = ""
    oldrev: str = ""
    source_branch: str = ""
    target_branch: str = ""
    source: GitlabRepository = Field(default_factory=GitlabRepository)
    target: GitlabRepository = Field(default_factory=GitlabRepository)
    last_commit: GitlabLastCommit = Field(default_factory=GitlabLastCommit)
    draft: bool = False
    labels: List[GitlabLabel] = Field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""


class GitlabUser(PayloadModel):
    name: str = ""
    username: str = ""


class GitlabBoolChange(PayloadModel):
    previous: bool = False
    current: bool = False


class GitlabLabelChange(PayloadModel):
    previous: List[GitlabLabel] = Field(default_factory=list)
    current: List[GitlabLabel] = Field(default_factory=list)


class GitlabChanges(PayloadModel):
    draft: GitlabBoolChange = Field(default_factory=GitlabBoolChange)
    labels: GitlabLabelChange = Field(default_factory=GitlabLabelChange)

    def new_labels(self) -> List[str]:
        """Titles of labels present now but not before, sorted."""
        previous_ids = {label.id for label in self.labels.previous}
        return sorted(label.title for label in self.labels.current if label.id not in previous_ids)

    @property
    def converted_from_draft(self) -> bool:
        return self.draft.previous and not self.draft.current


class GitlabMergeRequestEvent(PayloadModel):
    object_kind: str = ""
    event_type: str = ""
    object_attributes: GitlabMergeRequest = Field(default_factory=GitlabMergeRequest)
    user: GitlabUser = Field(default_factory=GitlabUser)
    changes: GitlabChanges = Field(default_factory=GitlabChanges)
    project: GitlabRepository = Field(default_factory=GitlabRepository)


class GitlabNote(PayloadModel):
    id: int = 0
    note: str = ""
    noteable_type: str = ""


class GitlabNoteEvent(PayloadModel):
    object_kind: str = ""
    object_attributes: GitlabNote = Field(default_factory=GitlabNote)
    merge_request: GitlabMergeRequest = Field(default_factory=GitlabMergeRequest)
    user: GitlabUser = Field(default_factory=GitlabUser)


def is_accepted_merge_request_action(merge_request: GitlabMergeRequest, changes: GitlabChanges) -> bool:
    if merge_request.action == "open":
        return True
    if merge_request.action == "update":
        # oldrev is only present when new commits were pushed
        if merge_request.oldrev:
            return True
        if changes.converted_from_draft:
            return True
        return bool(changes.new_labels())
    return False


class GitlabProvider(HookProvider):
    """Transforms GitLab push, tag push, merge request and note webhooks."""

    def __init__(self, env_bytes_limit: int = DEFAULT_ENV_BYTES_LIMIT):
        self.env_bytes_limit = env_bytes_limit

    @property
    def kind(self) -> ProviderKind:
        return ProviderKind.GITLAB

    def transform_request(self, request: HookRequest) -> TransformResult:
        result = super().transform_request(request)
        result.dont_wait_for_trigger_response = True
        return result

    def _transform(self, request: HookRequest) -> TransformResult:
        content_type = require_header(request, "Content-Type")
        event = require_header(request, EVENT_HEADER)
        if content_type != CONTENT_TYPE_JSON:
            raise ContentTypeError(f"Content-Type is not supported: {content_type}", content_type=content_type)
        if event not in SUPPORTED_EVENTS:
            raise UnsupportedEventError(f"Unsupported Webhook event: {event}", event=event)

        if event == PUSH_HOOK:
            return self.transform_push_event(decode_json(GitlabPushEvent, request.body))
        if event == TAG_PUSH_HOOK:
            return self.transform_tag_push_event(decode_json(GitlabPushEvent, request.body))
        if event == MERGE_REQUEST_HOOK:
            return self.transform_merge_request_event(decode_json(GitlabMergeRequestEvent, request.body))
        return self.transform_note_event(decode_json(GitlabNoteEvent, request.body))

    def transform_push_event(self, push: GitlabPushEvent) -> TransformResult:
        branch = strip_prefix(push.ref, "refs/heads/")
        if branch is None:
            raise SkipCondition(f"Ref ({push.ref}) is not a head ref")

        # the follow-up push of a squashed merge request carries no checkout_sha
        if not push.checkout_sha:
            raise SkipCondition("The 'checkout_sha' field is not set - potential squashed merge request")

        checkout_commit = next((c for c in push.commits if c.id == push.checkout_sha), None)
        if checkout_commit is None:
            raise ValidationError(
                "The commit specified by 'checkout_sha' was not included in the 'commits' array - no match found",
                field="checkout_sha",
            )

        commit_messages = [commit.message for commit in push.commits]
        environments = []
        try:
            messages_env = build_commit_messages_env(commit_messages, self.env_bytes_limit)
        except ValueError as e:
            logger.warning(f"Failed to convert commit messages: {e}", extra={"branch": branch})
            messages_env = ""
        if messages_env:
            environments.append(EnvironmentItem(name=COMMIT_MESSAGES_ENV_KEY, value=messages_env, is_expand=False))

        build_params = BuildParams(
            commit_hash=checkout_commit.id,
            commit_message=checkout_commit.message,
            commit_messages=commit_messages,
            push_commit_paths=[
                CommitPaths(added=c.added, removed=c.removed, modified=c.modified) for c in push.commits
            ],
            branch=branch,
            base_repository_url=push.repository.repository_url,
            environments=environments,
        )
        return TransformResult.success(
            [TriggerParams(
                build_params=build_params,
                triggered_by=generate_triggered_by(ProviderKind.GITLAB.value, push.user_username),
            )],
            dont_wait_for_trigger_response=True,
        )

    def transform_tag_push_event(self, push: GitlabPushEvent) -> TransformResult:
        if push.object_kind != "tag_push":
            raise ValidationError(f"Not a Tag Push object: {push.object_kind}", field="object_kind")
        tag = strip_prefix(push.ref, "refs/tags/")
        if tag is None:
            raise ValidationError(f"Ref ({push.ref}) is not a tags ref", field="ref")
        if not push.checkout_sha:
            raise SkipCondition("This is a Tag Deleted event, no build is required")

        build_params = BuildParams(
            tag=tag,
            commit_hash=push.checkout_sha,
            base_repository_url=push.repository.repository_url,
        )
        return TransformResult.success(
            [TriggerParams(
                build_params=build_params,
                triggered_by=generate_triggered_by(ProviderKind.GITLAB.value, push.user_username),
            )],
            dont_wait_for_trigger_response=True,
        )

    def transform_merge_request_event(self, event: GitlabMergeRequestEvent) -> TransformResult:
        if event.object_kind != "merge_request":
            raise SkipCondition("Not a Merge Request object")

        merge_request = event.object_attributes
        if not is_accepted_merge_request_action(merge_request, event.changes):
            raise SkipCondition(f"Merge Request action doesn't require a build: {merge_request.action}")

        return self.transform_merge_request(
            merge_request,
            event.user,
            resolve_ready_state_from_draft_change(merge_request.draft, event.changes.converted_from_draft),
            new_labels=event.changes.new_labels(),
        )

    def transform_note_event(self, event: GitlabNoteEvent) -> TransformResult:
        if event.object_kind != "note":
            raise SkipCondition("Not a Note object")
        if event.object_attributes.noteable_type != "MergeRequest":
            raise SkipCondition("Not a Merge Request note")

        merge_request = event.merge_request
        return self.transform_merge_request(
            merge_request,
            event.user,
            resolve_ready_state_from_draft_change(merge_request.draft),
            comment=event.object_attributes.note,
        )

    def transform_merge_request(
        self,
        merge_request: GitlabMergeRequest,
        user: GitlabUser,
        ready_state: PullRequestReadyState,
        new_labels: Optional[List[str]] = None,
        comment: str = "",
    ) -> TransformResult:
        if not merge_request.state:
            raise SkipCondition("No Merge Request state specified")
        if merge_request.merge_commit_sha:
            raise SkipCondition("Merge Request already merged")
        if merge_request.state not in BUILDABLE_MR_STATES:
            raise SkipCondition(f"Merge Request state doesn't require a build: {merge_request.state}")
        if merge_request.merge_status == "cannot_be_merged" or merge_request.merge_error:
            raise SkipCondition("Merge Request is not mergeable")

        commit_message = merge_request.title
        if merge_request.description:
            commit_message = f"{commit_message}\n\n{merge_request.description}"

        merge_ref = None
        if merge_request.merge_status not in UNCHECKED_MERGE_STATUSES:
            merge_ref = f"merge-requests/{merge_request.iid}/merge"

        build_params = BuildParams(
            commit_message=commit_message,
            commit_hash=merge_request.last_commit.id,
            branch=merge_request.source_branch,
            branch_repo_owner=merge_request.source.namespace,
            branch_dest=merge_request.target_branch,
            branch_dest_repo_owner=merge_request.target.namespace,
            pull_request_id=merge_request.iid,
            base_repository_url=merge_request.target.repository_url,
            head_repository_url=merge_request.source.repository_url,
            pull_request_repository_url=merge_request.source.repository_url,
            pull_request_author=user.name,
            pull_request_merge_branch=merge_ref,
            pull_request_head_branch=f"merge-requests/{merge_request.iid}/head",
            pull_request_ready_state=ready_state,
            pull_request_labels_added=new_labels or [],
            pull_request_labels=[label.title for label in merge_request.labels],
            pull_request_comment=comment or None,
        )
        return TransformResult.success(
            [TriggerParams(
                build_params=build_params,
                triggered_by=generate_triggered_by(ProviderKind.GITLAB.value, user.username),
            )],
            dont_wait_for_trigger_response=True,
            skipped_by_pr_description=(
                not is_skip_build_by_commit_message(merge_request.title)
                and is_skip_build_by_commit_message(merge_request.description)
            ),
        )

    def gather_metrics(self, request: HookRequest, app_slug: str, now: datetime) -> List[HookMetric]:
        event = request.header(EVENT_HEADER)
        if event in (PUSH_HOOK, TAG_PUSH_HOOK):
            push = decode_json(GitlabPushEvent, request.body)
            return [self.push_metrics(push, event, app_slug, now)]
        if event == MERGE_REQUEST_HOOK:
            merge_event = decode_json(GitlabMergeRequestEvent, request.body)
            return [self.merge_request_metrics(merge_event, event, app_slug, now)]
        return []

    @staticmethod
    def push_metrics(push: GitlabPushEvent, event: str, app_slug: str, now: datetime) -> PushMetrics:
        if is_zero_sha(push.before):
            action = PUSH_ACTION_CREATED
        elif is_zero_sha(push.after):
            action = PUSH_ACTION_DELETED
        else:
            action = PUSH_ACTION_PUSHED

        return PushMetrics(
            action=action,
            general=GeneralMetrics(
                provider_type=ProviderKind.GITLAB.value,
                repository=push.project.path_with_namespace,
                timestamp=now,
                app_slug=app_slug,
                original_trigger=original_trigger(push.event_name or event),
                user_name=push.user_username,
                git_ref=push.ref,
            ),
            commit_id_after=push.after,
            commit_id_before=push.before,
            oldest_commit_timestamp=parse_timestamp(push.commits[0].timestamp) if push.commits else None,
            latest_commit_timestamp=parse_timestamp(push.commits[-1].timestamp) if push.commits else None,
            master_branch=push.project.default_branch,
        )

    @staticmethod
    def merge_request_metrics(
        event_model: GitlabMergeRequestEvent, event: str, app_slug: str, now: datetime
    ) -> PullRequestMetrics:
        merge_request = event_model.object_attributes
        if merge_request.action == "open":
            action = PR_ACTION_OPENED
        elif merge_request.action in ("close", "merge"):
            action = PR_ACTION_CLOSED
        else:
            action = PR_ACTION_UPDATED

        return PullRequestMetrics(
            action=action,
            general=GeneralMetrics(
                provider_type=ProviderKind.GITLAB.value,
                repository=event_model.project.path_with_namespace,
                timestamp=now,
                event_timestamp=parse_timestamp(merge_request.updated_at),
                app_slug=app_slug,
                original_trigger=original_trigger(event_model.event_type or event),
                user_name=event_model.user.username,
                git_ref=f"refs/heads/{merge_request.target_branch}",
            ),
            pull_request_title=merge_request.title,
            pull_request_id=str(merge_request.iid),
            pull_request_url=merge_request.url,
            target_branch=merge_request.target_branch,
            commit_id=merge_request.last_commit.id,
            merge_commit_sha=merge_request.merge_commit_sha,
            status=merge_request.state,
        )
