"""Azure DevOps / Visual Studio Team Services provider."""

from typing import List

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from hookgate.models.build_params import BuildParams, TriggerParams
from hookgate.models.transform import TransformResult
from hookgate.providers.base import HookProvider, ProviderKind
from hookgate.providers.common import (
    CONTENT_TYPE_JSON,
    HEADER_CONTENT_TYPE,
    PayloadModel,
    decode_json,
    is_zero_sha,
    require_header,
    strip_prefix,
)
from hookgate.providers.errors import (
    ContentTypeError,
    SkipCondition,
    UnsupportedEventError,
    ValidationError,
)
from hookgate.providers.ready_state import resolve_ready_state
from hookgate.providers.request import HookRequest

PUSH_EVENT = "git.push"
PULL_REQUEST_CREATED_EVENT = "git.pullrequest.created"
PULL_REQUEST_UPDATED_EVENT = "git.pullrequest.updated"

TFS_PUBLISHER = "tfs"
TEST_SUBSCRIPTION_ID = "00000000-0000-0000-0000-000000000000"
SUPPORTED_RESOURCE_VERSION = "1.0"

HEADS_PREFIX = "refs/heads/"
TAGS_PREFIX = "refs/tags/"


class VstsPayloadModel(PayloadModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class VstsCommit(VstsPayloadModel):
    commit_id: str = ""
    comment: str = ""


class VstsAuthor(VstsPayloadModel):
    display_name: str = ""


class VstsRefUpdate(VstsPayloadModel):
    name: str = ""
    old_object_id: str = ""
    new_object_id: str = ""


class VstsMessage(VstsPayloadModel):
    text: str = ""


class VstsEvent(VstsPayloadModel):
    """Envelope shared by every service hook notification."""

    subscription_id: str = ""
    event_type: str = ""
    publisher_id: str = ""
    resource_version: str = ""
    message: VstsMessage = Field(default_factory=VstsMessage)
    detailed_message: VstsMessage = Field(default_factory=VstsMessage)


class VstsPushResource(VstsPayloadModel):
    commits: List[VstsCommit] = Field(default_factory=list)
    ref_updates: List[VstsRefUpdate] = Field(default_factory=list)


class VstsPushEvent(VstsEvent):
    resource: VstsPushResource = Field(default_factory=VstsPushResource)


class VstsPullRequestResource(VstsPayloadModel):
    source_ref_name: str = ""
    target_ref_name: str = ""
    merge_status: str = ""
    status: str = ""
    is_draft: bool = False
    pull_request_id: int = 0
    last_merge_source_commit: VstsCommit = Field(default_factory=VstsCommit)
    created_by: VstsAuthor = Field(default_factory=VstsAuthor)


class VstsPullRequestEvent(VstsEvent):
    resource: VstsPullRequestResource = Field(default_factory=VstsPullRequestResource)


def _check_resource_version(event: VstsEvent) -> None:
    if event.resource_version != SUPPORTED_RESOURCE_VERSION:
        raise ValidationError("Unsupported resource version", field="resourceVersion")


def _branch_push_without_commits(event: VstsPushEvent, branch: str, ref_update: VstsRefUpdate) -> BuildParams:
    if is_zero_sha(ref_update.new_object_id):
        raise SkipCondition("Branch delete event - does not require a build")

    if is_zero_sha(ref_update.old_object_id):
        message = "Branch created"
    elif ref_update.new_object_id and ref_update.old_object_id:
        message = event.detailed_message.text
    else:
        raise ValidationError("No 'commits' included in the webhook, can't start a build", field="resource.commits")

    return BuildParams(
        branch=branch,
        commit_hash=ref_update.new_object_id,
        commit_message=message,
        commit_messages=[message],
    )


def transform_push_event(event: VstsPushEvent) -> TransformResult:
    _check_resource_version(event)
    if len(event.resource.ref_updates) != 1:
        raise ValidationError(
            "Can't detect branch information (resource.refUpdates is empty), can't start a build",
            field="resource.refUpdates",
        )

    ref_update = event.resource.ref_updates[0]

    branch = strip_prefix(ref_update.name, HEADS_PREFIX)
    if branch is not None:
        commits = event.resource.commits
        if not commits:
            build_params = _branch_push_without_commits(event, branch, ref_update)
        else:
            # newest commit first in the payload
            head_commit = commits[0]
            build_params = BuildParams(
                branch=branch,
                commit_hash=head_commit.commit_id,
                commit_message=head_commit.comment,
                commit_messages=[commit.comment for commit in reversed(commits)],
            )
        return TransformResult.success([TriggerParams(build_params=build_params)])

    tag = strip_prefix(ref_update.name, TAGS_PREFIX)
    if tag is not None:
        if is_zero_sha(ref_update.new_object_id):
            raise SkipCondition("Tag delete event - does not require a build")
        return TransformResult.success([
            TriggerParams(build_params=BuildParams(tag=tag, commit_hash=ref_update.new_object_id))
        ])

    raise ValidationError(f"Unsupported refs/, can't start a build: {ref_update.name}", field="resource.refUpdates")


def _require_branch_ref(ref_name: str, label: str) -> str:
    if not ref_name:
        raise ValidationError(f"Missing {label} reference name", field=f"resource.{label}RefName")
    branch = strip_prefix(ref_name, HEADS_PREFIX)
    if branch is None:
        raise ValidationError(f"Invalid {label} reference name: {ref_name}", field=f"resource.{label}RefName")
    return branch


def transform_pull_request_event(event: VstsPullRequestEvent) -> TransformResult:
    _check_resource_version(event)

    pull_request = event.resource
    if pull_request.status == "completed":
        raise SkipCondition("Pull request already completed")
    if pull_request.merge_status != "succeeded":
        raise SkipCondition("Pull request is not mergeable")

    branch = _require_branch_ref(pull_request.source_ref_name, "source")
    branch_dest = _require_branch_ref(pull_request.target_ref_name, "target")
    if not pull_request.last_merge_source_commit.commit_id:
        raise ValidationError(
            "Missing last source branch commit details", field="resource.lastMergeSourceCommit"
        )

    build_params = BuildParams(
        commit_hash=pull_request.last_merge_source_commit.commit_id,
        commit_message=event.message.text,
        branch=branch,
        branch_dest=branch_dest,
        pull_request_author=pull_request.created_by.display_name,
        pull_request_ready_state=resolve_ready_state(pull_request.is_draft),
    )
    if pull_request.pull_request_id:
        build_params.pull_request_id = pull_request.pull_request_id

    return TransformResult.success([TriggerParams(build_params=build_params)])


class VisualStudioProvider(HookProvider):
    """Transforms Azure DevOps git push and pull request service hooks."""

    @property
    def kind(self) -> ProviderKind:
        return ProviderKind.VISUALSTUDIO

    def _transform(self, request: HookRequest) -> TransformResult:
        content_type = require_header(request, HEADER_CONTENT_TYPE)
        if CONTENT_TYPE_JSON not in content_type:
            raise ContentTypeError(f"Content-Type is not supported: {content_type}", content_type=content_type)

        envelope = decode_json(VstsEvent, request.body)
        if envelope.publisher_id != TFS_PUBLISHER:
            raise ValidationError(
                "Not a Team Foundation Server notification, can't start a build", field="publisherId"
            )
        if envelope.subscription_id == TEST_SUBSCRIPTION_ID:
            raise SkipCondition("Initial (test) event detected, skipping")

        if envelope.event_type == PUSH_EVENT:
            return transform_push_event(decode_json(VstsPushEvent, request.body))
        if envelope.event_type in (PULL_REQUEST_CREATED_EVENT, PULL_REQUEST_UPDATED_EVENT):
            return transform_pull_request_event(decode_json(VstsPullRequestEvent, request.body))
        raise UnsupportedEventError(f"Unsupported event type: {envelope.event_type}", event=envelope.event_type)
