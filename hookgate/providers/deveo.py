"""Deveo provider."""

from typing import List

from pydantic import Field

from hookgate.models.build_params import BuildParams, CommitPaths, TriggerParams
from hookgate.models.transform import TransformResult
from hookgate.providers.base import HookProvider, ProviderKind
from hookgate.providers.common import (
    CONTENT_TYPE_FORM,
    CONTENT_TYPE_JSON,
    PayloadModel,
    decode_body,
    require_content_type,
    require_header,
    strip_prefix,
)
from hookgate.providers.errors import SkipCondition, UnsupportedEventError, ValidationError
from hookgate.providers.request import HookRequest

EVENT_HEADER = "X-Deveo-Event"
PUSH_EVENT = "push"


class DeveoCommit(PayloadModel):
    id: str = ""
    message: str = ""
    distinct: bool = False


class DeveoVersionedPath(PayloadModel):
    path: str = ""
    rev: str = ""


class DeveoRenamedFile(PayloadModel):
    source: DeveoVersionedPath = Field(default_factory=DeveoVersionedPath, alias="from")
    target: DeveoVersionedPath = Field(default_factory=DeveoVersionedPath, alias="to")


class DeveoFiles(PayloadModel):
    added: List[str] = Field(default_factory=list)
    modified: List[str] = Field(default_factory=list)
    deleted: List[str] = Field(default_factory=list)
    renamed: List[DeveoRenamedFile] = Field(default_factory=list)

    def commit_paths(self) -> CommitPaths:
        """A rename counts as a removal of the old path and an addition of the new one."""
        return CommitPaths(
            added=self.added + [file.target.path for file in self.renamed],
            removed=self.deleted + [file.source.path for file in self.renamed],
            modified=list(self.modified),
        )


class DeveoPushEvent(PayloadModel):
    ref: str = ""
    deleted: bool = False
    commits: List[DeveoCommit] = Field(default_factory=list)
    files: DeveoFiles = Field(default_factory=DeveoFiles)


def transform_push_event(push_event: DeveoPushEvent) -> TransformResult:
    if push_event.deleted:
        raise SkipCondition("This is a 'Deleted' event, no build can be started")
    if not push_event.commits:
        raise ValidationError("No 'commits' included in the webhook, can't start a build", field="commits")

    # newest commit first in the payload
    head_commit = push_event.commits[0]
    build_params = BuildParams(
        commit_hash=head_commit.id,
        commit_message=head_commit.message,
        commit_messages=[commit.message for commit in reversed(push_event.commits)],
    )
    paths = push_event.files.commit_paths()
    if paths.added or paths.removed or paths.modified:
        build_params.push_commit_paths = [paths]

    branch = strip_prefix(push_event.ref, "refs/heads/")
    tag = strip_prefix(push_event.ref, "refs/tags/")
    if branch is not None:
        build_params.branch = branch
    elif tag is not None:
        build_params.tag = tag
    else:
        raise SkipCondition(f"Ref ({push_event.ref}) is not a head nor a tag ref")

    if not head_commit.id:
        raise ValidationError("Missing commit hash", field="commits.id")

    return TransformResult.success([TriggerParams(build_params=build_params)])


class DeveoProvider(HookProvider):
    @property
    def kind(self) -> ProviderKind:
        return ProviderKind.DEVEO

    def _transform(self, request: HookRequest) -> TransformResult:
        content_type = require_content_type(request, CONTENT_TYPE_JSON, CONTENT_TYPE_FORM)
        event = require_header(request, EVENT_HEADER)
        if event != PUSH_EVENT:
            raise UnsupportedEventError(f"Unsupported Deveo Webhook event: {event}", event=event)
        return transform_push_event(decode_body(DeveoPushEvent, request, content_type))
