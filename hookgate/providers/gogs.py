"""Gogs provider."""

from typing import List

from pydantic import Field

from hookgate.models.build_params import BuildParams, TriggerParams
from hookgate.models.transform import TransformResult
from hookgate.providers.base import HookProvider, ProviderKind
from hookgate.providers.common import (
    CONTENT_TYPE_JSON,
    PayloadModel,
    decode_json,
    require_content_type,
    require_header,
    strip_prefix,
)
from hookgate.providers.errors import SkipCondition, UnsupportedEventError, ValidationError
from hookgate.providers.request import HookRequest

EVENT_HEADER = "X-Gogs-Event"
PUSH_EVENT = "push"


class GogsCommit(PayloadModel):
    id: str = ""
    message: str = ""


class GogsPushEvent(PayloadModel):
    ref: str = ""
    after: str = ""
    commits: List[GogsCommit] = Field(default_factory=list)


def transform_push_event(push_event: GogsPushEvent) -> TransformResult:
    branch = strip_prefix(push_event.ref, "refs/heads/")
    if branch is None:
        raise SkipCondition(f"Ref ({push_event.ref}) is not a head ref")

    head_commit = next((commit for commit in push_event.commits if commit.id == push_event.after), None)
    if head_commit is None:
        raise ValidationError(
            "The commit specified by 'after' was not included in the 'commits' array - no match found",
            field="after",
        )

    return TransformResult.success([
        TriggerParams(build_params=BuildParams(
            commit_hash=head_commit.id,
            commit_message=head_commit.message,
            branch=branch,
        ))
    ])


class GogsProvider(HookProvider):
    @property
    def kind(self) -> ProviderKind:
        return ProviderKind.GOGS

    def _transform(self, request: HookRequest) -> TransformResult:
        require_content_type(request, CONTENT_TYPE_JSON)
        event = require_header(request, EVENT_HEADER)
        if event != PUSH_EVENT:
            raise UnsupportedEventError(f"Unsupported Webhook event: {event}", event=event)
        return transform_push_event(decode_json(GogsPushEvent, request.body))
