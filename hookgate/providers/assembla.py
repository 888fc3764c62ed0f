"""Assembla provider."""

from pydantic import Field

from hookgate.models.build_params import BuildParams, TriggerParams
from hookgate.models.transform import TransformResult
from hookgate.providers.base import HookProvider, ProviderKind
from hookgate.providers.common import CONTENT_TYPE_JSON, PayloadModel, decode_json, require_content_type
from hookgate.providers.errors import ValidationError
from hookgate.providers.request import HookRequest

COMMITTED_ACTION = "committed"
# Assembla fills unresolved template variables with this
PLACEHOLDER = "---"


class AssemblaEvent(PayloadModel):
    space: str = ""
    action: str = ""
    object: str = ""


class AssemblaMessage(PayloadModel):
    title: str = ""
    body: str = ""
    author: str = ""


class AssemblaGit(PayloadModel):
    repository_suffix: str = ""
    repository_url: str = ""
    branch: str = ""
    commit_id: str = ""

    def has_placeholder(self) -> bool:
        return PLACEHOLDER in (self.repository_suffix, self.repository_url, self.branch, self.commit_id)


class AssemblaPushEvent(PayloadModel):
    assembla: AssemblaEvent = Field(default_factory=AssemblaEvent)
    message: AssemblaMessage = Field(default_factory=AssemblaMessage)
    git: AssemblaGit = Field(default_factory=AssemblaGit)


def transform_push_event(push_event: AssemblaPushEvent) -> TransformResult:
    if push_event.assembla.action != COMMITTED_ACTION:
        raise ValidationError(
            f"Action was not 'committed', was: {push_event.assembla.action}", field="assembla.action"
        )
    if push_event.git.has_placeholder():
        raise ValidationError(
            "Webhook is not correctly setup, make sure you post updates about 'Code commits' in Assembla",
            field="git",
        )
    if not push_event.message.body:
        raise ValidationError("Message body can't be empty", field="message.body")
    if not push_event.message.author:
        raise ValidationError("Message author can't be empty", field="message.author")
    if not push_event.git.branch:
        raise ValidationError("Git branch can't be empty", field="git.branch")

    return TransformResult.success([
        TriggerParams(
            build_params=BuildParams(
                commit_message=push_event.message.body,
                commit_hash=push_event.git.commit_id or None,
                branch=push_event.git.branch,
            ),
            triggered_by=push_event.message.author,
        )
    ])


class AssemblaProvider(HookProvider):
    @property
    def kind(self) -> ProviderKind:
        return ProviderKind.ASSEMBLA

    def _transform(self, request: HookRequest) -> TransformResult:
        require_content_type(request, CONTENT_TYPE_JSON)
        return transform_push_event(decode_json(AssemblaPushEvent, request.body))
