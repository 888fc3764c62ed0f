"""
Slack provider.

Handles both Slack outgoing webhooks (``trigger_word`` + ``text``) and
slash commands (``command`` + ``text``). The message text carries the build
parameters as ``key: value`` pairs separated by ``|``, for example::

    /bitrise branch: main | workflow: deploy | m: release build

Slack shows the response body to the user, so every response is an HTTP
200 with a ``{"text": ...}`` body.
"""

from typing import Dict

from hookgate.models.build_params import BuildParams, TriggerParams
from hookgate.models.transform import HookResponse, ResponseInput, TransformResult
from hookgate.providers.base import HookProvider, ProviderKind
from hookgate.providers.common import CONTENT_TYPE_FORM, require_content_type
from hookgate.providers.errors import DecodeError, ValidationError
from hookgate.providers.request import HookRequest

LEGACY_BRANCH_PREFIX = "branch="

# long key, short key
PARAMETER_KEYS = {
    "branch": "b",
    "message": "m",
    "commit": "c",
    "tag": "t",
    "workflow": "w",
}


def parse_message_text(text: str) -> Dict[str, str]:
    """Collect ``key: value`` pairs from a pipe separated message."""
    params: Dict[str, str] = {}
    for item in text.split("|"):
        item = item.strip()
        if not item:
            continue
        if item.startswith(LEGACY_BRANCH_PREFIX):
            params["branch"] = item[len(LEGACY_BRANCH_PREFIX):].strip()
            continue
        key, separator, value = item.partition(":")
        if not separator:
            continue
        params[key.strip()] = value.strip()
    return params


def _pick(params: Dict[str, str], key: str) -> str:
    return params.get(key) or params.get(PARAMETER_KEYS[key]) or ""


def message_text_from_form(form: Dict[str, str]) -> str:
    """
    Extract the parameter text from an outgoing webhook or slash command form.

    Raises:
        DecodeError: If neither message shape is complete
    """
    text = form.get("text", "")
    trigger_word = form.get("trigger_word", "")
    command = form.get("command", "")

    if not trigger_word and not command:
        raise DecodeError(
            "Failed to parse the request/message: Missing required parameter: either 'command' or 'trigger_word'"
        )
    if not text:
        raise DecodeError("Failed to parse the request/message: Missing required parameter: 'text'")

    if trigger_word and text.startswith(trigger_word):
        text = text[len(trigger_word):]
    return text.strip()


def transform_message(text: str) -> TransformResult:
    params = parse_message_text(text)
    branch = _pick(params, "branch")
    workflow_id = _pick(params, "workflow")
    if not branch and not workflow_id:
        raise ValidationError("Missing 'branch' and 'workflow' parameters - at least one of these is required")

    build_params = BuildParams(
        branch=branch or None,
        commit_message=_pick(params, "message") or None,
        commit_hash=_pick(params, "commit") or None,
        tag=_pick(params, "tag") or None,
        workflow_id=workflow_id or None,
    )
    return TransformResult.success([TriggerParams(build_params=build_params)])


class SlackProvider(HookProvider):
    """Slack outgoing webhook and slash command integration."""

    @property
    def kind(self) -> ProviderKind:
        return ProviderKind.SLACK

    def _transform(self, request: HookRequest) -> TransformResult:
        require_content_type(request, CONTENT_TYPE_FORM)
        return transform_message(message_text_from_form(request.form()))

    def transform_response(self, response_input: ResponseInput) -> HookResponse:
        lines = ["Results:"]
        is_error = False
        if response_input.errors:
            is_error = True
            lines.append("*[!] Errors*:")
            lines.extend(f"* {error}" for error in response_input.errors)
        if response_input.failed_responses:
            is_error = True
            lines.append("*[!] Failed Triggers*:")
            lines.extend(f"* {_describe(response)}" for response in response_input.failed_responses)
        if response_input.success_responses:
            lines.append("*Successful Triggers*:" if is_error else "*Success!* Details:")
            lines.extend(f"* {_describe(response)}" for response in response_input.success_responses)
        if response_input.skipped_responses:
            lines.append("*Skipped Triggers*:")
            lines.extend(f"* {skip.message}" for skip in response_input.skipped_responses)
        return HookResponse(status_code=200, body={"text": "\n".join(lines)})

    def transform_error_message_response(self, message: str) -> HookResponse:
        return HookResponse(status_code=200, body={"text": f"*[!] Error*: {message}"})

    def transform_success_message_response(self, message: str) -> HookResponse:
        return HookResponse(status_code=200, body={"text": message})


def _describe(response) -> str:
    fields = response.model_dump(exclude_none=True)
    return ", ".join(f"{key}: {value}" for key, value in fields.items() if value != "")
