"""
Folding of per trigger outcomes into the HTTP response.

The status code precedence is what webhook senders branch on:
any error or downstream failure is a 400, only skips is a 200, otherwise 201.
"""

from enum import Enum
from typing import Any, Dict, Iterable, Optional

from pydantic import BaseModel

from hookgate.models.build_params import SkipResponse, TriggerResponse
from hookgate.models.transform import HookResponse, ResponseInput


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"
    ERROR = "error"


class TriggerOutcome(BaseModel):
    """Result of handling a single trigger entry."""

    kind: OutcomeKind
    response: Optional[TriggerResponse] = None
    skip: Optional[SkipResponse] = None
    error: str = ""

    @classmethod
    def succeeded(cls, response: TriggerResponse) -> "TriggerOutcome":
        return cls(kind=OutcomeKind.SUCCESS, response=response)

    @classmethod
    def failed(cls, response: TriggerResponse) -> "TriggerOutcome":
        return cls(kind=OutcomeKind.FAILED, response=response)

    @classmethod
    def skipped(cls, skip: SkipResponse) -> "TriggerOutcome":
        return cls(kind=OutcomeKind.SKIPPED, skip=skip)

    @classmethod
    def errored(cls, message: str) -> "TriggerOutcome":
        return cls(kind=OutcomeKind.ERROR, error=message)


class ResponseAggregator:
    """Collects trigger outcomes for one webhook request."""

    def __init__(self):
        self.response_input = ResponseInput()

    def add(self, outcome: TriggerOutcome) -> None:
        if outcome.kind == OutcomeKind.SUCCESS:
            self.response_input.success_responses.append(outcome.response)
        elif outcome.kind == OutcomeKind.FAILED:
            self.response_input.failed_responses.append(outcome.response)
        elif outcome.kind == OutcomeKind.SKIPPED:
            self.response_input.skipped_responses.append(outcome.skip)
        else:
            self.response_input.errors.append(outcome.error)

    def mark_did_not_wait(self) -> None:
        self.response_input.did_not_wait_for_trigger_response = True

    @classmethod
    def fold(cls, outcomes: Iterable[TriggerOutcome]) -> ResponseInput:
        aggregator = cls()
        for outcome in outcomes:
            aggregator.add(outcome)
        return aggregator.response_input


def _dump(items: Iterable[BaseModel]) -> list:
    return [item.model_dump(mode="json", exclude_none=True) for item in items]


class DefaultResponseProvider:
    """JSON responses shared by every provider without a custom format."""

    def transform_response(self, response_input: ResponseInput) -> HookResponse:
        status_code = 201
        if not response_input.success_responses and response_input.skipped_responses:
            status_code = 200
        if response_input.errors or response_input.failed_responses:
            status_code = 400

        body: Dict[str, Any] = {"success_responses": _dump(response_input.success_responses)}
        if response_input.errors:
            body["errors"] = list(response_input.errors)
        if response_input.failed_responses:
            body["failed_responses"] = _dump(response_input.failed_responses)
        if response_input.skipped_responses:
            body["skipped_responses"] = _dump(response_input.skipped_responses)
        return HookResponse(status_code=status_code, body=body)

    def transform_error_message_response(self, message: str) -> HookResponse:
        return HookResponse(status_code=400, body={"error": message})

    def transform_success_message_response(self, message: str) -> HookResponse:
        return HookResponse(status_code=200, body={"message": message})
