"""Provider transformation results and response aggregation models."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from hookgate.models.build_params import SkipResponse, TriggerParams, TriggerResponse
from hookgate.providers.errors import HookError, SkipCondition


class TransformResult(BaseModel):
    """
    Outcome of transforming one webhook request.

    Exactly three shapes are legal:
    - entries and no error (builds proceed)
    - should_skip with no entries (acknowledged, nothing started)
    - error with no entries (client failure)
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    entries: List[TriggerParams] = Field(default_factory=list)
    should_skip: bool = False
    error: Optional[HookError] = None
    dont_wait_for_trigger_response: bool = False
    skipped_by_pr_description: bool = False

    @model_validator(mode="after")
    def _check_shape(self) -> "TransformResult":
        if self.should_skip and self.entries:
            raise ValueError("a skipped transform result can not carry trigger entries")
        if self.error is not None and not self.should_skip and self.entries:
            raise ValueError("a failed transform result can not carry trigger entries")
        return self

    @classmethod
    def success(
        cls,
        entries: List[TriggerParams],
        dont_wait_for_trigger_response: bool = False,
        skipped_by_pr_description: bool = False,
    ) -> "TransformResult":
        return cls(
            entries=entries,
            dont_wait_for_trigger_response=dont_wait_for_trigger_response,
            skipped_by_pr_description=skipped_by_pr_description,
        )

    @classmethod
    def skip(cls, reason: HookError) -> "TransformResult":
        return cls(should_skip=True, error=reason)

    @classmethod
    def failure(cls, error: HookError) -> "TransformResult":
        if isinstance(error, SkipCondition):
            return cls.skip(error)
        return cls(error=error)

    @property
    def is_hard_error(self) -> bool:
        return self.error is not None and not self.should_skip


class ResponseInput(BaseModel):
    """Per request fold of the trigger outcomes."""

    errors: List[str] = Field(default_factory=list)
    success_responses: List[TriggerResponse] = Field(default_factory=list)
    failed_responses: List[TriggerResponse] = Field(default_factory=list)
    skipped_responses: List[SkipResponse] = Field(default_factory=list)
    did_not_wait_for_trigger_response: bool = False


class HookResponse(BaseModel):
    """Status code and JSON body returned to the webhook sender."""

    status_code: int
    body: Dict[str, Any] = Field(default_factory=dict)
