"""
Base interface for webhook providers.

This module defines the closed set of supported providers and the abstract
base class each of them implements to turn a platform specific webhook into
canonical build triggers.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import List

from hookgate.models.hook_metrics import HookMetric
from hookgate.models.transform import HookResponse, ResponseInput, TransformResult
from hookgate.providers.errors import HookError
from hookgate.providers.request import HookRequest
from hookgate.services.aggregator import DefaultResponseProvider


class ProviderKind(str, Enum):
    """Supported providers; the values are the service ids used in hook URLs."""

    GITHUB = "github"
    GITLAB = "gitlab"
    BITBUCKET_CLOUD = "bitbucket-v2"
    BITBUCKET_SERVER = "bitbucket-server"
    VISUALSTUDIO = "visualstudio"
    GOGS = "gogs"
    DEVEO = "deveo"
    ASSEMBLA = "assembla"
    SLACK = "slack"
    PASSTHROUGH = "passthrough"


class HookProvider(ABC):
    """Base interface for webhook providers."""

    _default_responses = DefaultResponseProvider()

    @property
    @abstractmethod
    def kind(self) -> ProviderKind:
        """Return the provider kind (e.g. ProviderKind.GITHUB)."""
        pass

    @abstractmethod
    def _transform(self, request: HookRequest) -> TransformResult:
        """
        Decode, validate and transform the request.

        Implementations raise HookError subclasses for every non build outcome
        (SkipCondition included) and return a TransformResult only on success.

        Args:
            request: Inbound webhook request

        Returns:
            TransformResult with the trigger entries
        """
        pass

    def transform_request(self, request: HookRequest) -> TransformResult:
        """
        Transform a webhook request into zero or more trigger entries.

        Never raises for payload problems: those come back as a skip or a
        hard error result.
        """
        try:
            return self._transform(request)
        except HookError as e:
            return TransformResult.failure(e)

    def gather_metrics(self, request: HookRequest, app_slug: str, now: datetime) -> List[HookMetric]:
        """
        Extract observability events from the request.

        Args:
            request: Inbound webhook request
            app_slug: Target app slug
            now: Processing time, injected by the caller

        Returns:
            Metric events, empty for providers without metrics support
        """
        return []

    def transform_response(self, response_input: ResponseInput) -> HookResponse:
        return self._default_responses.transform_response(response_input)

    def transform_error_message_response(self, message: str) -> HookResponse:
        return self._default_responses.transform_error_message_response(message)

    def transform_success_message_response(self, message: str) -> HookResponse:
        return self._default_responses.transform_success_message_response(message)

    @property
    def provider_id(self) -> str:
        return self.kind.value
