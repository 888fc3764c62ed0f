"""
Webhook handling service.

Resolves the provider for a hook URL, transforms the request and triggers
one build per resulting entry, then folds the outcomes into the response.
"""

import asyncio
from typing import Optional, Set

from hookgate.config import Settings
from hookgate.models.build_params import SkipResponse, TriggerParams
from hookgate.models.transform import HookResponse
from hookgate.providers.base import HookProvider
from hookgate.providers.registry import ProviderRegistry
from hookgate.providers.request import HookRequest
from hookgate.providers.skipci import is_skip_build_by_commit_message
from hookgate.services.aggregator import DefaultResponseProvider, ResponseAggregator, TriggerOutcome
from hookgate.services.classifier import RequestClassifier
from hookgate.services.trigger_client import BuildTriggerClient, TriggerError
from hookgate.utils.logging import get_logger, log_error_with_context
from hookgate.utils.metrics import HookMetricsCollector

logger = get_logger(__name__)

AUTO_SERVICE_ID = "auto"
DEFAULT_TRIGGERED_BY = "webhook"

SKIP_CI_MESSAGE = (
    "Build skipped because the commit message included a skip ci keyword ([skip ci] or [ci skip])."
)
NO_ENTRIES_MESSAGE = (
    "After processing the webhook we failed to detect any event in it which could be turned into a build."
)


class HookService:
    """Entry point for one inbound webhook request."""

    _default_responses = DefaultResponseProvider()

    def __init__(
        self,
        settings: Settings,
        registry: ProviderRegistry,
        trigger_client: BuildTriggerClient,
        classifier: Optional[RequestClassifier] = None,
    ):
        self.settings = settings
        self.registry = registry
        self.trigger_client = trigger_client
        self.classifier = classifier or RequestClassifier()
        # Detached "don't wait" trigger calls; held so they are not garbage collected
        self._pending: Set[asyncio.Task] = set()

    def resolve_provider(self, service_id: str, request: HookRequest) -> Optional[HookProvider]:
        """
        Find the provider for a service id.

        ``auto`` asks the classifier; the classification is logged for every
        request as a diagnostic either way.
        """
        classification = self.classifier.classify(request)
        logger.info(
            "Webhook classified",
            extra={
                "service_id": service_id,
                "detected_provider": classification.provider.value if classification.provider else None,
                "is_unsupported_event": classification.is_unsupported_event,
                "reason": classification.reason,
            },
        )
        if service_id == AUTO_SERVICE_ID:
            if classification.provider is None:
                return None
            return self.registry.get_by_kind(classification.provider)
        return self.registry.get_provider(service_id)

    async def handle(self, service_id: str, app_slug: str, api_token: str, request: HookRequest) -> HookResponse:
        """
        Handle a webhook call.

        Args:
            service_id: Provider service id from the URL, or ``auto``
            app_slug: Target app
            api_token: Token forwarded to the build trigger API
            request: Inbound request

        Returns:
            HookResponse produced by the provider's response transformer
        """
        provider = self.resolve_provider(service_id, request)
        if provider is None:
            return self._default_responses.transform_error_message_response(
                f"Unsupported Webhook Type / Provider: {service_id}"
            )
        if not app_slug:
            return provider.transform_error_message_response("No App Slug parameter defined")
        if not api_token:
            return provider.transform_error_message_response("No API Token parameter defined")

        request_logger = logger.with_context(provider=provider.provider_id, app_slug=app_slug)
        result = provider.transform_request(request)

        if result.should_skip:
            request_logger.info(f"Webhook skipped: {result.error}")
            return provider.transform_success_message_response(f"Acknowledged, but skipping. Reason: {result.error}")
        if result.error is not None:
            request_logger.info(f"Webhook transformation failed: {result.error}")
            return provider.transform_error_message_response(f"Failed to transform the webhook: {result.error}")
        if not result.entries:
            return provider.transform_error_message_response(NO_ENTRIES_MESSAGE)

        if result.skipped_by_pr_description:
            request_logger.warning(f"[skipped by pr description] app: {app_slug}, service: {provider.provider_id}")

        metrics = HookMetricsCollector(provider.provider_id, app_slug)
        metrics.start()

        url = self.trigger_client.build_trigger_url(app_slug)
        aggregator = ResponseAggregator()
        for entry in result.entries:
            build_params = entry.build_params
            if is_skip_build_by_commit_message(build_params.commit_message or ""):
                metrics.record_trigger("skipped")
                aggregator.add(TriggerOutcome.skipped(SkipResponse(
                    message=SKIP_CI_MESSAGE,
                    commit_hash=build_params.commit_hash or "",
                    commit_message=build_params.commit_message or "",
                    branch=build_params.branch or "",
                )))
                continue

            if not entry.triggered_by:
                entry = entry.model_copy(update={"triggered_by": DEFAULT_TRIGGERED_BY})

            if result.dont_wait_for_trigger_response or entry.dont_wait_for_response:
                self._schedule_detached(url, api_token, entry, metrics)
                aggregator.mark_did_not_wait()
            else:
                outcome = await self._trigger(url, api_token, entry, metrics)
                aggregator.add(outcome)

        response = provider.transform_response(aggregator.response_input)
        metrics.complete(status=str(response.status_code))
        return response

    async def _trigger(
        self, url: str, api_token: str, entry: TriggerParams, metrics: HookMetricsCollector
    ) -> TriggerOutcome:
        try:
            response, is_success = await self.trigger_client.trigger(url, api_token, entry, metrics=metrics)
        except TriggerError as e:
            metrics.record_trigger("error")
            return TriggerOutcome.errored(f"Failed to Trigger Build: {e}")

        if is_success:
            metrics.record_trigger("success")
            return TriggerOutcome.succeeded(response)
        metrics.record_trigger("failed")
        return TriggerOutcome.failed(response)

    def _schedule_detached(
        self, url: str, api_token: str, entry: TriggerParams, metrics: HookMetricsCollector
    ) -> None:
        task = asyncio.create_task(self._trigger_detached(url, api_token, entry, metrics))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _trigger_detached(
        self, url: str, api_token: str, entry: TriggerParams, metrics: HookMetricsCollector
    ) -> None:
        try:
            outcome = await self._trigger(url, api_token, entry, metrics)
        except Exception as e:
            log_error_with_context(
                logger, "Detached build trigger failed", e, provider=metrics.provider, app_slug=metrics.app_slug
            )
            return
        if outcome.error:
            logger.error(outcome.error, extra={"provider": metrics.provider, "app_slug": metrics.app_slug})

    async def wait_for_pending(self) -> None:
        """Wait for detached trigger calls, used on shutdown."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
