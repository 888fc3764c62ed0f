"""
Webhook metrics extraction.

Runs after the response has been sent; a failure here never affects the
webhook sender.
"""

from datetime import datetime, timezone
from typing import Callable, List, Protocol

from starlette.concurrency import run_in_threadpool

from hookgate.models.hook_metrics import HookMetric
from hookgate.providers.base import HookProvider
from hookgate.providers.request import HookRequest
from hookgate.utils.logging import get_logger, log_error_with_context

logger = get_logger(__name__)


class MetricsPublisher(Protocol):
    async def publish(self, metrics: List[HookMetric]) -> None:
        ...


class LoggingMetricsPublisher:
    """Emits every metric event as a structured log record."""

    async def publish(self, metrics: List[HookMetric]) -> None:
        for metric in metrics:
            logger.info(
                f"Webhook metric: {metric.event}",
                extra={"hook_metric": metric.to_json_dict()},
            )


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MetricsExtractor:
    def __init__(self, publisher: MetricsPublisher, clock: Callable[[], datetime] = _utc_now):
        self.publisher = publisher
        self.clock = clock

    async def extract_and_publish(self, provider: HookProvider, request: HookRequest, app_slug: str) -> None:
        try:
            metrics = await run_in_threadpool(provider.gather_metrics, request, app_slug, self.clock())
            if metrics:
                await self.publisher.publish(metrics)
        except Exception as e:
            log_error_with_context(
                logger,
                "Webhook metrics extraction failed",
                e,
                provider=provider.provider_id,
                app_slug=app_slug,
            )
