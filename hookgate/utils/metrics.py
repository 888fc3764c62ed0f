"""
Metrics collection and emission for observability.

This module provides per request metrics tracking for:
- Webhook handling time
- Trigger outcome counts
- Downstream API call latency
"""

import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from hookgate.utils.logging import get_logger, log_api_call

logger = get_logger(__name__)

TRIGGER_OUTCOMES = ("success", "failed", "skipped", "error")


class HookMetricsCollector:
    """
    Collects metrics while one webhook request is handled.

    Tracks:
    - Handling start/end time
    - Trigger outcomes
    - API call counts and latency
    """

    def __init__(self, provider: str, app_slug: str):
        self.provider = provider
        self.app_slug = app_slug

        self.start_time: Optional[datetime] = None
        self.end_time: Optional[datetime] = None
        self.duration_ms: Optional[int] = None

        self.trigger_outcomes: Dict[str, int] = {outcome: 0 for outcome in TRIGGER_OUTCOMES}

        self.api_calls: Dict[str, int] = {}
        self.api_latencies: Dict[str, List[float]] = {}

        self.status: str = "running"

    def start(self) -> None:
        """Mark handling start."""
        self.start_time = datetime.now(timezone.utc)
        self.status = "running"

    def complete(self, status: str = "completed") -> None:
        """
        Mark handling completion.

        Args:
            status: Final status, e.g. the response status code class
        """
        self.end_time = datetime.now(timezone.utc)
        self.status = status
        if self.start_time:
            self.duration_ms = int((self.end_time - self.start_time).total_seconds() * 1000)

        logger.info(f"Webhook handled for {self.provider}", extra=self.get_metrics_summary())
        if self.duration_ms is not None:
            emit_metric("webhook_handling_duration_ms", self.duration_ms, provider=self.provider, status=self.status)

    def record_trigger(self, outcome: str) -> None:
        if outcome not in self.trigger_outcomes:
            raise ValueError(f"Unknown trigger outcome: {outcome}")
        self.trigger_outcomes[outcome] += 1

    def record_api_call(self, service: str, duration_ms: float) -> None:
        self.api_calls[service] = self.api_calls.get(service, 0) + 1
        self.api_latencies.setdefault(service, []).append(duration_ms)

    def get_metrics_summary(self) -> Dict[str, Any]:
        """
        Get summary of collected metrics.

        Returns:
            Dictionary of metrics
        """
        summary = {
            "provider": self.provider,
            "app_slug": self.app_slug,
            "status": self.status,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_ms": self.duration_ms,
            "trigger_outcomes": dict(self.trigger_outcomes),
            "api_calls": dict(self.api_calls),
        }

        if self.api_latencies:
            summary["api_latencies"] = {
                service: {
                    "count": len(latencies),
                    "min_ms": round(min(latencies), 2),
                    "max_ms": round(max(latencies), 2),
                    "avg_ms": round(sum(latencies) / len(latencies), 2),
                }
                for service, latencies in self.api_latencies.items()
                if latencies
            }
        return summary


@asynccontextmanager
async def track_api_call(
    metrics_collector: Optional[HookMetricsCollector],
    service: str,
    logger_adapter,
    endpoint: str = "",
    method: str = "POST",
):
    """
    Context manager to track API call timing.

    Usage:
        async with track_api_call(metrics, "build_trigger", logger, endpoint=url):
            response = await client.post(url, json=payload)
    """
    start_time = time.time()
    error = None

    try:
        yield
    except Exception as e:
        error = e
        raise
    finally:
        duration_ms = (time.time() - start_time) * 1000
        if metrics_collector:
            metrics_collector.record_api_call(service, duration_ms)
        log_api_call(
            logger_adapter,
            service=service,
            endpoint=endpoint,
            method=method,
            duration_ms=duration_ms,
            error=str(error) if error else None,
        )


def emit_metric(metric_name: str, value: float, **tags: Any) -> None:
    """
    Emit a metric as a log record.

    Args:
        metric_name: Metric name
        value: Metric value
        **tags: Metric tags/labels
    """
    logger.info(
        f"Metric: {metric_name}",
        extra={
            "metric_name": metric_name,
            "metric_value": value,
            "metric_tags": tags,
        },
    )
