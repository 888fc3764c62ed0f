"""
Build trigger client.

Sends canonical trigger parameters to the build API's start endpoint.
"""

import json
from typing import Any, Dict, Optional, Tuple

import httpx
from pydantic import ValidationError as PydanticValidationError

from hookgate.config import Settings
from hookgate.models.build_params import TriggerParams, TriggerResponse
from hookgate.utils.logging import get_logger, mask_token
from hookgate.utils.metrics import HookMetricsCollector, track_api_call

logger = get_logger(__name__)

SERVICE_NAME = "build_trigger"
LOG_ONLY_RESPONSE = TriggerResponse(status="ok", message="LOG ONLY MODE")


class TriggerError(Exception):
    """A trigger call that could not be completed or understood."""


def validate_trigger_params(params: TriggerParams) -> None:
    build_params = params.build_params
    if not (build_params.branch or build_params.tag or build_params.workflow_id or build_params.is_pull_request):
        raise TriggerError("build trigger parameter invalid: missing branch, tag, workflow or pull request id")


def build_request_body(params: TriggerParams) -> Dict[str, Any]:
    body: Dict[str, Any] = {"build_params": params.build_params.to_payload()}
    if params.triggered_by:
        body["triggered_by"] = params.triggered_by
    return body


class BuildTriggerClient:
    """Async client for the build start endpoint."""

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._client = http_client or httpx.AsyncClient(timeout=float(settings.trigger_timeout_seconds))

    def build_trigger_url(self, app_slug: str) -> str:
        if self.settings.send_request_to:
            return self.settings.send_request_to
        return f"{self.settings.build_api_root_url.rstrip('/')}/app/{app_slug}/build/start.json"

    async def trigger(
        self,
        url: str,
        api_token: str,
        params: TriggerParams,
        metrics: Optional[HookMetricsCollector] = None,
    ) -> Tuple[TriggerResponse, bool]:
        """
        Start one build.

        Args:
            url: Trigger endpoint URL
            api_token: Token forwarded as the Api-Token header
            params: Trigger parameters
            metrics: Collector to record the call latency in (optional)

        Returns:
            Tuple of (parsed response, whether the build was accepted)

        Raises:
            TriggerError: If the parameters are invalid, the request could not
                be sent or the response could not be parsed
        """
        validate_trigger_params(params)
        body = build_request_body(params)

        logger.info(
            f"Triggering build: {url}",
            extra={"trigger_url": url, "api_token": mask_token(api_token), "trigger_body": body},
        )
        if self.settings.is_log_only_mode:
            return LOG_ONLY_RESPONSE, True

        headers = {
            "Content-Type": "application/json",
            "Api-Token": api_token,
            "X-Webhook-Event": "hook",
        }
        try:
            async with track_api_call(metrics, SERVICE_NAME, logger, endpoint=url, method="POST"):
                response = await self._client.post(url, content=json.dumps(body), headers=headers)
        except httpx.HTTPError as e:
            raise TriggerError(f"failed to send request: {e}") from e

        try:
            trigger_response = TriggerResponse.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            raise TriggerError(
                f"request sent, but failed to parse response (http-code:{response.status_code}): {response.text}"
            ) from e

        return trigger_response, 200 <= response.status_code <= 202

    async def aclose(self) -> None:
        await self._client.aclose()
