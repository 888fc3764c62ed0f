"""
Unit tests for the build trigger client.
"""

import json

import httpx
import pytest

from hookgate.config import Settings
from hookgate.models.build_params import BuildParams, TriggerParams
from hookgate.services.trigger_client import (
    LOG_ONLY_RESPONSE,
    BuildTriggerClient,
    TriggerError,
    build_request_body,
)
from hookgate.utils.metrics import HookMetricsCollector

TRIGGER_URL = "https://builds.example.com/app/app-slug/build/start.json"


@pytest.fixture
def params():
    return TriggerParams(
        build_params=BuildParams(branch="main", commit_hash="abc123"),
        triggered_by="webhook-github/octocat",
    )


@pytest.fixture
def production_settings():
    return Settings(environment="production")


def client_with(settings, handler):
    return BuildTriggerClient(settings, http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def test_build_request_body(params):
    """Test only populated build params are sent."""
    assert build_request_body(params) == {
        "build_params": {"branch": "main", "commit_hash": "abc123"},
        "triggered_by": "webhook-github/octocat",
    }


def test_build_request_body_omits_dont_wait_flag(params):
    """Test the detach flag stays local to the gateway."""
    detached = params.model_copy(update={"dont_wait_for_response": True})

    assert "dont_wait_for_response" not in build_request_body(detached)


def test_build_trigger_url_default(production_settings):
    """Test the per app trigger URL."""
    client = BuildTriggerClient(production_settings)

    assert client.build_trigger_url("my-app") == "https://app.bitrise.io/app/my-app/build/start.json"


def test_build_trigger_url_override():
    """Test the configured target overrides the per app URL."""
    client = BuildTriggerClient(Settings(send_request_to="http://localhost:9000/start"))

    assert client.build_trigger_url("my-app") == "http://localhost:9000/start"


@pytest.mark.asyncio
async def test_trigger_success(production_settings, params):
    """Test the request shape and a successful response."""
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["headers"] = request.headers
        captured["body"] = json.loads(request.content)
        return httpx.Response(201, json={"status": "ok", "build_slug": "b1", "build_number": 3})

    client = client_with(production_settings, handler)
    metrics = HookMetricsCollector("github", "app-slug")

    response, accepted = await client.trigger(TRIGGER_URL, "secret-token", params, metrics=metrics)

    assert accepted is True
    assert response.build_slug == "b1"
    assert captured["headers"]["Api-Token"] == "secret-token"
    assert captured["headers"]["X-Webhook-Event"] == "hook"
    assert captured["body"]["build_params"]["branch"] == "main"
    assert metrics.api_calls == {"build_trigger": 1}


@pytest.mark.asyncio
async def test_trigger_rejected(production_settings, params):
    """Test a parsed response with a failure status code."""
    client = client_with(
        production_settings,
        lambda request: httpx.Response(404, json={"status": "error", "message": "app not found"}),
    )

    response, accepted = await client.trigger(TRIGGER_URL, "token", params)

    assert accepted is False
    assert response.message == "app not found"


@pytest.mark.asyncio
async def test_trigger_unparseable_response(production_settings, params):
    """Test a non JSON response."""
    client = client_with(production_settings, lambda request: httpx.Response(502, text="Bad Gateway"))

    with pytest.raises(TriggerError) as exc_info:
        await client.trigger(TRIGGER_URL, "token", params)

    assert str(exc_info.value) == "request sent, but failed to parse response (http-code:502): Bad Gateway"


@pytest.mark.asyncio
async def test_trigger_transport_error(production_settings, params):
    """Test a connection failure."""
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = client_with(production_settings, handler)

    with pytest.raises(TriggerError, match="failed to send request"):
        await client.trigger(TRIGGER_URL, "token", params)


@pytest.mark.asyncio
async def test_trigger_log_only_mode(params):
    """Test nothing is sent in log only mode."""
    def handler(request):
        raise AssertionError("no request expected in log only mode")

    client = client_with(Settings(environment="development"), handler)

    response, accepted = await client.trigger(TRIGGER_URL, "token", params)

    assert accepted is True
    assert response == LOG_ONLY_RESPONSE


@pytest.mark.asyncio
async def test_trigger_invalid_params(production_settings):
    """Test parameters without branch, tag, workflow or pull request."""
    client = client_with(production_settings, lambda request: httpx.Response(201, json={}))
    params = TriggerParams(build_params=BuildParams(commit_hash="abc"))

    with pytest.raises(TriggerError, match="build trigger parameter invalid"):
        await client.trigger(TRIGGER_URL, "token", params)
