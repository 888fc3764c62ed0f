"""
Webhook endpoints.

``POST /h/{service_id}/{app_slug}/{api_token}`` (also served under
``/hook/``) accepts a webhook from any supported provider and starts the
matching builds.
"""

from fastapi import APIRouter, BackgroundTasks, Request
from fastapi.responses import JSONResponse

from hookgate.providers.request import HookRequest
from hookgate.services.hook_service import AUTO_SERVICE_ID
from hookgate.utils.logging import get_logger, log_hook_event

logger = get_logger(__name__)

router = APIRouter(tags=["hooks"])

# Provider event headers, first match wins; used for the receive log line only
_EVENT_HEADERS = ("X-Github-Event", "X-Gitlab-Event", "X-Event-Key", "X-Gogs-Event", "X-Deveo-Event")


def _event_name(hook_request: HookRequest) -> str:
    for header in _EVENT_HEADERS:
        value = hook_request.header(header)
        if value:
            return value
    return ""


async def handle_hook(
    service_id: str,
    app_slug: str,
    api_token: str,
    request: Request,
    background_tasks: BackgroundTasks,
) -> JSONResponse:
    """
    Receive a webhook and trigger the builds it describes.

    Metrics extraction is scheduled as a background task and runs after the
    response has been sent.
    """
    hook_request = HookRequest(request.headers, await request.body())
    log_hook_event(logger, service_id, app_slug, _event_name(hook_request))

    hook_service = request.app.state.hook_service
    response = await hook_service.handle(service_id, app_slug, api_token, hook_request)

    metrics_extractor = request.app.state.metrics_extractor
    if metrics_extractor is not None:
        if service_id == AUTO_SERVICE_ID:
            kind = hook_service.classifier.classify(hook_request).provider
            provider = hook_service.registry.get_by_kind(kind) if kind else None
        else:
            provider = hook_service.registry.get_provider(service_id)
        if provider is not None:
            background_tasks.add_task(metrics_extractor.extract_and_publish, provider, hook_request, app_slug)

    return JSONResponse(status_code=response.status_code, content=response.body)


router.add_api_route("/h/{service_id}/{app_slug}/{api_token}", handle_hook, methods=["POST"])
router.add_api_route("/hook/{service_id}/{app_slug}/{api_token}", handle_hook, methods=["POST"])
