"""
Request logging middleware.
"""

import re
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from hookgate.utils.logging import get_logger, mask_token

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"

# /h/<service-id>/<app-slug>/<api-token>
_HOOK_PATH = re.compile(r"^(/(?:h|hook)/[^/]+/[^/]+/)([^/]+)(/?)$")


def mask_hook_path(path: str) -> str:
    """Mask the api token segment of a hook URL path."""
    match = _HOOK_PATH.match(path)
    if not match:
        return path
    return f"{match.group(1)}{mask_token(match.group(2))}{match.group(3)}"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every request with a request id, never the raw api token."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        path = mask_hook_path(request.url.path)
        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                f"Request failed: {request.method} {path}",
                extra={"request_id": request_id, "method": request.method, "path": path},
                exc_info=True,
            )
            raise

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            f"{request.method} {path} {response.status_code}",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": path,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
