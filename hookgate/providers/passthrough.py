"""Passthrough provider: forwards the raw request to the build as environment variables."""

import json
from typing import Dict, List

from hookgate.models.build_params import BuildParams, EnvironmentItem, TriggerParams
from hookgate.models.transform import TransformResult
from hookgate.providers.base import HookProvider, ProviderKind
from hookgate.providers.errors import ValidationError
from hookgate.providers.request import HookRequest

HEADERS_ENV_KEY = "BITRISE_WEBHOOK_PASSTHROUGH_HEADERS"
BODY_ENV_KEY = "BITRISE_WEBHOOK_PASSTHROUGH_BODY"
MAX_HEADERS_BYTES = 10 * 1024
MAX_BODY_BYTES = 10 * 1024
DEFAULT_BRANCH = "master"


def canonical_header_name(name: str) -> str:
    """``x-github-event`` -> ``X-Github-Event``"""
    return "-".join(part.capitalize() for part in name.split("-"))


def serialize_headers(request: HookRequest) -> str:
    grouped: Dict[str, List[str]] = {}
    for name, values in request.header_items().items():
        grouped.setdefault(canonical_header_name(name), []).extend(values)
    return json.dumps(grouped, sort_keys=True, separators=(",", ":"))


class PassthroughProvider(HookProvider):
    """Starts a build on the default branch for any request, carrying the request along."""

    @property
    def kind(self) -> ProviderKind:
        return ProviderKind.PASSTHROUGH

    def _transform(self, request: HookRequest) -> TransformResult:
        headers_json = serialize_headers(request)
        if len(headers_json.encode("utf-8")) > MAX_HEADERS_BYTES:
            raise ValidationError(f"Headers too large, larger than {MAX_HEADERS_BYTES} bytes", field="headers")
        if len(request.body) > MAX_BODY_BYTES:
            raise ValidationError(f"Body too large, larger than {MAX_BODY_BYTES} bytes", field="body")

        build_params = BuildParams(
            branch=DEFAULT_BRANCH,
            environments=[
                EnvironmentItem(name=HEADERS_ENV_KEY, value=headers_json),
                EnvironmentItem(name=BODY_ENV_KEY, value=request.text()),
            ],
        )
        return TransformResult.success([TriggerParams(build_params=build_params)])
