"""
Header based webhook classification.

Used for the ``auto`` service id and as a diagnostic for every request. Only
headers are inspected; the body is never read here.
"""

from typing import Callable, List, Optional, Tuple

from pydantic import BaseModel

from hookgate.providers import bitbucket_cloud, bitbucket_server, deveo, github, gitlab, gogs
from hookgate.providers.base import ProviderKind
from hookgate.providers.request import HookRequest

USER_AGENT_HEADER = "User-Agent"
BITBUCKET_CLOUD_USER_AGENT_PREFIX = "Bitbucket-Webhooks/"
BITBUCKET_SERVER_USER_AGENT_PREFIXES = ("Atlassian", "Bitbucket")

BITBUCKET_EVENT_HEADER = "X-Event-Key"


class Classification(BaseModel):
    provider: Optional[ProviderKind] = None
    is_unsupported_event: bool = False
    reason: str = ""

    @property
    def is_detected(self) -> bool:
        return self.provider is not None


def _bitbucket_kind(request: HookRequest) -> Optional[ProviderKind]:
    user_agent = request.header(USER_AGENT_HEADER)
    if user_agent.startswith(BITBUCKET_CLOUD_USER_AGENT_PREFIX):
        return ProviderKind.BITBUCKET_CLOUD
    if user_agent.startswith(BITBUCKET_SERVER_USER_AGENT_PREFIXES):
        return ProviderKind.BITBUCKET_SERVER
    return None


def _supported_events(kind: ProviderKind) -> Tuple[str, ...]:
    if kind == ProviderKind.GITHUB:
        return (github.PUSH_EVENT, github.PULL_REQUEST_EVENT)
    if kind == ProviderKind.GITLAB:
        return gitlab.SUPPORTED_EVENTS
    if kind == ProviderKind.BITBUCKET_CLOUD:
        return (bitbucket_cloud.PUSH_EVENT,) + tuple(bitbucket_cloud.PULL_REQUEST_EVENTS)
    if kind == ProviderKind.BITBUCKET_SERVER:
        return (bitbucket_server.REFS_CHANGED_EVENT,) + bitbucket_server.PULL_REQUEST_EVENTS
    if kind == ProviderKind.GOGS:
        return (gogs.PUSH_EVENT,)
    if kind == ProviderKind.DEVEO:
        return (deveo.PUSH_EVENT,)
    return ()


# (event header, resolver) per header family
HEADER_FAMILIES: List[Tuple[str, Callable[[HookRequest], Optional[ProviderKind]]]] = [
    (github.EVENT_HEADER, lambda request: ProviderKind.GITHUB),
    (gitlab.EVENT_HEADER, lambda request: ProviderKind.GITLAB),
    (BITBUCKET_EVENT_HEADER, _bitbucket_kind),
    (gogs.EVENT_HEADER, lambda request: ProviderKind.GOGS),
    (deveo.EVENT_HEADER, lambda request: ProviderKind.DEVEO),
]


class RequestClassifier:
    """Detects the webhook provider from request headers."""

    def classify(self, request: HookRequest) -> Classification:
        matched = [(header, resolve) for header, resolve in HEADER_FAMILIES if request.has_header(header)]
        if not matched:
            return Classification(reason="no known webhook event header")
        if len(matched) > 1:
            headers = ", ".join(header for header, _ in matched)
            return Classification(reason=f"ambiguous webhook headers: {headers}")

        header, resolve = matched[0]
        kind = resolve(request)
        if kind is None:
            return Classification(
                reason=f"{header} present but User-Agent is not a Bitbucket one: {request.header(USER_AGENT_HEADER)}"
            )

        event = request.header(header)
        if event in _supported_events(kind):
            return Classification(provider=kind, reason=f"{header}: {event}")
        return Classification(provider=kind, is_unsupported_event=True, reason=f"unsupported {header}: {event}")
