"""
Provider registry.

Maps the service id of a hook URL to the provider instance handling it.
"""

from typing import Dict, List, Optional

from hookgate.config import Settings
from hookgate.providers.assembla import AssemblaProvider
from hookgate.providers.base import HookProvider, ProviderKind
from hookgate.providers.bitbucket_cloud import BitbucketCloudProvider
from hookgate.providers.bitbucket_server import BitbucketServerProvider
from hookgate.providers.deveo import DeveoProvider
from hookgate.providers.github import GithubProvider
from hookgate.providers.gitlab import GitlabProvider
from hookgate.providers.gogs import GogsProvider
from hookgate.providers.passthrough import PassthroughProvider
from hookgate.providers.slack import SlackProvider
from hookgate.providers.visualstudio import VisualStudioProvider
from hookgate.utils.logging import get_logger

logger = get_logger(__name__)


class ProviderRegistry:
    """Holds one provider per service id."""

    def __init__(self):
        self._providers: Dict[str, HookProvider] = {}

    def register(self, provider: HookProvider) -> None:
        """
        Register a provider under its service id.

        Args:
            provider: HookProvider instance to register
        """
        service_id = provider.provider_id
        if service_id in self._providers:
            logger.warning(f"Provider for service '{service_id}' already registered, overwriting")
        self._providers[service_id] = provider
        logger.debug(f"Registered provider for service '{service_id}'")

    def get_provider(self, service_id: str) -> Optional[HookProvider]:
        return self._providers.get(service_id)

    def get_by_kind(self, kind: ProviderKind) -> Optional[HookProvider]:
        return self._providers.get(kind.value)

    def list_supported(self) -> List[str]:
        return sorted(self._providers)


def build_default_registry(settings: Settings) -> ProviderRegistry:
    """
    Register every supported provider.

    Raises:
        RuntimeError: If a ProviderKind has no registered provider
    """
    registry = ProviderRegistry()
    for provider in (
        GithubProvider(),
        GitlabProvider(env_bytes_limit=settings.env_bytes_limit),
        BitbucketCloudProvider(),
        BitbucketServerProvider(),
        VisualStudioProvider(),
        GogsProvider(),
        DeveoProvider(),
        AssemblaProvider(),
        SlackProvider(),
        PassthroughProvider(),
    ):
        registry.register(provider)

    missing = [kind.value for kind in ProviderKind if registry.get_by_kind(kind) is None]
    if missing:
        raise RuntimeError(f"No provider registered for: {', '.join(missing)}")
    return registry
