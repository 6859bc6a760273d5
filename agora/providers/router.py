"""Route chat calls to the provider variant named by ``ProviderConfig.provider``."""

import logging
from collections import OrderedDict

from config.config_loader import AppConfig, ManagedConfig, ProviderDefaults
from agora.errors import ConfigurationError
from agora.models import ChatCompletion, ChatMessage, ProviderConfig, ProviderKind
from agora.providers.anthropic import DEFAULT_MAX_TOKENS, AnthropicProvider
from agora.providers.base import ChatProvider
from agora.providers.openai_provider import CustomProvider, ManagedProvider, OpenAIProvider

logger = logging.getLogger(__name__)

MAX_CACHED_PROVIDERS = 32

PROVIDER_CLASSES: dict[ProviderKind, type[ChatProvider]] = {
    ProviderKind.MANAGED: ManagedProvider,
    ProviderKind.OPENAI: OpenAIProvider,
    ProviderKind.ANTHROPIC: AnthropicProvider,
    ProviderKind.CUSTOM: CustomProvider,
}

_FALLBACK_MODELS = {
    ProviderKind.OPENAI: "gpt-4o-mini",
    ProviderKind.ANTHROPIC: "claude-3-5-sonnet-20241022",
    ProviderKind.CUSTOM: "default",
}


def _coerce_kind(value: ProviderKind | str) -> ProviderKind:
    try:
        return ProviderKind(value)
    except ValueError as exc:
        raise ConfigurationError(f"Unsupported AI provider: {value}") from exc


class ChatService:
    """Uniform ``chat(messages, config)`` over every provider kind.

    Fills in per-kind defaults (model, base URL) from settings and keeps the most
    recently used provider instances (one per distinct configuration, at most
    ``max_cached``) so SDK clients are reused without holding every user key.
    """

    def __init__(
        self,
        managed: ManagedConfig | None = None,
        defaults: dict[str, ProviderDefaults] | None = None,
        max_cached: int = MAX_CACHED_PROVIDERS,
    ) -> None:
        self._managed = managed
        self._defaults = defaults or {}
        self._max_cached = max_cached
        self._providers: OrderedDict[tuple, ChatProvider] = OrderedDict()

    @classmethod
    def from_config(cls, config: AppConfig) -> "ChatService":
        return cls(managed=config.managed, defaults=config.providers)

    def resolve(self, config: ProviderConfig) -> ProviderConfig:
        """Return a copy of ``config`` with defaults applied for its kind."""
        kind = _coerce_kind(config.provider)
        if kind is ProviderKind.MANAGED:
            if self._managed is None:
                raise ConfigurationError("Managed backend is not configured")
            return ProviderConfig(
                provider=kind,
                api_key=self._managed.api_key(),
                base_url=self._managed.base_url,
                model=config.model or self._managed.model,
            )

        defaults = self._defaults.get(kind.value)
        return ProviderConfig(
            provider=kind,
            api_key=config.api_key,
            base_url=config.base_url or (defaults.base_url if defaults else None),
            model=config.model or (defaults.model if defaults else _FALLBACK_MODELS[kind]),
        )

    def build(self, config: ProviderConfig) -> ChatProvider:
        resolved = self.resolve(config)
        key = (resolved.provider, resolved.api_key, resolved.base_url, resolved.model)
        provider = self._providers.get(key)
        if provider is not None:
            self._providers.move_to_end(key)
            return provider

        if resolved.provider is ProviderKind.ANTHROPIC:
            defaults = self._defaults.get(resolved.provider.value)
            max_tokens = defaults.max_tokens if defaults else DEFAULT_MAX_TOKENS
            provider = AnthropicProvider(resolved, max_tokens=max_tokens)
        else:
            provider = PROVIDER_CLASSES[resolved.provider](resolved)
        self._providers[key] = provider
        while len(self._providers) > self._max_cached:
            self._providers.popitem(last=False)
        logger.debug("Built %s provider for model %s", provider.name(), provider.model_string())
        return provider

    @property
    def cached_providers(self) -> int:
        return len(self._providers)

    async def chat(self, messages: list[ChatMessage], config: ProviderConfig) -> ChatCompletion:
        """Send ``messages`` to the backend described by ``config``.

        Raises:
            ConfigurationError: Missing credential/endpoint or unknown kind.
            ProviderError: Upstream failure.
        """
        return await self.build(config).complete(messages)
