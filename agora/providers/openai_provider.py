"""OpenAI-compatible providers (OpenAI, custom endpoints, managed backend) using the openai SDK."""

import logging
import time

import openai
from openai import AsyncOpenAI

from agora.models import ChatCompletion, ChatMessage, ProviderConfig, ProviderKind, TokenUsage
from agora.providers.base import ChatProvider, ConfigurationError, ProviderError

logger = logging.getLogger(__name__)


class OpenAICompatibleProvider(ChatProvider):
    """Chat-completions request with ``model`` + ``messages``; reads ``choices[0].message.content``."""

    def __init__(self, config: ProviderConfig) -> None:
        super().__init__(config)
        self._validate()
        # Empty key means "send no Authorization header".
        self._client = AsyncOpenAI(
            api_key=config.api_key or "",
            base_url=config.base_url,
            max_retries=0,
        )

    def _validate(self) -> None:
        pass

    async def complete(self, messages: list[ChatMessage]) -> ChatCompletion:
        start = time.monotonic()
        try:
            response = await self._client.chat.completions.create(
                model=self.model_string(),
                messages=[{"role": m.role, "content": m.content} for m in messages],
            )
        except openai.APIStatusError as exc:
            raise ProviderError(
                self.name(),
                f"HTTP {exc.status_code}: {exc.message}",
                status=exc.status_code,
                body=exc.body,
            ) from exc
        except Exception as exc:
            raise ProviderError(self.name(), f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        content = ""
        if choice is not None and choice.message is not None and isinstance(choice.message.content, str):
            content = choice.message.content

        usage: TokenUsage | None = None
        if response.usage:
            usage = TokenUsage(
                prompt_tokens=response.usage.prompt_tokens or 0,
                completion_tokens=response.usage.completion_tokens or 0,
                total_tokens=response.usage.total_tokens or 0,
            )

        logger.info(
            "%s completion: %.2fs, %s tokens",
            self.name(),
            latency,
            usage.total_tokens if usage else None,
        )
        return ChatCompletion(content=content, usage=usage)


class OpenAIProvider(OpenAICompatibleProvider):
    """OpenAI chat completions API."""

    kind = ProviderKind.OPENAI

    def _validate(self) -> None:
        if not self._config.api_key:
            raise ConfigurationError("OpenAI API key is required")


class CustomProvider(OpenAICompatibleProvider):
    """Any OpenAI-compatible endpoint; API key optional."""

    kind = ProviderKind.CUSTOM

    def _validate(self) -> None:
        if not self._config.base_url:
            raise ConfigurationError("Custom API base URL is required")


class ManagedProvider(OpenAICompatibleProvider):
    """Built-in backend configured by the deployment; no user credentials."""

    kind = ProviderKind.MANAGED
