"""Anthropic provider using anthropic SDK with native async."""

import logging
import time

import anthropic as anthropic_sdk

from agora.models import ChatCompletion, ChatMessage, ProviderConfig, ProviderKind, TokenUsage
from agora.providers.base import ChatProvider, ConfigurationError, ProviderError

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 4096


def split_system(messages: list[ChatMessage]) -> tuple[str | None, list[dict]]:
    """Pull the system instruction out of the list; everything else becomes user/assistant."""
    system = next((m.content for m in messages if m.role == "system"), None)
    conversation = [
        {"role": "assistant" if m.role == "assistant" else "user", "content": m.content}
        for m in messages
        if m.role != "system"
    ]
    return system, conversation


class AnthropicProvider(ChatProvider):
    """Anthropic Messages API: separate ``system`` field, required ``max_tokens``."""

    kind = ProviderKind.ANTHROPIC

    def __init__(self, config: ProviderConfig, max_tokens: int = DEFAULT_MAX_TOKENS) -> None:
        super().__init__(config)
        if not config.api_key:
            raise ConfigurationError("Anthropic API key is required")
        self._max_tokens = max_tokens
        base_url = config.base_url
        if base_url:
            # The SDK appends /v1 itself.
            base_url = base_url.rstrip("/").removesuffix("/v1")
        self._client = anthropic_sdk.AsyncAnthropic(
            api_key=config.api_key,
            base_url=base_url,
            max_retries=0,
        )

    async def complete(self, messages: list[ChatMessage]) -> ChatCompletion:
        system, conversation = split_system(messages)
        start = time.monotonic()
        try:
            response = await self._client.messages.create(
                model=self.model_string(),
                max_tokens=self._max_tokens,
                system=system if system is not None else anthropic_sdk.NOT_GIVEN,
                messages=conversation,
            )
        except anthropic_sdk.APIStatusError as exc:
            raise ProviderError(
                self.name(),
                f"HTTP {exc.status_code}: {exc.message}",
                status=exc.status_code,
                body=exc.body,
            ) from exc
        except Exception as exc:
            raise ProviderError(self.name(), f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        content = ""
        if response.content:
            text = getattr(response.content[0], "text", None)
            if isinstance(text, str):
                content = text

        usage: TokenUsage | None = None
        if response.usage:
            usage = TokenUsage(
                prompt_tokens=response.usage.input_tokens,
                completion_tokens=response.usage.output_tokens,
                total_tokens=response.usage.input_tokens + response.usage.output_tokens,
            )

        logger.info(
            "Anthropic completion: %.2fs, %s tokens",
            latency,
            usage.total_tokens if usage else None,
        )
        return ChatCompletion(content=content, usage=usage)
