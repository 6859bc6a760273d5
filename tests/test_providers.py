"""Unit tests for agora/providers. SDK clients are mocked, no network."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import anthropic
import httpx
import openai
import pytest

from config.config_loader import ManagedConfig, ProviderDefaults
from agora.errors import ConfigurationError, ProviderError
from agora.models import ChatMessage, ProviderConfig, ProviderKind
from agora.providers.anthropic import AnthropicProvider, split_system
from agora.providers.openai_provider import CustomProvider, ManagedProvider, OpenAIProvider
from agora.providers.router import ChatService

MESSAGES = [
    ChatMessage(role="system", content="You are terse."),
    ChatMessage(role="user", content="Say hi."),
]


def _status_error(cls, status: int, url: str):
    request = httpx.Request("POST", url)
    return cls("upstream said no", response=httpx.Response(status, request=request), body={"error": "nope"})


def _openai_response(content):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(prompt_tokens=12, completion_tokens=3, total_tokens=15),
    )


@pytest.fixture
def openai_client():
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=_openai_response("Hi."))
    with patch("agora.providers.openai_provider.AsyncOpenAI", return_value=client) as factory:
        client.factory = factory
        yield client


@pytest.fixture
def anthropic_client():
    client = MagicMock()
    client.messages.create = AsyncMock(
        return_value=SimpleNamespace(
            content=[SimpleNamespace(type="text", text="Hello there.")],
            usage=SimpleNamespace(input_tokens=20, output_tokens=4),
        )
    )
    with patch("agora.providers.anthropic.anthropic_sdk.AsyncAnthropic", return_value=client) as factory:
        client.factory = factory
        yield client


# --- OpenAI-compatible variants ---

async def test_openai_complete_sends_model_and_messages(openai_client):
    provider = OpenAIProvider(ProviderConfig(ProviderKind.OPENAI, "sk-test", "https://api.openai.com/v1", "gpt-test"))

    completion = await provider.complete(MESSAGES)

    assert completion.content == "Hi."
    assert completion.usage.total_tokens == 15
    kwargs = openai_client.chat.completions.create.await_args.kwargs
    assert kwargs["model"] == "gpt-test"
    assert kwargs["messages"] == [
        {"role": "system", "content": "You are terse."},
        {"role": "user", "content": "Say hi."},
    ]
    factory_kwargs = openai_client.factory.call_args.kwargs
    assert factory_kwargs["api_key"] == "sk-test"
    assert factory_kwargs["max_retries"] == 0


def test_openai_requires_key():
    with pytest.raises(ConfigurationError, match="OpenAI API key is required"):
        OpenAIProvider(ProviderConfig(ProviderKind.OPENAI, None, None, "gpt-test"))


def test_custom_requires_base_url():
    with pytest.raises(ConfigurationError, match="Custom API base URL is required"):
        CustomProvider(ProviderConfig(ProviderKind.CUSTOM, "key", None, "m"))


def test_custom_key_is_optional(openai_client):
    provider = CustomProvider(ProviderConfig(ProviderKind.CUSTOM, None, "http://localhost:8000/v1", "m"))
    assert provider.name() == "custom"
    assert openai_client.factory.call_args.kwargs["api_key"] == ""


async def test_openai_null_content_becomes_empty(openai_client):
    openai_client.chat.completions.create.return_value = _openai_response(None)
    provider = ManagedProvider(ProviderConfig(ProviderKind.MANAGED, None, "http://gw/v1", "house"))

    completion = await provider.complete(MESSAGES)

    assert completion.content == ""


async def test_openai_no_choices_becomes_empty(openai_client):
    openai_client.chat.completions.create.return_value = SimpleNamespace(choices=[], usage=None)
    provider = ManagedProvider(ProviderConfig(ProviderKind.MANAGED, None, "http://gw/v1", "house"))

    completion = await provider.complete(MESSAGES)

    assert completion.content == ""
    assert completion.usage is None


async def test_openai_status_error_is_wrapped(openai_client):
    openai_client.chat.completions.create.side_effect = _status_error(
        openai.APIStatusError, 429, "https://api.openai.com/v1/chat/completions"
    )
    provider = OpenAIProvider(ProviderConfig(ProviderKind.OPENAI, "sk-test", None, "gpt-test"))

    with pytest.raises(ProviderError) as exc_info:
        await provider.complete(MESSAGES)

    err = exc_info.value
    assert err.provider_name == "openai"
    assert err.status == 429
    assert err.body == {"error": "nope"}
    assert "HTTP 429" in str(err)


async def test_openai_transport_error_is_wrapped(openai_client):
    openai_client.chat.completions.create.side_effect = RuntimeError("socket closed")
    provider = ManagedProvider(ProviderConfig(ProviderKind.MANAGED, None, "http://gw/v1", "house"))

    with pytest.raises(ProviderError, match="API call failed: socket closed") as exc_info:
        await provider.complete(MESSAGES)

    assert exc_info.value.status is None


# --- Anthropic ---

def test_split_system_separates_instruction():
    system, conversation = split_system(
        MESSAGES + [ChatMessage(role="assistant", content="Hi."), ChatMessage(role="user", content="Again.")]
    )
    assert system == "You are terse."
    assert [m["role"] for m in conversation] == ["user", "assistant", "user"]


def test_split_system_without_system():
    system, conversation = split_system(MESSAGES[1:])
    assert system is None
    assert conversation == [{"role": "user", "content": "Say hi."}]


async def test_anthropic_request_shape(anthropic_client):
    provider = AnthropicProvider(
        ProviderConfig(ProviderKind.ANTHROPIC, "sk-ant", "https://api.anthropic.com/v1", "claude-test"),
        max_tokens=1024,
    )

    completion = await provider.complete(MESSAGES)

    assert completion.content == "Hello there."
    assert completion.usage.total_tokens == 24
    kwargs = anthropic_client.messages.create.await_args.kwargs
    assert kwargs["model"] == "claude-test"
    assert kwargs["max_tokens"] == 1024
    assert kwargs["system"] == "You are terse."
    assert kwargs["messages"] == [{"role": "user", "content": "Say hi."}]
    assert anthropic_client.factory.call_args.kwargs["base_url"] == "https://api.anthropic.com"


async def test_anthropic_without_system_omits_field(anthropic_client):
    provider = AnthropicProvider(ProviderConfig(ProviderKind.ANTHROPIC, "sk-ant", None, "claude-test"))

    await provider.complete(MESSAGES[1:])

    assert anthropic_client.messages.create.await_args.kwargs["system"] is anthropic.NOT_GIVEN


async def test_anthropic_empty_content(anthropic_client):
    anthropic_client.messages.create.return_value = SimpleNamespace(content=[], usage=None)
    provider = AnthropicProvider(ProviderConfig(ProviderKind.ANTHROPIC, "sk-ant", None, "claude-test"))

    completion = await provider.complete(MESSAGES)

    assert completion.content == ""


def test_anthropic_requires_key():
    with pytest.raises(ConfigurationError, match="Anthropic API key is required"):
        AnthropicProvider(ProviderConfig(ProviderKind.ANTHROPIC, None, None, "claude-test"))


async def test_anthropic_status_error_is_wrapped(anthropic_client):
    anthropic_client.messages.create.side_effect = _status_error(
        anthropic.APIStatusError, 529, "https://api.anthropic.com/v1/messages"
    )
    provider = AnthropicProvider(ProviderConfig(ProviderKind.ANTHROPIC, "sk-ant", None, "claude-test"))

    with pytest.raises(ProviderError) as exc_info:
        await provider.complete(MESSAGES)

    assert exc_info.value.provider_name == "anthropic"
    assert exc_info.value.status == 529


# --- ChatService routing ---

@pytest.fixture
def service() -> ChatService:
    return ChatService(
        managed=ManagedConfig(base_url="http://gw.local/v1", model="house-model", api_key_env="TEST_GW_KEY"),
        defaults={
            "openai": ProviderDefaults(model="gpt-default", base_url="https://api.openai.com/v1"),
            "anthropic": ProviderDefaults(model="claude-default", max_tokens=2048),
        },
    )


def test_resolve_managed_uses_deployment_settings(service, monkeypatch):
    monkeypatch.setenv("TEST_GW_KEY", "gw-secret")

    resolved = service.resolve(ProviderConfig())

    assert resolved.provider is ProviderKind.MANAGED
    assert resolved.base_url == "http://gw.local/v1"
    assert resolved.model == "house-model"
    assert resolved.api_key == "gw-secret"


def test_resolve_fills_model_and_base_url(service):
    resolved = service.resolve(ProviderConfig(ProviderKind.OPENAI, "sk-test"))
    assert resolved.model == "gpt-default"
    assert resolved.base_url == "https://api.openai.com/v1"


def test_resolve_keeps_explicit_values(service):
    resolved = service.resolve(ProviderConfig(ProviderKind.OPENAI, "sk-test", "http://proxy/v1", "gpt-x"))
    assert resolved.model == "gpt-x"
    assert resolved.base_url == "http://proxy/v1"


def test_resolve_without_defaults_uses_fallback_model():
    resolved = ChatService().resolve(ProviderConfig(ProviderKind.CUSTOM, None, "http://local/v1"))
    assert resolved.model == "default"


def test_resolve_unknown_kind(service):
    with pytest.raises(ConfigurationError, match="Unsupported AI provider: gemini"):
        service.resolve(ProviderConfig(provider="gemini"))


def test_managed_not_configured():
    with pytest.raises(ConfigurationError, match="Managed backend is not configured"):
        ChatService().resolve(ProviderConfig())


def test_build_reuses_provider_instances(service, openai_client):
    config = ProviderConfig(ProviderKind.OPENAI, "sk-test")
    first = service.build(config)
    second = service.build(ProviderConfig(ProviderKind.OPENAI, "sk-test"))
    assert first is second
    assert openai_client.factory.call_count == 1


def test_build_anthropic_uses_configured_max_tokens(service, anthropic_client):
    provider = service.build(ProviderConfig(ProviderKind.ANTHROPIC, "sk-ant"))
    assert isinstance(provider, AnthropicProvider)
    assert provider._max_tokens == 2048


async def test_chat_routes_to_variant(service, openai_client):
    completion = await service.chat(MESSAGES, ProviderConfig())
    assert completion.content == "Hi."
    assert openai_client.factory.call_args.kwargs["base_url"] == "http://gw.local/v1"
    assert openai_client.chat.completions.create.await_args.kwargs["model"] == "house-model"


async def test_chat_missing_credentials_raises_configuration_error(service):
    with pytest.raises(ConfigurationError):
        await service.chat(MESSAGES, ProviderConfig(ProviderKind.OPENAI))


def test_build_evicts_least_recently_used(openai_client):
    service = ChatService(max_cached=2)
    configs = [ProviderConfig(ProviderKind.OPENAI, "sk-test", model=m) for m in ("a", "b", "c")]

    first = service.build(configs[0])
    service.build(configs[1])
    assert service.build(configs[0]) is first
    service.build(configs[2])

    assert service.cached_providers == 2
    assert service.build(configs[0]) is first
    assert openai_client.factory.call_count == 3
    service.build(configs[1])
    assert openai_client.factory.call_count == 4
