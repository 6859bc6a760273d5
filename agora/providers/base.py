"""Abstract base for all chat providers."""

from abc import ABC, abstractmethod

from agora.errors import ConfigurationError, ProviderError
from agora.models import ChatCompletion, ChatMessage, ProviderConfig, ProviderKind

__all__ = ["ChatProvider", "ConfigurationError", "ProviderError"]


class ChatProvider(ABC):
    """One backend behind the uniform "messages in, completion out" contract.

    Subclasses validate credentials in ``__init__`` (raising
    ``ConfigurationError``) and shape the request/response in ``complete``.
    """

    kind: ProviderKind

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config

    def name(self) -> str:
        """Return the short provider name (e.g. 'openai', 'anthropic')."""
        return self.kind.value

    def model_string(self) -> str:
        """Return the actual model identifier string."""
        return self._config.model or ""

    @abstractmethod
    async def complete(self, messages: list[ChatMessage]) -> ChatCompletion:
        """Send role-tagged messages and return the completion.

        Args:
            messages: Ordered system/user/assistant messages.

        Returns:
            ChatCompletion with the text (possibly empty) and optional usage.

        Raises:
            ProviderError: On a non-2xx upstream response or transport failure.
        """
        ...
