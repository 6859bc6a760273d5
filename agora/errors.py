"""Exception hierarchy shared across the engine."""


class AgoraError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(AgoraError):
    """Raised when a required credential or endpoint is missing."""


class ProviderError(AgoraError):
    """Raised when a provider call fails."""

    def __init__(
        self,
        provider_name: str,
        message: str,
        status: int | None = None,
        body: object = None,
    ) -> None:
        self.provider_name = provider_name
        self.status = status
        self.body = body
        super().__init__(f"[{provider_name}] {message}")


class ParseError(AgoraError):
    """Raised when structured LLM output cannot be parsed."""


class NotFoundError(AgoraError):
    """Raised when a session, agent or scorer persona does not exist."""


class SessionStateError(AgoraError):
    """Raised when a session cannot make the requested transition."""
