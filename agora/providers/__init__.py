from agora.providers.base import ChatProvider
from agora.providers.router import PROVIDER_CLASSES, ChatService

__all__ = ["PROVIDER_CLASSES", "ChatProvider", "ChatService"]
