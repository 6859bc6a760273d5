"""Ping each configured chat backend before a debate starts."""

import asyncio
import logging

from agora.models import ChatMessage, ProviderConfig
from agora.providers.router import ChatService

logger = logging.getLogger(__name__)

_PING_PROMPT = "Reply with the word OK only."
_TIMEOUT_SEC = 15.0


async def _check_one(name: str, chat: ChatService, config: ProviderConfig) -> tuple[str, bool, str]:
    """Ping a single provider config. Returns (name, ok, error_message)."""
    try:
        await asyncio.wait_for(
            chat.chat([ChatMessage(role="user", content=_PING_PROMPT)], config),
            timeout=_TIMEOUT_SEC,
        )
        return name, True, ""
    except Exception as exc:
        return name, False, str(exc) or type(exc).__name__


async def run_health_checks(
    chat: ChatService,
    configs: dict[str, ProviderConfig],
) -> dict[str, tuple[bool, str]]:
    """Ping all provider configs in parallel.

    Returns:
        Dict mapping name -> (ok, error_message).
        error_message is "" when ok is True.
    """
    results = await asyncio.gather(*(_check_one(n, chat, c) for n, c in configs.items()))
    return {name: (ok, err) for name, ok, err in results}
