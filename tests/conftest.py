"""Shared pytest fixtures."""

import json
from unittest.mock import AsyncMock

import pytest

from config.config_loader import AppConfig, PromptsConfig, load_config
from agora.debate import DebateScheduler
from agora.errors import ProviderError
from agora.events import EventBroadcaster
from agora.models import Agent, ChatCompletion, ChatMessage, Message, ProviderConfig, TokenUsage
from agora.providers.router import ChatService
from agora.scoring import ScoringPipeline
from agora.store import InMemoryStore, agent_from_config

TURN_REPLY = "Fixed argument from the mock backend."
SCORER_REPLY = '{"score": 7, "reason": "Solid and clear."}'
SUMMARY_REPLY = json.dumps(
    {
        "summary": "The agents debated the topic.\n\nThey converged partially.",
        "keyPoints": ["Point one", "Point two"],
        "consensus": "Both agree it matters.",
        "disagreements": ["How fast to act"],
        "bestArgument": "Cost matters.",
        "mostInnovative": "A phased rollout.",
        "memorableQuotes": ["Build it and see."],
    }
)


def call_kind(messages: list[ChatMessage]) -> str:
    """Classify a chat call as 'turn', 'summary', or a scorer dimension by its system prompt."""
    system = messages[0].content if messages and messages[0].role == "system" else ""
    if "debate analyst" in system:
        return "summary"
    if "logical rigor" in system:
        return "logic"
    if "for innovation" in system:
        return "innovation"
    if "for expression" in system:
        return "expression"
    return "turn"


class MockChatService(ChatService):
    """Test double ChatService answering by call kind, recording every call."""

    def __init__(
        self,
        turn_reply: str = TURN_REPLY,
        scorer_reply: str = SCORER_REPLY,
        summary_reply: str = SUMMARY_REPLY,
        turn_error_at: int | None = None,
    ) -> None:
        super().__init__()
        self.turn_reply = turn_reply
        self.scorer_reply = scorer_reply
        self.summary_reply = summary_reply
        self.turn_error_at = turn_error_at
        self.turn_calls = 0
        self.calls: list[tuple[str, list[ChatMessage], ProviderConfig]] = []
        # Shadow the class method with an AsyncMock at the instance level.
        self.chat = AsyncMock(side_effect=self._respond)  # type: ignore[method-assign]

    async def _respond(self, messages: list[ChatMessage], config: ProviderConfig) -> ChatCompletion:
        kind = call_kind(messages)
        self.calls.append((kind, messages, config))
        if kind == "turn":
            self.turn_calls += 1
            if self.turn_error_at is not None and self.turn_calls == self.turn_error_at:
                raise ProviderError("managed", "HTTP 500: upstream exploded", status=500, body="boom")
            content = self.turn_reply
        elif kind == "summary":
            content = self.summary_reply
        else:
            content = self.scorer_reply
        return ChatCompletion(content=content, usage=TokenUsage(10, 5, 15))

    def calls_of(self, kind: str) -> list[list[ChatMessage]]:
        return [messages for k, messages, _ in self.calls if k == kind]


@pytest.fixture
def app_config() -> AppConfig:
    return load_config()


@pytest.fixture
def prompts(app_config: AppConfig) -> PromptsConfig:
    return app_config.prompts


@pytest.fixture
def debaters(app_config: AppConfig) -> list[Agent]:
    return [agent_from_config(a) for a in app_config.agents]


@pytest.fixture
def scorers(app_config: AppConfig) -> list[Agent]:
    return [agent_from_config(a) for a in app_config.scorers]


@pytest.fixture
def store(debaters: list[Agent], scorers: list[Agent]) -> InMemoryStore:
    return InMemoryStore(debaters + scorers)


@pytest.fixture
def mock_chat() -> MockChatService:
    return MockChatService()


@pytest.fixture
def broadcaster() -> EventBroadcaster:
    return EventBroadcaster()


@pytest.fixture
def scoring(store, mock_chat, prompts, broadcaster) -> ScoringPipeline:
    return ScoringPipeline(store, mock_chat, prompts, broadcaster)


@pytest.fixture
async def scheduler(store, mock_chat, broadcaster, prompts, scoring):
    yield DebateScheduler(store, mock_chat, broadcaster, prompts, scoring=scoring, turn_delay_sec=0)
    # Let background scoring settle before the loop closes.
    await scoring.drain()


def make_message(
    session_id: str = "s1",
    sender: str = "optimist",
    content: str = "An argument.",
    round: int = 1,
    total: int | None = None,
    msg_id: str | None = None,
) -> Message:
    return Message(
        id=msg_id or f"{sender}-{round}-{total}",
        session_id=session_id,
        sender=sender,
        content=content,
        round=round,
        total_score=total,
    )
