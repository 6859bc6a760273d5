"""Storage boundary consumed by the engine, plus the in-memory implementation used by the CLI and tests."""

import asyncio
import copy
import dataclasses
import logging
import uuid
from abc import ABC, abstractmethod

from config.config_loader import AgentConfig
from agora.errors import NotFoundError
from agora.models import Agent, Message, MessageScores, ProviderConfig, Session, utcnow

logger = logging.getLogger(__name__)

_SESSION_FIELDS = {f.name for f in dataclasses.fields(Session)} - {"id", "created_at"}


def new_id() -> str:
    return uuid.uuid4().hex


def agent_from_config(cfg: AgentConfig) -> Agent:
    return Agent(
        id=cfg.id,
        name=cfg.name,
        profile=cfg.profile,
        system_prompt=cfg.system_prompt,
        color=cfg.color,
        description=cfg.description,
    )


class DebateStore(ABC):
    """Agents, sessions, messages and per-user provider configs.

    Every method is a suspension point; implementations may hit a database.
    """

    @abstractmethod
    async def get_agent(self, agent_id: str) -> Agent | None: ...

    @abstractmethod
    async def list_agents(self) -> list[Agent]: ...

    @abstractmethod
    async def create_session(self, session: Session) -> Session: ...

    @abstractmethod
    async def get_session(self, session_id: str) -> Session | None: ...

    @abstractmethod
    async def update_session(self, session_id: str, **fields) -> Session:
        """Apply ``fields`` to the session and bump ``updated_at``.

        Raises:
            NotFoundError: Unknown session id.
        """
        ...

    @abstractmethod
    async def list_user_sessions(self, user_id: int) -> list[Session]: ...

    @abstractmethod
    async def create_message(self, message: Message) -> Message: ...

    @abstractmethod
    async def list_session_messages(self, session_id: str) -> list[Message]:
        """Return the session's messages in creation order."""
        ...

    @abstractmethod
    async def update_message_scores(self, message_id: str, scores: MessageScores) -> Message: ...

    @abstractmethod
    async def set_message_highlight(self, message_id: str, is_highlight: bool) -> None: ...

    @abstractmethod
    async def get_active_provider_config(self, user_id: int) -> ProviderConfig | None: ...

    @abstractmethod
    async def set_active_provider_config(self, user_id: int, config: ProviderConfig) -> None: ...


class InMemoryStore(DebateStore):
    """Dict-backed store. Objects are deep-copied in and out so callers never share state."""

    def __init__(self, agents: list[Agent] | None = None) -> None:
        self._agents: dict[str, Agent] = {a.id: a for a in agents or []}
        self._sessions: dict[str, Session] = {}
        self._messages: dict[str, Message] = {}
        self._provider_configs: dict[int, ProviderConfig] = {}
        self._lock = asyncio.Lock()

    async def get_agent(self, agent_id: str) -> Agent | None:
        return self._agents.get(agent_id)

    async def list_agents(self) -> list[Agent]:
        return list(self._agents.values())

    async def create_session(self, session: Session) -> Session:
        async with self._lock:
            self._sessions[session.id] = copy.deepcopy(session)
        return session

    async def get_session(self, session_id: str) -> Session | None:
        session = self._sessions.get(session_id)
        return copy.deepcopy(session) if session else None

    async def update_session(self, session_id: str, **fields) -> Session:
        unknown = set(fields) - _SESSION_FIELDS
        if unknown:
            raise ValueError(f"Unknown session fields: {sorted(unknown)}")
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise NotFoundError(f"Session not found: {session_id}")
            updated = dataclasses.replace(session, **copy.deepcopy(fields), updated_at=utcnow())
            self._sessions[session_id] = updated
        return copy.deepcopy(updated)

    async def list_user_sessions(self, user_id: int) -> list[Session]:
        sessions = [s for s in self._sessions.values() if s.user_id == user_id]
        return sorted((copy.deepcopy(s) for s in sessions), key=lambda s: s.created_at, reverse=True)

    async def create_message(self, message: Message) -> Message:
        async with self._lock:
            self._messages[message.id] = copy.deepcopy(message)
        return message

    async def list_session_messages(self, session_id: str) -> list[Message]:
        return [copy.deepcopy(m) for m in self._messages.values() if m.session_id == session_id]

    async def update_message_scores(self, message_id: str, scores: MessageScores) -> Message:
        async with self._lock:
            message = self._messages.get(message_id)
            if message is None:
                raise NotFoundError(f"Message not found: {message_id}")
            updated = dataclasses.replace(
                message,
                logic_score=scores.logic_score,
                innovation_score=scores.innovation_score,
                expression_score=scores.expression_score,
                total_score=scores.total_score,
                scoring_reasons=dict(scores.reasons),
            )
            self._messages[message_id] = updated
        return copy.deepcopy(updated)

    async def set_message_highlight(self, message_id: str, is_highlight: bool) -> None:
        async with self._lock:
            message = self._messages.get(message_id)
            if message is None:
                raise NotFoundError(f"Message not found: {message_id}")
            self._messages[message_id] = dataclasses.replace(message, is_highlight=is_highlight)

    async def get_active_provider_config(self, user_id: int) -> ProviderConfig | None:
        config = self._provider_configs.get(user_id)
        return copy.deepcopy(config) if config else None

    async def set_active_provider_config(self, user_id: int, config: ProviderConfig) -> None:
        self._provider_configs[user_id] = copy.deepcopy(config)
        logger.debug("Active provider for user %s set to %s", user_id, config.provider)


async def active_provider_config(store: DebateStore, user_id: int) -> ProviderConfig:
    """The user's active provider config, or the managed backend when none is set."""
    config = await store.get_active_provider_config(user_id)
    return config if config is not None else ProviderConfig()
