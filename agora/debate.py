"""Debate orchestration: sequential agent turns, rounds, and the session lifecycle."""

import asyncio
import logging
from dataclasses import dataclass

from config.config_loader import PromptsConfig
from agora.errors import NotFoundError, SessionStateError
from agora.events import EventBroadcaster
from agora.models import (
    BROADCAST,
    Agent,
    AgentStatus,
    ChatMessage,
    Message,
    Session,
    SessionStatus,
    utcnow,
)
from agora.providers.router import ChatService
from agora.scoring import ScoringPipeline
from agora.store import DebateStore, active_provider_config, new_id
from agora.summary import generate_summary

logger = logging.getLogger(__name__)

NO_HISTORY = "This is the beginning of the debate."
NO_RESPONSE = "I have no response at this time."


@dataclass
class DebateContext:
    session_id: str
    user_id: int
    topic: str
    agents: list[Agent]
    current_round: int
    max_rounds: int


def format_history(agents: list[Agent], messages: list[Message]) -> str:
    """Render prior messages as ``name: content`` pairs, falling back to the sender id."""
    names = {a.id: a.name for a in agents}
    return "\n\n".join(f"{names.get(m.sender, m.sender)}: {m.content}" for m in messages)


def build_turn_prompt(
    agent: Agent,
    context: DebateContext,
    history: list[Message],
    prompts: PromptsConfig,
) -> str:
    """Persona framing, topic, transcript so far, and the round instruction."""
    instruction = prompts.response_instruction if history else prompts.opening_instruction
    return prompts.turn.format(
        name=agent.name,
        profile=agent.profile,
        system_prompt=agent.system_prompt,
        topic=context.topic,
        history=format_history(context.agents, history) or NO_HISTORY,
        round=context.current_round,
        max_rounds=context.max_rounds,
        instruction=instruction,
    )


class DebateScheduler:
    """Drives a session from ``pending`` to ``completed`` (or ``error``).

    Turns run strictly one after another because each prompt depends on every
    message produced before it. Scoring is handed off and never awaited.
    Only one run per session is allowed at a time, and only from ``pending``.
    """

    def __init__(
        self,
        store: DebateStore,
        chat: ChatService,
        broadcaster: EventBroadcaster,
        prompts: PromptsConfig,
        scoring: ScoringPipeline | None = None,
        turn_delay_sec: float = 0.5,
        summary_top_k: int = 5,
        log: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._chat = chat
        self._events = broadcaster
        self._prompts = prompts
        self._scoring = scoring
        self._turn_delay = turn_delay_sec
        self._summary_top_k = summary_top_k
        self._log = log or logger
        self._active: set[str] = set()

    def is_running(self, session_id: str) -> bool:
        return session_id in self._active

    async def generate_agent_response(
        self,
        agent: Agent,
        context: DebateContext,
        history: list[Message],
    ) -> str:
        """Ask the user's active provider for ``agent``'s next utterance."""
        prompt = build_turn_prompt(agent, context, history, self._prompts)
        provider = await active_provider_config(self._store, context.user_id)
        response = await self._chat.chat(
            [
                ChatMessage(role="system", content=agent.system_prompt),
                ChatMessage(role="user", content=prompt),
            ],
            provider,
        )
        return response.content or NO_RESPONSE

    async def run_round(self, context: DebateContext) -> list[Message]:
        """Every agent speaks once, in roster order.

        The history is read from the store once, at the start of the round.

        Raises:
            Exception: Whatever the failing turn raised; that agent is set back to idle first.
        """
        history = await self._store.list_session_messages(context.session_id)
        transcript = list(history)
        round_messages: list[Message] = []

        for agent in context.agents:
            try:
                self._events.agent_status(context.session_id, agent.id, AgentStatus.THINKING)

                content = await self.generate_agent_response(agent, context, history)

                self._events.agent_status(context.session_id, agent.id, AgentStatus.SPEAKING)

                message = Message(
                    id=new_id(),
                    session_id=context.session_id,
                    sender=agent.id,
                    receiver=BROADCAST,
                    content=content,
                    round=context.current_round,
                )
                await self._store.create_message(message)
                round_messages.append(message)
                self._events.new_message(context.session_id, message)

                if self._scoring is not None:
                    self._scoring.dispatch(message, context.topic, transcript, context.user_id)
                transcript.append(message)

                self._events.agent_status(context.session_id, agent.id, AgentStatus.WAITING)
            except Exception as exc:
                self._log.error(
                    "Error in round %d for agent %s: %s", context.current_round, agent.id, exc
                )
                self._events.agent_status(context.session_id, agent.id, AgentStatus.IDLE)
                raise

            await asyncio.sleep(self._turn_delay)

        self._log.info(
            "Round %d complete: %d messages in session %s",
            context.current_round,
            len(round_messages),
            context.session_id,
        )
        return round_messages

    async def _load_context(self, session_id: str) -> DebateContext:
        session = await self._store.get_session(session_id)
        if session is None:
            raise NotFoundError("Session not found")
        if session.status is not SessionStatus.PENDING:
            raise SessionStateError(
                f"Session {session_id} is {session.status.value}; only pending sessions can start"
            )

        agents: list[Agent] = []
        for agent_id in session.agent_ids:
            agent = await self._store.get_agent(agent_id)
            if agent is None:
                self._log.warning("Agent %s not found, dropping from session %s", agent_id, session_id)
                continue
            agents.append(agent)
        if not agents:
            raise NotFoundError("No agents found")

        return DebateContext(
            session_id=session.id,
            user_id=session.user_id,
            topic=session.topic,
            agents=agents,
            current_round=session.current_round,
            max_rounds=session.max_rounds,
        )

    async def run_session(self, session_id: str) -> Session:
        """Run every round, then the summary, and return the final session record.

        Raises:
            SessionStateError: The session is not pending or is already running.
            NotFoundError: Unknown session or no resolvable agents (nothing has run yet).
            Exception: Any failure once running; the session is left in ``error``.
        """
        if session_id in self._active:
            raise SessionStateError(f"Session {session_id} is already running")
        self._active.add(session_id)
        try:
            context = await self._load_context(session_id)
            return await self._run(context)
        finally:
            self._active.discard(session_id)

    async def _run(self, context: DebateContext) -> Session:
        try:
            await self._store.update_session(context.session_id, status=SessionStatus.RUNNING)
            self._log.info(
                "Starting session %s: %d agents, %d rounds",
                context.session_id,
                len(context.agents),
                context.max_rounds,
            )

            for round_number in range(1, context.max_rounds + 1):
                context.current_round = round_number
                await self._store.update_session(context.session_id, current_round=round_number)

                await self.run_round(context)

                self._events.round_complete(context.session_id, round_number)

            all_messages = await self._store.list_session_messages(context.session_id)
            provider = await active_provider_config(self._store, context.user_id)
            summary = await generate_summary(
                context.topic,
                context.agents,
                all_messages,
                self._chat,
                provider,
                self._prompts,
                top_k=self._summary_top_k,
            )

            final = await self._store.update_session(
                context.session_id,
                status=SessionStatus.COMPLETED,
                summary=summary,
                completed_at=utcnow(),
            )

            for agent in context.agents:
                self._events.agent_status(context.session_id, agent.id, AgentStatus.IDLE)

            self._log.info("Session %s completed", context.session_id)
            return final
        except Exception:
            self._log.exception("Error running debate session %s", context.session_id)
            await self._store.update_session(context.session_id, status=SessionStatus.ERROR)
            raise
