"""Observer-facing control surface: create sessions, ``join`` their event stream, ``start`` them."""

import asyncio
import logging

from agora.debate import DebateScheduler
from agora.errors import SessionStateError
from agora.events import EventBroadcaster, Subscription
from agora.models import Session
from agora.store import DebateStore, new_id

logger = logging.getLogger(__name__)

MIN_AGENTS = 2
MIN_ROUNDS = 1
MAX_ROUNDS = 10
DEFAULT_ROUNDS = 5


async def create_session(
    store: DebateStore,
    user_id: int,
    topic: str,
    agent_ids: list[str],
    max_rounds: int = DEFAULT_ROUNDS,
) -> Session:
    """Validate the request and persist a new ``pending`` session.

    Raises:
        ValueError: Empty topic, fewer than two agents, or rounds outside 1..10.
    """
    topic = topic.strip()
    if not topic:
        raise ValueError("Topic must not be empty")
    if len(agent_ids) < MIN_AGENTS:
        raise ValueError(f"At least {MIN_AGENTS} agents are required, got {len(agent_ids)}")
    if not MIN_ROUNDS <= max_rounds <= MAX_ROUNDS:
        raise ValueError(f"max_rounds must be between {MIN_ROUNDS} and {MAX_ROUNDS}, got {max_rounds}")

    session = Session(
        id=new_id(),
        user_id=user_id,
        topic=topic,
        agent_ids=list(agent_ids),
        max_rounds=max_rounds,
    )
    await store.create_session(session)
    logger.info("Created session %s for user %s: %r", session.id, user_id, topic[:80])
    return session


class DebateController:
    """Two commands per session: ``join`` subscribes, ``start`` runs the debate.

    ``start`` turns run failures into an ``error`` event for observers. A start
    refused by the state guard is raised to the caller and not published.
    There is no stop command; a run continues after its observers leave.
    """

    def __init__(
        self,
        store: DebateStore,
        scheduler: DebateScheduler,
        broadcaster: EventBroadcaster,
        log: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._scheduler = scheduler
        self._events = broadcaster
        self._log = log or logger
        self._tasks: set[asyncio.Task] = set()

    def join(self, session_id: str) -> Subscription:
        self._log.info("Observer joined session %s", session_id)
        return self._events.subscribe(session_id)

    async def start(self, session_id: str) -> Session | None:
        """Run the session and publish ``debate-complete``, or ``error`` on failure.

        Returns the final session record, or None if the run failed.

        Raises:
            SessionStateError: The session is not pending or is already running.
        """
        self._log.info("Starting debate %s", session_id)
        try:
            await self._scheduler.run_session(session_id)
        except SessionStateError as exc:
            self._log.warning("Refused to start debate %s: %s", session_id, exc)
            raise
        except Exception as exc:
            self._log.error("Error in debate %s: %s", session_id, exc)
            self._events.error(session_id, str(exc) or type(exc).__name__)
            return None

        final = await self._store.get_session(session_id)
        self._events.debate_complete(session_id, final)
        return final

    def start_in_background(self, session_id: str) -> asyncio.Task:
        """Detach the run from the caller, as a transport handler would."""
        task = asyncio.create_task(self.start(session_id), name=f"debate-{session_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def handle(self, command: str, session_id: str) -> Subscription | Session | None:
        """Dispatch a ``join`` or ``start`` command by name.

        Raises:
            ValueError: Unknown command.
        """
        if command == "join":
            return self.join(session_id)
        if command == "start":
            return await self.start(session_id)
        raise ValueError(f"Unknown command: {command}")
