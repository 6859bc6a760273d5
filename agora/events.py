"""Per-session event fan-out for live observers.

Each observer joins a session and gets its own queue; the scheduler publishes
without ever blocking on a slow reader.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum

from agora.models import AgentStatus, Message, MessageScores, Session

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    AGENT_STATUS = "agent-status"
    NEW_MESSAGE = "new-message"
    MESSAGE_SCORED = "message-scored"
    ROUND_COMPLETE = "round-complete"
    DEBATE_COMPLETE = "debate-complete"
    ERROR = "error"


@dataclass
class DebateEvent:
    type: EventType
    session_id: str
    data: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"type": self.type.value, "sessionId": self.session_id, **self.data}


class Subscription:
    """An observer's view of one session's event stream. Iterate until ``close()``."""

    def __init__(self, broadcaster: "EventBroadcaster", session_id: str) -> None:
        self._broadcaster = broadcaster
        self.session_id = session_id
        self._queue: asyncio.Queue[DebateEvent | None] = asyncio.Queue()
        self.closed = False

    def _put(self, event: DebateEvent | None) -> None:
        self._queue.put_nowait(event)

    async def get(self) -> DebateEvent | None:
        return await self._queue.get()

    def pending(self) -> list[DebateEvent]:
        """Return every event queued so far without waiting."""
        events: list[DebateEvent] = []
        while not self._queue.empty():
            event = self._queue.get_nowait()
            if event is not None:
                events.append(event)
        return events

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._broadcaster.unsubscribe(self)
        self._put(None)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> DebateEvent:
        event = await self._queue.get()
        if event is None:
            raise StopAsyncIteration
        return event


class EventBroadcaster:
    """Session-keyed publish/subscribe with one helper per event in the observer contract."""

    def __init__(self) -> None:
        self._subscribers: dict[str, set[Subscription]] = {}

    def subscribe(self, session_id: str) -> Subscription:
        sub = Subscription(self, session_id)
        self._subscribers.setdefault(session_id, set()).add(sub)
        logger.debug("Observer joined session %s (%d total)", session_id, len(self._subscribers[session_id]))
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        subs = self._subscribers.get(sub.session_id)
        if subs:
            subs.discard(sub)
            if not subs:
                self._subscribers.pop(sub.session_id, None)

    def subscriber_count(self, session_id: str) -> int:
        return len(self._subscribers.get(session_id, ()))

    def publish(self, event: DebateEvent) -> int:
        """Deliver ``event`` to every current subscriber. Returns the number reached."""
        subs = self._subscribers.get(event.session_id)
        if not subs:
            logger.debug("Event %s dropped (no subscribers): %s", event.type.value, event.session_id)
            return 0
        for sub in list(subs):
            sub._put(event)
        return len(subs)

    def emit(self, session_id: str, event_type: EventType, **data) -> int:
        return self.publish(DebateEvent(type=event_type, session_id=session_id, data=data))

    def agent_status(self, session_id: str, agent_id: str, status: AgentStatus) -> int:
        return self.emit(session_id, EventType.AGENT_STATUS, agentId=agent_id, status=status.value)

    def new_message(self, session_id: str, message: Message) -> int:
        return self.emit(session_id, EventType.NEW_MESSAGE, message=message.to_dict())

    def message_scored(self, session_id: str, message_id: str, scores: MessageScores) -> int:
        return self.emit(
            session_id,
            EventType.MESSAGE_SCORED,
            messageId=message_id,
            scores={
                "logic": scores.logic_score,
                "innovation": scores.innovation_score,
                "expression": scores.expression_score,
                "total": scores.total_score,
                "reasons": dict(scores.reasons),
            },
        )

    def round_complete(self, session_id: str, round_number: int) -> int:
        return self.emit(session_id, EventType.ROUND_COMPLETE, round=round_number)

    def debate_complete(self, session_id: str, session: Session | None) -> int:
        return self.emit(session_id, EventType.DEBATE_COMPLETE, session=session.to_dict() if session else None)

    def error(self, session_id: str, message: str) -> int:
        return self.emit(session_id, EventType.ERROR, message=message)
