"""Background scoring: three scorer personas grade each message in parallel.

The scheduler hands messages to ``ScoringPipeline.dispatch`` and moves on; the
scores land in the store whenever the scorer calls finish, which may be after
the round or the whole session has completed.
"""

import asyncio
import logging
import math

from config.config_loader import PromptsConfig
from agora.errors import NotFoundError, ParseError
from agora.events import EventBroadcaster
from agora.models import Agent, ChatMessage, Message, MessageScores, ProviderConfig, ScoreResult
from agora.parsing import parse_json_object
from agora.providers.router import ChatService
from agora.store import DebateStore, active_provider_config

logger = logging.getLogger(__name__)

SCORER_IDS = {
    "logic": "logic_scorer",
    "innovation": "innovation_scorer",
    "expression": "expression_scorer",
}

NEUTRAL_SCORE = 5
MIN_SCORE = 0
MAX_SCORE = 10
NOT_INITIALIZED_REASON = "Scorer not initialized"
PARSE_FAILED_REASON = "Score parse failed"
NO_REASON = "No reason given"

HIGHLIGHT_FRACTION = 0.2
MIN_HIGHLIGHTS = 3


def build_scoring_context(
    message: Message,
    topic: str,
    previous_messages: list[Message],
    template: str,
    history: int = 5,
) -> str:
    """Topic, the last ``history`` messages verbatim, then the message under evaluation."""
    previous = ""
    if previous_messages:
        recent = previous_messages[-history:] if history > 0 else []
        lines = [f"{m.sender}: {m.content}\n" for m in recent]
        previous = "Previous discussion:\n" + "\n".join(lines) + "\n"
    return template.format(
        topic=topic,
        previous=previous,
        sender=message.sender,
        content=message.content,
    )


def parse_score(content: str) -> ScoreResult:
    """Parse ``{"score": n, "reason": "..."}``; a missing score counts as neutral, out-of-range is clamped.

    Raises:
        ParseError: Unparsable JSON or a non-numeric score.
    """
    data = parse_json_object(content, context="scorer response")
    raw_score = data.get("score")
    if raw_score is None:
        score = NEUTRAL_SCORE
    else:
        if isinstance(raw_score, bool):
            raise ParseError(f"Score is not numeric: {raw_score!r}")
        try:
            score = int(round(float(raw_score)))
        except (TypeError, ValueError) as exc:
            raise ParseError(f"Score is not numeric: {raw_score!r}") from exc
    score = max(MIN_SCORE, min(MAX_SCORE, score))
    reason = data.get("reason")
    return ScoreResult(score=score, reason=str(reason) if reason else NO_REASON)


def neutral_scores(reason: str) -> MessageScores:
    return MessageScores(
        logic_score=NEUTRAL_SCORE,
        innovation_score=NEUTRAL_SCORE,
        expression_score=NEUTRAL_SCORE,
        total_score=NEUTRAL_SCORE * 3,
        reasons={dimension: reason for dimension in SCORER_IDS},
    )


def select_highlights(messages: list[Message]) -> list[str]:
    """Ids of the top 20% (at least 3) scored messages, best first.

    Unscored messages (total absent or <= 0) are not ranked. With fewer than
    three scored messages every scored message is returned.
    """
    scored = [m for m in messages if m.is_scored]
    if not scored:
        return []
    ranked = sorted(scored, key=lambda m: m.total_score or 0, reverse=True)
    count = max(MIN_HIGHLIGHTS, math.ceil(len(ranked) * HIGHLIGHT_FRACTION))
    return [m.id for m in ranked[:count]]


def top_scored(messages: list[Message], k: int = 5) -> list[Message]:
    """The ``k`` highest-scored messages; unscored messages are skipped."""
    scored = [m for m in messages if m.is_scored]
    return sorted(scored, key=lambda m: m.total_score or 0, reverse=True)[:k]


async def refresh_highlights(store: DebateStore, session_id: str) -> list[str]:
    """Re-rank the session and set/clear each message's highlight flag."""
    messages = await store.list_session_messages(session_id)
    highlight_ids = set(select_highlights(messages))
    for message in messages:
        wanted = message.id in highlight_ids
        if message.is_highlight != wanted:
            await store.set_message_highlight(message.id, wanted)
    return [m.id for m in messages if m.id in highlight_ids]


class ScoringPipeline:
    """Scores messages with the logic, innovation and expression scorer personas."""

    def __init__(
        self,
        store: DebateStore,
        chat: ChatService,
        prompts: PromptsConfig,
        broadcaster: EventBroadcaster | None = None,
        history: int = 5,
        log: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._chat = chat
        self._prompts = prompts
        self._broadcaster = broadcaster
        self._history = history
        self._log = log or logger
        self._tasks: set[asyncio.Task] = set()
        self._rank_locks: dict[str, asyncio.Lock] = {}

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def _rank_lock(self, session_id: str) -> asyncio.Lock:
        lock = self._rank_locks.get(session_id)
        if lock is None:
            lock = self._rank_locks[session_id] = asyncio.Lock()
        return lock

    async def _resolve_scorers(self) -> dict[str, Agent]:
        scorers: dict[str, Agent] = {}
        for dimension, scorer_id in SCORER_IDS.items():
            agent = await self._store.get_agent(scorer_id)
            if agent is None:
                raise NotFoundError(f"Scorer persona not found: {scorer_id}")
            scorers[dimension] = agent
        return scorers

    async def _score_with(self, scorer: Agent, context: str, provider: ProviderConfig) -> ScoreResult:
        try:
            completion = await self._chat.chat(
                [
                    ChatMessage(role="system", content=scorer.system_prompt),
                    ChatMessage(role="user", content=context),
                ],
                provider,
            )
            return parse_score(completion.content or "{}")
        except Exception as exc:
            self._log.warning("Scoring with %s failed: %s", scorer.name, exc)
            return ScoreResult(score=NEUTRAL_SCORE, reason=PARSE_FAILED_REASON)

    async def score_message(
        self,
        message: Message,
        topic: str,
        previous_messages: list[Message],
        user_id: int,
    ) -> MessageScores:
        """Run the three scorers concurrently and merge their verdicts.

        A missing scorer persona yields neutral 5/5/5 scores; a single failed
        scorer call yields a neutral 5 for that dimension only.
        """
        self._log.debug("Scoring message %s", message.id)
        try:
            scorers = await self._resolve_scorers()
        except NotFoundError as exc:
            self._log.error("%s, returning neutral scores", exc)
            return neutral_scores(NOT_INITIALIZED_REASON)

        context = build_scoring_context(
            message, topic, previous_messages, self._prompts.scoring_context, self._history
        )
        provider = await active_provider_config(self._store, user_id)

        dimensions = list(scorers)
        results = await asyncio.gather(
            *(self._score_with(scorers[d], context, provider) for d in dimensions)
        )
        by_dimension = dict(zip(dimensions, results))

        scores = MessageScores(
            logic_score=by_dimension["logic"].score,
            innovation_score=by_dimension["innovation"].score,
            expression_score=by_dimension["expression"].score,
            total_score=sum(r.score for r in results),
            reasons={d: r.reason for d, r in by_dimension.items()},
        )
        self._log.info(
            "Scored message %s: logic=%d innovation=%d expression=%d total=%d",
            message.id,
            scores.logic_score,
            scores.innovation_score,
            scores.expression_score,
            scores.total_score,
        )
        return scores

    async def score_and_store(
        self,
        message: Message,
        topic: str,
        previous_messages: list[Message],
        user_id: int,
    ) -> MessageScores:
        scores = await self.score_message(message, topic, previous_messages, user_id)
        # Read-rank-write must not interleave with another task on the same session.
        async with self._rank_lock(message.session_id):
            await self._store.update_message_scores(message.id, scores)
            await refresh_highlights(self._store, message.session_id)
        if self._broadcaster is not None:
            self._broadcaster.message_scored(message.session_id, message.id, scores)
        return scores

    async def _run_detached(
        self,
        message: Message,
        topic: str,
        previous_messages: list[Message],
        user_id: int,
    ) -> None:
        try:
            await self.score_and_store(message, topic, previous_messages, user_id)
        except Exception:
            self._log.exception("Background scoring failed for message %s", message.id)

    def dispatch(
        self,
        message: Message,
        topic: str,
        previous_messages: list[Message],
        user_id: int,
    ) -> asyncio.Task:
        """Start scoring ``message`` in the background and return immediately."""
        task = asyncio.create_task(
            self._run_detached(message, topic, list(previous_messages), user_id),
            name=f"score-{message.id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every dispatched scoring task, including ones started while waiting."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
