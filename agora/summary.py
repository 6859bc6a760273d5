"""Final digest: build transcript plus top-scored excerpts, call the LLM, parse the structured reply."""

import logging

from config.config_loader import PromptsConfig
from agora.errors import ParseError
from agora.models import Agent, ChatMessage, DebateSummary, Message, ProviderConfig
from agora.parsing import parse_json_object
from agora.providers.router import ChatService
from agora.scoring import top_scored

logger = logging.getLogger(__name__)

PLACEHOLDER_SUMMARY = "Unable to generate summary at this time."


def placeholder_summary() -> DebateSummary:
    return DebateSummary(summary=PLACEHOLDER_SUMMARY)


def _agent_name(agents: list[Agent], agent_id: str) -> str:
    return next((a.name for a in agents if a.id == agent_id), agent_id)


def format_conversation(agents: list[Agent], messages: list[Message]) -> str:
    """Render the transcript as ``**name** (Round r):`` blocks."""
    return "\n\n".join(
        f"**{_agent_name(agents, m.sender)}** (Round {m.round}):\n{m.content}" for m in messages
    )


def format_highlights(agents: list[Agent], messages: list[Message], template: str) -> str:
    if not messages:
        return ""
    excerpts = "\n\n".join(
        f"- **{_agent_name(agents, m.sender)}** (Round {m.round}, score {m.total_score}/30): {m.content}"
        for m in messages
    )
    return template.format(excerpts=excerpts)


def build_summary_prompt(
    topic: str,
    agents: list[Agent],
    messages: list[Message],
    prompts: PromptsConfig,
    top_k: int = 5,
) -> str:
    participants = "\n".join(f"- {a.name}: {a.profile}" for a in agents)
    return prompts.summary.format(
        topic=topic,
        participants=participants,
        conversation=format_conversation(agents, messages),
        highlights=format_highlights(agents, top_scored(messages, top_k), prompts.summary_highlights),
    )


def _as_list(value: object) -> list[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return [str(v) for v in value]
    return [str(value)]


def _as_optional_str(value: object) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def parse_summary(content: str) -> DebateSummary:
    """Parse the analyst's JSON reply. A list-valued consensus is joined into one statement.

    Raises:
        ParseError: Empty reply, invalid JSON, or no ``summary`` field.
    """
    data = parse_json_object(content, context="summary response")
    summary = data.get("summary")
    if not summary:
        raise ParseError("Summary response has no 'summary' field")

    consensus = data.get("consensus")
    if isinstance(consensus, list):
        consensus = "; ".join(str(c) for c in consensus)

    return DebateSummary(
        summary=str(summary),
        key_points=_as_list(data.get("keyPoints")),
        consensus=str(consensus) if consensus else "",
        disagreements=_as_list(data.get("disagreements")),
        best_argument=_as_optional_str(data.get("bestArgument")),
        most_innovative=_as_optional_str(data.get("mostInnovative")),
        memorable_quotes=_as_list(data.get("memorableQuotes")),
    )


async def generate_summary(
    topic: str,
    agents: list[Agent],
    messages: list[Message],
    chat: ChatService,
    provider: ProviderConfig,
    prompts: PromptsConfig,
    top_k: int = 5,
) -> DebateSummary:
    """Run the summary call and return the digest.

    Never raises: an empty transcript, an empty reply, a parse failure or a
    provider error all produce the placeholder digest so the session can still
    complete.
    """
    if not messages:
        logger.info("No messages to summarize, using placeholder summary")
        return placeholder_summary()

    logger.info("Generating summary for %d messages via %s", len(messages), provider.provider)

    try:
        prompt = build_summary_prompt(topic, agents, messages, prompts, top_k)
        response = await chat.chat(
            [
                ChatMessage(role="system", content=prompts.summary_system),
                ChatMessage(role="user", content=prompt),
            ],
            provider,
        )
        return parse_summary(response.content)
    except Exception as exc:
        logger.error("Error generating summary: %s", exc)
        return placeholder_summary()
