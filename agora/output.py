"""Rich console rendering of live debate events and markdown transcript export."""

import logging
import re
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule
from rich.text import Text

from agora.events import DebateEvent, EventType
from agora.models import Agent, DebateSummary, Message, Session

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_STATUS_STYLES = {
    "thinking": "yellow",
    "speaking": "green",
    "waiting": "dim",
    "idle": "dim",
}


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _score_line(message: Message) -> str:
    if message.total_score is None:
        return "unscored"
    return (
        f"logic {message.logic_score} | innovation {message.innovation_score} | "
        f"expression {message.expression_score} | total {message.total_score}/30"
    )


def print_event(event: DebateEvent, agents: dict[str, Agent]) -> None:
    """Render one live event to the console."""
    data = event.data
    if event.type is EventType.AGENT_STATUS:
        agent = agents.get(data["agentId"])
        name = agent.name if agent else data["agentId"]
        style = _STATUS_STYLES.get(data["status"], "")
        console.print(Text(f"  {name} is {data['status']}", style=style))
    elif event.type is EventType.NEW_MESSAGE:
        msg = data["message"]
        agent = agents.get(msg["sender"])
        name = agent.name if agent else msg["sender"]
        color = agent.color if agent else "white"
        console.print(
            Panel(
                msg["content"],
                title=f"[bold {color}]{name}[/bold {color}]",
                subtitle=f"Round {msg['round']}",
                border_style=color,
            )
        )
    elif event.type is EventType.MESSAGE_SCORED:
        scores = data["scores"]
        console.print(Text(f"  scored {data['messageId'][:8]}: {scores['total']}/30", style="dim"))
    elif event.type is EventType.ROUND_COMPLETE:
        console.print(Rule(f"[bold cyan]Round {data['round']} complete[/bold cyan]"))
    elif event.type is EventType.DEBATE_COMPLETE:
        console.print(Rule("[bold green]Debate complete[/bold green]"))
    elif event.type is EventType.ERROR:
        console.print(f"[bold red]Error:[/bold red] {data['message']}")


def print_summary(summary: DebateSummary) -> None:
    """Print the digest to the console."""
    console.print(Rule("[bold green]Debate Summary[/bold green]"))
    console.print(summary.summary)
    if summary.key_points:
        console.print("\n[bold]Key points[/bold]")
        for point in summary.key_points:
            console.print(f"  • {point}")
    if summary.consensus:
        console.print(f"\n[bold]Consensus:[/bold] {summary.consensus}")
    if summary.disagreements:
        console.print("\n[bold]Disagreements[/bold]")
        for point in summary.disagreements:
            console.print(f"  • {point}")
    if summary.best_argument:
        console.print(f"\n[bold]Best argument:[/bold] {summary.best_argument}")
    if summary.most_innovative:
        console.print(f"[bold]Most innovative:[/bold] {summary.most_innovative}")


def print_highlights(messages: list[Message], agents: dict[str, Agent]) -> None:
    highlights = [m for m in messages if m.is_highlight]
    if not highlights:
        return
    console.print(Rule("[bold magenta]Highlights[/bold magenta]"))
    for m in sorted(highlights, key=lambda m: m.total_score or 0, reverse=True):
        name = agents[m.sender].name if m.sender in agents else m.sender
        console.print(Panel(m.content, title=f"{name} (Round {m.round})", subtitle=_score_line(m), border_style="magenta"))


def save_to_file(
    session: Session,
    messages: list[Message],
    agents: dict[str, Agent],
    output_dir: Path,
) -> Path:
    """Save the full debate transcript, scores and summary as a markdown file.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filepath = output_dir / f"{timestamp}_{_slug(session.topic)}.md"

    roster = ", ".join(agents[a].name if a in agents else a for a in session.agent_ids)
    lines: list[str] = [
        f"# Debate: {session.topic[:80]}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Participants:** {roster}",
        f"**Rounds:** {session.current_round}/{session.max_rounds}",
        f"**Status:** {session.status.value}",
        "",
        "---",
        "",
    ]

    for round_number in sorted({m.round for m in messages}):
        lines.append(f"## Round {round_number}")
        lines.append("")
        for m in (m for m in messages if m.round == round_number):
            name = agents[m.sender].name if m.sender in agents else m.sender
            star = " ★" if m.is_highlight else ""
            lines.append(f"### {name}{star}")
            lines.append("")
            lines.append(m.content)
            lines.append("")
            lines.append(f"*Scores: {_score_line(m)}*")
            lines.append("")

    summary = session.summary
    if summary is not None:
        lines += ["## Summary", "", summary.summary, ""]
        if summary.key_points:
            lines += ["### Key Points", ""] + [f"- {p}" for p in summary.key_points] + [""]
        if summary.consensus:
            lines += ["### Consensus", "", summary.consensus, ""]
        if summary.disagreements:
            lines += ["### Disagreements", ""] + [f"- {p}" for p in summary.disagreements] + [""]
        if summary.best_argument:
            lines += ["### Best Argument", "", summary.best_argument, ""]
        if summary.most_innovative:
            lines += ["### Most Innovative", "", summary.most_innovative, ""]
        if summary.memorable_quotes:
            lines += ["### Memorable Quotes", ""] + [f"> {q}" for q in summary.memorable_quotes] + [""]

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Debate saved to: %s", filepath)
    return filepath
