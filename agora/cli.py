"""Click CLI: wires config, store, provider routing, scheduler and live output together."""

import asyncio
import logging
import os
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from config.config_loader import AppConfig, load_config
from agora.controller import DebateController, create_session
from agora.debate import DebateScheduler
from agora.events import EventBroadcaster
from agora.healthcheck import run_health_checks
from agora.models import Agent, ProviderConfig, ProviderKind
from agora.output import print_event, print_highlights, print_summary, save_to_file
from agora.providers.router import ChatService
from agora.scoring import ScoringPipeline
from agora.store import InMemoryStore, agent_from_config

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

LOCAL_USER_ID = 1

API_KEY_ENV: dict[ProviderKind, str] = {
    ProviderKind.OPENAI: "OPENAI_API_KEY",
    ProviderKind.ANTHROPIC: "ANTHROPIC_API_KEY",
    ProviderKind.CUSTOM: "AGORA_CUSTOM_API_KEY",
}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _load_config_or_exit() -> AppConfig:
    try:
        return load_config()
    except FileNotFoundError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)


def _determine_agents(config: AppConfig, agents_arg: str | None) -> list[str]:
    """--agents overrides the configured default roster. Order is turn order."""
    if agents_arg:
        return [a.strip() for a in agents_arg.split(",") if a.strip()]
    return list(config.defaults.default_agents)


def _provider_config(provider: str, model: str | None, base_url: str | None) -> ProviderConfig:
    """Build the active provider config, reading the API key from the environment."""
    kind = ProviderKind(provider)
    api_key = None
    env_name = API_KEY_ENV.get(kind)
    if env_name:
        api_key = os.environ.get(env_name, "").strip() or None
    return ProviderConfig(provider=kind, api_key=api_key, base_url=base_url, model=model)


def _build_store(config: AppConfig) -> InMemoryStore:
    return InMemoryStore([agent_from_config(a) for a in config.agents + config.scorers])


async def _run_debate(
    config: AppConfig,
    topic: str,
    agent_ids: list[str],
    rounds: int,
    provider: ProviderConfig,
    output_dir: Path,
) -> Path | None:
    """Run one debate with live output. Returns the saved transcript path, or None on failure."""
    store = _build_store(config)
    await store.set_active_provider_config(LOCAL_USER_ID, provider)

    chat = ChatService.from_config(config)
    broadcaster = EventBroadcaster()
    scoring = ScoringPipeline(
        store, chat, config.prompts, broadcaster, history=config.defaults.scoring_history
    )
    scheduler = DebateScheduler(
        store,
        chat,
        broadcaster,
        config.prompts,
        scoring=scoring,
        turn_delay_sec=config.defaults.turn_delay_sec,
        summary_top_k=config.defaults.summary_top_k,
    )
    controller = DebateController(store, scheduler, broadcaster)

    session = await create_session(store, LOCAL_USER_ID, topic, agent_ids, rounds)
    agents: dict[str, Agent] = {a.id: a for a in await store.list_agents()}

    subscription = controller.join(session.id)

    async def render() -> None:
        async for event in subscription:
            print_event(event, agents)

    renderer = asyncio.create_task(render())

    final = await controller.start(session.id)
    if scoring.pending:
        console.print(f"[dim]Waiting for {scoring.pending} scoring task(s)...[/dim]")
    await scoring.drain()
    subscription.close()
    await renderer

    if final is None:
        return None

    final = await store.get_session(session.id)
    messages = await store.list_session_messages(session.id)
    print_highlights(messages, agents)
    if final.summary is not None:
        print_summary(final.summary)
    return save_to_file(final, messages, agents, output_dir)


@click.group()
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def main(verbose: bool) -> None:
    """Agora -- multi-agent debate engine.

    \b
    Examples:
      agora run "Should cities ban cars from downtown?" --rounds 2
      agora run "Is remote work here to stay?" --agents skeptic,optimist --provider openai
      agora agents
      agora check --provider anthropic
    """
    load_dotenv()
    _setup_logging(verbose)


@main.command()
@click.argument("topic")
@click.option("--agents", "agents_arg", default=None, help="Comma-separated agent ids, in turn order")
@click.option("--rounds", default=None, type=int, help="Number of debate rounds (default: from config)")
@click.option("--provider", default=ProviderKind.MANAGED.value,
              type=click.Choice([k.value for k in ProviderKind]), help="Chat provider to use")
@click.option("--model", default=None, help="Model name (default: provider default)")
@click.option("--base-url", default=None, help="Endpoint base URL (required for custom)")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the provider connectivity check at startup")
def run(
    topic: str,
    agents_arg: str | None,
    rounds: int | None,
    provider: str,
    model: str | None,
    base_url: str | None,
    output_path: str | None,
    skip_health_check: bool,
) -> None:
    """Run a debate on TOPIC and save the transcript."""
    config = _load_config_or_exit()

    effective_rounds = rounds if rounds is not None else config.defaults.rounds
    if effective_rounds > config.defaults.max_rounds:
        console.print(
            f"[bold red]Error:[/bold red] --rounds {effective_rounds} exceeds max_rounds {config.defaults.max_rounds}."
        )
        sys.exit(1)
    effective_output = Path(output_path) if output_path else config.defaults.output_dir
    agent_ids = _determine_agents(config, agents_arg)
    provider_config = _provider_config(provider, model, base_url)

    if not skip_health_check:
        chat = ChatService.from_config(config)
        results = asyncio.run(run_health_checks(chat, {provider: provider_config}))
        ok, err = results[provider]
        if not ok:
            console.print(f"[bold red]Error:[/bold red] provider {provider} failed health check: {err}")
            sys.exit(1)

    console.print(f"\n[bold cyan]Agora[/bold cyan] — {len(agent_ids)} agents, {effective_rounds} rounds, {provider}")
    console.print(f"Topic: [italic]{topic[:80]}{'...' if len(topic) > 80 else ''}[/italic]\n")

    try:
        saved = asyncio.run(
            _run_debate(config, topic, agent_ids, effective_rounds, provider_config, effective_output)
        )
    except ValueError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        sys.exit(1)

    if saved is None:
        sys.exit(1)
    console.print(f"\n[dim]Saved to: {saved}[/dim]")


@main.command()
def agents() -> None:
    """List the available debater personas."""
    config = _load_config_or_exit()
    table = Table(title="Agents")
    table.add_column("id")
    table.add_column("name")
    table.add_column("profile")
    for agent in config.agents:
        table.add_row(agent.id, f"[{agent.color}]{agent.name}[/{agent.color}]", agent.profile)
    console.print(table)


@main.command()
@click.option("--provider", default=ProviderKind.MANAGED.value,
              type=click.Choice([k.value for k in ProviderKind]), help="Chat provider to check")
@click.option("--model", default=None, help="Model name (default: provider default)")
@click.option("--base-url", default=None, help="Endpoint base URL (required for custom)")
def check(provider: str, model: str | None, base_url: str | None) -> None:
    """Ping the provider and report whether it answers."""
    config = _load_config_or_exit()
    chat = ChatService.from_config(config)
    results = asyncio.run(run_health_checks(chat, {provider: _provider_config(provider, model, base_url)}))
    ok, err = results[provider]
    if ok:
        console.print(f"  [green]OK  [/green] {provider}")
    else:
        short_err = err.splitlines()[0][:120] if err else "unknown error"
        console.print(f"  [red]FAIL[/red] {provider}: {short_err}")
        sys.exit(1)


if __name__ == "__main__":
    main()
