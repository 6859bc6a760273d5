"""Load settings.yaml into typed dataclasses. Reports managed-backend availability at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass
class ManagedConfig:
    base_url: str
    model: str
    api_key_env: str | None = None

    def api_key(self) -> str | None:
        if not self.api_key_env:
            return None
        return os.environ.get(self.api_key_env, "").strip() or None


@dataclass
class ProviderDefaults:
    model: str
    base_url: str | None = None
    max_tokens: int = 4096


@dataclass
class PromptsConfig:
    turn: str
    opening_instruction: str
    response_instruction: str
    summary: str
    summary_highlights: str
    summary_system: str
    scoring_context: str


@dataclass
class AgentConfig:
    id: str
    name: str
    profile: str
    system_prompt: str
    color: str
    description: str | None = None


@dataclass
class DefaultsConfig:
    rounds: int
    max_rounds: int
    output_dir: Path
    turn_delay_sec: float = 0.5
    summary_top_k: int = 5
    scoring_history: int = 5
    default_agents: list[str] = field(default_factory=list)


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    managed: ManagedConfig
    providers: dict[str, ProviderDefaults]
    prompts: PromptsConfig
    agents: list[AgentConfig] = field(default_factory=list)
    scorers: list[AgentConfig] = field(default_factory=list)


def _load_agents(raw_agents: list[dict]) -> list[AgentConfig]:
    return [
        AgentConfig(
            id=str(a["id"]),
            name=str(a["name"]),
            profile=str(a["profile"]),
            system_prompt=str(a["system_prompt"]).strip(),
            color=str(a.get("color", "#888888")),
            description=a.get("description"),
        )
        for a in raw_agents
    ]


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    Logs whether the managed backend has a key but does not raise; the managed
    endpoint may not need one.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(
        rounds=int(defaults_raw["rounds"]),
        max_rounds=int(defaults_raw["max_rounds"]),
        output_dir=Path(defaults_raw["output_dir"]),
        turn_delay_sec=float(defaults_raw.get("turn_delay_sec", 0.5)),
        summary_top_k=int(defaults_raw.get("summary_top_k", 5)),
        scoring_history=int(defaults_raw.get("scoring_history", 5)),
        default_agents=list(defaults_raw.get("default_agents", [])),
    )

    managed_raw = raw["managed"]
    managed = ManagedConfig(
        base_url=str(managed_raw["base_url"]),
        model=str(managed_raw["model"]),
        api_key_env=managed_raw.get("api_key_env"),
    )
    if managed.api_key():
        logger.info("Managed backend key found in %s", managed.api_key_env)
    else:
        logger.info("Managed backend has no key configured, calling %s unauthenticated", managed.base_url)

    providers: dict[str, ProviderDefaults] = {}
    for kind, provider_raw in raw.get("providers", {}).items():
        providers[kind] = ProviderDefaults(
            model=str(provider_raw["model"]),
            base_url=provider_raw.get("base_url"),
            max_tokens=int(provider_raw.get("max_tokens", 4096)),
        )

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        turn=prompts_raw["turn"],
        opening_instruction=prompts_raw["opening_instruction"].strip(),
        response_instruction=prompts_raw["response_instruction"].strip(),
        summary=prompts_raw["summary"],
        summary_highlights=prompts_raw["summary_highlights"],
        summary_system=prompts_raw["summary_system"].strip(),
        scoring_context=prompts_raw["scoring_context"],
    )

    return AppConfig(
        defaults=defaults,
        managed=managed,
        providers=providers,
        prompts=prompts,
        agents=_load_agents(raw.get("agents", [])),
        scorers=_load_agents(raw.get("scorers", [])),
    )
