"""Pure dataclasses for the debate engine. No logic beyond serialization, no deps."""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum

BROADCAST = "all"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    ERROR = "error"


class AgentStatus(str, Enum):
    IDLE = "idle"
    THINKING = "thinking"
    SPEAKING = "speaking"
    WAITING = "waiting"


class ProviderKind(str, Enum):
    MANAGED = "managed"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    CUSTOM = "custom"


@dataclass
class ChatMessage:
    role: str              # "system", "user" or "assistant"
    content: str


@dataclass
class TokenUsage:
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class ChatCompletion:
    content: str
    usage: TokenUsage | None = None


@dataclass
class ProviderConfig:
    provider: ProviderKind = ProviderKind.MANAGED
    api_key: str | None = None
    base_url: str | None = None
    model: str | None = None


@dataclass(frozen=True)
class Agent:
    id: str
    name: str
    profile: str
    system_prompt: str
    color: str = "#888888"
    description: str | None = None


@dataclass
class ScoreResult:
    score: int
    reason: str


@dataclass
class MessageScores:
    logic_score: int
    innovation_score: int
    expression_score: int
    total_score: int
    reasons: dict[str, str] = field(default_factory=dict)  # keys: logic, innovation, expression


@dataclass
class Message:
    id: str
    session_id: str
    sender: str            # agent id
    content: str
    round: int
    receiver: str = BROADCAST
    sentiment: str | None = None   # "positive", "negative", "neutral"
    logic_score: int | None = None
    innovation_score: int | None = None
    expression_score: int | None = None
    total_score: int | None = None
    scoring_reasons: dict[str, str] | None = None
    is_highlight: bool = False
    created_at: datetime = field(default_factory=utcnow)

    @property
    def is_scored(self) -> bool:
        return self.total_score is not None and self.total_score > 0

    def to_dict(self) -> dict:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data


@dataclass
class DebateSummary:
    summary: str
    key_points: list[str] = field(default_factory=list)
    consensus: str = ""
    disagreements: list[str] = field(default_factory=list)
    best_argument: str | None = None
    most_innovative: str | None = None
    memorable_quotes: list[str] = field(default_factory=list)


@dataclass
class Session:
    id: str
    user_id: int
    topic: str
    agent_ids: list[str]
    max_rounds: int = 5
    current_round: int = 0
    status: SessionStatus = SessionStatus.PENDING
    summary: DebateSummary | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        for key in ("created_at", "updated_at", "completed_at"):
            value = getattr(self, key)
            data[key] = value.isoformat() if value else None
        return data
