"""Tests for agora/models.py dataclasses."""

from agora.models import (
    BROADCAST,
    DebateSummary,
    Message,
    ProviderConfig,
    ProviderKind,
    Session,
    SessionStatus,
)


def test_provider_config_defaults_to_managed():
    config = ProviderConfig()
    assert config.provider is ProviderKind.MANAGED
    assert config.api_key is None
    assert config.model is None


def test_provider_kind_from_string():
    assert ProviderKind("anthropic") is ProviderKind.ANTHROPIC


def test_message_defaults():
    m = Message(id="m1", session_id="s1", sender="optimist", content="Hi.", round=1)
    assert m.receiver == BROADCAST == "all"
    assert m.total_score is None
    assert m.is_highlight is False
    assert m.is_scored is False


def test_message_zero_total_is_unscored():
    m = Message(id="m1", session_id="s1", sender="optimist", content="Hi.", round=1, total_score=0)
    assert m.is_scored is False


def test_message_to_dict_serializes_timestamp():
    m = Message(id="m1", session_id="s1", sender="optimist", content="Hi.", round=2, total_score=18)
    data = m.to_dict()
    assert data["sender"] == "optimist"
    assert data["total_score"] == 18
    assert isinstance(data["created_at"], str)


def test_session_defaults():
    s = Session(id="s1", user_id=1, topic="T", agent_ids=["a", "b"])
    assert s.status is SessionStatus.PENDING
    assert s.current_round == 0
    assert s.max_rounds == 5
    assert s.summary is None
    assert s.completed_at is None


def test_session_to_dict():
    s = Session(
        id="s1",
        user_id=1,
        topic="T",
        agent_ids=["a", "b"],
        status=SessionStatus.COMPLETED,
        summary=DebateSummary(summary="Done.", key_points=["k"]),
    )
    data = s.to_dict()
    assert data["status"] == "completed"
    assert data["summary"]["summary"] == "Done."
    assert data["summary"]["key_points"] == ["k"]
    assert data["completed_at"] is None
    assert isinstance(data["updated_at"], str)


def test_debate_summary_defaults():
    summary = DebateSummary(summary="Only text.")
    assert summary.key_points == []
    assert summary.consensus == ""
    assert summary.best_argument is None
