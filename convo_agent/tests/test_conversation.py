import dataclasses

import pytest

from convo_agent.domain.conversation import ConversationMemory
from convo_agent.domain.models import ChatMessage, Message, TurnOutcome


def test_models_exist():
    m = Message.user("hi")
    assert m.role == "user"
    cm = m.to_chat()
    assert isinstance(cm, ChatMessage)
    assert cm.role == "user" and cm.content == "hi"
    assert cm.tool_calls is None


def test_message_is_immutable():
    m = Message.assistant("x")
    with pytest.raises(dataclasses.FrozenInstanceError):
        m.content = "y"


def test_message_rejects_unknown_role():
    with pytest.raises(ValueError):
        Message(role="tool", content="x")


def test_memory_fifo_scenario():
    mem = ConversationMemory(max_history=2)
    mem.add_message(Message.user("a"))
    mem.add_message(Message.assistant("b"))
    mem.add_message(Message.user("c"))
    assert mem.get_messages() == [Message.assistant("b"), Message.user("c")]


def test_memory_keeps_most_recent_in_order():
    cap = 5
    mem = ConversationMemory(max_history=cap)
    inserted = []
    for i in range(23):
        msg = Message.user(str(i)) if i % 2 else Message.assistant(str(i))
        mem.add_message(msg)
        inserted.append(msg)
        assert len(mem) <= cap
        assert mem.get_messages() == inserted[-cap:]


def test_memory_evicts_system_messages_too():
    mem = ConversationMemory(max_history=1)
    mem.add_message(Message.system("sys"))
    mem.add_message(Message.user("u"))
    assert mem.get_messages() == [Message.user("u")]


def test_memory_clear_and_validation():
    mem = ConversationMemory(max_history=3)
    mem.add_message(Message.user("a"))
    mem.clear()
    assert mem.get_messages() == []
    with pytest.raises(ValueError):
        ConversationMemory(max_history=0)


def test_turn_outcome_helpers():
    ok = TurnOutcome.succeeded("done")
    assert ok.ok and ok.final_text == "done" and not ok.used_fallback
    bad = TurnOutcome.failed("tool_loop_exceeded", "too many")
    assert not bad.ok
    assert bad.failure_kind == "tool_loop_exceeded"
    assert bad.final_text is None
