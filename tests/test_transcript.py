import pytest

from voice_chat.services.schemas import ConversationTurn, Message, Sender, TurnRole
from voice_chat.state.transcript import TranscriptStore


def test_window_keeps_last_ten_turns_in_order() -> None:
    store = TranscriptStore()
    for i in range(11):
        store.append(Message.user(f"q{i}"))
    turns = store.recent_turns()
    assert len(turns) == 10
    assert turns[0].content == "q1"
    assert [t.content for t in turns] == [f"q{i}" for i in range(1, 11)]
    assert len(store) == 11


def test_system_messages_do_not_enter_window() -> None:
    store = TranscriptStore()
    store.append(Message.user("hello"))
    store.append(Message.system("Request timed out. Please try again."))
    store.append(Message.assistant("hi there"))
    assert store.recent_turns() == (
        ConversationTurn(TurnRole.USER, "hello"),
        ConversationTurn(TurnRole.MODEL, "hi there"),
    )
    assert [m.sender for m in store.messages()] == [Sender.USER, Sender.SYSTEM, Sender.ASSISTANT]


def test_window_bound_holds_for_long_conversations() -> None:
    store = TranscriptStore(max_turns=10)
    for i in range(50):
        store.append(Message.user(f"u{i}") if i % 2 == 0 else Message.assistant(f"a{i}"))
        assert len(store.recent_turns()) <= 10
    assert store.recent_turns()[-1] == ConversationTurn(TurnRole.MODEL, "a49")


def test_messages_are_immutable() -> None:
    message = Message.user("hi", source="text")
    with pytest.raises(AttributeError):
        message.text = "changed"  # type: ignore[misc]
    with pytest.raises(TypeError):
        message.details["source"] = "speech"  # type: ignore[index]


def test_subscribers_see_appends_until_unsubscribed() -> None:
    store = TranscriptStore()
    seen: list[str] = []
    unsubscribe = store.subscribe(lambda m: seen.append(m.text))
    store.append(Message.user("one"))
    unsubscribe()
    store.append(Message.user("two"))
    assert seen == ["one"]


def test_invalid_window_size() -> None:
    with pytest.raises(ValueError):
        TranscriptStore(max_turns=0)
