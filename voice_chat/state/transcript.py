"""Ordered message log with a bounded window of recent turns."""

from __future__ import annotations

import logging
from collections import deque
from typing import Callable, Iterator

from ..services.schemas import ConversationTurn, Message

LOGGER = logging.getLogger(__name__)

MessageListener = Callable[[Message], None]

DEFAULT_MAX_TURNS = 10


class TranscriptStore:
    """Holds every message and the last ``max_turns`` user/model turns."""

    def __init__(self, max_turns: int = DEFAULT_MAX_TURNS) -> None:
        if max_turns < 1:
            raise ValueError("max_turns must be positive")
        self._messages: list[Message] = []
        self._turns: deque[ConversationTurn] = deque(maxlen=max_turns)
        self._listeners: list[MessageListener] = []

    @property
    def max_turns(self) -> int:
        return self._turns.maxlen or DEFAULT_MAX_TURNS

    def append(self, message: Message) -> None:
        """Add a message; user and assistant messages also enter the window."""
        self._messages.append(message)
        turn = ConversationTurn.from_message(message)
        if turn is not None:
            self._turns.append(turn)
        for listener in list(self._listeners):
            listener(message)

    def recent_turns(self) -> tuple[ConversationTurn, ...]:
        """Window contents, oldest first."""
        return tuple(self._turns)

    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def subscribe(self, listener: MessageListener) -> Callable[[], None]:
        """Call ``listener`` for every appended message; returns an unsubscribe hook."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))
