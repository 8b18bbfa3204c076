"""Ordered message list for one chat session.

Every mutation replaces the underlying tuple, so observers comparing by
identity see each change. Listeners are notified with the new tuple.
"""

from collections.abc import Callable, Iterable, Iterator
from typing import Any

from ..exceptions import DuplicateMessageError
from .models import Message

StoreListener = Callable[[tuple[Message, ...]], None]


class MessageStore:
    """Append-only message list with update, delete and clear."""

    def __init__(self, initial: Iterable[Message] = ()):
        self._messages: tuple[Message, ...] = ()
        self._listeners: list[StoreListener] = []
        for message in initial:
            self.append(message)

    @property
    def messages(self) -> tuple[Message, ...]:
        return self._messages

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self._messages)

    def get(self, message_id: str) -> Message | None:
        for message in self._messages:
            if message.id == message_id:
                return message
        return None

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Register a change listener.

        Returns:
            Callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def append(self, message: Message) -> Message:
        """Add a message at the end of the list.

        Raises:
            DuplicateMessageError: If the id is already present
        """
        if self.get(message.id) is not None:
            raise DuplicateMessageError(message.id)
        self._replace((*self._messages, message))
        return message

    def update_by_id(self, message_id: str, **fields: Any) -> bool:
        """Replace the fields of one message.

        The updated record is validated like a new one.

        Returns:
            False (and no change) if no message has that id

        Raises:
            ValidationError: If a field gets an invalid value
        """
        if "id" in fields:
            raise ValueError("Message id cannot be changed")

        for index, message in enumerate(self._messages):
            if message.id == message_id:
                updated = Message.model_validate({**message.model_dump(), **fields})
                self._replace(self._messages[:index] + (updated,) + self._messages[index + 1:])
                return True
        return False

    def delete_by_id(self, message_id: str) -> bool:
        remaining = tuple(m for m in self._messages if m.id != message_id)
        if len(remaining) == len(self._messages):
            return False
        self._replace(remaining)
        return True

    def truncate(self, index: int) -> None:
        """Keep only the messages before ``index``."""
        if index >= len(self._messages):
            return
        self._replace(self._messages[:max(index, 0)])

    def clear(self) -> None:
        self._replace(())

    def _replace(self, messages: tuple[Message, ...]) -> None:
        self._messages = messages
        for listener in list(self._listeners):
            listener(messages)
