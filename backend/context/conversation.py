"""
Conversation history management.

Responsibilities:
- Store the ordered message list of the session
- Keep index 0 as the system message, regenerated in place whenever the
  persona prompt or injected knowledge changes
- Persist the list to a key-value store after every mutation

Non-responsibilities:
- No provider calls
- No hook firing
- No storage backend (the store is injected)

Invariants:
- len(history) >= 1 and history[0] is a SystemMessage
- Length only grows, except for cleanup()
"""

from __future__ import annotations

from typing import Any, Iterator, Protocol, Sequence

from context.messages import Message, SystemMessage, UserMessage
from context.serialization import message_from_dict, message_to_dict, serialize_for_provider
from invariants import (
    CODE_BLOCK_SYSTEM_PROMPT,
    HISTORY_STORAGE_KEY,
    MATH_SYNTAX_SYSTEM_PROMPT,
)
from observability.logger import log_event


# ---------------------------------------------------------------------
# Storage protocol
# ---------------------------------------------------------------------

class KeyValueStore(Protocol):
    def get(self, key: str) -> Any | None: ...
    def set(self, key: str, value: Any) -> None: ...


class InMemoryKeyValueStore:
    """Process-local store; survives history re-creation, not restarts."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    def get(self, key: str) -> Any | None:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value


# ---------------------------------------------------------------------
# History
# ---------------------------------------------------------------------

class ConversationHistory:
    """
    Process-wide conversation history.

    Shared by the send pipeline, the idle talk engine and external
    producers (chat platform bridges). Coordination relies on the
    single-threaded event loop; there are no locks here.
    """

    def __init__(
        self,
        *,
        base_prompt: str = "",
        store: KeyValueStore | None = None,
        storage_key: str = HISTORY_STORAGE_KEY,
    ) -> None:
        self._base_prompt = base_prompt
        self._knowledge = ""
        self._store = store
        self._storage_key = storage_key
        self._messages: list[Message] = self._restore()

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))

    def __getitem__(self, index: int) -> Message:
        return self._messages[index]

    @property
    def messages(self) -> Sequence[Message]:
        """Read-only copy of the current message list."""
        return tuple(self._messages)

    def since(self, index: int) -> Sequence[Message]:
        """Messages appended at or after `index`."""
        return tuple(self._messages[index:])

    def snapshot_for_provider(self) -> list[dict[str, Any]]:
        return serialize_for_provider(self._messages)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def append(self, message: Message) -> None:
        if isinstance(message, SystemMessage):
            raise ValueError("system message is regenerated, not appended")
        self._messages.append(message)
        self._persist()

    def append_external(
        self,
        text: str,
        *,
        author: str | None = None,
        source: str | None = None,
    ) -> UserMessage:
        """
        Add a user message received from an external chat platform.

        Display only: no provider call is made for it.
        """
        content = f"{author}: {text}" if author else text
        message = UserMessage(content=content, author=author, source=source)
        self.append(message)
        log_event({
            "event_type": "history_external_message",
            "author": author,
            "source": source,
        }, level="DEBUG")
        return message

    def set_base_prompt(self, base_prompt: str) -> None:
        """Replace the persona prompt and regenerate the system message."""
        self._base_prompt = base_prompt
        self._regenerate_system()

    def set_knowledge(self, knowledge: str) -> None:
        """Replace the injected knowledge block and regenerate the system message."""
        self._knowledge = knowledge
        self._regenerate_system()

    def cleanup(self) -> None:
        """Reset to the system message only."""
        self._messages = [self._system_message()]
        self._persist()
        log_event({"event_type": "history_cleared"})

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _system_message(self) -> SystemMessage:
        return SystemMessage(
            content=(
                CODE_BLOCK_SYSTEM_PROMPT
                + MATH_SYNTAX_SYSTEM_PROMPT
                + self._base_prompt
                + self._knowledge
            )
        )

    def _regenerate_system(self) -> None:
        self._messages[0] = self._system_message()
        self._persist()

    def _restore(self) -> list[Message]:
        """
        Load persisted messages, falling back to a fresh history.

        The system message is always rebuilt from the current prompt
        rather than trusted from storage.
        """
        restored: list[Message] = []
        raw = self._store.get(self._storage_key) if self._store is not None else None

        if isinstance(raw, list):
            try:
                restored = [message_from_dict(item) for item in raw]
            except (KeyError, TypeError, ValueError) as exc:
                log_event({
                    "event_type": "history_restore_failed",
                    "error": f"{type(exc).__name__}: {exc}",
                }, level="WARNING")
                restored = []

        if restored and isinstance(restored[0], SystemMessage):
            restored = restored[1:]

        return [self._system_message(), *restored]

    def _persist(self) -> None:
        if self._store is None:
            return
        self._store.set(
            self._storage_key,
            [message_to_dict(m) for m in self._messages],
        )
