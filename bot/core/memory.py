from __future__ import annotations

"""Per-user conversation history and pending-action state.

Both stores sit on top of an injected ``KeyValueStore`` keyed by the WhatsApp
sender id. Each public method is one atomic single-key operation.
"""

import logging
from typing import List

from pydantic import ValidationError

from bot.core.models import GameArtifact, PendingAction, Turn
from bot.core.storage import KeyValueStore


logger = logging.getLogger("prompt2play.memory")


class ConversationStore:
    def __init__(self, store: KeyValueStore):
        self.store = store

    def history(self, user_id: str) -> List[Turn]:
        records = self.store.get(user_id) or []
        turns: List[Turn] = []
        for record in records:
            try:
                turns.append(Turn.model_validate(record))
            except ValidationError as exc:
                logger.warning("Skipping malformed turn for %s: %s", user_id, exc)
        return turns

    def touch(self, user_id: str) -> None:
        self.store.update(user_id, lambda records: records or [], default=[])

    def append(self, user_id: str, turn: Turn) -> List[Turn]:
        """Append ``turn`` and return the full updated history."""
        record = turn.to_record()

        def _append(records):
            records = list(records or [])
            records.append(record)
            return records

        self.store.update(user_id, _append, default=[])
        return self.history(user_id)

    def games(self, user_id: str) -> List[GameArtifact]:
        return [t.game for t in self.history(user_id) if t.role == "assistant" and t.game]


class UserStateStore:
    def __init__(self, store: KeyValueStore):
        self.store = store

    def get(self, user_id: str) -> PendingAction:
        token = self.store.get(user_id, PendingAction.NONE.value)
        try:
            return PendingAction(token)
        except ValueError:
            logger.warning("Unknown pending action %r for %s; treating as none", token, user_id)
            return PendingAction.NONE

    def set(self, user_id: str, action: PendingAction) -> None:
        if action is PendingAction.NONE:
            self.clear(user_id)
            return
        self.store.put(user_id, action.value)

    def clear(self, user_id: str) -> None:
        self.store.delete(user_id)
