from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PendingAction(str, Enum):
    NONE = "none"
    AWAITING_GAME_DESCRIPTION = "awaiting_game_description"


class GameArtifact(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="Identifier; the HTML is stored as <id>.html")
    prompt: str
    url: str
    created_at: datetime = Field(default_factory=_utcnow, alias="createdAt")
    title: Optional[str] = None
    description: Optional[str] = None
    is_multiplayer: bool = Field(False, alias="isMultiplayer")


class Turn(BaseModel):
    """One message of a conversation, in append (chronological) order."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    role: Literal["user", "assistant"]
    text: str
    game: Optional[GameArtifact] = Field(None, alias="gameData")

    def to_record(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
