"""
Form submissions accepted from the campaign website.
Bodies are form-url-encoded; FastAPI decodes them into these models.
"""
from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _Form(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")


class RegisterPlayerForm(_Form):
    player_name: str = Field(..., min_length=1, max_length=100)
    player_faction: str = Field(..., min_length=1, max_length=100)
    warband_name: str = Field(..., min_length=1, max_length=100)


class AdjustScoreForm(_Form):
    player_id: str = Field(..., min_length=1)
    points_change: int
    territories_change: int
    admin_key: str = ""


class DeletePlayerForm(_Form):
    player_id: str = Field(..., min_length=1)
    admin_key: str = ""


class GameResultForm(_Form):
    """
    One reported game. Player ids may reference players missing from the
    leaderboard; those rows are created on the fly.
    """
    player1_id: str = Field(..., min_length=1)
    player1_name: str = Field(..., min_length=1)
    player1_score: int
    player1_faction: str = ""
    player1_warband: str = ""

    player2_id: str = Field(..., min_length=1)
    player2_name: str = Field(..., min_length=1)
    player2_score: int
    player2_faction: str = ""
    player2_warband: str = ""

    battleplan_name: str = Field(..., min_length=1)
    total_rounds: int = Field(..., ge=0)
    game_date: str | None = None
    game_notes: str | None = None
    round_history: Any = Field(default_factory=list, description="JSON string from the site, decoded here")

    @field_validator("round_history", mode="before")
    @classmethod
    def _decode_round_history(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            if not value.strip():
                return []
            try:
                return json.loads(value)
            except json.JSONDecodeError as e:
                raise ValueError(f"round_history must be a JSON string ({e.msg})") from e
        return value
