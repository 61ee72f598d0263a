"""
Data models for the campaign tracker documents.
Domain objects only; no store or API logic.

Each collection is a JSON array stored as one document in the site
repository: players, leaderboard, game results. Keys the site adds that
these models do not know about are carried in `extra` and written back
unchanged.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, TypeVar

T = TypeVar("T")


def _extra(data: dict[str, Any], known: Iterable[str]) -> dict[str, Any]:
    known_set = set(known)
    return {k: v for k, v in data.items() if k not in known_set}


def _as_int(value: Any, default: int = 0) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


# ---------- Player ----------
@dataclass
class PlayerRecord:
    """A registered player. Name and warband name are unique case-insensitively."""
    id: str
    name: str
    faction: str
    warband_name: str
    extra: dict[str, Any] = field(default_factory=dict)

    _KEYS = ("id", "name", "faction", "warband_name")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlayerRecord":
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name") or ""),
            faction=str(data.get("faction") or ""),
            warband_name=str(data.get("warband_name") or ""),
            extra=_extra(data, cls._KEYS),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "faction": self.faction,
            "warband_name": self.warband_name,
        }
        d.update(self.extra)
        return d


# ---------- Leaderboard ----------
@dataclass
class LeaderboardEntry:
    """
    One leaderboard row, denormalized from the player record.
    territories_held is optional: older leaderboards do not carry it.
    """
    player_id: str
    player_name: str
    faction: str
    warband_name: str
    campaign_points: int = 0
    territories_held: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    _KEYS = ("player_id", "player_name", "faction", "warband_name", "campaign_points", "territories_held")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LeaderboardEntry":
        territories = data.get("territories_held")
        return cls(
            player_id=str(data.get("player_id", "")),
            player_name=str(data.get("player_name") or ""),
            faction=str(data.get("faction") or ""),
            warband_name=str(data.get("warband_name") or ""),
            campaign_points=_as_int(data.get("campaign_points")),
            territories_held=None if territories is None else _as_int(territories),
            extra=_extra(data, cls._KEYS),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "player_id": self.player_id,
            "player_name": self.player_name,
            "faction": self.faction,
            "warband_name": self.warband_name,
            "campaign_points": self.campaign_points,
        }
        if self.territories_held is not None:
            d["territories_held"] = self.territories_held
        d.update(self.extra)
        return d


# ---------- Game results ----------
@dataclass(frozen=True)
class PlayerResult:
    """One side of a reported game, exactly as submitted."""
    id: str
    name: str
    faction: str
    warband: str
    score: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "faction": self.faction,
            "warband": self.warband,
            "score": self.score,
        }


@dataclass
class GameResultEntry:
    """Append-only log entry for one reported game."""
    id: str
    date: str | None
    battleplan: str
    total_rounds: int
    player1: PlayerResult
    player2: PlayerResult
    notes: str | None
    round_history: Any
    submitted_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date,
            "battleplan": self.battleplan,
            "total_rounds": self.total_rounds,
            "player1": self.player1.to_dict(),
            "player2": self.player2.to_dict(),
            "notes": self.notes,
            "round_history": self.round_history,
            "submitted_at": self.submitted_at,
        }


# ---------- Document encoding ----------


def decode_collection(content: bytes | None) -> list[dict[str, Any]]:
    """
    Decode a stored JSON array. Missing or empty content is an empty collection.
    Raises ValueError if the document is not a JSON array.
    """
    if not content or not content.strip():
        return []
    data = json.loads(content.decode("utf-8"))
    if not isinstance(data, list):
        raise ValueError("expected a JSON array document")
    return data


def encode_collection(items: Iterable[Any]) -> bytes:
    """Pretty-print a collection (2-space indent) the way the site repository stores it."""
    rows = [item.to_dict() if hasattr(item, "to_dict") else item for item in items]
    return json.dumps(rows, indent=2, ensure_ascii=False).encode("utf-8")


def load_records(content: bytes | None, factory: Callable[[dict[str, Any]], T]) -> list[T]:
    return [factory(row) for row in decode_collection(content) if isinstance(row, dict)]
