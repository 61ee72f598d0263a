"""
Campaign document transformations.

Pure functions: (current collections, validated submission) -> new collections.
Inputs are never mutated and the clock is a parameter, so the same inputs
always give the same output. No store access here; the submission service
reads and writes around these.
"""
from __future__ import annotations

import re
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from campaign_tracker.errors import DuplicateRegistration, EntityNotFound
from campaign_tracker.models import GameResultEntry, LeaderboardEntry, PlayerRecord, PlayerResult
from campaign_tracker.schemas import GameResultForm

_ID_SUFFIX_DIGITS = 5


# ---------- Helpers ----------


def epoch_millis(now: datetime) -> int:
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return int(now.timestamp() * 1000)


def isoformat_z(now: datetime) -> str:
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def sort_leaderboard(entries: list[LeaderboardEntry]) -> list[LeaderboardEntry]:
    """Descending by campaign points. Stable: ties keep their previous order."""
    return sorted(entries, key=lambda e: e.campaign_points, reverse=True)


def generate_player_id(name: str, now: datetime, taken: set[str] | frozenset[str] = frozenset()) -> str:
    """
    Normalized name (lowercase, [a-z0-9] only) + last digits of the ms timestamp.
    Two registrations with the same normalized name in the same window would
    collide, so a counter is appended until the id is unused.
    """
    base = re.sub(r"[^a-z0-9]", "", name.lower()) + str(epoch_millis(now))[-_ID_SUFFIX_DIGITS:]
    candidate = base
    n = 1
    while candidate in taken:
        n += 1
        candidate = f"{base}-{n}"
    return candidate


def _floored(value: int) -> int:
    return max(0, value)


# ---------- Register ----------


def register_player(
    players: list[PlayerRecord],
    leaderboard: list[LeaderboardEntry],
    *,
    name: str,
    faction: str,
    warband_name: str,
    now: datetime,
) -> tuple[list[PlayerRecord], list[LeaderboardEntry], PlayerRecord]:
    """
    Add a player and a zero-score leaderboard row.
    Raises DuplicateRegistration if the name or warband name is taken (case-insensitive).
    """
    name_key = name.casefold()
    warband_key = warband_name.casefold()
    if any(p.name.casefold() == name_key or p.warband_name.casefold() == warband_key for p in players):
        raise DuplicateRegistration(
            f'Player name "{name}" or Warband name "{warband_name}" is already registered. '
            "Please choose unique names."
        )
    taken = {p.id for p in players} | {e.player_id for e in leaderboard}
    player = PlayerRecord(
        id=generate_player_id(name, now, taken),
        name=name,
        faction=faction,
        warband_name=warband_name,
    )
    entry = LeaderboardEntry(
        player_id=player.id,
        player_name=name,
        faction=faction,
        warband_name=warband_name,
        campaign_points=0,
        territories_held=0,
    )
    return [*players, player], [*leaderboard, entry], player


# ---------- Delete ----------


def delete_player(
    players: list[PlayerRecord],
    leaderboard: list[LeaderboardEntry],
    player_id: str,
) -> tuple[list[PlayerRecord], list[LeaderboardEntry], PlayerRecord]:
    """
    Remove the player and their leaderboard row.
    Raises EntityNotFound if the player is not registered; a missing
    leaderboard row is not an error.
    """
    removed = next((p for p in players if p.id == player_id), None)
    if removed is None:
        raise EntityNotFound(f"Player with ID {player_id} not found in players.")
    remaining_players = [p for p in players if p.id != player_id]
    remaining_entries = [e for e in leaderboard if e.player_id != player_id]
    return remaining_players, remaining_entries, removed


# ---------- Adjust score ----------


def adjust_score(
    leaderboard: list[LeaderboardEntry],
    player_id: str,
    points_change: int,
    territories_change: int,
) -> tuple[list[LeaderboardEntry], LeaderboardEntry]:
    """
    Apply signed deltas to one row, floor both counters at 0, re-sort.
    Raises EntityNotFound if the player has no leaderboard row.
    """
    updated: LeaderboardEntry | None = None
    entries: list[LeaderboardEntry] = []
    for e in leaderboard:
        if updated is None and e.player_id == player_id:
            e = replace(
                e,
                campaign_points=_floored(e.campaign_points + points_change),
                territories_held=_floored((e.territories_held or 0) + territories_change),
                extra=dict(e.extra),
            )
            updated = e
        entries.append(e)
    if updated is None:
        raise EntityNotFound(f"Player with ID {player_id} not found in leaderboard.")
    return sort_leaderboard(entries), updated


# ---------- Record game result ----------


def _apply_game_score(entries: list[LeaderboardEntry], side: PlayerResult) -> list[LeaderboardEntry]:
    for i, e in enumerate(entries):
        if e.player_id == side.id:
            entries[i] = replace(
                e,
                campaign_points=_floored(e.campaign_points + side.score),
                faction=side.faction or e.faction,
                warband_name=side.warband or e.warband_name,
                extra=dict(e.extra),
            )
            return entries
    # Player missing from the leaderboard: start their row from this game.
    entries.append(
        LeaderboardEntry(
            player_id=side.id,
            player_name=side.name,
            faction=side.faction,
            warband_name=side.warband,
            campaign_points=_floored(side.score),
            territories_held=0,
        )
    )
    return entries


def game_sides(form: GameResultForm) -> tuple[PlayerResult, PlayerResult]:
    p1 = PlayerResult(
        id=form.player1_id,
        name=form.player1_name,
        faction=form.player1_faction,
        warband=form.player1_warband,
        score=form.player1_score,
    )
    p2 = PlayerResult(
        id=form.player2_id,
        name=form.player2_name,
        faction=form.player2_faction,
        warband=form.player2_warband,
        score=form.player2_score,
    )
    return p1, p2


def record_game_result(
    leaderboard: list[LeaderboardEntry],
    game_results: list[dict[str, Any]],
    form: GameResultForm,
    now: datetime,
) -> tuple[list[LeaderboardEntry], list[dict[str, Any]], GameResultEntry]:
    """
    Credit both players' scores (creating rows for unknown ids), re-sort, and
    append one entry to the game log. Existing log entries are kept verbatim.
    """
    p1, p2 = game_sides(form)
    entries = list(leaderboard)
    entries = _apply_game_score(entries, p1)
    entries = _apply_game_score(entries, p2)
    game = GameResultEntry(
        id=str(epoch_millis(now)),
        date=form.game_date,
        battleplan=form.battleplan_name,
        total_rounds=form.total_rounds,
        player1=p1,
        player2=p2,
        notes=form.game_notes,
        round_history=form.round_history,
        submitted_at=isoformat_z(now),
    )
    return sort_leaderboard(entries), [*game_results, game.to_dict()], game
