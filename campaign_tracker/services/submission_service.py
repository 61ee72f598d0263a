"""
Submission pipeline: read document(s) -> transform -> write -> notify.

Every submission runs through the same steps, parameterized by the documents
it touches and the transformation it applies:
- one document: optimistic write conditioned on the document's version;
- several documents: read them all at the branch head, then one atomic
  commit whose parent is that head.
A VersionConflict re-reads and re-applies the transformation, up to
settings.max_write_attempts attempts in total.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Sequence, TypeVar

from campaign_tracker import transforms
from campaign_tracker.auth import require_admin
from campaign_tracker.config import Settings
from campaign_tracker.errors import DocumentNotFound, RemoteStoreError, VersionConflict
from campaign_tracker.models import LeaderboardEntry, PlayerRecord, decode_collection, encode_collection, load_records
from campaign_tracker.schemas import AdjustScoreForm, DeletePlayerForm, GameResultForm, RegisterPlayerForm
from campaign_tracker.services.notifier import RebuildNotifier
from campaign_tracker.store.base import DocumentStore, StoredDocument

logger = logging.getLogger(__name__)

T = TypeVar("T")

Documents = Mapping[str, bytes | None]


@dataclass
class Mutation:
    """What a transformation wants written, and how to describe it."""
    changes: dict[str, list[Any]]
    commit_message: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class SubmissionResult:
    message: str
    rebuild_triggered: bool
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "rebuild_triggered": self.rebuild_triggered, **self.details}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SubmissionService:
    """
    Campaign submissions: registration, game results, score adjustment, deletion.
    Storage is delegated to a DocumentStore; the site rebuild to a RebuildNotifier.
    """

    def __init__(
        self,
        store: DocumentStore,
        notifier: RebuildNotifier,
        settings: Settings,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._settings = settings
        self._clock = clock

    def close(self) -> None:
        """Close the store's and the notifier's HTTP clients."""
        self._store.close()
        self._notifier.close()

    # ---------- Operations ----------

    def register_player(self, form: RegisterPlayerForm) -> SubmissionResult:
        s = self._settings
        now = self._clock()

        def transform(docs: Documents) -> Mutation:
            players = _records(docs, s.players_path, PlayerRecord.from_dict)
            leaderboard = _records(docs, s.leaderboard_path, LeaderboardEntry.from_dict)
            new_players, new_board, player = transforms.register_player(
                players,
                leaderboard,
                name=form.player_name,
                faction=form.player_faction,
                warband_name=form.warband_name,
                now=now,
            )
            return Mutation(
                changes={s.players_path: new_players, s.leaderboard_path: new_board},
                commit_message=f"Automated: Add new player registration: {player.name}",
                message="Player registered and data updated",
                details={"player_id": player.id},
            )

        mutation = self._apply([s.players_path, s.leaderboard_path], transform)
        return self._finish(mutation, s.registration_build_hook_url)

    def record_game_result(self, form: GameResultForm) -> SubmissionResult:
        s = self._settings
        now = self._clock()

        def transform(docs: Documents) -> Mutation:
            leaderboard = _records(docs, s.leaderboard_path, LeaderboardEntry.from_dict)
            game_results = _raw(docs, s.game_results_path)
            new_board, new_results, game = transforms.record_game_result(leaderboard, game_results, form, now)
            return Mutation(
                changes={s.leaderboard_path: new_board, s.game_results_path: new_results},
                commit_message=(
                    f"Automated: Game report for {game.battleplan} between "
                    f"{game.player1.name} ({game.player1.score}pts) and "
                    f"{game.player2.name} ({game.player2.score}pts)"
                ),
                message="Game results submitted, leaderboard and game history updated",
                details={"game_id": game.id},
            )

        mutation = self._apply([s.leaderboard_path, s.game_results_path], transform)
        return self._finish(mutation, s.game_build_hook_url)

    def adjust_score(self, form: AdjustScoreForm) -> SubmissionResult:
        s = self._settings
        require_admin(form.admin_key, s.admin_key)

        def transform(docs: Documents) -> Mutation:
            leaderboard = _records(docs, s.leaderboard_path, LeaderboardEntry.from_dict)
            new_board, entry = transforms.adjust_score(
                leaderboard, form.player_id, form.points_change, form.territories_change
            )
            return Mutation(
                changes={s.leaderboard_path: new_board},
                commit_message=(
                    f"Automated: Adjust score for {entry.player_name} "
                    f"(Points: {form.points_change}, Territories: {form.territories_change})"
                ),
                message="Score adjusted",
                details={
                    "player_id": entry.player_id,
                    "campaign_points": entry.campaign_points,
                    "territories_held": entry.territories_held,
                },
            )

        mutation = self._apply([s.leaderboard_path], transform)
        return self._finish(mutation, s.admin_build_hook_url)

    def delete_player(self, form: DeletePlayerForm) -> SubmissionResult:
        s = self._settings
        require_admin(form.admin_key, s.admin_key)

        def transform(docs: Documents) -> Mutation:
            players = _records(docs, s.players_path, PlayerRecord.from_dict)
            leaderboard = _records(docs, s.leaderboard_path, LeaderboardEntry.from_dict)
            new_players, new_board, removed = transforms.delete_player(players, leaderboard, form.player_id)
            return Mutation(
                changes={s.players_path: new_players, s.leaderboard_path: new_board},
                commit_message=f"Automated: Remove player {removed.name} ({removed.id})",
                message=f"Player {removed.name} removed",
                details={"player_id": removed.id},
            )

        mutation = self._apply([s.players_path, s.leaderboard_path], transform)
        return self._finish(mutation, s.admin_build_hook_url)

    # ---------- Pipeline ----------

    def _apply(self, paths: Sequence[str], transform: Callable[[Documents], Mutation]) -> Mutation:
        """Read, transform and write, retrying the whole sequence on version conflicts."""
        max_attempts = max(1, self._settings.max_write_attempts)
        attempt = 0
        while True:
            attempt += 1
            try:
                return self._attempt(paths, transform)
            except VersionConflict:
                if attempt >= max_attempts:
                    logger.error("Giving up on %s after %d conflicting attempts", ", ".join(paths), attempt)
                    raise
                logger.warning(
                    "Concurrent update of %s (attempt %d/%d); re-reading", ", ".join(paths), attempt, max_attempts
                )

    def _attempt(self, paths: Sequence[str], transform: Callable[[Documents], Mutation]) -> Mutation:
        if len(paths) == 1:
            path = paths[0]
            doc = self._read(path)
            mutation = transform({path: doc.content if doc else None})
            if path in mutation.changes:
                self._store.write_document(
                    path,
                    encode_collection(mutation.changes[path]),
                    doc.version if doc else None,
                    mutation.commit_message,
                )
            return mutation

        head = self._store.head_commit()
        docs = {p: self._read(p, ref=head) for p in paths}
        mutation = transform({p: d.content if d else None for p, d in docs.items()})
        if mutation.changes:
            self._store.commit_multiple(
                {p: encode_collection(items) for p, items in mutation.changes.items()},
                parent=head,
                message=mutation.commit_message,
            )
        return mutation

    def _read(self, path: str, ref: str | None = None) -> StoredDocument | None:
        try:
            return self._store.read_document(path, ref=ref)
        except DocumentNotFound:
            logger.warning("%s not found. Will create it.", path)
            return None

    def _finish(self, mutation: Mutation, hook_url: str) -> SubmissionResult:
        if hook_url:
            rebuilt = self._notifier.try_trigger(hook_url)
        else:
            logger.info("No build hook configured; skipping site rebuild")
            rebuilt = False
        if rebuilt:
            message = f"{mutation.message}, and site rebuild triggered!"
        else:
            message = f"{mutation.message}. Site rebuild was not triggered; changes appear after the next build."
        return SubmissionResult(message=message, rebuild_triggered=rebuilt, details=mutation.details)


# ---------- Document decoding ----------


def _raw(docs: Documents, path: str) -> list[Any]:
    try:
        return decode_collection(docs.get(path))
    except ValueError as e:
        raise RemoteStoreError(f"Stored document {path} is not a valid JSON array") from e


def _records(docs: Documents, path: str, factory: Callable[[dict[str, Any]], T]) -> list[T]:
    try:
        return load_records(docs.get(path), factory)
    except ValueError as e:
        raise RemoteStoreError(f"Stored document {path} is not a valid JSON array") from e
