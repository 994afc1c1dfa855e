"""
Sync coordinator.

Drives the three scheduled jobs (live sync, standings, groups) plus the admin
repair action. Each tournament moves forward through upcoming -> active ->
completed; every run takes a per-tournament (or per-season) lock, writes in a
single batch and lands in the run log.
"""

import logging
import os
import socket
import time
import uuid
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, List, Mapping, Optional, Tuple

from .api import get_api
from .config import Config, get_config
from .database import Database
from .exceptions import (
    CycleTimeoutError, EngineError, GroupsLockedError, InvariantViolationError,
    MalformedSnapshotError, ProviderError, UnknownTierError
)
from .groups import build_groups, entrants_from_snapshot, group_strength, to_tournament_golfers
from .models import Golfer, JobResult, Tournament, TournamentGolfer, TournamentStatus, utcnow
from .scoring import compute_pos_change, normalize_position, score_teams, usage_by_golfer
from .snapshot import (
    ProviderSnapshot, event_name_compatible, infer_par, normalize_player_name,
    normalize_skill_estimate
)
from .standings import StandingsAggregator, award_tournament

logger = logging.getLogger(__name__)

# Checked in order; subclasses first
FAILURE_REASONS = (
    (ProviderError, "provider_error"),
    (MalformedSnapshotError, "malformed_snapshot"),
    (CycleTimeoutError, "cycle_timeout"),
    (UnknownTierError, "unknown_tier"),
    (InvariantViolationError, "invariant_violation"),
    (EngineError, "engine_error"),
)


def failure_reason(error: EngineError) -> str:
    for cls, reason in FAILURE_REASONS:
        if isinstance(error, cls):
            return reason
    return "engine_error"


def golfers_from_snapshot(snapshot: ProviderSnapshot) -> List[Golfer]:
    """Golfer identity rows for everyone in the field."""
    rankings = snapshot.rankings_by_id
    golfers = []
    for row in snapshot.field:
        ranking = rankings.get(row.dg_id)
        golfers.append(Golfer(
            provider_id=row.dg_id,
            name=normalize_player_name(row.player_name),
            world_rank=ranking.owgr_rank if ranking else None,
            skill_estimate=ranking.dg_skill_estimate if ranking else None,
            country=row.country,
        ))
    return golfers


def merge_golfer_state(
    tournament_id: int,
    existing: Mapping[int, TournamentGolfer],
    snapshot: ProviderSnapshot,
    usage: Mapping[int, float],
) -> Tuple[List[TournamentGolfer], int]:
    """
    Fold a snapshot into stored entrant state.

    An entrant missing from a collection keeps its stored values for that
    collection. Live rows reporting an older round than stored are ignored.
    Returns the merged rows and the number of ignored live rows.
    """
    field = snapshot.field_by_id
    rankings = snapshot.rankings_by_id
    live = snapshot.live_by_id

    merged = []
    ignored = 0
    for provider_id in sorted(set(existing) | set(field) | set(live)):
        current = existing.get(provider_id)
        row = replace(current, tee_times=dict(current.tee_times), rounds=dict(current.rounds)) if current \
            else TournamentGolfer(tournament_id=tournament_id, provider_id=provider_id)

        entry = field.get(provider_id)
        ranking = rankings.get(provider_id)
        stat = live.get(provider_id)

        if entry is not None:
            row.name = normalize_player_name(entry.player_name)
            row.tee_times = entry.tee_times
        elif stat is not None and not row.name:
            row.name = normalize_player_name(stat.player_name)

        if ranking is not None:
            row.world_rank = ranking.owgr_rank
            row.rating = normalize_skill_estimate(ranking.dg_skill_estimate)

        if stat is not None:
            if row.round is not None and stat.round is not None and stat.round < row.round:
                ignored += 1
            else:
                position = normalize_position(stat.current_pos)
                if position != row.position:
                    row.pos_change = compute_pos_change(row.position, position)
                row.position = position
                row.score = stat.current_score
                row.today = stat.today
                row.thru = stat.thru
                row.round = stat.round if stat.round is not None else row.round
                for r, strokes in stat.rounds.items():
                    if strokes is not None:
                        row.rounds[r] = strokes
                row.make_cut = stat.make_cut
                row.top_ten = stat.top_10
                row.win = stat.win

        row.usage = usage.get(provider_id, 0.0)
        merged.append(row)

    if ignored:
        logger.warning(f"Ignored {ignored} live rows reporting an older round than stored")
    return merged, ignored


class SyncCoordinator:
    """Runs the scheduled jobs against one record store and one provider."""

    def __init__(self, db: Optional[Database] = None, provider=None, config: Optional[Config] = None, tables=None):
        self.config = config or get_config()
        self.db = db or Database(self.config.db_path)
        self._provider = provider
        self.tables = tables
        self.owner = f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"

    @property
    def provider(self):
        if self._provider is None:
            self._provider = get_api(self.db)
        return self._provider

    # =========================================================================
    # Run bookkeeping
    # =========================================================================

    def _record(self, result: JobResult, started_at: datetime, error: Optional[str] = None) -> JobResult:
        self.db.record_run(result, started_at, utcnow(), error)
        if result.failed:
            logger.error(f"{result.summary()}: {error or result.details.get('error', '')}")
        else:
            logger.info(result.summary())
        return result

    def _locked(
        self,
        job: str,
        key: str,
        started_at: datetime,
        body: Callable[[], JobResult],
        **ids,
    ) -> JobResult:
        """Run a job body under a named lock, turning engine errors into a failed result."""
        if not self.db.acquire_lock(key, self.owner, self.config.lock_ttl_seconds):
            return self._record(JobResult(job, skipped=True, reason="sync_in_progress", **ids), started_at)

        error = None
        try:
            try:
                result = body()
            except EngineError as e:
                error = f"{type(e).__name__}: {e}"
                result = JobResult(job, ok=False, reason=failure_reason(e), details={"error": str(e)}, **ids)
            except Exception as e:
                self._record(
                    JobResult(job, ok=False, reason="unexpected_error", **ids),
                    started_at,
                    f"{type(e).__name__}: {e}",
                )
                raise
        finally:
            self.db.release_lock(key, self.owner)

        return self._record(result, started_at, error)

    def _check_deadline(self, deadline: float):
        if time.monotonic() > deadline:
            raise CycleTimeoutError(
                f"Cycle exceeded {self.config.cycle_timeout_seconds}s; abandoned without commit"
            )

    # =========================================================================
    # Live sync
    # =========================================================================

    def activate_due(self, now: datetime) -> Optional[Tournament]:
        """Return the active tournament, activating a past-due upcoming one if needed."""
        active = self.db.get_active_tournament()
        if active is not None:
            return active

        grace = timedelta(hours=self.config.activation_grace_hours)
        for tournament in self.db.get_tournaments(status=TournamentStatus.UPCOMING):
            if tournament.start_date <= now <= tournament.end_date + grace:
                tournament.transition(TournamentStatus.ACTIVE)
                self.db.save_tournament(tournament)
                logger.info(f"Activated {tournament.name} (id={tournament.id})")
                return tournament
        return None

    def is_overdue(self, tournament: Tournament, now: datetime) -> bool:
        """Whether an active tournament is past its end date plus the grace window."""
        return now > tournament.end_date + timedelta(hours=self.config.activation_grace_hours)

    def run_live_sync(self, tournament_id: Optional[int] = None, now: Optional[datetime] = None) -> JobResult:
        """
        One live scoring cycle.

        Exits without contacting the provider when no tournament is active.
        """
        now = now or utcnow()
        started_at = utcnow()

        if tournament_id is not None:
            tournament = self.db.get_tournament(tournament_id)
            if tournament is None:
                return self._record(
                    JobResult("live", ok=False, reason="unknown_tournament", tournament_id=tournament_id),
                    started_at,
                )
        else:
            tournament = self.activate_due(now)

        if tournament is None:
            return self._record(JobResult("live", skipped=True, reason="no_active_tournament"), started_at)
        if not tournament.is_active:
            return self._record(
                JobResult("live", skipped=True, reason=f"tournament_{tournament.status.value}",
                          tournament_id=tournament.id),
                started_at,
            )

        if self.is_overdue(tournament, now):
            body = lambda: self._rescore_stored(tournament, "live", close_reason="past_end_date")
        else:
            body = lambda: self._live_cycle(tournament, now)
        result = self._locked("live", f"live:{tournament.id}", started_at, body, tournament_id=tournament.id)

        if result.ok and result.details.get("completed"):
            standings = self.run_standings(tournament.season_id, now)
            result.details["standings"] = standings.summary()
        return result

    def _live_cycle(self, tournament: Tournament, now: datetime) -> JobResult:
        deadline = time.monotonic() + self.config.cycle_timeout_seconds
        snapshot = self.provider.get_snapshot(include_live=True)

        if (
            snapshot.last_update is not None
            and tournament.provider_last_update is not None
            and snapshot.last_update < tournament.provider_last_update
        ):
            return JobResult(
                "live", skipped=True, reason="stale_snapshot", tournament_id=tournament.id,
                details={"snapshot": str(snapshot.last_update), "stored": str(tournament.provider_last_update)},
            )

        if self.config.check_event_name and snapshot.event_name:
            match = event_name_compatible(tournament.name, snapshot.event_name)
            if not match.ok:
                logger.warning(
                    f"Provider reports '{snapshot.event_name}', expected '{tournament.name}' "
                    f"(score {match.score:.2f})"
                )
                # The feed has moved on to the next event
                if now > tournament.end_date:
                    return self._rescore_stored(tournament, "live", close_reason="provider_moved_on")
                return JobResult(
                    "live", skipped=True, reason="event_mismatch", tournament_id=tournament.id,
                    details={"expected": tournament.name, "actual": snapshot.event_name, "score": match.score},
                )

        return self._apply_snapshot(tournament, snapshot, deadline)

    def _apply_snapshot(self, tournament: Tournament, snapshot: ProviderSnapshot, deadline: float) -> JobResult:
        with self.db.batch():
            existing = {g.provider_id: g for g in self.db.get_tournament_golfers(tournament.id)}
            teams = self.db.get_teams(tournament.id)

            merged, ignored = merge_golfer_state(tournament.id, existing, snapshot, usage_by_golfer(teams))
            self.db.save_golfers(golfers_from_snapshot(snapshot))
            self.db.save_tournament_golfers(merged)

            if tournament.par is None:
                tournament.par = infer_par(snapshot.live_stats)
            current_round = snapshot.current_round or tournament.current_round
            live = snapshot.is_round_running

            scored = score_teams(
                teams,
                {g.provider_id: g for g in merged},
                current_round,
                tournament.par or self.config.default_par,
                live,
                self.config.scoring_rules,
            )
            awarded = award_tournament(scored, tournament.tier_name, self.config.tie_split, self.tables)
            changed = self.db.save_teams(awarded)

            tournament.current_round = current_round
            tournament.live_play = live
            if snapshot.last_update is not None:
                tournament.provider_last_update = snapshot.last_update
            completed = snapshot.event_completed
            if completed:
                tournament.transition(TournamentStatus.COMPLETED)
            self.db.save_tournament(tournament)

            self._check_deadline(deadline)

        if completed:
            logger.info(f"{tournament.name} completed")
        return JobResult(
            "live",
            tournament_id=tournament.id,
            details={
                "round": current_round,
                "live": live,
                "teams": len(awarded),
                "teams_changed": changed,
                "golfers": len(merged),
                "stale_rows_ignored": ignored,
                "skipped_rows": snapshot.skipped_rows,
                "completed": completed,
            },
        )

    # =========================================================================
    # Standings
    # =========================================================================

    def run_standings(self, season_id: Optional[int] = None, now: Optional[datetime] = None) -> JobResult:
        """Full standings recompute for a season (latest season by default)."""
        started_at = utcnow()
        if season_id is None:
            season = self.db.get_latest_season()
            if season is None:
                return self._record(JobResult("standings", skipped=True, reason="no_season"), started_at)
            season_id = season.id

        def body() -> JobResult:
            entries = StandingsAggregator(self.db, self.config, self.tables).recompute(season_id)
            return JobResult("standings", season_id=season_id, details={"tour_cards": len(entries)})

        return self._locked("standings", f"standings:{season_id}", started_at, body, season_id=season_id)

    # =========================================================================
    # Groups
    # =========================================================================

    def next_upcoming(self, now: datetime) -> Optional[Tournament]:
        """Earliest upcoming tournament that has not started yet."""
        for tournament in self.db.get_tournaments(status=TournamentStatus.UPCOMING):
            if tournament.start_date >= now:
                return tournament
        return None

    def run_groups(
        self,
        tournament_id: Optional[int] = None,
        now: Optional[datetime] = None,
        force: bool = False,
    ) -> JobResult:
        """Assign groups for the next upcoming tournament. Write-once unless forced."""
        now = now or utcnow()
        started_at = utcnow()

        if tournament_id is not None:
            tournament = self.db.get_tournament(tournament_id)
            if tournament is None:
                return self._record(
                    JobResult("groups", ok=False, reason="unknown_tournament", tournament_id=tournament_id),
                    started_at,
                )
        else:
            tournament = self.next_upcoming(now)

        if tournament is None:
            return self._record(JobResult("groups", skipped=True, reason="no_upcoming_tournament"), started_at)
        if tournament.status != TournamentStatus.UPCOMING and not force:
            return self._record(
                JobResult("groups", skipped=True, reason=f"tournament_{tournament.status.value}",
                          tournament_id=tournament.id),
                started_at,
            )

        return self._locked(
            "groups",
            f"groups:{tournament.id}",
            started_at,
            lambda: self._assign_groups(tournament, force),
            tournament_id=tournament.id,
        )

    def _assign_groups(self, tournament: Tournament, force: bool) -> JobResult:
        if self.db.count_grouped_golfers(tournament.id):
            if not force:
                return JobResult("groups", skipped=True, reason="groups_exist", tournament_id=tournament.id)
            if self.db.count_teams(tournament.id):
                raise GroupsLockedError(
                    f"{tournament.name} already has teams; its groups cannot be reassigned"
                )

        snapshot = self.provider.get_snapshot(include_live=False)
        if self.config.check_event_name and snapshot.event_name:
            match = event_name_compatible(tournament.name, snapshot.event_name)
            if not match.ok:
                return JobResult(
                    "groups", skipped=True, reason="event_mismatch", tournament_id=tournament.id,
                    details={"expected": tournament.name, "actual": snapshot.event_name, "score": match.score},
                )

        groups = build_groups(entrants_from_snapshot(snapshot), self.config.group_size)
        if not groups:
            return JobResult("groups", skipped=True, reason="empty_field", tournament_id=tournament.id)

        strength = group_strength(groups)
        rows = to_tournament_golfers(groups, tournament.id)
        with self.db.batch():
            self.db.save_golfers(golfers_from_snapshot(snapshot))
            self.db.replace_groups(tournament.id, rows)

        return JobResult(
            "groups",
            tournament_id=tournament.id,
            details={
                "groups": len(groups),
                "entrants": len(rows),
                "mean_rank_spread": round(strength.spread, 2),
                "skipped_rows": snapshot.skipped_rows,
            },
        )

    # =========================================================================
    # Admin repair
    # =========================================================================

    def repair(self, tournament_id: int) -> JobResult:
        """
        Re-run scoring and standings for one tournament.

        Completed tournaments are re-scored from stored golfer state; others
        go through a normal live cycle, which closes an overdue one out.
        """
        started_at = utcnow()
        tournament = self.db.get_tournament(tournament_id)
        if tournament is None:
            return self._record(
                JobResult("repair", ok=False, reason="unknown_tournament", tournament_id=tournament_id),
                started_at,
            )

        if tournament.is_completed:
            result = self._locked(
                "repair",
                f"live:{tournament.id}",
                started_at,
                lambda: self._rescore_stored(tournament, "repair"),
                tournament_id=tournament.id,
            )
        else:
            result = self.run_live_sync(tournament.id)

        standings = self.run_standings(tournament.season_id)
        result.details["standings"] = standings.summary()
        return result

    def _rescore_stored(self, tournament: Tournament, job: str, close_reason: Optional[str] = None) -> JobResult:
        """
        Re-score teams from stored golfer state without contacting the provider.

        With a close reason the tournament also moves to completed. This is how
        an event whose final cycles were missed gets closed out.
        """
        deadline = time.monotonic() + self.config.cycle_timeout_seconds
        completed = close_reason is not None
        with self.db.batch():
            states = {g.provider_id: g for g in self.db.get_tournament_golfers(tournament.id)}
            teams = self.db.get_teams(tournament.id)
            scored = score_teams(
                teams,
                states,
                tournament.current_round,
                tournament.par or self.config.default_par,
                False,
                self.config.scoring_rules,
            )
            awarded = award_tournament(scored, tournament.tier_name, self.config.tie_split, self.tables)
            changed = self.db.save_teams(awarded)
            if completed:
                tournament.live_play = False
                tournament.transition(TournamentStatus.COMPLETED)
                self.db.save_tournament(tournament)
            self._check_deadline(deadline)

        details = {"teams": len(awarded), "teams_changed": changed, "completed": completed}
        if completed:
            logger.warning(f"{tournament.name} closed from stored state ({close_reason})")
            details["closed"] = close_reason
        return JobResult(job, tournament_id=tournament.id, details=details)
