"""
SQLite database layer for the PGC tour engine.
Handles persistence of seasons, tournaments, entrants, teams, standings,
sync locks and the job run log.
"""

import sqlite3
import json
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional, Dict, Any, Sequence
from contextlib import contextmanager

from .models import (
    Season, Tournament, TournamentStatus, Golfer, TournamentGolfer,
    TourCard, Team, StandingsEntry, JobResult, utcnow
)
from .config import get_config

logger = logging.getLogger(__name__)


class DatabaseError(Exception):
    """Raised when the database cannot be opened or initialized."""
    pass


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _load_json(raw: Optional[str], default):
    if not raw:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"Ignoring corrupted JSON column value: {raw[:40]!r}")
        return default


def _round_keys(data: Dict[str, Any]) -> Dict[int, Any]:
    """JSON object keys come back as strings."""
    return {int(k): v for k, v in data.items()}


class Database:
    """SQLite database manager."""

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize database connection."""
        if db_path is None:
            db_path = get_config().db_path
        self.db_path = Path(db_path)
        self._batch_conn: Optional[sqlite3.Connection] = None
        try:
            self._init_db()
        except sqlite3.OperationalError as e:
            message = str(e).lower()
            if "permission denied" in message or "readonly" in message:
                raise DatabaseError(f"Permission denied: cannot write database at {self.db_path}") from e
            if "disk full" in message or "disk is full" in message:
                raise DatabaseError(f"Disk full: cannot write database at {self.db_path}") from e
            if "unable to open" in message:
                raise DatabaseError(f"Cannot open database at {self.db_path}") from e
            raise DatabaseError(f"Database error at {self.db_path}: {e}") from e

    @contextmanager
    def _connection(self):
        """Context manager for database connections. Reuses the open batch, if any."""
        if self._batch_conn is not None:
            yield self._batch_conn
            return
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextmanager
    def batch(self):
        """
        Group writes into one transaction: all of them are committed or none.

        Nested batches join the outer one.
        """
        if self._batch_conn is not None:
            yield self
            return
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        self._batch_conn = conn
        try:
            yield self
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
        finally:
            self._batch_conn = None
            conn.close()

    def _init_db(self):
        """Initialize database schema."""
        with self._connection() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS seasons (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    year INTEGER NOT NULL UNIQUE
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS tournaments (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    season_id INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    tier_name TEXT NOT NULL,
                    start_date TEXT NOT NULL,
                    end_date TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'upcoming',
                    current_round INTEGER DEFAULT 1,
                    par INTEGER,
                    live_play INTEGER DEFAULT 0,
                    provider_last_update TEXT,
                    UNIQUE(season_id, name)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS golfers (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    provider_id INTEGER NOT NULL UNIQUE,
                    name TEXT NOT NULL,
                    world_rank INTEGER,
                    skill_estimate REAL,
                    country TEXT
                )
            """)

            # Per-tournament entrant state; group is written once
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS tournament_golfers (
                    tournament_id INTEGER NOT NULL,
                    provider_id INTEGER NOT NULL,
                    name TEXT,
                    grp INTEGER,
                    rating REAL,
                    world_rank INTEGER,
                    tee_times_json TEXT,
                    position TEXT,
                    pos_change INTEGER DEFAULT 0,
                    score REAL,
                    today REAL,
                    thru INTEGER,
                    round INTEGER,
                    rounds_json TEXT,
                    make_cut REAL,
                    top_ten REAL,
                    win REAL,
                    usage REAL,
                    PRIMARY KEY (tournament_id, provider_id)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS tour_cards (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    season_id INTEGER NOT NULL,
                    member_id TEXT NOT NULL,
                    tour_id TEXT NOT NULL,
                    display_name TEXT NOT NULL,
                    UNIQUE(season_id, member_id)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS teams (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    tournament_id INTEGER NOT NULL,
                    tour_card_id INTEGER NOT NULL,
                    golfer_ids_json TEXT NOT NULL,
                    display_name TEXT,
                    tour_id TEXT,
                    round INTEGER,
                    round_scores_json TEXT,
                    today REAL,
                    thru REAL,
                    score REAL,
                    position TEXT,
                    past_position TEXT,
                    points INTEGER DEFAULT 0,
                    earnings INTEGER DEFAULT 0,
                    make_cut INTEGER DEFAULT 0,
                    top_ten INTEGER DEFAULT 0,
                    win INTEGER DEFAULT 0,
                    UNIQUE(tournament_id, tour_card_id)
                )
            """)

            # No timestamps: a recompute over the same results is byte-identical
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS standings (
                    season_id INTEGER NOT NULL,
                    tour_card_id INTEGER NOT NULL,
                    display_name TEXT,
                    tour_id TEXT,
                    points INTEGER DEFAULT 0,
                    earnings INTEGER DEFAULT 0,
                    season_rank INTEGER NOT NULL,
                    position TEXT,
                    wins INTEGER DEFAULT 0,
                    top_tens INTEGER DEFAULT 0,
                    cuts_made INTEGER DEFAULT 0,
                    appearances INTEGER DEFAULT 0,
                    playoff INTEGER DEFAULT 0,
                    PRIMARY KEY (season_id, tour_card_id)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS sync_locks (
                    key TEXT PRIMARY KEY,
                    owner TEXT NOT NULL,
                    started_at TEXT NOT NULL,
                    expires_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS sync_runs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    job TEXT NOT NULL,
                    ok INTEGER NOT NULL,
                    skipped INTEGER NOT NULL,
                    reason TEXT,
                    tournament_id INTEGER,
                    season_id INTEGER,
                    details_json TEXT,
                    error TEXT,
                    started_at TEXT NOT NULL,
                    finished_at TEXT NOT NULL
                )
            """)

            # Cache table for provider data
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS cache (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    expires_at TEXT NOT NULL
                )
            """)

    # =========================================================================
    # Season operations
    # =========================================================================

    def save_season(self, season: Season) -> int:
        """Save a season, returning its id. Years are unique."""
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("INSERT OR IGNORE INTO seasons (year) VALUES (?)", (season.year,))
            cursor.execute("SELECT id FROM seasons WHERE year = ?", (season.year,))
            season.id = cursor.fetchone()["id"]
            return season.id

    def get_season(self, season_id: int) -> Optional[Season]:
        """Get season by id."""
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM seasons WHERE id = ?", (season_id,))
            row = cursor.fetchone()
            if row:
                return Season(year=row["year"], id=row["id"])
        return None

    def get_latest_season(self) -> Optional[Season]:
        """Get the most recent season."""
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM seasons ORDER BY year DESC LIMIT 1")
            row = cursor.fetchone()
            if row:
                return Season(year=row["year"], id=row["id"])
        return None

    # =========================================================================
    # Tournament operations
    # =========================================================================

    def save_tournament(self, tournament: Tournament) -> int:
        """Insert a new tournament or update an existing one."""
        values = (
            tournament.season_id,
            tournament.name,
            tournament.tier_name,
            tournament.start_date.isoformat(),
            tournament.end_date.isoformat(),
            tournament.status.value,
            tournament.current_round,
            tournament.par,
            1 if tournament.live_play else 0,
            _iso(tournament.provider_last_update),
        )
        with self._connection() as conn:
            cursor = conn.cursor()
            if tournament.id is None:
                cursor.execute("""
                    INSERT INTO tournaments
                    (season_id, name, tier_name, start_date, end_date, status,
                     current_round, par, live_play, provider_last_update)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, values)
                tournament.id = cursor.lastrowid
            else:
                cursor.execute("""
                    UPDATE tournaments SET
                    season_id = ?, name = ?, tier_name = ?, start_date = ?, end_date = ?, status = ?,
                    current_round = ?, par = ?, live_play = ?, provider_last_update = ?
                    WHERE id = ?
                """, values + (tournament.id,))
            return tournament.id

    def get_tournament(self, tournament_id: int) -> Optional[Tournament]:
        """Get tournament by id."""
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM tournaments WHERE id = ?", (tournament_id,))
            row = cursor.fetchone()
            if row:
                return self._row_to_tournament(row)
        return None

    def get_tournaments(
        self,
        season_id: Optional[int] = None,
        status: Optional[TournamentStatus] = None,
    ) -> List[Tournament]:
        """Get tournaments in start order, optionally filtered."""
        query = "SELECT * FROM tournaments WHERE 1 = 1"
        params: List[Any] = []
        if season_id is not None:
            query += " AND season_id = ?"
            params.append(season_id)
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        query += " ORDER BY start_date, id"
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return [self._row_to_tournament(row) for row in cursor.fetchall()]

    def get_active_tournament(self) -> Optional[Tournament]:
        """Get the earliest-starting active tournament."""
        active = self.get_tournaments(status=TournamentStatus.ACTIVE)
        return active[0] if active else None

    def _row_to_tournament(self, row: sqlite3.Row) -> Tournament:
        """Convert database row to Tournament object."""
        return Tournament(
            season_id=row["season_id"],
            name=row["name"],
            tier_name=row["tier_name"],
            start_date=datetime.fromisoformat(row["start_date"]),
            end_date=datetime.fromisoformat(row["end_date"]),
            status=TournamentStatus(row["status"]),
            current_round=row["current_round"] or 1,
            par=row["par"],
            live_play=bool(row["live_play"]),
            provider_last_update=_parse_dt(row["provider_last_update"]),
            id=row["id"],
        )

    # =========================================================================
    # Golfer operations
    # =========================================================================

    def save_golfers(self, golfers: Sequence[Golfer]) -> int:
        """Insert or update golfers keyed by provider id."""
        with self._connection() as conn:
            cursor = conn.cursor()
            for golfer in golfers:
                cursor.execute("""
                    INSERT INTO golfers (provider_id, name, world_rank, skill_estimate, country)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(provider_id) DO UPDATE SET
                        name = excluded.name,
                        world_rank = excluded.world_rank,
                        skill_estimate = excluded.skill_estimate,
                        country = COALESCE(excluded.country, golfers.country)
                """, (
                    golfer.provider_id,
                    golfer.name,
                    golfer.world_rank,
                    golfer.skill_estimate,
                    golfer.country,
                ))
            return len(golfers)

    def get_golfer(self, provider_id: int) -> Optional[Golfer]:
        """Get golfer by provider id."""
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM golfers WHERE provider_id = ?", (provider_id,))
            row = cursor.fetchone()
            if row:
                return Golfer(
                    provider_id=row["provider_id"],
                    name=row["name"],
                    world_rank=row["world_rank"],
                    skill_estimate=row["skill_estimate"],
                    country=row["country"],
                    id=row["id"],
                )
        return None

    # =========================================================================
    # Tournament golfer operations
    # =========================================================================

    def save_tournament_golfers(self, golfers: Sequence[TournamentGolfer]) -> int:
        """Insert or update entrant state. An existing group is never overwritten here."""
        with self._connection() as conn:
            cursor = conn.cursor()
            for g in golfers:
                cursor.execute("""
                    INSERT INTO tournament_golfers
                    (tournament_id, provider_id, name, grp, rating, world_rank, tee_times_json,
                     position, pos_change, score, today, thru, round, rounds_json,
                     make_cut, top_ten, win, usage)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(tournament_id, provider_id) DO UPDATE SET
                        name = excluded.name,
                        grp = COALESCE(tournament_golfers.grp, excluded.grp),
                        rating = excluded.rating,
                        world_rank = excluded.world_rank,
                        tee_times_json = excluded.tee_times_json,
                        position = excluded.position,
                        pos_change = excluded.pos_change,
                        score = excluded.score,
                        today = excluded.today,
                        thru = excluded.thru,
                        round = excluded.round,
                        rounds_json = excluded.rounds_json,
                        make_cut = excluded.make_cut,
                        top_ten = excluded.top_ten,
                        win = excluded.win,
                        usage = excluded.usage
                """, (
                    g.tournament_id,
                    g.provider_id,
                    g.name,
                    g.group,
                    g.rating,
                    g.world_rank,
                    json.dumps(g.tee_times, sort_keys=True),
                    g.position,
                    g.pos_change,
                    g.score,
                    g.today,
                    g.thru,
                    g.round,
                    json.dumps(g.rounds, sort_keys=True),
                    g.make_cut,
                    g.top_ten,
                    g.win,
                    g.usage,
                ))
            return len(golfers)

    def replace_groups(self, tournament_id: int, golfers: Sequence[TournamentGolfer]):
        """Overwrite the whole field with freshly assigned groups."""
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM tournament_golfers WHERE tournament_id = ?", (tournament_id,))
        self.save_tournament_golfers(golfers)

    def get_tournament_golfers(self, tournament_id: int) -> List[TournamentGolfer]:
        """Get every entrant of a tournament, by group then world rank."""
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT * FROM tournament_golfers WHERE tournament_id = ?
                ORDER BY grp IS NULL, grp, world_rank IS NULL, world_rank, name, provider_id
            """, (tournament_id,))
            return [self._row_to_tournament_golfer(row) for row in cursor.fetchall()]

    def count_grouped_golfers(self, tournament_id: int) -> int:
        """Number of entrants that already have a group."""
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT COUNT(*) FROM tournament_golfers WHERE tournament_id = ? AND grp IS NOT NULL",
                (tournament_id,)
            )
            return cursor.fetchone()[0]

    def _row_to_tournament_golfer(self, row: sqlite3.Row) -> TournamentGolfer:
        """Convert database row to TournamentGolfer object."""
        return TournamentGolfer(
            tournament_id=row["tournament_id"],
            provider_id=row["provider_id"],
            name=row["name"] or "",
            group=row["grp"],
            rating=row["rating"],
            world_rank=row["world_rank"],
            tee_times=_round_keys(_load_json(row["tee_times_json"], {})),
            position=row["position"],
            pos_change=row["pos_change"] or 0,
            score=row["score"],
            today=row["today"],
            thru=row["thru"],
            round=row["round"],
            rounds=_round_keys(_load_json(row["rounds_json"], {})),
            make_cut=row["make_cut"],
            top_ten=row["top_ten"],
            win=row["win"],
            usage=row["usage"],
        )

    # =========================================================================
    # Tour card operations
    # =========================================================================

    def save_tour_card(self, card: TourCard) -> int:
        """Save a tour card. Members hold one card per season."""
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                INSERT INTO tour_cards (season_id, member_id, tour_id, display_name)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(season_id, member_id) DO UPDATE SET
                    tour_id = excluded.tour_id,
                    display_name = excluded.display_name
            """, (card.season_id, card.member_id, card.tour_id, card.display_name))
            cursor.execute(
                "SELECT id FROM tour_cards WHERE season_id = ? AND member_id = ?",
                (card.season_id, card.member_id)
            )
            card.id = cursor.fetchone()["id"]
            return card.id

    def get_tour_cards(self, season_id: int) -> List[TourCard]:
        """Get all tour cards of a season."""
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM tour_cards WHERE season_id = ? ORDER BY id", (season_id,))
            return [
                TourCard(
                    season_id=row["season_id"],
                    member_id=row["member_id"],
                    tour_id=row["tour_id"],
                    display_name=row["display_name"],
                    id=row["id"],
                )
                for row in cursor.fetchall()
            ]

    # =========================================================================
    # Team operations
    # =========================================================================

    def save_team(self, team: Team) -> int:
        """Insert a new team (one per tour card per tournament)."""
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                INSERT INTO teams (tournament_id, tour_card_id, golfer_ids_json, display_name, tour_id)
                VALUES (?, ?, ?, ?, ?)
            """, (
                team.tournament_id,
                team.tour_card_id,
                json.dumps(list(team.golfer_ids)),
                team.display_name,
                team.tour_id,
            ))
            team.id = cursor.lastrowid
        if team.scoring_state() != Team(team.tournament_id, team.tour_card_id).scoring_state():
            self.save_teams([team])
        return team.id

    def save_teams(self, teams: Sequence[Team]) -> int:
        """Write scoring fields of teams whose state changed. Returns the number written."""
        if not teams:
            return 0
        with self._connection() as conn:
            cursor = conn.cursor()
            changed = 0
            for team in teams:
                cursor.execute("SELECT * FROM teams WHERE id = ?", (team.id,))
                row = cursor.fetchone()
                if row is None:
                    logger.warning(f"Team {team.id} not found; not saved")
                    continue
                if self._row_to_team(row).scoring_state() == team.scoring_state():
                    continue
                cursor.execute("""
                    UPDATE teams SET
                    round = ?, round_scores_json = ?, today = ?, thru = ?, score = ?,
                    position = ?, past_position = ?, points = ?, earnings = ?,
                    make_cut = ?, top_ten = ?, win = ?
                    WHERE id = ?
                """, (
                    team.round,
                    json.dumps(team.round_scores, sort_keys=True),
                    team.today,
                    team.thru,
                    team.score,
                    team.position,
                    team.past_position,
                    team.points,
                    team.earnings,
                    1 if team.make_cut else 0,
                    1 if team.top_ten else 0,
                    1 if team.win else 0,
                    team.id,
                ))
                changed += 1
            return changed

    def get_teams(self, tournament_id: int) -> List[Team]:
        """Get all teams of a tournament."""
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM teams WHERE tournament_id = ? ORDER BY id", (tournament_id,))
            return [self._row_to_team(row) for row in cursor.fetchall()]

    def count_teams(self, tournament_id: int) -> int:
        """Number of teams entered in a tournament."""
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) FROM teams WHERE tournament_id = ?", (tournament_id,))
            return cursor.fetchone()[0]

    def _row_to_team(self, row: sqlite3.Row) -> Team:
        """Convert database row to Team object."""
        return Team(
            tournament_id=row["tournament_id"],
            tour_card_id=row["tour_card_id"],
            golfer_ids=_load_json(row["golfer_ids_json"], []),
            display_name=row["display_name"] or "",
            tour_id=row["tour_id"] or "",
            round=row["round"],
            round_scores=_round_keys(_load_json(row["round_scores_json"], {})),
            today=row["today"],
            thru=row["thru"],
            score=row["score"],
            position=row["position"],
            past_position=row["past_position"],
            points=row["points"] or 0,
            earnings=row["earnings"] or 0,
            make_cut=bool(row["make_cut"]),
            top_ten=bool(row["top_ten"]),
            win=bool(row["win"]),
            id=row["id"],
        )

    # =========================================================================
    # Standings operations
    # =========================================================================

    def replace_standings(self, season_id: int, entries: Sequence[StandingsEntry]):
        """Overwrite a season's standings."""
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM standings WHERE season_id = ?", (season_id,))
            for entry in entries:
                cursor.execute("""
                    INSERT INTO standings
                    (season_id, tour_card_id, display_name, tour_id, points, earnings, season_rank,
                     position, wins, top_tens, cuts_made, appearances, playoff)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    season_id,
                    entry.tour_card_id,
                    entry.display_name,
                    entry.tour_id,
                    entry.points,
                    entry.earnings,
                    entry.season_rank,
                    entry.position,
                    entry.wins,
                    entry.top_tens,
                    entry.cuts_made,
                    entry.appearances,
                    entry.playoff,
                ))

    def get_standings(self, season_id: int) -> List[StandingsEntry]:
        """Get a season's standings, per tour in rank order."""
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT * FROM standings WHERE season_id = ? ORDER BY tour_id, season_rank, display_name, tour_card_id",
                (season_id,)
            )
            return [
                StandingsEntry(
                    season_id=row["season_id"],
                    tour_card_id=row["tour_card_id"],
                    display_name=row["display_name"] or "",
                    tour_id=row["tour_id"] or "",
                    points=row["points"],
                    earnings=row["earnings"],
                    season_rank=row["season_rank"],
                    position=row["position"] or "",
                    wins=row["wins"],
                    top_tens=row["top_tens"],
                    cuts_made=row["cuts_made"],
                    appearances=row["appearances"],
                    playoff=row["playoff"],
                )
                for row in cursor.fetchall()
            ]

    # =========================================================================
    # Sync lock operations
    # =========================================================================

    def acquire_lock(self, key: str, owner: str, ttl_seconds: int, now: Optional[datetime] = None) -> bool:
        """Take a named lock. Expired locks are reclaimed. Returns False if held."""
        now = now or utcnow()
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "DELETE FROM sync_locks WHERE key = ? AND expires_at <= ?",
                (key, now.isoformat())
            )
            if cursor.rowcount:
                logger.warning(f"Reclaimed expired lock {key}")
            cursor.execute(
                "INSERT OR IGNORE INTO sync_locks (key, owner, started_at, expires_at) VALUES (?, ?, ?, ?)",
                (key, owner, now.isoformat(), (now + timedelta(seconds=ttl_seconds)).isoformat())
            )
            return cursor.rowcount == 1

    def release_lock(self, key: str, owner: str):
        """Release a lock held by this owner."""
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM sync_locks WHERE key = ? AND owner = ?", (key, owner))

    def get_locks(self) -> List[Dict[str, Any]]:
        """Get all currently recorded locks."""
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM sync_locks ORDER BY key")
            return [dict(row) for row in cursor.fetchall()]

    # =========================================================================
    # Run log operations
    # =========================================================================

    def record_run(
        self,
        result: JobResult,
        started_at: datetime,
        finished_at: datetime,
        error: Optional[str] = None,
    ) -> int:
        """Append a job run to the run log."""
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                INSERT INTO sync_runs
                (job, ok, skipped, reason, tournament_id, season_id, details_json, error, started_at, finished_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                result.job,
                1 if result.ok else 0,
                1 if result.skipped else 0,
                result.reason,
                result.tournament_id,
                result.season_id,
                json.dumps(result.details, default=str),
                error,
                started_at.isoformat(),
                finished_at.isoformat(),
            ))
            return cursor.lastrowid

    def get_runs(self, limit: int = 20, job: Optional[str] = None) -> List[Dict[str, Any]]:
        """Get the most recent runs, newest first."""
        with self._connection() as conn:
            cursor = conn.cursor()
            if job:
                cursor.execute("SELECT * FROM sync_runs WHERE job = ? ORDER BY id DESC LIMIT ?", (job, limit))
            else:
                cursor.execute("SELECT * FROM sync_runs ORDER BY id DESC LIMIT ?", (limit,))
            runs = []
            for row in cursor.fetchall():
                run = dict(row)
                run["details"] = _load_json(run.pop("details_json"), {})
                run["ok"] = bool(run["ok"])
                run["skipped"] = bool(run["skipped"])
                runs.append(run)
            return runs

    # =========================================================================
    # Cache operations
    # =========================================================================

    def set_cache(self, key: str, value: Any, expires_at: datetime):
        """Set a cache entry."""
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "INSERT OR REPLACE INTO cache (key, value, expires_at) VALUES (?, ?, ?)",
                (key, json.dumps(value), expires_at.isoformat())
            )

    def get_cache(self, key: str) -> Optional[Any]:
        """Get a cache entry if not expired."""
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT value, expires_at FROM cache WHERE key = ?", (key,))
            row = cursor.fetchone()
            if row:
                expires = datetime.fromisoformat(row["expires_at"])
                if expires > datetime.now():
                    return _load_json(row["value"], None)
                # Expired, delete it
                cursor.execute("DELETE FROM cache WHERE key = ?", (key,))
        return None

    def clear_expired_cache(self) -> int:
        """Remove all expired cache entries. Returns how many were removed."""
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "DELETE FROM cache WHERE expires_at < ?",
                (datetime.now().isoformat(),)
            )
            return cursor.rowcount
