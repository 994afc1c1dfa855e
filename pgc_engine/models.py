"""
Data models for the PGC tour engine.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any, Tuple
from enum import Enum

from .exceptions import InvalidTransitionError


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the store keeps naive UTC)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TournamentStatus(Enum):
    """Tournament lifecycle. Transitions are forward-only."""
    UPCOMING = "upcoming"
    ACTIVE = "active"
    COMPLETED = "completed"

    @property
    def order(self) -> int:
        return _STATUS_ORDER[self]


_STATUS_ORDER = {
    TournamentStatus.UPCOMING: 0,
    TournamentStatus.ACTIVE: 1,
    TournamentStatus.COMPLETED: 2,
}


class SpecialPosition(Enum):
    """Non-numeric finishes, with their sort-key offsets."""
    CUT = 444
    WD = 888
    DQ = 999


@dataclass
class Season:
    """A league season."""
    year: int
    id: Optional[int] = None


@dataclass(frozen=True)
class TierTable:
    """Points and payouts by finish rank for one tournament tier."""
    name: str
    version: str
    points: Tuple[int, ...]
    payouts: Tuple[int, ...]

    def __post_init__(self):
        if len(self.points) != len(self.payouts):
            raise ValueError(
                f"Tier {self.name}: points and payouts must have the same length "
                f"({len(self.points)} != {len(self.payouts)})"
            )

    @property
    def size(self) -> int:
        return len(self.points)


@dataclass
class Tournament:
    """A tournament within a season."""
    season_id: int
    name: str
    tier_name: str
    start_date: datetime
    end_date: datetime
    status: TournamentStatus = TournamentStatus.UPCOMING
    current_round: int = 1
    par: Optional[int] = None
    live_play: bool = False
    provider_last_update: Optional[datetime] = None
    id: Optional[int] = None

    @property
    def is_active(self) -> bool:
        return self.status == TournamentStatus.ACTIVE

    @property
    def is_completed(self) -> bool:
        return self.status == TournamentStatus.COMPLETED

    def transition(self, new_status: TournamentStatus) -> bool:
        """Move to a new status. Returns True if the status changed."""
        if new_status.order < self.status.order:
            raise InvalidTransitionError(
                f"Tournament {self.id} cannot go from {self.status.value} to {new_status.value}"
            )
        changed = new_status != self.status
        self.status = new_status
        return changed


@dataclass
class Golfer:
    """A golfer known to the provider."""
    provider_id: int
    name: str
    world_rank: Optional[int] = None
    skill_estimate: Optional[float] = None
    country: Optional[str] = None
    id: Optional[int] = None


@dataclass
class TournamentGolfer:
    """Per-tournament state of one entrant."""
    tournament_id: int
    provider_id: int
    name: str = ""
    group: Optional[int] = None
    rating: Optional[float] = None
    world_rank: Optional[int] = None
    tee_times: Dict[int, Optional[str]] = field(default_factory=dict)  # round -> tee time
    position: Optional[str] = None
    pos_change: int = 0
    score: Optional[float] = None  # to par
    today: Optional[float] = None
    thru: Optional[int] = None
    round: Optional[int] = None
    rounds: Dict[int, Optional[int]] = field(default_factory=dict)  # round -> strokes
    make_cut: Optional[float] = None
    top_ten: Optional[float] = None
    win: Optional[float] = None
    usage: Optional[float] = None

    @property
    def has_live_state(self) -> bool:
        """Whether the provider has ever reported scoring for this entrant."""
        return (
            self.position is not None
            or self.score is not None
            or any(v is not None for v in self.rounds.values())
        )


@dataclass
class TourCard:
    """A member's seasonal identity."""
    season_id: int
    member_id: str
    tour_id: str
    display_name: str
    id: Optional[int] = None


@dataclass
class Team:
    """One tour card's golfer picks for one tournament."""
    tournament_id: int
    tour_card_id: int
    golfer_ids: List[int] = field(default_factory=list)
    display_name: str = ""
    tour_id: str = ""
    round: Optional[int] = None
    round_scores: Dict[int, Optional[float]] = field(default_factory=dict)
    today: Optional[float] = None
    thru: Optional[float] = None
    score: Optional[float] = None  # total to par
    position: Optional[str] = None
    past_position: Optional[str] = None
    points: int = 0
    earnings: int = 0
    make_cut: bool = False
    top_ten: bool = False
    win: bool = False
    id: Optional[int] = None

    def scoring_state(self) -> Tuple:
        """Fields owned by the engine, used to detect no-op updates."""
        return (
            self.round,
            tuple(self.round_scores.get(r) for r in (1, 2, 3, 4)),
            self.today,
            self.thru,
            self.score,
            self.position,
            self.past_position,
            self.points,
            self.earnings,
            self.make_cut,
            self.top_ten,
            self.win,
        )


@dataclass
class StandingsEntry:
    """A tour card's season totals."""
    season_id: int
    tour_card_id: int
    display_name: str = ""
    tour_id: str = ""
    points: int = 0
    earnings: int = 0
    season_rank: int = 0
    position: str = ""
    wins: int = 0
    top_tens: int = 0
    cuts_made: int = 0
    appearances: int = 0
    playoff: int = 0  # 1 = first bracket, 2 = second bracket, 0 = none


@dataclass
class JobResult:
    """Outcome of one scheduled job run."""
    job: str
    ok: bool = True
    skipped: bool = False
    reason: str = ""
    tournament_id: Optional[int] = None
    season_id: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def failed(self) -> bool:
        return not self.ok

    def summary(self) -> str:
        """One-line description for logs and the CLI."""
        state = "skipped" if self.skipped else ("ok" if self.ok else "failed")
        parts = [f"{self.job}: {state}"]
        if self.reason:
            parts.append(f"({self.reason})")
        if self.tournament_id is not None:
            parts.append(f"tournament={self.tournament_id}")
        if self.season_id is not None:
            parts.append(f"season={self.season_id}")
        return " ".join(parts)
