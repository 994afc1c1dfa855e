"""
Scoring engine for the PGC tour engine.

Turns member golfers' live state into each team's round scores, total to par,
sortable key and display position. Pure functions: the coordinator decides
what gets written.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field, replace
from statistics import mean
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .config import ScoringRules
from .models import SpecialPosition, Team, TournamentGolfer

logger = logging.getLogger(__name__)

POSITION_ALIASES = {"MC": "CUT", "DNS": "WD", "DNF": "WD"}
ROUNDS = (1, 2, 3, 4)


def normalize_position(raw: Any) -> Optional[str]:
    """Canonical position string: 'CUT', 'WD', 'DQ' or the feed's rank label."""
    if raw is None:
        return None
    pos = str(raw).strip().upper()
    if not pos:
        return None
    return POSITION_ALIASES.get(pos, pos)


def is_special(position: Optional[str]) -> bool:
    """Whether a position is a non-numeric finish (CUT/WD/DQ)."""
    return position in SpecialPosition.__members__


def parse_position_number(position: Optional[str]) -> Optional[int]:
    """'T4' -> 4, '12' -> 12, 'CUT' -> None."""
    if not position:
        return None
    stripped = position.strip().upper()
    if stripped.startswith("T"):
        stripped = stripped[1:]
    return int(stripped) if stripped.isdigit() else None


def compute_pos_change(previous: Optional[str], current: Optional[str]) -> int:
    """Places gained since the previous position (positive = moved up)."""
    prev_num = parse_position_number(previous)
    next_num = parse_position_number(current)
    if prev_num is None or next_num is None:
        return 0
    return prev_num - next_num


def sort_key(position: Optional[str], score: Optional[float], previous_score: Optional[float] = None) -> float:
    """
    Sortable key for a leaderboard row (lower is better).

    The base is the score to par, falling back to the previous cycle's score.
    DQ adds 999, WD 888 and CUT 444 so special finishes sink below every
    numeric finisher in that order.
    """
    if score is not None:
        base = score
    elif previous_score is not None:
        base = previous_score
    else:
        base = 0.0
    if is_special(position):
        return SpecialPosition[position].value + base
    return base


def position_flags(position: Optional[str]) -> Tuple[bool, bool, bool]:
    """(made cut, top ten, win) for a final or current position."""
    if position is None or is_special(position):
        return False, False, False
    rank = parse_position_number(position)
    if rank is None:
        return False, False, False
    return True, rank <= 10, rank == 1


def _round1(value: Optional[float]) -> Optional[float]:
    return None if value is None else round(value, 1)


def _aggregate(values: Sequence[float], rule: str) -> Optional[float]:
    if not values:
        return None
    if rule == "sum":
        return float(sum(values))
    return float(mean(values))


def _best(entries: List[Tuple[float, TournamentGolfer]], n: Optional[int]) -> List[Tuple[float, TournamentGolfer]]:
    ordered = sorted(entries, key=lambda e: (e[0], e[1].provider_id))
    return ordered if n is None else ordered[:n]


def _knockout_status(statuses: Iterable[Optional[str]]) -> str:
    """Most common special status among members; ties go to the more severe."""
    counts = Counter(s for s in statuses if is_special(s))
    if not counts:
        return SpecialPosition.CUT.name
    return max(counts, key=lambda s: (counts[s], SpecialPosition[s].value))


@dataclass
class TeamResult:
    """Scoring output for one team for one cycle."""
    round: int
    round_scores: Dict[int, Optional[float]] = field(default_factory=dict)
    today: Optional[float] = None
    thru: Optional[float] = None
    score: Optional[float] = None
    status: Optional[str] = None  # CUT / WD / DQ when the team is knocked out


def compute_team_result(
    golfer_ids: Sequence[int],
    golfer_states: Mapping[int, TournamentGolfer],
    current_round: int,
    par: int,
    live: bool,
    rules: ScoringRules,
) -> Optional[TeamResult]:
    """
    Fold member golfers into a team result.

    Golfers with no live state are skipped for the cycle (never scored as
    zero). Returns None when no member has state, meaning "keep last cycle".
    """
    members = []
    for golfer_id in golfer_ids:
        state = golfer_states.get(golfer_id)
        if state is None or not state.has_live_state:
            logger.info(f"No live state for golfer {golfer_id}; skipping for this cycle")
            continue
        members.append(state)
    if not members:
        return None

    current_round = max(1, min(4, int(current_round)))
    statuses = {m.provider_id: normalize_position(m.position) for m in members}
    active = [m for m in members if not is_special(statuses[m.provider_id])]

    status = None
    if current_round > rules.cut_round and len(active) < rules.min_active_after_cut:
        status = _knockout_status(statuses.values())

    last_completed = current_round - 1 if live else current_round
    if status is not None:
        last_completed = min(last_completed, rules.cut_round)

    round_scores: Dict[int, Optional[float]] = {}
    round_to_par: Dict[int, float] = {}
    for r in ROUNDS:
        round_scores[r] = None
        if r > last_completed:
            continue
        pool = members if r <= rules.cut_round else active
        entries = [(float(m.rounds[r]), m) for m in pool if m.rounds.get(r) is not None]
        counted = _best(entries, rules.counting_for_round(r))
        if not counted:
            continue
        strokes = [s for s, _ in counted]
        round_scores[r] = _round1(_aggregate(strokes, rules.aggregation))
        round_to_par[r] = _aggregate([s - par for s in strokes], rules.aggregation)

    today: Optional[float] = None
    thru: Optional[float] = None
    if status is None and live:
        entries = [(float(m.today), m) for m in active if m.today is not None]
        counted = _best(entries, rules.counting_for_round(current_round))
        today = _aggregate([t for t, _ in counted], rules.aggregation)
        holes = [m.thru for _, m in counted if m.thru is not None]
        thru = float(mean(holes)) if holes else None
    elif status is None and round_to_par:
        today = round_to_par[max(round_to_par)]
        thru = 18.0

    if not round_to_par and today is None:
        score = None
    else:
        score = sum(round_to_par.values())
        if live and today is not None:
            score += today

    return TeamResult(
        round=current_round,
        round_scores=round_scores,
        today=_round1(today),
        thru=_round1(thru),
        score=_round1(score),
        status=status,
    )


@dataclass
class RankEntry:
    """A row to be placed on a leaderboard."""
    ident: Any
    display_name: str
    score: Optional[float]
    thru: Optional[float] = None
    status: Optional[str] = None
    previous_score: Optional[float] = None

    @property
    def is_ranked(self) -> bool:
        return self.status is not None or self.score is not None or self.previous_score is not None

    @property
    def key(self) -> float:
        return sort_key(self.status, self.score, self.previous_score)

    @property
    def holes_played(self) -> float:
        return self.thru or 0.0


def order_key(entry: RankEntry) -> Tuple[float, float, str]:
    """Sort key, then further through the round first, then display name."""
    return entry.key, -entry.holes_played, entry.display_name


def rank_entries(entries: Iterable[RankEntry]) -> List[Tuple[RankEntry, Optional[str]]]:
    """
    Order entries and assign display positions.

    Rows sharing both key and holes played share a position, prefixed with
    'T'. Knocked-out rows show their status. Rows with no score at all go
    last with no position.
    """
    entries = list(entries)
    ranked = sorted((e for e in entries if e.is_ranked), key=order_key)
    unranked = sorted((e for e in entries if not e.is_ranked), key=lambda e: e.display_name)

    result: List[Tuple[RankEntry, Optional[str]]] = []
    i = 0
    while i < len(ranked):
        j = i + 1
        while (
            j < len(ranked)
            and ranked[j].key == ranked[i].key
            and ranked[j].holes_played == ranked[i].holes_played
        ):
            j += 1
        tied = j - i > 1
        for entry in ranked[i:j]:
            if entry.status is not None:
                result.append((entry, entry.status))
            else:
                result.append((entry, f"{'T' if tied else ''}{i + 1}"))
        i = j

    result.extend((e, None) for e in unranked)
    return result


def team_rank_entry(team: Team, previous_score: Optional[float] = None) -> RankEntry:
    """Leaderboard row for a persisted team."""
    position = normalize_position(team.position)
    return RankEntry(
        ident=team.id,
        display_name=team.display_name,
        score=team.score,
        thru=team.thru,
        status=position if is_special(position) else None,
        previous_score=previous_score,
    )


def rank_teams(teams: Sequence[Team]) -> List[Team]:
    """Re-rank persisted teams, returning copies in leaderboard order with positions set."""
    by_ident = {id(t): t for t in teams}
    entries = []
    for team in teams:
        entry = team_rank_entry(team)
        entry.ident = id(team)
        entries.append(entry)
    ordered = []
    for entry, position in rank_entries(entries):
        team = by_ident[entry.ident]
        make_cut, top_ten, win = position_flags(position)
        ordered.append(replace(team, position=position, make_cut=make_cut, top_ten=top_ten, win=win))
    return ordered


def score_teams(
    teams: Sequence[Team],
    golfer_states: Mapping[int, TournamentGolfer],
    current_round: int,
    par: int,
    live: bool,
    rules: ScoringRules,
) -> List[Team]:
    """
    Score and rank every team of a tournament.

    Returns updated copies in leaderboard order. Points and earnings are left
    for the award step. A team with no fresh golfer data keeps its previous
    numbers and is ranked on its previous score.
    """
    updated: List[Team] = []
    for team in teams:
        result = compute_team_result(team.golfer_ids, golfer_states, current_round, par, live, rules)
        if result is None:
            updated.append(replace(team, round_scores=dict(team.round_scores)))
            continue

        past_position = team.past_position
        if team.round is not None and team.round != result.round:
            past_position = team.position

        updated.append(replace(
            team,
            round=result.round,
            round_scores=result.round_scores,
            today=result.today,
            thru=result.thru,
            score=result.score,
            # Knock-out status reaches ranking through the position field
            position=result.status,
            past_position=past_position,
        ))

    return rank_teams(updated)


def usage_by_golfer(teams: Sequence[Team]) -> Dict[int, float]:
    """Share of teams (0-1) that picked each golfer."""
    if not teams:
        return {}
    counts: Counter = Counter()
    for team in teams:
        counts.update(set(team.golfer_ids))
    return {golfer_id: count / len(teams) for golfer_id, count in counts.items()}
