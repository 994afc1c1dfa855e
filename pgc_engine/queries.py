"""
Read-only views over engine-owned state.

Nothing here recomputes: readers see whatever the last committed cycle wrote.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .database import Database
from .models import StandingsEntry, Team, Tournament, TournamentGolfer
from .scoring import team_rank_entry, order_key


@dataclass
class Leaderboard:
    """A tournament's teams in leaderboard order."""
    tournament: Tournament
    teams: List[Team] = field(default_factory=list)


def get_leaderboard(db: Database, tournament_id: int) -> Optional[Leaderboard]:
    """Teams ordered by their stored sort key, unplaced teams last."""
    tournament = db.get_tournament(tournament_id)
    if tournament is None:
        return None

    teams = db.get_teams(tournament_id)
    placed = [t for t in teams if t.position is not None]
    unplaced = sorted((t for t in teams if t.position is None), key=lambda t: t.display_name)
    placed.sort(key=lambda t: order_key(team_rank_entry(t)))
    return Leaderboard(tournament=tournament, teams=placed + unplaced)


def get_standings(db: Database, season_id: int) -> List[StandingsEntry]:
    """Season standings in rank order."""
    return db.get_standings(season_id)


def get_groups(db: Database, tournament_id: int) -> Dict[int, List[TournamentGolfer]]:
    """Group number -> entrants, each group ordered by world rank."""
    groups: Dict[int, List[TournamentGolfer]] = {}
    for golfer in db.get_tournament_golfers(tournament_id):
        if golfer.group is None:
            continue
        groups.setdefault(golfer.group, []).append(golfer)
    return dict(sorted(groups.items()))
