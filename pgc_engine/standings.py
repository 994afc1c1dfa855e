"""
Standings aggregator.

Folds completed tournaments into season totals per tour card. Every run is a
full overwrite so a crash mid-run is repaired by the next run.
"""

import logging
from collections import defaultdict
from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Tuple

from .config import Config, TIE_SPLIT_POLICIES, get_config
from .models import StandingsEntry, Team, TierTable, TournamentStatus
from .scoring import parse_position_number, rank_teams
from .tiers import lookup

logger = logging.getLogger(__name__)


def award_tournament(
    ranked: Sequence[Team],
    tier_name: str,
    policy: str = "average",
    tables: Optional[Dict[str, TierTable]] = None,
) -> List[Team]:
    """
    Set points and earnings on ranked teams from the tournament's tier.

    Teams sharing a position split the ranks they span: "average" gives each
    the rounded mean of those ranks' values, "full" gives each the value of
    the shared rank. CUT/WD/DQ and unplaced teams get nothing.
    """
    if policy not in TIE_SPLIT_POLICIES:
        raise ValueError(f"Unknown tie split policy: {policy}")

    tie_counts: Dict[str, int] = defaultdict(int)
    for team in ranked:
        if parse_position_number(team.position) is not None:
            tie_counts[team.position] += 1

    awarded = []
    for team in ranked:
        rank = parse_position_number(team.position)
        if rank is None:
            awarded.append(replace(team, points=0, earnings=0))
            continue

        if policy == "full":
            points, earnings = lookup(tier_name, rank, tables)
        else:
            values = [lookup(tier_name, rank + k, tables) for k in range(tie_counts[team.position])]
            points = int(round(sum(v[0] for v in values) / len(values)))
            earnings = int(round(sum(v[1] for v in values) / len(values)))
        awarded.append(replace(team, points=points, earnings=earnings))

    return awarded


def _assign_ranks(ordered: List[StandingsEntry]):
    """Shared rank and display position for entries already in order."""
    i = 0
    while i < len(ordered):
        j = i + 1
        while (
            j < len(ordered)
            and ordered[j].points == ordered[i].points
            and ordered[j].earnings == ordered[i].earnings
        ):
            j += 1
        for entry in ordered[i:j]:
            entry.season_rank = i + 1
            entry.position = f"{'T' if j - i > 1 else ''}{i + 1}"
        i = j


def rank_standings(entries: List[StandingsEntry], playoff_spots: Tuple[int, int] = (15, 35)) -> List[StandingsEntry]:
    """
    Order entries and assign season rank, display position and playoff bracket.

    Each tour is ranked on its own, by points then earnings. Entries level on
    both share a rank and a 'T' position; display name only orders them
    within that tie. Brackets go by place within the tour. Returns entries
    grouped by tour.
    """
    ordered = sorted(entries, key=lambda e: (e.tour_id, -e.points, -e.earnings, e.display_name, e.tour_card_id))

    by_tour: Dict[str, List[StandingsEntry]] = defaultdict(list)
    for entry in ordered:
        by_tour[entry.tour_id].append(entry)

    first_cutoff, second_cutoff = playoff_spots
    for tour_entries in by_tour.values():
        _assign_ranks(tour_entries)
        for place, entry in enumerate(tour_entries, start=1):
            if place <= first_cutoff:
                entry.playoff = 1
            elif place <= second_cutoff:
                entry.playoff = 2
            else:
                entry.playoff = 0

    return ordered


class StandingsAggregator:
    """Recomputes a season's standings from its completed tournaments."""

    def __init__(self, db, config: Optional[Config] = None, tables: Optional[Dict[str, TierTable]] = None):
        self.db = db
        self.config = config or get_config()
        self.tables = tables

    def recompute(self, season_id: int) -> List[StandingsEntry]:
        """Re-rank, re-award and re-total the season in one transaction."""
        tournaments = self.db.get_tournaments(season_id=season_id, status=TournamentStatus.COMPLETED)
        totals: Dict[int, StandingsEntry] = {
            card.id: StandingsEntry(
                season_id=season_id,
                tour_card_id=card.id,
                display_name=card.display_name,
                tour_id=card.tour_id,
            )
            for card in self.db.get_tour_cards(season_id)
        }

        with self.db.batch():
            for tournament in tournaments:
                teams = self.db.get_teams(tournament.id)
                awarded = award_tournament(
                    rank_teams(teams),
                    tournament.tier_name,
                    self.config.tie_split,
                    self.tables,
                )
                changed = self.db.save_teams(awarded)
                logger.debug(f"{tournament.name}: {len(awarded)} teams awarded, {changed} changed")

                for team in awarded:
                    entry = totals.get(team.tour_card_id)
                    if entry is None:
                        logger.warning(f"Team {team.id} has no tour card {team.tour_card_id} in season {season_id}")
                        entry = StandingsEntry(
                            season_id=season_id,
                            tour_card_id=team.tour_card_id,
                            display_name=team.display_name,
                            tour_id=team.tour_id,
                        )
                        totals[team.tour_card_id] = entry
                    entry.points += team.points
                    entry.earnings += team.earnings
                    entry.appearances += 1
                    entry.wins += int(team.win)
                    entry.top_tens += int(team.top_ten)
                    entry.cuts_made += int(team.make_cut)

            entries = rank_standings(list(totals.values()), self.config.playoff_spots)
            self.db.replace_standings(season_id, entries)

        logger.info(
            f"Standings recomputed for season {season_id}: "
            f"{len(entries)} tour cards over {len(tournaments)} completed tournaments"
        )
        return entries
