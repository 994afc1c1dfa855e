"""
Group assignment engine.

Splits an upcoming tournament's field into balanced pick groups with a snake
distribution over world rank.
"""

import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np

from .exceptions import DuplicateEntrantError
from .models import TournamentGolfer
from .snapshot import ProviderSnapshot, normalize_player_name, normalize_skill_estimate

logger = logging.getLogger(__name__)


@dataclass
class Entrant:
    """One golfer in the field, as seen by the grouping step."""
    provider_id: int
    name: str
    world_rank: Optional[int] = None
    skill_estimate: Optional[float] = None
    country: Optional[str] = None
    tee_times: Dict[int, Optional[str]] = field(default_factory=dict)


@dataclass
class GroupStrength:
    """Mean world rank per group and the gap between strongest and weakest."""
    means: List[Optional[float]]
    spread: float


def entrants_from_snapshot(snapshot: ProviderSnapshot) -> List[Entrant]:
    """Join the field with rankings. Golfers missing from rankings stay unranked."""
    rankings = snapshot.rankings_by_id
    entrants = []
    for row in snapshot.field:
        ranking = rankings.get(row.dg_id)
        entrants.append(Entrant(
            provider_id=row.dg_id,
            name=normalize_player_name(row.player_name),
            world_rank=ranking.owgr_rank if ranking else None,
            skill_estimate=ranking.dg_skill_estimate if ranking else None,
            country=row.country,
            tee_times=row.tee_times,
        ))
    return entrants


def order_field(entrants: Sequence[Entrant]) -> List[Entrant]:
    """World rank ascending; unranked golfers last, best skill estimate first, then by name."""
    def key(e: Entrant):
        if e.world_rank is not None:
            return (0, e.world_rank, 0.0, e.name, e.provider_id)
        skill = e.skill_estimate if e.skill_estimate is not None else -math.inf
        return (1, 0, -skill, e.name, e.provider_id)

    return sorted(entrants, key=key)


def build_groups(entrants: Sequence[Entrant], group_size: int) -> List[List[Entrant]]:
    """
    Snake-distribute the ordered field into ceil(n / group_size) groups.

    Group 1 takes rank 1, group N rank N, then group N takes rank N+1 and so
    on back up, reversing each pass. Raises DuplicateEntrantError if the field
    lists a golfer twice.

    Each pair of passes adds the same rank total to every group, so group
    means only drift on a trailing odd or partial pass. An odd full pass
    spreads them by (groups - 1) / group_size. A partial pass leaves the last
    groups one golfer short; they miss that pass's weak pick and average
    better by about groups * (group_size - 1) / (2 * group_size) places. The
    default 156-golfer field in groups of 5 spreads by about 18.
    """
    if group_size < 1:
        raise ValueError(f"group_size must be at least 1 (got {group_size})")

    counts = Counter(e.provider_id for e in entrants)
    duplicates = sorted(pid for pid, c in counts.items() if c > 1)
    if duplicates:
        raise DuplicateEntrantError(f"Field lists entrants more than once: {duplicates}")

    if not entrants:
        return []

    ordered = order_field(entrants)
    n_groups = math.ceil(len(ordered) / group_size)
    groups: List[List[Entrant]] = [[] for _ in range(n_groups)]
    for i, entrant in enumerate(ordered):
        pass_num, pos = divmod(i, n_groups)
        index = pos if pass_num % 2 == 0 else n_groups - 1 - pos
        groups[index].append(entrant)

    logger.debug(f"Built {n_groups} groups from {len(ordered)} entrants")
    return groups


def group_strength(groups: Sequence[Sequence[Entrant]]) -> GroupStrength:
    """Mean world rank of each group (unranked golfers ignored)."""
    means: List[Optional[float]] = []
    for group in groups:
        ranks = np.array([e.world_rank for e in group if e.world_rank is not None], dtype=float)
        means.append(float(np.mean(ranks)) if ranks.size else None)

    known = np.array([m for m in means if m is not None], dtype=float)
    spread = float(np.ptp(known)) if known.size else 0.0
    return GroupStrength(means=means, spread=spread)


def to_tournament_golfers(groups: Sequence[Sequence[Entrant]], tournament_id: int) -> List[TournamentGolfer]:
    """Entrant rows to persist, numbered from group 1."""
    rows = []
    for number, group in enumerate(groups, start=1):
        for entrant in group:
            rows.append(TournamentGolfer(
                tournament_id=tournament_id,
                provider_id=entrant.provider_id,
                name=entrant.name,
                group=number,
                rating=normalize_skill_estimate(entrant.skill_estimate),
                world_rank=entrant.world_rank,
                tee_times=dict(entrant.tee_times),
            ))
    return rows
