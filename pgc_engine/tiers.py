"""
Tier lookup: finish rank -> (points, payout).

The tables know nothing about ties; splitting among tied teams is the
standings aggregator's job.
"""

from typing import Dict, Optional, Tuple

from .config import TIER_TABLES
from .exceptions import UnknownTierError
from .models import TierTable


def get_tier(tier_name: str, tables: Optional[Dict[str, TierTable]] = None) -> TierTable:
    """Get a tier table by name (case-insensitive)."""
    tables = tables if tables is not None else TIER_TABLES
    if tier_name in tables:
        return tables[tier_name]
    for name, table in tables.items():
        if name.lower() == tier_name.lower():
            return table
    raise UnknownTierError(f"No tier table named '{tier_name}'")


def lookup(
    tier_name: str,
    finish_rank: int,
    tables: Optional[Dict[str, TierTable]] = None,
) -> Tuple[int, int]:
    """Points and payout for a 1-indexed finish rank. Out-of-table ranks get (0, 0)."""
    tier = get_tier(tier_name, tables)
    if finish_rank < 1 or finish_rank > tier.size:
        return 0, 0
    return tier.points[finish_rank - 1], tier.payouts[finish_rank - 1]
