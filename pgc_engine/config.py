"""
Configuration management for the PGC tour engine.
Includes the static, versioned tier tables.
"""

import os
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from dataclasses import dataclass, field

from dotenv import load_dotenv

from .models import TierTable


# Load environment variables from .env file
load_dotenv()


AGGREGATION_RULES = ("sum", "average")
TIE_SPLIT_POLICIES = ("average", "full")

# Cron expressions for the three scheduled jobs (UTC)
JOB_SCHEDULES: Dict[str, str] = {
    "live": "*/2 * * * *",     # Live sync every two minutes
    "standings": "0 4 * * *",  # Daily standings recompute
    "groups": "0 10 * * 1",    # Monday group assignment for the next event
}


@dataclass
class ScoringRules:
    """How member golfers are folded into a team score."""
    aggregation: str = "average"  # "sum" or "average"
    counting_before_cut: Optional[int] = None  # None = every golfer with a score
    counting_after_cut: Optional[int] = 5
    cut_round: int = 2  # Last round played before the cut
    min_active_after_cut: int = 5

    def __post_init__(self):
        if self.aggregation not in AGGREGATION_RULES:
            raise ValueError(f"Unknown aggregation rule: {self.aggregation}")

    def counting_for_round(self, round_num: int) -> Optional[int]:
        """Best-N golfers counted in a round."""
        if round_num <= self.cut_round:
            return self.counting_before_cut
        return self.counting_after_cut


@dataclass
class Config:
    """Application configuration."""
    # Provider
    datagolf_api_key: str = ""
    datagolf_base_url: str = "https://feeds.datagolf.com"
    tour: str = "pga"
    request_timeout: int = 30

    # Paths
    data_dir: Path = Path.home() / ".pgc_engine"
    db_path: Optional[Path] = None

    # Engine settings
    group_size: int = 5
    tie_split: str = "average"
    scoring_rules: ScoringRules = field(default_factory=ScoringRules)
    default_par: int = 72
    check_event_name: bool = True

    # Scheduling
    cycle_timeout_seconds: float = 90.0
    lock_ttl_seconds: int = 600
    activation_grace_hours: int = 48

    # Standings
    playoff_spots: Tuple[int, int] = (15, 35)  # Cumulative cutoffs for brackets 1 and 2

    def __post_init__(self):
        """Load settings from environment."""
        self.datagolf_api_key = os.getenv("DATAGOLF_API_KEY", "")
        self.datagolf_base_url = os.getenv("DATAGOLF_BASE_URL", self.datagolf_base_url)
        self.tour = os.getenv("PGC_TOUR", self.tour)
        self.data_dir = Path(os.getenv("PGC_DATA_DIR", str(self.data_dir)))
        self.db_path = Path(os.getenv("PGC_DB_PATH", str(self.data_dir / "pgc.db")))
        self.group_size = int(os.getenv("PGC_GROUP_SIZE", self.group_size))
        self.tie_split = os.getenv("PGC_TIE_SPLIT", self.tie_split)
        self.cycle_timeout_seconds = float(os.getenv("PGC_CYCLE_TIMEOUT", self.cycle_timeout_seconds))
        aggregation = os.getenv("PGC_TEAM_AGGREGATION")
        if aggregation:
            self.scoring_rules = ScoringRules(aggregation=aggregation)

        # Ensure directories exist
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def validate_config(self, require_api_key: bool = False) -> List[str]:
        """Return a list of configuration problems (empty when valid)."""
        errors = []
        if require_api_key and not self.datagolf_api_key:
            errors.append("DATAGOLF_API_KEY is not set. Get a key at https://datagolf.com/api-access")
        if self.group_size < 1:
            errors.append(f"PGC_GROUP_SIZE must be at least 1 (got {self.group_size})")
        if self.tie_split not in TIE_SPLIT_POLICIES:
            errors.append(f"PGC_TIE_SPLIT must be one of {', '.join(TIE_SPLIT_POLICIES)} (got {self.tie_split})")
        if self.cycle_timeout_seconds <= 0:
            errors.append("PGC_CYCLE_TIMEOUT must be positive")
        return errors


def get_config() -> Config:
    """Get application configuration."""
    return Config()


# ============================================================================
# TIER TABLES
# Index 0 is rank 1. Bump the version when a table changes mid-season.
# ============================================================================

STANDARD_POINTS: Tuple[int, ...] = (
    500, 400, 350, 325, 300, 275, 250, 225, 200, 175,
    150, 135, 125, 115, 105, 95, 85, 75, 70, 65,
    60, 55, 50, 45, 40, 35, 30, 25, 20, 15,
    12, 10, 8, 6, 4,
)

STANDARD_PAYOUTS: Tuple[int, ...] = (
    1000, 600, 400, 300, 250, 200, 175, 150, 125, 100,
    90, 80, 70, 60, 50, 45, 40, 35, 30, 25,
    20, 20, 15, 15, 10, 10, 10, 5, 5, 5,
    0, 0, 0, 0, 0,
)


def _scaled(values: Tuple[int, ...], factor: float) -> Tuple[int, ...]:
    return tuple(int(round(v * factor)) for v in values)


TIER_TABLES: Dict[str, TierTable] = {
    "Standard": TierTable(
        name="Standard",
        version="2026.1",
        points=STANDARD_POINTS,
        payouts=STANDARD_PAYOUTS,
    ),
    "Elevated": TierTable(
        name="Elevated",
        version="2026.1",
        points=_scaled(STANDARD_POINTS, 1.25),
        payouts=_scaled(STANDARD_PAYOUTS, 1.5),
    ),
    "Major": TierTable(
        name="Major",
        version="2026.1",
        points=_scaled(STANDARD_POINTS, 1.5),
        payouts=_scaled(STANDARD_PAYOUTS, 2.0),
    ),
    # Playoff events pay out but award no season points
    "Playoff": TierTable(
        name="Playoff",
        version="2026.1",
        points=(0,) * len(STANDARD_POINTS),
        payouts=_scaled(STANDARD_PAYOUTS, 3.0),
    ),
}


def get_tier_names() -> List[str]:
    """Get all configured tier names."""
    return list(TIER_TABLES.keys())
