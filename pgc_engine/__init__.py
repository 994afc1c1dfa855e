"""
PGC Tour Engine
Scoring, standings and group assignment for a fantasy golf league.
"""

__version__ = "1.0.0"

from .models import (
    Season, TierTable, Tournament, TournamentStatus, Golfer, TournamentGolfer,
    TourCard, Team, StandingsEntry, JobResult, SpecialPosition
)
from .config import Config, ScoringRules, get_config
from .database import Database, DatabaseError
from .api import DataGolfAPI, get_api
from .coordinator import SyncCoordinator
from .standings import StandingsAggregator

__all__ = [
    # Models
    "Season", "TierTable", "Tournament", "TournamentStatus", "Golfer", "TournamentGolfer",
    "TourCard", "Team", "StandingsEntry", "JobResult", "SpecialPosition",
    # Config
    "Config", "ScoringRules", "get_config",
    # Core classes
    "Database", "DatabaseError", "DataGolfAPI", "SyncCoordinator", "StandingsAggregator",
    # Factory functions
    "get_api",
]
