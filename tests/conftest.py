"""
Shared pytest fixtures for PGC tour engine tests.
"""

import os
import sys
import tempfile
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from pgc_engine.config import Config, ScoringRules
from pgc_engine.database import Database
from pgc_engine.models import Season, Team, TourCard, Tournament, TournamentStatus
from pgc_engine.snapshot import parse_snapshot


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_db_path(temp_dir):
    """Create a temporary database path."""
    return temp_dir / "test_data.db"


@pytest.fixture
def mock_env_no_api_key():
    """Mock environment with no API key."""
    with patch.dict(os.environ, {"DATAGOLF_API_KEY": ""}, clear=False):
        yield


@pytest.fixture
def mock_env_with_api_key():
    """Mock environment with API key set."""
    with patch.dict(os.environ, {"DATAGOLF_API_KEY": "test_api_key_12345"}, clear=False):
        yield


@pytest.fixture
def engine_env(temp_dir, temp_db_path):
    """Environment pointing every path at the temp dir, with default engine settings."""
    with patch.dict(os.environ, {
        "DATAGOLF_API_KEY": "test_api_key_12345",
        "PGC_DATA_DIR": str(temp_dir),
        "PGC_DB_PATH": str(temp_db_path),
        "PGC_GROUP_SIZE": "5",
        "PGC_TIE_SPLIT": "average",
        "PGC_TEAM_AGGREGATION": "average",
        "PGC_CYCLE_TIMEOUT": "90",
        "PGC_TOUR": "pga",
    }, clear=False):
        yield


@pytest.fixture
def config(engine_env):
    """Config for two-golfer test teams: every active golfer counts, one keeps a team alive."""
    cfg = Config()
    cfg.scoring_rules = ScoringRules(counting_after_cut=None, min_active_after_cut=1)
    return cfg


@pytest.fixture
def db(temp_db_path):
    """Create a test database."""
    return Database(db_path=temp_db_path)


class FakeProvider:
    """Stands in for DataGolfAPI: hands back snapshots built from raw payloads."""

    def __init__(self, field_updates=None, rankings=None, in_play=None, error=None):
        self.field_updates = field_updates
        self.rankings = rankings
        self.in_play = in_play
        self.error = error
        self.calls = 0

    def get_snapshot(self, include_live=True):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return parse_snapshot(self.field_updates, self.rankings, self.in_play if include_live else None)


@pytest.fixture
def make_provider():
    """Factory for fake providers."""
    return FakeProvider


# =============================================================================
# Provider payloads (Data Golf shapes)
# =============================================================================

@pytest.fixture
def field_updates():
    """Six-golfer field for the RBC Heritage."""
    names = [
        (101, "Scheffler, Scottie", "USA"),
        (102, "McIlroy, Rory", "NIR"),
        (103, "Schauffele, Xander", "USA"),
        (104, "Morikawa, Collin", "USA"),
        (105, "Aberg, Ludvig", "SWE"),
        (106, "Fleetwood, Tommy", "ENG"),
    ]
    return {
        "event_name": "RBC Heritage",
        "course_name": "Harbour Town Golf Links",
        "current_round": 1,
        "field": [
            {
                "dg_id": dg_id,
                "player_name": name,
                "country": country,
                "am": 0,
                "r1_teetime": f"2026-04-16 {8 + i}:00",
                "dk_salary": 10000 - i * 500,
            }
            for i, (dg_id, name, country) in enumerate(names)
        ],
    }


@pytest.fixture
def rankings():
    """World ranks 1-6 for the field."""
    skills = [3.0, 2.5, 2.0, 1.8, 1.5, 1.2]
    return {
        "last_updated": "2026-04-14 10:00:00 UTC",
        "rankings": [
            {"dg_id": 101 + i, "owgr_rank": i + 1, "datagolf_rank": i + 1, "dg_skill_estimate": skill}
            for i, skill in enumerate(skills)
        ],
    }


def _live_row(dg_id, pos, score, today, thru, rnd, r1=None, r2=None, r3=None, r4=None):
    return {
        "dg_id": dg_id,
        "current_pos": pos,
        "current_score": score,
        "today": today,
        "thru": thru,
        "round": rnd,
        "R1": r1,
        "R2": r2,
        "R3": r3,
        "R4": r4,
        "make_cut": 0.9,
        "top_10": 0.2,
        "win": 0.05,
    }


@pytest.fixture
def in_play_round_one():
    """Round one in progress."""
    return {
        "info": {"event_name": "RBC Heritage", "current_round": 1, "last_update": "2026-04-16 18:30:00 UTC"},
        "data": [
            _live_row(101, "1", -5, -5, 14, 1),
            _live_row(102, "T2", -3, -3, 12, 1),
            _live_row(103, "T2", -3, -3, 12, 1),
            _live_row(104, "4", -1, -1, 10, 1),
            _live_row(105, "T5", 0, 0, 9, 1),
            _live_row(106, "T5", 1, 1, 9, 1),
        ],
    }


@pytest.fixture
def field_updates_final(field_updates):
    """Field payload once the final round is under way."""
    return dict(field_updates, current_round=4)


@pytest.fixture
def in_play_final():
    """Everyone finished after round four (Aberg missed the cut)."""
    return {
        "info": {"event_name": "RBC Heritage", "current_round": 4, "last_update": "2026-04-19 23:00:00 UTC"},
        "data": [
            _live_row(101, "1", -14, -3, "F", 4, 67, 68, 70, 69),
            _live_row(102, "T8", -7, -2, "F", 4, 70, 70, 71, 70),
            _live_row(103, "T8", -7, 0, "F", 4, 69, 70, 70, 72),
            _live_row(104, "12", -6, -2, "F", 4, 71, 71, 70, 70),
            _live_row(105, "CUT", 5, 3, "F", 2, 74, 75),
            _live_row(106, "40", -1, 0, "F", 4, 72, 71, 72, 72),
        ],
    }


# =============================================================================
# Seeded league
# =============================================================================

@pytest.fixture
def league(db):
    """Season 2026, an upcoming RBC Heritage (par 72) and four two-golfer teams."""
    season_id = db.save_season(Season(year=2026))
    tournament = Tournament(
        season_id=season_id,
        name="RBC Heritage",
        tier_name="Standard",
        start_date=datetime(2026, 4, 16, 11, 0),
        end_date=datetime(2026, 4, 19, 23, 0),
        status=TournamentStatus.UPCOMING,
        par=72,
    )
    db.save_tournament(tournament)

    picks = {
        "Alice": [101, 102],
        "Bob": [103, 104],
        "Cara": [105, 106],
        "Dan": [101, 106],
    }
    cards = {}
    teams = {}
    for member, golfer_ids in picks.items():
        card = TourCard(season_id=season_id, member_id=member.lower(), tour_id="pga", display_name=member)
        db.save_tour_card(card)
        cards[member] = card
        team = Team(
            tournament_id=tournament.id,
            tour_card_id=card.id,
            golfer_ids=golfer_ids,
            display_name=member,
            tour_id="pga",
        )
        db.save_team(team)
        teams[member] = team

    return {"season_id": season_id, "tournament": tournament, "cards": cards, "teams": teams}


@pytest.fixture
def during_round_one():
    """A tick while round one is being played."""
    return datetime(2026, 4, 16, 19, 0)
