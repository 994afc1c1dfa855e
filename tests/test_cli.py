"""
Tests for cli.py - Click commands.
"""

import os
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

from click.testing import CliRunner

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from pgc_engine.cli import _format_score, cli
from pgc_engine.database import Database
from pgc_engine.models import Season, Tournament, TournamentStatus


class TestFormatScore:
    """Tests for score display."""

    def test_format_score(self):
        assert _format_score(None) == "-"
        assert _format_score(0.0) == "E"
        assert _format_score(-4.5) == "-4.5"
        assert _format_score(3.0) == "+3"


class TestCommands:
    """Tests for read-only commands."""

    def test_tier_table(self):
        result = CliRunner().invoke(cli, ["tier", "standard"])
        assert result.exit_code == 0
        assert "Standard" in result.output
        assert "$1,000" in result.output

    def test_unknown_tier(self):
        result = CliRunner().invoke(cli, ["tier", "Platinum"])
        assert result.exit_code == 1
        assert "Known tiers" in result.output

    def test_standings_without_season(self, engine_env):
        result = CliRunner().invoke(cli, ["standings"])
        assert result.exit_code == 0

    def test_status(self, engine_env):
        result = CliRunner().invoke(cli, ["status"])
        assert result.exit_code == 0
        assert "Configuration OK" in result.output
        assert "No active tournament" in result.output

    def test_run_standings_without_season(self, engine_env):
        result = CliRunner().invoke(cli, ["run", "standings"])
        assert result.exit_code == 0
        assert "no_season" in result.output

    def test_run_live_without_api_key_fails_cleanly(self, engine_env, temp_db_path):
        db = Database(temp_db_path)
        season_id = db.save_season(Season(year=2099))
        tournament = Tournament(
            season_id=season_id, name="RBC Heritage", tier_name="Standard",
            start_date=datetime(2099, 4, 16), end_date=datetime(2099, 4, 19),
            status=TournamentStatus.ACTIVE,
        )
        db.save_tournament(tournament)

        with patch.dict(os.environ, {"DATAGOLF_API_KEY": ""}, clear=False):
            result = CliRunner().invoke(cli, ["run", "live", "-t", str(tournament.id)])

        assert result.exit_code == 1
        assert result.exception is None or isinstance(result.exception, SystemExit)
        assert "provider_error" in result.output
