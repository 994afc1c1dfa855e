"""
Tests for snapshot.py - provider envelope validation and feed helpers.
"""

from datetime import datetime
from pathlib import Path

import pytest

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from pgc_engine.exceptions import MalformedSnapshotError
from pgc_engine.snapshot import (
    FieldEntry, LiveStat, event_name_compatible, infer_par, normalize_event_tokens,
    normalize_player_name, normalize_skill_estimate, parse_snapshot, parse_thru, parse_timestamp
)


class TestParseSnapshot:
    """Tests for building a ProviderSnapshot from raw payloads."""

    def test_parses_all_collections(self, field_updates, rankings, in_play_round_one):
        snapshot = parse_snapshot(field_updates, rankings, in_play_round_one)
        assert snapshot.event_name == "RBC Heritage"
        assert snapshot.course_name == "Harbour Town Golf Links"
        assert snapshot.current_round == 1
        assert snapshot.last_update == datetime(2026, 4, 16, 18, 30)
        assert len(snapshot.field) == 6
        assert len(snapshot.rankings) == 6
        assert len(snapshot.live_stats) == 6
        assert snapshot.has_live
        assert snapshot.skipped_rows == 0

    def test_salary_fields_pass_through(self, field_updates, rankings):
        snapshot = parse_snapshot(field_updates, rankings)
        entry = snapshot.field_by_id[101]
        assert entry.model_extra["dk_salary"] == 10000

    def test_without_live_stats(self, field_updates, rankings):
        snapshot = parse_snapshot(field_updates, rankings)
        assert not snapshot.has_live
        assert snapshot.live_stats == []
        assert not snapshot.is_round_running
        assert not snapshot.all_players_finished

    @pytest.mark.parametrize("bad_field", [None, [], {"players": []}, {"field": "nope"}])
    def test_malformed_field_payload(self, bad_field, rankings):
        with pytest.raises(MalformedSnapshotError):
            parse_snapshot(bad_field, rankings)

    def test_malformed_rankings_payload(self, field_updates):
        with pytest.raises(MalformedSnapshotError):
            parse_snapshot(field_updates, {"rankings": None})

    def test_malformed_in_play_payload(self, field_updates, rankings):
        with pytest.raises(MalformedSnapshotError):
            parse_snapshot(field_updates, rankings, {"info": {}})
        with pytest.raises(MalformedSnapshotError):
            parse_snapshot(field_updates, rankings, {"info": "x", "data": []})

    def test_bad_rows_are_dropped_and_counted(self, field_updates, rankings, in_play_round_one):
        field_updates["field"].append({"player_name": "No Id"})
        in_play_round_one["data"].append({"dg_id": "not-a-number"})
        snapshot = parse_snapshot(field_updates, rankings, in_play_round_one)
        assert len(snapshot.field) == 6
        assert len(snapshot.live_stats) == 6
        assert snapshot.skipped_rows == 2

    def test_entrant_missing_from_rankings(self, field_updates, rankings):
        rankings["rankings"] = rankings["rankings"][:3]
        snapshot = parse_snapshot(field_updates, rankings)
        assert 106 in snapshot.field_by_id
        assert 106 not in snapshot.rankings_by_id

    def test_round_running_and_completion(self, field_updates, field_updates_final, rankings,
                                          in_play_round_one, in_play_final):
        running = parse_snapshot(field_updates, rankings, in_play_round_one)
        assert running.is_round_running
        assert not running.event_completed

        final = parse_snapshot(field_updates_final, rankings, in_play_final)
        assert not final.is_round_running
        assert final.all_players_finished
        assert final.event_completed


class TestRowModels:
    """Tests for individual row validation."""

    def test_teetimes_list_is_folded(self):
        entry = FieldEntry.model_validate({
            "dg_id": 1,
            "player_name": "Scheffler, Scottie",
            "teetimes": [
                {"round_num": 1, "teetime": "8:40am", "start_hole": 10},
                {"round_num": 2, "teetime": "1:50pm", "start_hole": 1},
            ],
        })
        assert entry.tee_times == {1: "8:40am", 2: "1:50pm", 3: None, 4: None}
        assert entry.start_hole == 10

    def test_blank_tee_time_is_none(self):
        entry = FieldEntry.model_validate({"dg_id": 1, "player_name": "A", "r1_teetime": "  "})
        assert entry.r1_teetime is None

    @pytest.mark.parametrize("raw,expected", [("F", 18), ("f", 18), ("12", 12), (9, 9), ("", None), (None, None), ("-", None)])
    def test_parse_thru(self, raw, expected):
        assert parse_thru(raw) == expected

    def test_live_stat_finished_codes(self):
        assert LiveStat.model_validate({"dg_id": 1, "current_pos": "cut"}).is_finished
        assert LiveStat.model_validate({"dg_id": 1, "thru": "F"}).is_finished
        on_course = LiveStat.model_validate({"dg_id": 1, "thru": 7, "current_pos": "T3"})
        assert on_course.is_on_course
        assert not on_course.is_finished

    def test_parse_timestamp(self):
        assert parse_timestamp("2026-04-16 18:30:00 UTC") == datetime(2026, 4, 16, 18, 30)
        assert parse_timestamp("2026-04-16T18:30:00+00:00") == datetime(2026, 4, 16, 18, 30)
        assert parse_timestamp("garbage") is None
        assert parse_timestamp(None) is None


class TestFeedHelpers:
    """Tests for name, rating, par and event helpers."""

    def test_normalize_player_name(self):
        assert normalize_player_name("Scheffler, Scottie") == "Scottie Scheffler"
        assert normalize_player_name("Rory McIlroy") == "Rory McIlroy"
        assert normalize_player_name("  Min Woo   Lee ") == "Min Woo Lee"

    def test_skill_estimate_rating_bounds(self):
        assert normalize_skill_estimate(None) == 0.0
        assert normalize_skill_estimate(-1.5) == 5.0
        assert normalize_skill_estimate(2.0) == 100.0
        assert 0.0 <= normalize_skill_estimate(-10.0) <= 5.0
        assert normalize_skill_estimate(50.0) == 150.0
        assert normalize_skill_estimate(1.0) < normalize_skill_estimate(1.5)

    def test_infer_par(self, field_updates_final, rankings, in_play_final):
        snapshot = parse_snapshot(field_updates_final, rankings, in_play_final)
        assert infer_par(snapshot.live_stats) == 72

    def test_infer_par_without_rounds(self):
        assert infer_par([LiveStat.model_validate({"dg_id": 1, "current_score": -2})]) is None

    def test_event_tokens_drop_stop_words(self):
        assert normalize_event_tokens("The Memorial Tournament presented by Workday") == ["memorial", "workday"]

    def test_event_name_compatible(self):
        assert event_name_compatible("RBC Heritage", "RBC Heritage").ok
        assert event_name_compatible("Memorial Tournament", "The Memorial Tournament presented by Workday").ok
        assert event_name_compatible("AT&T Pebble Beach Pro-Am", "AT&T Pebble Beach Pro-Am 2026").ok

        mismatch = event_name_compatible("RBC Heritage", "Masters Tournament")
        assert not mismatch.ok
        assert mismatch.score == 0
