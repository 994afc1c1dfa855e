"""
Provider snapshot model.

One pull from the data provider is parsed into a fixed-shape ProviderSnapshot
before any scoring code touches it. Missing top-level structure rejects the
whole payload; a bad individual row is dropped and counted as a soft gap.
"""

import logging
import math
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .exceptions import MalformedSnapshotError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

# Position / thru codes meaning the player is done for the event or the round
FINISHED_CODES = {"WD", "DQ", "CUT", "MC", "MDF", "DNS", "DNF"}

TIMESTAMP_FORMATS = (
    "%Y-%m-%d %H:%M:%S UTC",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M:%SZ",
)


def parse_thru(value: Any) -> Optional[int]:
    """Parse a 'thru' value: 'F' is 18 holes, digits are holes played."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if math.isfinite(value) else None
    raw = str(value).strip().upper().rstrip("*")
    if not raw:
        return None
    if raw == "F":
        return 18
    if raw.isdigit():
        return int(raw)
    return None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a provider timestamp into a naive UTC datetime."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    raw = value.strip()
    for fmt in TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(raw, fmt)
        except ValueError:
            continue
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


class FieldEntry(BaseModel):
    """An entrant in the upcoming/current field. Salary fields pass through."""

    model_config = ConfigDict(extra="allow")

    dg_id: int
    player_name: str = Field(..., min_length=1)
    country: Optional[str] = None
    am: int = 0
    r1_teetime: Optional[str] = None
    r2_teetime: Optional[str] = None
    r3_teetime: Optional[str] = None
    r4_teetime: Optional[str] = None
    start_hole: Optional[int] = None

    @model_validator(mode="before")
    @classmethod
    def fold_teetimes_list(cls, data):
        """Newer feeds list tee times as [{round_num, teetime, start_hole}]."""
        if not isinstance(data, dict) or not isinstance(data.get("teetimes"), list):
            return data
        data = dict(data)
        for item in data["teetimes"]:
            if not isinstance(item, dict):
                continue
            round_num = item.get("round_num")
            teetime = item.get("teetime")
            if not isinstance(round_num, int) or not 1 <= round_num <= 4:
                continue
            key = f"r{round_num}_teetime"
            current = data.get(key)
            if isinstance(teetime, str) and teetime.strip():
                if key not in data or (isinstance(current, str) and not current.strip()):
                    data[key] = teetime
            if data.get("start_hole") is None and isinstance(item.get("start_hole"), int):
                data["start_hole"] = item["start_hole"]
        return data

    @field_validator("r1_teetime", "r2_teetime", "r3_teetime", "r4_teetime", "country")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v.strip() if isinstance(v, str) else v

    @property
    def tee_times(self) -> Dict[int, Optional[str]]:
        return {
            1: self.r1_teetime,
            2: self.r2_teetime,
            3: self.r3_teetime,
            4: self.r4_teetime,
        }


class RankingEntry(BaseModel):
    """World rank and skill estimate for one golfer."""

    model_config = ConfigDict(extra="ignore")

    dg_id: int
    player_name: str = ""
    owgr_rank: Optional[int] = None
    datagolf_rank: Optional[int] = None
    dg_skill_estimate: Optional[float] = None
    country: Optional[str] = None


class LiveStat(BaseModel):
    """Live scoring for one golfer."""

    model_config = ConfigDict(extra="ignore")

    dg_id: int
    player_name: str = ""
    current_pos: Optional[str] = None
    current_score: Optional[float] = None
    today: Optional[float] = None
    thru: Optional[int] = None
    round: Optional[int] = None
    end_hole: Optional[int] = None
    R1: Optional[int] = None
    R2: Optional[int] = None
    R3: Optional[int] = None
    R4: Optional[int] = None
    make_cut: Optional[float] = None
    top_10: Optional[float] = None
    win: Optional[float] = None

    @field_validator("thru", mode="before")
    @classmethod
    def coerce_thru(cls, v):
        return parse_thru(v)

    @field_validator("current_pos", mode="before")
    @classmethod
    def clean_position(cls, v):
        if v is None:
            return None
        cleaned = str(v).strip().upper()
        return cleaned or None

    @property
    def rounds(self) -> Dict[int, Optional[int]]:
        return {1: self.R1, 2: self.R2, 3: self.R3, 4: self.R4}

    @property
    def is_finished(self) -> bool:
        """Whether the golfer is done for the current round or the event."""
        if self.current_pos in FINISHED_CODES:
            return True
        if self.end_hole is not None and self.end_hole >= 18:
            return True
        return self.thru is not None and self.thru >= 18

    @property
    def is_on_course(self) -> bool:
        if self.is_finished:
            return False
        if self.end_hole is not None and 0 < self.end_hole < 18:
            return True
        return self.thru is not None and 0 < self.thru < 18


class ProviderSnapshot(BaseModel):
    """Validated envelope for one provider pull."""

    event_name: Optional[str] = None
    course_name: Optional[str] = None
    current_round: Optional[int] = None
    last_update: Optional[datetime] = None
    field: List[FieldEntry] = Field(default_factory=list)
    rankings: List[RankingEntry] = Field(default_factory=list)
    live_stats: List[LiveStat] = Field(default_factory=list)
    has_live: bool = False
    skipped_rows: int = 0

    @property
    def field_by_id(self) -> Dict[int, FieldEntry]:
        return {f.dg_id: f for f in self.field}

    @property
    def rankings_by_id(self) -> Dict[int, RankingEntry]:
        return {r.dg_id: r for r in self.rankings}

    @property
    def live_by_id(self) -> Dict[int, LiveStat]:
        return {s.dg_id: s for s in self.live_stats}

    @property
    def is_round_running(self) -> bool:
        return any(s.is_on_course for s in self.live_stats)

    @property
    def all_players_finished(self) -> bool:
        if not self.live_stats:
            return False
        return all(s.is_finished for s in self.live_stats)

    @property
    def event_completed(self) -> bool:
        """The final round is in the books for every player."""
        return (self.current_round or 0) >= 4 and self.all_players_finished


def _parse_rows(model: Type[T], rows: List[Any], collection: str) -> Tuple[List[T], int]:
    parsed = []
    skipped = 0
    for raw in rows:
        try:
            parsed.append(model.model_validate(raw))
        except ValidationError as e:
            skipped += 1
            ident = raw.get("dg_id") if isinstance(raw, dict) else None
            logger.warning(f"Skipping malformed {collection} row (dg_id={ident}): {e.error_count()} error(s)")
    return parsed, skipped


def _require_list(payload: Any, key: str, name: str) -> List[Any]:
    if not isinstance(payload, Mapping):
        raise MalformedSnapshotError(f"{name} payload is not an object")
    rows = payload.get(key)
    if not isinstance(rows, list):
        raise MalformedSnapshotError(f"{name} payload has no '{key}' list")
    return rows


def parse_snapshot(
    field_updates: Any,
    rankings: Any,
    in_play: Optional[Any] = None,
) -> ProviderSnapshot:
    """
    Validate raw provider payloads into a ProviderSnapshot.

    Raises MalformedSnapshotError when a payload is missing its collection.
    """
    field_rows = _require_list(field_updates, "field", "field-updates")
    ranking_rows = _require_list(rankings, "rankings", "rankings")

    field_entries, skipped_field = _parse_rows(FieldEntry, field_rows, "field")
    ranking_entries, skipped_rankings = _parse_rows(RankingEntry, ranking_rows, "rankings")

    live_entries: List[LiveStat] = []
    skipped_live = 0
    info: Mapping = {}
    if in_play is not None:
        live_rows = _require_list(in_play, "data", "in-play")
        info = in_play.get("info") or {}
        if not isinstance(info, Mapping):
            raise MalformedSnapshotError("in-play payload 'info' is not an object")
        live_entries, skipped_live = _parse_rows(LiveStat, live_rows, "live stats")

    current_round = field_updates.get("current_round")
    if not isinstance(current_round, int):
        current_round = info.get("current_round") if isinstance(info.get("current_round"), int) else None

    event_name = info.get("event_name") or field_updates.get("event_name")

    return ProviderSnapshot(
        event_name=event_name if isinstance(event_name, str) else None,
        course_name=field_updates.get("course_name") if isinstance(field_updates.get("course_name"), str) else None,
        current_round=current_round,
        last_update=parse_timestamp(info.get("last_update")),
        field=field_entries,
        rankings=ranking_entries,
        live_stats=live_entries,
        has_live=in_play is not None,
        skipped_rows=skipped_field + skipped_rankings + skipped_live,
    )


# =============================================================================
# Feed helpers
# =============================================================================

def normalize_player_name(raw: str) -> str:
    """Turn the feed's 'Last, First' into 'First Last'."""
    trimmed = " ".join(raw.split())
    if "," not in trimmed:
        return trimmed
    parts = [p.strip() for p in trimmed.split(",") if p.strip()]
    if len(parts) < 2:
        return trimmed
    last = parts[0]
    first = ", ".join(parts[1:])
    return " ".join(f"{first} {last}".split())


def normalize_skill_estimate(skill_estimate: Optional[float]) -> float:
    """Map a skill estimate (strokes vs. field) onto a 0-150 golfer rating."""
    if skill_estimate is None or not math.isfinite(skill_estimate):
        return 0.0
    x = skill_estimate
    if x < -1.5:
        raw = 5 + ((x + 1.5) / 1.5) * 5
        return max(0.0, min(5.0, round(raw, 2)))
    if x <= 2:
        raw = 5 + ((x + 1.5) / 3.5) * 95
        return max(0.0, round(raw, 2))
    raw = 100 + 20 * math.sqrt((x - 2) / 1.5)
    return min(150.0, round(raw, 2))


def infer_par(live_stats: List[LiveStat]) -> Optional[int]:
    """Infer course par from completed round totals against score to par."""
    counts: Counter = Counter()
    for stat in live_stats:
        rounds = [r for r in stat.rounds.values() if r is not None]
        if len(rounds) < 2 or stat.current_score is None:
            continue
        raw_par = (sum(rounds) - stat.current_score) / len(rounds)
        rounded = round(raw_par)
        if abs(raw_par - rounded) > 0.25:
            continue
        counts[rounded] += 1
    if not counts:
        return None
    return counts.most_common(1)[0][0]


EVENT_STOP_WORDS = {
    "the", "a", "an", "and", "of", "at", "in", "on", "for", "to", "by",
    "presented", "championship", "tournament", "cup", "classic",
}


def normalize_event_tokens(name: str) -> List[str]:
    """Meaningful lowercase tokens of an event name."""
    text = re.sub(r"[^a-z0-9\s]", " ", name.lower().replace("&", " and "))
    tokens = []
    for word in text.split():
        if word.endswith("s") and len(word) > 3:
            word = word[:-1]
        if len(word) <= 1 or word.isdigit() or word in EVENT_STOP_WORDS:
            continue
        tokens.append(word)
    return tokens


@dataclass
class EventMatch:
    """Result of comparing a scheduled tournament name with the feed's event."""
    ok: bool
    score: float
    intersection: List[str] = field(default_factory=list)


def event_name_compatible(expected: str, actual: str) -> EventMatch:
    """Whether the provider is reporting the tournament we expect."""
    expected_norm = " ".join(re.sub(r"[^a-z0-9\s]", " ", expected.lower()).split())
    actual_norm = " ".join(re.sub(r"[^a-z0-9\s]", " ", actual.lower()).split())
    if expected_norm and actual_norm and (expected_norm in actual_norm or actual_norm in expected_norm):
        return EventMatch(ok=True, score=1.0)

    expected_tokens = set(normalize_event_tokens(expected))
    actual_tokens = set(normalize_event_tokens(actual))
    intersection = sorted(expected_tokens & actual_tokens)
    denom = max(len(expected_tokens), len(actual_tokens), 1)
    score = len(intersection) / denom
    ok = score >= 0.6 or (len(intersection) >= 2 and score >= 0.5)
    return EventMatch(ok=ok, score=score, intersection=intersection)
