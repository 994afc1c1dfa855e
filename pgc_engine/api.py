"""
Data Golf API client for the PGC tour engine.
Pulls the field, rankings and live stats that make up one provider snapshot.
"""

import json
import logging
from datetime import datetime, timedelta
from typing import Dict, Optional, Any

import requests

from .config import get_config
from .database import Database
from .exceptions import ProviderError
from .snapshot import ProviderSnapshot, parse_snapshot

logger = logging.getLogger(__name__)


class DataGolfAPI:
    """Client for Data Golf API."""

    def __init__(self, api_key: Optional[str] = None, db: Optional[Database] = None):
        """Initialize API client."""
        config = get_config()
        self.api_key = api_key or config.datagolf_api_key
        self.base_url = config.datagolf_base_url.rstrip("/")
        self.tour = config.tour
        self.timeout = config.request_timeout
        self.db = db if db is not None else Database()
        self._session = requests.Session()
        self.last_error: str = ""

    def _request(self, endpoint: str, params: Optional[Dict] = None, cache_hours: int = 0) -> Any:
        """
        Make an API request, using the database cache when cache_hours > 0.

        Failures, a missing key included, raise ProviderError; the scheduler
        retries on its next tick.
        """
        if not self.api_key:
            self.last_error = "DATAGOLF_API_KEY not configured"
            raise ProviderError(
                "DATAGOLF_API_KEY not configured. "
                "Set the DATAGOLF_API_KEY environment variable. "
                "Get a key at https://datagolf.com/api-access"
            )

        params = dict(params or {})
        cache_key = f"datagolf:{endpoint}:{json.dumps(params, sort_keys=True)}"
        if cache_hours > 0:
            cached = self.db.get_cache(cache_key)
            if cached:
                logger.debug(f"Using cached data for {endpoint}")
                return cached

        url = f"{self.base_url}{endpoint}"
        params["key"] = self.api_key

        try:
            response = self._session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            self.last_error = f"API request to {endpoint} failed: {e}"
            logger.error(self.last_error)
            raise ProviderError(self.last_error) from e

        try:
            data = response.json()
        except ValueError as e:
            self.last_error = f"Failed to parse JSON from {endpoint}: {e}"
            logger.error(self.last_error)
            raise ProviderError(self.last_error) from e

        if cache_hours > 0 and data:
            self.db.set_cache(cache_key, data, datetime.now() + timedelta(hours=cache_hours))
        self.last_error = ""
        return data

    def get_field_updates(self) -> Dict[str, Any]:
        """Current event field with tee times."""
        return self._request(
            "/field-updates",
            params={"tour": self.tour, "file_format": "json"},
        )

    def get_dg_rankings(self) -> Dict[str, Any]:
        """World rank and skill estimate for every ranked golfer."""
        return self._request(
            "/preds/get-dg-rankings",
            params={"file_format": "json"},
            cache_hours=12
        )

    def get_live_in_play(self) -> Dict[str, Any]:
        """Live scoring for the current event. Never cached."""
        return self._request(
            "/preds/in-play",
            params={
                "tour": self.tour,
                "dead_heat": "no",
                "odds_format": "percent",
                "file_format": "json"
            },
        )

    def get_snapshot(self, include_live: bool = True) -> ProviderSnapshot:
        """
        Pull field, rankings and (optionally) live stats into one snapshot.

        Raises:
            ProviderError: a request failed
            MalformedSnapshotError: a payload is missing its collection
        """
        field_updates = self.get_field_updates()
        rankings = self.get_dg_rankings()
        in_play = self.get_live_in_play() if include_live else None
        snapshot = parse_snapshot(field_updates, rankings, in_play)
        logger.info(
            f"Snapshot for {snapshot.event_name or 'unknown event'}: "
            f"{len(snapshot.field)} entrants, {len(snapshot.live_stats)} live rows, "
            f"{snapshot.skipped_rows} skipped"
        )
        return snapshot

    def health_check(self) -> bool:
        """Check if API is accessible and key is valid."""
        if not self.api_key:
            return False

        try:
            response = self._session.get(
                f"{self.base_url}/get-player-list",
                params={"key": self.api_key, "file_format": "json"},
                timeout=10
            )
            return response.status_code == 200
        except requests.RequestException:
            return False


def get_api(db: Optional[Database] = None) -> DataGolfAPI:
    """Get configured API client."""
    return DataGolfAPI(db=db)
