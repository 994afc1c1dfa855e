"""
Tests for api.py - Data Golf API client.
"""

import json
from pathlib import Path
from unittest.mock import patch, MagicMock

import pytest
import requests

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from pgc_engine.api import DataGolfAPI, get_api
from pgc_engine.exceptions import MalformedSnapshotError, ProviderError


def make_api(api_key="valid_key", cached=None, base_url="https://feeds.datagolf.com"):
    """Client with a mocked config and a mocked cache store."""
    mock_db = MagicMock()
    mock_db.get_cache.return_value = cached
    with patch('pgc_engine.api.get_config') as mock_config:
        mock_config.return_value.datagolf_api_key = api_key
        mock_config.return_value.datagolf_base_url = base_url
        mock_config.return_value.tour = "pga"
        mock_config.return_value.request_timeout = 30
        return DataGolfAPI(db=mock_db)


def json_response(payload):
    response = MagicMock()
    response.json.return_value = payload
    response.raise_for_status = MagicMock()
    return response


class TestDataGolfAPIInitialization:
    """Tests for API client initialization."""

    def test_api_uses_config_key(self):
        """Test that API uses key from config."""
        with patch('pgc_engine.api.get_config') as mock_config:
            mock_config.return_value.datagolf_api_key = "config_key"
            with patch('pgc_engine.api.Database'):
                api = DataGolfAPI()
                assert api.api_key == "config_key"

    def test_api_uses_provided_key(self):
        """Test that provided key overrides config."""
        with patch('pgc_engine.api.get_config') as mock_config:
            mock_config.return_value.datagolf_api_key = "config_key"
            with patch('pgc_engine.api.Database'):
                api = DataGolfAPI(api_key="provided_key")
                assert api.api_key == "provided_key"

    def test_get_api_shares_database(self):
        """Test that get_api hands the given store to the client."""
        mock_db = MagicMock()
        with patch('pgc_engine.api.get_config') as mock_config:
            mock_config.return_value.datagolf_api_key = "config_key"
            api = get_api(mock_db)
        assert api.db is mock_db


class TestAPIKeyValidation:
    """Tests for API key validation."""

    def test_request_raises_error_without_api_key(self):
        """Test that a missing key is a provider failure, raised before any request."""
        api = make_api(api_key="")
        api._session.get = MagicMock()

        with pytest.raises(ProviderError) as exc_info:
            api._request("/field-updates")

        api._session.get.assert_not_called()
        assert "DATAGOLF_API_KEY not configured" in str(exc_info.value)
        assert "datagolf.com/api-access" in str(exc_info.value)

    def test_key_is_sent_as_parameter(self):
        """Test that the key travels as a query parameter."""
        api = make_api()
        api._session.get = MagicMock(return_value=json_response({"field": []}))

        api._request("/field-updates", params={"tour": "pga"})

        _, kwargs = api._session.get.call_args
        assert kwargs["params"] == {"tour": "pga", "key": "valid_key"}
        assert kwargs["timeout"] == 30

    def test_url_comes_from_config(self):
        """Test that the configured base URL is used, trailing slash trimmed."""
        api = make_api(base_url="http://localhost:8080/")
        api._session.get = MagicMock(return_value=json_response({"field": []}))

        api._request("/field-updates")

        args, _ = api._session.get.call_args
        assert args[0] == "http://localhost:8080/field-updates"


class TestRequestFailures:
    """Tests for provider failures. There is no retry; the next tick is the retry."""

    def test_request_exception_raises_provider_error(self):
        """Test that a transport failure becomes a ProviderError."""
        api = make_api()
        api._session.get = MagicMock(side_effect=requests.RequestException("Connection failed"))

        with pytest.raises(ProviderError):
            api._request("/preds/in-play")

        assert api._session.get.call_count == 1
        assert "Connection failed" in api.last_error

    def test_http_error_raises_provider_error(self):
        """Test that a non-2xx response becomes a ProviderError."""
        api = make_api()
        response = MagicMock()
        response.raise_for_status.side_effect = requests.HTTPError("503 Server Error")
        api._session.get = MagicMock(return_value=response)

        with pytest.raises(ProviderError) as exc_info:
            api._request("/preds/in-play")

        assert "503" in str(exc_info.value)

    def test_json_decode_error_raises_provider_error(self):
        """Test that an unparseable body becomes a ProviderError."""
        api = make_api()
        response = MagicMock()
        response.raise_for_status = MagicMock()
        response.json.side_effect = json.JSONDecodeError("error", "doc", 0)
        api._session.get = MagicMock(return_value=response)

        with pytest.raises(ProviderError):
            api._request("/field-updates")

    def test_successful_request_clears_last_error(self):
        api = make_api()
        api.last_error = "old failure"
        api._session.get = MagicMock(return_value=json_response({"ok": True}))

        assert api._request("/field-updates") == {"ok": True}
        assert api.last_error == ""


class TestAPICaching:
    """Tests for API response caching."""

    def test_returns_cached_rankings(self):
        """Test that cached rankings are returned without a request."""
        api = make_api(cached={"rankings": []})
        api._session = MagicMock()

        assert api.get_dg_rankings() == {"rankings": []}
        api._session.get.assert_not_called()

    def test_caches_rankings_response(self):
        """Test that rankings responses are cached."""
        api = make_api()
        api._session.get = MagicMock(return_value=json_response({"rankings": [{"dg_id": 1}]}))

        api.get_dg_rankings()

        api.db.set_cache.assert_called_once()
        assert api.db.set_cache.call_args[0][1] == {"rankings": [{"dg_id": 1}]}

    def test_live_stats_are_never_cached(self):
        """Test that live scoring always goes to the provider."""
        api = make_api(cached={"stale": True})
        api._session.get = MagicMock(return_value=json_response({"info": {}, "data": []}))

        assert api.get_live_in_play() == {"info": {}, "data": []}
        api.db.get_cache.assert_not_called()
        api.db.set_cache.assert_not_called()


class TestSnapshot:
    """Tests for assembling a provider snapshot."""

    def _route(self, payloads):
        def get(url, params=None, timeout=None):
            for endpoint, payload in payloads.items():
                if url.endswith(endpoint):
                    return json_response(payload)
            raise AssertionError(f"unexpected url {url}")
        return get

    def test_snapshot_with_live_stats(self, field_updates, rankings, in_play_round_one):
        api = make_api()
        api._session.get = MagicMock(side_effect=self._route({
            "/field-updates": field_updates,
            "/preds/get-dg-rankings": rankings,
            "/preds/in-play": in_play_round_one,
        }))

        snapshot = api.get_snapshot()

        assert snapshot.event_name == "RBC Heritage"
        assert len(snapshot.field) == 6
        assert len(snapshot.live_stats) == 6
        assert api._session.get.call_count == 3

    def test_snapshot_without_live_stats(self, field_updates, rankings):
        api = make_api()
        api._session.get = MagicMock(side_effect=self._route({
            "/field-updates": field_updates,
            "/preds/get-dg-rankings": rankings,
        }))

        snapshot = api.get_snapshot(include_live=False)

        assert not snapshot.has_live
        assert api._session.get.call_count == 2

    def test_malformed_payload(self, rankings):
        api = make_api()
        api._session.get = MagicMock(side_effect=self._route({
            "/field-updates": {"message": "no event this week"},
            "/preds/get-dg-rankings": rankings,
        }))

        with pytest.raises(MalformedSnapshotError):
            api.get_snapshot(include_live=False)


class TestHealthCheck:
    """Tests for API health check."""

    def test_health_check_returns_false_without_key(self):
        """Test health check returns False when API key missing."""
        api = make_api(api_key="")
        assert api.health_check() is False

    def test_health_check_returns_true_on_success(self):
        """Test health check returns True on successful API call."""
        api = make_api()
        mock_response = MagicMock()
        mock_response.status_code = 200
        api._session.get = MagicMock(return_value=mock_response)

        assert api.health_check() is True

    def test_health_check_returns_false_on_failure(self):
        """Test health check returns False on API failure."""
        api = make_api()
        mock_response = MagicMock()
        mock_response.status_code = 401
        api._session.get = MagicMock(return_value=mock_response)

        assert api.health_check() is False

    def test_health_check_returns_false_on_exception(self):
        """Test health check returns False on request exception."""
        api = make_api()
        api._session.get = MagicMock(side_effect=requests.RequestException("Failed"))

        assert api.health_check() is False
