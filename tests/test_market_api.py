"""Integration tests for the HTTP endpoints."""

from unittest.mock import Mock, patch

import pytest

from main import app, create_app
from src.api.dependencies import get_event_store, get_market_service
from src.database.store import StoreError
from src.models.market_data import RawQuote
from src.services.asset_registry import ASSET_REGISTRY
from src.utils.config import config


def bearer(token=None):
    return {"Authorization": f"Bearer {token or config.collector.cron_secret}"}


@pytest.fixture
def spy_source():
    return Mock(return_value=RawQuote(price=2600.0, change=0.8))


@pytest.fixture
def collector(make_pipeline, override_pipeline, spy_source, test_client):
    """Collector endpoint wired to a pipeline with one spy source."""
    return override_pipeline(make_pipeline({"kospi": spy_source}))


class TestCollectorEndpoint:
    @pytest.mark.parametrize("method", ["get", "post"])
    def test_bearer_secret_runs_collection(self, test_client, collector, spy_source, method):
        response = getattr(test_client, method)("/api/cron", headers=bearer())

        assert response.status_code == 200
        assert response.json() == {"message": "Success", "count": 1, "categories": ["kospi"]}
        spy_source.assert_called_once()

    def test_missing_credentials_are_rejected_before_fetching(
        self, test_client, collector, spy_source
    ):
        response = test_client.get("/api/cron")

        assert response.status_code == 401
        assert response.json()["error"] == "UNAUTHORIZED"
        assert response.headers["WWW-Authenticate"] == "Bearer"
        spy_source.assert_not_called()

    def test_wrong_secret_is_rejected(self, test_client, collector, spy_source):
        response = test_client.post("/api/cron", headers=bearer("not-the-secret"))

        assert response.status_code == 401
        spy_source.assert_not_called()

    def test_manual_key(self, test_client, collector, spy_source):
        with patch.object(config.collector, "manual_key", "manual-override"):
            accepted = test_client.get("/api/cron", params={"key": "manual-override"})
            rejected = test_client.get("/api/cron", params={"key": "guess"})

        assert accepted.status_code == 200
        assert rejected.status_code == 401
        spy_source.assert_called_once()

    def test_manual_key_disabled_when_unset(self, test_client, collector, spy_source):
        with patch.object(config.collector, "manual_key", None):
            response = test_client.get("/api/cron", params={"key": ""})

        assert response.status_code == 401
        spy_source.assert_not_called()

    def test_outage_still_succeeds(self, test_client, make_pipeline, override_pipeline):
        override_pipeline(make_pipeline({"kospi": Mock(side_effect=TimeoutError())}))

        response = test_client.post("/api/cron", headers=bearer())

        assert response.status_code == 200
        assert response.json()["count"] == 0

    def test_store_failure_is_500(self, test_client, override_pipeline):
        pipeline = Mock()
        pipeline.run.side_effect = StoreError("database is locked")
        override_pipeline(pipeline)

        response = test_client.post("/api/cron", headers=bearer())

        assert response.status_code == 500
        assert response.json()["error"] == "STORE_UNAVAILABLE"
        assert response.json()["message"] == "Market data store is unavailable"
        assert "locked" not in response.text

    def test_collected_rows_are_served(self, test_client, collector):
        test_client.post("/api/cron", headers=bearer())

        assets = test_client.get("/api/market").json()["assets"]

        kospi = next(asset for asset in assets if asset["id"] == "kospi")
        assert kospi["price"] == 2600.0
        assert kospi["status"] == "sunny"
        assert kospi["isFallback"] is False


class TestMarketEndpoint:
    def test_serves_every_asset_with_cache_header(self, test_client):
        response = test_client.get("/api/market")

        assert response.status_code == 200
        assert response.headers["Cache-Control"] == config.serving.cache_control
        body = response.json()
        assert [asset["id"] for asset in body["assets"]] == ASSET_REGISTRY.ids()
        assert body["generatedAt"].endswith("Z")

    def test_overflowing_row_falls_back_alone(self, test_client, store):
        store.upsert_many(
            {
                "jpykrw": {"price": 1e307, "change": 0.0},
                "kospi": {"price": 2600.0, "change": 0.8},
            }
        )

        response = test_client.get("/api/market")

        assert response.status_code == 200
        assets = {asset["id"]: asset for asset in response.json()["assets"]}
        assert assets["jpykrw"]["isFallback"] is True
        assert assets["kospi"]["isFallback"] is False
        assert assets["kospi"]["price"] == 2600.0

    def test_asset_shape(self, test_client):
        usdkrw = test_client.get("/api/market").json()["assets"][0]

        for key in (
            "id",
            "name",
            "category",
            "price",
            "priceDisplay",
            "change",
            "changePoints",
            "changePointsDisplay",
            "status",
            "message",
            "advice",
            "buyPrice",
            "sellPrice",
        ):
            assert key in usdkrw
        assert usdkrw["status"] in {"sunny", "cloudy", "rainy", "thunder"}

    def test_store_failure_is_500(self, test_client):
        service = Mock()
        service.get_market_data.side_effect = StoreError("no such table")
        app.dependency_overrides[get_market_service] = lambda: service

        response = test_client.get("/api/market")

        assert response.status_code == 500
        assert response.json()["error"] == "STORE_UNAVAILABLE"


class TestMarketStatusEndpoint:
    @pytest.mark.parametrize("asset_id", ["kospi", "kosdaq", "sp500", "nasdaq", "dowjones"])
    def test_index_status(self, test_client, asset_id):
        response = test_client.get(f"/api/market-status/{asset_id}")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] in {"open", "premarket", "afterhours", "closed"}
        assert body["label"]
        if body["status"] in {"open", "afterhours"}:
            assert "nextOpenIn" not in body

    def test_asset_without_session(self, test_client):
        response = test_client.get("/api/market-status/gold")

        assert response.status_code == 404
        assert response.json()["error"] == "ASSET_NOT_FOUND"

    def test_unknown_asset(self, test_client):
        response = test_client.get("/api/market-status/dogecoin")

        assert response.status_code == 404
        assert response.json()["details"] == {"asset_id": "dogecoin"}


class TestDebugEndpoint:
    def test_requires_collector_auth(self, test_client):
        response = test_client.get("/api/debug/collector")

        assert response.status_code == 401

    def test_reports_events_and_metrics(self, test_client, collector, event_store):
        app.dependency_overrides[get_event_store] = lambda: event_store
        test_client.post("/api/cron", headers=bearer())

        response = test_client.get("/api/debug/collector", headers=bearer(), params={"limit": 2})

        assert response.status_code == 200
        body = response.json()
        assert body["metrics"]["successful_runs"] == 1
        assert len(body["events"]) == 2
        assert body["events"][-1]["event_type"] == "collection_complete"
        assert body["scheduler"] == {"running": False}

    def test_filters_by_trace(self, test_client, collector, event_store):
        app.dependency_overrides[get_event_store] = lambda: event_store
        test_client.post("/api/cron", headers=bearer())
        trace_id = event_store.snapshot()[0].trace_id

        response = test_client.get(
            "/api/debug/collector", headers=bearer(), params={"trace_id": trace_id}
        )

        events = response.json()["events"]
        assert {event["trace_id"] for event in events} == {trace_id}
        assert len(events) == 3

    def test_limit_is_validated(self, test_client):
        response = test_client.get("/api/debug/collector", headers=bearer(), params={"limit": 0})

        assert response.status_code == 422
        assert response.json()["error"] == "VALIDATION_ERROR"


def test_health(test_client):
    response = test_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_unknown_route_uses_error_format(test_client):
    response = test_client.get("/api/nope")

    assert response.status_code == 404
    assert response.json()["error"] == "NOT_FOUND"


def test_apps_do_not_share_collector_state():
    first, second = create_app(), create_app()

    assert first.state.fx_cell is not second.state.fx_cell
    assert first.state.pipeline.fx_cell is first.state.fx_cell
    assert first.state.pipeline.event_store is first.state.event_store
    assert first.state.scheduler is None
