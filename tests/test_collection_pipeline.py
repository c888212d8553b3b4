"""Tests for the collection pipeline."""

import threading
from unittest.mock import Mock

import pytest
from hypothesis import given
from hypothesis import strategies as st

from src.database.store import StoreError
from src.models.market_data import RawQuote
from src.services.asset_registry import ASSET_REGISTRY
from src.services.collection_pipeline import (
    FUEL_SOURCE,
    FX_PREVIOUS_SOURCE,
    FX_SOURCE,
    USDKRW_QUOTE_SOURCE,
    build_default_sources,
    is_valid_update,
)
from src.services.market_data_aggregator import FuelPrices, FxSnapshot, MarketDataAggregator
from src.utils.event_store import (
    COLLECTION_COMPLETE,
    COLLECTION_ERROR,
    COLLECTION_START,
    SOURCE_FETCH,
)
from src.utils.fx_rate_cell import FxRateCell
from src.utils.trace_context import get_current_trace


def _returns(value):
    return lambda: value


def _raises(error):
    def source():
        raise error

    return source


FX = FxSnapshot(
    rates={"KRW": 1380.0, "JPY": 150.0, "CNY": 7.2, "EUR": 0.92},
    previous_rates={"KRW": 1370.0, "JPY": 149.0, "CNY": 7.2, "EUR": 0.92},
    source="ExchangeRate-API",
)


class TestRun:
    def test_only_valid_updates_overwrite_stored_rows(self, make_pipeline, store):
        store.upsert_many({"kospi": {"price": 2500.0, "change": 0.1}})
        pipeline = make_pipeline(
            {
                "kospi": _raises(RuntimeError("boom")),
                "sp500": _returns(RawQuote(price=5800.0, change=0.4)),
                "bonds": _returns(RawQuote(price=float("nan"), change=0.0)),
            }
        )

        result = pipeline.run(store)

        assert result.count == 1
        assert result.categories == ["sp500"]
        assert result.unavailable_sources == ["kospi"]
        assert store.get("kospi").payload == {"price": 2500.0, "change": 0.1}
        assert store.get("bonds") is None

    def test_total_outage_is_not_an_error(self, make_pipeline, store):
        pipeline = make_pipeline(
            {
                FX_SOURCE: _returns(None),
                "kospi": _raises(TimeoutError()),
                "bitcoin": _returns(None),
            }
        )

        result = pipeline.run(store)

        assert result.count == 0
        assert result.categories == []
        assert sorted(result.unavailable_sources) == ["bitcoin", "fx", "kospi"]
        assert store.read_all() == []

    def test_store_failure_propagates(self, make_pipeline, event_store):
        store = Mock()
        store.get.return_value = None
        store.upsert_many.side_effect = StoreError("disk full")
        pipeline = make_pipeline({"kospi": _returns(RawQuote(price=2500.0))})

        with pytest.raises(StoreError):
            pipeline.run(store)

        errors = event_store.recent(event_types=[COLLECTION_ERROR])
        assert len(errors) == 1
        assert errors[0].context["error_type"] == "StoreError"
        assert get_current_trace() is None

    def test_events_share_the_cycle_trace(self, make_pipeline, store, event_store):
        pipeline = make_pipeline(
            {
                "kospi": _returns(RawQuote(price=2500.0)),
                "kosdaq": _returns(None),
            }
        )

        result = pipeline.run(store, trigger="cron")

        events = event_store.for_trace(result.trace_id)
        types = [event.event_type for event in events]
        assert types[0] == COLLECTION_START
        assert types[-1] == COLLECTION_COMPLETE
        assert types.count(SOURCE_FETCH) == 2

        fetches = {e.context["source"]: e.context["status"] for e in events if e.event_type == SOURCE_FETCH}
        assert fetches == {"kospi": "success", "kosdaq": "failed"}
        assert events[-1].context["trigger"] == "cron"
        assert events[-1].context["count"] == 1
        assert get_current_trace() is None

    def test_sources_run_concurrently(self, make_pipeline, store):
        barrier = threading.Barrier(3, timeout=5)

        def waiting_source():
            barrier.wait()
            return RawQuote(price=1.0)

        pipeline = make_pipeline({name: waiting_source for name in ("kospi", "kosdaq", "sp500")})

        result = pipeline.run(store)

        assert result.count == 3


class TestDerivedAssets:
    def test_usdkrw_price_from_fx_change_from_quote(self, make_pipeline):
        cell = FxRateCell()
        pipeline = make_pipeline({}, fx_cell=cell)

        updates = pipeline.derive_updates(
            {
                FX_SOURCE: FX,
                USDKRW_QUOTE_SOURCE: RawQuote(price=1379.0, change=0.4, previous_close=1374.0),
            }
        )

        assert updates["usdkrw"].price == 1380.0
        assert updates["usdkrw"].change == 0.4
        assert updates["usdkrw"].previous_close == 1374.0
        assert cell.get() == 1380.0

    def test_usdkrw_from_fx_alone(self, make_pipeline):
        updates = make_pipeline({}).derive_updates({FX_SOURCE: FX})

        assert updates["usdkrw"].price == 1380.0
        assert updates["usdkrw"].change == pytest.approx(10 / 1370 * 100)

    def test_usdkrw_from_quote_alone(self, make_pipeline):
        quote = RawQuote(price=1379.0, change=0.4)

        updates = make_pipeline({}).derive_updates({USDKRW_QUOTE_SOURCE: quote})

        assert updates["usdkrw"] is quote

    def test_cross_rates(self, make_pipeline):
        updates = make_pipeline({}).derive_updates({FX_SOURCE: FX})

        assert updates["jpykrw"].price == pytest.approx(9.2)
        assert updates["jpykrw"].previous_close == pytest.approx(1370 / 149)
        assert updates["cnykrw"].price == pytest.approx(1380 / 7.2)
        assert updates["eurkrw"].price == pytest.approx(1380 / 0.92)

    def test_previous_day_source_supplies_cross_rate_change(self, make_pipeline):
        today = FxSnapshot(rates=FX.rates, source="ExchangeRate-API")

        updates = make_pipeline({}).derive_updates(
            {FX_SOURCE: today, FX_PREVIOUS_SOURCE: FX.previous_rates}
        )

        assert updates["usdkrw"].previous_close == 1370.0
        assert updates["jpykrw"].previous_close == pytest.approx(1370.0 / 149.0)

    def test_missing_previous_day_leaves_cross_rates_flat(self, make_pipeline):
        today = FxSnapshot(rates=FX.rates, source="ExchangeRate-API")

        updates = make_pipeline({}).derive_updates({FX_SOURCE: today, FX_PREVIOUS_SOURCE: None})

        assert updates["eurkrw"].change == 0.0
        assert updates["eurkrw"].previous_close is None

    def test_metals_carry_current_rate(self, make_pipeline):
        updates = make_pipeline({}).derive_updates(
            {FX_SOURCE: FX, "gold": RawQuote(price=2650.0, change=0.5)}
        )

        assert updates["gold"].fx_rate == 1380.0

    def test_metals_use_seeded_rate(self, make_pipeline, store):
        store.upsert_many({"usdkrw": {"price": 1390.0, "change": 0.0}})
        cell = FxRateCell()
        pipeline = make_pipeline({"silver": _returns(RawQuote(price=31.0))}, fx_cell=cell)

        pipeline.run(store)

        assert cell.get() == 1390.0
        assert store.get("silver").payload["fxRate"] == 1390.0

    def test_yield_spread(self, make_pipeline):
        updates = make_pipeline({}).derive_updates(
            {
                "bonds": RawQuote(price=4.30, change=0.05),
                "bonds2y": RawQuote(price=4.10, change=-0.02),
            }
        )

        spread = updates["yieldspread"]
        assert spread.price == pytest.approx(0.20)
        assert spread.previous_close == pytest.approx(0.13)
        assert spread.change == pytest.approx(0.07)

    def test_yield_spread_needs_both_legs(self, make_pipeline):
        updates = make_pipeline({}).derive_updates({"bonds": RawQuote(price=4.30)})

        assert "yieldspread" not in updates
        assert "bonds" in updates

    def test_fuel_is_split(self, make_pipeline):
        fuel = FuelPrices(gasoline=RawQuote(price=1650.0), diesel=None)

        updates = make_pipeline({}).derive_updates({FUEL_SOURCE: fuel})

        assert updates["gasoline"].price == 1650.0
        assert "diesel" not in updates

    def test_updates_follow_registry_order(self, make_pipeline):
        updates = make_pipeline({}).derive_updates(
            {
                "bitcoin": RawQuote(price=1.0),
                FX_SOURCE: FX,
                "kospi": RawQuote(price=1.0),
            }
        )

        order = ASSET_REGISTRY.ids()
        assert list(updates) == sorted(updates, key=order.index)


class TestHelpers:
    @given(price=st.floats(allow_nan=True, allow_infinity=True))
    def test_only_finite_prices_are_valid(self, price):
        assert is_valid_update(RawQuote(price=price)) == (price == price and abs(price) != float("inf"))

    def test_non_quotes_are_invalid(self):
        assert is_valid_update(None) is False
        assert is_valid_update({"price": 1.0}) is False

    def test_default_sources_cover_every_asset(self):
        sources = build_default_sources(MarketDataAggregator())

        expected = {FX_SOURCE, FX_PREVIOUS_SOURCE, USDKRW_QUOTE_SOURCE, FUEL_SOURCE, "kospi", "cpi"}
        assert expected <= set(sources)
        assert all(callable(source) for source in sources.values())
