"""Collection pipeline: fetch every source, derive composite rows, upsert."""

import math
import time
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field, replace
from functools import partial
from typing import Any, Optional

from src.database.store import MarketDataStore, StoreError
from src.models.market_data import RawQuote
from src.services.asset_registry import ASSET_REGISTRY
from src.services.market_data_aggregator import (
    ECOS_SERIES,
    FuelPrices,
    FxSnapshot,
    MarketDataAggregator,
)
from src.utils.config import config
from src.utils.event_store import (
    COLLECTION_COMPLETE,
    COLLECTION_ERROR,
    COLLECTION_START,
    SOURCE_FETCH,
    EventStore,
)
from src.utils.fx_rate_cell import FxRateCell
from src.utils.logger import StructuredLogger
from src.utils.trace_context import bind_context, collection_trace, get_current_trace

structured_logger = StructuredLogger("CollectionPipeline")

Source = Callable[[], Any]

FX_SOURCE = "fx"
FX_PREVIOUS_SOURCE = "fx_previous"
USDKRW_QUOTE_SOURCE = "usdkrw_quote"
FUEL_SOURCE = "fuel"

# Quote API symbols whose change is a relative percent
QUOTE_SYMBOLS = {
    USDKRW_QUOTE_SOURCE: "KRW=X",
    "kospi": "^KS11",
    "kosdaq": "^KQ11",
    "sp500": "^GSPC",
    "nasdaq": "^IXIC",
    "dowjones": "^DJI",
    "gold": "GC=F",
    "silver": "SI=F",
}

# Quote API yields whose change is in percentage points
RATE_SYMBOLS = {
    "bonds": "^TNX",
    "bonds2y": "2YY=F",
}

CRYPTO_IDS = ("bitcoin", "ethereum")

CROSS_CURRENCIES = {
    "jpykrw": "JPY",
    "cnykrw": "CNY",
    "eurkrw": "EUR",
}

USD_METALS = ("gold", "silver")

# Sources whose result is stored as-is under the same id
DIRECT_ASSETS = (
    "kospi",
    "kosdaq",
    "sp500",
    "nasdaq",
    "dowjones",
    "bonds",
    "bonds2y",
    *CRYPTO_IDS,
    "kbrealestate",
    "feargreed",
    *ECOS_SERIES,
)


def build_default_sources(aggregator: MarketDataAggregator) -> dict[str, Source]:
    """Map source names to zero-argument fetch callables."""
    sources: dict[str, Source] = {
        FX_SOURCE: aggregator.fetch_exchange_rates,
        FX_PREVIOUS_SOURCE: aggregator.fetch_previous_rates,
    }
    for name, symbol in QUOTE_SYMBOLS.items():
        sources[name] = partial(aggregator.fetch_quote, symbol)
    for name, symbol in RATE_SYMBOLS.items():
        sources[name] = partial(aggregator.fetch_rate_quote, symbol)
    for coin_id in CRYPTO_IDS:
        sources[coin_id] = partial(aggregator.fetch_crypto, coin_id)
    sources[FUEL_SOURCE] = aggregator.fetch_fuel
    sources["kbrealestate"] = aggregator.fetch_real_estate
    sources["feargreed"] = aggregator.fetch_fear_greed
    for name, series in ECOS_SERIES.items():
        sources[name] = partial(aggregator.fetch_ecos, series)
    return sources


def is_valid_update(quote: Any) -> bool:
    """Only quotes with a finite price may overwrite a stored row."""
    return isinstance(quote, RawQuote) and isinstance(quote.price, (int, float)) and math.isfinite(
        quote.price
    )


def _relative_change(price: float, previous: Optional[float]) -> float:
    if previous is None or previous <= 0:
        return 0.0
    return (price - previous) / previous * 100


def _cross_quote(fx: FxSnapshot, currency: str) -> Optional[RawQuote]:
    price = fx.krw_per(currency)
    if price is None:
        return None
    previous = fx.krw_per(currency, previous=True)
    return RawQuote(
        price=price,
        change=_relative_change(price, previous),
        previous_close=previous,
    )


@dataclass
class CollectionResult:
    """Outcome of one collection cycle."""

    count: int
    categories: list[str] = field(default_factory=list)
    unavailable_sources: list[str] = field(default_factory=list)
    duration_ms: float = 0.0
    trace_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "categories": list(self.categories),
            "unavailable_sources": list(self.unavailable_sources),
            "duration_ms": self.duration_ms,
            "trace_id": self.trace_id,
        }


class CollectionPipeline:
    """Runs one collection cycle against every configured source."""

    def __init__(
        self,
        sources: Mapping[str, Source] | None = None,
        fx_cell: FxRateCell | None = None,
        event_store: EventStore | None = None,
        max_workers: int | None = None,
    ):
        """
        Initialize the pipeline.

        Args:
            sources: Source name to fetch callable (defaults to every upstream API)
            fx_cell: Last-known USD/KRW rate shared across cycles
            event_store: EventStore instance for tracking runs
            max_workers: Thread pool size for the fan-out
        """
        self.sources = dict(sources) if sources is not None else build_default_sources(
            MarketDataAggregator()
        )
        self.fx_cell = fx_cell or FxRateCell()
        self.event_store = event_store
        self.max_workers = max_workers or config.collector.max_workers

    def run(self, store: MarketDataStore, trigger: str = "manual") -> CollectionResult:
        """
        Execute one collection cycle under its own trace ID.

        Source outages are not errors: a cycle where every source fails
        completes with a count of zero and leaves stored rows untouched.

        Args:
            store: Store to seed the FX rate from and write into
            trigger: What started the run ("cron", "manual", "scheduler")

        Returns:
            CollectionResult with the categories written

        Raises:
            StoreError: If the store cannot be read or written
        """
        with collection_trace() as trace_id:
            return self._run_cycle(store, trigger, trace_id)

    def _run_cycle(self, store: MarketDataStore, trigger: str, trace_id: str) -> CollectionResult:
        start_time = time.time()

        structured_logger.info(
            "Starting collection",
            context={"trigger": trigger, "sources": len(self.sources)},
        )
        self._record(
            COLLECTION_START,
            "Starting collection",
            {"trigger": trigger, "sources": list(self.sources)},
        )

        try:
            results = self.fetch_all()
            unavailable = [name for name, value in results.items() if value is None]

            if self.fx_cell.get() is None:
                self._seed_fx_rate(store)

            updates = self.derive_updates(results)
            payloads = {
                category: quote.to_payload()
                for category, quote in updates.items()
                if is_valid_update(quote)
            }
            categories = store.upsert_many(payloads)
        except StoreError as e:
            duration_ms = (time.time() - start_time) * 1000
            structured_logger.error(
                f"Collection failed: {e}",
                context={"trigger": trigger, "duration_ms": duration_ms},
                exception=e,
            )
            self._record(
                COLLECTION_ERROR,
                "Collection failed",
                {"trigger": trigger, "error_type": type(e).__name__, "error_message": str(e)},
                duration_ms,
            )
            raise

        duration_ms = (time.time() - start_time) * 1000
        result = CollectionResult(
            count=len(categories),
            categories=categories,
            unavailable_sources=unavailable,
            duration_ms=duration_ms,
            trace_id=trace_id,
        )

        structured_logger.info(
            f"Collection completed: {result.count} categories written",
            context={
                "trigger": trigger,
                "count": result.count,
                "unavailable_sources": unavailable,
                "duration_ms": duration_ms,
            },
        )
        self._record(
            COLLECTION_COMPLETE,
            "Collection completed",
            {
                "trigger": trigger,
                "count": result.count,
                "categories": categories,
                "unavailable_sources": unavailable,
                "status": "success",
            },
            duration_ms,
        )
        return result

    def fetch_all(self) -> dict[str, Any]:
        """
        Call every source concurrently and wait for all of them to settle.

        Returns:
            Source name to result; None for a source that failed or raised
        """
        if not self.sources:
            return {}

        workers = max(1, min(self.max_workers, len(self.sources)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="collector") as executor:
            futures = {
                name: executor.submit(bind_context(self._call_source), name, source)
                for name, source in self.sources.items()
            }
            wait(futures.values())

        return {name: future.result() for name, future in futures.items()}

    def _call_source(self, name: str, source: Source) -> Any:
        start_time = time.time()
        try:
            value = source()
        except Exception as e:
            structured_logger.error(
                f"Source {name} raised",
                context={"source": name},
                exception=e,
            )
            value = None

        duration_ms = (time.time() - start_time) * 1000
        status = "success" if value is not None else "failed"
        self._record(
            SOURCE_FETCH,
            f"Fetched {name}",
            {"source": name, "status": status},
            duration_ms,
        )
        return value

    def derive_updates(self, results: Mapping[str, Any]) -> dict[str, RawQuote]:
        """
        Turn settled source results into one quote per asset category.

        Refreshes the FX cell whenever a fresh USD/KRW value is available.

        Returns:
            Quotes keyed by category in registry order; may still contain
            quotes with non-finite prices
        """
        updates: dict[str, RawQuote] = {}

        fx = results.get(FX_SOURCE)
        if not isinstance(fx, FxSnapshot):
            fx = None
        previous_rates = results.get(FX_PREVIOUS_SOURCE)
        if fx is not None and fx.previous_rates is None and isinstance(previous_rates, dict):
            fx = replace(fx, previous_rates=previous_rates)

        usdkrw = self._derive_usdkrw(fx, results.get(USDKRW_QUOTE_SOURCE))
        if usdkrw is not None:
            updates["usdkrw"] = usdkrw
            if is_valid_update(usdkrw):
                self.fx_cell.set(usdkrw.price)

        if fx is not None:
            for asset_id, currency in CROSS_CURRENCIES.items():
                cross = _cross_quote(fx, currency)
                if cross is not None:
                    updates[asset_id] = cross

        for asset_id in DIRECT_ASSETS:
            value = results.get(asset_id)
            if isinstance(value, RawQuote):
                updates[asset_id] = value

        fx_rate = self.fx_cell.get()
        for asset_id in USD_METALS:
            value = results.get(asset_id)
            if isinstance(value, RawQuote):
                updates[asset_id] = replace(value, fx_rate=fx_rate) if fx_rate else value

        spread = self._derive_yield_spread(results.get("bonds"), results.get("bonds2y"))
        if spread is not None:
            updates["yieldspread"] = spread

        fuel = results.get(FUEL_SOURCE)
        if isinstance(fuel, FuelPrices):
            if fuel.gasoline is not None:
                updates["gasoline"] = fuel.gasoline
            if fuel.diesel is not None:
                updates["diesel"] = fuel.diesel

        order = {asset_id: index for index, asset_id in enumerate(ASSET_REGISTRY.ids())}
        return dict(sorted(updates.items(), key=lambda item: order.get(item[0], len(order))))

    @staticmethod
    def _derive_usdkrw(fx: FxSnapshot | None, quote: Any) -> Optional[RawQuote]:
        """Price from the FX base when present, change from the KRW=X quote."""
        if not isinstance(quote, RawQuote):
            quote = None

        base_price = fx.krw_per("USD") if fx is not None else None
        if base_price is None:
            return quote

        if quote is not None:
            return RawQuote(
                price=base_price,
                change=quote.change,
                previous_close=quote.previous_close,
                chart_series=quote.chart_series,
            )
        return _cross_quote(fx, "USD")

    @staticmethod
    def _derive_yield_spread(long_leg: Any, short_leg: Any) -> Optional[RawQuote]:
        """Long minus short yield; each leg's previous value is rebuilt from its own change."""
        if not isinstance(long_leg, RawQuote) or not isinstance(short_leg, RawQuote):
            return None

        spread = long_leg.price - short_leg.price
        previous = (long_leg.price - long_leg.change) - (short_leg.price - short_leg.change)
        return RawQuote(price=spread, change=spread - previous, previous_close=previous)

    def _seed_fx_rate(self, store: MarketDataStore) -> None:
        """Fill an empty FX cell from the stored usdkrw row."""
        record = store.get("usdkrw")
        if record is None:
            return
        try:
            stored = RawQuote.from_payload(record.payload)
        except ValueError:
            return
        if self.fx_cell.seed(stored.price):
            structured_logger.debug(
                "Seeded FX rate from store",
                context={"usdkrw": stored.price},
            )

    def _record(
        self,
        event_type: str,
        message: str,
        context: dict[str, Any],
        duration_ms: float | None = None,
    ) -> None:
        if self.event_store is None:
            return
        self.event_store.record(
            trace_id=get_current_trace() or "",
            event_type=event_type,
            message=message,
            context=context,
            duration_ms=duration_ms,
        )
