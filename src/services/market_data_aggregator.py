"""Source adapters for the upstream market data APIs.

Every public ``fetch_*`` method returns a populated value or None. Timeouts,
non-2xx responses and malformed payloads are logged and reported as None;
no network or parse exception escapes this module.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional
from urllib.parse import quote

import requests

from src.models.market_data import ChartPoint, RawQuote
from src.utils.config import SourceConfig, config, is_usable_key
from src.utils.logger import StructuredLogger
from src.utils.trace_context import get_current_trace

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

FX_CURRENCIES = ("KRW", "JPY", "CNY", "EUR")

CHART_WINDOW = 24

# Opinet product codes
GASOLINE_CODE = "B027"
DIESEL_CODE = "D047"

# Real-estate proxy: price index rebased onto a 25 (100M KRW) reference apartment
REAL_ESTATE_REFERENCE_PRICE = 25.0


class SourceUnavailable(Exception):
    """Raised inside an adapter when a payload cannot be used."""


@dataclass(frozen=True)
class EcosSeries:
    """One Bank of Korea statistics series."""

    stat_code: str
    item_code: str
    cycle: str  # "D" daily or "M" monthly


ECOS_SERIES: dict[str, EcosSeries] = {
    "bokrate": EcosSeries("722Y001", "0101000", "M"),
    "krbond3y": EcosSeries("817Y002", "010200000", "D"),
    "krbond10y": EcosSeries("817Y002", "010210000", "D"),
    "cpi": EcosSeries("901Y009", "0", "M"),
    "ppi": EcosSeries("901Y010", "0", "M"),
    "ccsi": EcosSeries("511Y002", "FME/99988", "M"),
}


@dataclass
class FxSnapshot:
    """USD-based rates (units of each currency per 1 USD)."""

    rates: dict[str, float]
    previous_rates: dict[str, float] | None = None
    source: str = ""

    def krw_per(self, currency: str, previous: bool = False) -> Optional[float]:
        """
        KRW per one unit of ``currency``, derived from the USD base.

        Returns:
            The cross rate, or None if either leg is missing
        """
        rates = self.previous_rates if previous else self.rates
        if not rates:
            return None
        krw = rates.get("KRW")
        if currency == "USD":
            return krw if _positive(krw) else None
        other = rates.get(currency)
        if not _positive(krw) or not _positive(other):
            return None
        return krw / other


@dataclass
class FuelPrices:
    """Nationwide average fuel prices."""

    gasoline: RawQuote | None = None
    diesel: RawQuote | None = None


def _positive(value: Any) -> bool:
    return isinstance(value, (int, float)) and math.isfinite(value) and value > 0


def _object(value: Any) -> dict[str, Any]:
    """``value`` if it is a JSON object, else an empty one."""
    return value if isinstance(value, dict) else {}


def _to_float(value: Any) -> float:
    """Parse a number that may arrive as a string with thousands separators."""
    if isinstance(value, bool) or value is None:
        raise SourceUnavailable(f"not a number: {value!r}")
    if isinstance(value, str):
        value = value.replace(",", "").strip()
    try:
        result = float(value)
    except (TypeError, ValueError) as e:
        raise SourceUnavailable(f"not a number: {value!r}") from e
    if not math.isfinite(result):
        raise SourceUnavailable(f"not finite: {value!r}")
    return result


def previous_business_day(today: date) -> date:
    """The weekday before ``today`` (Friday for a Saturday, Sunday or Monday)."""
    day = today - timedelta(days=1)
    while day.weekday() >= 5:
        day -= timedelta(days=1)
    return day


def ecos_date_range(cycle: str, today: date) -> tuple[str, str]:
    """
    Start and end period identifiers for an ECOS query.

    Daily series cover the last 30 days (YYYYMMDD), monthly series the last
    twelve months (YYYYMM).
    """
    if cycle == "D":
        start = today - timedelta(days=30)
        return start.strftime("%Y%m%d"), today.strftime("%Y%m%d")
    return f"{today.year - 1}{today.month:02d}", f"{today.year}{today.month:02d}"


class MarketDataAggregator:
    """Fetches raw quotes from every upstream source."""

    def __init__(self, source_config: SourceConfig | None = None):
        """
        Initialize the aggregator with API endpoints.

        Args:
            source_config: Keys and timeout (defaults to the global config)
        """
        self.source_config = source_config or config.sources
        self.timeout = self.source_config.request_timeout
        self.exchange_rate_url = "https://api.exchangerate-api.com/v4/latest/USD"
        self.exchange_rate_fallback_url = "https://open.er-api.com/v6/latest/USD"
        self.frankfurter_base_url = "https://api.frankfurter.app"
        self.yahoo_chart_url = "https://query1.finance.yahoo.com/v8/finance/chart"
        self.coingecko_base_url = "https://api.coingecko.com/api/v3"
        self.opinet_url = "https://www.opinet.co.kr/api/avgAllPrice.do"
        self.reb_url = "https://www.reb.or.kr/r-one/openapi/SttsApiTblData.do"
        self.ecos_base_url = "https://ecos.bok.or.kr/api/StatisticSearch"
        self.fear_greed_url = "https://api.alternative.me/fng/"
        self.logger = StructuredLogger("MarketDataAggregator")

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _get_json(
        self,
        source: str,
        url: str,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        """
        GET a JSON document.

        Returns:
            Decoded body, or None on timeout, non-2xx or invalid JSON
        """
        try:
            response = requests.get(
                url,
                params=params,
                headers={"User-Agent": USER_AGENT},
                timeout=timeout or self.timeout,
            )
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            self.logger.warning(
                f"Request to {source} failed",
                context={
                    "trace_id": get_current_trace(),
                    "source": source,
                    "result": "failed",
                    "error": str(e),
                },
            )
        except ValueError as e:
            self.logger.warning(
                f"Invalid JSON from {source}",
                context={
                    "trace_id": get_current_trace(),
                    "source": source,
                    "result": "malformed",
                    "error": str(e),
                },
            )
        return None

    def _malformed(self, source: str, error: Exception, **context: Any) -> None:
        self.logger.warning(
            f"Unusable payload from {source}",
            context={
                "trace_id": get_current_trace(),
                "source": source,
                "result": "malformed",
                "error": f"{type(error).__name__}: {error}",
                **context,
            },
        )

    def _key_missing(self, source: str) -> None:
        self.logger.debug(
            f"Skipping {source}: API key not configured",
            context={"trace_id": get_current_trace(), "source": source, "result": "skipped"},
        )

    # ------------------------------------------------------------------
    # FX
    # ------------------------------------------------------------------

    def fetch_exchange_rates(self) -> Optional[FxSnapshot]:
        """
        Fetch the USD-based FX snapshot.

        Tries the primary source, then the fallback source. The previous
        business day is a separate source, see :meth:`fetch_previous_rates`.

        Returns:
            FxSnapshot, or None if neither source answered with KRW
        """
        # Both legs together stay within one request timeout
        leg_timeout = self.timeout / 2
        snapshot = None
        for source, url in (
            ("ExchangeRate-API", self.exchange_rate_url),
            ("Open ER-API", self.exchange_rate_fallback_url),
        ):
            rates = self._parse_rates(source, self._get_json(source, url, timeout=leg_timeout))
            if rates is not None:
                snapshot = FxSnapshot(rates=rates, source=source)
                break

        if snapshot is None:
            return None

        self.logger.info(
            "Fetched exchange rates",
            context={
                "trace_id": get_current_trace(),
                "source": snapshot.source,
                "result": "success",
                "usdkrw": snapshot.rates.get("KRW"),
            },
        )
        return snapshot

    def fetch_previous_rates(self, today: date | None = None) -> Optional[dict[str, float]]:
        """Best-effort USD-based rates for the previous business day."""
        day = previous_business_day(today or datetime.now(timezone.utc).date())
        data = self._get_json(
            "Frankfurter",
            f"{self.frankfurter_base_url}/{day.isoformat()}",
            params={"from": "USD", "to": ",".join(c for c in FX_CURRENCIES if c != "USD")},
        )
        return self._parse_rates("Frankfurter", data)

    def _parse_rates(self, source: str, data: Any) -> Optional[dict[str, float]]:
        if data is None:
            return None
        try:
            raw_rates = data["rates"]
            rates = {}
            for currency in FX_CURRENCIES:
                if currency in raw_rates:
                    rates[currency] = _to_float(raw_rates[currency])
            if not _positive(rates.get("KRW")):
                raise SourceUnavailable("KRW rate missing")
            return rates
        except (KeyError, TypeError, SourceUnavailable) as e:
            self._malformed(source, e)
            return None

    # ------------------------------------------------------------------
    # Quote API
    # ------------------------------------------------------------------

    def fetch_quote(self, symbol: str) -> Optional[RawQuote]:
        """
        Fetch a chart quote whose change is a relative percent.

        Args:
            symbol: Quote API symbol (e.g. "^KS11", "GC=F")
        """
        return self._fetch_chart(symbol, absolute_change=False)

    def fetch_rate_quote(self, symbol: str) -> Optional[RawQuote]:
        """
        Fetch a chart quote for a yield, reporting ``current - previous``
        in percentage points.

        Args:
            symbol: Quote API symbol (e.g. "^TNX")
        """
        return self._fetch_chart(symbol, absolute_change=True)

    def _fetch_chart(self, symbol: str, absolute_change: bool) -> Optional[RawQuote]:
        data = self._get_json(
            "Yahoo Finance",
            f"{self.yahoo_chart_url}/{quote(symbol, safe='')}",
            params={"interval": "1h", "range": "5d"},
        )
        if data is None:
            return None

        try:
            raw = self._parse_chart(data, absolute_change)
        except (
            KeyError,
            IndexError,
            TypeError,
            AttributeError,
            ValueError,
            OverflowError,
            OSError,
            SourceUnavailable,
        ) as e:
            self._malformed("Yahoo Finance", e, symbol=symbol)
            return None

        self.logger.debug(
            "Fetched quote",
            context={
                "trace_id": get_current_trace(),
                "source": "Yahoo Finance",
                "symbol": symbol,
                "result": "success",
                "price": raw.price,
                "change": raw.change,
            },
        )
        return raw

    @staticmethod
    def _parse_chart(data: Any, absolute_change: bool) -> RawQuote:
        result = data["chart"]["result"][0]
        if not isinstance(result, dict):
            raise SourceUnavailable("chart result is not an object")
        meta = _object(result.get("meta"))
        quotes = _object(result.get("indicators")).get("quote") or [{}]

        timestamps = result.get("timestamp") or []
        closes = _object(quotes[0]).get("close") or []
        bars = [
            (ts, float(close))
            for ts, close in zip(timestamps, closes)
            if isinstance(close, (int, float)) and math.isfinite(close)
        ]

        price = meta.get("regularMarketPrice")
        if not _positive(price):
            if not bars:
                raise SourceUnavailable("no price in chart")
            price = bars[-1][1]
        price = float(price)

        previous_close = meta.get("previousClose") or meta.get("regularMarketPreviousClose")
        if not _positive(previous_close):
            previous_close = bars[-2][1] if len(bars) >= 2 else None

        if previous_close is None:
            change = 0.0
        elif absolute_change:
            change = price - previous_close
        else:
            change = (price - previous_close) / previous_close * 100

        chart_series = [
            ChartPoint(
                time=datetime.fromtimestamp(ts, timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
                price=close,
            )
            for ts, close in bars[-CHART_WINDOW:]
        ]

        return RawQuote(
            price=price,
            change=change,
            previous_close=float(previous_close) if previous_close is not None else None,
            chart_series=chart_series or None,
        )

    # ------------------------------------------------------------------
    # Crypto
    # ------------------------------------------------------------------

    def fetch_crypto(self, coin_id: str) -> Optional[RawQuote]:
        """
        Fetch a KRW price and 24h relative change.

        Args:
            coin_id: CoinGecko coin id (e.g. "bitcoin")
        """
        data = self._get_json(
            "CoinGecko",
            f"{self.coingecko_base_url}/simple/price",
            params={"ids": coin_id, "vs_currencies": "krw", "include_24hr_change": "true"},
        )
        if data is None:
            return None

        try:
            coin = data[coin_id]
            price = _to_float(coin["krw"])
            change_value = coin.get("krw_24h_change")
            change = _to_float(change_value) if change_value is not None else 0.0
        except (KeyError, TypeError, SourceUnavailable) as e:
            self._malformed("CoinGecko", e, symbol=coin_id)
            return None

        return RawQuote(price=price, change=change)

    # ------------------------------------------------------------------
    # Fuel
    # ------------------------------------------------------------------

    def fetch_fuel(self) -> Optional[FuelPrices]:
        """Fetch nationwide average gasoline and diesel prices."""
        api_key = self.source_config.opinet_api_key
        if not is_usable_key(api_key):
            self._key_missing("Opinet")
            return None

        data = self._get_json("Opinet", self.opinet_url, params={"out": "json", "code": api_key})
        if data is None:
            return None

        try:
            products = data["RESULT"]["OIL"]
            if not isinstance(products, list):
                raise SourceUnavailable("OIL is not a list")
            by_code = {item.get("PRODCD"): item for item in products if isinstance(item, dict)}
            prices = FuelPrices(
                gasoline=self._parse_fuel(by_code.get(GASOLINE_CODE)),
                diesel=self._parse_fuel(by_code.get(DIESEL_CODE)),
            )
        except (KeyError, TypeError, SourceUnavailable) as e:
            self._malformed("Opinet", e)
            return None

        if prices.gasoline is None and prices.diesel is None:
            return None
        return prices

    @staticmethod
    def _parse_fuel(item: dict[str, Any] | None) -> Optional[RawQuote]:
        if item is None:
            return None
        price = _to_float(item["PRICE"])
        diff = item.get("DIFF")
        if diff in (None, ""):
            return RawQuote(price=price)

        delta = _to_float(diff)
        previous_close = price - delta
        change = delta / previous_close * 100 if previous_close > 0 else 0.0
        return RawQuote(price=price, change=change, previous_close=previous_close)

    # ------------------------------------------------------------------
    # Real estate
    # ------------------------------------------------------------------

    def fetch_real_estate(self) -> Optional[RawQuote]:
        """
        Fetch the apartment price index and turn it into a proxy price in
        units of 100M KRW (``index / 100 * 25``).
        """
        api_key = self.source_config.reb_api_key
        if not is_usable_key(api_key):
            self._key_missing("REB")
            return None

        data = self._get_json(
            "REB",
            self.reb_url,
            params={
                "STATBL_ID": "A_2024_00900",
                "DTACYCLE_CD": "YY",
                "WRTTIME_IDTFR_ID": "2022",
                "Type": "json",
                "serviceKey": api_key,
            },
        )
        if data is None:
            return None

        try:
            rows = data["SttsApiTblData"][1]["row"]
            target = next(
                (
                    row
                    for row in rows
                    if row.get("CLS_NM") == "전국"
                    or str(row.get("CLS_FULLNM") or "").startswith("전국")
                ),
                None,
            )
            if target is None:
                target = next(
                    (row for row in rows if str(row.get("CLS_FULLNM") or "").startswith("서울")),
                    None,
                )
            if target is None:
                raise SourceUnavailable("no nationwide or Seoul row")
            index = _to_float(target["DTA_VAL"])
        except (KeyError, IndexError, TypeError, AttributeError, SourceUnavailable) as e:
            self._malformed("REB", e)
            return None

        return RawQuote(price=index / 100 * REAL_ESTATE_REFERENCE_PRICE)

    # ------------------------------------------------------------------
    # Macro statistics
    # ------------------------------------------------------------------

    def fetch_ecos(self, series: EcosSeries, today: date | None = None) -> Optional[RawQuote]:
        """
        Fetch a macro statistics series; change is the absolute delta between
        the last two rows.

        Args:
            series: Series to query
            today: Reference date for the query window (defaults to today)
        """
        api_key = self.source_config.ecos_api_key
        if not is_usable_key(api_key):
            self._key_missing("ECOS")
            return None

        start, end = ecos_date_range(series.cycle, today or datetime.now(timezone.utc).date())
        url = (
            f"{self.ecos_base_url}/{api_key}/json/kr/1/10/"
            f"{series.stat_code}/{series.cycle}/{start}/{end}/{series.item_code}"
        )
        data = self._get_json("ECOS", url)
        if data is None:
            return None

        try:
            rows = data["StatisticSearch"]["row"]
            if not rows:
                raise SourceUnavailable("empty series")
            price = _to_float(rows[-1]["DATA_VALUE"])
            previous = _to_float(rows[-2]["DATA_VALUE"]) if len(rows) > 1 else None
        except (KeyError, IndexError, TypeError, SourceUnavailable) as e:
            self._malformed("ECOS", e, series=series.stat_code)
            return None

        if previous is None:
            return RawQuote(price=price)
        return RawQuote(price=price, change=price - previous, previous_close=previous)

    # ------------------------------------------------------------------
    # Fear & greed
    # ------------------------------------------------------------------

    def fetch_fear_greed(self) -> Optional[RawQuote]:
        """Fetch the crypto fear & greed index; change is the absolute daily delta."""
        data = self._get_json("Alternative.me", self.fear_greed_url, params={"limit": 2})
        if data is None:
            return None

        try:
            entries = data["data"]
            price = _to_float(entries[0]["value"])
            previous = _to_float(entries[1]["value"]) if len(entries) > 1 else None
        except (KeyError, IndexError, TypeError, SourceUnavailable) as e:
            self._malformed("Alternative.me", e)
            return None

        if previous is None:
            return RawQuote(price=price)
        return RawQuote(price=price, change=price - previous, previous_close=previous)
