"""Weather classification rules.

Every rule is an immutable callable ``rule(price, change) -> WeatherStatus``.
All thresholds are strict: a value sitting exactly on a threshold falls into
the calmer band.
"""

from dataclasses import dataclass

from src.models.market_data import WeatherStatus


@dataclass(frozen=True)
class PriceBandRule:
    """Level-banded rule for prices where "expensive" is bad (FX, fuel)."""

    low: float
    high: float

    def __call__(self, price: float, change: float) -> WeatherStatus:
        if price > self.high:
            return WeatherStatus.RAINY
        if price < self.low:
            return WeatherStatus.SUNNY
        return WeatherStatus.CLOUDY


@dataclass(frozen=True)
class ChangeBandRule:
    """
    Change-banded rule with an optional volatility escape.

    Used for equity indices (thunder above 2%), crypto (thunder above 3%)
    and commodities (no thunder band).
    """

    band: float
    thunder: float | None = None

    def __call__(self, price: float, change: float) -> WeatherStatus:
        if self.thunder is not None and abs(change) > self.thunder:
            return WeatherStatus.THUNDER
        if change > self.band:
            return WeatherStatus.SUNNY
        if change < -self.band:
            return WeatherStatus.RAINY
        return WeatherStatus.CLOUDY


@dataclass(frozen=True)
class RateRule:
    """
    Rates and bond yields.

    Only a rise above the threshold is distinguished; falling rates stay
    cloudy, so this class never yields rainy or thunder.
    """

    threshold: float = 0.1

    def __call__(self, price: float, change: float) -> WeatherStatus:
        if change > self.threshold:
            return WeatherStatus.SUNNY
        return WeatherStatus.CLOUDY


@dataclass(frozen=True)
class YieldSpreadRule:
    """Long minus short yield; an inverted curve is always thunder."""

    band: float = 0.05

    def __call__(self, price: float, change: float) -> WeatherStatus:
        if price < 0:
            return WeatherStatus.THUNDER
        if change > self.band:
            return WeatherStatus.SUNNY
        if change < -self.band:
            return WeatherStatus.RAINY
        return WeatherStatus.CLOUDY


@dataclass(frozen=True)
class FearGreedRule:
    """0-100 crypto sentiment index banded by absolute level."""

    extreme_fear: float = 25
    fear: float = 45
    neutral: float = 55

    def __call__(self, price: float, change: float) -> WeatherStatus:
        if price < self.extreme_fear:
            return WeatherStatus.THUNDER
        if price < self.fear:
            return WeatherStatus.RAINY
        if price <= self.neutral:
            return WeatherStatus.CLOUDY
        return WeatherStatus.SUNNY


@dataclass(frozen=True)
class SentimentLevelRule:
    """Consumer sentiment around a baseline of 100."""

    optimistic: float = 105
    baseline: float = 100
    pessimistic: float = 90

    def __call__(self, price: float, change: float) -> WeatherStatus:
        if price >= self.optimistic:
            return WeatherStatus.SUNNY
        if price >= self.baseline:
            return WeatherStatus.CLOUDY
        if price >= self.pessimistic:
            return WeatherStatus.RAINY
        return WeatherStatus.THUNDER


@dataclass(frozen=True)
class InflationRule:
    """Price indices: a rising index is bad news, a falling one good news."""

    threshold: float = 0.3

    def __call__(self, price: float, change: float) -> WeatherStatus:
        if change > self.threshold:
            return WeatherStatus.RAINY
        if change < 0:
            return WeatherStatus.SUNNY
        return WeatherStatus.CLOUDY


INDEX_RULE = ChangeBandRule(band=0.5, thunder=2.0)
CRYPTO_RULE = ChangeBandRule(band=0.5, thunder=3.0)
COMMODITY_RULE = ChangeBandRule(band=1.0)
RATE_RULE = RateRule()
