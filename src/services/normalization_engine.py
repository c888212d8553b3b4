"""Normalization and weather classification of raw quotes."""

import math
import random
from collections.abc import Mapping
from dataclasses import dataclass

from src.models.asset_config import AssetConfig, ChangeBasis, UnitScale
from src.models.market_data import AssetData, ChartPoint, RawQuote
from src.services.asset_registry import ASSET_REGISTRY, TROY_OZ_TO_DON, AssetRegistry
from src.utils.config import config

PER_100_FACTOR = 100.0

# price, previous close, change, change points, chart series in display units
_Scaled = tuple[float, float | None, float, float, list[ChartPoint] | None]


@dataclass(frozen=True)
class NormalizationContext:
    """Per-request values shared by all assets, such as the USD/KRW rate."""

    fx_rate: float | None = None


def _is_positive_finite(value: float | None) -> bool:
    return value is not None and math.isfinite(value) and value > 0


def compute_change_points(
    price: float,
    change: float,
    previous_close: float | None = None,
    relative: bool = True,
) -> float:
    """
    Absolute delta between the current and the previous price.

    Args:
        price: Current price in display units
        change: Relative percent change, or absolute points when ``relative`` is False
        previous_close: Previous price in display units, if known
        relative: Whether ``change`` is a percent that can be used to rebuild
            the previous price

    Returns:
        ``price - previous_close`` when the previous close is known and positive,
        otherwise the delta rebuilt from the percent change, otherwise ``change``
    """
    if _is_positive_finite(previous_close):
        return price - previous_close
    if relative and change != 0 and change > -100:
        previous_price = price / (1 + change / 100)
        return price - previous_price
    return change


class NormalizationEngine:
    """Turns raw quotes into served ``AssetData`` records."""

    def __init__(
        self,
        registry: AssetRegistry = ASSET_REGISTRY,
        rng: random.Random | None = None,
        default_fx_rate: float | None = None,
    ):
        """
        Initialize the engine.

        Args:
            registry: Asset configurations to normalize against
            rng: Random source for fallback data; pass a seeded instance for determinism
            default_fx_rate: USD/KRW rate used when neither the quote nor the
                context carries one
        """
        self.registry = registry
        self.rng = rng or random.Random()
        self.default_fx_rate = default_fx_rate or config.sources.default_fx_rate

    def resolve_fx_rate(self, quote: RawQuote, context: NormalizationContext | None) -> float:
        if _is_positive_finite(quote.fx_rate):
            return quote.fx_rate
        if context is not None and _is_positive_finite(context.fx_rate):
            return context.fx_rate
        return self.default_fx_rate

    def unit_factor(
        self,
        asset: AssetConfig,
        quote: RawQuote,
        context: NormalizationContext | None = None,
    ) -> float:
        """Multiplier from storage units to display units."""
        if asset.unit_scale == UnitScale.PER_100:
            return PER_100_FACTOR
        if asset.unit_scale == UnitScale.TROY_OZ_TO_DON:
            return self.resolve_fx_rate(quote, context) * TROY_OZ_TO_DON
        return 1.0

    def normalize(
        self,
        asset_id: str,
        quote: RawQuote | None,
        context: NormalizationContext | None = None,
    ) -> AssetData:
        """
        Normalize one asset.

        A missing quote, one without a finite price, or one whose display
        values overflow is replaced by synthetic fallback data so a record
        is always produced.

        Args:
            asset_id: Registry id of the asset
            quote: Raw quote in storage units, or None
            context: Shared serving values

        Returns:
            Fully populated AssetData

        Raises:
            KeyError: If the asset id is not in the registry
        """
        asset = self.registry.get(asset_id)

        is_fallback = quote is None or not math.isfinite(quote.price)
        scaled = None if is_fallback else self._scale(asset, quote, context)
        if scaled is None:
            quote = self.generate_fallback(asset_id)
            is_fallback = True
            # An unusable serving rate must not break the fallback either
            scaled = self._scale(asset, quote, context) or self._scale(asset, quote, None)

        price, previous_close, change, change_points, chart_data = scaled

        status = asset.classify(price, change)

        data = AssetData(
            id=asset.asset_id,
            name=asset.name,
            category=asset.category,
            price=round(price, 4),
            price_display=asset.format_price(price),
            change=round(change, 4),
            change_points=round(change_points, 4),
            change_points_display=asset.format_change_points(change_points),
            status=status,
            message=asset.message_for(status),
            advice=asset.advice,
            source=asset.source_label,
            basis=asset.basis_label,
            chart_data=chart_data,
            is_fallback=is_fallback,
        )

        if asset.has_spread:
            buy_price = price * asset.buy_spread
            sell_price = price * asset.sell_spread
            data.buy_price = round(buy_price, 4)
            data.buy_price_display = asset.format_buy_price(buy_price)
            data.sell_price = round(sell_price, 4)
            data.sell_price_display = asset.format_sell_price(sell_price)

        return data

    def _scale(
        self,
        asset: AssetConfig,
        quote: RawQuote,
        context: NormalizationContext | None,
    ) -> _Scaled | None:
        """
        Convert a quote to display units.

        Returns None when any converted value, spread prices included, is
        not finite, e.g. a huge stored price multiplied by the unit factor.
        """
        change = quote.change if math.isfinite(quote.change) else 0.0

        factor = self.unit_factor(asset, quote, context)
        price = quote.price * factor
        previous_close = None
        if quote.previous_close is not None and math.isfinite(quote.previous_close):
            previous_close = quote.previous_close * factor
        chart_data = [
            ChartPoint(time=point.time, price=round(point.price * factor, 4))
            for point in quote.chart_series or ()
            if math.isfinite(point.price)
        ] or None

        change_points = compute_change_points(
            price,
            change,
            previous_close,
            relative=asset.change_basis == ChangeBasis.PERCENT,
        )

        values = [price, change_points]
        if previous_close is not None:
            values.append(previous_close)
        if chart_data:
            values.extend(point.price for point in chart_data)
        if asset.has_spread:
            values.extend((price * asset.buy_spread, price * asset.sell_spread))
        if not all(math.isfinite(value) for value in values):
            return None

        return price, previous_close, change, change_points, chart_data

    def normalize_all(
        self,
        quotes: Mapping[str, RawQuote | None],
        context: NormalizationContext | None = None,
    ) -> list[AssetData]:
        """Normalize every registry asset in registry order."""
        return [
            self.normalize(asset.asset_id, quotes.get(asset.asset_id), context)
            for asset in self.registry
        ]

    def generate_fallback(self, asset_id: str) -> RawQuote:
        """
        Synthesize a plausible quote in storage units.

        The change is drawn uniformly from half the profile's span on each
        side, the price moves with it and gets a bounded jitter of up to half
        the volatility, floored at zero.
        """
        asset = self.registry.get(asset_id)
        profile = asset.fallback

        half_span = profile.change_span / 2
        change = round(self.rng.uniform(-half_span, half_span), 2)

        if asset.change_basis == ChangeBasis.PERCENT:
            price = profile.base + profile.base * change / 100
        else:
            price = profile.base + change
        price += (self.rng.random() - 0.5) * profile.volatility

        return RawQuote(price=max(price, 0.0), change=change)
