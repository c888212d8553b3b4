"""Market data models shared by the adapters, the pipeline and the serving layer."""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Literal

AssetCategory = Literal["currency", "index", "commodity", "crypto", "bonds"]

ASSET_CATEGORIES: tuple[str, ...] = ("currency", "index", "commodity", "crypto", "bonds")


class WeatherStatus(str, Enum):
    """Qualitative market mood of a single asset."""

    SUNNY = "sunny"
    CLOUDY = "cloudy"
    RAINY = "rainy"
    THUNDER = "thunder"


@dataclass(frozen=True)
class ChartPoint:
    """One point of the short rolling chart window."""

    time: str
    price: float

    def to_dict(self) -> dict[str, Any]:
        return {"time": self.time, "price": self.price}


def _as_float(value: Any, field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{field_name} must be a number, got {value!r}")
    return float(value)


@dataclass
class RawQuote:
    """
    Transient result of one source adapter call.

    ``change`` is a relative percent for equities, crypto, metals and FX, and
    an absolute delta for rates, sentiment and macro series.
    """

    price: float
    change: float = 0.0
    previous_close: float | None = None
    chart_series: list[ChartPoint] | None = None
    fx_rate: float | None = None

    def to_payload(self) -> dict[str, Any]:
        """Serialize into the JSON shape kept in the store."""
        payload: dict[str, Any] = {"price": self.price, "change": self.change}
        if self.previous_close is not None:
            payload["previousClose"] = self.previous_close
        if self.chart_series:
            payload["chartData"] = [point.to_dict() for point in self.chart_series]
        if self.fx_rate is not None:
            payload["fxRate"] = self.fx_rate
        return payload

    @classmethod
    def from_payload(cls, payload: Any) -> "RawQuote":
        """
        Parse a stored payload.

        Raises:
            ValueError: If the payload is not a mapping or carries no finite price
        """
        if not isinstance(payload, dict):
            raise ValueError(f"payload must be an object, got {type(payload).__name__}")

        price = _as_float(payload.get("price"), "price")
        if not math.isfinite(price):
            raise ValueError("price must be finite")

        change = payload.get("change")
        change = 0.0 if change is None else _as_float(change, "change")
        if not math.isfinite(change):
            change = 0.0

        previous_close = payload.get("previousClose")
        if previous_close is not None:
            previous_close = _as_float(previous_close, "previousClose")

        chart_series = None
        chart_data = payload.get("chartData")
        if isinstance(chart_data, list):
            chart_series = [
                ChartPoint(time=str(point["time"]), price=_as_float(point["price"], "chartData.price"))
                for point in chart_data
                if isinstance(point, dict) and "time" in point and "price" in point
            ]

        fx_rate = payload.get("fxRate")
        if fx_rate is not None:
            fx_rate = _as_float(fx_rate, "fxRate")

        return cls(
            price=price,
            change=change,
            previous_close=previous_close,
            chart_series=chart_series or None,
            fx_rate=fx_rate,
        )


@dataclass
class StoredRecord:
    """
    One row of the shared store: latest payload per asset category.

    ``payload`` is the decoded JSON, or None when the stored text is not JSON.
    """

    category: str
    payload: Any
    updated_at: datetime


@dataclass
class AssetData:
    """Fully normalized record served to the dashboard."""

    id: str
    name: str
    category: AssetCategory
    price: float
    price_display: str
    change: float
    change_points: float
    change_points_display: str
    status: WeatherStatus
    message: str
    advice: str
    source: str = ""
    basis: str = ""
    buy_price: float | None = None
    buy_price_display: str | None = None
    sell_price: float | None = None
    sell_price_display: str | None = None
    chart_data: list[ChartPoint] | None = None
    is_fallback: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to the camelCase JSON contract, omitting unset optional fields."""
        result: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "price": self.price,
            "priceDisplay": self.price_display,
            "change": self.change,
            "changePoints": self.change_points,
            "changePointsDisplay": self.change_points_display,
            "status": self.status.value,
            "message": self.message,
            "advice": self.advice,
            "source": self.source,
            "basis": self.basis,
            "isFallback": self.is_fallback,
        }
        if self.buy_price is not None:
            result["buyPrice"] = self.buy_price
            result["buyPriceDisplay"] = self.buy_price_display
        if self.sell_price is not None:
            result["sellPrice"] = self.sell_price
            result["sellPriceDisplay"] = self.sell_price_display
        if self.chart_data:
            result["chartData"] = [point.to_dict() for point in self.chart_data]
        return result


@dataclass
class MarketDataResponse:
    """Payload of the serving endpoint."""

    assets: list[AssetData] = field(default_factory=list)
    generated_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "assets": [asset.to_dict() for asset in self.assets],
            "generatedAt": self.generated_at,
        }
