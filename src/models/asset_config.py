"""Static per-asset configuration consumed by the normalization engine."""

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum

from src.models.market_data import AssetCategory, WeatherStatus

Classifier = Callable[[float, float], WeatherStatus]
Formatter = Callable[[float], str]


class UnitScale(str, Enum):
    """Transform from storage unit to display unit."""

    NONE = "none"
    PER_100 = "per_100"  # quoted per 1 unit, displayed per 100 units
    TROY_OZ_TO_DON = "troy_oz_to_don"  # USD per troy ounce -> KRW per don (3.75 g)


class ChangeBasis(str, Enum):
    """How the ``change`` field of a raw quote is expressed."""

    PERCENT = "percent"
    POINTS = "points"


@dataclass(frozen=True)
class FallbackProfile:
    """Parameters for synthetic data, in storage units."""

    base: float
    volatility: float
    change_span: float = 6.0


@dataclass(frozen=True)
class AssetConfig:
    """Display and classification rules for one asset type."""

    asset_id: str
    name: str
    category: AssetCategory
    classify: Classifier
    format_price: Formatter
    format_change_points: Formatter
    messages: Mapping[WeatherStatus, str]
    advice: str
    source_label: str
    basis_label: str
    fallback: FallbackProfile
    unit_scale: UnitScale = UnitScale.NONE
    change_basis: ChangeBasis = ChangeBasis.PERCENT
    format_buy_price: Formatter | None = None
    format_sell_price: Formatter | None = None
    buy_spread: float = 1.0
    sell_spread: float = 1.0

    def message_for(self, status: WeatherStatus) -> str:
        return self.messages[status]

    @property
    def has_spread(self) -> bool:
        return self.format_buy_price is not None and self.format_sell_price is not None
