"""Serving layer: stored rows to the dashboard response."""

from datetime import datetime, timezone

from src.database.store import MarketDataStore
from src.models.market_data import MarketDataResponse, RawQuote
from src.services.normalization_engine import NormalizationContext, NormalizationEngine
from src.utils.logger import StructuredLogger

logger = StructuredLogger("MarketService")


class MarketService:
    """Builds the market response from the store on every request."""

    def __init__(self, store: MarketDataStore, engine: NormalizationEngine | None = None):
        """
        Initialize the service.

        Args:
            store: Store holding the latest payload per category
            engine: Normalization engine (defaults to one over the full registry)
        """
        self.store = store
        self.engine = engine or NormalizationEngine()

    def load_quotes(self) -> dict[str, RawQuote]:
        """
        Parse every stored row for a configured asset.

        Malformed payloads are logged and left out so that asset falls back.

        Raises:
            StoreError: If the store cannot be read
        """
        quotes: dict[str, RawQuote] = {}
        for record in self.store.read_all():
            if record.category not in self.engine.registry:
                logger.debug(
                    "Ignoring stored row for unknown category",
                    context={"category": record.category},
                )
                continue
            try:
                quotes[record.category] = RawQuote.from_payload(record.payload)
            except ValueError as e:
                logger.warning(
                    "Malformed stored payload, serving fallback",
                    context={"category": record.category, "error": str(e)},
                )
        return quotes

    def get_market_data(self) -> MarketDataResponse:
        """
        Normalize every configured asset from the latest stored payloads.

        Returns:
            MarketDataResponse with one record per configured asset

        Raises:
            StoreError: If the store cannot be read
        """
        quotes = self.load_quotes()

        usdkrw = quotes.get("usdkrw")
        context = NormalizationContext(fx_rate=usdkrw.price if usdkrw is not None else None)

        assets = self.engine.normalize_all(quotes, context)

        fallback_ids = [asset.id for asset in assets if asset.is_fallback]
        if fallback_ids:
            logger.debug(
                f"Serving {len(fallback_ids)} fallback assets",
                context={"assets": fallback_ids},
            )

        return MarketDataResponse(
            assets=assets,
            generated_at=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        )
