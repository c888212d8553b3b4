"""FastAPI dependencies for the store, services and collector authorization."""

import hmac

from fastapi import Depends, Query, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from src.api.error_handlers import create_unauthorized_error
from src.database.db import get_db
from src.database.store import MarketDataStore
from src.services.collection_pipeline import CollectionPipeline
from src.services.market_service import MarketService
from src.utils.config import config
from src.utils.event_store import EventStore
from src.utils.logger import StructuredLogger

logger = StructuredLogger("CollectorAuth")

# HTTP Bearer token security scheme; a missing header is handled below
security = HTTPBearer(auto_error=False)


def get_store(db: Session = Depends(get_db)) -> MarketDataStore:
    """FastAPI dependency for the market data store."""
    return MarketDataStore(db)


def get_market_service(store: MarketDataStore = Depends(get_store)) -> MarketService:
    """FastAPI dependency for the serving layer."""
    return MarketService(store)


def get_pipeline(request: Request) -> CollectionPipeline:
    """The application-wide collection pipeline."""
    return request.app.state.pipeline


def get_event_store(request: Request) -> EventStore:
    """The application-wide event store."""
    return request.app.state.event_store


def _matches(candidate: str | None, secret: str | None) -> bool:
    if not candidate or not secret:
        return False
    return hmac.compare_digest(candidate.encode(), secret.encode())


def verify_collector_auth(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    key: str | None = Query(None, description="Manual override key"),
) -> str:
    """
    FastAPI dependency authorizing a collector trigger.

    Accepts a bearer token equal to CRON_SECRET, or a ``key`` query parameter
    equal to COLLECTOR_MANUAL_KEY when that key is configured.

    Returns:
        "cron" or "manual", naming how the call was authorized

    Raises:
        HTTPException: 401 if neither credential matches
    """
    if credentials is not None and _matches(credentials.credentials, config.collector.cron_secret):
        return "cron"

    if _matches(key, config.collector.manual_key):
        return "manual"

    logger.warning(
        "Rejected collector call",
        context={"has_bearer": credentials is not None, "has_key": key is not None},
    )
    raise create_unauthorized_error().to_http_exception()
