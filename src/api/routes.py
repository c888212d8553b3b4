"""API routes for market data, collection and session status."""

from fastapi import APIRouter, Depends, Response

from src.api.dependencies import (
    get_market_service,
    get_pipeline,
    get_store,
    verify_collector_auth,
)
from src.api.error_handlers import (
    create_asset_not_found_error,
    create_internal_error,
    create_store_error,
)
from src.database.store import MarketDataStore, StoreError
from src.models.api_schemas import CollectorResponse, ErrorBody, MarketStatusResponse
from src.services.asset_registry import ASSET_REGISTRY
from src.services.collection_pipeline import CollectionPipeline
from src.services.market_service import MarketService
from src.services.market_status import get_market_status
from src.utils.config import config
from src.utils.logger import StructuredLogger

router = APIRouter()
logger = StructuredLogger("API")


@router.api_route(
    "/cron",
    methods=["GET", "POST"],
    response_model=CollectorResponse,
    responses={401: {"model": ErrorBody}, 500: {"model": ErrorBody}},
)
def run_collector(
    trigger: str = Depends(verify_collector_auth),
    pipeline: CollectionPipeline = Depends(get_pipeline),
    store: MarketDataStore = Depends(get_store),
):
    """
    Run one collection cycle.

    Args:
        trigger: How the caller was authorized ("cron" or "manual")
        pipeline: Collection pipeline
        store: Market data store

    Returns:
        Success message with the number and names of categories written
    """
    try:
        result = pipeline.run(store, trigger=trigger)
    except StoreError as e:
        logger.error("Collector run could not write", context={"trigger": trigger}, exception=e)
        raise create_store_error().to_http_exception() from e
    except Exception as e:
        logger.error("Collector run failed", context={"trigger": trigger}, exception=e)
        raise create_internal_error().to_http_exception() from e

    return CollectorResponse(count=result.count, categories=result.categories)


@router.get("/market", responses={500: {"model": ErrorBody}})
def get_market(
    response: Response,
    service: MarketService = Depends(get_market_service),
):
    """
    Get every configured asset, normalized and classified.

    Returns:
        ``{"assets": [...], "generatedAt": ISO-8601}``
    """
    try:
        data = service.get_market_data()
    except StoreError as e:
        raise create_store_error().to_http_exception() from e

    response.headers["Cache-Control"] = config.serving.cache_control
    return data.to_dict()


@router.get(
    "/market-status/{asset_id}",
    response_model=MarketStatusResponse,
    response_model_exclude_none=True,
    responses={404: {"model": ErrorBody}},
)
def market_status(asset_id: str):
    """
    Get the trading-session status for an index.

    Args:
        asset_id: Registry id of the asset

    Returns:
        ``{"status", "label", "nextOpenIn"?}``
    """
    if asset_id not in ASSET_REGISTRY:
        raise create_asset_not_found_error(asset_id).to_http_exception()

    info = get_market_status(asset_id)
    if info is None:
        raise create_asset_not_found_error(
            asset_id, message=f"No trading session for asset: {asset_id}"
        ).to_http_exception()
    return MarketStatusResponse(
        status=info.status, label=info.label, next_open_in=info.next_open_in
    )
