"""Pydantic schemas for API responses."""

from pydantic import BaseModel, ConfigDict, Field


class CollectorResponse(BaseModel):
    """Response model for the collector trigger."""

    message: str = "Success"
    count: int = Field(ge=0)
    categories: list[str]


class MarketStatusResponse(BaseModel):
    """Response model for the trading-session status endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    status: str
    label: str
    next_open_in: str | None = Field(default=None, alias="nextOpenIn")


class ErrorBody(BaseModel):
    """Body of every error response."""

    error: str
    message: str
    details: dict | list | None = None
